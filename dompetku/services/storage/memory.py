"""
In-memory storage backends.

Used by tests and when Google Sheets isn't configured. Records are
copied on the way in and on the way out so callers can't mutate
stored state by accident.
"""

from collections import defaultdict
from datetime import date
from typing import Optional
from uuid import UUID

from dompetku.models.audit import AuditEvent
from dompetku.models.conversation import ConversationTurn
from dompetku.models.ledger import (
    Budget,
    Category,
    Expense,
    Income,
    MemoryItem,
    Voucher,
    Wallet,
)
from dompetku.services.storage.interface import (
    AuditStorageInterface,
    ConversationStoreInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
)


def _in_range(day: date, date_from: Optional[date], date_to: Optional[date]) -> bool:
    if date_from and day < date_from:
        return False
    if date_to and day > date_to:
        return False
    return True


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dict-backed ledger storage."""

    def __init__(self):
        self._expenses: dict[str, Expense] = {}
        self._incomes: dict[str, Income] = {}
        self._budgets: dict[tuple[str, str, str], Budget] = {}
        self._wallets: dict[str, Wallet] = {}
        self._vouchers: dict[str, Voucher] = {}
        self._categories: dict[str, dict[str, Category]] = defaultdict(dict)
        self._memories: dict[str, dict[str, MemoryItem]] = defaultdict(dict)

    async def save_expense(self, expense: Expense) -> bool:
        if expense.id in self._expenses:
            raise DuplicateError(f"Expense already exists: {expense.id}")
        self._expenses[expense.id] = expense.model_copy(deep=True)
        return True

    async def get_expense(self, user_id: str, expense_id: str) -> Optional[Expense]:
        expense = self._expenses.get(expense_id)
        if expense is None or expense.user_id != user_id:
            return None
        return expense.model_copy(deep=True)

    async def update_expense(self, expense: Expense) -> bool:
        stored = self._expenses.get(expense.id)
        if stored is None or stored.user_id != expense.user_id:
            raise NotFoundError(f"Expense not found: {expense.id}")
        self._expenses[expense.id] = expense.model_copy(deep=True)
        return True

    async def delete_expense(self, user_id: str, expense_id: str) -> bool:
        stored = self._expenses.get(expense_id)
        if stored is None or stored.user_id != user_id:
            return False
        del self._expenses[expense_id]
        return True

    async def list_expenses(
        self,
        user_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        category: Optional[str] = None,
        limit: int = 100,
    ) -> list[Expense]:
        expenses = [
            e.model_copy(deep=True)
            for e in self._expenses.values()
            if e.user_id == user_id
            and _in_range(e.spent_at, date_from, date_to)
            and (category is None or e.category == category.lower())
        ]
        expenses.sort(key=lambda e: (e.spent_at, e.created_at), reverse=True)
        return expenses[:limit]

    async def save_income(self, income: Income) -> bool:
        if income.id in self._incomes:
            raise DuplicateError(f"Income already exists: {income.id}")
        self._incomes[income.id] = income.model_copy(deep=True)
        return True

    async def list_incomes(
        self,
        user_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 100,
    ) -> list[Income]:
        incomes = [
            i.model_copy(deep=True)
            for i in self._incomes.values()
            if i.user_id == user_id and _in_range(i.received_at, date_from, date_to)
        ]
        incomes.sort(key=lambda i: (i.received_at, i.created_at), reverse=True)
        return incomes[:limit]

    async def save_budget(self, budget: Budget) -> bool:
        key = (budget.user_id, budget.category, budget.period.value)
        self._budgets[key] = budget.model_copy(deep=True)
        return True

    async def list_budgets(self, user_id: str) -> list[Budget]:
        return [
            b.model_copy(deep=True)
            for (owner, _, _), b in self._budgets.items()
            if owner == user_id
        ]

    async def get_wallet(self, user_id: str) -> Optional[Wallet]:
        wallet = self._wallets.get(user_id)
        return wallet.model_copy() if wallet else None

    async def save_wallet(self, wallet: Wallet) -> bool:
        self._wallets[wallet.user_id] = wallet.model_copy()
        return True

    async def get_voucher(self, code: str) -> Optional[Voucher]:
        voucher = self._vouchers.get(code.strip().upper())
        return voucher.model_copy(deep=True) if voucher else None

    async def save_voucher(self, voucher: Voucher) -> bool:
        self._vouchers[voucher.code] = voucher.model_copy(deep=True)
        return True

    async def list_categories(self, user_id: str) -> list[Category]:
        return [c.model_copy() for c in self._categories[user_id].values()]

    async def save_category(self, category: Category) -> bool:
        self._categories[category.user_id][category.name] = category.model_copy()
        return True

    async def delete_category(self, user_id: str, name: str) -> bool:
        return self._categories[user_id].pop(name.strip().lower(), None) is not None

    async def save_memory(self, item: MemoryItem) -> bool:
        self._memories[item.user_id][item.key] = item.model_copy()
        return True

    async def get_memory(self, user_id: str, key: str) -> Optional[MemoryItem]:
        item = self._memories[user_id].get(key.strip().lower())
        return item.model_copy() if item else None

    async def list_memories(self, user_id: str) -> list[MemoryItem]:
        return [m.model_copy() for m in self._memories[user_id].values()]

    async def delete_memory(self, user_id: str, key: str) -> bool:
        return self._memories[user_id].pop(key.strip().lower(), None) is not None


class InMemoryConversationStore(ConversationStoreInterface):
    """List-backed conversation history."""

    def __init__(self):
        self._turns: list[ConversationTurn] = []

    async def append(self, turn: ConversationTurn) -> None:
        self._turns.append(turn.model_copy())

    async def recent_by_user(self, user_id: str, limit: int) -> list[ConversationTurn]:
        if limit <= 0:
            return []
        turns = [t for t in self._turns if t.user_id == user_id]
        return [t.model_copy() for t in turns[-limit:]]


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed audit log."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events
