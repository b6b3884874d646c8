"""
Ledger Services

The domain actions behind the agent's tools: recording expenses and
income, budgets, categories, user memories and period reports.

DESIGN DECISION: Services raise, the catalog converts.
Every domain failure is a LedgerError subclass carrying an ErrorCode.
Services never build ExecutionResults themselves; the tool catalog is
the only place exceptions become values.
"""

from collections import defaultdict
from datetime import date
from typing import Any, Optional

import structlog

from dompetku.models.ledger import (
    DEFAULT_CATEGORIES,
    FALLBACK_CATEGORY,
    Budget,
    BudgetPeriod,
    BudgetStatusLevel,
    Category,
    Expense,
    ExpenseItem,
    Income,
    MemoryItem,
    ReportPeriod,
)
from dompetku.models.tools import ErrorCode
from dompetku.services.storage import LedgerStorageInterface


logger = structlog.get_logger(__name__)


class LedgerError(Exception):
    """Base class for domain failures. `code` is what the formatter maps."""

    code: ErrorCode = ErrorCode.EXECUTION_ERROR

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class InsufficientBalanceError(LedgerError):
    code = ErrorCode.INSUFFICIENT_BALANCE


class VoucherInvalidError(LedgerError):
    code = ErrorCode.VOUCHER_INVALID


class VoucherAlreadyUsedError(LedgerError):
    code = ErrorCode.VOUCHER_ALREADY_USED


class CategoryNotFoundError(LedgerError):
    code = ErrorCode.CATEGORY_NOT_FOUND


class CategoryProtectedError(LedgerError):
    """Built-in categories can't be renamed or deleted."""
    code = ErrorCode.VALIDATION_ERROR


class ExpenseNotFoundError(LedgerError):
    code = ErrorCode.EXPENSE_NOT_FOUND


class NoExpensesFoundError(LedgerError):
    code = ErrorCode.NO_EXPENSES_FOUND


class BudgetNotFoundError(LedgerError):
    code = ErrorCode.BUDGET_NOT_FOUND


class MemoryNotFoundError(LedgerError):
    code = ErrorCode.MEMORY_NOT_FOUND


class CategoryService:
    """
    Per-user categories.

    Every user starts with DEFAULT_CATEGORIES; custom ones are stored.
    """

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def list_names(self, user_id: str) -> list[str]:
        custom = [c.name for c in await self._storage.list_categories(user_id)]
        return DEFAULT_CATEGORIES + sorted(n for n in custom if n not in DEFAULT_CATEGORIES)

    async def resolve(self, user_id: str, name: Optional[str]) -> str:
        """Map a requested category to a known one, falling back to 'lainnya'."""
        if not name:
            return FALLBACK_CATEGORY
        wanted = name.strip().lower()
        known = await self.list_names(user_id)
        if wanted in known:
            return wanted
        # "makanan" should find "makanan-minuman"
        for candidate in known:
            if candidate.startswith(wanted) or wanted in candidate.split("-"):
                return candidate
        return FALLBACK_CATEGORY

    async def create(self, user_id: str, name: str) -> str:
        category = Category(user_id=user_id, name=name)
        if category.name not in await self.list_names(user_id):
            await self._storage.save_category(category)
        return category.name

    async def rename(self, user_id: str, name: str, new_name: str) -> str:
        old = name.strip().lower()
        if old in DEFAULT_CATEGORIES:
            raise CategoryProtectedError(f"Kategori bawaan '{old}' tidak bisa diubah")
        if not await self._storage.delete_category(user_id, old):
            raise CategoryNotFoundError(f"Category not found: {old}")
        renamed = Category(user_id=user_id, name=new_name)
        await self._storage.save_category(renamed)
        return renamed.name

    async def delete(self, user_id: str, name: str) -> str:
        target = name.strip().lower()
        if target in DEFAULT_CATEGORIES:
            raise CategoryProtectedError(f"Kategori bawaan '{target}' tidak bisa dihapus")
        if not await self._storage.delete_category(user_id, target):
            raise CategoryNotFoundError(f"Category not found: {target}")
        return target


class ExpenseService:
    """Create, edit, delete and list expenses."""

    def __init__(self, storage: LedgerStorageInterface, categories: CategoryService):
        self._storage = storage
        self._categories = categories

    async def create(
        self,
        user_id: str,
        amount: float,
        description: str,
        category: Optional[str] = None,
        items: Optional[list[ExpenseItem]] = None,
        calculation_expression: Optional[str] = None,
        spent_at: Optional[date] = None,
    ) -> Expense:
        expense = Expense(
            user_id=user_id,
            amount=amount,
            description=description,
            category=await self._categories.resolve(user_id, category),
            items=items or [],
            calculation_expression=calculation_expression,
            spent_at=spent_at or date.today(),
        )
        await self._storage.save_expense(expense)
        logger.info("expense.created", user_id=user_id, expense_id=expense.id, amount=amount)
        return expense

    async def edit(
        self,
        user_id: str,
        expense_id: Optional[str] = None,
        amount: Optional[float] = None,
        description: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Expense:
        """
        Edit an expense; without an id, the most recent one.

        Raises:
            NoExpensesFoundError: no id given and the user has no expenses
            ExpenseNotFoundError: the id doesn't belong to the user
        """
        if expense_id:
            expense = await self._storage.get_expense(user_id, expense_id)
            if expense is None:
                raise ExpenseNotFoundError(f"Expense not found: {expense_id}")
        else:
            latest = await self._storage.list_expenses(user_id, limit=1)
            if not latest:
                raise NoExpensesFoundError("User has no expenses yet")
            expense = latest[0]

        changes: dict[str, Any] = {}
        if amount is not None:
            changes["amount"] = amount
        if description:
            changes["description"] = description
        if category:
            changes["category"] = await self._categories.resolve(user_id, category)

        updated = Expense.model_validate({**expense.model_dump(), **changes})
        await self._storage.update_expense(updated)
        return updated

    async def delete(self, user_id: str, expense_id: str) -> Expense:
        expense = await self._storage.get_expense(user_id, expense_id)
        if expense is None or not await self._storage.delete_expense(user_id, expense_id):
            raise ExpenseNotFoundError(f"Expense not found: {expense_id}")
        return expense

    async def list(
        self,
        user_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        category: Optional[str] = None,
        limit: int = 50,
    ) -> list[Expense]:
        return await self._storage.list_expenses(
            user_id,
            date_from=start_date,
            date_to=end_date,
            category=category,
            limit=limit,
        )


class IncomeService:
    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def create(
        self,
        user_id: str,
        amount: float,
        description: str,
        source: Optional[str] = None,
    ) -> Income:
        income = Income(
            user_id=user_id,
            amount=amount,
            description=description,
            source=(source or "lainnya").strip().lower(),
        )
        await self._storage.save_income(income)
        logger.info("income.created", user_id=user_id, income_id=income.id, amount=amount)
        return income


class BudgetService:
    """Budgets per category and period, and how much of each is used."""

    def __init__(self, storage: LedgerStorageInterface, categories: CategoryService):
        self._storage = storage
        self._categories = categories

    async def set_budget(
        self,
        user_id: str,
        category_name: str,
        amount: float,
        period: BudgetPeriod = BudgetPeriod.MONTHLY,
        today: Optional[date] = None,
    ) -> Budget:
        start, end = period.date_range(today)
        budget = Budget(
            user_id=user_id,
            category=await self._categories.resolve(user_id, category_name),
            amount=amount,
            period=period,
            start_date=start,
            end_date=end,
        )
        await self._storage.save_budget(budget)
        return budget

    async def status(
        self,
        user_id: str,
        category_name: Optional[str] = None,
        today: Optional[date] = None,
    ) -> list[dict[str, Any]]:
        """
        Usage of each budget in its current period.

        Budgets are re-anchored to the period containing today, so a
        monthly budget set in March is checked against April in April.

        Raises:
            BudgetNotFoundError: the user has no (matching) budget
        """
        budgets = await self._storage.list_budgets(user_id)
        if category_name:
            wanted = await self._categories.resolve(user_id, category_name)
            budgets = [b for b in budgets if b.category == wanted]
        if not budgets:
            raise BudgetNotFoundError("No budget set")

        statuses = []
        for budget in budgets:
            start, end = budget.period.date_range(today)
            expenses = await self._storage.list_expenses(
                user_id,
                date_from=start,
                date_to=end,
                category=budget.category,
                limit=10_000,
            )
            spent = sum(e.amount for e in expenses)
            statuses.append({
                "category": budget.category,
                "period": budget.period.value,
                "limit": budget.amount,
                "spent": spent,
                "remaining": budget.amount - spent,
                "percent_used": round(spent / budget.amount * 100, 1),
                "status": BudgetStatusLevel.for_usage(spent, budget.amount).value,
            })
        return statuses


class MemoryService:
    """Small key/value facts about a user the agent can recall."""

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def save(self, user_id: str, key: str, value: str) -> MemoryItem:
        item = MemoryItem(user_id=user_id, key=key, value=value)
        await self._storage.save_memory(item)
        return item

    async def get(self, user_id: str, key: Optional[str] = None) -> list[MemoryItem]:
        """One memory by key, or all of the user's memories."""
        if not key:
            return await self._storage.list_memories(user_id)
        item = await self._storage.get_memory(user_id, key)
        if item is None:
            raise MemoryNotFoundError(f"No memory for '{key}'")
        return [item]

    async def delete(self, user_id: str, key: str) -> str:
        if not await self._storage.delete_memory(user_id, key):
            raise MemoryNotFoundError(f"No memory for '{key}'")
        return key.strip().lower()


class ReportService:
    """Totals for the current week, month or year."""

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def generate(
        self,
        user_id: str,
        period: ReportPeriod = ReportPeriod.MONTHLY,
        today: Optional[date] = None,
    ) -> dict[str, Any]:
        start, end = period.date_range(today)
        expenses = await self._storage.list_expenses(
            user_id, date_from=start, date_to=end, limit=10_000
        )
        incomes = await self._storage.list_incomes(
            user_id, date_from=start, date_to=end, limit=10_000
        )

        by_category: dict[str, float] = defaultdict(float)
        for expense in expenses:
            by_category[expense.category] += expense.amount

        total_expense = sum(e.amount for e in expenses)
        total_income = sum(i.amount for i in incomes)
        return {
            "period": period.value,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "total_expense": total_expense,
            "total_income": total_income,
            "net": total_income - total_expense,
            "expense_count": len(expenses),
            "income_count": len(incomes),
            "by_category": dict(
                sorted(by_category.items(), key=lambda kv: kv[1], reverse=True)
            ),
        }
