"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for tests and local runs
3. Keep the domain services and agent loop decoupled from storage

The interface is intentionally simple - we're not building a full ORM.
Just the operations the ledger services and the agent loop need.

Read-modify-write atomicity for the wallet is provided one level up,
by WalletService's per-user locks.
"""

from abc import ABC, abstractmethod
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


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Every query is scoped by user_id; a user never sees another
    user's records.
    """

    # Expenses

    @abstractmethod
    async def save_expense(self, expense: Expense) -> bool:
        """
        Save a new expense.

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_expense(self, user_id: str, expense_id: str) -> Optional[Expense]:
        """Retrieve an expense by id, None if missing."""
        pass

    @abstractmethod
    async def update_expense(self, expense: Expense) -> bool:
        """
        Replace an existing expense.

        Raises:
            NotFoundError: If the expense doesn't exist
        """
        pass

    @abstractmethod
    async def delete_expense(self, user_id: str, expense_id: str) -> bool:
        """Delete an expense. Returns False if it didn't exist."""
        pass

    @abstractmethod
    async def list_expenses(
        self,
        user_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        category: Optional[str] = None,
        limit: int = 100,
    ) -> list[Expense]:
        """
        List expenses with optional filters, newest first.

        Args:
            user_id: Owner of the expenses
            date_from: Include expenses on or after this date
            date_to: Include expenses on or before this date
            category: Exact category name
            limit: Maximum number of results
        """
        pass

    # Income

    @abstractmethod
    async def save_income(self, income: Income) -> bool:
        pass

    @abstractmethod
    async def list_incomes(
        self,
        user_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 100,
    ) -> list[Income]:
        """List income records, newest first."""
        pass

    # Budgets

    @abstractmethod
    async def save_budget(self, budget: Budget) -> bool:
        """Insert or replace the budget for (user, category, period)."""
        pass

    @abstractmethod
    async def list_budgets(self, user_id: str) -> list[Budget]:
        pass

    # Wallet

    @abstractmethod
    async def get_wallet(self, user_id: str) -> Optional[Wallet]:
        pass

    @abstractmethod
    async def save_wallet(self, wallet: Wallet) -> bool:
        """Insert or replace the user's wallet."""
        pass

    # Vouchers

    @abstractmethod
    async def get_voucher(self, code: str) -> Optional[Voucher]:
        pass

    @abstractmethod
    async def save_voucher(self, voucher: Voucher) -> bool:
        """Insert or replace a voucher (keyed by code)."""
        pass

    # Categories

    @abstractmethod
    async def list_categories(self, user_id: str) -> list[Category]:
        pass

    @abstractmethod
    async def save_category(self, category: Category) -> bool:
        pass

    @abstractmethod
    async def delete_category(self, user_id: str, name: str) -> bool:
        """Delete a category. Returns False if it didn't exist."""
        pass

    # Memories

    @abstractmethod
    async def save_memory(self, item: MemoryItem) -> bool:
        """Insert or replace the memory for (user, key)."""
        pass

    @abstractmethod
    async def get_memory(self, user_id: str, key: str) -> Optional[MemoryItem]:
        pass

    @abstractmethod
    async def list_memories(self, user_id: str) -> list[MemoryItem]:
        pass

    @abstractmethod
    async def delete_memory(self, user_id: str, key: str) -> bool:
        pass


class ConversationStoreInterface(ABC):
    """
    Abstract interface for the chat history.

    The agent loop reads recent turns before calling the model and
    appends the finished turn afterwards.
    """

    @abstractmethod
    async def append(self, turn: ConversationTurn) -> None:
        """
        Append a turn.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def recent_by_user(self, user_id: str, limit: int) -> list[ConversationTurn]:
        """
        Get the user's most recent turns.

        Returns:
            At most `limit` turns, oldest first
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events of one turn, in chronological order.
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
