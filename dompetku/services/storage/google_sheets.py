"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the storage backend because:
1. Users can open their own ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (wallet writes are serialized by WalletService)
- Limited query capabilities (we filter in Python)

Ledger records share one generic row layout: [key, user_id, updated_at,
payload_json]. The payload is the pydantic model dumped as JSON, so
adding a field to a model never requires a sheet migration.
Conversation turns and audit events get real columns because people
actually read those sheets.
"""

import json
from datetime import date, datetime
from typing import Generic, Optional, TypeVar
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from dompetku.config import GoogleSheetsSettings, get_settings
from dompetku.models.audit import AuditEvent, AuditEventType, AuditSeverity
from dompetku.models.conversation import ConversationTurn, TurnRole
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
    ConnectionError,
    ConversationStoreInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)


RECORD_COLUMNS = ["key", "user_id", "updated_at", "payload_json"]

CONVERSATION_COLUMNS = [
    "user_id",
    "timestamp",
    "role",
    "content",
    "tool_used",
    "tokens_in",
    "tokens_out",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "tool_name",
    "correlation_id",
    "description",
    "details_json",
    "error_code",
    "error_message",
]


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        """Get or create a worksheet, writing the header row on creation."""
        if title in self._worksheets:
            return self._worksheets[title]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        self._worksheets[title] = sheet
        return sheet


RecordT = TypeVar("RecordT", bound=BaseModel)


class _RecordTable(Generic[RecordT]):
    """One worksheet of JSON-serialized pydantic records keyed by a string."""

    def __init__(self, client: GoogleSheetsClient, title: str, model: type[RecordT]):
        self._client = client
        self._title = title
        self._model = model

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self._title, RECORD_COLUMNS)

    def _to_row(self, key: str, user_id: str, record: RecordT) -> list:
        return [
            key,
            user_id,
            datetime.utcnow().isoformat(),
            record.model_dump_json(),
        ]

    def _parse(self, row: list) -> Optional[RecordT]:
        payload = _safe_get(row, 3)
        if not payload:
            return None
        try:
            return self._model.model_validate_json(payload)
        except ValueError:
            return None  # Skip malformed rows

    def find_row_index(self, key: str) -> Optional[int]:
        all_rows = self._sheet().get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
            if row and row[0] == key:
                return idx
        return None

    def get(self, key: str) -> Optional[RecordT]:
        for row in self._sheet().get_all_values()[1:]:
            if row and row[0] == key:
                return self._parse(row)
        return None

    def all_for_user(self, user_id: str) -> list[RecordT]:
        records = []
        for row in self._sheet().get_all_values()[1:]:
            if not row or _safe_get(row, 1) != user_id:
                continue
            record = self._parse(row)
            if record is not None:
                records.append(record)
        return records

    def insert(self, key: str, user_id: str, record: RecordT) -> None:
        """
        Append a new record.

        An identical record under the same key counts as inserted: a
        retried append whose first attempt reached the sheet must not fail.
        """
        if self.find_row_index(key) is not None:
            if self.get(key) == record:
                return
            raise DuplicateError(f"{self._title} already has {key}")
        self._sheet().append_row(self._to_row(key, user_id, record), value_input_option="RAW")

    def replace(self, key: str, user_id: str, record: RecordT) -> None:
        idx = self.find_row_index(key)
        if idx is None:
            raise NotFoundError(f"{self._title} has no {key}")
        self._sheet().update(
            range_name=f"A{idx}:D{idx}",
            values=[self._to_row(key, user_id, record)],
            value_input_option="RAW",
        )

    def upsert(self, key: str, user_id: str, record: RecordT) -> None:
        if self.find_row_index(key) is None:
            self._sheet().append_row(self._to_row(key, user_id, record), value_input_option="RAW")
        else:
            self.replace(key, user_id, record)

    def delete(self, key: str) -> bool:
        idx = self.find_row_index(key)
        if idx is None:
            return False
        self._sheet().delete_rows(idx)
        return True


def _in_range(day: date, date_from: Optional[date], date_to: Optional[date]) -> bool:
    return not ((date_from and day < date_from) or (date_to and day > date_to))


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    One worksheet per record type, see the module docstring for the layout.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        names = self._client.settings
        self._expenses = _RecordTable(self._client, names.expenses_sheet_name, Expense)
        self._incomes = _RecordTable(self._client, names.incomes_sheet_name, Income)
        self._budgets = _RecordTable(self._client, names.budgets_sheet_name, Budget)
        self._wallets = _RecordTable(self._client, names.wallets_sheet_name, Wallet)
        self._vouchers = _RecordTable(self._client, names.vouchers_sheet_name, Voucher)
        self._categories = _RecordTable(self._client, names.categories_sheet_name, Category)
        self._memories = _RecordTable(self._client, names.memories_sheet_name, MemoryItem)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(DuplicateError),
        reraise=True,
    )
    async def save_expense(self, expense: Expense) -> bool:
        try:
            self._expenses.insert(expense.id, expense.user_id, expense)
            return True
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save expense: {e}")

    async def get_expense(self, user_id: str, expense_id: str) -> Optional[Expense]:
        try:
            expense = self._expenses.get(expense_id)
        except Exception as e:
            raise StorageError(f"Failed to get expense: {e}")
        if expense is None or expense.user_id != user_id:
            return None
        return expense

    async def update_expense(self, expense: Expense) -> bool:
        try:
            self._expenses.replace(expense.id, expense.user_id, expense)
            return True
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update expense: {e}")

    async def delete_expense(self, user_id: str, expense_id: str) -> bool:
        if await self.get_expense(user_id, expense_id) is None:
            return False
        try:
            return self._expenses.delete(expense_id)
        except Exception as e:
            raise StorageError(f"Failed to delete expense: {e}")

    async def list_expenses(
        self,
        user_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        category: Optional[str] = None,
        limit: int = 100,
    ) -> list[Expense]:
        try:
            expenses = self._expenses.all_for_user(user_id)
        except Exception as e:
            raise StorageError(f"Failed to list expenses: {e}")
        expenses = [
            e for e in expenses
            if _in_range(e.spent_at, date_from, date_to)
            and (category is None or e.category == category.lower())
        ]
        # Sort by date descending (newest first)
        expenses.sort(key=lambda e: (e.spent_at, e.created_at), reverse=True)
        return expenses[:limit]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(DuplicateError),
        reraise=True,
    )
    async def save_income(self, income: Income) -> bool:
        try:
            self._incomes.insert(income.id, income.user_id, income)
            return True
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save income: {e}")

    async def list_incomes(
        self,
        user_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 100,
    ) -> list[Income]:
        try:
            incomes = self._incomes.all_for_user(user_id)
        except Exception as e:
            raise StorageError(f"Failed to list income: {e}")
        incomes = [i for i in incomes if _in_range(i.received_at, date_from, date_to)]
        incomes.sort(key=lambda i: (i.received_at, i.created_at), reverse=True)
        return incomes[:limit]

    async def save_budget(self, budget: Budget) -> bool:
        key = f"{budget.user_id}:{budget.category}:{budget.period.value}"
        try:
            self._budgets.upsert(key, budget.user_id, budget)
            return True
        except Exception as e:
            raise StorageError(f"Failed to save budget: {e}")

    async def list_budgets(self, user_id: str) -> list[Budget]:
        try:
            return self._budgets.all_for_user(user_id)
        except Exception as e:
            raise StorageError(f"Failed to list budgets: {e}")

    async def get_wallet(self, user_id: str) -> Optional[Wallet]:
        try:
            return self._wallets.get(user_id)
        except Exception as e:
            raise StorageError(f"Failed to get wallet: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_wallet(self, wallet: Wallet) -> bool:
        try:
            self._wallets.upsert(wallet.user_id, wallet.user_id, wallet)
            return True
        except Exception as e:
            raise StorageError(f"Failed to save wallet: {e}")

    async def get_voucher(self, code: str) -> Optional[Voucher]:
        try:
            return self._vouchers.get(code.strip().upper())
        except Exception as e:
            raise StorageError(f"Failed to get voucher: {e}")

    async def save_voucher(self, voucher: Voucher) -> bool:
        # Vouchers are global, not owned by a user
        try:
            self._vouchers.upsert(voucher.code, "", voucher)
            return True
        except Exception as e:
            raise StorageError(f"Failed to save voucher: {e}")

    async def list_categories(self, user_id: str) -> list[Category]:
        try:
            return self._categories.all_for_user(user_id)
        except Exception as e:
            raise StorageError(f"Failed to list categories: {e}")

    async def save_category(self, category: Category) -> bool:
        try:
            self._categories.upsert(
                f"{category.user_id}:{category.name}", category.user_id, category
            )
            return True
        except Exception as e:
            raise StorageError(f"Failed to save category: {e}")

    async def delete_category(self, user_id: str, name: str) -> bool:
        try:
            return self._categories.delete(f"{user_id}:{name.strip().lower()}")
        except Exception as e:
            raise StorageError(f"Failed to delete category: {e}")

    async def save_memory(self, item: MemoryItem) -> bool:
        try:
            self._memories.upsert(f"{item.user_id}:{item.key}", item.user_id, item)
            return True
        except Exception as e:
            raise StorageError(f"Failed to save memory: {e}")

    async def get_memory(self, user_id: str, key: str) -> Optional[MemoryItem]:
        try:
            return self._memories.get(f"{user_id}:{key.strip().lower()}")
        except Exception as e:
            raise StorageError(f"Failed to get memory: {e}")

    async def list_memories(self, user_id: str) -> list[MemoryItem]:
        try:
            return self._memories.all_for_user(user_id)
        except Exception as e:
            raise StorageError(f"Failed to list memories: {e}")

    async def delete_memory(self, user_id: str, key: str) -> bool:
        try:
            return self._memories.delete(f"{user_id}:{key.strip().lower()}")
        except Exception as e:
            raise StorageError(f"Failed to delete memory: {e}")


class GoogleSheetsConversationStore(ConversationStoreInterface):
    """
    Google Sheets implementation of the conversation store.

    One turn per row, appended in arrival order.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(
            self._client.settings.conversation_sheet_name,
            CONVERSATION_COLUMNS,
            rows=5000,
        )

    def _turn_to_row(self, turn: ConversationTurn) -> list:
        return [
            turn.user_id,
            turn.timestamp.isoformat(),
            turn.role.value,
            turn.content,
            turn.tool_used or "",
            "" if turn.tokens_in is None else str(turn.tokens_in),
            "" if turn.tokens_out is None else str(turn.tokens_out),
        ]

    def _row_to_turn(self, row: list) -> ConversationTurn:
        return ConversationTurn(
            user_id=_safe_get(row, 0),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            role=TurnRole(_safe_get(row, 2)),
            content=_safe_get(row, 3),
            tool_used=_safe_get(row, 4) or None,
            tokens_in=int(_safe_get(row, 5)) if _safe_get(row, 5) else None,
            tokens_out=int(_safe_get(row, 6)) if _safe_get(row, 6) else None,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append(self, turn: ConversationTurn) -> None:
        try:
            self._sheet().append_row(self._turn_to_row(turn), value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to append conversation turn: {e}")

    async def recent_by_user(self, user_id: str, limit: int) -> list[ConversationTurn]:
        if limit <= 0:
            return []
        try:
            all_rows = self._sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to read conversation: {e}")

        turns = []
        for row in all_rows:
            if not row or row[0] != user_id:
                continue
            try:
                turns.append(self._row_to_turn(row))
            except ValueError:
                continue  # Skip malformed rows
        return turns[-limit:]


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(
            self._client.settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            user_id=_safe_get(row, 4) or None,
            tool_name=_safe_get(row, 5) or None,
            correlation_id=UUID(_safe_get(row, 6)) if _safe_get(row, 6) else None,
            description=_safe_get(row, 7),
            details=json.loads(_safe_get(row, 8)) if _safe_get(row, 8) else {},
            error_code=_safe_get(row, 9) or None,
            error_message=_safe_get(row, 10) or None,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    def _all_events(self) -> list[AuditEvent]:
        events = []
        for row in self._sheet().get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError:
                continue
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = [e for e in self._all_events() if e.correlation_id == correlation_id]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        # Sort chronologically
        events.sort(key=lambda e: e.timestamp)
        return events
