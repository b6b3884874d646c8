"""Services package."""

from dompetku.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    ConversationStoreInterface,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsConversationStore,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryConversationStore,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from dompetku.services.ledger import (
    BudgetNotFoundError,
    BudgetService,
    CategoryNotFoundError,
    CategoryProtectedError,
    CategoryService,
    ExpenseNotFoundError,
    ExpenseService,
    IncomeService,
    InsufficientBalanceError,
    LedgerError,
    MemoryNotFoundError,
    MemoryService,
    NoExpensesFoundError,
    ReportService,
    VoucherAlreadyUsedError,
    VoucherInvalidError,
)
from dompetku.services.locks import KeyedLocks
from dompetku.services.wallet import (
    PaidFeature,
    PaidFeatureGate,
    VoucherService,
    WalletService,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "ConversationStoreInterface",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsConversationStore",
    "GoogleSheetsLedgerStorage",
    "InMemoryAuditStorage",
    "InMemoryConversationStore",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "NotFoundError",
    "StorageError",
    # Ledger services
    "BudgetService",
    "CategoryService",
    "ExpenseService",
    "IncomeService",
    "MemoryService",
    "ReportService",
    # Ledger errors
    "BudgetNotFoundError",
    "CategoryNotFoundError",
    "CategoryProtectedError",
    "ExpenseNotFoundError",
    "InsufficientBalanceError",
    "LedgerError",
    "MemoryNotFoundError",
    "NoExpensesFoundError",
    "VoucherAlreadyUsedError",
    "VoucherInvalidError",
    # Concurrency
    "KeyedLocks",
    # Wallet services
    "PaidFeature",
    "PaidFeatureGate",
    "VoucherService",
    "WalletService",
]
