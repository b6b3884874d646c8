"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the production backend; the in-memory backend serves
tests and unconfigured local runs.
"""

from dompetku.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    ConversationStoreInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from dompetku.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryConversationStore,
    InMemoryLedgerStorage,
)
from dompetku.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsConversationStore,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ConversationStoreInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryConversationStore",
    "InMemoryLedgerStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsConversationStore",
    "GoogleSheetsLedgerStorage",
]
