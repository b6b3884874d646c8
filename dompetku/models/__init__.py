"""
Data Models Package

This package contains all Pydantic models used in Dompetku.
All data flowing between the agent loop, the tools and storage
must conform to these schemas.
"""

from dompetku.models.tools import (
    ArgumentParseError,
    ErrorCode,
    ExecutionError,
    ExecutionResult,
    ToolCallRequest,
    ToolDefinition,
    ToolExecutor,
    ToolSchema,
)
from dompetku.models.conversation import (
    AgentResult,
    AgentState,
    ChatEntry,
    ChatRole,
    ConversationTurn,
    ModelRequest,
    ModelResponse,
    TerminalReason,
    TokenUsage,
    TurnRole,
)
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
    Voucher,
    VoucherType,
    Wallet,
    new_transaction_id,
)
from dompetku.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Tool models
    "ArgumentParseError",
    "ErrorCode",
    "ExecutionError",
    "ExecutionResult",
    "ToolCallRequest",
    "ToolDefinition",
    "ToolExecutor",
    "ToolSchema",
    # Conversation models
    "AgentResult",
    "AgentState",
    "ChatEntry",
    "ChatRole",
    "ConversationTurn",
    "ModelRequest",
    "ModelResponse",
    "TerminalReason",
    "TokenUsage",
    "TurnRole",
    # Ledger models
    "DEFAULT_CATEGORIES",
    "FALLBACK_CATEGORY",
    "Budget",
    "BudgetPeriod",
    "BudgetStatusLevel",
    "Category",
    "Expense",
    "ExpenseItem",
    "Income",
    "MemoryItem",
    "ReportPeriod",
    "Voucher",
    "VoucherType",
    "Wallet",
    "new_transaction_id",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
