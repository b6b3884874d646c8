"""
Audit Models for Dompetku

Every significant step of a turn is logged for audit purposes:
what the user said, which tools ran, which were refused and why,
when the model was unavailable and what the fallback did.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every branch of the agent loop has its own event type.
    """
    # Turn lifecycle
    TURN_RECEIVED = "turn_received"
    GREETING_ANSWERED = "greeting_answered"
    TURN_COMPLETED = "turn_completed"
    STEP_LIMIT_REACHED = "step_limit_reached"

    # Tool execution
    TOOL_EXECUTED = "tool_executed"
    TOOL_FAILED = "tool_failed"
    GUARD_DENIED = "guard_denied"
    ARGUMENTS_INVALID = "arguments_invalid"

    # Model path
    MODEL_UNAVAILABLE = "model_unavailable"
    FALLBACK_USED = "fallback_used"

    # Wallet
    COINS_CHARGED = "coins_charged"
    COINS_REFUNDED = "coins_refunded"

    # System events
    PERSISTENCE_FAILED = "persistence_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - who and what is this about?
    user_id: Optional[str] = Field(
        default=None,
        description="Chat user the event belongs to"
    )
    tool_name: Optional[str] = Field(
        default=None,
        description="Tool involved, if any"
    )

    # Correlation - all events of one turn share this
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate the events of one user turn"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "tool_name": self.tool_name,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, tool_name,
         correlation_id, description, details_json, error_code, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.tool_name or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_code or "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.tool_executed(user_id, "create_expense", correlation_id)
        event = AuditEventBuilder.guard_denied(user_id, "create_expense", reason, correlation_id)
    """

    @staticmethod
    def turn_received(
        user_id: str,
        message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TURN_RECEIVED,
            user_id=user_id,
            correlation_id=correlation_id,
            description="User message received",
            details={"message_length": len(message)},
        )

    @staticmethod
    def greeting_answered(
        user_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GREETING_ANSWERED,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Greeting answered without model or tools",
        )

    @staticmethod
    def tool_executed(
        user_id: str,
        tool_name: str,
        correlation_id: UUID,
        via_fallback: bool = False,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TOOL_EXECUTED,
            user_id=user_id,
            tool_name=tool_name,
            correlation_id=correlation_id,
            description=f"Tool executed: {tool_name}",
            details={"via_fallback": via_fallback},
        )

    @staticmethod
    def tool_failed(
        user_id: str,
        tool_name: str,
        error_code: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TOOL_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            tool_name=tool_name,
            correlation_id=correlation_id,
            description=f"Tool failed: {tool_name} ({error_code})",
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def guard_denied(
        user_id: str,
        tool_name: str,
        reason: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GUARD_DENIED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            tool_name=tool_name,
            correlation_id=correlation_id,
            description=f"Guard denied {tool_name}",
            details={"reason": reason},
        )

    @staticmethod
    def arguments_invalid(
        user_id: str,
        tool_name: str,
        raw_arguments: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ARGUMENTS_INVALID,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            tool_name=tool_name,
            correlation_id=correlation_id,
            description=f"Unparseable arguments for {tool_name}",
            details={"raw_arguments": raw_arguments[:200]},
            error_code="INVALID_ARGUMENTS",
        )

    @staticmethod
    def model_unavailable(
        user_id: str,
        error_message: str,
        step_index: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MODEL_UNAVAILABLE,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Language model unavailable",
            details={"step_index": step_index},
            error_message=error_message,
        )

    @staticmethod
    def fallback_used(
        user_id: str,
        intent: Optional[str],
        confidence: float,
        executed_tool: Optional[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FALLBACK_USED,
            user_id=user_id,
            tool_name=executed_tool,
            correlation_id=correlation_id,
            description=f"Fallback matcher: {intent or 'no intent'} at {confidence:.0%}",
            details={"intent": intent, "confidence": confidence},
        )

    @staticmethod
    def step_limit_reached(
        user_id: str,
        max_steps: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STEP_LIMIT_REACHED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Step limit of {max_steps} reached",
        )

    @staticmethod
    def turn_completed(
        user_id: str,
        terminal_reason: str,
        steps: int,
        tools_used: list[str],
        tokens_in: int,
        tokens_out: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TURN_COMPLETED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Turn completed: {terminal_reason}",
            details={
                "steps": steps,
                "tools_used": tools_used,
                "tokens_in": tokens_in,
                "tokens_out": tokens_out,
            },
        )

    @staticmethod
    def coins_charged(
        user_id: str,
        feature: str,
        coins: float,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COINS_CHARGED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Charged {coins:g} coins for {feature}",
            details={"feature": feature, "coins": coins},
        )

    @staticmethod
    def coins_refunded(
        user_id: str,
        feature: str,
        coins: float,
        reason: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COINS_REFUNDED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Refunded {coins:g} coins for failed {feature}",
            details={"feature": feature, "coins": coins},
            error_message=reason,
        )

    @staticmethod
    def persistence_failed(
        user_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSISTENCE_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Conversation turn could not be persisted",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
        user_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
