"""
Audit Logger

DESIGN DECISION: Every significant step of a turn is logged.
This provides:
1. Complete traceability of what the agent did and why
2. Debugging capability when the model misbehaves
3. A record of every coin charged and refunded

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash a turn if logging fails)
- Supports correlation IDs to trace the events of one turn
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from dompetku.models.audit import AuditEvent, AuditEventBuilder
from dompetku.services.storage import AuditStorageInterface


def configure_logging(level: str = "INFO") -> None:
    """
    Configure stdlib logging and structlog for JSON output.

    Called once from create_app_components; tests rely on structlog's
    defaults.
    """
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("dompetku.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_turn_received(self, user_id: str, message: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.turn_received(user_id, message, correlation_id))

    async def log_greeting(self, user_id: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.greeting_answered(user_id, correlation_id))

    async def log_tool_executed(
        self,
        user_id: str,
        tool_name: str,
        correlation_id: UUID,
        via_fallback: bool = False,
    ) -> None:
        await self.log(AuditEventBuilder.tool_executed(
            user_id=user_id,
            tool_name=tool_name,
            correlation_id=correlation_id,
            via_fallback=via_fallback,
        ))

    async def log_tool_failed(
        self,
        user_id: str,
        tool_name: str,
        error_code: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.tool_failed(
            user_id=user_id,
            tool_name=tool_name,
            error_code=error_code,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_guard_denied(
        self,
        user_id: str,
        tool_name: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.guard_denied(user_id, tool_name, reason, correlation_id))

    async def log_arguments_invalid(
        self,
        user_id: str,
        tool_name: str,
        raw_arguments: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.arguments_invalid(
            user_id, tool_name, raw_arguments, correlation_id
        ))

    async def log_model_unavailable(
        self,
        user_id: str,
        error_message: str,
        step_index: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.model_unavailable(
            user_id, error_message, step_index, correlation_id
        ))

    async def log_fallback_used(
        self,
        user_id: str,
        intent: Optional[str],
        confidence: float,
        executed_tool: Optional[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.fallback_used(
            user_id, intent, confidence, executed_tool, correlation_id
        ))

    async def log_step_limit(self, user_id: str, max_steps: int, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.step_limit_reached(user_id, max_steps, correlation_id))

    async def log_turn_completed(
        self,
        user_id: str,
        terminal_reason: str,
        steps: int,
        tools_used: list[str],
        tokens_in: int,
        tokens_out: int,
        correlation_id: UUID,
    ) -> None:
        """Log the end of a turn with its usage summary."""
        await self.log(AuditEventBuilder.turn_completed(
            user_id=user_id,
            terminal_reason=terminal_reason,
            steps=steps,
            tools_used=tools_used,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            correlation_id=correlation_id,
        ))

    async def log_coins_charged(self, user_id: str, feature: str, coins: float) -> None:
        await self.log(AuditEventBuilder.coins_charged(user_id, feature, coins))

    async def log_coins_refunded(
        self,
        user_id: str,
        feature: str,
        coins: float,
        reason: str,
    ) -> None:
        await self.log(AuditEventBuilder.coins_refunded(user_id, feature, coins, reason))

    async def log_persistence_failed(
        self,
        user_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.persistence_failed(user_id, error_message, correlation_id))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
        user_id: Optional[str] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
            user_id=user_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user turn and pass it through
    every event the turn produces.
    """
    return uuid4()
