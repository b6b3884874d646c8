"""
Agent Loop for Dompetku

Turns one user chat message into one reply by alternating model calls
and tool executions:

1. Greeting → fixed greeting, no model call
2. History → last N turns from the conversation store
3. Step loop → model call; tool calls are guarded, executed, rendered
4. Model text without tool calls → receipts + clarifications + text
5. Model unavailable → deterministic intent matcher (if nothing ran yet)
6. Step limit → receipts + fixed stop message

DESIGN DECISION: Receipts are rendered by us, not by the model.
Every executed tool's result goes through ResponseFormatter, so amounts
and transaction ids in the reply always come from the stored record.
The model's own closing text is appended after them and the system
prompt tells it to keep that short.

DESIGN DECISION: Nothing escapes handle_message().
Tool failures are already values (see ToolCatalog). Model failures turn
into the fallback path. Anything else becomes the EXECUTION_ERROR
message, so the transport never has to handle an exception.
"""

import asyncio
import json
from datetime import date
from typing import Optional
from uuid import UUID

import structlog

from dompetku.agents import (
    GeminiClient,
    GeminiMediaReader,
    GeminiRemarkProvider,
    LanguageModelClient,
    MediaReader,
)
from dompetku.audit import AuditLogger, create_correlation_id
from dompetku.config import AgentSettings, get_settings
from dompetku.formatting import ResponseFormatter, messages
from dompetku.matching import IntentMatcher
from dompetku.models.conversation import (
    AgentResult,
    AgentState,
    ChatEntry,
    ChatRole,
    ConversationTurn,
    ModelRequest,
    TerminalReason,
    TurnRole,
)
from dompetku.models.tools import (
    ArgumentParseError,
    ErrorCode,
    ExecutionResult,
    ToolCallRequest,
)
from dompetku.services.ledger import InsufficientBalanceError
from dompetku.services.locks import KeyedLocks
from dompetku.services.storage import (
    ConversationStoreInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsConversationStore,
    GoogleSheetsLedgerStorage,
    InMemoryConversationStore,
    InMemoryLedgerStorage,
)
from dompetku.services.wallet import PaidFeature, PaidFeatureGate
from dompetku.tools import (
    GuardPolicyEngine,
    LedgerServices,
    ToolCatalog,
    build_default_catalog,
    make_money_guard,
)


logger = structlog.get_logger(__name__)


MIN_CLOSING_TEXT = 10

SYSTEM_PROMPT = """Kamu adalah Dompetku, asisten keuangan pribadi berbahasa Indonesia.
Hari ini: {today}.

Aturan:
- Catat transaksi HANYA lewat tool. Jangan pernah mengarang jumlah uang;
  kalau user tidak menyebut nominal, tanyakan dulu.
- Untuk transaksi yang samar ("kopi biasa", "bensin kayak kemarin"),
  panggil get_memory dulu sebelum mencatat.
- 25rb = 25000, 1,5jt = 1500000, seribu = 1000.
- Hasil tool otomatis ditampilkan ke user. Setelah tool selesai, balas
  dengan kalimat penutup yang singkat saja, jangan ulangi angka atau ID.
- Kalau pertanyaan tidak butuh tool, jawab singkat dan ramah."""


class AgentLoop:
    """
    The tool-calling orchestrator.

    RESPONSIBILITIES:
    - Run the bounded model/tool step loop for one message
    - Guard money-creating calls against invented amounts
    - Fall back to the intent matcher when the model is down
    - Persist the turn and audit every step

    BOUNDARIES:
    - NEVER looks up global state; every collaborator is injected
    - NEVER repeats a tool that already ran this turn
    - NEVER raises to the caller
    """

    def __init__(
        self,
        model_client: LanguageModelClient,
        catalog: ToolCatalog,
        guards: GuardPolicyEngine,
        matcher: IntentMatcher,
        formatter: ResponseFormatter,
        conversation_store: Optional[ConversationStoreInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AgentSettings] = None,
        media_reader: Optional[MediaReader] = None,
        paid_features: Optional[PaidFeatureGate] = None,
    ):
        self._model = model_client
        self._catalog = catalog
        self._guards = guards
        self._matcher = matcher
        self._formatter = formatter
        self._conversation_store = conversation_store
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or AgentSettings()
        self._media_reader = media_reader
        self._paid_features = paid_features
        self._locks = KeyedLocks()

    async def handle_message(self, user_id: str, text: str) -> AgentResult:
        """
        Handle one chat message and return the reply.

        Messages from the same user are processed one at a time.
        """
        correlation_id = create_correlation_id()
        try:
            async with self._locks.hold(user_id):
                return await self._run_turn(user_id, text, correlation_id)
        except Exception as e:
            logger.exception("agent.turn_failed", user_id=user_id)
            await self._audit.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                correlation_id=correlation_id,
                user_id=user_id,
            )
            return AgentResult(
                reply=messages.error_message(ErrorCode.EXECUTION_ERROR.value),
                terminal_reason=TerminalReason.ERROR,
                correlation_id=correlation_id,
            )

    async def handle_media_message(
        self,
        user_id: str,
        data: bytes,
        mime_type: str,
        kind: PaidFeature,
    ) -> AgentResult:
        """
        Read a voice note or receipt photo (a paid feature) and handle
        the resulting text as a normal message.

        Coins are refunded if reading fails.
        """
        if self._media_reader is None or self._paid_features is None:
            return AgentResult(reply=messages.MEDIA_FAILED, terminal_reason=TerminalReason.ERROR)

        media_reader = self._media_reader

        async def read() -> str:
            return await media_reader.read(data, mime_type, kind)

        try:
            text = await self._paid_features.run(user_id, kind, read)
        except InsufficientBalanceError:
            return AgentResult(
                reply=messages.error_message(ErrorCode.INSUFFICIENT_BALANCE.value),
                terminal_reason=TerminalReason.ERROR,
            )
        except Exception as e:
            logger.warning("agent.media_failed", user_id=user_id, kind=kind.value, error=str(e))
            return AgentResult(reply=messages.MEDIA_FAILED, terminal_reason=TerminalReason.ERROR)

        return await self.handle_message(user_id, text)

    async def _run_turn(self, user_id: str, text: str, correlation_id: UUID) -> AgentResult:
        await self._audit.log_turn_received(user_id, text, correlation_id)

        if self._matcher.is_greeting(text):
            await self._audit.log_greeting(user_id, correlation_id)
            await self._persist(user_id, text, [], messages.GREETING, AgentState(), correlation_id)
            return AgentResult(
                reply=messages.GREETING,
                terminal_reason=TerminalReason.GREETING,
                correlation_id=correlation_id,
            )

        turn = _Turn(user_id, text, correlation_id)
        history = await self._load_history(user_id)
        system_prompt = SYSTEM_PROMPT.format(today=date.today().isoformat())

        while turn.state.step_index < self._settings.max_steps:
            request = ModelRequest(
                system_prompt=system_prompt,
                history=history,
                user_message=text,
                turn_entries=list(turn.state.messages),
                tool_catalog=self._catalog.get_catalog(),
            )
            try:
                response = await asyncio.wait_for(
                    self._model.complete(request),
                    timeout=self._settings.model_timeout_seconds,
                )
            except Exception as e:
                await self._audit.log_model_unavailable(
                    user_id, str(e) or type(e).__name__, turn.state.step_index, correlation_id
                )
                if not turn.executed:
                    return await self._fallback(turn)
                reply = self._compose(turn, closing_text=None)
                return await self._finish(turn, reply, TerminalReason.MODEL_UNAVAILABLE)

            turn.state.step_index += 1
            turn.state.record_usage(response.usage)

            if not response.has_tool_calls:
                reply = self._compose(turn, closing_text=response.content)
                return await self._finish(turn, reply, TerminalReason.MODEL_TEXT)

            turn.state.append(ChatEntry(
                role=ChatRole.ASSISTANT,
                content=response.content or "",
                tool_calls=response.tool_calls,
            ))
            for call in response.tool_calls:
                result = await self._process_call(turn, call)
                turn.state.append(ChatEntry(
                    role=ChatRole.TOOL,
                    content=json.dumps(result.to_model_payload(), default=str),
                    tool_name=call.name,
                    call_id=call.call_id,
                ))

        await self._audit.log_step_limit(user_id, self._settings.max_steps, correlation_id)
        reply = "\n\n".join(turn.sections() + [messages.STEP_LIMIT])
        return await self._finish(turn, reply, TerminalReason.STEP_LIMIT)

    async def _process_call(self, turn: "_Turn", call: ToolCallRequest) -> ExecutionResult:
        """Parse, guard, execute and render one tool call."""
        user_id, cid = turn.user_id, turn.correlation_id

        try:
            args = call.parse_arguments()
        except ArgumentParseError as e:
            await self._audit.log_arguments_invalid(user_id, call.name, call.raw_arguments, cid)
            return ExecutionResult.failure(ErrorCode.INVALID_ARGUMENTS, str(e))

        tool = self._catalog.get(call.name)
        if tool is not None:
            decision = self._guards.evaluate(tool, args, turn.text)
            if not decision.allowed:
                clarification = messages.contextual_help(self._matcher.help_buckets(turn.text))
                if clarification not in turn.clarifications:
                    turn.clarifications.append(clarification)
                await self._audit.log_guard_denied(user_id, call.name, decision.reason or "", cid)
                return ExecutionResult.failure(
                    ErrorCode.GUARD_DENIED, clarification, reason=decision.reason
                )

        result = await self._catalog.execute_tool(call.name, args, user_id)
        if result.error_code == ErrorCode.TOOL_NOT_FOUND.value:
            await self._audit.log_tool_failed(
                user_id, call.name, result.error_code, result.error.message, cid
            )
            return result

        turn.executed.append((call.name, result))
        turn.state.tools_used.append(call.name)
        await self._record_outcome(turn, call.name, result)
        return result

    async def _record_outcome(
        self,
        turn: "_Turn",
        tool_name: str,
        result: ExecutionResult,
        via_fallback: bool = False,
    ) -> None:
        """Audit an executed tool and add its receipt to the turn."""
        if result.success:
            await self._audit.log_tool_executed(
                turn.user_id, tool_name, turn.correlation_id, via_fallback=via_fallback
            )
            receipt = await self._formatter.format(
                tool_name, result, turn.text, with_remark=self._settings.remarks_enabled
            )
        else:
            await self._audit.log_tool_failed(
                turn.user_id,
                tool_name,
                result.error_code or "",
                result.error.message if result.error else "",
                turn.correlation_id,
            )
            receipt = messages.error_message(
                result.error_code, result.error.message if result.error else ""
            )
        if receipt:
            turn.receipts.append(receipt)

    async def _fallback(self, turn: "_Turn") -> AgentResult:
        """Answer from the deterministic intent matcher."""
        match = self._matcher.match(turn.text)
        executed_tool: Optional[str] = None
        reply = messages.contextual_help(match.buckets)

        if match.is_actionable(self._settings.confidence_threshold):
            tool = self._catalog.get(match.tool_name)
            decision = (
                self._guards.evaluate(tool, match.arguments, turn.text) if tool else None
            )
            if decision is not None and not decision.allowed:
                await self._audit.log_guard_denied(
                    turn.user_id, match.tool_name, decision.reason or "", turn.correlation_id
                )
            else:
                result = await self._catalog.execute_tool(
                    match.tool_name, match.arguments, turn.user_id
                )
                executed_tool = match.tool_name
                turn.executed.append((match.tool_name, result))
                await self._record_outcome(turn, match.tool_name, result, via_fallback=True)
                if turn.receipts:
                    reply = "\n\n".join(turn.receipts)

        await self._audit.log_fallback_used(
            turn.user_id, match.intent, match.confidence, executed_tool, turn.correlation_id
        )
        return await self._finish(turn, reply, TerminalReason.FALLBACK, fallback_tool=executed_tool)

    def _compose(self, turn: "_Turn", closing_text: Optional[str]) -> str:
        sections = turn.sections()
        closing = (closing_text or "").strip()
        if not sections and len(closing) < MIN_CLOSING_TEXT:
            return messages.contextual_help(self._matcher.help_buckets(turn.text))
        if closing:
            sections.append(closing)
        return "\n\n".join(sections)

    async def _finish(
        self,
        turn: "_Turn",
        reply: str,
        reason: TerminalReason,
        fallback_tool: Optional[str] = None,
    ) -> AgentResult:
        state = turn.state
        await self._persist(
            turn.user_id, turn.text, turn.executed, reply, state, turn.correlation_id
        )
        await self._audit.log_turn_completed(
            user_id=turn.user_id,
            terminal_reason=reason.value,
            steps=state.step_index,
            tools_used=state.tools_used,
            tokens_in=state.tokens_in,
            tokens_out=state.tokens_out,
            correlation_id=turn.correlation_id,
        )
        return AgentResult(
            reply=reply,
            terminal_reason=reason,
            steps=state.step_index,
            tools_used=list(state.tools_used),
            tokens_in=state.tokens_in,
            tokens_out=state.tokens_out,
            fallback_tool=fallback_tool,
            correlation_id=turn.correlation_id,
        )

    async def _load_history(self, user_id: str) -> list[ChatEntry]:
        if self._conversation_store is None:
            return []
        try:
            turns = await self._conversation_store.recent_by_user(
                user_id, self._settings.history_limit
            )
        except Exception as e:
            logger.warning("agent.history_unavailable", user_id=user_id, error=str(e))
            return []
        entries = (ChatEntry.from_turn(t) for t in turns)
        return [entry for entry in entries if entry is not None]

    async def _persist(
        self,
        user_id: str,
        text: str,
        executed: list[tuple[str, ExecutionResult]],
        reply: str,
        state: AgentState,
        correlation_id: UUID,
    ) -> None:
        """Append the turn to the conversation store. Failures are only logged."""
        if self._conversation_store is None:
            return

        turns = [ConversationTurn(user_id=user_id, role=TurnRole.USER, content=text)]
        for tool_name, result in executed:
            turns.append(ConversationTurn(
                user_id=user_id,
                role=TurnRole.TOOL,
                content=json.dumps(result.to_model_payload(), default=str),
                tool_used=tool_name,
            ))
        turns.append(ConversationTurn(
            user_id=user_id,
            role=TurnRole.ASSISTANT,
            content=reply,
            tool_used=executed[-1][0] if executed else None,
            tokens_in=state.tokens_in,
            tokens_out=state.tokens_out,
        ))

        try:
            for conversation_turn in turns:
                await self._conversation_store.append(conversation_turn)
        except Exception as e:
            logger.warning("agent.persistence_failed", user_id=user_id, error=str(e))
            await self._audit.log_persistence_failed(user_id, str(e), correlation_id)


class _Turn:
    """Everything collected while one message is handled."""

    def __init__(self, user_id: str, text: str, correlation_id: UUID):
        self.user_id = user_id
        self.text = text
        self.correlation_id = correlation_id
        self.state = AgentState()
        self.executed: list[tuple[str, ExecutionResult]] = []
        self.receipts: list[str] = []
        self.clarifications: list[str] = []

    def sections(self) -> list[str]:
        return self.receipts + self.clarifications


def create_app_components(
    use_storage: bool = True,
) -> tuple[AgentLoop, LedgerServices, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use Google Sheets storage.
                    Set to False to run on in-memory storage.

    Returns:
        (agent_loop, ledger_services, sheets_client)
    """
    settings = get_settings()
    sheets_client = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient(settings.google_sheets)
            sheets_client.connect()
            ledger_storage = GoogleSheetsLedgerStorage(sheets_client)
            conversation_store = GoogleSheetsConversationStore(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            use_storage = False

    if not use_storage:
        ledger_storage = InMemoryLedgerStorage()
        conversation_store = InMemoryConversationStore()
        audit_logger = AuditLogger()  # Local-only logging

    services = LedgerServices(ledger_storage, settings.wallet)
    agent_settings = settings.agent
    remark_provider = (
        GeminiRemarkProvider(settings.gemini) if agent_settings.remarks_enabled else None
    )

    agent_loop = AgentLoop(
        model_client=GeminiClient(settings.gemini),
        catalog=build_default_catalog(services),
        guards=GuardPolicyEngine([make_money_guard(agent_settings.require_text_hint)]),
        matcher=IntentMatcher(),
        formatter=ResponseFormatter(remark_provider, agent_settings.item_tolerance),
        conversation_store=conversation_store,
        audit_logger=audit_logger,
        settings=agent_settings,
        media_reader=GeminiMediaReader(settings.gemini),
        paid_features=PaidFeatureGate(services.wallet, audit_logger),
    )
    return agent_loop, services, sheets_client
