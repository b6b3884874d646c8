"""
Tests for the agent loop.

The language model is replaced by FakeModelClient, which replays
queued responses (or raises queued exceptions) and records every
request it received.
"""

import asyncio
import json
import re
import threading

import pytest

from dompetku.agents import ModelUnavailableError
from dompetku.audit import AuditLogger
from dompetku.config import AgentSettings, WalletSettings
from dompetku.formatting import ResponseFormatter, messages
from dompetku.matching import IntentMatcher
from dompetku.models.audit import AuditEventType
from dompetku.models.conversation import (
    ChatRole,
    ModelResponse,
    TerminalReason,
    TokenUsage,
    TurnRole,
)
from dompetku.models.tools import ToolCallRequest
from dompetku.services import (
    InMemoryAuditStorage,
    InMemoryConversationStore,
    InMemoryLedgerStorage,
    PaidFeature,
    PaidFeatureGate,
)
from dompetku.orchestrator import AgentLoop
from dompetku.tools import GuardPolicyEngine, LedgerServices, build_default_catalog, make_money_guard


class FakeModelClient:
    """Replays queued ModelResponses; queued exceptions are raised."""

    def __init__(self, responses=None, repeat=None):
        self.responses = list(responses or [])
        self.repeat = repeat
        self.requests = []

    async def complete(self, request):
        self.requests.append(request)
        if self.responses:
            item = self.responses.pop(0)
        elif self.repeat is not None:
            item = self.repeat
        else:
            raise AssertionError("model called more often than expected")
        if isinstance(item, Exception):
            raise item
        return item


class SlowModelClient:
    async def complete(self, request):
        await asyncio.sleep(1)


class FailingConversationStore(InMemoryConversationStore):
    async def append(self, turn):
        raise RuntimeError("sheets down")


class FakeMediaReader:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error

    async def read(self, data, mime_type, kind):
        if self.error:
            raise self.error
        return self.text


def call(name, args, call_id=None):
    raw = args if isinstance(args, str) else json.dumps(args)
    return ToolCallRequest(name=name, raw_arguments=raw, call_id=call_id)


def tool_response(*calls, usage=(10, 5)):
    return ModelResponse(
        tool_calls=list(calls),
        usage=TokenUsage(prompt_tokens=usage[0], completion_tokens=usage[1]),
    )


def text_response(text, usage=(10, 5)):
    return ModelResponse(
        content=text,
        usage=TokenUsage(prompt_tokens=usage[0], completion_tokens=usage[1]),
    )


class Harness:
    """An AgentLoop wired to in-memory everything."""

    def __init__(self, model, conversation_store=None, media_reader=None, **settings):
        self.model = model
        self.storage = InMemoryLedgerStorage()
        self.services = LedgerServices(self.storage, WalletSettings())
        self.conversation = conversation_store or InMemoryConversationStore()
        self.audit_storage = InMemoryAuditStorage()
        self.settings = AgentSettings(remarks_enabled=False, **settings)
        audit_logger = AuditLogger(self.audit_storage)
        self.loop = AgentLoop(
            model_client=model,
            catalog=build_default_catalog(self.services),
            guards=GuardPolicyEngine([make_money_guard(self.settings.require_text_hint)]),
            matcher=IntentMatcher(),
            formatter=ResponseFormatter(item_tolerance=self.settings.item_tolerance),
            conversation_store=self.conversation,
            audit_logger=audit_logger,
            settings=self.settings,
            media_reader=media_reader,
            paid_features=PaidFeatureGate(self.services.wallet, audit_logger),
        )

    def send(self, text, user_id="u1"):
        return asyncio.run(self.loop.handle_message(user_id, text))

    def expenses(self, user_id="u1"):
        return asyncio.run(self.storage.list_expenses(user_id))

    def event_types(self):
        return [e.event_type for e in self.audit_storage.events]


class TestGreeting:
    """Tests for the greeting short-circuit."""

    def test_greeting_skips_model(self):
        harness = Harness(FakeModelClient())
        result = harness.send("hi")
        assert result.reply == messages.GREETING
        assert result.terminal_reason == TerminalReason.GREETING
        assert harness.model.requests == []
        assert AuditEventType.GREETING_ANSWERED in harness.event_types()


class TestToolCalls:
    """Tests for the model-driven path."""

    def test_expense_receipt(self):
        """Test 'beli kopi 25rb' ends with a receipt showing amount and token."""
        harness = Harness(FakeModelClient([
            tool_response(call("create_expense", {"amount": 25000, "description": "kopi"})),
            text_response("Sudah kucatat ya, semangat!"),
        ]))
        result = harness.send("beli kopi 25rb")

        assert result.terminal_reason == TerminalReason.MODEL_TEXT
        assert "25.000" in result.reply
        [expense] = harness.expenses()
        assert re.search(rf"`{expense.id}`", result.reply)
        assert re.fullmatch(r"[0-9a-f]{8}", expense.id)
        assert result.reply.endswith("Sudah kucatat ya, semangat!")
        assert result.tools_used == ["create_expense"]
        assert result.steps == 2
        assert (result.tokens_in, result.tokens_out) == (20, 10)

    def test_audit_trail_shares_correlation_id(self):
        harness = Harness(FakeModelClient([
            tool_response(call("create_expense", {"amount": 25000, "description": "kopi"})),
            text_response("Sudah kucatat ya, semangat!"),
        ]))
        result = harness.send("beli kopi 25rb")

        events = asyncio.run(
            harness.audit_storage.get_events_by_correlation_id(result.correlation_id)
        )
        assert [e.event_type for e in events] == [
            AuditEventType.TURN_RECEIVED,
            AuditEventType.TOOL_EXECUTED,
            AuditEventType.TURN_COMPLETED,
        ]

    def test_n_calls_produce_n_ordered_results(self):
        """Test that every tool call gets exactly one result, in order."""
        harness = Harness(FakeModelClient([
            tool_response(
                call("create_expense", {"amount": 25000, "description": "kopi"}, "c1"),
                call("create_expense", {"amount": 15000, "description": "roti"}, "c2"),
                call("generate_report", {}, "c3"),
            ),
            text_response("Beres semuanya ya!"),
        ]))
        result = harness.send("beli kopi 25rb dan roti 15rb")

        second_request = harness.model.requests[1]
        tool_entries = [e for e in second_request.turn_entries if e.role == ChatRole.TOOL]
        assert [e.call_id for e in tool_entries] == ["c1", "c2", "c3"]
        assert [e.tool_name for e in tool_entries] == [
            "create_expense", "create_expense", "generate_report",
        ]
        assert result.tools_used == ["create_expense", "create_expense", "generate_report"]
        assert len(harness.expenses()) == 2

    def test_guard_blocks_invented_amount(self):
        """Test that no expense is recorded when the user gave no amount."""
        harness = Harness(FakeModelClient([
            tool_response(call("create_expense", {"amount": 25000, "description": "kopi"})),
            text_response("ok"),
        ]))
        result = harness.send("beli kopi")

        assert harness.expenses() == []
        assert messages.BUCKET_HELP["expense"] in result.reply
        payload = json.loads(harness.model.requests[1].turn_entries[-1].content)
        assert payload["error"] == "GUARD_DENIED"
        assert AuditEventType.GUARD_DENIED in harness.event_types()

    def test_guard_clarifications_deduplicated(self):
        harness = Harness(FakeModelClient([
            tool_response(
                call("create_expense", {"amount": 1000, "description": "a"}),
                call("create_expense", {"amount": 2000, "description": "b"}),
            ),
            text_response("ok"),
        ]))
        result = harness.send("beli kopi")
        assert result.reply.count(messages.BUCKET_HELP["expense"]) == 1

    def test_unparseable_arguments(self):
        """Test that bad JSON yields INVALID_ARGUMENTS without running the tool."""
        harness = Harness(FakeModelClient([
            tool_response(call("create_expense", "{amount: 25000")),
            text_response("Maaf, coba lagi ya."),
        ]))
        result = harness.send("beli kopi 25rb")

        assert harness.expenses() == []
        payload = json.loads(harness.model.requests[1].turn_entries[-1].content)
        assert payload["error"] == "INVALID_ARGUMENTS"
        assert result.tools_used == []
        assert AuditEventType.ARGUMENTS_INVALID in harness.event_types()

    def test_unknown_tool_continues(self):
        harness = Harness(FakeModelClient([
            tool_response(call("launch_rocket", {})),
            text_response("Fitur itu belum ada, maaf ya."),
        ]))
        result = harness.send("luncurkan roket")
        payload = json.loads(harness.model.requests[1].turn_entries[-1].content)
        assert payload["error"] == "TOOL_NOT_FOUND"
        assert result.reply == "Fitur itu belum ada, maaf ya."

    def test_domain_failure_shown_localized(self):
        harness = Harness(FakeModelClient([
            tool_response(call("redeem_voucher", {"code": "NGACO"})),
            text_response("Coba kode lain ya."),
        ]))
        result = harness.send("pakai voucher NGACO")
        assert result.reply.startswith(messages.ERROR_MESSAGES["VOUCHER_INVALID"])

    def test_step_limit(self):
        """Test that a model that never stops is cut off at max_steps."""
        harness = Harness(
            FakeModelClient(repeat=tool_response(call("generate_report", {}))),
            max_steps=3,
        )
        result = harness.send("laporan terus")

        assert len(harness.model.requests) == 3
        assert result.steps == 3
        assert result.terminal_reason == TerminalReason.STEP_LIMIT
        assert result.reply.endswith(messages.STEP_LIMIT)
        assert AuditEventType.STEP_LIMIT_REACHED in harness.event_types()

    def test_short_text_without_receipts_gets_help(self):
        harness = Harness(FakeModelClient([text_response("?")]))
        result = harness.send("asdfghjkl")
        assert result.reply == messages.GENERIC_HELP

    def test_plain_answer(self):
        harness = Harness(FakeModelClient([text_response("Sama-sama, senang membantu!")]))
        assert harness.send("makasih ya").reply == "Sama-sama, senang membantu!"


class TestModelUnavailable:
    """Tests for the deterministic fallback path."""

    def test_fallback_records_expense(self):
        """Test confident match executes directly and tools_used stays empty."""
        harness = Harness(FakeModelClient([ModelUnavailableError("quota")]))
        result = harness.send("beli kopi 25rb")

        assert result.terminal_reason == TerminalReason.FALLBACK
        assert result.fallback_tool == "create_expense"
        assert result.tools_used == []
        [expense] = harness.expenses()
        assert expense.amount == 25000
        assert "25.000" in result.reply
        assert expense.id in result.reply

    def test_fallback_gibberish_gets_generic_help(self):
        harness = Harness(FakeModelClient([ModelUnavailableError("quota")]))
        result = harness.send("asdfghjkl")
        assert result.reply == messages.GENERIC_HELP
        for example in ("beli kopi 25rb", "gaji 5 juta", "budget makanan 1 juta", "laporan bulan ini"):
            assert example in result.reply
        assert result.fallback_tool is None

    def test_fallback_low_confidence_gets_bucket_help(self):
        harness = Harness(FakeModelClient([ModelUnavailableError("quota")]))
        result = harness.send("beli kopi")
        assert result.reply == messages.BUCKET_HELP["expense"]
        assert harness.expenses() == []

    def test_timeout_is_model_unavailable(self):
        harness = Harness(SlowModelClient(), model_timeout_seconds=0.05)
        result = harness.send("gaji 5 juta")
        assert result.fallback_tool == "create_income"
        assert AuditEventType.MODEL_UNAVAILABLE in harness.event_types()

    def test_failure_after_tools_ran_keeps_receipts(self):
        """Test that executed tools are not repeated by the fallback."""
        harness = Harness(FakeModelClient([
            tool_response(call("create_expense", {"amount": 25000, "description": "kopi"})),
            ModelUnavailableError("quota"),
        ]))
        result = harness.send("beli kopi 25rb")

        assert result.terminal_reason == TerminalReason.MODEL_UNAVAILABLE
        assert len(harness.expenses()) == 1
        assert "25.000" in result.reply
        assert result.fallback_tool is None


class TestPersistenceAndConcurrency:
    """Tests for conversation persistence and per-user serialization."""

    def test_turns_persisted(self):
        harness = Harness(FakeModelClient([
            tool_response(call("create_expense", {"amount": 25000, "description": "kopi"})),
            text_response("Sudah kucatat ya!"),
        ]))
        result = harness.send("beli kopi 25rb")
        turns = asyncio.run(harness.conversation.recent_by_user("u1", 10))

        assert [t.role for t in turns] == [TurnRole.USER, TurnRole.TOOL, TurnRole.ASSISTANT]
        assert turns[1].tool_used == "create_expense"
        assert turns[2].content == result.reply
        assert (turns[2].tokens_in, turns[2].tokens_out) == (20, 10)

    def test_history_sent_on_next_turn(self):
        harness = Harness(FakeModelClient([
            text_response("Halo juga, ada yang bisa dibantu?"),
            text_response("Tentu, sebutkan nominalnya ya."),
        ]))
        harness.send("pagi bot apa kabar")
        harness.send("mau catat sesuatu")

        history = harness.model.requests[1].history
        assert [e.role for e in history] == [ChatRole.USER, ChatRole.ASSISTANT]
        assert history[0].content == "pagi bot apa kabar"

    def test_persistence_failure_does_not_affect_reply(self):
        harness = Harness(
            FakeModelClient([text_response("Sama-sama, senang membantu!")]),
            conversation_store=FailingConversationStore(),
        )
        result = harness.send("makasih ya")
        assert result.reply == "Sama-sama, senang membantu!"
        assert AuditEventType.PERSISTENCE_FAILED in harness.event_types()

    def test_same_user_turns_are_serialized(self):
        """Test that a second turn for the same user waits for the first."""
        active = []
        overlaps = []

        class TrackingModel:
            async def complete(self, request):
                if active:
                    overlaps.append(request.user_message)
                active.append(request.user_message)
                await asyncio.sleep(0.01)
                active.pop()
                return text_response("Siap, sudah aku terima.")

        harness = Harness(TrackingModel())

        async def scenario():
            await asyncio.gather(
                harness.loop.handle_message("u1", "pesan pertama"),
                harness.loop.handle_message("u1", "pesan kedua"),
            )

        asyncio.run(scenario())
        assert overlaps == []

    def test_same_user_from_two_threads_with_own_loops(self):
        """Test that turns sent from two threads, each with its own event loop, both finish."""
        guard = threading.Lock()
        in_flight = []
        overlaps = []

        class SlowTrackingModel:
            async def complete(self, request):
                with guard:
                    if in_flight:
                        overlaps.append(request.user_message)
                    in_flight.append(request.user_message)
                await asyncio.sleep(0.3)
                with guard:
                    in_flight.pop()
                return text_response("Siap, sudah aku terima.")

        harness = Harness(SlowTrackingModel())
        results, errors = [], []

        def send(text):
            try:
                results.append(asyncio.run(
                    asyncio.wait_for(harness.loop.handle_message("demo", text), 5)
                ))
            except Exception as e:
                errors.append(e)

        threads = [
            threading.Thread(target=send, args=(text,))
            for text in ("pesan pertama", "pesan kedua")
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert [r.terminal_reason for r in results] == [TerminalReason.MODEL_TEXT] * 2
        assert overlaps == []

    def test_unexpected_error_becomes_execution_error_message(self):
        class BrokenMatcher(IntentMatcher):
            @staticmethod
            def is_greeting(text):
                raise RuntimeError("bug")

        harness = Harness(FakeModelClient())
        harness.loop._matcher = BrokenMatcher()
        result = harness.send("beli kopi 25rb")
        assert result.terminal_reason == TerminalReason.ERROR
        assert result.reply == messages.ERROR_MESSAGES["EXECUTION_ERROR"]


class TestMediaMessages:
    """Tests for paid voice / receipt handling."""

    def test_receipt_text_runs_a_turn(self):
        harness = Harness(
            FakeModelClient([text_response("Struknya sudah aku baca ya.")]),
            media_reader=FakeMediaReader("kopi | 1 | 25000 | 25000\nTOTAL: 25000"),
        )
        asyncio.run(harness.services.wallet.add_coins("u1", 2))
        result = asyncio.run(harness.loop.handle_media_message(
            "u1", b"jpeg", "image/jpeg", PaidFeature.RECEIPT
        ))
        wallet = asyncio.run(harness.services.wallet.get_wallet("u1"))

        assert result.reply == "Struknya sudah aku baca ya."
        assert wallet.coins == 0.5

    def test_failed_read_refunds(self):
        harness = Harness(FakeModelClient(), media_reader=FakeMediaReader(error=RuntimeError("blur")))
        asyncio.run(harness.services.wallet.add_coins("u1", 2))
        result = asyncio.run(harness.loop.handle_media_message(
            "u1", b"ogg", "audio/ogg", PaidFeature.VOICE
        ))
        wallet = asyncio.run(harness.services.wallet.get_wallet("u1"))

        assert result.reply == messages.MEDIA_FAILED
        assert wallet.coins == 2
        assert AuditEventType.COINS_REFUNDED in harness.event_types()

    def test_not_enough_coins(self):
        harness = Harness(FakeModelClient(), media_reader=FakeMediaReader("x"))
        result = asyncio.run(harness.loop.handle_media_message(
            "u1", b"ogg", "audio/ogg", PaidFeature.VOICE
        ))
        assert result.reply == messages.ERROR_MESSAGES["INSUFFICIENT_BALANCE"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
