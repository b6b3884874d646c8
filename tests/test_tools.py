"""
Tests for the tool catalog, the guard engine and the default tool set.
"""

import asyncio

import pytest

from dompetku.models.tools import ErrorCode, ExecutionResult, ToolDefinition
from dompetku.services import InMemoryLedgerStorage
from dompetku.services.ledger import VoucherInvalidError
from dompetku.tools import (
    GuardPolicyEngine,
    LedgerServices,
    ToolCatalog,
    build_default_catalog,
    make_money_guard,
)
from dompetku.tools.definitions import CreateExpenseArgs, gemini_schema


def make_tool(name, executor, creates_money=False):
    return ToolDefinition(
        name=name,
        description=f"{name} tool",
        parameter_schema={"type": "object", "properties": {}},
        executor=executor,
        creates_money=creates_money,
    )


async def echo(args, user_id):
    return ExecutionResult.ok({"args": args, "user_id": user_id})


@pytest.fixture
def default_catalog():
    return build_default_catalog(LedgerServices(InMemoryLedgerStorage()))


class TestToolCatalog:
    """Tests for registration and execution."""

    def test_duplicate_registration_rejected(self):
        catalog = ToolCatalog()
        catalog.register(make_tool("echo", echo))
        with pytest.raises(ValueError):
            catalog.register(make_tool("echo", echo))

    def test_catalog_exposes_schemas_only(self):
        catalog = ToolCatalog()
        catalog.register(make_tool("echo", echo))
        [schema] = catalog.get_catalog()
        assert schema.name == "echo"
        assert not hasattr(schema, "executor")

    def test_unknown_tool(self):
        result = asyncio.run(ToolCatalog().execute_tool("nope", {}, "u1"))
        assert result.success is False
        assert result.error_code == ErrorCode.TOOL_NOT_FOUND.value

    def test_executor_exception_becomes_result(self):
        """Test that nothing raised by an executor escapes execute_tool."""
        async def boom(args, user_id):
            raise RuntimeError("disk on fire")

        catalog = ToolCatalog()
        catalog.register(make_tool("boom", boom))
        result = asyncio.run(catalog.execute_tool("boom", {}, "u1"))
        assert result.error_code == ErrorCode.EXECUTION_ERROR.value
        assert "disk on fire" in result.error.message

    def test_domain_error_keeps_its_code(self):
        async def redeem(args, user_id):
            raise VoucherInvalidError("Voucher not valid: X")

        catalog = ToolCatalog()
        catalog.register(make_tool("redeem", redeem))
        result = asyncio.run(catalog.execute_tool("redeem", {}, "u1"))
        assert result.error_code == ErrorCode.VOUCHER_INVALID.value

    def test_non_result_return_is_failure(self):
        async def sloppy(args, user_id):
            return {"ok": True}

        catalog = ToolCatalog()
        catalog.register(make_tool("sloppy", sloppy))
        result = asyncio.run(catalog.execute_tool("sloppy", {}, "u1"))
        assert result.error_code == ErrorCode.EXECUTION_ERROR.value


class TestMoneyGuard:
    """Tests for the money-creating guard."""

    def setup_method(self):
        self.money_tool = make_tool("create_expense", echo, creates_money=True)
        self.plain_tool = make_tool("generate_report", echo)

    def test_strict_denies_without_amount_in_text(self):
        """Test that a model-invented amount is not enough in strict mode."""
        engine = GuardPolicyEngine([make_money_guard(require_text_hint=True)])
        decision = engine.evaluate(self.money_tool, {"amount": 25000}, "beli kopi")
        assert decision.allowed is False
        assert decision.reason == "no_amount_in_message"

    def test_strict_allows_with_amount_in_text(self):
        engine = GuardPolicyEngine()
        assert engine.evaluate(self.money_tool, {"amount": 25000}, "beli kopi 25rb").allowed

    def test_relaxed_accepts_positive_argument(self):
        engine = GuardPolicyEngine([make_money_guard(require_text_hint=False)])
        assert engine.evaluate(self.money_tool, {"amount": 25000}, "beli kopi").allowed
        assert not engine.evaluate(self.money_tool, {"amount": 0}, "beli kopi").allowed
        assert not engine.evaluate(self.money_tool, {}, "beli kopi").allowed

    def test_non_money_tools_pass(self):
        engine = GuardPolicyEngine()
        assert engine.evaluate(self.plain_tool, {}, "laporan").allowed

    def test_first_denial_wins(self):
        from dompetku.tools import GuardDecision

        engine = GuardPolicyEngine([
            lambda tool, args, text: GuardDecision.deny("first"),
            lambda tool, args, text: GuardDecision.deny("second"),
        ])
        assert engine.evaluate(self.plain_tool, {}, "x").reason == "first"


class TestDefaultCatalog:
    """Tests for the bound tool set."""

    def test_all_tools_registered(self, default_catalog):
        assert len(default_catalog) == 15
        assert "create_expense" in default_catalog
        assert set(default_catalog.names()) == {
            "create_expense", "edit_expense", "delete_expense", "list_expenses",
            "create_income", "set_budget", "check_budget_status", "add_balance",
            "redeem_voucher", "manage_category", "generate_report",
            "save_memory", "get_memory", "delete_memory", "help_tool",
        }

    def test_money_tools_flagged(self, default_catalog):
        flagged = {n for n in default_catalog.names() if default_catalog.get(n).creates_money}
        assert flagged == {"create_expense", "create_income", "add_balance"}

    def test_create_expense(self, default_catalog):
        result = asyncio.run(default_catalog.execute_tool(
            "create_expense",
            {"amount": 25000, "description": "kopi", "category": "makanan"},
            "u1",
        ))
        assert result.success is True
        assert result.data["expense"]["amount"] == 25000
        assert result.data["expense"]["category"] == "makanan-minuman"

    def test_invalid_arguments_are_validation_errors(self, default_catalog):
        result = asyncio.run(default_catalog.execute_tool(
            "create_expense", {"amount": -5, "description": "kopi"}, "u1"
        ))
        assert result.error_code == ErrorCode.VALIDATION_ERROR.value
        assert "amount" in result.error.message

    def test_manage_category_requires_name(self, default_catalog):
        result = asyncio.run(default_catalog.execute_tool(
            "manage_category", {"action": "create"}, "u1"
        ))
        assert result.error_code == ErrorCode.VALIDATION_ERROR.value

    def test_add_balance_then_list(self, default_catalog):
        async def scenario():
            topped = await default_catalog.execute_tool("add_balance", {"amount": 50000}, "u1")
            listing = await default_catalog.execute_tool("list_expenses", {}, "u1")
            return topped, listing

        topped, listing = asyncio.run(scenario())
        assert topped.data["coins_added"] == 50
        assert listing.data == {"expenses": [], "count": 0, "total": 0}


class TestGeminiSchema:
    """Tests for the function-declaration schema."""

    def test_schema_has_no_refs_or_anyof(self):
        schema = gemini_schema(CreateExpenseArgs)
        text = str(schema)
        assert "$ref" not in text
        assert "anyOf" not in text
        assert "title" not in text

    def test_optional_becomes_nullable(self):
        schema = gemini_schema(CreateExpenseArgs)
        assert schema["required"] == ["amount", "description"]
        assert schema["properties"]["category"]["type"] == "string"
        assert schema["properties"]["category"]["nullable"] is True
        items = schema["properties"]["items"]
        assert items["type"] == "array"
        assert items["items"]["properties"]["unit_price"]["type"] == "number"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
