"""
Tests for the response formatter.
"""

import asyncio

import pytest

from dompetku.formatting import (
    ResponseFormatter,
    format_rupiah,
    format_voucher_redeemed,
    messages,
    should_itemize,
)
from dompetku.models.tools import ErrorCode, ExecutionResult


def expense_result(amount, items=None, description="jajan", expense_id="a1b2c3d4"):
    return ExecutionResult.ok({
        "expense": {
            "id": expense_id,
            "amount": amount,
            "description": description,
            "category": "makanan-minuman",
            "items": items or [],
        }
    })


class StaticRemarks:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def remark(self, tool_name, data, original_message):
        self.calls.append(tool_name)
        if self.error:
            raise self.error
        return self.text


class TestRupiah:
    """Tests for Rupiah formatting."""

    @pytest.mark.parametrize("value,expected", [
        (25000, "Rp 25.000"),
        (1_500_000, "Rp 1.500.000"),
        (0, "Rp 0"),
        (1500.5, "Rp 1.500,50"),
    ])
    def test_format_rupiah(self, value, expected):
        assert format_rupiah(value) == expected


class TestItemization:
    """Tests for the 10% item tolerance."""

    def test_items_within_tolerance(self):
        """Test that 1.050 of items against 1.000 is itemized."""
        items = [{"name": "a", "quantity": 1, "unit_price": 1050}]
        assert should_itemize(1000, items, 0.10) is True

    def test_items_exactly_at_tolerance(self):
        items = [{"name": "a", "quantity": 1, "unit_price": 1100}]
        assert should_itemize(1000, items, 0.10) is True

    def test_items_outside_tolerance(self):
        """Test that 2.000 of items against 1.000 is not itemized."""
        items = [{"name": "a", "quantity": 2, "unit_price": 1000}]
        assert should_itemize(1000, items, 0.10) is False

    def test_no_items(self):
        assert should_itemize(1000, [], 0.10) is False


class TestRender:
    """Tests for ResponseFormatter.render."""

    def setup_method(self):
        self.formatter = ResponseFormatter()

    def test_expense_summary_line(self):
        """Test the single-line receipt with the transaction token."""
        text = self.formatter.render("create_expense", expense_result(25000, description="kopi"))
        assert "`a1b2c3d4`" in text
        assert "💸 Rp 25.000 - kopi" in text

    def test_voucher_totals_carry_units(self):
        """Test that the wallet totals after a voucher name their units."""
        text = format_voucher_redeemed({
            "code": "HEMAT10",
            "voucher_type": "COINS",
            "value": 10,
            "balance": 50000,
            "coins": 60,
        })
        assert "+10 koin" in text
        assert text.endswith("Saldo sekarang: Rp 50.000 | 60 koin")

    def test_balance_voucher_from_agent(self):
        result = ExecutionResult.ok({
            "code": "SALDO",
            "voucher_type": "BALANCE",
            "value": 20000,
            "balance": 20000,
            "coins": 20,
        })
        text = self.formatter.render("redeem_voucher", result)
        assert "+Rp 20.000 saldo" in text
        assert "| 20 koin" in text

    def test_expense_itemized(self):
        """Test that matching items are listed with the declared total."""
        items = [
            {"name": "kopi", "quantity": 1, "unit_price": 550},
            {"name": "roti", "quantity": 1, "unit_price": 500},
        ]
        text = self.formatter.render("create_expense", expense_result(1000, items))
        assert "• kopi x1 @ Rp 550 = Rp 550" in text
        assert "💰 Total: Rp 1.000" in text
        assert "💸" not in text

    def test_expense_items_mismatch_uses_declared_amount(self):
        """Test that mismatching items fall back to the summary line."""
        items = [{"name": "kopi", "quantity": 2, "unit_price": 1000}]
        text = self.formatter.render("create_expense", expense_result(1000, items))
        assert "💸 Rp 1.000 - jajan" in text
        assert "• kopi" not in text

    def test_known_failure_code(self):
        """Test that failure codes map to fixed messages."""
        result = ExecutionResult.failure(ErrorCode.INSUFFICIENT_BALANCE, "Need 1.5 coins")
        assert self.formatter.render("add_balance", result) == (
            messages.ERROR_MESSAGES["INSUFFICIENT_BALANCE"]
        )

    def test_unknown_failure_code_shows_message(self):
        result = ExecutionResult.failure("SOMETHING_ODD", "kaboom")
        assert self.formatter.render("create_expense", result) == "❌ kaboom"

    def test_tool_without_renderer(self):
        """Test that tools without a renderer produce no receipt."""
        assert self.formatter.render("get_memory", ExecutionResult.ok({"memories": []})) is None
        assert not self.formatter.has_renderer("get_memory")
        assert self.formatter.has_renderer("create_expense")

    def test_duplicate_renderer_rejected(self):
        with pytest.raises(ValueError):
            self.formatter.register("create_expense", lambda data, text: "")

    def test_help_topic(self):
        """Test help topics map to bucket help."""
        text = self.formatter.render("help_tool", ExecutionResult.ok({"topic": "budget"}))
        assert text == messages.BUCKET_HELP["budget"]
        text = self.formatter.render("help_tool", ExecutionResult.ok({"topic": ""}))
        assert text == messages.MAIN_HELP

    def test_report(self):
        data = {
            "period": "MONTHLY",
            "start_date": "2024-05-01",
            "end_date": "2024-05-31",
            "total_expense": 75000,
            "total_income": 5_000_000,
            "net": 4_925_000,
            "expense_count": 2,
            "income_count": 1,
            "by_category": {"makanan-minuman": 75000},
        }
        text = self.formatter.render("generate_report", ExecutionResult.ok(data))
        assert "Pengeluaran: Rp 75.000 (2 transaksi)" in text
        assert "• makanan-minuman: Rp 75.000" in text


class TestFormatWithRemark:
    """Tests for ResponseFormatter.format."""

    def test_remark_appended_for_money_tool(self):
        remarks = StaticRemarks("kopi lagi? 😄")
        formatter = ResponseFormatter(remarks)
        text = asyncio.run(formatter.format("create_expense", expense_result(25000), "beli kopi 25rb"))
        assert text.endswith('\n\n"kopi lagi? 😄"')

    def test_no_remark_for_other_tools(self):
        remarks = StaticRemarks("hmm")
        formatter = ResponseFormatter(remarks)
        asyncio.run(formatter.format("help_tool", ExecutionResult.ok({}), "bantuan"))
        assert remarks.calls == []

    def test_failing_remark_is_skipped(self):
        """Test that a remark provider error never blocks the receipt."""
        formatter = ResponseFormatter(StaticRemarks(error=RuntimeError("quota")))
        text = asyncio.run(formatter.format("create_expense", expense_result(25000), "x"))
        assert text == formatter.render("create_expense", expense_result(25000))

    def test_remark_disabled(self):
        remarks = StaticRemarks("hmm")
        formatter = ResponseFormatter(remarks)
        asyncio.run(formatter.format(
            "create_expense", expense_result(25000), "x", with_remark=False
        ))
        assert remarks.calls == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
