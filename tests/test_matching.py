"""
Tests for amount parsing and the deterministic intent matcher.
"""

import pytest

from dompetku.matching import (
    IntentMatcher,
    best_amount,
    contains_amount_hint,
    parse_amount,
    parse_number,
)


class TestParseAmount:
    """Tests for Indonesian amount parsing."""

    @pytest.mark.parametrize("text,expected", [
        ("beli kopi 25rb", 25_000),
        ("makan siang 50k", 50_000),
        ("gaji 5 juta", 5_000_000),
        ("bonus 1,5jt", 1_500_000),
        ("bayar listrik Rp 250.000", 250_000),
        ("transfer IDR 1.250.000", 1_250_000),
        ("parkir seribu", 1_000),
        ("dapat sejuta", 1_000_000),
        ("beli 3 roti", 3),
    ])
    def test_parse_amount(self, text, expected):
        """Test the common ways people write amounts."""
        assert parse_amount(text) == pytest.approx(expected)

    def test_multiplier_preferred_over_plain_number(self):
        """Test that '25rb' wins over a quantity that comes first."""
        assert parse_amount("beli 2 kopi 25rb") == 25_000

    def test_currency_preferred_over_plain_number(self):
        """Test that a Rp-prefixed number wins over a bare one."""
        match = best_amount("beli 2 tiket Rp 150.000")
        assert match.value == 150_000
        assert match.has_currency is True

    def test_no_amount(self):
        """Test that text without numbers yields None."""
        assert parse_amount("beli kopi") is None

    def test_decimal_vs_thousands_separator(self):
        """Test that three-digit groups are thousands, anything else decimal."""
        assert parse_number("25.000") == 25_000
        assert parse_number("2.5") == 2.5
        assert parse_number("1.250,50") == pytest.approx(1250.5)
        assert parse_number("abc") is None


class TestAmountHint:
    """Tests for the currency-token check used by the money guard."""

    @pytest.mark.parametrize("text", ["beli kopi 25rb", "rp lima", "sejuta", "50k", "IDR"])
    def test_hint_present(self, text):
        assert contains_amount_hint(text) is True

    @pytest.mark.parametrize("text", ["beli kopi", "kopi susu", "jajan di kantin", ""])
    def test_hint_absent(self, text):
        """Test that words merely containing 'k' or 'rb' don't count."""
        assert contains_amount_hint(text) is False


class TestIntentMatcher:
    """Tests for rule scoring and extraction."""

    def setup_method(self):
        self.matcher = IntentMatcher()

    def test_expense_with_amount_is_actionable(self):
        """Test that keyword plus amount reaches the execution threshold."""
        match = self.matcher.match("beli kopi 25rb")
        assert match.intent == "expense"
        assert match.tool_name == "create_expense"
        assert match.confidence == pytest.approx(0.8)
        assert match.is_actionable(0.7) is True
        assert match.arguments == {
            "amount": 25_000,
            "description": "kopi",
            "category": "makanan-minuman",
        }

    def test_expense_without_amount_is_not_actionable(self):
        """Test that a bare keyword hit scores 0.5 only."""
        match = self.matcher.match("beli kopi")
        assert match.intent == "expense"
        assert match.confidence == pytest.approx(0.5)
        assert match.is_actionable(0.7) is False

    def test_income(self):
        """Test income extraction with source."""
        match = self.matcher.match("gaji 5 juta")
        assert match.tool_name == "create_income"
        assert match.arguments["amount"] == 5_000_000
        assert match.arguments["source"] == "gaji"

    def test_budget_is_not_mistaken_for_expense(self):
        """Test that 'makanan' in a budget command doesn't make it an expense."""
        match = self.matcher.match("budget makanan 1 juta")
        assert match.tool_name == "set_budget"
        assert match.arguments == {
            "category_name": "makanan",
            "amount": 1_000_000,
            "period": "MONTHLY",
        }

    def test_report_period(self):
        """Test report period extraction."""
        assert self.matcher.match("laporan bulan ini").arguments == {"period": "MONTHLY"}
        assert self.matcher.match("rekap minggu ini").arguments == {"period": "WEEKLY"}

    def test_extra_keyword_hits_add_bonus(self):
        """Test +0.05 per extra keyword hit."""
        match = self.matcher.match("beli makan siang 30rb")
        assert match.confidence == pytest.approx(0.85)

    def test_gibberish_has_no_intent(self):
        """Test that unknown text matches nothing."""
        match = self.matcher.match("asdfghjkl")
        assert match.intent is None
        assert match.tool_name is None
        assert match.buckets == []

    def test_help_buckets(self):
        """Test bucket detection for contextual help."""
        assert IntentMatcher.help_buckets("mau bayar sesuatu") == ["expense"]
        assert IntentMatcher.help_buckets("cek saldo dan laporan") == ["report", "balance"]

    @pytest.mark.parametrize("text", ["hi", "Halo!", "hai bot", "selamat pagi", "hello"])
    def test_greetings(self, text):
        assert IntentMatcher.is_greeting(text) is True

    @pytest.mark.parametrize("text", ["hi 25rb", "beli kopi 25rb", "hai apa kabar kamu", "selamat ulang"])
    def test_not_greetings(self, text):
        assert IntentMatcher.is_greeting(text) is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
