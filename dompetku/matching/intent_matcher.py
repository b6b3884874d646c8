"""
Deterministic Intent Matcher

Keyword rules that classify a message without the language model.
Used when the model path is unavailable: a clearly structured command
like "beli kopi 25rb" or "gaji 5 juta" still gets recorded.

DESIGN DECISION: Score, don't guess.
Every rule scores the message; a keyword hit alone is worth 0.5, which
is below the 0.7 execution threshold. Only a keyword plus successfully
extracted arguments (+0.3) is enough to act. Anything weaker gets help
text instead of a wrong record.
"""

import re
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from dompetku.matching.amounts import best_amount, contains_amount_hint, strip_amount


Extractor = Callable[[str], Optional[dict[str, Any]]]

BASE_SCORE = 0.5
EXTRA_HIT_BONUS = 0.05
EXTRACTION_BONUS = 0.3
MAX_SCORE = 0.95

GREETING_WORDS = {"hi", "hai", "halo", "hallo", "hello", "hey", "hei", "helo", "hola", "pagi"}
GREETING_SUFFIXES = {"pagi", "siang", "sore", "malam"}

# Keyword buckets for contextual help. Order is the order help is shown in.
HELP_BUCKETS: dict[str, tuple[str, ...]] = {
    "expense": (r"beli", r"bayar", r"byr", r"belanja"),
    "income": (r"gaji", r"bonus", r"dapat", r"pemasukan"),
    "budget": (r"budget", r"anggaran"),
    "report": (r"laporan", r"ringkasan", r"rekap"),
    "balance": (r"saldo", r"koin", r"top\s*up", r"topup"),
}

EXPENSE_CATEGORY_HINTS: dict[str, tuple[str, ...]] = {
    "makanan-minuman": (
        "makan", "minum", "kopi", "nasi", "ayam", "bakso", "teh", "jajan",
        "snack", "sarapan", "soto", "mie", "roti", "gorengan",
    ),
    "transportasi": (
        "transport", "ojek", "ojol", "grab", "gojek", "bus", "bensin",
        "parkir", "tol", "taksi", "kereta", "krl",
    ),
    "tagihan": ("listrik", "tagihan", "pulsa", "internet", "wifi", "pln", "pdam", "token"),
    "belanja": ("belanja", "baju", "sepatu", "sabun", "shopee", "tokopedia"),
    "hiburan": ("nonton", "bioskop", "game", "netflix", "spotify", "konser"),
    "kesehatan": ("obat", "dokter", "apotek", "klinik", "vitamin"),
}

INCOME_SOURCE_HINTS: dict[str, tuple[str, ...]] = {
    "gaji": ("gaji", "salary"),
    "bonus": ("bonus", "thr"),
    "freelance": ("freelance", "proyek", "project"),
    "penjualan": ("jual",),
}

PERIOD_HINTS: list[tuple[str, str]] = [
    (r"\b(?:harian|hari)\b", "DAILY"),
    (r"\b(?:mingguan|minggu|pekan)\b", "WEEKLY"),
    (r"\b(?:tahunan|tahun)\b", "YEARLY"),
]

_LEADING_VERBS = re.compile(
    r"^(?:beli|bayar|byr|belanja|jajan|isi|buat|untuk)\b\s*", re.IGNORECASE
)
_PUNCTUATION = re.compile(r"[^\w\s-]")

# "budget makanan 1 juta" hits "makan" but is not an expense
_OTHER_COMMANDS = re.compile(
    r"\b(?:budget|anggaran|laporan|ringkasan|rekap|saldo|top\s*up|topup)\b", re.IGNORECASE
)


def _keyword_pattern(keyword: str) -> re.Pattern:
    # Prefix match: "makan" also hits "makanan"
    return re.compile(r"\b" + keyword, re.IGNORECASE)


def _first_hint(text: str, hints: dict[str, tuple[str, ...]], default: str) -> str:
    lowered = text.lower()
    for label, words in hints.items():
        if any(re.search(r"\b" + re.escape(w), lowered) for w in words):
            return label
    return default


def _period(text: str, default: str = "MONTHLY") -> str:
    for pattern, period in PERIOD_HINTS:
        if re.search(pattern, text, re.IGNORECASE):
            return period
    return default


def _clean_description(text: str) -> str:
    cleaned = _PUNCTUATION.sub(" ", text)
    cleaned = " ".join(cleaned.split())
    return _LEADING_VERBS.sub("", cleaned).strip()


def guess_expense_category(text: str) -> str:
    return _first_hint(text, EXPENSE_CATEGORY_HINTS, "lainnya")


def guess_income_source(text: str) -> str:
    return _first_hint(text, INCOME_SOURCE_HINTS, "lainnya")


def extract_expense(text: str) -> Optional[dict[str, Any]]:
    if _OTHER_COMMANDS.search(text):
        return None
    amount = best_amount(text)
    if amount is None:
        return None
    description = _clean_description(strip_amount(text, amount)) or "pengeluaran"
    return {
        "amount": amount.value,
        "description": description,
        "category": guess_expense_category(text),
    }


def extract_income(text: str) -> Optional[dict[str, Any]]:
    amount = best_amount(text)
    if amount is None:
        return None
    description = _clean_description(strip_amount(text, amount)) or "pemasukan"
    return {
        "amount": amount.value,
        "description": description,
        "source": guess_income_source(text),
    }


def extract_budget(text: str) -> Optional[dict[str, Any]]:
    amount = best_amount(text)
    if amount is None:
        return None
    match = re.search(r"\b(?:budget|anggaran)\s+(?:untuk\s+)?([a-z][\w-]*)", text, re.IGNORECASE)
    category = match.group(1).lower() if match else "lainnya"
    if category in {"harian", "mingguan", "bulanan", "tahunan"}:
        category = "lainnya"
    return {
        "category_name": category,
        "amount": amount.value,
        "period": _period(text),
    }


def extract_balance(text: str) -> Optional[dict[str, Any]]:
    amount = best_amount(text)
    if amount is None:
        return None
    return {"amount": amount.value}


def extract_report(text: str) -> Optional[dict[str, Any]]:
    period = _period(text)
    # A daily report isn't offered; "hari ini" still means this month
    return {"period": "MONTHLY" if period == "DAILY" else period}


class IntentRule(BaseModel):
    """One row of the rule table."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    intent: str
    keywords: tuple[str, ...]
    tool_name: str
    extractor: Extractor

    def score(self, text: str) -> tuple[float, Optional[dict[str, Any]]]:
        hits = sum(1 for kw in self.keywords if _keyword_pattern(kw).search(text))
        if hits == 0:
            return 0.0, None
        arguments = self.extractor(text)
        score = BASE_SCORE + EXTRA_HIT_BONUS * (hits - 1)
        if arguments is not None:
            score += EXTRACTION_BONUS
        return min(score, MAX_SCORE), arguments


DEFAULT_RULES = [
    IntentRule(
        intent="expense",
        keywords=("beli", "bayar", "byr", "belanja", "makan", "minum", "jajan",
                  "transport", r"isi\s+bensin"),
        tool_name="create_expense",
        extractor=extract_expense,
    ),
    IntentRule(
        intent="income",
        keywords=("gaji", "bonus", "dapat", "terima", "freelance", "jual", "pemasukan"),
        tool_name="create_income",
        extractor=extract_income,
    ),
    IntentRule(
        intent="budget",
        keywords=("budget", "anggaran"),
        tool_name="set_budget",
        extractor=extract_budget,
    ),
    IntentRule(
        intent="balance",
        keywords=("saldo", r"top\s*up", r"isi\s+koin"),
        tool_name="add_balance",
        extractor=extract_balance,
    ),
    IntentRule(
        intent="report",
        keywords=("laporan", "ringkasan", "rekap"),
        tool_name="generate_report",
        extractor=extract_report,
    ),
]


class IntentMatch(BaseModel):
    """Best rule for a message, or no intent at all."""

    intent: Optional[str] = None
    tool_name: Optional[str] = None
    arguments: dict[str, Any] = Field(default_factory=dict)
    confidence: float = 0.0
    buckets: list[str] = Field(default_factory=list)

    def is_actionable(self, threshold: float) -> bool:
        return self.tool_name is not None and self.confidence >= threshold


class IntentMatcher:
    """
    Rule-table classifier for the fallback path.

    RESPONSIBILITIES:
    - Score a message against every rule and report the best one
    - Extract a reduced argument set for the winning rule
    - Tell which help buckets a message touches
    - Recognise bare greetings

    BOUNDARIES:
    - NEVER executes anything; the agent loop decides what to do with a match
    """

    def __init__(self, rules: Optional[list[IntentRule]] = None):
        self._rules = rules if rules is not None else DEFAULT_RULES

    def match(self, text: str) -> IntentMatch:
        """Highest-scoring rule; ties keep rule-table order."""
        best: Optional[IntentMatch] = None
        for rule in self._rules:
            score, arguments = rule.score(text)
            if score <= 0:
                continue
            if best is None or score > best.confidence:
                best = IntentMatch(
                    intent=rule.intent,
                    tool_name=rule.tool_name,
                    arguments=arguments or {},
                    confidence=score,
                )
        result = best or IntentMatch()
        result.buckets = self.help_buckets(text)
        return result

    @staticmethod
    def help_buckets(text: str) -> list[str]:
        """Help topics whose keywords occur in the text, in display order."""
        return [
            bucket
            for bucket, keywords in HELP_BUCKETS.items()
            if any(_keyword_pattern(kw).search(text or "") for kw in keywords)
        ]

    @staticmethod
    def is_greeting(text: str) -> bool:
        """A bare greeting: "hi", "halo!", "hai bot", "selamat pagi"."""
        if contains_amount_hint(text):
            return False
        words = _PUNCTUATION.sub(" ", (text or "").lower()).split()
        if not words or len(words) > 2:
            return False
        if words[0] == "selamat":
            return len(words) == 2 and words[1] in GREETING_SUFFIXES
        return words[0] in GREETING_WORDS
