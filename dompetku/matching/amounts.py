"""
Indonesian amount parsing.

People write money the way they say it: "25rb", "1,5jt", "Rp 25.000",
"sejuta", "50k". This module finds those tokens in free text and turns
them into Rupiah.

Separator rule: a dot or comma followed by exactly three digits is a
thousands separator ("25.000"); otherwise it is a decimal point
("1,5jt", "2.5 juta").
"""

import re
from typing import Optional

from pydantic import BaseModel


MULTIPLIERS = {
    "rb": 1_000,
    "ribu": 1_000,
    "k": 1_000,
    "jt": 1_000_000,
    "juta": 1_000_000,
}

WORD_AMOUNTS = {
    "seribu": 1_000,
    "sejuta": 1_000_000,
}

# Anything that suggests the user typed an amount: a digit, a currency
# marker, or a thousands/millions word. Word-bounded so "kopi" is not "k".
AMOUNT_HINT_PATTERN = re.compile(
    r"\d|\b(?:rp\.?|idr|rb|ribu|jt|juta|k|seribu|sejuta)\b",
    re.IGNORECASE,
)

_AMOUNT_TOKEN = re.compile(
    r"(?P<currency>\b(?:rp\.?|idr)\s*)?"
    r"(?P<number>\d+(?:[.,]\d+)*)"
    r"\s*(?P<multiplier>rb|ribu|k|jt|juta)?\b",
    re.IGNORECASE,
)

_WORD_TOKEN = re.compile(r"\b(?P<word>seribu|sejuta)\b", re.IGNORECASE)


class AmountMatch(BaseModel):
    """One amount found in text, with where it was found."""

    value: float
    start: int
    end: int
    has_multiplier: bool = False
    has_currency: bool = False


def contains_amount_hint(text: str) -> bool:
    """True if the text has a numeric or currency-like token."""
    return bool(AMOUNT_HINT_PATTERN.search(text or ""))


def parse_number(raw: str) -> Optional[float]:
    """
    Parse "25.000", "1,5", "1.250.000" or "2.5" into a float.

    Returns None if the text isn't a number.
    """
    raw = raw.strip()
    if not raw:
        return None

    separators = [c for c in raw if c in ".,"]
    if not separators:
        return float(raw) if raw.isdigit() else None

    if "." in separators and "," in separators:
        # The last separator is the decimal one; the other groups thousands
        decimal = raw[max(raw.rfind("."), raw.rfind(","))]
        thousands = "," if decimal == "." else "."
        normalized = raw.replace(thousands, "").replace(decimal, ".")
    else:
        sep = separators[0]
        groups = raw.split(sep)
        if all(len(g) == 3 for g in groups[1:]):
            normalized = "".join(groups)
        elif len(groups) == 2:
            normalized = f"{groups[0]}.{groups[1]}"
        else:
            return None

    try:
        return float(normalized)
    except ValueError:
        return None


def find_amounts(text: str) -> list[AmountMatch]:
    """All amount tokens in the text, in order of appearance."""
    matches: list[AmountMatch] = []
    for m in _AMOUNT_TOKEN.finditer(text or ""):
        number = parse_number(m.group("number"))
        if number is None:
            continue
        multiplier = (m.group("multiplier") or "").lower()
        value = number * MULTIPLIERS.get(multiplier, 1)
        matches.append(AmountMatch(
            value=value,
            start=m.start(),
            end=m.end(),
            has_multiplier=bool(multiplier),
            has_currency=bool(m.group("currency")),
        ))

    for m in _WORD_TOKEN.finditer(text or ""):
        matches.append(AmountMatch(
            value=float(WORD_AMOUNTS[m.group("word").lower()]),
            start=m.start(),
            end=m.end(),
            has_multiplier=True,
        ))

    matches.sort(key=lambda a: a.start)
    return matches


def best_amount(text: str) -> Optional[AmountMatch]:
    """
    The token most likely to be the money amount.

    Preference: a token with a multiplier ("25rb"), then one with a
    currency marker ("Rp 25.000"), then the first number.
    """
    matches = [a for a in find_amounts(text) if a.value > 0]
    if not matches:
        return None
    for predicate in (lambda a: a.has_multiplier, lambda a: a.has_currency):
        preferred = [a for a in matches if predicate(a)]
        if preferred:
            return preferred[0]
    return matches[0]


def parse_amount(text: str) -> Optional[float]:
    """Rupiah value of the best amount token, or None."""
    match = best_amount(text)
    return match.value if match else None


def strip_amount(text: str, match: Optional[AmountMatch] = None) -> str:
    """The text with the amount token removed and whitespace collapsed."""
    match = match or best_amount(text)
    if match is None:
        return " ".join(text.split())
    return " ".join((text[:match.start] + " " + text[match.end:]).split())
