"""Rule-based matching package (amount parsing and the fallback intent matcher)."""

from dompetku.matching.amounts import (
    AmountMatch,
    best_amount,
    contains_amount_hint,
    find_amounts,
    parse_amount,
    parse_number,
)
from dompetku.matching.intent_matcher import (
    DEFAULT_RULES,
    IntentMatch,
    IntentMatcher,
    IntentRule,
)

__all__ = [
    "AmountMatch",
    "DEFAULT_RULES",
    "IntentMatch",
    "IntentMatcher",
    "IntentRule",
    "best_amount",
    "contains_amount_hint",
    "find_amounts",
    "parse_amount",
    "parse_number",
]
