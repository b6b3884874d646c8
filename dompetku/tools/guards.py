"""
Guard Policy Engine

Pre-execution checks that can veto a tool call the model asked for.

DESIGN DECISION: A denial is a value, not an exception.
Models regularly try to record an expense from "beli kopi" with an
invented amount; refusing that is routine. Guards return
GuardDecision.allow() or GuardDecision.deny(reason) and the agent loop
branches on it.
"""

from typing import Any, Callable, Optional

from pydantic import BaseModel

from dompetku.matching.amounts import contains_amount_hint
from dompetku.models.tools import ToolDefinition


class GuardDecision(BaseModel):
    """Outcome of a guard check."""

    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "GuardDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "GuardDecision":
        return cls(allowed=False, reason=reason)


Guard = Callable[[ToolDefinition, dict[str, Any], str], GuardDecision]


def _positive_amount(args: dict[str, Any]) -> bool:
    amount = args.get("amount")
    if isinstance(amount, bool):
        return False
    if isinstance(amount, (int, float)):
        return amount > 0
    if isinstance(amount, str):
        try:
            return float(amount) > 0
        except ValueError:
            return False
    return False


def make_money_guard(require_text_hint: bool = True) -> Guard:
    """
    Guard for money-creating tools.

    Strict (default): the user's own text must contain a numeric or
    currency-like token, whatever amount the model filled in.
    Relaxed: a positive numeric amount argument is enough on its own.
    """

    def money_guard(tool: ToolDefinition, args: dict[str, Any], original_text: str) -> GuardDecision:
        if not tool.creates_money:
            return GuardDecision.allow()
        if contains_amount_hint(original_text):
            return GuardDecision.allow()
        if not require_text_hint and _positive_amount(args):
            return GuardDecision.allow()
        return GuardDecision.deny("no_amount_in_message")

    return money_guard


class GuardPolicyEngine:
    """Runs every guard in order; the first denial wins."""

    def __init__(self, guards: Optional[list[Guard]] = None):
        self._guards: list[Guard] = list(guards) if guards is not None else [make_money_guard()]

    def add(self, guard: Guard) -> None:
        self._guards.append(guard)

    def evaluate(
        self,
        tool: ToolDefinition,
        args: dict[str, Any],
        original_text: str,
    ) -> GuardDecision:
        for guard in self._guards:
            decision = guard(tool, args, original_text)
            if not decision.allowed:
                return decision
        return GuardDecision.allow()
