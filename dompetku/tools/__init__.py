"""Agent tools: the catalog, guard engine and default tool set."""

from dompetku.tools.catalog import ToolCatalog
from dompetku.tools.definitions import LedgerServices, build_default_catalog, gemini_schema
from dompetku.tools.guards import Guard, GuardDecision, GuardPolicyEngine, make_money_guard

__all__ = [
    "Guard",
    "GuardDecision",
    "GuardPolicyEngine",
    "LedgerServices",
    "ToolCatalog",
    "build_default_catalog",
    "gemini_schema",
    "make_money_guard",
]
