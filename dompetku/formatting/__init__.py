"""Response formatting package."""

from dompetku.formatting.formatter import (
    MONEY_TOOLS,
    RemarkProvider,
    ResponseFormatter,
    format_rupiah,
    format_voucher_redeemed,
    should_itemize,
)
from dompetku.formatting import messages

__all__ = [
    "MONEY_TOOLS",
    "RemarkProvider",
    "ResponseFormatter",
    "format_rupiah",
    "format_voucher_redeemed",
    "messages",
    "should_itemize",
]
