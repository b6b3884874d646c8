"""
Response Formatter

Turns ExecutionResults into the text the user reads.

DESIGN DECISION: One renderer per tool, looked up by name.
Adding a tool means registering one renderer here, not editing a
switch statement. Tools without a renderer (memory lookups, expense
listings) produce no receipt; the model phrases those itself.

Money is shown the Indonesian way: "Rp 25.000", comma decimals.
"""

from typing import Any, Callable, Optional, Protocol

import structlog

from dompetku.formatting import messages
from dompetku.models.tools import ExecutionResult


logger = structlog.get_logger(__name__)

Renderer = Callable[[dict[str, Any], str], str]

MONEY_TOOLS = frozenset({"create_expense", "create_income", "add_balance"})

PERIOD_LABELS = {
    "DAILY": "hari",
    "WEEKLY": "minggu",
    "MONTHLY": "bulan",
    "YEARLY": "tahun",
}

STATUS_ICONS = {
    "UNDER_BUDGET": "✅",
    "WARNING": "⚠️",
    "OVER_BUDGET": "🚨",
}


class RemarkProvider(Protocol):
    """Source of the short personalized line under a money receipt."""

    async def remark(
        self,
        tool_name: str,
        data: dict[str, Any],
        original_message: str,
    ) -> Optional[str]: ...


def format_rupiah(value: float) -> str:
    """25000 -> "Rp 25.000", 1500.5 -> "Rp 1.500,50"."""
    rounded = round(float(value), 2)
    if rounded == int(rounded):
        body = f"{int(rounded):,}".replace(",", ".")
    else:
        body = f"{rounded:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"Rp {body}"


def format_coins(value: float) -> str:
    return f"{float(value):g}"


def format_voucher_redeemed(data: dict[str, Any]) -> str:
    """Confirmation for a redeemed voucher, shared by the chat and the wallet page."""
    value = data.get("value", 0)
    if data.get("voucher_type") == "COINS":
        bonus = f"+{format_coins(value)} koin"
    else:
        bonus = f"+{format_rupiah(value)} saldo"
    return (
        f"🎁 Voucher {data.get('code', '')} berhasil dipakai! {bonus}\n\n"
        f"Saldo sekarang: {format_rupiah(data.get('balance', 0))}"
        f" | {format_coins(data.get('coins', 0))} koin"
    )


def item_total(item: dict[str, Any]) -> float:
    return float(item.get("quantity", 1)) * float(item.get("unit_price", 0))


def should_itemize(amount: float, items: list[dict[str, Any]], tolerance: float) -> bool:
    """
    Show line items only if they add up to (roughly) the declared amount.

    items of 1.050 against an amount of 1.000 is 5% off and is itemized;
    2.000 against 1.000 is 100% off and falls back to the summary line.
    """
    if not items or amount <= 0:
        return False
    total = sum(item_total(item) for item in items)
    return abs(total - amount) / amount <= tolerance + 1e-9


class ResponseFormatter:
    """
    Registry of per-tool renderers.

    RESPONSIBILITIES:
    - Render successful results into receipts
    - Map failure codes to fixed localized messages
    - Append a personalized remark to money receipts when available

    BOUNDARIES:
    - render() is pure; only format() talks to the remark provider
    - A failing remark provider never blocks the receipt
    """

    def __init__(
        self,
        remark_provider: Optional[RemarkProvider] = None,
        item_tolerance: float = 0.10,
    ):
        self._remark_provider = remark_provider
        self._item_tolerance = item_tolerance
        self._renderers: dict[str, Renderer] = {}
        self._register_defaults()

    def register(self, tool_name: str, renderer: Renderer) -> None:
        if tool_name in self._renderers:
            raise ValueError(f"Renderer already registered: {tool_name}")
        self._renderers[tool_name] = renderer

    def has_renderer(self, tool_name: str) -> bool:
        return tool_name in self._renderers

    def render(
        self,
        tool_name: str,
        result: ExecutionResult,
        original_message: str = "",
    ) -> Optional[str]:
        """
        Display text for one result.

        Returns None for a successful result of a tool with no renderer.
        """
        if not result.success:
            error = result.error
            return messages.error_message(
                error.code if error else None,
                error.message if error else "",
            )
        renderer = self._renderers.get(tool_name)
        if renderer is None:
            return None
        return renderer(result.data or {}, original_message)

    async def format(
        self,
        tool_name: str,
        result: ExecutionResult,
        original_message: str = "",
        with_remark: bool = True,
    ) -> Optional[str]:
        """render() plus a personalized remark for successful money tools."""
        text = self.render(tool_name, result, original_message)
        if text is None or not result.success or tool_name not in MONEY_TOOLS:
            return text
        if not with_remark or self._remark_provider is None:
            return text

        try:
            remark = await self._remark_provider.remark(
                tool_name, result.data or {}, original_message
            )
        except Exception as e:
            logger.warning("formatter.remark_failed", tool_name=tool_name, error=str(e))
            return text
        if remark and remark.strip():
            return f"{text}\n\n\"{remark.strip()}\""
        return text

    # Renderers

    def _register_defaults(self) -> None:
        self.register("create_expense", self._render_expense)
        self.register("edit_expense", self._render_expense_edit)
        self.register("delete_expense", self._render_expense_delete)
        self.register("create_income", self._render_income)
        self.register("set_budget", self._render_budget)
        self.register("check_budget_status", self._render_budget_status)
        self.register("add_balance", self._render_balance)
        self.register("redeem_voucher", self._render_voucher)
        self.register("manage_category", self._render_category)
        self.register("generate_report", self._render_report)
        self.register("help_tool", self._render_help)

    def _render_expense(self, data: dict[str, Any], original_message: str) -> str:
        expense = data.get("expense", {})
        amount = float(expense.get("amount", 0))
        items = expense.get("items") or []

        lines = [
            "✅ Pengeluaran berhasil tercatat!",
            f"🧾 ID transaksi: `{expense.get('id', '')}`",
            f"📂 Kategori: {expense.get('category', 'lainnya')}",
        ]
        if should_itemize(amount, items, self._item_tolerance):
            for item in items:
                lines.append(
                    f"• {item.get('name', '')} x{format_coins(item.get('quantity', 1))}"
                    f" @ {format_rupiah(item.get('unit_price', 0))}"
                    f" = {format_rupiah(item_total(item))}"
                )
            lines.append(f"💰 Total: {format_rupiah(amount)}")
        else:
            lines.append(f"💸 {format_rupiah(amount)} - {expense.get('description', '')}")
        return "\n".join(lines)

    def _render_expense_edit(self, data: dict[str, Any], original_message: str) -> str:
        expense = data.get("expense", {})
        return (
            f"✏️ Pengeluaran `{expense.get('id', '')}` diperbarui\n"
            f"💸 {format_rupiah(expense.get('amount', 0))} - {expense.get('description', '')}\n"
            f"📂 Kategori: {expense.get('category', 'lainnya')}"
        )

    def _render_expense_delete(self, data: dict[str, Any], original_message: str) -> str:
        expense = data.get("expense", {})
        return (
            f"🗑️ Pengeluaran `{expense.get('id', '')}` dihapus "
            f"({format_rupiah(expense.get('amount', 0))} - {expense.get('description', '')})"
        )

    def _render_income(self, data: dict[str, Any], original_message: str) -> str:
        income = data.get("income", {})
        return (
            "✅ Pemasukan berhasil tercatat!\n"
            f"🧾 ID transaksi: `{income.get('id', '')}`\n"
            f"💰 {format_rupiah(income.get('amount', 0))} - {income.get('description', '')}\n"
            f"🏷️ Sumber: {income.get('source', 'lainnya')}"
        )

    def _render_budget(self, data: dict[str, Any], original_message: str) -> str:
        budget = data.get("budget", {})
        period = PERIOD_LABELS.get(budget.get("period", "MONTHLY"), "bulan")
        return (
            f"🎯 Budget {budget.get('category', '')} {format_rupiah(budget.get('amount', 0))}"
            f" per {period}\n"
            f"📅 {budget.get('start_date', '')} s/d {budget.get('end_date', '')}\n\n"
            "Budget berhasil diatur! Aku akan kasih tahu kalau sudah lewat 80%."
        )

    def _render_budget_status(self, data: dict[str, Any], original_message: str) -> str:
        lines = ["🎯 Status budget:"]
        for status in data.get("budgets", []):
            icon = STATUS_ICONS.get(status.get("status", ""), "•")
            period = PERIOD_LABELS.get(status.get("period", "MONTHLY"), "bulan")
            lines.append(
                f"{icon} {status.get('category', '')} ({period}): "
                f"{format_rupiah(status.get('spent', 0))} / {format_rupiah(status.get('limit', 0))}"
                f" ({status.get('percent_used', 0):g}%), sisa {format_rupiah(status.get('remaining', 0))}"
            )
        return "\n".join(lines)

    def _render_balance(self, data: dict[str, Any], original_message: str) -> str:
        return (
            f"💳 Saldo ditambah {format_rupiah(data.get('amount', 0))}"
            f" (+{format_coins(data.get('coins_added', 0))} koin)\n\n"
            f"Saldo sekarang: {format_rupiah(data.get('balance', 0))}"
            f" | Koin: {format_coins(data.get('coins', 0))}"
        )

    def _render_voucher(self, data: dict[str, Any], original_message: str) -> str:
        return format_voucher_redeemed(data)

    def _render_category(self, data: dict[str, Any], original_message: str) -> str:
        action = data.get("action")
        name = data.get("category", "")
        if action == "create":
            return f"🏷️ Kategori '{name}' ditambahkan."
        if action == "update":
            return f"🏷️ Kategori diubah menjadi '{name}'."
        if action == "delete":
            return f"🗑️ Kategori '{name}' dihapus."
        categories = data.get("categories", [])
        return "🏷️ Kategorimu:\n" + "\n".join(f"• {c}" for c in categories)

    def _render_report(self, data: dict[str, Any], original_message: str) -> str:
        period = PERIOD_LABELS.get(data.get("period", "MONTHLY"), "bulan")
        lines = [
            f"📊 Laporan {period} ini ({data.get('start_date', '')} s/d {data.get('end_date', '')})",
            "",
            f"💸 Pengeluaran: {format_rupiah(data.get('total_expense', 0))}"
            f" ({data.get('expense_count', 0)} transaksi)",
            f"💰 Pemasukan: {format_rupiah(data.get('total_income', 0))}",
            f"📈 Selisih: {format_rupiah(data.get('net', 0))}",
        ]
        by_category = data.get("by_category") or {}
        if by_category:
            lines.append("")
            lines.append("📂 Per kategori:")
            for category, total in by_category.items():
                lines.append(f"• {category}: {format_rupiah(total)}")
        return "\n".join(lines)

    def _render_help(self, data: dict[str, Any], original_message: str) -> str:
        topic = (data.get("topic") or "").strip().lower()
        bucket = messages.HELP_TOPICS.get(topic)
        if bucket:
            return messages.BUCKET_HELP[bucket]
        return messages.MAIN_HELP
