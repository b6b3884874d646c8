"""
Personalized remarks under money receipts.

A second, small Gemini call at a higher temperature. It only ever sees
the recorded transaction, never the ledger, so it can't leak other data.
"""

from typing import Any, Optional

import google.generativeai as genai

from dompetku.config import GeminiSettings, get_settings
from dompetku.formatting.formatter import format_rupiah


MAX_REMARK_CHARS = 80

_KINDS = {
    "create_expense": ("expense", "expense"),
    "create_income": ("income", "income"),
}


def _transaction(tool_name: str, data: dict[str, Any]) -> Optional[tuple[str, str, float]]:
    if tool_name in _KINDS:
        kind, key = _KINDS[tool_name]
        record = data.get(key) or {}
        return kind, record.get("description", ""), float(record.get("amount", 0))
    if tool_name == "add_balance":
        return "top up", "saldo", float(data.get("amount", 0))
    return None


class GeminiRemarkProvider:
    """RemarkProvider that asks Gemini for one casual line in Indonesian."""

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.remark_temperature,
                "max_output_tokens": 100,
            },
        )

    async def remark(
        self,
        tool_name: str,
        data: dict[str, Any],
        original_message: str,
    ) -> Optional[str]:
        transaction = _transaction(tool_name, data)
        if transaction is None:
            return None
        kind, description, amount = transaction

        prompt = f"""Tulis satu komentar singkat dan ramah dalam Bahasa Indonesia untuk transaksi ini:
Jenis: {kind}
Deskripsi: {description}
Jumlah: {format_rupiah(amount)}
Pesan user: "{original_message}"

Gaya santai dan personal. Contoh:
- "wah belanja daging nih, mau masak apa?"
- "kopi lagi? kamu suka banget ngopi pagi hari ya"
- "mantap dapat bonus! jangan lupa sisihkan buat nabung"

Maksimal 50 karakter. Balas HANYA dengan komentarnya."""

        response = await self._model.generate_content_async(prompt)
        text = response.text.strip().strip('"').strip()
        return text[:MAX_REMARK_CHARS] or None
