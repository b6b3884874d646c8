"""
Media reader: voice notes and receipt photos to plain text.

The text it returns is fed into the normal agent turn, so a receipt
photo ends up going through the same guard and tools as a typed
message. Reading costs coins; see PaidFeatureGate.
"""

from typing import Optional, Protocol

import google.generativeai as genai
import structlog

from dompetku.config import GeminiSettings, get_settings
from dompetku.services.wallet import PaidFeature


logger = structlog.get_logger(__name__)


class MediaReadError(Exception):
    """The media could not be turned into usable text."""
    pass


class MediaReader(Protocol):
    async def read(self, data: bytes, mime_type: str, kind: PaidFeature) -> str:
        ...


VOICE_PROMPT = (
    "Transkripsikan pesan suara ini apa adanya dalam bahasa aslinya. "
    "Balas HANYA dengan teks transkripsinya."
)

RECEIPT_PROMPT = (
    "Baca struk berikut dan kembalikan daftar item ringkas:\n"
    "- Format: nama | qty | harga per unit | total\n"
    "- Gunakan angka IDR tanpa pemisah untuk harga (contoh: 12000)\n"
    "- Sertakan total keseluruhan di akhir sebagai 'TOTAL: <angka>'\n"
    "- Jika bukan struk, balas persis: BUKAN_STRUK"
)

NOT_A_RECEIPT = "BUKAN_STRUK"


class GeminiMediaReader:
    """MediaReader using Gemini's multimodal input."""

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": 0.0,
                "max_output_tokens": self._settings.max_tokens,
            },
        )

    async def read(self, data: bytes, mime_type: str, kind: PaidFeature) -> str:
        """
        Raises:
            MediaReadError: empty file, API failure, empty answer, or a
                photo that isn't a receipt
        """
        if not data:
            raise MediaReadError("Empty file")

        prompt = VOICE_PROMPT if kind == PaidFeature.VOICE else RECEIPT_PROMPT
        try:
            response = await self._model.generate_content_async(
                [prompt, {"mime_type": mime_type, "data": data}]
            )
            text = response.text.strip()
        except Exception as e:
            logger.warning("media.read_failed", kind=kind.value, mime_type=mime_type, error=str(e))
            raise MediaReadError(str(e)) from e

        if not text or text == NOT_A_RECEIPT:
            raise MediaReadError(f"No usable text from {kind.value.lower()}")

        if kind == PaidFeature.RECEIPT:
            # the receipt listing has no expense verb of its own
            return f"catat pengeluaran dari struk berikut:\n{text}"
        return text
