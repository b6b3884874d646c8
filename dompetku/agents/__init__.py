"""Gemini-backed adapters: the tool-calling client, remarks, and media reading."""

from dompetku.agents.commentary import GeminiRemarkProvider
from dompetku.agents.gemini_client import (
    GeminiClient,
    LanguageModelClient,
    ModelUnavailableError,
)
from dompetku.agents.media import GeminiMediaReader, MediaReader, MediaReadError

__all__ = [
    "GeminiClient",
    "GeminiMediaReader",
    "GeminiRemarkProvider",
    "LanguageModelClient",
    "MediaReadError",
    "MediaReader",
    "ModelUnavailableError",
]
