"""Configuration package."""

from dompetku.config.settings import (
    AgentSettings,
    AppSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    Settings,
    WalletSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AgentSettings",
    "AppSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "Settings",
    "WalletSettings",
    "get_settings",
    "validate_all_settings",
]
