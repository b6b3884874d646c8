"""
Configuration Management for Dompetku

Every knob is read from the environment (or .env) through pydantic-settings.

DESIGN DECISION: One module owns configuration.
Every group has defaults except the credentials, so the agent loop,
matcher and formatter can run in tests without any environment set up.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    expenses_sheet_name: str = Field(default="Expenses")
    incomes_sheet_name: str = Field(default="Incomes")
    budgets_sheet_name: str = Field(default="Budgets")
    wallets_sheet_name: str = Field(default="Wallets")
    vouchers_sheet_name: str = Field(default="Vouchers")
    categories_sheet_name: str = Field(default="Categories")
    memories_sheet_name: str = Field(default="Memories")
    conversation_sheet_name: str = Field(
        default="Conversation",
        description="Name of the sheet for chat turns"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """A missing file only warns; deployments mount it after start-up."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Storage will fall back to memory until it is present."
            )
        return v


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature for tool selection"
    )
    remark_temperature: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Temperature for the short personalized remarks"
    )


class AgentSettings(BaseSettings):
    """
    Agent loop tuning.

    These are behavioural knobs, not secrets, so every field has a default.
    """

    model_config = SettingsConfigDict(
        env_prefix="AGENT_",
        extra="ignore"
    )

    max_steps: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum model round-trips per user turn"
    )
    model_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout applied to each model call"
    )
    confidence_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum fallback-matcher score to execute an action directly"
    )
    history_limit: int = Field(
        default=20,
        ge=0,
        le=200,
        description="How many past turns are sent to the model"
    )
    item_tolerance: float = Field(
        default=0.10,
        ge=0.0,
        le=1.0,
        description="Max relative deviation between item sum and amount for itemized receipts"
    )
    require_text_hint: bool = Field(
        default=True,
        description="Money-creating tools need a numeric/currency token in the user's text"
    )
    remarks_enabled: bool = Field(
        default=True,
        description="Append a personalized remark to money receipts"
    )


class WalletSettings(BaseSettings):
    """Coin wallet pricing."""

    model_config = SettingsConfigDict(
        env_prefix="WALLET_",
        extra="ignore"
    )

    balance_to_coins_rate: int = Field(
        default=1000,
        gt=0,
        description="Rupiah of balance per coin"
    )
    voice_coin_cost: float = Field(default=0.5, ge=0.0)
    receipt_coin_cost: float = Field(default=1.5, ge=0.0)


class AppSettings(BaseSettings):
    """Frontend and upload settings, read from the environment and .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level for structlog/stdlib logging"
    )

    # Upload limits
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum upload file size in MB"
    )
    supported_image_formats: str = Field(
        default="jpg,jpeg,png,webp",
        description="Comma-separated list of supported receipt image formats"
    )
    supported_audio_formats: str = Field(
        default="ogg,mp3,wav,m4a",
        description="Comma-separated list of supported voice note formats"
    )

    @property
    def supported_formats_list(self) -> list[str]:
        """Get supported image formats as a list."""
        return [fmt.strip().lower() for fmt in self.supported_image_formats.split(",")]

    @property
    def supported_audio_list(self) -> list[str]:
        """Get supported audio formats as a list."""
        return [fmt.strip().lower() for fmt in self.supported_audio_formats.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class Settings(BaseSettings):
    """
    Root settings container.

    Each group is built on access, so a missing Gemini key does not stop
    the wallet or agent settings from loading.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def agent(self) -> AgentSettings:
        return AgentSettings()

    @property
    def wallet(self) -> WalletSettings:
        return WalletSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """Cached settings root; tests call get_settings.cache_clear() after changing env."""
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Try to build every settings group.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for the failing groups.
    """
    results = {}

    settings = get_settings()

    for name in ("google_sheets", "gemini", "agent", "wallet", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
