"""
Configuration Management for Personal Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is declared here, but nothing reads it
implicitly. Components receive the settings object they need through their
constructor; only the application factory calls get_settings().
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MindeeSettings(BaseSettings):
    """Mindee OCR service configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MINDEE_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Mindee API key"
    )


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
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet for ledger transactions"
    )
    categories_sheet_name: str = Field(
        default="Categories",
        description="Name of the sheet for the category taxonomy"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration used for transaction extraction."""

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
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class CurrencySettings(BaseSettings):
    """Exchange rate lookup configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CURRENCY_",
        extra="ignore"
    )

    api_key: Optional[str] = Field(
        default=None,
        description="ExchangeRate-API key; without it only offline rates are used"
    )
    base_url: str = Field(
        default="https://v6.exchangerate-api.com/v6",
        description="Base URL of the exchange rate API"
    )
    cache_ttl_seconds: int = Field(
        default=3600,
        ge=0,
        description="How long a fetched rate is considered fresh"
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="HTTP timeout for a single rate request"
    )


class AppSettings(BaseSettings):
    """
    Ledger behavior settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
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

    # Defaults applied to AI-extracted records
    default_currency: str = Field(
        default="CNY",
        min_length=3,
        max_length=3,
        description="Currency used when extraction returns none"
    )
    default_category: str = Field(
        default="Other",
        min_length=1,
        description="Main/sub category used when extraction returns none"
    )

    # Duplicate detection: AI capture policy
    capture_duplicate_window_seconds: float = Field(
        default=120.0,
        ge=0,
        description="Time window for treating two captures as the same receipt"
    )
    # Duplicate detection: bulk import policy
    import_duplicate_window_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Time window for treating an import row as already present"
    )
    duplicate_amount_tolerance: float = Field(
        default=0.01,
        ge=0,
        description="Amount slack (currency units) for duplicate detection"
    )

    # Export layout
    export_csv_filename: str = Field(
        default="ledger.csv",
        description="Name of the tabular file inside an export archive"
    )
    export_images_dirname: str = Field(
        default="images",
        description="Attachment directory inside an export archive"
    )

    @field_validator('default_currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.strip().upper()


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def mindee(self) -> MindeeSettings:
        return MindeeSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def currency(self) -> CurrencySettings:
        return CurrencySettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Intended for the application entry point only. Library components
    take their settings as constructor arguments.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings(settings: Optional[Settings] = None) -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a
    "<name>_error" entry for each section that failed to load.
    """
    results = {}
    settings = settings or get_settings()

    for name in ("mindee", "google_sheets", "gemini", "currency", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
