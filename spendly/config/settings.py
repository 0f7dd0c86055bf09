"""
Configuration Management for Spendly

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Report thresholds, defaults and the database location are all visible
in one place and validated at startup.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Ledger and report behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="SPENDLY_",
        extra="ignore"
    )

    default_daily_budget: Decimal = Field(
        default=Decimal("1000"),
        gt=0,
        description="Daily budget used when the user has not configured one"
    )
    warning_ratio: Decimal = Field(
        default=Decimal("0.8"),
        gt=0,
        lt=1,
        description="Share of the daily budget above which a day turns yellow"
    )
    currency_symbol: str = Field(
        default="₹",
        description="Symbol used in rendered documents"
    )

    # Report document text
    report_title: str = Field(
        default="Spendly Monthly Report",
        description="Title of the monthly document snapshot"
    )
    report_closing_message: str = Field(
        default="Keep up the great work! 💪",
        description="Message printed at the end of the monthly document"
    )
    report_footer: str = Field(
        default="Generated by Spendly - Smart Expense Tracker",
        description="Footer line of the monthly document"
    )

    # Expenses whose envelope cannot be resolved in reports
    unknown_envelope_name: str = Field(default="Unknown")
    unknown_envelope_icon: str = Field(default="📦")

    reminder_window_days: int = Field(
        default=3,
        ge=0,
        le=60,
        description="How many days ahead a bill counts as upcoming"
    )


class DatabaseSettings(BaseSettings):
    """Relational storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite:///spendly.db",
        description="SQLAlchemy database URL"
    )
    echo: bool = Field(
        default=False,
        description="Log every SQL statement"
    )

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Reject an obviously malformed URL early."""
        if "://" not in v:
            raise ValueError(f"Not a database URL: {v!r}")
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

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
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


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

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, object]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid} plus an
    {setting_name}_error entry for each group that failed.
    Useful for startup checks.
    """
    results: dict[str, object] = {}

    settings = get_settings()

    for name in ("ledger", "database", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
