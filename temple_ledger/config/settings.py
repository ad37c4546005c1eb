"""
Configuration Management for Temple Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The backend connection and every tunable number the ledger relies on
(list bounds, password rules, redirect delay) live in one place and are
validated at startup.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SupabaseSettings(BaseSettings):
    """Hosted backend (auth, tables, realtime) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        ...,
        description="Project URL, e.g. https://xyz.supabase.co"
    )
    anon_key: str = Field(
        ...,
        description="Public anon key used by the browser-side client"
    )

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Project URL must be http(s)."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Supabase URL must start with http:// or https://, got {v!r}")
        return v.rstrip("/")


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

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )

    # Transaction lists
    recent_transactions_limit: int = Field(
        default=8,
        ge=1,
        le=100,
        description="How many transactions the dashboard shows"
    )
    recent_fetch_cap: int = Field(
        default=50,
        ge=1,
        description="Rows fetched per table when merging recent transactions client-side"
    )

    # Server-side aggregation
    all_transactions_function: str = Field(
        default="get_all_transactions",
        description="Callable endpoint returning the unified transaction list"
    )
    recent_transactions_function: str = Field(
        default="get_recent_transactions",
        description="Callable endpoint returning the most recent transactions"
    )
    summary_view: str = Field(
        default="ledger_summary",
        description="Read-only view holding income/expense totals"
    )

    # Password reset
    min_password_length: int = Field(
        default=6,
        ge=1,
        description="Minimum length of a new password"
    )
    reset_redirect_delay_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Pause after a successful reset before showing the login screen"
    )
    password_reset_redirect_url: str = Field(
        default="http://localhost:8501",
        description="Where the password reset email link sends the user"
    )

    # Presentation
    currency_symbol: str = Field(
        default="₹",
        description="Prefix for displayed amounts"
    )
    refresh_poll_seconds: float = Field(
        default=2.0,
        gt=0.0,
        description="How often the UI checks for change notifications"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Accept standard level names in any case."""
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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def supabase(self) -> SupabaseSettings:
        return SupabaseSettings()

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


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries describing failures.
    """
    results = {}

    settings = get_settings()

    for name in ("supabase", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
