"""Application configuration using pydantic-settings."""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.ticker import SUPPORTED_CURRENCIES


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize LOG_LEVEL to an uppercase Python logging level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}, got {v!r}")
        return v.upper()

    @field_validator("BASE_CURRENCY", mode="before")
    @classmethod
    def validate_base_currency(cls, v: str) -> str:
        """Normalize BASE_CURRENCY to an uppercase ISO code."""
        if v.upper() not in SUPPORTED_CURRENCIES:
            raise ValueError(f"BASE_CURRENCY must be one of {SUPPORTED_CURRENCIES}, got {v!r}")
        return v.upper()

    # Database
    DATABASE_URL: str = "sqlite:///./gainday.db"

    # Valuation
    BASE_CURRENCY: str = "JPY"
    HISTORY_RANGE: str = "1y"
    BACKFILL_MAX_DAYS: int = 365
    RUN_MIGRATION_ON_STARTUP: bool = True

    # Upstream providers
    HTTP_TIMEOUT_SECONDS: float = 15.0
    FX_RATE_TTL_SECONDS: int = 3600
    CRUMB_TTL_SECONDS: int = 3600
    YAHOO_USER_AGENT: str = (
        "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) "
        "AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 "
        "Mobile/15E148 Safari/604.1"
    )

    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"


settings = Settings()
