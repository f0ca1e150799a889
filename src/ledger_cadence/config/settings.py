"""Configuration settings for the recurrence engine."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )

    # Catch-up processing
    default_settlement_currency: str = Field(
        default="EUR", validation_alias="DEFAULT_SETTLEMENT_CURRENCY"
    )
    catch_up_max_iterations: int = Field(
        default=366, ge=1, validation_alias="CATCH_UP_MAX_ITERATIONS"
    )
    due_run_concurrency: int = Field(
        default=4, ge=1, validation_alias="DUE_RUN_CONCURRENCY"
    )

    # Exchange rates (Frankfurter, ECB reference rates)
    fx_api_url: str = Field(
        default="https://api.frankfurter.app", validation_alias="FX_API_URL"
    )
    fx_timeout: float = Field(default=10.0, gt=0, validation_alias="FX_TIMEOUT")
    fx_cache_ttl_seconds: float = Field(
        default=3600.0, ge=0, validation_alias="FX_CACHE_TTL_SECONDS"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
