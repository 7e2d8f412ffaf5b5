"""Configuration settings for the order review engine."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a ``.env`` file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Order Store
    store_api_url: str = Field(
        default="http://localhost:5000", validation_alias="ORDER_STORE_URL"
    )
    store_api_token: SecretStr | None = Field(
        default=None, validation_alias="ORDER_STORE_TOKEN"
    )
    store_timeout: float = Field(default=30.0, validation_alias="ORDER_STORE_TIMEOUT")
    store_max_retries: int = Field(default=3, validation_alias="ORDER_STORE_MAX_RETRIES")

    # Review behaviour
    review_timezone: str | None = Field(default=None, validation_alias="REVIEW_TIMEZONE")
    review_policy_path: str | None = Field(
        default=None, validation_alias="REVIEW_POLICY_PATH"
    )
    strict_ledger: bool = Field(default=False, validation_alias="STRICT_LEDGER")
    best_account_tie_break: Literal["first", "name"] = Field(
        default="first", validation_alias="BEST_ACCOUNT_TIE_BREAK"
    )
    currency: str = Field(default="BD", validation_alias="CURRENCY")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
