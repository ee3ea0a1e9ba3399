"""
Application configuration using pydantic-settings.

Loads configuration from environment variables (prefix ``LENDFLOW_``) with
sensible defaults. Underwriting thresholds are policy, not configuration,
and live as constants on the analyzers.
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LENDFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Analysis defaults
    reference_year: Optional[int] = Field(
        None,
        description="Tax year assumed for records that carry none; current year when unset",
    )
    default_loan_purpose: str = Field(
        "purchase",
        description="Loan purpose when the caller supplies none: purchase, refinance or other",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
