"""Billing engine configuration from environment variables and .env file."""

import logging
from typing import Optional

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class BillingSettings(BaseSettings):
    """Billing engine settings loaded from environment variables.

    Pydantic automatically loads values from:
    1. OS environment variables (at instantiation time)
    2. .env file (if present)
    """

    model_config = ConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Allow extra fields in .env file
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./fleet_billing.db",
        description="SQLAlchemy database URL",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/server.log", description="Log file path")

    # Recurrence generation bounds
    generation_horizon_months: int = Field(
        default=6,
        ge=1,
        description="How far ahead recurrence profiles are projected",
    )
    max_generation_steps: int = Field(
        default=365,
        ge=1,
        description="Iteration cap for a single profile projection",
    )

    # Store writes
    write_batch_size: int = Field(
        default=400,
        ge=1,
        le=500,
        description="Maximum writes committed in one atomic group",
    )

    # Service revenue category
    service_category_name: str = Field(default="Service Revenue")
    service_category_color: str = Field(default="#22c55e")

    # API
    api_title: str = Field(default="Fleet Billing API", description="API title")
    api_version: str = Field(default="0.1.0", description="API version")


# Lazy loader so tests can set environment variables before first access
_settings_instance: Optional[BillingSettings] = None


def get_settings() -> BillingSettings:
    """Get or create the settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = BillingSettings()
        logger.debug("Loaded billing settings: database_url=%s", _settings_instance.database_url)
    return _settings_instance


def reset_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global _settings_instance
    _settings_instance = None


__all__ = ["BillingSettings", "get_settings", "reset_settings"]
