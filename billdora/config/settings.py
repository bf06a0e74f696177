"""
Configuration management for the billing core.
"""

from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BilldoraConfig(BaseSettings):
    """Configuration settings for billing sessions and the CLI."""

    # Billing defaults
    default_hourly_rate: Decimal = Field(
        default=Decimal("0"), ge=0, alias="DEFAULT_HOURLY_RATE"
    )
    default_percentage_to_bill: Decimal = Field(
        default=Decimal("10"), gt=0, le=100, alias="DEFAULT_PERCENTAGE_TO_BILL"
    )
    invoice_number_prefix: str = Field(default="INV-", alias="INVOICE_NUMBER_PREFIX")

    # CSV-backed data store used by the CLI
    data_dir: str = Field(default="data", alias="DATA_DIR")

    # Application Configuration
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("invoice_number_prefix")
    @classmethod
    def validate_prefix(cls, v):
        """Ensure invoice numbers keep a visible prefix."""
        if not v or not v.strip():
            raise ValueError("Invoice number prefix cannot be empty")
        return v.strip()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Ensure environment is valid."""
        valid_envs = ["development", "testing", "production"]
        if v.lower() not in valid_envs:
            raise ValueError(f"Environment must be one of: {valid_envs}")
        return v.lower()


def load_config(env_file: Optional[str] = None) -> BilldoraConfig:
    """Load configuration from environment variables and .env file."""
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    return BilldoraConfig()


# Global configuration instance
_config: Optional[BilldoraConfig] = None


def get_config() -> BilldoraConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config(env_file: Optional[str] = None) -> BilldoraConfig:
    """Reload configuration (useful for testing)."""
    global _config
    _config = load_config(env_file)
    return _config
