"""
Configuration Management for Peer Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Ledger limits and account security knobs live next to each other so it is
easy to see every value the engine depends on.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Largest balance representable by a signed 64-bit column
MAX_BALANCE_DEFAULT = 2**63 - 1


class LedgerSettings(BaseSettings):
    """Transfer engine configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        extra="ignore"
    )

    max_balance: int = Field(
        default=MAX_BALANCE_DEFAULT,
        ge=1,
        description="Upper bound for any account balance (currency units)"
    )
    cost_rounding: str = Field(
        default="ceiling",
        description="How fractional transfer costs are rounded: ceiling or half_up"
    )

    @field_validator('cost_rounding')
    @classmethod
    def validate_cost_rounding(cls, v: str) -> str:
        """Only the two supported rounding modes are accepted."""
        v = v.strip().lower()
        if v not in {"ceiling", "half_up"}:
            raise ValueError(f"Unsupported cost rounding: {v}. Allowed: ceiling, half_up")
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
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )

    # Account security
    password_hash_iterations: int = Field(
        default=200_000,
        ge=1,
        description="PBKDF2 iterations used when hashing passwords"
    )
    min_password_length: int = Field(
        default=1,
        ge=1,
        description="Shortest password the account service accepts"
    )

    @property
    def is_production(self) -> bool:
        return self.app_environment.lower() == "production"


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
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with a
    "<name>_error" entry for every section that failed.
    """
    results = {}

    settings = get_settings()

    for name in ("ledger", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
