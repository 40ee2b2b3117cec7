"""
Configuration Management for Cashflow

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Scheduling policy knobs (strict anchors, projection multipliers, budget
alert thresholds) live next to the storage wiring so a deployment can see
every tunable in one place.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Persistence backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CASHFLOW_STORAGE_",
        extra="ignore"
    )

    backend: str = Field(
        default="memory",
        pattern="^(memory|sqlite)$",
        description="Storage backend to use"
    )
    sqlite_path: str = Field(
        default="cashflow.db",
        description="Path to the SQLite database file"
    )
    connect_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="How many times to retry opening the database"
    )

    @field_validator('sqlite_path')
    @classmethod
    def validate_sqlite_path(cls, v: str) -> str:
        """Warn if the parent directory doesn't exist (it may be mounted later)."""
        parent = Path(v).expanduser().parent
        if not parent.exists():
            import warnings
            warnings.warn(
                f"Directory for SQLite database not found: {parent}. "
                "Make sure it exists before running the scheduler."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="CASHFLOW_",
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
        description="Enable debug logging"
    )

    # Money
    default_currency: str = Field(
        default="VND",
        min_length=3,
        max_length=3,
        description="Currency projections are reported in"
    )

    # Recurrence policy
    strict_recurrence: bool = Field(
        default=False,
        description="Reject definitions missing the anchor their frequency uses"
    )
    upcoming_days: int = Field(
        default=30,
        ge=1,
        le=366,
        description="Look-ahead window for upcoming recurring transactions"
    )
    preview_count: int = Field(
        default=12,
        ge=1,
        le=120,
        description="How many future occurrences a preview lists"
    )

    # Budget alerts (percent of target, uncapped)
    budget_warning_percent: float = Field(
        default=80.0,
        ge=0.0,
        description="Spent percentage that raises a warning"
    )
    budget_critical_percent: float = Field(
        default=100.0,
        ge=0.0,
        description="Spent percentage that raises a critical alert"
    )

    # Monthly normalization
    daily_multiplier: float = Field(
        default=30.0,
        gt=0,
        description="Days per month used for daily recurrings"
    )
    weekly_multiplier: float = Field(
        default=4.345,
        gt=0,
        description="Average weeks per month used for weekly recurrings"
    )

    @field_validator('default_currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode='after')
    def validate_thresholds(self) -> 'AppSettings':
        if self.budget_warning_percent > self.budget_critical_percent:
            raise ValueError("Budget warning threshold cannot exceed critical threshold")
        return self


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
    def storage(self) -> StorageSettings:
        return StorageSettings()

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

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.storage
        results["storage"] = True
    except Exception as e:
        results["storage"] = False
        results["storage_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
