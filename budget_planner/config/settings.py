"""
Configuration Management for the Weekly Budget Planner

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The storage backend, the week anchor rule and the default weekly limit are
all chosen here, so no component branches on deployment details itself.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Worksheet names within the spreadsheet
    categories_sheet_name: str = Field(default="Categories")
    allocations_sheet_name: str = Field(default="WeeklyBudgets")
    expenses_sheet_name: str = Field(default="Expenses")
    config_sheet_name: str = Field(default="Config")
    audit_sheet_name: str = Field(default="AuditLog")

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Storage
    storage_backend: Literal["sqlite", "google_sheets", "memory"] = Field(
        default="sqlite",
        description="Which persistence backend to use; memory keeps nothing between runs"
    )
    database_url: str = Field(
        default="sqlite:///budget_planner.db",
        description="SQLAlchemy URL used by the sqlite backend"
    )

    # Budget rules
    default_weekly_budget_limit: float = Field(
        default=12000.0,
        gt=0,
        description="Weekly ceiling used until one is configured in storage"
    )
    week_anchor_weekday: int = Field(
        default=2,
        ge=0,
        le=6,
        description="Weekday that anchors a budget week (Monday=0, Wednesday=2)"
    )
    week_anchor_rule: Literal["backward", "forward"] = Field(
        default="backward",
        description="Resolve a date to the most recent anchor or the next one"
    )
    currency_symbol: str = Field(
        default="₱",
        description="Symbol used in alert and recommendation messages"
    )

    # Alert and sanity thresholds
    spending_alert_threshold: float = Field(
        default=10000.0,
        ge=0,
        description="Weekly spend above which a high-priority alert is raised"
    )
    max_expense_amount: float = Field(
        default=100000.0,
        gt=0,
        description="Single expense above this is flagged as suspicious (warning only)"
    )


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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

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


def validate_all_settings(settings: Optional[Settings] = None) -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a `<name>_error`
    message for each invalid entry.
    Google Sheets is only checked when it is the selected backend.
    """
    results = {}

    settings = settings or get_settings()

    try:
        app = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)
        return results

    if app.storage_backend == "google_sheets":
        try:
            _ = settings.google_sheets
            results["google_sheets"] = True
        except Exception as e:
            results["google_sheets"] = False
            results["google_sheets_error"] = str(e)

    if app.storage_backend == "sqlite":
        results["database"] = bool(app.database_url.strip())
        if not results["database"]:
            results["database_error"] = "APP_DATABASE_URL is empty"

    return results
