"""
Configuration Management for the Financial Dashboard

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see which storage backend is active and what it
needs, and ensures configuration is validated before a session starts.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Which persistence backend the session uses."""

    model_config = SettingsConfigDict(
        env_prefix="FINANCE_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    backend: Literal["local", "google_sheets"] = Field(
        default="local",
        description="local = snapshot file on disk, google_sheets = remote document per user"
    )
    snapshot_path: Path = Field(
        default=Path.home() / ".financial_dashboard" / "state.json",
        description="Key-value file holding the local snapshot"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets document storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the spreadsheet holding user documents"
    )
    documents_sheet_name: str = Field(
        default="Documents",
        description="Worksheet with one row per user"
    )
    poll_interval_seconds: float = Field(
        default=5.0,
        ge=0.5,
        le=300.0,
        description="How often the live subscription checks for remote changes"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before signing in."
            )
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

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Minimum log level"
    )
    log_json: bool = Field(
        default=True,
        description="Render logs as JSON (False = human-readable console output)"
    )

    # Persisted user preferences (theme, onboarding flag)
    preferences_path: Path = Field(
        default=Path.home() / ".financial_dashboard" / "preferences.json",
        description="Key-value file for user preferences"
    )

    # History kept by the audit logger
    audit_history_size: int = Field(
        default=500,
        ge=0,
        le=10000,
        description="Number of recent audit events kept in memory"
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
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

    # Note: These are loaded lazily to allow partial configuration
    # (Google Sheets settings are only required for the remote backend)

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

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

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for groups that failed.
    """
    results = {}

    settings = get_settings()

    groups = {
        "storage": lambda: settings.storage,
        "app": lambda: settings.app,
    }
    # The remote backend is optional unless it is the selected one
    try:
        backend = settings.storage.backend
    except Exception:
        backend = None
    if backend == "google_sheets":
        groups["google_sheets"] = lambda: settings.google_sheets

    for name, load in groups.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
