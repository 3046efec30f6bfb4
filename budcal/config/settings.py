"""
Configuration Management for BudCal

Every setting is read from the environment through pydantic-settings.

DESIGN DECISION: One module owns every knob: Google credentials for the
calendar and the ledger sheet, the sync window and the log level. A
missing section only fails the component that needs it.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _warn_if_missing(path: str) -> str:
    if not Path(path).exists():
        import warnings
        warnings.warn(
            f"Google credentials file not found at {path}. "
            "Make sure it exists before running the application."
        )
    return path


class GoogleCalendarSettings(BaseSettings):
    """Google Calendar source configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_CALENDAR_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    delegated_user: Optional[str] = Field(
        default=None,
        description="User to impersonate when using domain-wide delegation"
    )
    page_size: int = Field(
        default=2500,
        ge=1,
        le=2500,
        description="Events requested per page (Calendar API maximum is 2500)"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """The key file may be mounted after startup: warn, do not fail."""
        return _warn_if_missing(v)


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets ledger storage configuration."""

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

    # Sheet names within the spreadsheet
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet for transactions"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        return _warn_if_missing(v)


class SyncSettings(BaseSettings):
    """Calendar sync behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        extra="ignore"
    )

    window_years_back: int = Field(
        default=1,
        ge=0,
        le=10,
        description="Years before today covered by a sync without explicit window"
    )
    window_years_forward: int = Field(
        default=1,
        ge=0,
        le=10,
        description="Years after today covered by a sync without explicit window"
    )
    untitled_placeholder: str = Field(
        default="Evento senza titolo",
        min_length=1,
        description="Description used for events without a title"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Process-wide options, read from the environment and `.env`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    debug_mode: bool = Field(
        default=False,
        description="Log at DEBUG regardless of log_level"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for local structured logs"
    )

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug_mode else self.log_level


class Settings(BaseSettings):
    """
    Root settings container.

    Each section is built on access, so an unconfigured Sheets backend
    does not stop the calendar side from loading.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def google_calendar(self) -> GoogleCalendarSettings:
        return GoogleCalendarSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Settings singleton for the life of the process.

    Tests call get_settings.cache_clear() after changing the environment.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Try to load every section.

    Returns {section: loaded} plus `{section}_error` for each failure.
    """
    results = {}

    settings = get_settings()

    for name in ("google_calendar", "google_sheets", "sync", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
