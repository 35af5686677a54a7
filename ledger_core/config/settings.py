"""
Configuration Management for the Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

import warnings
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ledger_core.models.transaction import DuplicateDetectionConfig


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

    # Sheet names within the spreadsheet
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet for the transaction collection"
    )
    migration_flags_sheet_name: str = Field(
        default="MigrationFlags",
        description="Name of the sheet for one-time migration flags"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class LedgerSettings(BaseSettings):
    """
    Ledger consistency engine settings.

    Loads configuration from LEDGER_* environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Duplicate detection defaults
    amount_tolerance: float = Field(
        default=0.02,
        ge=0.0,
        le=1.0,
        description="Relative amount tolerance (0.02 = 2%)"
    )
    fixed_amount_tolerance: Decimal = Field(
        default=Decimal("1.00"),
        ge=0,
        description="Absolute amount tolerance in currency units"
    )
    date_tolerance: int = Field(
        default=3,
        ge=0,
        le=31,
        description="Date tolerance in days"
    )
    require_exact_description: bool = Field(
        default=False,
        description="Only score identical descriptions"
    )
    require_same_account: bool = Field(
        default=True,
        description="Account mismatch scores zero instead of a flat 5"
    )
    duplicate_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Similarity at or above which a pair is a duplicate"
    )

    # Transfer matching
    transfer_window_days: int = Field(
        default=7,
        ge=0,
        description="Maximum days between the legs of a transfer"
    )

    # Concurrency
    init_wait_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="How long concurrent callers wait for initialization"
    )

    # Storage
    storage_backend: Literal["memory", "json", "google_sheets"] = Field(
        default="json",
        description="Which ledger storage backend to use"
    )
    json_path: str = Field(
        default="ledger.json",
        description="Path of the ledger document for the json backend"
    )

    def duplicate_detection_config(self) -> DuplicateDetectionConfig:
        """Build the default detection config from these settings."""
        return DuplicateDetectionConfig(
            amount_tolerance=self.amount_tolerance,
            fixed_amount_tolerance=self.fixed_amount_tolerance,
            date_tolerance=self.date_tolerance,
            require_exact_description=self.require_exact_description,
            require_same_account=self.require_same_account,
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

    # Load all sub-settings
    # Note: These are loaded lazily to allow partial configuration

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks. Google Sheets settings are only
    checked when that backend is selected.
    """
    results = {}

    settings = get_settings()

    try:
        ledger = settings.ledger
        results["ledger"] = True
    except Exception as e:
        results["ledger"] = False
        results["ledger_error"] = str(e)
        return results

    if ledger.storage_backend == "google_sheets":
        try:
            _ = settings.google_sheets
            results["google_sheets"] = True
        except Exception as e:
            results["google_sheets"] = False
            results["google_sheets_error"] = str(e)

    return results
