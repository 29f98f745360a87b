"""Configuration package."""

from household_ledger.config.settings import (
    AppSettings,
    DatabaseSettings,
    EngineSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "EngineSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
