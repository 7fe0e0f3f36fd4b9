"""Configuration package."""

from onboarding.config.settings import (
    AppSettings,
    DatabaseSettings,
    DraftSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "DraftSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
