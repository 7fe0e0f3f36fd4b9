"""
Configuration Management for Progressive Onboarding

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Draft lifetime, the device cache namespace and the database location
are the knobs that differ between environments.
"""

from datetime import timedelta
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DraftSettings(BaseSettings):
    """Ephemeral draft session configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ONBOARDING_DRAFT_",
        extra="ignore"
    )

    session_ttl_hours: float = Field(
        default=2.0,
        gt=0,
        le=72,
        description="Hours before an unfinished draft expires"
    )
    cache_prefix: str = Field(
        default="onboarding_",
        min_length=1,
        description="Namespace prefix for device-local cache keys"
    )
    token_bytes: int = Field(
        default=32,
        ge=16,
        le=128,
        description="Entropy of generated draft tokens, in bytes"
    )

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(hours=self.session_ttl_hours)


class DatabaseSettings(BaseSettings):
    """SQL storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ONBOARDING_DB_",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite:///onboarding.db",
        description="SQLAlchemy database URL"
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging only)"
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Reject obviously malformed URLs early."""
        if "://" not in v:
            raise ValueError(f"Not a database URL: {v!r}")
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

    # Migration recovery
    migration_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for the support-side adopt-draft retry"
    )
    support_email: str = Field(
        default="support@example.com",
        description="Shown to visitors when migration fails after signup"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Sections are re-read from the environment on each access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def drafts(self) -> DraftSettings:
        return DraftSettings()

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Process-wide settings instance.

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Load every settings section and report the ones that fail.

    Returns a dict of {setting_name: is_valid}, with a
    `<name>_error` entry for each failure. Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("drafts", "database", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
