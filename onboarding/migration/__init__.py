"""Draft-to-account migration package."""

from onboarding.migration.coordinator import MigrationCoordinator

__all__ = ["MigrationCoordinator"]
