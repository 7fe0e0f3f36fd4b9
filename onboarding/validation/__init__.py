"""Validation package."""

from onboarding.validation.validator import (
    DraftValidator,
    validate_email,
    validate_entry,
    validate_password,
    validate_profile,
)

__all__ = [
    "DraftValidator",
    "validate_email",
    "validate_entry",
    "validate_password",
    "validate_profile",
]
