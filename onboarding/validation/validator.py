"""
Draft Validation

DESIGN DECISION: Validation is advisory and exhaustive.

- Every rule is checked on every call; a form never shows one error,
  gets fixed, then shows the next one.
- Results are field-level ({field, message}) so the rendering layer can
  place them inline.
- Nothing here touches storage. A failed validation halts the step
  before any cache or server write.

The permanent store applies its own constraints independently. This
engine exists for fast feedback, and as a defense-in-depth re-check
before migration.
"""

import re
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel

from onboarding.models.results import FieldError, ValidationResult


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MIN_AGE = 18
MAX_AGE = 120
MIN_RATING = 5.0
MAX_RATING = 10.0
MAX_AMOUNT = Decimal("999999.99")
MAX_DURATION_MINUTES = 1440
MAX_NUTS = 99
MAX_EMAIL_LENGTH = 255
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 72

DraftInput = Union[BaseModel, Mapping[str, Any], None]


def _as_dict(draft: DraftInput) -> dict[str, Any]:
    if draft is None:
        return {}
    if isinstance(draft, BaseModel):
        return draft.model_dump()
    return dict(draft)


def _as_decimal(value: Any) -> Optional[Decimal]:
    """Numeric form input as Decimal, or None if it isn't a number."""
    if isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None


def _as_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class DraftValidator:
    """
    Validates the three draft shapes and account credentials.

    Stateless apart from the source of "today", which is injectable so
    date rules can be tested deterministically.
    """

    def __init__(self, today: Optional[Callable[[], date]] = None):
        self._today = today or date.today

    # -------------------------------------------------------------------------
    # Shared rule helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _check_length(
        errors: list[FieldError],
        data: dict[str, Any],
        field: str,
        limit: int,
        label: str,
    ) -> None:
        value = data.get(field)
        if value and len(str(value)) > limit:
            errors.append(FieldError(
                field=field,
                message=f"{label} must be {limit} characters or less",
            ))

    @staticmethod
    def _check_number(
        errors: list[FieldError],
        data: dict[str, Any],
        field: str,
        label: str,
    ) -> Optional[Decimal]:
        """Presence and numeric checks; returns the number when both pass."""
        value = data.get(field)
        if _is_blank(value):
            errors.append(FieldError(field=field, message=f"{label} is required"))
            return None
        number = _as_decimal(value)
        if number is None or not number.is_finite():
            errors.append(FieldError(field=field, message=f"{label} must be a number"))
            return None
        return number

    # -------------------------------------------------------------------------
    # Public rules
    # -------------------------------------------------------------------------

    def validate_profile(self, draft: DraftInput) -> ValidationResult:
        """
        Validate profile fields.

        Rules:
        - name: required, at most 100 characters
        - age: required, 18..120
        - rating: required, 5.0..10.0
        - ethnicity, hair_color: at most 50 characters
        - location_city, location_country: at most 100 characters
        """
        data = _as_dict(draft)
        errors: list[FieldError] = []

        name = data.get("name")
        if _is_blank(name):
            errors.append(FieldError(field="name", message="Name is required"))
        elif len(str(name)) > 100:
            errors.append(FieldError(field="name", message="Name must be 100 characters or less"))

        age = self._check_number(errors, data, "age", "Age")
        if age is not None:
            if age < MIN_AGE:
                errors.append(FieldError(field="age", message=f"Age must be at least {MIN_AGE}"))
            elif age > MAX_AGE:
                errors.append(FieldError(field="age", message=f"Age must be {MAX_AGE} or less"))

        rating = self._check_number(errors, data, "rating", "Rating")
        if rating is not None:
            if rating < Decimal(str(MIN_RATING)):
                errors.append(FieldError(field="rating", message="Rating must be at least 5.0"))
            elif rating > Decimal(str(MAX_RATING)):
                errors.append(FieldError(field="rating", message="Rating must be 10.0 or less"))

        self._check_length(errors, data, "ethnicity", 50, "Ethnicity")
        self._check_length(errors, data, "hair_color", 50, "Hair color")
        self._check_length(errors, data, "location_city", 100, "City")
        self._check_length(errors, data, "location_country", 100, "Country")

        return ValidationResult(errors=errors)

    def validate_entry(self, draft: DraftInput) -> ValidationResult:
        """
        Validate an activity entry.

        Rules:
        - date: required, not after today
        - amount: required, 0..999999.99
        - duration: required, greater than 0, at most 1440 minutes
        - nuts: required, 0..99
        """
        data = _as_dict(draft)
        errors: list[FieldError] = []

        raw_date = data.get("date")
        if _is_blank(raw_date):
            errors.append(FieldError(field="date", message="Date is required"))
        else:
            entry_date = _as_date(raw_date)
            if entry_date is None:
                errors.append(FieldError(field="date", message="Invalid date format"))
            elif entry_date > self._today():
                errors.append(FieldError(field="date", message="Date cannot be in the future"))

        amount = self._check_number(errors, data, "amount", "Amount spent")
        if amount is not None:
            if amount < 0:
                errors.append(FieldError(field="amount", message="Amount spent cannot be negative"))
            elif amount > MAX_AMOUNT:
                errors.append(FieldError(field="amount", message="Amount spent is too large"))

        duration = self._check_number(errors, data, "duration", "Duration")
        if duration is not None:
            if duration <= 0:
                errors.append(FieldError(field="duration", message="Duration must be greater than 0"))
            elif duration > MAX_DURATION_MINUTES:
                errors.append(FieldError(field="duration", message="Duration cannot exceed 24 hours"))

        nuts = self._check_number(errors, data, "nuts", "Number of nuts")
        if nuts is not None:
            if nuts < 0:
                errors.append(FieldError(field="nuts", message="Number of nuts cannot be negative"))
            elif nuts > MAX_NUTS:
                errors.append(FieldError(field="nuts", message="Number of nuts seems unrealistic"))

        return ValidationResult(errors=errors)

    def validate_email(self, email: Optional[str]) -> ValidationResult:
        errors: list[FieldError] = []

        if _is_blank(email):
            errors.append(FieldError(field="email", message="Email is required"))
        elif not EMAIL_PATTERN.match(email):
            errors.append(FieldError(field="email", message="Invalid email format"))
        elif len(email) > MAX_EMAIL_LENGTH:
            errors.append(FieldError(field="email", message="Email is too long"))

        return ValidationResult(errors=errors)

    def validate_password(self, password: Optional[str]) -> ValidationResult:
        errors: list[FieldError] = []

        if not password:
            errors.append(FieldError(field="password", message="Password is required"))
        elif len(password) < MIN_PASSWORD_LENGTH:
            errors.append(FieldError(
                field="password",
                message=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            ))
        elif len(password) > MAX_PASSWORD_LENGTH:
            errors.append(FieldError(
                field="password",
                message=f"Password must be {MAX_PASSWORD_LENGTH} characters or less",
            ))

        return ValidationResult(errors=errors)

    def validate_credentials(
        self,
        email: Optional[str],
        password: Optional[str],
    ) -> ValidationResult:
        """Email and password together, as submitted on the account step."""
        return self.validate_email(email).merge(self.validate_password(password))


_default_validator = DraftValidator()


def validate_profile(draft: DraftInput) -> ValidationResult:
    return _default_validator.validate_profile(draft)


def validate_entry(draft: DraftInput) -> ValidationResult:
    return _default_validator.validate_entry(draft)


def validate_email(email: Optional[str]) -> ValidationResult:
    return _default_validator.validate_email(email)


def validate_password(password: Optional[str]) -> ValidationResult:
    return _default_validator.validate_password(password)
