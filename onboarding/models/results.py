"""
Result Models for Progressive Onboarding

Outcomes returned to the rendering layer. Each one is a plain, tagged
value: callers branch on a status enum instead of catching exceptions,
so a second migration attempt can never be mistaken for a fresh one.
"""

from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


# =============================================================================
# VALIDATION
# =============================================================================

class FieldError(BaseModel):
    """A single field-level validation error."""

    field: str
    message: str


class ValidationResult(BaseModel):
    """
    Result of validating one draft shape.

    Valid exactly when there are no errors.
    """

    errors: list[FieldError] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def error_message_for(self, field: str) -> Optional[str]:
        """First message reported for `field`, if any."""
        for error in self.errors:
            if error.field == field:
                return error.message
        return None

    def has_field_error(self, field: str) -> bool:
        return any(error.field == field for error in self.errors)

    def messages(self) -> list[str]:
        return [error.message for error in self.errors]

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        return ValidationResult(errors=[*self.errors, *other.errors])


# =============================================================================
# MIGRATION
# =============================================================================

class MigrationStatus(str, Enum):
    """
    Tagged outcome of a migration attempt.

    Only SUCCESS means permanent records exist for this call.
    """
    SUCCESS = "success"
    ALREADY_COMPLETED = "already_completed"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    INVALID_DRAFT = "invalid_draft"
    INTERNAL = "internal"


class MigrationOutcome(BaseModel):
    """Result of MigrationCoordinator.migrate."""

    status: MigrationStatus
    account_id: UUID
    profile_id: Optional[UUID] = None
    entry_id: Optional[UUID] = None
    message: Optional[str] = None
    validation: Optional[ValidationResult] = None

    @property
    def success(self) -> bool:
        return self.status is MigrationStatus.SUCCESS

    @property
    def retryable(self) -> bool:
        """
        The draft was left untouched and adopting it again may succeed.

        Internal failures happen before the adopt transaction commits.
        """
        return self.status is MigrationStatus.INTERNAL


class MigrationVerification(BaseModel):
    """What the permanent store holds for an account after migration."""

    account_id: UUID
    onboarding_completed: bool = False
    has_profile: bool = False
    has_entry: bool = False


# =============================================================================
# FLOW
# =============================================================================

class FlowErrorKind(str, Enum):
    """
    Error classes surfaced to the rendering layer.

    Each maps to a distinct UI treatment.
    """
    VALIDATION = "validation"                 # inline field errors
    DRAFT_RESTARTED = "draft_restarted"       # fresh form, no detail shown
    TRANSPORT = "transport"                   # generic retry prompt
    ACCOUNT_CREATION = "account_creation"     # auth message shown verbatim
    MIGRATION_PARTIAL_FAILURE = "migration_partial_failure"  # contact support
    NOT_ALLOWED = "not_allowed"               # action invalid for this step


class StepOutcome(BaseModel):
    """
    Where the visitor lands after a flow action.

    `state` is always a safe place to render, even on error.
    """

    state: str
    errors: list[FieldError] = Field(default_factory=list)
    error_kind: Optional[FlowErrorKind] = None
    message: Optional[str] = None
    redirect_url: Optional[str] = None
    account_id: Optional[UUID] = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None
