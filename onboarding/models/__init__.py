"""
Data Models Package

This package contains all Pydantic models used in the onboarding flow.
All data crossing a storage or UI boundary conforms to these schemas.
"""

from onboarding.models.draft import (
    AccountIdentity,
    AdoptionReceipt,
    DraftSession,
    EntryDraft,
    LocalSnapshot,
    OnboardingStep,
    PermanentAccount,
    PermanentEntry,
    PermanentProfile,
    PlanTier,
    ProfileDraft,
    SessionMetrics,
    utcnow,
)
from onboarding.models.results import (
    FieldError,
    FlowErrorKind,
    MigrationOutcome,
    MigrationStatus,
    MigrationVerification,
    StepOutcome,
    ValidationResult,
)
from onboarding.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Draft models
    "AccountIdentity",
    "AdoptionReceipt",
    "DraftSession",
    "EntryDraft",
    "LocalSnapshot",
    "OnboardingStep",
    "PermanentAccount",
    "PermanentEntry",
    "PermanentProfile",
    "PlanTier",
    "ProfileDraft",
    "SessionMetrics",
    "utcnow",
    # Results
    "FieldError",
    "FlowErrorKind",
    "MigrationOutcome",
    "MigrationStatus",
    "MigrationVerification",
    "StepOutcome",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
