"""
Audit Models for Progressive Onboarding

Significant steps of the onboarding flow are recorded as audit events.
This provides:
1. Traceability from first visit to migrated account
2. Evidence for support when a migration fails after signup
3. Funnel data for the maintenance dashboard

DESIGN DECISION: Audit logs are append-only, and they reference drafts
by id. The draft token is a bearer credential and never appears here.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Draft lifecycle
    DRAFT_CREATED = "draft_created"
    DRAFT_RESUMED = "draft_resumed"
    DRAFT_RESTARTED = "draft_restarted"
    DRAFTS_PURGED = "drafts_purged"

    # Step progress
    PROFILE_SAVED = "profile_saved"
    ENTRY_SAVED = "entry_saved"
    STEP_ADVANCED = "step_advanced"
    PLAN_SELECTED = "plan_selected"

    # Account and migration
    ACCOUNT_CREATED = "account_created"
    MIGRATION_COMPLETED = "migration_completed"
    MIGRATION_FAILED = "migration_failed"

    # System events
    TRANSPORT_FAILURE = "transport_failure"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """A single audit event."""

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'draft', 'account')"
    )
    entity_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a visitor action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.draft_created(draft_id)
        event = AuditEventBuilder.migration_failed(draft_id, account_id, "internal", msg)
    """

    @staticmethod
    def draft_created(draft_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DRAFT_CREATED,
            entity_type="draft",
            entity_id=draft_id,
            description="Onboarding draft created",
            is_user_action=True,
        )

    @staticmethod
    def draft_resumed(draft_id: UUID, step: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DRAFT_RESUMED,
            entity_type="draft",
            entity_id=draft_id,
            description=f"Onboarding draft resumed at step {step}",
            details={"step": step},
        )

    @staticmethod
    def draft_restarted(reason: str, draft_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DRAFT_RESTARTED,
            severity=AuditSeverity.WARNING,
            entity_type="draft",
            entity_id=draft_id,
            description=f"Onboarding restarted: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def step_saved(draft_id: UUID, step_name: str) -> AuditEvent:
        event_type = (
            AuditEventType.PROFILE_SAVED
            if step_name == "profile"
            else AuditEventType.ENTRY_SAVED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type="draft",
            entity_id=draft_id,
            description=f"Draft {step_name} saved",
            is_user_action=True,
        )

    @staticmethod
    def step_advanced(draft_id: UUID, step: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STEP_ADVANCED,
            entity_type="draft",
            entity_id=draft_id,
            description=f"Draft advanced to step {step}",
            details={"step": step},
        )

    @staticmethod
    def account_created(account_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            entity_type="account",
            entity_id=account_id,
            description="Account created from onboarding",
            is_user_action=True,
        )

    @staticmethod
    def migration_completed(
        account_id: UUID,
        profile_id: UUID,
        entry_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_COMPLETED,
            entity_type="account",
            entity_id=account_id,
            description="Draft migrated into permanent records",
            details={
                "profile_id": str(profile_id),
                "entry_id": str(entry_id),
            },
        )

    @staticmethod
    def migration_failed(
        account_id: UUID,
        status: str,
        error_message: Optional[str],
        draft_id: Optional[UUID] = None,
    ) -> AuditEvent:
        # The account exists at this point, so a failure strands it without data.
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_FAILED,
            severity=AuditSeverity.CRITICAL,
            entity_type="account",
            entity_id=account_id,
            description=f"Migration failed after account creation: {status}",
            details={
                "status": status,
                "draft_id": str(draft_id) if draft_id else None,
            },
            error_message=error_message,
        )

    @staticmethod
    def plan_selected(account_id: UUID, plan: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_SELECTED,
            entity_type="account",
            entity_id=account_id,
            description=f"Plan selected: {plan}",
            details={"plan": plan},
            is_user_action=True,
        )

    @staticmethod
    def transport_failure(operation: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSPORT_FAILURE,
            severity=AuditSeverity.WARNING,
            description=f"Draft store unreachable during {operation}",
            details={"operation": operation},
            error_message=error_message,
        )

    @staticmethod
    def drafts_purged(deleted_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DRAFTS_PURGED,
            description=f"Purged {deleted_count} expired drafts",
            details={"deleted_count": deleted_count},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )
