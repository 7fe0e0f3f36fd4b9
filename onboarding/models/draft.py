"""
Core Data Models for Progressive Onboarding

These models define the shapes flowing between the device cache, the
draft store and the permanent store. They are designed to:
1. Carry partially filled forms without rejecting them
2. Be JSON-serializable for the device cache
3. Keep the draft token out of logs and reprs

DESIGN DECISION: Draft shapes are deliberately lenient. Bounds such as
"age >= 18" live in the validator, which reports field-level errors,
instead of in the model, which could only raise. A half-typed form must
still round-trip through the cache.
"""

import datetime as dt
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class OnboardingStep(IntEnum):
    """
    Steps recorded on a draft.

    The recorded step only ever moves forward through normal flow.
    """
    PROFILE = 1
    ENTRY = 2
    ACCOUNT = 3
    PLAN = 4


class PlanTier(str, Enum):
    """Plans offered on the final step."""
    FREE = "free"
    PLAYER_MONTHLY = "player_monthly"
    PLAYER_ANNUAL = "player_annual"

    @property
    def is_paid(self) -> bool:
        return self is not PlanTier.FREE


# =============================================================================
# DRAFT SHAPES
# =============================================================================

class ProfileDraft(BaseModel):
    """
    Profile fields collected on step 1.

    Every field is optional here; see DraftValidator for the rules.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = None
    age: Optional[int] = None
    rating: Optional[float] = None
    ethnicity: Optional[str] = None
    hair_color: Optional[str] = None
    location_city: Optional[str] = None
    location_country: Optional[str] = None


class EntryDraft(BaseModel):
    """Activity entry collected on step 2."""

    date: Optional[dt.date] = None
    amount: Optional[Decimal] = Field(
        default=None,
        description="Amount spent"
    )
    duration: Optional[int] = Field(
        default=None,
        description="Duration in minutes"
    )
    nuts: Optional[int] = Field(
        default=None,
        description="Count recorded for the entry"
    )


class DraftSession(BaseModel):
    """
    Ephemeral, server-held onboarding draft.

    CRITICAL: `token` is the only credential for the draft. It is
    excluded from repr and must never be written to a log.
    """

    id: UUID = Field(default_factory=uuid4)
    token: str = Field(..., min_length=1, repr=False)
    step: OnboardingStep = OnboardingStep.PROFILE
    profile: Optional[ProfileDraft] = None
    entry: Optional[EntryDraft] = None
    contact_email: Optional[str] = None
    expires_at: datetime
    completed_at: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def validate_step_ordering(self) -> "DraftSession":
        """An entry can only exist alongside a profile."""
        if self.entry is not None and self.profile is None:
            raise ValueError("Entry draft requires a profile draft")
        return self

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at <= (now or utcnow())

    def remaining_time(self, now: Optional[datetime] = None) -> timedelta:
        """Time left before expiry, never negative."""
        return max(timedelta(0), self.expires_at - (now or utcnow()))

    @staticmethod
    def format_remaining_time(remaining: timedelta) -> str:
        """Render a remaining time as `1h 5m` or `42m`."""
        minutes = int(remaining.total_seconds() // 60)
        hours, minutes = divmod(minutes, 60)
        if hours > 0:
            return f"{hours}h {minutes}m"
        return f"{minutes}m"


class LocalSnapshot(BaseModel):
    """What the device cache currently holds for the flow."""

    profile: Optional[ProfileDraft] = None
    entry: Optional[EntryDraft] = None
    step: Optional[OnboardingStep] = None
    pending: list[str] = Field(
        default_factory=list,
        description="Cache keys written locally but not confirmed by the server"
    )

    @property
    def has_profile(self) -> bool:
        return self.profile is not None

    @property
    def has_entry(self) -> bool:
        return self.entry is not None


class SessionMetrics(BaseModel):
    """Draft counts for the maintenance dashboard."""

    total: int = Field(ge=0)
    completed: int = Field(ge=0)
    active: int = Field(ge=0)


# =============================================================================
# PERMANENT RECORDS (owned by the storage collaborator)
# =============================================================================

class AccountIdentity(BaseModel):
    """An authenticated identity as reported by the auth collaborator."""

    id: UUID
    email: str


class PermanentAccount(BaseModel):
    id: UUID
    email: str
    onboarding_completed: bool = False
    onboarding_source: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class PermanentProfile(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    account_id: UUID
    name: str
    age: int
    rating: float
    ethnicity: Optional[str] = None
    hair_color: Optional[str] = None
    location_city: Optional[str] = None
    location_country: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class PermanentEntry(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    profile_id: UUID
    account_id: UUID
    date: dt.date
    amount: Decimal
    duration: int
    nuts: int
    created_at: datetime = Field(default_factory=utcnow)


class AdoptionReceipt(BaseModel):
    """Identifiers assigned by the storage collaborator during adoption."""

    account_id: UUID
    profile_id: UUID
    entry_id: UUID
