"""
Abstract Storage Interface

DESIGN DECISION: Every collaborator the onboarding flow talks to is an
abstract interface. This allows us to:
1. Run the whole flow against in-memory stores in tests
2. Swap the SQL backend for a hosted backend-as-a-service later
3. Keep the flow logic decoupled from transports

The draft store is addressed by bearer token only. The permanent store
exposes a single atomic adopt operation; that transaction is what makes
migration exactly-once, so no locking happens above this layer.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from onboarding.models.draft import (
    AccountIdentity,
    AdoptionReceipt,
    DraftSession,
    EntryDraft,
    PermanentAccount,
    PermanentEntry,
    PermanentProfile,
    PlanTier,
    ProfileDraft,
    SessionMetrics,
)
from onboarding.models.audit import AuditEvent


class DraftStoreInterface(ABC):
    """
    Keyed record store for ephemeral drafts.

    Implementations enforce the TTL and the monotonic step counter
    server-side; callers cannot move a draft backwards.
    """

    @abstractmethod
    async def create_draft(
        self,
        token: str,
        expires_at: datetime,
        metadata: Optional[dict[str, Any]] = None,
    ) -> DraftSession:
        """
        Allocate a new draft at step 1.

        Raises:
            StorageConnectionError: If the store is unreachable
        """
        pass

    @abstractmethod
    async def get_draft(self, token: str) -> Optional[DraftSession]:
        """
        Read a draft by token, exactly as stored.

        Completed and expired drafts are returned too; classifying them
        is the caller's job.

        Returns:
            The draft if a record exists, None otherwise
        """
        pass

    @abstractmethod
    async def update_draft(
        self,
        token: str,
        *,
        profile: Optional[ProfileDraft] = None,
        entry: Optional[EntryDraft] = None,
        contact_email: Optional[str] = None,
        min_step: Optional[int] = None,
    ) -> DraftSession:
        """
        Partially update a live draft.

        Only the given fields change. `min_step` raises the step to at
        least that value and never lowers it.

        Raises:
            NotFoundError: If no draft exists for the token
            DraftExpiredStorageError: If the draft's TTL has passed
            DraftConsumedError: If the draft was already migrated
            OrderingError: If an entry is written before any profile
            StorageConnectionError: If the store is unreachable
        """
        pass

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        """
        Delete expired drafts that were never completed.

        Returns:
            Number of drafts deleted
        """
        pass

    @abstractmethod
    async def metrics(self, now: datetime) -> SessionMetrics:
        """Count total, completed and still-active drafts."""
        pass


class PermanentStorageInterface(ABC):
    """
    Permanent, account-owned records.

    Only `adopt_draft` is used by the onboarding flow; the read methods
    back migration verification.
    """

    @abstractmethod
    async def adopt_draft(self, token: str, account_id: UUID) -> AdoptionReceipt:
        """
        Convert a draft into permanent records in one transaction.

        As one unit: create the profile and entry under the account, flag
        the account as onboarded, and set the draft's completed_at. If
        anything fails nothing is written.

        Raises:
            NotFoundError: If no draft exists for the token
            DraftExpiredStorageError: If the draft's TTL has passed
            DraftConsumedError: If the draft was already adopted
            StorageError: For any other failure (nothing was written)
        """
        pass

    @abstractmethod
    async def get_account(self, account_id: UUID) -> Optional[PermanentAccount]:
        pass

    @abstractmethod
    async def list_profiles(self, account_id: UUID) -> list[PermanentProfile]:
        pass

    @abstractmethod
    async def list_entries(self, profile_id: UUID) -> list[PermanentEntry]:
        pass


class AuthProviderInterface(ABC):
    """
    Authentication collaborator.

    Credential management itself is opaque to the flow; it only needs
    to know who is signed in and how to create an account.
    """

    @abstractmethod
    async def get_current_identity(self) -> Optional[AccountIdentity]:
        """The signed-in identity, or None for a visitor."""
        pass

    @abstractmethod
    async def create_account(self, email: str, password: str) -> AccountIdentity:
        """
        Create an account and sign it in.

        Raises:
            AccountCreationError: With a message safe to show verbatim
        """
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        pass


class CheckoutPort(ABC):
    """Payment provider boundary used on the plan step."""

    @abstractmethod
    async def start_checkout(self, identity: AccountIdentity, plan: PlanTier) -> str:
        """
        Start a hosted checkout for a paid plan.

        Returns:
            URL to redirect the visitor to

        Raises:
            CheckoutError: If the provider refused or was unreachable
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Events for one entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DraftExpiredStorageError(StorageError):
    """The draft exists but its TTL has passed."""
    pass


class DraftConsumedError(StorageError):
    """The draft was already adopted into permanent records."""
    pass


class OrderingError(StorageError):
    """A write would break step ordering (entry before profile)."""
    pass


class StorageConnectionError(StorageError):
    """Could not reach the storage backend."""
    pass


class AccountCreationError(Exception):
    """Account creation was refused; the message is user-facing."""
    pass


class CheckoutError(Exception):
    """The payment provider could not start a checkout."""
    pass
