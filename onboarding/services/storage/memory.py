"""
In-Memory Storage Implementation

Process-local implementations of every storage interface, sharing one
InMemoryBackend so that adopt_draft can see the drafts it consumes.

Used for tests and for running the flow without a database. All state
changes happen under a single asyncio.Lock, which gives adopt_draft the
same all-or-nothing behaviour as the SQL transaction.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Optional
from uuid import UUID, uuid4

from onboarding.models.audit import AuditEvent
from onboarding.models.draft import (
    AccountIdentity,
    AdoptionReceipt,
    DraftSession,
    EntryDraft,
    OnboardingStep,
    PermanentAccount,
    PermanentEntry,
    PermanentProfile,
    ProfileDraft,
    SessionMetrics,
    utcnow,
)
from onboarding.services.storage.interface import (
    AccountCreationError,
    AuditStorageInterface,
    AuthProviderInterface,
    DraftConsumedError,
    DraftExpiredStorageError,
    DraftStoreInterface,
    NotFoundError,
    OrderingError,
    PermanentStorageInterface,
    StorageError,
)
from onboarding.services.storage.passwords import hash_pw


class InMemoryBackend:
    """Shared state for the in-memory stores."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock
        self.lock = asyncio.Lock()
        self.drafts: dict[str, DraftSession] = {}
        self.accounts: dict[UUID, PermanentAccount] = {}
        self.password_hashes: dict[UUID, str] = {}
        self.profiles: dict[UUID, PermanentProfile] = {}
        self.entries: dict[UUID, PermanentEntry] = {}

    def live_draft(self, token: str) -> DraftSession:
        """The stored draft for `token`, if it can still be written to."""
        draft = self.drafts.get(token)
        if draft is None:
            raise NotFoundError("Draft not found")
        if draft.is_completed:
            raise DraftConsumedError("Draft already completed")
        if draft.is_expired(self.clock()):
            raise DraftExpiredStorageError("Draft expired")
        return draft


class InMemoryDraftStore(DraftStoreInterface):

    def __init__(self, backend: Optional[InMemoryBackend] = None):
        self._backend = backend or InMemoryBackend()

    @property
    def backend(self) -> InMemoryBackend:
        return self._backend

    async def create_draft(
        self,
        token: str,
        expires_at: datetime,
        metadata: Optional[dict[str, Any]] = None,
    ) -> DraftSession:
        async with self._backend.lock:
            if token in self._backend.drafts:
                raise StorageError("Draft token collision")
            now = self._backend.clock()
            draft = DraftSession(
                token=token,
                step=OnboardingStep.PROFILE,
                expires_at=expires_at,
                metadata=dict(metadata or {}),
                created_at=now,
                updated_at=now,
            )
            self._backend.drafts[token] = draft
            return draft.model_copy(deep=True)

    async def get_draft(self, token: str) -> Optional[DraftSession]:
        async with self._backend.lock:
            draft = self._backend.drafts.get(token)
            return draft.model_copy(deep=True) if draft else None

    async def update_draft(
        self,
        token: str,
        *,
        profile: Optional[ProfileDraft] = None,
        entry: Optional[EntryDraft] = None,
        contact_email: Optional[str] = None,
        min_step: Optional[int] = None,
    ) -> DraftSession:
        async with self._backend.lock:
            draft = self._backend.live_draft(token)

            changes: dict[str, Any] = {"updated_at": self._backend.clock()}
            if profile is not None:
                changes["profile"] = profile.model_copy(deep=True)
            if entry is not None:
                if draft.profile is None and profile is None:
                    raise OrderingError("Entry cannot be saved before a profile")
                changes["entry"] = entry.model_copy(deep=True)
            if contact_email is not None:
                changes["contact_email"] = contact_email
            if min_step is not None:
                changes["step"] = OnboardingStep(max(int(draft.step), int(min_step)))

            updated = draft.model_copy(update=changes)
            self._backend.drafts[token] = updated
            return updated.model_copy(deep=True)

    async def delete_expired(self, now: datetime) -> int:
        async with self._backend.lock:
            expired = [
                token
                for token, draft in self._backend.drafts.items()
                if not draft.is_completed and draft.is_expired(now)
            ]
            for token in expired:
                del self._backend.drafts[token]
            return len(expired)

    async def metrics(self, now: datetime) -> SessionMetrics:
        async with self._backend.lock:
            drafts = list(self._backend.drafts.values())
        completed = sum(1 for d in drafts if d.is_completed)
        active = sum(1 for d in drafts if not d.is_completed and not d.is_expired(now))
        return SessionMetrics(total=len(drafts), completed=completed, active=active)


class InMemoryPermanentStorage(PermanentStorageInterface):

    def __init__(self, backend: InMemoryBackend):
        self._backend = backend

    async def adopt_draft(self, token: str, account_id: UUID) -> AdoptionReceipt:
        async with self._backend.lock:
            draft = self._backend.live_draft(token)
            account = self._backend.accounts.get(account_id)
            if account is None:
                raise StorageError(f"Unknown account: {account_id}")
            if draft.profile is None or draft.entry is None:
                raise StorageError("Draft is missing profile or entry data")

            # Build every record before mutating anything.
            try:
                profile = PermanentProfile(
                    account_id=account_id,
                    **draft.profile.model_dump(),
                )
                entry = PermanentEntry(
                    profile_id=profile.id,
                    account_id=account_id,
                    **draft.entry.model_dump(),
                )
            except ValueError as e:
                raise StorageError(f"Draft data rejected: {e}") from e

            now = self._backend.clock()
            self._backend.profiles[profile.id] = profile
            self._backend.entries[entry.id] = entry
            self._backend.accounts[account_id] = account.model_copy(update={
                "onboarding_completed": True,
                "onboarding_source": "step_flow",
            })
            self._backend.drafts[token] = draft.model_copy(update={
                "completed_at": now,
                "updated_at": now,
            })

            return AdoptionReceipt(
                account_id=account_id,
                profile_id=profile.id,
                entry_id=entry.id,
            )

    async def get_account(self, account_id: UUID) -> Optional[PermanentAccount]:
        return self._backend.accounts.get(account_id)

    async def list_profiles(self, account_id: UUID) -> list[PermanentProfile]:
        return [p for p in self._backend.profiles.values() if p.account_id == account_id]

    async def list_entries(self, profile_id: UUID) -> list[PermanentEntry]:
        return [e for e in self._backend.entries.values() if e.profile_id == profile_id]


class InMemoryAuthProvider(AuthProviderInterface):
    """Accounts kept in the shared backend; one signed-in identity at a time."""

    def __init__(self, backend: InMemoryBackend):
        self._backend = backend
        self._current: Optional[AccountIdentity] = None

    async def get_current_identity(self) -> Optional[AccountIdentity]:
        return self._current

    async def create_account(self, email: str, password: str) -> AccountIdentity:
        normalized = email.strip().lower()
        async with self._backend.lock:
            if any(a.email == normalized for a in self._backend.accounts.values()):
                raise AccountCreationError("User already registered")
            account = PermanentAccount(id=uuid4(), email=normalized)
            self._backend.accounts[account.id] = account
            self._backend.password_hashes[account.id] = hash_pw(password)

        self._current = AccountIdentity(id=account.id, email=account.email)
        return self._current

    async def sign_out(self) -> None:
        self._current = None


class InMemoryAuditStorage(AuditStorageInterface):

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
