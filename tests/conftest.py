"""
Shared fixtures for the onboarding test suite.

Everything runs against the in-memory stores with a fixed clock, so
expiry and "today" are deterministic. No network, no database files.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID

import pytest
from tenacity import wait_none

from onboarding.audit import AuditLogger
from onboarding.flow import DraftRepository, StepController
from onboarding.migration import MigrationCoordinator
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
from onboarding.services.cache import InMemoryDeviceStorage, LocalCache
from onboarding.services.drafts import DraftSessionClient
from onboarding.services.storage import (
    CheckoutError,
    CheckoutPort,
    DraftStoreInterface,
    InMemoryAuditStorage,
    InMemoryAuthProvider,
    InMemoryBackend,
    InMemoryDraftStore,
    InMemoryPermanentStorage,
    PermanentStorageInterface,
    StorageConnectionError,
    StorageError,
)
from onboarding.validation import DraftValidator


TODAY = date(2025, 10, 10)
NOW = datetime(2025, 10, 10, 12, 0, tzinfo=timezone.utc)
CACHE_PREFIX = "test_"


# =============================================================================
# Fakes
# =============================================================================

class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FlakyDraftStore(DraftStoreInterface):
    """Wraps a draft store; raises StorageConnectionError while offline."""

    def __init__(self, inner: DraftStoreInterface):
        self.inner = inner
        self.offline = False

    def _check(self) -> None:
        if self.offline:
            raise StorageConnectionError("Draft store unreachable")

    async def create_draft(self, token, expires_at, metadata=None):
        self._check()
        return await self.inner.create_draft(token, expires_at, metadata)

    async def get_draft(self, token):
        self._check()
        return await self.inner.get_draft(token)

    async def update_draft(self, token, **changes):
        self._check()
        return await self.inner.update_draft(token, **changes)

    async def delete_expired(self, now):
        self._check()
        return await self.inner.delete_expired(now)

    async def metrics(self, now) -> SessionMetrics:
        self._check()
        return await self.inner.metrics(now)


class FlakyPermanentStorage(PermanentStorageInterface):
    """Fails the first `failures` adopt calls with a StorageError."""

    def __init__(self, inner: PermanentStorageInterface, failures: int = 0):
        self.inner = inner
        self.failures = failures
        self.adopt_calls = 0

    async def adopt_draft(self, token: str, account_id: UUID) -> AdoptionReceipt:
        self.adopt_calls += 1
        if self.adopt_calls <= self.failures:
            raise StorageError("Simulated adopt failure")
        return await self.inner.adopt_draft(token, account_id)

    async def get_account(self, account_id: UUID) -> Optional[PermanentAccount]:
        return await self.inner.get_account(account_id)

    async def list_profiles(self, account_id: UUID) -> list[PermanentProfile]:
        return await self.inner.list_profiles(account_id)

    async def list_entries(self, profile_id: UUID) -> list[PermanentEntry]:
        return await self.inner.list_entries(profile_id)


class FakeCheckout(CheckoutPort):

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[UUID, PlanTier]] = []

    async def start_checkout(self, identity: AccountIdentity, plan: PlanTier) -> str:
        self.calls.append((identity.id, plan))
        if self.fail:
            raise CheckoutError("Provider unavailable")
        return f"https://checkout.example.com/{plan.value}"


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def validator() -> DraftValidator:
    return DraftValidator(today=lambda: TODAY)


@pytest.fixture
def backend(clock) -> InMemoryBackend:
    return InMemoryBackend(clock=clock)


@pytest.fixture
def draft_store(backend) -> FlakyDraftStore:
    return FlakyDraftStore(InMemoryDraftStore(backend))


@pytest.fixture
def permanent_storage(backend) -> FlakyPermanentStorage:
    return FlakyPermanentStorage(InMemoryPermanentStorage(backend))


@pytest.fixture
def auth(backend) -> InMemoryAuthProvider:
    return InMemoryAuthProvider(backend)


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def device() -> InMemoryDeviceStorage:
    return InMemoryDeviceStorage()


@pytest.fixture
def cache(device) -> LocalCache:
    return LocalCache(device, prefix=CACHE_PREFIX)


@pytest.fixture
def client(draft_store, clock) -> DraftSessionClient:
    return DraftSessionClient(
        draft_store,
        ttl=timedelta(hours=2),
        token_bytes=32,
        clock=clock,
    )


@pytest.fixture
def repository(cache, client, audit_logger) -> DraftRepository:
    return DraftRepository(cache, client, audit_logger)


@pytest.fixture
def migration(client, repository, permanent_storage, validator, audit_logger) -> MigrationCoordinator:
    return MigrationCoordinator(
        client=client,
        repository=repository,
        permanent_storage=permanent_storage,
        validator=validator,
        audit_logger=audit_logger,
        retry_attempts=3,
        retry_wait=wait_none(),
    )


@pytest.fixture
def checkout() -> FakeCheckout:
    return FakeCheckout()


@pytest.fixture
def controller(repository, auth, migration, checkout, validator, audit_logger) -> StepController:
    return StepController(
        repository=repository,
        auth=auth,
        migration=migration,
        checkout=checkout,
        validator=validator,
        audit_logger=audit_logger,
        support_email="help@example.com",
    )


@pytest.fixture
def profile_form() -> dict[str, Any]:
    return {"name": "Jane", "age": 25, "rating": 8.5}


@pytest.fixture
def entry_form() -> dict[str, Any]:
    return {"date": "2025-10-09", "amount": 150, "duration": 90, "nuts": 2}


@pytest.fixture
def profile(profile_form) -> ProfileDraft:
    return ProfileDraft.model_validate(profile_form)


@pytest.fixture
def entry(entry_form) -> EntryDraft:
    return EntryDraft.model_validate(entry_form)


@pytest.fixture
def complete_draft(client, profile, entry):
    """Factory for a draft with profile and entry saved, at step 3."""

    async def _make() -> tuple[str, DraftSession]:
        token, _ = await client.create()
        await client.save_profile(token, profile)
        draft = await client.save_entry(token, entry)
        return token, draft

    return _make
