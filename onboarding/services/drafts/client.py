"""
Draft Session Client

Stateless transport for a single ephemeral draft, addressed by its
bearer token.

DESIGN DECISION: One attempt per call, no retries here.
The caller owns recovery: it keeps the visitor's input in the device
cache and decides when to re-send. Retrying inside the transport would
hide failures the flow needs to see.

Error mapping:
- missing, expired and consumed drafts become the DraftUnavailableError
  family, so the flow can restart the visitor at step 1
- entry-before-profile becomes DraftOrderingError
- anything the store could not complete (unreachable, timed out)
  becomes TransportFailureError, which is safe to retry
"""

import asyncio
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from onboarding.config import get_settings
from onboarding.models.draft import (
    DraftSession,
    EntryDraft,
    OnboardingStep,
    ProfileDraft,
    utcnow,
)
from onboarding.services.storage.interface import (
    DraftConsumedError,
    DraftExpiredStorageError,
    DraftStoreInterface,
    NotFoundError,
    OrderingError,
    StorageError,
)


# =============================================================================
# ERRORS
# =============================================================================

class DraftClientError(Exception):
    """Base exception for draft client operations."""
    pass


class DraftUnavailableError(DraftClientError):
    """The draft can no longer be used; the visitor must start over."""
    pass


class DraftNotFoundError(DraftUnavailableError):
    pass


class DraftExpiredError(DraftUnavailableError):
    pass


class DraftAlreadyCompletedError(DraftUnavailableError):
    """The draft was migrated into an account and is logically deleted."""
    pass


class DraftOrderingError(DraftClientError):
    """An entry was sent before any profile."""
    pass


class TransportFailureError(DraftClientError):
    """The store could not be reached. No state change can be assumed."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


# =============================================================================
# CLIENT
# =============================================================================

class DraftSessionClient:
    """
    Create, read and update ephemeral drafts.

    Every mutating call requires a live draft. Step changes are
    monotonic; the store keeps max(current, requested).

    Args:
        store: Draft store the calls go to
        ttl: Draft lifetime; defaults to settings
        token_bytes: Token entropy; defaults to settings
        clock: Source of "now" for expiry
        timeout_seconds: Per-call limit, enforced with asyncio.wait_for.
            It only bounds stores that yield to the event loop; the
            SQL store runs its queries synchronously, so a slow query
            there is not cut short.
    """

    def __init__(
        self,
        store: DraftStoreInterface,
        ttl: Optional[timedelta] = None,
        token_bytes: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
        timeout_seconds: Optional[float] = None,
    ):
        settings = get_settings().drafts
        self._store = store
        self._ttl = ttl or settings.session_ttl
        self._token_bytes = token_bytes or settings.token_bytes
        self._clock = clock
        self._timeout = timeout_seconds

    async def _call(self, operation: str, awaitable) -> Any:
        """Run one store call, translating storage failures."""
        try:
            if self._timeout is not None:
                return await asyncio.wait_for(awaitable, timeout=self._timeout)
            return await awaitable
        except (asyncio.TimeoutError, TimeoutError) as e:
            raise TransportFailureError(f"{operation} timed out", operation) from e
        except NotFoundError as e:
            raise DraftNotFoundError(str(e)) from e
        except DraftExpiredStorageError as e:
            raise DraftExpiredError(str(e)) from e
        except DraftConsumedError as e:
            raise DraftAlreadyCompletedError(str(e)) from e
        except OrderingError as e:
            raise DraftOrderingError(str(e)) from e
        except StorageError as e:
            raise TransportFailureError(f"{operation} failed: {e}", operation) from e

    def _check_usable(self, draft: Optional[DraftSession]) -> DraftSession:
        if draft is None:
            raise DraftNotFoundError("Draft not found")
        if draft.is_completed:
            raise DraftAlreadyCompletedError("Draft already completed")
        if draft.is_expired(self._clock()):
            raise DraftExpiredError("Draft expired")
        return draft

    async def create(
        self,
        metadata: Optional[dict[str, Any]] = None,
    ) -> tuple[str, DraftSession]:
        """
        Allocate a new draft at step 1.

        Returns:
            (token, draft). Storing the token is the caller's job.
        """
        token = secrets.token_urlsafe(self._token_bytes)
        expires_at = self._clock() + self._ttl
        draft = await self._call(
            "create",
            self._store.create_draft(token, expires_at, metadata),
        )
        return token, draft

    async def fetch(self, token: str) -> DraftSession:
        """
        Read a live draft.

        Raises:
            DraftNotFoundError, DraftExpiredError, DraftAlreadyCompletedError
            TransportFailureError
        """
        if not token:
            raise DraftNotFoundError("No draft token")
        draft = await self._call("fetch", self._store.get_draft(token))
        return self._check_usable(draft)

    async def save_profile(self, token: str, profile: ProfileDraft) -> DraftSession:
        """Store the profile and advance the step to at least 2."""
        return await self._call(
            "save_profile",
            self._store.update_draft(
                token,
                profile=profile,
                min_step=OnboardingStep.ENTRY,
            ),
        )

    async def save_entry(self, token: str, entry: EntryDraft) -> DraftSession:
        """
        Store the entry and advance the step to at least 3.

        Raises:
            DraftOrderingError: If the draft has no profile yet
        """
        return await self._call(
            "save_entry",
            self._store.update_draft(
                token,
                entry=entry,
                min_step=OnboardingStep.ACCOUNT,
            ),
        )

    async def save_contact_email(self, token: str, email: str) -> DraftSession:
        return await self._call(
            "save_contact_email",
            self._store.update_draft(token, contact_email=email),
        )

    async def update_step(self, token: str, step: int) -> DraftSession:
        """Advance the recorded step. A lower value leaves it unchanged."""
        step = OnboardingStep(step)
        return await self._call(
            "update_step",
            self._store.update_draft(token, min_step=step),
        )
