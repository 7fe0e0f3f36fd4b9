"""
Two-Tier Draft Repository

The device cache and the server draft, behind one interface.

DESIGN DECISION: This is the only place that writes both tiers.
- Every save writes the device cache first, then the server.
- A save the server did not confirm stays flagged as pending and is
  re-sent, in step order, before the next write.
- `sync_from_server` resolves the two tiers in one place: any field the
  server holds wins and overwrites the cache; a field only the cache
  holds (a write that raced a reload) is kept and stays pending.

The repository keeps an in-process copy of everything it mirrors, so the
flow still works when device storage is disabled; only persistence
across reloads is lost.
"""

from typing import Any, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ValidationError

from onboarding.audit import AuditLogger
from onboarding.models.draft import (
    DraftSession,
    EntryDraft,
    LocalSnapshot,
    OnboardingStep,
    ProfileDraft,
)
from onboarding.services.cache import LocalCache
from onboarding.services.drafts import (
    DraftNotFoundError,
    DraftOrderingError,
    DraftSessionClient,
    DraftUnavailableError,
    TransportFailureError,
)


# Device cache keys (namespaced by the cache prefix)
PROFILE_KEY = "profile_draft"
ENTRY_KEY = "entry_draft"
STEP_KEY = "current_step"
TOKEN_KEY = "session_token"
PENDING_KEY = "pending_sync"

# Pending writes are always flushed in this order
PENDING_ORDER = ("profile", "entry", "step")


class DraftRepository:
    """Device cache plus server draft for one visitor."""

    def __init__(
        self,
        cache: LocalCache,
        client: DraftSessionClient,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._cache = cache
        self._client = client
        self._audit_logger = audit_logger or AuditLogger()
        self._draft_id: Optional[UUID] = None

        self._token: Optional[str] = self._read_token()
        self._profile: Optional[ProfileDraft] = self._read_model(PROFILE_KEY, ProfileDraft)
        self._entry: Optional[EntryDraft] = self._read_model(ENTRY_KEY, EntryDraft)
        self._step: Optional[int] = self._read_step()
        self._pending: list[str] = self._read_pending()

    # =========================================================================
    # Cache reads (a value that does not parse is a miss)
    # =========================================================================

    def _read_token(self) -> Optional[str]:
        token = self._cache.get(TOKEN_KEY)
        return token if isinstance(token, str) and token else None

    def _read_model(self, key: str, model: type[BaseModel]) -> Any:
        raw = self._cache.get(key)
        if raw is None:
            return None
        try:
            return model.model_validate(raw)
        except ValidationError:
            return None

    def _read_step(self) -> Optional[int]:
        raw = self._cache.get(STEP_KEY)
        if isinstance(raw, int) and not isinstance(raw, bool) and 1 <= raw <= 4:
            return raw
        return None

    def _read_pending(self) -> list[str]:
        raw = self._cache.get(PENDING_KEY)
        if not isinstance(raw, list):
            return []
        return [name for name in PENDING_ORDER if name in raw]

    # =========================================================================
    # Write-through setters
    # =========================================================================

    def _put(self, key: str, value: Any) -> None:
        if value is None:
            self._cache.remove(key)
        else:
            self._cache.set(key, value)

    def _set_token(self, token: Optional[str]) -> None:
        self._token = token
        self._put(TOKEN_KEY, token)

    def _set_profile(self, profile: Optional[ProfileDraft]) -> None:
        self._profile = profile
        self._put(PROFILE_KEY, profile)

    def _set_entry(self, entry: Optional[EntryDraft]) -> None:
        self._entry = entry
        self._put(ENTRY_KEY, entry)

    def _set_step(self, step: Optional[int]) -> None:
        self._step = int(step) if step is not None else None
        self._put(STEP_KEY, self._step)

    def _set_pending(self, pending: Union[set[str], list[str]]) -> None:
        self._pending = [name for name in PENDING_ORDER if name in pending]
        self._put(PENDING_KEY, self._pending or None)

    def _mark_pending(self, name: str) -> None:
        self._set_pending({*self._pending, name})

    def _raise_local_step(self, step: int) -> None:
        self._set_step(max(self._step or OnboardingStep.PROFILE, step))

    # =========================================================================
    # Public API
    # =========================================================================

    @property
    def token(self) -> Optional[str]:
        """Bearer token of the current draft, if this device holds one."""
        return self._token

    @property
    def draft_id(self) -> Optional[UUID]:
        return self._draft_id

    async def ensure_session(self) -> DraftSession:
        """
        Resume the stored draft, or start a new one.

        A stored token the server no longer accepts (missing, expired or
        already migrated) clears local state before a new draft is made.

        Raises:
            TransportFailureError: If the draft store is unreachable
        """
        if self._token:
            try:
                draft = await self._client.fetch(self._token)
            except DraftUnavailableError as e:
                await self._audit_logger.log_draft_restarted(str(e), self._draft_id)
                self.clear_local()
            else:
                self._draft_id = draft.id
                await self._audit_logger.log_draft_resumed(draft.id, int(draft.step))
                return draft

        token, draft = await self._client.create()
        self._set_token(token)
        self._raise_local_step(OnboardingStep.PROFILE)
        self._draft_id = draft.id
        await self._audit_logger.log_draft_created(draft.id)
        return draft

    async def _require_token(self) -> str:
        """The current token, creating a draft if this device has none."""
        if not self._token:
            try:
                await self.ensure_session()
            except TransportFailureError as e:
                await self._audit_logger.log_transport_failure("create", str(e))
                raise
        return self._token

    async def save_profile(self, profile: ProfileDraft) -> Optional[DraftSession]:
        self._set_profile(profile)
        self._raise_local_step(OnboardingStep.ENTRY)
        self._mark_pending("profile")
        return await self.flush_pending()

    async def save_entry(self, entry: EntryDraft) -> Optional[DraftSession]:
        self._set_entry(entry)
        self._raise_local_step(OnboardingStep.ACCOUNT)
        self._mark_pending("entry")
        return await self.flush_pending()

    async def update_step(self, step: int) -> Optional[DraftSession]:
        self._raise_local_step(step)
        self._mark_pending("step")
        return await self.flush_pending()

    async def current_draft(self) -> DraftSession:
        """
        The live server draft for this device's token.

        A device with no token gets a new, empty draft first.

        Raises:
            DraftUnavailableError: If there is no usable draft
            TransportFailureError: If the draft store is unreachable
        """
        token = await self._require_token()
        try:
            draft = await self._client.fetch(token)
        except TransportFailureError as e:
            await self._audit_logger.log_transport_failure("fetch", str(e))
            raise
        self._draft_id = draft.id
        return draft

    async def save_contact_email(self, email: str) -> DraftSession:
        if not self._token:
            raise DraftNotFoundError("No draft token")
        try:
            return await self._client.save_contact_email(self._token, email)
        except TransportFailureError as e:
            await self._audit_logger.log_transport_failure("save_contact_email", str(e))
            raise

    async def flush_pending(self) -> Optional[DraftSession]:
        """
        Send every locally pending write to the server, in step order.

        A device with no token gets a new draft before anything is sent.

        Returns:
            The draft after the last confirmed write, or None if nothing
            was pending

        Raises:
            DraftUnavailableError: If the draft is gone
            DraftOrderingError: If an entry is pending with no profile
                anywhere; the entry's pending flag is dropped
            TransportFailureError: If the store is unreachable; the
                remaining writes stay pending
        """
        if not self._pending:
            return None
        await self._require_token()

        draft: Optional[DraftSession] = None
        for name in list(self._pending):
            try:
                sent = await self._send(name)
            except TransportFailureError as e:
                await self._audit_logger.log_transport_failure(e.operation or name, str(e))
                raise
            except DraftOrderingError:
                self._set_pending([p for p in self._pending if p != name])
                raise
            self._set_pending([p for p in self._pending if p != name])
            if sent is not None:
                draft = sent

        if draft is not None:
            self._draft_id = draft.id
            self._set_step(draft.step)
        return draft

    async def _send(self, name: str) -> Optional[DraftSession]:
        """One pending write. A value lost from the cache is skipped."""
        token = self._token
        if name == "profile" and self._profile is not None:
            draft = await self._client.save_profile(token, self._profile)
            await self._audit_logger.log_step_saved(draft.id, "profile")
            return draft
        if name == "entry" and self._entry is not None:
            draft = await self._client.save_entry(token, self._entry)
            await self._audit_logger.log_step_saved(draft.id, "entry")
            return draft
        if name == "step" and self._step is not None:
            draft = await self._client.update_step(token, self._step)
            await self._audit_logger.log_step_advanced(draft.id, int(draft.step))
            return draft
        return None

    async def sync_from_server(self) -> LocalSnapshot:
        """
        Reconcile the device cache with the server draft.

        Ensures a session first, so a dead token is replaced here.

        Raises:
            TransportFailureError: If the draft store is unreachable
        """
        draft = await self.ensure_session()
        pending = set(self._pending)

        if draft.profile is not None:
            self._set_profile(draft.profile)
            pending.discard("profile")
        elif self._profile is not None:
            pending.add("profile")

        if draft.entry is not None:
            self._set_entry(draft.entry)
            pending.discard("entry")
        elif self._entry is not None:
            pending.add("entry")

        server_step = int(draft.step)
        local_step = self._step or server_step
        if local_step <= server_step:
            pending.discard("step")
        step = max(server_step, local_step) if pending else server_step

        self._set_step(step)
        self._set_pending(pending)
        return self.local_snapshot()

    def local_snapshot(self) -> LocalSnapshot:
        return LocalSnapshot(
            profile=self._profile,
            entry=self._entry,
            step=OnboardingStep(self._step) if self._step else None,
            pending=list(self._pending),
        )

    def clear_local(self) -> None:
        """Forget the token and every cached draft field."""
        self._cache.clear()
        self._token = None
        self._profile = None
        self._entry = None
        self._step = None
        self._pending = []
        self._draft_id = None
