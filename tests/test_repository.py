"""Tests for the two-tier DraftRepository."""

import pytest

from onboarding.flow import DraftRepository
from onboarding.models.draft import OnboardingStep, ProfileDraft
from onboarding.services.cache import DisabledDeviceStorage, InMemoryDeviceStorage, LocalCache
from onboarding.services.drafts import DraftOrderingError, TransportFailureError


class TestSessions:

    @pytest.mark.asyncio
    async def test_ensure_session_creates_and_stores_token(self, repository, cache):
        draft = await repository.ensure_session()

        assert repository.token
        assert cache.get("session_token") == repository.token
        assert repository.draft_id == draft.id

    @pytest.mark.asyncio
    async def test_reload_resumes_the_same_draft(self, repository, cache, client, audit_logger):
        first = await repository.ensure_session()

        reloaded = DraftRepository(cache, client, audit_logger)
        second = await reloaded.ensure_session()

        assert second.id == first.id
        assert reloaded.token == repository.token

    @pytest.mark.asyncio
    async def test_expired_token_starts_over(self, repository, cache, clock, profile):
        await repository.ensure_session()
        await repository.save_profile(profile)
        old_token = repository.token

        clock.advance(hours=3)
        await repository.ensure_session()

        assert repository.token != old_token
        assert cache.get("profile_draft") is None
        assert repository.local_snapshot().profile is None

    @pytest.mark.asyncio
    async def test_clear_local(self, repository, cache, profile):
        await repository.ensure_session()
        await repository.save_profile(profile)

        repository.clear_local()

        assert repository.token is None
        assert not cache.has_any()
        snapshot = repository.local_snapshot()
        assert snapshot.profile is None and snapshot.entry is None
        assert snapshot.step is None
        assert snapshot.pending == []


class TestDualWrite:

    @pytest.mark.asyncio
    async def test_save_profile_writes_both_tiers(self, repository, cache, client, profile):
        await repository.ensure_session()
        draft = await repository.save_profile(profile)

        assert draft.profile == profile
        assert ProfileDraft.model_validate(cache.get("profile_draft")) == profile
        assert cache.get("current_step") == 2
        assert repository.local_snapshot().pending == []

        server = await client.fetch(repository.token)
        assert server.profile == profile

    @pytest.mark.asyncio
    async def test_failed_write_stays_pending(self, repository, draft_store, cache, profile):
        await repository.ensure_session()
        draft_store.offline = True

        with pytest.raises(TransportFailureError):
            await repository.save_profile(profile)

        snapshot = repository.local_snapshot()
        assert snapshot.profile == profile
        assert snapshot.pending == ["profile"]
        assert cache.get("pending_sync") == ["profile"]

    @pytest.mark.asyncio
    async def test_pending_writes_flush_before_the_next_write(
        self, repository, draft_store, client, profile, entry
    ):
        await repository.ensure_session()
        draft_store.offline = True
        with pytest.raises(TransportFailureError):
            await repository.save_profile(profile)

        draft_store.offline = False
        draft = await repository.save_entry(entry)

        assert draft.profile == profile
        assert draft.entry == entry
        assert draft.step == OnboardingStep.ACCOUNT
        assert repository.local_snapshot().pending == []

    @pytest.mark.asyncio
    async def test_save_without_a_token_creates_the_draft(self, repository, client, profile):
        assert repository.token is None

        draft = await repository.save_profile(profile)

        assert repository.token is not None
        assert draft.profile == profile
        assert (await client.fetch(repository.token)).profile == profile

    @pytest.mark.asyncio
    async def test_save_without_a_token_while_offline_keeps_the_write(
        self, repository, draft_store, cache, profile
    ):
        draft_store.offline = True

        with pytest.raises(TransportFailureError):
            await repository.save_profile(profile)

        assert repository.token is None
        assert repository.local_snapshot().pending == ["profile"]
        assert ProfileDraft.model_validate(cache.get("profile_draft")) == profile

    @pytest.mark.asyncio
    async def test_flush_with_nothing_pending(self, repository):
        await repository.ensure_session()
        assert await repository.flush_pending() is None

    @pytest.mark.asyncio
    async def test_orphan_entry_is_dropped_from_pending(self, repository, cache, client, audit_logger, entry):
        await repository.ensure_session()
        cache.set("entry_draft", entry)
        cache.set("pending_sync", ["entry"])

        reloaded = DraftRepository(cache, client, audit_logger)
        with pytest.raises(DraftOrderingError):
            await reloaded.flush_pending()
        assert reloaded.local_snapshot().pending == []

    @pytest.mark.asyncio
    async def test_works_without_device_storage(self, client, audit_logger, profile):
        repository = DraftRepository(LocalCache(DisabledDeviceStorage(), prefix="x_"), client, audit_logger)
        await repository.ensure_session()
        draft = await repository.save_profile(profile)

        assert draft.profile == profile
        assert repository.local_snapshot().profile == profile


class TestSyncFromServer:

    @pytest.mark.asyncio
    async def test_server_wins_on_conflict(self, repository, cache, client, audit_logger, profile):
        await repository.ensure_session()
        await repository.save_profile(profile)
        cache.set("profile_draft", ProfileDraft(name="Local", age=30, rating=6.0))

        reloaded = DraftRepository(cache, client, audit_logger)
        snapshot = await reloaded.sync_from_server()

        assert snapshot.profile == profile
        assert ProfileDraft.model_validate(cache.get("profile_draft")) == profile

    @pytest.mark.asyncio
    async def test_local_only_write_survives_a_reload(
        self, repository, cache, client, draft_store, audit_logger, profile, entry
    ):
        """A write still in flight at reload is kept and re-sent later."""
        await repository.ensure_session()
        await repository.save_profile(profile)
        draft_store.offline = True
        with pytest.raises(TransportFailureError):
            await repository.save_entry(entry)
        draft_store.offline = False

        reloaded = DraftRepository(cache, client, audit_logger)
        snapshot = await reloaded.sync_from_server()

        assert snapshot.has_profile and snapshot.has_entry
        assert snapshot.pending == ["entry"]
        assert snapshot.step == OnboardingStep.ACCOUNT

        draft = await reloaded.flush_pending()
        assert draft.entry == entry
        assert reloaded.local_snapshot().pending == []

    @pytest.mark.asyncio
    async def test_sync_fills_an_empty_cache_from_the_server(
        self, repository, client, audit_logger, profile, entry
    ):
        await repository.ensure_session()
        await repository.save_profile(profile)
        await repository.save_entry(entry)
        token = repository.token

        # Same token, but a device that lost everything else
        other_cache = LocalCache(InMemoryDeviceStorage(), prefix="other_")
        other_cache.set("session_token", token)
        other = DraftRepository(other_cache, client, audit_logger)
        snapshot = await other.sync_from_server()

        assert snapshot.profile == profile
        assert snapshot.entry == entry
        assert snapshot.step == OnboardingStep.ACCOUNT
        assert snapshot.pending == []

    @pytest.mark.asyncio
    async def test_step_follows_the_server(self, repository, cache, client, audit_logger, profile):
        await repository.ensure_session()
        await repository.save_profile(profile)
        cache.set("current_step", 4)

        reloaded = DraftRepository(cache, client, audit_logger)
        snapshot = await reloaded.sync_from_server()

        assert snapshot.step == OnboardingStep.ENTRY
