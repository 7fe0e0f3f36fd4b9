"""Tests for DraftMaintenance."""

import pytest
from datetime import timedelta

from onboarding.models.audit import AuditEventType
from onboarding.services.maintenance import DraftMaintenance


@pytest.fixture
def maintenance(draft_store, audit_logger, clock) -> DraftMaintenance:
    return DraftMaintenance(draft_store, audit_logger, clock=clock)


class TestPurgeExpired:

    @pytest.mark.asyncio
    async def test_only_expired_unfinished_drafts_are_deleted(
        self, maintenance, client, clock, backend, complete_draft, auth, permanent_storage
    ):
        stale, _ = await client.create()
        adopted, _ = await complete_draft()
        identity = await auth.create_account("jane@example.com", "password123")
        await permanent_storage.adopt_draft(adopted, identity.id)
        clock.advance(hours=1)
        fresh, _ = await client.create()
        clock.advance(hours=1, minutes=30)

        deleted = await maintenance.purge_expired()

        assert deleted == 1
        assert set(backend.drafts) == {adopted, fresh}

    @pytest.mark.asyncio
    async def test_purge_is_audited(self, maintenance, client, clock, audit_storage):
        await client.create()
        clock.advance(hours=3)

        await maintenance.purge_expired()

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.DRAFTS_PURGED
        assert events[0].details == {"deleted_count": 1}

    @pytest.mark.asyncio
    async def test_explicit_time(self, maintenance, client, clock):
        await client.create()
        assert await maintenance.purge_expired(clock.now + timedelta(minutes=5)) == 0
        assert await maintenance.purge_expired(clock.now + timedelta(hours=2)) == 1


class TestSessionMetrics:

    @pytest.mark.asyncio
    async def test_counts(self, maintenance, client, clock, complete_draft, auth, permanent_storage):
        await client.create()
        token, _ = await complete_draft()
        identity = await auth.create_account("jane@example.com", "password123")
        await permanent_storage.adopt_draft(token, identity.id)

        metrics = await maintenance.session_metrics()

        assert metrics.total == 2
        assert metrics.completed == 1
        assert metrics.active == 1

    @pytest.mark.asyncio
    async def test_expired_drafts_are_not_active(self, maintenance, client, clock):
        await client.create()
        clock.advance(hours=2)

        metrics = await maintenance.session_metrics()

        assert metrics.total == 1
        assert metrics.active == 0
