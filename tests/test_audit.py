"""Tests for AuditLogger."""

import pytest
from uuid import uuid4

from onboarding.audit import AuditLogger
from onboarding.models.audit import AuditEventBuilder, AuditEventType, AuditSeverity
from onboarding.services.storage import AuditStorageInterface, StorageError


class FailingAuditStorage(AuditStorageInterface):

    async def append_event(self, event):
        raise StorageError("audit table unavailable")

    async def get_events_by_entity(self, entity_type, entity_id):
        return []

    async def get_recent_events(self, limit=100):
        return []


class TestAuditLogger:

    @pytest.mark.asyncio
    async def test_events_are_persisted(self, audit_logger, audit_storage):
        draft_id = uuid4()

        await audit_logger.log_draft_created(draft_id)
        await audit_logger.log_step_saved(draft_id, "profile")

        events = await audit_storage.get_events_by_entity("draft", draft_id)
        assert [e.event_type for e in events] == [
            AuditEventType.DRAFT_CREATED,
            AuditEventType.PROFILE_SAVED,
        ]

    @pytest.mark.asyncio
    async def test_without_storage_only_logs(self):
        logger = AuditLogger()
        assert await logger.log(AuditEventBuilder.drafts_purged(0))

    @pytest.mark.asyncio
    async def test_storage_failure_never_raises(self):
        logger = AuditLogger(FailingAuditStorage())

        assert await logger.log(AuditEventBuilder.drafts_purged(2)) is False
        await logger.log_error("boom", "still fine")

    @pytest.mark.asyncio
    async def test_migration_failure_is_critical(self, audit_logger, audit_storage):
        account_id = uuid4()

        await audit_logger.log_migration_failed(account_id, "internal", "adopt failed")

        events = await audit_storage.get_events_by_entity("account", account_id)
        assert events[0].severity == AuditSeverity.CRITICAL
        assert events[0].details["status"] == "internal"

    @pytest.mark.asyncio
    async def test_restart_reason_is_recorded(self, audit_logger, audit_storage):
        await audit_logger.log_draft_restarted("Draft expired")

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.DRAFT_RESTARTED
        assert events[0].details == {"reason": "Draft expired"}
