"""
Audit Logger

DESIGN DECISION: Every significant onboarding action is logged.
This provides:
1. A trail from first visit to migrated account
2. Evidence for support when a migration strands an account
3. Debugging capability for reload and expiry races

The audit logger:
- Is async to not block the flow
- Gracefully handles failures (a failed audit write never fails a step)
- References drafts by id; tokens are never logged
"""

from typing import Optional
from uuid import UUID

import structlog

from onboarding.models.audit import AuditEvent, AuditEventBuilder
from onboarding.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Audit trail for the onboarding flow.

    Logs events both to:
    1. The structured local log (structlog, JSON lines)
    2. An audit store (for persistence), when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("onboarding.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        The local log line is always written; the store write is best effort.

        Returns False only when a configured store rejected the event.
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_draft_created(self, draft_id: UUID) -> None:
        await self.log(AuditEventBuilder.draft_created(draft_id))

    async def log_draft_resumed(self, draft_id: UUID, step: int) -> None:
        await self.log(AuditEventBuilder.draft_resumed(draft_id, step))

    async def log_draft_restarted(self, reason: str, draft_id: Optional[UUID] = None) -> None:
        await self.log(AuditEventBuilder.draft_restarted(reason, draft_id))

    async def log_step_saved(self, draft_id: UUID, step_name: str) -> None:
        """Log a profile or entry save confirmed by the server."""
        await self.log(AuditEventBuilder.step_saved(draft_id, step_name))

    async def log_step_advanced(self, draft_id: UUID, step: int) -> None:
        await self.log(AuditEventBuilder.step_advanced(draft_id, step))

    async def log_account_created(self, account_id: UUID) -> None:
        await self.log(AuditEventBuilder.account_created(account_id))

    async def log_migration_completed(
        self,
        account_id: UUID,
        profile_id: UUID,
        entry_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.migration_completed(account_id, profile_id, entry_id))

    async def log_migration_failed(
        self,
        account_id: UUID,
        status: str,
        error_message: Optional[str],
        draft_id: Optional[UUID] = None,
    ) -> None:
        """Log a migration failure. Critical: the account now exists without its data."""
        await self.log(AuditEventBuilder.migration_failed(
            account_id=account_id,
            status=status,
            error_message=error_message,
            draft_id=draft_id,
        ))

    async def log_plan_selected(self, account_id: UUID, plan: str) -> None:
        await self.log(AuditEventBuilder.plan_selected(account_id, plan))

    async def log_transport_failure(self, operation: str, error_message: str) -> None:
        await self.log(AuditEventBuilder.transport_failure(operation, error_message))

    async def log_drafts_purged(self, deleted_count: int) -> None:
        await self.log(AuditEventBuilder.drafts_purged(deleted_count))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> None:
        await self.log(AuditEventBuilder.system_error(error_type, error_message, details))
