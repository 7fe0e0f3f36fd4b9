"""
Draft Maintenance

Garbage collection for drafts that expired without ever becoming an
account, plus the counts shown on the operations dashboard.

Completed drafts are retained for audit; only expired, never-completed
drafts are deleted.
"""

from datetime import datetime
from typing import Callable, Optional

from onboarding.audit import AuditLogger
from onboarding.models.draft import SessionMetrics, utcnow
from onboarding.services.storage.interface import DraftStoreInterface


class DraftMaintenance:

    def __init__(
        self,
        store: DraftStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._audit_logger = audit_logger or AuditLogger()
        self._clock = clock

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete expired drafts that were never completed.

        Returns:
            Number of drafts deleted
        """
        deleted = await self._store.delete_expired(now or self._clock())
        await self._audit_logger.log_drafts_purged(deleted)
        return deleted

    async def session_metrics(self, now: Optional[datetime] = None) -> SessionMetrics:
        return await self._store.metrics(now or self._clock())
