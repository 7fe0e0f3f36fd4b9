"""
Orchestrator for Progressive Onboarding

Wires the components into a working flow:

    device cache -> DraftRepository -> StepController
    draft store  -> DraftSessionClient ----^      |
    permanent storage -> MigrationCoordinator <---+

DESIGN DECISION: The orchestrator only assembles; it holds no flow logic.
Every collaborator is injectable, so the same wiring serves the SQL
deployment, a database-less development run, and the test suite.
"""

from typing import Optional

import structlog

from onboarding.audit import AuditLogger
from onboarding.config import get_settings
from onboarding.flow import DraftRepository, StepController
from onboarding.migration import MigrationCoordinator
from onboarding.services.cache import (
    DeviceStoragePort,
    InMemoryDeviceStorage,
    LocalCache,
)
from onboarding.services.drafts import DraftSessionClient
from onboarding.services.maintenance import DraftMaintenance
from onboarding.services.storage import (
    AuditStorageInterface,
    AuthProviderInterface,
    CheckoutPort,
    DraftStoreInterface,
    InMemoryAuditStorage,
    InMemoryAuthProvider,
    InMemoryBackend,
    InMemoryDraftStore,
    InMemoryPermanentStorage,
    PermanentStorageInterface,
    SqlAuditStorage,
    SqlAuthProvider,
    SqlDatabase,
    SqlDraftStore,
    SqlPermanentStorage,
)
from onboarding.validation import DraftValidator


logger = structlog.get_logger("onboarding.orchestrator")


def _in_memory_backends() -> tuple[
    DraftStoreInterface,
    PermanentStorageInterface,
    AuthProviderInterface,
    AuditStorageInterface,
]:
    backend = InMemoryBackend()
    return (
        InMemoryDraftStore(backend),
        InMemoryPermanentStorage(backend),
        InMemoryAuthProvider(backend),
        InMemoryAuditStorage(),
    )


def create_app_components(
    use_storage: bool = True,
    device_storage: Optional[DeviceStoragePort] = None,
    checkout: Optional[CheckoutPort] = None,
    database_url: Optional[str] = None,
) -> tuple[StepController, DraftMaintenance, Optional[SqlDatabase]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use the SQL database.
                    Set to False to run entirely in memory.
        device_storage: The visitor's device storage; in-memory if omitted
        checkout: Payment provider for paid plans
        database_url: Overrides the configured database URL

    Returns:
        (step_controller, draft_maintenance, database)
    """
    settings = get_settings()
    database = None

    if use_storage:
        try:
            database = SqlDatabase(url=database_url)
            database.create_all()
            draft_store = SqlDraftStore(database)
            permanent_storage = SqlPermanentStorage(database)
            auth = SqlAuthProvider(database)
            audit_storage = SqlAuditStorage(database)
        except Exception as e:
            # Database not reachable - continue in memory
            logger.warning("database_unavailable", error=str(e))
            database = None
            draft_store, permanent_storage, auth, audit_storage = _in_memory_backends()
    else:
        draft_store, permanent_storage, auth, audit_storage = _in_memory_backends()

    audit_logger = AuditLogger(audit_storage)
    validator = DraftValidator()

    cache = LocalCache(
        device_storage or InMemoryDeviceStorage(),
        prefix=settings.drafts.cache_prefix,
    )
    client = DraftSessionClient(draft_store)
    repository = DraftRepository(cache, client, audit_logger)
    migration = MigrationCoordinator(
        client=client,
        repository=repository,
        permanent_storage=permanent_storage,
        validator=validator,
        audit_logger=audit_logger,
    )

    step_controller = StepController(
        repository=repository,
        auth=auth,
        migration=migration,
        checkout=checkout,
        validator=validator,
        audit_logger=audit_logger,
    )
    draft_maintenance = DraftMaintenance(draft_store, audit_logger)

    return step_controller, draft_maintenance, database
