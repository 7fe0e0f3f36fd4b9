"""
Migration Coordinator

Hands a finished draft over to a freshly created account.

DESIGN DECISION: Exactly-once is delegated, not implemented here.
The storage collaborator's adopt_draft runs as one transaction: it
creates the permanent profile and entry, flags the account, and marks
the draft completed, or does none of it. This module:
1. Re-checks the preconditions (live draft, valid profile and entry)
2. Calls adopt_draft once
3. Tears down local state only after success

Every outcome is a tagged MigrationOutcome. A second call on a consumed
draft reports ALREADY_COMPLETED and can never be mistaken for success.
"""

from typing import Any, Optional
from uuid import UUID

from tenacity import (
    AsyncRetrying,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from onboarding.audit import AuditLogger
from onboarding.config import get_settings
from onboarding.flow.repository import DraftRepository
from onboarding.models.results import (
    MigrationOutcome,
    MigrationStatus,
    MigrationVerification,
    ValidationResult,
)
from onboarding.services.drafts import (
    DraftAlreadyCompletedError,
    DraftExpiredError,
    DraftNotFoundError,
    DraftSessionClient,
    TransportFailureError,
)
from onboarding.services.storage.interface import (
    DraftConsumedError,
    DraftExpiredStorageError,
    NotFoundError,
    PermanentStorageInterface,
    StorageError,
)
from onboarding.validation import DraftValidator


class MigrationCoordinator:
    """
    Converts an ephemeral draft into permanent records for an account.

    Args:
        client: Draft transport, used for the precondition fetch
        repository: Source of the device's token; cleared on success
        permanent_storage: Owner of the atomic adopt operation
        validator: Re-checks the draft before adoption
        retry_attempts: Attempts for `retry`; defaults to settings
        retry_wait: tenacity wait strategy between those attempts
    """

    def __init__(
        self,
        client: DraftSessionClient,
        repository: DraftRepository,
        permanent_storage: PermanentStorageInterface,
        validator: Optional[DraftValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        retry_attempts: Optional[int] = None,
        retry_wait: Optional[Any] = None,
    ):
        self._client = client
        self._repository = repository
        self._permanent = permanent_storage
        self._validator = validator or DraftValidator()
        self._audit_logger = audit_logger or AuditLogger()
        self._retry_attempts = retry_attempts or get_settings().app.migration_retry_attempts
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=10)
        # account_id -> token of the draft adopted into it
        self._adopted: dict[UUID, str] = {}

    async def migrate(
        self,
        account_id: UUID,
        token: Optional[str] = None,
    ) -> MigrationOutcome:
        """
        Adopt the draft into `account_id`.

        Args:
            account_id: The account that was just created
            token: Draft token; defaults to the one held on this device,
                then to the draft this coordinator already adopted into
                the account (so a repeat call reports ALREADY_COMPLETED)

        Returns:
            MigrationOutcome. Only SUCCESS means records were created.
        """
        uses_device_token = token is None
        token = token or self._repository.token or self._adopted.get(account_id)
        if not token:
            return await self._failed(
                account_id,
                MigrationStatus.NOT_FOUND,
                "No onboarding draft on this device",
            )

        # Preconditions
        try:
            draft = await self._client.fetch(token)
        except DraftAlreadyCompletedError:
            return MigrationOutcome(
                status=MigrationStatus.ALREADY_COMPLETED,
                account_id=account_id,
                message="Draft was already migrated",
            )
        except DraftExpiredError as e:
            return await self._failed(account_id, MigrationStatus.EXPIRED, str(e))
        except DraftNotFoundError as e:
            return await self._failed(account_id, MigrationStatus.NOT_FOUND, str(e))
        except TransportFailureError as e:
            return await self._failed(account_id, MigrationStatus.INTERNAL, str(e))

        if draft.profile is None or draft.entry is None:
            return await self._failed(
                account_id,
                MigrationStatus.INVALID_DRAFT,
                "Draft is missing profile or entry data",
                draft_id=draft.id,
            )

        validation = self._validator.validate_profile(draft.profile).merge(
            self._validator.validate_entry(draft.entry)
        )
        if not validation.is_valid:
            return await self._failed(
                account_id,
                MigrationStatus.INVALID_DRAFT,
                "; ".join(validation.messages()),
                draft_id=draft.id,
                validation=validation,
            )

        # Single atomic hand-off
        try:
            receipt = await self._permanent.adopt_draft(token, account_id)
        except DraftConsumedError:
            return MigrationOutcome(
                status=MigrationStatus.ALREADY_COMPLETED,
                account_id=account_id,
                message="Draft was already migrated",
            )
        except DraftExpiredStorageError as e:
            return await self._failed(account_id, MigrationStatus.EXPIRED, str(e), draft.id)
        except NotFoundError as e:
            return await self._failed(account_id, MigrationStatus.NOT_FOUND, str(e), draft.id)
        except StorageError as e:
            return await self._failed(account_id, MigrationStatus.INTERNAL, str(e), draft.id)

        self._adopted[account_id] = token

        # A support-supplied token must not wipe this device's own draft
        if uses_device_token or token == self._repository.token:
            self._repository.clear_local()

        await self._audit_logger.log_migration_completed(
            account_id=account_id,
            profile_id=receipt.profile_id,
            entry_id=receipt.entry_id,
        )
        return MigrationOutcome(
            status=MigrationStatus.SUCCESS,
            account_id=account_id,
            profile_id=receipt.profile_id,
            entry_id=receipt.entry_id,
        )

    async def retry(
        self,
        account_id: UUID,
        token: Optional[str] = None,
    ) -> MigrationOutcome:
        """
        Migrate, retrying internal failures with exponential backoff.

        This is the recovery path for an account that was created but
        whose data did not move. Other statuses are final and returned
        after the first attempt.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=self._retry_wait,
            retry=retry_if_result(lambda outcome: outcome.retryable),
            retry_error_callback=lambda state: state.outcome.result(),
        )
        return await retrying(self.migrate, account_id, token)

    async def verify_migration(self, account_id: UUID) -> MigrationVerification:
        """Check what the permanent store holds for the account."""
        account = await self._permanent.get_account(account_id)
        if account is None:
            return MigrationVerification(account_id=account_id)

        profiles = await self._permanent.list_profiles(account_id)
        has_entry = False
        for profile in profiles:
            if await self._permanent.list_entries(profile.id):
                has_entry = True
                break

        return MigrationVerification(
            account_id=account_id,
            onboarding_completed=account.onboarding_completed,
            has_profile=bool(profiles),
            has_entry=has_entry,
        )

    async def _failed(
        self,
        account_id: UUID,
        status: MigrationStatus,
        message: str,
        draft_id: Optional[UUID] = None,
        validation: Optional[ValidationResult] = None,
    ) -> MigrationOutcome:
        await self._audit_logger.log_migration_failed(
            account_id=account_id,
            status=status.value,
            error_message=message,
            draft_id=draft_id,
        )
        return MigrationOutcome(
            status=status,
            account_id=account_id,
            message=message,
            validation=validation,
        )
