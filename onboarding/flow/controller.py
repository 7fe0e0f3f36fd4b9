"""
Step Controller

Drives the visitor through the onboarding steps:

    STEP1_PROFILE -> STEP2_ENTRY -> STEP3_ACCOUNT -> STEP4_PLAN -> COMPLETED

DESIGN DECISION: Every public method returns a StepOutcome naming a safe
state to render. Collaborator failures are mapped, never raised:
- invalid input stays on the step with field errors and writes nothing
- a dead draft restarts the visitor at step 1 with a fresh draft
- an unreachable draft store keeps the cached input and asks for a retry
- a migration failure after signup asks the visitor to contact support

Entering the flow fails open: if the routing inputs cannot be read, the
visitor starts at step 1 rather than being blocked.
"""

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ValidationError

from onboarding.audit import AuditLogger
from onboarding.config import get_settings
from onboarding.flow.repository import DraftRepository
from onboarding.flow.routing import FlowState, RoutingInputs, decide_route
from onboarding.models.draft import (
    EntryDraft,
    OnboardingStep,
    PlanTier,
    ProfileDraft,
)
from onboarding.models.results import (
    FieldError,
    FlowErrorKind,
    MigrationOutcome,
    StepOutcome,
)
from onboarding.services.drafts import (
    DraftClientError,
    DraftOrderingError,
    DraftUnavailableError,
    TransportFailureError,
)
from onboarding.services.storage.interface import (
    AccountCreationError,
    AuthProviderInterface,
    CheckoutError,
    CheckoutPort,
)
from onboarding.validation import DraftValidator

if TYPE_CHECKING:
    from onboarding.migration import MigrationCoordinator


RETRY_MESSAGE = "We couldn't save your progress. Please try again."
RESTART_MESSAGE = "Your session expired, so we started a new one."
ORDERING_MESSAGE = "Please complete your profile first."
SIGN_IN_REQUIRED_MESSAGE = "Create an account to choose a plan."
CHECKOUT_MESSAGE = "We couldn't start checkout. Please try again."

FormInput = Union[BaseModel, Mapping[str, Any]]


def _pydantic_errors(error: ValidationError) -> list[FieldError]:
    return [
        FieldError(
            field=str(detail["loc"][0]) if detail["loc"] else "__root__",
            message=detail["msg"],
        )
        for detail in error.errors()
    ]


class StepController:
    """
    Onboarding state machine over the draft repository.

    Collaborators are injected; see orchestrator.create_app_components.
    """

    def __init__(
        self,
        repository: DraftRepository,
        auth: AuthProviderInterface,
        migration: "MigrationCoordinator",
        checkout: Optional[CheckoutPort] = None,
        validator: Optional[DraftValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        support_email: Optional[str] = None,
    ):
        self._repository = repository
        self._auth = auth
        self._migration = migration
        self._checkout = checkout
        self._validator = validator or DraftValidator()
        self._audit_logger = audit_logger or AuditLogger()
        self._support_email = support_email or get_settings().app.support_email

    @property
    def repository(self) -> DraftRepository:
        return self._repository

    # =========================================================================
    # Entry routing
    # =========================================================================

    async def enter(self) -> StepOutcome:
        """Decide where a visitor entering the flow should land."""
        try:
            identity = await self._auth.get_current_identity()
        except Exception as e:
            await self._audit_logger.log_error("routing_identity_failed", str(e))
            return StepOutcome(state=FlowState.STEP1_PROFILE.value)

        if identity is not None:
            return StepOutcome(
                state=FlowState.AUTHENTICATED_APP.value,
                account_id=identity.id,
            )

        try:
            snapshot = await self._repository.sync_from_server()
        except TransportFailureError as e:
            # Offline: route on what the device still holds
            await self._audit_logger.log_transport_failure("sync", str(e))
            snapshot = self._repository.local_snapshot()
        except Exception as e:
            await self._audit_logger.log_error("routing_sync_failed", str(e))
            return StepOutcome(state=FlowState.STEP1_PROFILE.value)

        state = decide_route(RoutingInputs(
            identity_present=False,
            has_profile=snapshot.has_profile,
            has_entry=snapshot.has_entry,
            recorded_step=int(snapshot.step or OnboardingStep.PROFILE),
        ))

        # The plan step needs a signed-in account
        if state is FlowState.STEP4_PLAN:
            state = FlowState.STEP3_ACCOUNT

        return StepOutcome(state=state.value)

    # =========================================================================
    # Step submissions
    # =========================================================================

    async def submit_profile(self, form: FormInput) -> StepOutcome:
        here = FlowState.STEP1_PROFILE

        validation = self._validator.validate_profile(form)
        if not validation.is_valid:
            return self._invalid(here, validation.errors)
        try:
            profile = ProfileDraft.model_validate(form)
        except ValidationError as e:
            return self._invalid(here, _pydantic_errors(e))

        try:
            await self._repository.save_profile(profile)
        except DraftClientError as e:
            return await self._draft_failure(here, e)

        return StepOutcome(state=FlowState.STEP2_ENTRY.value)

    async def submit_entry(self, form: FormInput) -> StepOutcome:
        here = FlowState.STEP2_ENTRY

        validation = self._validator.validate_entry(form)
        if not validation.is_valid:
            return self._invalid(here, validation.errors)
        try:
            entry = EntryDraft.model_validate(form)
        except ValidationError as e:
            return self._invalid(here, _pydantic_errors(e))

        try:
            await self._repository.save_entry(entry)
        except DraftClientError as e:
            return await self._draft_failure(here, e)

        return StepOutcome(state=FlowState.STEP3_ACCOUNT.value)

    async def submit_account(self, email: Optional[str], password: Optional[str]) -> StepOutcome:
        """
        Create the account, then migrate the draft into it.

        Pending draft writes are flushed first, so adoption sees
        everything the visitor entered.
        """
        here = FlowState.STEP3_ACCOUNT

        validation = self._validator.validate_credentials(email, password)
        if not validation.is_valid:
            return self._invalid(here, validation.errors)

        try:
            await self._repository.flush_pending()
            draft = await self._repository.current_draft()
        except DraftClientError as e:
            return await self._draft_failure(here, e)

        if draft.profile is None or draft.entry is None:
            missing = FlowState.STEP1_PROFILE if draft.profile is None else FlowState.STEP2_ENTRY
            return StepOutcome(
                state=missing.value,
                error_kind=FlowErrorKind.NOT_ALLOWED,
                message="Please complete the earlier steps first.",
            )

        try:
            identity = await self._auth.create_account(email.strip(), password)
        except AccountCreationError as e:
            return StepOutcome(
                state=here.value,
                error_kind=FlowErrorKind.ACCOUNT_CREATION,
                message=str(e),
            )
        await self._audit_logger.log_account_created(identity.id)

        # Best effort: the draft is consumed by the migration either way
        try:
            await self._repository.save_contact_email(identity.email)
            await self._repository.update_step(OnboardingStep.PLAN)
        except DraftClientError as e:
            await self._audit_logger.log_error(
                "draft_update_after_signup_failed",
                str(e),
                {"account_id": str(identity.id)},
            )

        outcome = await self._migration.migrate(identity.id)
        if not outcome.success:
            return StepOutcome(
                state=FlowState.AUTHENTICATED_APP.value,
                error_kind=FlowErrorKind.MIGRATION_PARTIAL_FAILURE,
                message=self._support_message(),
                account_id=identity.id,
            )

        return StepOutcome(state=FlowState.STEP4_PLAN.value, account_id=identity.id)

    async def select_plan(self, plan: Union[PlanTier, str]) -> StepOutcome:
        """
        Finish the flow with a plan.

        Free plans complete immediately; paid plans complete with the
        checkout URL to redirect to.
        """
        here = FlowState.STEP4_PLAN

        try:
            identity = await self._auth.get_current_identity()
        except Exception as e:
            await self._audit_logger.log_error("plan_identity_failed", str(e))
            identity = None
        if identity is None:
            return StepOutcome(
                state=FlowState.STEP3_ACCOUNT.value,
                error_kind=FlowErrorKind.NOT_ALLOWED,
                message=SIGN_IN_REQUIRED_MESSAGE,
            )

        try:
            tier = PlanTier(plan)
        except ValueError:
            return StepOutcome(
                state=here.value,
                errors=[FieldError(field="plan", message="Unknown plan")],
                error_kind=FlowErrorKind.VALIDATION,
            )

        redirect_url = None
        if tier.is_paid:
            if self._checkout is None:
                return StepOutcome(
                    state=here.value,
                    error_kind=FlowErrorKind.NOT_ALLOWED,
                    message=CHECKOUT_MESSAGE,
                    account_id=identity.id,
                )
            try:
                redirect_url = await self._checkout.start_checkout(identity, tier)
            except CheckoutError as e:
                await self._audit_logger.log_error(
                    "checkout_failed",
                    str(e),
                    {"account_id": str(identity.id), "plan": tier.value},
                )
                return StepOutcome(
                    state=here.value,
                    error_kind=FlowErrorKind.TRANSPORT,
                    message=CHECKOUT_MESSAGE,
                    account_id=identity.id,
                )

        await self._audit_logger.log_plan_selected(identity.id, tier.value)
        self._repository.clear_local()
        return StepOutcome(
            state=FlowState.COMPLETED.value,
            redirect_url=redirect_url,
            account_id=identity.id,
        )

    def go_back(self, current: Union[FlowState, str]) -> StepOutcome:
        """One step back. No validation and no writes."""
        state = FlowState(current)
        previous = state.previous
        if previous is None:
            return StepOutcome(
                state=state.value,
                error_kind=FlowErrorKind.NOT_ALLOWED,
                message="There is no previous step",
            )
        return StepOutcome(state=previous.value)

    async def retry_migration(
        self,
        account_id: UUID,
        token: Optional[str] = None,
    ) -> MigrationOutcome:
        """Support path: adopt the still-valid draft into an existing account."""
        return await self._migration.retry(account_id, token)

    # =========================================================================
    # Failure mapping
    # =========================================================================

    @staticmethod
    def _invalid(state: FlowState, errors: list[FieldError]) -> StepOutcome:
        return StepOutcome(
            state=state.value,
            errors=errors,
            error_kind=FlowErrorKind.VALIDATION,
        )

    async def _draft_failure(self, here: FlowState, error: DraftClientError) -> StepOutcome:
        if isinstance(error, TransportFailureError):
            return StepOutcome(
                state=here.value,
                error_kind=FlowErrorKind.TRANSPORT,
                message=RETRY_MESSAGE,
            )
        if isinstance(error, DraftOrderingError):
            return StepOutcome(
                state=FlowState.STEP1_PROFILE.value,
                error_kind=FlowErrorKind.NOT_ALLOWED,
                message=ORDERING_MESSAGE,
            )
        if isinstance(error, DraftUnavailableError):
            return await self._restart(str(error))
        raise error

    async def _restart(self, reason: str) -> StepOutcome:
        """Drop the dead draft and start the visitor over with a new one."""
        await self._audit_logger.log_draft_restarted(reason, self._repository.draft_id)
        self._repository.clear_local()
        try:
            await self._repository.ensure_session()
        except TransportFailureError as e:
            # The next entry to the flow creates the draft instead
            await self._audit_logger.log_transport_failure("create", str(e))
        return StepOutcome(
            state=FlowState.STEP1_PROFILE.value,
            error_kind=FlowErrorKind.DRAFT_RESTARTED,
            message=RESTART_MESSAGE,
        )

    def _support_message(self) -> str:
        return (
            "Your account was created, but we couldn't transfer your "
            f"onboarding data. Please contact support at {self._support_email}."
        )
