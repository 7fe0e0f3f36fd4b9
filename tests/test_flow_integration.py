"""
End-to-end onboarding runs

The same visitor journey through the fixture wiring (in-memory stores,
fixed clock) and through create_app_components with both backends.
"""

import pytest

from onboarding.flow import DraftRepository, FlowState, StepController
from onboarding.models.results import FlowErrorKind
from onboarding.orchestrator import create_app_components
from onboarding.services.cache import JsonFileDeviceStorage
from onboarding.services.drafts import DraftAlreadyCompletedError, DraftSessionClient
from onboarding.services.storage import SqlDraftStore, SqlPermanentStorage


PROFILE_FORM = {"name": "Jane", "age": 25, "rating": 8.5}
ENTRY_FORM = {"date": "2025-10-09", "amount": 150, "duration": 90, "nuts": 2}


async def run_to_plan_step(controller):
    """Steps 1 to 3 for a new visitor. Returns (token, account outcome)."""
    assert (await controller.enter()).state == FlowState.STEP1_PROFILE
    assert (await controller.submit_profile(PROFILE_FORM)).state == FlowState.STEP2_ENTRY
    assert (await controller.submit_entry(ENTRY_FORM)).state == FlowState.STEP3_ACCOUNT

    token = controller.repository.token
    outcome = await controller.submit_account("jane@example.com", "password123")
    return token, outcome


class TestHappyPath:

    @pytest.mark.asyncio
    async def test_new_visitor_to_free_plan(self, controller, client, backend, cache, audit_storage):
        token, account = await run_to_plan_step(controller)

        assert account.state == FlowState.STEP4_PLAN
        assert not cache.has_any()

        profiles = [p for p in backend.profiles.values() if p.account_id == account.account_id]
        assert len(profiles) == 1
        assert profiles[0].name == "Jane"
        entries = [e for e in backend.entries.values() if e.profile_id == profiles[0].id]
        assert len(entries) == 1
        assert entries[0].nuts == 2

        with pytest.raises(DraftAlreadyCompletedError):
            await client.fetch(token)

        done = await controller.select_plan("free")
        assert done.state == FlowState.COMPLETED

        assert (await controller.enter()).state == FlowState.AUTHENTICATED_APP

        event_types = {e.event_type.value for e in await audit_storage.get_recent_events()}
        assert {"draft_created", "profile_saved", "entry_saved", "account_created",
                "migration_completed", "plan_selected"} <= event_types

    @pytest.mark.asyncio
    async def test_reload_mid_flow(
        self, controller, repository, cache, client, auth, migration, audit_logger
    ):
        """A reload rebuilds the controller from the device cache."""
        await controller.enter()
        await controller.submit_profile(PROFILE_FORM)

        reloaded = StepController(
            repository=DraftRepository(cache, client, audit_logger),
            auth=auth,
            migration=migration,
        )

        assert (await reloaded.enter()).state == FlowState.STEP2_ENTRY
        assert reloaded.repository.token == repository.token

    @pytest.mark.asyncio
    async def test_expiry_mid_flow_restarts_cleanly(self, controller, clock, backend):
        await controller.enter()
        await controller.submit_profile(PROFILE_FORM)
        clock.advance(hours=2, minutes=5)

        outcome = await controller.submit_entry(ENTRY_FORM)

        assert outcome.error_kind == FlowErrorKind.DRAFT_RESTARTED
        assert (await controller.enter()).state == FlowState.STEP1_PROFILE
        assert backend.accounts == {}


class TestAssembledComponents:

    @pytest.mark.asyncio
    async def test_in_memory_wiring(self):
        controller, maintenance, database = create_app_components(use_storage=False)

        assert database is None
        _, account = await run_to_plan_step(controller)
        assert account.state == FlowState.STEP4_PLAN
        assert (await controller.select_plan("free")).state == FlowState.COMPLETED

        metrics = await maintenance.session_metrics()
        assert metrics.completed == 1

    @pytest.mark.asyncio
    async def test_sql_wiring(self):
        controller, maintenance, database = create_app_components(database_url="sqlite://")

        assert database is not None
        token, account = await run_to_plan_step(controller)
        assert account.state == FlowState.STEP4_PLAN

        permanent = SqlPermanentStorage(database)
        profiles = await permanent.list_profiles(account.account_id)
        assert [p.name for p in profiles] == ["Jane"]
        assert len(await permanent.list_entries(profiles[0].id)) == 1
        assert (await permanent.get_account(account.account_id)).onboarding_completed

        with pytest.raises(DraftAlreadyCompletedError):
            await DraftSessionClient(SqlDraftStore(database)).fetch(token)

        assert (await controller.select_plan("free")).state == FlowState.COMPLETED

    @pytest.mark.asyncio
    async def test_unusable_database_falls_back_to_memory(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'missing' / 'dir' / 'onboarding.db'}"

        controller, _, database = create_app_components(database_url=url)

        assert database is None
        _, account = await run_to_plan_step(controller)
        assert account.state == FlowState.STEP4_PLAN

    @pytest.mark.asyncio
    async def test_progress_survives_on_device_file(self, tmp_path):
        path = tmp_path / "device.json"
        controller, _, _ = create_app_components(
            database_url="sqlite://",
            device_storage=JsonFileDeviceStorage(path),
        )
        await controller.enter()
        await controller.submit_profile(PROFILE_FORM)

        assert path.exists()
        assert "onboarding_session_token" in path.read_text(encoding="utf-8")
