"""Tests for the pure routing decision."""

import pytest

from onboarding.flow import FlowState, RoutingInputs, decide_route


class TestDecideRoute:

    def test_fresh_visitor_starts_at_profile(self):
        assert decide_route(RoutingInputs()) is FlowState.STEP1_PROFILE

    def test_profile_without_entry_goes_to_entry(self):
        inputs = RoutingInputs(has_profile=True, recorded_step=2)
        assert decide_route(inputs) is FlowState.STEP2_ENTRY

    @pytest.mark.parametrize("has_profile,has_entry,step", [
        (False, False, 1),
        (True, True, 3),
        (True, True, 4),
        (False, False, 4),
    ])
    def test_signed_in_users_always_go_to_the_app(self, has_profile, has_entry, step):
        inputs = RoutingInputs(
            identity_present=True,
            has_profile=has_profile,
            has_entry=has_entry,
            recorded_step=step,
        )
        assert decide_route(inputs) is FlowState.AUTHENTICATED_APP

    @pytest.mark.parametrize("step", [1, 2])
    def test_complete_drafts_below_step_three_go_to_account(self, step):
        inputs = RoutingInputs(has_profile=True, has_entry=True, recorded_step=step)
        assert decide_route(inputs) is FlowState.STEP3_ACCOUNT

    def test_step_three_goes_to_plan(self):
        inputs = RoutingInputs(has_profile=True, has_entry=True, recorded_step=3)
        assert decide_route(inputs) is FlowState.STEP4_PLAN

    @pytest.mark.parametrize("step", [4, 5])
    def test_untrusted_high_step_resets_to_profile(self, step):
        inputs = RoutingInputs(has_profile=True, has_entry=True, recorded_step=step)
        assert decide_route(inputs) is FlowState.STEP1_PROFILE

    def test_missing_profile_wins_over_recorded_step(self):
        inputs = RoutingInputs(has_profile=False, has_entry=False, recorded_step=3)
        assert decide_route(inputs) is FlowState.STEP1_PROFILE

    def test_same_inputs_same_state(self):
        inputs = RoutingInputs(has_profile=True, has_entry=False, recorded_step=2)
        assert {decide_route(inputs) for _ in range(10)} == {FlowState.STEP2_ENTRY}


class TestFlowState:

    def test_step_numbers(self):
        assert FlowState.STEP1_PROFILE.step_number == 1
        assert FlowState.STEP4_PLAN.step_number == 4
        assert FlowState.COMPLETED.step_number is None

    def test_previous(self):
        assert FlowState.STEP3_ACCOUNT.previous is FlowState.STEP2_ENTRY
        assert FlowState.STEP1_PROFILE.previous is None
        assert FlowState.AUTHENTICATED_APP.previous is None

    def test_states_compare_to_their_values(self):
        assert FlowState.STEP2_ENTRY == "step2_entry"
