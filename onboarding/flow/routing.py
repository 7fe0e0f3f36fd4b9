"""
Routing Decision

DESIGN DECISION: Where a visitor lands is a pure function of plain data.
No storage, no auth calls, no UI. Gathering the inputs (and failing open
when that goes wrong) is StepController's job; this module only decides.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FlowState(str, Enum):
    """Named states of the onboarding flow."""
    STEP1_PROFILE = "step1_profile"
    STEP2_ENTRY = "step2_entry"
    STEP3_ACCOUNT = "step3_account"
    STEP4_PLAN = "step4_plan"
    AUTHENTICATED_APP = "authenticated_app"   # signed-in users never see the flow
    COMPLETED = "completed"                   # flow exited after plan selection

    @property
    def step_number(self) -> Optional[int]:
        return _STEP_NUMBERS.get(self)

    @property
    def previous(self) -> Optional["FlowState"]:
        """The state one step back, or None on the first step."""
        number = self.step_number
        if number is None or number == 1:
            return None
        return STEP_STATES[number - 2]


STEP_STATES = (
    FlowState.STEP1_PROFILE,
    FlowState.STEP2_ENTRY,
    FlowState.STEP3_ACCOUNT,
    FlowState.STEP4_PLAN,
)

_STEP_NUMBERS = {state: index + 1 for index, state in enumerate(STEP_STATES)}


class RoutingInputs(BaseModel):
    """Everything the routing decision looks at."""
    model_config = ConfigDict(frozen=True)

    identity_present: bool = False
    has_profile: bool = False
    has_entry: bool = False
    recorded_step: int = Field(default=1, ge=0)


def decide_route(inputs: RoutingInputs) -> FlowState:
    """
    Pick the canonical state for a visitor entering the flow.

    Rules, first match wins:
    1. signed in            -> authenticated app
    2. no profile           -> step 1
    3. no entry             -> step 2
    4. recorded step < 3    -> step 3
    5. recorded step < 4    -> step 4
    6. otherwise            -> step 1 (a step of 4+ with no migration is
                               not trusted)
    """
    if inputs.identity_present:
        return FlowState.AUTHENTICATED_APP
    if not inputs.has_profile:
        return FlowState.STEP1_PROFILE
    if not inputs.has_entry:
        return FlowState.STEP2_ENTRY
    if inputs.recorded_step < 3:
        return FlowState.STEP3_ACCOUNT
    if inputs.recorded_step < 4:
        return FlowState.STEP4_PLAN
    return FlowState.STEP1_PROFILE
