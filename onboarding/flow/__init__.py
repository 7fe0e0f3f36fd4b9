"""Onboarding flow: routing, the two-tier draft repository and the step controller."""

from onboarding.flow.routing import (
    STEP_STATES,
    FlowState,
    RoutingInputs,
    decide_route,
)
from onboarding.flow.repository import DraftRepository
from onboarding.flow.controller import StepController

__all__ = [
    "STEP_STATES",
    "DraftRepository",
    "FlowState",
    "RoutingInputs",
    "StepController",
    "decide_route",
]
