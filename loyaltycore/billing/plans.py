"""Plan tier definitions with concrete limits."""

from __future__ import annotations

from dataclasses import dataclass

from loyaltycore.types import Plan

UNLIMITED = -1

# Tier a merchant lands on when a trial ends without a verified payment.
DOWNGRADE_PLAN = Plan.STARTER

# Tier granted for the duration of a trial.
TRIAL_PLAN = Plan.PREMIUM

FULL_ACCESS_PLANS = frozenset({Plan.PREMIUM, Plan.GROWTH, Plan.PRO})


@dataclass(frozen=True, slots=True)
class PlanLimits:
    """Feature limits for a loyalty plan."""

    members: int
    locations: int
    max_tiers: int
    pos_integration: bool
    branded_token: bool


PLAN_LIMITS: dict[Plan, PlanLimits] = {
    Plan.STARTER: PlanLimits(
        members=5,
        locations=1,
        max_tiers=3,
        pos_integration=False,
        branded_token=False,
    ),
    Plan.BASIC: PlanLimits(
        members=1_000,
        locations=UNLIMITED,
        max_tiers=4,
        pos_integration=False,
        branded_token=False,
    ),
    Plan.PREMIUM: PlanLimits(
        members=25_000,
        locations=UNLIMITED,
        max_tiers=6,
        pos_integration=True,
        branded_token=False,
    ),
    Plan.GROWTH: PlanLimits(
        members=100_000,
        locations=UNLIMITED,
        max_tiers=10,
        pos_integration=True,
        branded_token=True,
    ),
    Plan.PRO: PlanLimits(
        members=UNLIMITED,
        locations=UNLIMITED,
        max_tiers=15,
        pos_integration=True,
        branded_token=True,
    ),
}


def parse_plan(value: str) -> Plan:
    """Coerce a stored plan string, defaulting to the starter tier."""
    try:
        return Plan(value.lower())
    except ValueError:
        return Plan.STARTER


def get_plan_limits(plan: str) -> PlanLimits:
    """Get limits for a plan, defaulting to starter tier."""
    return PLAN_LIMITS[parse_plan(plan)]


def display_name(plan: str) -> str:
    """Human-facing plan name; PRO is marketed as Enterprise."""
    parsed = parse_plan(plan)
    return "Enterprise" if parsed is Plan.PRO else parsed.value.capitalize()
