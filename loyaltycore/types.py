"""Enums and type aliases for loyaltycore."""

from enum import StrEnum


class TrialStatus(StrEnum):
    TRIALING = "trialing"
    WARNED_7D = "warned_7d"
    WARNED_3D = "warned_3d"
    WARNED_1D = "warned_1d"
    EXPIRED_DOWNGRADED = "expired_downgraded"
    ACTIVE = "active"


class Plan(StrEnum):
    STARTER = "starter"
    BASIC = "basic"
    PREMIUM = "premium"
    GROWTH = "growth"
    PRO = "pro"


# Forward-only ordering of the trial state machine. ACTIVE is absorbing and
# deliberately absent.
TRIAL_PROGRESSION: tuple[TrialStatus, ...] = (
    TrialStatus.TRIALING,
    TrialStatus.WARNED_7D,
    TrialStatus.WARNED_3D,
    TrialStatus.WARNED_1D,
    TrialStatus.EXPIRED_DOWNGRADED,
)

TERMINAL_STATUSES = frozenset({TrialStatus.EXPIRED_DOWNGRADED, TrialStatus.ACTIVE})


def status_rank(status: TrialStatus) -> int:
    """Position of a status in the trial progression (-1 for ACTIVE)."""
    try:
        return TRIAL_PROGRESSION.index(status)
    except ValueError:
        return -1
