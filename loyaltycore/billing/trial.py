"""Trial arithmetic and per-merchant trial checks."""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from loyaltycore.billing.plans import DOWNGRADE_PLAN, FULL_ACCESS_PLANS, TRIAL_PLAN, parse_plan
from loyaltycore.models.database import _utc_now
from loyaltycore.models.domain import TrialFeatureAccess
from loyaltycore.types import TERMINAL_STATUSES, TrialStatus, status_rank

if TYPE_CHECKING:
    from loyaltycore.models.domain import TrialSubscription
    from loyaltycore.storage.repositories.subscriptions import SubscriptionRepository

logger = structlog.get_logger(__name__)

_DAY_SECONDS = timedelta(days=1).total_seconds()

# Days-before-expiry at which a warning goes out, most urgent first.
WARNING_THRESHOLDS: tuple[tuple[int, TrialStatus], ...] = (
    (1, TrialStatus.WARNED_1D),
    (3, TrialStatus.WARNED_3D),
    (7, TrialStatus.WARNED_7D),
)


def is_trial_expired(trial_ends_at: datetime | None, now: datetime | None = None) -> bool:
    if trial_ends_at is None:
        return False
    return (now or _utc_now()) > trial_ends_at


def get_trial_days_remaining(trial_ends_at: datetime | None, now: datetime | None = None) -> int:
    """Whole days left in the trial, rounded up; 0 once it has ended."""
    if trial_ends_at is None:
        return 0
    seconds = (trial_ends_at - (now or _utc_now())).total_seconds()
    return max(0, math.ceil(seconds / _DAY_SECONDS))


def due_warning(days_remaining: int) -> tuple[int, TrialStatus] | None:
    """Most urgent warning threshold covering ``days_remaining``, if any.

    A trial 2 days out is due its 3-day warning, so a scheduler that skipped
    a day still sends the warning that matters now.
    """
    if days_remaining <= 0:
        return None
    for days, status in WARNING_THRESHOLDS:
        if days_remaining <= days:
            return days, status
    return None


def warning_is_pending(current: TrialStatus, target: TrialStatus) -> bool:
    """True if ``current`` has not yet reached ``target``; statuses never regress."""
    if current in TERMINAL_STATUSES:
        return False
    return status_rank(current) < status_rank(target)


def get_trial_feature_access(
    plan: str,
    status: TrialStatus,
    trial_ends_at: datetime | None,
    now: datetime | None = None,
) -> TrialFeatureAccess:
    """Resolve the plan a merchant effectively has; trials get premium features."""
    now = now or _utc_now()
    is_trialing = (
        status not in TERMINAL_STATUSES
        and trial_ends_at is not None
        and not is_trial_expired(trial_ends_at, now)
    )
    if is_trialing:
        return TrialFeatureAccess(
            effective_plan=TRIAL_PLAN,
            is_trialing=True,
            trial_days_remaining=get_trial_days_remaining(trial_ends_at, now),
            has_full_access=True,
        )

    effective = parse_plan(plan)
    return TrialFeatureAccess(
        effective_plan=effective,
        is_trialing=False,
        trial_days_remaining=0,
        has_full_access=effective in FULL_ACCESS_PLANS,
    )


async def check_and_update_trial_status(
    repository: SubscriptionRepository,
    subscription_id: str,
    now: datetime | None = None,
) -> TrialSubscription | None:
    """Settle one merchant's expired trial on access instead of waiting for the batch.

    Verified payment turns the trial active; otherwise the merchant is
    downgraded. Returns the current record, or None if it does not exist.
    """
    sub = await repository.get(subscription_id)
    if sub is None or sub.status in TERMINAL_STATUSES:
        return sub
    if not is_trial_expired(sub.trial_ends_at, now):
        return sub

    if sub.payment_verified:
        changed = await repository.mark_active(subscription_id, sub.status)
    else:
        changed = await repository.downgrade(subscription_id, sub.status, DOWNGRADE_PLAN)
    if changed:
        logger.info(
            "trial_settled_on_access",
            subscription_id=subscription_id,
            activated=sub.payment_verified,
        )
    return await repository.get(subscription_id)
