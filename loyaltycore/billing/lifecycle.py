"""Trial lifecycle batch processing: expiry warnings and downgrades.

Both batches are triggered by an at-least-once scheduler and may overlap.
Idempotency comes from the persisted trial status:

* a warning is sent only while the subscription is still before that
  threshold's status, re-checked right before sending, and recorded with a
  compare-and-set once the send succeeds;
* a downgrade is a single compare-and-set from the status that was read.

Within one process a subscription already being handled by another run is
skipped. Across processes two runs can still both pass the pre-send check
and send the same warning before one of them wins the compare-and-set; only
an external lock would close that window. Downgrades have no such window.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

import structlog

from loyaltycore.billing.plans import DOWNGRADE_PLAN
from loyaltycore.billing.trial import (
    due_warning,
    get_trial_days_remaining,
    is_trial_expired,
    warning_is_pending,
)
from loyaltycore.exceptions import NotificationError, TrialProcessingError
from loyaltycore.models.database import _utc_now
from loyaltycore.models.domain import (
    ExpiryRunSummary,
    RunDetail,
    TrialSubscription,
    WarningRunSummary,
)
from loyaltycore.notifications.templates import render_trial_expiring_email
from loyaltycore.types import TrialStatus

if TYPE_CHECKING:
    from loyaltycore.notifications.gateway import NotificationGateway
    from loyaltycore.storage.repositories.subscriptions import SubscriptionRepository

logger = structlog.get_logger(__name__)


class TrialLifecycleProcessor:
    def __init__(
        self,
        repository: SubscriptionRepository,
        gateway: NotificationGateway,
        app_url: str = "http://localhost:3000",
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._repository = repository
        self._gateway = gateway
        self._app_url = app_url
        self._now = now
        self._in_flight: set[str] = set()

    # ------------------------------------------------------------------
    # Expiry warnings
    # ------------------------------------------------------------------

    async def send_trial_expiring_emails(self) -> WarningRunSummary:
        """Send each due 7/3/1-day warning once.

        Raises TrialProcessingError if candidates cannot be listed; failures
        for individual subscriptions are recorded in the summary instead.
        """
        now = self._now()
        candidates = await self._load_candidates()
        summary = WarningRunSummary()

        for sub in candidates:
            days: int | None = None
            try:
                days = get_trial_days_remaining(sub.trial_ends_at, now)
                due = due_warning(days)
                if (
                    due is None
                    or sub.payment_verified
                    or not warning_is_pending(sub.status, due[1])
                ):
                    continue
                detail = await self._warn(sub.subscription_id, due[1], days)
            except Exception as exc:
                logger.warning(
                    "trial_warning_failed",
                    subscription_id=sub.subscription_id,
                    error=str(exc),
                )
                summary.errors.append(f"Failed to email {sub.email}: {exc}")
                summary.details.append(
                    RunDetail(
                        subscription_id=sub.subscription_id,
                        action="failed",
                        days_remaining=days,
                        error=str(exc),
                    )
                )
                continue

            summary.details.append(detail)
            if detail.action == "warned":
                summary.sent += 1

        logger.info(
            "trial_warnings_processed",
            candidates=len(candidates),
            sent=summary.sent,
            failed=len(summary.errors),
        )
        return summary

    async def _warn(self, subscription_id: str, target: TrialStatus, days: int) -> RunDetail:
        skipped = RunDetail(subscription_id=subscription_id, action="skipped", days_remaining=days)
        if subscription_id in self._in_flight:
            return skipped

        self._in_flight.add(subscription_id)
        try:
            current = await self._repository.get(subscription_id)
            if (
                current is None
                or current.payment_verified
                or current.trial_ends_at is None
                or not warning_is_pending(current.status, target)
            ):
                return skipped

            email = render_trial_expiring_email(
                merchant_name=current.merchant_name,
                days_remaining=days,
                trial_ends_at=current.trial_ends_at,
                current_plan=current.plan,
                app_url=self._app_url,
            )
            if not await self._gateway.send(current.email, email.subject, email.html):
                msg = "email gateway reported failure"
                raise NotificationError(msg)

            note = None
            if not await self._repository.advance_status(subscription_id, current.status, target):
                note = "trial_warning_status_race"
                logger.warning(note, subscription_id=subscription_id, target=target.value)
            logger.info(
                "trial_warning_sent",
                subscription_id=subscription_id,
                email=current.email,
                days_remaining=days,
            )
            return RunDetail(
                subscription_id=subscription_id,
                action="warned",
                status=target,
                days_remaining=days,
                note=note,
            )
        finally:
            self._in_flight.discard(subscription_id)

    # ------------------------------------------------------------------
    # Expired trials
    # ------------------------------------------------------------------

    async def process_expired_trials(self) -> ExpiryRunSummary:
        """Downgrade every expired trial once; trials with verified payment become active."""
        now = self._now()
        candidates = await self._load_candidates()
        summary = ExpiryRunSummary()

        for sub in candidates:
            try:
                if not is_trial_expired(sub.trial_ends_at, now):
                    continue
                detail = await self._expire(sub)
            except Exception as exc:
                logger.warning(
                    "trial_expiry_failed",
                    subscription_id=sub.subscription_id,
                    error=str(exc),
                )
                summary.errors.append(f"Failed to process {sub.subscription_id}: {exc}")
                summary.details.append(
                    RunDetail(subscription_id=sub.subscription_id, action="failed", error=str(exc))
                )
                continue

            summary.details.append(detail)
            if detail.action == "downgraded":
                summary.processed += 1
            elif detail.action == "activated":
                summary.activated += 1

        logger.info(
            "expired_trials_processed",
            candidates=len(candidates),
            processed=summary.processed,
            activated=summary.activated,
            failed=len(summary.errors),
        )
        return summary

    async def _expire(self, sub: TrialSubscription) -> RunDetail:
        if sub.payment_verified:
            action, status = "activated", TrialStatus.ACTIVE
            changed = await self._repository.mark_active(sub.subscription_id, sub.status)
        else:
            action, status = "downgraded", TrialStatus.EXPIRED_DOWNGRADED
            changed = await self._repository.downgrade(
                sub.subscription_id, sub.status, DOWNGRADE_PLAN
            )

        if not changed:
            return RunDetail(subscription_id=sub.subscription_id, action="skipped")
        logger.info(
            "trial_expired",
            subscription_id=sub.subscription_id,
            email=sub.email,
            outcome=action,
        )
        return RunDetail(subscription_id=sub.subscription_id, action=action, status=status)

    # ------------------------------------------------------------------

    async def run_all(self) -> tuple[WarningRunSummary, ExpiryRunSummary]:
        """Warnings first, then downgrades, as the daily cron does."""
        warnings = await self.send_trial_expiring_emails()
        expired = await self.process_expired_trials()
        return warnings, expired

    async def _load_candidates(self) -> list[TrialSubscription]:
        try:
            return await self._repository.list_trial_candidates()
        except Exception as exc:
            logger.error("trial_candidates_unavailable", error=str(exc))
            raise TrialProcessingError("could not list trial subscriptions") from exc
