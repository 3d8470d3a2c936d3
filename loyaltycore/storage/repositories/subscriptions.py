"""Subscription repository: the trial processor's view of merchant billing records.

Every status write is a compare-and-set on the status the caller last read,
so two overlapping trial runs cannot both apply the same transition.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from loyaltycore.billing.plans import TRIAL_PLAN, parse_plan
from loyaltycore.exceptions import PersistenceError
from loyaltycore.models.database import Subscription, _as_naive_utc, _new_uuid, _utc_now
from loyaltycore.models.domain import TrialSubscription
from loyaltycore.types import TERMINAL_STATUSES, Plan, TrialStatus

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


def _to_view(row: Subscription) -> TrialSubscription:
    return TrialSubscription(
        subscription_id=row.id,
        merchant_name=row.merchant_name,
        email=row.login_email,
        plan=parse_plan(row.plan),
        trial_ends_at=row.trial_ends_at,
        status=TrialStatus(row.trial_status),
        payment_verified=row.payment_verified,
    )


class SubscriptionRepository:
    """In-memory subscription store. Replaced by SQLModel + PostgreSQL in production."""

    def __init__(self) -> None:
        self._records: dict[str, TrialSubscription] = {}

    async def create(
        self,
        merchant_name: str,
        email: str,
        trial_ends_at: datetime | None,
        plan: Plan = TRIAL_PLAN,
        status: TrialStatus = TrialStatus.TRIALING,
        payment_verified: bool = False,
    ) -> TrialSubscription:
        record = TrialSubscription(
            subscription_id=_new_uuid(),
            merchant_name=merchant_name,
            email=email,
            plan=plan,
            trial_ends_at=_as_naive_utc(trial_ends_at),
            status=status,
            payment_verified=payment_verified,
        )
        self._records[record.subscription_id] = record
        logger.info("subscription_created", id=record.subscription_id, email=email)
        return record

    async def get(self, subscription_id: str) -> TrialSubscription | None:
        return self._records.get(subscription_id)

    async def list_trial_candidates(self) -> list[TrialSubscription]:
        return [
            r
            for r in self._records.values()
            if r.trial_ends_at is not None and r.status not in TERMINAL_STATUSES
        ]

    async def advance_status(
        self, subscription_id: str, expected: TrialStatus, new: TrialStatus
    ) -> bool:
        return self._swap(subscription_id, expected, status=new)

    async def downgrade(self, subscription_id: str, expected: TrialStatus, plan: Plan) -> bool:
        return self._swap(
            subscription_id, expected, status=TrialStatus.EXPIRED_DOWNGRADED, plan=plan
        )

    async def mark_active(self, subscription_id: str, expected: TrialStatus) -> bool:
        return self._swap(subscription_id, expected, status=TrialStatus.ACTIVE)

    def _swap(self, subscription_id: str, expected: TrialStatus, **changes: object) -> bool:
        record = self._records.get(subscription_id)
        if record is None or record.status != expected:
            return False
        self._records[subscription_id] = record.model_copy(update=changes)
        return True


class DatabaseSubscriptionRepository:
    """PostgreSQL-backed subscription store."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def create(
        self,
        merchant_name: str,
        email: str,
        trial_ends_at: datetime | None,
        plan: Plan = TRIAL_PLAN,
        status: TrialStatus = TrialStatus.TRIALING,
        payment_verified: bool = False,
    ) -> TrialSubscription:
        row = Subscription(
            merchant_name=merchant_name,
            login_email=email,
            plan=plan.value,
            trial_status=status.value,
            trial_ends_at=_as_naive_utc(trial_ends_at),
            payment_verified=payment_verified,
        )
        try:
            async with AsyncSession(self._engine) as session:
                session.add(row)
                await session.commit()
                await session.refresh(row)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"could not create subscription for {email}") from exc
        logger.info("subscription_created", id=row.id, email=email)
        return _to_view(row)

    async def get(self, subscription_id: str) -> TrialSubscription | None:
        try:
            async with AsyncSession(self._engine) as session:
                row = await session.get(Subscription, subscription_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"could not load subscription {subscription_id}") from exc
        return _to_view(row) if row else None

    async def list_trial_candidates(self) -> list[TrialSubscription]:
        terminal = [s.value for s in TERMINAL_STATUSES]
        stmt = select(Subscription).where(
            col(Subscription.trial_ends_at).is_not(None),
            col(Subscription.trial_status).not_in(terminal),
        )
        try:
            async with AsyncSession(self._engine) as session:
                rows = (await session.exec(stmt)).all()
        except SQLAlchemyError as exc:
            raise PersistenceError("could not list trial subscriptions") from exc
        return [_to_view(r) for r in rows]

    async def advance_status(
        self, subscription_id: str, expected: TrialStatus, new: TrialStatus
    ) -> bool:
        return await self._swap(subscription_id, expected, trial_status=new.value)

    async def downgrade(self, subscription_id: str, expected: TrialStatus, plan: Plan) -> bool:
        return await self._swap(
            subscription_id,
            expected,
            trial_status=TrialStatus.EXPIRED_DOWNGRADED.value,
            plan=plan.value,
        )

    async def mark_active(self, subscription_id: str, expected: TrialStatus) -> bool:
        return await self._swap(subscription_id, expected, trial_status=TrialStatus.ACTIVE.value)

    async def _swap(self, subscription_id: str, expected: TrialStatus, **values: object) -> bool:
        t = Subscription.__table__  # type: ignore[attr-defined]
        stmt = (
            update(t)
            .where(t.c.id == subscription_id, t.c.trial_status == expected.value)
            .values(updated_at=_utc_now(), **values)
        )
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"could not update subscription {subscription_id}") from exc
        return bool(result.rowcount == 1)
