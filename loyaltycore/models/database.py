"""SQLModel database table models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlmodel import Field, SQLModel

from loyaltycore.types import Plan, TrialStatus


def _utc_now() -> datetime:
    """Return current UTC time as naive datetime for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def _as_naive_utc(value: datetime | None) -> datetime | None:
    """Convert an aware datetime to naive UTC; naive values are assumed to be UTC already."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _new_uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Billing models
# ---------------------------------------------------------------------------


class Subscription(SQLModel, table=True):
    """Merchant subscription record.

    ``plan`` and ``payment_verified`` belong to the billing integration and are
    only read by the trial processor; ``trial_status`` is written by it.
    """

    __tablename__ = "subscriptions"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    merchant_name: str
    login_email: str = Field(index=True)
    plan: str = Field(default=Plan.PREMIUM.value)  # starter | basic | premium | growth | pro
    trial_status: str = Field(default=TrialStatus.TRIALING.value, index=True)
    trial_ends_at: datetime | None = Field(default=None, index=True)
    payment_verified: bool = Field(default=False)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


# ---------------------------------------------------------------------------
# Auth models
# ---------------------------------------------------------------------------


class AuthChallenge(SQLModel, table=True):
    """Outstanding wallet login nonce, one row per normalized principal."""

    __tablename__ = "auth_challenges"

    principal_key: str = Field(primary_key=True)
    token: str
    issued_at: float = Field(index=True)  # epoch seconds
