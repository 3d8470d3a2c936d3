"""Inter-module data contracts (not persisted directly)."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from loyaltycore.types import Plan, TrialStatus


class TrialSubscription(BaseModel):
    """Read view over a subscription record used by the trial processor."""

    subscription_id: str
    merchant_name: str
    email: str
    plan: Plan
    trial_ends_at: datetime | None = None
    status: TrialStatus = TrialStatus.TRIALING
    payment_verified: bool = False


class RunDetail(BaseModel):
    subscription_id: str
    action: str  # warned | downgraded | activated | skipped | failed
    status: TrialStatus | None = None
    days_remaining: int | None = None
    error: str | None = None
    note: str | None = None  # e.g. trial_warning_status_race


class WarningRunSummary(BaseModel):
    sent: int = 0
    details: list[RunDetail] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ExpiryRunSummary(BaseModel):
    processed: int = 0
    activated: int = 0
    details: list[RunDetail] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class TrialFeatureAccess(BaseModel):
    effective_plan: Plan
    is_trialing: bool
    trial_days_remaining: int
    has_full_access: bool
