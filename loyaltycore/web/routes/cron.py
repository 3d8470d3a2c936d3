"""Scheduler trigger for trial lifecycle processing."""

from __future__ import annotations

import hmac
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from loyaltycore.billing.lifecycle import TrialLifecycleProcessor
from loyaltycore.config.settings import get_settings
from loyaltycore.exceptions import TrialProcessingError
from loyaltycore.web.dependencies import get_trial_processor

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"])


def require_cron_secret(request: Request) -> None:
    """Require ``Authorization: Bearer <CRON_SECRET>`` when a secret is configured."""
    secret = get_settings().cron_secret
    if not secret:
        return
    supplied = request.headers.get("authorization", "")
    if not hmac.compare_digest(supplied.encode(), f"Bearer {secret}".encode()):
        logger.warning("cron_unauthorized", path=request.url.path)
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.api_route(
    "/process-trials",
    methods=["GET", "POST"],
    dependencies=[Depends(require_cron_secret)],
    response_model=None,
)
async def process_trials(
    processor: Annotated[TrialLifecycleProcessor, Depends(get_trial_processor)],
) -> dict[str, Any] | JSONResponse:
    """Send due trial warnings, then downgrade expired trials.

    Safe to call at any frequency; repeated calls do not resend or re-downgrade.
    """
    try:
        warnings, expired = await processor.run_all()
    except TrialProcessingError as exc:
        logger.error("cron_process_trials_failed", error=str(exc))
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to process trials", "details": str(exc)},
        )

    return {
        "success": True,
        "message": (
            f"Sent {warnings.sent} expiring emails, "
            f"processed {expired.processed} expired trials"
        ),
        "emails": warnings.to_dict(),
        "expired": expired.to_dict(),
    }
