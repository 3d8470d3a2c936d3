"""Health check endpoint logic."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from loyaltycore import __version__
from loyaltycore.config.settings import get_settings
from loyaltycore.exceptions import ChallengeStoreError

if TYPE_CHECKING:
    from loyaltycore.auth.challenge_store import ChallengeStore
    from loyaltycore.auth.sweeper import ExpirySweeper

logger = structlog.get_logger(__name__)


async def check_health(
    store: ChallengeStore, sweeper: ExpirySweeper | None = None
) -> dict[str, object]:
    """Report storage mode, outstanding login challenges and sweeper state.

    The challenge count doubles as the database probe: if it cannot be read
    the service is reported as degraded.
    """
    settings = get_settings()
    result: dict[str, object] = {
        "status": "healthy",
        "version": __version__,
        "storage": "database" if settings.use_database else "memory",
        "sweeper": "running" if sweeper is not None and sweeper.running else "stopped",
    }
    try:
        result["pending_challenges"] = await store.count()
    except ChallengeStoreError as exc:
        logger.warning("health_check_store_failed", error=str(exc))
        result["pending_challenges"] = None
        result["status"] = "degraded"
    return result
