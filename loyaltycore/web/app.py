"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, Request

from loyaltycore import __version__
from loyaltycore.auth.challenge_store import ChallengeStore  # noqa: TC001
from loyaltycore.auth.sweeper import ExpirySweeper
from loyaltycore.config.logging import setup_logging
from loyaltycore.config.settings import get_settings
from loyaltycore.web.dependencies import get_challenge_store
from loyaltycore.web.middleware import RateLimitMiddleware, RequestIDMiddleware
from loyaltycore.web.routes.cron import router as cron_router
from loyaltycore.web.routes.wallet import router as wallet_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create tables in dev mode and run the challenge sweeper for the app's lifetime."""
    settings = get_settings()
    if settings.use_database and settings.debug:
        from loyaltycore.storage.database import init_db

        await init_db()

    sweeper = ExpirySweeper(
        get_challenge_store(),
        interval_seconds=settings.challenge_sweep_interval_seconds,
    )
    sweeper.start()
    app.state.sweeper = sweeper
    try:
        yield
    finally:
        await sweeper.stop()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    setup_logging(log_level=settings.log_level, json_output=not settings.debug, service="api")

    app = FastAPI(
        title="loyaltycore",
        description="Wallet login challenges and trial lifecycle processing",
        version=__version__,
        lifespan=lifespan,
    )

    # Middleware: last added runs first
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.wallet_rate_limit_requests,
        window_seconds=settings.wallet_rate_limit_window_seconds,
    )
    app.add_middleware(RequestIDMiddleware)

    app.include_router(wallet_router)
    app.include_router(cron_router)

    @app.get("/api/health")
    async def health_check(
        request: Request,
        store: ChallengeStore = Depends(get_challenge_store),
    ) -> dict[str, object]:
        from loyaltycore.web.health import check_health

        return await check_health(store, getattr(request.app.state, "sweeper", None))

    logger.info("app_created")
    return app
