"""Shared async engine for the subscription and challenge tables.

Every instance behind the load balancer points at the same database, which
is what lets the database challenge store hand out a nonce on one instance
and verify it on another.
"""

from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel

from loyaltycore.config.settings import get_settings
from loyaltycore.models import database as _tables  # noqa: F401  registers the tables


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    # sqlite (local dev) uses its own pool and rejects the sizing arguments
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo)
    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


@lru_cache
def get_engine() -> AsyncEngine:
    """Process-wide engine built from ``DATABASE_URL``."""
    settings = get_settings()
    return build_engine(settings.database_url, echo=settings.debug)


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create ``subscriptions`` and ``auth_challenges`` if they are missing.

    Only run automatically in debug mode; production schemas are managed
    outside the application.
    """
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
