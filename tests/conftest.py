"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from loyaltycore.auth.challenge_store import InMemoryChallengeStore
from loyaltycore.billing.lifecycle import TrialLifecycleProcessor
from loyaltycore.config.settings import get_settings
from loyaltycore.notifications.gateway import LoggingEmailGateway
from loyaltycore.storage.repositories.subscriptions import SubscriptionRepository
from loyaltycore.web import dependencies

NOW = datetime(2026, 3, 10, 12, 0, 0)
_EPOCH = datetime(1970, 1, 1)


class FakeClock:
    """Manually advanced clock usable as both an epoch and a datetime source."""

    def __init__(self, start: datetime = NOW) -> None:
        self.current = start

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)

    def now(self) -> datetime:
        return self.current

    def time(self) -> float:
        return (self.current - _EPOCH).total_seconds()


class FlakyGateway(LoggingEmailGateway):
    """Gateway that fails for the given recipients."""

    def __init__(self, failing: set[str] | None = None) -> None:
        super().__init__()
        self.failing = failing or set()

    async def send(self, to: str, subject: str, html: str) -> bool:
        if to in self.failing:
            return False
        return await super().send(to, subject, html)


@pytest.fixture(autouse=True)
def _clear_cached_singletons():
    """Settings and dependency providers are lru_cached per process."""
    caches = (
        get_settings,
        dependencies.get_challenge_store,
        dependencies.get_subscription_repository,
        dependencies.get_notification_gateway,
        dependencies.get_trial_processor,
    )
    for fn in caches:
        fn.cache_clear()
    yield
    for fn in caches:
        fn.cache_clear()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def challenge_store(clock: FakeClock) -> InMemoryChallengeStore:
    return InMemoryChallengeStore(ttl_seconds=300, clock=clock.time)


@pytest.fixture()
def subscription_repo() -> SubscriptionRepository:
    return SubscriptionRepository()


@pytest.fixture()
def gateway() -> FlakyGateway:
    return FlakyGateway()


@pytest.fixture()
def processor(
    subscription_repo: SubscriptionRepository, gateway: FlakyGateway, clock: FakeClock
) -> TrialLifecycleProcessor:
    return TrialLifecycleProcessor(
        repository=subscription_repo,
        gateway=gateway,
        app_url="https://app.example.com",
        now=clock.now,
    )


@pytest.fixture()
def app(challenge_store, processor):
    """A fresh app wired to the test store and processor."""
    from loyaltycore.web.app import create_app

    application = create_app()
    application.dependency_overrides[dependencies.get_challenge_store] = lambda: challenge_store
    application.dependency_overrides[dependencies.get_trial_processor] = lambda: processor
    return application


@pytest.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture()
async def async_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()
