"""FastAPI dependency providers and shared process-wide services."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import structlog

from loyaltycore.auth.challenge_store import (
    ChallengeStore,
    DatabaseChallengeStore,
    InMemoryChallengeStore,
)
from loyaltycore.billing.lifecycle import TrialLifecycleProcessor
from loyaltycore.config.settings import get_settings
from loyaltycore.notifications.gateway import (
    LoggingEmailGateway,
    NotificationGateway,
    ResendEmailGateway,
)
from loyaltycore.storage.repositories.subscriptions import SubscriptionRepository

logger = structlog.get_logger(__name__)


@lru_cache
def get_challenge_store() -> ChallengeStore:
    """Create the challenge store once per process based on settings."""
    settings = get_settings()
    if settings.use_database:
        from loyaltycore.storage.database import get_engine

        return DatabaseChallengeStore(get_engine(), ttl_seconds=settings.challenge_ttl_seconds)
    return InMemoryChallengeStore(ttl_seconds=settings.challenge_ttl_seconds)


@lru_cache
def get_subscription_repository() -> SubscriptionRepository | Any:
    settings = get_settings()
    if settings.use_database:
        from loyaltycore.storage.database import get_engine
        from loyaltycore.storage.repositories.subscriptions import (
            DatabaseSubscriptionRepository,
        )

        return DatabaseSubscriptionRepository(get_engine())
    return SubscriptionRepository()


@lru_cache
def get_notification_gateway() -> NotificationGateway:
    settings = get_settings()
    if settings.resend_api_key:
        return ResendEmailGateway(
            api_key=settings.resend_api_key,
            sender=settings.email_from,
            api_url=settings.resend_api_url,
        )
    logger.warning("email_gateway_logging_only")
    return LoggingEmailGateway()


@lru_cache
def get_trial_processor() -> TrialLifecycleProcessor:
    settings = get_settings()
    return TrialLifecycleProcessor(
        repository=get_subscription_repository(),
        gateway=get_notification_gateway(),
        app_url=settings.app_url,
    )
