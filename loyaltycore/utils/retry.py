"""Retry decorator with exponential backoff for flaky outbound calls."""

import asyncio
import functools
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def retry(
    max_attempts: int = 3,
    delay_ms: int = 500,
    backoff_factor: float = 2.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Retry an async function on ``retry_on`` exceptions.

    Exceptions outside ``retry_on`` propagate immediately; after the last
    attempt the final exception is re-raised.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except retry_on:
                    if attempt == max_attempts:
                        raise
                    wait = (delay_ms * (backoff_factor ** (attempt - 1))) / 1000
                    logger.debug(
                        "retry_attempt",
                        func=func.__name__,
                        attempt=attempt,
                        max_attempts=max_attempts,
                        wait_seconds=wait,
                    )
                    await asyncio.sleep(wait)
            msg = "max_attempts must be >= 1"
            raise ValueError(msg)

        return wrapper

    return decorator
