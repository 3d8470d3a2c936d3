"""Background task that purges expired login challenges."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from loyaltycore.auth.challenge_store import ChallengeStore

logger = structlog.get_logger(__name__)


class ExpirySweeper:
    """Runs ``store.sweep()`` every ``interval_seconds`` until stopped.

    Keeps the store bounded for principals that request a challenge and never
    come back to verify it. ``stop()`` lets a sweep that is already running
    finish and then prevents any further sweeps.
    """

    def __init__(self, store: ChallengeStore, interval_seconds: float = 300.0) -> None:
        self._store = store
        self._interval = interval_seconds
        self._stopping = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop(), name="challenge-expiry-sweeper")
        logger.info("sweeper_started", interval=self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        task, self._task = self._task, None
        await task
        logger.info("sweeper_stopped")

    async def run_once(self) -> int:
        """Sweep now. Returns the number of challenges removed."""
        removed = await self._store.sweep()
        if removed:
            logger.info("challenges_swept", removed=removed)
        return removed

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            # Sleep first: the store is empty at startup.
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), timeout=self._interval)
            if self._stopping.is_set():
                break
            try:
                await self.run_once()
            except Exception:
                logger.exception("sweep_failed")
