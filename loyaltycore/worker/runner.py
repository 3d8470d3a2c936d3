"""Periodic trial lifecycle worker."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from loyaltycore.billing.lifecycle import TrialLifecycleProcessor

logger = structlog.get_logger(__name__)


class TrialWorker:
    """Runs trial warnings and downgrades every ``interval`` seconds.

    Handles SIGTERM/SIGINT for graceful shutdown: a run in progress completes,
    no further runs start.
    """

    def __init__(self, processor: TrialLifecycleProcessor, interval: float = 3600.0) -> None:
        self._processor = processor
        self._interval = interval
        self._stopping = asyncio.Event()
        self.runs = 0

    async def run(self, install_signal_handlers: bool = True) -> None:
        """Main loop; returns once shutdown has been requested."""
        if install_signal_handlers:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, self.shutdown)

        logger.info("trial_worker_started", interval=self._interval)
        while not self._stopping.is_set():
            await self.run_once()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), timeout=self._interval)
        logger.info("trial_worker_stopped", runs=self.runs)

    async def run_once(self) -> bool:
        """One processing pass. Returns False if the pass failed outright."""
        self.runs += 1
        try:
            warnings, expired = await self._processor.run_all()
        except Exception:
            logger.exception("trial_worker_run_failed")
            return False
        logger.info(
            "trial_worker_run_complete",
            sent=warnings.sent,
            processed=expired.processed,
            activated=expired.activated,
            errors=len(warnings.errors) + len(expired.errors),
        )
        return True

    def shutdown(self) -> None:
        """Signal handler for graceful shutdown."""
        logger.info("trial_worker_shutdown_requested")
        self._stopping.set()
