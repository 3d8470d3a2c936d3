"""Unit tests for the periodic TrialWorker."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from loyaltycore.exceptions import TrialProcessingError
from loyaltycore.models.domain import ExpiryRunSummary, WarningRunSummary
from loyaltycore.worker.runner import TrialWorker


@pytest.mark.unit
class TestTrialWorker:
    async def test_run_once_processes_trials(self, processor, subscription_repo, clock) -> None:
        await subscription_repo.create("A", "a@test", clock.now() - timedelta(days=1))
        worker = TrialWorker(processor, interval=60)
        assert await worker.run_once() is True
        assert worker.runs == 1

    async def test_run_once_survives_fatal_read(self) -> None:
        processor = AsyncMock()
        processor.run_all.side_effect = TrialProcessingError("db down")
        worker = TrialWorker(processor, interval=60)
        assert await worker.run_once() is False

    async def test_loop_repeats_until_shutdown(self) -> None:
        processor = AsyncMock()
        processor.run_all.return_value = (WarningRunSummary(), ExpiryRunSummary())
        worker = TrialWorker(processor, interval=0.01)

        task = asyncio.create_task(worker.run(install_signal_handlers=False))
        await asyncio.sleep(0.1)
        worker.shutdown()
        await asyncio.wait_for(task, timeout=1)

        assert worker.runs >= 2
        assert processor.run_all.await_count == worker.runs

    async def test_shutdown_before_run_exits_immediately(self) -> None:
        processor = AsyncMock()
        processor.run_all.return_value = (WarningRunSummary(), ExpiryRunSummary())
        worker = TrialWorker(processor, interval=3600)
        worker.shutdown()
        await asyncio.wait_for(worker.run(install_signal_handlers=False), timeout=1)
        assert worker.runs == 0
        processor.run_all.assert_not_awaited()
