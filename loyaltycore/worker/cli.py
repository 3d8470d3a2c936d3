"""CLI entry point for the trial lifecycle worker."""

from __future__ import annotations

import argparse
import asyncio

import structlog

from loyaltycore.config.logging import setup_logging
from loyaltycore.config.settings import get_settings
from loyaltycore.web.dependencies import get_trial_processor
from loyaltycore.worker.runner import TrialWorker

logger = structlog.get_logger(__name__)


def main(argv: list[str] | None = None) -> None:
    """Start the trial worker, or run a single pass with ``--once``."""
    parser = argparse.ArgumentParser(prog="loyaltycore-trial-worker")
    parser.add_argument("--once", action="store_true", help="run one pass and exit")
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(log_level=settings.log_level, json_output=True, service="trial-worker")
    worker = TrialWorker(get_trial_processor(), interval=settings.trial_process_interval_seconds)

    if args.once:
        ok = asyncio.run(worker.run_once())
        raise SystemExit(0 if ok else 1)
    asyncio.run(worker.run())


if __name__ == "__main__":
    main()
