#!/usr/bin/env python3
"""Alert bot entrypoint — checks HomeBox stock once and alerts a Matrix room.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # Override log level
    python scripts/run.py --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

import structlog

from src.alerts.factory import create_pipeline
from src.alerts.pipeline import summarize_outcomes
from src.core.config import load_settings, validate_settings
from src.core.exceptions import ConfigError, PipelineAbortedError
from src.core.logging import setup_logging
from src.core.types import DeliveryOutcome

logger = structlog.get_logger(__name__)

_DEFAULT_CONFIG = Path("config/settings.yaml")


def _log_outcomes(outcomes: list[DeliveryOutcome]) -> None:
    for outcome in outcomes:
        logger.info(
            "item_outcome",
            item_id=outcome.item_id,
            status=str(outcome.status),
            quantity=outcome.snapshot.quantity if outcome.snapshot else None,
            messages_sent=outcome.messages_sent,
            reason=outcome.reason or None,
        )
    logger.info("run_summary", **summarize_outcomes(outcomes))


async def run(args: argparse.Namespace) -> int:
    """Load config, run the pipeline once and report per-item outcomes."""
    config_path = Path(args.config) if args.config else _DEFAULT_CONFIG
    created = not config_path.exists()

    try:
        settings = load_settings(config_path)
    except ConfigError as exc:
        setup_logging(level=args.log_level)
        logger.error("config_load_failed", error=str(exc))
        return 1

    setup_logging(level=args.log_level, config=settings.logging)

    if created:
        logger.warning("default_config_written", path=str(config_path))
        print(
            f"Wrote a default config to {config_path}. Fill in the matrix and "
            "homebox sections, then run again.",
            file=sys.stderr,
        )
        return 1

    try:
        validate_settings(settings)
        pipeline = create_pipeline(settings)
    except ConfigError as exc:
        logger.error("config_invalid", path=str(config_path), error=str(exc))
        return 1

    logger.info(
        "bot_starting",
        homebox=settings.homebox.base_url,
        lookup=str(settings.homebox.lookup),
        items=len(settings.homebox.items),
        room_id=settings.matrix.room_id,
    )

    try:
        outcomes = await pipeline.run()
    except PipelineAbortedError as exc:
        _log_outcomes(exc.outcomes)
        logger.error("bot_aborted", stage=exc.stage, error=str(exc))
        return 1
    finally:
        await pipeline.close()

    _log_outcomes(outcomes)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Alert a Matrix room about low HomeBox stock.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
