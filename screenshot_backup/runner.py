"""Entry point for one capture Run, executed inside an isolated child process."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence

from dotenv import load_dotenv

from screenshot_backup.backups import BackupManager
from screenshot_backup.batch import BatchScheduler
from screenshot_backup.capture import CaptureWorker
from screenshot_backup.config import Config, load_config
from screenshot_backup.content import ContentClient
from screenshot_backup.errors import ScreenshotBackupError
from screenshot_backup.freshness import FreshnessGate
from screenshot_backup.logging_setup import configure_child_logging
from screenshot_backup.rendering import PlaywrightRenderer
from screenshot_backup.storage import KeyLayout, S3BlobStore
from screenshot_backup.supervisor import RunSupervisor


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Capture fresh screenshots for every project with a live URL, then exit.",
    )
    parser.add_argument(
        "--test",
        action="store_true",
        help="Verification run: log the outcome and exit after a single run.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    parser.add_argument(
        "--target",
        action="append",
        dest="targets",
        help="Limit the run to specific project ids (repeatable).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.json"),
        help="Optional JSON configuration file (default: config.json, falls back to environment).",
    )
    return parser


def build_supervisor(
    config: Config,
    logger: logging.Logger,
    *,
    store: Optional[Any] = None,
    content: Optional[Any] = None,
    renderer: Optional[Any] = None,
    exit_func: Callable[[int], Any] = os._exit,
) -> RunSupervisor:
    """Wire the collaborators of one Run."""
    layout = KeyLayout.from_settings(config.storage)
    store = store or S3BlobStore(config.storage, logger=logger)
    content = content or ContentClient(config.content, logger)
    renderer = renderer or PlaywrightRenderer(config.capture, logger)

    freshness = FreshnessGate(
        store,
        layout,
        logger,
        window=timedelta(hours=config.batch.freshness_window_hours),
    )
    backups = BackupManager(store, layout, logger)
    worker = CaptureWorker(renderer, store, logger)
    batch = BatchScheduler(
        freshness,
        backups,
        worker,
        content,
        layout,
        logger,
        settings=config.batch,
    )
    return RunSupervisor(
        batch,
        content,
        logger,
        run_timeout=config.run.run_timeout_seconds,
        exit_grace=config.run.exit_grace_seconds,
        exit_func=exit_func,
    )


def start_watchdog(timeout: float, logger: logging.Logger) -> threading.Timer:
    """Last-resort in-process timer; the host's kill timeout backs this up."""

    def _expire() -> None:
        logger.critical("Absolute timeout of %.0fs reached, forcing exit", timeout)
        logging.shutdown()
        os._exit(1)

    timer = threading.Timer(timeout, _expire)
    timer.daemon = True
    timer.start()
    return timer


async def _run_and_exit(supervisor: RunSupervisor, targets: Optional[List[str]], is_test: bool) -> None:
    outcome = await supervisor.run(targets)
    if is_test:
        supervisor.logger.info("Test run finished with outcome '%s'", outcome.value)
    supervisor.terminate(outcome)


def main(argv: Optional[Sequence[str]] = None) -> None:
    load_dotenv()
    args = build_parser().parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logger = configure_child_logging(level)
    config = load_config(args.config)

    if args.verbose:
        logger.debug("Verbose mode enabled")
    if args.test:
        logger.info("Test run mode - will exit after completion")
    logger.info(
        "Starting screenshot scheduler run at %s (pid %s)",
        datetime.now(timezone.utc).isoformat(),
        os.getpid(),
    )

    start_watchdog(config.run.absolute_timeout_seconds, logger)

    try:
        supervisor = build_supervisor(config, logger)
    except ScreenshotBackupError as exc:
        logger.error("Scheduler could not start: %s", exc)
        logging.shutdown()
        os._exit(1)

    supervisor.install_signal_handlers()
    asyncio.run(_run_and_exit(supervisor, args.targets, args.test))


if __name__ == "__main__":
    main()
