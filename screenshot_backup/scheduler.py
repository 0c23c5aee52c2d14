"""Scheduling orchestration for the screenshot backup host process."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

PRIMARY_CRON_HOURS = "*/12"
BACKSTOP_CRON_HOURS = "*/6"
MIN_TEST_RUN_DELAY = timedelta(minutes=1)


def schedule_retry(scheduler: Any, delay: float, func: Any, name: str) -> None:
    """Queue a one-off retry of a failed run on the running scheduler."""
    scheduler.add_job(
        func,
        trigger=DateTrigger(run_date=datetime.now() + timedelta(seconds=delay)),
        id=name,
        name=f"Retry {name}",
        replace_existing=True,
    )


def one_off_delay(minutes: int) -> timedelta:
    return max(MIN_TEST_RUN_DELAY, timedelta(minutes=minutes))


def run(backup: Any) -> None:
    """Run the host process with the capture schedule."""
    scheduler = BlockingScheduler()
    backup.scheduler = scheduler

    scheduler.add_job(
        backup.run_scheduled_window,
        trigger=CronTrigger(hour=PRIMARY_CRON_HOURS, minute=0),
        args=("cron-12h",),
        id="capture_primary",
        name="Screenshot Capture (every 12h)",
        max_instances=1,
    )

    # Backstop in case the primary run was skipped or failed.
    scheduler.add_job(
        backup.run_scheduled_window,
        trigger=CronTrigger(hour=BACKSTOP_CRON_HOURS, minute=0),
        args=("cron-6h-backup",),
        id="capture_backstop",
        name="Screenshot Capture Backstop (every 6h)",
        max_instances=1,
    )

    settings = backup.run_settings
    if settings.test_run_minutes > 0:
        delay = one_off_delay(settings.test_run_minutes)
        backup.logger.info(
            "Scheduling one-off test run in %s minute(s) (delay %ss)",
            settings.test_run_minutes,
            int(delay.total_seconds()),
        )
        scheduler.add_job(
            backup.trigger_capture,
            trigger=DateTrigger(run_date=datetime.now() + delay),
            args=("test-run",),
            id="capture_test_run",
            name="One-off Test Capture",
        )

    backup.logger.info("Screenshot scheduler configured")
    backup.logger.info("Scheduled runs: every 12 hours (primary), every 6 hours (backup)")
    backup.logger.info("Process kill timeout: %.0fs", backup.launcher.kill_timeout)
    backup.logger.info("Max retries: %s", backup.launcher.retry.max_attempts)

    try:
        if settings.run_on_startup:
            backup.logger.info("Starting initial screenshot capture")
            backup.run_scheduled_window("initial-startup")
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        backup.logger.info("Screenshot scheduler stopped")
        scheduler.shutdown()


__all__ = ["run", "schedule_retry", "one_off_delay"]
