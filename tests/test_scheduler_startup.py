import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import patch

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import screenshot_backup.scheduler as scheduler_module  # noqa: E402
from apscheduler.triggers.cron import CronTrigger  # noqa: E402
from apscheduler.triggers.date import DateTrigger  # noqa: E402
from screenshot_backup.config import RunSettings  # noqa: E402
from screenshot_backup.process import RetryState  # noqa: E402


class FakeScheduler:
    def __init__(self):
        self.jobs = []
        self.shutdown_called = False

    def add_job(self, func, trigger=None, **kwargs):
        self.jobs.append({"func": func, "trigger": trigger, **kwargs})

    def start(self):
        raise KeyboardInterrupt

    def shutdown(self):
        self.shutdown_called = True


class DummyLauncher:
    kill_timeout = 316.0
    retry = RetryState(3)


class DummyBackup:
    def __init__(self, run_settings: RunSettings):
        self.run_settings = run_settings
        self.logger = logging.getLogger("scheduler-tests")
        self.launcher = DummyLauncher()
        self.scheduler = None
        self.windows = []
        self.triggers = []

    def run_scheduled_window(self, reason):
        self.windows.append(reason)
        return True

    def trigger_capture(self, reason="manual"):
        self.triggers.append(reason)
        return True


def _run_scheduler_for_test(backup: DummyBackup, now: datetime) -> FakeScheduler:
    fake_scheduler = FakeScheduler()
    with patch.object(scheduler_module, "BlockingScheduler", return_value=fake_scheduler):
        with patch.object(scheduler_module, "datetime") as mock_datetime:
            mock_datetime.now.return_value = now
            scheduler_module.run(backup)
    return fake_scheduler


def test_scheduler_registers_primary_and_backstop_crons() -> None:
    backup = DummyBackup(RunSettings(run_on_startup=False))

    fake_scheduler = _run_scheduler_for_test(backup, datetime(2025, 1, 1, 12, 0, 0))

    jobs = {job["id"]: job for job in fake_scheduler.jobs}
    assert set(jobs) == {"capture_primary", "capture_backstop"}
    assert jobs["capture_primary"]["args"] == ("cron-12h",)
    assert jobs["capture_backstop"]["args"] == ("cron-6h-backup",)
    assert all(isinstance(job["trigger"], CronTrigger) for job in jobs.values())
    assert all(job["max_instances"] == 1 for job in jobs.values())
    assert backup.scheduler is fake_scheduler
    assert backup.windows == []
    assert fake_scheduler.shutdown_called is True


def test_scheduler_runs_immediately_on_startup() -> None:
    backup = DummyBackup(RunSettings(run_on_startup=True))

    _run_scheduler_for_test(backup, datetime(2025, 1, 1, 12, 0, 0))

    assert backup.windows == ["initial-startup"]


def test_scheduler_adds_one_off_test_run() -> None:
    now = datetime(2025, 1, 1, 12, 0, 0)
    backup = DummyBackup(RunSettings(run_on_startup=False, test_run_minutes=5))

    fake_scheduler = _run_scheduler_for_test(backup, now)

    test_job = next(job for job in fake_scheduler.jobs if job["id"] == "capture_test_run")
    assert isinstance(test_job["trigger"], DateTrigger)
    assert test_job["args"] == ("test-run",)
    assert test_job["func"] == backup.trigger_capture


def test_one_off_delay_has_a_floor() -> None:
    assert scheduler_module.one_off_delay(0) == timedelta(minutes=1)
    assert scheduler_module.one_off_delay(10) == timedelta(minutes=10)


def test_schedule_retry_adds_replaceable_date_job() -> None:
    fake_scheduler = FakeScheduler()

    def retry():
        return None

    with patch.object(scheduler_module, "datetime") as mock_datetime:
        mock_datetime.now.return_value = datetime(2025, 1, 1, 12, 0, 0)
        scheduler_module.schedule_retry(fake_scheduler, 30, retry, "cron-12h-retry-1")

    job = fake_scheduler.jobs[0]
    assert job["func"] is retry
    assert job["id"] == "cron-12h-retry-1"
    assert job["replace_existing"] is True
    assert isinstance(job["trigger"], DateTrigger)
