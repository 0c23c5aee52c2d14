"""
Screenshot backup host process.
Spawns an isolated capture run every 12 hours (with a 6 hour backstop) and on demand.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Optional

from dotenv import load_dotenv

from screenshot_backup import scheduler as scheduler_module
from screenshot_backup.config import load_config
from screenshot_backup.logging_setup import DEFAULT_LOG_FILE, configure_logging
from screenshot_backup.process import RunProcessLauncher, timer_retry_scheduler


class ScreenshotBackup:
    def __init__(
        self,
        config_file: str = "config.json",
        *,
        logger: Optional[logging.Logger] = None,
        launcher: Optional[RunProcessLauncher] = None,
    ) -> None:
        load_dotenv()
        self.config_path = Path(config_file)
        self.config = load_config(self.config_path)
        self.run_settings = self.config.run

        if logger is None:
            self.setup_logging()
        else:
            self.logger = logger

        # Set while the blocking scheduler is running; retries queue on it.
        self.scheduler: Optional[Any] = None

        kill_timeout = self.run_settings.effective_kill_timeout_seconds
        if kill_timeout > self.run_settings.kill_timeout_seconds:
            self.logger.warning(
                "Kill timeout %.0fs does not exceed the run deadline; using %.0fs",
                self.run_settings.kill_timeout_seconds,
                kill_timeout,
            )

        self.launcher = launcher or RunProcessLauncher(
            self.logger,
            kill_timeout=kill_timeout,
            max_retries=self.run_settings.max_retries,
            retry_delay=self.run_settings.retry_delay_seconds,
            schedule_retry=self._schedule_retry,
        )

    def setup_logging(self) -> None:
        """Setup logging configuration"""
        self.logger = configure_logging(
            logger_name="screenshot_backup",
            log_file=self.config.log_file or DEFAULT_LOG_FILE,
        )

    def _schedule_retry(self, delay: float, func: Callable[[], None], name: str) -> None:
        if self.scheduler is None:
            timer_retry_scheduler(delay, func, name)
            return
        scheduler_module.schedule_retry(self.scheduler, delay, func, name)

    def run_scheduled_window(self, reason: str) -> bool:
        """Cron entry point: every scheduled window gets a fresh retry budget."""
        self.logger.info("Scheduled trigger '%s': starting screenshot capture", reason)
        return self.launcher.start_window(reason)

    def trigger_capture(self, reason: str = "manual") -> bool:
        """On-demand capture, e.g. right after a new project was created."""
        self.logger.info("Manual trigger '%s': starting screenshot capture", reason)
        return self.launcher.spawn_run(reason)

    def run(self) -> None:
        """Run the host process with scheduled capture runs."""
        scheduler_module.run(self)
