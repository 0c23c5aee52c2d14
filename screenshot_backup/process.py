"""Spawn capture Runs in child processes, with a kill backstop and bounded retries."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import threading
from typing import Any, Callable, List, Optional, Sequence

from screenshot_backup.errors import ProcessKilled

RetryScheduler = Callable[[float, Callable[[], None], str], None]


def default_run_command() -> List[str]:
    return [sys.executable, "-m", "screenshot_backup.runner"]


def timer_retry_scheduler(delay: float, func: Callable[[], None], name: str) -> None:
    timer = threading.Timer(delay, func)
    timer.name = name
    timer.daemon = True
    timer.start()


class RetryState:
    """Failed-attempt counter for the current scheduled window."""

    def __init__(self, max_attempts: int = 3) -> None:
        self.max_attempts = max_attempts
        self._lock = threading.Lock()
        self._attempt = 0

    @property
    def attempt(self) -> int:
        with self._lock:
            return self._attempt

    @property
    def exhausted(self) -> bool:
        with self._lock:
            return self._attempt >= self.max_attempts

    def reset(self) -> None:
        with self._lock:
            self._attempt = 0

    def record_failure(self) -> int:
        with self._lock:
            self._attempt += 1
            return self._attempt


class RunProcessLauncher:
    """Run each capture in its own process so a runaway browser cannot hurt the host.

    The kill timer runs on its own thread and does not rely on the child
    cooperating; it kills the child's whole process group, browser included.
    """

    def __init__(
        self,
        logger: logging.Logger,
        *,
        kill_timeout: float = 300.0,
        max_retries: int = 3,
        retry_delay: float = 30.0,
        command: Optional[Sequence[str]] = None,
        schedule_retry: Optional[RetryScheduler] = None,
        popen: Callable[..., Any] = subprocess.Popen,
        env: Optional[dict] = None,
    ) -> None:
        self.logger = logger
        self.kill_timeout = kill_timeout
        self.retry_delay = retry_delay
        self.retry = RetryState(max_retries)
        self.command = list(command) if command else default_run_command()
        self.schedule_retry = schedule_retry or timer_retry_scheduler
        self._popen = popen
        self._env = env
        self._lock = threading.Lock()
        self._process: Optional[Any] = None
        self._watcher: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _child_env(self) -> dict:
        env = dict(os.environ if self._env is None else self._env)
        env.setdefault("PYTHONUNBUFFERED", "1")
        return env

    def _kill(self, process: Any) -> None:
        try:
            if os.name == "posix":
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except (ProcessLookupError, PermissionError, OSError) as exc:
            self.logger.error("Error killing scheduler child %s: %s", process.pid, exc)
            try:
                process.kill()
            except OSError:
                pass

    def _relay_output(self, process: Any) -> None:
        stream = process.stdout
        if stream is None:
            return
        for line in stream:
            message = line.rstrip()
            if message:
                self.logger.info("[Scheduler] %s", message)

    def _supervise(self, process: Any, reason: str) -> None:
        killed = threading.Event()

        def _expire() -> None:
            if process.poll() is None:
                killed.set()
                self.logger.error("%s", ProcessKilled(process.pid, self.kill_timeout))
                self._kill(process)

        timer = threading.Timer(self.kill_timeout, _expire)
        timer.daemon = True
        timer.start()

        relay = threading.Thread(
            target=self._relay_output,
            args=(process,),
            name=f"scheduler-output-{process.pid}",
            daemon=True,
        )
        relay.start()
        try:
            code = process.wait()
        finally:
            timer.cancel()
        relay.join(timeout=5)
        self._on_exit(reason, code, killed.is_set())

    def _on_exit(self, reason: str, code: Optional[int], killed: bool) -> None:
        with self._lock:
            self._process = None

        self.logger.info("Scheduler child exited with code=%s (%s)", code, reason)
        if code == 0 and not killed:
            self.logger.info("Scheduler completed successfully")
            self.retry.reset()
            return
        self._handle_failure(reason)

    def _handle_failure(self, reason: str) -> None:
        attempt = self.retry.record_failure()
        self.logger.error(
            "Scheduler run '%s' failed, attempt %s/%s",
            reason,
            attempt,
            self.retry.max_attempts,
        )
        if attempt < self.retry.max_attempts:
            self.logger.info("Retrying scheduler in %.0f seconds", self.retry_delay)
            retry_reason = f"{reason}-retry-{attempt}"
            self.schedule_retry(
                self.retry_delay,
                lambda: self.spawn_run(retry_reason),
                retry_reason,
            )
        else:
            self.logger.error(
                "Max retries (%s) reached for scheduler, abandoning this window",
                self.retry.max_attempts,
            )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._process is not None and self._process.poll() is None

    def start_window(self, reason: str) -> bool:
        """Begin a new scheduled window: fresh retry budget, then spawn."""
        self.retry.reset()
        return self.spawn_run(reason)

    def spawn_run(self, reason: str) -> bool:
        """Start one Run in a child process; returns False when the trigger is dropped."""
        with self._lock:
            if self._process is not None and self._process.poll() is None:
                self.logger.warning(
                    "Scheduler run already in progress (pid %s), dropping trigger '%s'",
                    self._process.pid,
                    reason,
                )
                return False

            if self.retry.exhausted:
                self.logger.error(
                    "Max retries (%s) reached for scheduler, skipping run '%s'",
                    self.retry.max_attempts,
                    reason,
                )
                return False

            self.logger.info(
                "Spawning scheduler run (%s) - attempt %s/%s",
                reason,
                self.retry.attempt + 1,
                self.retry.max_attempts,
            )
            try:
                process = self._popen(
                    self.command,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    env=self._child_env(),
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    bufsize=1,
                    start_new_session=True,
                )
            except OSError as exc:
                self.logger.error("Scheduler child could not be started: %s", exc)
                process = None
            else:
                self._process = process

        if process is None:
            self._handle_failure(reason)
            return False

        watcher = threading.Thread(
            target=self._supervise,
            args=(process, reason),
            name=f"scheduler-watch-{process.pid}",
            daemon=True,
        )
        self._watcher = watcher
        watcher.start()
        return True

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the current child's exit handling to finish."""
        watcher = self._watcher
        if watcher is not None:
            watcher.join(timeout)


__all__ = ["RetryState", "RunProcessLauncher", "default_run_command", "timer_retry_scheduler"]
