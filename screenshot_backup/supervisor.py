"""Run-level supervision: exclusivity, global deadline and forced exit."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
import threading
import time
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Union

from screenshot_backup.batch import BatchScheduler
from screenshot_backup.errors import RunTimeout
from screenshot_backup.models import RunSummary

SHUTDOWN_SIGNALS = ("SIGTERM", "SIGINT", "SIGUSR1", "SIGUSR2")


class RunPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


class RunOutcome(str, Enum):
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def exit_code(self) -> int:
        return 0 if self in (RunOutcome.COMPLETED, RunOutcome.SKIPPED) else 1


_TERMINAL_PHASES = {
    RunOutcome.COMPLETED: RunPhase.COMPLETED,
    RunOutcome.TIMED_OUT: RunPhase.TIMED_OUT,
    RunOutcome.FAILED: RunPhase.FAILED,
}


class RunState:
    """The ``is_running`` flag, only changed through ``try_acquire``/``release``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._running = False

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def try_acquire(self) -> bool:
        with self._lock:
            if self._running:
                return False
            self._running = True
            return True

    def release(self) -> None:
        with self._lock:
            self._running = False


class RunSupervisor:
    """Execute one Run under a hard deadline and always return to idle.

    Once a Run ends the supervisor exits the process itself after a short
    grace delay: rendering library handles can keep the interpreter alive
    long after the work is done.
    """

    def __init__(
        self,
        batch: BatchScheduler,
        content: Any,
        logger: logging.Logger,
        *,
        run_timeout: float = 300.0,
        exit_grace: float = 1.0,
        state: Optional[RunState] = None,
        exit_func: Callable[[int], Any] = os._exit,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self.batch = batch
        self.content = content
        self.logger = logger
        self.run_timeout = run_timeout
        self.exit_grace = exit_grace
        self.state = state or RunState()
        self.phase = RunPhase.IDLE
        self.last_outcome: Optional[RunOutcome] = None
        self.last_summary: Optional[RunSummary] = None
        self._exit = exit_func
        self._sleep = sleep
        self._closed = False

    async def _execute(self, target_ids: Optional[Iterable[str]]) -> RunSummary:
        targets = await asyncio.to_thread(self.content.list_targets)
        if target_ids:
            wanted = set(target_ids)
            targets = [target for target in targets if target.id in wanted]

        self.logger.info("Found %s projects to capture", len(targets))
        if not targets:
            self.logger.info("No projects with live URLs found, skipping capture")
            return RunSummary()
        return await self.batch.process(targets)

    def _close_connections(self) -> None:
        if self._closed:
            return
        self._closed = True
        close = getattr(self.content, "close", None)
        if close is None:
            return
        try:
            close()
            self.logger.info("Content API connection closed")
        except Exception as exc:
            self.logger.warning("Error closing content API connection: %s", exc)

    def _finish(self, outcome: RunOutcome) -> None:
        self.phase = _TERMINAL_PHASES[outcome]
        self.last_outcome = outcome
        self.state.release()
        self._close_connections()
        self.phase = RunPhase.IDLE

    async def run(self, target_ids: Optional[Iterable[str]] = None) -> RunOutcome:
        if not self.state.try_acquire():
            self.logger.warning("Scheduler already running, skipping this execution")
            return RunOutcome.SKIPPED

        self.phase = RunPhase.RUNNING
        self.logger.info("Starting scheduled screenshot capture (deadline %.0fs)", self.run_timeout)
        outcome = RunOutcome.FAILED
        try:
            task = asyncio.ensure_future(self._execute(target_ids))
            done, _ = await asyncio.wait({task}, timeout=self.run_timeout)
            if task in done:
                self.last_summary = task.result()
                outcome = RunOutcome.COMPLETED
                self.logger.info("Screenshot capture completed: %s", self.last_summary.describe())
            else:
                # Abandoned, not awaited: the process exits right after this.
                task.cancel()
                outcome = RunOutcome.TIMED_OUT
                self.logger.error("%s", RunTimeout(self.run_timeout))
        except Exception as exc:
            outcome = RunOutcome.FAILED
            self.logger.exception("Screenshot capture failed: %s", exc)
        finally:
            self._finish(outcome)
        return outcome

    def terminate(self, outcome: Union[RunOutcome, int]) -> None:
        """Exit the process with the outcome's exit code after the grace delay."""
        code = outcome.exit_code if isinstance(outcome, RunOutcome) else int(outcome)
        self.logger.info("Scheduler process exiting with code %s", code)
        self._sleep(self.exit_grace)
        logging.shutdown()
        self._exit(code)

    def shutdown(self, reason: str) -> None:
        """Cleanup-and-exit path shared by signals and uncaught errors."""
        self.logger.warning("Received %s, shutting down", reason)
        if self.phase is RunPhase.RUNNING:
            self._finish(RunOutcome.FAILED)
        else:
            self.state.release()
            self._close_connections()
        self.terminate(1)

    def install_signal_handlers(self) -> None:
        def _on_signal(signum: int, _frame: Any) -> None:
            self.shutdown(signal.Signals(signum).name)

        for name in SHUTDOWN_SIGNALS:
            signum = getattr(signal, name, None)
            if signum is not None:
                signal.signal(signum, _on_signal)

        def _on_uncaught(exc_type, exc, tb) -> None:
            self.logger.critical("Uncaught exception", exc_info=(exc_type, exc, tb))
            self.shutdown("uncaught exception")

        def _on_thread_uncaught(args: threading.ExceptHookArgs) -> None:
            _on_uncaught(args.exc_type, args.exc_value, args.exc_traceback)

        sys.excepthook = _on_uncaught
        threading.excepthook = _on_thread_uncaught


__all__ = ["RunOutcome", "RunPhase", "RunState", "RunSupervisor"]
