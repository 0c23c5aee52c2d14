"""Fan captures out over targets in fixed-size concurrent batches."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Sequence, Set

from screenshot_backup.backups import BackupManager
from screenshot_backup.capture import CaptureWorker
from screenshot_backup.config import BatchSettings
from screenshot_backup.errors import TargetTimeout
from screenshot_backup.freshness import FreshnessGate
from screenshot_backup.models import RunSummary, Target
from screenshot_backup.storage import KeyLayout

CAPTURED = "captured"
SKIPPED = "skipped"


def partition(targets: Sequence[Target], size: int) -> List[List[Target]]:
    return [list(targets[i:i + size]) for i in range(0, len(targets), size)]


class BatchScheduler:
    """Process targets batch by batch; targets inside a batch run concurrently.

    A failing or hung target never cancels its siblings: every batch is joined
    with settle-all semantics and each target carries its own timeout. A
    timed-out target is cancelled and left to unwind in the background.
    """

    def __init__(
        self,
        freshness: FreshnessGate,
        backups: BackupManager,
        worker: CaptureWorker,
        content: Any,
        layout: KeyLayout,
        logger: logging.Logger,
        *,
        settings: BatchSettings = BatchSettings(),
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.freshness = freshness
        self.backups = backups
        self.worker = worker
        self.content = content
        self.layout = layout
        self.logger = logger
        self.settings = settings
        self.sleep = sleep
        self._abandoned: Set["asyncio.Future[str]"] = set()

    def _forget_abandoned(self, task: "asyncio.Future[str]") -> None:
        self._abandoned.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.debug("Abandoned capture finished with: %r", task.exception())

    async def capture_target(self, target: Target) -> str:
        """Gate, clean up, capture and attach a single target."""
        url = target.primary_url
        if not url:
            self.logger.info("Skipping '%s' (%s): no live URL", target.display_name, target.id)
            return SKIPPED

        if not await self.freshness.should_capture(target.id):
            return SKIPPED

        await self.backups.delete_existing(target.id)
        artifact = await self.worker.capture(url, self.layout.live_namespace(target.id))

        await asyncio.to_thread(
            lambda: self.content.attach_artifact(
                target.id,
                artifact,
                alt=f"{target.display_name} screenshot",
            )
        )
        return CAPTURED

    async def _run_target(self, target: Target, summary: RunSummary) -> None:
        timeout = self.settings.target_timeout_seconds
        self.logger.info("Capturing '%s' (%s)", target.display_name, target.id)
        task = asyncio.ensure_future(self.capture_target(target))
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task not in done:
            # Cancelled but not awaited; its teardown may outlive the batch.
            task.cancel()
            self._abandoned.add(task)
            task.add_done_callback(self._forget_abandoned)
            summary.timed_out += 1
            self.logger.error("%s", TargetTimeout(target.id, timeout))
            return

        try:
            outcome = task.result()
        except Exception as exc:
            summary.failed += 1
            self.logger.error("Failed to capture '%s' (%s): %s", target.display_name, target.id, exc)
            self.logger.debug("Capture failure details for %s", target.id, exc_info=True)
            return

        if outcome == CAPTURED:
            summary.captured += 1
            self.logger.info("Successfully captured '%s'", target.display_name)
        else:
            summary.skipped += 1

    async def process(self, targets: Sequence[Target]) -> RunSummary:
        summary = RunSummary(total=len(targets))
        batches = partition(targets, self.settings.batch_size)

        for number, batch in enumerate(batches, start=1):
            self.logger.info("Processing batch %s/%s (%s targets)", number, len(batches), len(batch))
            results = await asyncio.gather(
                *(self._run_target(target, summary) for target in batch),
                return_exceptions=True,
            )
            for target, result in zip(batch, results):
                if isinstance(result, BaseException):
                    summary.failed += 1
                    self.logger.error("Unexpected error for %s: %r", target.id, result)

            if number < len(batches):
                await self.sleep(self.settings.batch_delay_seconds)

        self.logger.info("Batch processing finished: %s", summary.describe())
        return summary


__all__ = ["BatchScheduler", "partition"]
