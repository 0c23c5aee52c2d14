"""Decide whether a target's screenshots are stale enough to recapture."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from screenshot_backup.errors import StorageError
from screenshot_backup.models import Artifact
from screenshot_backup.storage import KeyLayout


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class FreshnessGate:
    """Read-only check of the newest artifact's age against the freshness window."""

    def __init__(
        self,
        store: Any,
        layout: KeyLayout,
        logger: logging.Logger,
        *,
        window: timedelta = timedelta(hours=12),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.layout = layout
        self.logger = logger
        self.window = window
        self.clock = clock or utc_now

    async def should_capture(self, target_id: str) -> bool:
        prefix = self.layout.live_listing_prefix(target_id)
        try:
            objects = await asyncio.to_thread(self.store.list, prefix)
        except StorageError as exc:
            # Fail open: an extra capture is cheaper than going stale forever.
            self.logger.warning(
                "Could not check screenshot age for %s, capturing anyway: %s",
                target_id,
                exc,
            )
            return True

        if not objects:
            self.logger.info("No existing screenshots for %s; capturing", target_id)
            return True

        newest = max((Artifact.from_stored(obj) for obj in objects), key=lambda a: _as_utc(a.created_at))
        age = self.clock() - _as_utc(newest.created_at)
        self.logger.debug(
            "Newest screenshot for %s is %s (created %s, age %.1fh)",
            target_id,
            newest.storage_key,
            newest.created_at.isoformat(),
            age.total_seconds() / 3600,
        )

        if age > self.window:
            self.logger.info(
                "Screenshots for %s are %.1fh old; capturing",
                target_id,
                age.total_seconds() / 3600,
            )
            return True

        self.logger.info("Screenshots for %s are recent; skipping capture", target_id)
        return False


__all__ = ["FreshnessGate", "utc_now"]
