"""Backup, cleanup and restore of a target's screenshots."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from screenshot_backup.errors import BackupPartialFailure, StorageError
from screenshot_backup.freshness import utc_now
from screenshot_backup.models import VARIANT_VIEWPORT, Artifact, BackupRecord, StoredObject
from screenshot_backup.storage import KeyLayout


def _key_timestamp(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y%m%dT%H%M%S%fZ")


class BackupManager:
    """Copy live screenshots into the backup namespace before they are retired.

    Backups are best effort: a failed copy is logged and skipped so one bad
    object cannot block the rest. Deletion of live screenshots always waits
    for the backup call to return, whatever it managed to copy.
    """

    def __init__(
        self,
        store: Any,
        layout: KeyLayout,
        logger: logging.Logger,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.layout = layout
        self.logger = logger
        self.clock = clock or utc_now

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def backup_key(self, target_id: str, artifact: Artifact, index: int) -> str:
        return f"{self.layout.backup_namespace(target_id)}/{_key_timestamp(artifact.created_at)}-{index}"

    async def _list_live(self, target_id: str) -> List[StoredObject]:
        return await asyncio.to_thread(self.store.list, self.layout.live_listing_prefix(target_id))

    async def _list_backup_records(self, target_id: str) -> List[BackupRecord]:
        objects = await asyncio.to_thread(self.store.list, self.layout.backup_listing_prefix(target_id))
        records = [BackupRecord.from_stored(obj) for obj in objects]
        # Newest first; within one backup pass the viewport frame leads.
        records.sort(
            key=lambda record: (record.backed_up_at, record.variant == VARIANT_VIEWPORT, record.backup_key),
            reverse=True,
        )
        return records

    async def _backup_one(self, target_id: str, obj: StoredObject, index: int) -> Optional[BackupRecord]:
        artifact = Artifact.from_stored(obj)
        backup_key = self.backup_key(target_id, artifact, index)
        metadata = artifact.storage_metadata()
        metadata["original-key"] = artifact.storage_key
        metadata["original-created-at"] = artifact.created_at.isoformat()
        try:
            stored = await asyncio.to_thread(
                lambda: self.store.copy(obj.key, backup_key, overwrite=False, metadata=metadata)
            )
        except StorageError as exc:
            self.logger.error("Error backing up %s to %s: %s", obj.key, backup_key, exc)
            return None
        self.logger.info("Backed up %s -> %s", obj.key, stored.key)
        return BackupRecord.from_stored(stored)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def backup(self, target_id: str) -> List[BackupRecord]:
        """Copy every live screenshot of ``target_id``; return the copies that succeeded."""
        try:
            objects = await self._list_live(target_id)
        except StorageError as exc:
            self.logger.error("Error listing screenshots to back up for %s: %s", target_id, exc)
            return []

        if not objects:
            self.logger.info("No screenshots found to back up for %s", target_id)
            return []

        self.logger.info("Backing up %s screenshots for %s", len(objects), target_id)
        results = await asyncio.gather(
            *(self._backup_one(target_id, obj, index) for index, obj in enumerate(objects, start=1))
        )
        records = [record for record in results if record is not None]

        if len(records) < len(objects):
            failed_keys = [obj.key for obj, record in zip(objects, results) if record is None]
            self.logger.warning("%s", BackupPartialFailure(target_id, failed_keys, len(objects)))
        else:
            self.logger.info("Backed up %s screenshots for %s", len(records), target_id)
        return records

    async def delete_existing(self, target_id: str) -> int:
        """Back up, then delete all live screenshots of ``target_id``.

        Returns the number of deleted objects. Never raises: the capture that
        follows must still be attempted when cleanup fails.
        """
        await self.backup(target_id)

        try:
            objects = await self._list_live(target_id)
        except StorageError as exc:
            self.logger.error("Error listing old screenshots for %s: %s", target_id, exc)
            return 0

        if not objects:
            self.logger.info("No old screenshots found for %s", target_id)
            return 0

        results = await asyncio.gather(
            *(asyncio.to_thread(self.store.delete, obj.key) for obj in objects),
            return_exceptions=True,
        )
        deleted = 0
        for obj, result in zip(objects, results):
            if isinstance(result, Exception):
                self.logger.error("Error deleting old screenshot %s: %s", obj.key, result)
            else:
                deleted += 1
        self.logger.info("Deleted %s/%s old screenshots for %s", deleted, len(objects), target_id)
        return deleted

    async def list_backups(self, target_id: str) -> List[BackupRecord]:
        """Backups of ``target_id``, newest first."""
        try:
            records = await self._list_backup_records(target_id)
        except StorageError as exc:
            self.logger.error("Error listing backups for %s: %s", target_id, exc)
            return []
        self.logger.debug("Found %s backups for %s", len(records), target_id)
        return records

    async def restore(self, target_id: str, backup_index: int = 0) -> Optional[Artifact]:
        """Copy a backup back into the live namespace under a fresh key.

        Returns ``None`` when the target has no backups. An index past the
        available backups raises ``IndexError``.
        """
        records = await self._list_backup_records(target_id)
        if not records:
            self.logger.info("No backups found to restore for %s", target_id)
            return None
        if backup_index < 0 or backup_index >= len(records):
            raise IndexError(f"Backup index {backup_index} not found for {target_id}")

        record = records[backup_index]
        millis = int(self.clock().timestamp() * 1000)
        live_key = f"{self.layout.live_namespace(target_id)}/{millis}_restored.jpg"
        self.logger.info("Restoring %s -> %s", record.backup_key, live_key)
        stored = await asyncio.to_thread(
            lambda: self.store.copy(
                record.backup_key,
                live_key,
                overwrite=False,
                metadata={"restored-from": record.backup_key},
            )
        )
        artifact = Artifact.from_stored(stored)
        self.logger.info("Restored screenshot for %s: %s", target_id, artifact.url)
        return artifact


__all__ = ["BackupManager"]
