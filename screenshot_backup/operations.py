"""Operator commands over the backups of all targets."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from screenshot_backup.backups import BackupManager
from screenshot_backup.errors import ContentApiError
from screenshot_backup.models import Artifact, BackupRecord, Target


def format_backup(position: int, record: BackupRecord) -> str:
    dimensions = (
        f"{record.width}x{record.height}"
        if record.width is not None and record.height is not None
        else "unknown"
    )
    return (
        f"{position}. {record.backup_key}\n"
        f"      Backed up: {record.backed_up_at.isoformat()}\n"
        f"      Original: {record.original_key or 'unknown'}\n"
        f"      Size: {record.size_bytes / 1024:.2f} KB\n"
        f"      Dimensions: {dimensions}"
    )


async def _load_targets(content: Any, target_ids: Optional[Iterable[str]] = None) -> List[Target]:
    targets = await asyncio.to_thread(content.list_targets)
    if target_ids:
        wanted = set(target_ids)
        targets = [target for target in targets if target.id in wanted]
    return targets


async def list_all_backups(
    content: Any,
    backups: BackupManager,
    logger: logging.Logger,
    target_ids: Optional[Iterable[str]] = None,
) -> Dict[str, List[BackupRecord]]:
    targets = await _load_targets(content, target_ids)
    logger.info("Listing backups for %s projects", len(targets))

    listing: Dict[str, List[BackupRecord]] = {}
    for target in targets:
        records = await backups.list_backups(target.id)
        listing[target.id] = records
        logger.info("Project: %s (%s)", target.display_name, target.id)
        if not records:
            logger.info("   No backups found")
            continue
        logger.info("   Found %s backup screenshots:", len(records))
        for position, record in enumerate(records, start=1):
            logger.info("   %s", format_backup(position, record))
    return listing


async def backup_all_targets(
    content: Any,
    backups: BackupManager,
    logger: logging.Logger,
    *,
    delay: float = 1.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> int:
    """Back up every target's live screenshots; returns the number of copies made."""
    targets = await _load_targets(content)
    logger.info("Starting backup for %s projects", len(targets))

    total = 0
    for index, target in enumerate(targets):
        records = await backups.backup(target.id)
        total += len(records)
        logger.info("Backed up %s screenshots for %s", len(records), target.display_name)
        if index < len(targets) - 1:
            await sleep(delay)

    logger.info("Backup completed: %s projects processed, %s screenshots backed up", len(targets), total)
    return total


async def cleanup_all_targets(
    content: Any,
    backups: BackupManager,
    logger: logging.Logger,
    *,
    delay: float = 1.0,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> int:
    """Back up and then delete every target's live screenshots."""
    targets = await _load_targets(content)
    logger.info("Starting cleanup for %s projects", len(targets))

    total = 0
    for index, target in enumerate(targets):
        total += await backups.delete_existing(target.id)
        if index < len(targets) - 1:
            await sleep(delay)

    logger.info("Cleanup completed: %s screenshots deleted", total)
    return total


async def restore_target(
    content: Any,
    backups: BackupManager,
    logger: logging.Logger,
    target_id: str,
    backup_index: int = 0,
) -> Optional[Artifact]:
    """Restore one project from a backup and point the project at it."""
    target = await asyncio.to_thread(content.get_target, target_id)
    if target is None:
        raise ContentApiError(f"Project with ID {target_id} not found")

    logger.info("Restoring project: %s (%s)", target.display_name, target_id)
    artifact = await backups.restore(target_id, backup_index)
    if artifact is None:
        logger.info("No backup found to restore for %s", target.display_name)
        return None

    await asyncio.to_thread(
        lambda: content.attach_artifact(
            target_id,
            artifact,
            alt=f"{target.display_name} screenshot (restored)",
        )
    )
    logger.info("Successfully restored screenshot for %s: %s", target.display_name, artifact.url)
    return artifact


__all__ = [
    "backup_all_targets",
    "cleanup_all_targets",
    "format_backup",
    "list_all_backups",
    "restore_target",
]
