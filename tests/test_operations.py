import asyncio
import logging
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from screenshot_backup.backups import BackupManager  # noqa: E402
from screenshot_backup.errors import ContentApiError  # noqa: E402
from screenshot_backup.models import BackupRecord  # noqa: E402
from screenshot_backup.operations import (  # noqa: E402
    backup_all_targets,
    cleanup_all_targets,
    format_backup,
    list_all_backups,
    restore_target,
)
from screenshot_backup.storage import KeyLayout  # noqa: E402
from fakes import BASE_TIME, FakeBlobStore, FakeContent, hours_ago, make_target  # noqa: E402

LOGGER = logging.getLogger("operations-tests")


async def _no_sleep(delay):
    return None


def _setup():
    store = FakeBlobStore()
    content = FakeContent([make_target("p1", name="Alpha"), make_target("p2", name="Beta")])
    backups = BackupManager(store, KeyLayout(), LOGGER, clock=lambda: BASE_TIME)
    return store, content, backups


def test_list_all_backups_groups_by_target() -> None:
    store, content, backups = _setup()
    store.put("backup/p1/a-1", last_modified=hours_ago(5), metadata={"original-key": "screenshots/p1/1_viewport.jpg"})
    store.put("backup/p1/b-1", last_modified=hours_ago(1))

    listing = asyncio.run(list_all_backups(content, backups, LOGGER))

    assert [record.backup_key for record in listing["p1"]] == ["backup/p1/b-1", "backup/p1/a-1"]
    assert listing["p2"] == []


def test_list_all_backups_honours_target_filter() -> None:
    _, content, backups = _setup()

    listing = asyncio.run(list_all_backups(content, backups, LOGGER, ["p2"]))

    assert list(listing) == ["p2"]


def test_backup_all_targets_keeps_live_screenshots() -> None:
    store, content, backups = _setup()
    store.put("screenshots/p1/1_viewport.jpg", last_modified=hours_ago(3))
    store.put("screenshots/p2/1_viewport.jpg", last_modified=hours_ago(3))

    copied = asyncio.run(backup_all_targets(content, backups, LOGGER, sleep=_no_sleep))

    assert copied == 2
    assert len(store.keys("screenshots/")) == 2
    assert len(store.keys("backup/")) == 2


def test_cleanup_all_targets_backs_up_then_deletes() -> None:
    store, content, backups = _setup()
    store.put("screenshots/p1/1_viewport.jpg", last_modified=hours_ago(3))
    store.put("screenshots/p2/1_viewport.jpg", last_modified=hours_ago(3))

    deleted = asyncio.run(cleanup_all_targets(content, backups, LOGGER, sleep=_no_sleep))

    assert deleted == 2
    assert store.keys("screenshots/") == []
    assert len(store.keys("backup/")) == 2


def test_restore_target_attaches_restored_artifact() -> None:
    store, content, backups = _setup()
    store.put("backup/p1/a-1", b"saved", last_modified=hours_ago(5))

    artifact = asyncio.run(restore_target(content, backups, LOGGER, "p1"))

    assert store.data[artifact.storage_key] == b"saved"
    assert content.attached == [("p1", artifact, "Alpha screenshot (restored)")]


def test_restore_target_without_backups_returns_none() -> None:
    _, content, backups = _setup()

    assert asyncio.run(restore_target(content, backups, LOGGER, "p1")) is None
    assert content.attached == []


def test_restore_unknown_target_raises() -> None:
    _, content, backups = _setup()

    with pytest.raises(ContentApiError):
        asyncio.run(restore_target(content, backups, LOGGER, "missing"))


def test_format_backup_reports_unknown_dimensions() -> None:
    store, _, _ = _setup()
    stored = store.put("backup/p1/a-1", b"x" * 2048, last_modified=hours_ago(5))

    text = format_backup(1, BackupRecord.from_stored(stored))

    assert text.startswith("1. backup/p1/a-1")
    assert "Size: 2.00 KB" in text
    assert "Dimensions: unknown" in text
