import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from screenshot_backup.config import StorageSettings  # noqa: E402
from screenshot_backup.errors import StorageConflictError, StorageError  # noqa: E402
from screenshot_backup.storage import KeyLayout, S3BlobStore  # noqa: E402

MODIFIED = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _missing(operation="HeadObject"):
    return ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, operation)


def _head(metadata=None, size=10):
    return {"LastModified": MODIFIED, "ContentLength": size, "Metadata": metadata or {}, "ContentType": "image/jpeg"}


def _store(client, **overrides):
    settings = StorageSettings(bucket="shots", region="eu-west-1", **overrides)
    return S3BlobStore(settings, client=client)


def test_missing_bucket_is_rejected() -> None:
    with pytest.raises(StorageError):
        S3BlobStore(StorageSettings(), client=MagicMock())


def test_key_layout_prefixes() -> None:
    layout = KeyLayout.from_settings(StorageSettings(live_prefix="live", backup_prefix="archive"))
    assert layout.live_listing_prefix("p1") == "live/p1/"
    assert layout.backup_namespace("p1") == "archive/p1"


def test_url_for_prefers_public_base_url() -> None:
    assert _store(MagicMock()).url_for("a/b.jpg") == "https://shots.s3.eu-west-1.amazonaws.com/a/b.jpg"
    store = _store(MagicMock(), public_base_url="https://cdn.example.com/")
    assert store.url_for("a/b.jpg") == "https://cdn.example.com/a/b.jpg"


def test_list_reads_metadata_for_each_object() -> None:
    client = MagicMock()
    paginator = MagicMock()
    paginator.paginate.return_value = [
        {"Contents": [{"Key": "screenshots/p1/2_viewport.jpg"}, {"Key": "screenshots/p1/1_viewport.jpg"}]},
        {},
    ]
    client.get_paginator.return_value = paginator
    client.head_object.return_value = _head({"variant": "viewport"})

    objects = _store(client).list("screenshots/p1/")

    assert [obj.key for obj in objects] == ["screenshots/p1/1_viewport.jpg", "screenshots/p1/2_viewport.jpg"]
    assert objects[0].metadata == {"variant": "viewport"}
    assert objects[0].last_modified == MODIFIED
    paginator.paginate.assert_called_once_with(Bucket="shots", Prefix="screenshots/p1/")


def test_list_skips_objects_deleted_before_head() -> None:
    client = MagicMock()
    client.get_paginator.return_value.paginate.return_value = [{"Contents": [{"Key": "gone.jpg"}]}]
    client.head_object.side_effect = _missing()

    assert _store(client).list("") == []


def test_list_error_is_wrapped() -> None:
    client = MagicMock()
    client.get_paginator.return_value.paginate.side_effect = ClientError(
        {"Error": {"Code": "AccessDenied", "Message": "denied"}},
        "ListObjectsV2",
    )

    with pytest.raises(StorageError):
        _store(client).list("screenshots/")


def test_copy_refuses_to_overwrite_existing_destination() -> None:
    client = MagicMock()
    client.head_object.return_value = _head()

    with pytest.raises(StorageConflictError):
        _store(client).copy("screenshots/p1/1.jpg", "backup/p1/x-1", overwrite=False)

    client.copy_object.assert_not_called()


def test_copy_merges_metadata_over_source() -> None:
    client = MagicMock()
    source = _head({"variant": "viewport", "width": "1920"})
    dest = _head({"variant": "viewport", "width": "1920", "original-key": "screenshots/p1/1.jpg"})
    client.head_object.side_effect = [source, _missing(), dest]

    stored = _store(client).copy(
        "screenshots/p1/1.jpg",
        "backup/p1/x-1",
        metadata={"original-key": "screenshots/p1/1.jpg"},
    )

    kwargs = client.copy_object.call_args.kwargs
    assert kwargs["CopySource"] == {"Bucket": "shots", "Key": "screenshots/p1/1.jpg"}
    assert kwargs["MetadataDirective"] == "REPLACE"
    assert kwargs["Metadata"] == {"variant": "viewport", "width": "1920", "original-key": "screenshots/p1/1.jpg"}
    assert stored.key == "backup/p1/x-1"
    assert stored.metadata["original-key"] == "screenshots/p1/1.jpg"


def test_copy_of_missing_source_fails() -> None:
    client = MagicMock()
    client.head_object.side_effect = _missing()

    with pytest.raises(StorageError):
        _store(client).copy("nope.jpg", "backup/p1/x-1")


def test_upload_puts_object_with_metadata() -> None:
    client = MagicMock()
    client.head_object.return_value = _head({"variant": "fullpage"}, size=4)

    stored = _store(client).upload("screenshots/p1/1_fullpage.jpg", b"data", metadata={"variant": "fullpage"})

    kwargs = client.put_object.call_args.kwargs
    assert kwargs["Body"] == b"data"
    assert kwargs["ContentType"] == "image/jpeg"
    assert kwargs["Metadata"] == {"variant": "fullpage"}
    assert stored.size_bytes == 4


def test_delete_error_is_wrapped() -> None:
    client = MagicMock()
    client.delete_object.side_effect = ClientError({"Error": {"Code": "500", "Message": "boom"}}, "DeleteObject")

    with pytest.raises(StorageError):
        _store(client).delete("screenshots/p1/1.jpg")
