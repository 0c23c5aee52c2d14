"""S3-compatible blob store used for live screenshots and their backups."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from screenshot_backup.config import StorageSettings
from screenshot_backup.errors import StorageConflictError, StorageError
from screenshot_backup.models import StoredObject

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


@dataclass(frozen=True)
class KeyLayout:
    """Key namespaces: live screenshots and backups are both grouped by target id."""

    live_prefix: str = "screenshots"
    backup_prefix: str = "backup"

    @classmethod
    def from_settings(cls, settings: StorageSettings) -> "KeyLayout":
        return cls(live_prefix=settings.live_prefix, backup_prefix=settings.backup_prefix)

    def live_namespace(self, target_id: str) -> str:
        return f"{self.live_prefix}/{target_id}"

    def backup_namespace(self, target_id: str) -> str:
        return f"{self.backup_prefix}/{target_id}"

    # Trailing slash keeps target "1" from matching target "10".
    def live_listing_prefix(self, target_id: str) -> str:
        return self.live_namespace(target_id) + "/"

    def backup_listing_prefix(self, target_id: str) -> str:
        return self.backup_namespace(target_id) + "/"


class S3BlobStore:
    """Namespaced object storage on top of a single S3 bucket.

    Every call is blocking; async callers run them through ``asyncio.to_thread``.
    Object metadata (variant, dimensions, backup provenance) is read back with a
    ``HEAD`` per listed object, since ``ListObjectsV2`` does not return it.
    """

    def __init__(
        self,
        settings: StorageSettings,
        *,
        client: Optional[Any] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if not settings.bucket:
            raise StorageError("No S3 bucket configured (set S3_BUCKET)")
        self.bucket = settings.bucket
        self.region = settings.region
        self.public_base_url = (settings.public_base_url or "").rstrip("/")
        self.logger = logger or logging.getLogger(__name__)
        self.client = client or boto3.client(
            "s3",
            region_name=settings.region,
            endpoint_url=settings.endpoint_url,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def url_for(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        if self.region:
            return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"

    def _head(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            return self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in _MISSING_CODES:
                return None
            raise StorageError(f"HEAD {key} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"HEAD {key} failed: {exc}") from exc

    def _stored_object(self, key: str, head: Mapping[str, Any]) -> StoredObject:
        return StoredObject(
            key=key,
            url=self.url_for(key),
            last_modified=head["LastModified"],
            size_bytes=int(head.get("ContentLength", 0)),
            metadata=dict(head.get("Metadata") or {}),
        )

    def _require(self, key: str) -> StoredObject:
        head = self._head(key)
        if head is None:
            raise StorageError(f"Object {key} not found")
        return self._stored_object(key, head)

    def _ensure_absent(self, key: str) -> None:
        if self._head(key) is not None:
            raise StorageConflictError(key)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def list(self, prefix: str) -> List[StoredObject]:
        """Return every object under ``prefix``, ordered by key."""
        objects: List[StoredObject] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for entry in page.get("Contents", []):
                    key = entry["Key"]
                    head = self._head(key)
                    if head is None:
                        # Deleted between LIST and HEAD.
                        continue
                    objects.append(self._stored_object(key, head))
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Listing {prefix} failed: {exc}") from exc
        objects.sort(key=lambda obj: obj.key)
        return objects

    def upload(
        self,
        key: str,
        data: bytes,
        *,
        overwrite: bool = True,
        content_type: str = "image/jpeg",
        metadata: Optional[Mapping[str, str]] = None,
    ) -> StoredObject:
        if not overwrite:
            self._ensure_absent(key)
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=dict(metadata or {}),
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Upload of {key} failed: {exc}") from exc
        self.logger.debug("Uploaded %s (%s bytes)", key, len(data))
        return self._require(key)

    def copy(
        self,
        source_key: str,
        dest_key: str,
        *,
        overwrite: bool = False,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> StoredObject:
        """Server-side copy, merging ``metadata`` over the source object's metadata."""
        source_head = self._head(source_key)
        if source_head is None:
            raise StorageError(f"Copy source {source_key} not found")
        if not overwrite:
            self._ensure_absent(dest_key)

        merged = dict(source_head.get("Metadata") or {})
        merged.update(metadata or {})
        try:
            self.client.copy_object(
                Bucket=self.bucket,
                Key=dest_key,
                CopySource={"Bucket": self.bucket, "Key": source_key},
                MetadataDirective="REPLACE",
                Metadata=merged,
                ContentType=source_head.get("ContentType", "image/jpeg"),
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Copy {source_key} -> {dest_key} failed: {exc}") from exc
        self.logger.debug("Copied %s -> %s", source_key, dest_key)
        return self._require(dest_key)

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Delete of {key} failed: {exc}") from exc
        self.logger.debug("Deleted %s", key)


__all__ = ["KeyLayout", "S3BlobStore"]
