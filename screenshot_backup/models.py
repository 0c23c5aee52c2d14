"""Data models used across the screenshot backup system."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple

VARIANT_VIEWPORT = "viewport"
VARIANT_FULLPAGE = "fullpage"
VARIANTS = (VARIANT_VIEWPORT, VARIANT_FULLPAGE)


@dataclass(frozen=True)
class Target:
    """A project page that is periodically screenshotted."""

    id: str
    urls: Tuple[str, ...]
    display_name: str

    @property
    def primary_url(self) -> Optional[str]:
        return self.urls[0] if self.urls else None

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "Target":
        """Build a target from a content API project document."""
        target_id = str(payload.get("_id") or payload.get("id") or "").strip()
        raw_urls = payload.get("liveUrls")
        if raw_urls is None:
            raw_urls = payload.get("live_urls", [])
        if isinstance(raw_urls, str):
            raw_urls = [raw_urls]
        urls = tuple(
            str(url).strip()
            for url in raw_urls or []
            if isinstance(url, str) and url.strip().lower().startswith(("http://", "https://"))
        )
        name = str(payload.get("title") or payload.get("name") or target_id)
        return cls(id=target_id, urls=urls, display_name=name)


@dataclass(frozen=True)
class StoredObject:
    """One object as reported by the blob store."""

    key: str
    url: str
    last_modified: datetime
    size_bytes: int
    metadata: Dict[str, str] = field(default_factory=dict)


def _metadata_int(metadata: Mapping[str, str], name: str) -> Optional[int]:
    try:
        return int(metadata[name])
    except (KeyError, TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Artifact:
    """A captured screenshot living in a target's storage namespace."""

    storage_key: str
    url: str
    created_at: datetime
    size_bytes: int
    width: Optional[int]
    height: Optional[int]
    variant: str

    @classmethod
    def from_stored(cls, obj: StoredObject) -> "Artifact":
        variant = obj.metadata.get("variant")
        if variant not in VARIANTS:
            variant = VARIANT_FULLPAGE if "fullpage" in obj.key else VARIANT_VIEWPORT
        return cls(
            storage_key=obj.key,
            url=obj.url,
            created_at=obj.last_modified,
            size_bytes=obj.size_bytes,
            width=_metadata_int(obj.metadata, "width"),
            height=_metadata_int(obj.metadata, "height"),
            variant=variant,
        )

    def storage_metadata(self) -> Dict[str, str]:
        """Object metadata that travels with the blob across copies."""
        metadata = {"variant": self.variant}
        if self.width is not None:
            metadata["width"] = str(self.width)
        if self.height is not None:
            metadata["height"] = str(self.height)
        return metadata


@dataclass(frozen=True)
class BackupRecord:
    """A copy of an artifact kept in the backup namespace."""

    original_key: str
    backup_key: str
    backed_up_at: datetime
    url: str
    created_at: Optional[datetime]
    size_bytes: int
    width: Optional[int]
    height: Optional[int]
    variant: str

    @classmethod
    def from_stored(cls, obj: StoredObject) -> "BackupRecord":
        artifact = Artifact.from_stored(obj)
        created_at: Optional[datetime] = None
        raw_created = obj.metadata.get("original-created-at")
        if raw_created:
            try:
                created_at = datetime.fromisoformat(raw_created)
            except ValueError:
                created_at = None
        return cls(
            original_key=obj.metadata.get("original-key", ""),
            backup_key=obj.key,
            backed_up_at=obj.last_modified,
            url=obj.url,
            created_at=created_at,
            size_bytes=obj.size_bytes,
            width=artifact.width,
            height=artifact.height,
            variant=artifact.variant,
        )


@dataclass
class RunSummary:
    """Per-run counters reported once the batch scheduler finishes."""

    total: int = 0
    captured: int = 0
    skipped: int = 0
    failed: int = 0
    timed_out: int = 0

    def describe(self) -> str:
        return (
            f"{self.captured}/{self.total} captured, {self.skipped} skipped, "
            f"{self.failed} failed, {self.timed_out} timed out"
        )


__all__ = [
    "Artifact",
    "BackupRecord",
    "RunSummary",
    "StoredObject",
    "Target",
    "VARIANTS",
    "VARIANT_FULLPAGE",
    "VARIANT_VIEWPORT",
]
