"""Error taxonomy for capture runs."""

from __future__ import annotations

from typing import Sequence


class ScreenshotBackupError(Exception):
    """Base class for all screenshot backup errors."""


class StorageError(ScreenshotBackupError):
    """Raised when the blob store rejects or fails a request."""


class StorageConflictError(StorageError):
    """Raised when a non-overwriting write targets a key that already exists."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Object already exists: {key}")
        self.key = key


class ContentApiError(ScreenshotBackupError):
    """Raised when the content API cannot list targets or attach artifacts."""


class CaptureError(ScreenshotBackupError):
    """Raised when a URL could not be rendered and uploaded."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url


class NavigationTimeout(CaptureError):
    pass


class RenderFailure(CaptureError):
    pass


class UploadFailure(CaptureError):
    pass


class BackupPartialFailure(ScreenshotBackupError):
    """Some artifacts of a target could not be copied to the backup namespace.

    Non-fatal: it is logged by the backup manager and never raised to callers.
    """

    def __init__(self, target_id: str, failed_keys: Sequence[str], total: int) -> None:
        super().__init__(
            f"Backed up {total - len(failed_keys)}/{total} screenshots for {target_id}; "
            f"failed: {', '.join(failed_keys)}"
        )
        self.target_id = target_id
        self.failed_keys = tuple(failed_keys)
        self.total = total


class TargetTimeout(ScreenshotBackupError):
    def __init__(self, target_id: str, timeout: float) -> None:
        super().__init__(f"Target {target_id} abandoned after {timeout:g}s")
        self.target_id = target_id
        self.timeout = timeout


class RunTimeout(ScreenshotBackupError):
    def __init__(self, timeout: float) -> None:
        super().__init__(f"Run exceeded its {timeout:g}s deadline")
        self.timeout = timeout


class ProcessKilled(ScreenshotBackupError):
    def __init__(self, pid: int, timeout: float) -> None:
        super().__init__(f"Run process {pid} killed after {timeout:g}s")
        self.pid = pid
        self.timeout = timeout


__all__ = [
    "BackupPartialFailure",
    "CaptureError",
    "ContentApiError",
    "NavigationTimeout",
    "ProcessKilled",
    "RenderFailure",
    "RunTimeout",
    "ScreenshotBackupError",
    "StorageConflictError",
    "StorageError",
    "TargetTimeout",
    "UploadFailure",
]
