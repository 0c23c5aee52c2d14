"""Configuration dataclasses and loading helpers for the screenshot backup system."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Extra headroom the kill backstop keeps over the run deadline and exit grace.
KILL_TIMEOUT_MARGIN_SECONDS = 15.0


def _parse_bool(value: Any, default: bool) -> bool:
    """Parse truthy/falsy values from multiple input types."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip().lower()
        if not stripped:
            return default
        return stripped in {"1", "true", "yes", "on"}
    if isinstance(value, (int, float)):
        return value != 0
    return default


def _parse_positive_int(value: Any, default: int) -> int:
    """Parse a positive integer with fallback to default."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _parse_non_negative_int(value: Any, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 0 else default


def _parse_float(value: Any, default: float) -> float:
    """Parse a non-negative floating point number with fallback to default."""
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= 0 else default


def _parse_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class CaptureSettings:
    """Rendering parameters for a single screenshot capture."""

    viewport_width: int = 1920
    viewport_height: int = 1080
    device_scale_factor: int = 1
    user_agent: str = DEFAULT_USER_AGENT
    navigation_timeout_seconds: float = 60.0
    settle_timeout_seconds: float = 5.0
    settle_poll_seconds: float = 0.1
    jpeg_quality: int = 95


@dataclass(frozen=True)
class BatchSettings:
    """Fan-out parameters used while processing targets inside a run."""

    batch_size: int = 3
    batch_delay_seconds: float = 2.0
    target_timeout_seconds: float = 90.0
    freshness_window_hours: float = 12.0


@dataclass(frozen=True)
class RunSettings:
    """Run deadline, retry and process supervision settings."""

    run_timeout_seconds: float = 300.0
    kill_timeout_seconds: float = 300.0
    exit_grace_seconds: float = 1.0
    absolute_timeout_seconds: float = 600.0
    max_retries: int = 3
    retry_delay_seconds: float = 30.0
    run_on_startup: bool = True
    test_run_minutes: int = 0

    @property
    def effective_kill_timeout_seconds(self) -> float:
        """Kill backstop, always strictly larger than the run's own deadline."""
        floor = self.run_timeout_seconds + self.exit_grace_seconds + KILL_TIMEOUT_MARGIN_SECONDS
        return max(self.kill_timeout_seconds, floor)


@dataclass(frozen=True)
class StorageSettings:
    """Blob store location and key namespaces."""

    bucket: str = ""
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    public_base_url: Optional[str] = None
    live_prefix: str = "screenshots"
    backup_prefix: str = "backup"


@dataclass(frozen=True)
class ContentSettings:
    """Location of the content REST API that owns the targets."""

    base_url: str = "http://localhost:5000"
    api_token: Optional[str] = None
    request_timeout: int = 10


@dataclass(frozen=True)
class Config:
    """Root configuration object for the screenshot backup system."""

    capture: CaptureSettings = field(default_factory=CaptureSettings)
    batch: BatchSettings = field(default_factory=BatchSettings)
    run: RunSettings = field(default_factory=RunSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    content: ContentSettings = field(default_factory=ContentSettings)
    log_file: Optional[str] = None


def _parse_capture_settings(raw: Mapping[str, Any]) -> CaptureSettings:
    default = CaptureSettings()
    if not isinstance(raw, Mapping):
        return default
    quality = _parse_positive_int(raw.get("jpeg_quality"), default.jpeg_quality)
    return CaptureSettings(
        viewport_width=_parse_positive_int(raw.get("viewport_width"), default.viewport_width),
        viewport_height=_parse_positive_int(raw.get("viewport_height"), default.viewport_height),
        device_scale_factor=_parse_positive_int(
            raw.get("device_scale_factor"),
            default.device_scale_factor,
        ),
        user_agent=_parse_optional_str(raw.get("user_agent")) or default.user_agent,
        navigation_timeout_seconds=_parse_float(
            raw.get("navigation_timeout_seconds"),
            default.navigation_timeout_seconds,
        ),
        settle_timeout_seconds=_parse_float(
            raw.get("settle_timeout_seconds"),
            default.settle_timeout_seconds,
        ),
        settle_poll_seconds=_parse_float(
            raw.get("settle_poll_seconds"),
            default.settle_poll_seconds,
        ),
        jpeg_quality=min(100, quality),
    )


def _parse_batch_settings(raw: Mapping[str, Any]) -> BatchSettings:
    default = BatchSettings()
    if not isinstance(raw, Mapping):
        return default
    return BatchSettings(
        batch_size=_parse_positive_int(raw.get("batch_size"), default.batch_size),
        batch_delay_seconds=_parse_float(raw.get("batch_delay_seconds"), default.batch_delay_seconds),
        target_timeout_seconds=_parse_float(
            raw.get("target_timeout_seconds"),
            default.target_timeout_seconds,
        ),
        freshness_window_hours=_parse_float(
            raw.get("freshness_window_hours"),
            default.freshness_window_hours,
        ),
    )


def _parse_run_settings(raw: Mapping[str, Any]) -> RunSettings:
    default = RunSettings()
    if not isinstance(raw, Mapping):
        return default
    return RunSettings(
        run_timeout_seconds=_parse_float(raw.get("run_timeout_seconds"), default.run_timeout_seconds),
        kill_timeout_seconds=_parse_float(raw.get("kill_timeout_seconds"), default.kill_timeout_seconds),
        exit_grace_seconds=_parse_float(raw.get("exit_grace_seconds"), default.exit_grace_seconds),
        absolute_timeout_seconds=_parse_float(
            raw.get("absolute_timeout_seconds"),
            default.absolute_timeout_seconds,
        ),
        max_retries=_parse_positive_int(raw.get("max_retries"), default.max_retries),
        retry_delay_seconds=_parse_float(raw.get("retry_delay_seconds"), default.retry_delay_seconds),
        run_on_startup=_parse_bool(raw.get("run_on_startup"), default.run_on_startup),
        test_run_minutes=_parse_non_negative_int(raw.get("test_run_minutes"), default.test_run_minutes),
    )


def _parse_storage_settings(raw: Mapping[str, Any]) -> StorageSettings:
    default = StorageSettings()
    if not isinstance(raw, Mapping):
        return default
    return StorageSettings(
        bucket=str(raw.get("bucket") or default.bucket).strip(),
        region=_parse_optional_str(raw.get("region")),
        endpoint_url=_parse_optional_str(raw.get("endpoint_url")),
        public_base_url=_parse_optional_str(raw.get("public_base_url")),
        live_prefix=(_parse_optional_str(raw.get("live_prefix")) or default.live_prefix).strip("/"),
        backup_prefix=(_parse_optional_str(raw.get("backup_prefix")) or default.backup_prefix).strip("/"),
    )


def _parse_content_settings(raw: Mapping[str, Any]) -> ContentSettings:
    default = ContentSettings()
    if not isinstance(raw, Mapping):
        return default
    return ContentSettings(
        base_url=(_parse_optional_str(raw.get("base_url")) or default.base_url).rstrip("/"),
        api_token=_parse_optional_str(raw.get("api_token")),
        request_timeout=_parse_positive_int(raw.get("request_timeout"), default.request_timeout),
    )


def _load_env_config(env: Mapping[str, str]) -> Config:
    """Configuration derived from environment variables."""
    kill_timeout_ms = _parse_positive_int(env.get("RUN_KILL_TIMEOUT_MS"), 5 * 60 * 1000)

    capture = _parse_capture_settings({
        "navigation_timeout_seconds": env.get("SCREENSHOT_NAVIGATION_TIMEOUT_SECONDS"),
        "settle_timeout_seconds": env.get("SCREENSHOT_SETTLE_TIMEOUT_SECONDS"),
        "jpeg_quality": env.get("SCREENSHOT_JPEG_QUALITY"),
        "user_agent": env.get("SCREENSHOT_USER_AGENT"),
    })

    batch = _parse_batch_settings({
        "batch_size": env.get("SCREENSHOT_BATCH_SIZE"),
        "batch_delay_seconds": env.get("SCREENSHOT_BATCH_DELAY_SECONDS"),
        "target_timeout_seconds": env.get("SCREENSHOT_TARGET_TIMEOUT_SECONDS"),
        "freshness_window_hours": env.get("SCREENSHOT_FRESHNESS_HOURS"),
    })

    run = _parse_run_settings({
        "run_timeout_seconds": env.get("SCREENSHOT_RUN_TIMEOUT_SECONDS"),
        "kill_timeout_seconds": kill_timeout_ms / 1000.0,
        "absolute_timeout_seconds": env.get("SCREENSHOT_ABSOLUTE_TIMEOUT_SECONDS"),
        "max_retries": env.get("SCREENSHOT_MAX_RETRIES"),
        "retry_delay_seconds": env.get("SCREENSHOT_RETRY_DELAY_SECONDS"),
        "run_on_startup": env.get("RUN_SCHEDULER_ON_STARTUP"),
        "test_run_minutes": env.get("TEST_SCHEDULER_MINUTES"),
    })

    storage = _parse_storage_settings({
        "bucket": env.get("S3_BUCKET"),
        "region": env.get("S3_REGION"),
        "endpoint_url": env.get("S3_ENDPOINT_URL"),
        "public_base_url": env.get("S3_PUBLIC_BASE_URL"),
        "live_prefix": env.get("SCREENSHOT_LIVE_PREFIX"),
        "backup_prefix": env.get("SCREENSHOT_BACKUP_PREFIX"),
    })

    content = _parse_content_settings({
        "base_url": env.get("CONTENT_API_URL"),
        "api_token": env.get("CONTENT_API_TOKEN"),
        "request_timeout": env.get("CONTENT_API_TIMEOUT"),
    })

    return Config(
        capture=capture,
        batch=batch,
        run=run,
        storage=storage,
        content=content,
        log_file=_parse_optional_str(env.get("LOG_FILE")),
    )


def load_config(
    config_path: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> Config:
    """Load configuration from a JSON file when present, otherwise the environment."""
    source_env = os.environ if env is None else env
    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
            return Config(
                capture=_parse_capture_settings(data.get("capture", {})),
                batch=_parse_batch_settings(data.get("batch", {})),
                run=_parse_run_settings(data.get("run", {})),
                storage=_parse_storage_settings(data.get("storage", {})),
                content=_parse_content_settings(data.get("content", {})),
                log_file=_parse_optional_str(data.get("log_file")),
            )

    return _load_env_config(source_env)


__all__ = [
    "BatchSettings",
    "CaptureSettings",
    "Config",
    "ContentSettings",
    "RunSettings",
    "StorageSettings",
    "load_config",
    "_parse_bool",
    "_parse_positive_int",
]
