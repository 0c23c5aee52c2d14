"""Logging for the host process and the capture child it relays."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import List, Optional, TextIO, Union

DEFAULT_LOGGER_NAME = "screenshot_backup"
DEFAULT_LOG_FILE = Path("/data/logs") / "screenshot_backup.log"

HOST_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
# The host stamps each relayed line itself.
CHILD_FORMAT = "%(levelname)s - %(message)s"

NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "s3transfer", "asyncio")


def _open_log_file(log_file: Union[str, Path]) -> tuple[Optional[logging.Handler], Optional[str]]:
    """File handler for ``log_file``, falling back to the working directory."""
    log_path = Path(log_file)
    if not log_path.is_absolute():
        log_path = Path.cwd() / log_path

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path, encoding="utf-8"), None
    except OSError as exc:
        fallback_path = Path.cwd() / log_path.name
        try:
            handler = logging.FileHandler(fallback_path, encoding="utf-8")
        except OSError as fallback_exc:
            return None, f"Cannot open log file '{log_path}' or '{fallback_path}': {fallback_exc}"
        return handler, f"Cannot open log file '{log_path}' ({exc}); logging to '{fallback_path}'"


def configure_logging(
    logger_name: Optional[str] = None,
    *,
    level: int = logging.INFO,
    log_file: Union[str, Path, None] = DEFAULT_LOG_FILE,
    stream: Optional[TextIO] = None,
    fmt: str = HOST_FORMAT,
) -> logging.Logger:
    """Configure root handlers and return the named application logger.

    ``stream`` defaults to stderr. The capture child passes ``sys.stdout``
    (see ``configure_child_logging``) because the host reads that pipe and
    relays every line into its own log.
    """
    formatter = logging.Formatter(fmt)
    handlers: List[logging.Handler] = []

    warning = None
    if log_file:
        file_handler, warning = _open_log_file(log_file)
        if file_handler is not None:
            handlers.append(file_handler)

    handlers.append(logging.StreamHandler(stream))
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))

    logger = logging.getLogger(logger_name or DEFAULT_LOGGER_NAME)
    logger.setLevel(level)
    if warning:
        logger.warning(warning)
    return logger


def configure_child_logging(level: int = logging.INFO) -> logging.Logger:
    """Stdout-only, unstamped logging for a capture run spawned by the host."""
    return configure_logging(level=level, log_file=None, stream=sys.stdout, fmt=CHILD_FORMAT)


__all__ = [
    "CHILD_FORMAT",
    "DEFAULT_LOGGER_NAME",
    "DEFAULT_LOG_FILE",
    "HOST_FORMAT",
    "configure_child_logging",
    "configure_logging",
]
