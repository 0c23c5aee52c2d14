#!/usr/bin/env python3
"""List, create and restore screenshot backups for portfolio projects."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from screenshot_backup.backups import BackupManager
from screenshot_backup.config import load_config
from screenshot_backup.content import ContentClient
from screenshot_backup.errors import ScreenshotBackupError
from screenshot_backup.operations import (
    backup_all_targets,
    cleanup_all_targets,
    list_all_backups,
    restore_target,
)
from screenshot_backup.storage import KeyLayout, S3BlobStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Operator commands for project screenshot backups.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.json"),
        help="Optional JSON configuration file (default: config.json, falls back to environment).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging verbosity (default: INFO).",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    list_parser = commands.add_parser("list", help="List all backups per project.")
    list_parser.add_argument(
        "--target",
        action="append",
        dest="targets",
        help="Limit the listing to specific project ids (repeatable).",
    )

    restore_parser = commands.add_parser("restore", help="Restore a project from a backup.")
    restore_parser.add_argument("target_id", help="Project id to restore.")
    restore_parser.add_argument(
        "backup_index",
        nargs="?",
        type=int,
        default=0,
        help="Backup position, newest first (default: 0).",
    )

    commands.add_parser("backup-all", help="Back up the current screenshots of all projects.")
    commands.add_parser(
        "cleanup",
        help="Back up and then delete the current screenshots of all projects.",
    )
    return parser


def setup_logging(level: str) -> logging.Logger:
    logging.basicConfig(level=level.upper(), format="%(levelname)s %(message)s")
    return logging.getLogger("screenshot_backup.manage")


async def run_command(args: argparse.Namespace, logger: logging.Logger) -> None:
    config = load_config(args.config)
    store = S3BlobStore(config.storage, logger=logger)
    content = ContentClient(config.content, logger)
    backups = BackupManager(store, KeyLayout.from_settings(config.storage), logger)

    try:
        if args.command == "list":
            await list_all_backups(content, backups, logger, args.targets)
        elif args.command == "restore":
            await restore_target(content, backups, logger, args.target_id, args.backup_index)
        elif args.command == "backup-all":
            await backup_all_targets(content, backups, logger)
        elif args.command == "cleanup":
            await cleanup_all_targets(content, backups, logger)
    finally:
        content.close()


def main() -> None:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args()
    logger = setup_logging(args.log_level)

    try:
        asyncio.run(run_command(args, logger))
    except (ScreenshotBackupError, IndexError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        sys.exit(1)
    logger.info("%s completed successfully", args.command)


if __name__ == "__main__":
    main()
