#!/usr/bin/env python3
"""Run a single screenshot capture pass and exit (what the host spawns)."""

from screenshot_backup.runner import main


if __name__ == "__main__":
    main()
