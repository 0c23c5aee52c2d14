"""Entrypoint for the screenshot backup host process."""

from screenshot_backup.app import ScreenshotBackup


def main() -> None:
    """Instantiate the host facade and start the capture schedule."""
    backup_system = ScreenshotBackup()
    backup_system.run()


if __name__ == "__main__":
    main()
