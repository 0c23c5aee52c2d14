"""Headless Chromium rendering of project pages via Playwright."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from screenshot_backup.config import CaptureSettings
from screenshot_backup.errors import NavigationTimeout, RenderFailure

BROWSER_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--force-device-scale-factor=1",
)

_SCROLL_HEIGHT_JS = "() => document.body ? document.body.scrollHeight : 0"


@dataclass(frozen=True)
class RenderedPage:
    """JPEG frames of one page, in viewport and full-page form."""

    url: str
    viewport_image: bytes
    fullpage_image: bytes
    viewport_width: int
    viewport_height: int
    page_height: int


class PlaywrightRenderer:
    """Render a URL in a fresh browser that is always closed afterwards."""

    def __init__(self, settings: CaptureSettings, logger: logging.Logger) -> None:
        self.settings = settings
        self.logger = logger

    async def _wait_for_settle(self, page: Any) -> int:
        """Poll the page height until two readings match or the settle time runs out."""
        deadline = time.monotonic() + self.settings.settle_timeout_seconds
        previous: Optional[int] = None
        height = 0
        while True:
            height = int(await page.evaluate(_SCROLL_HEIGHT_JS) or 0)
            if previous is not None and height == previous:
                break
            if time.monotonic() >= deadline:
                self.logger.debug("Page height still changing after %.1fs", self.settings.settle_timeout_seconds)
                break
            previous = height
            await asyncio.sleep(self.settings.settle_poll_seconds)
        return height

    async def render(self, url: str) -> RenderedPage:
        settings = self.settings
        async with async_playwright() as playwright:
            try:
                browser = await playwright.chromium.launch(headless=True, args=list(BROWSER_ARGS))
            except PlaywrightError as exc:
                raise RenderFailure(url, f"Browser launch failed: {exc}") from exc

            try:
                context = await browser.new_context(
                    viewport={"width": settings.viewport_width, "height": settings.viewport_height},
                    device_scale_factor=settings.device_scale_factor,
                    user_agent=settings.user_agent,
                )
                page = await context.new_page()

                try:
                    await page.goto(
                        url,
                        wait_until="networkidle",
                        timeout=settings.navigation_timeout_seconds * 1000,
                    )
                except PlaywrightTimeoutError as exc:
                    raise NavigationTimeout(
                        url,
                        f"Navigation exceeded {settings.navigation_timeout_seconds:g}s",
                    ) from exc

                page_height = await self._wait_for_settle(page)

                fullpage_image = await page.screenshot(
                    full_page=True,
                    type="jpeg",
                    quality=settings.jpeg_quality,
                )
                viewport_image = await page.screenshot(
                    full_page=False,
                    type="jpeg",
                    quality=settings.jpeg_quality,
                    clip={
                        "x": 0,
                        "y": 0,
                        "width": settings.viewport_width,
                        "height": settings.viewport_height,
                    },
                )
            except PlaywrightError as exc:
                raise RenderFailure(url, f"Rendering failed: {exc}") from exc
            finally:
                try:
                    await browser.close()
                except PlaywrightError as exc:
                    self.logger.warning("Error closing browser after %s: %s", url, exc)

        self.logger.debug("Rendered %s (page height %spx)", url, page_height)
        return RenderedPage(
            url=url,
            viewport_image=viewport_image,
            fullpage_image=fullpage_image,
            viewport_width=settings.viewport_width,
            viewport_height=settings.viewport_height,
            page_height=max(page_height, settings.viewport_height),
        )


__all__ = ["PlaywrightRenderer", "RenderedPage"]
