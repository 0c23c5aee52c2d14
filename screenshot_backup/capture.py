"""Render a URL and upload the resulting screenshots."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Optional

from screenshot_backup.errors import StorageError, UploadFailure
from screenshot_backup.freshness import utc_now
from screenshot_backup.models import VARIANT_FULLPAGE, VARIANT_VIEWPORT, Artifact
from screenshot_backup.rendering import RenderedPage


class CaptureWorker:
    """Produce a viewport and a full-page screenshot for one URL.

    The viewport frame is the primary result; the full-page frame is stored
    next to it as a supplementary artifact.
    """

    def __init__(
        self,
        renderer: Any,
        store: Any,
        logger: logging.Logger,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.renderer = renderer
        self.store = store
        self.logger = logger
        self.clock = clock or utc_now

    async def _upload(
        self,
        url: str,
        key: str,
        data: bytes,
        variant: str,
        width: int,
        height: int,
    ) -> Artifact:
        metadata = {"variant": variant, "width": str(width), "height": str(height)}
        try:
            stored = await asyncio.to_thread(
                lambda: self.store.upload(
                    key,
                    data,
                    overwrite=True,
                    content_type="image/jpeg",
                    metadata=metadata,
                )
            )
        except StorageError as exc:
            raise UploadFailure(url, f"Upload of {variant} screenshot failed: {exc}") from exc
        self.logger.info("%s screenshot uploaded: %s", variant.capitalize(), stored.url)
        return Artifact.from_stored(stored)

    async def capture(self, url: str, namespace: str) -> Artifact:
        self.logger.info("Capturing %s", url)
        rendered: RenderedPage = await self.renderer.render(url)

        millis = int(self.clock().timestamp() * 1000)
        await self._upload(
            url,
            f"{namespace}/{millis}_fullpage.jpg",
            rendered.fullpage_image,
            VARIANT_FULLPAGE,
            rendered.viewport_width,
            rendered.page_height,
        )
        return await self._upload(
            url,
            f"{namespace}/{millis}_viewport.jpg",
            rendered.viewport_image,
            VARIANT_VIEWPORT,
            rendered.viewport_width,
            rendered.viewport_height,
        )


__all__ = ["CaptureWorker"]
