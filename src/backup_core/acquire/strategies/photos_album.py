"""Shared photo albums: scroll the grid until it stops growing, then fetch originals."""

from __future__ import annotations

import dataclasses
import logging
from typing import Any

from backup_core.acquire.context import DownloadContext
from backup_core.acquire.strategies.enumeration import (
    DEFAULT_IDLE_LIMIT,
    DEFAULT_MAX_ITERATIONS,
    scroll_until_stable,
)
from backup_core.acquire.strategies.session_base import (
    SESSION_ERRORS,
    PlaywrightError,
    SessionStrategy,
    describe_session_error,
    ms,
)
from backup_core.layout import target_dir
from backup_core.result import DownloadResult
from backup_core.utils.dates import timestamp_prefix

logger = logging.getLogger(__name__)

EMPTY_ALBUM_ERROR = "No media found in album after scrolling."
SCROLL_CONTAINER = '[jsrenderer="x3Fdbb"]'
WHEEL_STEP = 1000

MEDIA_IMAGE = "image"
MEDIA_VIDEO = "video"

# Tiles carry the thumbnail as a CSS background; the link's accessible name says "video" for clips
_MEDIA_IN_VIEW_SCRIPT = """
() => {
  const media = [];
  document.querySelectorAll('.rtIMgb').forEach((tile) => {
    const link = tile.querySelector('a.p137Zd');
    const styled = tile.querySelector('div[style*="background-image"]');
    if (!link || !styled) return;
    const match = styled.style.backgroundImage.match(/url\\(['"]?(.*?)['"]?\\)/);
    if (match && match[1] && match[1].includes('googleusercontent.com')) {
      const label = (link.getAttribute('aria-label') || '').toLowerCase();
      media.push({ url: match[1], type: label.includes('video') ? 'video' : 'image' });
    }
  });
  return media;
}
"""


@dataclasses.dataclass(frozen=True)
class AlbumItem:
    url: str
    media_type: str

    @property
    def base_url(self) -> str:
        return self.url.split("=", 1)[0]

    @property
    def original_url(self) -> str:
        """Full-resolution download: ``=dv`` for video, ``=d`` for stills."""
        return self.base_url + ("=dv" if self.media_type == MEDIA_VIDEO else "=d")

    @property
    def extension(self) -> str:
        return "mp4" if self.media_type == MEDIA_VIDEO else "jpg"


class PhotosAlbumStrategy(SessionStrategy):
    name = "photos_album"
    enumerates = True

    def __init__(
        self,
        *,
        idle_limit: int = DEFAULT_IDLE_LIMIT,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        scroll_delay: float = 2.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.idle_limit = idle_limit
        self.max_iterations = max_iterations
        self.scroll_delay = scroll_delay

    def can_handle(self, url: str) -> bool:
        return "photos.app.goo.gl" in url or "photos.google.com/share" in url

    async def list_items(self, page: Any) -> list[AlbumItem]:
        try:
            await page.wait_for_selector(SCROLL_CONTAINER, timeout=ms(self.timeouts.interstitial))
            await page.hover(SCROLL_CONTAINER)
        except PlaywrightError:
            logger.debug("Album scroll container not found, scrolling the page")

        async def snapshot() -> list[AlbumItem]:
            raw = await page.evaluate(_MEDIA_IN_VIEW_SCRIPT)
            return [
                AlbumItem(url=str(entry["url"]), media_type=str(entry.get("type") or MEDIA_IMAGE))
                for entry in raw
            ]

        async def advance() -> None:
            await page.mouse.wheel(0, WHEEL_STEP)
            await page.wait_for_timeout(ms(self.scroll_delay))

        outcome = await scroll_until_stable(
            snapshot,
            advance,
            key=lambda item: item.base_url,
            idle_limit=self.idle_limit,
            max_iterations=self.max_iterations,
        )
        return outcome.items

    async def fetch(self, url: str, ctx: DownloadContext) -> list[DownloadResult]:
        page, failure = self.session_or_failure(url, ctx)
        if failure:
            return failure
        try:
            await self.navigate(page, url)
            items = await self.list_items(page)
        except SESSION_ERRORS as exc:
            return [DownloadResult.failed(url, describe_session_error(exc))]

        if not items:
            return [DownloadResult.failed(url, EMPTY_ALBUM_ERROR)]
        logger.info("Album %s: %s items", url, len(items))

        stamp = timestamp_prefix(ctx.posted_at)
        results: list[DownloadResult] = []
        for position, item in enumerate(items):
            base = ctx.claim_name(f"{stamp}-album-{item.media_type}-{position + 1}")
            dest = target_dir(ctx.output_dir, item.extension) / f"{base}.{item.extension}"
            try:
                content_type, size = await self.save_via_session(page, item.original_url, dest)
            except SESSION_ERRORS as exc:
                results.append(DownloadResult.failed(item.original_url, describe_session_error(exc)))
                continue
            results.append(
                DownloadResult.success(
                    item.original_url, dest, size=size, content_type=content_type or None, source_name=url
                )
            )
        return results
