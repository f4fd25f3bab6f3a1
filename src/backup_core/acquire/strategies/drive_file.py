"""Single shared file behind an authenticated Drive session.

Small files come straight from the content endpoint through the page's
request context. Large files answer that request with a virus-scan
interstitial instead of bytes; for those the strategy falls back to the
browser's own download flow and captures the download event.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from backup_core.acquire.context import DownloadContext
from backup_core.acquire.strategies.content_types import extension_for_content_type
from backup_core.acquire.strategies.session_base import (
    SESSION_ERRORS,
    PlaywrightError,
    SessionStrategy,
    describe_session_error,
    drive_content_url,
    drive_file_id,
    ms,
)
from backup_core.layout import target_dir
from backup_core.result import DownloadResult
from backup_core.utils.dates import timestamp_prefix
from backup_core.utils.paths import safe_filename, split_extension
from backup_core.utils.text import format_bytes

logger = logging.getLogger(__name__)

DEFAULT_DRIVE_EXTENSION = "pdf"
DOWNLOAD_SHORTCUT = "Meta+d"
INTERSTITIAL_FORM = "#download-form"
INTERSTITIAL_BUTTON = '#uc-download-link[type="submit"]'

# Reads the display name and a type hint from the file viewer page
_METADATA_SCRIPT = """
() => {
  let filename = '';
  const og = document.querySelector('meta[property="og:title"]');
  if (og) filename = og.getAttribute('content') || '';
  if (!filename) {
    const title = document.querySelector('title');
    if (title && title.textContent) {
      filename = title.textContent.replace(/ - Google .*$/i, '').trim();
    }
  }
  let type = '';
  const named = document.querySelector('meta[itemprop="name"][content*="."]');
  if (named) {
    const content = named.getAttribute('content') || '';
    type = content.includes('.') ? (content.split('.').pop() || '') : '';
  }
  if (document.body && document.body.innerHTML.includes('application/pdf')) type = 'pdf';
  return { filename, type };
}
"""


def resolve_drive_filename(stamp: str, display_name: str, type_hint: str, file_id: str) -> str:
    """Build ``<stamp>-<name>.<ext>``, never doubling an extension the name already has."""
    stem, name_ext = split_extension(display_name or "")
    extension = (type_hint or name_ext or DEFAULT_DRIVE_EXTENSION).lower()
    if display_name:
        return f"{stamp}-{safe_filename(stem or display_name, max_length=100)}.{extension}"
    return f"{stamp}-drive-file-{file_id}.{extension}"


class DriveFileStrategy(SessionStrategy):
    name = "drive_file"

    def can_handle(self, url: str) -> bool:
        return "drive.google.com/file/d/" in url

    async def read_metadata(self, page: Any) -> tuple[str, str]:
        try:
            metadata = await page.evaluate(_METADATA_SCRIPT)
        except PlaywrightError as exc:
            logger.debug("Could not read Drive file metadata: %s", exc)
            return "", ""
        return str(metadata.get("filename") or ""), str(metadata.get("type") or "")

    async def fetch(self, url: str, ctx: DownloadContext) -> list[DownloadResult]:
        page, failure = self.session_or_failure(url, ctx)
        if failure:
            return failure
        file_id = drive_file_id(url)
        if not file_id:
            return [DownloadResult.failed(url, "Could not extract file ID from URL")]

        stamp = timestamp_prefix(ctx.posted_at)
        try:
            await self.navigate(page, url)
        except SESSION_ERRORS as exc:
            return [DownloadResult.failed(url, describe_session_error(exc))]

        display_name, type_hint = await self.read_metadata(page)
        stem, extension = split_extension(resolve_drive_filename(stamp, display_name, type_hint, file_id))
        base = ctx.claim_name(stem)
        dest = target_dir(ctx.output_dir, extension) / f"{base}.{extension}"
        source_name = display_name or file_id

        try:
            content_type, size = await self.save_via_session(page, drive_content_url(file_id), dest)
        except SESSION_ERRORS as exc:
            logger.info("Content endpoint failed for %s (%s), trying browser download", url, exc)
            return [await self._download_via_interstitial(page, url, ctx, base, extension, display_name, file_id)]

        if extension_for_content_type(content_type) == "html":
            # The endpoint answered with the interstitial page instead of the file
            dest.unlink(missing_ok=True)
            return [await self._download_via_interstitial(page, url, ctx, base, extension, display_name, file_id)]

        logger.info("Downloaded Drive file %s (%s)", dest.name, format_bytes(size))
        return [
            DownloadResult.success(
                url,
                dest,
                size=size,
                content_type=content_type or None,
                extension=extension,
                source_name=source_name,
            )
        ]

    async def _download_via_interstitial(
        self,
        page: Any,
        url: str,
        ctx: DownloadContext,
        base: str,
        extension: str,
        display_name: str,
        file_id: str,
    ) -> DownloadResult:
        popup = None
        try:
            try:
                async with page.context.expect_page(timeout=ms(self.timeouts.interstitial)) as popup_info:
                    await page.keyboard.press(DOWNLOAD_SHORTCUT)
                popup = await popup_info.value
                await popup.wait_for_load_state("networkidle", timeout=ms(self.timeouts.interstitial))
                scan_page = popup
            except SESSION_ERRORS:
                logger.debug("No popup for %s, checking the current page", url)
                scan_page = page

            if await scan_page.locator(INTERSTITIAL_FORM).count() == 0:
                return DownloadResult.failed(url, "Drive download failed and no virus-scan page was offered")

            async with scan_page.expect_download(timeout=ms(self.timeouts.leaf)) as download_info:
                await scan_page.locator(INTERSTITIAL_BUTTON).click(timeout=5000)
            download = await download_info.value

            suggested = download.suggested_filename or ""
            if suggested and not display_name:
                _stem, suggested_ext = split_extension(suggested)
                stamp = timestamp_prefix(ctx.posted_at)
                stem, extension = split_extension(
                    resolve_drive_filename(stamp, suggested, suggested_ext or extension, file_id)
                )
                base = ctx.claim_name(stem)
            dest: Path = target_dir(ctx.output_dir, extension) / f"{base}.{extension}"
            await download.save_as(str(dest))
        except SESSION_ERRORS as exc:
            return DownloadResult.failed(url, describe_session_error(exc))
        finally:
            if popup is not None:
                try:
                    await popup.close()
                except PlaywrightError:
                    logger.debug("Popup already closed for %s", url)

        size = dest.stat().st_size
        logger.info("Downloaded large Drive file %s (%s)", dest.name, format_bytes(size))
        return DownloadResult.success(
            url, dest, size=size, extension=extension, source_name=display_name or suggested or file_id
        )
