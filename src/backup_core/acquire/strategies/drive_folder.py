"""Shared Drive folders: enumerate every item, recurse into subfolders, fetch the leaves."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any

from backup_core.acquire.context import DownloadContext
from backup_core.acquire.strategies.content_types import extension_for_content_type
from backup_core.acquire.strategies.enumeration import (
    DEFAULT_IDLE_LIMIT,
    DEFAULT_MAX_ITERATIONS,
    ITEM_FOLDER,
    classify_item,
    scroll_until_stable,
)
from backup_core.acquire.strategies.session_base import (
    SESSION_ERRORS,
    SessionStrategy,
    describe_session_error,
    drive_content_url,
    drive_folder_id,
    is_valid_drive_id,
    ms,
)
from backup_core.layout import target_dir
from backup_core.result import DownloadResult
from backup_core.utils.dates import timestamp_prefix
from backup_core.utils.paths import safe_filename, sanitize_filename, split_extension
from backup_core.utils.text import normalize_whitespace

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 3
EMPTY_FOLDER_ERROR = "No files found in folder. May require authentication."

# One entry per rendered [data-id] row/tile with every signal classify_item uses
_LIST_ITEMS_SCRIPT = """
() => Array.from(document.querySelectorAll('[data-id]')).map((el) => {
  const text = (el.textContent || '').trim();
  const link = el.querySelector('a[href]');
  const icon = el.querySelector('svg, img');
  const iconLabel = icon ? ((icon.getAttribute('aria-label') || '') + ' ' + (icon.getAttribute('src') || '')) : '';
  return {
    id: el.getAttribute('data-id') || '',
    tooltip: el.getAttribute('data-tooltip') || '',
    aria_label: el.getAttribute('aria-label') || '',
    text: text.length < 200 ? text : '',
    type: el.getAttribute('data-type') || el.getAttribute('data-target') || '',
    mime: el.getAttribute('data-mime-type') || '',
    href: link ? link.getAttribute('href') || '' : '',
    has_folder_icon: /folder/i.test(iconLabel),
  };
})
"""

_SCROLL_SCRIPT = """
() => {
  const scrollable = document.querySelector('[role="main"]') || document.scrollingElement || document.body;
  scrollable.scrollTop = scrollable.scrollHeight;
}
"""


@dataclasses.dataclass(frozen=True)
class FolderItem:
    id: str
    name: str
    kind: str
    attrs: dict[str, Any]


def item_name(attrs: dict[str, Any]) -> str:
    """Display name: tooltip, then accessible name, then short row text."""
    for field in ("tooltip", "aria_label", "text"):
        value = normalize_whitespace(str(attrs.get(field) or ""))
        if value and "http" not in value and len(value) < 200:
            return value
    return f"file-{attrs.get('id', '')}"


def folder_url(folder_id: str) -> str:
    return f"https://drive.google.com/drive/folders/{folder_id}"


class DriveFolderStrategy(SessionStrategy):
    name = "drive_folder"
    enumerates = True

    def __init__(
        self,
        *,
        max_depth: int = DEFAULT_MAX_DEPTH,
        idle_limit: int = DEFAULT_IDLE_LIMIT,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        scroll_delay: float = 2.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.max_depth = max_depth
        self.idle_limit = idle_limit
        self.max_iterations = max_iterations
        self.scroll_delay = scroll_delay

    def can_handle(self, url: str) -> bool:
        return "drive.google.com/drive/folders" in url or "drive.google.com/drive/u/" in url

    async def list_items(self, page: Any, own_id: str | None) -> list[FolderItem]:
        async def snapshot() -> list[dict[str, Any]]:
            return await page.evaluate(_LIST_ITEMS_SCRIPT)

        async def advance() -> None:
            await page.evaluate(_SCROLL_SCRIPT)
            await page.wait_for_timeout(ms(self.scroll_delay))

        outcome = await scroll_until_stable(
            snapshot,
            advance,
            key=lambda attrs: attrs.get("id"),
            idle_limit=self.idle_limit,
            max_iterations=self.max_iterations,
        )
        items = []
        for attrs in outcome.items:
            item_id = str(attrs.get("id") or "")
            if not is_valid_drive_id(item_id) or item_id == own_id:
                continue
            items.append(FolderItem(id=item_id, name=item_name(attrs), kind=classify_item(attrs), attrs=attrs))
        return items

    async def fetch(self, url: str, ctx: DownloadContext) -> list[DownloadResult]:
        page, failure = self.session_or_failure(url, ctx)
        if failure:
            return failure

        results: list[DownloadResult] = []
        visited: set[str] = set()
        try:
            await self._walk(page, url, drive_folder_id(url), "", 0, ctx, results, visited)
        except SESSION_ERRORS as exc:
            logger.warning("Folder enumeration failed for %s: %s", url, exc)
            results.append(DownloadResult.failed(url, describe_session_error(exc)))
            return results

        if not results:
            return [DownloadResult.failed(url, EMPTY_FOLDER_ERROR)]
        return results

    async def _walk(
        self,
        page: Any,
        url: str,
        own_id: str | None,
        rel_path: str,
        depth: int,
        ctx: DownloadContext,
        results: list[DownloadResult],
        visited: set[str],
    ) -> None:
        if own_id:
            visited.add(own_id)
        await self.navigate(page, url)
        items = await self.list_items(page, own_id)
        logger.info("Folder %s: %s items at depth %s", rel_path or "/", len(items), depth)

        subfolders: list[FolderItem] = []
        for item in items:
            if item.kind == ITEM_FOLDER:
                subfolders.append(item)
                continue
            results.append(await self._fetch_leaf(page, item, rel_path, len(results), ctx))

        for folder in subfolders:
            if folder.id in visited:
                continue
            if depth >= self.max_depth:
                logger.info("Skipping nested folder %s beyond depth %s", folder.name, self.max_depth)
                continue
            child_path = f"{rel_path}/{sanitize_filename(folder.name, 100)}".lstrip("/")
            await self._walk(
                page, folder_url(folder.id), folder.id, child_path, depth + 1, ctx, results, visited
            )

    async def _fetch_leaf(
        self, page: Any, item: FolderItem, rel_path: str, position: int, ctx: DownloadContext
    ) -> DownloadResult:
        leaf_url = f"https://drive.google.com/file/d/{item.id}/view"
        stem, name_ext = split_extension(item.name)
        base = ctx.claim_name(
            f"{timestamp_prefix(ctx.posted_at)}-drive-{position + 1}-{safe_filename(stem or item.name)}"
        )
        temp_path = Path(ctx.output_dir) / f"{base}.tmp"
        try:
            content_type, size = await self.save_via_session(page, drive_content_url(item.id), temp_path)
        except SESSION_ERRORS as exc:
            temp_path.unlink(missing_ok=True)
            return DownloadResult.failed(
                leaf_url,
                describe_session_error(exc),
                source_name=item.name,
                source_folder=rel_path or None,
            )

        extension = name_ext or extension_for_content_type(content_type)
        dest_dir = target_dir(ctx.output_dir, extension)
        if rel_path:
            dest_dir = dest_dir / rel_path
            dest_dir.mkdir(parents=True, exist_ok=True)
        dest = dest_dir / f"{base}.{extension}"
        temp_path.replace(dest)
        return DownloadResult.success(
            leaf_url,
            dest,
            size=size,
            content_type=content_type or None,
            source_name=item.name,
            source_folder=rel_path or None,
        )
