"""Direct-fetch acquisition strategy.

Streams a URL straight to disk with aiohttp. The final extension comes from
the declared Content-Type, the file is routed to Images/Videos/Files by that
extension, and small HTML payloads are screened by ``classify_html`` so error
pages are reported as failures instead of being archived.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from pathlib import Path
from urllib.parse import unquote, urlparse

import aiohttp

from backup_core.acquire.context import LINK_KIND_MEDIA, DownloadContext
from backup_core.acquire.strategies.base import AcquisitionStrategy
from backup_core.acquire.strategies.classify import SUSPECT_HTML_MAX_CHARS, classify_html
from backup_core.acquire.strategies.content_types import extension_for_content_type
from backup_core.layout import target_dir
from backup_core.network_utils import RetryPolicy, is_transient_http_error, with_retries
from backup_core.result import DownloadResult
from backup_core.utils.dates import timestamp_prefix
from backup_core.utils.paths import ensure_dir, sanitize_filename, split_extension, strip_extension
from backup_core.utils.text import format_bytes

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 40.0
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
CHUNK_SIZE = 64 * 1024

# Containers handled by enumeration strategies; never fetched as a single file
CONTAINER_MARKERS = (
    "photos.app.goo.gl",
    "photos.google.com/share",
    "drive.google.com/drive/folders",
    "drive.google.com/drive/u/",
)

NON_FETCHABLE_SCHEMES = ("mailto:", "tel:", "javascript:", "data:")

NON_FETCHABLE_MARKERS = (
    # video streaming
    "youtube.com/watch",
    "youtube.com/live",
    "youtu.be/",
    # interactive apps and forms
    "padlet.com/",
    "forms.google.com/",
    "docs.google.com/forms/",
    "forms.gle/",
    # meetings
    "zoom.us/",
    "meet.google.com/",
    # maps
    "google.com/maps",
    # app stores
    "play.google.com",
    "apps.apple.com",
    "itunes.apple.com",
    "apps.microsoft.com",
    "chrome.google.com/webstore",
    # e-commerce
    "mercadolibre.com",
    "ebay.com/itm/",
    # social posts
    "facebook.com",
    "instagram.com/p/",
    "twitter.com",
    "linkedin.com/posts/",
    # link shorteners and hubs
    "linktr.ee/",
    "bit.ly/",
)

_AMAZON_PRODUCT_RE = re.compile(r"amazon\.[a-z.]+/.*/dp/")
_DOMAIN_ROOT_RE = re.compile(r"\.(com|ar|edu|org|net)/?$")


def is_container_url(url: str) -> bool:
    return any(marker in url for marker in CONTAINER_MARKERS)


def can_fetch_as_file(url: str) -> bool:
    """True when nothing about ``url`` rules out a plain GET; containers included."""
    return non_fetchable_reason(url) is None


def non_fetchable_reason(url: str) -> str | None:
    """Return why ``url`` should never be downloaded, or ``None`` if it may be."""
    lowered = url.strip().lower()
    if lowered.startswith(NON_FETCHABLE_SCHEMES):
        return "non-http scheme"
    if not lowered.startswith(("http://", "https://")):
        return "not an http(s) URL"
    for marker in NON_FETCHABLE_MARKERS:
        if marker in lowered:
            return f"web page ({marker})"
    if _AMAZON_PRODUCT_RE.search(lowered):
        return "web page (product listing)"
    if _DOMAIN_ROOT_RE.search(lowered):
        return "web page (site root)"
    return None


async def download_to_path(
    url: str,
    path: Path,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    user_agent: str | None = DEFAULT_USER_AGENT,
) -> tuple[str, int]:
    """Stream ``url`` into ``path``; returns (content_type, bytes_written).

    Raises ``aiohttp.ClientResponseError`` on non-2xx responses.
    """
    ensure_dir(path.parent)
    headers = {"User-Agent": user_agent} if user_agent else {}
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    size = 0
    async with aiohttp.ClientSession(timeout=client_timeout, headers=headers) as session:
        async with session.get(url, allow_redirects=True) as response:
            response.raise_for_status()
            content_type = response.headers.get("Content-Type", "")
            with path.open("wb") as f:
                async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                    f.write(chunk)
                    size += len(chunk)
    return content_type, size


def url_stem(url: str) -> str:
    name = unquote(urlparse(url).path.rstrip("/").rsplit("/", 1)[-1])
    stem, _ext = split_extension(name)
    return sanitize_filename(stem, max_length=100)


class DirectFetchStrategy(AcquisitionStrategy):
    name = "direct"

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        retry_policy: RetryPolicy | None = None,
        user_agent: str | None = DEFAULT_USER_AGENT,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.user_agent = user_agent
        self._sleep = sleep

    def can_handle(self, url: str) -> bool:
        if is_container_url(url):
            return False
        return can_fetch_as_file(url)

    def priority(self) -> int:
        return 0

    def base_name(self, url: str, ctx: DownloadContext) -> str:
        """Filename without extension: ``MM-DD-HH-MM-<label>``."""
        stamp = timestamp_prefix(ctx.posted_at)
        label = sanitize_filename(strip_extension(ctx.display_name or ""))
        if not label and ctx.options.get("kind") == LINK_KIND_MEDIA:
            label = url_stem(url)
        if label:
            return f"{stamp}-{label}"
        return f"{stamp}-external-{ctx.index + 1}"

    async def fetch(self, url: str, ctx: DownloadContext) -> list[DownloadResult]:
        base = ctx.claim_name(self.base_name(url, ctx))
        temp_path = Path(ctx.output_dir) / f"{base}.tmp"

        def log_retry(attempt: int, exc: BaseException) -> None:
            logger.info("Retrying %s after attempt %s: %s", url, attempt, exc)

        try:
            content_type, size = await with_retries(
                lambda: download_to_path(url, temp_path, timeout=self.timeout, user_agent=self.user_agent),
                self.retry_policy,
                retry_on=is_transient_http_error,
                on_retry=log_retry,
                sleep=self._sleep,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            temp_path.unlink(missing_ok=True)
            logger.warning("Direct download failed for %s: %s", url, exc)
            return [DownloadResult.failed(url, _describe_error(exc), source_name=ctx.display_name or None)]

        extension = extension_for_content_type(content_type)
        if extension == "html":
            reason = _screen_html(temp_path, size)
            if reason:
                temp_path.unlink(missing_ok=True)
                logger.warning("Discarding %s: %s", url, reason)
                return [
                    DownloadResult.failed(
                        url,
                        f"Downloaded HTML is not a file attachment: {reason}",
                        content_type=content_type,
                        source_name=ctx.display_name or None,
                    )
                ]

        final_path = target_dir(ctx.output_dir, extension) / f"{base}.{extension}"
        temp_path.replace(final_path)
        logger.info("Downloaded %s (%s, %s)", final_path.name, extension, format_bytes(size))
        return [
            DownloadResult.success(
                url,
                final_path,
                size=size,
                content_type=content_type or None,
                extension=extension,
                source_name=ctx.display_name or None,
            )
        ]


def _screen_html(path: Path, size: int) -> str | None:
    # UTF-8 needs at most 4 bytes per character
    if size >= SUSPECT_HTML_MAX_CHARS * 4:
        return None
    return classify_html(path.read_text(encoding="utf-8", errors="ignore"))


def _describe_error(exc: BaseException) -> str:
    if isinstance(exc, aiohttp.ClientResponseError):
        return f"HTTP {exc.status}: {exc.message}"
    if isinstance(exc, asyncio.TimeoutError):
        return "timed out"
    return str(exc) or type(exc).__name__
