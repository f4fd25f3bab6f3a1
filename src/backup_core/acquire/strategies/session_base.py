"""Shared plumbing for strategies that drive the authenticated browser page.

All session strategies share one Playwright page handed in through
``DownloadContext.session``; the orchestrator runs them one at a time.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import re
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from backup_core.acquire.context import DownloadContext
from backup_core.acquire.strategies.base import AcquisitionStrategy
from backup_core.network_utils import RETRYABLE_STATUS_CODES, RetryPolicy, with_retries
from backup_core.result import DownloadResult
from backup_core.utils.paths import ensure_dir

logger = logging.getLogger(__name__)

SESSION_PRIORITY = 10
DRIVE_CONTENT_URL = "https://drive.usercontent.google.com/download?id={file_id}&export=download&authuser=0&confirm=t"

_DRIVE_ID_RE = re.compile(r"/d/([^/?#]+)")
_DRIVE_FOLDER_ID_RE = re.compile(r"/folders/([^/?#]+)")
VALID_DRIVE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{10,50}$")


@dataclasses.dataclass(frozen=True)
class SessionTimeouts:
    """Seconds; Playwright takes milliseconds, see ``ms()``."""

    navigation: float = 60.0
    settle: float = 2.0
    leaf: float = 90.0
    interstitial: float = 10.0


def ms(seconds: float) -> float:
    return seconds * 1000


class SessionFetchError(Exception):
    """Non-2xx answer from the page's authenticated request context."""

    def __init__(self, status: int, status_text: str = "") -> None:
        super().__init__(f"HTTP {status}: {status_text}".rstrip(": "))
        self.status = status


def is_transient_session_error(exc: BaseException) -> bool:
    if isinstance(exc, SessionFetchError):
        return exc.status in RETRYABLE_STATUS_CODES or exc.status >= 500
    return isinstance(exc, (PlaywrightTimeoutError, asyncio.TimeoutError))


def drive_file_id(url: str) -> str | None:
    match = _DRIVE_ID_RE.search(url)
    return match.group(1) if match else None


def drive_folder_id(url: str) -> str | None:
    match = _DRIVE_FOLDER_ID_RE.search(url)
    return match.group(1) if match else None


def is_valid_drive_id(item_id: str) -> bool:
    return bool(VALID_DRIVE_ID_RE.match(item_id)) and not item_id.startswith(("_", "-"))


def drive_content_url(file_id: str) -> str:
    return DRIVE_CONTENT_URL.format(file_id=file_id)


class SessionStrategy(AcquisitionStrategy):
    requires_session = True

    def __init__(
        self,
        *,
        timeouts: SessionTimeouts | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.timeouts = timeouts or SessionTimeouts()
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    def priority(self) -> int:
        return SESSION_PRIORITY

    def session_or_failure(self, url: str, ctx: DownloadContext) -> tuple[Any, list[DownloadResult]]:
        if ctx.session is None:
            return None, [DownloadResult.failed(url, f"No browser session available for {self.name}")]
        return ctx.session, []

    async def navigate(self, page: Any, url: str) -> None:
        await page.goto(url, wait_until="networkidle", timeout=ms(self.timeouts.navigation))
        if self.timeouts.settle:
            await page.wait_for_timeout(ms(self.timeouts.settle))

    async def save_via_session(self, page: Any, url: str, dest: Path) -> tuple[str, int]:
        """GET ``url`` with the page's cookies and write the body to ``dest``.

        Returns (content_type, bytes_written). Transient failures are retried
        under ``retry_policy``.
        """

        async def attempt() -> tuple[str, bytes]:
            response = await page.request.get(url, timeout=ms(self.timeouts.leaf))
            if not response.ok:
                raise SessionFetchError(response.status, response.status_text)
            body = await response.body()
            return response.headers.get("content-type", ""), body

        content_type, body = await with_retries(
            attempt,
            self.retry_policy,
            retry_on=is_transient_session_error,
            sleep=self._sleep,
        )
        ensure_dir(dest.parent)
        dest.write_bytes(body)
        return content_type, len(body)


def describe_session_error(exc: BaseException) -> str:
    if isinstance(exc, PlaywrightTimeoutError):
        return f"browser timed out: {exc}"
    if isinstance(exc, PlaywrightError):
        return f"browser error: {exc}"
    return str(exc) or type(exc).__name__


SESSION_ERRORS = (PlaywrightError, SessionFetchError, asyncio.TimeoutError, OSError)
