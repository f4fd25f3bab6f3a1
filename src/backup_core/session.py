"""Authenticated browser session shared by the session strategies.

One Chromium page is opened per run and reused for every Drive and Photos
link; login state comes from a Playwright ``storage_state`` file produced by
a prior interactive login.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from backup_core.config import BrowserConfig
from backup_core.exceptions import SessionUnavailableError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_browser_session(config: BrowserConfig) -> AsyncIterator[Any]:
    """Yield a logged-in page; the browser is closed on exit."""
    storage_state = config.storage_state
    if storage_state is not None and not storage_state.exists():
        raise SessionUnavailableError(
            f"Browser storage state {storage_state} does not exist",
            storage_state=str(storage_state),
        )

    async with async_playwright() as playwright:
        try:
            browser = await playwright.chromium.launch(headless=config.headless)
        except PlaywrightError as exc:
            raise SessionUnavailableError(
                f"Could not launch Chromium: {exc}", headless=config.headless
            ) from exc
        try:
            context_kwargs: dict[str, Any] = {"accept_downloads": True}
            if storage_state is not None:
                context_kwargs["storage_state"] = str(storage_state)
            if config.user_agent:
                context_kwargs["user_agent"] = config.user_agent
            context = await browser.new_context(**context_kwargs)
            page = await context.new_page()
            logger.info("Browser session ready (headless=%s)", config.headless)
            yield page
        finally:
            await browser.close()
