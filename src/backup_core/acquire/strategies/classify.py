"""Heuristics for HTTP 200 responses that are not the content we asked for.

Many shared links answer with an HTML shell: a soft 404, a login wall, or an
app-store landing page. Saving those as "attachments" is worse than
reporting a failure, so small HTML payloads go through ``classify_html``
before they are kept.
"""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup

from backup_core.utils.text import contains_any

logger = logging.getLogger(__name__)

SUSPECT_HTML_MAX_CHARS = 50_000

ERROR_PAGE_PHRASES = (
    "404 not found",
    "403 forbidden",
    "access denied",
    "page not found",
    "error occurred",
    "something went wrong",
    "unauthorized access",
    "permission denied",
    "file not found",
    "content not available",
)

APP_PAGE_PHRASES = (
    "apple.com/itunes",
    "apps.apple.com",
    "play.google.com",
    "app store",
    "google play",
    "download the app",
    "get it on",
    "available on the",
    "react-root",
    "ng-app",
    "vue-app",
    "data-reactroot",
)


def classify_html(html: str) -> str | None:
    """Return a rejection reason, or ``None`` when the page looks like real content.

    Large documents are always kept; the heuristics only apply to payloads
    under ``SUSPECT_HTML_MAX_CHARS`` characters.
    """
    if len(html) >= SUSPECT_HTML_MAX_CHARS:
        return None

    hits = contains_any(html, ERROR_PAGE_PHRASES)
    if hits:
        return f"error page ({hits[0]})"

    hits = contains_any(html, APP_PAGE_PHRASES)
    if hits:
        return f"web app or store page ({hits[0]})"

    soup = BeautifulSoup(html, "html.parser")
    paragraphs = len(soup.find_all("p"))
    articles = len(soup.find_all("article"))
    navs = len(soup.find_all("nav"))
    if paragraphs < 3 and articles == 0 and navs > 0:
        return "navigation shell without content"
    return None
