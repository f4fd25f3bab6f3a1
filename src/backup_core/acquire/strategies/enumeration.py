"""Progressive discovery of lazily-rendered container listings.

Folder views and albums only render what is on screen. ``scroll_until_stable``
keeps advancing the view and re-reading the item list until nothing new has
appeared for ``idle_limit`` consecutive iterations (or ``max_iterations`` is
hit), then returns every distinct item in discovery order.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from collections.abc import Awaitable, Callable, Hashable, Iterable, Mapping
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_IDLE_LIMIT = 25
DEFAULT_MAX_ITERATIONS = 1000

ITEM_FOLDER = "folder"
ITEM_FILE = "file"

FOLDER_MIME = "application/vnd.google-apps.folder"
_FOLDER_WORDS = ("folder", "carpeta", "pasta", "dossier")
_FILE_NAME_RE = re.compile(r"\.[A-Za-z0-9]{2,5}$")


@dataclasses.dataclass
class ScrollOutcome(Generic[T]):
    items: list[T]
    iterations: int
    exhausted: bool
    """True when ``max_iterations`` stopped the loop before the listing went quiet."""


async def scroll_until_stable(
    snapshot: Callable[[], Awaitable[Iterable[T]]],
    advance: Callable[[], Awaitable[None]],
    *,
    key: Callable[[T], Hashable] | None = None,
    idle_limit: int = DEFAULT_IDLE_LIMIT,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> ScrollOutcome[T]:
    seen: dict[Hashable, T] = {}

    def absorb(items: Iterable[T]) -> int:
        added = 0
        for item in items:
            item_key = key(item) if key is not None else item
            if item_key not in seen:
                seen[item_key] = item
                added += 1
        return added

    absorb(await snapshot())
    iterations = 0
    idle = 0
    while idle < idle_limit and iterations < max_iterations:
        await advance()
        iterations += 1
        if absorb(await snapshot()):
            idle = 0
        else:
            idle += 1

    exhausted = idle < idle_limit
    if exhausted:
        logger.warning("Stopped scrolling after %s iterations with items still appearing", iterations)
    logger.debug("Scroll finished: %s items in %s iterations", len(seen), iterations)
    return ScrollOutcome(items=list(seen.values()), iterations=iterations, exhausted=exhausted)


def classify_item(attrs: Mapping[str, Any]) -> str:
    """Decide whether a listing entry is a nested folder or a leaf file.

    Combines several weak signals; no single attribute is trusted on its own
    because the listing markup changes without notice.
    """
    score = 0

    explicit = str(attrs.get("type") or "").lower()
    if explicit:
        score += 3 if "folder" in explicit else -3

    mime = str(attrs.get("mime") or "").lower()
    if mime == FOLDER_MIME:
        score += 3
    elif mime:
        score -= 2

    href = str(attrs.get("href") or "")
    if "/drive/folders/" in href:
        score += 2
    elif "/file/d/" in href:
        score -= 2

    label = " ".join(
        str(attrs.get(field) or "") for field in ("aria_label", "tooltip")
    ).lower()
    if any(word in label for word in _FOLDER_WORDS):
        score += 1

    if attrs.get("has_folder_icon"):
        score += 1

    name = str(attrs.get("name") or "")
    if _FILE_NAME_RE.search(name):
        score -= 1

    return ITEM_FOLDER if score > 0 else ITEM_FILE
