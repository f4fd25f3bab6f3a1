from __future__ import annotations

import re


def normalize_whitespace(text: str) -> str:
    """Collapse all whitespace to single spaces and strip."""
    return re.sub(r"\s+", " ", (text or "")).strip()


def lower(text: str) -> str:
    """Lowercase string, handling None."""
    return (text or "").lower()


def contains_any(haystack: str, needles: list[str] | tuple[str, ...]) -> list[str]:
    """Return list of needles found in haystack (case-insensitive)."""
    h = lower(haystack)
    return [n for n in needles if n and lower(n) in h]


def format_bytes(size: int | None) -> str:
    if size is None:
        return "?"
    value = float(size)
    if value < 1024:
        return f"{size} B"
    for unit in ("KB", "MB"):
        value /= 1024
        if value < 1024:
            return f"{value:.1f} {unit}"
    return f"{value / 1024:.1f} GB"
