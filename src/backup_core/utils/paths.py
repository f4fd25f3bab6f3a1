from __future__ import annotations

import re
import unicodedata
from pathlib import Path

_FORBIDDEN_CHARS_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def ensure_dir(path: Path) -> None:
    """Create directory and parents if they don't exist."""
    path.mkdir(parents=True, exist_ok=True)


def sanitize_filename(name: str, max_length: int = 200) -> str:
    """Strip characters that are invalid on common filesystems.

    Whitespace runs collapse to a single space; the result is trimmed and
    capped at ``max_length`` characters. Unicode letters are kept.
    """
    cleaned = _FORBIDDEN_CHARS_RE.sub("", name or "")
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned[:max_length]


def safe_filename(s: str, max_length: int = 100) -> str:
    """ASCII-only filename fragment: anything outside ``[A-Za-z0-9.-]`` becomes ``-``."""
    if not s:
        return "file"
    s = unicodedata.normalize("NFKD", s).encode("ascii", "ignore").decode("ascii")
    s = re.sub(r"[^a-zA-Z0-9.-]", "-", s)
    s = re.sub(r"-{2,}", "-", s).strip("-.")
    return s[:max_length] or "file"


def slugify(text: str, max_length: int = 50, fallback: str = "unknown") -> str:
    """Lower-case, dash-separated identifier suitable for file and directory names."""
    s = unicodedata.normalize("NFKD", text or "").encode("ascii", "ignore").decode("ascii")
    s = re.sub(r"[^a-z0-9]+", "-", s.lower()).strip("-")
    return s[:max_length].rstrip("-") or fallback


_EXTENSION_RE = re.compile(r"\.[a-zA-Z0-9]{2,5}$")


def strip_extension(name: str) -> str:
    """Drop a trailing 2-5 character alphanumeric extension, if present."""
    return _EXTENSION_RE.sub("", name)


def split_extension(name: str) -> tuple[str, str]:
    """Return ``(stem, ext)`` where ``ext`` is lower-case without the dot ('' if none)."""
    match = _EXTENSION_RE.search(name)
    if not match:
        return name, ""
    return name[: match.start()], match.group(0)[1:].lower()
