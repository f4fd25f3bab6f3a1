"""
Shared pytest fixtures for group backup tests.

Provides common fixtures for:
- Units and download contexts
- Manifest stores rooted in tmp_path
- Fake Playwright pages
- Instant sleeps for retry loops
"""

from __future__ import annotations

import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if SRC_ROOT.is_dir():
    sys.path.insert(0, str(SRC_ROOT))


# =============================================================================
# Unit fixtures
# =============================================================================


def make_unit(unit_id: str = "post-1", links: list[Any] | None = None, **fields: Any) -> Any:
    """Build a Unit from plain dicts/strings the way the extractor hands them over."""
    from backup_core.acquire.context import Unit

    raw: dict[str, Any] = {
        "id": unit_id,
        "title": fields.pop("title", f"Post {unit_id}"),
        "url": fields.pop("url", f"https://groups.example.com/c/{unit_id}"),
        "timestamp": fields.pop("timestamp", "27 de noviembre 2025, 09:11"),
        "author": fields.pop("author", "Ana Pérez"),
        "links": links or [],
    }
    raw.update(fields)
    return Unit.from_dict(raw)


@pytest.fixture
def unit_factory() -> Callable[..., Any]:
    return make_unit


@pytest.fixture
def output_root(tmp_path: Path) -> Path:
    root = tmp_path / "backup"
    root.mkdir()
    return root


@pytest.fixture
def manifest_store(tmp_path: Path) -> Any:
    from backup_core.manifest import ManifestStore

    return ManifestStore(tmp_path / "_manifests")


def create_units_jsonl(path: Path, records: list[dict[str, Any]]) -> None:
    """Write extractor output records, one JSON object per line."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        for record in records:
            f.write(json.dumps(record, ensure_ascii=False) + "\n")


@pytest.fixture
def units_jsonl_writer() -> Callable[[Path, list[dict[str, Any]]], None]:
    return create_units_jsonl


# =============================================================================
# Async helpers
# =============================================================================


@pytest.fixture
def no_sleep() -> Any:
    """Awaitable sleep that records requested delays instead of waiting."""

    class RecordingSleep:
        def __init__(self) -> None:
            self.calls: list[float] = []

        async def __call__(self, seconds: float) -> None:
            self.calls.append(seconds)

    return RecordingSleep()


# =============================================================================
# Fake Playwright page
# =============================================================================


def make_response(
    body: bytes = b"%PDF-1.4 test",
    *,
    status: int = 200,
    content_type: str = "application/pdf",
) -> MagicMock:
    response = MagicMock()
    response.ok = 200 <= status < 300
    response.status = status
    response.status_text = "OK" if response.ok else "Error"
    response.headers = {"content-type": content_type}
    response.body = AsyncMock(return_value=body)
    return response


@pytest.fixture
def page_response() -> Callable[..., MagicMock]:
    return make_response


@pytest.fixture
def fake_page() -> MagicMock:
    """A page double covering the calls session strategies make."""
    page = MagicMock()
    page.goto = AsyncMock()
    page.wait_for_timeout = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.hover = AsyncMock()
    page.evaluate = AsyncMock(return_value={})
    page.mouse.wheel = AsyncMock()
    page.request.get = AsyncMock(return_value=make_response())
    return page
