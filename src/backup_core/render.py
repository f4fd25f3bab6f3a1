"""Minimal unit renderer: one JSON record per post next to its media.

Markdown/HTML rendering lives outside this package; this renderer gives the
pipeline a durable output artifact to anchor resume checks on and lists
every link that could not be archived.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from backup_core.layout import MESSAGES_DIR, unit_media_root
from backup_core.utils.dates import timestamp_prefix
from backup_core.utils.io import write_json
from backup_core.utils.logging import utc_now
from backup_core.utils.paths import slugify

if TYPE_CHECKING:
    from backup_core.acquire.context import Unit
    from backup_core.acquire.orchestrator import UnitOutcome

Renderer = Callable[["Unit", "UnitOutcome"], Path]


def unit_record_path(output_root: Path, collection_id: str, unit: Unit) -> Path:
    moment = unit.posted_at
    name = f"{timestamp_prefix(moment)}-{slugify(unit.title or unit.id, max_length=60, fallback=unit.id)}.json"
    return unit_media_root(output_root, collection_id, moment) / MESSAGES_DIR / name


def build_unit_record(unit: Unit, outcome: UnitOutcome) -> dict[str, Any]:
    def files(results: list) -> list[dict[str, Any]]:
        return [result.to_dict() for result in results]

    return {
        "id": unit.id,
        "title": unit.title,
        "url": unit.url,
        "author": unit.author,
        "timestamp": unit.timestamp,
        "content": unit.content,
        "rendered_at": utc_now(),
        "media": files(outcome.media),
        "gallery": files(outcome.gallery),
        "attachments": files(outcome.attachments),
        "failed": files(outcome.failures),
        "unfetchable": [{"url": link.url, "label": link.label} for link in outcome.unfetchable],
    }


def write_unit_record(output_root: Path, collection_id: str) -> Renderer:
    """Renderer that writes ``Messages/<stamp>-<title>.json`` for every unit."""

    def render(unit: Unit, outcome: UnitOutcome) -> Path:
        path = unit_record_path(output_root, collection_id, unit)
        write_json(path, build_unit_record(unit, outcome))
        return path

    return render
