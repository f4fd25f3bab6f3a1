from __future__ import annotations

import dataclasses
from datetime import datetime
from pathlib import Path
from typing import Any

from backup_core.config_validator import validate_config
from backup_core.utils.dates import parse_timestamp
from backup_core.utils.io import iter_jsonl

LINK_SOURCE_CONTENT = "content"
LINK_SOURCE_ATTACHMENT = "attachment"
LINK_KIND_MEDIA = "media"
LINK_KIND_LINK = "link"

UNITS_SCHEMA = "units"


@dataclasses.dataclass(frozen=True)
class CandidateLink:
    """A URL discovered in a unit, with the label the platform showed for it."""

    url: str
    label: str = ""
    source: str = LINK_SOURCE_CONTENT
    kind: str = LINK_KIND_LINK

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | str) -> CandidateLink:
        if isinstance(raw, str):
            return cls(url=raw)
        return cls(
            url=str(raw["url"]),
            label=str(raw.get("label") or raw.get("name") or ""),
            source=str(raw.get("source") or LINK_SOURCE_CONTENT),
            kind=str(raw.get("kind") or LINK_KIND_LINK),
        )


@dataclasses.dataclass
class Unit:
    """One post as handed over by the content extractor."""

    id: str
    title: str = ""
    url: str = ""
    timestamp: str = ""
    author: str = ""
    author_avatar: str | None = None
    content: str = ""
    links: list[CandidateLink] = dataclasses.field(default_factory=list)
    extra: dict[str, Any] = dataclasses.field(default_factory=dict)

    @property
    def posted_at(self) -> datetime:
        return parse_timestamp(self.timestamp)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Unit:
        if not raw.get("id"):
            raise ValueError("unit record is missing 'id'")
        links = [CandidateLink.from_dict(link) for link in raw.get("links") or []]
        # Extractors that split images from links hand them over separately
        links.extend(
            CandidateLink(url=str(url), kind=LINK_KIND_MEDIA) for url in raw.get("images") or []
        )
        known = {"id", "title", "url", "timestamp", "author", "author_avatar", "content", "links", "images"}
        return cls(
            id=str(raw["id"]),
            title=str(raw.get("title") or ""),
            url=str(raw.get("url") or ""),
            timestamp=str(raw.get("timestamp") or ""),
            author=str(raw.get("author") or ""),
            author_avatar=raw.get("author_avatar") or None,
            content=str(raw.get("content") or ""),
            links=links,
            extra={key: value for key, value in raw.items() if key not in known},
        )


@dataclasses.dataclass
class DownloadContext:
    """Per-call context handed to a strategy's ``fetch``.

    ``session`` is the authenticated browser page owned by the caller; it is
    ``None`` when no browser was opened. Strategies must not keep it past the
    call.
    """

    output_dir: Path
    unit: Unit | None = None
    index: int = 0
    session: Any = None
    display_name: str = ""
    options: dict[str, Any] = dataclasses.field(default_factory=dict)
    #: Base filenames already taken in this unit; shared by all of its contexts.
    claimed_names: set[str] = dataclasses.field(default_factory=set)

    @property
    def posted_at(self) -> datetime:
        if self.unit is not None:
            return self.unit.posted_at
        return datetime.now()

    def claim_name(self, base: str) -> str:
        """Reserve ``base`` for this link, appending ``-<index+1>`` when it is taken.

        Must be called before the first ``await`` of a fetch so that concurrent
        links of one unit claim in dispatch order.
        """
        name = base
        if name in self.claimed_names:
            name = f"{base}-{self.index + 1}"
        counter = 2
        while name in self.claimed_names:
            name = f"{base}-{self.index + 1}-{counter}"
            counter += 1
        self.claimed_names.add(name)
        return name


def load_units(path: Path, *, validate: bool = True) -> list[Unit]:
    """Read extractor output (one JSON object per line) into units.

    Each record is checked against ``units.schema.json`` first so a malformed
    extractor dump fails before any download starts.
    """
    units: list[Unit] = []
    for line_no, record in iter_jsonl(path):
        if validate:
            validate_config(record, UNITS_SCHEMA, config_path=f"{path}:{line_no}")
        units.append(Unit.from_dict(record))
    return units
