"""Durable per-collection processing state.

One JSON document per collection records every post (unit) the pipeline has
touched and every avatar it has fetched. The file is rewritten atomically
after each unit so an interrupted run resumes where it stopped.

Usage:
    store = ManifestStore(Path("_manifests"))
    manifest = store.load("Sala 5A")
    if not is_complete(manifest, post_id):
        ...
        upsert_post(manifest, post_id, status=STATUS_COMPLETE, output_path=str(path))
        store.save("Sala 5A", manifest)
"""

from __future__ import annotations

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any

from backup_core.exceptions import ManifestCorruptError
from backup_core.utils.io import write_json
from backup_core.utils.logging import utc_now
from backup_core.utils.paths import sanitize_filename

logger = logging.getLogger(__name__)

MANIFEST_VERSION = "1.1.0"

STATUS_PROCESSING = "processing"
STATUS_COMPLETE = "complete"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"

POST_STATUSES = frozenset({STATUS_PROCESSING, STATUS_COMPLETE, STATUS_PARTIAL, STATUS_FAILED})
AVATAR_STATUSES = frozenset({STATUS_COMPLETE, STATUS_FAILED})


@dataclasses.dataclass
class ManifestMetadata:
    group_name: str
    created_at: str
    last_run: str | None = None
    total_posts: int = 0
    version: str = MANIFEST_VERSION


@dataclasses.dataclass
class PostRecord:
    title: str = ""
    url: str = ""
    first_downloaded: str = ""
    last_updated: str = ""
    output_path: str | None = None
    images_count: int = 0
    videos_count: int = 0
    external_links_count: int = 0
    failed_count: int = 0
    unfetchable_count: int = 0
    status: str = STATUS_PROCESSING
    error: str | None = None


@dataclasses.dataclass
class AvatarRecord:
    author: str
    url: str
    filename: str
    downloaded_at: str
    status: str
    error: str | None = None


@dataclasses.dataclass
class Manifest:
    metadata: ManifestMetadata
    posts: dict[str, PostRecord] = dataclasses.field(default_factory=dict)
    avatars: dict[str, AvatarRecord] = dataclasses.field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def empty(cls, group_name: str) -> Manifest:
        return cls(metadata=ManifestMetadata(group_name=group_name, created_at=utc_now()))

    @classmethod
    def from_dict(cls, data: Any, *, source: str = "<manifest>") -> Manifest:
        """Rebuild a manifest from parsed JSON, rejecting anything structurally off."""
        if not isinstance(data, dict):
            raise ManifestCorruptError(
                f"Manifest {source} is not a JSON object",
                path=source,
            )
        meta = data.get("metadata")
        posts = data.get("posts", {})
        avatars = data.get("avatars") or {}
        if not isinstance(meta, dict) or not isinstance(posts, dict) or not isinstance(avatars, dict):
            raise ManifestCorruptError(
                f"Manifest {source} is missing metadata/posts/avatars sections",
                path=source,
            )
        try:
            metadata = ManifestMetadata(
                group_name=str(meta.get("group_name") or ""),
                created_at=str(meta.get("created_at") or utc_now()),
                last_run=meta.get("last_run"),
                total_posts=int(meta.get("total_posts") or 0),
                version=str(meta.get("version") or MANIFEST_VERSION),
            )
            post_records = {str(pid): _post_from_dict(raw) for pid, raw in posts.items()}
            avatar_records = {str(name): _avatar_from_dict(name, raw) for name, raw in avatars.items()}
        except (TypeError, ValueError) as exc:
            raise ManifestCorruptError(
                f"Manifest {source} has a malformed record: {exc}",
                path=source,
                error=str(exc),
            ) from exc
        return cls(metadata=metadata, posts=post_records, avatars=avatar_records)


_POST_FIELDS = {f.name for f in dataclasses.fields(PostRecord)}
_POST_COUNT_FIELDS = (
    "images_count",
    "videos_count",
    "external_links_count",
    "failed_count",
    "unfetchable_count",
)
_POST_TEXT_FIELDS = ("title", "url", "first_downloaded", "last_updated", "status")
_POST_OPTIONAL_TEXT_FIELDS = ("output_path", "error")


def _check_post_types(values: dict[str, Any]) -> None:
    for key in _POST_COUNT_FIELDS:
        value = values.get(key, 0)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(f"{key} must be a non-negative integer, got {value!r}")
    for key in _POST_TEXT_FIELDS:
        if not isinstance(values.get(key, ""), str):
            raise ValueError(f"{key} must be a string, got {values[key]!r}")
    for key in _POST_OPTIONAL_TEXT_FIELDS:
        value = values.get(key)
        if value is not None and not isinstance(value, str):
            raise ValueError(f"{key} must be a string or null, got {value!r}")


def _post_from_dict(raw: Any) -> PostRecord:
    if not isinstance(raw, dict):
        raise ValueError(f"post record must be an object, got {type(raw).__name__}")
    values = {key: raw[key] for key in _POST_FIELDS if key in raw}
    # Manifests written by older releases called the rendered artifact markdown_path
    if "output_path" not in values and raw.get("markdown_path"):
        values["output_path"] = raw["markdown_path"]
    _check_post_types(values)
    record = PostRecord(**values)
    if record.status not in POST_STATUSES:
        raise ValueError(f"unknown post status {record.status!r}")
    return record


def _avatar_from_dict(name: str, raw: Any) -> AvatarRecord:
    if not isinstance(raw, dict):
        raise ValueError(f"avatar record must be an object, got {type(raw).__name__}")
    record = AvatarRecord(
        author=str(raw.get("author") or name),
        url=str(raw.get("url") or ""),
        filename=str(raw.get("filename") or ""),
        downloaded_at=str(raw.get("downloaded_at") or ""),
        status=str(raw.get("status") or ""),
        error=raw.get("error"),
    )
    if record.status not in AVATAR_STATUSES:
        raise ValueError(f"unknown avatar status {record.status!r}")
    return record


def manifest_slug(collection_id: str) -> str:
    return sanitize_filename(collection_id).lower().replace(" ", "-")


class ManifestStore:
    """Loads and saves one manifest file per collection under ``root``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, collection_id: str) -> Path:
        return self.root / f"manifest-{manifest_slug(collection_id)}.json"

    def exists(self, collection_id: str) -> bool:
        return self.path_for(collection_id).exists()

    def load(self, collection_id: str) -> Manifest:
        path = self.path_for(collection_id)
        if not path.exists():
            logger.info("No manifest for %s yet, starting fresh", collection_id)
            return Manifest.empty(collection_id)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError, OSError) as exc:
            raise ManifestCorruptError(
                f"Manifest {path} is not readable JSON: {exc}",
                path=str(path),
                collection=collection_id,
                error=str(exc),
            ) from exc
        manifest = Manifest.from_dict(data, source=str(path))
        if not manifest.metadata.group_name:
            manifest.metadata.group_name = collection_id
        return manifest

    def save(self, collection_id: str, manifest: Manifest) -> Path:
        manifest.metadata.last_run = utc_now()
        manifest.metadata.total_posts = len(manifest.posts)
        path = self.path_for(collection_id)
        write_json(path, manifest.to_dict())
        return path


def is_complete(manifest: Manifest, post_id: str) -> bool:
    record = manifest.posts.get(post_id)
    return record is not None and record.status == STATUS_COMPLETE


def upsert_post(manifest: Manifest, post_id: str, **fields: Any) -> PostRecord:
    """Merge ``fields`` into the post record, creating it on first sight.

    ``first_downloaded`` is set once and never overwritten; ``last_updated``
    is refreshed on every call.
    """
    unknown = set(fields) - _POST_FIELDS
    if unknown:
        raise ValueError(f"Unknown post fields: {sorted(unknown)}")
    if "status" in fields and fields["status"] not in POST_STATUSES:
        raise ValueError(f"Unknown post status: {fields['status']!r}")

    now = utc_now()
    record = manifest.posts.get(post_id)
    if record is None:
        record = PostRecord(first_downloaded=now)
        manifest.posts[post_id] = record
    for key, value in fields.items():
        if key == "first_downloaded":
            continue
        setattr(record, key, value)
    if not record.first_downloaded:
        record.first_downloaded = now
    record.last_updated = now
    manifest.metadata.total_posts = len(manifest.posts)
    return record


def mark_processing(manifest: Manifest, post_id: str, *, title: str = "", url: str = "") -> PostRecord:
    fields: dict[str, Any] = {"status": STATUS_PROCESSING}
    if title:
        fields["title"] = title
    if url:
        fields["url"] = url
    return upsert_post(manifest, post_id, **fields)


def has_avatar(manifest: Manifest, name: str) -> bool:
    record = manifest.avatars.get(name)
    return record is not None and record.status == STATUS_COMPLETE


def upsert_avatar(
    manifest: Manifest,
    name: str,
    *,
    url: str,
    filename: str,
    status: str,
    error: str | None = None,
) -> AvatarRecord:
    if status not in AVATAR_STATUSES:
        raise ValueError(f"Unknown avatar status: {status!r}")
    record = AvatarRecord(
        author=name,
        url=url,
        filename=filename,
        downloaded_at=utc_now(),
        status=status,
        error=error,
    )
    manifest.avatars[name] = record
    return record


def manifest_stats(manifest: Manifest) -> dict[str, int]:
    statuses = [record.status for record in manifest.posts.values()]
    return {
        "total": len(statuses),
        "complete": statuses.count(STATUS_COMPLETE),
        "partial": statuses.count(STATUS_PARTIAL),
        "failed": statuses.count(STATUS_FAILED),
        "processing": statuses.count(STATUS_PROCESSING),
        "avatars": len(manifest.avatars),
        "avatars_failed": sum(1 for a in manifest.avatars.values() if a.status == STATUS_FAILED),
    }


def failed_posts(manifest: Manifest, *, include_partial: bool = False) -> list[str]:
    wanted = {STATUS_FAILED, STATUS_PARTIAL} if include_partial else {STATUS_FAILED}
    return [pid for pid, record in manifest.posts.items() if record.status in wanted]


def failed_avatars(manifest: Manifest) -> list[AvatarRecord]:
    return [record for record in manifest.avatars.values() if record.status == STATUS_FAILED]
