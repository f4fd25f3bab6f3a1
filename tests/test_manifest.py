"""Tests for backup_core.manifest module."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from backup_core.exceptions import ManifestCorruptError
from backup_core.manifest import (
    MANIFEST_VERSION,
    STATUS_COMPLETE,
    STATUS_FAILED,
    STATUS_PARTIAL,
    STATUS_PROCESSING,
    Manifest,
    ManifestStore,
    failed_avatars,
    failed_posts,
    has_avatar,
    is_complete,
    manifest_stats,
    mark_processing,
    upsert_avatar,
    upsert_post,
)


class TestManifestStore:
    """Tests for loading and saving manifests."""

    def test_missing_file_yields_empty_manifest(self, manifest_store: ManifestStore) -> None:
        """A collection never seen before starts with an empty manifest."""
        manifest = manifest_store.load("Mi Grupo")
        assert manifest.posts == {}
        assert manifest.avatars == {}
        assert manifest.metadata.group_name == "Mi Grupo"
        assert manifest.metadata.version == MANIFEST_VERSION

    def test_path_is_per_collection(self, manifest_store: ManifestStore) -> None:
        """Each collection gets its own manifest file."""
        assert manifest_store.path_for("Mi Grupo").name == "manifest-mi-grupo.json"
        assert manifest_store.path_for("Mi Grupo") != manifest_store.path_for("Otro")

    def test_save_then_load_round_trips(self, manifest_store: ManifestStore) -> None:
        """Saved manifests load back structurally equal."""
        manifest = manifest_store.load("group")
        upsert_post(manifest, "p1", title="Hola", url="https://x/p1", status=STATUS_COMPLETE, images_count=2)
        upsert_avatar(manifest, "Ana", url="https://x/a.png", filename="ana.png", status=STATUS_COMPLETE)
        path = manifest_store.save("group", manifest)

        assert path.exists()
        loaded = manifest_store.load("group")
        assert loaded.to_dict() == manifest.to_dict()
        assert loaded.metadata.total_posts == 1
        assert loaded.metadata.last_run is not None

    def test_saved_file_is_indented_json(self, manifest_store: ManifestStore) -> None:
        """The file stays hand-editable."""
        manifest = manifest_store.load("group")
        path = manifest_store.save("group", manifest)
        text = path.read_text(encoding="utf-8")
        assert text.startswith("{\n  ")
        assert set(json.loads(text)) == {"metadata", "posts", "avatars"}

    def test_invalid_json_raises_corrupt(self, manifest_store: ManifestStore) -> None:
        """A truncated manifest is reported, never silently reset."""
        path = manifest_store.path_for("group")
        path.parent.mkdir(parents=True)
        path.write_text('{"metadata": {', encoding="utf-8")

        with pytest.raises(ManifestCorruptError) as excinfo:
            manifest_store.load("group")
        assert excinfo.value.code == "manifest_corrupt"
        assert excinfo.value.path == str(path)
        assert excinfo.value.context["path"] == str(path)
        assert path.read_text(encoding="utf-8") == '{"metadata": {'

    def test_wrong_shape_raises_corrupt(self, manifest_store: ManifestStore) -> None:
        """A JSON list is not a manifest."""
        path = manifest_store.path_for("group")
        path.parent.mkdir(parents=True)
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(ManifestCorruptError):
            manifest_store.load("group")

    def test_unknown_status_raises_corrupt(self, manifest_store: ManifestStore) -> None:
        """Hand edits that introduce an unknown status are rejected."""
        path = manifest_store.path_for("group")
        path.parent.mkdir(parents=True)
        path.write_text(
            json.dumps({"metadata": {"group_name": "group"}, "posts": {"p1": {"status": "done"}}}),
            encoding="utf-8",
        )
        with pytest.raises(ManifestCorruptError):
            manifest_store.load("group")

    def test_undecodable_bytes_raise_corrupt(self, manifest_store: ManifestStore) -> None:
        """A manifest that is not UTF-8 fails the collection instead of crashing the run."""
        path = manifest_store.path_for("group")
        path.parent.mkdir(parents=True)
        raw = b'{"metadata": {"group_name": "\xff\xfe"}}'
        path.write_bytes(raw)

        with pytest.raises(ManifestCorruptError) as excinfo:
            manifest_store.load("group")
        assert excinfo.value.path == str(path)
        assert path.read_bytes() == raw

    @pytest.mark.parametrize(
        "record",
        [
            {"status": "complete", "images_count": "x"},
            {"status": "complete", "failed_count": -1},
            {"status": "complete", "videos_count": True},
            {"status": "complete", "output_path": 12},
            {"status": "complete", "title": ["a"]},
        ],
    )
    def test_mistyped_post_fields_raise_corrupt(self, manifest_store: ManifestStore, record: dict) -> None:
        path = manifest_store.path_for("group")
        path.parent.mkdir(parents=True)
        path.write_text(
            json.dumps({"metadata": {"group_name": "group"}, "posts": {"p1": record}}),
            encoding="utf-8",
        )
        with pytest.raises(ManifestCorruptError, match="malformed record"):
            manifest_store.load("group")

    def test_legacy_markdown_path_is_accepted(self, manifest_store: ManifestStore) -> None:
        """Older manifests stored the output under ``markdown_path``."""
        path = manifest_store.path_for("group")
        path.parent.mkdir(parents=True)
        path.write_text(
            json.dumps(
                {
                    "metadata": {"group_name": "group", "created_at": "2025-01-01T00:00:00Z"},
                    "posts": {"p1": {"status": "complete", "markdown_path": "/out/p1.md"}},
                }
            ),
            encoding="utf-8",
        )
        manifest = manifest_store.load("group")
        assert manifest.posts["p1"].output_path == "/out/p1.md"


class TestUpsertPost:
    """Tests for post record updates."""

    def test_first_downloaded_is_preserved(self) -> None:
        """A second upsert keeps first_downloaded and refreshes last_updated."""
        manifest = Manifest.empty("group")
        first = upsert_post(manifest, "p1", title="A", status=STATUS_PARTIAL)
        first.first_downloaded = "2025-01-01T00:00:00Z"
        first.last_updated = "2025-01-01T00:00:00Z"

        second = upsert_post(manifest, "p1", status=STATUS_COMPLETE, first_downloaded="ignored")

        assert second is first
        assert second.first_downloaded == "2025-01-01T00:00:00Z"
        assert second.last_updated != "2025-01-01T00:00:00Z"
        assert second.title == "A"
        assert second.status == STATUS_COMPLETE

    def test_unknown_field_rejected(self) -> None:
        manifest = Manifest.empty("group")
        with pytest.raises(ValueError, match="Unknown post fields"):
            upsert_post(manifest, "p1", colour="red")

    def test_unknown_status_rejected(self) -> None:
        manifest = Manifest.empty("group")
        with pytest.raises(ValueError, match="Unknown post status"):
            upsert_post(manifest, "p1", status="done")

    def test_mark_processing(self) -> None:
        """Processing demotes a complete record until the unit is re-finished."""
        manifest = Manifest.empty("group")
        upsert_post(manifest, "p1", status=STATUS_COMPLETE)
        assert is_complete(manifest, "p1")

        record = mark_processing(manifest, "p1", title="T", url="https://x")
        assert record.status == STATUS_PROCESSING
        assert not is_complete(manifest, "p1")
        assert record.title == "T"


class TestAvatarsAndStats:
    """Tests for avatar records and summary helpers."""

    def test_has_avatar_only_for_complete(self) -> None:
        """A failed avatar is retried on the next run."""
        manifest = Manifest.empty("group")
        upsert_avatar(manifest, "Ana", url="u", filename="ana.jpg", status=STATUS_COMPLETE)
        upsert_avatar(manifest, "Luis", url="u2", filename="luis.jpg", status=STATUS_FAILED, error="HTTP 404")

        assert has_avatar(manifest, "Ana")
        assert not has_avatar(manifest, "Luis")
        assert not has_avatar(manifest, "Nobody")
        assert [record.author for record in failed_avatars(manifest)] == ["Luis"]

    def test_avatar_status_validated(self) -> None:
        manifest = Manifest.empty("group")
        with pytest.raises(ValueError):
            upsert_avatar(manifest, "Ana", url="u", filename="a.jpg", status=STATUS_PARTIAL)

    def test_stats_and_failed_posts(self) -> None:
        manifest = Manifest.empty("group")
        upsert_post(manifest, "a", status=STATUS_COMPLETE)
        upsert_post(manifest, "b", status=STATUS_PARTIAL)
        upsert_post(manifest, "c", status=STATUS_FAILED, error="boom")
        mark_processing(manifest, "d")

        stats = manifest_stats(manifest)
        assert stats["total"] == 4
        assert stats["complete"] == 1
        assert stats["partial"] == 1
        assert stats["failed"] == 1
        assert stats["processing"] == 1
        assert failed_posts(manifest) == ["c"]
        assert failed_posts(manifest, include_partial=True) == ["b", "c"]


def test_manifest_file_lives_under_root(tmp_path: Path) -> None:
    store = ManifestStore(tmp_path / "m")
    store.save("group", Manifest.empty("group"))
    assert store.exists("group")
    assert (tmp_path / "m" / "manifest-group.json").is_file()
