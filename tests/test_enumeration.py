"""Tests for progressive scroll discovery and listing item classification."""

from __future__ import annotations

import asyncio

from backup_core.acquire.strategies.enumeration import (
    ITEM_FILE,
    ITEM_FOLDER,
    classify_item,
    scroll_until_stable,
)


class FakeListing:
    """A listing that reveals ``step`` new items per scroll until ``total`` are shown."""

    def __init__(self, total: int, step: int = 5, window: int = 10) -> None:
        self.total = total
        self.step = step
        self.window = window
        self.visible_until = min(step, total)
        self.advances = 0

    async def snapshot(self) -> list[str]:
        # Only a window of items is rendered at a time, with overlap between snapshots
        start = max(0, self.visible_until - self.window)
        return [f"item-{i}" for i in range(start, self.visible_until)]

    async def advance(self) -> None:
        self.advances += 1
        self.visible_until = min(self.visible_until + self.step, self.total)


class TestScrollUntilStable:
    """Test scroll_until_stable function."""

    def test_stops_after_idle_limit(self) -> None:
        """40 items, then nothing new: stop within idle_limit further iterations."""
        listing = FakeListing(total=40)
        outcome = asyncio.run(scroll_until_stable(listing.snapshot, listing.advance, idle_limit=25))

        assert len(outcome.items) == 40
        assert len(set(outcome.items)) == 40
        assert outcome.items == [f"item-{i}" for i in range(40)]
        # 7 scrolls reveal items 5..39, then 25 idle scrolls
        assert outcome.iterations == 7 + 25
        assert outcome.exhausted is False

    def test_max_iterations_caps_the_loop(self) -> None:
        listing = FakeListing(total=10_000, step=1)
        outcome = asyncio.run(
            scroll_until_stable(listing.snapshot, listing.advance, idle_limit=25, max_iterations=50)
        )
        assert outcome.iterations == 50
        assert outcome.exhausted is True
        assert len(outcome.items) == 51

    def test_empty_listing(self) -> None:
        listing = FakeListing(total=0)
        outcome = asyncio.run(scroll_until_stable(listing.snapshot, listing.advance, idle_limit=3))
        assert outcome.items == []
        assert outcome.iterations == 3

    def test_key_deduplicates_variants(self) -> None:
        """Items that differ only in size suffix count once."""
        snapshots = [["a=w200", "b=w200"], ["a=w400", "c=w200"], ["c=w400"]]
        calls = {"n": 0}

        async def snapshot() -> list[str]:
            return snapshots[min(calls["n"], len(snapshots) - 1)]

        async def advance() -> None:
            calls["n"] += 1

        outcome = asyncio.run(
            scroll_until_stable(snapshot, advance, key=lambda url: url.split("=")[0], idle_limit=2)
        )
        assert outcome.items == ["a=w200", "b=w200", "c=w200"]


class TestClassifyItem:
    """Test classify_item heuristics."""

    def test_folder_mime(self) -> None:
        assert classify_item({"mime": "application/vnd.google-apps.folder"}) == ITEM_FOLDER

    def test_folder_href_and_label(self) -> None:
        attrs = {"href": "/drive/folders/1AbCdEfGhIjK", "aria_label": "Carpeta compartida"}
        assert classify_item(attrs) == ITEM_FOLDER

    def test_file_href(self) -> None:
        assert classify_item({"href": "/file/d/1AbCdEfGhIjK/view"}) == ITEM_FILE

    def test_explicit_file_type_wins_over_icon(self) -> None:
        assert classify_item({"type": "file", "has_folder_icon": True}) == ITEM_FILE

    def test_name_with_extension_is_file(self) -> None:
        assert classify_item({"name": "apunte.pdf"}) == ITEM_FILE

    def test_no_signals_defaults_to_file(self) -> None:
        assert classify_item({}) == ITEM_FILE
