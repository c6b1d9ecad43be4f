"""Tests for the content-hash blocklist."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from loresync.exceptions import StorageError
from loresync.services.blocklist import (
    BLOCKLIST_FILENAME,
    Blocklist,
    load_blocklist_file,
    write_blocklist_file,
)

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from loresync.config import Settings


class TestBlocklistFile:
    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert load_blocklist_file(tmp_path) == set()

    def test_write_is_sorted(self, tmp_path: Path) -> None:
        write_blocklist_file(tmp_path, {"b", "a"})
        assert json.loads((tmp_path / BLOCKLIST_FILENAME).read_text()) == ["a", "b"]
        assert load_blocklist_file(tmp_path) == {"a", "b"}

    def test_invalid_json_raises(self, tmp_path: Path) -> None:
        (tmp_path / BLOCKLIST_FILENAME).write_text("{not json")
        with pytest.raises(StorageError, match="Unreadable"):
            load_blocklist_file(tmp_path)

    def test_wrong_shape_raises(self, tmp_path: Path) -> None:
        (tmp_path / BLOCKLIST_FILENAME).write_text('{"hashes": ["a"]}')
        with pytest.raises(StorageError, match="Corrupt"):
            load_blocklist_file(tmp_path)


class TestBlocklist:
    @pytest.mark.asyncio
    async def test_add_and_contains(self, blocklist: Blocklist) -> None:
        assert not await blocklist.contains("h1")
        assert await blocklist.add("h1") == 1
        assert await blocklist.contains("h1")

    @pytest.mark.asyncio
    async def test_add_is_idempotent(self, blocklist: Blocklist) -> None:
        assert await blocklist.add("h1", "h2") == 2
        assert await blocklist.add("h1", "h2", "h3") == 1
        assert await blocklist.all_hashes() == {"h1", "h2", "h3"}

    @pytest.mark.asyncio
    async def test_add_skips_empty_values(self, blocklist: Blocklist) -> None:
        assert await blocklist.add(None, "") == 0
        assert await blocklist.all_hashes() == set()

    @pytest.mark.asyncio
    async def test_file_hashes_count_as_blocked(
        self, blocklist: Blocklist, settings: Settings
    ) -> None:
        write_blocklist_file(settings.data_dir, {"remote-hash"})
        assert await blocklist.contains("remote-hash")
        assert "remote-hash" in await blocklist.all_hashes()

    @pytest.mark.asyncio
    async def test_merge_file_imports_and_exports(
        self, blocklist: Blocklist, settings: Settings
    ) -> None:
        await blocklist.add("local")
        write_blocklist_file(settings.data_dir, {"remote"})

        assert await blocklist.merge_file() == 1
        assert load_blocklist_file(settings.data_dir) == {"local", "remote"}

        # Second merge has nothing new to import
        assert await blocklist.merge_file() == 0

    @pytest.mark.asyncio
    async def test_merge_file_survives_without_data_dir(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        local_only = Blocklist(session_factory)
        await local_only.add("h")
        assert await local_only.merge_file() == 0
        assert await local_only.all_hashes() == {"h"}

    @pytest.mark.asyncio
    async def test_corrupt_file_fails_merge(
        self, blocklist: Blocklist, settings: Settings
    ) -> None:
        (settings.data_dir / BLOCKLIST_FILENAME).write_text("[1, 2]")
        with pytest.raises(StorageError):
            await blocklist.merge_file()
