"""Tests for the persistent path index."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from loresync.database import create_engine
from loresync.exceptions import StorageError
from loresync.services.path_index import PathIndex

if TYPE_CHECKING:
    from loresync.config import Settings


class TestPathIndex:
    @pytest.mark.asyncio
    async def test_lookup_missing_returns_none(self, path_index: PathIndex) -> None:
        assert await path_index.lookup("nope") is None
        assert await path_index.lookup_by_hash("abc") is None

    @pytest.mark.asyncio
    async def test_upsert_creates_entry(self, path_index: PathIndex) -> None:
        entry = await path_index.upsert("doc-1", "/notes/a.md", "h1")
        assert entry.document_id == "doc-1"
        assert entry.last_path == "/notes/a.md"
        assert entry.content_hash == "h1"
        assert entry.last_seen_at

        found = await path_index.lookup("doc-1")
        assert found == entry

    @pytest.mark.asyncio
    async def test_upsert_overwrites_path(self, path_index: PathIndex) -> None:
        await path_index.upsert("doc-1", "/notes/a.md", "h1")
        await path_index.upsert("doc-1", "/notes/moved/a.md", "h1")
        entry = await path_index.lookup("doc-1")
        assert entry is not None
        assert entry.last_path == "/notes/moved/a.md"
        assert len(await path_index.all_entries()) == 1

    @pytest.mark.asyncio
    async def test_lookup_by_hash_lowest_id_wins(self, path_index: PathIndex) -> None:
        await path_index.upsert("b-doc", "/b.md", "same")
        await path_index.upsert("a-doc", "/a.md", "same")
        entry = await path_index.lookup_by_hash("same")
        assert entry is not None
        assert entry.document_id == "a-doc"

    @pytest.mark.asyncio
    async def test_all_entries_sorted_by_id(self, path_index: PathIndex) -> None:
        for doc_id in ("c", "a", "b"):
            await path_index.upsert(doc_id, f"/{doc_id}.md", f"h-{doc_id}")
        assert [e.document_id for e in await path_index.all_entries()] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_remove(self, path_index: PathIndex) -> None:
        await path_index.upsert("doc-1", "/a.md", "h1")
        removed = await path_index.remove("doc-1")
        assert removed is not None
        assert removed.document_id == "doc-1"
        assert await path_index.lookup("doc-1") is None
        assert await path_index.remove("doc-1") is None


class TestPathIndexStorageFailure:
    @pytest.mark.asyncio
    async def test_missing_schema_raises_storage_error(self, settings: Settings) -> None:
        engine, factory = create_engine(settings)
        try:
            index = PathIndex(factory)
            with pytest.raises(StorageError, match="read path index"):
                await index.all_entries()
            with pytest.raises(StorageError, match="write path index"):
                await index.upsert("doc", "/a.md", "h")
        finally:
            await engine.dispose()
