"""Tests for the SQLite-backed vector store."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from loresync.services.vector_store import Document, SqlVectorStore

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from loresync.config import Settings


def _doc(doc_id: str, project: str = "notes", created_at: str = "2026-01-01") -> Document:
    return Document(
        id=doc_id,
        title=f"Doc {doc_id}",
        project=project,
        content_hash=f"hash-{doc_id}",
        created_at=created_at,
        themes=["alpha"],
        quotes=["quoted"],
    )


@pytest.fixture
def store(
    session_factory: async_sessionmaker[AsyncSession], settings: Settings
) -> SqlVectorStore:
    return SqlVectorStore(session_factory, db_path=settings.database_path)


class TestSqlVectorStore:
    def test_exists_tracks_database_file(self, store: SqlVectorStore, tmp_path: Path) -> None:
        assert store.exists()
        assert not store.exists(tmp_path / "other.db")

    @pytest.mark.asyncio
    async def test_store_and_get(self, store: SqlVectorStore) -> None:
        await store.store(_doc("a"), [0.1, 0.2])
        found = await store.get("a")
        assert found == _doc("a")
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_store_replaces(self, store: SqlVectorStore) -> None:
        await store.store(_doc("a"), [0.1])
        updated = _doc("a")
        updated.title = "Renamed"
        await store.store(updated, [0.3])
        assert [d.title for d in await store.get_all()] == ["Renamed"]

    @pytest.mark.asyncio
    async def test_get_all_filters(self, store: SqlVectorStore) -> None:
        await store.store(_doc("a", project="notes", created_at="2026-01-02"), [0.1])
        await store.store(_doc("b", project="work", created_at="2026-01-01"), [0.1])
        await store.store(_doc("c", project="notes", created_at="2026-01-03"), [0.1])

        assert [d.id for d in await store.get_all()] == ["b", "a", "c"]
        assert [d.id for d in await store.get_all({"project": "notes"})] == ["a", "c"]
        assert [d.id for d in await store.get_all({"content_hash": "hash-b"})] == ["b"]

    @pytest.mark.asyncio
    async def test_unknown_filter_raises(self, store: SqlVectorStore) -> None:
        with pytest.raises(ValueError, match="Unsupported filter"):
            await store.get_all({"title": "x"})

    @pytest.mark.asyncio
    async def test_delete(self, store: SqlVectorStore) -> None:
        await store.store(_doc("a"), [0.1])
        assert await store.delete("a") is True
        assert await store.delete("a") is False
        assert await store.get_all() == []
