"""Path index: persistent document id -> last path and content hash."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from loresync.exceptions import StorageError
from loresync.models.index import IndexedDocument
from loresync.services.datetime_service import format_iso, now_utc

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PathIndexEntry:
    """Last-known location of an ingested document."""

    document_id: str
    last_path: str
    content_hash: str
    last_seen_at: str


def _to_entry(row: IndexedDocument) -> PathIndexEntry:
    return PathIndexEntry(
        document_id=row.document_id,
        last_path=row.last_path,
        content_hash=row.content_hash,
        last_seen_at=row.last_seen_at,
    )


@asynccontextmanager
async def storage_session(
    session_factory: async_sessionmaker[AsyncSession],
    action: str,
) -> AsyncIterator[AsyncSession]:
    """Open a session and convert database failures into StorageError."""
    try:
        async with session_factory() as session:
            yield session
    except SQLAlchemyError as exc:
        logger.error("Storage failure while trying to %s: %s", action, exc)
        raise StorageError(f"Failed to {action}: {exc}") from exc


class PathIndex:
    """Keyed by document id; each write commits its own transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def lookup(self, document_id: str) -> PathIndexEntry | None:
        async with storage_session(self.session_factory, "read path index") as session:
            row = await session.get(IndexedDocument, document_id)
            return _to_entry(row) if row is not None else None

    async def lookup_by_hash(self, content_hash: str) -> PathIndexEntry | None:
        """Return the entry tracking a content hash (lowest document id wins)."""
        stmt = (
            select(IndexedDocument)
            .where(IndexedDocument.content_hash == content_hash)
            .order_by(IndexedDocument.document_id)
            .limit(1)
        )
        async with storage_session(self.session_factory, "read path index") as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _to_entry(row) if row is not None else None

    async def all_entries(self) -> list[PathIndexEntry]:
        stmt = select(IndexedDocument).order_by(IndexedDocument.document_id)
        async with storage_session(self.session_factory, "read path index") as session:
            result = await session.execute(stmt)
            return [_to_entry(row) for row in result.scalars().all()]

    async def upsert(self, document_id: str, path: str, content_hash: str) -> PathIndexEntry:
        """Create or overwrite the entry for document_id."""
        seen_at = format_iso(now_utc())
        async with storage_session(self.session_factory, "write path index") as session:
            row = await session.get(IndexedDocument, document_id)
            if row is None:
                row = IndexedDocument(
                    document_id=document_id,
                    last_path=path,
                    content_hash=content_hash,
                    last_seen_at=seen_at,
                )
                session.add(row)
            else:
                if row.last_path != path:
                    logger.info("Document %s moved: %s -> %s", document_id, row.last_path, path)
                row.last_path = path
                row.content_hash = content_hash
                row.last_seen_at = seen_at
            await session.commit()
            return _to_entry(row)

    async def remove(self, document_id: str) -> PathIndexEntry | None:
        """Remove an entry. Only the explicit document-deletion path calls this."""
        async with storage_session(self.session_factory, "write path index") as session:
            row = await session.get(IndexedDocument, document_id)
            if row is None:
                return None
            entry = _to_entry(row)
            await session.execute(
                delete(IndexedDocument).where(IndexedDocument.document_id == document_id)
            )
            await session.commit()
            return entry
