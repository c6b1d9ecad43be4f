"""Local vector store: summarized documents and their embeddings in SQLite."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from loresync.exceptions import IngestionError
from loresync.models.document import StoredDocument
from loresync.services.path_index import storage_session

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

_FILTERABLE = ("project", "content_type", "content_hash")


@dataclass
class Document:
    id: str
    title: str
    project: str
    content_hash: str
    created_at: str
    content_type: str = "document"
    summary: str = ""
    themes: list[str] = field(default_factory=list)
    quotes: list[str] = field(default_factory=list)
    source_path: str | None = None


def _to_document(row: StoredDocument) -> Document:
    return Document(
        id=row.id,
        title=row.title,
        project=row.project,
        content_hash=row.content_hash,
        created_at=row.created_at,
        content_type=row.content_type,
        summary=row.summary,
        themes=json.loads(row.themes_json),
        quotes=json.loads(row.quotes_json),
        source_path=row.source_path,
    )


class SqlVectorStore:
    """Keeps document rows and vectors in the loresync database.

    Ranking and similarity search live elsewhere; this store only persists
    and lists.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        db_path: Path | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.db_path = db_path

    def exists(self, db_path: Path | None = None) -> bool:
        """Whether the backing database file has been created."""
        path = db_path or self.db_path
        return path is not None and path.exists()

    async def store(self, document: Document, vector: list[float]) -> None:
        """Insert or replace a document row. Raises IngestionError on failure."""
        try:
            async with self.session_factory() as session:
                row = await session.get(StoredDocument, document.id)
                if row is None:
                    row = StoredDocument(id=document.id)
                    session.add(row)
                row.title = document.title
                row.project = document.project
                row.content_type = document.content_type
                row.summary = document.summary
                row.themes_json = json.dumps(document.themes)
                row.quotes_json = json.dumps(document.quotes)
                row.content_hash = document.content_hash
                row.source_path = document.source_path
                row.created_at = document.created_at
                row.vector_json = json.dumps(vector)
                await session.commit()
        except SQLAlchemyError as exc:
            raise IngestionError(f"Failed to store document {document.id}: {exc}") from exc

    async def get_all(self, filters: Mapping[str, str] | None = None) -> list[Document]:
        """List stored documents, optionally filtered by project, content_type or content_hash."""
        stmt = select(StoredDocument).order_by(StoredDocument.created_at, StoredDocument.id)
        for key, value in (filters or {}).items():
            if key not in _FILTERABLE:
                raise ValueError(f"Unsupported filter: {key!r}")
            stmt = stmt.where(getattr(StoredDocument, key) == value)
        async with storage_session(self.session_factory, "read vector store") as session:
            result = await session.execute(stmt)
            return [_to_document(row) for row in result.scalars().all()]

    async def get(self, document_id: str) -> Document | None:
        async with storage_session(self.session_factory, "read vector store") as session:
            row = await session.get(StoredDocument, document_id)
            return _to_document(row) if row is not None else None

    async def delete(self, document_id: str) -> bool:
        """Delete a document row. Returns False when it was not stored."""
        async with storage_session(self.session_factory, "write vector store") as session:
            result = await session.execute(
                delete(StoredDocument).where(StoredDocument.id == document_id)
            )
            await session.commit()
        removed = bool(result.rowcount)
        if removed:
            logger.info("Removed document %s from vector store", document_id)
        return removed
