"""Vector store document model."""

from __future__ import annotations

from sqlalchemy import Text
from sqlalchemy.orm import Mapped, mapped_column

from loresync.models.base import Base


class StoredDocument(Base):
    """Summarized document with its embedding, as kept by the local vector store."""

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    project: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    content_type: Mapped[str] = mapped_column(Text, nullable=False, default="document")
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    themes_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    quotes_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    content_hash: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    source_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    vector_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
