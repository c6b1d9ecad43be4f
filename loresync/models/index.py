"""Path index and blocklist models."""

from __future__ import annotations

from sqlalchemy import Text
from sqlalchemy.orm import Mapped, mapped_column

from loresync.models.base import Base


class IndexedDocument(Base):
    """Path index entry: last-known location and content hash of an ingested document."""

    __tablename__ = "path_index"

    document_id: Mapped[str] = mapped_column(Text, primary_key=True)
    last_path: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    content_hash: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    last_seen_at: Mapped[str] = mapped_column(Text, nullable=False)


class BlockedHash(Base):
    """Content hash of a deleted document that must never be ingested again."""

    __tablename__ = "blocklist"

    content_hash: Mapped[str] = mapped_column(Text, primary_key=True)
    blocked_at: Mapped[str] = mapped_column(Text, nullable=False)
