"""SQLAlchemy ORM models for loresync."""

from loresync.models.base import Base
from loresync.models.document import StoredDocument
from loresync.models.index import BlockedHash, IndexedDocument

__all__ = [
    "Base",
    "BlockedHash",
    "IndexedDocument",
    "StoredDocument",
]
