"""Application-level exception types.

Convention:
- ``StorageError``: the path index or blocklist cannot be read or written.
  Fatal to a sync run; the orchestrator lets it propagate to the caller.
- ``IngestionError``: a single file could not be turned into a document.
  The orchestrator counts it and moves on to the next file.
- ``SourceConfigError``: invalid or conflicting sync-source configuration.
  Subclasses ``ValueError`` so the API handler returns it as a 422 detail.
- ``DocumentNotFoundError``: the document id is unknown to every store.
"""

from __future__ import annotations


class LoresyncError(Exception):
    """Base class for loresync errors."""


class StorageError(LoresyncError):
    """Raised when the path index or blocklist storage is unreadable or corrupt."""


class IngestionError(LoresyncError):
    """Raised when a single file fails to ingest."""


class SourceConfigError(LoresyncError, ValueError):
    """Raised for invalid, duplicate, or unknown sync sources."""


class DocumentNotFoundError(LoresyncError, LookupError):
    """Raised when deleting a document that is not indexed."""
