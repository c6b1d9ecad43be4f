"""Document schemas."""

from __future__ import annotations

from pydantic import BaseModel


class DocumentDeleteResponse(BaseModel):
    document_id: str
    content_hash: str | None = None
    blocked: bool
    removed_files: bool
    git_error: str | None = None
