"""Document endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from loresync.api.deps import get_runtime
from loresync.runtime import Runtime
from loresync.schemas.document import DocumentDeleteResponse

router = APIRouter(prefix="/api/documents", tags=["documents"])


@router.delete("/{document_id}", response_model=DocumentDeleteResponse)
async def delete_document_endpoint(
    document_id: str,
    runtime: Annotated[Runtime, Depends(get_runtime)],
) -> DocumentDeleteResponse:
    """Delete a document and block its content from being ingested again."""
    result = await runtime.delete_document(document_id)
    return DocumentDeleteResponse(
        document_id=result.document_id,
        content_hash=result.content_hash,
        blocked=result.content_hash is not None,
        removed_files=result.removed_files,
        git_error=result.git_error,
    )
