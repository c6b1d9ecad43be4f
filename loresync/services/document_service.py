"""Explicit document deletion: the only path that removes index entries.

Deleting records the document's content hash in the blocklist first, so the
bytes left on disk (or restored by an external sync tool) are never ingested
again.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loresync.exceptions import DocumentNotFoundError
from loresync.filesystem.data_repo import is_document_id, read_metadata, remove_source

if TYPE_CHECKING:
    from pathlib import Path

    from loresync.services.blocklist import Blocklist
    from loresync.services.ingestion import VectorStore
    from loresync.services.path_index import PathIndex
    from loresync.services.sync_service import VersionControl

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeletionResult:
    document_id: str
    content_hash: str | None
    removed_files: bool
    git_error: str | None = None


async def delete_document(
    document_id: str,
    *,
    data_dir: Path,
    path_index: PathIndex,
    blocklist: Blocklist,
    vector_store: VectorStore,
    git: VersionControl | None = None,
) -> DeletionResult:
    """Delete a document everywhere and block its content hash.

    Raises DocumentNotFoundError when no store knows the id, StorageError when
    the index or blocklist cannot be written.
    """
    if not is_document_id(document_id):
        raise DocumentNotFoundError(f"Invalid document id: {document_id!r}")

    entry = await path_index.lookup(document_id)
    metadata = await asyncio.to_thread(read_metadata, data_dir, document_id)
    content_hash = entry.content_hash if entry is not None else None
    if content_hash is None and metadata is not None:
        content_hash = metadata.content_hash
    if entry is None and metadata is None:
        raise DocumentNotFoundError(f"Document {document_id} not found")

    # Block before removing anything: a crash halfway must not resurrect it.
    if content_hash:
        await blocklist.add(content_hash)
        await blocklist.merge_file()
    else:
        logger.warning("Document %s has no content hash; nothing to block", document_id)

    await vector_store.delete(document_id)
    removed_files = await asyncio.to_thread(remove_source, data_dir, document_id)
    await path_index.remove(document_id)
    logger.info("Deleted document %s", document_id)

    git_error = None
    if git is not None:
        title = metadata.title if metadata is not None else document_id
        committed = await git.commit_and_push(f"Delete source: {title}")
        if not committed.ok:
            git_error = committed.error
    return DeletionResult(
        document_id=document_id,
        content_hash=content_hash,
        removed_files=removed_files,
        git_error=git_error,
    )
