"""Data repository layout: one directory per ingested document.

    <data_dir>/
        deleted-hashes.json
        sources/<document_id>/metadata.json
        sources/<document_id>/content.md
        sources/<document_id>/insights.json

The data repository is git-tracked and shared between machines.
"""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, ValidationError

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

SOURCES_DIRNAME = "sources"
METADATA_FILENAME = "metadata.json"
CONTENT_FILENAME = "content.md"
INSIGHTS_FILENAME = "insights.json"

_DOCUMENT_ID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


class SourceMetadata(BaseModel):
    """metadata.json of an ingested document."""

    id: str
    title: str
    source_type: str = "document"
    content_type: str = "document"
    created_at: str
    imported_at: str
    projects: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    source_path: str | None = None
    content_hash: str | None = None
    sync_source: str | None = None
    original_file: str | None = None


class SourceInsights(BaseModel):
    """insights.json of an ingested document."""

    summary: str = ""
    themes: list[str] = Field(default_factory=list)
    quotes: list[str] = Field(default_factory=list)


@dataclass
class RepositoryScan:
    """Documents found in the data repository's sources/ directory."""

    documents: list[tuple[SourceMetadata, Path]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def is_document_id(value: str) -> bool:
    return bool(_DOCUMENT_ID_RE.match(value))


def source_dir(data_dir: Path, document_id: str) -> Path:
    if not is_document_id(document_id):
        raise ValueError(f"Invalid document id: {document_id!r}")
    return data_dir / SOURCES_DIRNAME / document_id


def ensure_data_dir(data_dir: Path) -> None:
    """Ensure the data repository scaffold exists without touching existing files."""
    if data_dir.exists() and not data_dir.is_dir():
        msg = f"Data path exists but is not a directory: {data_dir}"
        raise NotADirectoryError(msg)
    sources = data_dir / SOURCES_DIRNAME
    if not sources.exists():
        sources.mkdir(parents=True)
        logger.info("Created data repository scaffold at %s", data_dir)


def write_source(
    data_dir: Path,
    metadata: SourceMetadata,
    content: str,
    insights: SourceInsights,
) -> Path:
    """Write a document's directory into the data repository."""
    directory = source_dir(data_dir, metadata.id)
    directory.mkdir(parents=True, exist_ok=True)
    (directory / CONTENT_FILENAME).write_text(content, encoding="utf-8")
    (directory / INSIGHTS_FILENAME).write_text(
        insights.model_dump_json(indent=2) + "\n", encoding="utf-8"
    )
    # metadata.json last: its presence marks the directory as complete
    (directory / METADATA_FILENAME).write_text(
        metadata.model_dump_json(indent=2) + "\n", encoding="utf-8"
    )
    return directory


def read_content(data_dir: Path, document_id: str) -> str:
    return (source_dir(data_dir, document_id) / CONTENT_FILENAME).read_text(encoding="utf-8")


def read_insights(data_dir: Path, document_id: str) -> SourceInsights:
    """Read insights.json; a missing file yields empty insights."""
    path = source_dir(data_dir, document_id) / INSIGHTS_FILENAME
    if not path.exists():
        return SourceInsights()
    return SourceInsights.model_validate_json(path.read_text(encoding="utf-8"))


def read_metadata(data_dir: Path, document_id: str) -> SourceMetadata | None:
    path = source_dir(data_dir, document_id) / METADATA_FILENAME
    if not path.exists():
        return None
    return SourceMetadata.model_validate_json(path.read_text(encoding="utf-8"))


def scan_repository(data_dir: Path) -> RepositoryScan:
    """List every complete document directory under sources/.

    Directories whose name is not a document id or that lack metadata.json are
    ignored. Unparseable metadata is reported as an error.
    """
    scan = RepositoryScan()
    sources = data_dir / SOURCES_DIRNAME
    if not sources.is_dir():
        return scan
    for directory in sorted(sources.iterdir()):
        if not directory.is_dir() or not is_document_id(directory.name):
            continue
        metadata_path = directory / METADATA_FILENAME
        if not metadata_path.is_file():
            continue
        try:
            metadata = SourceMetadata.model_validate_json(
                metadata_path.read_text(encoding="utf-8")
            )
        except (OSError, UnicodeDecodeError, ValidationError) as exc:
            logger.warning("Skipping unreadable metadata %s: %s", metadata_path, exc)
            scan.errors.append(f"Error reading {metadata_path}: {exc}")
            continue
        if metadata.id != directory.name:
            scan.errors.append(f"Metadata id mismatch in {metadata_path}")
            continue
        scan.documents.append((metadata, directory))
    return scan


def remove_source(data_dir: Path, document_id: str) -> bool:
    """Delete a document directory. Returns False when it did not exist."""
    directory = source_dir(data_dir, document_id)
    if not directory.exists():
        return False
    shutil.rmtree(directory)
    return True
