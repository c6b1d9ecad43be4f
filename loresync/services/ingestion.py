"""Ingestion pipeline: turn a discovered file into a stored, embedded document.

The orchestrator depends only on the ``IngestionPipeline`` protocol. The
default ``DocumentIngestionPipeline`` composes an insight extractor, an
embedder and a vector store, and writes the document into the data repository.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Protocol

import frontmatter
import httpx
import yaml
from pydantic import ValidationError

from loresync.exceptions import IngestionError
from loresync.filesystem.data_repo import (
    SourceInsights,
    SourceMetadata,
    read_content,
    read_insights,
    write_source,
)
from loresync.services.datetime_service import format_iso, now_utc
from loresync.services.hash_service import hash_bytes
from loresync.services.vector_store import Document

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from loresync.services.discovery_service import DiscoveredFile, RemoteDocument

logger = logging.getLogger(__name__)

_TYPE_BY_SUFFIX: dict[str, str] = {
    ".md": "markdown",
    ".markdown": "markdown",
    ".txt": "text",
    ".text": "text",
    ".rst": "text",
    ".org": "text",
    ".json": "json",
    ".csv": "csv",
    ".html": "html",
    ".htm": "html",
    ".vtt": "transcript",
    ".srt": "transcript",
}
_MAX_THEMES = 5
_MAX_QUOTES = 5


@dataclass
class Insights:
    title: str
    summary: str = ""
    themes: list[str] = field(default_factory=list)
    quotes: list[str] = field(default_factory=list)
    content_type: str = "document"


@dataclass(frozen=True)
class IngestedDocument:
    document_id: str
    title: str


class InsightExtractor(Protocol):
    async def extract(self, text: str, detected_type: str, file_name: str) -> Insights: ...


class Embedder(Protocol):
    async def embed(self, texts: list[str]) -> list[list[float]]: ...


class VectorStore(Protocol):
    async def store(self, document: Document, vector: list[float]) -> None: ...

    def exists(self, db_path: Path | None = None) -> bool: ...

    async def get_all(self, filters: Mapping[str, str] | None = None) -> list[Document]: ...

    async def delete(self, document_id: str) -> bool: ...


class IngestionPipeline(Protocol):
    async def ingest(self, file: DiscoveredFile) -> IngestedDocument: ...

    async def index_existing(self, document: RemoteDocument) -> IngestedDocument: ...


def detect_type(path: Path, data: bytes) -> str:
    """Detect a file's type from its extension, falling back to a UTF-8 probe."""
    detected = _TYPE_BY_SUFFIX.get(path.suffix.lower())
    if detected is not None:
        return detected
    if b"\x00" in data[:8192]:
        return "binary"
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return "binary"
    return "text"


# ── Heuristic extraction ─────────────────────────────


def _title_from_filename(file_name: str) -> str:
    stem = file_name.rsplit(".", maxsplit=1)[0] if "." in file_name else file_name
    stem = re.sub(r"^\d{4}-\d{2}-\d{2}-?", "", stem)
    return stem.replace("-", " ").replace("_", " ").strip().title() or "Untitled"


def _first_heading(body: str) -> str | None:
    for line in body.splitlines():
        stripped = line.strip()
        if stripped.startswith("# "):
            return stripped.removeprefix("# ").strip() or None
    return None


def _first_paragraph(body: str) -> str:
    paragraph: list[str] = []
    for line in body.splitlines():
        stripped = line.strip()
        if not stripped:
            if paragraph:
                break
            continue
        if stripped.startswith(("#", ">", "```", "---")):
            if paragraph:
                break
            continue
        paragraph.append(stripped)
    return " ".join(paragraph)


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    cut = text[:limit].rsplit(" ", maxsplit=1)[0]
    return cut.rstrip(",.;:") + "..."


def _string_list(value: object) -> list[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


class HeuristicInsightExtractor:
    """Offline extractor used when no language model is configured.

    Title: front matter ``title``, else the first ``#`` heading, else the file
    name. Summary: the first prose paragraph, truncated. Themes: front matter
    tags, else second-level headings. Quotes: blockquote lines.
    """

    def __init__(self, summary_max_chars: int = 500) -> None:
        self.summary_max_chars = summary_max_chars

    async def extract(self, text: str, detected_type: str, file_name: str) -> Insights:
        if detected_type == "binary":
            raise IngestionError(f"Unsupported binary file: {file_name}")

        metadata: dict[str, object] = {}
        body = text
        if detected_type == "markdown":
            try:
                post = frontmatter.loads(text)
            except (yaml.YAMLError, ValueError) as exc:
                logger.warning("Ignoring invalid front matter in %s: %s", file_name, exc)
            else:
                metadata = dict(post.metadata)
                body = post.content

        raw_title = metadata.get("title")
        title = (
            str(raw_title).strip()
            if raw_title
            else _first_heading(body) or _title_from_filename(file_name)
        )

        themes = _string_list(metadata.get("tags") or metadata.get("labels"))
        if not themes:
            themes = [
                line.strip().removeprefix("## ").strip()
                for line in body.splitlines()
                if line.strip().startswith("## ")
            ]
        quotes = [
            line.strip().lstrip(">").strip()
            for line in body.splitlines()
            if line.strip().startswith(">") and line.strip().lstrip(">").strip()
        ]
        content_type = str(metadata.get("type") or "document")
        if detected_type == "transcript":
            content_type = "meeting"

        return Insights(
            title=title,
            summary=_truncate(_first_paragraph(body), self.summary_max_chars),
            themes=themes[:_MAX_THEMES],
            quotes=quotes[:_MAX_QUOTES],
            content_type=content_type,
        )


# ── Embedding client ─────────────────────────────────


class HttpEmbedder:
    """Client for an OpenAI-compatible ``/embeddings`` endpoint."""

    def __init__(
        self,
        url: str,
        model: str,
        api_key: str = "",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.model = model
        self.api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            response = await self._client.post(
                self.url, json={"model": self.model, "input": texts}, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise IngestionError(f"Embedding request failed: {exc}") from exc

        try:
            items = response.json()["data"]
            items = sorted(items, key=lambda item: item.get("index", 0))
            vectors = [[float(x) for x in item["embedding"]] for item in items]
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise IngestionError(
                f"Embedding endpoint returned a malformed response (HTTP {response.status_code})"
            ) from exc
        if len(vectors) != len(texts):
            raise IngestionError(f"Expected {len(texts)} embedding(s), got {len(vectors)}")
        return vectors

    async def aclose(self) -> None:
        await self._client.aclose()


# ── Default pipeline ─────────────────────────────────


def searchable_text(insights: Insights, content: str, limit: int = 8000) -> str:
    """Text that gets embedded: title, summary and themes, then the start of the body."""
    parts = [insights.title, insights.summary, ", ".join(insights.themes), content[:limit]]
    return "\n\n".join(part for part in parts if part)


class DocumentIngestionPipeline:
    def __init__(
        self,
        extractor: InsightExtractor,
        embedder: Embedder,
        vector_store: VectorStore,
        data_dir: Path,
    ) -> None:
        self.extractor = extractor
        self.embedder = embedder
        self.vector_store = vector_store
        self.data_dir = data_dir

    async def _embed_one(self, text: str) -> list[float]:
        vectors = await self.embedder.embed([text])
        if not vectors:
            raise IngestionError("Embedder returned no vector")
        return vectors[0]

    async def ingest(self, file: DiscoveredFile) -> IngestedDocument:
        """Ingest a new or edited file. Raises IngestionError; the caller moves on."""
        path = file.absolute_path
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise IngestionError(f"Cannot read {path}: {exc}") from exc
        if hash_bytes(data) != file.content_hash:
            raise IngestionError(f"{path} changed since discovery")

        detected = detect_type(path, data)
        if detected == "binary":
            raise IngestionError(f"Unsupported binary file: {path}")
        text = data.decode("utf-8")

        insights = await self.extractor.extract(text, detected, path.name)
        vector = await self._embed_one(searchable_text(insights, text))

        # an in-place edit overwrites the document it replaces
        document_id = file.previous_document_id or str(uuid.uuid4())
        created_at = format_iso(datetime.fromtimestamp(file.mtime, tz=timezone.utc))
        document = Document(
            id=document_id,
            title=insights.title,
            project=file.project,
            content_hash=file.content_hash,
            created_at=created_at,
            content_type=insights.content_type,
            summary=insights.summary,
            themes=insights.themes,
            quotes=insights.quotes,
            source_path=str(path),
        )
        await self.vector_store.store(document, vector)

        metadata = SourceMetadata(
            id=document_id,
            title=insights.title,
            source_type="sync",
            content_type=insights.content_type,
            created_at=created_at,
            imported_at=format_iso(now_utc()),
            projects=[file.project],
            tags=insights.themes,
            source_path=str(path),
            content_hash=file.content_hash,
            sync_source=file.source_name,
            original_file=file.relative_path,
        )
        source_insights = SourceInsights(
            summary=insights.summary, themes=insights.themes, quotes=insights.quotes
        )
        try:
            await asyncio.to_thread(write_source, self.data_dir, metadata, text, source_insights)
        except OSError as exc:
            raise IngestionError(f"Cannot write document {document_id}: {exc}") from exc

        logger.info("Ingested %s as %s (%s)", path, document_id, insights.title)
        return IngestedDocument(document_id=document_id, title=insights.title)

    async def index_existing(self, document: RemoteDocument) -> IngestedDocument:
        """Index a document another machine already wrote into the data repository."""
        try:
            content = await asyncio.to_thread(read_content, self.data_dir, document.document_id)
            insights = await asyncio.to_thread(
                read_insights, self.data_dir, document.document_id
            )
        except (OSError, UnicodeDecodeError, ValidationError) as exc:
            raise IngestionError(f"Cannot read document {document.document_id}: {exc}") from exc

        metadata = document.metadata
        extracted = Insights(
            title=metadata.title,
            summary=insights.summary,
            themes=insights.themes,
            quotes=insights.quotes,
            content_type=metadata.content_type,
        )
        vector = await self._embed_one(searchable_text(extracted, content))
        await self.vector_store.store(
            Document(
                id=document.document_id,
                title=metadata.title,
                project=metadata.projects[0] if metadata.projects else "default",
                content_hash=document.content_hash,
                created_at=metadata.created_at,
                content_type=metadata.content_type,
                summary=insights.summary,
                themes=insights.themes,
                quotes=insights.quotes,
                source_path=metadata.source_path,
            ),
            vector,
        )
        logger.info("Indexed remote document %s (%s)", document.document_id, metadata.title)
        return IngestedDocument(document_id=document.document_id, title=metadata.title)
