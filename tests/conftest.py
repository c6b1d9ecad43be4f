"""Shared test fixtures for loresync."""

from __future__ import annotations

import os
import uuid
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient

from loresync.config import Settings
from loresync.database import create_engine, init_schema
from loresync.exceptions import IngestionError
from loresync.filesystem.sources_config import SyncSource, add_sync_source
from loresync.main import create_app
from loresync.runtime import build_runtime
from loresync.services.blocklist import Blocklist
from loresync.services.git_service import GitResult
from loresync.services.ingestion import IngestedDocument
from loresync.services.path_index import PathIndex
from loresync.services.sync_service import SyncOrchestrator

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from loresync.runtime import Runtime
    from loresync.services.discovery_service import DiscoveredFile, RemoteDocument


class FakePipeline:
    """Records what it was asked to ingest; files named in ``fail_on`` raise."""

    def __init__(self) -> None:
        self.ingested: list[DiscoveredFile] = []
        self.indexed: list[RemoteDocument] = []
        self.fail_on: set[str] = set()

    async def ingest(self, file: DiscoveredFile) -> IngestedDocument:
        if file.absolute_path.name in self.fail_on:
            raise IngestionError(f"refusing {file.absolute_path.name}")
        self.ingested.append(file)
        document_id = file.previous_document_id or str(uuid.uuid4())
        return IngestedDocument(document_id=document_id, title=file.absolute_path.stem)

    async def index_existing(self, document: RemoteDocument) -> IngestedDocument:
        self.indexed.append(document)
        return IngestedDocument(document_id=document.document_id, title=document.title)


class FakeGit:
    """In-memory stand-in for the data repository remote."""

    def __init__(self) -> None:
        self.pulls = 0
        self.commits: list[str] = []
        self.pull_result = GitResult(ok=True, message="Already up to date")
        self.push_result = GitResult(ok=True, pushed=True, message="Committed and pushed")

    async def pull(self) -> GitResult:
        self.pulls += 1
        return self.pull_result

    async def commit_and_push(self, message: str) -> GitResult:
        self.commits.append(message)
        return self.push_result


def write_file(path: Path, content: str, mtime: float | None = None) -> Path:
    """Write a text file, creating parents, optionally pinning its mtime."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        data_dir=tmp_path / "data",
        config_dir=tmp_path / "config",
        embedding_url="http://embeddings.test/v1/embeddings",
        debounce_seconds=0.05,
        pull_interval_seconds=3600,
    )


@pytest.fixture
async def session_factory(
    settings: Settings,
) -> AsyncGenerator[async_sessionmaker[AsyncSession]]:
    engine, factory = create_engine(settings)
    await init_schema(engine)
    yield factory
    await engine.dispose()


@pytest.fixture
def path_index(session_factory: async_sessionmaker[AsyncSession]) -> PathIndex:
    return PathIndex(session_factory)


@pytest.fixture
def blocklist(session_factory: async_sessionmaker[AsyncSession], settings: Settings) -> Blocklist:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    return Blocklist(session_factory, data_dir=settings.data_dir)


@pytest.fixture
def fake_pipeline() -> FakePipeline:
    return FakePipeline()


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def orchestrator(
    settings: Settings,
    path_index: PathIndex,
    blocklist: Blocklist,
    fake_pipeline: FakePipeline,
    fake_git: FakeGit,
) -> SyncOrchestrator:
    return SyncOrchestrator(
        config_dir=settings.config_dir,
        data_dir=settings.data_dir,
        path_index=path_index,
        blocklist=blocklist,
        pipeline=fake_pipeline,
        git=fake_git,
    )


@pytest.fixture
def docs_dir(tmp_path: Path, settings: Settings) -> Path:
    """A watched ``notes`` source over ``**/*.md``."""
    docs = tmp_path / "docs"
    docs.mkdir()
    add_sync_source(
        settings.config_dir,
        SyncSource(
            name="notes", root_path=str(docs), glob_pattern="**/*.md", target_project="notes"
        ),
    )
    return docs


@pytest.fixture
def make_files(docs_dir: Path) -> Callable[..., list[Path]]:
    def _make(*names: str) -> list[Path]:
        return [write_file(docs_dir / name, f"# {name}\n\nBody of {name}.\n") for name in names]

    return _make


@asynccontextmanager
async def create_test_client(
    settings: Settings, pipeline: FakePipeline, git: FakeGit
) -> AsyncGenerator[tuple[AsyncClient, Runtime]]:
    """HTTP client over a fully initialized app.

    ASGITransport does not run the lifespan, so the runtime and scheduler are
    wired here the same way, minus the filesystem watcher and initial sync.
    """
    app = create_app(settings)
    runtime = await build_runtime(settings, pipeline=pipeline, git=git)
    scheduler = runtime.build_scheduler(watch=False)
    app.state.runtime = runtime
    app.state.scheduler = scheduler
    await scheduler.start(initial_sync=False)
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac, runtime
    finally:
        await scheduler.stop()
        await runtime.close()
