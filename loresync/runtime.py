"""Wire settings into the stores, the pipeline, git and the orchestrator.

Shared by the API server and the CLI.
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loresync.database import create_engine, init_schema
from loresync.filesystem.data_repo import ensure_data_dir
from loresync.filesystem.sources_config import enabled_sources, parse_sources_config
from loresync.services.blocklist import Blocklist
from loresync.services.document_service import delete_document
from loresync.services.git_service import GitService
from loresync.services.ingestion import (
    DocumentIngestionPipeline,
    HeuristicInsightExtractor,
    HttpEmbedder,
)
from loresync.services.path_index import PathIndex
from loresync.services.status_service import record_sync
from loresync.services.sync_service import SyncOrchestrator
from loresync.services.vector_store import SqlVectorStore
from loresync.services.watch_service import WatchfilesChangeSource, WatchScheduler

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

    from loresync.config import Settings
    from loresync.filesystem.sources_config import SyncSource
    from loresync.services.document_service import DeletionResult
    from loresync.services.ingestion import IngestionPipeline
    from loresync.services.sync_service import SyncResult, VersionControl

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    path_index: PathIndex
    blocklist: Blocklist
    vector_store: SqlVectorStore
    pipeline: IngestionPipeline
    git: VersionControl
    orchestrator: SyncOrchestrator
    embedder: HttpEmbedder | None = None

    def sources(self) -> list[SyncSource]:
        return parse_sources_config(self.settings.config_dir)

    def record_result(self, result: SyncResult) -> None:
        record_sync(self.settings.status_file, result)

    def build_scheduler(self, *, watch: bool = True) -> WatchScheduler:
        """Scheduler over the enabled sources whose roots exist right now."""
        change_source = None
        if watch:
            roots = [
                source.expanded_root
                for source in enabled_sources(self.sources())
                if source.expanded_root.is_dir()
            ]
            change_source = WatchfilesChangeSource(
                roots, force_polling=self.settings.force_polling
            )
        return WatchScheduler(
            self.orchestrator,
            change_source=change_source,
            sources_loader=self.sources,
            debounce_seconds=self.settings.debounce_seconds,
            pull_interval_seconds=self.settings.pull_interval_seconds,
            on_result=self.record_result,
        )

    async def delete_document(self, document_id: str) -> DeletionResult:
        """Delete between sync runs, never during one."""
        async with self.orchestrator.exclusive():
            return await delete_document(
                document_id,
                data_dir=self.settings.data_dir,
                path_index=self.path_index,
                blocklist=self.blocklist,
                vector_store=self.vector_store,
                git=self.git,
            )

    async def close(self) -> None:
        if self.embedder is not None:
            try:
                await self.embedder.aclose()
            except Exception as exc:
                logger.error("Error closing embedding client: %s", exc, exc_info=True)
        await self.engine.dispose()


async def build_runtime(
    settings: Settings,
    *,
    pipeline: IngestionPipeline | None = None,
    git: VersionControl | None = None,
) -> Runtime:
    """Create the database schema and data repository, then assemble the runtime.

    ``pipeline`` and ``git`` replace the defaults (used by tests).
    """
    engine, session_factory = create_engine(settings)
    try:
        await init_schema(engine)
    except Exception as exc:
        logger.critical("Failed to create database schema: %s.", exc)
        await engine.dispose()
        raise

    ensure_data_dir(settings.data_dir)

    if git is None:
        git_service = GitService(settings.data_dir)
        try:
            await asyncio.to_thread(git_service.init_repo)
        except (subprocess.CalledProcessError, FileNotFoundError) as exc:
            # Sync still works locally; every run reports the git error.
            logger.error("Data repository is not under git control: %s", exc)
        git = git_service

    path_index = PathIndex(session_factory)
    blocklist = Blocklist(session_factory, data_dir=settings.data_dir)
    vector_store = SqlVectorStore(session_factory, db_path=settings.database_path)

    embedder = None
    if pipeline is None:
        embedder = HttpEmbedder(
            settings.embedding_url,
            settings.embedding_model,
            api_key=settings.embedding_api_key,
            timeout=settings.embedding_timeout_seconds,
        )
        pipeline = DocumentIngestionPipeline(
            HeuristicInsightExtractor(summary_max_chars=settings.summary_max_chars),
            embedder,
            vector_store,
            settings.data_dir,
        )

    orchestrator = SyncOrchestrator(
        config_dir=settings.config_dir,
        data_dir=settings.data_dir,
        path_index=path_index,
        blocklist=blocklist,
        pipeline=pipeline,
        git=git,
    )
    return Runtime(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        path_index=path_index,
        blocklist=blocklist,
        vector_store=vector_store,
        pipeline=pipeline,
        git=git,
        orchestrator=orchestrator,
        embedder=embedder,
    )
