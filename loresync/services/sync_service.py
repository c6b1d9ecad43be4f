"""Sync orchestrator: pull, discover, ingest, update the path index, commit and push."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from loresync.exceptions import SourceConfigError, StorageError
from loresync.filesystem.sources_config import parse_sources_config
from loresync.services.discovery_service import DiscoveryStats, discover

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from loresync.services.blocklist import Blocklist
    from loresync.services.discovery_service import DiscoveryResult
    from loresync.services.git_service import GitResult
    from loresync.services.ingestion import IngestionPipeline
    from loresync.services.path_index import PathIndex

logger = logging.getLogger(__name__)


class VersionControl(Protocol):
    async def pull(self) -> GitResult: ...

    async def commit_and_push(self, message: str) -> GitResult: ...


@dataclass(frozen=True)
class SyncOptions:
    pull: bool = True
    push: bool = True
    dry_run: bool = False


@dataclass
class ProcessingSummary:
    processed: int = 0
    titles: list[str] = field(default_factory=list)
    errors: int = 0
    indexed_remote: int = 0
    moved: int = 0


@dataclass
class SyncResult:
    """Report of one orchestrator run. Only the status file keeps a copy."""

    git_pulled: bool = False
    git_pushed: bool = False
    git_error: str | None = None
    discovery: DiscoveryStats = field(default_factory=DiscoveryStats)
    processing: ProcessingSummary = field(default_factory=ProcessingSummary)
    dry_run: bool = False
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def commit_message(processed: int) -> str:
    return f"Sync: Added {processed} source(s)" if processed else "Sync"


class SyncOrchestrator:
    """Runs sync passes one at a time.

    Per-file and git failures end up in the returned ``SyncResult``.
    ``StorageError`` from the path index or blocklist aborts the run.
    """

    def __init__(
        self,
        *,
        config_dir: Path,
        data_dir: Path,
        path_index: PathIndex,
        blocklist: Blocklist,
        pipeline: IngestionPipeline,
        git: VersionControl,
    ) -> None:
        self.config_dir = config_dir
        self.data_dir = data_dir
        self.path_index = path_index
        self.blocklist = blocklist
        self.pipeline = pipeline
        self.git = git
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        """Hold the run lock, e.g. while deleting a document."""
        async with self._lock:
            yield

    async def sync(self, options: SyncOptions | None = None) -> SyncResult:
        options = options or SyncOptions()
        async with self._lock:
            return await self._run(options)

    async def _run(self, options: SyncOptions) -> SyncResult:
        result = SyncResult(dry_run=options.dry_run)

        if options.pull:
            pulled = await self.git.pull()
            result.git_pulled = pulled.pulled
            if not pulled.ok:
                result.git_error = pulled.error
        if not options.dry_run:
            await self.blocklist.merge_file()

        try:
            sources = await asyncio.to_thread(parse_sources_config, self.config_dir)
        except SourceConfigError as exc:
            logger.error("Cannot read sync sources: %s", exc)
            sources = []
            result.errors.append(str(exc))

        discovery = await discover(
            sources, self.path_index, self.blocklist, data_dir=self.data_dir
        )
        result.discovery = discovery.stats
        result.discovery.errors += len(result.errors)
        result.errors.extend(discovery.errors)

        if options.dry_run:
            logger.info(
                "Dry run: %d new, %d existing, %d skipped",
                discovery.stats.new_files,
                discovery.stats.existing_files,
                discovery.stats.skipped_files,
            )
            return result

        await self._process(discovery, result)

        if options.push:
            pushed = await self.git.commit_and_push(commit_message(result.processing.processed))
            result.git_pushed = pushed.pushed
            if not pushed.ok:
                result.git_error = (
                    f"{result.git_error}; {pushed.error}" if result.git_error else pushed.error
                )

        logger.info(
            "Sync finished: %d processed, %d error(s), %d moved%s",
            result.processing.processed,
            result.processing.errors,
            result.processing.moved,
            f", git error: {result.git_error}" if result.git_error else "",
        )
        return result

    async def _process(self, discovery: DiscoveryResult, result: SyncResult) -> None:
        summary = result.processing

        for remote in discovery.remote:
            try:
                await self.pipeline.index_existing(remote)
            except StorageError:
                raise
            except Exception as exc:
                logger.exception("Failed to index remote document %s", remote.document_id)
                summary.errors += 1
                result.errors.append(f"Error indexing {remote.document_id}: {exc}")
                continue
            await self.path_index.upsert(
                remote.document_id, remote.source_path, remote.content_hash
            )
            summary.indexed_remote += 1

        for file in discovery.files:
            try:
                ingested = await self.pipeline.ingest(file)
            except StorageError:
                raise
            except Exception as exc:
                logger.exception("Failed to ingest %s", file.absolute_path)
                summary.errors += 1
                result.errors.append(f"Error processing {file.absolute_path}: {exc}")
                continue
            await self.path_index.upsert(
                ingested.document_id, str(file.absolute_path), file.content_hash
            )
            summary.processed += 1
            summary.titles.append(ingested.title)

        for move in discovery.moved:
            # Remote documents that failed to index have no entry to move
            if await self.path_index.lookup(move.document_id) is None:
                continue
            await self.path_index.upsert(move.document_id, move.new_path, move.content_hash)
            summary.moved += 1
