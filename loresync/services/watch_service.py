"""Debounce/watch scheduler.

Filesystem events feed a small state machine. A burst of events becomes one
orchestrator run after a quiet period, and a slower periodic timer pulls from
the remote. Runs never overlap.

State changes go through pure transition functions so the timing rules can be
tested without an event loop.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from watchfiles import Change, awatch

from loresync.exceptions import SourceConfigError
from loresync.services.discovery_service import source_for_path
from loresync.services.sync_service import SyncOptions

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Coroutine, Sequence
    from typing import Any

    from loresync.filesystem.sources_config import SyncSource
    from loresync.services.sync_service import SyncResult

logger = logging.getLogger(__name__)


class SchedulerPhase(StrEnum):
    IDLE = "idle"
    PENDING = "pending"
    SYNCING = "syncing"


@dataclass(frozen=True)
class SchedulerState:
    phase: SchedulerPhase = SchedulerPhase.IDLE
    pending_paths: frozenset[str] = frozenset()
    follow_up: bool = False  # a push run is owed after a pull-only run found new files


def on_change(state: SchedulerState, path: str) -> SchedulerState:
    """Queue a changed path. While syncing, changes only accumulate."""
    pending = state.pending_paths | {path}
    if state.phase is SchedulerPhase.SYNCING:
        return replace(state, pending_paths=pending)
    return replace(state, phase=SchedulerPhase.PENDING, pending_paths=pending)


def on_debounce_fired(state: SchedulerState) -> tuple[SchedulerState, bool]:
    """Returns the new state and whether a push run should start now."""
    if state.phase is not SchedulerPhase.PENDING:
        return state, False
    return SchedulerState(phase=SchedulerPhase.SYNCING), True


def on_sync_started(state: SchedulerState) -> SchedulerState:
    # Pending paths survive periodic and manual runs; those runs do not push.
    return replace(state, phase=SchedulerPhase.SYNCING)


def on_sync_finished(
    state: SchedulerState, *, follow_up: bool = False
) -> tuple[SchedulerState, bool]:
    """Returns the new state and whether the debounce timer must be re-armed."""
    follow_up = follow_up or state.follow_up
    if state.pending_paths or follow_up:
        return (
            SchedulerState(
                phase=SchedulerPhase.PENDING,
                pending_paths=state.pending_paths,
                follow_up=follow_up,
            ),
            True,
        )
    return SchedulerState(), False


# ── Change sources ───────────────────────────────────


class ChangeKind(StrEnum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class FileChange:
    kind: ChangeKind
    path: Path


class ChangeSource(Protocol):
    def changes(self) -> AsyncIterator[set[FileChange]]: ...

    def close(self) -> None: ...


_KINDS = {
    Change.added: ChangeKind.ADDED,
    Change.modified: ChangeKind.MODIFIED,
    Change.deleted: ChangeKind.DELETED,
}


class WatchfilesChangeSource:
    """Batches of changes from ``watchfiles.awatch``; polling can be forced."""

    def __init__(
        self,
        paths: Sequence[Path],
        *,
        force_polling: bool = False,
        debounce_ms: int = 50,
    ) -> None:
        self.paths = list(paths)
        self.force_polling = force_polling
        self.debounce_ms = debounce_ms
        self._stop_event = asyncio.Event()

    async def changes(self) -> AsyncIterator[set[FileChange]]:
        if not self.paths:
            logger.info("No existing source directories to watch")
            await self._stop_event.wait()
            return
        logger.info("Watching %s", ", ".join(str(p) for p in self.paths))
        async for raw in awatch(
            *self.paths,
            stop_event=self._stop_event,
            force_polling=self.force_polling,
            debounce=self.debounce_ms,
        ):
            yield {FileChange(_KINDS[change], Path(path)) for change, path in raw}

    def close(self) -> None:
        self._stop_event.set()


# ── Scheduler ────────────────────────────────────────


class Syncer(Protocol):
    async def sync(self, options: SyncOptions | None = None) -> SyncResult: ...


class WatchScheduler:
    """Owns the scheduler state, the two timers and the watcher task."""

    def __init__(
        self,
        orchestrator: Syncer,
        *,
        change_source: ChangeSource | None = None,
        sources_loader: Callable[[], list[SyncSource]] | None = None,
        debounce_seconds: float = 2.0,
        pull_interval_seconds: float = 300.0,
        on_result: Callable[[SyncResult], None] | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.change_source = change_source
        self.sources_loader = sources_loader
        self.debounce_seconds = debounce_seconds
        self.pull_interval_seconds = pull_interval_seconds
        self.on_result = on_result

        self.state = SchedulerState()
        self.runs = 0
        self.last_result: SyncResult | None = None
        self._sources: list[SyncSource] = []
        self._run_lock = asyncio.Lock()
        self._debounce_task: asyncio.Task[None] | None = None
        self._periodic_task: asyncio.Task[None] | None = None
        self._watch_task: asyncio.Task[None] | None = None
        self._sync_tasks: set[asyncio.Task[Any]] = set()
        self._started = False
        self._stopping = False

    @property
    def running(self) -> bool:
        return self._started and not self._stopping

    async def start(self, *, initial_sync: bool = True) -> None:
        if self._started:
            return
        self._started = True
        self._refresh_sources()
        if self.change_source is not None:
            self._watch_task = asyncio.create_task(self._watch_loop(), name="loresync-watch")
        self._periodic_task = asyncio.create_task(self._periodic_loop(), name="loresync-pull")
        if initial_sync:
            self._spawn(self._execute(SyncOptions(pull=True, push=True)))
        logger.info(
            "Scheduler started (debounce %.1fs, pull every %.0fs)",
            self.debounce_seconds,
            self.pull_interval_seconds,
        )

    async def stop(self) -> None:
        """Cancel both timers and the watcher; an in-flight run is allowed to finish."""
        self._stopping = True
        if self.change_source is not None:
            self.change_source.close()
        timers = [
            task
            for task in (self._debounce_task, self._periodic_task, self._watch_task)
            if task is not None
        ]
        for task in timers:
            task.cancel()
        await asyncio.gather(*timers, return_exceptions=True)
        self._debounce_task = self._periodic_task = self._watch_task = None
        if self._sync_tasks:
            await asyncio.gather(*self._sync_tasks, return_exceptions=True)
        logger.info("Scheduler stopped")

    def notify(self, change: FileChange) -> bool:
        """Feed one filesystem event. Returns True when it queued a sync."""
        if self._stopping or change.kind is ChangeKind.DELETED:
            return False
        if self.sources_loader is not None and source_for_path(change.path, self._sources) is None:
            return False
        self.state = on_change(self.state, str(change.path))
        if self.state.phase is SchedulerPhase.PENDING:
            self._arm_debounce()
        return True

    async def request_sync(self, options: SyncOptions | None = None) -> SyncResult:
        """Run a sync now, after any in-flight run. Errors propagate to the caller."""
        result = await self._execute(options or SyncOptions(), propagate=True)
        if result is None:
            raise RuntimeError("Sync run produced no result")
        return result

    async def wait_idle(self) -> None:
        """Wait until no debounce timer is armed and no run is queued or running."""
        while True:
            pending = [
                task
                for task in (self._debounce_task, *self._sync_tasks)
                if task is not None and not task.done()
            ]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ── internals ──

    def _refresh_sources(self) -> None:
        if self.sources_loader is None:
            return
        try:
            self._sources = self.sources_loader()
        except SourceConfigError as exc:
            logger.warning("Keeping previous sync sources: %s", exc)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._sync_tasks.add(task)
        task.add_done_callback(self._sync_tasks.discard)
        return task

    def _arm_debounce(self) -> None:
        if self._stopping:
            return
        if self._debounce_task is not None:
            self._debounce_task.cancel()
        self._debounce_task = asyncio.create_task(
            self._debounce_after(), name="loresync-debounce"
        )

    async def _debounce_after(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        self._debounce_task = None
        self.state, start = on_debounce_fired(self.state)
        if start:
            self._spawn(self._execute(SyncOptions(pull=False, push=True)))

    async def _periodic_loop(self) -> None:
        while True:
            await asyncio.sleep(self.pull_interval_seconds)
            if self.state.phase is SchedulerPhase.SYNCING:
                logger.debug("Skipping periodic pull: sync in progress")
                continue
            run = self._spawn(self._execute(SyncOptions(pull=True, push=False)))
            # the run outlives a cancelled loop; stop() gathers it
            await asyncio.wait({run})

    async def _watch_loop(self) -> None:
        assert self.change_source is not None
        try:
            async for batch in self.change_source.changes():
                for change in batch:
                    self.notify(change)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("File watcher failed; periodic sync continues")

    async def _execute(self, options: SyncOptions, *, propagate: bool = False) -> SyncResult | None:
        async with self._run_lock:
            self.state = on_sync_started(self.state)
            self.runs += 1
            result: SyncResult | None = None
            try:
                result = await self.orchestrator.sync(options)
            except Exception:
                if propagate:
                    raise
                logger.exception("Sync run failed")
            finally:
                follow_up = (
                    result is not None
                    and options.pull
                    and not options.push
                    and result.discovery.new_files > 0
                )
                self.state, rearm = on_sync_finished(self.state, follow_up=follow_up)
                if rearm:
                    self._arm_debounce()
                self._refresh_sources()

        if result is not None:
            self.last_result = result
            self._report(result)
        return result

    def _report(self, result: SyncResult) -> None:
        if self.on_result is None:
            return
        try:
            self.on_result(result)
        except Exception:
            logger.exception("Failed to record sync result")
