"""Daemon status file: lets other processes report on the daemon without IPC.

The file is a serialization boundary only. The scheduler never reads it back
to make decisions.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from pydantic import BaseModel, ValidationError

from loresync.services.datetime_service import format_iso, now_utc, seconds_since

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

    from loresync.services.sync_service import SyncResult

logger = logging.getLogger(__name__)


class LastSyncSummary(BaseModel):
    files_scanned: int = 0
    files_processed: int = 0
    errors: int = 0
    git_error: str | None = None


class DaemonStatus(BaseModel):
    pid: int
    started_at: str
    last_sync_at: str | None = None
    last_sync_result: LastSyncSummary | None = None


def read_status(path: Path) -> DaemonStatus | None:
    """Read the status file. Missing or unreadable files yield None."""
    if not path.exists():
        return None
    try:
        return DaemonStatus.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValidationError) as exc:
        logger.warning("Ignoring unreadable status file %s: %s", path, exc)
        return None


def write_status(path: Path, status: DaemonStatus) -> None:
    """Replace the status file atomically so readers never see a partial write."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(status.model_dump_json(indent=2) + "\n", encoding="utf-8")
    os.replace(tmp_path, path)


def summarize_result(result: SyncResult) -> LastSyncSummary:
    return LastSyncSummary(
        files_scanned=result.discovery.total_files,
        files_processed=result.processing.processed,
        errors=result.discovery.errors + result.processing.errors,
        git_error=result.git_error,
    )


def mark_started(path: Path, pid: int | None = None) -> DaemonStatus:
    """Record a daemon start, keeping the previous last-sync fields."""
    previous = read_status(path)
    status = DaemonStatus(
        pid=pid if pid is not None else os.getpid(),
        started_at=format_iso(now_utc()),
        last_sync_at=previous.last_sync_at if previous else None,
        last_sync_result=previous.last_sync_result if previous else None,
    )
    write_status(path, status)
    return status


def record_sync(path: Path, result: SyncResult, pid: int | None = None) -> DaemonStatus:
    """Record the outcome of an orchestrator run."""
    previous = read_status(path)
    pid = pid if pid is not None else os.getpid()
    started_at = previous.started_at if previous and previous.pid == pid else None
    status = DaemonStatus(
        pid=pid,
        started_at=started_at or format_iso(now_utc()),
        last_sync_at=format_iso(now_utc()),
        last_sync_result=summarize_result(result),
    )
    write_status(path, status)
    return status


def is_process_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by another user
        return True
    return True


def format_age(seconds: float) -> str:
    if seconds < 60:
        return "just now"
    minutes = int(seconds // 60)
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


def describe_status(status: DaemonStatus | None, now: datetime | None = None) -> str:
    """One-line summary such as ``daemon running (pid 42), last synced 3m ago``."""
    if status is None:
        return "daemon not running, never synced"
    if is_process_alive(status.pid):
        line = f"daemon running (pid {status.pid})"
    else:
        line = "daemon not running"
    if status.last_sync_at is None:
        return f"{line}, never synced"
    line = f"{line}, last synced {format_age(seconds_since(status.last_sync_at, now))}"
    summary = status.last_sync_result
    if summary is not None and summary.errors:
        line = f"{line} ({summary.errors} error(s))"
    return line
