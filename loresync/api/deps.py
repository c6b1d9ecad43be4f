"""Shared API dependencies: settings, runtime, scheduler."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from loresync.config import Settings
from loresync.runtime import Runtime
from loresync.services.watch_service import WatchScheduler


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


def get_runtime(request: Request) -> Runtime:
    """Get the sync runtime from app state."""
    runtime: Runtime | None = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync runtime not initialized",
        )
    return runtime


def get_scheduler(request: Request) -> WatchScheduler:
    """Get the watch scheduler from app state."""
    scheduler: WatchScheduler | None = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scheduler not running",
        )
    return scheduler

