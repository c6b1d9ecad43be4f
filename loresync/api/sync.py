"""Sync API endpoints: manual trigger and scheduler status."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from loresync.api.deps import get_scheduler, get_settings
from loresync.config import Settings
from loresync.schemas.sync import SchedulerStatusResponse, SyncRequest, SyncResultResponse
from loresync.services.status_service import describe_status, read_status
from loresync.services.sync_service import SyncOptions
from loresync.services.watch_service import WatchScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.post("", response_model=SyncResultResponse)
async def trigger_sync(
    body: SyncRequest,
    scheduler: Annotated[WatchScheduler, Depends(get_scheduler)],
) -> SyncResultResponse:
    """Run a sync now. Waits for an in-flight run instead of starting a parallel one."""
    options = SyncOptions(pull=body.pull, push=body.push, dry_run=body.dry_run)
    logger.info("Manual sync requested: %s", options)
    result = await scheduler.request_sync(options)
    return SyncResultResponse.from_result(result)


@router.get("/status", response_model=SchedulerStatusResponse)
async def sync_status(
    scheduler: Annotated[WatchScheduler, Depends(get_scheduler)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SchedulerStatusResponse:
    daemon = read_status(settings.status_file)
    return SchedulerStatusResponse(
        phase=scheduler.state.phase.value,
        pending_paths=len(scheduler.state.pending_paths),
        runs=scheduler.runs,
        description=describe_status(daemon),
        daemon=daemon,
    )
