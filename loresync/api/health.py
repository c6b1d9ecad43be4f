"""Health check endpoint."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from loresync.api.deps import get_runtime
from loresync.exceptions import StorageError
from loresync.runtime import Runtime

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

VERSION = "0.1.0"


class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    indexed_documents: int | None
    data_repo: str
    scheduler: str


@router.get("/api/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    runtime: Annotated[Runtime, Depends(get_runtime)],
) -> HealthResponse:
    """Report whether the path index is readable and the scheduler is running.

    ``data_repo`` is ``git`` when the data directory is a git work tree,
    ``plain`` when it only exists on disk and ``missing`` otherwise.
    """
    database = "ok"
    indexed: int | None = None
    try:
        indexed = len(await runtime.path_index.all_entries())
    except StorageError:
        logger.warning("Health check could not read the path index", exc_info=True)
        database = "error"

    data_dir = runtime.settings.data_dir
    if (data_dir / ".git").exists():
        data_repo = "git"
    elif data_dir.is_dir():
        data_repo = "plain"
    else:
        data_repo = "missing"

    scheduler = getattr(request.app.state, "scheduler", None)
    scheduler_state = scheduler.state.phase.value if scheduler and scheduler.running else "stopped"

    return HealthResponse(
        status="ok" if database == "ok" and data_repo != "missing" else "degraded",
        version=VERSION,
        database=database,
        indexed_documents=indexed,
        data_repo=data_repo,
        scheduler=scheduler_state,
    )
