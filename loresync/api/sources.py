"""Sync-source configuration endpoints.

Sources are read fresh by every sync run, so changes apply from the next run.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from loresync.api.deps import get_settings
from loresync.config import Settings
from loresync.filesystem.sources_config import (
    SyncSource,
    add_sync_source,
    parse_sources_config,
    remove_sync_source,
    update_sync_source,
)
from loresync.schemas.source import SourceCreate, SourceResponse, SourceUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sources", tags=["sources"])


def _require_source(settings: Settings, name: str) -> None:
    if not any(source.name == name for source in parse_sources_config(settings.config_dir)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Source not found")


@router.get("", response_model=list[SourceResponse])
async def list_sources(
    settings: Annotated[Settings, Depends(get_settings)],
) -> list[SourceResponse]:
    return [SourceResponse.from_source(s) for s in parse_sources_config(settings.config_dir)]


@router.post("", response_model=SourceResponse, status_code=status.HTTP_201_CREATED)
async def create_source(
    body: SourceCreate,
    settings: Annotated[Settings, Depends(get_settings)],
) -> SourceResponse:
    source = SyncSource(
        name=body.name,
        root_path=body.path,
        glob_pattern=body.glob,
        target_project=body.project,
        enabled=body.enabled,
    )
    add_sync_source(settings.config_dir, source)
    return SourceResponse.from_source(source)


@router.patch("/{name}", response_model=SourceResponse)
async def patch_source(
    name: str,
    body: SourceUpdate,
    settings: Annotated[Settings, Depends(get_settings)],
) -> SourceResponse:
    _require_source(settings, name)
    updated = update_sync_source(
        settings.config_dir,
        name,
        root_path=body.path,
        glob_pattern=body.glob,
        target_project=body.project,
        enabled=body.enabled,
    )
    logger.info("Updated sync source %s", name)
    return SourceResponse.from_source(updated)


@router.delete("/{name}", response_model=SourceResponse)
async def delete_source(
    name: str,
    settings: Annotated[Settings, Depends(get_settings)],
) -> SourceResponse:
    _require_source(settings, name)
    return SourceResponse.from_source(remove_sync_source(settings.config_dir, name))
