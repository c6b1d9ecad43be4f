"""Sync-related schemas."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from loresync.services.status_service import DaemonStatus

if TYPE_CHECKING:
    from loresync.services.sync_service import SyncResult


class SyncRequest(BaseModel):
    """Manual sync trigger."""

    pull: bool = True
    push: bool = True
    dry_run: bool = False


class DiscoveryStatsResponse(BaseModel):
    sources_scanned: int = Field(default=0, ge=0)
    total_files: int = Field(default=0, ge=0)
    new_files: int = Field(default=0, ge=0)
    existing_files: int = Field(default=0, ge=0)
    skipped_files: int = Field(default=0, ge=0)
    edited_files: int = Field(default=0, ge=0)
    remote_files: int = Field(default=0, ge=0)
    errors: int = Field(default=0, ge=0)


class ProcessingResponse(BaseModel):
    processed: int = Field(default=0, ge=0)
    titles: list[str] = Field(default_factory=list)
    errors: int = Field(default=0, ge=0)
    indexed_remote: int = Field(default=0, ge=0)
    moved: int = Field(default=0, ge=0)


class SyncResultResponse(BaseModel):
    """Report of one sync run."""

    git_pulled: bool
    git_pushed: bool
    git_error: str | None = None
    dry_run: bool = False
    discovery: DiscoveryStatsResponse
    processing: ProcessingResponse
    errors: list[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: SyncResult) -> SyncResultResponse:
        return cls.model_validate(result.to_dict())


class SchedulerStatusResponse(BaseModel):
    """Scheduler phase plus the persisted daemon status."""

    phase: str
    pending_paths: int = Field(ge=0)
    runs: int = Field(ge=0)
    description: str
    daemon: DaemonStatus | None = None
