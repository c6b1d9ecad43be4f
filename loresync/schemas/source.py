"""Sync-source schemas."""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from loresync.filesystem.sources_config import SyncSource

SourceName = Annotated[str, Field(min_length=1, max_length=100, pattern=r"^[A-Za-z0-9][\w.-]*$")]
NonEmpty = Annotated[str, Field(min_length=1)]


class SourceResponse(BaseModel):
    name: str
    path: str
    glob: str
    project: str
    enabled: bool

    @classmethod
    def from_source(cls, source: SyncSource) -> SourceResponse:
        return cls(
            name=source.name,
            path=source.root_path,
            glob=source.glob_pattern,
            project=source.target_project,
            enabled=source.enabled,
        )


class SourceCreate(BaseModel):
    """Request to add a sync source."""

    name: SourceName
    path: NonEmpty
    glob: NonEmpty = "**/*"
    project: NonEmpty = "default"
    enabled: bool = True


class SourceUpdate(BaseModel):
    """Partial update; omitted fields keep their value."""

    path: NonEmpty | None = None
    glob: NonEmpty | None = None
    project: NonEmpty | None = None
    enabled: bool | None = None
