"""TOML reader/writer for sync-sources.toml.

The file is machine-specific and lives in the config directory, not in the
git-tracked data repository::

    version = 1

    [[sources]]
    name = "notes"
    path = "~/Documents/notes"
    glob = "**/*.md"
    project = "notes"
    enabled = true
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import tomli_w

from loresync.config import SOURCES_FILENAME
from loresync.exceptions import SourceConfigError

logger = logging.getLogger(__name__)

CONFIG_VERSION = 1


@dataclass(frozen=True)
class SyncSource:
    """A watched directory and the project its documents belong to."""

    name: str
    root_path: str
    glob_pattern: str = "**/*"
    target_project: str = "default"
    enabled: bool = True

    @property
    def expanded_root(self) -> Path:
        return Path(self.root_path).expanduser()


def _require_str(entry: dict[str, Any], key: str, label: str) -> str:
    value = entry.get(key)
    if not isinstance(value, str) or not value.strip():
        msg = f"Invalid source {label}: missing or invalid '{key}'"
        raise SourceConfigError(msg)
    return value


def parse_sources_config(config_dir: Path) -> list[SyncSource]:
    """Parse sync-sources.toml from the config directory.

    A missing file means no sources are configured.
    """
    config_path = config_dir / SOURCES_FILENAME
    if not config_path.exists():
        return []

    try:
        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        raise SourceConfigError(f"Cannot read {SOURCES_FILENAME}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise SourceConfigError(f"Invalid {SOURCES_FILENAME}: {exc}") from exc

    version = data.get("version", CONFIG_VERSION)
    if version != CONFIG_VERSION:
        logger.warning("Unknown sources config version %s, expected %d", version, CONFIG_VERSION)

    raw_sources = data.get("sources", [])
    if not isinstance(raw_sources, list):
        raise SourceConfigError(f"Invalid {SOURCES_FILENAME}: 'sources' must be an array")

    sources: list[SyncSource] = []
    seen: set[str] = set()
    for index, entry in enumerate(raw_sources):
        if not isinstance(entry, dict):
            raise SourceConfigError(f"Invalid source #{index}: expected a table")
        name = _require_str(entry, "name", f"#{index}")
        if name in seen:
            raise SourceConfigError(f"Duplicate source name: {name!r}")
        seen.add(name)
        enabled = entry.get("enabled", True)
        sources.append(
            SyncSource(
                name=name,
                root_path=_require_str(entry, "path", repr(name)),
                glob_pattern=_require_str(entry, "glob", repr(name)),
                target_project=_require_str(entry, "project", repr(name)),
                enabled=enabled if isinstance(enabled, bool) else True,
            )
        )
    return sources


def write_sources_config(config_dir: Path, sources: list[SyncSource]) -> None:
    """Write sources back to sync-sources.toml."""
    sources_data: list[dict[str, Any]] = [
        {
            "name": source.name,
            "path": source.root_path,
            "glob": source.glob_pattern,
            "project": source.target_project,
            "enabled": source.enabled,
        }
        for source in sources
    ]
    config_dir.mkdir(parents=True, exist_ok=True)
    config_path = config_dir / SOURCES_FILENAME
    config_path.write_bytes(
        tomli_w.dumps({"version": CONFIG_VERSION, "sources": sources_data}).encode("utf-8")
    )


def enabled_sources(sources: list[SyncSource]) -> list[SyncSource]:
    return [source for source in sources if source.enabled]


def _find(sources: list[SyncSource], name: str) -> int:
    for index, source in enumerate(sources):
        if source.name == name:
            return index
    raise SourceConfigError(f"Source {name!r} not found")


def add_sync_source(config_dir: Path, source: SyncSource) -> list[SyncSource]:
    """Append a source; names must be unique."""
    for field_name in ("name", "root_path", "glob_pattern", "target_project"):
        if not getattr(source, field_name).strip():
            raise SourceConfigError(f"Source field '{field_name}' must not be empty")
    sources = parse_sources_config(config_dir)
    if any(existing.name == source.name for existing in sources):
        raise SourceConfigError(f"Source with name {source.name!r} already exists")
    sources.append(source)
    write_sources_config(config_dir, sources)
    logger.info("Added sync source %s (%s)", source.name, source.root_path)
    return sources


def update_sync_source(
    config_dir: Path,
    name: str,
    *,
    root_path: str | None = None,
    glob_pattern: str | None = None,
    target_project: str | None = None,
    enabled: bool | None = None,
) -> SyncSource:
    """Update fields of an existing source and return the new value."""
    sources = parse_sources_config(config_dir)
    index = _find(sources, name)
    changes: dict[str, Any] = {}
    if root_path is not None:
        changes["root_path"] = root_path
    if glob_pattern is not None:
        changes["glob_pattern"] = glob_pattern
    if target_project is not None:
        changes["target_project"] = target_project
    if enabled is not None:
        changes["enabled"] = enabled
    updated = replace(sources[index], **changes)
    sources[index] = updated
    write_sources_config(config_dir, sources)
    return updated


def remove_sync_source(config_dir: Path, name: str) -> SyncSource:
    """Remove a source by name and return it."""
    sources = parse_sources_config(config_dir)
    removed = sources.pop(_find(sources, name))
    write_sources_config(config_dir, sources)
    logger.info("Removed sync source %s", name)
    return removed
