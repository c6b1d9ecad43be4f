"""Discovery: find files under sync sources and classify them by content hash.

Discovery never writes. It reports which files are new, which content is
already indexed (and where it moved to), and which hashes are blocked. The
orchestrator applies the results.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
import re
from collections import defaultdict
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING

from loresync.exceptions import SourceConfigError
from loresync.filesystem.data_repo import CONTENT_FILENAME, scan_repository
from loresync.filesystem.sources_config import enabled_sources
from loresync.services.hash_service import hash_file, hash_file_async

if TYPE_CHECKING:
    from collections.abc import Iterable, Set

    from loresync.filesystem.data_repo import SourceMetadata
    from loresync.filesystem.sources_config import SyncSource
    from loresync.services.blocklist import Blocklist
    from loresync.services.path_index import PathIndex, PathIndexEntry

logger = logging.getLogger(__name__)

_SKIPPED_DIRS = frozenset({"node_modules", "__pycache__"})


@dataclass(frozen=True)
class DiscoveredFile:
    """A file found under a sync source, fingerprinted."""

    absolute_path: Path
    relative_path: str
    content_hash: str
    size: int
    mtime: float
    source_name: str
    project: str
    previous_document_id: str | None = None  # in-place edit of this document
    ctime: float = 0.0


@dataclass(frozen=True)
class RemoteDocument:
    """A document in the data repository that this machine has not indexed yet."""

    document_id: str
    content_hash: str
    title: str
    source_path: str
    directory: Path
    metadata: SourceMetadata


@dataclass(frozen=True)
class PathMove:
    """Indexed content seen at a different path than the index remembers."""

    document_id: str
    old_path: str
    new_path: str
    content_hash: str


@dataclass
class DiscoveryStats:
    sources_scanned: int = 0
    total_files: int = 0
    new_files: int = 0
    existing_files: int = 0
    skipped_files: int = 0
    edited_files: int = 0
    remote_files: int = 0
    errors: int = 0


@dataclass
class SourceScan:
    """Fingerprinted files of one source, plus the per-file and per-source errors."""

    source_name: str
    files: list[DiscoveredFile] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class RemoteScan:
    documents: list[RemoteDocument] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class DiscoveryResult:
    files: list[DiscoveredFile] = field(default_factory=list)
    remote: list[RemoteDocument] = field(default_factory=list)
    moved: list[PathMove] = field(default_factory=list)
    stats: DiscoveryStats = field(default_factory=DiscoveryStats)
    errors: list[str] = field(default_factory=list)


# ── Glob matching ────────────────────────────────────


@functools.lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a source glob into an anchored regex.

    ``**/`` matches zero or more directories, ``**`` anything, ``*`` anything
    within one path segment, ``?`` one character, ``{md,txt}`` alternatives.
    """
    parts: list[str] = []
    depth = 0
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
            continue
        if pattern.startswith("**", i):
            parts.append(".*")
            i += 2
            continue
        ch = pattern[i]
        if ch == "*":
            parts.append("[^/]*")
        elif ch == "?":
            parts.append("[^/]")
        elif ch == "{":
            depth += 1
            parts.append("(?:")
        elif ch == "}" and depth:
            depth -= 1
            parts.append(")")
        elif ch == "," and depth:
            parts.append("|")
        else:
            parts.append(re.escape(ch))
        i += 1
    if depth:
        raise SourceConfigError(f"Unbalanced braces in glob {pattern!r}")
    return re.compile("^" + "".join(parts) + "$")


def matches_glob(relative_path: str, pattern: str) -> bool:
    return glob_to_regex(pattern).match(relative_path) is not None


def source_for_path(path: Path, sources: Iterable[SyncSource]) -> SyncSource | None:
    """Return the first enabled source whose root and glob cover an absolute path."""
    for source in sources:
        if not source.enabled:
            continue
        try:
            relative = path.relative_to(source.expanded_root)
        except ValueError:
            continue
        if any(part.startswith(".") or part in _SKIPPED_DIRS for part in relative.parts[:-1]):
            continue
        if matches_glob(relative.as_posix(), source.glob_pattern):
            return source
    return None


# ── Scanning ─────────────────────────────────────────


def enumerate_source_files(root: Path, pattern: str) -> tuple[list[tuple[Path, str]], list[str]]:
    """Walk root and return (absolute, relative) pairs matching pattern, plus walk errors.

    Hidden entries, node_modules and __pycache__ are skipped. Symlinked
    directories are not descended into.
    """
    regex = glob_to_regex(pattern)
    matched: list[tuple[Path, str]] = []
    errors: list[str] = []

    def _on_error(exc: OSError) -> None:
        logger.warning("Cannot scan %s: %s", exc.filename, exc)
        errors.append(f"Error scanning {exc.filename}: {exc.strerror or exc}")

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        dirnames[:] = sorted(
            d for d in dirnames if not d.startswith(".") and d not in _SKIPPED_DIRS
        )
        for filename in sorted(filenames):
            if filename.startswith("."):
                continue
            full = Path(dirpath) / filename
            rel = full.relative_to(root).as_posix()
            if regex.match(rel) and full.is_file():
                matched.append((full, rel))
    return matched, errors


async def scan_source(source: SyncSource) -> SourceScan:
    """Enumerate and hash every file of one source.

    A missing root is a single error for this source. Unreadable files are
    logged, counted and skipped.
    """
    scan = SourceScan(source_name=source.name)
    root = source.expanded_root
    if not root.is_dir():
        logger.warning("Source %s: directory not found: %s", source.name, root)
        scan.errors.append(f"Directory not found: {root}")
        return scan

    try:
        listing, walk_errors = await asyncio.to_thread(
            enumerate_source_files, root, source.glob_pattern
        )
    except SourceConfigError as exc:
        scan.errors.append(f"Source {source.name}: {exc}")
        return scan
    scan.errors.extend(walk_errors)

    for full, rel in listing:
        try:
            stat = await asyncio.to_thread(full.stat)
            content_hash = await hash_file_async(full)
        except OSError as exc:
            logger.warning("Skipping unreadable file %s: %s", full, exc)
            scan.errors.append(f"Error processing {full}: {exc}")
            continue
        scan.files.append(
            DiscoveredFile(
                absolute_path=full,
                relative_path=rel,
                content_hash=content_hash,
                size=stat.st_size,
                mtime=stat.st_mtime,
                ctime=stat.st_ctime,
                source_name=source.name,
                project=source.target_project,
            )
        )
    return scan


def _read_remote(data_dir: Path) -> RemoteScan:
    repo = scan_repository(data_dir)
    remote = RemoteScan(errors=list(repo.errors))
    for metadata, directory in repo.documents:
        content_path = directory / CONTENT_FILENAME
        try:
            content_hash = metadata.content_hash or hash_file(content_path)
        except OSError as exc:
            remote.errors.append(f"Error processing {content_path}: {exc}")
            continue
        remote.documents.append(
            RemoteDocument(
                document_id=metadata.id,
                content_hash=content_hash,
                title=metadata.title,
                source_path=metadata.source_path or str(content_path),
                directory=directory,
                metadata=metadata,
            )
        )
    return remote


async def scan_remote(data_dir: Path) -> RemoteScan:
    """Read document metadata from the data repository (pulled from other machines)."""
    return await asyncio.to_thread(_read_remote, data_dir)


# ── Classification ───────────────────────────────────


def _recency(file: DiscoveredFile) -> tuple[float, float, str]:
    # ctime separates a copy that kept its mtime (cp -p) from the original
    return (file.mtime, file.ctime, str(file.absolute_path))


def classify(
    scans: list[SourceScan],
    entries: Iterable[PathIndexEntry],
    blocked: Set[str],
    remote: RemoteScan | None = None,
) -> DiscoveryResult:
    """Classify scanned files against the path index and the blocklist.

    The outcome depends only on the set of files, never on scan order:

    - blocked hash: skipped
    - hash tracked by the index: existing; when the most recently modified
      file carrying the hash is not where the index points, a move is reported
    - otherwise new; of several untracked files sharing one hash, only the most
      recently modified is new and the rest count as existing duplicates
    - a new file at a path the index already knows is an in-place edit and
      keeps that document id, unless the old content lives on elsewhere or was
      deleted
    """
    result = DiscoveryResult()
    stats = result.stats
    stats.sources_scanned = len(scans)

    by_hash: dict[str, PathIndexEntry] = {}
    by_path: dict[str, PathIndexEntry] = {}
    indexed_ids: set[str] = set()
    for entry in sorted(entries, key=lambda e: e.document_id):
        by_hash.setdefault(entry.content_hash, entry)
        by_path.setdefault(entry.last_path, entry)
        indexed_ids.add(entry.document_id)

    # Remote documents claim their hashes before local files are classified,
    # so a file that another machine already ingested is not ingested again.
    claimed: dict[str, RemoteDocument] = {}
    if remote is not None:
        result.errors.extend(remote.errors)
        for doc in sorted(remote.documents, key=lambda d: d.document_id):
            if doc.document_id in indexed_ids or doc.content_hash in blocked:
                continue
            if doc.content_hash in by_hash or doc.content_hash in claimed:
                continue
            claimed[doc.content_hash] = doc
            result.remote.append(doc)
        stats.remote_files = len(result.remote)

    unique: dict[str, DiscoveredFile] = {}
    for scan in sorted(scans, key=lambda s: s.source_name):
        result.errors.extend(scan.errors)
        for file in scan.files:
            unique.setdefault(str(file.absolute_path), file)
    stats.total_files = len(unique)

    groups: dict[str, list[DiscoveredFile]] = defaultdict(list)
    for file in unique.values():
        groups[file.content_hash].append(file)

    for content_hash in sorted(groups):
        group = groups[content_hash]
        if content_hash in blocked:
            stats.skipped_files += len(group)
            continue

        representative = max(group, key=_recency)
        rep_path = str(representative.absolute_path)

        tracked = by_hash.get(content_hash)
        if tracked is not None:
            stats.existing_files += len(group)
            if tracked.last_path != rep_path:
                result.moved.append(
                    PathMove(tracked.document_id, tracked.last_path, rep_path, content_hash)
                )
            continue

        claimant = claimed.get(content_hash)
        if claimant is not None:
            stats.existing_files += len(group)
            if claimant.source_path != rep_path:
                result.moved.append(
                    PathMove(claimant.document_id, claimant.source_path, rep_path, content_hash)
                )
            continue

        previous = by_path.get(rep_path)
        # the id stays with its old content when that still exists elsewhere or was deleted
        if (
            previous is not None
            and previous.content_hash not in groups
            and previous.content_hash not in blocked
        ):
            representative = replace(representative, previous_document_id=previous.document_id)
            stats.edited_files += 1
        result.files.append(representative)
        stats.new_files += 1
        stats.existing_files += len(group) - 1

    result.files.sort(key=lambda f: str(f.absolute_path))
    stats.errors = len(result.errors)
    return result


async def discover(
    sources: list[SyncSource],
    path_index: PathIndex,
    blocklist: Blocklist,
    *,
    data_dir: Path | None = None,
) -> DiscoveryResult:
    """Scan every enabled source (and the data repository) and classify the files.

    Raises StorageError when the path index or blocklist cannot be read.
    """
    scans = [await scan_source(source) for source in enabled_sources(sources)]
    entries = await path_index.all_entries()
    blocked = await blocklist.all_hashes()
    remote = await scan_remote(data_dir) if data_dir is not None else None

    result = classify(scans, entries, blocked, remote)
    stats = result.stats
    logger.info(
        "Discovery: %d source(s), %d file(s): %d new, %d existing, %d skipped, "
        "%d remote, %d error(s)",
        stats.sources_scanned,
        stats.total_files,
        stats.new_files,
        stats.existing_files,
        stats.skipped_files,
        stats.remote_files,
        stats.errors,
    )
    return result
