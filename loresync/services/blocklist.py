"""Blocklist: content hashes of deleted documents that must never be re-ingested.

Hashes live in the local database and are mirrored into ``deleted-hashes.json``
at the root of the data repository. That file is git-tracked, so a deletion on
one machine reaches every other machine on its next pull.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from sqlalchemy import select

from loresync.exceptions import StorageError
from loresync.models.index import BlockedHash
from loresync.services.datetime_service import format_iso, now_utc
from loresync.services.path_index import storage_session

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

BLOCKLIST_FILENAME = "deleted-hashes.json"


def load_blocklist_file(data_dir: Path) -> set[str]:
    """Load hashes from the data repository's blocklist file.

    A missing file is an empty set. A file that is present but not a JSON list
    of strings raises StorageError.
    """
    path = data_dir / BLOCKLIST_FILENAME
    if not path.exists():
        return set()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise StorageError(f"Unreadable blocklist file {path}: {exc}") from exc
    if not isinstance(data, list) or not all(isinstance(h, str) for h in data):
        raise StorageError(f"Corrupt blocklist file {path}: expected a list of hashes")
    return set(data)


def write_blocklist_file(data_dir: Path, hashes: set[str]) -> None:
    """Write hashes to the blocklist file, sorted for stable git diffs."""
    path = data_dir / BLOCKLIST_FILENAME
    data_dir.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(sorted(hashes), indent=2) + "\n", encoding="utf-8")


class Blocklist:
    """Append-only set of blocked content hashes."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        data_dir: Path | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.data_dir = data_dir

    async def _db_hashes(self) -> set[str]:
        async with storage_session(self.session_factory, "read blocklist") as session:
            result = await session.execute(select(BlockedHash.content_hash))
            return set(result.scalars().all())

    async def all_hashes(self) -> set[str]:
        """Every blocked hash: database rows plus the data repository file."""
        hashes = await self._db_hashes()
        if self.data_dir is not None:
            hashes |= load_blocklist_file(self.data_dir)
        return hashes

    async def contains(self, content_hash: str) -> bool:
        async with storage_session(self.session_factory, "read blocklist") as session:
            if await session.get(BlockedHash, content_hash) is not None:
                return True
        if self.data_dir is not None:
            return content_hash in load_blocklist_file(self.data_dir)
        return False

    async def add(self, *hashes: str | None) -> int:
        """Block one or more hashes. Empty values and known hashes are skipped.

        Returns the number of newly blocked hashes.
        """
        wanted = {h for h in hashes if h}
        if not wanted:
            return 0
        blocked_at = format_iso(now_utc())
        async with storage_session(self.session_factory, "write blocklist") as session:
            result = await session.execute(
                select(BlockedHash.content_hash).where(BlockedHash.content_hash.in_(wanted))
            )
            known = set(result.scalars().all())
            fresh = sorted(wanted - known)
            for content_hash in fresh:
                session.add(BlockedHash(content_hash=content_hash, blocked_at=blocked_at))
            await session.commit()
        if fresh:
            logger.info("Blocked %d content hash(es)", len(fresh))
        return len(fresh)

    async def merge_file(self) -> int:
        """Union the database and the data repository file into both.

        Returns the number of hashes imported from the file. The file is only
        rewritten when the database holds hashes it does not.
        """
        if self.data_dir is None:
            return 0
        file_hashes = load_blocklist_file(self.data_dir)
        imported = await self.add(*file_hashes)
        db_hashes = await self._db_hashes()
        if not db_hashes <= file_hashes:
            write_blocklist_file(self.data_dir, file_hashes | db_hashes)
        if imported:
            logger.info("Imported %d blocked hash(es) from %s", imported, BLOCKLIST_FILENAME)
        return imported
