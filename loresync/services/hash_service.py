"""Content hashing: the identity key for deduplication and the blocklist."""

from __future__ import annotations

import asyncio
import hashlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

_CHUNK_SIZE = 64 * 1024


def hash_bytes(data: bytes) -> str:
    """Compute SHA-256 hash of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def hash_file(file_path: Path) -> str:
    """Compute SHA-256 hash of a file.

    Raises OSError when the file cannot be read.
    """
    sha = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            sha.update(chunk)
    return sha.hexdigest()


async def hash_file_async(file_path: Path) -> str:
    """Hash a file in a worker thread so large files do not block the event loop."""
    return await asyncio.to_thread(hash_file, file_path)
