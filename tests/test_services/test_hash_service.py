"""Tests for content hashing."""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

import pytest

from loresync.services.hash_service import hash_bytes, hash_file, hash_file_async

if TYPE_CHECKING:
    from pathlib import Path


class TestHashBytes:
    def test_matches_sha256(self) -> None:
        assert hash_bytes(b"hello") == hashlib.sha256(b"hello").hexdigest()

    def test_is_hex_of_fixed_length(self) -> None:
        digest = hash_bytes(b"")
        assert len(digest) == 64
        int(digest, 16)


class TestHashFile:
    def test_file_hash_equals_bytes_hash(self, tmp_path: Path) -> None:
        path = tmp_path / "note.md"
        path.write_bytes(b"# Note\n\nbody\n")
        assert hash_file(path) == hash_bytes(b"# Note\n\nbody\n")

    def test_large_file_is_hashed_in_chunks(self, tmp_path: Path) -> None:
        data = b"x" * (64 * 1024 * 3 + 17)
        path = tmp_path / "big.bin"
        path.write_bytes(data)
        assert hash_file(path) == hash_bytes(data)

    def test_same_content_different_names_same_hash(self, tmp_path: Path) -> None:
        (tmp_path / "a.md").write_text("same")
        (tmp_path / "b.md").write_text("same")
        assert hash_file(tmp_path / "a.md") == hash_file(tmp_path / "b.md")

    def test_missing_file_raises_oserror(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            hash_file(tmp_path / "missing.md")

    @pytest.mark.asyncio
    async def test_async_variant(self, tmp_path: Path) -> None:
        path = tmp_path / "note.md"
        path.write_text("async")
        assert await hash_file_async(path) == hash_bytes(b"async")
