"""Tests for the data repository layout."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import pytest

from loresync.filesystem.data_repo import (
    CONTENT_FILENAME,
    METADATA_FILENAME,
    SOURCES_DIRNAME,
    SourceInsights,
    SourceMetadata,
    ensure_data_dir,
    is_document_id,
    read_content,
    read_insights,
    read_metadata,
    remove_source,
    scan_repository,
    source_dir,
    write_source,
)

if TYPE_CHECKING:
    from pathlib import Path


def _metadata(document_id: str, **overrides: object) -> SourceMetadata:
    fields: dict[str, object] = {
        "id": document_id,
        "title": "A note",
        "created_at": "2026-01-01T00:00:00+00:00",
        "imported_at": "2026-01-02T00:00:00+00:00",
        "content_hash": "abc",
    }
    fields.update(overrides)
    return SourceMetadata.model_validate(fields)


class TestDocumentIds:
    def test_uuid_is_document_id(self) -> None:
        assert is_document_id(str(uuid.uuid4()))

    def test_traversal_is_rejected(self, tmp_path: Path) -> None:
        assert not is_document_id("../etc")
        with pytest.raises(ValueError, match="Invalid document id"):
            source_dir(tmp_path, "../etc")


class TestEnsureDataDir:
    def test_creates_scaffold(self, tmp_path: Path) -> None:
        ensure_data_dir(tmp_path / "data")
        assert (tmp_path / "data" / SOURCES_DIRNAME).is_dir()

    def test_file_in_the_way_raises(self, tmp_path: Path) -> None:
        (tmp_path / "data").write_text("x")
        with pytest.raises(NotADirectoryError):
            ensure_data_dir(tmp_path / "data")


class TestWriteAndRead:
    def test_write_source_creates_all_files(self, tmp_path: Path) -> None:
        doc_id = str(uuid.uuid4())
        directory = write_source(
            tmp_path, _metadata(doc_id), "# Body\n", SourceInsights(summary="s", themes=["t"])
        )
        assert (directory / CONTENT_FILENAME).read_text() == "# Body\n"
        assert read_content(tmp_path, doc_id) == "# Body\n"
        assert read_insights(tmp_path, doc_id).themes == ["t"]
        metadata = read_metadata(tmp_path, doc_id)
        assert metadata is not None
        assert metadata.title == "A note"

    def test_missing_insights_are_empty(self, tmp_path: Path) -> None:
        doc_id = str(uuid.uuid4())
        assert read_insights(tmp_path, doc_id) == SourceInsights()
        assert read_metadata(tmp_path, doc_id) is None

    def test_remove_source(self, tmp_path: Path) -> None:
        doc_id = str(uuid.uuid4())
        write_source(tmp_path, _metadata(doc_id), "x", SourceInsights())
        assert remove_source(tmp_path, doc_id) is True
        assert remove_source(tmp_path, doc_id) is False


class TestScanRepository:
    def test_empty_repo(self, tmp_path: Path) -> None:
        scan = scan_repository(tmp_path)
        assert scan.documents == []
        assert scan.errors == []

    def test_lists_complete_documents_only(self, tmp_path: Path) -> None:
        good = str(uuid.uuid4())
        write_source(tmp_path, _metadata(good), "x", SourceInsights())
        incomplete = tmp_path / SOURCES_DIRNAME / str(uuid.uuid4())
        incomplete.mkdir()
        (incomplete / CONTENT_FILENAME).write_text("partial")
        (tmp_path / SOURCES_DIRNAME / "not-a-uuid").mkdir()

        scan = scan_repository(tmp_path)
        assert [m.id for m, _ in scan.documents] == [good]
        assert scan.errors == []

    def test_reports_bad_metadata(self, tmp_path: Path) -> None:
        doc_id = str(uuid.uuid4())
        directory = tmp_path / SOURCES_DIRNAME / doc_id
        directory.mkdir(parents=True)
        (directory / METADATA_FILENAME).write_text("{}")
        scan = scan_repository(tmp_path)
        assert scan.documents == []
        assert len(scan.errors) == 1

    def test_reports_id_mismatch(self, tmp_path: Path) -> None:
        doc_id = str(uuid.uuid4())
        directory = tmp_path / SOURCES_DIRNAME / doc_id
        directory.mkdir(parents=True)
        (directory / METADATA_FILENAME).write_text(
            _metadata(str(uuid.uuid4())).model_dump_json()
        )
        scan = scan_repository(tmp_path)
        assert "mismatch" in scan.errors[0]
