"""Unit tests for vaultflow.catalog.models — entity models and helpers."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from vaultflow.catalog.models import (
    FileRecord,
    FolderNode,
    MimeClass,
    VersionRecord,
    files_path,
    folders_path,
    versions_path,
)


class TestPaths:
    def test_collection_paths(self):
        assert folders_path("u1") == "users/u1/folders"
        assert files_path("u1") == "users/u1/files"
        assert versions_path("u1", "f1") == "users/u1/files/f1/versions"


class TestMimeClass:
    @pytest.mark.parametrize("content_type,expected", [
        ("image/png", MimeClass.IMAGE),
        ("image/svg+xml", MimeClass.IMAGE),
        ("application/pdf", MimeClass.PDF),
        ("text/plain", MimeClass.DOCUMENT),
        ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", MimeClass.DOCUMENT),
        (None, MimeClass.DOCUMENT),
    ])
    def test_from_content_type(self, content_type, expected):
        assert MimeClass.from_content_type(content_type) is expected

    def test_previewable(self):
        assert MimeClass.IMAGE.previewable
        assert MimeClass.PDF.previewable
        assert not MimeClass.DOCUMENT.previewable


class TestFolderNode:
    def test_defaults(self):
        folder = FolderNode(name="Reports")
        assert folder.id
        assert folder.is_root_level
        assert folder.created_at.tzinfo is not None

    def test_frozen(self):
        folder = FolderNode(name="Reports")
        with pytest.raises(ValidationError):
            folder.name = "Other"

    def test_name_length(self):
        with pytest.raises(ValidationError):
            FolderNode(name="x" * 256)


class TestFileRecord:
    def test_round_trip_through_dict(self):
        record = FileRecord(name="a.pdf", size_bytes=3, mime_class=MimeClass.PDF,
                            mime_type="application/pdf", blob_key="u/1_a.pdf")
        again = FileRecord.model_validate(record.model_dump())
        assert again == record
        assert again.previewable

    def test_negative_size_rejected(self):
        with pytest.raises(ValidationError):
            FileRecord(name="a", size_bytes=-1, blob_key="k")

    def test_content_fields(self):
        record = FileRecord(name="a.txt", size_bytes=3, blob_key="k", content_ref="ref")
        assert record.content_fields() == {
            "name": "a.txt", "size_bytes": 3, "mime_type": "application/octet-stream",
            "blob_key": "k", "content_ref": "ref",
        }


class TestVersionRecord:
    def test_archive_of_copies_content(self):
        record = FileRecord(name="a.txt", size_bytes=3, blob_key="k", content_ref="ref")
        at = datetime(2024, 5, 1, tzinfo=timezone.utc)
        version = VersionRecord.archive_of(record, archived_at=at)
        assert version.parent_file_id == record.id
        assert version.archived_at == at
        assert version.content_fields() == record.content_fields()
        assert version.id != record.id
