"""Unit tests for vaultflow.catalog.catalog — typed facade over the metadata store."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from vaultflow.catalog.catalog import Catalog
from vaultflow.catalog.models import FileRecord, FolderNode, VersionRecord
from vaultflow.catalog.store import InMemoryMetadataStore
from vaultflow.engine.errors import MetadataReadFailure, MetadataWriteFailure, RecordNotFound

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _file(name="a.txt", **kw):
    return FileRecord(name=name, size_bytes=kw.pop("size_bytes", 1), blob_key=kw.pop("blob_key", f"u/{name}"), **kw)


class TestCatalog:
    def test_requires_account(self):
        with pytest.raises(ValueError):
            Catalog(InMemoryMetadataStore(), "")

    def test_collections(self, catalog):
        assert catalog.folders_collection == "users/uid_test/folders"
        assert catalog.versions_collection("f1") == "users/uid_test/files/f1/versions"

    @pytest.mark.asyncio
    async def test_folder_crud(self, catalog):
        folder = await catalog.create_folder(FolderNode(name="Reports"))
        assert await catalog.get_folder(folder.id) == folder
        renamed = await catalog.update_folder(folder.id, name="Archive")
        assert renamed.name == "Archive"
        await catalog.delete_folder(folder.id)
        assert await catalog.get_folder(folder.id) is None

    @pytest.mark.asyncio
    async def test_file_listing_newest_first(self, catalog):
        old = await catalog.create_file(_file("old.txt", created_at=T0))
        new = await catalog.create_file(_file("new.txt", created_at=T0 + timedelta(days=1)))
        assert [f.id for f in await catalog.list_files()] == [new.id, old.id]
        assert await catalog.count_files() == 2

    @pytest.mark.asyncio
    async def test_require_file_missing(self, catalog):
        with pytest.raises(RecordNotFound) as exc_info:
            await catalog.require_file("nope")
        assert exc_info.value.record_id == "nope"

    @pytest.mark.asyncio
    async def test_update_missing_file(self, catalog):
        with pytest.raises(RecordNotFound):
            await catalog.update_file("nope", name="x")

    @pytest.mark.asyncio
    async def test_versions_listed_by_archived_at(self, catalog):
        record = await catalog.create_file(_file())
        first = await catalog.append_version(VersionRecord.archive_of(record, archived_at=T0))
        second = await catalog.append_version(VersionRecord.archive_of(record, archived_at=T0 + timedelta(hours=1)))
        assert [v.id for v in await catalog.list_versions(record.id)] == [second.id, first.id]
        assert await catalog.get_version(record.id, first.id) == first


class TestFailureTranslation:
    @pytest.mark.asyncio
    async def test_write_failure(self):
        store = InMemoryMetadataStore()
        store.set = AsyncMock(side_effect=ConnectionError("offline"))
        catalog = Catalog(store, "u1")
        with pytest.raises(MetadataWriteFailure) as exc_info:
            await catalog.create_file(_file())
        assert exc_info.value.collection == "users/u1/files"
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_read_failure(self):
        store = InMemoryMetadataStore()
        store.list = AsyncMock(side_effect=TimeoutError("slow"))
        with pytest.raises(MetadataReadFailure):
            await Catalog(store, "u1").list_folders()

    @pytest.mark.asyncio
    async def test_count_failure(self):
        store = InMemoryMetadataStore()
        store.count = AsyncMock(side_effect=OSError("disk"))
        with pytest.raises(MetadataReadFailure):
            await Catalog(store, "u1").count_files()
