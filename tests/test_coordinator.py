"""Unit tests for vaultflow.documents.service — MutationCoordinator protocols."""

from unittest.mock import AsyncMock, patch

import pytest

from vaultflow.catalog.models import MimeClass
from vaultflow.documents.intents import IntentKind, IntentStatus
from vaultflow.documents.service import DEFAULT_FOLDER_NAME, MutationCoordinator
from vaultflow.engine.config import QuotaConfig
from vaultflow.engine.errors import (
    BlobMissing,
    BlobStoreFailure,
    MetadataWriteFailure,
    QuotaExceeded,
    RecordNotFound,
    UploadFailure,
    VaultValidationError,
)
from vaultflow.storage.base import UploadSource


class TestUpload:
    @pytest.mark.asyncio
    async def test_upload_creates_record_and_blob(self, coordinator, blobs, catalog, pdf_source):
        progress = []
        record = await coordinator.upload_file(pdf_source, on_progress=progress.append)

        assert record.name == "report.pdf"
        assert record.mime_class is MimeClass.PDF
        assert record.size_bytes == pdf_source.size
        assert record.blob_key.startswith("uid_test/")
        assert record.blob_key.endswith("_report.pdf")
        assert record.content_ref == await blobs.content_ref(record.blob_key)
        assert await catalog.get_file(record.id) == record
        assert progress[-1] == 1.0
        assert progress == sorted(progress)

    @pytest.mark.asyncio
    async def test_upload_into_folder_with_custom_name(self, coordinator):
        folder = await coordinator.create_folder("Invoices")
        record = await coordinator.upload_file(
            UploadSource("scan.png", b"png"), folder_id=folder.id, name="  March scan  "
        )
        assert record.folder_id == folder.id
        assert record.name == "March scan"
        assert record.mime_class is MimeClass.IMAGE

    @pytest.mark.asyncio
    async def test_upload_to_unknown_folder(self, coordinator, blobs):
        with pytest.raises(RecordNotFound):
            await coordinator.upload_file(UploadSource("a.txt", b"x"), folder_id="nope")
        assert len(blobs) == 0

    @pytest.mark.asyncio
    async def test_upload_intent_completed(self, coordinator, intents, pdf_source):
        record = await coordinator.upload_file(pdf_source)
        intent = intents.all()[0]
        assert intent.kind is IntentKind.UPLOAD
        assert intent.status is IntentStatus.COMPLETED
        assert intent.step == "record_written"
        assert intent.file_id == record.id


class TestQuotaGate:
    @pytest.mark.asyncio
    async def test_sixth_upload_rejected_before_blob_io(self, coordinator, blobs, catalog):
        for i in range(5):
            await coordinator.upload_file(UploadSource(f"f{i}.txt", b"x"))

        with patch.object(blobs, "put", new=AsyncMock()) as put:
            with pytest.raises(QuotaExceeded) as exc_info:
                await coordinator.upload_file(UploadSource("f5.txt", b"x"))
            put.assert_not_called()

        err = exc_info.value
        assert err.limit == 5
        assert err.current == 5
        assert err.step == "quota_gate"
        assert await catalog.count_files() == 5
        assert len(blobs) == 5

    @pytest.mark.asyncio
    async def test_known_count_skips_catalog(self, coordinator, catalog):
        with patch.object(catalog, "count_files", new=AsyncMock(return_value=0)) as count:
            with pytest.raises(QuotaExceeded):
                await coordinator.upload_file(UploadSource("a.txt", b"x"), known_count=5)
            assert await coordinator.check_quota(current=2) == 2
            count.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_disabled_quota(self, catalog, blobs):
        coordinator = MutationCoordinator(catalog, blobs, quota=QuotaConfig(enabled=False, max_files=1))
        await coordinator.upload_file(UploadSource("a.txt", b"x"))
        await coordinator.upload_file(UploadSource("b.txt", b"x"))
        assert await catalog.count_files() == 2

    @pytest.mark.asyncio
    async def test_usage(self, coordinator):
        await coordinator.upload_file(UploadSource("a.txt", b"abc"))
        await coordinator.upload_file(UploadSource("b.txt", b"de"))
        usage = await coordinator.usage()
        assert usage.file_count == 2
        assert usage.total_bytes == 5
        assert usage.remaining == 3
        assert not usage.at_limit


class TestUploadFailures:
    @pytest.mark.asyncio
    async def test_stream_failure_writes_no_record(self, coordinator, blobs, catalog, intents):
        blobs.put = AsyncMock(side_effect=UploadFailure("network dropped", blob_key="k"))
        with pytest.raises(UploadFailure) as exc_info:
            await coordinator.upload_file(UploadSource("a.txt", b"x"))
        assert exc_info.value.step == "stream_blob"
        assert await catalog.count_files() == 0
        assert intents.all()[0].status is IntentStatus.FAILED
        assert intents.all()[0].step == "recorded"

    @pytest.mark.asyncio
    async def test_foreign_stream_error_is_wrapped(self, coordinator, blobs):
        blobs.put = AsyncMock(side_effect=ConnectionResetError("reset"))
        with pytest.raises(UploadFailure) as exc_info:
            await coordinator.upload_file(UploadSource("a.txt", b"x"))
        assert isinstance(exc_info.value.__cause__, ConnectionResetError)

    @pytest.mark.asyncio
    async def test_record_write_failure_orphans_blob(self, coordinator, blobs, catalog, intents):
        catalog.create_file = AsyncMock(side_effect=MetadataWriteFailure("rejected"))
        with pytest.raises(MetadataWriteFailure) as exc_info:
            await coordinator.upload_file(UploadSource("a.txt", b"x"))
        assert exc_info.value.step == "write_record"
        assert exc_info.value.operation == "upload"
        assert len(blobs) == 1
        intent = intents.all()[0]
        assert intent.status is IntentStatus.FAILED
        assert intent.step == "blob_written"
        assert intent.blob_key == blobs.keys()[0]


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_removes_blob_then_record(self, coordinator, blobs, catalog, pdf_source):
        record = await coordinator.upload_file(pdf_source)
        await coordinator.delete_file(record.id)
        assert await catalog.get_file(record.id) is None
        assert not await blobs.exists(record.blob_key)

    @pytest.mark.asyncio
    async def test_blob_missing_keeps_record(self, coordinator, blobs, catalog, pdf_source):
        record = await coordinator.upload_file(pdf_source)
        await blobs.delete(record.blob_key)

        with pytest.raises(BlobMissing) as exc_info:
            await coordinator.delete_file(record.id)

        assert exc_info.value.step == "delete_blob"
        assert exc_info.value.user_message == "File not found in storage. It may have already been deleted."
        assert await catalog.get_file(record.id) == record

    @pytest.mark.asyncio
    async def test_transient_blob_failure_keeps_record(self, coordinator, blobs, catalog, pdf_source):
        record = await coordinator.upload_file(pdf_source)
        blobs.delete = AsyncMock(side_effect=TimeoutError("gateway timeout"))

        with pytest.raises(BlobStoreFailure) as exc_info:
            await coordinator.delete_file(record.id)

        assert exc_info.value.blob_key == record.blob_key
        assert await catalog.get_file(record.id) == record
        assert await blobs.exists(record.blob_key)

    @pytest.mark.asyncio
    async def test_record_delete_failure_leaves_dangling_record(self, coordinator, blobs, catalog, intents, pdf_source):
        record = await coordinator.upload_file(pdf_source)
        catalog.delete_file = AsyncMock(side_effect=MetadataWriteFailure("rejected"))

        with pytest.raises(MetadataWriteFailure) as exc_info:
            await coordinator.delete_file(record.id)

        assert exc_info.value.step == "delete_record"
        assert not await blobs.exists(record.blob_key)
        assert await catalog.get_file(record.id) is not None
        intent = intents.all()[-1]
        assert (intent.kind, intent.step, intent.status) == (IntentKind.DELETE, "blob_deleted", IntentStatus.FAILED)

    @pytest.mark.asyncio
    async def test_delete_unknown_file(self, coordinator):
        with pytest.raises(RecordNotFound):
            await coordinator.delete_file("nope")

    @pytest.mark.asyncio
    async def test_delete_leaves_versions(self, coordinator, versions, catalog, pdf_source):
        record = await coordinator.upload_file(pdf_source)
        await versions.commit_new_version(record.id, UploadSource("v2.pdf", b"v2"))
        await coordinator.delete_file(record.id)
        assert len(await catalog.list_versions(record.id)) == 1


class TestRename:
    @pytest.mark.asyncio
    async def test_rename_file_trims(self, coordinator, pdf_source):
        record = await coordinator.upload_file(pdf_source)
        renamed = await coordinator.rename_file(record.id, "  Q1 report.pdf ")
        assert renamed.name == "Q1 report.pdf"
        assert renamed.blob_key == record.blob_key

    @pytest.mark.asyncio
    async def test_unchanged_name_is_noop(self, coordinator, catalog, pdf_source):
        record = await coordinator.upload_file(pdf_source)
        catalog.update_file = AsyncMock()
        assert await coordinator.rename_file(record.id, "report.pdf") == record
        catalog.update_file.assert_not_called()

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, coordinator):
        folder = await coordinator.create_folder("Docs")
        with pytest.raises(VaultValidationError):
            await coordinator.rename_folder(folder.id, "   ")

    @pytest.mark.asyncio
    async def test_rename_folder(self, coordinator):
        folder = await coordinator.create_folder("Docs")
        assert (await coordinator.rename_folder(folder.id, "Papers")).name == "Papers"

    @pytest.mark.asyncio
    async def test_rename_write_failure(self, coordinator, catalog, pdf_source):
        record = await coordinator.upload_file(pdf_source)
        catalog.update_file = AsyncMock(side_effect=MetadataWriteFailure("rejected"))
        with pytest.raises(MetadataWriteFailure) as exc_info:
            await coordinator.rename_file(record.id, "other.pdf")
        assert exc_info.value.operation == "rename"


class TestFolders:
    @pytest.mark.asyncio
    async def test_default_name(self, coordinator):
        folder = await coordinator.create_folder()
        assert folder.name == DEFAULT_FOLDER_NAME
        assert folder.parent_id is None

    @pytest.mark.asyncio
    async def test_nested(self, coordinator):
        parent = await coordinator.create_folder("A")
        child = await coordinator.create_folder("B", parent_id=parent.id)
        assert child.parent_id == parent.id

    @pytest.mark.asyncio
    async def test_unknown_parent(self, coordinator):
        with pytest.raises(RecordNotFound):
            await coordinator.create_folder("B", parent_id="nope")

    @pytest.mark.asyncio
    async def test_delete_folder_does_not_cascade(self, coordinator, catalog):
        folder = await coordinator.create_folder("A")
        record = await coordinator.upload_file(UploadSource("a.txt", b"x"), folder_id=folder.id)
        await coordinator.delete_folder(folder.id)
        assert await catalog.get_folder(folder.id) is None
        assert (await catalog.get_file(record.id)).folder_id == folder.id


class TestRefreshContentRef:
    @pytest.mark.asyncio
    async def test_refresh_rewrites_stale_ref(self, coordinator, catalog, pdf_source):
        record = await coordinator.upload_file(pdf_source)
        await catalog.update_file(record.id, content_ref="stale")
        refreshed = await coordinator.refresh_content_ref(record.id)
        assert refreshed.content_ref == record.content_ref

    @pytest.mark.asyncio
    async def test_refresh_missing_blob(self, coordinator, blobs, pdf_source):
        record = await coordinator.upload_file(pdf_source)
        await blobs.delete(record.blob_key)
        with pytest.raises(BlobMissing):
            await coordinator.refresh_content_ref(record.id)

    @pytest.mark.asyncio
    async def test_refresh_lookup_failure_message(self, coordinator, blobs, pdf_source):
        record = await coordinator.upload_file(pdf_source)
        with patch.object(blobs, "content_ref", new=AsyncMock(side_effect=RuntimeError("timeout"))):
            with pytest.raises(BlobStoreFailure) as exc_info:
                await coordinator.refresh_content_ref(record.id)
        err = exc_info.value
        assert err.step == "resolve_content_ref"
        assert err.user_message == "Could not refresh the file link. Please try again."
