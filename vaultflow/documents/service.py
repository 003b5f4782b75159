"""
VaultFlow Mutation Coordinator — Upload, delete, rename across catalog + blob store.

Handles:
- Upload: quota gate → stream blob → resolve content ref → write FileRecord
- Two-phase delete: confirm blob deletion → delete FileRecord
- Rename (files and folders): metadata only, last write wins
- Folder create/delete: metadata only, no cascade to contents

The two stores share no transaction. Each protocol is a best-effort
sequence with fixed ordering; a failure stops the sequence, is raised to
the caller annotated with the sub-step that failed, and leaves whatever
partial state the earlier steps produced:

- upload fails at record write → the written blob is orphaned
- delete fails at record delete → the record outlives its blob

Both cases stay recorded as failed intents for the Reconciler.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from vaultflow.catalog.catalog import Catalog
from vaultflow.catalog.models import FileRecord, FolderNode, MimeClass, utcnow
from vaultflow.documents.intents import Intent, IntentKind, IntentLog
from vaultflow.engine.config import QuotaConfig, get_config
from vaultflow.engine.errors import (
    BlobMissing,
    BlobStoreFailure,
    QuotaExceeded,
    RecordNotFound,
    UploadFailure,
    VaultError,
    VaultValidationError,
)
from vaultflow.engine.logging import (
    log,
    log_blob_transfer,
    log_file_operation,
    log_folder_operation,
)
from vaultflow.storage.base import (
    BlobStore,
    BlobWriteResult,
    ProgressCallback,
    UploadSource,
    make_blob_key,
)

logger = logging.getLogger("vaultflow.documents.service")

DEFAULT_FOLDER_NAME = "Untitled Folder"
MAX_NAME_LENGTH = 255


@dataclass(frozen=True)
class UsageSummary:
    """File-count usage against the quota ceiling."""
    file_count: int
    total_bytes: int
    max_files: Optional[int]

    @property
    def at_limit(self) -> bool:
        return self.max_files is not None and self.file_count >= self.max_files

    @property
    def remaining(self) -> Optional[int]:
        if self.max_files is None:
            return None
        return max(self.max_files - self.file_count, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_count": self.file_count,
            "total_bytes": self.total_bytes,
            "max_files": self.max_files,
            "at_limit": self.at_limit,
            "remaining": self.remaining,
        }


def annotate(error: VaultError, **context: Any) -> VaultError:
    """Fill in operation/step context an adapter could not know."""
    for key, value in context.items():
        if value is None:
            continue
        if getattr(error, key, None) is None:
            setattr(error, key, value)
        error.context.setdefault(key, value)
    return error


class MutationCoordinator:
    """
    Orchestrates the multi-step mutations for one account.

    Usage:
        coordinator = MutationCoordinator(catalog, blob_store)
        record = await coordinator.upload_file(UploadSource("a.pdf", data), folder_id=None)
        await coordinator.delete_file(record.id)
    """

    def __init__(
        self,
        catalog: Catalog,
        blob_store: BlobStore,
        intents: Optional[IntentLog] = None,
        quota: Optional[QuotaConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._catalog = catalog
        self._blobs = blob_store
        self._intents = intents if intents is not None else IntentLog()
        self._quota = quota or get_config().quota
        self._clock = clock or utcnow

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    @property
    def blob_store(self) -> BlobStore:
        return self._blobs

    @property
    def intents(self) -> IntentLog:
        return self._intents

    @property
    def account(self) -> str:
        return self._catalog.account

    def now(self) -> datetime:
        return self._clock()

    # -------------------------------------------------------------------
    # Quota gate
    # -------------------------------------------------------------------

    async def check_quota(self, current: Optional[int] = None) -> int:
        """
        Advisory file-count gate. Returns the current count.

        ``current`` is a count the caller already holds (the synced file
        list); without it the catalog is asked. Raises QuotaExceeded when
        count >= ceiling.
        """
        if current is None:
            current = await self._catalog.count_files()
        if self._quota.enabled and current >= self._quota.max_files:
            raise QuotaExceeded(
                f"File limit reached ({current}/{self._quota.max_files})",
                operation="upload",
                step="quota_gate",
                account=self.account,
                limit=self._quota.max_files,
                current=current,
            )
        return current

    async def usage(self) -> UsageSummary:
        files = await self._catalog.list_files()
        return UsageSummary(
            file_count=len(files),
            total_bytes=sum(f.size_bytes for f in files),
            max_files=self._quota.max_files if self._quota.enabled else None,
        )

    # -------------------------------------------------------------------
    # Upload
    # -------------------------------------------------------------------

    async def upload_file(
        self,
        source: UploadSource,
        folder_id: Optional[str] = None,
        name: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        known_count: Optional[int] = None,
    ) -> FileRecord:
        """
        Upload new content and create its FileRecord.

        1. Quota gate (before any blob I/O)
        2. Stream blob, reporting progress in [0, 1]
        3. Resolve content ref, write FileRecord

        Raises QuotaExceeded, UploadFailure, BlobStoreFailure,
        MetadataWriteFailure or RecordNotFound (unknown folder).
        """
        start = time.monotonic()
        display_name = self._clean_name(name or source.name, operation="upload")

        await self.check_quota(known_count)
        if folder_id is not None:
            await self._require_folder(folder_id, operation="upload")

        key = make_blob_key(self.account, source.name)
        intent = self._intents.record(IntentKind.UPLOAD, self.account, blob_key=key)

        try:
            written, content_ref = await self.write_blob(key, source, on_progress, "upload", intent)
            now = self.now()
            record = FileRecord(
                name=display_name,
                size_bytes=written.size_bytes,
                mime_class=MimeClass.from_content_type(written.content_type),
                mime_type=written.content_type,
                folder_id=folder_id,
                blob_key=key,
                content_ref=content_ref,
                created_at=now,
                updated_at=now,
            )
            self._intents.advance(intent.id, "blob_written", file_id=record.id)
            try:
                await self._catalog.create_file(record)
            except VaultError as e:
                logger.error(f"Blob '{key}' orphaned: record write failed ({e})")
                raise annotate(e, operation="upload", step="write_record", account=self.account)
        except VaultError as e:
            self._intents.fail(intent.id, e)
            log(log_file_operation(
                "upload", self.account, None, False,
                duration_ms=(time.monotonic() - start) * 1000, blob_key=key, error=e,
            ))
            raise

        self._intents.complete(intent.id, step="record_written")
        log(log_file_operation(
            "upload", self.account, record.id, True,
            duration_ms=(time.monotonic() - start) * 1000,
            blob_key=key, size_bytes=record.size_bytes,
        ))
        logger.info(f"Uploaded '{record.name}' as {record.id} ({record.size_bytes} bytes)")
        return record

    async def write_blob(
        self,
        key: str,
        source: UploadSource,
        on_progress: Optional[ProgressCallback],
        operation: str,
        intent: Optional[Intent] = None,
    ) -> Tuple[BlobWriteResult, str]:
        """
        Upload sub-steps shared by upload and new-version-commit:
        stream the blob, then resolve its content ref.
        """
        start = time.monotonic()
        try:
            written = await self._blobs.put(key, source, on_progress)
        except VaultError as e:
            log(log_blob_transfer("put", key, False, error=e))
            raise annotate(e, operation=operation, step="stream_blob", account=self.account)
        except Exception as e:
            log(log_blob_transfer("put", key, False, error=e))
            raise UploadFailure(
                f"Streaming '{key}' failed: {e}",
                operation=operation,
                step="stream_blob",
                account=self.account,
                blob_key=key,
            ) from e
        log(log_blob_transfer(
            "put", key, True, size_bytes=written.size_bytes,
            duration_ms=(time.monotonic() - start) * 1000,
        ))

        if intent is not None:
            self._intents.advance(intent.id, "blob_written")

        try:
            content_ref = await self._blobs.content_ref(key)
        except Exception as e:
            raise BlobStoreFailure(
                f"Resolving content ref for '{key}' failed: {e}",
                operation=operation,
                step="resolve_content_ref",
                account=self.account,
                blob_key=key,
                user_message="Upload failed. Please try again.",
            ) from e
        return written, content_ref

    # -------------------------------------------------------------------
    # Two-phase delete
    # -------------------------------------------------------------------

    async def delete_file(self, file_id: str) -> None:
        """
        Delete a file: blob first, record only after confirmed blob deletion.

        BlobMissing / BlobStoreFailure leave the FileRecord untouched.
        Version history is not touched.
        """
        start = time.monotonic()
        record = await self._catalog.require_file(file_id)
        intent = self._intents.record(
            IntentKind.DELETE, self.account, file_id=file_id, blob_key=record.blob_key
        )

        try:
            await self._delete_blob(record.blob_key, operation="delete")
            self._intents.advance(intent.id, "blob_deleted")
            try:
                await self._catalog.delete_file(file_id)
            except VaultError as e:
                logger.error(f"Record {file_id} outlived blob '{record.blob_key}' ({e})")
                raise annotate(e, operation="delete", step="delete_record", account=self.account)
        except VaultError as e:
            self._intents.fail(intent.id, e)
            log(log_file_operation(
                "delete", self.account, file_id, False,
                duration_ms=(time.monotonic() - start) * 1000,
                blob_key=record.blob_key, error=e,
            ))
            raise

        self._intents.complete(intent.id, step="record_deleted")
        log(log_file_operation(
            "delete", self.account, file_id, True,
            duration_ms=(time.monotonic() - start) * 1000, blob_key=record.blob_key,
        ))
        logger.info(f"Deleted file {file_id} ('{record.name}')")

    async def _delete_blob(self, key: str, operation: str) -> None:
        start = time.monotonic()
        try:
            await self._blobs.delete(key)
        except BlobMissing as e:
            log(log_blob_transfer("delete", key, False, error=e))
            raise annotate(e, operation=operation, step="delete_blob", account=self.account)
        except Exception as e:
            log(log_blob_transfer("delete", key, False, error=e))
            if isinstance(e, BlobStoreFailure):
                raise annotate(e, operation=operation, step="delete_blob", account=self.account)
            raise BlobStoreFailure(
                f"Deleting blob '{key}' failed: {e}",
                operation=operation,
                step="delete_blob",
                account=self.account,
                blob_key=key,
            ) from e
        log(log_blob_transfer(
            "delete", key, True, duration_ms=(time.monotonic() - start) * 1000,
        ))

    # -------------------------------------------------------------------
    # Rename
    # -------------------------------------------------------------------

    async def rename_file(self, file_id: str, new_name: str) -> FileRecord:
        """Rename a file. No locking; concurrent renames resolve last-write-wins."""
        name = self._clean_name(new_name, operation="rename")
        record = await self._catalog.require_file(file_id)
        if record.name == name:
            return record
        try:
            updated = await self._catalog.update_file(file_id, name=name)
        except VaultError as e:
            log(log_file_operation("rename", self.account, file_id, False, error=e))
            raise annotate(e, operation="rename", step="write_record", account=self.account)
        log(log_file_operation("rename", self.account, file_id, True))
        return updated

    async def rename_folder(self, folder_id: str, new_name: str) -> FolderNode:
        name = self._clean_name(new_name, operation="rename")
        folder = await self._require_folder(folder_id, operation="rename")
        if folder.name == name:
            return folder
        try:
            updated = await self._catalog.update_folder(folder_id, name=name)
        except VaultError as e:
            log(log_folder_operation("rename", self.account, folder_id, False, error=e))
            raise annotate(e, operation="rename", step="write_record", account=self.account)
        log(log_folder_operation("rename", self.account, folder_id, True))
        return updated

    # -------------------------------------------------------------------
    # Content reference refresh
    # -------------------------------------------------------------------

    async def refresh_content_ref(self, file_id: str) -> FileRecord:
        """Re-derive a file's content_ref from its blob_key."""
        record = await self._catalog.require_file(file_id)
        try:
            content_ref = await self._blobs.content_ref(record.blob_key)
        except BlobMissing as e:
            raise annotate(e, operation="refresh", step="resolve_content_ref", account=self.account)
        except Exception as e:
            raise BlobStoreFailure(
                f"Resolving content ref for '{record.blob_key}' failed: {e}",
                operation="refresh",
                step="resolve_content_ref",
                account=self.account,
                blob_key=record.blob_key,
                user_message="Could not refresh the file link. Please try again.",
            ) from e
        if content_ref == record.content_ref:
            return record
        updated = await self._catalog.update_file(file_id, content_ref=content_ref)
        log(log_file_operation("refresh", self.account, file_id, True, blob_key=record.blob_key))
        return updated

    # -------------------------------------------------------------------
    # Folders (metadata only)
    # -------------------------------------------------------------------

    async def create_folder(self, name: Optional[str] = None, parent_id: Optional[str] = None) -> FolderNode:
        """Create a folder under parent_id (None = root)."""
        folder_name = self._clean_name(name or DEFAULT_FOLDER_NAME, operation="create_folder")
        if parent_id is not None:
            await self._require_folder(parent_id, operation="create_folder")
        folder = FolderNode(name=folder_name, parent_id=parent_id, created_at=self.now())
        try:
            await self._catalog.create_folder(folder)
        except VaultError as e:
            log(log_folder_operation("create", self.account, folder.id, False, parent_id=parent_id, error=e))
            raise annotate(e, operation="create_folder", step="write_record", account=self.account)
        log(log_folder_operation("create", self.account, folder.id, True, parent_id=parent_id))
        return folder

    async def delete_folder(self, folder_id: str) -> None:
        """
        Delete a folder record only.

        Contained files and subfolders are left in place and keep their
        (now dangling) folder references.
        """
        await self._require_folder(folder_id, operation="delete_folder")
        try:
            await self._catalog.delete_folder(folder_id)
        except VaultError as e:
            log(log_folder_operation("delete", self.account, folder_id, False, error=e))
            raise annotate(e, operation="delete_folder", step="delete_record", account=self.account)
        log(log_folder_operation("delete", self.account, folder_id, True))

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    async def _require_folder(self, folder_id: str, operation: str) -> FolderNode:
        folder = await self._catalog.get_folder(folder_id)
        if folder is None:
            raise RecordNotFound(
                f"Folder '{folder_id}' not found",
                operation=operation,
                account=self.account,
                collection=self._catalog.folders_collection,
                record_id=folder_id,
            )
        return folder

    @staticmethod
    def _clean_name(name: str, operation: str) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise VaultValidationError("Name cannot be empty", operation=operation)
        if len(cleaned) > MAX_NAME_LENGTH:
            raise VaultValidationError(
                f"Name exceeds {MAX_NAME_LENGTH} characters", operation=operation
            )
        return cleaned

    def __repr__(self) -> str:
        return f"<MutationCoordinator account='{self.account}'>"
