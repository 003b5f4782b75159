"""
VaultFlow Versioning — Archive-before-overwrite chain and restore.

new-version-commit:
    1. Archive the file's current content fields as a VersionRecord
    2. Upload the new content (stream + content ref), overwrite the record

restore:
    1. Archive the file's current content fields as a VersionRecord
    2. Copy the chosen version's content fields into the record

Step 1 always completes before step 2 starts. If step 2 fails the archive
stays in the history even though the file did not change; that is an
accepted outcome, not an error to undo. History only grows: restoring
never removes the chosen version, and the blob the file pointed to before
a restore is left in place (it is still referenced by the new archive).
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional

from vaultflow.catalog.models import FileRecord, MimeClass, VersionRecord
from vaultflow.documents.intents import IntentKind
from vaultflow.documents.service import MutationCoordinator, annotate
from vaultflow.engine.errors import RecordNotFound, VaultError
from vaultflow.engine.logging import log, log_version_event
from vaultflow.storage.base import ProgressCallback, UploadSource, make_blob_key

logger = logging.getLogger("vaultflow.documents.versioning")


class VersioningService:
    """
    Version chain operations for one account, built on the coordinator.

    Usage:
        versions = VersioningService(coordinator)
        await versions.commit_new_version(file_id, UploadSource("v2.pdf", data))
        history = await versions.list_versions(file_id)
        await versions.restore_version(file_id, history[-1].id)
    """

    def __init__(self, coordinator: MutationCoordinator):
        self._coordinator = coordinator
        self._catalog = coordinator.catalog
        self._intents = coordinator.intents

    @property
    def account(self) -> str:
        return self._coordinator.account

    async def list_versions(self, file_id: str) -> List[VersionRecord]:
        """Version chain, most recently archived first."""
        return await self._catalog.list_versions(file_id)

    async def archive_current(self, record: FileRecord, operation: str) -> VersionRecord:
        """Append the record's current content fields to its history."""
        version = VersionRecord.archive_of(record, archived_at=self._coordinator.now())
        try:
            return await self._catalog.append_version(version)
        except VaultError as e:
            raise annotate(e, operation=operation, step="archive", account=self.account)

    # -------------------------------------------------------------------
    # New version
    # -------------------------------------------------------------------

    async def commit_new_version(
        self,
        file_id: str,
        source: UploadSource,
        on_progress: Optional[ProgressCallback] = None,
    ) -> FileRecord:
        """
        Archive the current content, then upload ``source`` as the file's content.

        The file keeps its name; blob_key, content_ref, size, mime type and
        updated_at are overwritten.
        """
        start = time.monotonic()
        record = await self._catalog.require_file(file_id)
        key = make_blob_key(self.account, source.name)
        intent = self._intents.record(
            IntentKind.VERSION_COMMIT, self.account, file_id=file_id, blob_key=key
        )

        try:
            archived = await self.archive_current(record, operation="version_commit")
            self._intents.advance(intent.id, "archived")

            written, content_ref = await self._coordinator.write_blob(
                key, source, on_progress, "version_commit", intent
            )
            try:
                updated = await self._catalog.update_file(
                    file_id,
                    blob_key=key,
                    content_ref=content_ref,
                    size_bytes=written.size_bytes,
                    mime_type=written.content_type,
                    mime_class=MimeClass.from_content_type(written.content_type),
                    updated_at=self._coordinator.now(),
                )
            except VaultError as e:
                logger.error(f"Blob '{key}' orphaned: version commit for {file_id} not recorded ({e})")
                raise annotate(e, operation="version_commit", step="write_record", account=self.account)
        except VaultError as e:
            self._intents.fail(intent.id, e)
            log(log_version_event(
                "version_commit_failed", self.account, file_id, False,
                duration_ms=(time.monotonic() - start) * 1000, error=e,
            ))
            raise

        self._intents.complete(intent.id, step="record_written")
        log(log_version_event(
            "version_committed", self.account, file_id, True,
            version_id=archived.id, duration_ms=(time.monotonic() - start) * 1000,
        ))
        logger.info(f"New version for '{updated.name}' ({file_id}); archived {archived.id}")
        return updated

    # -------------------------------------------------------------------
    # Restore
    # -------------------------------------------------------------------

    async def restore_version(self, file_id: str, version_id: str) -> FileRecord:
        """
        Make an archived version current again.

        The pre-restore state is archived first; the chosen version stays
        in the history unchanged and can be restored again later.
        """
        start = time.monotonic()
        record = await self._catalog.require_file(file_id)
        version = await self._catalog.get_version(file_id, version_id)
        if version is None or version.parent_file_id != file_id:
            raise RecordNotFound(
                f"Version '{version_id}' not found for file '{file_id}'",
                operation="restore",
                account=self.account,
                collection=self._catalog.versions_collection(file_id),
                record_id=version_id,
            )

        intent = self._intents.record(
            IntentKind.RESTORE, self.account, file_id=file_id, blob_key=version.blob_key
        )
        try:
            archived = await self.archive_current(record, operation="restore")
            self._intents.advance(intent.id, "archived")
            try:
                updated = await self._catalog.update_file(
                    file_id,
                    **version.content_fields(),
                    mime_class=MimeClass.from_content_type(version.mime_type),
                    updated_at=self._coordinator.now(),
                )
            except VaultError as e:
                raise annotate(e, operation="restore", step="write_record", account=self.account)
        except VaultError as e:
            self._intents.fail(intent.id, e)
            log(log_version_event(
                "version_restore_failed", self.account, file_id, False,
                version_id=version_id, duration_ms=(time.monotonic() - start) * 1000, error=e,
            ))
            raise

        self._intents.complete(intent.id, step="record_written")
        log(log_version_event(
            "version_restored", self.account, file_id, True,
            version_id=version_id, duration_ms=(time.monotonic() - start) * 1000,
        ))
        logger.info(f"Restored {file_id} to version {version_id}; archived {archived.id}")
        return updated

    def __repr__(self) -> str:
        return f"<VersioningService account='{self.account}'>"
