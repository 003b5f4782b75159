"""
VaultFlow Session — In-process facade for one signed-in account.

Wires the catalog, mutation coordinator, versioning service and realtime
sync together and keeps the navigation state a dashboard needs:
current folder, search query, active sort, and the single in-flight
interaction (DashboardState).

Every mutation method raises the VaultError it hit, after attaching its
user_message to the current state so the UI can show it inline.

Usage:
    session = VaultSession("uid_123", InMemoryMetadataStore(), InMemoryBlobStore())
    await session.open()
    session.begin_create_folder()
    session.update_draft("Invoices")
    folder = await session.submit_create_folder()
    session.navigate(folder.id)
    view = session.view()
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional, Union

from vaultflow.catalog.catalog import Catalog
from vaultflow.catalog.models import FileRecord, FolderNode, VersionRecord
from vaultflow.catalog.store import MetadataStore
from vaultflow.documents.intents import IntentLog
from vaultflow.documents.service import MutationCoordinator, UsageSummary
from vaultflow.documents.versioning import VersioningService
from vaultflow.engine.config import VaultConfig, get_config
from vaultflow.engine.errors import RecordNotFound, VaultError, VaultValidationError
from vaultflow.projection.state import (
    ConfirmingDelete,
    CreatingFolder,
    DashboardState,
    DeleteTarget,
    Idle,
    ManagingVersions,
    PreviewingFile,
    Renaming,
    TargetCollection,
    UploadingFile,
    with_error,
)
from vaultflow.projection.sync import ProjectionSync
from vaultflow.projection.tree import (
    ListingView,
    SortConfig,
    SortDirection,
    SortKey,
    index_folders,
    parent_of,
    project,
)
from vaultflow.storage.base import BlobStore, UploadSource

logger = logging.getLogger("vaultflow.session")

VERSION_UPLOADED_NOTICE = "New version uploaded."
VERSION_RESTORED_NOTICE = "Version restored."


class VaultSession:
    """Dashboard-facing session for one account."""

    def __init__(
        self,
        account: str,
        store: MetadataStore,
        blob_store: BlobStore,
        config: Optional[VaultConfig] = None,
        intents: Optional[IntentLog] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._config = config or get_config()
        self.catalog = Catalog(store, account)
        self.coordinator = MutationCoordinator(
            self.catalog, blob_store, intents=intents, quota=self._config.quota, clock=clock
        )
        self.versions = VersioningService(self.coordinator)
        self.sync = ProjectionSync(store, account)

        projection = self._config.projection
        self._sort = SortConfig(
            SortKey(projection.default_sort_key),
            SortDirection(projection.default_sort_direction),
        )
        self._current_folder_id: Optional[str] = None
        self._query = ""
        self._state: DashboardState = Idle()

    @property
    def account(self) -> str:
        return self.catalog.account

    @property
    def state(self) -> DashboardState:
        return self._state

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------

    async def open(self, timeout: Optional[float] = None) -> None:
        """Start the realtime sync and wait until every collection has loaded."""
        await self.sync.start()
        await self.sync.wait_loaded(timeout=timeout)
        logger.info(f"Session opened for account '{self.account}'")

    def close(self) -> None:
        self.sync.stop()
        self._state = Idle()

    @property
    def loaded(self) -> bool:
        return self.sync.loaded

    # -------------------------------------------------------------------
    # Navigation, search, sort
    # -------------------------------------------------------------------

    @property
    def current_folder_id(self) -> Optional[str]:
        return self._current_folder_id

    @property
    def current_folder(self) -> Optional[FolderNode]:
        if self._current_folder_id is None:
            return None
        return index_folders(self.sync.folders).get(self._current_folder_id)

    @property
    def search_query(self) -> str:
        return self._query

    @property
    def sort(self) -> SortConfig:
        return self._sort

    def navigate(self, folder_id: Optional[str]) -> None:
        """Enter ``folder_id`` (None = root). Clears any active search."""
        if folder_id is not None and folder_id not in index_folders(self.sync.folders):
            raise RecordNotFound(
                f"Folder '{folder_id}' not found",
                operation="navigate",
                account=self.account,
                collection=self.catalog.folders_collection,
                record_id=folder_id,
            )
        self._current_folder_id = folder_id
        self._query = ""

    def go_up(self) -> None:
        """Move to the parent folder; root when the parent is absent or dangling."""
        parent = parent_of(self.current_folder, self.sync.folders)
        self.navigate(parent.id if parent else None)

    def set_search(self, query: str) -> None:
        self._query = query.strip()

    def clear_search(self) -> None:
        self._query = ""

    def toggle_sort(self, key: Union[SortKey, str]) -> SortConfig:
        self._sort = self._sort.toggle(key)
        return self._sort

    def view(self) -> ListingView:
        """
        Render the current listing from the synced collections.

        A current folder that has since been deleted renders as root.
        """
        return project(
            self.sync.folders,
            self.sync.files,
            current_folder=self.current_folder,
            query=self._query,
            sort=self._sort,
            depth_cap=self._config.projection.breadcrumb_depth_cap,
        )

    async def usage(self) -> UsageSummary:
        return await self.coordinator.usage()

    # -------------------------------------------------------------------
    # Interaction state
    # -------------------------------------------------------------------

    def cancel(self) -> None:
        """Dismiss whatever dialog is open."""
        if isinstance(self._state, ManagingVersions):
            self.sync.unwatch_versions(self._state.file_id)
        self._state = Idle()

    def update_draft(self, text: str) -> None:
        if not isinstance(self._state, (CreatingFolder, Renaming)):
            raise VaultValidationError(
                f"No draft to edit in state {type(self._state).__name__}",
                operation="update_draft",
            )
        self._state = replace(self._state, draft=text, error=None)

    def _fail(self, error: VaultError) -> None:
        if isinstance(self._state, ConfirmingDelete):
            self._state = replace(self._state, in_progress=False, error=error.user_message)
        else:
            self._state = with_error(self._state, error.user_message)
        logger.warning(f"{type(self._state).__name__} failed: {error}")

    def _expect(self, *state_types: type) -> None:
        if not isinstance(self._state, state_types):
            names = "/".join(t.__name__ for t in state_types)
            raise VaultValidationError(
                f"Expected {names}, dashboard is in {type(self._state).__name__}",
                operation="state_transition",
            )

    # -------------------------------------------------------------------
    # Folder creation
    # -------------------------------------------------------------------

    def begin_create_folder(self) -> None:
        self._state = CreatingFolder(parent_id=self._current_folder_id)

    async def submit_create_folder(self) -> FolderNode:
        self._expect(CreatingFolder)
        state = self._state
        try:
            folder = await self.coordinator.create_folder(
                name=state.draft.strip() or None, parent_id=state.parent_id
            )
        except VaultError as e:
            self._fail(e)
            raise
        self._state = Idle()
        return folder

    # -------------------------------------------------------------------
    # Upload
    # -------------------------------------------------------------------

    async def upload(self, source: UploadSource, name: Optional[str] = None) -> FileRecord:
        """Upload into the current folder, tracking progress in UploadingFile."""
        self._state = UploadingFile(file_name=name or source.name)

        def on_progress(fraction: float) -> None:
            if isinstance(self._state, UploadingFile):
                self._state = replace(self._state, progress=fraction)

        # gate on the synced list when it is current
        known_count = len(self.sync.files) if self.sync.loaded else None
        try:
            record = await self.coordinator.upload_file(
                source,
                folder_id=self._current_folder_id,
                name=name,
                on_progress=on_progress,
                known_count=known_count,
            )
        except VaultError as e:
            self._fail(e)
            raise
        self._state = Idle()
        return record

    # -------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------

    async def request_delete(self, collection: Union[TargetCollection, str], record_id: str) -> DeleteTarget:
        collection = TargetCollection(collection)
        if collection == TargetCollection.FILES:
            name = (await self.catalog.require_file(record_id)).name
        else:
            folder = await self.catalog.get_folder(record_id)
            if folder is None:
                raise RecordNotFound(
                    f"Folder '{record_id}' not found",
                    operation="delete_folder",
                    account=self.account,
                    collection=self.catalog.folders_collection,
                    record_id=record_id,
                )
            name = folder.name
        target = DeleteTarget(collection, record_id, name)
        self._state = ConfirmingDelete(target)
        return target

    async def confirm_delete(self) -> None:
        """
        Run the confirmed delete. On failure the confirmation stays open
        with the error; the record is still there.
        """
        self._expect(ConfirmingDelete)
        target = self._state.target
        self._state = replace(self._state, in_progress=True, error=None)
        try:
            if target.collection == TargetCollection.FILES:
                await self.coordinator.delete_file(target.record_id)
            else:
                await self.coordinator.delete_folder(target.record_id)
        except VaultError as e:
            self._fail(e)
            raise
        if target.collection == TargetCollection.FOLDERS and target.record_id == self._current_folder_id:
            self._current_folder_id = None
        self._state = Idle()

    # -------------------------------------------------------------------
    # Rename
    # -------------------------------------------------------------------

    async def begin_rename(self, collection: Union[TargetCollection, str], record_id: str) -> None:
        """Open the rename dialog with the current name as the draft."""
        collection = TargetCollection(collection)
        if collection == TargetCollection.FILES:
            current = (await self.catalog.require_file(record_id)).name
        else:
            folder = await self.catalog.get_folder(record_id)
            if folder is None:
                raise RecordNotFound(
                    f"Folder '{record_id}' not found",
                    operation="rename",
                    account=self.account,
                    collection=self.catalog.folders_collection,
                    record_id=record_id,
                )
            current = folder.name
        self._state = Renaming(collection, record_id, draft=current)

    async def submit_rename(self) -> Union[FileRecord, FolderNode]:
        self._expect(Renaming)
        state = self._state
        try:
            if state.collection == TargetCollection.FILES:
                renamed = await self.coordinator.rename_file(state.record_id, state.draft)
            else:
                renamed = await self.coordinator.rename_folder(state.record_id, state.draft)
        except VaultError as e:
            self._fail(e)
            raise
        self._state = Idle()
        return renamed

    # -------------------------------------------------------------------
    # Preview
    # -------------------------------------------------------------------

    async def open_preview(self, file_id: str) -> FileRecord:
        """Preview images and PDFs; other documents are download-only."""
        record = await self.catalog.require_file(file_id)
        if not record.previewable:
            raise VaultValidationError(
                f"'{record.name}' ({record.mime_class.value}) cannot be previewed",
                operation="preview",
                account=self.account,
                user_message="Preview is only available for images and PDFs.",
            )
        self._state = PreviewingFile(file_id)
        return record

    # -------------------------------------------------------------------
    # Versions
    # -------------------------------------------------------------------

    async def open_versions(self, file_id: str) -> List[VersionRecord]:
        """Open the version dialog and subscribe to the file's history."""
        await self.catalog.require_file(file_id)
        if isinstance(self._state, ManagingVersions) and self._state.file_id != file_id:
            self.sync.unwatch_versions(self._state.file_id)
        self.sync.watch_versions(file_id)
        self._state = ManagingVersions(file_id)
        return await self.versions.list_versions(file_id)

    async def commit_version(self, source: UploadSource) -> FileRecord:
        self._expect(ManagingVersions)
        file_id = self._state.file_id
        self._state = replace(self._state, progress=0.0, error=None, notice=None)

        def on_progress(fraction: float) -> None:
            if isinstance(self._state, ManagingVersions):
                self._state = replace(self._state, progress=fraction)

        try:
            updated = await self.versions.commit_new_version(file_id, source, on_progress=on_progress)
        except VaultError as e:
            self._state = replace(self._state, progress=None)
            self._fail(e)
            raise
        self._state = ManagingVersions(file_id, notice=VERSION_UPLOADED_NOTICE)
        return updated

    async def restore(self, version_id: str) -> FileRecord:
        self._expect(ManagingVersions)
        file_id = self._state.file_id
        self._state = replace(self._state, error=None, notice=None)
        try:
            updated = await self.versions.restore_version(file_id, version_id)
        except VaultError as e:
            self._fail(e)
            raise
        self._state = ManagingVersions(file_id, notice=VERSION_RESTORED_NOTICE)
        return updated

    def __repr__(self) -> str:
        return (
            f"<VaultSession account='{self.account}' folder={self._current_folder_id} "
            f"state={type(self._state).__name__}>"
        )
