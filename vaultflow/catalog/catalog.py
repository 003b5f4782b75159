"""
VaultFlow Catalog — Typed per-account facade over the metadata store.

The Catalog is the only component that writes FolderNode, FileRecord and
VersionRecord documents. It performs structural typing only: acyclic
parent chains, referential presence and quota limits are the caller's
responsibility (see vaultflow.documents).

Store exceptions are translated into the error taxonomy here:
writes → MetadataWriteFailure, reads → MetadataReadFailure.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel

from vaultflow.catalog.models import (
    FileRecord,
    FolderNode,
    VersionRecord,
    files_path,
    folders_path,
    versions_path,
)
from vaultflow.catalog.store import MetadataStore
from vaultflow.engine.errors import (
    MetadataReadFailure,
    MetadataWriteFailure,
    RecordNotFound,
    VaultError,
)

logger = logging.getLogger("vaultflow.catalog")

M = TypeVar("M", bound=BaseModel)


class Catalog:
    """
    Metadata catalog for one account.

    Usage:
        catalog = Catalog(InMemoryMetadataStore(), account="uid_123")
        folder = await catalog.create_folder(FolderNode(name="Reports"))
        files = await catalog.list_files()
    """

    def __init__(self, store: MetadataStore, account: str):
        if not account:
            raise ValueError("account is required")
        self._store = store
        self._account = account

    @property
    def account(self) -> str:
        return self._account

    @property
    def store(self) -> MetadataStore:
        return self._store

    @property
    def folders_collection(self) -> str:
        return folders_path(self._account)

    @property
    def files_collection(self) -> str:
        return files_path(self._account)

    def versions_collection(self, file_id: str) -> str:
        return versions_path(self._account, file_id)

    # -------------------------------------------------------------------
    # Folders
    # -------------------------------------------------------------------

    async def create_folder(self, folder: FolderNode) -> FolderNode:
        await self._write_model(self.folders_collection, folder)
        return folder

    async def get_folder(self, folder_id: str) -> Optional[FolderNode]:
        return await self._read_model(self.folders_collection, folder_id, FolderNode)

    async def update_folder(self, folder_id: str, **fields: Any) -> FolderNode:
        return await self._update_model(self.folders_collection, folder_id, fields, FolderNode)

    async def delete_folder(self, folder_id: str) -> None:
        await self._delete(self.folders_collection, folder_id)

    async def list_folders(self) -> List[FolderNode]:
        return await self._list_models(self.folders_collection, FolderNode, "created_at")

    # -------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------

    async def create_file(self, record: FileRecord) -> FileRecord:
        await self._write_model(self.files_collection, record)
        return record

    async def get_file(self, file_id: str) -> Optional[FileRecord]:
        return await self._read_model(self.files_collection, file_id, FileRecord)

    async def require_file(self, file_id: str) -> FileRecord:
        record = await self.get_file(file_id)
        if record is None:
            raise RecordNotFound(
                f"File '{file_id}' not found",
                collection=self.files_collection,
                record_id=file_id,
                account=self._account,
            )
        return record

    async def update_file(self, file_id: str, **fields: Any) -> FileRecord:
        return await self._update_model(self.files_collection, file_id, fields, FileRecord)

    async def delete_file(self, file_id: str) -> None:
        await self._delete(self.files_collection, file_id)

    async def list_files(self) -> List[FileRecord]:
        return await self._list_models(self.files_collection, FileRecord, "created_at")

    async def count_files(self) -> int:
        try:
            return await self._store.count(self.files_collection)
        except VaultError:
            raise
        except Exception as e:
            raise MetadataReadFailure(
                f"Cannot count files: {e}",
                collection=self.files_collection,
                account=self._account,
            ) from e

    # -------------------------------------------------------------------
    # Versions (append + read only)
    # -------------------------------------------------------------------

    async def append_version(self, version: VersionRecord) -> VersionRecord:
        await self._write_model(self.versions_collection(version.parent_file_id), version)
        return version

    async def list_versions(self, file_id: str) -> List[VersionRecord]:
        """Version chain for a file, most recently archived first."""
        return await self._list_models(
            self.versions_collection(file_id), VersionRecord, "archived_at"
        )

    async def get_version(self, file_id: str, version_id: str) -> Optional[VersionRecord]:
        return await self._read_model(self.versions_collection(file_id), version_id, VersionRecord)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    async def _write_model(self, collection: str, model: BaseModel) -> None:
        record_id = getattr(model, "id")
        try:
            await self._store.set(collection, record_id, model.model_dump())
        except VaultError:
            raise
        except Exception as e:
            raise MetadataWriteFailure(
                f"Catalog write to '{collection}' failed: {e}",
                collection=collection,
                record_id=record_id,
                account=self._account,
            ) from e
        logger.debug(f"Wrote {collection}/{record_id}")

    async def _read_model(self, collection: str, record_id: str, model_cls: Type[M]) -> Optional[M]:
        try:
            data = await self._store.get(collection, record_id)
        except VaultError:
            raise
        except Exception as e:
            raise MetadataReadFailure(
                f"Catalog read from '{collection}' failed: {e}",
                collection=collection,
                account=self._account,
            ) from e
        return model_cls.model_validate(data) if data is not None else None

    async def _update_model(
        self, collection: str, record_id: str, fields: Dict[str, Any], model_cls: Type[M]
    ) -> M:
        try:
            await self._store.update(collection, record_id, fields)
        except VaultError:
            raise
        except Exception as e:
            raise MetadataWriteFailure(
                f"Catalog update of '{collection}/{record_id}' failed: {e}",
                collection=collection,
                record_id=record_id,
                account=self._account,
            ) from e
        updated = await self._read_model(collection, record_id, model_cls)
        if updated is None:
            # Deleted concurrently between update and read-back
            raise RecordNotFound(
                f"'{collection}/{record_id}' disappeared after update",
                collection=collection,
                record_id=record_id,
                account=self._account,
            )
        return updated

    async def _delete(self, collection: str, record_id: str) -> None:
        try:
            await self._store.delete(collection, record_id)
        except VaultError:
            raise
        except Exception as e:
            raise MetadataWriteFailure(
                f"Catalog delete of '{collection}/{record_id}' failed: {e}",
                collection=collection,
                record_id=record_id,
                account=self._account,
            ) from e

    async def _list_models(self, collection: str, model_cls: Type[M], order_by: str) -> List[M]:
        try:
            docs = await self._store.list(collection, order_by=order_by, descending=True)
        except VaultError:
            raise
        except Exception as e:
            raise MetadataReadFailure(
                f"Catalog listing of '{collection}' failed: {e}",
                collection=collection,
                account=self._account,
            ) from e
        return [model_cls.model_validate(d) for d in docs]

    def __repr__(self) -> str:
        return f"<Catalog account='{self._account}'>"
