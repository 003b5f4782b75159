"""VaultFlow Blob Store — boundary and adapters (memory, local filesystem, HTTP)."""

from __future__ import annotations

from typing import Optional

from vaultflow.engine.config import StorageConfig, get_config
from vaultflow.engine.errors import VaultConfigError
from vaultflow.storage.base import (
    BlobStore,
    BlobWriteResult,
    ProgressCallback,
    UploadSource,
    detect_mime_type,
    make_blob_key,
    safe_filename,
)
from vaultflow.storage.http import HttpBlobStore
from vaultflow.storage.local import LocalBlobStore
from vaultflow.storage.memory import InMemoryBlobStore

__all__ = [
    "BlobStore",
    "BlobWriteResult",
    "HttpBlobStore",
    "InMemoryBlobStore",
    "LocalBlobStore",
    "ProgressCallback",
    "UploadSource",
    "create_blob_store",
    "detect_mime_type",
    "make_blob_key",
    "safe_filename",
]


def create_blob_store(config: Optional[StorageConfig] = None) -> BlobStore:
    """Build the blob store selected by ``storage.backend``."""
    config = config or get_config().storage
    if config.backend == "memory":
        return InMemoryBlobStore(chunk_size=config.chunk_size)
    if config.backend == "local":
        return LocalBlobStore(config.root, chunk_size=config.chunk_size)
    if not config.base_url:
        raise VaultConfigError("storage.base_url is required for the http backend")
    return HttpBlobStore(
        config.base_url,
        token=config.token,
        chunk_size=config.chunk_size,
        timeout=config.timeout,
    )
