"""In-process blob store (tests, demos, single-process embedding)."""

from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote

from vaultflow.engine.errors import BlobMissing
from vaultflow.storage.base import (
    BlobStore,
    BlobWriteResult,
    ProgressCallback,
    UploadSource,
    report_progress,
)

logger = logging.getLogger("vaultflow.storage.memory")


class InMemoryBlobStore(BlobStore):
    """
    Dict-backed blob store.

    Content is committed only after the last chunk is consumed, so an
    interrupted put leaves nothing behind.
    """

    def __init__(self, chunk_size: int = 256 * 1024):
        self._chunk_size = chunk_size
        self._blobs: Dict[str, Tuple[bytes, str]] = {}

    async def put(
        self,
        key: str,
        source: UploadSource,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BlobWriteResult:
        buffer = bytearray()
        digest = hashlib.sha256()
        total = source.size
        for chunk in source.iter_chunks(self._chunk_size):
            buffer.extend(chunk)
            digest.update(chunk)
            report_progress(on_progress, len(buffer), total)
            await asyncio.sleep(0)
        if total == 0:
            report_progress(on_progress, 0, 0)

        self._blobs[key] = (bytes(buffer), source.mime_type)
        logger.debug(f"Stored {key} ({len(buffer)} bytes)")
        return BlobWriteResult(
            key=key,
            size_bytes=len(buffer),
            content_type=source.mime_type,
            sha256=digest.hexdigest(),
        )

    async def content_ref(self, key: str) -> str:
        if key not in self._blobs:
            raise BlobMissing(f"No blob at '{key}'", blob_key=key)
        return f"memory://{quote(key)}"

    async def delete(self, key: str) -> None:
        if key not in self._blobs:
            raise BlobMissing(f"No blob at '{key}'", blob_key=key)
        del self._blobs[key]

    async def exists(self, key: str) -> bool:
        return key in self._blobs

    def read(self, key: str) -> bytes:
        if key not in self._blobs:
            raise BlobMissing(f"No blob at '{key}'", blob_key=key)
        return self._blobs[key][0]

    def keys(self) -> List[str]:
        return sorted(self._blobs)

    def __len__(self) -> int:
        return len(self._blobs)

    def __repr__(self) -> str:
        return f"<InMemoryBlobStore blobs={len(self._blobs)}>"
