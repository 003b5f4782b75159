"""
VaultFlow Local Blob Store — Filesystem-backed content storage.

Physical layout:
    {root}/{account}/{unique_id}_{original_name}

Writes stream into a ``.part`` sibling and are renamed into place only
after the last chunk lands, so a failed upload leaves no file at the key.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
from pathlib import Path
from typing import Optional

from vaultflow.engine.errors import BlobMissing, BlobStoreFailure, UploadFailure, VaultValidationError
from vaultflow.storage.base import (
    BlobStore,
    BlobWriteResult,
    ProgressCallback,
    UploadSource,
    report_progress,
)

logger = logging.getLogger("vaultflow.storage.local")


class LocalBlobStore(BlobStore):
    """Blob store rooted at a local directory. File I/O runs in worker threads."""

    def __init__(self, root: str, chunk_size: int = 256 * 1024):
        self._root = Path(root).resolve()
        self._chunk_size = chunk_size
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, key: str) -> Path:
        """Physical path for a key; rejects keys escaping the root."""
        path = (self._root / key).resolve()
        if self._root not in path.parents:
            raise VaultValidationError(f"Blob key escapes storage root: '{key}'", object_ref=key)
        return path

    async def put(
        self,
        key: str,
        source: UploadSource,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BlobWriteResult:
        target = self.path_for(key)
        partial = target.with_name(target.name + ".part")
        total = source.size
        bytes_written = 0
        file_hash = hashlib.sha256()

        try:
            await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
            f = await asyncio.to_thread(open, partial, "wb")
            try:
                for chunk in source.iter_chunks(self._chunk_size):
                    await asyncio.to_thread(f.write, chunk)
                    file_hash.update(chunk)
                    bytes_written += len(chunk)
                    report_progress(on_progress, bytes_written, total)
            finally:
                await asyncio.to_thread(f.close)
            await asyncio.to_thread(os.replace, partial, target)
        except OSError as e:
            raise UploadFailure(
                f"Writing '{key}' failed after {bytes_written} bytes: {e}",
                blob_key=key,
            ) from e
        finally:
            # no-op once the rename has landed
            await asyncio.to_thread(partial.unlink, missing_ok=True)

        if total == 0:
            report_progress(on_progress, 0, 0)

        logger.info(
            f"Stored: {key} ({bytes_written} bytes, sha256={file_hash.hexdigest()[:12]})"
        )
        return BlobWriteResult(
            key=key,
            size_bytes=bytes_written,
            content_type=source.mime_type,
            sha256=file_hash.hexdigest(),
        )

    async def content_ref(self, key: str) -> str:
        path = self.path_for(key)
        if not path.is_file():
            raise BlobMissing(f"No blob at '{key}'", blob_key=key)
        return path.as_uri()

    async def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError as e:
            raise BlobMissing(f"No blob at '{key}'", blob_key=key) from e
        except OSError as e:
            raise BlobStoreFailure(f"Deleting '{key}' failed: {e}", blob_key=key) from e
        logger.info(f"Deleted blob: {key}")

    async def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def __repr__(self) -> str:
        return f"<LocalBlobStore root='{self._root}'>"
