"""
VaultFlow Blob Store boundary.

Binary content is addressed by a path key of the form
``{account}/{unique_id}_{original_name}``. A write streams the content and
reports fractional progress; delete distinguishes "object not found"
(BlobMissing) from every other failure (BlobStoreFailure).
"""

from __future__ import annotations

import mimetypes
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

from vaultflow.engine.errors import VaultValidationError

ProgressCallback = Callable[[float], None]


@dataclass(frozen=True)
class UploadSource:
    """Content to be written to the blob store."""
    name: str
    data: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def mime_type(self) -> str:
        return self.content_type or detect_mime_type(self.name)

    def iter_chunks(self, chunk_size: int) -> Iterator[bytes]:
        for offset in range(0, len(self.data), chunk_size):
            yield self.data[offset:offset + chunk_size]

    @classmethod
    def from_path(cls, path: str, content_type: Optional[str] = None) -> "UploadSource":
        p = Path(path)
        return cls(name=p.name, data=p.read_bytes(), content_type=content_type)


@dataclass(frozen=True)
class BlobWriteResult:
    """Acknowledgement of a completed blob write."""
    key: str
    size_bytes: int
    content_type: str
    sha256: Optional[str] = None


class BlobStore(ABC):
    """Async blob store capability."""

    @abstractmethod
    async def put(
        self,
        key: str,
        source: UploadSource,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BlobWriteResult:
        """
        Stream content to ``key``.

        Reports progress in [0, 1] after each chunk. Raises UploadFailure
        on any stream/transport failure; nothing is left at ``key`` then.
        """

    @abstractmethod
    async def content_ref(self, key: str) -> str:
        """Resolve a read reference for ``key``. Raises BlobMissing if absent."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete ``key``. Raises BlobMissing if absent, BlobStoreFailure otherwise."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Whether content is stored at ``key``."""


def report_progress(on_progress: Optional[ProgressCallback], sent: int, total: int) -> None:
    if on_progress is None:
        return
    on_progress(1.0 if total == 0 else min(sent / total, 1.0))


# ---------------------------------------------------------------------------
# Key helpers
# ---------------------------------------------------------------------------

def make_blob_key(account: str, original_name: str, unique_id: Optional[str] = None) -> str:
    """Build ``{account}/{unique_id}_{original_name}`` with a sanitized name."""
    if not account:
        raise VaultValidationError("account is required to build a blob key")
    unique_id = unique_id or uuid.uuid4().hex
    return f"{account}/{unique_id}_{safe_filename(original_name)}"


def safe_filename(filename: str) -> str:
    """
    Sanitize a filename for use inside a blob key.

    Removes path separators, control chars and leading dots.
    Preserves extension.
    """
    name = os.path.basename(filename.replace("\\", "/"))
    name = "".join(c for c in name if c.isprintable() and c not in '<>:"/\\|?*')
    name = name.lstrip(".")
    if not name:
        name = "unnamed_file"
    if len(name) > 200:
        base, ext = os.path.splitext(name)
        name = base[:200 - len(ext)] + ext
    return name


def detect_mime_type(filename: str) -> str:
    """Detect MIME type from filename."""
    mime, _ = mimetypes.guess_type(filename)
    return mime or "application/octet-stream"
