"""
VaultFlow HTTP Blob Store — REST object-storage client over httpx.

Protocol (one object per URL):
    PUT    {base_url}/o/{quoted_key}   streamed body, Content-Type header
    HEAD   {base_url}/o/{quoted_key}   200 → exists, 404 → missing
    DELETE {base_url}/o/{quoted_key}   2xx → deleted, 404 → missing

The content reference is the bare object URL. It is stored in catalog
records and pushed to subscribers, so it never carries the access token.
No retries: every failure is surfaced to the caller.
"""

from __future__ import annotations

import logging
import time
from typing import AsyncIterator, Dict, Optional
from urllib.parse import quote

import httpx

from vaultflow.engine.errors import BlobMissing, BlobStoreFailure, UploadFailure
from vaultflow.storage.base import (
    BlobStore,
    BlobWriteResult,
    ProgressCallback,
    UploadSource,
    report_progress,
)

logger = logging.getLogger("vaultflow.storage.http")


class HttpBlobStore(BlobStore):
    """
    Blob store client for a REST object service.

    Usage:
        store = HttpBlobStore("https://blobs.example.com", token="...")
        await store.put(key, UploadSource("a.pdf", data))
        await store.aclose()
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        chunk_size: int = 256 * 1024,
        timeout: int = 30,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._chunk_size = chunk_size
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0),
            follow_redirects=True,
        )

    def object_url(self, key: str) -> str:
        return f"{self._base_url}/o/{quote(key, safe='')}"

    def _headers(self) -> Dict[str, str]:
        if self._token:
            return {"Authorization": f"Bearer {self._token}"}
        return {}

    async def put(
        self,
        key: str,
        source: UploadSource,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BlobWriteResult:
        total = source.size
        start = time.monotonic()

        async def body() -> AsyncIterator[bytes]:
            sent = 0
            for chunk in source.iter_chunks(self._chunk_size):
                yield chunk
                sent += len(chunk)
                report_progress(on_progress, sent, total)

        headers = self._headers()
        headers["Content-Type"] = source.mime_type
        headers["Content-Length"] = str(total)

        try:
            response = await self._client.put(self.object_url(key), content=body(), headers=headers)
        except httpx.HTTPError as e:
            raise UploadFailure(f"Upload of '{key}' failed: {e}", blob_key=key) from e

        if not 200 <= response.status_code < 300:
            raise UploadFailure(
                f"Upload of '{key}' rejected with HTTP {response.status_code}",
                blob_key=key,
                status_code=response.status_code,
            )

        if total == 0:
            report_progress(on_progress, 0, 0)

        logger.info(
            f"PUT {key} ({total} bytes) in {(time.monotonic() - start) * 1000:.1f}ms"
        )
        return BlobWriteResult(key=key, size_bytes=total, content_type=source.mime_type)

    async def content_ref(self, key: str) -> str:
        if not await self.exists(key):
            raise BlobMissing(f"No blob at '{key}'", blob_key=key)
        return self.object_url(key)

    async def delete(self, key: str) -> None:
        try:
            response = await self._client.delete(self.object_url(key), headers=self._headers())
        except httpx.HTTPError as e:
            raise BlobStoreFailure(f"Delete of '{key}' failed: {e}", blob_key=key) from e

        if response.status_code == 404:
            raise BlobMissing(f"No blob at '{key}'", blob_key=key, status_code=404)
        if not 200 <= response.status_code < 300:
            raise BlobStoreFailure(
                f"Delete of '{key}' failed with HTTP {response.status_code}",
                blob_key=key,
                status_code=response.status_code,
            )
        logger.info(f"DELETE {key}")

    async def exists(self, key: str) -> bool:
        try:
            response = await self._client.head(self.object_url(key), headers=self._headers())
        except httpx.HTTPError as e:
            raise BlobStoreFailure(f"Lookup of '{key}' failed: {e}", blob_key=key) from e
        if response.status_code == 404:
            return False
        if not 200 <= response.status_code < 300:
            raise BlobStoreFailure(
                f"Lookup of '{key}' failed with HTTP {response.status_code}",
                blob_key=key,
                status_code=response.status_code,
            )
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def __repr__(self) -> str:
        return f"<HttpBlobStore base_url='{self._base_url}'>"
