"""Object storage for HTML bodies and screenshots.

Two implementations share one small interface: `HttpBlobStore` talks to a
remote blob API, `LocalBlobStore` writes under a directory for development
and offline runs.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Protocol
from urllib.parse import unquote, urlparse

import httpx

from pagestore.auth import TokenProvider
from pagestore.errors import StorageError
from pagestore.metrics import BLOB_ERRORS_TOTAL

logger = logging.getLogger(__name__)

BLOB_PREFIX = "page-store"


@dataclass(frozen=True)
class BlobRef:
    url: str
    size: int


class BlobStore(Protocol):
    async def upload(self, key: str, data: bytes, content_type: str) -> BlobRef: ...

    async def fetch(self, url: str) -> bytes: ...

    async def delete(self, url: str) -> None: ...


def new_blob_suffix() -> str:
    """Random key component so fetches landing in the same millisecond never share a blob."""
    return uuid.uuid4().hex[:12]


def _stem(url_hash: str, fetched_at: datetime, suffix: str) -> str:
    return f"{BLOB_PREFIX}/{url_hash}/{int(fetched_at.timestamp() * 1000)}-{suffix}"


def html_key(url_hash: str, fetched_at: datetime, suffix: str) -> str:
    return f"{_stem(url_hash, fetched_at, suffix)}.html"


def screenshot_key(url_hash: str, fetched_at: datetime, device: str, suffix: str) -> str:
    return f"{_stem(url_hash, fetched_at, suffix)}-{device}.png"


class HttpBlobStore:
    """Remote blob API: PUT {base}/{key}, GET url, POST {base}/delete."""

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        *,
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._tokens = token_provider
        self._timeout_s = timeout_s
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout_s, transport=self._transport)

    async def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {await self._tokens.get_token()}"}

    async def upload(self, key: str, data: bytes, content_type: str) -> BlobRef:
        headers = await self._auth_headers()
        headers["Content-Type"] = content_type
        try:
            async with self._client() as client:
                resp = await client.put(f"{self.base_url}/{key}", content=data, headers=headers)
                resp.raise_for_status()
                blob_url = str(resp.json()["url"])
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            BLOB_ERRORS_TOTAL.labels(operation="upload").inc()
            raise StorageError(f"Failed to upload blob {key}: {exc!r}") from exc
        return BlobRef(url=blob_url, size=len(data))

    async def fetch(self, url: str) -> bytes:
        try:
            async with self._client() as client:
                resp = await client.get(url)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            BLOB_ERRORS_TOTAL.labels(operation="fetch").inc()
            raise StorageError(f"Failed to fetch blob {url}: {exc}") from exc
        return resp.content

    async def delete(self, url: str) -> None:
        headers = await self._auth_headers()
        try:
            async with self._client() as client:
                resp = await client.post(f"{self.base_url}/delete", json={"urls": [url]}, headers=headers)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            BLOB_ERRORS_TOTAL.labels(operation="delete").inc()
            raise StorageError(f"Failed to delete blob {url}: {exc}") from exc


class LocalBlobStore:
    """Filesystem-backed store returning ``file://`` URLs."""

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def _path_for(self, url: str) -> Path:
        parsed = urlparse(url)
        if parsed.scheme != "file":
            raise StorageError(f"Not a local blob URL: {url}")
        path = Path(unquote(parsed.path)).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Blob outside store root: {url}")
        return path

    async def upload(self, key: str, data: bytes, content_type: str) -> BlobRef:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Invalid blob key: {key}")

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            BLOB_ERRORS_TOTAL.labels(operation="upload").inc()
            raise StorageError(f"Failed to upload blob {key}: {exc}") from exc
        return BlobRef(url=path.as_uri(), size=len(data))

    async def fetch(self, url: str) -> bytes:
        path = self._path_for(url)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            BLOB_ERRORS_TOTAL.labels(operation="fetch").inc()
            raise StorageError(f"Failed to fetch blob {url}: {exc}") from exc

    async def delete(self, url: str) -> None:
        path = self._path_for(url)
        try:
            await asyncio.to_thread(path.unlink, True)
        except OSError as exc:
            BLOB_ERRORS_TOTAL.labels(operation="delete").inc()
            raise StorageError(f"Failed to delete blob {url}: {exc}") from exc
