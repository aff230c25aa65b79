"""Object storage for source documents and highlighted artifacts.

Stores are addressed by (bucket, key) and move whole byte arrays:

- LocalObjectStore: buckets are directories under a root path
- HttpObjectStore: S3-style path addressing, GET/PUT {base_url}/{bucket}/{key}

Both expose async get/put so the pipeline can await either.
"""

import asyncio
import mimetypes
import posixpath
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

import httpx

from .errors import ObjectNotFoundError, TransportError
from .retry import INITIAL_BACKOFF, backoff_sleep

ANNOTATED_SUFFIX = "_highlighted"


@dataclass(frozen=True)
class ObjectLocation:
    bucket: str
    key: str

    def __str__(self) -> str:
        return f"{self.bucket}/{self.key}"


@dataclass
class StoredObject:
    data: bytes
    content_type: str | None = None


class ObjectStore(Protocol):
    async def get(self, bucket: str, key: str) -> StoredObject: ...

    async def put(
        self, bucket: str, key: str, data: bytes, content_type: str
    ) -> None: ...


def annotated_key(key: str, suffix: str = ANNOTATED_SUFFIX) -> str:
    """Insert suffix before the key's extension.

    >>> annotated_key("reports/q3.pdf")
    'reports/q3_highlighted.pdf'
    """
    root, ext = posixpath.splitext(key)
    return f"{root}{suffix}{ext}"


def normalize_content_type(value: str | None) -> str | None:
    if not value:
        return None
    return value.split(";", 1)[0].strip().lower() or None


class LocalObjectStore:
    """Filesystem-backed store: root/bucket/key."""

    def __init__(self, root: Path | str = "."):
        self.root = Path(root)

    def _path(self, bucket: str, key: str) -> Path:
        bucket_dir = (self.root / bucket).resolve()
        path = (bucket_dir / key).resolve()
        if bucket_dir != path and bucket_dir not in path.parents:
            raise ValueError(f"Key escapes bucket: {key!r}")
        return path

    def _read(self, bucket: str, key: str) -> StoredObject:
        path = self._path(bucket, key)
        if not path.is_file():
            raise ObjectNotFoundError(f"No such object: {bucket}/{key}")
        content_type, _ = mimetypes.guess_type(path.name)
        return StoredObject(data=path.read_bytes(), content_type=content_type)

    def _write(self, bucket: str, key: str, data: bytes) -> None:
        path = self._path(bucket, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def get(self, bucket: str, key: str) -> StoredObject:
        return await asyncio.to_thread(self._read, bucket, key)

    async def put(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        await asyncio.to_thread(self._write, bucket, key, data)


class HttpObjectStore:
    """Async client for an S3-compatible HTTP endpoint with retry logic."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 120.0,
        max_retries: int = 4,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self.transport = transport

        # Status codes that should NOT be retried
        self.no_retry_codes = {400, 401, 403, 404}

    def _url(self, bucket: str, key: str) -> str:
        return f"{self.base_url}/{quote(bucket, safe='')}/{quote(key, safe='/')}"

    def _headers(self) -> dict:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        backoff = INITIAL_BACKOFF
        attempt = 0

        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport
        ) as client:
            while True:
                try:
                    response = await client.request(method, url, headers=headers, **kwargs)
                except (httpx.TimeoutException, httpx.RequestError) as e:
                    if attempt < self.max_retries:
                        attempt += 1
                        print(
                            f"[Retry {attempt}/{self.max_retries}] {method} {url}: {type(e).__name__}: {e}",
                            file=sys.stderr,
                        )
                        backoff = await backoff_sleep(backoff)
                        continue
                    raise TransportError(
                        f"{method} {url} failed after {self.max_retries} retries: {e}"
                    ) from e

                if response.is_success:
                    return response

                if response.status_code == 404:
                    raise ObjectNotFoundError(f"No such object: {url}")

                if response.status_code in self.no_retry_codes:
                    raise TransportError(
                        f"{method} {url}: {response.status_code} {response.reason_phrase}: {response.text[:200]}"
                    )

                if attempt < self.max_retries:
                    attempt += 1
                    print(
                        f"[Retry {attempt}/{self.max_retries}] {method} {url}: HTTP {response.status_code}",
                        file=sys.stderr,
                    )
                    backoff = await backoff_sleep(backoff)
                    continue

                raise TransportError(
                    f"{method} {url} failed after {self.max_retries} retries: HTTP {response.status_code}"
                )

    async def get(self, bucket: str, key: str) -> StoredObject:
        response = await self._request("GET", self._url(bucket, key))
        return StoredObject(
            data=response.content,
            content_type=response.headers.get("content-type"),
        )

    async def put(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        await self._request(
            "PUT",
            self._url(bucket, key),
            content=data,
            headers={"Content-Type": content_type},
        )
