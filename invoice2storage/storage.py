"""Object storage backends for extracted attachments.

Each backend offers the same capability, ``await put(path, data)``.
Exactly one is built per run by :func:`create_storage`, selected by
which target the configuration names.  Blocking calls (filesystem,
boto3) are wrapped with ``asyncio.to_thread()``.
"""

from __future__ import annotations

import abc
import asyncio
import os
import tempfile
from pathlib import Path, PurePosixPath
from urllib.parse import quote, urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError
import httpx
import structlog

from .config import ConfigurationError, ProcessingConfig

logger = structlog.get_logger()


class StorageError(Exception):
    """A ``put`` did not store the object."""


class InvalidPathError(StorageError):
    """The rendered path can never be stored; retrying won't help."""


def _validate_key(path: str) -> PurePosixPath:
    """Reject keys that are empty, absolute or climb out of the root."""
    key = PurePosixPath(path)
    if not path or key.is_absolute() or any(p in ("", ".", "..") for p in path.split("/")):
        raise InvalidPathError(f"Invalid storage path: {path!r}")
    return key


class Storage(abc.ABC):
    """Write-only object store."""

    async def start(self) -> None:
        """Acquire clients/connections."""

    async def stop(self) -> None:
        """Release clients/connections."""

    @abc.abstractmethod
    async def put(self, path: str, data: bytes) -> None:
        """Store *data* under *path*. Raises :class:`StorageError`."""
        ...


class LocalStorage(Storage):
    """Files below a root directory, written atomically."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    async def put(self, path: str, data: bytes) -> None:
        key = _validate_key(path)
        try:
            await asyncio.to_thread(self._write_sync, key, data)
        except OSError as exc:
            raise StorageError(f"Can't write {path}: {exc}") from exc
        logger.debug("local_object_written", path=path, size=len(data))

    def _write_sync(self, key: PurePosixPath, data: bytes) -> None:
        target = self._root.joinpath(*key.parts)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class HttpStorage(Storage):
    """HTTP ``PUT`` target (WebDAV or any server accepting uploads)."""

    def __init__(
        self,
        base_url: str,
        *,
        insecure: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/") + "/"
        self._insecure = insecure
        self._transport = transport
        self._timeout = timeout_seconds
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        try:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                verify=not self._insecure,
                transport=self._transport,
            )
        except (httpx.HTTPError, OSError) as exc:
            raise StorageError(f"Can't set up HTTP client for {self._base_url}: {exc}") from exc
        logger.info("http_storage_started", base_url=self._base_url, insecure=self._insecure)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("http_storage_stopped")

    def _url(self, parts: tuple[str, ...]) -> str:
        return self._base_url + "/".join(quote(p, safe="") for p in parts)

    async def put(self, path: str, data: bytes) -> None:
        assert self._client is not None, "HTTP storage not started"
        key = _validate_key(path)
        url = self._url(key.parts)
        try:
            response = await self._client.put(url, content=data)
            if response.status_code == httpx.codes.CONFLICT and len(key.parts) > 1:
                # WebDAV refuses PUT into a missing collection
                await self._make_collections(key.parts[:-1])
                response = await self._client.put(url, content=data)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise StorageError(f"Can't upload {path}: {exc}") from exc
        logger.debug("http_object_written", url=url, status_code=response.status_code)

    async def _make_collections(self, parents: tuple[str, ...]) -> None:
        assert self._client is not None
        for depth in range(1, len(parents) + 1):
            url = self._url(parents[:depth]) + "/"
            response = await self._client.request("MKCOL", url)
            # 405: collection already exists
            if response.status_code not in (httpx.codes.CREATED, httpx.codes.METHOD_NOT_ALLOWED):
                response.raise_for_status()


class S3Storage(Storage):
    """S3 (or MinIO) bucket with an optional key prefix."""

    def __init__(self, url: str, *, endpoint_url: str | None = None) -> None:
        bucket, prefix = _parse_s3_url(url)
        self._bucket = bucket
        self._prefix = prefix
        self._endpoint_url = endpoint_url
        self._client = None  # type: ignore[assignment]

    async def start(self) -> None:
        kwargs: dict = {}
        if self._endpoint_url:
            kwargs["endpoint_url"] = self._endpoint_url
        try:
            self._client = await asyncio.to_thread(boto3.client, "s3", **kwargs)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Can't create S3 client for {self._bucket}: {exc}") from exc
        logger.info("s3_storage_started", bucket=self._bucket, prefix=self._prefix)

    async def stop(self) -> None:
        self._client = None
        logger.info("s3_storage_stopped")

    async def put(self, path: str, data: bytes) -> None:
        assert self._client is not None, "S3 client not started"
        _validate_key(path)
        key = f"{self._prefix}/{path}" if self._prefix else path
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self._bucket,
                Key=key,
                Body=data,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Can't upload s3://{self._bucket}/{key}: {exc}") from exc
        logger.debug("s3_object_written", bucket=self._bucket, key=key, size=len(data))


def _parse_s3_url(url: str) -> tuple[str, str]:
    """Parse ``s3://bucket/prefix`` into (bucket, prefix)."""
    parsed = urlparse(url)
    if parsed.scheme != "s3" or not parsed.netloc:
        raise ConfigurationError(f"Invalid S3 URL: {url}")
    return parsed.netloc, parsed.path.strip("/")


def create_storage(config: ProcessingConfig) -> Storage:
    """Build the one storage backend the configuration selects."""
    if config.local_path is not None:
        return LocalStorage(config.local_path)
    if config.http_path:
        return HttpStorage(config.http_path, insecure=config.insecure)
    if config.s3_url:
        return S3Storage(config.s3_url)
    raise ConfigurationError("Please specify a storage backend")
