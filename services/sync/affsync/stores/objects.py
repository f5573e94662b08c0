"""Object storage for cached images and operator uploads.

Two backends share one small interface (exists / put / public_url):
- S3ObjectStore: any S3-compatible bucket (AWS, R2, MinIO) via boto3.
  boto3 is blocking, so calls run in the default thread executor.
- LocalObjectStore: a directory on disk served under a URL prefix.
  Used when no bucket is configured and as the upload fallback.

Paths are content-addressed by the callers, so objects are immutable and
written with long-lived cache headers.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from functools import lru_cache
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from affsync.settings import get_settings

logger = logging.getLogger("uvicorn.error")

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000"


class ObjectStore(ABC):
    """Minimal async object storage interface."""

    name = "base"

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """True when an object is stored at path."""

    @abstractmethod
    async def put(
        self,
        path: str,
        data: bytes,
        content_type: str,
        cache_control: str = IMMUTABLE_CACHE_CONTROL,
    ) -> str:
        """Store an object and return its public URL."""

    @abstractmethod
    def public_url(self, path: str) -> str:
        """URL clients use to fetch the object."""


class LocalObjectStore(ObjectStore):
    """Filesystem-backed store (development, tests, upload fallback)."""

    name = "local"

    def __init__(self, root: str | Path, url_prefix: str = "/uploads"):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    def _resolve(self, path: str) -> Path:
        return self.root / path.lstrip("/")

    async def exists(self, path: str) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._resolve(path).is_file)

    async def put(
        self,
        path: str,
        data: bytes,
        content_type: str,
        cache_control: str = IMMUTABLE_CACHE_CONTROL,
    ) -> str:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, self._resolve(path), data)
        return self.public_url(path)

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def public_url(self, path: str) -> str:
        return f"{self.url_prefix}/{path.lstrip('/')}"


class S3ObjectStore(ObjectStore):
    """S3-compatible bucket store."""

    name = "s3"

    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: str | None = None,
        public_base_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
    ):
        self.bucket = bucket
        self.endpoint_url = endpoint_url or None
        self.public_base_url = (public_base_url or "").rstrip("/")
        session = boto3.session.Session()
        self._client = session.client(
            "s3",
            endpoint_url=self.endpoint_url,
            aws_access_key_id=access_key_id or None,
            aws_secret_access_key=secret_access_key or None,
        )

    async def exists(self, path: str) -> bool:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, lambda: self._client.head_object(Bucket=self.bucket, Key=path))
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    async def put(
        self,
        path: str,
        data: bytes,
        content_type: str,
        cache_control: str = IMMUTABLE_CACHE_CONTROL,
    ) -> str:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            lambda: self._client.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
                CacheControl=cache_control,
            ),
        )
        return self.public_url(path)

    def public_url(self, path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{path}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{path}"
        return f"https://{self.bucket}.s3.amazonaws.com/{path}"


# Errors an S3 backend may raise that callers treat as "store unavailable".
OBJECT_STORE_ERRORS = (BotoCoreError, ClientError, OSError)


def get_local_store() -> LocalObjectStore:
    """Local filesystem store from settings."""
    settings = get_settings()
    return LocalObjectStore(settings.local_upload_dir, settings.local_upload_url_prefix)


@lru_cache
def get_object_store() -> ObjectStore:
    """Primary object store: the configured bucket, else the local directory."""
    settings = get_settings()
    if not settings.storage_bucket:
        logger.info("STORAGE_BUCKET not configured, caching images on local disk")
        return get_local_store()
    return S3ObjectStore(
        settings.storage_bucket,
        endpoint_url=settings.storage_endpoint_url,
        public_base_url=settings.storage_public_base_url,
        access_key_id=settings.aws_access_key_id,
        secret_access_key=settings.aws_secret_access_key,
    )
