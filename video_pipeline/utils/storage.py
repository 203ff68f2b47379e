"""
Storage Utilities
=================

Durable object storage for generated media, plus small file helpers.

Provider result URLs are usually short-lived, so adapters re-host finished
videos through an ``ObjectStorage`` before handing them downstream.
"""

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import Optional, Union, Protocol

import aiofiles
import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..core.config import StorageConfig
from ..core.exceptions import StorageError
from ..core.security import sanitize_filename

logger = logging.getLogger(__name__)


class ObjectStorage(Protocol):
    """Durable storage collaborator: ``put(data, key) -> url``."""

    async def put(self, data: bytes, key: str, content_type: str = "video/mp4") -> str:
        ...


# =============================================================================
# Backends
# =============================================================================


class LocalObjectStorage:
    """
    Filesystem-backed object storage.

    Keys map to paths under ``base_path``. Returned URLs use
    ``public_base_url`` when set, otherwise a ``file://`` URI.
    """

    def __init__(
        self,
        base_path: Union[str, Path] = "./output/media",
        public_base_url: Optional[str] = None,
    ):
        self.base_path = Path(base_path)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    async def put(self, data: bytes, key: str, content_type: str = "video/mp4") -> str:
        path = self.base_path / key
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}", key=key)

        logger.debug(f"Stored {len(data)} bytes at {path}")
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return path.resolve().as_uri()


class S3ObjectStorage:
    """
    S3-compatible object storage (AWS S3, Cloudflare R2, MinIO).

    boto3 is synchronous, so uploads run in a worker thread.
    """

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        region: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        public_base_url: Optional[str] = None,
        client=None,
    ):
        """
        Initialize S3 storage.

        Args:
            bucket: Bucket name
            endpoint_url: Custom endpoint for S3-compatible services
            region: Bucket region
            access_key_id: Access key (falls back to the boto3 credential chain)
            secret_access_key: Secret key
            public_base_url: Optional CDN/public base URL for stored objects
            client: Pre-built boto3 client (mainly for tests)
        """
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.region = region
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

        self._client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=BotoConfig(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "adaptive"},
            ),
        )

        logger.info(f"S3 storage initialized for bucket: {bucket}")

    async def put(self, data: bytes, key: str, content_type: str = "video/mp4") -> str:
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Upload failed for {key}: {e}", key=key)

        logger.info(f"Uploaded {len(data)} bytes to s3://{self.bucket}/{key}")
        return self.public_url(key)

    def public_url(self, key: str) -> str:
        """Public URL for a stored key."""
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        region = self.region or "us-east-1"
        return f"https://{self.bucket}.s3.{region}.amazonaws.com/{key}"


def create_storage(config: StorageConfig) -> ObjectStorage:
    """Build the storage backend selected by ``config.backend``."""
    if config.backend == "s3":
        return S3ObjectStorage(
            bucket=config.bucket,
            endpoint_url=config.endpoint_url,
            region=config.region,
            access_key_id=config.access_key_id,
            secret_access_key=config.secret_access_key,
            public_base_url=config.public_base_url,
        )
    return LocalObjectStorage(config.local_path, public_base_url=config.public_base_url)


# =============================================================================
# Keys and File Helpers
# =============================================================================


def build_media_key(
    provider: str,
    model: str,
    task_id: str,
    prefix: str = "ai-videos",
    suffix: str = ".mp4",
) -> str:
    """
    Deterministic storage key for a provider task result.

    The same task always maps to the same key, so a retried upload
    overwrites instead of duplicating.
    """
    digest = hashlib.sha256(task_id.encode("utf-8")).hexdigest()[:16]
    return f"{prefix}/{sanitize_filename(provider)}/{sanitize_filename(model)}/{digest}{suffix}"


def ensure_dir(path: Union[str, Path]) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_file_size(path: Union[str, Path]) -> Optional[int]:
    """Size of a file in bytes, or None if it doesn't exist."""
    path = Path(path)
    if path.exists():
        return path.stat().st_size
    return None


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted string (e.g., "1.5 MB")
    """
    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"
