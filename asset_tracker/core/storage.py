"""Blob storage abstraction for asset photos."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any

import oss2

from asset_tracker.config import Settings
from asset_tracker.core.errors import UpstreamStorageError

logger = logging.getLogger(__name__)


class StorageError(UpstreamStorageError):
    """Base exception for blob storage operations."""

    pass


class BlobNotFoundError(StorageError):
    """Raised when a blob is not found in storage."""

    pass


class BlobStore:
    """Abstract blob store: opaque objects addressed by key, readable by URL."""

    public_base_url: str = ""

    async def put(self, key: str, content: bytes, content_type: str) -> str:
        """Store content under key.

        Args:
            key: Object key, ``/`` separated
            content: Object content as bytes
            content_type: MIME type served back to readers

        Returns:
            str: Public URL of the stored object

        Raises:
            StorageError: If the object cannot be stored
        """
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        """Delete the object stored under key.

        Args:
            key: Object key

        Raises:
            BlobNotFoundError: If the object does not exist
            StorageError: If the object cannot be deleted
        """
        raise NotImplementedError

    def describe(self) -> dict[str, Any]:
        """Summarize the store configuration without exposing secrets."""
        raise NotImplementedError

    def url_for_key(self, key: str) -> str:
        return f"{self.public_base_url.rstrip('/')}/{key}"

    def key_for_url(self, url: str) -> str | None:
        """Map a URL produced by :meth:`put` back to its key.

        Returns:
            str | None: The key, or None if the URL does not belong to this store
        """
        base = self.public_base_url.rstrip("/") + "/"
        if not url.startswith(base):
            return None
        key = url[len(base) :]
        return key or None

    async def aclose(self) -> None:
        """Release any client resources held by the store."""
        return None


class LocalBlobStore(BlobStore):
    """Local file system blob store, served by the app under its public base URL."""

    def __init__(self, base_path: str | Path, public_base_url: str = "/uploads"):
        """Initialize local storage.

        Args:
            base_path: Base directory for blob storage
            public_base_url: URL prefix the app serves ``base_path`` under
        """
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url

    def _get_file_path(self, key: str) -> Path:
        """Get the full file path for a key.

        Args:
            key: Object key

        Returns:
            Path: Full file path
        """
        # Sanitize every segment to prevent directory traversal
        segments = [self._sanitize_filename(part) for part in key.split("/")]
        segments = [part for part in segments if part and part not in (".", "..")]
        if not segments:
            raise StorageError(f"Invalid blob key: {key!r}")
        return self.base_path.joinpath(*segments)

    @staticmethod
    def _sanitize_filename(filename: str) -> str:
        """Sanitize filename to prevent directory traversal and other security issues.

        Args:
            filename: Original filename

        Returns:
            str: Sanitized filename
        """
        # Remove path components
        filename = os.path.basename(filename)
        # Remove any remaining path separators
        filename = filename.replace("/", "_").replace("\\", "_")
        # Remove null bytes
        filename = filename.replace("\x00", "")
        # Limit length
        if len(filename) > 255:
            name, ext = os.path.splitext(filename)
            filename = name[: 255 - len(ext)] + ext
        return filename

    def _relative_key(self, file_path: Path) -> str:
        return file_path.relative_to(self.base_path).as_posix()

    def _write(self, file_path: Path, content: bytes) -> None:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(content)

    async def put(self, key: str, content: bytes, content_type: str) -> str:
        file_path = self._get_file_path(key)
        try:
            await asyncio.to_thread(self._write, file_path, content)
        except OSError as e:
            raise StorageError(f"Failed to save blob: {e}") from e
        return self.url_for_key(self._relative_key(file_path))

    async def delete(self, key: str) -> None:
        file_path = self._get_file_path(key)

        if not file_path.exists():
            raise BlobNotFoundError(f"Blob not found: {key}")

        try:
            file_path.unlink()
        except OSError as e:
            raise StorageError(f"Failed to delete blob: {e}") from e

    def describe(self) -> dict[str, Any]:
        return {
            "backend": "local",
            "configured": True,
            "base_path": str(self.base_path),
            "public_base_url": self.public_base_url,
        }


class OssBlobStore(BlobStore):
    """Aliyun OSS blob store backed by the ``oss2`` SDK.

    The SDK is blocking, so every call runs in a worker thread.

    Args:
        bucket: Bucket name
        access_key_id: Access key id
        access_key_secret: Access key secret
        region: OSS region, e.g. ``oss-cn-hangzhou``
        endpoint: Optional bucket domain override (scheme included)
        timeout: Connect timeout in seconds
        client: Optional pre-built ``oss2.Bucket`` (tests)
    """

    def __init__(
        self,
        bucket: str | None,
        access_key_id: str | None,
        access_key_secret: str | None,
        region: str = "oss-cn-hangzhou",
        endpoint: str | None = None,
        timeout: float = 30.0,
        client: oss2.Bucket | None = None,
    ) -> None:
        if not bucket or not access_key_id or not access_key_secret:
            raise StorageError("OSS configuration is incomplete, check OSS_BUCKET/OSS_ACCESS_KEY_ID/OSS_ACCESS_KEY_SECRET")
        self.bucket = bucket
        self.access_key_id = access_key_id
        self._access_key_secret = access_key_secret
        self.region = region
        self.endpoint = endpoint
        self.public_base_url = (endpoint or f"https://{bucket}.{region}.aliyuncs.com").rstrip("/")
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> oss2.Bucket:
        """Lazy-load the OSS bucket client."""
        if self._client is None:
            auth = oss2.Auth(self.access_key_id, self._access_key_secret)
            if self.endpoint:
                self._client = oss2.Bucket(
                    auth, self.endpoint, self.bucket, is_cname=True, connect_timeout=self.timeout
                )
            else:
                self._client = oss2.Bucket(
                    auth, f"https://{self.region}.aliyuncs.com", self.bucket, connect_timeout=self.timeout
                )
        return self._client

    async def put(self, key: str, content: bytes, content_type: str) -> str:
        headers = {"Content-Type": content_type, "Content-Disposition": "inline"}
        try:
            await asyncio.to_thread(self.client.put_object, key, content, headers=headers)
        except oss2.exceptions.OssError as e:
            logger.error(f"OSS upload failed for {key}: {e}")
            raise StorageError(f"Failed to upload blob: {e}") from e
        return self.url_for_key(key)

    def _delete(self, key: str) -> None:
        # DeleteObject succeeds for missing keys, so existence is checked first
        if not self.client.object_exists(key):
            raise BlobNotFoundError(f"Blob not found: {key}")
        self.client.delete_object(key)

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._delete, key)
        except oss2.exceptions.NoSuchKey as e:
            raise BlobNotFoundError(f"Blob not found: {key}") from e
        except oss2.exceptions.OssError as e:
            raise StorageError(f"Failed to delete blob: {e}") from e

    def describe(self) -> dict[str, Any]:
        return {
            "backend": "oss",
            "configured": True,
            "region": self.region,
            "bucket": self.bucket,
            "public_base_url": self.public_base_url,
            "access_key_id": "set" if self.access_key_id else "missing",
            "access_key_secret": "set" if self._access_key_secret else "missing",
        }


def create_blob_store(settings: Settings) -> BlobStore:
    """Build the blob store selected by ``BLOB_BACKEND``.

    Example:
        ```python
        from asset_tracker.config import get_settings
        from asset_tracker.core.storage import create_blob_store

        store = create_blob_store(get_settings())
        url = await store.put("assets/photo.jpg", content, "image/jpeg")
        ```
    """
    if settings.blob_backend == "oss":
        return OssBlobStore(
            bucket=settings.oss_bucket,
            access_key_id=settings.oss_access_key_id,
            access_key_secret=settings.oss_access_key_secret,
            region=settings.oss_region,
            endpoint=settings.oss_endpoint,
            timeout=settings.blob_upload_timeout_seconds,
        )
    return LocalBlobStore(
        base_path=settings.resolved_storage_path,
        public_base_url=settings.blob_public_base_url,
    )
