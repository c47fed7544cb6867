"""S3-compatible blob store for invoice uploads using MinIO.

Production-grade implementation with:
- Lazy client initialization
- Bucket auto-creation
- Presigned PUT URLs as time-limited upload grants
- Read-back of uploaded objects for OCR
- Bucket notification listening for new uploads

Based on MinIO Python SDK:
https://min.io/docs/minio/linux/developers/python/API.html
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import timedelta
from typing import Any

from minio import Minio
from minio.error import S3Error
from pydantic import BaseModel
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from invoice_scanner.shared.config import Settings
from invoice_scanner.shared.errors import BlobReadError, CapabilityUnavailable

logger = logging.getLogger(__name__)

_MISSING_OBJECT_CODES = {"NoSuchKey", "NoSuchBucket", "NoSuchObject"}


class UploadGrantResult(BaseModel):
    """Result of upload grant generation.

    Attributes:
        success: Whether operation succeeded
        url: Presigned PUT URL the client writes the document to
        object_name: Object key the grant is valid for
        expires_in_seconds: URL expiration time
        error: Error message if operation failed
    """

    success: bool
    url: str | None = None
    object_name: str | None = None
    expires_in_seconds: int | None = None
    error: str | None = None


class BlobStore:
    """S3-compatible object storage for uploaded invoices."""

    def __init__(self, settings: Settings) -> None:
        """Initialize blob store.

        Args:
            settings: Application settings with storage configuration
        """
        self.settings = settings
        self._client: Minio | None = None
        self._bucket_exists_cache: set[str] = set()

    @property
    def bucket(self) -> str:
        return self.settings.storage_bucket

    def _get_client(self) -> Minio:
        """Get or create MinIO client (lazy initialization).

        Returns:
            Configured Minio client instance

        Raises:
            ValueError: If storage credentials are not configured
        """
        if self._client is None:
            if not self.settings.storage_access_key:
                raise ValueError(
                    "Storage access key not configured. "
                    "Set APP_STORAGE_ACCESS_KEY environment variable."
                )
            if not self.settings.storage_secret_key:
                raise ValueError(
                    "Storage secret key not configured. "
                    "Set APP_STORAGE_SECRET_KEY environment variable."
                )

            self._client = Minio(
                endpoint=self.settings.storage_endpoint,
                access_key=self.settings.storage_access_key,
                secret_key=self.settings.storage_secret_key,
                secure=self.settings.storage_secure,
            )
            logger.info(f"MinIO client initialized for endpoint: {self.settings.storage_endpoint}")

        return self._client

    def is_available(self) -> bool:
        """Check if storage service is enabled and configured.

        Returns:
            True if storage is enabled and credentials are set
        """
        if not self.settings.storage_enabled:
            return False

        return bool(self.settings.storage_access_key and self.settings.storage_secret_key)

    def health_check(self) -> bool:
        """Check if storage backend is reachable.

        Returns:
            True if MinIO server responds for the upload bucket
        """
        if not self.is_available():
            return False

        try:
            self._get_client().bucket_exists(self.bucket)
            return True
        except Exception as e:
            logger.warning(f"Storage health check failed: {e}")
            return False

    def _ensure_bucket(self, bucket: str) -> None:
        """Ensure bucket exists, create if missing.

        Args:
            bucket: Bucket name to check/create
        """
        if bucket in self._bucket_exists_cache:
            return

        client = self._get_client()
        if not client.bucket_exists(bucket):
            client.make_bucket(bucket)
            logger.info(f"Created bucket: {bucket}")

        self._bucket_exists_cache.add(bucket)

    def create_upload_grant(self, object_name: str, expires_seconds: int) -> UploadGrantResult:
        """Generate a presigned PUT URL for one object.

        Args:
            object_name: Object key the client may write
            expires_seconds: URL lifetime

        Returns:
            UploadGrantResult with URL or error
        """
        if not self.is_available():
            return UploadGrantResult(success=False, error="Blob storage is not configured")

        try:
            client = self._get_client()
            self._ensure_bucket(self.bucket)

            url = client.presigned_put_object(
                bucket_name=self.bucket,
                object_name=object_name,
                expires=timedelta(seconds=expires_seconds),
            )

            return UploadGrantResult(
                success=True,
                url=url,
                object_name=object_name,
                expires_in_seconds=expires_seconds,
            )

        except S3Error as e:
            logger.error(f"S3 error generating upload grant for {object_name}: {e}")
            return UploadGrantResult(
                success=False,
                object_name=object_name,
                error=f"S3 error: {e.code} - {e.message}",
            )
        except Exception as e:
            logger.error(f"Error generating upload grant for {object_name}: {e}")
            return UploadGrantResult(success=False, object_name=object_name, error=str(e))

    @contextmanager
    def _reading(self, bucket: str, object_name: str) -> Iterator[None]:
        """Map client errors raised while reading an object to pipeline errors."""
        try:
            yield
        except S3Error as e:
            if e.code in _MISSING_OBJECT_CODES:
                raise BlobReadError(f"Object not found: {bucket}/{object_name}") from e
            raise BlobReadError(f"S3 error: {e.code} - {e.message}", transient=True) from e
        except (Urllib3HTTPError, ConnectionError) as e:
            raise CapabilityUnavailable(f"Blob storage unreachable: {e}") from e
        except ValueError as e:
            raise BlobReadError(str(e)) from e

    def object_size(self, object_name: str, bucket: str | None = None) -> int:
        """Size in bytes of a stored object, read from its metadata.

        Raises:
            BlobReadError: If the object does not exist (not retryable)
            CapabilityUnavailable: If storage cannot be reached (retryable)
        """
        bucket = bucket or self.bucket
        with self._reading(bucket, object_name):
            stat = self._get_client().stat_object(bucket_name=bucket, object_name=object_name)
        return int(stat.size or 0)

    def download_bytes(self, object_name: str, bucket: str | None = None) -> bytes:
        """Read an uploaded object back.

        Args:
            object_name: Object key
            bucket: Bucket name (defaults to settings.storage_bucket)

        Returns:
            Object content

        Raises:
            BlobReadError: If the object does not exist (not retryable)
            CapabilityUnavailable: If storage cannot be reached (retryable)
        """
        bucket = bucket or self.bucket
        response = None
        try:
            with self._reading(bucket, object_name):
                response = self._get_client().get_object(
                    bucket_name=bucket, object_name=object_name
                )
                data: bytes = response.read()
            logger.info(f"Downloaded {object_name} from {bucket} ({len(data)} bytes)")
            return data
        finally:
            if response is not None:
                response.close()
                response.release_conn()

    def listen_for_uploads(self, prefix: str) -> Iterator[dict[str, Any]]:
        """Yield S3-style event documents for objects created under ``prefix``.

        Blocks for as long as the server keeps the stream open.
        """
        client = self._get_client()
        with client.listen_bucket_notification(
            self.bucket,
            prefix=prefix,
            events=["s3:ObjectCreated:*"],
        ) as events:
            for event in events:
                yield event
