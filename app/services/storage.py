"""MinIO storage service for patient document files."""

import asyncio
import io
import logging
import re
from datetime import timedelta
from functools import lru_cache
from typing import Optional
from uuid import UUID, uuid4

from minio import Minio
from minio.error import S3Error

from app.core.config import settings

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_filename(filename: str) -> str:
    """Keep letters, digits, dot, dash and underscore."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", filename).strip("._")
    return cleaned or "arquivo"


def document_key(patient_id: UUID, filename: str) -> str:
    """Storage key: patients/{patient_id}/documents/{uuid}-{filename}."""
    return f"patients/{patient_id}/documents/{uuid4()}-{sanitize_filename(filename)}"


class DocumentStorageService:
    """
    MinIO storage service for uploaded documents.

    Handles:
    - Document uploads to S3-compatible storage
    - Presigned URL generation for downloads
    - Object deletion
    - Bucket management
    """

    def __init__(self) -> None:
        """
        Initialize MinIO client with application settings.

        Raises:
            RuntimeError: If MinIO client initialization fails
        """
        try:
            logger.info(f"Initializing MinIO client (endpoint={settings.MINIO_ENDPOINT})")

            self.client = Minio(
                endpoint=settings.MINIO_ENDPOINT,
                access_key=settings.MINIO_ACCESS_KEY,
                secret_key=settings.MINIO_SECRET_KEY,
                secure=settings.MINIO_USE_SSL,
                region=settings.MINIO_REGION,
            )
            self.bucket = settings.MINIO_BUCKET_DOCUMENTS

        except Exception as e:
            logger.error(f"Failed to initialize MinIO client: {e}")
            raise RuntimeError(f"MinIO client initialization failed: {e}") from e

    async def ensure_bucket_exists(self) -> None:
        """Create the documents bucket when missing. Called on startup."""

        def _create_bucket_if_not_exists() -> None:
            try:
                if not self.client.bucket_exists(self.bucket):
                    logger.info(f"Creating bucket: {self.bucket}")
                    self.client.make_bucket(self.bucket)
            except S3Error as e:
                logger.error(f"Failed to create bucket {self.bucket}: {e}")
                raise RuntimeError(f"Failed to create bucket {self.bucket}: {e}") from e

        await asyncio.to_thread(_create_bucket_if_not_exists)

    async def upload_document(
        self,
        patient_id: UUID,
        filename: str,
        data: bytes,
        content_type: str,
    ) -> str:
        """
        Upload a patient document.

        Returns:
            Storage key in the documents bucket

        Raises:
            RuntimeError: If upload fails
        """
        storage_key = document_key(patient_id, filename)

        def _upload() -> None:
            try:
                self.client.put_object(
                    bucket_name=self.bucket,
                    object_name=storage_key,
                    data=io.BytesIO(data),
                    length=len(data),
                    content_type=content_type,
                )
                logger.info(f"Upload complete: {storage_key} ({len(data)} bytes)")
            except S3Error as e:
                logger.error(f"Upload failed for {storage_key}: {e}")
                raise RuntimeError(f"Failed to upload document: {e}") from e

        await asyncio.to_thread(_upload)
        return storage_key

    async def get_presigned_url(
        self,
        storage_key: str,
        expires: timedelta = timedelta(hours=1),
    ) -> str:
        """
        Generate presigned URL for secure file access.

        Raises:
            RuntimeError: If URL generation fails
        """

        def _generate_url() -> str:
            try:
                return self.client.presigned_get_object(
                    bucket_name=self.bucket,
                    object_name=storage_key,
                    expires=expires,
                )
            except S3Error as e:
                raise RuntimeError(
                    f"Failed to generate presigned URL for {storage_key}: {e}"
                ) from e

        return await asyncio.to_thread(_generate_url)

    async def delete_object(self, storage_key: str) -> None:
        """
        Delete a stored object.

        Raises:
            RuntimeError: If deletion fails
        """

        def _delete() -> None:
            try:
                self.client.remove_object(bucket_name=self.bucket, object_name=storage_key)
            except S3Error as e:
                raise RuntimeError(f"Failed to delete object {storage_key}: {e}") from e

        await asyncio.to_thread(_delete)

    async def bucket_count(self) -> Optional[int]:
        """Number of visible buckets (connectivity check)."""
        buckets = await asyncio.to_thread(self.client.list_buckets)
        return len(buckets) if buckets else 0


@lru_cache
def get_storage_service() -> DocumentStorageService:
    """Get cached storage service instance."""
    return DocumentStorageService()
