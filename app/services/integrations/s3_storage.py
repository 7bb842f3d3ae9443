"""AWS S3 helper service.

Thin wrapper around aioboto3 S3 operations for locating stream recordings and
uploaded VOD sources.

Usage:
    from app.services.integrations.s3_storage import s3_service

    key = s3_service.recording_key("st_01hx...")
    info = await s3_service.head_object(key)
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aioboto3
from botocore.exceptions import ClientError
from loguru import logger
from pydantic import BaseModel

from app.app_config import AppEnvironConfig, get_app_environ_config
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


class ObjectInfo(BaseModel):
    key: str
    size: int
    etag: str | None = None
    content_type: str | None = None


class S3Service:
    """Service wrapper for AWS S3 operations on media objects."""

    def __init__(self, settings: AppEnvironConfig | None = None) -> None:
        self._settings = settings or get_app_environ_config()
        self._session: aioboto3.Session | None = None
        self._demo_mode = self._settings.DEMO_MODE

    def _get_session(self) -> aioboto3.Session:
        """Get or create aioboto3 session."""
        if self._session is None:
            if not self._settings.AWS_ACCESS_KEY_ID or not self._settings.AWS_SECRET_ACCESS_KEY:
                raise AppError(
                    errcode=AppErrorCode.E_STORAGE_UNAVAILABLE,
                    errmesg="AWS credentials not configured",
                    status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
                )

            self._session = aioboto3.Session(
                aws_access_key_id=self._settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=self._settings.AWS_SECRET_ACCESS_KEY,
                region_name=self._settings.AWS_REGION,
            )
            logger.info(f"S3 session created for region: {self._settings.AWS_REGION}")

        return self._session

    @asynccontextmanager
    async def _get_client(self) -> AsyncIterator:  # type: ignore[misc]
        session = self._get_session()
        async with session.client("s3") as client:  # type: ignore[attr-defined]
            yield client

    def _get_bucket_name(self) -> str:
        if not self._settings.S3_MEDIA_BUCKET:
            raise AppError(
                errcode=AppErrorCode.E_STORAGE_UNAVAILABLE,
                errmesg="S3_MEDIA_BUCKET not configured",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )
        return self._settings.S3_MEDIA_BUCKET

    def recording_key(self, stream_id: str) -> str:
        """Object key of a stream's recording (e.g. "recordings/st_123/stream.mp4")."""
        return f"{self._settings.S3_RECORDING_PREFIX}/{stream_id}/stream.mp4"

    def object_url(self, key: str) -> str:
        bucket = self._settings.S3_MEDIA_BUCKET or "demo-bucket"
        return f"s3://{bucket}/{key}"

    async def head_object(self, key: str) -> ObjectInfo | None:
        """Return object metadata, or None if the object does not exist.

        Raises:
            AppError: E_STORAGE_UNAVAILABLE if S3 could not be reached.
        """
        if self._demo_mode:
            logger.info(f"S3Service DEMO_MODE=true: stubbed head_object {key}")
            return ObjectInfo(key=key, size=1024 * 1024, etag="demo", content_type="video/mp4")

        bucket = self._get_bucket_name()
        try:
            async with self._get_client() as client:
                response = await client.head_object(Bucket=bucket, Key=key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("404", "NoSuchKey", "NotFound"):
                return None
            logger.error(f"Failed to head object {key}: {e}")
            raise AppError(
                errcode=AppErrorCode.E_STORAGE_UNAVAILABLE,
                errmesg=f"Object storage lookup failed for {key}",
                status_code=HttpStatusCode.BAD_GATEWAY,
            ) from e

        return ObjectInfo(
            key=key,
            size=int(response.get("ContentLength") or 0),
            etag=(response.get("ETag") or "").strip('"') or None,
            content_type=response.get("ContentType"),
        )


s3_service = S3Service()
