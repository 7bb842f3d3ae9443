"""Base service for stream operations."""

import re

from app.app_config import AppEnvironConfig, get_app_environ_config
from app.schemas import StreamSession
from app.services.integrations.media_service import MediaService, media_service
from app.services.integrations.s3_storage import S3Service, s3_service
from app.utils.app_errors import AppError, AppErrorCode, ErrorKind, HttpStatusCode

STREAM_KEY_PATTERN = re.compile(r"^[a-f0-9]{32}$")


def is_valid_stream_key(stream_key: str | None) -> bool:
    return bool(stream_key) and STREAM_KEY_PATTERN.fullmatch(stream_key) is not None  # type: ignore[arg-type]


class BaseService:
    """Base service with shared stream operation methods."""

    def __init__(
        self,
        settings: AppEnvironConfig | None = None,
        media: MediaService | None = None,
        storage: S3Service | None = None,
    ):
        self.settings = settings or get_app_environ_config()
        self.media = media or media_service
        self.storage = storage or s3_service

    def build_ingest_url(self, stream_key: str) -> str:
        return f"{self.settings.RTMP_INGEST_BASE_URL.rstrip('/')}/{stream_key}"

    def build_playback_url(self, stream_key: str) -> str:
        return f"{self.settings.HLS_PLAYBACK_BASE_URL.rstrip('/')}/{stream_key}/playlist.m3u8"

    async def _get_stream_by_id(self, stream_id: str) -> StreamSession | None:
        return await StreamSession.find_one(StreamSession.stream_id == stream_id)

    async def _require_stream(self, stream_id: str) -> StreamSession:
        stream = await self._get_stream_by_id(stream_id)
        if not stream:
            raise AppError(
                errcode=AppErrorCode.E_STREAM_NOT_FOUND,
                errmesg=f"Stream not found: {stream_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        return stream

    def _require_owner(self, stream: StreamSession, requester_id: str) -> None:
        if stream.owner_id != requester_id:
            raise AppError(
                errcode=AppErrorCode.E_UNAUTHORIZED,
                errmesg=f"User {requester_id} does not own stream {stream.stream_id}",
                status_code=HttpStatusCode.FORBIDDEN,
                kind=ErrorKind.UNAUTHORIZED,
            )
