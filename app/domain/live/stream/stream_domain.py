"""Stream domain service - registry and live lifecycle with Beanie ODM."""

from app.app_config import AppEnvironConfig
from app.services.integrations.media_service import MediaService
from app.services.integrations.s3_storage import S3Service

from ._lifecycle import LifecycleOperations
from ._streams import StreamOperations
from .stream_models import (
    IngestAuthResponse,
    StreamCreateParams,
    StreamListResponse,
    StreamResponse,
)


class StreamService:
    """Stream registry and live lifecycle service."""

    def __init__(
        self,
        settings: AppEnvironConfig | None = None,
        media: MediaService | None = None,
        storage: S3Service | None = None,
    ):
        self._streams = StreamOperations(settings=settings, media=media, storage=storage)
        self._lifecycle = LifecycleOperations(settings=settings, media=media, storage=storage)

    # ==================== STREAMS ====================

    async def create_stream(self, params: StreamCreateParams) -> StreamResponse:
        """Create a new idle stream owned by params.owner_id."""
        return await self._streams.create_stream(params=params)

    async def get_stream(self, stream_id: str, requester_id: str | None = None) -> StreamResponse:
        """Get a single stream by stream_id.

        Raises AppError if the stream is not found.
        """
        return await self._streams.get_stream(stream_id=stream_id, requester_id=requester_id)

    async def list_live_streams(
        self,
        cursor: str | None = None,
        page_size: int = 20,
        category: str | None = None,
    ) -> StreamListResponse:
        return await self._streams.list_live_streams(cursor=cursor, page_size=page_size, category=category)

    async def regenerate_stream_key(self, stream_id: str, requester_id: str) -> StreamResponse:
        """Issue a new stream key.

        Raises AppError if the stream is live or ended, or the requester is not the owner.
        """
        return await self._streams.regenerate_stream_key(stream_id=stream_id, requester_id=requester_id)

    async def authenticate_ingest(self, stream_key: str) -> IngestAuthResponse:
        """Authenticate an RTMP publish attempt.

        Raises AppError if the key is malformed, unknown, or its stream has ended.
        """
        return await self._streams.authenticate_ingest(stream_key=stream_key)

    # ==================== LIFECYCLE ====================

    async def start_stream(self, stream_id: str, requester_id: str) -> StreamResponse:
        """Go live.

        Raises AppError if the stream is not idle, the owner is already live
        elsewhere, or recording infrastructure is unavailable.
        """
        return await self._lifecycle.start_stream(stream_id=stream_id, requester_id=requester_id)

    async def end_stream(self, stream_id: str, requester_id: str) -> StreamResponse:
        """End a live stream.

        Raises AppError if the stream is not live or the requester is not the owner.
        """
        return await self._lifecycle.end_stream(stream_id=stream_id, requester_id=requester_id)
