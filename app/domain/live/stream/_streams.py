"""Stream operations."""

from datetime import datetime, timezone
from typing import Any

from beanie.operators import LT, And, Or
from bson import ObjectId
from loguru import logger
from pymongo import DESCENDING

from app.domain.utils.idgen import new_stream_id, new_stream_key
from app.domain.utils.timeutils import dt_to_ms, utc_now
from app.schemas import StreamSession, StreamSettings, StreamState
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ._base import BaseService, is_valid_stream_key
from .stream_models import (
    IngestAuthResponse,
    StreamCreateParams,
    StreamListResponse,
    StreamResponse,
)


class StreamOperations(BaseService):
    """Stream registry operations outside the live transitions."""

    async def create_stream(self, params: StreamCreateParams) -> StreamResponse:
        """Create an idle stream with a fresh stream key."""
        now = utc_now()

        settings = StreamSettings(max_duration_minutes=self.settings.STREAM_DEFAULT_MAX_DURATION_MINUTES)
        if params.settings:
            settings = settings.model_copy(update=params.settings.model_dump(exclude_none=True))

        stream_key = new_stream_key()
        stream = StreamSession(
            stream_id=new_stream_id(),
            owner_id=params.owner_id,
            title=params.title.strip(),
            description=params.description,
            category=params.category,
            tags=[t.strip() for t in params.tags if t.strip()],
            status=StreamState.IDLE,
            settings=settings,
            stream_key=stream_key,
            ingest_url=self.build_ingest_url(stream_key),
            playback_url=self.build_playback_url(stream_key),
            created_at=now,
            updated_at=now,
        )

        logger.debug(f"Creating stream {stream.stream_id} for owner {params.owner_id}")
        await stream.insert()

        return StreamResponse.from_document(stream, include_secrets=True)

    async def get_stream(self, stream_id: str, requester_id: str | None = None) -> StreamResponse:
        """Get a single stream. The stream key is only included for its owner.

        Raises AppError if the stream is not found, or is private and the
        requester is not the owner.
        """
        stream = await self._require_stream(stream_id)
        is_owner = requester_id is not None and requester_id == stream.owner_id
        if stream.settings.is_private and not is_owner:
            raise AppError(
                errcode=AppErrorCode.E_STREAM_NOT_FOUND,
                errmesg=f"Stream not found: {stream_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        return StreamResponse.from_document(stream, include_secrets=is_owner)

    async def list_live_streams(
        self,
        cursor: str | None = None,
        page_size: int = 20,
        category: str | None = None,
    ) -> StreamListResponse:
        """Return public live streams, most recently started first."""
        if page_size < 1 or page_size > 100:
            logger.warning(f"Invalid page_size: {page_size}")
            page_size = 20

        conditions: list[Any] = [
            StreamSession.status == StreamState.LIVE,
            StreamSession.settings.is_private == False,  # noqa: E712
        ]
        if category:
            conditions.append(StreamSession.category == category)

        if cursor:
            try:
                c_ms_str, c_oid_str = cursor.split("|", 1)
                c_dt = datetime.fromtimestamp(int(c_ms_str) / 1000, tz=timezone.utc)
                c_oid = ObjectId(c_oid_str)
                conditions.append(
                    Or(
                        LT(StreamSession.started_at, c_dt),
                        And(StreamSession.started_at == c_dt, LT(StreamSession.id, c_oid)),
                    )
                )
            except Exception as e:
                raise AppError(
                    errcode=AppErrorCode.E_INVALID_PARAMS,
                    errmesg=f"Invalid cursor: {cursor}",
                    status_code=HttpStatusCode.BAD_REQUEST,
                ) from e

        streams = (
            await StreamSession.find(*conditions)
            .sort([("started_at", DESCENDING), ("_id", DESCENDING)])  # type: ignore[list-item]
            .limit(page_size + 1)
            .to_list()
        )

        next_cursor = None
        if len(streams) > page_size:
            last = streams[page_size - 1]
            next_cursor = f"{dt_to_ms(last.started_at)}|{last.id!s}"
            streams = streams[:page_size]

        return StreamListResponse(
            streams=[StreamResponse.from_document(s) for s in streams],
            next_cursor=next_cursor,
        )

    async def regenerate_stream_key(self, stream_id: str, requester_id: str) -> StreamResponse:
        """Issue a new stream key. Not allowed while the stream is live."""
        stream = await self._require_stream(stream_id)
        self._require_owner(stream, requester_id)

        if stream.status == StreamState.LIVE:
            raise AppError(
                errcode=AppErrorCode.E_STREAM_ACTIVE,
                errmesg="Cannot regenerate the stream key while the stream is live",
                status_code=HttpStatusCode.CONFLICT,
            )
        if stream.status == StreamState.ENDED:
            raise AppError(
                errcode=AppErrorCode.E_STREAM_ENDED,
                errmesg=f"Stream {stream_id} has ended",
                status_code=HttpStatusCode.CONFLICT,
            )

        stream_key = new_stream_key()
        now = utc_now()
        updates = {
            StreamSession.stream_key: stream_key,
            StreamSession.ingest_url: self.build_ingest_url(stream_key),
            StreamSession.playback_url: self.build_playback_url(stream_key),
            StreamSession.updated_at: now,
        }
        # Only the idle state reaches here; a concurrent start bumps the version and wins
        await stream.partial_update_with_version_check(updates)
        stream.stream_key = stream_key
        stream.ingest_url = updates[StreamSession.ingest_url]
        stream.playback_url = updates[StreamSession.playback_url]
        stream.updated_at = now

        logger.info(f"Stream {stream_id} key regenerated")
        return StreamResponse.from_document(stream, include_secrets=True)

    async def authenticate_ingest(self, stream_key: str) -> IngestAuthResponse:
        """Validate an RTMP publish attempt by stream key."""
        if not is_valid_stream_key(stream_key):
            raise AppError(
                errcode=AppErrorCode.E_INVALID_STREAM_KEY,
                errmesg="Stream key must be 32 lowercase hex characters",
                status_code=HttpStatusCode.BAD_REQUEST,
            )

        stream = await StreamSession.find_one(StreamSession.stream_key == stream_key)
        if not stream:
            raise AppError(
                errcode=AppErrorCode.E_STREAM_NOT_FOUND,
                errmesg="No stream for this stream key",
                status_code=HttpStatusCode.NOT_FOUND,
            )

        if stream.status == StreamState.ENDED:
            raise AppError(
                errcode=AppErrorCode.E_STREAM_ENDED,
                errmesg=f"Stream {stream.stream_id} has ended",
                status_code=HttpStatusCode.CONFLICT,
            )

        logger.info(f"RTMP ingest authenticated for stream {stream.stream_id}")
        return IngestAuthResponse(
            stream_id=stream.stream_id,
            owner_id=stream.owner_id,
            title=stream.title,
            status=stream.status,
            enable_recording=stream.settings.enable_recording,
            recording_ref=(
                self.storage.recording_key(stream.stream_id) if stream.settings.enable_recording else None
            ),
        )
