from datetime import datetime, timedelta, timezone

import pytest

from app.domain.vod.pipeline import VodPipeline
from app.domain.vod.vod_domain import VodService
from app.schemas import StreamSession, StreamSettings, StreamState


@pytest.fixture
def vod_service(settings, media, storage, dispatcher) -> VodService:
    return VodService(settings=settings, media=media, storage=storage, dispatcher=dispatcher)


@pytest.fixture
def pipeline(settings, media) -> VodPipeline:
    return VodPipeline(settings=settings, media=media)


@pytest.fixture
def ended_stream_factory():
    async def factory(
        stream_id: str = "st_ended",
        owner_id: str = "u.owner",
        status: StreamState = StreamState.ENDED,
        **settings,
    ) -> StreamSession:
        ended = datetime.now(timezone.utc)
        stream = StreamSession(
            stream_id=stream_id,
            owner_id=owner_id,
            title="Friday show",
            category="music",
            tags=["live"],
            status=status,
            settings=StreamSettings(**settings),
            stream_key=stream_id.encode().hex().ljust(32, "0")[:32],
            ingest_url="rtmp://ingest.test/live/key",
            playback_url="https://hls.test/live/key/playlist.m3u8",
            started_at=ended - timedelta(minutes=30),
            ended_at=ended if status == StreamState.ENDED else None,
            created_at=ended - timedelta(hours=1),
            updated_at=ended,
        )
        await stream.insert()
        return stream

    return factory
