"""Tests for LifecycleOperations: going live, ending, and the one-live-stream-per-owner rule."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from app.domain.live.stream.stream_domain import StreamService
from app.domain.live.stream.stream_models import StreamCreateParams, StreamSettingsParams
from app.schemas import CreatorLiveSlot, StreamSession, StreamState
from app.utils.app_errors import AppError, AppErrorCode


@pytest.fixture
def service(settings, media, storage) -> StreamService:
    return StreamService(settings=settings, media=media, storage=storage)


async def create(service: StreamService, owner_id: str = "u.owner", **settings) -> str:
    params = StreamCreateParams(
        owner_id=owner_id,
        title="Show",
        settings=StreamSettingsParams(**settings) if settings else None,
    )
    result = await service.create_stream(params)
    return result.stream_id


@pytest.mark.usefixtures("clear_collections")
class TestStartStream:
    async def test_start_moves_idle_to_live(self, beanie_db, service: StreamService):
        stream_id = await create(service)

        result = await service.start_stream(stream_id, requester_id="u.owner")

        assert result.status == StreamState.LIVE
        assert result.started_at is not None
        saved = await StreamSession.find_one(StreamSession.stream_id == stream_id)
        assert saved.status == StreamState.LIVE
        assert await CreatorLiveSlot.holder("u.owner") == stream_id

    async def test_start_requires_owner(self, beanie_db, service: StreamService):
        stream_id = await create(service)

        with pytest.raises(AppError) as exc_info:
            await service.start_stream(stream_id, requester_id="u.intruder")

        assert exc_info.value.errcode == AppErrorCode.E_UNAUTHORIZED
        assert exc_info.value.kind.value == "Unauthorized"

    async def test_start_twice_is_conflict(self, beanie_db, service: StreamService):
        stream_id = await create(service)
        await service.start_stream(stream_id, requester_id="u.owner")

        with pytest.raises(AppError) as exc_info:
            await service.start_stream(stream_id, requester_id="u.owner")

        assert exc_info.value.errcode == AppErrorCode.E_STREAM_ALREADY_LIVE

    async def test_second_stream_of_owner_refused(self, beanie_db, service: StreamService):
        first = await create(service)
        second = await create(service)
        await service.start_stream(first, requester_id="u.owner")

        with pytest.raises(AppError) as exc_info:
            await service.start_stream(second, requester_id="u.owner")

        assert exc_info.value.errcode == AppErrorCode.E_OWNER_ALREADY_LIVE
        saved = await StreamSession.find_one(StreamSession.stream_id == second)
        assert saved.status == StreamState.IDLE

    async def test_other_owners_go_live_independently(self, beanie_db, service: StreamService):
        mine = await create(service, owner_id="u.one")
        theirs = await create(service, owner_id="u.two")

        await service.start_stream(mine, requester_id="u.one")
        result = await service.start_stream(theirs, requester_id="u.two")

        assert result.status == StreamState.LIVE

    async def test_concurrent_starts_of_one_owner_single_winner(self, beanie_db, service: StreamService):
        stream_ids = [await create(service) for _ in range(4)]

        outcomes = await asyncio.gather(
            *(service.start_stream(sid, requester_id="u.owner") for sid in stream_ids),
            return_exceptions=True,
        )

        winners = [o for o in outcomes if not isinstance(o, BaseException)]
        losers = [o for o in outcomes if isinstance(o, AppError)]
        assert len(winners) == 1
        assert len(losers) == 3
        assert {e.errcode for e in losers} <= {
            AppErrorCode.E_OWNER_ALREADY_LIVE.value,
            AppErrorCode.E_STREAM_ALREADY_LIVE.value,
        }
        live = await StreamSession.find(
            StreamSession.owner_id == "u.owner", StreamSession.status == StreamState.LIVE
        ).to_list()
        assert [s.stream_id for s in live] == [winners[0].stream_id]
        assert await CreatorLiveSlot.holder("u.owner") == winners[0].stream_id

    async def test_concurrent_starts_of_same_stream_keep_slot(self, beanie_db, service: StreamService):
        stream_id = await create(service)

        outcomes = await asyncio.gather(
            service.start_stream(stream_id, requester_id="u.owner"),
            service.start_stream(stream_id, requester_id="u.owner"),
            return_exceptions=True,
        )

        assert sum(1 for o in outcomes if not isinstance(o, BaseException)) == 1
        assert await CreatorLiveSlot.holder("u.owner") == stream_id

    async def test_ended_stream_cannot_restart(self, beanie_db, service: StreamService):
        stream_id = await create(service)
        await service.start_stream(stream_id, requester_id="u.owner")
        await service.end_stream(stream_id, requester_id="u.owner")

        with pytest.raises(AppError) as exc_info:
            await service.start_stream(stream_id, requester_id="u.owner")

        assert exc_info.value.errcode == AppErrorCode.E_STREAM_ENDED

    async def test_recording_unavailable(self, beanie_db, service: StreamService, media):
        stream_id = await create(service)
        media.ready = False

        with pytest.raises(AppError) as exc_info:
            await service.start_stream(stream_id, requester_id="u.owner")

        assert exc_info.value.errcode == AppErrorCode.E_RECORDING_UNAVAILABLE
        assert exc_info.value.status_code == 503
        assert await CreatorLiveSlot.holder("u.owner") is None

    async def test_recording_readiness_ignored_without_recording(self, beanie_db, service: StreamService, media):
        stream_id = await create(service, enable_recording=False)
        media.ready = False

        result = await service.start_stream(stream_id, requester_id="u.owner")

        assert result.status == StreamState.LIVE

    async def test_invalid_key_replaced_on_start(self, beanie_db, service: StreamService):
        stream_id = await create(service)
        await StreamSession.find(StreamSession.stream_id == stream_id).update({"$set": {"stream_key": "legacy"}})

        result = await service.start_stream(stream_id, requester_id="u.owner")

        assert result.stream_key != "legacy"
        assert len(result.stream_key) == 32
        assert result.playback_url.endswith(f"{result.stream_key}/playlist.m3u8")

    async def test_stale_slot_of_idle_stream_reclaimed(self, beanie_db, service: StreamService):
        abandoned = await create(service)
        fresh = await create(service)
        old = datetime.now(timezone.utc) - timedelta(minutes=5)
        await CreatorLiveSlot(owner_id="u.owner", stream_id=abandoned, claimed_at=old, updated_at=old).insert()

        result = await service.start_stream(fresh, requester_id="u.owner")

        assert result.status == StreamState.LIVE
        assert await CreatorLiveSlot.holder("u.owner") == fresh

    async def test_slot_of_missing_stream_reclaimed(self, beanie_db, service: StreamService):
        stream_id = await create(service)
        now = datetime.now(timezone.utc)
        await CreatorLiveSlot(owner_id="u.owner", stream_id="st_gone", claimed_at=now, updated_at=now).insert()

        result = await service.start_stream(stream_id, requester_id="u.owner")

        assert result.status == StreamState.LIVE

    async def test_slot_of_ended_stream_reclaimed(self, beanie_db, service: StreamService):
        finished = await create(service)
        fresh = await create(service)
        await StreamSession.find(StreamSession.stream_id == finished).update({"$set": {"status": "ended"}})
        now = datetime.now(timezone.utc)
        await CreatorLiveSlot(owner_id="u.owner", stream_id=finished, claimed_at=now, updated_at=now).insert()

        result = await service.start_stream(fresh, requester_id="u.owner")

        assert result.status == StreamState.LIVE
        assert await CreatorLiveSlot.holder("u.owner") == fresh


@pytest.mark.usefixtures("clear_collections")
class TestEndStream:
    async def test_end_moves_live_to_ended_and_frees_slot(self, beanie_db, service: StreamService):
        stream_id = await create(service)
        await service.start_stream(stream_id, requester_id="u.owner")

        result = await service.end_stream(stream_id, requester_id="u.owner")

        assert result.status == StreamState.ENDED
        assert result.ended_at is not None
        assert await CreatorLiveSlot.holder("u.owner") is None

    async def test_owner_can_go_live_again_after_ending(self, beanie_db, service: StreamService):
        first = await create(service)
        second = await create(service)
        await service.start_stream(first, requester_id="u.owner")
        await service.end_stream(first, requester_id="u.owner")

        result = await service.start_stream(second, requester_id="u.owner")

        assert result.status == StreamState.LIVE

    async def test_end_idle_stream_not_active(self, beanie_db, service: StreamService):
        stream_id = await create(service)

        with pytest.raises(AppError) as exc_info:
            await service.end_stream(stream_id, requester_id="u.owner")

        assert exc_info.value.errcode == AppErrorCode.E_STREAM_NOT_ACTIVE

    async def test_end_twice_not_active(self, beanie_db, service: StreamService):
        stream_id = await create(service)
        await service.start_stream(stream_id, requester_id="u.owner")
        await service.end_stream(stream_id, requester_id="u.owner")

        with pytest.raises(AppError) as exc_info:
            await service.end_stream(stream_id, requester_id="u.owner")

        assert exc_info.value.errcode == AppErrorCode.E_STREAM_NOT_ACTIVE

    async def test_end_requires_owner(self, beanie_db, service: StreamService):
        stream_id = await create(service)
        await service.start_stream(stream_id, requester_id="u.owner")

        with pytest.raises(AppError) as exc_info:
            await service.end_stream(stream_id, requester_id="u.intruder")

        assert exc_info.value.errcode == AppErrorCode.E_UNAUTHORIZED
        saved = await StreamSession.find_one(StreamSession.stream_id == stream_id)
        assert saved.status == StreamState.LIVE

    async def test_concurrent_ends_single_winner(self, beanie_db, service: StreamService):
        stream_id = await create(service)
        await service.start_stream(stream_id, requester_id="u.owner")

        outcomes = await asyncio.gather(
            service.end_stream(stream_id, requester_id="u.owner"),
            service.end_stream(stream_id, requester_id="u.owner"),
            return_exceptions=True,
        )

        errors = [o for o in outcomes if isinstance(o, AppError)]
        assert len(errors) == 1
        assert errors[0].errcode == AppErrorCode.E_STREAM_NOT_ACTIVE
