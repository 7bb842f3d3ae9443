"""Tests for VOD worker tasks."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.domain.access.grant_models import CleanupResponse
from app.domain.vod.pipeline import VodPipeline
from app.domain.vod.vod_domain import VodService
from app.schemas import JobStatus, StreamSession, StreamSettings, StreamState, Vod, VodState
from app.utils.app_errors import AppError, AppErrorCode


async def insert_ended_stream() -> None:
    ended = datetime.now(timezone.utc)
    await StreamSession(
        stream_id="st_worker",
        owner_id="u.owner",
        title="Worker show",
        status=StreamState.ENDED,
        settings=StreamSettings(),
        stream_key="0" * 32,
        ingest_url="rtmp://ingest.test/live/key",
        playback_url="https://hls.test/live/key/playlist.m3u8",
        started_at=ended - timedelta(minutes=10),
        ended_at=ended,
        created_at=ended - timedelta(minutes=20),
        updated_at=ended,
    ).insert()


@pytest.mark.usefixtures("clear_collections")
class TestRunVodConversion:
    async def test_runs_queued_job(self, beanie_db, settings, media, storage, dispatcher):
        from app.workers.vod_worker import run_vod_conversion

        await insert_ended_stream()
        service = VodService(settings=settings, media=media, storage=storage, dispatcher=dispatcher)
        created = await service.create_vod_from_stream("st_worker", requester_id="u.owner")

        with patch("app.workers.vod_worker.VodPipeline", return_value=VodPipeline(settings=settings, media=media)):
            result = await run_vod_conversion.fn(created.job.job_id)

        assert result == {"job_id": created.job.job_id, "vod_id": created.vod.vod_id, "status": "completed"}
        vod = await Vod.find_one(Vod.vod_id == created.vod.vod_id)
        assert vod.status == VodState.READY
        assert vod.inflight_job_id is None

    async def test_unknown_job_fails_task(self, beanie_db):
        from app.workers.vod_worker import run_vod_conversion

        with pytest.raises(AppError) as exc_info:
            await run_vod_conversion.fn("jb_missing")

        assert exc_info.value.errcode == AppErrorCode.E_JOB_NOT_FOUND

    async def test_reports_failed_job(self):
        from app.workers.vod_worker import run_vod_conversion

        job = MagicMock(job_id="jb_1", vod_id="vd_1", status=JobStatus.FAILED)
        pipeline = MagicMock()
        pipeline.run_job = AsyncMock(return_value=job)

        with patch("app.workers.vod_worker.VodPipeline", return_value=pipeline):
            result = await run_vod_conversion.fn("jb_1")

        assert result["status"] == "failed"
        pipeline.run_job.assert_awaited_once_with("jb_1")


class TestCleanupExpiredGrants:
    async def test_cron_runs_cleanup(self):
        from app.workers.vod_worker import cleanup_expired_grants

        service = MagicMock()
        service.cleanup_expired_grants = AsyncMock(return_value=CleanupResponse(deleted=3))

        with patch("app.workers.vod_worker.AccessService", return_value=service):
            await cleanup_expired_grants.fn()

        service.cleanup_expired_grants.assert_awaited_once()
