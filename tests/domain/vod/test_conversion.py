"""Tests for ConversionOperations: creating VODs and retrying failed stages."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from pymongo.errors import PyMongoError

from app.domain.utils.timeutils import utc_now
from app.domain.vod._conversion import initial_stages, parse_storage_key, stages_to_retry
from app.domain.vod.vod_models import UploadParams, VodOptionsParams
from app.schemas import (
    JobStatus,
    ProcessingJob,
    StageName,
    StageRecord,
    StageStatus,
    StreamSession,
    StreamState,
    SubscriptionTier,
    Vod,
    VodOptions,
    VodState,
    VodVisibility,
)
from app.services.integrations.media_schemas import MediaJobKind
from app.utils.app_errors import AppError, AppErrorCode


class TestInitialStages:
    def test_everything_requested(self):
        stages = initial_stages(VodOptions())

        assert stages.thumbnails.status == StageStatus.PENDING
        assert stages.highlights.status == StageStatus.PENDING
        assert stages.publication.status == StageStatus.NOT_REQUESTED

    def test_ai_disabled(self):
        stages = initial_stages(VodOptions(enable_ai_processing=False, auto_publish=True))

        for stage in StageName.ai_stages():
            assert stages.get(stage).status == StageStatus.NOT_REQUESTED
        assert stages.ingest.status == StageStatus.PENDING
        assert stages.publication.status == StageStatus.PENDING


class TestStagesToRetry:
    def make_vod(self, **statuses) -> Vod:
        vod = Vod(vod_id="vd_r", owner_id="u", title="t", created_at=utc_now(), updated_at=utc_now())
        vod.stages.ingest = StageRecord(status=StageStatus.SUCCEEDED)
        for name in ("thumbnails", "transcription", "highlights"):
            vod.stages.set(StageName(name), StageRecord(status=StageStatus.SUCCEEDED))
        for name, record in statuses.items():
            vod.stages.set(StageName(name), record)
        return vod

    async def test_failed_transcription_pulls_degraded_highlights(self, beanie_db):
        vod = self.make_vod(
            transcription=StageRecord(status=StageStatus.FAILED),
            highlights=StageRecord(status=StageStatus.SUCCEEDED, degraded=True),
        )

        assert stages_to_retry(vod) == [StageName.TRANSCRIPTION, StageName.HIGHLIGHTS, StageName.PUBLICATION]

    async def test_failed_highlights_pull_failed_transcription(self, beanie_db):
        vod = self.make_vod(
            transcription=StageRecord(status=StageStatus.FAILED),
            highlights=StageRecord(status=StageStatus.FAILED),
        )

        assert stages_to_retry(vod) == [StageName.TRANSCRIPTION, StageName.HIGHLIGHTS, StageName.PUBLICATION]

    async def test_only_thumbnails_failed(self, beanie_db):
        vod = self.make_vod(thumbnails=StageRecord(status=StageStatus.FAILED))

        assert stages_to_retry(vod) == [StageName.THUMBNAILS, StageName.PUBLICATION]

    async def test_failed_ingest_retries_everything_requested(self, beanie_db):
        vod = self.make_vod(
            ingest=StageRecord(status=StageStatus.FAILED),
            thumbnails=StageRecord(status=StageStatus.SKIPPED),
            transcription=StageRecord(status=StageStatus.SKIPPED),
            highlights=StageRecord(status=StageStatus.SKIPPED),
        )

        assert stages_to_retry(vod) == list(StageName)

    async def test_not_requested_stage_is_never_retried(self, beanie_db):
        vod = self.make_vod(thumbnails=StageRecord(status=StageStatus.NOT_REQUESTED))
        vod.options = VodOptions(generate_thumbnails=False)

        assert stages_to_retry(vod) == []


class TestParseStorageKey:
    def test_s3_url(self):
        assert parse_storage_key("s3://bucket/uploads/a.mp4") == "uploads/a.mp4"

    def test_bare_key(self):
        assert parse_storage_key("/uploads/a.mp4") == "uploads/a.mp4"


@pytest.mark.usefixtures("clear_collections")
class TestCreateVodFromStream:
    async def test_create_returns_handle_and_dispatches(
        self, beanie_db, vod_service, dispatcher, ended_stream_factory
    ):
        await ended_stream_factory()

        result = await vod_service.create_vod_from_stream("st_ended", requester_id="u.owner")

        assert result.created is True
        assert result.vod.status == VodState.PENDING
        assert result.vod.processing is True
        assert result.vod.source_stream_id == "st_ended"
        assert result.vod.title == "Friday show"
        assert result.job.status == JobStatus.QUEUED
        assert result.job.stages == list(StageName)
        dispatcher.assert_awaited_once_with(result.job.job_id)

        vod = await Vod.find_one(Vod.vod_id == result.vod.vod_id)
        assert vod.inflight_job_id == result.job.job_id
        assert vod.recording_ref == "s3://media-test/recordings/st_ended/stream.mp4"
        assert vod.duration_seconds == pytest.approx(1800, abs=1)
        stream = await StreamSession.find_one(StreamSession.stream_id == "st_ended")
        assert stream.vod_id == vod.vod_id

    async def test_second_request_returns_existing_vod(
        self, beanie_db, vod_service, dispatcher, ended_stream_factory
    ):
        await ended_stream_factory()
        first = await vod_service.create_vod_from_stream("st_ended", requester_id="u.owner")

        second = await vod_service.create_vod_from_stream("st_ended", requester_id="u.owner")

        assert second.created is False
        assert second.vod.vod_id == first.vod.vod_id
        assert second.job.job_id == first.job.job_id
        assert await Vod.count() == 1
        assert dispatcher.await_count == 1

    async def test_private_premium_stream_carries_over(self, beanie_db, vod_service, ended_stream_factory):
        await ended_stream_factory(is_private=True, require_subscription=True)

        result = await vod_service.create_vod_from_stream("st_ended", requester_id="u.owner")

        assert result.vod.visibility == VodVisibility.PRIVATE
        assert result.vod.required_tier == SubscriptionTier.PREMIUM

    async def test_options_snapshot(self, beanie_db, vod_service, ended_stream_factory):
        await ended_stream_factory()
        options = VodOptionsParams(generate_highlights=False, retention_days=30)

        result = await vod_service.create_vod_from_stream("st_ended", requester_id="u.owner", options=options)

        assert result.vod.options.generate_highlights is False
        assert result.vod.retention_days == 30
        assert result.vod.stages.highlights.status == StageStatus.NOT_REQUESTED

    async def test_stream_not_ended(self, beanie_db, vod_service, ended_stream_factory):
        await ended_stream_factory(status=StreamState.LIVE)

        with pytest.raises(AppError) as exc_info:
            await vod_service.create_vod_from_stream("st_ended", requester_id="u.owner")

        assert exc_info.value.errcode == AppErrorCode.E_STREAM_NOT_ENDED

    async def test_recording_not_enabled(self, beanie_db, vod_service, ended_stream_factory):
        await ended_stream_factory(enable_recording=False)

        with pytest.raises(AppError) as exc_info:
            await vod_service.create_vod_from_stream("st_ended", requester_id="u.owner")

        assert exc_info.value.errcode == AppErrorCode.E_RECORDING_NOT_ENABLED

    async def test_requires_owner_or_admin(self, beanie_db, vod_service, ended_stream_factory):
        await ended_stream_factory()

        with pytest.raises(AppError) as exc_info:
            await vod_service.create_vod_from_stream("st_ended", requester_id="u.other")
        assert exc_info.value.errcode == AppErrorCode.E_UNAUTHORIZED

        result = await vod_service.create_vod_from_stream("st_ended", requester_id="u.admin", is_admin=True)
        assert result.vod.owner_id == "u.owner"

    async def test_dispatch_failure_leaves_vod_retryable(
        self, beanie_db, vod_service, dispatcher, ended_stream_factory
    ):
        await ended_stream_factory()
        dispatcher.side_effect = RuntimeError("queue down")

        with pytest.raises(AppError) as exc_info:
            await vod_service.create_vod_from_stream("st_ended", requester_id="u.owner")
        assert exc_info.value.errcode == AppErrorCode.E_INTERNAL_ERROR

        vod = await Vod.find_one(Vod.source_stream_id == "st_ended")
        assert vod.inflight_job_id is None
        assert vod.status == VodState.FAILED
        job = await ProcessingJob.find_one(ProcessingJob.vod_id == vod.vod_id)
        assert job.status == JobStatus.FAILED

        dispatcher.side_effect = None
        retried = await vod_service.retry_vod_processing(vod.vod_id, requester_id="u.owner")
        assert retried.job.stages == list(StageName)
        assert retried.job.attempt == 2

    async def test_job_insert_failure_leaves_no_vod_behind(
        self, beanie_db, vod_service, dispatcher, ended_stream_factory, monkeypatch
    ):
        await ended_stream_factory()
        original_insert = ProcessingJob.insert
        calls = []

        async def insert_failing_once(self, *args, **kwargs):
            calls.append(self.job_id)
            if len(calls) == 1:
                raise PyMongoError("connection reset")
            return await original_insert(self, *args, **kwargs)

        monkeypatch.setattr(ProcessingJob, "insert", insert_failing_once)

        with pytest.raises(PyMongoError):
            await vod_service.create_vod_from_stream("st_ended", requester_id="u.owner")
        assert await Vod.find(Vod.source_stream_id == "st_ended").count() == 0
        stream = await StreamSession.find_one(StreamSession.stream_id == "st_ended")
        assert stream.vod_id is None

        result = await vod_service.create_vod_from_stream("st_ended", requester_id="u.owner")

        assert result.created is True
        assert await Vod.find(Vod.source_stream_id == "st_ended").count() == 1
        vod = await Vod.find_one(Vod.source_stream_id == "st_ended")
        assert vod.inflight_job_id == result.job.job_id
        dispatcher.assert_awaited_once_with(result.job.job_id)

    async def test_concurrent_requests_share_one_vod(
        self, beanie_db, vod_service, dispatcher, ended_stream_factory
    ):
        await ended_stream_factory()

        results = await asyncio.gather(
            *(vod_service.create_vod_from_stream("st_ended", requester_id="u.owner") for _ in range(4))
        )

        assert len({r.vod.vod_id for r in results}) == 1
        assert [r.created for r in results].count(True) == 1
        assert await Vod.find(Vod.source_stream_id == "st_ended").count() == 1
        stream = await StreamSession.find_one(StreamSession.stream_id == "st_ended")
        assert stream.vod_id == results[0].vod.vod_id
        assert dispatcher.await_count == 1


@pytest.mark.usefixtures("clear_collections")
class TestCreateVodFromUpload:
    async def test_upload_creates_vod(self, beanie_db, vod_service, dispatcher):
        params = UploadParams(
            owner_id="u.owner",
            storage_ref="s3://media-test/uploads/clip.mp4",
            title="Clip",
            required_tier=SubscriptionTier.PRO,
        )

        result = await vod_service.create_vod_from_upload(params)

        assert result.vod.source_stream_id is None
        assert result.vod.storage_ref == "s3://media-test/uploads/clip.mp4"
        assert result.vod.required_tier == SubscriptionTier.PRO
        assert result.vod.file_size == 1024 * 1024
        dispatcher.assert_awaited_once()

    async def test_missing_upload(self, beanie_db, vod_service, storage):
        params = UploadParams(owner_id="u.owner", storage_ref="uploads/missing.mp4", title="Clip")

        with patch.object(storage, "head_object", AsyncMock(return_value=None)):
            with pytest.raises(AppError) as exc_info:
                await vod_service.create_vod_from_upload(params)

        assert exc_info.value.errcode == AppErrorCode.E_UPLOAD_NOT_FOUND
        assert await Vod.count() == 0


@pytest.mark.usefixtures("clear_collections")
class TestRetryVodProcessing:
    async def test_retry_reruns_only_failed_stages(
        self, beanie_db, vod_service, pipeline, media, ended_stream_factory
    ):
        await ended_stream_factory()
        media.failing = {MediaJobKind.TRANSCRIBE}
        created = await vod_service.create_vod_from_stream("st_ended", requester_id="u.owner")
        await pipeline.run_job(created.job.job_id)

        media.failing = set()
        media.submitted.clear()
        retried = await vod_service.retry_vod_processing(created.vod.vod_id, requester_id="u.owner")

        assert retried.created is True
        assert retried.job.attempt == 2
        assert retried.job.stages == [StageName.TRANSCRIPTION, StageName.HIGHLIGHTS, StageName.PUBLICATION]

        await pipeline.run_job(retried.job.job_id)

        assert media.kinds_submitted() == [MediaJobKind.TRANSCRIBE, MediaJobKind.EXTRACT_HIGHLIGHTS]
        vod = await Vod.find_one(Vod.vod_id == created.vod.vod_id)
        assert vod.status == VodState.READY
        assert vod.partial is False
        assert vod.stages.transcription.attempts == 2
        assert vod.stages.thumbnails.attempts == 1
        assert vod.results.thumbnails

    async def test_retry_while_in_flight(self, beanie_db, vod_service, ended_stream_factory):
        await ended_stream_factory()
        created = await vod_service.create_vod_from_stream("st_ended", requester_id="u.owner")

        with pytest.raises(AppError) as exc_info:
            await vod_service.retry_vod_processing(created.vod.vod_id, requester_id="u.owner")

        assert exc_info.value.errcode == AppErrorCode.E_VOD_PROCESSING_IN_PROGRESS

    async def test_nothing_to_retry(self, beanie_db, vod_service, pipeline, ended_stream_factory):
        await ended_stream_factory()
        created = await vod_service.create_vod_from_stream("st_ended", requester_id="u.owner")
        await pipeline.run_job(created.job.job_id)

        with pytest.raises(AppError) as exc_info:
            await vod_service.retry_vod_processing(created.vod.vod_id, requester_id="u.owner")

        assert exc_info.value.errcode == AppErrorCode.E_VOD_NOTHING_TO_RETRY

    async def test_stale_guard_is_reclaimed(self, beanie_db, vod_service, settings, ended_stream_factory):
        await ended_stream_factory()
        created = await vod_service.create_vod_from_stream("st_ended", requester_id="u.owner")
        # The worker died mid-run: job running for hours, thumbnails left running
        started = utc_now() - timedelta(hours=3)
        await ProcessingJob.find(ProcessingJob.job_id == created.job.job_id).update(
            {"$set": {"status": JobStatus.RUNNING.value, "started_at": started}}
        )
        await Vod.find(Vod.vod_id == created.vod.vod_id).update(
            {
                "$set": {
                    "status": VodState.PROCESSING.value,
                    "stages.ingest": StageRecord(status=StageStatus.SUCCEEDED).model_dump(),
                    "stages.thumbnails": StageRecord(status=StageStatus.RUNNING, attempts=1).model_dump(),
                }
            }
        )

        retried = await vod_service.retry_vod_processing(created.vod.vod_id, requester_id="u.owner")

        assert retried.job.job_id != created.job.job_id
        assert StageName.INGEST not in retried.job.stages
        assert StageName.THUMBNAILS in retried.job.stages
        vod = await Vod.find_one(Vod.vod_id == created.vod.vod_id)
        assert vod.inflight_job_id == retried.job.job_id
        assert vod.stages.thumbnails.status == StageStatus.FAILED
        assert vod.stages.thumbnails.error_kind == "Internal"
        abandoned = await ProcessingJob.find_one(ProcessingJob.job_id == created.job.job_id)
        assert abandoned.status == JobStatus.FAILED
        assert "stale" in abandoned.error

    async def test_recent_running_job_keeps_guard(self, beanie_db, vod_service, ended_stream_factory):
        await ended_stream_factory()
        created = await vod_service.create_vod_from_stream("st_ended", requester_id="u.owner")
        await ProcessingJob.find(ProcessingJob.job_id == created.job.job_id).update(
            {"$set": {"status": JobStatus.RUNNING.value, "started_at": utc_now() - timedelta(seconds=2)}}
        )

        with pytest.raises(AppError) as exc_info:
            await vod_service.retry_vod_processing(created.vod.vod_id, requester_id="u.owner")

        assert exc_info.value.errcode == AppErrorCode.E_VOD_PROCESSING_IN_PROGRESS
        vod = await Vod.find_one(Vod.vod_id == created.vod.vod_id)
        assert vod.inflight_job_id == created.job.job_id
