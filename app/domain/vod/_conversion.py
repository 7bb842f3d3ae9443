"""Conversion requests: create a VOD and its first job, or retry failed stages."""

import asyncio
from datetime import timedelta
from typing import Any

from beanie.odm.operators.update.general import Set
from loguru import logger
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from app.domain.access.entitlement import resolve_default_tier
from app.domain.utils.idgen import new_vod_id
from app.domain.utils.timeutils import ensure_utc, utc_now
from app.schemas import (
    JobStatus,
    ProcessingJob,
    StageName,
    StageRecord,
    StageStatus,
    StreamSession,
    StreamState,
    Vod,
    VodOptions,
    VodStages,
    VodState,
    VodVisibility,
)
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ._base import BaseService
from .pipeline import interrupted_stages
from .vod_models import JobResponse, UploadParams, VodCreateResult, VodOptionsParams, VodResponse

CLAIM_WAIT_ATTEMPTS = 20
CLAIM_WAIT_INTERVAL = 0.05


def initial_stages(options: VodOptions) -> VodStages:
    stages = VodStages()
    for stage in StageName.ai_stages():
        if not options.requests(stage):
            stages.set(stage, StageRecord(status=StageStatus.NOT_REQUESTED))
    if not options.auto_publish:
        stages.set(StageName.PUBLICATION, StageRecord(status=StageStatus.NOT_REQUESTED))
    return stages


def stages_to_retry(vod: Vod) -> list[StageName]:
    """Stages a retry re-runs: the requested ones that did not succeed, in order.

    Transcription and highlights travel together: failed highlights retry a failed
    transcription, and highlights that ran degraded are redone once transcription
    is retried.
    """
    retry: set[StageName] = set()
    if vod.stages.ingest.status != StageStatus.SUCCEEDED:
        retry.add(StageName.INGEST)

    for stage in StageName.ai_stages():
        if vod.options.requests(stage) and vod.stages.get(stage).status != StageStatus.SUCCEEDED:
            retry.add(stage)

    transcription_failed = vod.stages.transcription.status == StageStatus.FAILED
    if StageName.HIGHLIGHTS in retry and transcription_failed:
        retry.add(StageName.TRANSCRIPTION)
    if StageName.TRANSCRIPTION in retry and vod.stages.highlights.degraded and vod.options.generate_highlights:
        retry.add(StageName.HIGHLIGHTS)

    if not retry:
        return []
    retry.add(StageName.PUBLICATION)
    return [stage for stage in StageName if stage in retry]


def parse_storage_key(storage_ref: str) -> str:
    """Object key of an "s3://bucket/key" reference, or the reference itself."""
    if storage_ref.startswith("s3://"):
        _, _, rest = storage_ref.partition("s3://")
        _, _, key = rest.partition("/")
        return key
    return storage_ref.lstrip("/")


class ConversionOperations(BaseService):
    async def create_vod_from_stream(
        self,
        stream_id: str,
        requester_id: str,
        options: VodOptionsParams | None = None,
        is_admin: bool = False,
    ) -> VodCreateResult:
        """Convert an ended stream's recording into a VOD.

        Idempotent per stream: a repeated request returns the existing VOD and
        its latest job with created=False.

        Raises:
            AppError: E_STREAM_NOT_FOUND, E_UNAUTHORIZED, E_STREAM_NOT_ENDED or
                E_RECORDING_NOT_ENABLED.
        """
        stream = await StreamSession.find_one(StreamSession.stream_id == stream_id)
        if not stream:
            raise AppError(
                errcode=AppErrorCode.E_STREAM_NOT_FOUND,
                errmesg=f"Stream not found: {stream_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        self._require_owner(stream.owner_id, requester_id, is_admin, what=f"stream {stream_id}")

        if stream.status != StreamState.ENDED:
            raise AppError(
                errcode=AppErrorCode.E_STREAM_NOT_ENDED,
                errmesg=f"Stream {stream_id} has not ended (status={stream.status})",
                status_code=HttpStatusCode.CONFLICT,
            )
        if not stream.settings.enable_recording:
            raise AppError(
                errcode=AppErrorCode.E_RECORDING_NOT_ENABLED,
                errmesg=f"Stream {stream_id} was not recorded",
                status_code=HttpStatusCode.BAD_REQUEST,
            )

        if stream.vod_id:
            return await self._existing_result(stream.vod_id)

        vod_options = (options or VodOptionsParams()).to_options()
        vod_id = new_vod_id()
        if not await stream.claim_vod(vod_id):
            fresh = await StreamSession.get(stream.id)
            if fresh is None or not fresh.vod_id:
                raise AppError(
                    errcode=AppErrorCode.E_VOD_ALREADY_EXISTS,
                    errmesg=f"A VOD for stream {stream_id} is being created",
                    status_code=HttpStatusCode.CONFLICT,
                )
            return await self._existing_result(fresh.vod_id)

        duration_hint = None
        if stream.started_at and stream.ended_at:
            duration_hint = (ensure_utc(stream.ended_at) - ensure_utc(stream.started_at)).total_seconds()

        now = utc_now()
        vod = Vod(
            vod_id=vod_id,
            owner_id=stream.owner_id,
            source_stream_id=stream.stream_id,
            title=stream.title,
            description=stream.description,
            category=stream.category,
            tags=list(stream.tags),
            status=VodState.PENDING,
            visibility=VodVisibility.PRIVATE if stream.settings.is_private else VodVisibility.PUBLIC,
            required_tier=resolve_default_tier(stream.settings),
            recording_ref=self.storage.object_url(self.storage.recording_key(stream.stream_id)),
            duration_seconds=duration_hint,
            options=vod_options,
            stages=initial_stages(vod_options),
            retention_days=vod_options.retention_days,
            created_at=now,
            updated_at=now,
        )
        try:
            job = await self._insert_with_job(vod)
        except Exception:
            await stream.release_vod_claim(vod_id)
            raise

        logger.info(f"VOD {vod_id} created from stream {stream_id} (job={job.job_id})")
        await self._dispatch(job)
        return VodCreateResult(vod=VodResponse.from_document(vod), job=JobResponse.from_document(job))

    async def create_vod_from_upload(self, params: UploadParams) -> VodCreateResult:
        """Register an uploaded video and start its conversion.

        Raises:
            AppError: E_UPLOAD_NOT_FOUND if the object does not exist.
        """
        key = parse_storage_key(params.storage_ref)
        info = await self.storage.head_object(key) if key else None
        if info is None:
            raise AppError(
                errcode=AppErrorCode.E_UPLOAD_NOT_FOUND,
                errmesg=f"Uploaded object not found: {params.storage_ref}",
                status_code=HttpStatusCode.NOT_FOUND,
            )

        vod_options = params.options.to_options()
        now = utc_now()
        vod = Vod(
            vod_id=new_vod_id(),
            owner_id=params.owner_id,
            source_stream_id=None,
            title=params.title.strip(),
            description=params.description,
            category=params.category,
            tags=[t.strip() for t in params.tags if t.strip()],
            status=VodState.PENDING,
            visibility=params.visibility,
            required_tier=params.required_tier,
            storage_ref=self.storage.object_url(key),
            file_size=info.size,
            options=vod_options,
            stages=initial_stages(vod_options),
            retention_days=vod_options.retention_days,
            created_at=now,
            updated_at=now,
        )
        job = await self._insert_with_job(vod)

        logger.info(f"VOD {vod.vod_id} created from upload {key} (job={job.job_id})")
        await self._dispatch(job)
        return VodCreateResult(vod=VodResponse.from_document(vod), job=JobResponse.from_document(job))

    async def retry_vod_processing(self, vod_id: str, requester_id: str, is_admin: bool = False) -> VodCreateResult:
        """Re-run only the stages that failed, as a new job. Computed results are kept.

        Raises:
            AppError: E_VOD_PROCESSING_IN_PROGRESS if a job is in flight,
                E_VOD_NOTHING_TO_RETRY if no stage failed.
        """
        vod = await self._require_vod(vod_id)
        self._require_owner(vod.owner_id, requester_id, is_admin, what=f"VOD {vod_id}")

        if vod.inflight_job_id:
            vod = await self._reclaim_stale_guard(vod)

        retryable = vod.status == VodState.FAILED or (
            vod.status in VodState.playable_states() and vod.partial
        )
        stages = stages_to_retry(vod) if retryable else []
        if not stages:
            raise AppError(
                errcode=AppErrorCode.E_VOD_NOTHING_TO_RETRY,
                errmesg=f"VOD {vod_id} has no failed stage to retry (status={vod.status})",
                status_code=HttpStatusCode.CONFLICT,
            )

        last_job = await self._latest_job(vod.vod_id)
        job = self._new_job(vod, stages, attempt=(last_job.attempt + 1) if last_job else 1)
        if not await vod.claim_inflight(job.job_id):
            raise AppError(
                errcode=AppErrorCode.E_VOD_PROCESSING_IN_PROGRESS,
                errmesg=f"VOD {vod_id} was claimed by another job",
                status_code=HttpStatusCode.CONFLICT,
            )

        try:
            await job.insert()
        except Exception:
            await vod.release_inflight(job.job_id)
            raise

        logger.info(f"VOD {vod_id} retry job {job.job_id} for stages {[str(s) for s in stages]}")
        await self._dispatch(job)
        return VodCreateResult(vod=VodResponse.from_document(vod), job=JobResponse.from_document(job))

    async def _reclaim_stale_guard(self, vod: Vod) -> Vod:
        """Take the in-flight guard back from a job that can no longer be running.

        The holder is stale when it is missing, finished, or has outlived the stage
        timeouts of all its stages. Its running stages fail and a VOD that is not
        playable fails, which makes it retryable.

        Raises:
            AppError: E_VOD_PROCESSING_IN_PROGRESS while the holder may still be running.
        """
        holder_id = vod.inflight_job_id
        holder = await ProcessingJob.find_one(ProcessingJob.job_id == holder_id)
        if holder is not None and not self._holder_is_stale(holder):
            raise AppError(
                errcode=AppErrorCode.E_VOD_PROCESSING_IN_PROGRESS,
                errmesg=f"VOD {vod.vod_id} is being processed by job {holder_id}",
                status_code=HttpStatusCode.CONFLICT,
            )

        now = utc_now()
        reason = f"guard reclaimed from stale job {holder_id}"
        updates: dict[str, Any] = {
            path: record.model_dump() for path, record in interrupted_stages(vod, reason).items()
        }
        updates["inflight_job_id"] = None
        updates["updated_at"] = now
        if vod.status not in VodState.playable_states():
            updates["status"] = VodState.FAILED
        result = await Vod.find(
            Vod.id == vod.id,
            Vod.inflight_job_id == holder_id,
        ).update(Set(updates))  # type: ignore[arg-type]
        if not result or result.modified_count == 0:
            raise AppError(
                errcode=AppErrorCode.E_VOD_PROCESSING_IN_PROGRESS,
                errmesg=f"VOD {vod.vod_id} was claimed by another job",
                status_code=HttpStatusCode.CONFLICT,
            )
        logger.warning(f"VOD {vod.vod_id}: {reason}")

        if holder is not None and holder.status not in JobStatus.finished_states():
            holder.status = JobStatus.FAILED
            holder.error = reason
            holder.finished_at = now
            holder.updated_at = now
            await holder.save()
        return await self._require_vod(vod.vod_id)

    def _holder_is_stale(self, job: ProcessingJob) -> bool:
        if job.status in JobStatus.finished_states():
            return True
        since = ensure_utc(job.started_at or job.queued_at)
        budget = timedelta(seconds=self.settings.MEDIA_STAGE_TIMEOUT_SECONDS * max(len(job.stages), 1))
        return utc_now() - since > budget

    async def _insert_with_job(self, vod: Vod) -> ProcessingJob:
        job = self._new_job(vod, list(StageName))
        vod.inflight_job_id = job.job_id
        vod.last_job_id = job.job_id
        try:
            await vod.insert()
        except DuplicateKeyError as e:
            raise AppError(
                errcode=AppErrorCode.E_VOD_ALREADY_EXISTS,
                errmesg=f"VOD {vod.vod_id} already exists",
                status_code=HttpStatusCode.CONFLICT,
            ) from e
        try:
            await job.insert()
        except Exception:
            # A VOD without its job would hold a guard nothing can run
            logger.exception(f"Job insert for VOD {vod.vod_id} failed; removing the VOD")
            await vod.delete()
            raise
        return job

    async def _existing_result(self, vod_id: str) -> VodCreateResult:
        vod = await self._get_vod_by_id(vod_id)
        # A concurrent request may hold the claim without having inserted yet
        for _ in range(CLAIM_WAIT_ATTEMPTS):
            if vod is not None:
                break
            await asyncio.sleep(CLAIM_WAIT_INTERVAL)
            vod = await self._get_vod_by_id(vod_id)
        if vod is None:
            raise AppError(
                errcode=AppErrorCode.E_VOD_ALREADY_EXISTS,
                errmesg=f"VOD {vod_id} is being created",
                status_code=HttpStatusCode.CONFLICT,
            )
        job = await self._latest_job(vod_id)
        logger.info(f"VOD {vod_id} already exists; returning it")
        return VodCreateResult(
            vod=VodResponse.from_document(vod),
            job=JobResponse.from_document(job) if job else None,
            created=False,
        )

    async def _latest_job(self, vod_id: str) -> ProcessingJob | None:
        jobs = (
            await ProcessingJob.find(ProcessingJob.vod_id == vod_id)
            .sort([("queued_at", DESCENDING)])  # type: ignore[list-item]
            .limit(1)
            .to_list()
        )
        return jobs[0] if jobs else None
