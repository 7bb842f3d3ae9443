"""VOD conversion pipeline.

Runs the stages of one ProcessingJob in order:

    ingest → thumbnails → transcription → highlights → publication

Ingest is required; when it fails the AI stages are skipped and the VOD fails.
Thumbnails and transcription are independent. Highlights use the transcript
when there is one and otherwise run on the raw signal. A failed AI stage is
recorded on the VOD and never aborts the run; everything already computed is
kept. Stage data is written only while the job holds the VOD's in-flight guard.
"""

from datetime import timedelta
from typing import Any

from loguru import logger

from app.app_config import AppEnvironConfig, get_app_environ_config
from app.domain.access.entitlement import resolve_default_tier
from app.domain.utils.timeutils import utc_now
from app.schemas import (
    JobStatus,
    ProcessingJob,
    StageName,
    StageRecord,
    StageStatus,
    StreamSession,
    SubscriptionTier,
    Vod,
    VodState,
)
from app.services.integrations.media_schemas import MediaJob
from app.services.integrations.media_service import MediaService, media_service
from app.utils.app_errors import AppError, AppErrorCode, ErrorKind, HttpStatusCode

from ._stages import StageRunner, as_stage_error


class VodPipeline:
    def __init__(
        self,
        settings: AppEnvironConfig | None = None,
        media: MediaService | None = None,
        runner: StageRunner | None = None,
    ):
        self.settings = settings or get_app_environ_config()
        self.media = media or media_service
        self.runner = runner or StageRunner(
            self.media,
            poll_interval=self.settings.MEDIA_POLL_INTERVAL_SECONDS,
            timeout=self.settings.MEDIA_STAGE_TIMEOUT_SECONDS,
        )

    async def run_job(self, job_id: str) -> ProcessingJob:
        """Execute a queued job. Safe to call again for a job that already finished."""
        job = await ProcessingJob.find_one(ProcessingJob.job_id == job_id)
        if job is None:
            raise AppError(
                errcode=AppErrorCode.E_JOB_NOT_FOUND,
                errmesg=f"Job not found: {job_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        if job.status in JobStatus.finished_states():
            logger.info(f"Job {job_id} already {job.status}; nothing to do")
            return job

        vod = await Vod.find_one(Vod.vod_id == job.vod_id)
        if vod is None or vod.inflight_job_id != job_id:
            holder = vod.inflight_job_id if vod else None
            logger.warning(f"Job {job_id} does not hold the guard of VOD {job.vod_id} (holder={holder})")
            await self._finish_job(job, JobStatus.FAILED, "job superseded or VOD missing")
            return job

        now = utc_now()
        job.status = JobStatus.RUNNING
        job.started_at = now
        job.updated_at = now
        await job.save()

        previous_status = vod.status
        try:
            await self._run_stages(vod, job)
        except BaseException as e:
            # Stage failures are recorded per stage; reaching here means the run broke or was cancelled
            logger.exception(f"Job {job_id} aborted")
            reason = f"{type(e).__name__}: {e}" if str(e) else type(e).__name__
            await self._abort(vod, job, previous_status, reason)
            if not isinstance(e, Exception):
                raise
            return job

        final_status = JobStatus.FAILED if vod.status == VodState.FAILED else JobStatus.COMPLETED
        await self._finish_job(job, final_status, None if final_status == JobStatus.COMPLETED else "conversion failed")
        await vod.release_inflight(job_id)
        logger.info(f"Job {job_id} {final_status}: VOD {vod.vod_id} is {vod.status} (partial={vod.partial})")
        return job

    async def _run_stages(self, vod: Vod, job: ProcessingJob) -> None:
        # A published VOD stays playable while failed stages are retried
        if vod.status != VodState.PUBLISHED:
            await self._write(vod, job, {"status": VodState.PROCESSING})

        ingest_ok = True
        if StageName.INGEST in job.stages:
            ingest_ok = await self._run_ingest(vod, job)
        elif vod.stages.ingest.status != StageStatus.SUCCEEDED:
            ingest_ok = False

        for stage in StageName.ai_stages():
            if stage not in job.stages:
                continue
            if not vod.options.requests(stage):
                await self._record(vod, job, stage, StageRecord(status=StageStatus.NOT_REQUESTED))
                continue
            if not ingest_ok:
                await self._skip(vod, job, stage, "ingest did not complete")
                continue
            await self._run_ai_stage(vod, job, stage)

        await self._conclude(vod, job, ingest_ok)

    async def _run_ingest(self, vod: Vod, job: ProcessingJob) -> bool:
        record = await self._start_stage(vod, job, StageName.INGEST)
        try:
            artifact = await self.runner.ingest(vod)
        except Exception as e:
            await self._fail_stage(vod, job, StageName.INGEST, record, as_stage_error(e))
            return False

        updates: dict[str, Any] = {"storage_ref": artifact.storage_ref}
        if artifact.duration_seconds is not None:
            updates["duration_seconds"] = artifact.duration_seconds
        if artifact.file_size is not None:
            updates["file_size"] = artifact.file_size
        await self._write(vod, job, updates)
        await self._succeed_stage(vod, job, StageName.INGEST, record)
        return True

    async def _run_ai_stage(self, vod: Vod, job: ProcessingJob, stage: StageName) -> None:
        record = await self._start_stage(vod, job, stage)

        async def submitted(media_job: MediaJob) -> None:
            record.media_job_id = media_job.job_id
            await self._record(vod, job, stage, record)

        try:
            if stage == StageName.THUMBNAILS:
                thumbnails = await self.runner.thumbnails(vod, on_submit=submitted)
                await self._write(vod, job, {"results.thumbnails": thumbnails})
            elif stage == StageName.TRANSCRIPTION:
                ref, language = await self.runner.transcription(vod, on_submit=submitted)
                await self._write(
                    vod, job, {"results.transcription_ref": ref, "results.transcription_language": language}
                )
            elif stage == StageName.HIGHLIGHTS:
                transcription = vod.stages.transcription
                transcript_ref = (
                    vod.results.transcription_ref if transcription.status == StageStatus.SUCCEEDED else None
                )
                record.degraded = transcript_ref is None and transcription.status == StageStatus.FAILED
                if record.degraded:
                    logger.info(f"VOD {vod.vod_id}: transcription failed, highlights run on raw signal")
                highlights, mode = await self.runner.highlights(vod, transcript_ref, on_submit=submitted)
                await self._write(vod, job, {"results.highlights": highlights, "results.highlight_mode": mode})
        except Exception as e:
            await self._fail_stage(vod, job, stage, record, as_stage_error(e))
            return
        await self._succeed_stage(vod, job, stage, record)

    async def _conclude(self, vod: Vod, job: ProcessingJob, ingest_ok: bool) -> None:
        requested = [s for s in StageName.ai_stages() if vod.options.requests(s)]
        failed = [s for s in requested if vod.stages.get(s).status in (StageStatus.FAILED, StageStatus.SKIPPED)]
        now = utc_now()

        if not ingest_ok or (requested and len(failed) == len(requested)):
            await self._skip(vod, job, StageName.PUBLICATION, "conversion failed")
            await self._write(vod, job, {"status": VodState.FAILED, "partial": bool(failed), "updated_at": now})
            return

        updates: dict[str, Any] = {"partial": bool(failed), "updated_at": now}
        if vod.retention_days >= 0:
            updates["expires_at"] = now + timedelta(days=vod.retention_days)

        if vod.status == VodState.PUBLISHED:
            updates["status"] = VodState.PUBLISHED
        elif vod.options.auto_publish:
            updates["status"] = VodState.PUBLISHED
            updates["published_at"] = now
            updates["required_tier"] = await self._default_tier(vod)
        else:
            updates["status"] = VodState.READY

        if vod.options.auto_publish:
            await self._record(
                vod, job, StageName.PUBLICATION, StageRecord(status=StageStatus.SUCCEEDED, finished_at=now)
            )
        else:
            await self._record(vod, job, StageName.PUBLICATION, StageRecord(status=StageStatus.NOT_REQUESTED))
        await self._write(vod, job, updates)

    async def _default_tier(self, vod: Vod) -> SubscriptionTier:
        if not vod.source_stream_id:
            return vod.required_tier
        stream = await StreamSession.find_one(StreamSession.stream_id == vod.source_stream_id)
        return resolve_default_tier(stream.settings if stream else None)

    # ==================== STAGE RECORDS ====================

    async def _start_stage(self, vod: Vod, job: ProcessingJob, stage: StageName) -> StageRecord:
        previous = vod.stages.get(stage)
        record = StageRecord(status=StageStatus.RUNNING, attempts=previous.attempts + 1, started_at=utc_now())
        await self._record(vod, job, stage, record)
        return record

    async def _succeed_stage(self, vod: Vod, job: ProcessingJob, stage: StageName, record: StageRecord) -> None:
        record = record.model_copy(update={"status": StageStatus.SUCCEEDED, "finished_at": utc_now()})
        await self._record(vod, job, stage, record)

    async def _fail_stage(
        self, vod: Vod, job: ProcessingJob, stage: StageName, record: StageRecord, error: AppError
    ) -> None:
        logger.warning(f"VOD {vod.vod_id} stage {stage} failed: {error.errcode} {error.errmesg}")
        kind = error.kind if stage == StageName.INGEST else ErrorKind.PARTIAL_FAILURE
        record = record.model_copy(
            update={
                "status": StageStatus.FAILED,
                "error_kind": kind.value,
                "error_code": error.errcode,
                "error": error.errmesg,
                "finished_at": utc_now(),
            }
        )
        await self._record(vod, job, stage, record)

    async def _skip(self, vod: Vod, job: ProcessingJob, stage: StageName, reason: str) -> None:
        previous = vod.stages.get(stage)
        record = StageRecord(
            status=StageStatus.SKIPPED,
            attempts=previous.attempts,
            error_kind=ErrorKind.DEPENDENCY_FAILURE.value,
            error=reason,
            finished_at=utc_now(),
        )
        await self._record(vod, job, stage, record)

    async def _record(self, vod: Vod, job: ProcessingJob, stage: StageName, record: StageRecord) -> None:
        await self._write(vod, job, {f"stages.{stage.value}": record})

    async def _abort(self, vod: Vod, job: ProcessingJob, previous_status: VodState, reason: str) -> None:
        """Fail the job, fail its running stages and release the guard.

        A VOD that was playable before the run keeps its status; any other VOD fails.
        """
        await self._finish_job(job, JobStatus.FAILED, reason)
        updates: dict[str, Any] = dict(interrupted_stages(vod, reason))
        updates["status"] = previous_status if previous_status in VodState.playable_states() else VodState.FAILED
        await self._apply(vod, job, updates)
        await vod.release_inflight(job.job_id)

    async def _write(self, vod: Vod, job: ProcessingJob, updates: dict[str, Any]) -> None:
        if not await self._apply(vod, job, updates):
            raise AppError(
                errcode=AppErrorCode.E_VOD_PROCESSING_IN_PROGRESS,
                errmesg=f"Job {job.job_id} lost the guard of VOD {vod.vod_id}",
                status_code=HttpStatusCode.CONFLICT,
            )

    async def _apply(self, vod: Vod, job: ProcessingJob, updates: dict[str, Any]) -> bool:
        """Write VOD fields fenced by the in-flight guard, mirroring them on the instance."""
        for path, value in updates.items():
            _assign(vod, path, value)
        encoded = {path: _encode(value) for path, value in updates.items()}
        encoded.setdefault("updated_at", utc_now())
        return await vod.update_as_job(job.job_id, encoded)

    async def _finish_job(self, job: ProcessingJob, status: JobStatus, error: str | None) -> None:
        now = utc_now()
        job.status = status
        job.error = error
        job.finished_at = now
        job.updated_at = now
        await job.save()


def interrupted_stages(vod: Vod, reason: str) -> dict[str, StageRecord]:
    """Failed records, keyed by update path, for the stages an interrupted job left running."""
    now = utc_now()
    records: dict[str, StageRecord] = {}
    for stage in StageName:
        record = vod.stages.get(stage)
        if record.status != StageStatus.RUNNING:
            continue
        records[f"stages.{stage.value}"] = record.model_copy(
            update={
                "status": StageStatus.FAILED,
                "error_kind": ErrorKind.INTERNAL.value,
                "error": f"interrupted: {reason}",
                "finished_at": now,
            }
        )
    return records


def _assign(vod: Vod, path: str, value: Any) -> None:
    target: Any = vod
    *parents, leaf = path.split(".")
    for name in parents:
        target = getattr(target, name)
    setattr(target, leaf, value)


def _encode(value: Any) -> Any:
    if isinstance(value, list):
        return [_encode(v) for v in value]
    if hasattr(value, "model_dump"):
        return value.model_dump()
    return value
