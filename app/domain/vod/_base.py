"""Base service for VOD operations."""

from collections.abc import Awaitable, Callable

from beanie.odm.operators.update.general import Set
from loguru import logger

from app.app_config import AppEnvironConfig, get_app_environ_config
from app.domain.utils.idgen import new_job_id
from app.domain.utils.timeutils import utc_now
from app.schemas import JobStatus, ProcessingJob, StageName, Vod, VodState
from app.services.integrations.media_service import MediaService, media_service
from app.services.integrations.s3_storage import S3Service, s3_service
from app.utils.app_errors import AppError, AppErrorCode, ErrorKind, HttpStatusCode

JobDispatcher = Callable[[str], Awaitable[None]]


async def enqueue_vod_job(job_id: str) -> None:
    """Default dispatcher: hand the job to the VOD worker queue."""
    from app.workers.vod_worker import run_vod_conversion
    from app.workers.vod_worker import worker as vod_worker

    async with vod_worker:
        task = await run_vod_conversion.enqueue(job_id)
    logger.info(f"Job {job_id} enqueued (task={task.id if task else None})")


class BaseService:
    """Base service with shared VOD operation methods."""

    def __init__(
        self,
        settings: AppEnvironConfig | None = None,
        media: MediaService | None = None,
        storage: S3Service | None = None,
        dispatcher: JobDispatcher | None = None,
    ):
        self.settings = settings or get_app_environ_config()
        self.media = media or media_service
        self.storage = storage or s3_service
        self.dispatcher = dispatcher or enqueue_vod_job

    async def _get_vod_by_id(self, vod_id: str) -> Vod | None:
        return await Vod.find_one(Vod.vod_id == vod_id)

    async def _require_vod(self, vod_id: str) -> Vod:
        vod = await self._get_vod_by_id(vod_id)
        if not vod:
            raise AppError(
                errcode=AppErrorCode.E_VOD_NOT_FOUND,
                errmesg=f"VOD not found: {vod_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        return vod

    def _require_owner(self, owner_id: str, requester_id: str, is_admin: bool = False, what: str = "") -> None:
        if is_admin or owner_id == requester_id:
            return
        raise AppError(
            errcode=AppErrorCode.E_UNAUTHORIZED,
            errmesg=f"User {requester_id} may not access {what}".strip(),
            status_code=HttpStatusCode.FORBIDDEN,
            kind=ErrorKind.UNAUTHORIZED,
        )

    def _new_job(self, vod: Vod, stages: list[StageName], attempt: int = 1) -> ProcessingJob:
        now = utc_now()
        return ProcessingJob(
            job_id=new_job_id(),
            vod_id=vod.vod_id,
            owner_id=vod.owner_id,
            status=JobStatus.QUEUED,
            stages=stages,
            attempt=attempt,
            queued_at=now,
            updated_at=now,
        )

    async def _dispatch(self, job: ProcessingJob) -> None:
        """Hand the job to the dispatcher. A dispatch failure fails the job and frees the VOD."""
        try:
            await self.dispatcher(job.job_id)
        except Exception as e:
            logger.exception(f"Dispatch of job {job.job_id} failed")
            now = utc_now()
            job.status = JobStatus.FAILED
            job.error = f"dispatch failed: {e}"
            job.finished_at = now
            job.updated_at = now
            await job.save()

            vod = await self._get_vod_by_id(job.vod_id)
            if vod is not None:
                await vod.release_inflight(job.job_id)
                # A VOD that never started processing becomes retryable
                await Vod.find(Vod.id == vod.id, Vod.status == VodState.PENDING).update(
                    Set({Vod.status: VodState.FAILED, Vod.updated_at: now})  # type: ignore[arg-type]
                )
            raise AppError(
                errcode=AppErrorCode.E_INTERNAL_ERROR,
                errmesg=f"Could not dispatch processing job {job.job_id}",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            ) from e
