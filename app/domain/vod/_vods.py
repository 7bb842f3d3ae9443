"""VOD read, publication and metadata operations."""

from typing import Any

from beanie.odm.operators.update.general import Set
from loguru import logger

from app.domain.utils.timeutils import utc_now
from app.schemas import ProcessingJob, Vod, VodState
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ._base import BaseService
from .vod_models import JobResponse, VodResponse, VodUpdateParams


class VodOperations(BaseService):
    async def get_vod(self, vod_id: str, requester_id: str, is_admin: bool = False) -> VodResponse:
        vod = await self._require_vod(vod_id)
        self._require_owner(vod.owner_id, requester_id, is_admin, what=f"VOD {vod_id}")
        return VodResponse.from_document(vod)

    async def get_job(self, job_id: str, requester_id: str, is_admin: bool = False) -> JobResponse:
        """Poll a processing job handle."""
        job = await ProcessingJob.find_one(ProcessingJob.job_id == job_id)
        if not job:
            raise AppError(
                errcode=AppErrorCode.E_JOB_NOT_FOUND,
                errmesg=f"Job not found: {job_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        self._require_owner(job.owner_id, requester_id, is_admin, what=f"job {job_id}")
        return JobResponse.from_document(job)

    async def publish_vod(self, vod_id: str, requester_id: str, is_admin: bool = False) -> VodResponse:
        """Publish a READY VOD. Publishing an already published VOD is a no-op.

        Raises:
            AppError: E_VOD_NOT_READY unless the VOD is READY with no job in flight.
        """
        vod = await self._require_vod(vod_id)
        self._require_owner(vod.owner_id, requester_id, is_admin, what=f"VOD {vod_id}")

        if vod.status == VodState.PUBLISHED:
            return VodResponse.from_document(vod)

        now = utc_now()
        result = await Vod.find(
            Vod.id == vod.id,
            Vod.status == VodState.READY,
            Vod.inflight_job_id == None,  # noqa: E711
        ).update(Set({Vod.status: VodState.PUBLISHED, Vod.published_at: now, Vod.updated_at: now}))  # type: ignore[arg-type]
        if not result or result.modified_count == 0:
            raise AppError(
                errcode=AppErrorCode.E_VOD_NOT_READY,
                errmesg=f"VOD {vod_id} is not ready for publication (status={vod.status})",
                status_code=HttpStatusCode.CONFLICT,
            )

        vod.status = VodState.PUBLISHED
        vod.published_at = now
        vod.updated_at = now
        logger.info(f"VOD {vod_id} published by {requester_id}")
        return VodResponse.from_document(vod)

    async def update_vod_metadata(self, vod_id: str, requester_id: str, params: VodUpdateParams) -> VodResponse:
        """Update caller-editable metadata. Owner only."""
        vod = await self._require_vod(vod_id)
        self._require_owner(vod.owner_id, requester_id, what=f"VOD {vod_id}")

        changes: dict[str, Any] = params.model_dump(exclude_unset=True, exclude_none=True)
        if "title" in changes:
            changes["title"] = changes["title"].strip()
        if "tags" in changes:
            changes["tags"] = [t.strip() for t in changes["tags"] if t.strip()]
        if not changes:
            return VodResponse.from_document(vod)

        changes["updated_at"] = utc_now()
        await Vod.find(Vod.id == vod.id).update(Set(changes))
        for field, value in changes.items():
            setattr(vod, field, value)

        logger.debug(f"VOD {vod_id} metadata updated: {sorted(changes)}")
        return VodResponse.from_document(vod)
