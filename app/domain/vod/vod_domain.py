"""VOD domain service - conversion requests and VOD management."""

from app.app_config import AppEnvironConfig
from app.services.integrations.media_service import MediaService
from app.services.integrations.s3_storage import S3Service

from ._base import JobDispatcher
from ._conversion import ConversionOperations
from ._vods import VodOperations
from .vod_models import (
    JobResponse,
    UploadParams,
    VodCreateResult,
    VodOptionsParams,
    VodResponse,
    VodUpdateParams,
)


class VodService:
    """VOD conversion and management service.

    Conversion requests return immediately with a job handle; the pipeline runs
    wherever the dispatcher sends the job.
    """

    def __init__(
        self,
        settings: AppEnvironConfig | None = None,
        media: MediaService | None = None,
        storage: S3Service | None = None,
        dispatcher: JobDispatcher | None = None,
    ):
        kwargs = dict(settings=settings, media=media, storage=storage, dispatcher=dispatcher)
        self._conversion = ConversionOperations(**kwargs)  # type: ignore[arg-type]
        self._vods = VodOperations(**kwargs)  # type: ignore[arg-type]

    # ==================== CONVERSION ====================

    async def create_vod_from_stream(
        self,
        stream_id: str,
        requester_id: str,
        options: VodOptionsParams | None = None,
        is_admin: bool = False,
    ) -> VodCreateResult:
        """Convert an ended stream into a VOD.

        Raises AppError if the stream is missing, not ended, not recorded, or the
        requester is neither its owner nor an admin.
        """
        return await self._conversion.create_vod_from_stream(
            stream_id=stream_id, requester_id=requester_id, options=options, is_admin=is_admin
        )

    async def create_vod_from_upload(self, params: UploadParams) -> VodCreateResult:
        """Raises AppError if the uploaded object does not exist."""
        return await self._conversion.create_vod_from_upload(params=params)

    async def retry_vod_processing(self, vod_id: str, requester_id: str, is_admin: bool = False) -> VodCreateResult:
        """Retry the failed stages of a VOD.

        Raises AppError if a job is in flight or nothing failed.
        """
        return await self._conversion.retry_vod_processing(vod_id=vod_id, requester_id=requester_id, is_admin=is_admin)

    # ==================== VODS ====================

    async def get_vod(self, vod_id: str, requester_id: str, is_admin: bool = False) -> VodResponse:
        return await self._vods.get_vod(vod_id=vod_id, requester_id=requester_id, is_admin=is_admin)

    async def get_job(self, job_id: str, requester_id: str, is_admin: bool = False) -> JobResponse:
        return await self._vods.get_job(job_id=job_id, requester_id=requester_id, is_admin=is_admin)

    async def publish_vod(self, vod_id: str, requester_id: str, is_admin: bool = False) -> VodResponse:
        """Raises AppError if the VOD is not ready."""
        return await self._vods.publish_vod(vod_id=vod_id, requester_id=requester_id, is_admin=is_admin)

    async def update_vod_metadata(self, vod_id: str, requester_id: str, params: VodUpdateParams) -> VodResponse:
        return await self._vods.update_vod_metadata(vod_id=vod_id, requester_id=requester_id, params=params)
