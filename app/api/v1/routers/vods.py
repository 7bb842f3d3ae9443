from fastapi import APIRouter, Depends

from app.api.v1.dependency import CurrentUser
from app.api.v1.schemas.base import ApiOut
from app.api.v1.schemas.vod import UploadVodIn
from app.domain.vod.vod_domain import VodService
from app.domain.vod.vod_models import (
    JobResponse,
    UploadParams,
    VodCreateResult,
    VodResponse,
    VodUpdateParams,
)

router = APIRouter(prefix="/vods", tags=["VOD"])

# Singleton instance
_vod_service = VodService()


def get_vod_service() -> VodService:
    """Get the singleton VodService instance."""
    return _vod_service


@router.post("/upload")
async def create_vod_from_upload(
    body: UploadVodIn,
    user: CurrentUser,
    service: VodService = Depends(get_vod_service),
) -> ApiOut[VodCreateResult]:
    """Register an uploaded video and start its processing."""
    params = UploadParams(owner_id=user.user_id, **body.model_dump())
    result = await service.create_vod_from_upload(params)
    return ApiOut[VodCreateResult](data=result)


@router.get("/jobs/{job_id}")
async def get_job(
    job_id: str,
    user: CurrentUser,
    service: VodService = Depends(get_vod_service),
) -> ApiOut[JobResponse]:
    """Poll a processing job."""
    result = await service.get_job(job_id=job_id, requester_id=user.user_id, is_admin=user.is_admin)
    return ApiOut[JobResponse](data=result)


@router.get("/{vod_id}")
async def get_vod(
    vod_id: str,
    user: CurrentUser,
    service: VodService = Depends(get_vod_service),
) -> ApiOut[VodResponse]:
    result = await service.get_vod(vod_id=vod_id, requester_id=user.user_id, is_admin=user.is_admin)
    return ApiOut[VodResponse](data=result)


@router.patch("/{vod_id}")
async def update_vod_metadata(
    vod_id: str,
    body: VodUpdateParams,
    user: CurrentUser,
    service: VodService = Depends(get_vod_service),
) -> ApiOut[VodResponse]:
    result = await service.update_vod_metadata(vod_id=vod_id, requester_id=user.user_id, params=body)
    return ApiOut[VodResponse](data=result)


@router.post("/{vod_id}/publish")
async def publish_vod(
    vod_id: str,
    user: CurrentUser,
    service: VodService = Depends(get_vod_service),
) -> ApiOut[VodResponse]:
    result = await service.publish_vod(vod_id=vod_id, requester_id=user.user_id, is_admin=user.is_admin)
    return ApiOut[VodResponse](data=result)


@router.post("/{vod_id}/retry")
async def retry_vod_processing(
    vod_id: str,
    user: CurrentUser,
    service: VodService = Depends(get_vod_service),
) -> ApiOut[VodCreateResult]:
    """Re-run the failed stages of a VOD as a new job."""
    result = await service.retry_vod_processing(vod_id=vod_id, requester_id=user.user_id, is_admin=user.is_admin)
    return ApiOut[VodCreateResult](data=result)
