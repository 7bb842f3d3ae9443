from fastapi import APIRouter, Depends

from app.api.v1.dependency import CurrentUser
from app.api.v1.schemas.base import ApiOut
from app.domain.moderation.appeal_domain import AppealService
from app.domain.moderation.appeal_models import AppealCreateParams, AppealResponse, AppealStatusResponse

router = APIRouter(prefix="/appeals", tags=["Moderation"])

# Singleton instance
_appeal_service = AppealService()


def get_appeal_service() -> AppealService:
    """Get the singleton AppealService instance."""
    return _appeal_service


@router.post("")
async def submit_appeal(
    body: AppealCreateParams,
    user: CurrentUser,
    service: AppealService = Depends(get_appeal_service),
) -> ApiOut[AppealResponse]:
    """Appeal a moderation decision; the appeal is AI-reviewed and routed right away."""
    result = await service.process_content_appeal(user_id=user.user_id, params=body)
    return ApiOut[AppealResponse](data=result)


@router.get("/{appeal_id}")
async def get_appeal_status(
    appeal_id: str,
    user: CurrentUser,
    service: AppealService = Depends(get_appeal_service),
) -> ApiOut[AppealStatusResponse]:
    result = await service.get_appeal_status(appeal_id=appeal_id, requester_id=user.user_id, is_admin=user.is_admin)
    return ApiOut[AppealStatusResponse](data=result)
