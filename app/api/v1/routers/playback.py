from fastapi import APIRouter, Depends, Query

from app.api.v1.dependency import AdminUser, CurrentUser, verify_api_key
from app.api.v1.schemas.base import ApiOut
from app.api.v1.schemas.playback import RefreshUrlIn, RevokeAccessIn, SignedUrlIn, VerifyUrlIn
from app.domain.access.access_domain import AccessService
from app.domain.access.grant_models import CleanupResponse, RevokeAccessResponse, SignedUrlResponse, VerifiedGrant
from app.schemas import SubscriptionTier

router = APIRouter(prefix="/videos", tags=["Playback"])

# Singleton instance
_access_service = AccessService()


def get_access_service() -> AccessService:
    """Get the singleton AccessService instance."""
    return _access_service


@router.post("/sessions/cleanup")
async def cleanup_expired_grants(
    user: AdminUser,
    service: AccessService = Depends(get_access_service),
) -> ApiOut[CleanupResponse]:
    result = await service.cleanup_expired_grants()
    return ApiOut[CleanupResponse](data=result)


@router.post("/revoke-access")
async def revoke_access(
    body: RevokeAccessIn,
    user: CurrentUser,
    service: AccessService = Depends(get_access_service),
) -> ApiOut[RevokeAccessResponse]:
    """Expire a viewer's playback sessions. Admins revoke anywhere, creators on their own videos."""
    result = await service.revoke_access(
        target_user_id=body.target_user_id,
        requester_id=user.user_id,
        video_id=body.video_id,
        is_admin=user.is_admin,
        reason=body.reason,
    )
    return ApiOut[RevokeAccessResponse](data=result)


@router.get("/{video_id}/signed-url")
async def get_signed_url(
    video_id: str,
    user: CurrentUser,
    service: AccessService = Depends(get_access_service),
    tier: SubscriptionTier | None = Query(None, description="Tier the client expects; advisory only"),
) -> ApiOut[SignedUrlResponse]:
    """Issue a short-lived playback URL for the authenticated viewer."""
    result = await service.generate_signed_url(video_id=video_id, user_id=user.user_id, required_tier_hint=tier)
    return ApiOut[SignedUrlResponse](data=result)


@router.post("/{video_id}/signed-url")
async def post_signed_url(
    video_id: str,
    user: CurrentUser,
    body: SignedUrlIn | None = None,
    service: AccessService = Depends(get_access_service),
) -> ApiOut[SignedUrlResponse]:
    result = await service.generate_signed_url(
        video_id=video_id, user_id=user.user_id, required_tier_hint=body.required_tier if body else None
    )
    return ApiOut[SignedUrlResponse](data=result)


@router.post("/{video_id}/refresh-url")
async def refresh_signed_url(
    video_id: str,
    body: RefreshUrlIn,
    user: CurrentUser,
    service: AccessService = Depends(get_access_service),
) -> ApiOut[SignedUrlResponse]:
    """Exchange a refresh token for a new playback URL."""
    result = await service.refresh_signed_url(
        session_id=body.session_id,
        user_id=user.user_id,
        refresh_token=body.refresh_token,
        video_id=video_id,
    )
    return ApiOut[SignedUrlResponse](data=result)


@router.post("/{video_id}/verify", tags=["Internal"])
async def verify_signed_url(
    video_id: str,
    body: VerifyUrlIn,
    _: None = Depends(verify_api_key),
    service: AccessService = Depends(get_access_service),
) -> ApiOut[VerifiedGrant]:
    """Check a playback token presented to the delivery edge."""
    result = service.verify_signed_url(token=body.token, video_id=video_id, viewer_id=body.viewer_id)
    return ApiOut[VerifiedGrant](data=result)
