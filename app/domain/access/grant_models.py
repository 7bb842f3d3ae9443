"""Access grant domain models."""

from datetime import datetime

from pydantic import BaseModel

from app.schemas import SubscriptionTier, VideoKind


class ResolvedContent(BaseModel):
    """Playable content an access grant is issued for."""

    video_id: str
    kind: VideoKind
    owner_id: str
    required_tier: SubscriptionTier
    is_private: bool = False
    playback_url: str


class SignedUrlResponse(BaseModel):
    signed_url: str
    expires_at: datetime
    session_id: str
    # Returned once; only its digest is stored
    refresh_token: str


class VerifiedGrant(BaseModel):
    session_id: str
    video_id: str
    viewer_id: str
    tier: SubscriptionTier
    expires_at: datetime


class CleanupResponse(BaseModel):
    deleted: int


class RevokeAccessResponse(BaseModel):
    target_user_id: str
    video_id: str | None = None
    revoked: int
    revoked_by: str
    revoked_at: datetime
    reason: str | None = None
