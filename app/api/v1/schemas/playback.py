from pydantic import BaseModel, Field

from app.schemas import SubscriptionTier


class SignedUrlIn(BaseModel):
    required_tier: SubscriptionTier | None = None


class RefreshUrlIn(BaseModel):
    session_id: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1)


class VerifyUrlIn(BaseModel):
    token: str = Field(min_length=1)
    viewer_id: str = Field(min_length=1)


class RevokeAccessIn(BaseModel):
    target_user_id: str = Field(min_length=1)
    video_id: str | None = None
    reason: str | None = Field(None, max_length=500)
