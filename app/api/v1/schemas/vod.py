from pydantic import BaseModel, Field

from app.domain.vod.vod_models import VodOptionsParams
from app.schemas import SubscriptionTier, VodVisibility


class CreateVodIn(BaseModel):
    options: VodOptionsParams = Field(default_factory=VodOptionsParams)


class UploadVodIn(BaseModel):
    storage_ref: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    category: str | None = None
    tags: list[str] = Field(default_factory=list, max_length=20)
    visibility: VodVisibility = VodVisibility.PUBLIC
    required_tier: SubscriptionTier = SubscriptionTier.BASIC
    options: VodOptionsParams = Field(default_factory=VodOptionsParams)
