"""Access grant ODM schema."""

from datetime import datetime
from enum import Enum
from typing import Any

from beanie import Document, Indexed
from beanie.odm.operators.update.general import Set
from pydantic import field_validator
from pymongo import IndexModel

from .schema_utils import parse_mongo_datetime
from .tier import SubscriptionTier


class VideoKind(str, Enum):
    VOD = "vod"
    LIVE = "live"

    def __str__(self) -> str:
        return self.value


class AccessGrant(Document):
    """Short-lived playback authorization of one video for one viewer.

    The refresh token is stored as a SHA-256 digest; the clear value is only
    returned to the viewer at issuance.
    """

    grant_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    video_id: str
    video_kind: VideoKind
    viewer_id: Indexed(str)  # type: ignore[valid-type]

    signed_url: str
    refresh_token_hash: str
    tier_at_issuance: SubscriptionTier
    required_tier: SubscriptionTier

    # Number of refreshes in the chain that led to this grant
    refresh_count: int = 0
    # Grant this one replaced, and the single grant that replaced it
    replaces: str | None = None
    replaced_by: str | None = None

    issued_at: datetime
    expires_at: datetime
    # Set when a creator or admin revoked the viewer; a revoked grant cannot be refreshed
    revoked_at: datetime | None = None
    # Removed by the TTL index once the refresh grace window is over
    purge_at: datetime

    @field_validator("issued_at", "expires_at", "revoked_at", "purge_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return parse_mongo_datetime(v)

    async def mark_replaced(self, new_grant_id: str) -> bool:
        """Compare-and-set replaced_by from None. Only one refresh may win, and not after a revoke."""
        result = await AccessGrant.find(
            AccessGrant.id == self.id,
            AccessGrant.replaced_by == None,  # noqa: E711
            AccessGrant.revoked_at == None,  # noqa: E711
        ).update(Set({AccessGrant.replaced_by: new_grant_id}))  # type: ignore[arg-type]
        if result and result.modified_count > 0:
            self.replaced_by = new_grant_id
            return True
        return False

    async def unmark_replaced(self, new_grant_id: str) -> None:
        await AccessGrant.find(
            AccessGrant.id == self.id,
            AccessGrant.replaced_by == new_grant_id,
        ).update(Set({AccessGrant.replaced_by: None}))  # type: ignore[arg-type]
        self.replaced_by = None

    class Settings:
        name = "access_grant"
        indexes = [
            IndexModel([("video_id", 1), ("viewer_id", 1)], name="video_id_viewer_id"),
            IndexModel([("purge_at", 1)], expireAfterSeconds=0, name="purge_at_ttl"),
        ]


__all__ = ["AccessGrant", "VideoKind"]
