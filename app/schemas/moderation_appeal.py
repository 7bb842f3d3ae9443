"""Moderation appeal ODM schema."""

from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from pydantic import BaseModel, Field, field_validator
from pymongo import IndexModel

from .appeal_state import AppealRecommendation, AppealResolution, AppealState, ViolationSeverity
from .schema_utils import parse_mongo_datetime


class Violation(BaseModel):
    """The moderation decision being appealed."""

    type: str
    description: str = ""
    confidence: float = Field(ge=0.0, le=1.0)
    severity: ViolationSeverity


class AppealReview(BaseModel):
    """Structured result of the AI review capability."""

    recommendation: AppealRecommendation
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""


class AppealHistoryEntry(BaseModel):
    status: AppealState
    note: str
    at: datetime

    @field_validator("at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return parse_mongo_datetime(v)


class ModerationAppeal(Document):
    """A creator's appeal against a moderation decision on one content item."""

    appeal_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    content_id: Indexed(str)  # type: ignore[valid-type]
    user_id: str

    violation: Violation
    appeal_reason: str
    # Digest of violation + reason; equal inputs route the same way
    review_key: str

    status: AppealState = AppealState.SUBMITTED
    ai_review: AppealReview | None = None
    ai_error: str | None = None
    resolution: AppealResolution | None = None
    history: list[AppealHistoryEntry] = Field(default_factory=list)

    created_at: datetime
    updated_at: datetime
    resolved_at: datetime | None = None

    @field_validator("created_at", "updated_at", "resolved_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return parse_mongo_datetime(v)

    class Settings:
        name = "moderation_appeal"
        indexes = [
            IndexModel([("user_id", 1), ("created_at", -1)], name="user_id_created_at"),
            IndexModel([("status", 1), ("created_at", 1)], name="status_created_at"),
        ]
