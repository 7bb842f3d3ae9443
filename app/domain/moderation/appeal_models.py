"""Appeal domain models."""

from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas import (
    AppealHistoryEntry,
    AppealResolution,
    AppealReview,
    AppealState,
    ModerationAppeal,
    Violation,
)


class AppealCreateParams(BaseModel):
    content_id: str = Field(min_length=1)
    violation: Violation
    appeal_reason: str = Field(max_length=5000)


class AppealResponse(BaseModel):
    appeal_id: str
    content_id: str
    user_id: str
    violation: Violation
    appeal_reason: str
    status: AppealState
    ai_review: AppealReview | None = None
    resolution: AppealResolution | None = None
    history: list[AppealHistoryEntry] = Field(default_factory=list)
    created_at: datetime
    resolved_at: datetime | None = None

    @classmethod
    def from_document(cls, appeal: ModerationAppeal) -> "AppealResponse":
        return cls(**appeal.model_dump(exclude={"id", "review_key", "ai_error", "updated_at"}))


class AppealStatusResponse(BaseModel):
    """Read-only projection of an appeal for its appellant."""

    appeal_id: str
    status: AppealState
    resolution: AppealResolution | None = None
    history: list[AppealHistoryEntry] = Field(default_factory=list)
    # Hours until a human reviewer is expected to decide; None once resolved
    estimated_review_hours: int | None = None
    updated_at: datetime
