"""Moderation appeal enums."""

from enum import Enum


class AppealState(str, Enum):
    """Appeal states.

    SUBMITTED → AI_REVIEWED → AUTO_RESOLVED | HUMAN_REVIEW_REQUIRED

    SUBMITTED goes straight to HUMAN_REVIEW_REQUIRED when the AI review call fails.
    """

    SUBMITTED = "submitted"
    AI_REVIEWED = "ai_reviewed"
    AUTO_RESOLVED = "auto_resolved"
    HUMAN_REVIEW_REQUIRED = "human_review_required"

    def __str__(self) -> str:
        return self.value


class AppealRecommendation(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    NEEDS_HUMAN_REVIEW = "needs_human_review"

    def __str__(self) -> str:
        return self.value


class AppealResolution(str, Enum):
    REINSTATED = "reinstated"
    UPHELD = "upheld"

    def __str__(self) -> str:
        return self.value


class ViolationSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    def __str__(self) -> str:
        return self.value


__all__ = ["AppealRecommendation", "AppealResolution", "AppealState", "ViolationSeverity"]
