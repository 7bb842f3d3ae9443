"""Client of the AI moderation capability used to re-review appealed content."""

import httpx
from loguru import logger
from pydantic import ValidationError

from app.app_config import AppEnvironConfig, get_app_environ_config
from app.schemas import AppealRecommendation, AppealReview, Violation
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

# Per-type thresholds the original moderation decision was taken with
MODERATION_THRESHOLDS: dict[str, float] = {
    "hate_speech": 0.8,
    "harassment": 0.75,
    "violence": 0.85,
    "adult_content": 0.9,
    "spam": 0.7,
    "copyright": 0.95,
    "misinformation": 0.8,
    "self_harm": 0.9,
    "illegal_content": 0.95,
    "inappropriate_language": 0.6,
    "personal_information": 0.8,
    "impersonation": 0.85,
}
DEFAULT_THRESHOLD = 0.8

_GENUINE_INDICATORS = ("mistake", "misunderstood", "context", "explain", "sorry")
_FLAGGED_TERMS = ("kill", "hate", "scam", "nsfw", "buy followers")


class ModerationAIService:
    def __init__(
        self,
        settings: AppEnvironConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings or get_app_environ_config()
        self._transport = transport

    async def review_appeal(self, violation: Violation, reason: str) -> AppealReview:
        """Re-review a moderation decision given the appellant's reason.

        Raises:
            AppError: E_MODERATION_UNAVAILABLE if the capability could not be reached
                or answered with something that is not a review.
        """
        if self._settings.DEMO_MODE:
            review = self._heuristic_review(violation, reason)
            logger.info(
                f"ModerationAIService DEMO_MODE=true: {review.recommendation} ({review.confidence})"
            )
            return review

        base_url = self._settings.MODERATION_API_BASE_URL
        if not base_url:
            raise AppError(
                errcode=AppErrorCode.E_MODERATION_UNAVAILABLE,
                errmesg="MODERATION_API_BASE_URL not configured",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )

        headers = {"X-Api-Key": self._settings.MODERATION_API_KEY} if self._settings.MODERATION_API_KEY else {}
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    f"{base_url.rstrip('/')}/v1/appeals/review",
                    json={"violation": violation.model_dump(mode="json"), "reason": reason},
                    headers=headers,
                    timeout=30,
                )
                response.raise_for_status()
                return AppealReview.model_validate(response.json())
        except httpx.HTTPError as e:
            logger.warning(f"Moderation review call failed: {e}")
            raise AppError(
                errcode=AppErrorCode.E_MODERATION_UNAVAILABLE,
                errmesg="AI moderation review failed",
                status_code=HttpStatusCode.BAD_GATEWAY,
            ) from e
        except (ValueError, ValidationError) as e:
            logger.warning(f"Moderation review returned an unusable payload: {e}")
            raise AppError(
                errcode=AppErrorCode.E_MODERATION_UNAVAILABLE,
                errmesg="AI moderation review returned an invalid response",
                status_code=HttpStatusCode.BAD_GATEWAY,
            ) from e

    def _heuristic_review(self, violation: Violation, reason: str) -> AppealReview:
        text = reason.lower()
        reanalysis_approved = not any(term in text for term in _FLAGGED_TERMS)
        genuine_score = sum(0.2 for indicator in _GENUINE_INDICATORS if indicator in text)
        is_genuine = genuine_score > 0.4
        threshold = MODERATION_THRESHOLDS.get(violation.type, DEFAULT_THRESHOLD)
        was_borderline = violation.confidence < threshold + 0.1

        if reanalysis_approved and was_borderline and is_genuine:
            return AppealReview(
                recommendation=AppealRecommendation.APPROVE,
                confidence=0.85,
                reasoning="Re-analysis suggests content may have been incorrectly flagged. Appeal appears genuine.",
            )
        if not reanalysis_approved and violation.confidence > 0.9:
            return AppealReview(
                recommendation=AppealRecommendation.REJECT,
                confidence=0.9,
                reasoning="Re-analysis confirms original violation. High confidence in moderation decision.",
            )
        return AppealReview(
            recommendation=AppealRecommendation.NEEDS_HUMAN_REVIEW,
            confidence=0.6,
            reasoning="Case requires human judgment due to borderline violation or complex context.",
        )


moderation_ai_service = ModerationAIService()
