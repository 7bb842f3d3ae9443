"""Appeal service - bridges creator appeals to the AI moderation review."""

import hashlib

import orjson
from loguru import logger

from app.app_config import AppEnvironConfig, get_app_environ_config
from app.domain.utils.idgen import new_appeal_id
from app.domain.utils.timeutils import utc_now
from app.schemas import (
    AppealHistoryEntry,
    AppealRecommendation,
    AppealResolution,
    AppealReview,
    AppealState,
    ModerationAppeal,
    Violation,
)
from app.services.integrations.moderation_ai_service import ModerationAIService, moderation_ai_service
from app.utils.app_errors import AppError, AppErrorCode, ErrorKind, HttpStatusCode

from .appeal_models import AppealCreateParams, AppealResponse, AppealStatusResponse

_RESOLUTION_BY_RECOMMENDATION = {
    AppealRecommendation.APPROVE: AppealResolution.REINSTATED,
    AppealRecommendation.REJECT: AppealResolution.UPHELD,
}


def route_appeal(review: AppealReview, threshold: float) -> tuple[AppealState, AppealResolution | None]:
    """Decide where a reviewed appeal goes.

    Confident approve/reject recommendations resolve automatically; everything
    else goes to a human.
    """
    resolution = _RESOLUTION_BY_RECOMMENDATION.get(review.recommendation)
    if resolution is not None and review.confidence >= threshold:
        return AppealState.AUTO_RESOLVED, resolution
    return AppealState.HUMAN_REVIEW_REQUIRED, None


def review_key(violation: Violation, reason: str) -> str:
    payload = orjson.dumps(
        {"violation": violation.model_dump(mode="json"), "reason": reason.strip()},
        option=orjson.OPT_SORT_KEYS,
    )
    return hashlib.sha256(payload).hexdigest()


class AppealService:
    def __init__(
        self,
        settings: AppEnvironConfig | None = None,
        moderation: ModerationAIService | None = None,
    ):
        self.settings = settings or get_app_environ_config()
        self.moderation = moderation or moderation_ai_service

    async def process_content_appeal(self, user_id: str, params: AppealCreateParams) -> AppealResponse:
        """Record an appeal, have it reviewed, and route it.

        An unavailable review capability sends the appeal to human review with the
        error kept in its history.

        Raises:
            AppError: E_INVALID_APPEAL if the reason is too short.
        """
        reason = params.appeal_reason.strip()
        if len(reason) < self.settings.APPEAL_MIN_REASON_LENGTH:
            raise AppError(
                errcode=AppErrorCode.E_INVALID_APPEAL,
                errmesg=f"Appeal reason must be at least {self.settings.APPEAL_MIN_REASON_LENGTH} characters",
                status_code=HttpStatusCode.BAD_REQUEST,
            )

        now = utc_now()
        appeal = ModerationAppeal(
            appeal_id=new_appeal_id(),
            content_id=params.content_id,
            user_id=user_id,
            violation=params.violation,
            appeal_reason=reason,
            review_key=review_key(params.violation, reason),
            status=AppealState.SUBMITTED,
            history=[AppealHistoryEntry(status=AppealState.SUBMITTED, note="Appeal submitted", at=now)],
            created_at=now,
            updated_at=now,
        )
        await appeal.insert()
        logger.info(f"Appeal {appeal.appeal_id} submitted for content {params.content_id} by {user_id}")

        try:
            review = await self.moderation.review_appeal(params.violation, reason)
        except AppError as e:
            logger.warning(f"Appeal {appeal.appeal_id} AI review failed: {e.errcode} {e.errmesg}")
            appeal.ai_error = f"{e.errcode}: {e.errmesg}"
            self._move(appeal, AppealState.HUMAN_REVIEW_REQUIRED, f"AI review unavailable ({e.errcode})")
            await appeal.save()
            return AppealResponse.from_document(appeal)

        appeal.ai_review = review
        self._move(
            appeal,
            AppealState.AI_REVIEWED,
            f"AI recommends {review.recommendation} ({review.confidence:.2f})",
        )

        status, resolution = route_appeal(review, self.settings.APPEAL_AUTO_RESOLVE_THRESHOLD)
        if status == AppealState.AUTO_RESOLVED:
            appeal.resolution = resolution
            appeal.resolved_at = appeal.updated_at
            self._move(appeal, status, f"Automatically resolved: content {resolution}")
        else:
            self._move(appeal, status, "Queued for human review")

        await appeal.save()
        logger.info(f"Appeal {appeal.appeal_id} routed to {appeal.status} (resolution={appeal.resolution})")
        return AppealResponse.from_document(appeal)

    async def get_appeal_status(self, appeal_id: str, requester_id: str, is_admin: bool = False) -> AppealStatusResponse:
        appeal = await ModerationAppeal.find_one(ModerationAppeal.appeal_id == appeal_id)
        if appeal is None:
            raise AppError(
                errcode=AppErrorCode.E_APPEAL_NOT_FOUND,
                errmesg=f"Appeal not found: {appeal_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        if not is_admin and appeal.user_id != requester_id:
            raise AppError(
                errcode=AppErrorCode.E_UNAUTHORIZED,
                errmesg=f"User {requester_id} may not read appeal {appeal_id}",
                status_code=HttpStatusCode.FORBIDDEN,
                kind=ErrorKind.UNAUTHORIZED,
            )

        pending = appeal.status in (AppealState.SUBMITTED, AppealState.AI_REVIEWED, AppealState.HUMAN_REVIEW_REQUIRED)
        return AppealStatusResponse(
            appeal_id=appeal.appeal_id,
            status=appeal.status,
            resolution=appeal.resolution,
            history=appeal.history,
            estimated_review_hours=self.settings.APPEAL_HUMAN_REVIEW_ETA_HOURS if pending else None,
            updated_at=appeal.updated_at,
        )

    def _move(self, appeal: ModerationAppeal, status: AppealState, note: str) -> None:
        now = utc_now()
        appeal.status = status
        appeal.updated_at = now
        appeal.history.append(AppealHistoryEntry(status=status, note=note, at=now))
