"""Tests for the appeal bridge: AI review and routing."""

from unittest.mock import AsyncMock

import httpx
import pytest

from app.domain.moderation.appeal_domain import AppealService, review_key, route_appeal
from app.domain.moderation.appeal_models import AppealCreateParams
from app.schemas import (
    AppealRecommendation,
    AppealResolution,
    AppealReview,
    AppealState,
    ModerationAppeal,
    Violation,
    ViolationSeverity,
)
from app.services.integrations.moderation_ai_service import ModerationAIService
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

VIOLATION = Violation(type="harassment", description="flagged comment", confidence=0.78, severity=ViolationSeverity.LOW)


def review(recommendation: AppealRecommendation, confidence: float) -> AppealReview:
    return AppealReview(recommendation=recommendation, confidence=confidence, reasoning="test")


class TestRouteAppeal:
    @pytest.mark.parametrize(
        ("recommendation", "confidence", "state", "resolution"),
        [
            (AppealRecommendation.APPROVE, 0.85, AppealState.AUTO_RESOLVED, AppealResolution.REINSTATED),
            (AppealRecommendation.REJECT, 0.9, AppealState.AUTO_RESOLVED, AppealResolution.UPHELD),
            (AppealRecommendation.APPROVE, 0.8, AppealState.AUTO_RESOLVED, AppealResolution.REINSTATED),
            (AppealRecommendation.APPROVE, 0.79, AppealState.HUMAN_REVIEW_REQUIRED, None),
            (AppealRecommendation.REJECT, 0.5, AppealState.HUMAN_REVIEW_REQUIRED, None),
            (AppealRecommendation.NEEDS_HUMAN_REVIEW, 0.99, AppealState.HUMAN_REVIEW_REQUIRED, None),
        ],
    )
    def test_routing_table(self, recommendation, confidence, state, resolution):
        assert route_appeal(review(recommendation, confidence), threshold=0.8) == (state, resolution)


class TestReviewKey:
    def test_same_input_same_key(self):
        assert review_key(VIOLATION, "it was context") == review_key(VIOLATION, "  it was context ")

    def test_reason_changes_key(self):
        assert review_key(VIOLATION, "one reason") != review_key(VIOLATION, "another reason")


@pytest.fixture
def moderation() -> AsyncMock:
    return AsyncMock(spec=ModerationAIService)


@pytest.fixture
def service(settings, moderation) -> AppealService:
    return AppealService(settings=settings, moderation=moderation)


def params(reason: str = "This was taken out of context, please explain the decision") -> AppealCreateParams:
    return AppealCreateParams(content_id="vd_flagged", violation=VIOLATION, appeal_reason=reason)


@pytest.mark.usefixtures("clear_collections")
class TestProcessContentAppeal:
    async def test_confident_approval_reinstates(self, beanie_db, service: AppealService, moderation):
        moderation.review_appeal.return_value = review(AppealRecommendation.APPROVE, 0.85)

        result = await service.process_content_appeal("u.creator", params())

        assert result.status == AppealState.AUTO_RESOLVED
        assert result.resolution == AppealResolution.REINSTATED
        assert [h.status for h in result.history] == [
            AppealState.SUBMITTED,
            AppealState.AI_REVIEWED,
            AppealState.AUTO_RESOLVED,
        ]
        saved = await ModerationAppeal.find_one(ModerationAppeal.appeal_id == result.appeal_id)
        assert saved.resolved_at is not None
        assert saved.ai_review.recommendation == AppealRecommendation.APPROVE

    async def test_uncertain_review_goes_to_human(self, beanie_db, service: AppealService, moderation):
        moderation.review_appeal.return_value = review(AppealRecommendation.NEEDS_HUMAN_REVIEW, 0.6)

        result = await service.process_content_appeal("u.creator", params())

        assert result.status == AppealState.HUMAN_REVIEW_REQUIRED
        assert result.resolution is None

    async def test_ai_unavailable_goes_to_human(self, beanie_db, service: AppealService, moderation):
        moderation.review_appeal.side_effect = AppError(
            errcode=AppErrorCode.E_MODERATION_UNAVAILABLE,
            errmesg="down",
            status_code=HttpStatusCode.BAD_GATEWAY,
        )

        result = await service.process_content_appeal("u.creator", params())

        assert result.status == AppealState.HUMAN_REVIEW_REQUIRED
        assert result.ai_review is None
        saved = await ModerationAppeal.find_one(ModerationAppeal.appeal_id == result.appeal_id)
        assert saved.ai_error.startswith("E_MODERATION_UNAVAILABLE")
        assert [h.status for h in saved.history] == [AppealState.SUBMITTED, AppealState.HUMAN_REVIEW_REQUIRED]

    async def test_short_reason_rejected_before_insert(self, beanie_db, service: AppealService, moderation):
        with pytest.raises(AppError) as exc_info:
            await service.process_content_appeal("u.creator", params("   nope    "))

        assert exc_info.value.errcode == AppErrorCode.E_INVALID_APPEAL
        assert await ModerationAppeal.count() == 0
        moderation.review_appeal.assert_not_called()


@pytest.mark.usefixtures("clear_collections")
class TestGetAppealStatus:
    async def test_pending_appeal_has_eta(self, beanie_db, service: AppealService, moderation):
        moderation.review_appeal.return_value = review(AppealRecommendation.NEEDS_HUMAN_REVIEW, 0.6)
        created = await service.process_content_appeal("u.creator", params())

        status = await service.get_appeal_status(created.appeal_id, requester_id="u.creator")

        assert status.status == AppealState.HUMAN_REVIEW_REQUIRED
        assert status.estimated_review_hours == 24

    async def test_resolved_appeal_has_no_eta(self, beanie_db, service: AppealService, moderation):
        moderation.review_appeal.return_value = review(AppealRecommendation.REJECT, 0.95)
        created = await service.process_content_appeal("u.creator", params())

        status = await service.get_appeal_status(created.appeal_id, requester_id="u.creator")

        assert status.resolution == AppealResolution.UPHELD
        assert status.estimated_review_hours is None

    async def test_other_user_refused_admin_allowed(self, beanie_db, service: AppealService, moderation):
        moderation.review_appeal.return_value = review(AppealRecommendation.NEEDS_HUMAN_REVIEW, 0.6)
        created = await service.process_content_appeal("u.creator", params())

        with pytest.raises(AppError) as exc_info:
            await service.get_appeal_status(created.appeal_id, requester_id="u.other")
        assert exc_info.value.errcode == AppErrorCode.E_UNAUTHORIZED

        status = await service.get_appeal_status(created.appeal_id, requester_id="u.mod", is_admin=True)
        assert status.appeal_id == created.appeal_id

    async def test_unknown_appeal(self, beanie_db, service: AppealService):
        with pytest.raises(AppError) as exc_info:
            await service.get_appeal_status("ap_missing", requester_id="u.creator")

        assert exc_info.value.errcode == AppErrorCode.E_APPEAL_NOT_FOUND


class TestHeuristicReview:
    """Demo-mode review used when no moderation backend is configured."""

    async def test_genuine_borderline_appeal_approved(self, settings):
        service = ModerationAIService(settings)

        result = await service.review_appeal(VIOLATION, "Sorry, this was a mistake and lacks context")

        assert result.recommendation == AppealRecommendation.APPROVE

    async def test_confirmed_violation_rejected(self, settings):
        service = ModerationAIService(settings)
        violation = Violation(type="spam", confidence=0.97, severity=ViolationSeverity.HIGH)

        result = await service.review_appeal(violation, "buy followers here, it is fine")

        assert result.recommendation == AppealRecommendation.REJECT


@pytest.mark.usefixtures("clear_collections")
class TestMalformedReview:
    async def test_unusable_review_goes_to_human(self, beanie_db, settings):
        live = settings.model_copy(update={"DEMO_MODE": False, "MODERATION_API_BASE_URL": "https://moderation.test"})
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"unexpected": True}))
        service = AppealService(settings=live, moderation=ModerationAIService(live, transport=transport))

        result = await service.process_content_appeal("u.creator", params())

        assert result.status == AppealState.HUMAN_REVIEW_REQUIRED
        saved = await ModerationAppeal.find_one(ModerationAppeal.appeal_id == result.appeal_id)
        assert saved.status == AppealState.HUMAN_REVIEW_REQUIRED
        assert saved.ai_error.startswith("E_MODERATION_UNAVAILABLE")
