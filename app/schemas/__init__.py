"""Beanie ODM schemas for MongoDB collections."""

from .access_grant import AccessGrant, VideoKind
from .appeal_state import AppealRecommendation, AppealResolution, AppealState, ViolationSeverity
from .init import BEANIE_DOCUMENT_MODELS, init_beanie_odm
from .live_slot import CreatorLiveSlot
from .moderation_appeal import AppealHistoryEntry, AppealReview, ModerationAppeal, Violation
from .processing_job import ProcessingJob
from .stream_session import StreamSession, StreamSettings
from .stream_state import StreamQuality, StreamState
from .tier import SubscriptionStatus, SubscriptionTier
from .vod import Highlight, StageRecord, Thumbnail, Vod, VodOptions, VodResults, VodStages
from .vod_state import HighlightMode, JobStatus, StageName, StageStatus, VodState, VodVisibility

__all__ = [
    "BEANIE_DOCUMENT_MODELS",
    "AccessGrant",
    "AppealHistoryEntry",
    "AppealRecommendation",
    "AppealResolution",
    "AppealReview",
    "AppealState",
    "CreatorLiveSlot",
    "Highlight",
    "HighlightMode",
    "JobStatus",
    "ModerationAppeal",
    "ProcessingJob",
    "StageName",
    "StageRecord",
    "StageStatus",
    "StreamQuality",
    "StreamSession",
    "StreamSettings",
    "StreamState",
    "SubscriptionStatus",
    "SubscriptionTier",
    "Thumbnail",
    "VideoKind",
    "Violation",
    "ViolationSeverity",
    "Vod",
    "VodOptions",
    "VodResults",
    "VodStages",
    "VodState",
    "VodVisibility",
    "init_beanie_odm",
]
