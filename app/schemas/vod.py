"""VOD ODM schema."""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from beanie.odm.fields import ExpressionField
from beanie.odm.operators.update.general import Set
from loguru import logger
from pydantic import BaseModel, Field, field_validator
from pymongo import IndexModel

from .schema_utils import parse_mongo_datetime
from .tier import SubscriptionTier
from .vod_state import HighlightMode, StageName, StageStatus, VodState, VodVisibility


class VodOptions(BaseModel):
    """Processing options snapshot taken when the conversion was requested."""

    enable_ai_processing: bool = True
    generate_thumbnails: bool = True
    generate_transcription: bool = True
    generate_highlights: bool = True
    auto_publish: bool = False
    # -1 keeps the VOD indefinitely
    retention_days: int = Field(default=-1, ge=-1)

    def requests(self, stage: StageName) -> bool:
        """Whether the stage was requested by these options."""
        if stage in (StageName.INGEST, StageName.PUBLICATION):
            return True
        if not self.enable_ai_processing:
            return False
        return {
            StageName.THUMBNAILS: self.generate_thumbnails,
            StageName.TRANSCRIPTION: self.generate_transcription,
            StageName.HIGHLIGHTS: self.generate_highlights,
        }[stage]


class Thumbnail(BaseModel):
    url: str
    time_offset_seconds: float = 0.0
    width: int | None = None
    height: int | None = None


class Highlight(BaseModel):
    start_seconds: float
    end_seconds: float
    score: float = 0.0
    label: str | None = None


class VodResults(BaseModel):
    """Stage outputs. Each one is present or absent independently."""

    thumbnails: list[Thumbnail] | None = None
    transcription_ref: str | None = None
    transcription_language: str | None = None
    highlights: list[Highlight] | None = None
    highlight_mode: HighlightMode | None = None


class StageRecord(BaseModel):
    status: StageStatus = StageStatus.PENDING
    attempts: int = 0
    media_job_id: str | None = None
    error_kind: str | None = None
    error_code: str | None = None
    error: str | None = None
    # Highlights ran on raw signal because transcription failed
    degraded: bool = False
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @field_validator("started_at", "finished_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return parse_mongo_datetime(v)


class VodStages(BaseModel):
    """Partial-results record: one entry per stage."""

    ingest: StageRecord = Field(default_factory=StageRecord)
    thumbnails: StageRecord = Field(default_factory=StageRecord)
    transcription: StageRecord = Field(default_factory=StageRecord)
    highlights: StageRecord = Field(default_factory=StageRecord)
    publication: StageRecord = Field(default_factory=StageRecord)

    def get(self, stage: StageName) -> StageRecord:
        return getattr(self, stage.value)

    def set(self, stage: StageName, record: StageRecord) -> None:
        setattr(self, stage.value, record)


class Vod(Document):
    """On-demand asset converted from a stream recording or uploaded directly."""

    vod_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    owner_id: Indexed(str)  # type: ignore[valid-type]
    # None for direct uploads
    source_stream_id: str | None = None

    title: str
    description: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)

    status: VodState = VodState.PENDING
    visibility: VodVisibility = VodVisibility.PUBLIC
    required_tier: SubscriptionTier = SubscriptionTier.BASIC

    # Source artifact
    recording_ref: str | None = None
    storage_ref: str | None = None
    duration_seconds: float | None = None
    file_size: int | None = None
    playback_url: str | None = None

    view_count: int = 0

    options: VodOptions = Field(default_factory=VodOptions)
    results: VodResults = Field(default_factory=VodResults)
    stages: VodStages = Field(default_factory=VodStages)
    # Set when the VOD became ready/published with at least one failed stage
    partial: bool = False

    # Per-VOD in-flight guard: the job currently allowed to mutate stage data
    inflight_job_id: str | None = None
    last_job_id: str | None = None

    retention_days: int = -1
    expires_at: datetime | None = None
    published_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator("expires_at", "published_at", "created_at", "updated_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        """Parse MongoDB Extended JSON datetime format."""
        return parse_mongo_datetime(v)

    async def claim_inflight(self, job_id: str) -> bool:
        """Compare-and-set the in-flight guard from None to job_id."""
        result = await Vod.find(
            Vod.id == self.id,
            Vod.inflight_job_id == None,  # noqa: E711
        ).update(Set({Vod.inflight_job_id: job_id, Vod.last_job_id: job_id}))  # type: ignore[arg-type]
        if result and result.modified_count > 0:
            self.inflight_job_id = job_id
            self.last_job_id = job_id
            return True
        return False

    async def release_inflight(self, job_id: str) -> bool:
        result = await Vod.find(
            Vod.id == self.id,
            Vod.inflight_job_id == job_id,
        ).update(Set({Vod.inflight_job_id: None}))  # type: ignore[arg-type]
        self.inflight_job_id = None
        return bool(result and result.modified_count > 0)

    async def update_as_job(self, job_id: str, updates: Mapping[ExpressionField | str, Any]) -> bool:
        """Apply updates only while job_id still holds the in-flight guard.

        A write that matches but changes nothing still counts as held.

        Returns:
            False when the guard moved to another job; the write is dropped.
        """
        result = await Vod.find(
            Vod.id == self.id,
            Vod.inflight_job_id == job_id,
        ).update(Set(dict(updates)))  # type: ignore[arg-type]
        if result and result.matched_count > 0:
            return True
        logger.warning(f"VOD {self.vod_id} write dropped: job {job_id} no longer holds the guard")
        return False

    class Settings:
        name = "vod"
        indexes = [
            IndexModel([("source_stream_id", 1)], name="source_stream_id"),
            IndexModel([("owner_id", 1), ("created_at", -1)], name="owner_id_created_at"),
            IndexModel([("status", 1), ("published_at", -1)], name="status_published_at"),
        ]
