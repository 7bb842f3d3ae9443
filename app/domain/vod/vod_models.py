"""VOD domain models."""

from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas import (
    JobStatus,
    ProcessingJob,
    StageName,
    SubscriptionTier,
    Vod,
    VodOptions,
    VodResults,
    VodStages,
    VodState,
    VodVisibility,
)


class VodOptionsParams(BaseModel):
    """Processing options requested by the caller."""

    enable_ai_processing: bool = True
    generate_thumbnails: bool = True
    generate_transcription: bool = True
    generate_highlights: bool = True
    auto_publish: bool = False
    retention_days: int = Field(default=-1, ge=-1, le=3650)

    def to_options(self) -> VodOptions:
        return VodOptions(**self.model_dump())


class UploadParams(BaseModel):
    """Direct upload of a finished video that already sits in object storage."""

    owner_id: str
    storage_ref: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    category: str | None = None
    tags: list[str] = Field(default_factory=list, max_length=20)
    visibility: VodVisibility = VodVisibility.PUBLIC
    required_tier: SubscriptionTier = SubscriptionTier.BASIC
    options: VodOptionsParams = Field(default_factory=VodOptionsParams)


class VodUpdateParams(BaseModel):
    """Metadata a VOD owner may change. Unset fields are left untouched."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    category: str | None = None
    tags: list[str] | None = Field(default=None, max_length=20)
    visibility: VodVisibility | None = None
    required_tier: SubscriptionTier | None = None


class VodResponse(BaseModel):
    vod_id: str
    owner_id: str
    source_stream_id: str | None = None

    title: str
    description: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)

    status: VodState
    visibility: VodVisibility
    required_tier: SubscriptionTier

    storage_ref: str | None = None
    duration_seconds: float | None = None
    file_size: int | None = None
    view_count: int = 0

    options: VodOptions
    results: VodResults
    stages: VodStages
    partial: bool = False
    processing: bool = False
    last_job_id: str | None = None

    retention_days: int = -1
    expires_at: datetime | None = None
    published_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, vod: Vod) -> "VodResponse":
        data = vod.model_dump(exclude={"id", "recording_ref", "playback_url", "inflight_job_id"})
        data["processing"] = vod.inflight_job_id is not None
        return cls(**data)


class JobResponse(BaseModel):
    job_id: str
    vod_id: str
    status: JobStatus
    stages: list[StageName]
    attempt: int
    error: str | None = None
    queued_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @classmethod
    def from_document(cls, job: ProcessingJob) -> "JobResponse":
        return cls(**job.model_dump(exclude={"id", "owner_id", "updated_at"}))


class VodCreateResult(BaseModel):
    """Handle returned by a conversion request; processing continues asynchronously."""

    vod: VodResponse
    job: JobResponse | None = None
    # False when the stream already had a VOD and nothing was inserted
    created: bool = True
