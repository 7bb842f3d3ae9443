"""Stream domain models."""

from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas import StreamQuality, StreamSession, StreamSettings, StreamState, SubscriptionTier


class StreamSettingsParams(BaseModel):
    """Settings overrides supplied at creation; unset fields keep the defaults."""

    is_private: bool | None = None
    required_tier: SubscriptionTier | None = None
    require_subscription: bool | None = None
    enable_recording: bool | None = None
    enable_chat: bool | None = None
    quality: list[StreamQuality] | None = None
    max_duration_minutes: int | None = Field(default=None, ge=1, le=24 * 60)


class StreamCreateParams(BaseModel):
    """Parameters for creating a stream."""

    owner_id: str
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    category: str | None = None
    tags: list[str] = Field(default_factory=list, max_length=20)
    settings: StreamSettingsParams | None = None


class StreamResponse(BaseModel):
    """Stream response model."""

    stream_id: str
    owner_id: str

    title: str
    description: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)

    status: StreamState
    settings: StreamSettings

    ingest_url: str | None = None
    playback_url: str
    # Only returned to the owner
    stream_key: str | None = None

    viewer_count: int = 0
    vod_id: str | None = None

    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None

    @classmethod
    def from_document(cls, stream: StreamSession, include_secrets: bool = False) -> "StreamResponse":
        data = stream.model_dump(exclude={"id", "version", "stream_key", "ingest_url"})
        if include_secrets:
            data["stream_key"] = stream.stream_key
            data["ingest_url"] = stream.ingest_url
        return cls(**data)


class StreamListResponse(BaseModel):
    """Stream list response with pagination."""

    streams: list[StreamResponse]
    next_cursor: str | None = None


class IngestAuthResponse(BaseModel):
    """Result of authenticating an RTMP publish with a stream key."""

    authenticated: bool = True
    stream_id: str
    owner_id: str
    title: str
    status: StreamState
    enable_recording: bool
    recording_ref: str | None = None
