from pydantic import BaseModel, Field

from app.domain.live.stream.stream_models import StreamResponse, StreamSettingsParams


class CreateStreamIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    category: str | None = None
    tags: list[str] = Field(default_factory=list, max_length=20)
    settings: StreamSettingsParams | None = None


class IngestAuthIn(BaseModel):
    stream_key: str


class ListLiveStreamsOut(BaseModel):
    streams: list[StreamResponse]
    next_cursor: str | None = None
