"""Wire models of the media processing capability."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class MediaJobKind(str, Enum):
    THUMBNAIL = "thumbnail"
    TRANSCRIBE = "transcribe"
    EXTRACT_HIGHLIGHTS = "extract_highlights"

    def __str__(self) -> str:
        return self.value


class MediaJobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

    @property
    def is_finished(self) -> bool:
        return self in (MediaJobStatus.SUCCEEDED, MediaJobStatus.FAILED)


class MediaJob(BaseModel):
    job_id: str
    kind: MediaJobKind
    status: MediaJobStatus = MediaJobStatus.QUEUED
    result: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


class RecordingArtifact(BaseModel):
    """A sealed, durable recording in object storage."""

    storage_ref: str
    duration_seconds: float | None = None
    file_size: int | None = None
