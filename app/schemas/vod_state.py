"""VOD conversion enums."""

from enum import Enum


class VodState(str, Enum):
    """VOD lifecycle states.

    PENDING → PROCESSING → READY → PUBLISHED
                  ↓
                FAILED

    READY (partial) and FAILED VODs may go back to PROCESSING through a retry.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"
    PUBLISHED = "published"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def playable_states(cls) -> list["VodState"]:
        return [VodState.READY, VodState.PUBLISHED]


class VodVisibility(str, Enum):
    PUBLIC = "public"
    UNLISTED = "unlisted"
    PRIVATE = "private"

    def __str__(self) -> str:
        return self.value


class StageName(str, Enum):
    """Conversion stages in execution order."""

    INGEST = "ingest"
    THUMBNAILS = "thumbnails"
    TRANSCRIPTION = "transcription"
    HIGHLIGHTS = "highlights"
    PUBLICATION = "publication"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def ai_stages(cls) -> list["StageName"]:
        return [StageName.THUMBNAILS, StageName.TRANSCRIPTION, StageName.HIGHLIGHTS]


class StageStatus(str, Enum):
    NOT_REQUESTED = "not_requested"
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    def __str__(self) -> str:
        return self.value


class HighlightMode(str, Enum):
    TRANSCRIPT = "transcript"
    RAW_SIGNAL = "raw_signal"

    def __str__(self) -> str:
        return self.value


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def finished_states(cls) -> list["JobStatus"]:
        return [JobStatus.COMPLETED, JobStatus.FAILED]


__all__ = ["HighlightMode", "JobStatus", "StageName", "StageStatus", "VodState", "VodVisibility"]
