"""Processing job ODM schema."""

from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from pydantic import Field, field_validator
from pymongo import IndexModel

from .schema_utils import parse_mongo_datetime
from .vod_state import JobStatus, StageName


class ProcessingJob(Document):
    """Pollable handle of one VOD conversion run."""

    job_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    vod_id: str
    owner_id: str

    status: JobStatus = JobStatus.QUEUED
    # Stages this run executes; a retry runs only the stages that failed before
    stages: list[StageName] = Field(default_factory=list)
    attempt: int = 1
    error: str | None = None

    queued_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    updated_at: datetime

    @field_validator("queued_at", "started_at", "finished_at", "updated_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return parse_mongo_datetime(v)

    class Settings:
        name = "processing_job"
        indexes = [
            IndexModel([("vod_id", 1), ("queued_at", -1)], name="vod_id_queued_at"),
        ]
