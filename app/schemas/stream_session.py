"""Stream session ODM schema."""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from beanie.odm.fields import ExpressionField
from beanie.odm.operators.update.general import Set
from loguru import logger
from pydantic import BaseModel, Field, field_validator
from pymongo import IndexModel

from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .schema_utils import parse_mongo_datetime
from .stream_state import StreamQuality, StreamState
from .tier import SubscriptionTier


class StreamSettings(BaseModel):
    """Per-stream visibility, tier and recording settings."""

    is_private: bool = False
    required_tier: SubscriptionTier = SubscriptionTier.BASIC
    require_subscription: bool = False
    enable_recording: bool = True
    enable_chat: bool = True
    quality: list[StreamQuality] = Field(
        default_factory=lambda: [StreamQuality.Q720P, StreamQuality.Q1080P]
    )
    max_duration_minutes: int = 480


class StreamSession(Document):
    """One live broadcast of a creator."""

    stream_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    owner_id: Indexed(str)  # type: ignore[valid-type]

    title: str
    description: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)

    status: StreamState = StreamState.IDLE
    settings: StreamSettings = Field(default_factory=StreamSettings)

    # Secret ingest key and the endpoints derived from it
    stream_key: Indexed(str, unique=True)  # type: ignore[valid-type]
    ingest_url: str
    playback_url: str

    # Mutated by external viewer heartbeats only
    viewer_count: int = 0

    # VOD converted from this stream; claimed once
    vod_id: str | None = None

    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None

    # Version control for optimistic locking
    version: int = Field(default=1)

    @field_validator("created_at", "updated_at", "started_at", "ended_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        """Parse MongoDB Extended JSON datetime format."""
        return parse_mongo_datetime(v)

    async def _raise_version_conflict(self, current_version: int) -> None:
        fresh = await StreamSession.get(self.id)
        error_msg = (
            f"Version conflict on stream {self.stream_id}\n"
            f"Expected version: {current_version}, Current version: "
            f"{fresh.version if fresh else 'N/A'}, "
            f"status={fresh.status if fresh else 'N/A'}"
        )
        logger.warning(error_msg)
        raise AppError(
            errcode=AppErrorCode.E_VERSION_CONFLICT,
            errmesg=error_msg,
            status_code=HttpStatusCode.CONFLICT,
        )

    async def partial_update_with_version_check(
        self,
        updates: Mapping[ExpressionField, Any],
        max_retry_on_conflicts: int = 0,
    ) -> bool:
        """Atomically update select stream fields with optimistic locking.

        Args:
            updates: Mapping of StreamSession field expressions to values.
                Example: {StreamSession.title: "New title"}
            max_retry_on_conflicts: Maximum number of retries on version conflict (0-10).
                On conflict, refreshes the version from DB and retries.

        Returns:
            True if update succeeded.

        Raises:
            AppError: If version conflict occurred after all retries (E_VERSION_CONFLICT),
                or if updates include version/status or the retry count is invalid (E_INVALID_REQUEST).
        """
        if StreamSession.version in updates:
            raise AppError(
                AppErrorCode.E_INVALID_REQUEST,
                "updates must not include StreamSession.version",
                HttpStatusCode.BAD_REQUEST,
            )

        if StreamSession.status in updates:
            raise AppError(
                AppErrorCode.E_INVALID_REQUEST,
                "status changes must go through transition_status",
                HttpStatusCode.BAD_REQUEST,
            )

        if max_retry_on_conflicts < 0 or max_retry_on_conflicts > 10:
            raise AppError(
                AppErrorCode.E_INVALID_REQUEST,
                "max_retry_on_conflicts must be between 0 and 10",
                HttpStatusCode.BAD_REQUEST,
            )

        attempts = 0
        max_attempts = max_retry_on_conflicts + 1

        while attempts < max_attempts:
            attempts += 1

            current_version = self.version
            new_version = current_version + 1
            update_fields = dict(updates)
            update_fields[StreamSession.version] = new_version  # type: ignore[index]

            result = await StreamSession.find(
                StreamSession.id == self.id,
                StreamSession.version == current_version,
            ).update(Set(update_fields))  # type: ignore[arg-type]

            if result and result.modified_count > 0:
                self.version = new_version
                logger.debug(
                    f"Stream {self.stream_id} partially updated "
                    f"(version {current_version} -> {new_version})"
                )
                return True

            if attempts < max_attempts:
                fresh = await StreamSession.get(self.id)
                if fresh is None:
                    break
                self.version = fresh.version
                logger.debug(
                    f"Stream {self.stream_id} version conflict, retrying "
                    f"(attempt {attempts}/{max_attempts}, refreshed version: {self.version})"
                )
                continue

        await self._raise_version_conflict(self.version)
        return False

    async def transition_status(
        self,
        expected: StreamState,
        new: StreamState,
        updates: Mapping[ExpressionField, Any] | None = None,
    ) -> bool:
        """Compare-and-set the status from ``expected`` to ``new``.

        The write only applies while the stored document still has ``expected``
        status and the version this instance was read at. Other field updates are
        applied in the same write.

        Returns:
            True if this call won the transition, False otherwise. The instance is
            refreshed from the write on success and left untouched on failure.
        """
        current_version = self.version
        update_fields: dict[Any, Any] = dict(updates or {})
        update_fields[StreamSession.status] = new
        update_fields[StreamSession.version] = current_version + 1

        result = await StreamSession.find(
            StreamSession.id == self.id,
            StreamSession.status == expected,
            StreamSession.version == current_version,
        ).update(Set(update_fields))  # type: ignore[arg-type]

        if not result or result.modified_count == 0:
            logger.info(f"Stream {self.stream_id} lost transition {expected} -> {new}")
            return False

        self.status = new
        self.version = current_version + 1
        for field, value in (updates or {}).items():
            setattr(self, str(field), value)
        return True

    async def claim_vod(self, vod_id: str) -> bool:
        """Set vod_id once. Returns False if another VOD already claimed this stream."""
        result = await StreamSession.find(
            StreamSession.id == self.id,
            StreamSession.vod_id == None,  # noqa: E711
        ).update(Set({StreamSession.vod_id: vod_id}))  # type: ignore[arg-type]

        if result and result.modified_count > 0:
            self.vod_id = vod_id
            return True
        return False

    async def release_vod_claim(self, vod_id: str) -> None:
        await StreamSession.find(
            StreamSession.id == self.id,
            StreamSession.vod_id == vod_id,
        ).update(Set({StreamSession.vod_id: None}))  # type: ignore[arg-type]
        self.vod_id = None

    class Settings:
        name = "stream_session"
        indexes = [
            IndexModel([("owner_id", 1), ("status", 1)], name="owner_id_status"),
            IndexModel([("status", 1), ("started_at", -1), ("_id", -1)], name="status_started_at_id"),
        ]
