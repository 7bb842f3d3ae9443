"""Per-owner live slot ODM schema."""

from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from beanie.odm.operators.update.general import Set
from loguru import logger
from pydantic import field_validator
from pymongo.errors import DuplicateKeyError

from app.domain.utils.timeutils import utc_now

from .schema_utils import parse_mongo_datetime


class CreatorLiveSlot(Document):
    """Holds the stream an owner is currently live on, or None.

    One document per owner. Claims and releases are conditional writes, so at most
    one stream per owner can hold the slot across any number of API instances.
    """

    owner_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    stream_id: str | None = None
    claimed_at: datetime | None = None
    updated_at: datetime

    @field_validator("claimed_at", "updated_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return parse_mongo_datetime(v)

    @classmethod
    async def claim(cls, owner_id: str, stream_id: str) -> bool:
        """Claim the owner's slot for stream_id.

        Returns:
            True if the slot was free (or already held by stream_id), False if another
            stream holds it.
        """
        now = utc_now()
        result = await cls.find(
            cls.owner_id == owner_id,
            cls.stream_id == None,  # noqa: E711
        ).update(Set({cls.stream_id: stream_id, cls.claimed_at: now, cls.updated_at: now}))  # type: ignore[arg-type]
        if result and result.modified_count > 0:
            logger.debug(f"Live slot of {owner_id} claimed by {stream_id}")
            return True

        existing = await cls.find_one(cls.owner_id == owner_id)
        if existing is not None:
            return existing.stream_id == stream_id

        try:
            await cls(owner_id=owner_id, stream_id=stream_id, claimed_at=now, updated_at=now).insert()
        except DuplicateKeyError:
            # Another request created the slot first; its holder decides
            existing = await cls.find_one(cls.owner_id == owner_id)
            return existing is not None and existing.stream_id == stream_id

        logger.debug(f"Live slot of {owner_id} created for {stream_id}")
        return True

    @classmethod
    async def release(cls, owner_id: str, stream_id: str) -> bool:
        """Release the slot if stream_id holds it. Returns True if released."""
        result = await cls.find(
            cls.owner_id == owner_id,
            cls.stream_id == stream_id,
        ).update(Set({cls.stream_id: None, cls.claimed_at: None, cls.updated_at: utc_now()}))  # type: ignore[arg-type]
        released = bool(result and result.modified_count > 0)
        if released:
            logger.debug(f"Live slot of {owner_id} released by {stream_id}")
        return released

    @classmethod
    async def holder(cls, owner_id: str) -> str | None:
        slot = await cls.find_one(cls.owner_id == owner_id)
        return slot.stream_id if slot else None

    class Settings:
        name = "creator_live_slot"
