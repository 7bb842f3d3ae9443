"""Live transitions of a stream."""

from datetime import timedelta

from loguru import logger

from app.domain.utils.idgen import new_stream_key
from app.domain.utils.timeutils import ensure_utc, utc_now
from app.schemas import CreatorLiveSlot, StreamSession, StreamState
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from ._base import BaseService, is_valid_stream_key
from .stream_models import StreamResponse
from .stream_state_machine import StreamStateMachine

# A slot claimed by a stream that never left IDLE is abandoned after this long
STALE_SLOT_CLAIM = timedelta(seconds=60)


class LifecycleOperations(BaseService):
    """Start and end a broadcast."""

    async def start_stream(self, stream_id: str, requester_id: str) -> StreamResponse:
        """Move an idle stream to LIVE.

        At most one stream per owner is LIVE at any time. The owner's live slot is
        claimed before the status flips, and released again if the flip is lost.

        Raises:
            AppError: E_STREAM_NOT_FOUND, E_UNAUTHORIZED, E_STREAM_ALREADY_LIVE,
                E_STREAM_ENDED, E_OWNER_ALREADY_LIVE or E_RECORDING_UNAVAILABLE.
        """
        stream = await self._require_stream(stream_id)
        self._require_owner(stream, requester_id)

        if stream.status == StreamState.LIVE:
            raise AppError(
                errcode=AppErrorCode.E_STREAM_ALREADY_LIVE,
                errmesg=f"Stream {stream_id} is already live",
                status_code=HttpStatusCode.CONFLICT,
            )
        if not StreamStateMachine.can_transition(stream.status, StreamState.LIVE):
            raise AppError(
                errcode=AppErrorCode.E_STREAM_ENDED,
                errmesg=f"Stream {stream_id} has ended and cannot go live again",
                status_code=HttpStatusCode.CONFLICT,
            )

        await self._ensure_slot_available(stream)

        if stream.settings.enable_recording and not await self.media.recording_ready():
            raise AppError(
                errcode=AppErrorCode.E_RECORDING_UNAVAILABLE,
                errmesg="Recording infrastructure is not ready",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )

        stream_key = stream.stream_key
        if not is_valid_stream_key(stream_key):
            stream_key = new_stream_key()
            logger.info(f"Stream {stream_id} had an invalid key; allocated a new one")

        if not await CreatorLiveSlot.claim(stream.owner_id, stream.stream_id):
            raise AppError(
                errcode=AppErrorCode.E_OWNER_ALREADY_LIVE,
                errmesg=f"Owner {stream.owner_id} already has a live stream",
                status_code=HttpStatusCode.CONFLICT,
            )

        now = utc_now()
        won = await stream.transition_status(
            StreamState.IDLE,
            StreamState.LIVE,
            {
                StreamSession.started_at: now,
                StreamSession.updated_at: now,
                StreamSession.stream_key: stream_key,
                StreamSession.ingest_url: self.build_ingest_url(stream_key),
                StreamSession.playback_url: self.build_playback_url(stream_key),
            },
        )
        if not won:
            # The slot is shared with a concurrent start of this same stream that may have won
            fresh = await self._get_stream_by_id(stream_id)
            if fresh is None or fresh.status != StreamState.LIVE:
                await CreatorLiveSlot.release(stream.owner_id, stream.stream_id)
            raise AppError(
                errcode=AppErrorCode.E_STREAM_ALREADY_LIVE,
                errmesg=f"Stream {stream_id} changed state concurrently",
                status_code=HttpStatusCode.CONFLICT,
            )

        logger.info(f"Stream {stream_id} is LIVE (owner={stream.owner_id})")
        return StreamResponse.from_document(stream, include_secrets=True)

    async def end_stream(self, stream_id: str, requester_id: str) -> StreamResponse:
        """Move a LIVE stream to ENDED and release the owner's live slot.

        Raises:
            AppError: E_STREAM_NOT_FOUND, E_STREAM_NOT_ACTIVE or E_UNAUTHORIZED.
        """
        stream = await self._require_stream(stream_id)

        if stream.status != StreamState.LIVE:
            raise AppError(
                errcode=AppErrorCode.E_STREAM_NOT_ACTIVE,
                errmesg=f"Stream {stream_id} is not live (status={stream.status})",
                status_code=HttpStatusCode.CONFLICT,
            )
        self._require_owner(stream, requester_id)

        now = utc_now()
        won = await stream.transition_status(
            StreamState.LIVE,
            StreamState.ENDED,
            {StreamSession.ended_at: now, StreamSession.updated_at: now},
        )
        if not won:
            raise AppError(
                errcode=AppErrorCode.E_STREAM_NOT_ACTIVE,
                errmesg=f"Stream {stream_id} is no longer live",
                status_code=HttpStatusCode.CONFLICT,
            )

        if not await CreatorLiveSlot.release(stream.owner_id, stream.stream_id):
            logger.warning(f"Live slot of {stream.owner_id} was not held by ended stream {stream_id}")

        logger.info(f"Stream {stream_id} ENDED (owner={stream.owner_id})")
        return StreamResponse.from_document(stream, include_secrets=True)

    async def _ensure_slot_available(self, stream: StreamSession) -> None:
        """Fail fast if another stream of the owner holds the live slot.

        A slot is reclaimed when its holder already ended, or never left IDLE and
        has held the slot longer than STALE_SLOT_CLAIM.
        """
        slot = await CreatorLiveSlot.find_one(CreatorLiveSlot.owner_id == stream.owner_id)
        if slot is None or slot.stream_id is None or slot.stream_id == stream.stream_id:
            return

        holder = await self._get_stream_by_id(slot.stream_id)
        stale = holder is None or StreamStateMachine.is_terminal(holder.status)
        if not stale and holder is not None and holder.status == StreamState.IDLE and slot.claimed_at:
            stale = utc_now() - ensure_utc(slot.claimed_at) > STALE_SLOT_CLAIM

        if stale:
            released = await CreatorLiveSlot.release(stream.owner_id, slot.stream_id)
            logger.info(f"Reclaimed stale live slot of {stream.owner_id} from {slot.stream_id}: {released}")
            return

        raise AppError(
            errcode=AppErrorCode.E_OWNER_ALREADY_LIVE,
            errmesg=f"Owner {stream.owner_id} is already live on {slot.stream_id}",
            status_code=HttpStatusCode.CONFLICT,
        )
