"""Access grant service - time-limited, tier-checked playback URLs."""

import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

from beanie.odm.operators.update.general import Set
from beanie.operators import LT, In
from loguru import logger

from app.app_config import AppEnvironConfig, get_app_environ_config
from app.domain.utils.idgen import new_grant_id, new_refresh_token
from app.domain.utils.timeutils import ensure_utc, utc_now
from app.schemas import (
    AccessGrant,
    StreamSession,
    StreamState,
    SubscriptionTier,
    VideoKind,
    Vod,
    VodState,
    VodVisibility,
)
from app.services.integrations.billing_service import BillingService, billing_service
from app.utils.app_errors import AppError, AppErrorCode, ErrorKind, HttpStatusCode, VideoAccessError

from ._tokens import decode_playback_token, mint_playback_token
from .entitlement import can_access, effective_tier, resolve_default_tier
from .grant_models import (
    CleanupResponse,
    ResolvedContent,
    RevokeAccessResponse,
    SignedUrlResponse,
    VerifiedGrant,
)


def hash_refresh_token(refresh_token: str) -> str:
    return hashlib.sha256(refresh_token.encode("utf-8")).hexdigest()


def _whole_seconds(dt: datetime) -> datetime:
    # Token iat/exp are whole seconds; keep stored times identical to them
    return ensure_utc(dt).replace(microsecond=0)  # type: ignore[union-attr]


class AccessService:
    def __init__(
        self,
        settings: AppEnvironConfig | None = None,
        billing: BillingService | None = None,
    ):
        self.settings = settings or get_app_environ_config()
        self.billing = billing or billing_service

    async def generate_signed_url(
        self,
        video_id: str,
        user_id: str,
        required_tier_hint: SubscriptionTier | None = None,
        now: datetime | None = None,
    ) -> SignedUrlResponse:
        """Issue a playback grant for a viewer.

        The required tier comes from the content itself; the caller's hint is only
        compared and logged.

        Raises:
            AppError: E_VIDEO_NOT_FOUND, or E_BILLING_UNAVAILABLE if the
                subscription could not be looked up.
            VideoAccessError: private content, or an insufficient or lapsed subscription.
        """
        content = await self._resolve_content(video_id)
        if required_tier_hint is not None and required_tier_hint != content.required_tier:
            logger.warning(
                f"Tier hint {required_tier_hint} for {video_id} ignored; content requires {content.required_tier}"
            )

        tier = await self._check_entitlement(content, user_id)
        grant, refresh_token = await self._issue(content, user_id, tier, now=now)

        logger.info(f"Grant {grant.grant_id} issued: viewer={user_id} video={video_id} tier={tier}")
        return SignedUrlResponse(
            signed_url=grant.signed_url,
            expires_at=grant.expires_at,
            session_id=grant.grant_id,
            refresh_token=refresh_token,
        )

    async def refresh_signed_url(
        self,
        session_id: str,
        user_id: str,
        refresh_token: str,
        video_id: str | None = None,
        now: datetime | None = None,
    ) -> SignedUrlResponse:
        """Replace a grant with a fresh one. A grant can be replaced at most once.

        Raises:
            AppError: E_SESSION_INVALID, E_UNAUTHORIZED, E_REFRESH_WINDOW_CLOSED,
                E_REFRESH_LIMIT_EXCEEDED or E_GRANT_ALREADY_REFRESHED.
            VideoAccessError: bad refresh token, revoked access, or entitlement no
                longer sufficient.
        """
        now = ensure_utc(now) if now else utc_now()

        grant = await AccessGrant.find_one(AccessGrant.grant_id == session_id)
        if grant is None or (video_id is not None and grant.video_id != video_id):
            raise AppError(
                errcode=AppErrorCode.E_SESSION_INVALID,
                errmesg=f"Playback session not found: {session_id}",
                status_code=HttpStatusCode.NOT_FOUND,
            )
        if grant.viewer_id != user_id:
            raise AppError(
                errcode=AppErrorCode.E_UNAUTHORIZED,
                errmesg=f"Playback session {session_id} belongs to another viewer",
                status_code=HttpStatusCode.FORBIDDEN,
                kind=ErrorKind.UNAUTHORIZED,
            )
        if not hmac.compare_digest(grant.refresh_token_hash, hash_refresh_token(refresh_token)):
            raise VideoAccessError(
                AppErrorCode.E_INVALID_REFRESH_TOKEN,
                "Invalid refresh token",
                status_code=HttpStatusCode.UNAUTHORIZED,
            )
        if grant.revoked_at is not None:
            raise VideoAccessError(AppErrorCode.E_ACCESS_REVOKED, "Playback access was revoked")

        grace = timedelta(seconds=self.settings.ACCESS_GRANT_REFRESH_GRACE_SECONDS)
        if now >= ensure_utc(grant.expires_at) + grace:  # type: ignore[operator]
            raise VideoAccessError(
                AppErrorCode.E_REFRESH_WINDOW_CLOSED,
                "Refresh window has closed; request a new playback URL",
                status_code=HttpStatusCode.UNAUTHORIZED,
            )
        if grant.refresh_count >= self.settings.ACCESS_GRANT_MAX_REFRESH:
            raise AppError(
                errcode=AppErrorCode.E_REFRESH_LIMIT_EXCEEDED,
                errmesg=f"Refresh limit of {self.settings.ACCESS_GRANT_MAX_REFRESH} reached",
                status_code=HttpStatusCode.TOO_MANY_REQUESTS,
            )
        if grant.replaced_by:
            raise AppError(
                errcode=AppErrorCode.E_GRANT_ALREADY_REFRESHED,
                errmesg=f"Playback session {session_id} was already refreshed",
                status_code=HttpStatusCode.CONFLICT,
            )

        content = await self._resolve_content(grant.video_id)
        tier = await self._check_entitlement(content, user_id)

        new_id = new_grant_id()
        if not await grant.mark_replaced(new_id):
            fresh = await AccessGrant.get(grant.id)  # type: ignore[arg-type]
            if fresh is not None and fresh.revoked_at is not None:
                raise VideoAccessError(AppErrorCode.E_ACCESS_REVOKED, "Playback access was revoked")
            raise AppError(
                errcode=AppErrorCode.E_GRANT_ALREADY_REFRESHED,
                errmesg=f"Playback session {session_id} was already refreshed",
                status_code=HttpStatusCode.CONFLICT,
            )

        try:
            new_grant, new_refresh = await self._issue(
                content,
                user_id,
                tier,
                now=now,
                grant_id=new_id,
                replaces=grant.grant_id,
                refresh_count=grant.refresh_count + 1,
            )
        except Exception:
            await grant.unmark_replaced(new_id)
            raise

        logger.info(f"Grant {grant.grant_id} refreshed as {new_id} (count={new_grant.refresh_count})")
        return SignedUrlResponse(
            signed_url=new_grant.signed_url,
            expires_at=new_grant.expires_at,
            session_id=new_grant.grant_id,
            refresh_token=new_refresh,
        )

    def verify_signed_url(
        self,
        token: str,
        video_id: str,
        viewer_id: str,
        now: datetime | None = None,
    ) -> VerifiedGrant:
        """Check a playback token for one viewer and video at ``now``.

        Raises:
            AppError: E_GRANT_INVALID, E_GRANT_EXPIRED or E_GRANT_MISMATCH.
        """
        claims = decode_playback_token(self.settings.PLAYBACK_TOKEN_SECRET, token, now or utc_now())
        if claims.vid != video_id or claims.sub != viewer_id:
            raise AppError(
                errcode=AppErrorCode.E_GRANT_MISMATCH,
                errmesg="Playback token was issued for another viewer or video",
                status_code=HttpStatusCode.FORBIDDEN,
            )
        return VerifiedGrant(
            session_id=claims.sid,
            video_id=claims.vid,
            viewer_id=claims.sub,
            tier=claims.tier,
            expires_at=datetime.fromtimestamp(claims.exp, tz=timezone.utc),
        )

    async def cleanup_expired_grants(self, now: datetime | None = None) -> CleanupResponse:
        """Delete grants whose refresh window is over."""
        now = ensure_utc(now) if now else utc_now()
        result = await AccessGrant.find(LT(AccessGrant.purge_at, now)).delete()
        deleted = result.deleted_count if result else 0
        logger.info(f"Removed {deleted} expired access grants")
        return CleanupResponse(deleted=deleted)

    async def revoke_access(
        self,
        target_user_id: str,
        requester_id: str,
        video_id: str | None = None,
        is_admin: bool = False,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> RevokeAccessResponse:
        """Revoke a viewer's playback sessions on one video, or on every video.

        Admins revoke on any content. Creators revoke only on content they own, so
        a creator revoking without a video covers their own videos. Tokens already
        handed out stay valid until they expire; refreshing them is refused.

        Raises:
            AppError: E_VIDEO_NOT_FOUND, or E_UNAUTHORIZED if the requester neither
                owns the video nor is an admin.
        """
        now = ensure_utc(now) if now else utc_now()
        conditions = [
            AccessGrant.viewer_id == target_user_id,
            AccessGrant.revoked_at == None,  # noqa: E711
        ]
        if video_id is not None:
            owner_id = await self._content_owner(video_id)
            if not is_admin and owner_id != requester_id:
                raise AppError(
                    errcode=AppErrorCode.E_UNAUTHORIZED,
                    errmesg=f"User {requester_id} may not revoke access to {video_id}",
                    status_code=HttpStatusCode.FORBIDDEN,
                    kind=ErrorKind.UNAUTHORIZED,
                )
            conditions.append(AccessGrant.video_id == video_id)
        elif not is_admin:
            conditions.append(In(AccessGrant.video_id, await self._owned_video_ids(requester_id)))

        result = await AccessGrant.find(*conditions).update(
            Set({AccessGrant.revoked_at: now})  # type: ignore[arg-type]
        )
        revoked = result.modified_count if result else 0
        logger.info(
            f"Access of {target_user_id} on {video_id or 'all videos'} revoked by {requester_id}: "
            f"{revoked} grants (reason={reason or 'none'})"
        )
        return RevokeAccessResponse(
            target_user_id=target_user_id,
            video_id=video_id,
            revoked=revoked,
            revoked_by=requester_id,
            revoked_at=now,
            reason=reason,
        )

    async def _content_owner(self, video_id: str) -> str:
        vod = await Vod.find_one(Vod.vod_id == video_id)
        if vod is not None:
            return vod.owner_id
        stream = await StreamSession.find_one(StreamSession.stream_id == video_id)
        if stream is not None:
            return stream.owner_id
        raise AppError(
            errcode=AppErrorCode.E_VIDEO_NOT_FOUND,
            errmesg=f"Video not found: {video_id}",
            status_code=HttpStatusCode.NOT_FOUND,
        )

    async def _owned_video_ids(self, owner_id: str) -> list[str]:
        vods = await Vod.find(Vod.owner_id == owner_id).to_list()
        streams = await StreamSession.find(StreamSession.owner_id == owner_id).to_list()
        return [v.vod_id for v in vods] + [s.stream_id for s in streams]

    async def _resolve_content(self, video_id: str) -> ResolvedContent:
        vod = await Vod.find_one(Vod.vod_id == video_id)
        if vod is not None:
            if vod.status not in VodState.playable_states():
                raise AppError(
                    errcode=AppErrorCode.E_VIDEO_NOT_FOUND,
                    errmesg=f"Video {video_id} is not playable (status={vod.status})",
                    status_code=HttpStatusCode.NOT_FOUND,
                )
            base = self.settings.VOD_PLAYBACK_BASE_URL.rstrip("/")
            return ResolvedContent(
                video_id=video_id,
                kind=VideoKind.VOD,
                owner_id=vod.owner_id,
                required_tier=vod.required_tier,
                is_private=vod.visibility == VodVisibility.PRIVATE,
                playback_url=vod.playback_url or f"{base}/{vod.vod_id}/index.m3u8",
            )

        stream = await StreamSession.find_one(StreamSession.stream_id == video_id)
        if stream is not None and stream.status == StreamState.LIVE:
            return ResolvedContent(
                video_id=video_id,
                kind=VideoKind.LIVE,
                owner_id=stream.owner_id,
                required_tier=resolve_default_tier(stream.settings),
                is_private=stream.settings.is_private,
                playback_url=stream.playback_url,
            )

        raise AppError(
            errcode=AppErrorCode.E_VIDEO_NOT_FOUND,
            errmesg=f"Video not found: {video_id}",
            status_code=HttpStatusCode.NOT_FOUND,
        )

    async def _check_entitlement(self, content: ResolvedContent, viewer_id: str) -> SubscriptionTier:
        """Return the viewer's effective tier, or raise if it does not cover the content."""
        if viewer_id == content.owner_id:
            return content.required_tier

        if content.is_private:
            raise VideoAccessError(AppErrorCode.E_PRIVATE_CONTENT, "This video is private")

        subscription = await self.billing.get_viewer_subscription(viewer_id)
        tier = effective_tier(subscription)
        if can_access(tier, content.required_tier):
            return tier

        if subscription.tier is not None and can_access(subscription.tier, content.required_tier):
            raise VideoAccessError(
                AppErrorCode.E_SUBSCRIPTION_INACTIVE,
                f"Subscription is {subscription.status}; {content.required_tier} access requires an active plan",
            )
        raise VideoAccessError(
            AppErrorCode.E_INSUFFICIENT_SUBSCRIPTION_TIER,
            f"{content.required_tier} subscription required (current: {tier})",
        )

    async def _issue(
        self,
        content: ResolvedContent,
        viewer_id: str,
        tier: SubscriptionTier,
        now: datetime | None = None,
        grant_id: str | None = None,
        replaces: str | None = None,
        refresh_count: int = 0,
    ) -> tuple[AccessGrant, str]:
        issued_at = _whole_seconds(now or utc_now())
        expires_at = issued_at + timedelta(seconds=self.settings.ACCESS_GRANT_TTL_SECONDS)
        grant_id = grant_id or new_grant_id()

        token = mint_playback_token(
            self.settings.PLAYBACK_TOKEN_SECRET,
            viewer_id=viewer_id,
            video_id=content.video_id,
            grant_id=grant_id,
            tier=tier,
            issued_at=issued_at,
            expires_at=expires_at,
        )
        refresh_token = new_refresh_token()

        grant = AccessGrant(
            grant_id=grant_id,
            video_id=content.video_id,
            video_kind=content.kind,
            viewer_id=viewer_id,
            signed_url=f"{content.playback_url}?{urlencode({'token': token})}",
            refresh_token_hash=hash_refresh_token(refresh_token),
            tier_at_issuance=tier,
            required_tier=content.required_tier,
            refresh_count=refresh_count,
            replaces=replaces,
            issued_at=issued_at,
            expires_at=expires_at,
            purge_at=expires_at + timedelta(seconds=self.settings.ACCESS_GRANT_REFRESH_GRACE_SECONDS),
        )
        await grant.insert()
        return grant, refresh_token
