"""Playback token minting and verification."""

from datetime import datetime

import jwt
from pydantic import BaseModel

from app.domain.utils.timeutils import ensure_utc
from app.schemas import SubscriptionTier
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

PLAYBACK_TOKEN_ALGORITHM = "HS256"


class PlaybackClaims(BaseModel):
    sub: str
    vid: str
    sid: str
    tier: SubscriptionTier
    iat: int
    exp: int


def mint_playback_token(
    secret: str,
    viewer_id: str,
    video_id: str,
    grant_id: str,
    tier: SubscriptionTier,
    issued_at: datetime,
    expires_at: datetime,
) -> str:
    claims = PlaybackClaims(
        sub=viewer_id,
        vid=video_id,
        sid=grant_id,
        tier=tier,
        iat=int(issued_at.timestamp()),
        exp=int(expires_at.timestamp()),
    )
    return jwt.encode(claims.model_dump(mode="json"), secret, algorithm=PLAYBACK_TOKEN_ALGORITHM)


def decode_playback_token(secret: str, token: str, now: datetime) -> PlaybackClaims:
    """Verify the signature and expiry of a playback token against ``now``.

    The token is valid only while now < exp.

    Raises:
        AppError: E_GRANT_INVALID for a bad signature or malformed token,
            E_GRANT_EXPIRED at or after expiry.
    """
    try:
        # Expiry is checked below against the caller's clock
        payload = jwt.decode(
            token,
            secret,
            algorithms=[PLAYBACK_TOKEN_ALGORITHM],
            options={"verify_exp": False, "verify_iat": False, "require": ["sub", "vid", "sid", "exp"]},
        )
        claims = PlaybackClaims.model_validate(payload)
    except (jwt.PyJWTError, ValueError) as e:
        raise AppError(
            errcode=AppErrorCode.E_GRANT_INVALID,
            errmesg="Invalid playback token",
            status_code=HttpStatusCode.UNAUTHORIZED,
        ) from e

    if ensure_utc(now).timestamp() >= claims.exp:  # type: ignore[union-attr]
        raise AppError(
            errcode=AppErrorCode.E_GRANT_EXPIRED,
            errmesg="Playback token expired",
            status_code=HttpStatusCode.UNAUTHORIZED,
        )
    return claims
