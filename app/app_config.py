from pydantic import BaseModel

from app.shared.config import config


class AppEnvironConfig(BaseModel):
    # Public demo switch: when enabled, external integrations use stubs and avoid network calls.
    DEMO_MODE: bool = config.get_bool("DEMO_MODE", True)

    API_BASE_URL: str = (config.get("API_BASE_URL") or "http://localhost:8000").strip()

    # Shared key for internal callers such as the RTMP ingest server
    INTERNAL_API_KEY: str | None = (config.get("INTERNAL_API_KEY") or "").strip() or None

    # Identity provider
    IDENTITY_JWT_SECRET: str = (config.get("IDENTITY_JWT_SECRET") or "change-me-identity").strip()
    IDENTITY_JWT_ALGORITHM: str = (config.get("IDENTITY_JWT_ALGORITHM") or "HS256").strip()

    # Stream endpoints
    RTMP_INGEST_BASE_URL: str = (
        config.get("RTMP_INGEST_BASE_URL") or "rtmp://localhost:1935/live"
    ).strip()
    HLS_PLAYBACK_BASE_URL: str = (
        config.get("HLS_PLAYBACK_BASE_URL") or "http://localhost:8080/hls"
    ).strip()
    VOD_PLAYBACK_BASE_URL: str = (
        config.get("VOD_PLAYBACK_BASE_URL") or "http://localhost:8080/vod"
    ).strip()
    STREAM_DEFAULT_MAX_DURATION_MINUTES: int = config.get_int("STREAM_DEFAULT_MAX_DURATION_MINUTES", 480)

    # Access grants
    PLAYBACK_TOKEN_SECRET: str = (config.get("PLAYBACK_TOKEN_SECRET") or "change-me-playback").strip()
    ACCESS_GRANT_TTL_SECONDS: int = config.get_int("ACCESS_GRANT_TTL_SECONDS", 900)
    ACCESS_GRANT_REFRESH_GRACE_SECONDS: int = config.get_int("ACCESS_GRANT_REFRESH_GRACE_SECONDS", 300)
    ACCESS_GRANT_MAX_REFRESH: int = config.get_int("ACCESS_GRANT_MAX_REFRESH", 100)

    # Appeals
    APPEAL_MIN_REASON_LENGTH: int = config.get_int("APPEAL_MIN_REASON_LENGTH", 10)
    APPEAL_AUTO_RESOLVE_THRESHOLD: float = config.get_float("APPEAL_AUTO_RESOLVE_THRESHOLD", 0.8)
    APPEAL_HUMAN_REVIEW_ETA_HOURS: int = config.get_int("APPEAL_HUMAN_REVIEW_ETA_HOURS", 24)

    # Media processing capability
    MEDIA_API_BASE_URL: str | None = (config.get("MEDIA_API_BASE_URL") or "").strip() or None
    MEDIA_API_KEY: str | None = (config.get("MEDIA_API_KEY") or "").strip() or None
    MEDIA_POLL_INTERVAL_SECONDS: float = config.get_float("MEDIA_POLL_INTERVAL_SECONDS", 2.0)
    MEDIA_STAGE_TIMEOUT_SECONDS: float = config.get_float("MEDIA_STAGE_TIMEOUT_SECONDS", 1800.0)

    # AI moderation capability
    MODERATION_API_BASE_URL: str | None = (config.get("MODERATION_API_BASE_URL") or "").strip() or None
    MODERATION_API_KEY: str | None = (config.get("MODERATION_API_KEY") or "").strip() or None

    # Billing / subscription source
    BILLING_API_BASE_URL: str | None = (config.get("BILLING_API_BASE_URL") or "").strip() or None
    BILLING_API_KEY: str | None = (config.get("BILLING_API_KEY") or "").strip() or None

    # AWS S3 configuration
    AWS_ACCESS_KEY_ID: str | None = (config.get("AWS_ACCESS_KEY_ID") or "").strip() or None
    AWS_SECRET_ACCESS_KEY: str | None = (config.get("AWS_SECRET_ACCESS_KEY") or "").strip() or None
    AWS_REGION: str = (config.get("AWS_REGION") or "us-east-1").strip()
    S3_MEDIA_BUCKET: str | None = (config.get("S3_MEDIA_BUCKET") or "").strip() or None
    S3_RECORDING_PREFIX: str = (config.get("S3_RECORDING_PREFIX") or "recordings").strip()


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
