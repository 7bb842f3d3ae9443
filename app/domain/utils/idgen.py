import secrets

from ulid import ULID


def new_ulid(prefix: str | None = None) -> str:
    value = str(ULID()).lower()
    return f"{prefix}{value}" if prefix else value


def new_stream_id() -> str:
    return new_ulid("st_")


def new_vod_id() -> str:
    return new_ulid("vd_")


def new_job_id() -> str:
    return new_ulid("jb_")


def new_grant_id() -> str:
    return new_ulid("gr_")


def new_appeal_id() -> str:
    return new_ulid("ap_")


def new_stream_key() -> str:
    # 16 random bytes as 32 lowercase hex chars
    return secrets.token_hex(16)


def new_refresh_token() -> str:
    return secrets.token_urlsafe(32)
