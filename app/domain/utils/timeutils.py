import time
from datetime import datetime, timezone

utc_now = lambda: datetime.now(timezone.utc)  # noqa: E731
utc_now_ms = lambda: int(time.time() * 1000)  # noqa: E731
ms_to_dt = lambda ms: datetime.fromtimestamp(int(ms) / 1000, timezone.utc)  # noqa: E731
dt_to_ms = lambda dt: int(dt.timestamp() * 1000)  # noqa: E731


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from MongoDB."""
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=timezone.utc)
