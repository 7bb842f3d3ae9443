"""Stream lifecycle enums."""

from enum import Enum


class StreamState(str, Enum):
    """Stream session lifecycle states.

    State Transition Flow:

    IDLE → LIVE → ENDED

    State Descriptions:
    - IDLE: Session created with a stream key, not broadcasting. Set by create_stream().
    - LIVE: Owner started broadcasting. Set by start_stream().
    - ENDED: Broadcast finished. Set by end_stream(). Terminal; broadcasting again needs a new stream.
    """

    IDLE = "idle"
    LIVE = "live"
    ENDED = "ended"

    def __str__(self) -> str:
        return self.value


class StreamQuality(str, Enum):
    Q480P = "480p"
    Q720P = "720p"
    Q1080P = "1080p"
    Q4K = "4k"

    def __str__(self) -> str:
        return self.value


__all__ = ["StreamQuality", "StreamState"]
