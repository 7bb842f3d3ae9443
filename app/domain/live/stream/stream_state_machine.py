"""Stream state machine for managing state transitions."""

from app.schemas import StreamState


class StreamStateMachine:
    """State machine for stream lifecycle transitions.

    State flow with triggers:
    - IDLE (stream created) -> LIVE (owner starts broadcasting)
    - LIVE -> ENDED (owner ends the broadcast)
    - ENDED is terminal; broadcasting again needs a new stream

    A stream can only go LIVE while its owner has no other LIVE stream. That rule
    spans documents and is enforced by the owner's live slot, not by this table.
    """

    TRANSITIONS: dict[StreamState, set[StreamState]] = {
        StreamState.IDLE: {StreamState.LIVE},
        StreamState.LIVE: {StreamState.ENDED},
        StreamState.ENDED: set(),
    }

    TERMINAL_STATES: set[StreamState] = {StreamState.ENDED}

    @classmethod
    def can_transition(cls, current: StreamState, new: StreamState) -> bool:
        """Check if state transition is valid.

        Args:
            current: Current stream state
            new: Target state to transition to

        Returns:
            True if transition is valid, False otherwise
        """
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def is_terminal(cls, state: StreamState) -> bool:
        """Check if a state is terminal (no further transitions allowed)."""
        return state in cls.TERMINAL_STATES

