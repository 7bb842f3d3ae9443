"""Tests for StreamStateMachine state transitions."""

from app.domain.live.stream.stream_state_machine import StreamStateMachine
from app.schemas import StreamState


class TestCanTransition:
    """Tests for StreamStateMachine.can_transition method."""

    def test_idle_to_live_valid(self):
        assert StreamStateMachine.can_transition(StreamState.IDLE, StreamState.LIVE) is True

    def test_live_to_ended_valid(self):
        assert StreamStateMachine.can_transition(StreamState.LIVE, StreamState.ENDED) is True

    def test_idle_to_ended_invalid(self):
        """A stream that never went live cannot end."""
        assert StreamStateMachine.can_transition(StreamState.IDLE, StreamState.ENDED) is False

    def test_live_to_idle_invalid(self):
        assert StreamStateMachine.can_transition(StreamState.LIVE, StreamState.IDLE) is False

    def test_ended_is_terminal(self):
        for target in StreamState:
            assert StreamStateMachine.can_transition(StreamState.ENDED, target) is False


class TestHelpers:
    def test_is_terminal(self):
        assert StreamStateMachine.is_terminal(StreamState.ENDED) is True
        assert StreamStateMachine.is_terminal(StreamState.LIVE) is False
