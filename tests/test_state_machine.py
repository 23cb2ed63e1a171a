import pytest
from convopilot.services.state_machine import (
    ConversationState,
    InvalidTransitionError,
    activate,
    can_transition,
    clear_finished,
    finish,
    stop,
    transition,
)


class TestValidTransitions:
    def test_inactive_to_active(self):
        result = transition(ConversationState.INACTIVE, ConversationState.ACTIVE)
        assert result == ConversationState.ACTIVE

    def test_active_to_finished(self):
        result = transition(ConversationState.ACTIVE, ConversationState.FINISHED)
        assert result == ConversationState.FINISHED

    def test_active_to_inactive(self):
        result = transition(ConversationState.ACTIVE, ConversationState.INACTIVE)
        assert result == ConversationState.INACTIVE

    def test_finished_to_active(self):
        result = transition(ConversationState.FINISHED, ConversationState.ACTIVE)
        assert result == ConversationState.ACTIVE


class TestInvalidTransitions:
    def test_inactive_to_finished(self):
        with pytest.raises(InvalidTransitionError):
            transition(ConversationState.INACTIVE, ConversationState.FINISHED)

    def test_same_state(self):
        with pytest.raises(InvalidTransitionError):
            transition(ConversationState.ACTIVE, ConversationState.ACTIVE)

    def test_error_names_states(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(ConversationState.INACTIVE, ConversationState.FINISHED)
        assert exc_info.value.from_state == ConversationState.INACTIVE
        assert "inactive -> finished" in str(exc_info.value)


class TestHelperFunctions:
    def test_activate(self):
        assert activate(ConversationState.INACTIVE) == ConversationState.ACTIVE

    def test_activate_when_active_fails(self):
        with pytest.raises(InvalidTransitionError):
            activate(ConversationState.ACTIVE)

    def test_stop(self):
        assert stop(ConversationState.ACTIVE) == ConversationState.INACTIVE

    def test_finish(self):
        assert finish(ConversationState.ACTIVE) == ConversationState.FINISHED

    def test_finish_from_inactive_fails(self):
        with pytest.raises(InvalidTransitionError):
            finish(ConversationState.INACTIVE)

    def test_clear_finished(self):
        assert clear_finished(ConversationState.FINISHED) == ConversationState.INACTIVE


class TestCanTransition:
    def test_valid(self):
        assert can_transition(ConversationState.ACTIVE, ConversationState.FINISHED) is True

    def test_invalid(self):
        assert can_transition(ConversationState.INACTIVE, ConversationState.FINISHED) is False
