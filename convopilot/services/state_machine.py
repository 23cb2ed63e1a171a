"""
Conversation lifecycle states.

INACTIVE -> ACTIVE            activation (trigger word, API, manual)
ACTIVE   -> INACTIVE          exit word, operator exit, manual takeover
ACTIVE   -> FINISHED          booking confirmed or terminal marker
FINISHED -> ACTIVE | INACTIVE explicit re-activation or clear
"""

from enum import Enum


class ConversationState(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    FINISHED = "finished"


VALID_TRANSITIONS = {
    ConversationState.INACTIVE: frozenset({ConversationState.ACTIVE}),
    ConversationState.ACTIVE: frozenset({ConversationState.INACTIVE, ConversationState.FINISHED}),
    ConversationState.FINISHED: frozenset({ConversationState.ACTIVE, ConversationState.INACTIVE}),
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: ConversationState, to_state: ConversationState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Cannot move conversation: {from_state.value} -> {to_state.value}")


def can_transition(from_state: ConversationState, to_state: ConversationState) -> bool:
    return to_state in VALID_TRANSITIONS.get(from_state, frozenset())


def transition(from_state: ConversationState, to_state: ConversationState) -> ConversationState:
    if can_transition(from_state, to_state):
        return to_state
    raise InvalidTransitionError(from_state, to_state)


def activate(current_state: ConversationState) -> ConversationState:
    """Assistant takes the conversation (first time or again after it ended)."""
    return transition(current_state, ConversationState.ACTIVE)


def stop(current_state: ConversationState) -> ConversationState:
    """Exit word or manual takeover: assistant leaves the conversation."""
    return transition(current_state, ConversationState.INACTIVE)


def finish(current_state: ConversationState) -> ConversationState:
    """Conversation reached a terminal outcome (booking confirmed, hand-off)."""
    return transition(current_state, ConversationState.FINISHED)


def clear_finished(current_state: ConversationState) -> ConversationState:
    """Forget that the user was done so unsolicited activation is allowed again."""
    return transition(current_state, ConversationState.INACTIVE)
