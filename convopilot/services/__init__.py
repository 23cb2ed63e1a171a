from convopilot.services.identity import normalize_user_id, phone_key
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
