from convopilot.schemas.automation import AutomationOut, AutomationUpdate
from convopilot.schemas.conversation import (
    ActivateRequest,
    ActivateResponse,
    ConversationOut,
    DeactivateRequest,
    StateChangeResponse,
)
from convopilot.schemas.webhook import InboundWebhook, WebhookResponse

__all__ = [
    "ActivateRequest",
    "ActivateResponse",
    "AutomationOut",
    "AutomationUpdate",
    "ConversationOut",
    "DeactivateRequest",
    "InboundWebhook",
    "StateChangeResponse",
    "WebhookResponse",
]
