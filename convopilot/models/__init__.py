from convopilot.models.appointment import Appointment
from convopilot.models.automation_settings import AutomationSettings
from convopilot.models.business_hours import BusinessHoursRange
from convopilot.models.conversation import ConversationRecord
from convopilot.models.message import ChatMessage
from convopilot.models.ready_message import ReadyMessage
from convopilot.models.service_category import ServiceCategory

__all__ = [
    "Appointment",
    "AutomationSettings",
    "BusinessHoursRange",
    "ChatMessage",
    "ConversationRecord",
    "ReadyMessage",
    "ServiceCategory",
]
