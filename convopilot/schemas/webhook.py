from datetime import datetime, timezone
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field

from convopilot.services.bridge import InboundEvent


class InboundWebhook(BaseModel):
    sender: str = Field(validation_alias=AliasChoices("from", "sender", "remoteJid"))
    text: Optional[str] = Field(default=None, validation_alias=AliasChoices("text", "body", "message"))
    from_me: bool = Field(default=False, validation_alias=AliasChoices("fromMe", "from_me"))
    timestamp: Optional[int] = None  # epoch seconds (milliseconds accepted)
    message_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("messageId", "message_id", "id"))
    push_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("pushName", "push_name", "notifyName"))

    def event_time(self) -> Optional[datetime]:
        if not self.timestamp:
            return None
        seconds = self.timestamp / 1000 if self.timestamp > 10**12 else self.timestamp
        return datetime.fromtimestamp(seconds, tz=timezone.utc)

    def to_event(self) -> InboundEvent:
        return InboundEvent(
            user_id=self.sender,
            text=self.text or "",
            from_me=self.from_me,
            timestamp=self.event_time(),
            message_id=self.message_id,
            user_name=self.push_name,
        )


class WebhookResponse(BaseModel):
    success: bool
    message: str
