import uuid

from sqlalchemy import Column, Index, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID

from convopilot.database import Base


class ChatMessage(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (Index("ix_chat_messages_user_created", "user_id", "created_at"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False)
    role = Column(Text, nullable=False)  # user, assistant, operator
    content = Column(Text, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
