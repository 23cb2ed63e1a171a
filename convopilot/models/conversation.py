from sqlalchemy import Column, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP

from convopilot.database import Base


class ConversationRecord(Base):
    __tablename__ = "conversations"

    user_id = Column(Text, primary_key=True)  # canonical id, e.g. 972501234567@s.whatsapp.net
    state = Column(Text, nullable=False, default="inactive")  # inactive, active, finished
    user_name = Column(Text)
    user_number = Column(Text)
    started_at = Column(TIMESTAMP(timezone=True))
    finished_at = Column(TIMESTAMP(timezone=True))
    updated_at = Column(TIMESTAMP(timezone=True))
    context = Column(JSONB, nullable=False, default=dict)
