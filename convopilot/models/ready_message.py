from sqlalchemy import Column, Integer, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP

from convopilot.database import Base


class ReadyMessage(Base):
    __tablename__ = "ready_messages"

    id = Column(Text, primary_key=True)
    index = Column(Integer, nullable=False, unique=True)
    type = Column(Text, nullable=False, default="text")  # text, image, video, text_image, text_video
    text = Column(Text, default="")
    media_path = Column(Text)
    mime_type = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True))
