from sqlalchemy import Column, Integer, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP

from convopilot.database import Base


class AutomationSettings(Base):
    __tablename__ = "automation_settings"

    id = Column(Integer, primary_key=True, default=1)
    mode = Column(Text, nullable=False, default="manual")  # manual, auto
    activation_words = Column(Text, default="")  # comma-separated
    user_exit_words = Column(Text, default="")
    operator_exit_words = Column(Text, default="")
    instructions = Column(Text, default="")
    updated_at = Column(TIMESTAMP(timezone=True))
