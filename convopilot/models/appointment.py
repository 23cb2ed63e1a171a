from sqlalchemy import Column, Integer, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP

from convopilot.database import Base


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Text, primary_key=True)
    user_key = Column(Text, nullable=False, index=True)  # phone number without suffix
    date = Column(Text, nullable=False, index=True)  # YYYY-MM-DD
    time = Column(Text, nullable=False)  # HH:MM
    duration_minutes = Column(Integer, nullable=False, default=30)
    buffer_minutes = Column(Integer)
    category_id = Column(Text)
    treatment_id = Column(Text)
    title = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
