from sqlalchemy import Column, Integer, Text

from convopilot.database import Base


class BusinessHoursRange(Base):
    __tablename__ = "business_hours"

    id = Column(Integer, primary_key=True, autoincrement=True)
    day_of_week = Column(Text, nullable=False)  # monday ... sunday
    start = Column(Text, nullable=False)  # HH:MM
    end = Column(Text, nullable=False)  # HH:MM
