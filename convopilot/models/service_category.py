from sqlalchemy import Column, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB

from convopilot.database import Base


class ServiceCategory(Base):
    __tablename__ = "service_categories"

    id = Column(Text, primary_key=True)
    name = Column(Text, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=30)
    buffer_minutes = Column(Integer, nullable=False, default=0)
    max_per_hour = Column(Integer, nullable=False, default=1)
    position = Column(Integer, nullable=False, default=0)
    # [{"id": ..., "name": ..., "duration_minutes": ..., "buffer_minutes": ...}]
    treatments = Column(JSONB, nullable=False, default=list)
