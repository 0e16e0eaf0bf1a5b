"""Appointment model definitions."""

from datetime import datetime, timedelta

from sqlalchemy import Column, Integer, DateTime, ForeignKey, String
from clearview.database import Base


class Appointment(Base):
    """Represents a scheduled session between a client and the practice."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("users.id"), index=True)
    client_name = Column(String)
    client_email = Column(String)
    client_phone = Column(String)
    start_time = Column(DateTime)
    session_type = Column(String)
    duration_minutes = Column(Integer)
    notes = Column(String)
    status = Column(String)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)
    cancelled_at = Column(DateTime)

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration_minutes or 0)
