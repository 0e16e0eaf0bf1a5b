"""Message model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from clearview.database import Base


class Message(Base):
    """A message between a client and the practice. Only read here for unread counts."""
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True)
    from_user_id = Column(Integer, ForeignKey("users.id"))
    to_user_id = Column(Integer, ForeignKey("users.id"), index=True)
    body = Column(String)
    read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.now)
