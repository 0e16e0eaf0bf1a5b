"""User model definitions."""

from sqlalchemy import Column, Integer, String
from clearview.database import Base


class User(Base):
    """Represents a client or admin profile."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    first_name = Column(String)
    last_name = Column(String)
    phone = Column(String)
    role = Column(String)  # client/admin

    @property
    def display_name(self) -> str:
        full_name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full_name or (self.email or '')
