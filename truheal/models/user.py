"""User model definitions."""

from sqlalchemy import Column, Integer, String
from truheal.database import Base


class User(Base):
    """Represents a patient account."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String)
    email = Column(String, unique=True, index=True)
    hashed_password = Column(String)
    role = Column(String, default="patient")
