"""Doctor model definitions."""

from sqlalchemy import Boolean, Column, Integer, String
from truheal.database import Base


class Doctor(Base):
    """Represents a registered doctor and their professional profile."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    specialization = Column(String)
    license_number = Column(String)
    profile_image = Column(String)
    is_verified = Column(Boolean, default=False)
