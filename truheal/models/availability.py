"""Availability model definitions."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric
from truheal.database import Base


class Availability(Base):
    """Represents a doctor's bookable windows on specific calendar dates.

    ``specific_dates`` holds a list of ``{"date": "YYYY-MM-DD", "time_slots":
    [{"start": "HH:MM", "end": "HH:MM"}]}`` entries.
    """
    __tablename__ = "appointment_availability"
    __table_args__ = (
        Index('uq_appointment_availability_doctor', 'doctor_id', unique=True),
        Index('idx_appointment_availability_active', 'is_active'),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    session_duration = Column(Integer, nullable=False)
    consultation_fee = Column(Numeric(10, 2), nullable=False, default=0)
    specific_dates = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    last_updated = Column(DateTime, default=datetime.now)
    created_at = Column(DateTime, default=datetime.now)
