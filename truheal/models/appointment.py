"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Time, text
from truheal.database import ACTIVE_SLOT_INDEX_NAME, ACTIVE_SLOT_INDEX_WHERE, Base

ACTIVE_STATUSES = ('pending', 'confirmed')
TERMINAL_STATUSES = ('cancelled', 'completed')


class Appointment(Base):
    """Represents a slot booked by a patient with a doctor."""
    __tablename__ = "booked_appointments"
    __table_args__ = (
        Index('idx_booked_appointments_user_date', 'user_id', 'date'),
        Index('idx_booked_appointments_doctor_date', 'doctor_id', 'date'),
        # Only one live booking per doctor slot; cancelled/completed rows free it.
        Index(
            ACTIVE_SLOT_INDEX_NAME,
            'doctor_id',
            'date',
            'time',
            unique=True,
            sqlite_where=text(ACTIVE_SLOT_INDEX_WHERE),
            postgresql_where=text(ACTIVE_SLOT_INDEX_WHERE),
        ),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    date = Column(Date, nullable=False)
    time = Column(Time, nullable=False)
    session_duration = Column(Integer, nullable=False)
    consultation_fee = Column(Numeric(10, 2), nullable=False)
    health_concern = Column(String, nullable=False)
    status = Column(String, nullable=False, default='pending')
    cancelled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.now)
