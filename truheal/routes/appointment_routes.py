import logging
from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_serializer, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from truheal.core.dependencies import database_unavailable, ensure_database_ready, get_db
from truheal.database import ACTIVE_SLOT_INDEX_NAME
from truheal.models.appointment import ACTIVE_STATUSES, TERMINAL_STATUSES, Appointment
from truheal.models.doctor import Doctor
from truheal.models.user import User
from truheal.routes.availability_routes import CLOCK_FORMAT, validate_consultation_fee, validate_session_duration

router = APIRouter(tags=['appointments'])

logger = logging.getLogger(__name__)

APPOINTMENT_STATUSES = ('pending', 'confirmed', 'cancelled', 'completed')
ALLOWED_STATUS_TRANSITIONS = {
    'pending': {'confirmed', 'cancelled'},
    'confirmed': {'completed', 'cancelled'},
}
MAX_HEALTH_CONCERN_LENGTH = 1000
MAX_CANCEL_REASON_LENGTH = 500
SLOT_TAKEN_DETAIL = 'This time slot is already booked. Please choose another slot.'


def normalize_cancel_reason(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_CANCEL_REASON_LENGTH:
        raise ValueError(f'Cancel reason must be {MAX_CANCEL_REASON_LENGTH} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    user_id: int
    doctor_id: int
    date: date
    time: time
    session_duration: int
    consultation_fee: float
    health_concern: str

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: time) -> time:
        if value.second or value.microsecond:
            raise ValueError('Time must be given in HH:MM format.')
        return value

    @field_validator('session_duration')
    @classmethod
    def check_session_duration(cls, value: int) -> int:
        return validate_session_duration(value)

    @field_validator('consultation_fee')
    @classmethod
    def check_consultation_fee(cls, value: float) -> float:
        return validate_consultation_fee(value)

    @field_validator('health_concern')
    @classmethod
    def validate_health_concern(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Health concern is required.')
        if len(normalized) > MAX_HEALTH_CONCERN_LENGTH:
            raise ValueError(f'Health concern must be {MAX_HEALTH_CONCERN_LENGTH} characters or fewer.')
        return normalized


class UpdateAppointmentStatusRequest(BaseModel):
    status: str
    cancel_reason: str | None = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in APPOINTMENT_STATUSES:
            raise ValueError('Invalid appointment status.')
        return normalized

    @field_validator('cancel_reason')
    @classmethod
    def validate_cancel_reason(cls, value: str | None) -> str | None:
        return normalize_cancel_reason(value)


class CancelAppointmentRequest(BaseModel):
    cancel_reason: str | None = None

    @field_validator('cancel_reason')
    @classmethod
    def validate_cancel_reason(cls, value: str | None) -> str | None:
        return normalize_cancel_reason(value)


class AppointmentResponse(BaseModel):
    id: int
    user_id: int
    doctor_id: int
    date: date
    time: time
    session_duration: int
    consultation_fee: float
    health_concern: str
    status: str
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True

    @field_serializer('time')
    def serialize_time(self, value: time) -> str:
        return value.strftime(CLOCK_FORMAT)


class AppointmentDetailResponse(AppointmentResponse):
    doctor_name: str | None = None
    doctor_email: str | None = None
    doctor_specialization: str | None = None
    patient_name: str | None = None
    patient_email: str | None = None


def find_active_booking(doctor_id: int, slot_date: date, slot_time: time, db: Session) -> Appointment | None:
    return db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.date == slot_date,
        Appointment.time == slot_time,
        Appointment.status.in_(ACTIVE_STATUSES),
    ).first()


def is_active_slot_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    # PostgreSQL names the index; SQLite lists the indexed columns.
    return ACTIVE_SLOT_INDEX_NAME in message or 'booked_appointments.doctor_id' in message


def apply_status_change(
    appointment: Appointment,
    new_status: str,
    cancel_reason: str | None = None,
    now: datetime | None = None,
) -> None:
    current_status = appointment.status

    if current_status in TERMINAL_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Cannot update a {current_status} appointment.',
        )

    if new_status not in ALLOWED_STATUS_TRANSITIONS.get(current_status, set()):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Cannot change appointment status from {current_status} to {new_status}.',
        )

    appointment.status = new_status

    if new_status == 'cancelled':
        appointment.cancelled_at = now or datetime.now()
        appointment.cancel_reason = cancel_reason


def get_appointment_or_404(appointment_id: int, db: Session) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()

    if not appointment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Appointment not found.',
        )

    return appointment


def change_appointment_status(
    appointment_id: int,
    new_status: str,
    cancel_reason: str | None,
    db: Session,
) -> Appointment:
    ensure_database_ready()

    try:
        appointment = get_appointment_or_404(appointment_id, db)
        previous_status = appointment.status

        apply_status_change(appointment, new_status, cancel_reason)

        db.commit()
        db.refresh(appointment)
        logger.info('Appointment %s moved from %s to %s.', appointment_id, previous_status, new_status)

        return appointment
    except HTTPException:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to update status of appointment %s.', appointment_id)
        raise database_unavailable() from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(data: CreateAppointmentRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        if find_active_booking(data.doctor_id, data.date, data.time, db):
            logger.info(
                'Rejected booking for doctor %s at %s %s: slot already held.',
                data.doctor_id,
                data.date,
                data.time,
            )
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=SLOT_TAKEN_DETAIL,
            )

        appointment = Appointment(
            user_id=data.user_id,
            doctor_id=data.doctor_id,
            date=data.date,
            time=data.time,
            session_duration=data.session_duration,
            consultation_fee=data.consultation_fee,
            health_concern=data.health_concern,
            status='pending',
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        logger.info('Booked appointment %s for user %s with doctor %s.', appointment.id, data.user_id, data.doctor_id)

        return appointment
    except IntegrityError as exc:
        db.rollback()
        if is_active_slot_violation(exc):
            logger.warning('Concurrent booking for doctor %s at %s %s.', data.doctor_id, data.date, data.time)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=SLOT_TAKEN_DETAIL,
            ) from exc
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Unknown user or doctor.',
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to book appointment for doctor %s.', data.doctor_id)
        raise database_unavailable() from exc


def appointment_details_query(db: Session):
    return db.query(Appointment, Doctor, User).outerjoin(
        Doctor, Doctor.id == Appointment.doctor_id,
    ).outerjoin(
        User, User.id == Appointment.user_id,
    )


def build_appointment_detail(appointment: Appointment, doctor: Doctor | None, patient: User | None) -> AppointmentDetailResponse:
    detail = AppointmentDetailResponse.model_validate(appointment)

    if doctor is not None:
        detail.doctor_name = doctor.full_name
        detail.doctor_email = doctor.email
        detail.doctor_specialization = doctor.specialization
    if patient is not None:
        detail.patient_name = patient.full_name
        detail.patient_email = patient.email

    return detail


@router.get('/user/{user_id}', response_model=list[AppointmentDetailResponse])
def list_user_appointments(user_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        rows = appointment_details_query(db).filter(
            Appointment.user_id == user_id,
        ).order_by(Appointment.date.desc(), Appointment.time.desc()).all()

        return [build_appointment_detail(*row) for row in rows]
    except SQLAlchemyError as exc:
        logger.exception('Failed to list appointments for user %s.', user_id)
        raise database_unavailable() from exc


@router.get('/user/{user_id}/upcoming', response_model=list[AppointmentDetailResponse])
def list_user_upcoming_appointments(user_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        rows = appointment_details_query(db).filter(
            Appointment.user_id == user_id,
            Appointment.date >= date.today(),
            Appointment.status.in_(ACTIVE_STATUSES),
        ).order_by(Appointment.date.asc(), Appointment.time.asc()).all()

        return [build_appointment_detail(*row) for row in rows]
    except SQLAlchemyError as exc:
        logger.exception('Failed to list upcoming appointments for user %s.', user_id)
        raise database_unavailable() from exc


@router.get('/doctor/{doctor_id}', response_model=list[AppointmentDetailResponse])
def list_doctor_appointments(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        rows = appointment_details_query(db).filter(
            Appointment.doctor_id == doctor_id,
        ).order_by(Appointment.date.desc(), Appointment.time.desc()).all()

        return [build_appointment_detail(*row) for row in rows]
    except SQLAlchemyError as exc:
        logger.exception('Failed to list appointments for doctor %s.', doctor_id)
        raise database_unavailable() from exc


@router.get('/doctor/{doctor_id}/upcoming', response_model=list[AppointmentDetailResponse])
def list_doctor_upcoming_appointments(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        rows = appointment_details_query(db).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.date >= date.today(),
            Appointment.status.in_(ACTIVE_STATUSES),
        ).order_by(Appointment.date.asc(), Appointment.time.asc()).all()

        return [build_appointment_detail(*row) for row in rows]
    except SQLAlchemyError as exc:
        logger.exception('Failed to list upcoming appointments for doctor %s.', doctor_id)
        raise database_unavailable() from exc


@router.get('/{appointment_id}', response_model=AppointmentDetailResponse)
def get_appointment(appointment_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        row = appointment_details_query(db).filter(Appointment.id == appointment_id).first()

        if not row:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Appointment not found.',
            )

        return build_appointment_detail(*row)
    except SQLAlchemyError as exc:
        logger.exception('Failed to load appointment %s.', appointment_id)
        raise database_unavailable() from exc


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateAppointmentStatusRequest,
    db: Session = Depends(get_db),
):
    return change_appointment_status(appointment_id, data.status, data.cancel_reason, db)


@router.delete('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest | None = None,
    db: Session = Depends(get_db),
):
    cancel_reason = data.cancel_reason if data else None

    return change_appointment_status(appointment_id, 'cancelled', cancel_reason, db)
