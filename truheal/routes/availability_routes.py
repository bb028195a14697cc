import logging
from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_serializer, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from truheal.core import config
from truheal.core.dependencies import database_unavailable, ensure_database_ready, get_db
from truheal.models.availability import Availability
from truheal.models.doctor import Doctor

router = APIRouter(tags=['availability'])

logger = logging.getLogger(__name__)

MIN_SESSION_DURATION_MINUTES = 15
MAX_SESSION_DURATION_MINUTES = 120
CLOCK_FORMAT = '%H:%M'


def validate_session_duration(value: int) -> int:
    if value < MIN_SESSION_DURATION_MINUTES or value > MAX_SESSION_DURATION_MINUTES:
        raise ValueError(
            f'Session duration must be between {MIN_SESSION_DURATION_MINUTES} '
            f'and {MAX_SESSION_DURATION_MINUTES} minutes.'
        )
    return value


def validate_consultation_fee(value: float) -> float:
    if value < 0:
        raise ValueError('Consultation fee cannot be negative.')
    return value


class TimeWindow(BaseModel):
    start: time
    end: time

    @field_validator('start', 'end')
    @classmethod
    def validate_whole_minute(cls, value: time) -> time:
        if value.second or value.microsecond:
            raise ValueError('Times must be given in HH:MM format.')
        return value

    @field_serializer('start', 'end')
    def serialize_clock_time(self, value: time) -> str:
        return value.strftime(CLOCK_FORMAT)


class SpecificDate(BaseModel):
    date: date
    time_slots: list[TimeWindow]


class UpsertAvailabilityRequest(BaseModel):
    doctor_id: int
    session_duration: int
    consultation_fee: float
    specific_dates: list[SpecificDate]

    @field_validator('session_duration')
    @classmethod
    def check_session_duration(cls, value: int) -> int:
        return validate_session_duration(value)

    @field_validator('consultation_fee')
    @classmethod
    def check_consultation_fee(cls, value: float) -> float:
        return validate_consultation_fee(value)


class UpdateAvailabilityRequest(BaseModel):
    session_duration: int | None = None
    consultation_fee: float | None = None
    specific_dates: list[SpecificDate] | None = None
    is_active: bool | None = None

    @field_validator('session_duration')
    @classmethod
    def check_session_duration(cls, value: int | None) -> int | None:
        if value is None:
            return None
        return validate_session_duration(value)

    @field_validator('consultation_fee')
    @classmethod
    def check_consultation_fee(cls, value: float | None) -> float | None:
        if value is None:
            return None
        return validate_consultation_fee(value)


class AvailabilityResponse(BaseModel):
    id: int
    doctor_id: int
    session_duration: int
    consultation_fee: float
    specific_dates: list[SpecificDate]
    is_active: bool
    last_updated: datetime | None = None

    class Config:
        from_attributes = True


class DaySlotsResponse(BaseModel):
    date: date
    day_name: str
    slots: list[str]
    fee: float


class AvailableSlotsResponse(BaseModel):
    doctor_id: int
    session_duration: int
    consultation_fee: float
    available_slots: list[DaySlotsResponse]


class DoctorAvailabilityResponse(BaseModel):
    doctor_id: int
    full_name: str
    email: str
    specialization: str | None = None
    profile_image: str | None = None
    session_duration: int
    consultation_fee: float
    specific_dates: list[SpecificDate]


def clock_to_minutes(value: str) -> int:
    hours, minutes = value.split(':')[:2]
    return int(hours) * 60 + int(minutes)


def minutes_to_clock(total_minutes: int) -> str:
    return f'{total_minutes // 60:02d}:{total_minutes % 60:02d}'


def is_valid_time_window(start: str, end: str) -> bool:
    return clock_to_minutes(end) > clock_to_minutes(start)


def validate_time_slots(specific_dates: list[SpecificDate]) -> None:
    for entry in specific_dates:
        for window in entry.time_slots:
            start = window.start.strftime(CLOCK_FORMAT)
            end = window.end.strftime(CLOCK_FORMAT)
            if not is_valid_time_window(start, end):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f'Invalid time slot for {entry.date.isoformat()}: {start} - {end}.',
                )


def serialize_specific_dates(specific_dates: list[SpecificDate]) -> list[dict]:
    return [entry.model_dump(mode='json') for entry in specific_dates]


def generate_time_slots(time_slots: list[dict], session_duration: int) -> list[str]:
    """Expand open windows into slot start times that fit entirely inside them."""
    slots: list[str] = []

    for window in time_slots:
        current_minutes = clock_to_minutes(window['start'])
        end_minutes = clock_to_minutes(window['end'])

        while current_minutes + session_duration <= end_minutes:
            slots.append(minutes_to_clock(current_minutes))
            current_minutes += session_duration

    return slots


def find_specific_date(specific_dates: list[dict], day: date) -> dict | None:
    day_string = day.isoformat()
    # Duplicated dates are tolerated; the first entry wins.
    return next((entry for entry in specific_dates if entry.get('date') == day_string), None)


def resolve_slot_range(
    slot_date: date | None,
    start_date: date | None,
    end_date: date | None,
    today: date | None = None,
) -> tuple[date, date]:
    if slot_date is not None:
        return slot_date, slot_date

    range_start = start_date or today or date.today()
    range_end = end_date
    if range_end is None:
        # Clamp at the last representable day instead of overflowing.
        remaining_days = (date.max - range_start).days
        range_end = range_start + timedelta(days=min(config.SLOT_RANGE_DAYS, remaining_days))

    if range_start > range_end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='start_date must be on or before end_date.',
        )

    if (range_end - range_start).days > config.MAX_SLOT_RANGE_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Date range cannot exceed {config.MAX_SLOT_RANGE_DAYS} days.',
        )

    return range_start, range_end


def build_available_slots(availability: Availability, start_date: date, end_date: date) -> list[DaySlotsResponse]:
    available_slots: list[DaySlotsResponse] = []
    specific_dates = availability.specific_dates or []

    for offset in range((end_date - start_date).days + 1):
        current_day = start_date + timedelta(days=offset)
        specific_date = find_specific_date(specific_dates, current_day)

        if specific_date:
            slots = generate_time_slots(specific_date.get('time_slots', []), availability.session_duration)
            if slots:
                available_slots.append(
                    DaySlotsResponse(
                        date=current_day,
                        day_name=current_day.strftime('%A'),
                        slots=slots,
                        fee=availability.consultation_fee,
                    )
                )

    return available_slots


def get_active_availability(doctor_id: int, db: Session) -> Availability:
    availability = db.query(Availability).filter(
        Availability.doctor_id == doctor_id,
        Availability.is_active.is_(True),
    ).first()

    if not availability:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f'Availability settings not found for doctor {doctor_id}.',
        )

    return availability


@router.post('', response_model=AvailabilityResponse)
def upsert_availability(data: UpsertAvailabilityRequest, db: Session = Depends(get_db)):
    validate_time_slots(data.specific_dates)

    ensure_database_ready()

    try:
        doctor = db.query(Doctor).filter(Doctor.id == data.doctor_id).first()
        if not doctor:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Doctor not found.',
            )

        specific_dates = serialize_specific_dates(data.specific_dates)
        availability = db.query(Availability).filter(Availability.doctor_id == data.doctor_id).first()

        if availability:
            availability.session_duration = data.session_duration
            availability.consultation_fee = data.consultation_fee
            availability.specific_dates = specific_dates
            availability.last_updated = datetime.now()
        else:
            availability = Availability(
                doctor_id=data.doctor_id,
                session_duration=data.session_duration,
                consultation_fee=data.consultation_fee,
                specific_dates=specific_dates,
                is_active=True,
                last_updated=datetime.now(),
            )
            db.add(availability)

        db.commit()
        db.refresh(availability)
        logger.info('Saved availability for doctor %s with %d dates.', data.doctor_id, len(specific_dates))

        return availability
    except IntegrityError as exc:
        db.rollback()
        logger.warning('Concurrent availability write for doctor %s.', data.doctor_id)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='Availability settings were changed by another request. Please retry.',
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to save availability for doctor %s.', data.doctor_id)
        raise database_unavailable() from exc


@router.get('/slots', response_model=AvailableSlotsResponse)
def get_available_slots(
    doctor_id: int = Query(...),
    slot_date: date | None = Query(default=None, alias='date'),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    range_start, range_end = resolve_slot_range(slot_date, start_date, end_date)

    ensure_database_ready()

    try:
        availability = get_active_availability(doctor_id, db)

        return AvailableSlotsResponse(
            doctor_id=doctor_id,
            session_duration=availability.session_duration,
            consultation_fee=availability.consultation_fee,
            available_slots=build_available_slots(availability, range_start, range_end),
        )
    except SQLAlchemyError as exc:
        logger.exception('Failed to load availability for doctor %s.', doctor_id)
        raise database_unavailable() from exc


@router.get('/doctors', response_model=list[DoctorAvailabilityResponse])
def list_doctors_with_availability(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        rows = db.query(Availability, Doctor).join(
            Doctor, Doctor.id == Availability.doctor_id,
        ).filter(
            Availability.is_active.is_(True),
        ).order_by(Doctor.full_name.asc()).all()

        return [
            DoctorAvailabilityResponse(
                doctor_id=doctor.id,
                full_name=doctor.full_name,
                email=doctor.email,
                specialization=doctor.specialization,
                profile_image=doctor.profile_image,
                session_duration=availability.session_duration,
                consultation_fee=availability.consultation_fee,
                specific_dates=availability.specific_dates or [],
            )
            for availability, doctor in rows
        ]
    except SQLAlchemyError as exc:
        logger.exception('Failed to list doctors with availability.')
        raise database_unavailable() from exc


@router.get('/doctor/{doctor_id}', response_model=AvailabilityResponse)
def get_doctor_availability(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return get_active_availability(doctor_id, db)
    except SQLAlchemyError as exc:
        logger.exception('Failed to load availability for doctor %s.', doctor_id)
        raise database_unavailable() from exc


@router.put('/doctor/{doctor_id}', response_model=AvailabilityResponse)
def update_availability(doctor_id: int, data: UpdateAvailabilityRequest, db: Session = Depends(get_db)):
    if data.specific_dates is not None:
        validate_time_slots(data.specific_dates)

    ensure_database_ready()

    try:
        availability = db.query(Availability).filter(Availability.doctor_id == doctor_id).first()

        if not availability:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f'Availability settings not found for doctor {doctor_id}.',
            )

        if data.session_duration is not None:
            availability.session_duration = data.session_duration
        if data.consultation_fee is not None:
            availability.consultation_fee = data.consultation_fee
        if data.specific_dates is not None:
            availability.specific_dates = serialize_specific_dates(data.specific_dates)
        if data.is_active is not None:
            availability.is_active = data.is_active
        availability.last_updated = datetime.now()

        db.commit()
        db.refresh(availability)
        logger.info('Updated availability for doctor %s.', doctor_id)

        return availability
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to update availability for doctor %s.', doctor_id)
        raise database_unavailable() from exc


@router.delete('/doctor/{doctor_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_availability(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        deleted_count = db.query(Availability).filter(Availability.doctor_id == doctor_id).delete()

        if deleted_count == 0:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f'Availability settings not found for doctor {doctor_id}.',
            )

        db.commit()
        logger.info('Deleted availability for doctor %s.', doctor_id)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to delete availability for doctor %s.', doctor_id)
        raise database_unavailable() from exc
