import pytest
from fastapi.testclient import TestClient

from truheal.core.dependencies import get_db
from truheal.main import app


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_root_reports_status(client) -> None:
    response = client.get('/')

    assert response.status_code == 200
    assert response.json() == {'status': 'TruHeal Link API Running'}


def test_availability_to_booking_flow(client, doctor, patient) -> None:
    saved = client.post(
        '/availability',
        json={
            'doctor_id': doctor.id,
            'session_duration': 30,
            'consultation_fee': 1500,
            'specific_dates': [{'date': '2026-02-24', 'time_slots': [{'start': '09:00', 'end': '10:00'}]}],
        },
    )
    assert saved.status_code == 200
    assert saved.json()['specific_dates'] == [
        {'date': '2026-02-24', 'time_slots': [{'start': '09:00', 'end': '10:00'}]},
    ]

    slots = client.get('/availability/slots', params={'doctor_id': doctor.id, 'date': '2026-02-24'})
    assert slots.status_code == 200
    assert slots.json()['available_slots'] == [
        {'date': '2026-02-24', 'day_name': 'Tuesday', 'slots': ['09:00', '09:30'], 'fee': 1500.0},
    ]

    booking = {
        'user_id': patient.id,
        'doctor_id': doctor.id,
        'date': '2026-02-24',
        'time': '09:00',
        'session_duration': 30,
        'consultation_fee': 1500,
        'health_concern': 'Shortness of breath',
    }
    first = client.post('/appointments', json=booking)
    assert first.status_code == 201
    assert first.json()['status'] == 'pending'
    assert first.json()['time'] == '09:00'

    second = client.post('/appointments', json=booking)
    assert second.status_code == 409
    assert second.json() == {'detail': 'This time slot is already booked. Please choose another slot.'}


def test_invalid_window_is_reported_with_date(client, doctor) -> None:
    response = client.post(
        '/availability',
        json={
            'doctor_id': doctor.id,
            'session_duration': 30,
            'consultation_fee': 0,
            'specific_dates': [{'date': '2026-02-24', 'time_slots': [{'start': '10:00', 'end': '09:00'}]}],
        },
    )

    assert response.status_code == 400
    assert response.json() == {'detail': 'Invalid time slot for 2026-02-24: 10:00 - 09:00.'}


def test_session_duration_bounds_are_validated(client, doctor) -> None:
    response = client.post(
        '/availability',
        json={'doctor_id': doctor.id, 'session_duration': 5, 'consultation_fee': 0, 'specific_dates': []},
    )

    assert response.status_code == 422


def test_missing_availability_is_not_found(client, doctor) -> None:
    assert client.get(f'/availability/doctor/{doctor.id}').status_code == 404
    assert client.get('/availability/slots', params={'doctor_id': doctor.id}).status_code == 404
    assert client.delete(f'/availability/doctor/{doctor.id}').status_code == 404


def test_status_endpoints_enforce_terminal_states(client, doctor, patient) -> None:
    created = client.post(
        '/appointments',
        json={
            'user_id': patient.id,
            'doctor_id': doctor.id,
            'date': '2026-02-24',
            'time': '11:00',
            'session_duration': 30,
            'consultation_fee': 1500,
            'health_concern': 'Follow-up',
        },
    ).json()

    cancelled = client.request(
        'DELETE',
        f"/appointments/{created['id']}/cancel",
        json={'cancel_reason': 'Travelling'},
    )
    assert cancelled.status_code == 200
    assert cancelled.json()['cancel_reason'] == 'Travelling'

    rejected = client.patch(f"/appointments/{created['id']}/status", json={'status': 'confirmed'})
    assert rejected.status_code == 400
    assert rejected.json() == {'detail': 'Cannot update a cancelled appointment.'}
    assert client.get(f"/appointments/{created['id']}").json()['status'] == 'cancelled'


def test_cancel_rejects_overlong_reason_in_body(client, doctor, patient) -> None:
    created = client.post(
        '/appointments',
        json={
            'user_id': patient.id,
            'doctor_id': doctor.id,
            'date': '2026-02-24',
            'time': '12:00',
            'session_duration': 30,
            'consultation_fee': 1500,
            'health_concern': 'Follow-up',
        },
    ).json()

    response = client.request('DELETE', f"/appointments/{created['id']}/cancel", json={'cancel_reason': 'x' * 501})

    assert response.status_code == 422
    assert client.get(f"/appointments/{created['id']}").json()['status'] == 'pending'


def test_appointment_views_join_doctor_and_patient(client, doctor, patient) -> None:
    created = client.post(
        '/appointments',
        json={
            'user_id': patient.id,
            'doctor_id': doctor.id,
            'date': '2026-02-24',
            'time': '15:00',
            'session_duration': 30,
            'consultation_fee': 1499.5,
            'health_concern': 'Palpitations',
        },
    ).json()

    detail = client.get(f"/appointments/{created['id']}").json()
    listed = client.get(f'/appointments/user/{patient.id}').json()

    assert detail['doctor_name'] == 'Dr. Ayesha Khan'
    assert detail['doctor_email'] == 'ayesha@truheal.test'
    assert detail['doctor_specialization'] == 'Cardiology'
    assert detail['patient_name'] == 'Bilal Ahmed'
    assert detail['patient_email'] == 'bilal@truheal.test'
    assert detail['consultation_fee'] == 1499.5
    assert listed == [detail]


@pytest.mark.parametrize('params', [{'start_date': '9999-12-30', 'end_date': '9999-12-31'}, {'start_date': '9999-12-31'}])
def test_slots_at_last_calendar_day(client, doctor, params: dict) -> None:
    client.post(
        '/availability',
        json={
            'doctor_id': doctor.id,
            'session_duration': 30,
            'consultation_fee': 1500,
            'specific_dates': [{'date': '9999-12-31', 'time_slots': [{'start': '09:00', 'end': '10:00'}]}],
        },
    )

    response = client.get('/availability/slots', params={'doctor_id': doctor.id, **params})

    assert response.status_code == 200
    assert [day['date'] for day in response.json()['available_slots']] == ['9999-12-31']


def test_slots_reject_overlong_range(client, doctor, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('truheal.core.config.MAX_SLOT_RANGE_DAYS', 366)
    client.post(
        '/availability',
        json={'doctor_id': doctor.id, 'session_duration': 30, 'consultation_fee': 0, 'specific_dates': []},
    )

    response = client.get(
        '/availability/slots',
        params={'doctor_id': doctor.id, 'start_date': '0001-01-01', 'end_date': '9999-12-31'},
    )

    assert response.status_code == 400
    assert response.json() == {'detail': 'Date range cannot exceed 366 days.'}
