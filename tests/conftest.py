import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from truheal.database import Base  # noqa: E402
from truheal.models.appointment import Appointment  # noqa: E402
from truheal.models.availability import Availability  # noqa: E402
from truheal.models.doctor import Doctor  # noqa: E402
from truheal.models.user import User  # noqa: E402

TABLES = [User.__table__, Doctor.__table__, Availability.__table__, Appointment.__table__]


@pytest.fixture
def db_engine():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine, tables=TABLES)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))
        engine.dispose()


@pytest.fixture
def db(db_engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('truheal.routes.availability_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('truheal.routes.appointment_routes.ensure_database_ready', lambda: None)


@pytest.fixture
def doctor(db) -> Doctor:
    record = Doctor(
        full_name='Dr. Ayesha Khan',
        email='ayesha@truheal.test',
        specialization='Cardiology',
        license_number='PMC-1042',
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@pytest.fixture
def patient(db) -> User:
    record = User(full_name='Bilal Ahmed', email='bilal@truheal.test', hashed_password='', role='patient')
    db.add(record)
    db.commit()
    db.refresh(record)
    return record
