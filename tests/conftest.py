import os

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('CLINIC_TIMEZONE', 'America/New_York')
os.environ.setdefault('JWT_SECRET_KEY', 'test-only-secret-key-that-is-long-enough')

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from clinic_backend.database import Base  # noqa: E402
from clinic_backend.models.appointment import Appointment  # noqa: E402
from clinic_backend.models.availability import WeeklyAvailabilityRecord  # noqa: E402
from clinic_backend.models.user import User  # noqa: E402
from clinic_backend.scheduling.calendar import ClinicCalendar  # noqa: E402
from clinic_backend.scheduling.engine import SlotConfig  # noqa: E402

TABLES = [User.__table__, WeeklyAvailabilityRecord.__table__, Appointment.__table__]


@pytest.fixture
def calendar() -> ClinicCalendar:
    return ClinicCalendar('America/New_York')


@pytest.fixture
def slot_config() -> SlotConfig:
    return SlotConfig()


@pytest.fixture
def clinic_db():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))


@pytest.fixture
def make_user(clinic_db):
    def _make_user(role: str, name: str, specialty: str | None = None) -> User:
        user = User(
            email=f'{name.lower().replace(" ", ".")}@clinic.test',
            name=name,
            role=role,
            specialty=specialty,
        )
        clinic_db.add(user)
        clinic_db.commit()
        clinic_db.refresh(user)
        return user

    return _make_user
