# tests/conftest.py
import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")
os.environ.setdefault("CLINIC_TIMEZONE", "Asia/Kolkata")
os.environ.pop("RESEND_API_KEY", None)

from datetime import datetime  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from mediq import models, models_queue, models_schedule, models_stats  # noqa: E402,F401
from mediq.auth import create_access_token  # noqa: E402
from mediq.database import Base  # noqa: E402
from mediq.models import User  # noqa: E402
from mediq.models_queue import Token  # noqa: E402
from mediq.models_schedule import DoctorSchedule  # noqa: E402
from mediq.services.realtime_sync import SyncBroadcaster  # noqa: E402


class RecordingTransport:
    """Stands in for the websocket hub and keeps every emitted event"""

    def __init__(self):
        self.events = []

    def emit(self, event, data, room=None):
        self.events.append((event, room, data))
        return 1

    def named(self, event, room=...):
        return [e for e in self.events if e[0] == event and (room is ... or e[1] == room)]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Fresh in-memory database per test; services commit freely"""
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def broadcaster(transport):
    return SyncBroadcaster(transport)


def _add_user(db, **data):
    user = User(**data)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def doctor(db_session):
    return _add_user(
        db_session, full_name="Asha Rao", email="asha@clinic.test", role="doctor", consultation_fee=400.0
    )


@pytest.fixture
def other_doctor(db_session):
    return _add_user(db_session, full_name="Ravi Menon", email="ravi@clinic.test", role="doctor")


@pytest.fixture
def admin(db_session):
    return _add_user(db_session, full_name="Clinic Admin", email="admin@clinic.test", role="admin")


@pytest.fixture
def patient(db_session):
    return _add_user(db_session, full_name="Priya Shah", email="priya@mail.test", role="patient")


@pytest.fixture
def make_token(db_session, patient):
    counter = {"n": 0}

    def _make(doctor, booking_date, time_slot="10:00", status="booked", **extra):
        counter["n"] += 1
        token = Token(
            token_number=f"T{counter['n']:03d}",
            doctor_id=doctor.id,
            patient_id=extra.pop("patient_id", patient.id),
            booking_date=booking_date,
            time_slot=time_slot,
            status=status,
            **extra,
        )
        db_session.add(token)
        db_session.commit()
        db_session.refresh(token)
        return token

    return _make


@pytest.fixture
def make_schedule(db_session):
    def _make(doctor, day, is_available=True, **extra):
        schedule = DoctorSchedule(doctor_id=doctor.id, date=day, is_available=is_available, **extra)
        db_session.add(schedule)
        db_session.commit()
        db_session.refresh(schedule)
        return schedule

    return _make


@pytest.fixture
def now():
    return datetime(2024, 3, 10, 11, 30)


@pytest.fixture
def today(now):
    return now.date()


@pytest.fixture
def client(engine, broadcaster):
    from fastapi.testclient import TestClient

    from mediq.database import get_db
    from mediq.main import app
    from mediq.services.realtime_sync import get_broadcaster

    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


@pytest.fixture
def headers_for():
    return auth_headers

