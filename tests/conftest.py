import os
from datetime import date
from decimal import Decimal

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("SLOT_UTC_OFFSET_HOURS", "-3")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from agenda.database import Base, get_db
from agenda.domain.scheduling.schemas import ScheduleCreate
from agenda.domain.scheduling.service import ScheduleService
from agenda.models import Patient, PriceCategory, PriceValue


@pytest.fixture()
def engine():
    """
    Isolated in-memory SQLite engine shared by every session of one test.
    """
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    """TestClient with get_db pointed at the test engine"""
    from agenda.main import app

    def _get_test_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_test_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def make_patient(db):
    def _make(name: str = "Ana Souza", email: str = "ana@example.com") -> Patient:
        patient = Patient(full_name=name, email=email, phone="11999990000")
        db.add(patient)
        db.commit()
        db.refresh(patient)
        return patient

    return _make


@pytest.fixture()
def patient(make_patient):
    return make_patient()


@pytest.fixture()
def make_schedule(db):
    """Create a schedule through the service so conflict rules apply"""

    def _make(patient_id: int, **overrides):
        data = {
            "patientId": patient_id,
            "frequency": "weekly",
            "timeOfDay": "10:00",
            "startDate": date(2025, 1, 6),  # a Monday
        }
        data.update(overrides)
        return ScheduleService(db).create_schedule(ScheduleCreate(**data))

    return _make


@pytest.fixture()
def price_category(db):
    """Category priced 150.00 through March 2025, 180.00 from April"""
    category = PriceCategory(name="Standard session", active=True)
    db.add(category)
    db.flush()
    db.add_all(
        [
            PriceValue(
                category_id=category.id,
                amount=Decimal("150.00"),
                start_date=date(2024, 1, 1),
                end_date=date(2025, 3, 31),
            ),
            PriceValue(
                category_id=category.id,
                amount=Decimal("180.00"),
                start_date=date(2025, 4, 1),
                end_date=None,
            ),
        ]
    )
    db.commit()
    db.refresh(category)
    return category
