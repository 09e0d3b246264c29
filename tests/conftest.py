"""Shared test fixtures."""
import os

# Antes de importar la app: BD en memoria, sin scheduler ni seed automático
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["SEED_SERVICES"] = "false"
os.environ["ADMIN_EMAILS"] = "Admin@Clinic.test"
os.environ["BOOKING_DEFAULT_STATUS"] = "pending"

from datetime import date

import pytest

from agenda import models
from agenda.database import Base, SessionLocal, engine, init_db
from agenda.services.events import auth_events, booking_events
from agenda.services.seed import seed_services
from agenda.services.store import BookingStore

ADMIN_EMAIL = "admin@clinic.test"


@pytest.fixture(autouse=True)
def db():
    """Esquema limpio por test (incluye el índice único parcial de slots)."""
    Base.metadata.drop_all(bind=engine)
    init_db()
    session = SessionLocal()
    yield session
    session.close()
    booking_events.clear()
    auth_events.clear()


@pytest.fixture
def store(db) -> BookingStore:
    return BookingStore(db)


@pytest.fixture
def services(db):
    seed_services(db)
    return {s.id: s for s in db.query(models.Service).all()}


@pytest.fixture
def make_user(db):
    """Factory: usuario + perfil sin pasar por bcrypt."""
    counter = {"value": 0}

    def _make(name="Test User", phone="090-0000-0000", email=None, with_profile=True):
        counter["value"] += 1
        user = models.User(
            email=email or f"user{counter['value']}@example.com",
            password_hash="not-a-real-hash",
            display_name=name,
        )
        db.add(user)
        db.flush()
        if with_profile:
            db.add(models.Profile(id=user.id, name=name, phone=phone))
        db.commit()
        return user

    return _make


@pytest.fixture
def make_booking(db):
    """Factory: inserta una reserva directo en BD (sin chequeos previos)."""
    def _make(user, booking_date="2025-08-01", booking_time="10:00", service_id="general",
              status=models.BookingStatus.confirmed, booking_id=None, chart_number=None):
        booking = models.Booking(
            id=booking_id,
            user_id=user.id,
            service_id=service_id,
            booking_date=date.fromisoformat(booking_date),
            booking_time=booking_time,
            status=status,
            chart_number=chart_number,
        )
        db.add(booking)
        db.commit()
        return booking

    return _make


def count_active(db, booking_date: str, booking_time: str) -> int:
    db.expire_all()
    return (
        db.query(models.Booking)
        .filter(models.Booking.booking_date == date.fromisoformat(booking_date))
        .filter(models.Booking.booking_time == booking_time)
        .filter(models.Booking.status != models.BookingStatus.cancelled)
        .count()
    )
