"""
Pytest configuration and shared fixtures for the booking tests.

Every test gets its own SQLite file so sessions opened by different
fixtures (or by two "concurrent" requests) see the same committed data.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from mh26.core.security import create_access_token, hash_password
from mh26.db.base import build_engine, get_db
from mh26.db.init_db import init_db
from mh26.db.models.enums import ProviderStatus, UserRole
from mh26.db.models.provider import Provider
from mh26.db.models.service import Service
from mh26.db.models.user import User
from mh26.main import app
from mh26.services.bookings import BookingService
from mh26.services.state_machine import BookingAction

NOW = datetime(2026, 3, 2, 9, 0, 0)
SCHEDULED = NOW + timedelta(days=1)


@pytest.fixture()
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'mh26_test.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


class Factory:
    """Creates committed rows; every call gets a unique email."""

    def __init__(self, db):
        self.db = db
        self.seq = 0

    def user(self, role=UserRole.CUSTOMER, name=None, is_active=True):
        self.seq += 1
        user = User(
            email=f"user{self.seq}@mh26.in",
            name=name or f"User {self.seq}",
            password_hash=hash_password("secret123"),
            role=role,
            is_active=is_active,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def customer(self, **kwargs):
        return self.user(UserRole.CUSTOMER, **kwargs)

    def admin(self):
        return self.user(UserRole.ADMIN)

    def provider(self, status=ProviderStatus.APPROVED):
        owner = self.user(UserRole.PROVIDER)
        provider = Provider(user_id=owner.id, business_name=f"{owner.name} Services", city="Mumbai", status=status)
        self.db.add(provider)
        self.db.commit()
        self.db.refresh(provider)
        return provider

    def service(self, provider, price="850.00", name="Deep Cleaning"):
        service = Service(provider_id=provider.id, name=name, price=Decimal(price), duration_minutes=120)
        self.db.add(service)
        self.db.commit()
        self.db.refresh(service)
        return service


@pytest.fixture()
def factory(db):
    return Factory(db)


@pytest.fixture()
def customer(factory):
    return factory.customer(name="Asha")


@pytest.fixture()
def provider(factory):
    return factory.provider()


@pytest.fixture()
def admin(factory):
    return factory.admin()


@pytest.fixture()
def service(factory, provider):
    return factory.service(provider)


@pytest.fixture()
def bookings(db):
    return BookingService(db)


@pytest.fixture()
def make_booking(bookings, customer, provider, service):
    """Create a booking and drive it through ``actions`` as its provider."""

    def _make(*actions, scheduled_at=SCHEDULED):
        booking = bookings.create_booking(
            customer.id, provider.id, service.id, scheduled_at, "12 Marine Drive, Mumbai", now=NOW
        )
        for action in actions:
            booking = bookings.transition_booking(booking.id, action, provider.user_id, now=scheduled_at)
        return booking

    return _make


@pytest.fixture()
def completed_booking(make_booking):
    return make_booking(BookingAction.CONFIRM, BookingAction.START, BookingAction.COMPLETE)


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token({'sub': user.email})}"}

    return _headers
