"""Pytest configuration and fixtures."""

import os

# Settings are read at import time; point them at test values first.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-at-least-32-characters")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_broadcaster, get_dispatcher
from app.core.rbac import UserRole
from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import DbSession, get_db
from app.main import app
# Import all models to ensure they're registered with Base.metadata
from app.models import *
from app.models.promo import Promo
from app.models.restaurant import Restaurant
from app.models.user import User
from app.services.notification_service import NotificationDispatcher

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

FIXED_NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)


class RecordingBroadcaster:
    """Broadcaster that keeps every event instead of pushing it to sockets."""

    def __init__(self):
        self.events = []

    def emit_to_user(self, user_id, event, data):
        self.events.append(("user", user_id, event, data))

    def emit_to_order(self, order_id, event, data):
        self.events.append(("order", order_id, event, data))

    def emit_to_group(self, group_order_id, event, data):
        self.events.append(("group", group_order_id, event, data))

    def of_type(self, event):
        return [e for e in self.events if e[2] == event]


class InlineExecutor:
    """Executor that runs submitted work immediately on the calling thread."""

    def __init__(self):
        self.calls = []

    def submit(self, fn, *args, **kwargs):
        self.calls.append((fn, args, kwargs))
        return fn(*args, **kwargs)


class Clock:
    """Settable clock for services that take a ``clock`` callable."""

    def __init__(self, now=FIXED_NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def dispatcher(db_session, broadcaster) -> NotificationDispatcher:
    return NotificationDispatcher(db_session, broadcaster=broadcaster)


@pytest.fixture(scope="function")
def client(db_session: Session, broadcaster) -> Generator[TestClient, None, None]:
    """Create a test client with database and realtime overrides."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    def override_get_dispatcher(db: DbSession):
        return NotificationDispatcher(db, broadcaster=broadcaster)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    app.dependency_overrides[get_dispatcher] = override_get_dispatcher
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_token(user_id: int, role: UserRole = UserRole.CUSTOMER) -> str:
    return create_access_token(data={"sub": str(user_id), "role": role.value})


def auth_for(user_id: int, role: UserRole = UserRole.CUSTOMER) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}


@pytest.fixture
def customer_headers() -> dict:
    return auth_for(1, UserRole.CUSTOMER)


@pytest.fixture
def owner_headers() -> dict:
    return auth_for(50, UserRole.RESTAURANT_OWNER)


@pytest.fixture
def driver_headers() -> dict:
    return auth_for(70, UserRole.DRIVER)


@pytest.fixture
def admin_headers() -> dict:
    return auth_for(99, UserRole.ADMIN)


@pytest.fixture
def test_user(db_session: Session) -> User:
    """Create a customer with contact details."""
    user = User(
        id=1,
        email="test@example.com",
        name="Test User",
        phone="+15550001111",
        role=UserRole.CUSTOMER,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def restaurant(db_session: Session) -> Restaurant:
    """A restaurant owned by user 50 with a 15.00 minimum order."""
    restaurant = Restaurant(
        name="Test Kitchen",
        cuisine="italian",
        owner_id=50,
        delivery_fee=Decimal("3.00"),
        minimum_order=Decimal("15.00"),
        is_active=True,
    )
    db_session.add(restaurant)
    db_session.commit()
    db_session.refresh(restaurant)
    return restaurant


@pytest.fixture
def make_promo(db_session: Session):
    """Factory for promo codes valid around FIXED_NOW and the real clock."""
    def _make(code="SAVE10", discount_type="percentage", discount_value="10", **kwargs):
        values = {
            "description": f"{code} promo",
            "min_order_value": Decimal("0"),
            "valid_from": datetime(2020, 1, 1, tzinfo=timezone.utc),
            "valid_until": datetime(2099, 1, 1, tzinfo=timezone.utc),
            "active": True,
        }
        values.update(kwargs)
        promo = Promo(
            code=code,
            discount_type=discount_type,
            discount_value=Decimal(discount_value),
            **values,
        )
        db_session.add(promo)
        db_session.commit()
        db_session.refresh(promo)
        return promo

    return _make


@pytest.fixture
def auth():
    """``auth(user_id, role)`` -> Authorization headers."""
    return auth_for


@pytest.fixture
def inline_executor() -> InlineExecutor:
    return InlineExecutor()


@pytest.fixture
def token_for():
    """``token_for(user_id, role)`` -> raw access token."""
    return make_token
