# backend/tests/conftest.py
"""
Pytest configuration for the Tutorbook booking core.

Every test gets a fresh in-memory SQLite database with the full schema
(partial unique index and CHECK constraints included). Thread-level race
tests build their own file-backed database from ``file_session_factory``.

Time is never read from the wall clock in domain tests: fixtures expose
fixed ``now`` values that are passed explicitly to services.
"""

import os
import sys

# CRITICAL: Set testing mode BEFORE any tutorbook imports!
os.environ["IS_TESTING"] = "true"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ.pop("PAYMENT_WEBHOOK_SECRET", None)
os.environ.pop("ADMIN_USER_IDS", None)

# Add the backend directory to Python path so imports work
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, backend_dir)

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Dict, Iterator, Optional

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from tutorbook.api.dependencies.database import get_db
from tutorbook.auth import IdentityProvider
from tutorbook.core.config import Settings, settings
from tutorbook.database import Base, build_engine
import tutorbook.models  # noqa: F401  (registers tables on Base.metadata)
from tutorbook.models.booking import Booking, BookingStatus
from tutorbook.models.slot_template import SlotTemplate
from tutorbook.services.booking_service import BookingService

settings.is_testing = True

TUTOR_ID = "tutor-anna"
OTHER_TUTOR_ID = "tutor-jonas"
CUSTOMER_ID = "customer-bo"
OTHER_CUSTOMER_ID = "customer-clara"

# Frozen clock for the Copenhagen scenario (winter time, UTC+1)
SCENARIO_NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)
SCENARIO_DATE = date(2025, 3, 10)


# ============================================================================
# DATABASE
# ============================================================================


@pytest.fixture(scope="function")
def test_engine() -> Iterator[Engine]:
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine, expire_on_commit=False)


@pytest.fixture(scope="function")
def db(session_factory: sessionmaker) -> Iterator[Session]:
    """Create a new database session for each test."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(scope="function")
def file_session_factory(tmp_path) -> Iterator[sessionmaker]:
    """
    Session factory over a file-backed SQLite database.

    In-memory SQLite shares one connection between threads, so tests that
    race real writers need a file with its own locking.
    """
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
    engine.dispose()


# ============================================================================
# SETTINGS / CLOCK
# ============================================================================


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Copy of the process settings with field overrides."""

    def _make(**overrides: object) -> Settings:
        return settings.model_copy(update=overrides)

    return _make


@pytest.fixture
def now() -> datetime:
    return SCENARIO_NOW


# ============================================================================
# FACTORIES
# ============================================================================


@pytest.fixture
def slot_factory(db: Session) -> Callable[..., SlotTemplate]:
    """Insert a slot template; times accept ``"HH:MM"`` strings."""

    def _create(
        tutor_id: str = TUTOR_ID,
        slot_date: date = SCENARIO_DATE,
        start: str = "14:00",
        end: str = "15:00",
    ) -> SlotTemplate:
        slot = SlotTemplate(
            tutor_id=tutor_id,
            slot_date=slot_date,
            start_time=time.fromisoformat(start),
            end_time=time.fromisoformat(end),
        )
        db.add(slot)
        db.commit()
        return slot

    return _create


@pytest.fixture
def booking_factory(db: Session) -> Callable[..., Booking]:
    """
    Insert a booking row directly, bypassing the engine's validation.

    AWAITING_PAYMENT rows get a deadline of ``created_at + 15 min`` unless
    ``payment_expires_at`` is given. ``slot_start_at`` defaults to the top of
    the hour of ``selected_at``, which is the slot start for hourly slots.
    """

    def _create(
        tutor_id: str = TUTOR_ID,
        customer_id: str = CUSTOMER_ID,
        selected_at: datetime = datetime(2025, 3, 10, 13, 30, tzinfo=timezone.utc),
        status: BookingStatus = BookingStatus.AWAITING_PAYMENT,
        created_at: datetime = SCENARIO_NOW,
        payment_expires_at: Optional[datetime] = None,
        slot_start_at: Optional[datetime] = None,
        **fields: object,
    ) -> Booking:
        if slot_start_at is None:
            slot_start_at = selected_at.replace(minute=0, second=0, microsecond=0)
        if status == BookingStatus.AWAITING_PAYMENT and payment_expires_at is None:
            payment_expires_at = created_at + timedelta(minutes=15)
        booking = Booking(
            tutor_id=tutor_id,
            customer_id=customer_id,
            selected_at=selected_at,
            slot_start_at=slot_start_at,
            status=status.value,
            created_at=created_at,
            payment_expires_at=payment_expires_at,
            **fields,
        )
        db.add(booking)
        db.commit()
        return booking

    return _create


@pytest.fixture
def booking_service(db: Session) -> BookingService:
    return BookingService(db)


# ============================================================================
# HTTP
# ============================================================================


@pytest.fixture
def client(db: Session) -> Iterator[TestClient]:
    """Create a test client with the test database."""
    from tutorbook.main import app

    def override_get_db() -> Iterator[Session]:
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db

    # Don't use context manager - lifespan (and the scheduler) stay off
    test_client = TestClient(app)

    yield test_client

    app.dependency_overrides.clear()
    test_client.close()


@pytest.fixture
def auth_headers_for() -> Callable[[str, str], Dict[str, str]]:
    identity = IdentityProvider()

    def _headers(user_id: str, email: Optional[str] = None) -> Dict[str, str]:
        token = identity.create_access_token(user_id, email or f"{user_id}@example.com")
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def customer_headers(auth_headers_for) -> Dict[str, str]:
    return auth_headers_for(CUSTOMER_ID)


@pytest.fixture
def tutor_headers(auth_headers_for) -> Dict[str, str]:
    return auth_headers_for(TUTOR_ID)
