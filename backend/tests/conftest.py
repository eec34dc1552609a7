# backend/tests/conftest.py
"""
Pytest configuration for the TutorHub backend.

Every test gets its own in-memory SQLite database, so nothing leaks between
tests and no external database or Redis is needed. The teacher mutex runs on
the in-process backend and domain events are captured instead of queued.
"""

import os

# Set testing mode BEFORE any tutorhub imports
os.environ.setdefault("CI", "true")
os.environ["teacher_lock_backend"] = "local"
os.environ["database_url"] = "sqlite:///:memory:"

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Tuple

from fastapi.testclient import TestClient
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
import ulid

from tutorhub.api.dependencies import get_db, get_event_publisher, get_payout_service
from tutorhub.core.config import settings
from tutorhub.database import Base
from tutorhub.events import EventPublisher
from tutorhub.main import app
from tutorhub.models.availability import AvailabilityRule, AvailabilityRuleKind
from tutorhub.models.booking import Booking, BookingStatus, BookingType
from tutorhub.models.teacher import SubjectOffering, TeacherProfile
from tutorhub.models.wallet import WalletEntry, WalletEntryStatus, WalletEntryType
from tutorhub.services.payout_service import PayoutService

settings.teacher_lock_backend = "local"

# Monday 2030-01-07 08:00 UTC
FIXED_NOW = datetime(2030, 1, 7, 8, 0, tzinfo=timezone.utc)


def new_id() -> str:
    return str(ulid.ULID())


class RecordingSender:
    """Collects events handed to the publisher."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, Dict[str, Any]]] = []

    def __call__(self, event_type: str, payload: Dict[str, Any]) -> None:
        self.sent.append((event_type, payload))

    @property
    def event_types(self) -> List[str]:
        return [event_type for event_type, _ in self.sent]


@pytest.fixture
def test_engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(bind=test_engine, autoflush=False, expire_on_commit=False, future=True)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def event_sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def event_publisher(event_sender) -> EventPublisher:
    return EventPublisher(sender=event_sender)


@pytest.fixture
def rail_calls() -> List[str]:
    return []


# ── Factories ─────────────────────────────────────────────────────────


@pytest.fixture
def make_teacher(db):
    def _make(**overrides: Any) -> TeacherProfile:
        fields: Dict[str, Any] = {
            "user_id": new_id(),
            "display_name": "Test Teacher",
            "timezone": "UTC",
            "allowed_durations": [30, 60, 90],
            "instant_confirmation": False,
            "min_notice_minutes": 0,
        }
        fields.update(overrides)
        teacher = TeacherProfile(**fields)
        db.add(teacher)
        db.commit()
        return teacher

    return _make


@pytest.fixture
def make_offering(db):
    def _make(teacher: TeacherProfile, price_per_hour: int = 50_000, **overrides: Any) -> SubjectOffering:
        offering = SubjectOffering(
            teacher_id=teacher.id,
            subject_name=overrides.pop("subject_name", "Mathematics"),
            price_per_hour=price_per_hour,
            is_active=overrides.pop("is_active", True),
        )
        db.add(offering)
        db.commit()
        return offering

    return _make


@pytest.fixture
def make_weekly_rule(db):
    def _make(
        teacher: TeacherProfile,
        weekday: int,
        start: time,
        end: time,
        tz: str = None,
        **overrides: Any,
    ) -> AvailabilityRule:
        rule = AvailabilityRule(
            teacher_id=teacher.id,
            kind=AvailabilityRuleKind.RECURRING,
            weekday=weekday,
            start_time=start,
            end_time=end,
            is_open=True,
            timezone=tz or teacher.timezone,
            **overrides,
        )
        db.add(rule)
        db.commit()
        return rule

    return _make


@pytest.fixture
def make_exception_rule(db):
    def _make(
        teacher: TeacherProfile,
        on_date: date,
        start: time = None,
        end: time = None,
        is_open: bool = False,
        tz: str = None,
    ) -> AvailabilityRule:
        rule = AvailabilityRule(
            teacher_id=teacher.id,
            kind=AvailabilityRuleKind.EXCEPTION,
            specific_date=on_date,
            start_time=start,
            end_time=end,
            is_open=is_open,
            timezone=tz or teacher.timezone,
        )
        db.add(rule)
        db.commit()
        return rule

    return _make


@pytest.fixture
def make_booking(db):
    def _make(
        teacher: TeacherProfile,
        offering: SubjectOffering,
        start_at: datetime,
        duration_minutes: int = 60,
        status: BookingStatus = BookingStatus.CONFIRMED,
        price: int = 50_000,
        **overrides: Any,
    ) -> Booking:
        booking = Booking(
            teacher_id=teacher.id,
            student_id=overrides.pop("student_id", new_id()),
            subject_offering_id=offering.id,
            start_at=start_at,
            end_at=start_at + timedelta(minutes=duration_minutes),
            duration_minutes=duration_minutes,
            status=status,
            booking_type=overrides.pop("booking_type", BookingType.SINGLE),
            price_at_booking=price,
            **overrides,
        )
        db.add(booking)
        db.commit()
        return booking

    return _make


@pytest.fixture
def make_available_earning(db, make_booking):
    """A completed booking whose earning has already matured."""

    def _make(
        teacher: TeacherProfile, offering: SubjectOffering, net_amount: int, days_ago: int = 10
    ) -> WalletEntry:
        completed_at = FIXED_NOW - timedelta(days=days_ago)
        booking = make_booking(
            teacher,
            offering,
            completed_at - timedelta(hours=1),
            status=BookingStatus.COMPLETED,
            price=net_amount,
            completed_at=completed_at,
        )
        entry = WalletEntry(
            teacher_id=teacher.id,
            booking_id=booking.id,
            entry_type=WalletEntryType.EARNING,
            amount=net_amount,
            commission=0,
            status=WalletEntryStatus.AVAILABLE,
            available_at=completed_at + timedelta(hours=settings.wallet_hold_period_hours),
            created_at=completed_at,
        )
        db.add(entry)
        db.commit()
        return entry

    return _make


# ── API client ────────────────────────────────────────────────────────


@pytest.fixture
def client(session_factory, event_publisher, rail_calls):
    """TestClient bound to the per-test database with captured side effects."""

    def _override_get_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _override_payout_service():
        session = session_factory()
        try:
            yield PayoutService(
                session, event_publisher=event_publisher, rail_submitter=rail_calls.append
            )
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_event_publisher] = lambda: event_publisher
    app.dependency_overrides[get_payout_service] = _override_payout_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user_id: str, role: str) -> Dict[str, str]:
        return {"X-User-Id": user_id, "X-User-Role": role}

    return _headers


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW
