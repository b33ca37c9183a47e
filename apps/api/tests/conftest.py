"""
Pytest configuration and fixtures

Tests run against an in-memory SQLite database. The schema is created
before and dropped after every test, so nothing leaks between tests.
"""
import os
import sys
from datetime import datetime, time
from uuid import uuid4

import pytest

# Must be set before any application module reads settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-jwt")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["PLAN_GATE_BYPASS"] = "false"
os.environ["LOG_FORMAT"] = "text"

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.database import Base, SessionLocal, engine  # noqa: E402
from core.security import create_access_token  # noqa: E402
from models import AvailabilityProfile, Student, Topic  # noqa: E402


@pytest.fixture(scope="function")
def db_session():
    """
    Fresh schema per test.

    The app's sessions share the same in-memory connection (StaticPool),
    so rows created here are visible to API calls and vice versa.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def student(db_session):
    student = Student(email=f"test_{uuid4()}@example.com", display_name="Test Student")
    db_session.add(student)
    db_session.commit()
    return student


@pytest.fixture
def other_student(db_session):
    student = Student(email=f"other_{uuid4()}@example.com", display_name="Other Student")
    db_session.add(student)
    db_session.commit()
    return student


@pytest.fixture
def auth_headers(student):
    token = create_access_token({"sub": str(student.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def topic_factory(db_session):
    """Create level-3 topics: topic_factory("Algebra", order_index=1)."""
    counter = {"n": 0}

    def _make(title=None, subject="maths", order_index=None, level=3, exam_date=None):
        counter["n"] += 1
        topic = Topic(
            subject=subject,
            title=title or f"Topic {counter['n']}",
            level=level,
            order_index=order_index if order_index is not None else counter["n"],
            exam_date=exam_date,
        )
        db_session.add(topic)
        db_session.commit()
        return topic

    return _make


@pytest.fixture
def profile(db_session, student):
    """Weekdays 09:00-17:00, weekends the same."""
    row = AvailabilityProfile(
        student_id=student.id,
        weekday_earliest=time(9, 0),
        weekday_latest=time(17, 0),
        use_same_weekend_times=True,
    )
    db_session.add(row)
    db_session.commit()
    return row


# Monday 2026-10-19 .. Sunday 2026-10-25
MONDAY = datetime(2026, 10, 19)


@pytest.fixture
def monday():
    return MONDAY
