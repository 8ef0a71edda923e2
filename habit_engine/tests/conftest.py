"""
Shared fixtures for habit engine tests.
"""
import pytest
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from habit_engine.database import Base
from habit_engine import models  # noqa: F401  register tables
from habit_engine.schemas import SessionRecord


# Wednesday noon; today's habit day is 2026-01-28
NOW = datetime(2026, 1, 28, 12, 0, 0)


def make_session(
    day: date,
    hour: int = 9,
    duration: int = 150,
    target: Optional[int] = None
) -> SessionRecord:
    """Build a session logged on a calendar date at the given hour"""
    return SessionRecord(
        duration_seconds=duration,
        occurred_at=datetime.combine(day, datetime.min.time()) + timedelta(hours=hour),
        target_seconds=target
    )


def sessions_for_pattern(pattern: str, today: date, per_day: int = 2) -> List[SessionRecord]:
    """
    Build sessions from a success/fail pattern ending today.

    "SSF" -> two days ago successful, yesterday successful, today failed.
    """
    sessions = []
    for offset, mark in enumerate(reversed(pattern)):
        day = today - timedelta(days=offset)
        count = per_day if mark == "S" else 0
        for i in range(count):
            sessions.append(make_session(day, hour=8 + i))
    return sessions


class FakeSessionStore:
    """In-memory session store used in engine tests"""

    def __init__(self, sessions: Optional[List[SessionRecord]] = None):
        self.sessions = list(sessions or [])
        self.added = []
        self.fail_fetch = False
        self.fail_add = False
        self.fetch_calls = 0

    def fetch_sessions(self, user_id, since):
        self.fetch_calls += 1
        if self.fail_fetch:
            raise ConnectionError("store offline")
        return list(self.sessions)

    def add_session(self, user_id, session, earned_points=0):
        if self.fail_add:
            raise ConnectionError("store offline")
        self.added.append((user_id, session, earned_points))
        self.sessions.append(session)

    def get_total_points(self, user_id):
        return sum(points for uid, _, points in self.added if uid == user_id)


class Clock:
    """Adjustable clock"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def today():
    return NOW.date()


@pytest.fixture
def yesterday():
    return NOW.date() - timedelta(days=1)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()
