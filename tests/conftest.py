"""Shared fixtures: a temporary database and a controllable clock."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from action_tracker.core.entities import SqliteEntityRepository
from action_tracker.db.engine import init_db

# Fixed "now" used across the tests.
NOW = datetime(2024, 1, 11, 12, 0, tzinfo=timezone.utc)


def days(n: float) -> timedelta:
    return timedelta(days=n)


class FakeClock:
    """Callable clock returning ``now``; ``advance`` moves it forward."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta):
        self.now = self.now + delta


@pytest.fixture
def db_path():
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp) / "test.db"


@pytest.fixture
def db(db_path):
    """Create a temporary SQLite database for testing."""
    conn = init_db(db_path)
    yield conn
    conn.close()


@pytest.fixture
def repo(db_path, db):
    return SqliteEntityRepository(db_path)


@pytest.fixture
def clock():
    return FakeClock()
