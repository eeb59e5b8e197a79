"""Pytest configuration and fixtures."""

import os

# Must be set before config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["TRUST_IDENTITY_HEADERS"] = "true"

import itertools
from datetime import datetime, timedelta

import pytest
import pytz
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from app import create_app
from core.database import build_engine, get_session_factory, init_db
from utils.clock import Clock

FROZEN_START = datetime(2026, 1, 1, 9, 0, 0, tzinfo=pytz.utc)


class FrozenClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = FROZEN_START):
        self.current = start
        self.mono = 1000.0
        self._ids = itertools.count(1)

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return self.mono

    def new_id(self) -> str:
        return f"class{next(self._ids):04d}"

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)
        self.mono += seconds


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = build_engine("sqlite://")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def app(clock, session_factory):
    """Application wired to the test database and frozen clock."""
    application = create_app(clock=clock)
    application.dependency_overrides[get_session_factory] = lambda: session_factory
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def identity_headers(user_id: str, role: str) -> dict:
    return {"X-User-Id": user_id, "X-Role": role}


@pytest.fixture
def as_user():
    """Build identity headers for a user id and role."""
    return identity_headers


@pytest.fixture
def teacher_headers() -> dict:
    return identity_headers("t1", "teacher")


@pytest.fixture
def student_headers() -> dict:
    return identity_headers("s1", "student")


@pytest.fixture
def admin_headers() -> dict:
    return identity_headers("admin1", "admin")


@pytest.fixture
def make_class(client, teacher_headers):
    """Create a class as t1 and return its id."""

    def _make(name: str = "Physics 101", headers: dict = None) -> str:
        resp = client.post(
            "/api/teacher/classes", json={"name": name}, headers=headers or teacher_headers
        )
        assert resp.status_code == 200, resp.text
        return resp.json()["class_id"]

    return _make


@pytest.fixture
def rotate_invite(client, teacher_headers):
    """Rotate a class invite as t1 and return the response body."""

    def _rotate(class_id: str, body: dict = None, headers: dict = None) -> dict:
        resp = client.post(
            f"/api/teacher/classes/{class_id}/invite",
            json=body,
            headers=headers or teacher_headers,
        )
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _rotate
