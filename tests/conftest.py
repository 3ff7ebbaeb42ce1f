"""Shared pytest fixtures for Cramr."""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

# Keep data and uploads out of the working tree and never talk to a real SMTP
# server or start the scheduler thread from tests.
os.environ.setdefault("CRAMR_BASE_DIR", tempfile.mkdtemp(prefix="cramr-tests-"))
os.environ.setdefault("CRAMR_SMTP_HOST", "")
os.environ.setdefault("CRAMR_ENABLE_SCHEDULER", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from cramr import api, auth, database, storage
from cramr.auth import register_user
from cramr.crud import create_event
from cramr.database import get_session
from cramr.models import Base


@pytest.fixture(scope="session", autouse=True)
def configure_in_memory_db():
    """Reuse a single in-memory SQLite database for fast, isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    session_factory = scoped_session(
        sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,
        )
    )
    database.engine = engine
    database.SessionLocal = session_factory
    storage.engine = engine
    api.SessionLocal = session_factory
    Base.metadata.create_all(bind=engine)
    yield
    session_factory.remove()


@pytest.fixture(autouse=True)
def clean_database():
    """Reset all tables between tests to guarantee isolation."""

    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    auth.otp_store._entries.clear()
    yield


@pytest.fixture()
def client(monkeypatch):
    """FastAPI test client with the scheduler disabled."""

    monkeypatch.setattr(api, "start_scheduler", lambda: None)
    monkeypatch.setattr(api, "stop_scheduler", lambda: None)
    with TestClient(api.app) as test_client:
        yield test_client


@pytest.fixture()
def make_user():
    """Create and commit a user; returns its id."""

    counter = {"n": 0}

    def _make(username: str | None = None, **fields) -> str:
        counter["n"] += 1
        name = username or f"student{counter['n']}"
        with get_session() as session:
            user = register_user(
                session,
                username=name,
                password=fields.pop("password", "Password1!"),
                email=fields.pop("email", f"{name}@example.edu"),
                full_name=fields.pop("full_name", name.title()),
            )
            for key, value in fields.items():
                setattr(user, key, value)
            return user.id

    return _make


@pytest.fixture()
def make_event():
    """Create and commit an event owned by ``creator_id``; returns its id."""

    def _make(creator_id: str, title: str = "Midterm Review", **values) -> str:
        invite_ids = values.pop("invite_ids", ())
        with get_session() as session:
            event = create_event(
                session,
                {"creator_id": creator_id, "title": title, **values},
                invite_ids=invite_ids,
            )
            return event.id

    return _make
