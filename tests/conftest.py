"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of kudos.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine, event  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from kudos.config import KudosConfig  # noqa: E402
from kudos.database.models import (  # noqa: E402
    CatalogItem,
    Student,
    StudentLoadout,
)
from kudos.database.seed import seed_default_settings  # noqa: E402
from kudos.services import hooks  # noqa: E402


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Kudos tables and the
    default settings.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` in the async routes).  pysqlite's own
    transaction handling is switched off so SAVEPOINTs behave as on
    PostgreSQL.
    """
    from kudos.database.models import Base

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    seed_default_settings(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture(autouse=True)
def _no_post_grant_hooks():
    """Each test starts and ends with an empty hook registry."""
    hooks.clear_post_grant_hooks()
    yield
    hooks.clear_post_grant_hooks()


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------
def add_student(engine, name: str = "Ada", *, team: bool = False) -> int:
    with Session(engine) as session:
        student = Student(name=name, is_competition_team=team)
        session.add(student)
        session.commit()
        return student.id


def add_item(engine, item_type: str, key: str, **fields) -> None:
    with Session(engine) as session:
        session.add(CatalogItem(item_type=item_type, key=key, name=fields.pop("name", key), **fields))
        session.commit()


def equip_raw(engine, student_id: int, **slots) -> None:
    """Write loadout slots directly, bypassing eligibility checks."""
    with Session(engine) as session:
        loadout = session.get(StudentLoadout, student_id)
        if loadout is None:
            loadout = StudentLoadout(student_id=student_id)
            session.add(loadout)
        for name, value in slots.items():
            setattr(loadout, name, value)
        session.commit()


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------
TEST_CONFIG = KudosConfig(program_name="Test Dojo", api_port=8000)


def make_token(role: str = "coach", sub: str = "coach-1") -> str:
    """Create a staff JWT.  Usable as both a fixture helper and a factory."""
    import jwt

    from kudos.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": sub, "role": role}, JWT_SECRET, algorithm=JWT_ALGORITHM)


@pytest.fixture
def coach_headers() -> dict:
    return {"Authorization": f"Bearer {make_token('coach')}"}


@pytest.fixture
def admin_headers() -> dict:
    return {"Authorization": f"Bearer {make_token('admin', 'admin-1')}"}


@pytest.fixture
def client(db_engine):
    """FastAPI TestClient wired to the in-memory engine."""
    from fastapi.testclient import TestClient

    from kudos.api.main import app
    from kudos.api.routes import students as student_routes

    app.dependency_overrides[student_routes.get_engine] = lambda: db_engine
    app.dependency_overrides[student_routes.get_config] = lambda: TEST_CONFIG
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
