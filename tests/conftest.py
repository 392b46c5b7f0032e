"""
Pytest fixtures for the payment ledger test suite.

Provides:
- SQLite database sessions with working SAVEPOINTs
- A deterministic clock and a fixed test actor
- Structured log capture

SQLite stands in for PostgreSQL here.  pysqlite's own transaction handling
breaks SAVEPOINT, so the engine fixtures take over BEGIN themselves.
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO
from uuid import UUID

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ledger_kernel.db.base import Base
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_modules._orm_registry import import_all_orm_models

# Test actor ID for all test operations
TEST_ACTOR_ID = UUID("00000000-0000-4000-a000-0000000000ff")

TEST_NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_sqlite_engine(url: str = "sqlite://"):
    """SQLite engine with SAVEPOINT support and every ledger table created."""
    if url == "sqlite://":
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        # Stop pysqlite from emitting BEGIN on its own.
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    import_all_orm_models()
    Base.metadata.create_all(engine)
    return engine


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            logs = captured_logs()
            assert any(r["message"] == "payment_posted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """In-memory SQLite engine, one per test."""
    eng = make_sqlite_engine()
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Session:
    db_session = session_factory()
    try:
        yield db_session
    finally:
        db_session.rollback()
        db_session.close()


@pytest.fixture
def clock():
    return DeterministicClock(fixed_time=TEST_NOW)


@pytest.fixture
def actor_id() -> UUID:
    return TEST_ACTOR_ID
