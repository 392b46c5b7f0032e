"""Tests for ledger_kernel.db.engine: engine lifecycle and session_scope()."""

import pytest
from sqlalchemy import select

from ledger_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    is_postgres,
    reset_engine,
    session_scope,
)
from ledger_kernel.services.sequence_service import SequenceCounter


@pytest.fixture
def file_engine(tmp_path):
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'engine.db'}", pool_size=2)
    create_tables()
    yield engine
    reset_engine()


def test_not_initialized():
    reset_engine()
    with pytest.raises(RuntimeError):
        get_engine()
    with pytest.raises(RuntimeError):
        get_session()
    assert is_postgres() is False


def test_session_scope_commits(file_engine):
    with session_scope() as session:
        session.add(SequenceCounter(name="session_check", current_value=4))

    with session_scope() as session:
        value = session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == "session_check")
        ).scalar_one()
    assert value == 4


def test_session_scope_rolls_back(file_engine):
    with pytest.raises(ValueError):
        with session_scope() as session:
            session.add(SequenceCounter(name="lost", current_value=1))
            session.flush()
            raise ValueError("abort")

    with session_scope() as session:
        assert session.execute(
            select(SequenceCounter).where(SequenceCounter.name == "lost")
        ).scalar_one_or_none() is None


def test_sqlite_is_not_postgres(file_engine):
    assert get_engine() is file_engine
    assert is_postgres() is False
