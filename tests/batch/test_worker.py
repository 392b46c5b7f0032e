"""
Tests for ledger_batch.services.worker.

Validates QueueWorker: tick() drains PENDING jobs in submission order with
one committed session per job, failures are contained, start()/stop()
run and halt the background thread.
"""

import time
from datetime import datetime
from typing import Any
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session, sessionmaker

from ledger_batch.domain.types import BatchItemStatus, BatchJobStatus
from ledger_batch.services.executor import BatchExecutor
from ledger_batch.services.worker import QueueWorker
from ledger_batch.tasks.base import BatchItemInput, BatchTaskResult, TaskRegistry
from tests.conftest import make_sqlite_engine

EXECUTED: list[int] = []


class RecordingTask:
    @property
    def task_type(self) -> str:
        return "test.recording"

    @property
    def description(self) -> str:
        return "Records the jobs it runs"

    def prepare_items(
        self, job_id: int, parameters: dict[str, Any], session: Session, as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        return (BatchItemInput(item_index=0, item_key=f"job-{job_id}"),)

    def execute_item(
        self, item: BatchItemInput, parameters: dict[str, Any],
        session: Session, as_of: datetime,
    ) -> BatchTaskResult:
        EXECUTED.append(int(item.item_key.split("-")[1]))
        return BatchTaskResult(status=BatchItemStatus.SUCCEEDED)


@pytest.fixture
def file_session_factory(tmp_path):
    engine = make_sqlite_engine(f"sqlite:///{tmp_path / 'worker.db'}")
    try:
        yield sessionmaker(bind=engine, expire_on_commit=False)
    finally:
        engine.dispose()


@pytest.fixture
def registry():
    registry = TaskRegistry()
    registry.register(RecordingTask())
    return registry


@pytest.fixture
def worker(file_session_factory, registry, clock):
    EXECUTED.clear()

    def executor_factory(session: Session) -> BatchExecutor:
        return BatchExecutor(session=session, task_registry=registry, clock=clock)

    return QueueWorker(
        session_factory=file_session_factory,
        executor_factory=executor_factory,
        tick_interval_seconds=1,
    )


def _submit_jobs(session_factory, registry, clock, count: int) -> list[int]:
    session = session_factory()
    try:
        executor = BatchExecutor(session=session, task_registry=registry, clock=clock)
        ids = [
            executor.submit_job(
                job_name=f"job {i}",
                task_type="test.recording",
                idempotency_key=f"key-{i}",
                actor_id=uuid4(),
            ).job_id
            for i in range(count)
        ]
        session.commit()
        return ids
    finally:
        session.close()


def _statuses(session_factory, registry, clock, job_ids) -> list[BatchJobStatus]:
    session = session_factory()
    try:
        executor = BatchExecutor(session=session, task_registry=registry, clock=clock)
        return [executor.get_job(job_id).status for job_id in job_ids]
    finally:
        session.close()


class TestTick:
    def test_executes_pending_jobs_in_order(
        self, worker, file_session_factory, registry, clock,
    ):
        job_ids = _submit_jobs(file_session_factory, registry, clock, 3)

        assert worker.tick() == 3
        assert EXECUTED == job_ids
        assert _statuses(file_session_factory, registry, clock, job_ids) == [
            BatchJobStatus.COMPLETED
        ] * 3

    def test_nothing_pending(self, worker):
        assert worker.tick() == 0

    def test_second_tick_finds_nothing(self, worker, file_session_factory, registry, clock):
        _submit_jobs(file_session_factory, registry, clock, 1)
        worker.tick()
        assert worker.tick() == 0

    def test_unregistered_task_is_contained(
        self, file_session_factory, registry, clock, captured_logs,
    ):
        _submit_jobs(file_session_factory, registry, clock, 2)

        def empty_registry_executor(session: Session) -> BatchExecutor:
            return BatchExecutor(session=session, task_registry=TaskRegistry(), clock=clock)

        worker = QueueWorker(file_session_factory, empty_registry_executor)
        assert worker.tick() == 0
        failures = [r for r in captured_logs() if r["message"] == "queue_job_failed"]
        assert len(failures) == 2
        assert failures[0]["exc_code"] == "TASK_NOT_REGISTERED"


class TestBackgroundThread:
    def test_start_and_stop(self, worker, file_session_factory, registry, clock):
        job_ids = _submit_jobs(file_session_factory, registry, clock, 1)

        worker.start()
        try:
            deadline = time.monotonic() + 5
            while not EXECUTED and time.monotonic() < deadline:
                time.sleep(0.05)
        finally:
            worker.stop(timeout=5)

        assert EXECUTED == job_ids
        assert not worker.is_running

    def test_loop_survives_unexpected_error(
        self, file_session_factory, registry, clock, captured_logs,
    ):
        job_ids = _submit_jobs(file_session_factory, registry, clock, 1)
        EXECUTED.clear()
        calls = []

        def flaky_session_factory() -> Session:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("connection pool exhausted")
            return file_session_factory()

        def executor_factory(session: Session) -> BatchExecutor:
            return BatchExecutor(session=session, task_registry=registry, clock=clock)

        worker = QueueWorker(flaky_session_factory, executor_factory, tick_interval_seconds=1)
        worker.start()
        try:
            deadline = time.monotonic() + 5
            while not EXECUTED and time.monotonic() < deadline:
                time.sleep(0.05)
        finally:
            worker.stop(timeout=5)

        assert EXECUTED == job_ids
        assert any(r["message"] == "queue_worker_tick_failed" for r in captured_logs())
