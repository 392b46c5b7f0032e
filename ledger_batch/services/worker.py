"""
QueueWorker -- In-process polling worker for queued batch jobs.

Contract:
    Polls PENDING jobs on a configurable interval and executes each via
    ``BatchExecutor``, committing after every job.  This is what drains the
    payment queue filled by queued bulk posting.

Architecture: ledger_batch/services.  Uses ledger_batch.services.executor.

Invariants enforced:
    - Jobs run in submission (seq) order.
    - One session per job; a failing job is rolled back without affecting
      the jobs before it.
    - Graceful shutdown: the stop signal is honoured between jobs.
"""

from __future__ import annotations

import threading
from typing import Callable, Iterable
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_kernel.exceptions import BatchError
from ledger_kernel.logging_config import get_logger

from ledger_batch.services.executor import BatchExecutor

logger = get_logger("batch.worker")


class QueueWorker:
    """Polling worker for queued batch jobs.

    Contract:
        - ``tick()`` executes every job that is PENDING at the time of the call.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed queue (no leader election); the job row lock
          keeps two workers from running the same job.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        executor_factory: Callable[[Session], BatchExecutor],
        actor_id: UUID | None = None,
        tick_interval_seconds: int = 30,
        task_types: Iterable[str] | None = None,
    ):
        self._session_factory = session_factory
        self._executor_factory = executor_factory
        self._actor_id = actor_id or uuid4()
        self._tick_interval = tick_interval_seconds
        self._task_types = tuple(task_types) if task_types is not None else None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> int:
        """Execute pending jobs.  Returns the number of jobs executed."""
        session = self._session_factory()
        try:
            job_ids = [
                job.job_id
                for job in self._executor_factory(session).pending_jobs(self._task_types)
            ]
            session.rollback()
        finally:
            session.close()

        executed = 0
        for job_id in job_ids:
            if self._stop_event.is_set():
                break
            if self._run_job(job_id):
                executed += 1
        return executed

    def start(self) -> None:
        """Start the worker in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="payment-queue-worker",
            daemon=True,
        )
        self._thread.start()
        logger.info("queue_worker_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current job to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("queue_worker_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_job(self, job_id: int) -> bool:
        session = self._session_factory()
        try:
            result = self._executor_factory(session).execute_job(job_id, self._actor_id)
            session.commit()
        except (BatchError, SQLAlchemyError):
            session.rollback()
            logger.exception("queue_job_failed", extra={"batch_job_id": job_id})
            return False
        finally:
            session.close()

        logger.info(
            "queue_job_executed",
            extra={
                "batch_job_id": job_id,
                "status": result.status.value,
                "succeeded": result.succeeded,
                "failed": result.failed,
            },
        )
        return True

    def _run_loop(self) -> None:
        """Background polling loop.  Exits when stop_event is set."""
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("queue_worker_tick_failed")
            self._stop_event.wait(timeout=self._tick_interval)
