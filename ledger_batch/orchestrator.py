"""
BatchOrchestrator -- DI container for the batch processing system.

Contract:
    Wires TaskRegistry with the module task implementations, creates
    BatchExecutor, and optionally creates the QueueWorker.  Single place
    where all batch dependencies are composed.

Architecture: ledger_batch (top-level).  The payment store reaches the
    executor through ``default_task_registry()``.

Invariants enforced:
    - Clock injection (every executor receives the same Clock).
    - One SequenceService per session.
"""

from __future__ import annotations

from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.sequence_service import SequenceService

from ledger_batch.services.executor import BatchExecutor
from ledger_batch.services.worker import QueueWorker
from ledger_batch.tasks.base import TaskRegistry
from ledger_batch.tasks.payment_tasks import PaymentBulkPostTask

logger = get_logger("batch.orchestrator")


def default_task_registry() -> TaskRegistry:
    """Create a TaskRegistry pre-loaded with all module task implementations."""
    registry = TaskRegistry()
    registry.register(PaymentBulkPostTask())
    return registry


class BatchOrchestrator:
    """DI container for the batch processing system.

    Contract:
        - ``from_session()`` factory creates a fully wired orchestrator.
        - ``create_executor()`` returns a BatchExecutor for ad-hoc jobs.
        - ``create_worker()`` returns a QueueWorker for background use.

    Non-goals:
        - Does NOT start the worker automatically -- caller decides.
        - Does NOT manage session lifecycle -- caller controls commits.
    """

    def __init__(
        self,
        session: Session,
        task_registry: TaskRegistry,
        clock: Clock | None = None,
        sequence_service: SequenceService | None = None,
        actor_id: UUID | None = None,
    ) -> None:
        self._session = session
        self._task_registry = task_registry
        self._clock = clock or SystemClock()
        self._sequence = sequence_service or SequenceService(session)
        self._actor_id = actor_id or uuid4()

    @classmethod
    def from_session(
        cls,
        session: Session,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        task_registry: TaskRegistry | None = None,
    ) -> BatchOrchestrator:
        """Create a fully wired BatchOrchestrator from a session.

        Args:
            session: SQLAlchemy session for persistence.
            clock: Optional clock for deterministic testing.
            actor_id: Optional actor UUID recorded on batch items.
            task_registry: Optional pre-configured registry.  If None,
                uses the default registry with all module tasks.
        """
        registry = task_registry if task_registry is not None else default_task_registry()
        return cls(
            session=session,
            task_registry=registry,
            clock=clock or SystemClock(),
            sequence_service=SequenceService(session),
            actor_id=actor_id,
        )

    def create_executor(self, session: Session | None = None) -> BatchExecutor:
        """Create a BatchExecutor, on ``session`` if given."""
        target_session = session or self._session
        return BatchExecutor(
            session=target_session,
            task_registry=self._task_registry,
            clock=self._clock,
            sequence_service=(
                SequenceService(target_session) if session is not None else self._sequence
            ),
        )

    def create_worker(
        self,
        session_factory: Callable[[], Session],
        tick_interval_seconds: int = 30,
    ) -> QueueWorker:
        """Create a QueueWorker that drains pending jobs.

        Args:
            session_factory: Callable returning a new session per job.
            tick_interval_seconds: Polling interval.
        """
        clock = self._clock
        registry = self._task_registry

        def executor_factory(session: Session) -> BatchExecutor:
            return BatchExecutor(
                session=session,
                task_registry=registry,
                clock=clock,
                sequence_service=SequenceService(session),
            )

        logger.info(
            "queue_worker_created",
            extra={"task_types": registry.list_tasks(), "tick_interval": tick_interval_seconds},
        )
        return QueueWorker(
            session_factory=session_factory,
            executor_factory=executor_factory,
            actor_id=self._actor_id,
            tick_interval_seconds=tick_interval_seconds,
            task_types=registry.list_tasks(),
        )

    @property
    def session(self) -> Session:
        return self._session

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def task_registry(self) -> TaskRegistry:
        return self._task_registry

    @property
    def actor_id(self) -> UUID:
        return self._actor_id
