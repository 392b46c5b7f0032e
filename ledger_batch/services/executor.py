"""
BatchExecutor -- SAVEPOINT-per-item batch execution engine.

Contract:
    Job lifecycle: submit (with idempotency), execute (SAVEPOINT per
    item), cancel, query.  Queued bulk payments are submitted here by the
    payment store and executed later by the QueueWorker.

Architecture: ledger_batch/services.  Imports from ledger_batch.domain,
    ledger_batch.models, ledger_batch.tasks and kernel services.

Invariants enforced:
    - SAVEPOINT isolation per item: one failed contact does not abort the job.
    - Idempotency via UNIQUE idempotency_key.
    - Job ordering via SequenceService.
    - All timestamps from the injected Clock.
    - Job row locked (FOR UPDATE) before execution.
"""

from __future__ import annotations

import time
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import (
    BatchAlreadyRunningError,
    BatchIdempotencyError,
    BatchJobNotFoundError,
    TaskNotRegisteredError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.services.sequence_service import SequenceService

from ledger_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJob,
    BatchJobStatus,
    BatchRunResult,
)
from ledger_batch.models.batch import BatchItemModel, BatchJobModel
from ledger_batch.tasks.base import TaskRegistry

logger = get_logger("batch.executor")


class BatchExecutor:
    """Batch execution engine with SAVEPOINT-per-item isolation.

    Contract:
        - ``submit_job()`` creates a PENDING job.
        - ``execute_job()`` runs the job with per-item SAVEPOINTs.
        - ``cancel_job()`` marks a PENDING/RUNNING job as CANCELLED.
        - ``get_job()`` / ``get_job_items()`` / ``pending_jobs()`` for queries.

    Non-goals:
        - Does NOT call ``session.commit()``; the caller controls boundaries.
        - Does NOT run threads; that is the QueueWorker's job.
    """

    def __init__(
        self,
        session: Session,
        task_registry: TaskRegistry,
        clock: Clock | None = None,
        sequence_service: SequenceService | None = None,
    ):
        self._session = session
        self._task_registry = task_registry
        self._clock = clock or SystemClock()
        self._sequence = sequence_service or SequenceService(session)

    # -------------------------------------------------------------------------
    # Submit
    # -------------------------------------------------------------------------

    def submit_job(
        self,
        job_name: str,
        task_type: str,
        idempotency_key: str,
        actor_id: UUID,
        parameters: dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> BatchJob:
        """Create a new PENDING batch job.

        Raises:
            TaskNotRegisteredError: If task_type is not in the registry.
            BatchIdempotencyError: If idempotency_key is already used.
        """
        if task_type not in self._task_registry:
            raise TaskNotRegisteredError(task_type)

        existing = self._session.execute(
            select(BatchJobModel).where(
                BatchJobModel.idempotency_key == idempotency_key,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise BatchIdempotencyError(idempotency_key, existing.id)

        seq = self._sequence.next_value(SequenceService.BATCH_JOB)
        now = self._clock.now()

        model = BatchJobModel(
            job_name=job_name,
            task_type=task_type,
            status=BatchJobStatus.PENDING.value,
            idempotency_key=idempotency_key,
            parameters=parameters or None,
            seq=seq,
            correlation_id=correlation_id,
            created_at=now,
            created_by_id=actor_id,
        )
        self._session.add(model)
        self._session.flush()

        logger.info(
            "batch_job_submitted",
            extra={
                "batch_job_id": model.id,
                "job_name": job_name,
                "task_type": task_type,
                "idempotency_key": idempotency_key,
                "seq": seq,
            },
        )
        return model.to_dto()

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    def execute_job(self, job_id: int, actor_id: UUID) -> BatchRunResult:
        """Execute a PENDING job, one SAVEPOINT per item.

        Raises:
            BatchJobNotFoundError: If job_id does not exist.
            BatchAlreadyRunningError: If the job is not PENDING.
            TaskNotRegisteredError: If task_type is not registered.
        """
        start_time = time.monotonic()

        job_model = self._session.execute(
            select(BatchJobModel)
            .where(BatchJobModel.id == job_id)
            .with_for_update()
        ).scalar_one_or_none()

        if job_model is None:
            raise BatchJobNotFoundError(job_id)

        if job_model.status != BatchJobStatus.PENDING.value:
            raise BatchAlreadyRunningError(job_id, job_model.status)

        if job_model.task_type not in self._task_registry:
            raise TaskNotRegisteredError(job_model.task_type)
        task = self._task_registry.get(job_model.task_type)

        now = self._clock.now()
        job_model.status = BatchJobStatus.RUNNING.value
        job_model.started_at = now
        self._session.flush()

        with LogContext.bind(job_id=job_id, correlation_id=job_model.correlation_id):
            logger.info(
                "batch_job_started",
                extra={"task_type": job_model.task_type, "job_name": job_model.job_name},
            )
            parameters = job_model.parameters or {}

            try:
                items = task.prepare_items(
                    job_id=job_id,
                    parameters=parameters,
                    session=self._session,
                    as_of=now,
                )
            except Exception as exc:
                logger.exception("batch_prepare_items_failed")
                return self._fail_job(job_model, f"prepare_items failed: {exc}", start_time)

            job_model.total_items = len(items)
            self._session.flush()

            succeeded = 0
            failed = 0
            skipped = 0
            item_results: list[BatchItemResult] = []

            for batch_item in items:
                savepoint = self._session.begin_nested()
                try:
                    result = task.execute_item(
                        item=batch_item,
                        parameters=parameters,
                        session=self._session,
                        as_of=now,
                    )
                    if result.status == BatchItemStatus.SUCCEEDED:
                        savepoint.commit()
                        succeeded += 1
                    elif result.status == BatchItemStatus.SKIPPED:
                        savepoint.rollback()
                        skipped += 1
                    else:
                        savepoint.rollback()
                        failed += 1
                        logger.warning(
                            "batch_item_failed",
                            extra={
                                "item_key": batch_item.item_key,
                                "error_code": result.error_code,
                                "error_message": result.error_message,
                            },
                        )
                    item_result = BatchItemResult(
                        item_index=batch_item.item_index,
                        item_key=batch_item.item_key,
                        status=result.status,
                        error_code=result.error_code,
                        error_message=result.error_message,
                        result_data=result.result_data,
                        completed_at=self._clock.now(),
                    )
                except Exception as exc:
                    savepoint.rollback()
                    failed += 1
                    logger.exception(
                        "batch_item_exception",
                        extra={"item_key": batch_item.item_key},
                    )
                    item_result = BatchItemResult(
                        item_index=batch_item.item_index,
                        item_key=batch_item.item_key,
                        status=BatchItemStatus.FAILED,
                        error_code="UNHANDLED_EXCEPTION",
                        error_message=str(exc),
                        completed_at=self._clock.now(),
                    )

                item_results.append(item_result)
                self._session.add(
                    BatchItemModel.from_result(item_result, job_id=job_id, actor_id=actor_id)
                )

            completed_at = self._clock.now()
            job_model.finish(succeeded, failed, skipped, completed_at)
            self._session.flush()

            total_duration = int((time.monotonic() - start_time) * 1000)
            logger.info(
                "batch_job_finished",
                extra={
                    "status": job_model.status,
                    "total_items": len(items),
                    "succeeded": succeeded,
                    "failed": failed,
                    "skipped": skipped,
                    "duration_ms": total_duration,
                },
            )

        return BatchRunResult(
            job_id=job_id,
            status=BatchJobStatus(job_model.status),
            total_items=len(items),
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
            item_results=tuple(item_results),
            started_at=job_model.started_at,
            completed_at=completed_at,
            duration_ms=total_duration,
            correlation_id=job_model.correlation_id,
        )

    # -------------------------------------------------------------------------
    # Cancel
    # -------------------------------------------------------------------------

    def cancel_job(self, job_id: int, reason: str, actor_id: UUID) -> BatchJob:
        """Cancel a PENDING or RUNNING job.

        Raises:
            BatchJobNotFoundError: If job_id does not exist.
            ValueError: If the job already finished.
        """
        job_model = self._session.execute(
            select(BatchJobModel)
            .where(BatchJobModel.id == job_id)
            .with_for_update()
        ).scalar_one_or_none()

        if job_model is None:
            raise BatchJobNotFoundError(job_id)

        if job_model.status not in (
            BatchJobStatus.PENDING.value,
            BatchJobStatus.RUNNING.value,
        ):
            raise ValueError(f"Cannot cancel job in status {job_model.status}")

        job_model.status = BatchJobStatus.CANCELLED.value
        job_model.completed_at = self._clock.now()
        job_model.error_summary = f"Cancelled: {reason}"
        job_model.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "batch_job_cancelled",
            extra={"batch_job_id": job_id, "reason": reason},
        )
        return job_model.to_dto()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_job(self, job_id: int) -> BatchJob:
        """Get a batch job by ID.

        Raises:
            BatchJobNotFoundError: If job_id does not exist.
        """
        model = self._session.get(BatchJobModel, job_id)
        if model is None:
            raise BatchJobNotFoundError(job_id)
        return model.to_dto()

    def get_job_items(self, job_id: int) -> tuple[BatchItemResult, ...]:
        """Get all item results for a batch job."""
        models = self._session.execute(
            select(BatchItemModel)
            .where(BatchItemModel.job_id == job_id)
            .order_by(BatchItemModel.item_index)
        ).scalars().all()
        return tuple(m.to_dto() for m in models)

    def pending_jobs(
        self,
        task_types: Iterable[str] | None = None,
        limit: int | None = None,
    ) -> tuple[BatchJob, ...]:
        """PENDING jobs in submission (seq) order."""
        query = (
            select(BatchJobModel)
            .where(BatchJobModel.status == BatchJobStatus.PENDING.value)
            .order_by(BatchJobModel.seq)
        )
        if task_types is not None:
            query = query.where(BatchJobModel.task_type.in_(tuple(task_types)))
        if limit is not None:
            query = query.limit(limit)
        return tuple(m.to_dto() for m in self._session.execute(query).scalars().all())

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _fail_job(
        self,
        job_model: BatchJobModel,
        error_summary: str,
        start_time: float,
    ) -> BatchRunResult:
        """Mark job as FAILED and return result."""
        job_model.status = BatchJobStatus.FAILED.value
        job_model.completed_at = self._clock.now()
        job_model.error_summary = error_summary
        self._session.flush()

        return BatchRunResult(
            job_id=job_model.id,
            status=BatchJobStatus.FAILED,
            total_items=0,
            succeeded=0,
            failed=0,
            skipped=0,
            started_at=job_model.started_at,
            completed_at=job_model.completed_at,
            duration_ms=int((time.monotonic() - start_time) * 1000),
            correlation_id=job_model.correlation_id,
        )
