"""
ledger_batch.domain.types -- Pure frozen dataclasses for batch jobs.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

A job groups the work queued by one bulk payment run; the job's status is
what callers poll while the worker processes it ("queued" is PENDING).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class BatchJobStatus(str, Enum):
    """Job-level lifecycle status."""

    PENDING = "pending"  # Queued, not yet picked up by the worker
    RUNNING = "running"
    COMPLETED = "completed"  # Every item succeeded
    FAILED = "failed"  # No item succeeded
    CANCELLED = "cancelled"
    PARTIALLY_COMPLETED = "partially_completed"

    @property
    def is_terminal(self) -> bool:
        return self not in (BatchJobStatus.PENDING, BatchJobStatus.RUNNING)


class BatchItemStatus(str, Enum):
    """Per-item status within a batch job."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class BatchJob:
    """Immutable snapshot of a batch job.

    ``idempotency_key`` is UNIQUE; ``seq`` orders jobs for the worker.
    """

    job_id: int
    job_name: str
    task_type: str  # Registered task key, e.g. "payments.bulk_post"
    status: BatchJobStatus
    idempotency_key: str
    parameters: dict[str, Any] = field(default_factory=dict)
    total_items: int = 0
    succeeded_items: int = 0
    failed_items: int = 0
    skipped_items: int = 0
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_by: UUID | None = None
    correlation_id: str | None = None
    error_summary: str | None = None
    seq: int | None = None


@dataclass(frozen=True)
class BatchItemResult:
    """Immutable result of processing a single batch item in its SAVEPOINT."""

    item_index: int
    item_key: str  # Business identifier, e.g. "contact:42"
    status: BatchItemStatus
    error_code: str | None = None
    error_message: str | None = None
    result_data: dict[str, Any] | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class BatchRunResult:
    """Result of executing a complete batch job."""

    job_id: int
    status: BatchJobStatus
    total_items: int
    succeeded: int
    failed: int
    skipped: int
    item_results: tuple[BatchItemResult, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    correlation_id: str | None = None
