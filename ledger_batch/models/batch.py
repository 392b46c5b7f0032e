"""
ORM models for queued payment jobs.

Contract:
    ``BatchJobModel`` is one queued bulk payment run; ``BatchItemModel`` is
    the outcome of one contact within it.  The job row owns the status
    callers poll, and ``finish()`` is the only place that status is derived
    from the item counts.

Architecture: ledger_batch/models.  Imports from ledger_kernel.db.base only.

Invariants enforced:
    - ``idempotency_key`` is UNIQUE, so a run is queued at most once.
    - ``seq`` comes from SequenceService and orders jobs for the worker.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from ledger_batch.domain.types import BatchItemResult, BatchJob


class BatchJobModel(TrackedBase):
    """A queued run and its running totals."""

    __tablename__ = "batch_jobs"

    __table_args__ = (
        Index("ix_batch_jobs_status_seq", "status", "seq"),
    )

    job_name: Mapped[str] = mapped_column(String(200), nullable=False)
    task_type: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    parameters: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    seq: Mapped[int | None] = mapped_column(nullable=True, unique=True)
    correlation_id: Mapped[str | None] = mapped_column(String(200), nullable=True)

    total_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    succeeded_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[list["BatchItemModel"]] = relationship(
        "BatchItemModel", back_populates="job", order_by="BatchItemModel.item_index",
    )

    def finish(self, succeeded: int, failed: int, skipped: int, completed_at: datetime) -> None:
        """Record the item counts and derive the terminal status from them."""
        from ledger_batch.domain.types import BatchJobStatus

        self.succeeded_items = succeeded
        self.failed_items = failed
        self.skipped_items = skipped
        self.completed_at = completed_at
        if failed == 0 and skipped == 0:
            self.status = BatchJobStatus.COMPLETED.value
        elif succeeded == 0 and skipped == 0:
            self.status = BatchJobStatus.FAILED.value
        else:
            self.status = BatchJobStatus.PARTIALLY_COMPLETED.value
        if failed:
            self.error_summary = f"{failed} item(s) failed"

    def to_dto(self) -> BatchJob:
        from ledger_batch.domain.types import BatchJob, BatchJobStatus

        return BatchJob(
            job_id=self.id,
            job_name=self.job_name,
            task_type=self.task_type,
            status=BatchJobStatus(self.status),
            idempotency_key=self.idempotency_key,
            parameters=self.parameters or {},
            total_items=self.total_items,
            succeeded_items=self.succeeded_items,
            failed_items=self.failed_items,
            skipped_items=self.skipped_items,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            created_by=self.created_by_id,
            correlation_id=self.correlation_id,
            error_summary=self.error_summary,
            seq=self.seq,
        )

    def __repr__(self) -> str:
        return f"<BatchJobModel {self.id} {self.task_type} {self.status}>"


class BatchItemModel(TrackedBase):
    """Outcome of one item (one contact) of a job."""

    __tablename__ = "batch_items"

    __table_args__ = (
        Index("ix_batch_items_job_index", "job_id", "item_index"),
    )

    job_id: Mapped[int] = mapped_column(
        ForeignKey("batch_jobs.id", ondelete="CASCADE"), nullable=False,
    )
    item_index: Mapped[int] = mapped_column(Integer, nullable=False)
    item_key: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    result_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    job: Mapped[BatchJobModel] = relationship(BatchJobModel, back_populates="items")

    @classmethod
    def from_result(cls, result: BatchItemResult, job_id: int, actor_id: UUID) -> BatchItemModel:
        return cls(
            job_id=job_id,
            item_index=result.item_index,
            item_key=result.item_key,
            status=result.status.value,
            error_code=result.error_code,
            error_message=result.error_message,
            result_data=result.result_data,
            created_at=result.completed_at,
            created_by_id=actor_id,
        )

    def to_dto(self) -> BatchItemResult:
        from ledger_batch.domain.types import BatchItemResult, BatchItemStatus

        return BatchItemResult(
            item_index=self.item_index,
            item_key=self.item_key,
            status=BatchItemStatus(self.status),
            error_code=self.error_code,
            error_message=self.error_message,
            result_data=self.result_data,
            completed_at=self.created_at,
        )
