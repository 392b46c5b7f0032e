"""
Batch tasks: payments module (queued bulk posting).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.exceptions import LedgerKernelError
from ledger_kernel.logging_config import LogContext

from ledger_batch.domain.types import BatchItemStatus
from ledger_batch.tasks.base import BatchItemInput, BatchTaskResult


class PaymentBulkPostTask:
    """Batch task that posts the contacts queued by a bulk payment run."""

    @property
    def task_type(self) -> str:
        return "payments.bulk_post"

    @property
    def description(self) -> str:
        return "Post queued bulk payments, one item per contact"

    def prepare_items(
        self,
        job_id: int,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        from ledger_modules.payments.orm import QueuedPaymentModel
        from ledger_modules.payments.store import QUEUED

        rows = session.execute(
            select(QueuedPaymentModel)
            .where(
                QueuedPaymentModel.job_id == job_id,
                QueuedPaymentModel.status == QUEUED,
            )
            .order_by(QueuedPaymentModel.position, QueuedPaymentModel.id)
        ).scalars().all()

        return tuple(
            BatchItemInput(
                item_index=i,
                item_key=f"contact:{row.contact_id}",
                payload={"queued_payment_id": row.id, "contact_id": row.contact_id},
            )
            for i, row in enumerate(rows)
        )

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        from ledger_modules.payments.orm import QueuedPaymentModel
        from ledger_modules.payments.store import SqlPaymentStore

        queued_id = item.payload["queued_payment_id"]
        row = session.get(QueuedPaymentModel, queued_id)
        if row is None:
            return BatchTaskResult(
                status=BatchItemStatus.FAILED,
                error_code="QUEUED_PAYMENT_NOT_FOUND",
                error_message=f"Queued payment not found: {queued_id}",
            )

        # Posted as the user who queued it.
        store = SqlPaymentStore(session, row.created_by_id)
        with LogContext.bind(contact_id=row.contact_id):
            try:
                payment_id = store.post_queued_payment(queued_id)
            except LedgerKernelError as exc:
                return BatchTaskResult(
                    status=BatchItemStatus.FAILED,
                    error_code=exc.code,
                    error_message=str(exc),
                )

        return BatchTaskResult(
            status=BatchItemStatus.SUCCEEDED,
            result_data={
                "queued_payment_id": queued_id,
                "payment_id": payment_id,
                "contact_id": row.contact_id,
            },
        )
