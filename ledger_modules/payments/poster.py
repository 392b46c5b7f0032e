"""
Batch Poster (``ledger_modules.payments.poster``).

Responsibility
--------------
Runs a bulk payment request end to end: collects the per-contact
submissions, then either posts each one immediately or queues each one
under a single batch job, as the ``queue_payments`` setting decides.

Architecture position
---------------------
**Modules layer** -- orchestration over the ``PaymentStore`` Protocol.
Holds no SQL; every write goes through the store.

Invariants enforced
-------------------
* Collection (and therefore validation) completes before the first store
  call.  A malformed pair aborts the run with nothing written.
* Each contact is posted inside its own ``store.isolated()`` unit.  A
  failing contact is recorded in the report and the others still post.
* A queued run creates exactly one job, whatever the number of contacts.
* Unexpected (non-ledger, non-database) errors propagate.

Failure modes
-------------
* ``SourceStartRequiredError`` / ``InvalidAllocationError`` from collection.
* Per-contact ``LedgerKernelError`` / ``SQLAlchemyError`` become FAILED
  results in the ``BatchPostReport``.
"""

from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from ledger_kernel.exceptions import LedgerKernelError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_modules.payments.collector import collect_submissions
from ledger_modules.payments.config import QUEUE_PAYMENTS, setting_is_true
from ledger_modules.payments.models import (
    BatchPostReport,
    BulkPaymentRequest,
    ContactPostingResult,
    ContactSubmission,
    PostingContext,
    PostingStatus,
    QueuedJobStatus,
)
from ledger_modules.payments.sources import SourceAllocator
from ledger_modules.payments.store import PaymentStore

logger = get_logger("modules.payments.poster")


class BatchPoster:
    """
    Posts or queues the contacts of one bulk payment request.

    Contract:
        ``post()`` returns one ``ContactPostingResult`` per selected contact,
        in request order.

    Non-goals:
        Does NOT commit; the caller owns the transaction.
    """

    def __init__(self, store: PaymentStore):
        self._store = store

    def post(
        self,
        request: BulkPaymentRequest,
        allocator: SourceAllocator | None = None,
    ) -> BatchPostReport:
        submissions = collect_submissions(request, allocator)
        queued = setting_is_true(self._store.get_setting(QUEUE_PAYMENTS))
        context = request.context

        job: QueuedJobStatus | None = None
        if queued:
            job = self._store.create_job(
                job_name=f"bulk payments {request.payment_date.isoformat()}",
                idempotency_key=request.idempotency_key or uuid4().hex,
                parameters={
                    "account_class": request.account_class.value,
                    "payment_date": request.payment_date.isoformat(),
                    "currency": request.currency,
                    "contacts": len(submissions),
                },
            )

        logger.info(
            "bulk_payment_started",
            extra={
                "account_class": request.account_class.value,
                "queued": queued,
                "submissions": len(submissions),
                "batch_job_id": job.job_id if job is not None else None,
            },
        )

        results = []
        for position, submission in enumerate(submissions):
            with LogContext.bind(contact_id=submission.contact_id):
                results.append(self._post_one(submission, context, job, position))

        if job is not None:
            job = self._store.get_job_status(job.job_id)

        report = BatchPostReport(
            account_class=request.account_class,
            queued=queued,
            results=tuple(results),
            job=job,
        )
        logger.info(
            "bulk_payment_finished",
            extra={
                "queued": queued,
                "succeeded": report.succeeded,
                "failed": report.failed,
                "skipped": report.skipped,
            },
        )
        return report

    def _post_one(
        self,
        submission: ContactSubmission,
        context: PostingContext,
        job: QueuedJobStatus | None,
        position: int,
    ) -> ContactPostingResult:
        if not submission.allocations:
            logger.info("bulk_payment_contact_skipped", extra={"source": submission.source})
            return ContactPostingResult(
                contact_id=submission.contact_id,
                source=submission.source,
                status=PostingStatus.SKIPPED,
            )

        payment_id = None
        queued_id = None
        try:
            with self._store.isolated():
                if job is not None:
                    queued_id = self._store.queue_bulk_payment(
                        job.job_id, submission, context, position,
                    )
                else:
                    payment_id = self._store.post_bulk_payment(submission, context)
        except LedgerKernelError as exc:
            logger.warning(
                "bulk_payment_contact_failed",
                extra={"error_code": exc.code, "error_message": str(exc)},
            )
            return _failed(submission, exc.code, str(exc))
        except SQLAlchemyError as exc:
            logger.exception("bulk_payment_contact_database_error")
            return _failed(submission, "DATABASE_ERROR", str(exc))

        return ContactPostingResult(
            contact_id=submission.contact_id,
            source=submission.source,
            status=PostingStatus.QUEUED if job is not None else PostingStatus.POSTED,
            total=submission.total,
            payment_id=payment_id,
            queued_id=queued_id,
        )


def _failed(submission: ContactSubmission, code: str, message: str) -> ContactPostingResult:
    return ContactPostingResult(
        contact_id=submission.contact_id,
        source=submission.source,
        status=PostingStatus.FAILED,
        total=submission.total,
        error_code=code,
        error_message=message,
    )
