"""
Payments Module (``ledger_modules.payments``).

Responsibility
--------------
The payment workflow of the ledger: bulk payment runs over many contacts
(posted immediately or queued for the worker), per-contact source
numbering, single payments with overpayment credit, payment search and
printable detail, and reversal of payments and overpayments.

Architecture position
---------------------
**Modules layer** -- ``forms`` parses screen fields into the frozen requests
of ``models``; ``PaymentService`` drives ``collector``, ``sources``,
``poster`` and ``reversal`` over the ``PaymentStore`` interface, which
``SqlPaymentStore`` implements on the ``orm`` models.

Failure modes
-------------
* Validation errors abort an operation before anything is written.
* Store errors on one contact of a bulk run are reported for that contact
  only; the others still post.
"""

from ledger_modules.payments.models import (
    AccountClass,
    BatchPostReport,
    BulkPaymentRequest,
    Contact,
    ContactPostingResult,
    ContactSelection,
    ContactSubmission,
    Invoice,
    InvoiceSelection,
    PaymentAllocation,
    PaymentMode,
    PaymentRecord,
    PostingStatus,
    SinglePaymentRequest,
)
from ledger_modules.payments.collector import collect_submissions, resolve_amount
from ledger_modules.payments.sources import SourceAllocator, allocate_sources
from ledger_modules.payments.poster import BatchPoster
from ledger_modules.payments.reversal import ReversalHandler
from ledger_modules.payments.store import PaymentStore, SqlPaymentStore
from ledger_modules.payments.service import PaymentService

__all__ = [
    "AccountClass",
    "BatchPostReport",
    "BulkPaymentRequest",
    "Contact",
    "ContactPostingResult",
    "ContactSelection",
    "ContactSubmission",
    "Invoice",
    "InvoiceSelection",
    "PaymentAllocation",
    "PaymentMode",
    "PaymentRecord",
    "PostingStatus",
    "SinglePaymentRequest",
    "collect_submissions",
    "resolve_amount",
    "SourceAllocator",
    "allocate_sources",
    "BatchPoster",
    "ReversalHandler",
    "PaymentStore",
    "SqlPaymentStore",
    "PaymentService",
]
