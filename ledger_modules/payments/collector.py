"""
Payment Batch Collector (``ledger_modules.payments.collector``).

Responsibility
--------------
Turns the selected contacts of a ``BulkPaymentRequest`` into one
``ContactSubmission`` each: the contact's source identifier plus the
nonzero ``{invoice, amount}`` pairs to pay.

Architecture position
---------------------
**Modules layer** -- pure.  Runs before anything is read from or written
to the store, so a malformed pair fails the whole run without side effects.

Invariants enforced
-------------------
* ``ALL`` pays each invoice's net amount; ``SOME`` pays the entered amount.
* Empty and zero amounts are left out.
* Amounts are rounded to posting precision before they are paired.
* Unselected contacts produce no submission and consume no source number.
"""

from decimal import Decimal

from ledger_kernel.db.types import round_money
from ledger_kernel.exceptions import InvalidAllocationError
from ledger_kernel.logging_config import get_logger
from ledger_modules.payments.models import (
    ZERO,
    BulkPaymentRequest,
    ContactSubmission,
    InvoiceSelection,
    PaymentAllocation,
    PaymentMode,
)
from ledger_modules.payments.sources import SourceAllocator

logger = get_logger("modules.payments.collector")


def resolve_amount(mode: PaymentMode, invoice: InvoiceSelection) -> Decimal | None:
    """Amount to pay on ``invoice``, or None when it is empty or zero."""
    amount = invoice.net if mode is PaymentMode.ALL else invoice.payment
    if amount is None:
        return None
    amount = round_money(amount)
    if amount == ZERO:
        return None
    return amount


def collect_submissions(
    request: BulkPaymentRequest,
    allocator: SourceAllocator | None = None,
) -> tuple[ContactSubmission, ...]:
    """
    One submission per selected contact, in request order.

    A contact whose invoices all resolve to nothing yields a submission with
    no allocations; the poster reports it as skipped.

    Raises:
        SourceStartRequiredError: Payable run without ``source_start``.
        InvalidAllocationError: An invoice id or amount is malformed.
    """
    if allocator is None:
        allocator = SourceAllocator(request.account_class, request.source_start)

    submissions: list[ContactSubmission] = []
    for contact in request.contacts:
        if not contact.selected:
            allocator.clear(contact.contact_id)
            continue

        source = allocator.next_for(contact.contact_id)
        if contact.source is not None:
            source = contact.source

        allocations: list[PaymentAllocation] = []
        for invoice in contact.invoices:
            amount = resolve_amount(contact.mode, invoice)
            if amount is None:
                continue
            try:
                allocations.append(PaymentAllocation(invoice.invoice_id, amount))
            except InvalidAllocationError as exc:
                raise InvalidAllocationError(
                    contact.contact_id, invoice.invoice_id, amount, exc.detail,
                ) from exc

        submissions.append(
            ContactSubmission(
                contact_id=contact.contact_id,
                source=source,
                allocations=tuple(allocations),
            )
        )

    logger.info(
        "payment_batch_collected",
        extra={
            "account_class": request.account_class.value,
            "contacts": len(request.contacts),
            "submissions": len(submissions),
            "allocations": sum(len(s.allocations) for s in submissions),
        },
    )
    return tuple(submissions)
