"""
Payment Domain Models (``ledger_modules.payments.models``).

Responsibility
--------------
Frozen value objects for the payment workflow: contacts and their open
invoices, the typed requests that replace the screen's loose field bag, the
per-contact submissions produced by the collector, posted payments,
overpayments, and the report returned by a bulk run.

Architecture position
---------------------
**Modules layer** -- pure data definitions.  No I/O, no database.  These
objects flow *into* and *out of* ``PaymentStore`` and ``PaymentService``.

Invariants enforced
-------------------
* Monetary fields are ``Decimal``, never ``float``.
* ``PaymentAllocation`` rejects non-positive invoice ids and zero amounts.
* ``SinglePaymentRequest`` rejects a payment with nothing to pay.

Failure modes
-------------
* ``InvalidAllocationError`` / ``PaymentValidationError`` raised in
  ``__post_init__``.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from ledger_kernel.db.types import format_money
from ledger_kernel.exceptions import InvalidAllocationError, PaymentValidationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("modules.payments.models")

ZERO = Decimal("0")
ONE = Decimal("1")


class AccountClass(int, Enum):
    """Which side of the ledger a payment settles."""
    PAYABLE = 1  # vendor payments, numbered with sources
    RECEIVABLE = 2  # customer receipts

    @property
    def numbers_sources(self) -> bool:
        return self is AccountClass.PAYABLE

    @property
    def link_prefix(self) -> str:
        """Prefix of the chart link roles for this side (``AP_paid``, ``AR_paid``)."""
        return "AP" if self is AccountClass.PAYABLE else "AR"


class PaymentMode(Enum):
    """How the amount of each listed invoice is chosen."""
    ALL = "all"  # pay every invoice's net amount
    SOME = "some"  # pay the amount entered per invoice


class PostingStatus(Enum):
    """Outcome of one contact within a bulk run."""
    POSTED = "posted"
    QUEUED = "queued"
    FAILED = "failed"
    SKIPPED = "skipped"


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Contact:
    """A customer or vendor credit account."""
    id: int
    name: str
    meta_number: str
    account_class: AccountClass
    currency: str | None = None


@dataclass(frozen=True)
class Invoice:
    """An AR or AP transaction that can be paid.

    ``due`` is what remains of the gross amount; ``net`` is what settles it
    today once the early-payment discount is taken.
    """
    id: int
    contact_id: int
    invnumber: str
    transdate: date
    amount: Decimal
    currency: str
    paid: Decimal = ZERO
    discount: Decimal = ZERO
    ar_ap_account: str | None = None

    @property
    def due(self) -> Decimal:
        return self.amount - self.paid

    @property
    def net(self) -> Decimal:
        return self.amount - self.discount - self.paid


@dataclass(frozen=True)
class ContactInvoices:
    """A contact with its open invoices, as listed on the bulk payment screen."""
    contact: Contact
    invoices: tuple[Invoice, ...] = ()
    source: str = ""

    @property
    def total_due(self) -> Decimal:
        return sum((inv.due for inv in self.invoices), ZERO)


@dataclass(frozen=True)
class VoucherBatch:
    """A voucher batch that payments can be posted into."""
    id: int
    control_code: str
    description: str | None
    default_date: date
    batch_class: str = "payment"


@dataclass(frozen=True)
class LedgerAccount:
    """A chart account that payments or overpayments can be booked to."""
    id: int
    accno: str
    description: str


@dataclass(frozen=True)
class ContactBillingInfo:
    """Name and address printed on a payment for one contact."""
    contact_id: int
    name: str
    meta_number: str
    address: str | None = None
    city: str | None = None
    country: str | None = None
    tax_id: str | None = None


@dataclass(frozen=True)
class EntityCreditAccount:
    """A contact with its open balance and the credit it can still use."""
    contact: Contact
    open_balance: Decimal = ZERO
    available_overpayment: Decimal = ZERO


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentAllocation:
    """One ``{invoice_id, amount}`` pair of a payment."""
    invoice_id: int
    amount: Decimal

    def __post_init__(self):
        if isinstance(self.invoice_id, bool) or not isinstance(self.invoice_id, int) \
                or self.invoice_id <= 0:
            raise InvalidAllocationError(
                None, self.invoice_id, self.amount, "invoice id must be a positive integer",
            )
        if not isinstance(self.amount, Decimal) or not self.amount.is_finite():
            raise InvalidAllocationError(
                None, self.invoice_id, self.amount, "amount must be a finite Decimal",
            )
        if self.amount == ZERO:
            raise InvalidAllocationError(
                None, self.invoice_id, self.amount, "amount must be nonzero",
            )

    def as_pair(self) -> str:
        """Legacy display form, e.g. ``{10,50.00}``."""
        return f"{{{self.invoice_id},{format_money(self.amount)}}}"


@dataclass(frozen=True)
class InvoiceSelection:
    """An invoice row of the bulk screen with the amounts shown/entered on it."""
    invoice_id: int
    net: Decimal | None = None
    payment: Decimal | None = None


@dataclass(frozen=True)
class ContactSelection:
    """A contact block of the bulk screen.

    Only ``selected`` contacts are paid.  ``source`` overrides the
    allocated source identifier when given.
    """
    contact_id: int
    selected: bool = True
    mode: PaymentMode = PaymentMode.SOME
    invoices: tuple[InvoiceSelection, ...] = ()
    source: str | None = None


@dataclass(frozen=True)
class PostingContext:
    """Header values shared by every payment of one bulk run."""
    account_class: AccountClass
    payment_date: date
    currency: str
    exchangerate: Decimal = ONE
    batch_id: int | None = None
    cash_account: str | None = None
    ar_ap_account: str | None = None


@dataclass(frozen=True)
class BulkPaymentRequest:
    """Everything a bulk payment run needs."""
    account_class: AccountClass
    payment_date: date
    currency: str
    contacts: tuple[ContactSelection, ...] = ()
    source_start: str | None = None
    batch_id: int | None = None
    exchangerate: Decimal = ONE
    cash_account: str | None = None
    ar_ap_account: str | None = None
    idempotency_key: str | None = None

    @property
    def context(self) -> PostingContext:
        return PostingContext(
            account_class=self.account_class,
            payment_date=self.payment_date,
            currency=self.currency,
            exchangerate=self.exchangerate,
            batch_id=self.batch_id,
            cash_account=self.cash_account,
            ar_ap_account=self.ar_ap_account,
        )

    @property
    def selected_contacts(self) -> tuple[ContactSelection, ...]:
        return tuple(c for c in self.contacts if c.selected)


@dataclass(frozen=True)
class ContactSubmission:
    """One contact's aggregated payment, ready to post or queue."""
    contact_id: int
    source: str
    allocations: tuple[PaymentAllocation, ...] = ()

    @property
    def total(self) -> Decimal:
        return sum((a.amount for a in self.allocations), ZERO)

    def pairs(self) -> tuple[str, ...]:
        return tuple(a.as_pair() for a in self.allocations)


@dataclass(frozen=True)
class SinglePaymentRequest:
    """A payment for one contact entered on the single payment screen."""
    contact_id: int
    account_class: AccountClass
    payment_date: date
    currency: str
    allocations: tuple[PaymentAllocation, ...] = ()
    overpayment: Decimal = ZERO
    source: str = ""
    exchangerate: Decimal = ONE
    batch_id: int | None = None
    cash_account: str | None = None
    notes: str | None = None

    def __post_init__(self):
        if self.overpayment < ZERO:
            raise PaymentValidationError("overpayment", "cannot be negative")
        if not self.allocations and self.overpayment == ZERO:
            raise PaymentValidationError("allocations", "nothing to pay")
        if self.exchangerate <= ZERO:
            raise PaymentValidationError("exchangerate", "must be positive")
        logger.debug(
            "single_payment_request_created",
            extra={
                "contact_id": self.contact_id,
                "line_count": len(self.allocations),
                "overpayment": str(self.overpayment),
                "currency": self.currency,
            },
        )

    @property
    def total(self) -> Decimal:
        return sum((a.amount for a in self.allocations), ZERO) + self.overpayment


@dataclass(frozen=True)
class PaymentSearchCriteria:
    """Filters of the payment search screen."""
    account_class: AccountClass
    contact_id: int | None = None
    meta_number: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    source: str | None = None
    currency: str | None = None
    cash_account: str | None = None


@dataclass(frozen=True)
class ContactInvoiceFilter:
    """Filters of the bulk payment screen."""
    account_class: AccountClass
    currency: str | None = None
    ar_ap_account: str | None = None
    meta_number: str | None = None


@dataclass(frozen=True)
class OverpaymentReversal:
    """Arguments of an overpayment reversal, copied from the original payment."""
    payment_id: int
    post_date: date
    batch_id: int | None
    account_class: AccountClass
    exchangerate: Decimal
    currency: str


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentRecord:
    """A posted payment."""
    id: int
    contact_id: int
    account_class: AccountClass
    payment_date: date
    currency: str
    exchangerate: Decimal
    source: str
    total: Decimal
    lines: tuple[PaymentAllocation, ...] = ()
    overpayment: Decimal = ZERO
    batch_id: int | None = None
    cash_account: str | None = None
    ar_ap_account: str | None = None
    notes: str | None = None
    reversal_of_id: int | None = None
    reversed_by_id: int | None = None

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None

    @property
    def is_reversed(self) -> bool:
        return self.reversed_by_id is not None


@dataclass(frozen=True)
class PaymentSummary:
    """A row of the payment search result."""
    payment_id: int
    contact_id: int
    contact_name: str
    meta_number: str
    source: str
    payment_date: date
    amount: Decimal
    currency: str
    batch_id: int | None = None
    reversed: bool = False


@dataclass(frozen=True)
class PaymentHeader:
    """Header block of a printable payment."""
    payment_id: int
    contact_id: int
    contact_name: str
    meta_number: str
    account_class: AccountClass
    source: str
    payment_date: date
    currency: str
    exchangerate: Decimal
    amount: Decimal
    cash_account: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PaymentLineInfo:
    """An invoice line of a printable payment."""
    invoice_id: int
    invnumber: str
    transdate: date
    invoice_amount: Decimal
    paid_amount: Decimal
    due: Decimal


@dataclass(frozen=True)
class PrintablePayment:
    header: PaymentHeader
    lines: tuple[PaymentLineInfo, ...] = ()


@dataclass(frozen=True)
class PaymentMetadata:
    """Defaults shown on every payment screen."""
    account_class: AccountClass
    default_currency: str
    currencies: tuple[str, ...]
    payment_date: date
    batch: VoucherBatch | None = None


@dataclass(frozen=True)
class PaymentDetailData:
    """Everything the bulk payment screen lists."""
    metadata: PaymentMetadata
    contacts: tuple[ContactInvoices, ...] = ()
    source_start: str | None = None


@dataclass(frozen=True)
class SinglePaymentData:
    """Everything the single payment screen shows for one contact."""
    metadata: PaymentMetadata
    account: EntityCreditAccount
    billing: ContactBillingInfo
    invoices: tuple[Invoice, ...] = ()
    cash_accounts: tuple[LedgerAccount, ...] = ()
    overpayment_accounts: tuple[LedgerAccount, ...] = ()


@dataclass(frozen=True)
class Overpayment:
    """Credit kept from a payment that exceeded the invoices it settled."""
    id: int
    payment_id: int
    contact_id: int
    account_class: AccountClass
    amount: Decimal
    available: Decimal
    currency: str
    payment_date: date
    reversal_payment_id: int | None = None

    @property
    def is_unused(self) -> bool:
        return self.available == self.amount


@dataclass(frozen=True)
class OverpaymentEntity:
    """A contact holding unused overpayments."""
    contact_id: int
    name: str
    meta_number: str
    available: Decimal


@dataclass(frozen=True)
class QueuedJobStatus:
    """Progress of a queued bulk run, as reported by the job record."""
    job_id: int
    status: str
    total_items: int = 0
    succeeded_items: int = 0
    failed_items: int = 0
    error_summary: str | None = None


@dataclass(frozen=True)
class ContactPostingResult:
    """What happened to one contact of a bulk run."""
    contact_id: int
    source: str
    status: PostingStatus
    total: Decimal = ZERO
    payment_id: int | None = None
    queued_id: int | None = None
    error_code: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class BatchPostReport:
    """Result of a bulk run: one entry per selected contact."""
    account_class: AccountClass
    queued: bool
    results: tuple[ContactPostingResult, ...] = ()
    job: QueuedJobStatus | None = None

    @property
    def job_id(self) -> int | None:
        return self.job.job_id if self.job is not None else None

    @property
    def succeeded(self) -> int:
        return sum(
            1 for r in self.results
            if r.status in (PostingStatus.POSTED, PostingStatus.QUEUED)
        )

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status is PostingStatus.FAILED)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.status is PostingStatus.SKIPPED)

    @property
    def failures(self) -> dict[int, str]:
        """Failure reason per contact id."""
        return {
            r.contact_id: f"{r.error_code}: {r.error_message}"
            for r in self.results
            if r.status is PostingStatus.FAILED
        }
