"""
Payment Service (``ledger_modules.payments.service``).

Responsibility
--------------
The facade the payment screens call.  One method per back-end routine:
screen metadata, contact, account and invoice listings, payment search,
bulk and single posting, printable detail, reversals, overpayment reads
and queued job status.

Architecture position
---------------------
**Modules layer** -- service.  Composes ``BatchPoster``, ``ReversalHandler``
and ``SourceAllocator`` over one ``PaymentStore``.  Request-scoped: build
one per request with ``from_session()``.

Invariants enforced
-------------------
* The service never commits.  The caller owns the transaction.
* Dates default from the injected ``Clock``, never the wall clock.
"""

from dataclasses import replace
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import VoucherBatchNotFoundError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_modules.payments.models import (
    AccountClass,
    BatchPostReport,
    BulkPaymentRequest,
    Contact,
    ContactBillingInfo,
    ContactInvoiceFilter,
    ContactInvoices,
    EntityCreditAccount,
    Invoice,
    LedgerAccount,
    Overpayment,
    OverpaymentEntity,
    PaymentDetailData,
    PaymentMetadata,
    PaymentRecord,
    PaymentSearchCriteria,
    PaymentSummary,
    PrintablePayment,
    QueuedJobStatus,
    SinglePaymentData,
    SinglePaymentRequest,
)
from ledger_modules.payments.poster import BatchPoster
from ledger_modules.payments.reversal import ReversalHandler
from ledger_modules.payments.sources import SourceAllocator
from ledger_modules.payments.store import PaymentStore, SqlPaymentStore

logger = get_logger("modules.payments.service")

UPDATE_PAYMENTS = "update_payments"


class PaymentService:
    """
    Payment workflow facade.

    Contract:
        Every method either returns a frozen DTO or raises a typed
        ``LedgerKernelError``.

    Non-goals:
        Does NOT render screens or parse field bags; see ``forms``.
    """

    def __init__(self, store: PaymentStore, clock: Clock | None = None):
        self._store = store
        self._clock = clock or SystemClock()
        self._poster = BatchPoster(store)
        self._reversals = ReversalHandler(store)

    @classmethod
    def from_session(
        cls,
        session: Session,
        actor_id: UUID,
        clock: Clock | None = None,
    ) -> "PaymentService":
        """Build the service on a ``SqlPaymentStore`` acting as ``actor_id``."""
        clock = clock or SystemClock()
        return cls(SqlPaymentStore(session, actor_id, clock=clock), clock=clock)

    # -------------------------------------------------------------------------
    # Screen data
    # -------------------------------------------------------------------------

    def get_metadata(
        self,
        account_class: AccountClass,
        batch_id: int | None = None,
    ) -> PaymentMetadata:
        """
        Defaults shown on every payment screen.

        The payment date is the voucher batch's default date when a batch is
        given, today otherwise.  The default currency is listed first.

        Raises:
            VoucherBatchNotFoundError: Unknown ``batch_id``.
        """
        batch = None
        if batch_id is not None:
            batch = self._store.get_voucher_batch(batch_id)
            if batch is None:
                raise VoucherBatchNotFoundError(batch_id)

        default_currency = self._store.get_default_currency() or ""
        currencies = [
            c for c in self._store.list_open_currencies(account_class)
            if c != default_currency
        ]
        if default_currency:
            currencies.insert(0, default_currency)

        return PaymentMetadata(
            account_class=account_class,
            default_currency=default_currency,
            currencies=tuple(currencies),
            payment_date=batch.default_date if batch is not None else self._clock.today(),
            batch=batch,
        )

    def search(self, criteria: PaymentSearchCriteria) -> tuple[PaymentSummary, ...]:
        """Payments matching ``criteria``; an unknown account number matches nothing."""
        if criteria.meta_number and criteria.contact_id is None:
            contact_id = self._store.find_contact_id(criteria.meta_number, criteria.account_class)
            if contact_id is None:
                return ()
            criteria = replace(criteria, contact_id=contact_id)
        return self._store.search_payments(criteria)

    def open_accounts(self, account_class: AccountClass) -> tuple[Contact, ...]:
        return self._store.list_open_accounts(account_class)

    def all_accounts(self, account_class: AccountClass) -> tuple[Contact, ...]:
        return self._store.list_all_accounts(account_class)

    def open_invoices(
        self,
        account_class: AccountClass,
        contact_id: int,
        currency: str | None = None,
    ) -> tuple[Invoice, ...]:
        return self._store.list_open_invoices(account_class, contact_id, currency)

    def open_invoice(
        self,
        account_class: AccountClass,
        contact_id: int,
        invnumber: str,
    ) -> Invoice | None:
        return self._store.get_open_invoice(account_class, contact_id, invnumber)

    def contact_invoices(
        self, invoice_filter: ContactInvoiceFilter,
    ) -> tuple[ContactInvoices, ...]:
        return self._store.list_contact_invoices(invoice_filter)

    def cash_accounts(self, account_class: AccountClass) -> tuple[LedgerAccount, ...]:
        return self._store.list_cash_accounts(account_class)

    def overpayment_accounts(self, account_class: AccountClass) -> tuple[LedgerAccount, ...]:
        return self._store.list_overpayment_accounts(account_class)

    def billing_info(self, account_class: AccountClass, contact_id: int) -> ContactBillingInfo:
        return self._store.get_billing_info(account_class, contact_id)

    def entity_credit_accounts(
        self,
        account_class: AccountClass,
        contact_id: int | None = None,
    ) -> tuple[EntityCreditAccount, ...]:
        return self._store.list_entity_credit_accounts(account_class, contact_id)

    def single_payment_data(
        self,
        account_class: AccountClass,
        contact_id: int,
        currency: str | None = None,
        batch_id: int | None = None,
    ) -> SinglePaymentData:
        """
        The single payment screen for one contact.

        Invoices are listed in ``currency``, or in the default currency when
        none is given.

        Raises:
            ContactNotFoundError: No such contact in ``account_class``.
            VoucherBatchNotFoundError: Unknown ``batch_id``.
        """
        billing = self._store.get_billing_info(account_class, contact_id)
        metadata = self.get_metadata(account_class, batch_id)
        (account,) = self._store.list_entity_credit_accounts(account_class, contact_id)
        return SinglePaymentData(
            metadata=metadata,
            account=account,
            billing=billing,
            invoices=self._store.list_open_invoices(
                account_class, contact_id, currency or metadata.default_currency or None,
            ),
            cash_accounts=self._store.list_cash_accounts(account_class),
            overpayment_accounts=self._store.list_overpayment_accounts(account_class),
        )

    def payment_detail_data(
        self,
        invoice_filter: ContactInvoiceFilter,
        source_start: str | None = None,
        batch_id: int | None = None,
        action: str | None = None,
        selected_ids: Iterable[int] = (),
    ) -> PaymentDetailData:
        """
        The bulk payment screen: every contact with open invoices, each with
        the source it would be paid under.

        With ``action == "update_payments"`` only the contacts in
        ``selected_ids`` are numbered; the others show an empty source.

        Raises:
            SourceStartRequiredError: Payable class without ``source_start``.
        """
        allocator = SourceAllocator(invoice_filter.account_class, source_start)
        metadata = self.get_metadata(invoice_filter.account_class, batch_id)
        selected = set(selected_ids)
        updating = action == UPDATE_PAYMENTS

        contacts = []
        for entry in self._store.list_contact_invoices(invoice_filter):
            contact_id = entry.contact.id
            if updating and contact_id not in selected:
                source = allocator.clear(contact_id)
            else:
                source = allocator.next_for(contact_id)
            contacts.append(replace(entry, source=source))

        logger.info(
            "payment_detail_listed",
            extra={
                "account_class": invoice_filter.account_class.value,
                "contacts": len(contacts),
                "last_source": allocator.last_assigned,
            },
        )
        return PaymentDetailData(
            metadata=metadata,
            contacts=tuple(contacts),
            source_start=source_start,
        )

    # -------------------------------------------------------------------------
    # Posting
    # -------------------------------------------------------------------------

    def post_bulk(self, request: BulkPaymentRequest) -> BatchPostReport:
        """Post or queue a bulk run.  See ``BatchPoster.post``."""
        return self._poster.post(request)

    def post_payment(self, request: SinglePaymentRequest) -> PaymentRecord:
        """Post one payment, keeping any overpayment as credit."""
        with LogContext.bind(contact_id=request.contact_id):
            with self._store.isolated():
                payment_id = self._store.post_payment(request)
            return self._store.get_payment(payment_id)

    def printable_info(self, payment_id: int) -> PrintablePayment:
        return PrintablePayment(
            header=self._store.get_payment_header(payment_id),
            lines=self._store.list_payment_lines(payment_id),
        )

    def job_status(self, job_id: int) -> QueuedJobStatus:
        return self._store.get_job_status(job_id)

    # -------------------------------------------------------------------------
    # Reversal and overpayments
    # -------------------------------------------------------------------------

    def reverse_payment(self, payment_id: int) -> PaymentRecord:
        return self._reversals.reverse_payment(payment_id)

    def reverse_overpayment(self, payment_id: int) -> PaymentRecord:
        return self._reversals.reverse_overpayment(payment_id)

    def open_overpayment_entities(
        self, account_class: AccountClass,
    ) -> tuple[OverpaymentEntity, ...]:
        return self._reversals.open_overpayment_entities(account_class)

    def unused_overpayments(
        self, account_class: AccountClass, contact_id: int | None = None,
    ) -> tuple[Overpayment, ...]:
        return self._reversals.unused_overpayments(account_class, contact_id)

    def available_overpayment_amount(
        self, account_class: AccountClass, contact_id: int,
    ) -> Decimal:
        return self._reversals.available_overpayment_amount(account_class, contact_id)
