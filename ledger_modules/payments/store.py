"""
Payment Store (``ledger_modules.payments.store``).

Responsibility
--------------
The persistence interface of the payment workflow.  ``PaymentStore`` names
one method per database routine the workflow depends on (settings,
listings, posting, queuing, jobs, reversals, overpayments, printable
detail); ``SqlPaymentStore`` implements it on the SQLAlchemy models of
``orm.py``.

Architecture position
---------------------
**Modules layer** -- imperative shell.  Services depend on the Protocol;
``SqlPaymentStore`` is the only class that issues SQL.  Job creation is
delegated to ``ledger_batch``'s BatchExecutor, imported lazily.

Invariants enforced
-------------------
* Nothing here commits.  ``isolated()`` wraps one unit of work in a
  SAVEPOINT so that a failure rolls back only that unit.
* Posting a line moves the invoice's ``paid`` by exactly the line amount;
  reversing moves it back.
* A payment is reversed at most once and a reversal is never reversed.
* Only an unused overpayment can be reversed.

Failure modes
-------------
* ``ContactNotFoundError``, ``InvoiceNotFoundError``,
  ``VoucherBatchNotFoundError``, ``PaymentNotFoundError`` on bad references.
* ``PaymentAlreadyReversedError``, ``ReversalOfReversalError``,
  ``OverpaymentNotFoundError``, ``OverpaymentInUseError`` on reversal.
"""

from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Iterator, Protocol
from uuid import UUID, uuid4

from sqlalchemy import and_, exists, func, select
from sqlalchemy.orm import Session, aliased

from ledger_kernel.db.types import format_money
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import (
    ContactNotFoundError,
    InvoiceNotFoundError,
    OverpaymentInUseError,
    OverpaymentNotFoundError,
    PaymentAlreadyReversedError,
    PaymentNotFoundError,
    ReversalOfReversalError,
    VoucherBatchNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_modules.payments.config import DEFAULT_CURRENCY
from ledger_modules.payments.models import (
    ZERO,
    AccountClass,
    Contact,
    ContactInvoiceFilter,
    ContactBillingInfo,
    ContactInvoices,
    ContactSubmission,
    EntityCreditAccount,
    Invoice,
    LedgerAccount,
    Overpayment,
    OverpaymentEntity,
    OverpaymentReversal,
    PaymentAllocation,
    PaymentHeader,
    PaymentLineInfo,
    PaymentRecord,
    PaymentSearchCriteria,
    PaymentSummary,
    PostingContext,
    QueuedJobStatus,
    SinglePaymentRequest,
    VoucherBatch,
)
from ledger_modules.payments.orm import (
    ContactModel,
    InvoiceModel,
    LedgerAccountModel,
    OverpaymentModel,
    PaymentLineModel,
    PaymentModel,
    QueuedPaymentModel,
    SettingModel,
    VoucherBatchModel,
)

logger = get_logger("modules.payments.store")

PAYMENT_BULK_POST_TASK = "payments.bulk_post"

QUEUED = "queued"
POSTED = "posted"


class PaymentStore(Protocol):
    """Typed persistence interface of the payment workflow."""

    def isolated(self) -> Any:
        """Context manager: one unit of work that rolls back on its own."""
        ...

    # settings and reference data
    def get_setting(self, name: str) -> str | None: ...
    def get_default_currency(self) -> str | None: ...
    def list_open_currencies(self, account_class: AccountClass) -> tuple[str, ...]: ...
    def get_voucher_batch(self, batch_id: int) -> VoucherBatch | None: ...
    def find_contact_id(self, meta_number: str, account_class: AccountClass) -> int | None: ...
    def list_cash_accounts(self, account_class: AccountClass) -> tuple[LedgerAccount, ...]: ...
    def list_overpayment_accounts(
        self, account_class: AccountClass,
    ) -> tuple[LedgerAccount, ...]: ...
    def get_billing_info(
        self, account_class: AccountClass, contact_id: int,
    ) -> ContactBillingInfo: ...
    def list_entity_credit_accounts(
        self, account_class: AccountClass, contact_id: int | None = None,
    ) -> tuple[EntityCreditAccount, ...]: ...

    # listings
    def list_open_accounts(self, account_class: AccountClass) -> tuple[Contact, ...]: ...
    def list_all_accounts(self, account_class: AccountClass) -> tuple[Contact, ...]: ...
    def list_open_invoices(
        self, account_class: AccountClass, contact_id: int, currency: str | None = None,
    ) -> tuple[Invoice, ...]: ...
    def get_open_invoice(
        self, account_class: AccountClass, contact_id: int, invnumber: str,
    ) -> Invoice | None: ...
    def list_contact_invoices(
        self, invoice_filter: ContactInvoiceFilter,
    ) -> tuple[ContactInvoices, ...]: ...
    def search_payments(self, criteria: PaymentSearchCriteria) -> tuple[PaymentSummary, ...]: ...

    # posting
    def post_payment(self, request: SinglePaymentRequest) -> int: ...
    def post_bulk_payment(self, submission: ContactSubmission, context: PostingContext) -> int: ...
    def queue_bulk_payment(
        self, job_id: int, submission: ContactSubmission, context: PostingContext,
        position: int = 0,
    ) -> int: ...
    def create_job(
        self, job_name: str, idempotency_key: str, parameters: dict[str, Any],
    ) -> QueuedJobStatus: ...
    def get_job_status(self, job_id: int) -> QueuedJobStatus: ...

    # reversal and overpayments
    def get_payment(self, payment_id: int) -> PaymentRecord: ...
    def reverse_payment(self, payment_id: int) -> int: ...
    def reverse_overpayment(self, reversal: OverpaymentReversal) -> int: ...
    def list_open_overpayment_entities(
        self, account_class: AccountClass,
    ) -> tuple[OverpaymentEntity, ...]: ...
    def list_unused_overpayments(
        self, account_class: AccountClass, contact_id: int | None = None,
    ) -> tuple[Overpayment, ...]: ...
    def get_available_overpayment_amount(
        self, account_class: AccountClass, contact_id: int,
    ) -> Decimal: ...

    # printable detail
    def get_payment_header(self, payment_id: int) -> PaymentHeader: ...
    def list_payment_lines(self, payment_id: int) -> tuple[PaymentLineInfo, ...]: ...


def _is_open():
    return InvoiceModel.amount - InvoiceModel.paid != 0


class SqlPaymentStore:
    """
    ``PaymentStore`` on SQLAlchemy.

    Contract:
        Request-scoped: built per request with the caller's session and the
        acting user, who is stamped on every row written.

    Non-goals:
        Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        actor_id: UUID,
        clock: Clock | None = None,
        executor=None,
    ):
        self._session = session
        self._actor_id = actor_id
        self._clock = clock or SystemClock()
        self._executor = executor

    @property
    def session(self) -> Session:
        return self._session

    @contextmanager
    def isolated(self) -> Iterator[None]:
        savepoint = self._session.begin_nested()
        try:
            yield
            self._session.flush()
        except Exception:
            savepoint.rollback()
            raise
        savepoint.commit()

    # -------------------------------------------------------------------------
    # Settings and reference data
    # -------------------------------------------------------------------------

    def get_setting(self, name: str) -> str | None:
        return self._session.execute(
            select(SettingModel.value).where(SettingModel.name == name)
        ).scalar_one_or_none()

    def get_default_currency(self) -> str | None:
        """First entry of the ``curr`` setting (``USD:EUR`` -> ``USD``)."""
        value = self.get_setting(DEFAULT_CURRENCY)
        if not value:
            return None
        return value.split(":")[0].strip() or None

    def list_open_currencies(self, account_class: AccountClass) -> tuple[str, ...]:
        rows = self._session.execute(
            select(InvoiceModel.currency)
            .join(ContactModel, InvoiceModel.contact_id == ContactModel.id)
            .where(ContactModel.account_class == account_class.value, _is_open())
            .distinct()
            .order_by(InvoiceModel.currency)
        ).scalars().all()
        return tuple(rows)

    def get_voucher_batch(self, batch_id: int) -> VoucherBatch | None:
        model = self._session.get(VoucherBatchModel, batch_id)
        return model.to_dto() if model is not None else None

    def find_contact_id(self, meta_number: str, account_class: AccountClass) -> int | None:
        return self._session.execute(
            select(ContactModel.id).where(
                ContactModel.meta_number == meta_number,
                ContactModel.account_class == account_class.value,
            )
        ).scalar_one_or_none()

    def _accounts_with_role(self, role: str) -> tuple[LedgerAccount, ...]:
        models = self._session.execute(
            select(LedgerAccountModel)
            .where(LedgerAccountModel.link.contains(role))
            .order_by(LedgerAccountModel.accno)
        ).scalars().all()
        return tuple(m.to_dto() for m in models if role in m.roles)

    def list_cash_accounts(self, account_class: AccountClass) -> tuple[LedgerAccount, ...]:
        return self._accounts_with_role(f"{account_class.link_prefix}_paid")

    def list_overpayment_accounts(
        self, account_class: AccountClass,
    ) -> tuple[LedgerAccount, ...]:
        return self._accounts_with_role(f"{account_class.link_prefix}_overpayment")

    def get_billing_info(
        self, account_class: AccountClass, contact_id: int,
    ) -> ContactBillingInfo:
        return self._require_contact(contact_id, account_class).to_billing_info()

    def list_entity_credit_accounts(
        self, account_class: AccountClass, contact_id: int | None = None,
    ) -> tuple[EntityCreditAccount, ...]:
        """Contacts of ``account_class`` with their open balance and unused credit."""
        balance = (
            select(func.coalesce(func.sum(InvoiceModel.amount - InvoiceModel.paid), 0))
            .where(InvoiceModel.contact_id == ContactModel.id)
            .correlate(ContactModel)
            .scalar_subquery()
        )
        credit = (
            select(func.coalesce(func.sum(OverpaymentModel.available), 0))
            .where(
                OverpaymentModel.contact_id == ContactModel.id,
                self._open_overpayments(account_class),
            )
            .correlate(ContactModel)
            .scalar_subquery()
        )
        query = (
            select(ContactModel, balance, credit)
            .where(ContactModel.account_class == account_class.value)
            .order_by(ContactModel.name, ContactModel.id)
        )
        if contact_id is not None:
            query = query.where(ContactModel.id == contact_id)
        return tuple(
            EntityCreditAccount(
                contact=contact.to_dto(),
                open_balance=Decimal(str(open_balance)),
                available_overpayment=Decimal(str(available)),
            )
            for contact, open_balance, available in self._session.execute(query).all()
        )

    # -------------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------------

    def list_open_accounts(self, account_class: AccountClass) -> tuple[Contact, ...]:
        has_open = exists().where(InvoiceModel.contact_id == ContactModel.id, _is_open())
        models = self._session.execute(
            select(ContactModel)
            .where(ContactModel.account_class == account_class.value, has_open)
            .order_by(ContactModel.name, ContactModel.id)
        ).scalars().all()
        return tuple(m.to_dto() for m in models)

    def list_all_accounts(self, account_class: AccountClass) -> tuple[Contact, ...]:
        models = self._session.execute(
            select(ContactModel)
            .where(ContactModel.account_class == account_class.value)
            .order_by(ContactModel.name, ContactModel.id)
        ).scalars().all()
        return tuple(m.to_dto() for m in models)

    def _open_invoice_query(self, account_class: AccountClass):
        return (
            select(InvoiceModel)
            .join(ContactModel, InvoiceModel.contact_id == ContactModel.id)
            .where(ContactModel.account_class == account_class.value, _is_open())
            .order_by(InvoiceModel.transdate, InvoiceModel.id)
        )

    def list_open_invoices(
        self, account_class: AccountClass, contact_id: int, currency: str | None = None,
    ) -> tuple[Invoice, ...]:
        query = self._open_invoice_query(account_class).where(
            InvoiceModel.contact_id == contact_id,
        )
        if currency is not None:
            query = query.where(InvoiceModel.currency == currency)
        return tuple(m.to_dto() for m in self._session.execute(query).scalars().all())

    def get_open_invoice(
        self, account_class: AccountClass, contact_id: int, invnumber: str,
    ) -> Invoice | None:
        model = self._session.execute(
            self._open_invoice_query(account_class).where(
                InvoiceModel.contact_id == contact_id,
                InvoiceModel.invnumber == invnumber,
            )
        ).scalars().first()
        return model.to_dto() if model is not None else None

    def list_contact_invoices(
        self, invoice_filter: ContactInvoiceFilter,
    ) -> tuple[ContactInvoices, ...]:
        query = (
            select(ContactModel, InvoiceModel)
            .join(InvoiceModel, InvoiceModel.contact_id == ContactModel.id)
            .where(ContactModel.account_class == invoice_filter.account_class.value, _is_open())
            .order_by(ContactModel.name, ContactModel.id, InvoiceModel.transdate, InvoiceModel.id)
        )
        if invoice_filter.currency is not None:
            query = query.where(InvoiceModel.currency == invoice_filter.currency)
        if invoice_filter.ar_ap_account is not None:
            query = query.where(InvoiceModel.ar_ap_account == invoice_filter.ar_ap_account)
        if invoice_filter.meta_number is not None:
            query = query.where(ContactModel.meta_number == invoice_filter.meta_number)

        grouped: dict[int, tuple[Contact, list[Invoice]]] = {}
        for contact, invoice in self._session.execute(query).all():
            entry = grouped.setdefault(contact.id, (contact.to_dto(), []))
            entry[1].append(invoice.to_dto())

        return tuple(
            ContactInvoices(contact=contact, invoices=tuple(invoices))
            for contact, invoices in grouped.values()
        )

    def search_payments(self, criteria: PaymentSearchCriteria) -> tuple[PaymentSummary, ...]:
        reversal = aliased(PaymentModel)
        is_reversed = exists().where(reversal.reversal_of_id == PaymentModel.id)
        query = (
            select(PaymentModel, ContactModel, is_reversed.label("reversed"))
            .join(ContactModel, PaymentModel.contact_id == ContactModel.id)
            .where(PaymentModel.account_class == criteria.account_class.value)
            .order_by(PaymentModel.payment_date, PaymentModel.id)
        )
        if criteria.contact_id is not None:
            query = query.where(PaymentModel.contact_id == criteria.contact_id)
        if criteria.date_from is not None:
            query = query.where(PaymentModel.payment_date >= criteria.date_from)
        if criteria.date_to is not None:
            query = query.where(PaymentModel.payment_date <= criteria.date_to)
        if criteria.source:
            query = query.where(PaymentModel.source == criteria.source)
        if criteria.currency is not None:
            query = query.where(PaymentModel.currency == criteria.currency)
        if criteria.cash_account is not None:
            query = query.where(PaymentModel.cash_account == criteria.cash_account)

        return tuple(
            PaymentSummary(
                payment_id=payment.id,
                contact_id=contact.id,
                contact_name=contact.name,
                meta_number=contact.meta_number,
                source=payment.source,
                payment_date=payment.payment_date,
                amount=payment.total,
                currency=payment.currency,
                batch_id=payment.batch_id,
                reversed=bool(reversed_flag),
            )
            for payment, contact, reversed_flag in self._session.execute(query).all()
        )

    # -------------------------------------------------------------------------
    # Posting
    # -------------------------------------------------------------------------

    def post_payment(self, request: SinglePaymentRequest) -> int:
        context = PostingContext(
            account_class=request.account_class,
            payment_date=request.payment_date,
            currency=request.currency,
            exchangerate=request.exchangerate,
            batch_id=request.batch_id,
            cash_account=request.cash_account,
        )
        return self._post(
            request.contact_id,
            context,
            request.source,
            request.allocations,
            overpayment=request.overpayment,
            notes=request.notes,
        )

    def post_bulk_payment(self, submission: ContactSubmission, context: PostingContext) -> int:
        return self._post(
            submission.contact_id, context, submission.source, submission.allocations,
        )

    def queue_bulk_payment(
        self,
        job_id: int,
        submission: ContactSubmission,
        context: PostingContext,
        position: int = 0,
    ) -> int:
        self._require_contact(submission.contact_id, context.account_class)
        if context.batch_id is not None:
            self._require_batch(context.batch_id)

        row = QueuedPaymentModel(
            job_id=job_id,
            contact_id=submission.contact_id,
            source=submission.source,
            allocations=[
                {"invoice_id": a.invoice_id, "amount": format_money(a.amount)}
                for a in submission.allocations
            ],
            account_class=context.account_class.value,
            payment_date=context.payment_date,
            currency=context.currency,
            exchangerate=context.exchangerate,
            batch_id=context.batch_id,
            cash_account=context.cash_account,
            ar_ap_account=context.ar_ap_account,
            status=QUEUED,
            position=position,
            created_by_id=self._actor_id,
        )
        self._session.add(row)
        self._session.flush()

        logger.info(
            "bulk_payment_queued",
            extra={
                "batch_job_id": job_id,
                "queued_payment_id": row.id,
                "source": submission.source,
                "line_count": len(submission.allocations),
            },
        )
        return row.id

    def post_queued_payment(self, queued_id: int) -> int:
        """Post a queued submission and mark it posted.  Returns the payment id."""
        row = self._session.execute(
            select(QueuedPaymentModel)
            .where(QueuedPaymentModel.id == queued_id)
            .with_for_update()
        ).scalar_one_or_none()
        if row is None or row.status != QUEUED:
            raise PaymentNotFoundError(queued_id)

        payment_id = self.post_bulk_payment(row.to_submission(), row.to_context())
        row.status = POSTED
        row.payment_id = payment_id
        row.updated_by_id = self._actor_id
        self._session.flush()
        return payment_id

    def _post(
        self,
        contact_id: int,
        context: PostingContext,
        source: str,
        allocations: tuple[PaymentAllocation, ...],
        overpayment: Decimal = ZERO,
        notes: str | None = None,
    ) -> int:
        self._require_contact(contact_id, context.account_class)
        if context.batch_id is not None:
            self._require_batch(context.batch_id)

        lines = []
        for allocation in allocations:
            invoice = self._session.get(InvoiceModel, allocation.invoice_id)
            if invoice is None or invoice.contact_id != contact_id:
                raise InvoiceNotFoundError(allocation.invoice_id, contact_id)
            invoice.paid = invoice.paid + allocation.amount
            invoice.updated_by_id = self._actor_id
            lines.append(
                PaymentLineModel(
                    invoice_id=allocation.invoice_id,
                    amount=allocation.amount,
                    created_by_id=self._actor_id,
                )
            )

        payment = PaymentModel(
            contact_id=contact_id,
            account_class=context.account_class.value,
            payment_date=context.payment_date,
            currency=context.currency,
            exchangerate=context.exchangerate,
            source=source or "",
            total=sum((a.amount for a in allocations), ZERO) + overpayment,
            batch_id=context.batch_id,
            cash_account=context.cash_account,
            ar_ap_account=context.ar_ap_account,
            notes=notes,
            lines=lines,
            created_by_id=self._actor_id,
        )
        if overpayment > ZERO:
            payment.overpayment = OverpaymentModel(
                contact_id=contact_id,
                account_class=context.account_class.value,
                amount=overpayment,
                available=overpayment,
                currency=context.currency,
                payment_date=context.payment_date,
                created_by_id=self._actor_id,
            )
        self._session.add(payment)
        self._session.flush()

        logger.info(
            "payment_posted",
            extra={
                "posted_payment_id": payment.id,
                "posted_contact_id": contact_id,
                "source": payment.source,
                "total": payment.total,
                "line_count": len(lines),
                "overpayment": overpayment,
            },
        )
        return payment.id

    def _require_contact(self, contact_id: int, account_class: AccountClass) -> ContactModel:
        contact = self._session.get(ContactModel, contact_id)
        if contact is None or contact.account_class != account_class.value:
            raise ContactNotFoundError(contact_id)
        return contact

    def _require_batch(self, batch_id: int) -> VoucherBatchModel:
        batch = self._session.get(VoucherBatchModel, batch_id)
        if batch is None:
            raise VoucherBatchNotFoundError(batch_id)
        return batch

    # -------------------------------------------------------------------------
    # Jobs
    # -------------------------------------------------------------------------

    def _job_executor(self):
        if self._executor is None:
            from ledger_batch.orchestrator import default_task_registry
            from ledger_batch.services.executor import BatchExecutor

            self._executor = BatchExecutor(
                session=self._session,
                task_registry=default_task_registry(),
                clock=self._clock,
            )
        return self._executor

    def create_job(
        self, job_name: str, idempotency_key: str, parameters: dict[str, Any],
    ) -> QueuedJobStatus:
        job = self._job_executor().submit_job(
            job_name=job_name,
            task_type=PAYMENT_BULK_POST_TASK,
            idempotency_key=idempotency_key or uuid4().hex,
            actor_id=self._actor_id,
            parameters=parameters,
            correlation_id=LogContext.get_all().get("correlation_id"),
        )
        return _job_status(job)

    def get_job_status(self, job_id: int) -> QueuedJobStatus:
        return _job_status(self._job_executor().get_job(job_id))

    # -------------------------------------------------------------------------
    # Reversal and overpayments
    # -------------------------------------------------------------------------

    def _reversal_id(self, payment_id: int) -> int | None:
        return self._session.execute(
            select(PaymentModel.id).where(PaymentModel.reversal_of_id == payment_id)
        ).scalar_one_or_none()

    def _locked_payment(self, payment_id: int) -> PaymentModel:
        payment = self._session.execute(
            select(PaymentModel).where(PaymentModel.id == payment_id).with_for_update()
        ).scalar_one_or_none()
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment

    def get_payment(self, payment_id: int) -> PaymentRecord:
        payment = self._session.get(PaymentModel, payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment.to_dto(reversed_by_id=self._reversal_id(payment_id))

    def reverse_payment(self, payment_id: int) -> int:
        original = self._locked_payment(payment_id)
        if original.reversal_of_id is not None:
            raise ReversalOfReversalError(payment_id, original.reversal_of_id)
        undone = self._session.execute(
            select(OverpaymentModel.payment_id).where(
                OverpaymentModel.reversal_payment_id == payment_id
            )
        ).scalar_one_or_none()
        if undone is not None:
            raise ReversalOfReversalError(payment_id, undone)
        existing = self._reversal_id(payment_id)
        if existing is not None:
            raise PaymentAlreadyReversedError(payment_id, existing)

        overpayment = original.overpayment
        if overpayment is not None and overpayment.reversal_payment_id is not None:
            overpayment = None
        if overpayment is not None and overpayment.available != overpayment.amount:
            raise OverpaymentInUseError(payment_id, overpayment.amount, overpayment.available)

        lines = []
        for line in original.lines:
            invoice = self._session.get(InvoiceModel, line.invoice_id)
            invoice.paid = invoice.paid - line.amount
            invoice.updated_by_id = self._actor_id
            lines.append(
                PaymentLineModel(
                    invoice_id=line.invoice_id,
                    amount=-line.amount,
                    created_by_id=self._actor_id,
                )
            )

        total = -sum((line.amount for line in original.lines), ZERO)
        if overpayment is not None:
            total -= overpayment.amount

        reversal = PaymentModel(
            contact_id=original.contact_id,
            account_class=original.account_class,
            payment_date=original.payment_date,
            currency=original.currency,
            exchangerate=original.exchangerate,
            source=original.source,
            total=total,
            batch_id=original.batch_id,
            cash_account=original.cash_account,
            ar_ap_account=original.ar_ap_account,
            notes=f"Reversal of payment {payment_id}",
            reversal_of_id=payment_id,
            lines=lines,
            created_by_id=self._actor_id,
        )
        self._session.add(reversal)
        self._session.flush()

        if overpayment is not None:
            overpayment.available = ZERO
            overpayment.reversal_payment_id = reversal.id
            overpayment.updated_by_id = self._actor_id
            self._session.flush()

        logger.info(
            "payment_reversed",
            extra={
                "reversed_payment_id": payment_id,
                "reversal_payment_id": reversal.id,
                "total": total,
            },
        )
        return reversal.id

    def reverse_overpayment(self, reversal: OverpaymentReversal) -> int:
        overpayment = self._session.execute(
            select(OverpaymentModel)
            .where(OverpaymentModel.payment_id == reversal.payment_id)
            .with_for_update()
        ).scalar_one_or_none()
        if overpayment is None or overpayment.reversal_payment_id is not None:
            raise OverpaymentNotFoundError(reversal.payment_id)
        if overpayment.available != overpayment.amount:
            raise OverpaymentInUseError(
                reversal.payment_id, overpayment.amount, overpayment.available,
            )
        if reversal.batch_id is not None:
            self._require_batch(reversal.batch_id)

        inverse = PaymentModel(
            contact_id=overpayment.contact_id,
            account_class=reversal.account_class.value,
            payment_date=reversal.post_date,
            currency=reversal.currency,
            exchangerate=reversal.exchangerate,
            source=overpayment.payment.source,
            total=-overpayment.amount,
            batch_id=reversal.batch_id,
            notes=f"Overpayment reversal of payment {reversal.payment_id}",
            created_by_id=self._actor_id,
        )
        self._session.add(inverse)
        self._session.flush()

        overpayment.available = ZERO
        overpayment.reversal_payment_id = inverse.id
        overpayment.updated_by_id = self._actor_id
        self._session.flush()

        logger.info(
            "overpayment_reversed",
            extra={
                "reversed_payment_id": reversal.payment_id,
                "reversal_payment_id": inverse.id,
                "total": inverse.total,
            },
        )
        return inverse.id

    def _open_overpayments(self, account_class: AccountClass):
        return and_(
            OverpaymentModel.account_class == account_class.value,
            OverpaymentModel.reversal_payment_id.is_(None),
            OverpaymentModel.available > 0,
        )

    def list_open_overpayment_entities(
        self, account_class: AccountClass,
    ) -> tuple[OverpaymentEntity, ...]:
        rows = self._session.execute(
            select(
                ContactModel.id,
                ContactModel.name,
                ContactModel.meta_number,
                func.sum(OverpaymentModel.available),
            )
            .join(OverpaymentModel, OverpaymentModel.contact_id == ContactModel.id)
            .where(self._open_overpayments(account_class))
            .group_by(ContactModel.id, ContactModel.name, ContactModel.meta_number)
            .order_by(ContactModel.name, ContactModel.id)
        ).all()
        return tuple(
            OverpaymentEntity(
                contact_id=contact_id,
                name=name,
                meta_number=meta_number,
                available=Decimal(available),
            )
            for contact_id, name, meta_number, available in rows
        )

    def list_unused_overpayments(
        self, account_class: AccountClass, contact_id: int | None = None,
    ) -> tuple[Overpayment, ...]:
        query = (
            select(OverpaymentModel)
            .where(self._open_overpayments(account_class))
            .order_by(OverpaymentModel.payment_date, OverpaymentModel.id)
        )
        if contact_id is not None:
            query = query.where(OverpaymentModel.contact_id == contact_id)
        return tuple(m.to_dto() for m in self._session.execute(query).scalars().all())

    def get_available_overpayment_amount(
        self, account_class: AccountClass, contact_id: int,
    ) -> Decimal:
        total = self._session.execute(
            select(func.coalesce(func.sum(OverpaymentModel.available), 0)).where(
                self._open_overpayments(account_class),
                OverpaymentModel.contact_id == contact_id,
            )
        ).scalar_one()
        return Decimal(total)

    # -------------------------------------------------------------------------
    # Printable detail
    # -------------------------------------------------------------------------

    def get_payment_header(self, payment_id: int) -> PaymentHeader:
        payment = self._session.get(PaymentModel, payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        contact = payment.contact
        return PaymentHeader(
            payment_id=payment.id,
            contact_id=contact.id,
            contact_name=contact.name,
            meta_number=contact.meta_number,
            account_class=AccountClass(payment.account_class),
            source=payment.source,
            payment_date=payment.payment_date,
            currency=payment.currency,
            exchangerate=payment.exchangerate,
            amount=payment.total,
            cash_account=payment.cash_account,
            notes=payment.notes,
        )

    def list_payment_lines(self, payment_id: int) -> tuple[PaymentLineInfo, ...]:
        rows = self._session.execute(
            select(PaymentLineModel, InvoiceModel)
            .join(InvoiceModel, PaymentLineModel.invoice_id == InvoiceModel.id)
            .where(PaymentLineModel.payment_id == payment_id)
            .order_by(InvoiceModel.transdate, PaymentLineModel.id)
        ).all()
        return tuple(
            PaymentLineInfo(
                invoice_id=invoice.id,
                invnumber=invoice.invnumber,
                transdate=invoice.transdate,
                invoice_amount=invoice.amount,
                paid_amount=line.amount,
                due=invoice.amount - invoice.paid,
            )
            for line, invoice in rows
        )


def _job_status(job) -> QueuedJobStatus:
    return QueuedJobStatus(
        job_id=job.job_id,
        status=job.status.value,
        total_items=job.total_items,
        succeeded_items=job.succeeded_items,
        failed_items=job.failed_items,
        error_summary=job.error_summary,
    )
