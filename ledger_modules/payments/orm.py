"""
Payment ORM Models (``ledger_modules.payments.orm``).

Responsibility
--------------
SQLAlchemy persistence for the payment workflow: settings, contacts,
invoices, voucher batches, payments with their invoice lines,
overpayments, the queue of bulk submissions waiting for the worker, and
the chart accounts payments are booked to.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``ledger_kernel.db`` and
sibling ``models.py``.  Only ``store.py`` and the batch task touch these
classes; everything else sees the frozen DTOs.

Invariants enforced
-------------------
* A payment is reversed at most once (unique ``reversal_of_id``).
* A payment carries at most one overpayment (unique ``payment_id``).
* Monetary fields are Numeric(38, 9); exchange rates Numeric(38, 18).
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase


# ---------------------------------------------------------------------------
# 1. SettingModel
# ---------------------------------------------------------------------------


class SettingModel(TrackedBase):
    """
    Named system setting (``queue_payments``, ``curr``).

    Values are stored as text and interpreted by the reader.
    """

    __tablename__ = "payment_settings"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    value: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<SettingModel {self.name}={self.value!r}>"


# ---------------------------------------------------------------------------
# 2. ContactModel
# ---------------------------------------------------------------------------


class ContactModel(TrackedBase):
    """
    Customer or vendor credit account.

    Guarantees:
        - meta_number is unique within an account class.
    """

    __tablename__ = "payment_contacts"

    __table_args__ = (
        UniqueConstraint(
            "meta_number", "account_class", name="uq_payment_contacts_meta_number",
        ),
        Index("idx_payment_contacts_account_class", "account_class"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    meta_number: Mapped[str] = mapped_column(String(100), nullable=False)
    account_class: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tax_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def to_dto(self):
        from ledger_modules.payments.models import AccountClass, Contact

        return Contact(
            id=self.id,
            name=self.name,
            meta_number=self.meta_number,
            account_class=AccountClass(self.account_class),
            currency=self.currency,
        )

    def to_billing_info(self):
        from ledger_modules.payments.models import ContactBillingInfo

        return ContactBillingInfo(
            contact_id=self.id,
            name=self.name,
            meta_number=self.meta_number,
            address=self.address,
            city=self.city,
            country=self.country,
            tax_id=self.tax_id,
        )

    def __repr__(self) -> str:
        return f"<ContactModel {self.meta_number} class={self.account_class}>"


# ---------------------------------------------------------------------------
# 3. InvoiceModel
# ---------------------------------------------------------------------------


class InvoiceModel(TrackedBase):
    """
    Open AR/AP transaction.

    Guarantees:
        - ``paid`` is the only column that payments change.
    """

    __tablename__ = "payment_invoices"

    __table_args__ = (
        Index("idx_payment_invoices_contact_id", "contact_id"),
        Index("idx_payment_invoices_invnumber", "invnumber"),
        Index("idx_payment_invoices_transdate", "transdate"),
    )

    contact_id: Mapped[int] = mapped_column(
        ForeignKey("payment_contacts.id"), nullable=False,
    )
    invnumber: Mapped[str] = mapped_column(String(100), nullable=False)
    transdate: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    discount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    ar_ap_account: Mapped[str | None] = mapped_column(String(50), nullable=True)

    contact: Mapped["ContactModel"] = relationship()

    def to_dto(self):
        from ledger_modules.payments.models import Invoice

        return Invoice(
            id=self.id,
            contact_id=self.contact_id,
            invnumber=self.invnumber,
            transdate=self.transdate,
            amount=self.amount,
            currency=self.currency,
            paid=self.paid,
            discount=self.discount,
            ar_ap_account=self.ar_ap_account,
        )

    def __repr__(self) -> str:
        return (
            f"<InvoiceModel {self.invnumber} "
            f"amount={self.amount} paid={self.paid}>"
        )


# ---------------------------------------------------------------------------
# 4. VoucherBatchModel
# ---------------------------------------------------------------------------


class VoucherBatchModel(TrackedBase):
    """Voucher batch that groups payments for approval."""

    __tablename__ = "voucher_batches"

    control_code: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    default_date: Mapped[date] = mapped_column(Date, nullable=False)
    batch_class: Mapped[str] = mapped_column(String(50), nullable=False, default="payment")

    def to_dto(self):
        from ledger_modules.payments.models import VoucherBatch

        return VoucherBatch(
            id=self.id,
            control_code=self.control_code,
            description=self.description,
            default_date=self.default_date,
            batch_class=self.batch_class,
        )


# ---------------------------------------------------------------------------
# 5. PaymentModel / PaymentLineModel
# ---------------------------------------------------------------------------


class PaymentModel(TrackedBase):
    """
    A posted payment or receipt.

    ``total`` is the sum of the lines plus any overpayment.  A reversal is a
    payment of its own, pointing at the original through ``reversal_of_id``.
    """

    __tablename__ = "payments"

    __table_args__ = (
        UniqueConstraint("reversal_of_id", name="uq_payments_reversal_of_id"),
        Index("idx_payments_contact_id", "contact_id"),
        Index("idx_payments_payment_date", "payment_date"),
        Index("idx_payments_source", "source"),
        Index("idx_payments_batch_id", "batch_id"),
    )

    contact_id: Mapped[int] = mapped_column(
        ForeignKey("payment_contacts.id"), nullable=False,
    )
    account_class: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    exchangerate: Mapped[Decimal] = mapped_column(
        Numeric(38, 18), nullable=False, default=Decimal("1"),
    )
    source: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    total: Mapped[Decimal] = mapped_column(nullable=False)
    batch_id: Mapped[int | None] = mapped_column(
        ForeignKey("voucher_batches.id"), nullable=True,
    )
    cash_account: Mapped[str | None] = mapped_column(String(50), nullable=True)
    ar_ap_account: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reversal_of_id: Mapped[int | None] = mapped_column(
        ForeignKey("payments.id"), nullable=True,
    )

    contact: Mapped["ContactModel"] = relationship()
    lines: Mapped[list["PaymentLineModel"]] = relationship(
        back_populates="payment",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PaymentLineModel.id",
    )
    overpayment: Mapped["OverpaymentModel | None"] = relationship(
        back_populates="payment",
        foreign_keys="OverpaymentModel.payment_id",
        uselist=False,
        lazy="selectin",
    )

    def to_dto(self, reversed_by_id: int | None = None):
        from ledger_modules.payments.models import (
            ZERO,
            AccountClass,
            PaymentAllocation,
            PaymentRecord,
        )

        return PaymentRecord(
            id=self.id,
            contact_id=self.contact_id,
            account_class=AccountClass(self.account_class),
            payment_date=self.payment_date,
            currency=self.currency,
            exchangerate=self.exchangerate,
            source=self.source,
            total=self.total,
            lines=tuple(
                PaymentAllocation(line.invoice_id, line.amount) for line in self.lines
            ),
            overpayment=self.overpayment.amount if self.overpayment else ZERO,
            batch_id=self.batch_id,
            cash_account=self.cash_account,
            ar_ap_account=self.ar_ap_account,
            notes=self.notes,
            reversal_of_id=self.reversal_of_id,
            reversed_by_id=reversed_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<PaymentModel {self.id} source={self.source!r} "
            f"total={self.total} date={self.payment_date}>"
        )


class PaymentLineModel(TrackedBase):
    """Amount of a payment applied to one invoice."""

    __tablename__ = "payment_lines"

    __table_args__ = (
        Index("idx_payment_lines_payment_id", "payment_id"),
        Index("idx_payment_lines_invoice_id", "invoice_id"),
    )

    payment_id: Mapped[int] = mapped_column(
        ForeignKey("payments.id", ondelete="CASCADE"), nullable=False,
    )
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("payment_invoices.id"), nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    payment: Mapped["PaymentModel"] = relationship(back_populates="lines")
    invoice: Mapped["InvoiceModel"] = relationship()


# ---------------------------------------------------------------------------
# 6. OverpaymentModel
# ---------------------------------------------------------------------------


class OverpaymentModel(TrackedBase):
    """
    Unapplied credit kept from a payment.

    ``available`` drops as the credit is applied and is zeroed when the
    overpayment is reversed.
    """

    __tablename__ = "payment_overpayments"

    __table_args__ = (
        UniqueConstraint("payment_id", name="uq_payment_overpayments_payment_id"),
        Index("idx_payment_overpayments_contact", "contact_id", "account_class"),
    )

    payment_id: Mapped[int] = mapped_column(
        ForeignKey("payments.id", ondelete="CASCADE"), nullable=False,
    )
    contact_id: Mapped[int] = mapped_column(
        ForeignKey("payment_contacts.id"), nullable=False,
    )
    account_class: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    available: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    reversal_payment_id: Mapped[int | None] = mapped_column(
        ForeignKey("payments.id"), nullable=True,
    )

    payment: Mapped["PaymentModel"] = relationship(
        back_populates="overpayment", foreign_keys=[payment_id],
    )

    def to_dto(self):
        from ledger_modules.payments.models import AccountClass, Overpayment

        return Overpayment(
            id=self.id,
            payment_id=self.payment_id,
            contact_id=self.contact_id,
            account_class=AccountClass(self.account_class),
            amount=self.amount,
            available=self.available,
            currency=self.currency,
            payment_date=self.payment_date,
            reversal_payment_id=self.reversal_payment_id,
        )


# ---------------------------------------------------------------------------
# 7. QueuedPaymentModel
# ---------------------------------------------------------------------------


class QueuedPaymentModel(TrackedBase):
    """
    One contact's bulk payment waiting for the queue worker.

    ``allocations`` holds ``[{"invoice_id": int, "amount": "50.00"}, ...]``.
    ``status`` moves from ``queued`` to ``posted`` when the worker posts it.
    """

    __tablename__ = "queued_payments"

    __table_args__ = (
        Index("idx_queued_payments_job_id", "job_id"),
        Index("idx_queued_payments_status", "status"),
    )

    job_id: Mapped[int] = mapped_column(
        ForeignKey("batch_jobs.id", ondelete="CASCADE"), nullable=False,
    )
    contact_id: Mapped[int] = mapped_column(
        ForeignKey("payment_contacts.id"), nullable=False,
    )
    source: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    allocations: Mapped[list] = mapped_column(JSON, nullable=False)
    account_class: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    exchangerate: Mapped[Decimal] = mapped_column(
        Numeric(38, 18), nullable=False, default=Decimal("1"),
    )
    batch_id: Mapped[int | None] = mapped_column(
        ForeignKey("voucher_batches.id"), nullable=True,
    )
    cash_account: Mapped[str | None] = mapped_column(String(50), nullable=True)
    ar_ap_account: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="queued")
    payment_id: Mapped[int | None] = mapped_column(
        ForeignKey("payments.id"), nullable=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def to_submission(self):
        from ledger_modules.payments.models import ContactSubmission, PaymentAllocation

        return ContactSubmission(
            contact_id=self.contact_id,
            source=self.source,
            allocations=tuple(
                PaymentAllocation(int(a["invoice_id"]), Decimal(a["amount"]))
                for a in self.allocations
            ),
        )

    def to_context(self):
        from ledger_modules.payments.models import AccountClass, PostingContext

        return PostingContext(
            account_class=AccountClass(self.account_class),
            payment_date=self.payment_date,
            currency=self.currency,
            exchangerate=self.exchangerate,
            batch_id=self.batch_id,
            cash_account=self.cash_account,
            ar_ap_account=self.ar_ap_account,
        )

    def __repr__(self) -> str:
        return (
            f"<QueuedPaymentModel job={self.job_id} contact={self.contact_id} "
            f"status={self.status}>"
        )


# ---------------------------------------------------------------------------
# 8. LedgerAccountModel
# ---------------------------------------------------------------------------


class LedgerAccountModel(TrackedBase):
    """
    Chart account a payment can be booked to.

    ``link`` is a colon-separated list of roles: ``AP_paid`` / ``AR_paid``
    mark cash accounts, ``AP_overpayment`` / ``AR_overpayment`` the accounts
    that hold prepayments.
    """

    __tablename__ = "ledger_accounts"

    accno: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    link: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    @property
    def roles(self) -> frozenset[str]:
        return frozenset(role for role in (self.link or "").split(":") if role)

    def to_dto(self):
        from ledger_modules.payments.models import LedgerAccount

        return LedgerAccount(id=self.id, accno=self.accno, description=self.description)

    def __repr__(self) -> str:
        return f"<LedgerAccountModel {self.accno} link={self.link!r}>"
