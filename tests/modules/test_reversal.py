"""Tests for payment and overpayment reversal (ledger_modules/payments/reversal.py)."""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.exceptions import (
    OverpaymentInUseError,
    OverpaymentNotFoundError,
    PaymentAlreadyReversedError,
    PaymentNotFoundError,
    ReversalOfReversalError,
)
from ledger_modules.payments.models import (
    AccountClass,
    PaymentAllocation,
    SinglePaymentRequest,
)
from ledger_modules.payments.orm import OverpaymentModel
from ledger_modules.payments.reversal import ReversalHandler
from tests.modules.conftest import invoice_paid


@pytest.fixture
def handler(store):
    return ReversalHandler(store)


@pytest.fixture
def pay(store, make_contact):
    """Post a single payment; returns its id."""
    def _pay(allocations=(), overpayment="0", contact_id=None, batch_id=None,
             exchangerate="1", currency="USD", payment_date=date(2024, 2, 20)):
        return store.post_payment(SinglePaymentRequest(
            contact_id=contact_id or make_contact(),
            account_class=AccountClass.PAYABLE,
            payment_date=payment_date,
            currency=currency,
            allocations=tuple(PaymentAllocation(i, Decimal(a)) for i, a in allocations),
            overpayment=Decimal(overpayment),
            exchangerate=Decimal(exchangerate),
            batch_id=batch_id,
            source="CHK-50",
        ))

    return _pay


class TestReverseOverpayment:
    def test_copies_header_from_original(self, handler, pay, make_batch):
        batch_id = make_batch()
        payment_id = pay(
            overpayment="25.00", batch_id=batch_id, exchangerate="1.25",
            currency="EUR", payment_date=date(2024, 2, 10),
        )

        reversal = handler.reverse_overpayment(payment_id)

        assert reversal.payment_date == date(2024, 2, 10)
        assert reversal.batch_id == batch_id
        assert reversal.account_class is AccountClass.PAYABLE
        assert reversal.exchangerate == Decimal("1.25")
        assert reversal.currency == "EUR"
        assert reversal.total == Decimal("-25.00")

    def test_overpayment_no_longer_available(self, handler, pay, store):
        payment_id = pay(overpayment="25.00")
        contact_id = store.get_payment(payment_id).contact_id

        handler.reverse_overpayment(payment_id)

        assert handler.unused_overpayments(AccountClass.PAYABLE) == ()
        assert handler.available_overpayment_amount(AccountClass.PAYABLE, contact_id) == Decimal("0")
        assert handler.open_overpayment_entities(AccountClass.PAYABLE) == ()

    def test_second_reversal_rejected(self, handler, pay):
        payment_id = pay(overpayment="25.00")
        handler.reverse_overpayment(payment_id)
        with pytest.raises(OverpaymentNotFoundError):
            handler.reverse_overpayment(payment_id)

    def test_payment_without_overpayment(self, handler, pay, make_contact, make_invoice):
        contact_id = make_contact()
        invoice = make_invoice(contact_id, "10.00")
        payment_id = pay(allocations=[(invoice, "10.00")], contact_id=contact_id)
        with pytest.raises(OverpaymentNotFoundError):
            handler.reverse_overpayment(payment_id)

    def test_partly_used_overpayment(self, session, handler, pay):
        payment_id = pay(overpayment="25.00")
        overpayment = session.query(OverpaymentModel).filter_by(payment_id=payment_id).one()
        overpayment.available = Decimal("5.00")
        session.flush()

        with pytest.raises(OverpaymentInUseError) as excinfo:
            handler.reverse_overpayment(payment_id)
        assert excinfo.value.available == Decimal("5.00")

    def test_unknown_payment(self, handler):
        with pytest.raises(PaymentNotFoundError):
            handler.reverse_overpayment(9999)


class TestReversePayment:
    def test_restores_invoices(self, session, handler, pay, make_contact, make_invoice):
        contact_id = make_contact()
        first = make_invoice(contact_id, "100.00")
        second = make_invoice(contact_id, "40.00")
        payment_id = pay(allocations=[(first, "60.00"), (second, "40.00")], contact_id=contact_id)
        assert invoice_paid(session, first) == Decimal("60.00")

        reversal = handler.reverse_payment(payment_id)

        assert invoice_paid(session, first) == Decimal("0")
        assert invoice_paid(session, second) == Decimal("0")
        assert reversal.total == Decimal("-100.00")
        assert reversal.reversal_of_id == payment_id
        assert reversal.notes == f"Reversal of payment {payment_id}"
        assert [(a.invoice_id, a.amount) for a in reversal.lines] == [
            (first, Decimal("-60.00")), (second, Decimal("-40.00")),
        ]

    def test_closes_unused_overpayment(self, handler, pay, store, make_contact, make_invoice):
        contact_id = make_contact()
        invoice = make_invoice(contact_id, "10.00")
        payment_id = pay(
            allocations=[(invoice, "10.00")], overpayment="3.00", contact_id=contact_id,
        )

        reversal = handler.reverse_payment(payment_id)

        assert reversal.total == Decimal("-13.00")
        assert store.get_payment(payment_id).reversed_by_id == reversal.id
        assert handler.available_overpayment_amount(AccountClass.PAYABLE, contact_id) == Decimal("0")

    def test_partly_used_overpayment_blocks(self, session, handler, pay):
        payment_id = pay(overpayment="8.00")
        overpayment = session.query(OverpaymentModel).filter_by(payment_id=payment_id).one()
        overpayment.available = Decimal("1.00")
        session.flush()

        with pytest.raises(OverpaymentInUseError):
            handler.reverse_payment(payment_id)

    def test_reversed_only_once(self, handler, pay):
        payment_id = pay(overpayment="8.00")
        first = handler.reverse_payment(payment_id)
        with pytest.raises(PaymentAlreadyReversedError) as excinfo:
            handler.reverse_payment(payment_id)
        assert excinfo.value.reversal_id == first.id

    def test_reversal_cannot_be_reversed(self, handler, pay):
        payment_id = pay(overpayment="8.00")
        reversal = handler.reverse_payment(payment_id)

        with pytest.raises(ReversalOfReversalError):
            handler.reverse_payment(reversal.id)
        with pytest.raises(ReversalOfReversalError):
            handler.reverse_overpayment(reversal.id)

    def test_overpayment_reversal_cannot_be_reversed(self, session, handler, pay, store):
        payment_id = pay(overpayment="40.00")
        inverse = handler.reverse_overpayment(payment_id)

        with pytest.raises(ReversalOfReversalError) as excinfo:
            handler.reverse_payment(inverse.id)
        assert excinfo.value.original_id == payment_id
        assert store.get_payment(inverse.id).reversed_by_id is None
        overpayment = session.query(OverpaymentModel).filter_by(payment_id=payment_id).one()
        assert overpayment.reversal_payment_id == inverse.id
        assert overpayment.available == Decimal("0")

    def test_logs_bound_payment_id(self, handler, pay, captured_logs):
        payment_id = pay(overpayment="8.00")
        handler.reverse_payment(payment_id)

        (record,) = [r for r in captured_logs() if r["message"] == "payment_reversal_recorded"]
        assert record["payment_id"] == str(payment_id)
