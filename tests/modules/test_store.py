"""
Tests for SqlPaymentStore (ledger_modules/payments/store.py).

Every test runs against SQLite with the full schema; nothing is committed.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from ledger_kernel.exceptions import (
    ContactNotFoundError,
    InvoiceNotFoundError,
    PaymentNotFoundError,
    VoucherBatchNotFoundError,
)
from ledger_modules.payments.models import (
    AccountClass,
    ContactInvoiceFilter,
    ContactSubmission,
    PaymentAllocation,
    PaymentSearchCriteria,
    PostingContext,
    SinglePaymentRequest,
)
from ledger_modules.payments.orm import PaymentModel, QueuedPaymentModel
from ledger_modules.payments.store import POSTED, QUEUED
from tests.modules.conftest import invoice_paid

PAY_DATE = date(2024, 3, 1)


def _context(account_class=AccountClass.PAYABLE, batch_id=None):
    return PostingContext(
        account_class=account_class,
        payment_date=PAY_DATE,
        currency="USD",
        batch_id=batch_id,
        cash_account="1060",
    )


def _submission(contact_id, *pairs, source="CHK-1"):
    return ContactSubmission(
        contact_id=contact_id,
        source=source,
        allocations=tuple(PaymentAllocation(i, Decimal(a)) for i, a in pairs),
    )


class TestSettings:
    def test_missing_setting_is_none(self, store):
        assert store.get_setting("queue_payments") is None

    def test_default_currency_is_first_entry(self, store, set_setting):
        set_setting("curr", "EUR:USD:GBP")
        assert store.get_default_currency() == "EUR"

    def test_default_currency_unset(self, store, set_setting):
        set_setting("curr", "")
        assert store.get_default_currency() is None


class TestListings:
    def test_open_accounts_only_with_open_invoices(self, store, make_contact, make_invoice):
        open_id = make_contact("Bravo Ltd")
        settled_id = make_contact("Alpha Inc")
        make_invoice(open_id, "100.00")
        make_invoice(settled_id, "40.00", paid="40.00")
        customer = make_contact("Charlie Co", account_class=AccountClass.RECEIVABLE)
        make_invoice(customer, "10.00")

        assert [c.id for c in store.list_open_accounts(AccountClass.PAYABLE)] == [open_id]
        assert [c.name for c in store.list_all_accounts(AccountClass.PAYABLE)] == [
            "Alpha Inc", "Bravo Ltd",
        ]

    def test_open_invoices_sorted_and_filtered(self, store, make_contact, make_invoice):
        vendor = make_contact()
        later = make_invoice(vendor, "10.00", transdate=date(2024, 2, 20))
        earlier = make_invoice(vendor, "20.00", transdate=date(2024, 1, 5))
        make_invoice(vendor, "30.00", currency="EUR")
        make_invoice(vendor, "5.00", paid="5.00")

        invoices = store.list_open_invoices(AccountClass.PAYABLE, vendor, currency="USD")
        assert [i.id for i in invoices] == [earlier, later]
        assert invoices[0].due == Decimal("20.00")

    def test_get_open_invoice_by_number(self, store, make_contact, make_invoice):
        vendor = make_contact()
        invoice_id = make_invoice(vendor, "12.50", invnumber="A-17")

        found = store.get_open_invoice(AccountClass.PAYABLE, vendor, "A-17")
        assert found.id == invoice_id
        assert store.get_open_invoice(AccountClass.PAYABLE, vendor, "A-18") is None

    def test_open_currencies(self, store, make_contact, make_invoice):
        vendor = make_contact()
        make_invoice(vendor, "1.00", currency="USD")
        make_invoice(vendor, "1.00", currency="EUR")
        make_invoice(vendor, "1.00", currency="GBP", paid="1.00")
        assert store.list_open_currencies(AccountClass.PAYABLE) == ("EUR", "USD")

    def test_contact_invoices_grouped(self, store, make_contact, make_invoice):
        first = make_contact("Alpha Inc", meta_number="V-A")
        second = make_contact("Bravo Ltd", meta_number="V-B")
        a1 = make_invoice(first, "10.00")
        a2 = make_invoice(first, "15.00", ar_ap_account="2110")
        b1 = make_invoice(second, "20.00")

        listed = store.list_contact_invoices(ContactInvoiceFilter(AccountClass.PAYABLE))
        assert [(c.contact.id, [i.id for i in c.invoices]) for c in listed] == [
            (first, [a1, a2]),
            (second, [b1]),
        ]
        assert listed[0].total_due == Decimal("25.00")

        by_account = store.list_contact_invoices(
            ContactInvoiceFilter(AccountClass.PAYABLE, ar_ap_account="2110"),
        )
        assert [(c.contact.id, [i.id for i in c.invoices]) for c in by_account] == [
            (first, [a2]),
        ]

        by_number = store.list_contact_invoices(
            ContactInvoiceFilter(AccountClass.PAYABLE, meta_number="V-B"),
        )
        assert [c.contact.id for c in by_number] == [second]

    def test_find_contact_id(self, store, make_contact):
        vendor = make_contact(meta_number="V-900")
        assert store.find_contact_id("V-900", AccountClass.PAYABLE) == vendor
        assert store.find_contact_id("V-900", AccountClass.RECEIVABLE) is None


class TestChartAndCreditAccounts:
    def test_cash_and_overpayment_accounts_by_role(self, store, make_account):
        make_account("1065", "AP_paid:AR_paid", "Petty cash")
        make_account("1060", "AP_paid", "Checking")
        make_account("1200", "AR_paid")
        make_account("2110", "AP_overpayment")
        make_account("1400", "AR_overpayment:AP_paid_extra")

        assert [a.accno for a in store.list_cash_accounts(AccountClass.PAYABLE)] == [
            "1060", "1065",
        ]
        assert [a.accno for a in store.list_cash_accounts(AccountClass.RECEIVABLE)] == [
            "1065", "1200",
        ]
        (overpayment,) = store.list_overpayment_accounts(AccountClass.PAYABLE)
        assert overpayment.accno == "2110"
        assert [a.accno for a in store.list_overpayment_accounts(AccountClass.RECEIVABLE)] == [
            "1400",
        ]

    def test_billing_info(self, store, make_contact):
        vendor = make_contact(
            "Acme Supplies", address="12 Mill Road", city="Leeds",
            country="United Kingdom", tax_id="GB123",
        )
        info = store.get_billing_info(AccountClass.PAYABLE, vendor)
        assert info.contact_id == vendor
        assert (info.name, info.address, info.city) == ("Acme Supplies", "12 Mill Road", "Leeds")
        assert info.tax_id == "GB123"

    def test_billing_info_checks_class(self, store, make_contact):
        vendor = make_contact()
        with pytest.raises(ContactNotFoundError):
            store.get_billing_info(AccountClass.RECEIVABLE, vendor)

    def test_entity_credit_accounts(self, store, make_contact, make_invoice):
        alpha = make_contact("Alpha Inc")
        bravo = make_contact("Bravo Ltd")
        make_invoice(alpha, "100.00", paid="30.00")
        make_invoice(alpha, "20.00")
        store.post_payment(SinglePaymentRequest(
            contact_id=bravo,
            account_class=AccountClass.PAYABLE,
            payment_date=PAY_DATE,
            currency="USD",
            overpayment=Decimal("15.00"),
        ))

        accounts = store.list_entity_credit_accounts(AccountClass.PAYABLE)
        assert [a.contact.id for a in accounts] == [alpha, bravo]
        assert accounts[0].open_balance == Decimal("90.00")
        assert accounts[0].available_overpayment == Decimal("0")
        assert accounts[1].open_balance == Decimal("0")
        assert accounts[1].available_overpayment == Decimal("15.00")

        (only,) = store.list_entity_credit_accounts(AccountClass.PAYABLE, bravo)
        assert only.contact.id == bravo
        assert store.list_entity_credit_accounts(AccountClass.RECEIVABLE, bravo) == ()


class TestPosting:
    def test_bulk_payment_moves_paid(self, session, store, make_contact, make_invoice):
        vendor = make_contact()
        first = make_invoice(vendor, "100.00")
        second = make_invoice(vendor, "60.00")

        payment_id = store.post_bulk_payment(
            _submission(vendor, (first, "40.00"), (second, "60.00")), _context(),
        )

        record = store.get_payment(payment_id)
        assert record.total == Decimal("100.00")
        assert record.source == "CHK-1"
        assert record.cash_account == "1060"
        assert [(a.invoice_id, a.amount) for a in record.lines] == [
            (first, Decimal("40.00")), (second, Decimal("60.00")),
        ]
        assert invoice_paid(session, first) == Decimal("40.00")
        assert invoice_paid(session, second) == Decimal("60.00")
        assert store.list_open_invoices(AccountClass.PAYABLE, vendor)[0].due == Decimal("60.00")

    def test_foreign_invoice_rolls_back_unit(self, session, store, make_contact, make_invoice):
        vendor = make_contact()
        other = make_contact("Other")
        own = make_invoice(vendor, "10.00")
        foreign = make_invoice(other, "10.00")

        with pytest.raises(InvoiceNotFoundError) as excinfo:
            with store.isolated():
                store.post_bulk_payment(
                    _submission(vendor, (own, "5.00"), (foreign, "5.00")), _context(),
                )

        assert excinfo.value.invoice_id == foreign
        assert invoice_paid(session, own) == Decimal("0")
        assert session.execute(select(PaymentModel)).scalars().all() == []

    def test_unknown_invoice(self, store, make_contact):
        vendor = make_contact()
        with pytest.raises(InvoiceNotFoundError):
            store.post_bulk_payment(_submission(vendor, (999, "1.00")), _context())

    def test_contact_of_other_class_rejected(self, store, make_contact, make_invoice):
        customer = make_contact(account_class=AccountClass.RECEIVABLE)
        invoice = make_invoice(customer, "10.00")
        with pytest.raises(ContactNotFoundError):
            store.post_bulk_payment(_submission(customer, (invoice, "1.00")), _context())

    def test_unknown_batch_rejected(self, store, make_contact, make_invoice):
        vendor = make_contact()
        invoice = make_invoice(vendor, "10.00")
        with pytest.raises(VoucherBatchNotFoundError):
            store.post_bulk_payment(
                _submission(vendor, (invoice, "1.00")), _context(batch_id=404),
            )

    def test_payment_in_batch(self, store, make_contact, make_invoice, make_batch):
        vendor = make_contact()
        invoice = make_invoice(vendor, "10.00")
        batch_id = make_batch()
        payment_id = store.post_bulk_payment(
            _submission(vendor, (invoice, "1.00")), _context(batch_id=batch_id),
        )
        assert store.get_payment(payment_id).batch_id == batch_id

    def test_single_payment_with_overpayment(self, store, make_contact, make_invoice):
        vendor = make_contact()
        invoice = make_invoice(vendor, "30.00")

        payment_id = store.post_payment(SinglePaymentRequest(
            contact_id=vendor,
            account_class=AccountClass.PAYABLE,
            payment_date=PAY_DATE,
            currency="USD",
            allocations=(PaymentAllocation(invoice, Decimal("30.00")),),
            overpayment=Decimal("12.00"),
            source="CHK-7",
            notes="paid in full",
        ))

        record = store.get_payment(payment_id)
        assert record.total == Decimal("42.00")
        assert record.overpayment == Decimal("12.00")
        assert record.notes == "paid in full"
        (overpayment,) = store.list_unused_overpayments(AccountClass.PAYABLE, vendor)
        assert overpayment.payment_id == payment_id
        assert overpayment.is_unused

    def test_unknown_payment(self, store):
        with pytest.raises(PaymentNotFoundError):
            store.get_payment(12345)


class TestQueue:
    def test_queue_then_post(self, session, store, make_contact, make_invoice):
        vendor = make_contact()
        invoice = make_invoice(vendor, "80.00")
        job = store.create_job("bulk payments 2024-03-01", "queue-1", {"contacts": 1})

        queued_id = store.queue_bulk_payment(
            job.job_id, _submission(vendor, (invoice, "80.00"), source="CHK-9"), _context(),
            position=3,
        )

        row = session.get(QueuedPaymentModel, queued_id)
        assert row.status == QUEUED
        assert row.position == 3
        assert row.allocations == [{"invoice_id": invoice, "amount": "80.00"}]
        assert invoice_paid(session, invoice) == Decimal("0")

        payment_id = store.post_queued_payment(queued_id)

        session.expire_all()
        row = session.get(QueuedPaymentModel, queued_id)
        assert row.status == POSTED
        assert row.payment_id == payment_id
        assert store.get_payment(payment_id).source == "CHK-9"
        assert invoice_paid(session, invoice) == Decimal("80.00")

    def test_queued_row_posts_once(self, store, make_contact, make_invoice):
        vendor = make_contact()
        invoice = make_invoice(vendor, "80.00")
        job = store.create_job("bulk", "queue-2", {})
        queued_id = store.queue_bulk_payment(
            job.job_id, _submission(vendor, (invoice, "10.00")), _context(),
        )
        store.post_queued_payment(queued_id)
        with pytest.raises(PaymentNotFoundError):
            store.post_queued_payment(queued_id)

    def test_queue_checks_contact(self, store):
        job = store.create_job("bulk", "queue-3", {})
        with pytest.raises(ContactNotFoundError):
            store.queue_bulk_payment(job.job_id, _submission(404, (1, "1.00")), _context())

    def test_job_status(self, store):
        job = store.create_job("bulk", "queue-4", {"contacts": 0})
        assert job.status == "pending"
        assert store.get_job_status(job.job_id).job_id == job.job_id


class TestSearch:
    def test_filters_and_reversed_flag(self, store, make_contact, make_invoice):
        vendor = make_contact(meta_number="V-100")
        other = make_contact(meta_number="V-200")
        inv_a = make_invoice(vendor, "50.00")
        inv_b = make_invoice(other, "50.00")

        kept = store.post_bulk_payment(_submission(vendor, (inv_a, "10.00"), source="A"), _context())
        undone = store.post_bulk_payment(_submission(vendor, (inv_a, "5.00"), source="B"), _context())
        store.post_bulk_payment(_submission(other, (inv_b, "7.00"), source="C"), _context())
        reversal = store.reverse_payment(undone)

        results = store.search_payments(
            PaymentSearchCriteria(AccountClass.PAYABLE, contact_id=vendor),
        )
        flags = {r.payment_id: r.reversed for r in results}
        assert flags == {kept: False, undone: True, reversal: False}

        by_source = store.search_payments(PaymentSearchCriteria(AccountClass.PAYABLE, source="C"))
        assert [r.meta_number for r in by_source] == ["V-200"]

        none_yet = store.search_payments(
            PaymentSearchCriteria(AccountClass.PAYABLE, date_from=date(2024, 4, 1)),
        )
        assert none_yet == ()


class TestOverpaymentReads:
    def test_entities_and_available_amount(self, store, make_contact):
        vendor = make_contact("Vendor")
        for amount in ("10.00", "2.50"):
            store.post_payment(SinglePaymentRequest(
                contact_id=vendor,
                account_class=AccountClass.PAYABLE,
                payment_date=PAY_DATE,
                currency="USD",
                overpayment=Decimal(amount),
            ))

        (entity,) = store.list_open_overpayment_entities(AccountClass.PAYABLE)
        assert entity.contact_id == vendor
        assert entity.available == Decimal("12.50")
        assert store.get_available_overpayment_amount(AccountClass.PAYABLE, vendor) == Decimal("12.50")
        assert store.list_open_overpayment_entities(AccountClass.RECEIVABLE) == ()

    def test_no_overpayments_is_zero(self, store, make_contact):
        vendor = make_contact()
        assert store.get_available_overpayment_amount(AccountClass.PAYABLE, vendor) == Decimal("0")


class TestPrintableDetail:
    def test_header_and_lines(self, store, make_contact, make_invoice):
        vendor = make_contact("Acme Supplies", meta_number="V-555")
        invoice = make_invoice(vendor, "90.00", invnumber="B-1")
        payment_id = store.post_bulk_payment(_submission(vendor, (invoice, "30.00")), _context())

        header = store.get_payment_header(payment_id)
        assert header.contact_name == "Acme Supplies"
        assert header.meta_number == "V-555"
        assert header.amount == Decimal("30.00")
        assert header.account_class is AccountClass.PAYABLE

        (line,) = store.list_payment_lines(payment_id)
        assert line.invnumber == "B-1"
        assert line.paid_amount == Decimal("30.00")
        assert line.due == Decimal("60.00")

    def test_header_unknown_payment(self, store):
        with pytest.raises(PaymentNotFoundError):
            store.get_payment_header(1)
