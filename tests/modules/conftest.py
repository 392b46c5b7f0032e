"""
Shared fixtures for payment module tests.

Every fixture is opt-in.  The ``make_*`` factories insert rows through the
ORM and return their integer ids.
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_modules.payments.models import AccountClass
from ledger_modules.payments.orm import (
    ContactModel,
    InvoiceModel,
    LedgerAccountModel,
    SettingModel,
    VoucherBatchModel,
)
from ledger_modules.payments.service import PaymentService
from ledger_modules.payments.store import SqlPaymentStore


@pytest.fixture
def make_contact(session, actor_id):
    counter = {"n": 0}

    def _make(
        name: str = "Acme Supplies",
        account_class: AccountClass = AccountClass.PAYABLE,
        meta_number: str | None = None,
        currency: str | None = "USD",
        **billing,
    ) -> int:
        counter["n"] += 1
        model = ContactModel(
            name=name,
            meta_number=meta_number or f"V-{counter['n']:03d}",
            account_class=account_class.value,
            currency=currency,
            created_by_id=actor_id,
            **billing,
        )
        session.add(model)
        session.flush()
        return model.id

    return _make


@pytest.fixture
def make_invoice(session, actor_id):
    def _make(
        contact_id: int,
        amount: str,
        invnumber: str | None = None,
        transdate: date = date(2024, 2, 1),
        paid: str = "0",
        discount: str = "0",
        currency: str = "USD",
        ar_ap_account: str | None = "2100",
    ) -> int:
        model = InvoiceModel(
            contact_id=contact_id,
            invnumber=invnumber or f"INV-{contact_id}-{amount}",
            transdate=transdate,
            amount=Decimal(amount),
            paid=Decimal(paid),
            discount=Decimal(discount),
            currency=currency,
            ar_ap_account=ar_ap_account,
            created_by_id=actor_id,
        )
        session.add(model)
        session.flush()
        return model.id

    return _make


@pytest.fixture
def make_batch(session, actor_id):
    def _make(control_code: str = "BATCH-1", default_date: date = date(2024, 2, 15)) -> int:
        model = VoucherBatchModel(
            control_code=control_code,
            description="Vendor payments",
            default_date=default_date,
            created_by_id=actor_id,
        )
        session.add(model)
        session.flush()
        return model.id

    return _make


@pytest.fixture
def make_account(session, actor_id):
    def _make(accno: str, link: str, description: str | None = None) -> int:
        model = LedgerAccountModel(
            accno=accno,
            description=description or f"Account {accno}",
            link=link,
            created_by_id=actor_id,
        )
        session.add(model)
        session.flush()
        return model.id

    return _make


@pytest.fixture
def set_setting(session, actor_id):
    def _set(name: str, value: str) -> None:
        session.add(SettingModel(name=name, value=value, created_by_id=actor_id))
        session.flush()

    return _set


@pytest.fixture
def store(session, actor_id, clock):
    return SqlPaymentStore(session, actor_id, clock=clock)


@pytest.fixture
def service(store, clock):
    return PaymentService(store, clock=clock)


def invoice_paid(session, invoice_id: int) -> Decimal:
    session.expire_all()
    return session.get(InvoiceModel, invoice_id).paid
