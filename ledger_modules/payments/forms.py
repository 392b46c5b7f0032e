"""
Request boundary (``ledger_modules.payments.forms``).

Responsibility
--------------
Converts the loose field bags posted by the payment screens into the frozen
request objects of ``models.py``.  Every field is checked here, so the
services below only ever see typed, validated values.

Field bag layout (bulk screen)::

    {
        "account_class": "1",
        "payment_date": "2024-03-01",
        "curr": "USD",
        "source_start": "INV-099",
        "batch_id": "7",
        "contacts": [
            {"id": "1", "paid": "all",
             "invoices": [{"invoice": "10", "net": "50.00"}]},
            {"contact_id": "2", "id": "", "paid": "some",
             "invoices": [{"invoice": "11", "payment": "25.00"}]},
        ],
    }

A contact is selected when its ``id`` field is set; ``contact_id`` names
the contact when it is not.

Failure modes
-------------
* ``InvalidAccountClassError`` for an account class other than 1 or 2.
* ``InvalidAllocationError`` for a malformed invoice id or amount.
* ``InvalidCurrencyError`` for an unknown currency code.
* ``PaymentValidationError`` for any other missing or malformed field.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Mapping

from ledger_kernel.db.types import money_from_input, round_money, validate_currency
from ledger_kernel.exceptions import (
    InvalidAccountClassError,
    InvalidAllocationError,
    InvalidAmountError,
    PaymentValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_modules.payments.models import (
    ONE,
    ZERO,
    AccountClass,
    BulkPaymentRequest,
    ContactSelection,
    InvoiceSelection,
    PaymentAllocation,
    PaymentMode,
    PaymentSearchCriteria,
    SinglePaymentRequest,
)

logger = get_logger("modules.payments.forms")

_UNSET = (None, "", "0", 0, False)


# ---------------------------------------------------------------------------
# Field parsers
# ---------------------------------------------------------------------------


def _text(fields: Mapping[str, Any], name: str) -> str | None:
    value = fields.get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _raw_text(fields: Mapping[str, Any], name: str) -> str | None:
    """Like ``_text`` but a present, empty field stays ``""``."""
    value = fields.get(name)
    return None if value is None else str(value).strip()


def parse_account_class(value: Any) -> AccountClass:
    try:
        return AccountClass(int(value))
    except (TypeError, ValueError) as exc:
        raise InvalidAccountClassError(value) from exc


def _date(fields: Mapping[str, Any], name: str, default: date | None = None) -> date | None:
    value = fields.get(name)
    if isinstance(value, date):
        return value
    text = _text(fields, name)
    if text is None:
        return default
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise PaymentValidationError(name, f"expected an ISO date, got {text!r}") from exc


def _int(fields: Mapping[str, Any], name: str) -> int | None:
    text = _text(fields, name)
    if text is None:
        return None
    try:
        return int(text)
    except ValueError as exc:
        raise PaymentValidationError(name, f"expected an integer, got {text!r}") from exc


def _currency(fields: Mapping[str, Any], name: str = "curr") -> str | None:
    text = _text(fields, name)
    return validate_currency(text) if text is not None else None


def _exchangerate(fields: Mapping[str, Any]) -> Decimal:
    try:
        rate = money_from_input(fields.get("exchangerate"))
    except InvalidAmountError as exc:
        raise PaymentValidationError("exchangerate", "not a decimal number") from exc
    if rate is None:
        return ONE
    if rate <= ZERO:
        raise PaymentValidationError("exchangerate", "must be positive")
    return rate


def parse_invoice_id(value: Any, contact_id: int | None = None) -> int:
    """A positive integer invoice id."""
    if isinstance(value, bool):
        raise InvalidAllocationError(contact_id, value, None, "invoice id must be a positive integer")
    try:
        invoice_id = int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise InvalidAllocationError(
            contact_id, value, None, "invoice id must be a positive integer",
        ) from exc
    if invoice_id <= 0:
        raise InvalidAllocationError(
            contact_id, value, None, "invoice id must be a positive integer",
        )
    return invoice_id


def parse_amount(value: Any, contact_id: int | None = None, invoice: Any = None) -> Decimal | None:
    """An entered amount, or None when the field is empty."""
    try:
        return money_from_input(value)
    except InvalidAmountError as exc:
        raise InvalidAllocationError(
            contact_id, invoice, value, "amount is not a decimal number",
        ) from exc


# ---------------------------------------------------------------------------
# Bulk payment screen
# ---------------------------------------------------------------------------


def _blank(value: Any) -> bool:
    if isinstance(value, str):
        value = value.strip()
    return value in _UNSET


def _invoice_selections(
    rows: Any, contact_id: int, mode: PaymentMode,
) -> tuple[InvoiceSelection, ...]:
    # Only the field the mode pays from is read; rows with nothing in it are dropped.
    field = "net" if mode is PaymentMode.ALL else "payment"
    invoices = []
    for row in rows or ():
        value = row.get(field)
        if _blank(value):
            continue
        invoice_id = parse_invoice_id(row.get("invoice"), contact_id)
        amount = parse_amount(value, contact_id, invoice_id)
        invoices.append(InvoiceSelection(invoice_id=invoice_id, **{field: amount}))
    return tuple(invoices)


def _contact_selection(entry: Mapping[str, Any]) -> ContactSelection:
    selected = entry.get("id") not in _UNSET
    raw_id = entry.get("id") if selected else entry.get("contact_id")
    try:
        contact_id = int(raw_id)
    except (TypeError, ValueError) as exc:
        raise PaymentValidationError("contact_id", f"expected an integer, got {raw_id!r}") from exc

    paid = (_text(entry, "paid") or PaymentMode.SOME.value).lower()
    try:
        mode = PaymentMode(paid)
    except ValueError as exc:
        raise PaymentValidationError("paid", f"expected 'all' or 'some', got {paid!r}") from exc

    return ContactSelection(
        contact_id=contact_id,
        selected=selected,
        mode=mode,
        invoices=_invoice_selections(entry.get("invoices"), contact_id, mode) if selected else (),
        source=_text(entry, "source"),
    )


def bulk_request_from_fields(
    fields: Mapping[str, Any],
    default_date: date | None = None,
) -> BulkPaymentRequest:
    """
    Build a ``BulkPaymentRequest`` from the bulk payment screen.

    ``default_date`` is used when the screen sent no payment date.  ``curr``
    is required; screens prefill it from ``PaymentService.get_metadata``.
    """
    account_class = parse_account_class(fields.get("account_class"))
    payment_date = _date(fields, "payment_date", default_date)
    if payment_date is None:
        raise PaymentValidationError("payment_date", "required")
    currency = _currency(fields)
    if currency is None:
        raise PaymentValidationError("curr", "required")

    contacts = tuple(_contact_selection(entry) for entry in fields.get("contacts") or ())

    request = BulkPaymentRequest(
        account_class=account_class,
        payment_date=payment_date,
        currency=currency,
        contacts=contacts,
        source_start=_raw_text(fields, "source_start"),
        batch_id=_int(fields, "batch_id"),
        exchangerate=_exchangerate(fields),
        cash_account=_text(fields, "cash_account"),
        ar_ap_account=_text(fields, "ar_ap_account"),
        idempotency_key=_text(fields, "idempotency_key"),
    )
    logger.debug(
        "bulk_request_parsed",
        extra={
            "account_class": account_class.value,
            "contacts": len(contacts),
            "selected": len(request.selected_contacts),
        },
    )
    return request


# ---------------------------------------------------------------------------
# Single payment screen
# ---------------------------------------------------------------------------


def payment_request_from_fields(
    fields: Mapping[str, Any],
    default_date: date | None = None,
) -> SinglePaymentRequest:
    """
    Build a ``SinglePaymentRequest``.

    ``invoices`` rows carry ``invoice`` and ``payment``; empty and zero
    payments are left out.  ``overpayment`` is the unapplied remainder.
    """
    account_class = parse_account_class(fields.get("account_class"))
    contact_id = _int(fields, "contact_id")
    if contact_id is None:
        raise PaymentValidationError("contact_id", "required")
    payment_date = _date(fields, "payment_date", default_date)
    if payment_date is None:
        raise PaymentValidationError("payment_date", "required")
    currency = _currency(fields)
    if currency is None:
        raise PaymentValidationError("curr", "required")

    allocations = []
    for row in fields.get("invoices") or ():
        invoice_id = parse_invoice_id(row.get("invoice"), contact_id)
        amount = parse_amount(row.get("payment"), contact_id, invoice_id)
        if amount is None:
            continue
        amount = round_money(amount)
        if amount == ZERO:
            continue
        allocations.append(PaymentAllocation(invoice_id, amount))

    try:
        overpayment = money_from_input(fields.get("overpayment")) or ZERO
    except InvalidAmountError as exc:
        raise PaymentValidationError("overpayment", "not a decimal number") from exc

    return SinglePaymentRequest(
        contact_id=contact_id,
        account_class=account_class,
        payment_date=payment_date,
        currency=currency,
        allocations=tuple(allocations),
        overpayment=round_money(overpayment),
        source=_text(fields, "source") or "",
        exchangerate=_exchangerate(fields),
        batch_id=_int(fields, "batch_id"),
        cash_account=_text(fields, "cash_account"),
        notes=_text(fields, "notes"),
    )


# ---------------------------------------------------------------------------
# Payment search screen
# ---------------------------------------------------------------------------


def search_criteria_from_fields(fields: Mapping[str, Any]) -> PaymentSearchCriteria:
    return PaymentSearchCriteria(
        account_class=parse_account_class(fields.get("account_class")),
        contact_id=_int(fields, "contact_id"),
        meta_number=_text(fields, "meta_number"),
        date_from=_date(fields, "date_from"),
        date_to=_date(fields, "date_to"),
        source=_text(fields, "source"),
        currency=_currency(fields),
        cash_account=_text(fields, "cash_account"),
    )
