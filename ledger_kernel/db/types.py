"""
Module: ledger_kernel.db.types
Responsibility: Annotated column aliases plus the money and currency helpers
    shared by every payment model and service.  Rounding of amounts entered on
    payment screens, and currency validation, happen only here.
Architecture position: Kernel > DB.  May be imported by models, domain and
    services.  MUST NOT import from any of those layers.

Invariants enforced:
    - Posted amounts carry exactly POSTING_DECIMAL_PLACES places
      (``round_money``), rounded half-up.
    - Currency codes are ISO 4217 (``validate_currency``).
    - No floats: entered amounts are parsed straight into Decimal.

Failure modes:
    - InvalidCurrencyError on an unknown currency code.
    - InvalidAmountError on text that is not a plain decimal number.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String

from ledger_kernel.exceptions import InvalidAmountError, InvalidCurrencyError

# Monetary amount, 38 digits with 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Exchange rate
Rate = Annotated[Decimal, Numeric(38, 18)]

# ISO 4217 currency code
Currency = Annotated[str, String(3)]

# Source / reconciliation identifier (check number, transfer reference)
SourceRef = Annotated[str, String(100)]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(4000)]


POSTING_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

# Plain decimal text as accepted on payment screens, after grouping
# separators are removed: optional minus, digits, optional fraction.
_AMOUNT_TEXT = re.compile(r"^-?\d*\.?\d+$")


def round_money(
    value: Decimal,
    decimal_places: int = POSTING_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to ``decimal_places``.

    The only sanctioned rounding function for amounts that get posted.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def money_from_input(value: object) -> Decimal | None:
    """
    Parse an amount as typed into a payment screen.

    Returns None for empty input (None, "" or whitespace).  Grouping commas
    are stripped.  Decimal and int values pass through unchanged.

    Raises:
        InvalidAmountError: If the text is not a plain decimal number.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidAmountError(value)
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise InvalidAmountError(value)
        return value
    if isinstance(value, int):
        return Decimal(value)
    if not isinstance(value, str):
        raise InvalidAmountError(value)

    text = value.strip().replace(",", "")
    if not text:
        return None
    if not _AMOUNT_TEXT.match(text):
        raise InvalidAmountError(value)
    try:
        return Decimal(text)
    except InvalidOperation as exc:
        raise InvalidAmountError(value) from exc


def format_money(value: Decimal, decimal_places: int = POSTING_DECIMAL_PLACES) -> str:
    """Render an amount with a fixed number of places, e.g. ``50.00``."""
    return f"{round_money(value, decimal_places):.{decimal_places}f}"


ISO_4217_CURRENCIES: frozenset[str] = frozenset({
    "USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD", "NZD",
    "AED", "AFN", "ALL", "AMD", "ANG", "AOA", "ARS", "AWG", "AZN",
    "BAM", "BBD", "BDT", "BGN", "BHD", "BIF", "BMD", "BND", "BOB", "BRL",
    "BSD", "BTN", "BWP", "BYN", "BZD",
    "CDF", "CLP", "CNY", "COP", "CRC", "CUP", "CVE", "CZK",
    "DJF", "DKK", "DOP", "DZD",
    "EGP", "ERN", "ETB",
    "FJD", "FKP",
    "GEL", "GHS", "GIP", "GMD", "GNF", "GTQ", "GYD",
    "HKD", "HNL", "HTG", "HUF",
    "IDR", "ILS", "INR", "IQD", "IRR", "ISK",
    "JMD", "JOD",
    "KES", "KGS", "KHR", "KMF", "KPW", "KRW", "KWD", "KYD", "KZT",
    "LAK", "LBP", "LKR", "LRD", "LSL", "LYD",
    "MAD", "MDL", "MGA", "MKD", "MMK", "MNT", "MOP", "MRU", "MUR", "MVR",
    "MWK", "MXN", "MYR", "MZN",
    "NAD", "NGN", "NIO", "NOK", "NPR",
    "OMR",
    "PAB", "PEN", "PGK", "PHP", "PKR", "PLN", "PYG",
    "QAR",
    "RON", "RSD", "RUB", "RWF",
    "SAR", "SBD", "SCR", "SDG", "SEK", "SGD", "SHP", "SLE", "SOS", "SRD",
    "SSP", "STN", "SVC", "SYP", "SZL",
    "THB", "TJS", "TMT", "TND", "TOP", "TRY", "TTD", "TWD", "TZS",
    "UAH", "UGX", "UYU", "UZS",
    "VES", "VND", "VUV",
    "WST",
    "XAF", "XCD", "XOF", "XPF",
    "YER",
    "ZAR", "ZMW", "ZWL",
})


def validate_currency(currency: str) -> str:
    """
    Validate an ISO 4217 currency code and return it upper-cased.

    Raises:
        InvalidCurrencyError: If the code is not recognised.
    """
    if not currency or not isinstance(currency, str):
        raise InvalidCurrencyError(str(currency))

    normalized = currency.upper().strip()
    if normalized not in ISO_4217_CURRENCIES:
        raise InvalidCurrencyError(currency)
    return normalized
