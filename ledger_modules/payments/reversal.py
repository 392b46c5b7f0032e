"""
Overpayment / Reversal Handler (``ledger_modules.payments.reversal``).

Responsibility
--------------
Reverses whole payments and the unused overpayments they carry, and
answers the read-side questions the overpayment screens ask.

Architecture position
---------------------
**Modules layer** -- thin orchestration over ``PaymentStore``.

Invariants enforced
-------------------
* An overpayment reversal copies its date, voucher batch, account class,
  exchange rate and currency from the original payment.
* A reversal is never itself reversed.
"""

from decimal import Decimal

from ledger_kernel.exceptions import ReversalOfReversalError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_modules.payments.models import (
    AccountClass,
    Overpayment,
    OverpaymentEntity,
    OverpaymentReversal,
    PaymentRecord,
)
from ledger_modules.payments.store import PaymentStore

logger = get_logger("modules.payments.reversal")


class ReversalHandler:
    """Reverses payments and overpayments through a ``PaymentStore``."""

    def __init__(self, store: PaymentStore):
        self._store = store

    def reverse_overpayment(self, payment_id: int) -> PaymentRecord:
        """
        Reverse the overpayment carried by ``payment_id``.

        Returns:
            The inverse payment that was written.

        Raises:
            PaymentNotFoundError: Unknown payment.
            ReversalOfReversalError: The payment is itself a reversal.
            OverpaymentNotFoundError: No open overpayment on the payment.
            OverpaymentInUseError: Part of the overpayment was applied.
        """
        with LogContext.bind(payment_id=payment_id):
            original = self._store.get_payment(payment_id)
            if original.is_reversal:
                raise ReversalOfReversalError(payment_id, original.reversal_of_id)

            reversal = OverpaymentReversal(
                payment_id=original.id,
                post_date=original.payment_date,
                batch_id=original.batch_id,
                account_class=original.account_class,
                exchangerate=original.exchangerate,
                currency=original.currency,
            )
            with self._store.isolated():
                reversal_id = self._store.reverse_overpayment(reversal)

            logger.info(
                "overpayment_reversal_recorded",
                extra={"reversal_payment_id": reversal_id},
            )
            return self._store.get_payment(reversal_id)

    def reverse_payment(self, payment_id: int) -> PaymentRecord:
        """Reverse a whole payment, restoring what it paid on each invoice."""
        with LogContext.bind(payment_id=payment_id):
            with self._store.isolated():
                reversal_id = self._store.reverse_payment(payment_id)
            logger.info(
                "payment_reversal_recorded",
                extra={"reversal_payment_id": reversal_id},
            )
            return self._store.get_payment(reversal_id)

    def open_overpayment_entities(
        self, account_class: AccountClass,
    ) -> tuple[OverpaymentEntity, ...]:
        return self._store.list_open_overpayment_entities(account_class)

    def unused_overpayments(
        self, account_class: AccountClass, contact_id: int | None = None,
    ) -> tuple[Overpayment, ...]:
        return self._store.list_unused_overpayments(account_class, contact_id)

    def available_overpayment_amount(
        self, account_class: AccountClass, contact_id: int,
    ) -> Decimal:
        return self._store.get_available_overpayment_amount(account_class, contact_id)
