"""
Typed exception hierarchy for the payment ledger.

Every error a caller may need to react to has its own class, a
machine-readable ``code`` class attribute, and structured attributes set in
``__init__``.  Callers catch by type and report by code; nothing parses
messages.

    LedgerKernelError (base)
    |
    +-- PaymentValidationError
    |   +-- SourceStartRequiredError
    |   +-- InvalidAllocationError
    |   +-- InvalidAmountError
    |   +-- InvalidAccountClassError
    |
    +-- PaymentError
    |   +-- ContactNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- VoucherBatchNotFoundError
    |   +-- PaymentNotFoundError
    |
    +-- ReversalError
    |   +-- PaymentAlreadyReversedError
    |   +-- ReversalOfReversalError
    |   +-- OverpaymentNotFoundError
    |   +-- OverpaymentInUseError
    |
    +-- CurrencyError
    |   +-- InvalidCurrencyError
    |
    +-- BatchError
        +-- BatchJobNotFoundError
        +-- BatchAlreadyRunningError
        +-- BatchIdempotencyError
        +-- TaskNotRegisteredError

Category     | Code                      | When raised
-------------|---------------------------|-----------------------------------------
Validation   | SOURCE_START_REQUIRED     | Payable batch without a starting source
             | INVALID_ALLOCATION        | Malformed {invoice,amount} pair
             | INVALID_AMOUNT            | Amount text is not a decimal number
             | INVALID_ACCOUNT_CLASS     | Account class other than 1 or 2
Payment      | CONTACT_NOT_FOUND         | Unknown contact / credit account
             | INVOICE_NOT_FOUND         | Invoice missing or owned by another contact
             | VOUCHER_BATCH_NOT_FOUND   | Unknown voucher batch id
             | PAYMENT_NOT_FOUND         | Unknown payment id
Reversal     | PAYMENT_ALREADY_REVERSED  | Second reversal of one payment
             | REVERSAL_OF_REVERSAL      | Reversing a reversal payment
             | OVERPAYMENT_NOT_FOUND     | Payment carries no open overpayment
             | OVERPAYMENT_IN_USE        | Overpayment partly applied already
Batch        | BATCH_JOB_NOT_FOUND       | Unknown job id
             | BATCH_ALREADY_RUNNING     | Job not in PENDING when executed
             | BATCH_IDEMPOTENCY_CONFLICT| Duplicate job idempotency key
             | TASK_NOT_REGISTERED       | No task for the job's task type

Validation errors abort a whole operation before anything is written.
Payment errors raised while posting one contact of a bulk run are recorded
against that contact only.
"""


class LedgerKernelError(Exception):
    """
    Base exception for all payment ledger errors.

    All subclasses carry a ``code`` class attribute.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Validation


class PaymentValidationError(LedgerKernelError):
    """Request data rejected before any persistence call."""

    code: str = "PAYMENT_VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class SourceStartRequiredError(PaymentValidationError):
    """A payable batch needs a starting source identifier."""

    code: str = "SOURCE_START_REQUIRED"

    def __init__(self, account_class: int):
        self.account_class = account_class
        super().__init__("source_start", "source start required")


class InvalidAllocationError(PaymentValidationError):
    """An invoice/amount pair is malformed."""

    code: str = "INVALID_ALLOCATION"

    def __init__(self, contact_id: int | None, invoice: object, amount: object, reason: str):
        self.contact_id = contact_id
        self.invoice = invoice
        self.amount = amount
        self.detail = reason
        super().__init__(
            "allocation",
            f"{{{invoice},{amount}}} for contact {contact_id}: {reason}",
        )


class InvalidAmountError(PaymentValidationError):
    """Amount text is not a plain decimal number."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, value: object):
        self.value = value
        super().__init__("amount", f"not a decimal number: {value!r}")


class InvalidAccountClassError(PaymentValidationError):
    """Account class is neither payable (1) nor receivable (2)."""

    code: str = "INVALID_ACCOUNT_CLASS"

    def __init__(self, value: object):
        self.value = value
        super().__init__("account_class", f"expected 1 or 2, got {value!r}")


# Payment persistence


class PaymentError(LedgerKernelError):
    """Base exception for payment posting errors."""

    code: str = "PAYMENT_ERROR"


class ContactNotFoundError(PaymentError):
    """Contact (entity credit account) was not found."""

    code: str = "CONTACT_NOT_FOUND"

    def __init__(self, contact_id: object):
        self.contact_id = contact_id
        super().__init__(f"Contact not found: {contact_id}")


class InvoiceNotFoundError(PaymentError):
    """Invoice missing, or not an invoice of the paying contact."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: int, contact_id: int | None = None):
        self.invoice_id = invoice_id
        self.contact_id = contact_id
        if contact_id is None:
            super().__init__(f"Invoice not found: {invoice_id}")
        else:
            super().__init__(f"Invoice {invoice_id} not found for contact {contact_id}")


class VoucherBatchNotFoundError(PaymentError):
    """Voucher batch was not found."""

    code: str = "VOUCHER_BATCH_NOT_FOUND"

    def __init__(self, batch_id: int):
        self.batch_id = batch_id
        super().__init__(f"Voucher batch not found: {batch_id}")


class PaymentNotFoundError(PaymentError):
    """Payment was not found."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: int):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


# Reversal


class ReversalError(LedgerKernelError):
    """Base exception for reversal errors."""

    code: str = "REVERSAL_ERROR"


class PaymentAlreadyReversedError(ReversalError):
    """Payment has already been reversed."""

    code: str = "PAYMENT_ALREADY_REVERSED"

    def __init__(self, payment_id: int, reversal_id: int):
        self.payment_id = payment_id
        self.reversal_id = reversal_id
        super().__init__(
            f"Payment {payment_id} has already been reversed by payment {reversal_id}"
        )


class ReversalOfReversalError(ReversalError):
    """The payment is itself a reversal."""

    code: str = "REVERSAL_OF_REVERSAL"

    def __init__(self, payment_id: int, original_id: int):
        self.payment_id = payment_id
        self.original_id = original_id
        super().__init__(
            f"Payment {payment_id} reverses payment {original_id} and cannot be reversed"
        )


class OverpaymentNotFoundError(ReversalError):
    """Payment carries no open overpayment."""

    code: str = "OVERPAYMENT_NOT_FOUND"

    def __init__(self, payment_id: int):
        self.payment_id = payment_id
        super().__init__(f"No open overpayment on payment {payment_id}")


class OverpaymentInUseError(ReversalError):
    """Part of the overpayment has already been applied."""

    code: str = "OVERPAYMENT_IN_USE"

    def __init__(self, payment_id: int, amount, available):
        self.payment_id = payment_id
        self.amount = amount
        self.available = available
        super().__init__(
            f"Overpayment on payment {payment_id} is partly used: "
            f"{available} of {amount} available"
        )


# Currency


class CurrencyError(LedgerKernelError):
    """Base exception for currency errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError):
    """Invalid ISO 4217 currency code provided."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: '{currency}'")


# Batch jobs


class BatchError(LedgerKernelError):
    """Base exception for batch job errors."""

    code: str = "BATCH_ERROR"


class BatchJobNotFoundError(BatchError):
    """Batch job was not found."""

    code: str = "BATCH_JOB_NOT_FOUND"

    def __init__(self, job_id: int):
        self.job_id = job_id
        super().__init__(f"Batch job not found: {job_id}")


class BatchAlreadyRunningError(BatchError):
    """Job is not PENDING, so it cannot be started."""

    code: str = "BATCH_ALREADY_RUNNING"

    def __init__(self, job_id: int, status: str):
        self.job_id = job_id
        self.status = status
        super().__init__(f"Batch job {job_id} cannot start from status {status}")


class BatchIdempotencyError(BatchError):
    """A job with the same idempotency key already exists."""

    code: str = "BATCH_IDEMPOTENCY_CONFLICT"

    def __init__(self, idempotency_key: str, existing_job_id: int):
        self.idempotency_key = idempotency_key
        self.existing_job_id = existing_job_id
        super().__init__(
            f"Idempotency key '{idempotency_key}' already used by job {existing_job_id}"
        )


class TaskNotRegisteredError(BatchError):
    """No task is registered for the job's task type."""

    code: str = "TASK_NOT_REGISTERED"

    def __init__(self, task_type: str):
        self.task_type = task_type
        super().__init__(f"No batch task registered for type '{task_type}'")
