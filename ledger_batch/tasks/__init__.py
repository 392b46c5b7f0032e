"""
ledger_batch.tasks -- Task protocol, registry, and module task implementations.

ZERO module imports in base.py.
Module task files import from their ledger_modules packages lazily.
"""

from ledger_batch.tasks.base import (
    BatchItemInput,
    BatchTask,
    BatchTaskResult,
    TaskRegistry,
)
from ledger_batch.tasks.payment_tasks import PaymentBulkPostTask

__all__ = [
    "BatchItemInput",
    "BatchTask",
    "BatchTaskResult",
    "PaymentBulkPostTask",
    "TaskRegistry",
]
