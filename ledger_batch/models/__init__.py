"""
ledger_batch.models -- ORM models for batch job persistence.

Imports from ledger_kernel.db.base only.
"""

from ledger_batch.models.batch import BatchItemModel, BatchJobModel

__all__ = [
    "BatchItemModel",
    "BatchJobModel",
]
