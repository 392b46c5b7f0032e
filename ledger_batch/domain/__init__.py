"""
ledger_batch.domain -- Pure types for batch processing.

ZERO I/O.  All types are frozen dataclasses.
"""

from ledger_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJob,
    BatchJobStatus,
    BatchRunResult,
)

__all__ = [
    "BatchItemResult",
    "BatchItemStatus",
    "BatchJob",
    "BatchJobStatus",
    "BatchRunResult",
]
