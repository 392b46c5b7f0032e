"""ledger_batch.services -- job execution and the queue worker."""

from ledger_batch.services.executor import BatchExecutor
from ledger_batch.services.worker import QueueWorker

__all__ = ["BatchExecutor", "QueueWorker"]
