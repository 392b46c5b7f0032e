"""
BatchTask protocol, supporting types, and TaskRegistry.

Contract:
    ``BatchTask`` is the interface every batch task implements.
    ``TaskRegistry`` stores registered tasks keyed by ``task_type``.

Architecture:
    ledger_batch/tasks.  base.py imports only ledger_batch.domain; task
    modules import their business package lazily.

Invariants enforced:
    - One task per ``task_type`` string.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy.orm import Session

from ledger_batch.domain.types import BatchItemStatus


@dataclass(frozen=True)
class BatchItemInput:
    """Input for a single batch item, created by ``BatchTask.prepare_items()``."""

    item_index: int
    item_key: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BatchTaskResult:
    """Result returned by ``BatchTask.execute_item()``."""

    status: BatchItemStatus
    result_data: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None


@runtime_checkable
class BatchTask(Protocol):
    """Interface for batch task implementations.

    Contract:
        - ``task_type``: unique key registered in TaskRegistry.
        - ``prepare_items()``: reads the work of one job, returns an immutable tuple.
        - ``execute_item()``: processes ONE item inside the executor's SAVEPOINT.

    Non-goals:
        - Does NOT manage transactions; the executor owns the SAVEPOINTs.
    """

    @property
    def task_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    def prepare_items(
        self,
        job_id: int,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        """Collect the items of job ``job_id``.

        Args:
            job_id: The job being executed; queued work is keyed by it.
            parameters: BatchJob.parameters.
            session: Database session.
            as_of: Clock-injected timestamp.
        """
        ...

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        """Execute a single item.  A FAILED or SKIPPED result rolls the SAVEPOINT back."""
        ...


class TaskRegistry:
    """Maps task_type strings to BatchTask implementations.

    Contract:
        - ``register()`` raises ValueError on a duplicate task_type.
        - ``get()`` raises KeyError for an unknown task_type.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, BatchTask] = {}

    def register(self, task: BatchTask) -> None:
        if task.task_type in self._tasks:
            raise ValueError(
                f"Task type '{task.task_type}' is already registered"
            )
        self._tasks[task.task_type] = task

    def get(self, task_type: str) -> BatchTask:
        try:
            return self._tasks[task_type]
        except KeyError:
            raise KeyError(
                f"No task registered for type '{task_type}'. "
                f"Available: {sorted(self._tasks.keys())}"
            ) from None

    def list_tasks(self) -> tuple[str, ...]:
        """Return all registered task_type strings, sorted."""
        return tuple(sorted(self._tasks.keys()))

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_type: str) -> bool:
        return task_type in self._tasks
