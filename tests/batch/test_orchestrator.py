"""Tests for ledger_batch.orchestrator and ledger_batch.tasks.base."""

from uuid import uuid4

import pytest

from ledger_batch.orchestrator import BatchOrchestrator, default_task_registry
from ledger_batch.services.executor import BatchExecutor
from ledger_batch.services.worker import QueueWorker
from ledger_batch.tasks import BatchTask, PaymentBulkPostTask, TaskRegistry


class TestTaskRegistry:
    def test_register_and_get(self):
        registry = TaskRegistry()
        task = PaymentBulkPostTask()
        registry.register(task)
        assert registry.get("payments.bulk_post") is task
        assert "payments.bulk_post" in registry
        assert len(registry) == 1

    def test_duplicate_rejected(self):
        registry = TaskRegistry()
        registry.register(PaymentBulkPostTask())
        with pytest.raises(ValueError):
            registry.register(PaymentBulkPostTask())

    def test_unknown_lists_available(self):
        registry = default_task_registry()
        with pytest.raises(KeyError, match="payments.bulk_post"):
            registry.get("nope")

    def test_payment_task_satisfies_protocol(self):
        assert isinstance(PaymentBulkPostTask(), BatchTask)


class TestBatchOrchestrator:
    def test_default_registry(self, session):
        orchestrator = BatchOrchestrator.from_session(session)
        assert orchestrator.task_registry.list_tasks() == ("payments.bulk_post",)

    def test_create_executor_shares_clock(self, session, clock):
        actor = uuid4()
        orchestrator = BatchOrchestrator.from_session(session, clock=clock, actor_id=actor)
        executor = orchestrator.create_executor()

        assert isinstance(executor, BatchExecutor)
        job = executor.submit_job(
            job_name="bulk", task_type="payments.bulk_post",
            idempotency_key="k", actor_id=actor,
        )
        assert job.created_at == clock.now()
        assert orchestrator.actor_id == actor

    def test_create_worker(self, session, session_factory):
        orchestrator = BatchOrchestrator.from_session(session)
        worker = orchestrator.create_worker(session_factory, tick_interval_seconds=5)
        assert isinstance(worker, QueueWorker)
        assert not worker.is_running
