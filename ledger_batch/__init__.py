"""
ledger_batch -- Batch job execution for queued payment work.

Provides a batch execution engine with per-item SAVEPOINT isolation,
progress tracking and idempotent submission, plus an in-process polling
worker that drains the jobs created by queued bulk payment runs.

Architecture:
    ledger_batch/ is a top-level package.  ledger_kernel never imports it;
    the payment store imports it lazily to create jobs.

Invariants:
    - SAVEPOINT isolation per item
    - Job idempotency (UNIQUE idempotency_key)
    - Sequence monotonicity via SequenceService
    - Clock injection (no datetime.now() calls)
    - Graceful worker shutdown
"""
