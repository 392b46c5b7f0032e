"""
Queue worker entry point.

Loads a configuration set, initializes the engine, optionally creates the
schema, seeds the payment settings and runs a QueueWorker until
interrupted.  ``scripts/run_payment_worker.py`` is the command-line wrapper.
"""

from __future__ import annotations

import argparse
import time
from pathlib import Path
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from ledger_config import LedgerConfig, get_active_config
from ledger_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_config,
    session_scope,
)
from ledger_kernel.domain.clock import SystemClock
from ledger_kernel.logging_config import configure_logging, get_logger

from ledger_batch.orchestrator import BatchOrchestrator
from ledger_batch.services.worker import QueueWorker

logger = get_logger("batch.runner")


def bootstrap(
    config: LedgerConfig,
    actor_id: UUID,
    create_schema: bool = False,
) -> sessionmaker[Session]:
    """Initialize the engine and seed payment settings.  Returns the session factory."""
    from ledger_modules.payments.config import seed_payment_settings

    configure_logging(level=config.logging.level)
    init_engine_from_config(config.database)
    if create_schema:
        create_tables()

    with session_scope() as session:
        seed_payment_settings(session, config.payments, actor_id)

    logger.info(
        "worker_bootstrapped",
        extra={"config_set_id": config.config_id, "create_schema": create_schema},
    )
    return get_session_factory()


def build_worker(
    config: LedgerConfig,
    session_factory: sessionmaker[Session],
    actor_id: UUID,
) -> QueueWorker:
    """A QueueWorker for the payment tasks, polling at the configured interval."""
    session = session_factory()
    try:
        orchestrator = BatchOrchestrator.from_session(
            session, clock=SystemClock(), actor_id=actor_id,
        )
        return orchestrator.create_worker(
            session_factory,
            tick_interval_seconds=config.payments.worker_tick_seconds,
        )
    finally:
        session.close()


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the queued payment worker")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration set file (default: ledger_config/sets/default.yaml)",
    )
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create missing tables before starting",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single tick and exit",
    )
    parser.add_argument(
        "--actor-id",
        type=UUID,
        default=None,
        help="UUID recorded on job items (default: random)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    actor_id = args.actor_id or uuid4()

    config = get_active_config(args.config)
    session_factory = bootstrap(config, actor_id, create_schema=args.create_schema)
    worker = build_worker(config, session_factory, actor_id)

    if args.once:
        executed = worker.tick()
        logger.info("worker_single_tick", extra={"executed": executed})
        return 0

    worker.start()
    try:
        while worker.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("worker_interrupted")
    finally:
        worker.stop()
    return 0
