"""
Module ORM Registry (``ledger_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
contains its table definition before tables are created.

Architecture position
---------------------
**Modules layer** -- utility.  Imported lazily by
``ledger_kernel.db.engine.create_tables()`` and by ``tests/conftest.py``.
"""


def import_all_orm_models() -> None:
    """Import kernel, batch and module ORM models.

    Kernel tables first; ``queued_payments`` references ``batch_jobs``.
    Idempotent -- repeated calls are harmless.
    """
    import ledger_kernel.services.sequence_service  # noqa: F401
    import ledger_batch.models  # noqa: F401
    import ledger_modules.payments.orm  # noqa: F401
