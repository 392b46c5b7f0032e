"""
Payment Settings (``ledger_modules.payments.config``).

Responsibility
--------------
Names and interpretation of the persisted settings the payment workflow
reads at run time, and seeding of those settings from the loaded
``ledger_config`` configuration.

Architecture position
---------------------
**Modules layer** -- configuration glue.  Values come from
``ledger_config.get_active_config()``; nothing here reads files or the
environment.

Invariants enforced
-------------------
* Seeding never overwrites a setting that already has a row: an operator's
  change in the database wins over the configuration file.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.logging_config import get_logger
from ledger_modules.payments.orm import SettingModel

logger = get_logger("modules.payments.config")

QUEUE_PAYMENTS = "queue_payments"
DEFAULT_CURRENCY = "curr"

_TRUE_VALUES = frozenset({"1", "t", "true", "y", "yes", "on"})


def setting_is_true(value: str | None) -> bool:
    """Interpret a stored setting as a flag.  Missing or empty is False."""
    if value is None:
        return False
    return value.strip().lower() in _TRUE_VALUES


def seed_payment_settings(session: Session, payments_config, actor_id: UUID) -> tuple[str, ...]:
    """
    Create the payment settings that do not exist yet.

    Args:
        session: Caller-owned session; not committed here.
        payments_config: ``ledger_config`` PaymentsConfig.
        actor_id: Recorded as creator of new rows.

    Returns:
        Names of the settings that were created.
    """
    wanted = {
        QUEUE_PAYMENTS: "1" if payments_config.queue_payments else "0",
        DEFAULT_CURRENCY: payments_config.default_currency,
    }
    existing = set(
        session.execute(
            select(SettingModel.name).where(SettingModel.name.in_(wanted))
        ).scalars()
    )

    created = []
    for name, value in wanted.items():
        if name in existing:
            continue
        session.add(SettingModel(name=name, value=value, created_by_id=actor_id))
        created.append(name)
    session.flush()

    logger.info(
        "payment_settings_seeded",
        extra={"created_settings": created, "kept_settings": sorted(existing)},
    )
    return tuple(created)
