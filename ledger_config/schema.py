"""
LedgerConfig schema.

The typed, frozen form of a configuration set file.  The loader parses
YAML into these types; nothing else constructs them from raw data.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseConfig:
    """Engine and pool settings for ``ledger_kernel.db.engine``."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class PaymentsConfig:
    """Payment workflow defaults.

    ``queue_payments`` and ``default_currency`` only seed the settings table;
    the persisted values are the ones read at run time.
    """

    queue_payments: bool = False
    default_currency: str = "USD"
    worker_tick_seconds: int = 30


@dataclass(frozen=True)
class LedgerConfig:
    """A loaded configuration set."""

    config_id: str
    version: int
    database: DatabaseConfig
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    payments: PaymentsConfig = field(default_factory=PaymentsConfig)
    checksum: str = ""
