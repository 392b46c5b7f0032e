"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads a configuration set YAML file and parses it into the frozen
dataclasses of ``ledger_config.schema``.  Runtime callers go through
``ledger_config.get_active_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the parsed
  data for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    DatabaseConfig,
    LedgerConfig,
    LoggingConfig,
    PaymentsConfig,
)
from ledger_kernel.db.types import validate_currency

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _positive_int(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{key} must be a non-negative integer, got {value!r}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    """Parse a DatabaseConfig from a dict.  ``url`` is required."""
    return DatabaseConfig(
        url=data["url"],
        echo=bool(data.get("echo", False)),
        pool_size=_positive_int(data, "pool_size", 20),
        max_overflow=_positive_int(data, "max_overflow", 10),
        pool_timeout=_positive_int(data, "pool_timeout", 30),
        pool_recycle=_positive_int(data, "pool_recycle", 1800),
    )


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"Unknown log level: {level!r}")
    return LoggingConfig(level=level)


def parse_payments(data: dict[str, Any]) -> PaymentsConfig:
    """Parse a PaymentsConfig from a dict.  Every key is optional."""
    return PaymentsConfig(
        queue_payments=bool(data.get("queue_payments", False)),
        default_currency=validate_currency(str(data.get("default_currency", "USD"))),
        worker_tick_seconds=_positive_int(data, "worker_tick_seconds", 30),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Parse a whole configuration set.

    Raises:
        KeyError: ``config_id``, ``version`` or ``database.url`` missing.
        ValueError: A field has the wrong type or value.
    """
    return LedgerConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        database=parse_database(data["database"]),
        logging=parse_logging(data.get("logging") or {}),
        payments=parse_payments(data.get("payments") or {}),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> LedgerConfig:
    return parse_config(load_yaml_file(path))
