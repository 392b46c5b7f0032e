"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``LedgerConfig``.

Architecture position:
    Configuration.  Sits beside ``ledger_kernel``; the kernel receives the
    parsed sections (``DatabaseConfig``) as arguments and never imports
    this package.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``KeyError`` / ``ValueError`` -- schema validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``LEDGER_CONFIG_TRACE`` log entry with the config_id, version and
    checksum of the loaded file.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ledger_config.loader import load_config
from ledger_config.schema import (
    DatabaseConfig,
    LedgerConfig,
    LoggingConfig,
    PaymentsConfig,
)

_logger = logging.getLogger("ledger_kernel.config")

# Default configuration set
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | None = None) -> LedgerConfig:
    """Load and validate the active configuration set.

    Args:
        config_path: Override path to a configuration set file.
            Defaults to ledger_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        KeyError: If a required key is missing.
        ValueError: If a value fails validation.
    """
    path = config_path or _DEFAULT_CONFIG_PATH
    config = load_config(path)

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "queue_payments": config.payments.queue_payments,
        },
    )
    return config


__all__ = [
    "DatabaseConfig",
    "LedgerConfig",
    "LoggingConfig",
    "PaymentsConfig",
    "get_active_config",
]
