#!/usr/bin/env python3
"""
Run the queued payment worker.

Drains the batch jobs created by bulk payment runs while the
``queue_payments`` setting is on.

Usage:
    python3 scripts/run_payment_worker.py [--config PATH] [--create-schema] [--once]
"""

import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from ledger_batch.runner import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
