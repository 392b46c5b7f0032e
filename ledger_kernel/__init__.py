"""
Ledger Kernel

Shared foundation of the payment ledger:
- SQLAlchemy declarative base, engine and session scope
- Money / currency column types and rounding
- Typed exception hierarchy
- Structured JSON logging
- Injectable clock and locked sequence counters
"""

__version__ = "0.1.0"
