"""Database layer - engine, base classes and column types."""

from ledger_kernel.db.base import UUID, Base, SerialKey, TrackedBase, UUIDString
from ledger_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)
from ledger_kernel.db.types import Currency, Money, Rate, SourceRef

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "SerialKey",
    "UUIDString",
    "UUID",
    "Money",
    "Rate",
    "Currency",
    "SourceRef",
]
