"""
Ledger Modules.

Thin orchestration layers over the ledger kernel.  Each module contains:
- Domain models (the nouns)
- ORM persistence and a typed store interface
- A service facade called by the screens

Modules:
- Payments: bulk and single payments, source numbering, queued posting,
  reversals and overpayments
"""

from ledger_modules import payments

__all__ = ["payments"]
