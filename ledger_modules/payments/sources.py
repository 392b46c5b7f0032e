"""
Source Number Allocator (``ledger_modules.payments.sources``).

Responsibility
--------------
Derives the per-contact source identifiers (check numbers, transfer
references) of a bulk run from one starting value: the trailing run of
digits is incremented once per paid contact and zero-padded back to its
original width, e.g. ``INV-099`` -> ``INV-099``, ``INV-100``.

Architecture position
---------------------
**Modules layer** -- pure functions plus a small stateful allocator used for
one run.  No I/O.

Invariants enforced
-------------------
* The N-th allocated value equals start + N - 1, rendered no narrower than
  the starting digit run.
* Only payable runs are numbered; receivable runs get empty sources.
* A payable run without a starting value is rejected.
"""

import re
from dataclasses import dataclass

from ledger_kernel.exceptions import SourceStartRequiredError
from ledger_kernel.logging_config import get_logger
from ledger_modules.payments.models import AccountClass

logger = get_logger("modules.payments.sources")

# A digit run, optionally followed by a non-digit tail, at the end of the value.
_TRAILING_NUMBER = re.compile(r"(\d+)(\D*)$")


@dataclass(frozen=True)
class SourceTemplate:
    """A starting source split around its trailing number."""
    prefix: str
    number: int
    width: int
    suffix: str = ""

    def render(self, offset: int) -> str:
        digits = str(self.number + offset).zfill(self.width)
        return f"{self.prefix}{digits}{self.suffix}"


def parse_source_start(start: str | None) -> SourceTemplate | None:
    """Split ``start`` around its trailing digit run, or None if it has none."""
    if not start:
        return None
    match = _TRAILING_NUMBER.search(start)
    if match is None:
        return None
    digits = match.group(1)
    return SourceTemplate(
        prefix=start[:match.start(1)],
        number=int(digits),
        width=len(digits),
        suffix=match.group(2),
    )


def allocate_sources(start: str | None, count: int) -> tuple[str, ...]:
    """
    ``count`` consecutive sources beginning with ``start``.

    Without a trailing digit run every value is the empty string.
    """
    if count < 0:
        raise ValueError("count cannot be negative")
    template = parse_source_start(start)
    if template is None:
        return ("",) * count
    return tuple(template.render(i) for i in range(count))


class SourceAllocator:
    """
    Hands out sources to contacts in the order they are paid.

    Contract:
        - ``next_for()`` gives a contact the next number and remembers it.
        - ``clear()`` records an empty source without consuming a number.
        - ``assigned`` maps contact id to the last source given to it.
    """

    def __init__(self, account_class: AccountClass, source_start: str | None):
        if account_class.numbers_sources and source_start is None:
            raise SourceStartRequiredError(account_class.value)
        self._account_class = account_class
        self._template = (
            parse_source_start(source_start) if account_class.numbers_sources else None
        )
        self._issued = 0
        self._assigned: dict[int, str] = {}

    @property
    def assigned(self) -> dict[int, str]:
        return dict(self._assigned)

    @property
    def last_assigned(self) -> str | None:
        if self._issued == 0 or self._template is None:
            return None
        return self._template.render(self._issued - 1)

    def next_for(self, contact_id: int) -> str:
        if self._template is None:
            source = ""
        else:
            source = self._template.render(self._issued)
            self._issued += 1
        self._assigned[contact_id] = source
        logger.debug(
            "source_allocated",
            extra={"contact_id": contact_id, "source": source},
        )
        return source

    def clear(self, contact_id: int) -> str:
        self._assigned[contact_id] = ""
        return ""
