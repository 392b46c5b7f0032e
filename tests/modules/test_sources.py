"""Tests for source numbering (ledger_modules/payments/sources.py)."""

import pytest

from ledger_kernel.exceptions import SourceStartRequiredError
from ledger_modules.payments.models import AccountClass
from ledger_modules.payments.sources import (
    SourceAllocator,
    allocate_sources,
    parse_source_start,
)


class TestAllocateSources:
    def test_increments_and_keeps_width(self):
        assert allocate_sources("INV-099", 3) == ("INV-099", "INV-100", "INV-101")

    def test_leading_zeros_preserved(self):
        assert allocate_sources("CHK0007", 2) == ("CHK0007", "CHK0008")

    def test_width_may_grow(self):
        assert allocate_sources("9", 3) == ("9", "10", "11")

    def test_non_digit_tail_kept(self):
        assert allocate_sources("A100-X", 2) == ("A100-X", "A101-X")

    def test_only_last_digit_run_moves(self):
        assert allocate_sources("2024-001", 2) == ("2024-001", "2024-002")

    @pytest.mark.parametrize("start", [None, "", "CHECK"])
    def test_no_number_gives_empty_sources(self, start):
        assert allocate_sources(start, 2) == ("", "")

    def test_zero_count(self):
        assert allocate_sources("1", 0) == ()

    def test_negative_count(self):
        with pytest.raises(ValueError):
            allocate_sources("1", -1)

    @pytest.mark.parametrize("n", [1, 5, 120])
    def test_nth_value_is_start_plus_n_minus_one(self, n):
        template = parse_source_start("00042")
        nth = allocate_sources("00042", n)[-1]
        assert int(nth) == 42 + n - 1
        assert len(nth) >= template.width


class TestParseSourceStart:
    def test_split(self):
        template = parse_source_start("INV-099")
        assert (template.prefix, template.number, template.width, template.suffix) == (
            "INV-", 99, 3, "",
        )

    def test_no_digits(self):
        assert parse_source_start("ABC") is None


class TestSourceAllocator:
    def test_payable_requires_start(self):
        with pytest.raises(SourceStartRequiredError, match="source start required"):
            SourceAllocator(AccountClass.PAYABLE, None)

    def test_payable_numbers_contacts(self):
        allocator = SourceAllocator(AccountClass.PAYABLE, "INV-099")
        assert allocator.next_for(1) == "INV-099"
        assert allocator.next_for(2) == "INV-100"
        assert allocator.assigned == {1: "INV-099", 2: "INV-100"}
        assert allocator.last_assigned == "INV-100"

    def test_clear_does_not_consume(self):
        allocator = SourceAllocator(AccountClass.PAYABLE, "10")
        allocator.next_for(1)
        assert allocator.clear(2) == ""
        assert allocator.next_for(3) == "11"
        assert allocator.assigned[2] == ""

    def test_receivable_never_numbers(self):
        allocator = SourceAllocator(AccountClass.RECEIVABLE, None)
        assert allocator.next_for(1) == ""
        assert allocator.last_assigned is None

    def test_payable_start_without_digits(self):
        allocator = SourceAllocator(AccountClass.PAYABLE, "CHECK")
        assert allocator.next_for(1) == ""
