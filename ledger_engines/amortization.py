"""
Module: ledger_engines.amortization
Responsibility:
    Spread one annual expense evenly across an inclusive month range.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - monthly_amount = round(total / months, 2) (ROUND_HALF_UP).
    - Every month inside the range receives exactly monthly_amount; months
      outside receive zero.
    - Conservation within rounding: |sum(schedule) - total| is at most half
      a cent per month.  The difference is exposed as ``residual``.

Failure modes:
    - ValueError on months outside 1..12, start > end, or a negative total.

Usage:
    from ledger_engines.amortization import amortize

    schedule = amortize(Decimal("1000.00"), start_month=1, end_month=3)
    schedule.monthly_amount        # Decimal("333.33")
    schedule.residual              # Decimal("0.01")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from ledger_engines.tracer import traced_engine
from ledger_kernel.db.types import round_money


class AllocationMethod(str, Enum):
    """How an annual amount is spread over its months."""

    AVERAGE = "average"


@dataclass(frozen=True)
class AmortizationLine:
    month: int
    amount: Decimal


@dataclass(frozen=True)
class AmortizationSchedule:
    """Month-by-month amounts of one allocation."""

    total_amount: Decimal
    start_month: int
    end_month: int
    monthly_amount: Decimal
    lines: tuple[AmortizationLine, ...]

    @property
    def month_count(self) -> int:
        return self.end_month - self.start_month + 1

    @property
    def allocated_total(self) -> Decimal:
        return sum((line.amount for line in self.lines), Decimal("0"))

    @property
    def residual(self) -> Decimal:
        """Part of the total that per-month rounding leaves unallocated."""
        return self.total_amount - self.allocated_total

    def covers(self, month: int) -> bool:
        return self.start_month <= month <= self.end_month

    def amount_for(self, month: int) -> Decimal:
        if self.covers(month):
            return self.monthly_amount
        return Decimal("0.00")


def _check_range(start_month: int, end_month: int) -> None:
    if not (1 <= start_month <= 12 and 1 <= end_month <= 12):
        raise ValueError(f"months must be within 1..12, got {start_month}..{end_month}")
    if start_month > end_month:
        raise ValueError(f"start_month {start_month} is after end_month {end_month}")


def monthly_amount(total_amount: Decimal, start_month: int, end_month: int) -> Decimal:
    """``round(total / months, 2)`` for the inclusive range."""
    _check_range(start_month, end_month)
    months = end_month - start_month + 1
    return round_money(Decimal(total_amount) / Decimal(months))


@traced_engine("amortization", "1.0", fingerprint_fields=("total_amount", "start_month", "end_month"))
def amortize(
    total_amount: Decimal,
    start_month: int = 1,
    end_month: int = 12,
    method: AllocationMethod = AllocationMethod.AVERAGE,
) -> AmortizationSchedule:
    """
    Build the amortization schedule.

    Preconditions:
        - 1 <= start_month <= end_month <= 12.
        - total_amount >= 0.
    """
    if AllocationMethod(method) is not AllocationMethod.AVERAGE:
        raise ValueError(f"unsupported allocation method {method!r}")
    total = round_money(Decimal(total_amount))
    if total < 0:
        raise ValueError(f"total_amount must not be negative, got {total}")

    per_month = monthly_amount(total, start_month, end_month)
    return AmortizationSchedule(
        total_amount=total,
        start_month=start_month,
        end_month=end_month,
        monthly_amount=per_month,
        lines=tuple(
            AmortizationLine(month=m, amount=per_month)
            for m in range(start_month, end_month + 1)
        ),
    )
