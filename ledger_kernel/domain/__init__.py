"""Pure domain helpers for the ledger kernel (clock, month keys)."""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.months import (
    month_bounds,
    month_key,
    month_start,
    parse_month,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "month_bounds",
    "month_key",
    "month_start",
    "parse_month",
]
