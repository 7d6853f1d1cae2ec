"""
Month keys.

Salary records, monthly expenses and reports are keyed by ``YYYY-MM``
strings.  Everything that turns a key into a date range goes through here.
"""

import calendar
import re
from datetime import date

from ledger_kernel.exceptions import InvalidMonthError

_MONTH_RE = re.compile(r"([0-9]{4})-([0-9]{2})")

# Upper bound leaves room for the next-month boundary of December
_MAX_YEAR = 9998


def parse_month(value: str) -> tuple[int, int]:
    """Split a ``YYYY-MM`` key into (year, month).

    Raises:
        InvalidMonthError: malformed key, year outside 1..9998 or month
            outside 1..12.
    """
    match = _MONTH_RE.fullmatch(value or "")
    if match is None:
        raise InvalidMonthError(value)
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= year <= _MAX_YEAR or not 1 <= month <= 12:
        raise InvalidMonthError(value)
    return year, month


def month_key(year: int, month: int) -> str:
    if not 1 <= year <= _MAX_YEAR or not 1 <= month <= 12:
        raise InvalidMonthError(f"{year}-{month}")
    return f"{year:04d}-{month:02d}"


def month_start(value: str) -> date:
    year, month = parse_month(value)
    return date(year, month, 1)


def month_bounds(value: str) -> tuple[date, date]:
    """Half-open range ``[first day, first day of next month)``."""
    year, month = parse_month(value)
    start = date(year, month, 1)
    if month == 12:
        return start, date(year + 1, 1, 1)
    return start, date(year, month + 1, 1)


def day_in_month(value: str, day: int) -> date:
    """The given day of the month, clamped to the month's last day."""
    year, month = parse_month(value)
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(max(day, 1), last))
