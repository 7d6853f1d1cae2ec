"""
Tests for YYYY-MM month keys.
"""

from datetime import date

import pytest

from ledger_kernel.domain.months import (
    day_in_month,
    month_bounds,
    month_key,
    month_start,
    parse_month,
)
from ledger_kernel.exceptions import InvalidMonthError, ValidationError


class TestParseMonth:

    def test_valid_key(self):
        assert parse_month("2024-03") == (2024, 3)

    @pytest.mark.parametrize(
        "value",
        [
            "2024-13", "2024-00", "2024-3", "24-03", "", "2024/03",
            "2024-03\n", " 2024-03", "0000-01", "9999-01", "２０２４-03",
        ],
    )
    def test_invalid_keys(self, value):
        with pytest.raises(InvalidMonthError):
            parse_month(value)

    def test_invalid_month_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            parse_month("March")


class TestRanges:

    def test_bounds_are_half_open(self):
        assert month_bounds("2024-02") == (date(2024, 2, 1), date(2024, 3, 1))

    def test_december_rolls_into_next_year(self):
        assert month_bounds("2024-12") == (date(2024, 12, 1), date(2025, 1, 1))

    def test_month_start_and_key(self):
        assert month_start("2024-07") == date(2024, 7, 1)
        assert month_key(2024, 7) == "2024-07"

    def test_day_clamped_to_month_end(self):
        assert day_in_month("2023-02", 31) == date(2023, 2, 28)
        assert day_in_month("2024-02", 31) == date(2024, 2, 29)
        assert day_in_month("2024-04", 15) == date(2024, 4, 15)

    @pytest.mark.parametrize("year,month", [(0, 1), (2024, 0), (2024, 13), (9999, 12)])
    def test_key_out_of_range(self, year, month):
        with pytest.raises(InvalidMonthError):
            month_key(year, month)

    def test_earliest_and_latest_months(self):
        assert month_bounds("0001-01") == (date(1, 1, 1), date(1, 2, 1))
        assert month_bounds("9998-12") == (date(9998, 12, 1), date(9999, 1, 1))
