"""
Tests for the coach commission engine and the engine tracer.
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from ledger_engines.commission import (
    RateType,
    SalaryInputs,
    SalaryRates,
    compute_salary,
    payable_amount,
)
from ledger_engines.tracer import compute_input_fingerprint

RATES = SalaryRates(
    base_daily=Decimal("150.00"),
    subject2=Decimal("200.00"),
    subject3=Decimal("300.00"),
    recruitment=Decimal("500.00"),
)


class TestComputeSalary:

    def test_figures(self):
        figures = compute_salary(
            SalaryInputs(
                attendance_days=22,
                subject2_pass_count=3,
                subject3_pass_count=2,
                new_student_count=1,
                bonus=Decimal("100.00"),
                deduction=Decimal("50.00"),
            ),
            RATES,
        )

        assert figures.base_salary == Decimal("3300.00")
        assert figures.subject2_commission == Decimal("600.00")
        assert figures.subject3_commission == Decimal("600.00")
        assert figures.recruitment_commission == Decimal("500.00")
        assert figures.total_commission == Decimal("1700.00")
        assert figures.gross_salary == Decimal("5050.00")

    def test_missing_rates_are_zero(self):
        rates = SalaryRates.from_mapping({RateType.SUBJECT2_COMMISSION: Decimal("200.00")})
        figures = compute_salary(SalaryInputs(attendance_days=20, subject2_pass_count=1), rates)

        assert figures.base_salary == Decimal("0.00")
        assert figures.gross_salary == Decimal("200.00")

    def test_negative_counts_rejected(self):
        with pytest.raises(ValueError):
            SalaryInputs(subject3_pass_count=-1)

    def test_deduction_may_drive_gross_negative(self):
        figures = compute_salary(SalaryInputs(deduction=Decimal("10.00")), RATES)
        assert figures.gross_salary == Decimal("-10.00")

    @given(
        days=st.integers(min_value=0, max_value=31),
        s2=st.integers(min_value=0, max_value=50),
        s3=st.integers(min_value=0, max_value=50),
        new=st.integers(min_value=0, max_value=50),
    )
    def test_gross_is_sum_of_components(self, days, s2, s3, new):
        figures = compute_salary(
            SalaryInputs(
                attendance_days=days,
                subject2_pass_count=s2,
                subject3_pass_count=s3,
                new_student_count=new,
            ),
            RATES,
        )
        assert figures.gross_salary == figures.base_salary + figures.total_commission


class TestPayableAmount:

    def test_net_override_wins(self):
        assert payable_amount(Decimal("5000.00"), Decimal("4800.00")) == Decimal("4800.00")

    def test_gross_when_no_override(self):
        assert payable_amount(Decimal("5000.004"), None) == Decimal("5000.00")


class TestTracer:

    def test_fingerprint_is_order_independent(self):
        a = compute_input_fingerprint({"x": Decimal("1.00"), "y": 2})
        b = compute_input_fingerprint({"y": 2, "x": Decimal("1.00")})
        assert a == b
        assert len(a) == 16

    def test_engine_call_emits_trace(self, captured_logs):
        compute_salary(SalaryInputs(attendance_days=1), RATES)

        traces = [r for r in captured_logs() if r["message"] == "LEDGER_ENGINE_TRACE"]
        assert traces
        assert traces[-1]["engine_name"] == "coach_salary"
