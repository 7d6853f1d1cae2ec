"""
Tests for the Reporting Service.

Validates:
- Monthly profit = income - expense - amortized allocations
- Yearly report has twelve rows and matching totals
- Subject balances are signed by balance direction
- Balance detail covers an inclusive date range and balances
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.exceptions import InvalidMonthError
from ledger_kernel.models.subject import SubjectType
from ledger_kernel.services.voucher_service import ItemSpec
from ledger_modules.expense import ExpenseAllocationService
from ledger_modules.reporting import ReportingService, ReportType
from ledger_modules.tuition import TuitionLedgerService


@pytest.fixture
def reporting_service(session, standard_chart, deterministic_clock):
    return ReportingService(session, clock=deterministic_clock)


@pytest.fixture
def march_activity(
    session, standard_chart, deterministic_clock, create_student, voucher_service, test_actor_id,
):
    """
    March 2024: 4500 tuition received, 1200 operating expense paid by hand,
    a 12000 annual insurance allocation and a 600 Apr-Jun training fee.
    """
    student = create_student()
    TuitionLedgerService(session, clock=deterministic_clock).add_payment(
        student.id, Decimal("4500.00"), date(2024, 3, 5),
        method="bank_transfer", operator="alice", actor_id=test_actor_id,
    )
    voucher_service.post_manual(
        date(2024, 3, 20),
        "March maintenance",
        [
            ItemSpec.debit("660203", Decimal("1200.00"), "Brake repair"),
            ItemSpec.credit("1002", Decimal("1200.00"), "Brake repair"),
        ],
        creator="alice",
        actor_id=test_actor_id,
    )
    allocations = ExpenseAllocationService(session, clock=deterministic_clock)
    allocations.create_allocation(
        "Vehicle insurance", "660203", Decimal("12000.00"), 2024, test_actor_id,
    )
    allocations.create_allocation(
        "Training fee", "6602", Decimal("600.00"), 2024, test_actor_id,
        start_month=4, end_month=6,
    )
    session.commit()


class TestProfit:

    def test_monthly_profit(self, reporting_service, march_activity):
        report = reporting_service.profit_monthly("2024-03")

        assert [(line.subject_code, line.amount) for line in report.income_lines] == [("5001", Decimal("4500.00"))]
        assert [(line.subject_code, line.amount) for line in report.expense_lines] == [("660203", Decimal("1200.00"))]
        assert [line.amount for line in report.allocation_lines] == [Decimal("1000.00")]
        assert report.total_income == Decimal("4500.00")
        assert report.total_expense == Decimal("1200.00")
        assert report.total_allocated == Decimal("1000.00")
        assert report.net_profit == Decimal("2300.00")
        assert report.metadata.period_start == date(2024, 3, 1)
        assert report.metadata.period_end == date(2024, 4, 1)

    def test_month_with_only_allocations(self, reporting_service, march_activity):
        report = reporting_service.profit_monthly("2024-05")

        assert report.income_lines == ()
        assert report.total_allocated == Decimal("1200.00")
        assert report.net_profit == Decimal("-1200.00")

    def test_yearly_totals(self, reporting_service, march_activity):
        report = reporting_service.profit_yearly(2024)

        assert len(report.rows) == 12
        assert report.rows[0].year_month == "2024-01"
        assert report.rows[11].year_month == "2024-12"
        assert report.total_income == Decimal("4500.00")
        assert report.total_expense == Decimal("1200.00")
        assert report.total_allocated == Decimal("12600.00")
        assert report.net_profit == Decimal("-9300.00")
        assert report.net_profit == sum((r.net_profit for r in report.rows), Decimal("0"))

    def test_empty_month(self, reporting_service):
        report = reporting_service.profit_monthly("2024-07")

        assert report.net_profit == Decimal("0.00")
        assert report.allocation_lines == ()

    def test_invalid_month(self, reporting_service):
        with pytest.raises(InvalidMonthError):
            reporting_service.profit_monthly("2024/03")

    def test_reports_do_not_write(self, session, reporting_service, march_activity):
        reporting_service.profit_yearly(2024)

        assert not session.new
        assert not session.dirty


class TestBalances:

    def test_subject_balances_signed_by_direction(self, reporting_service, march_activity):
        report = reporting_service.subject_balances(date(2024, 3, 31))

        balances = {line.subject_code: line.balance for line in report.lines}
        assert balances == {
            "1002": Decimal("3300.00"),
            "5001": Decimal("4500.00"),
            "660203": Decimal("1200.00"),
        }

    def test_as_of_excludes_later_vouchers(self, reporting_service, march_activity):
        report = reporting_service.subject_balances(date(2024, 3, 10))

        assert {line.subject_code for line in report.lines} == {"1002", "5001"}

    def test_filter_by_subject_type(self, reporting_service, march_activity):
        report = reporting_service.subject_balances(date(2024, 12, 31), SubjectType.INCOME)

        assert [line.subject_code for line in report.lines] == ["5001"]

    def test_balance_detail(self, reporting_service, march_activity):
        report = reporting_service.balance_detail(date(2024, 3, 1), date(2024, 3, 20))

        assert len(report.lines) == 4
        assert report.lines[0].voucher_no == "20240305-001"
        assert report.debit_total == report.credit_total == Decimal("5700.00")

    def test_balance_detail_outside_range_is_empty(self, reporting_service, march_activity):
        report = reporting_service.balance_detail(date(2024, 3, 6), date(2024, 3, 19))

        assert report.lines == ()


class TestRendering:

    def test_to_dict(self, reporting_service, march_activity):
        report = reporting_service.profit_monthly("2024-03")

        rendered = reporting_service.to_dict(report)

        assert rendered["net_profit"] == "2300.00"
        assert rendered["metadata"]["report_type"] == ReportType.PROFIT_MONTHLY.value
        assert rendered["metadata"]["period_start"] == "2024-03-01"
        assert rendered["income_lines"][0]["subject_code"] == "5001"
        assert isinstance(rendered["allocation_lines"][0]["allocation_id"], str)
