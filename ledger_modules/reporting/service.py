"""
Reporting Module Service (``ledger_modules.reporting.service``).

Responsibility
--------------
Read-only reports over the ledger: monthly and yearly profit (posted
income and expense plus amortized annual expenses), subject balances as of
a date, and line-level ledger detail for a date range.

Architecture position
---------------------
**Modules layer** -- ``ReportingService`` loads data through
``LedgerSelector`` and ``ExpenseAllocationService`` and delegates shaping
to the pure builders in ``statements.py``.

Invariants enforced
-------------------
* Reports never add, flush or commit.
* Month ranges are half open: ``[first day, first day of next month)``.

Failure modes
-------------
* ``InvalidMonthError`` -- malformed ``YYYY-MM`` key.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.months import month_bounds, month_key, parse_month
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.subject import SubjectType
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_modules.expense.service import ExpenseAllocationService
from ledger_modules.reporting.models import (
    BalanceDetailReport,
    ProfitReport,
    ReportMetadata,
    ReportType,
    SubjectBalanceReport,
    YearlyProfitReport,
)
from ledger_modules.reporting.statements import (
    build_balance_detail,
    build_profit_report,
    build_subject_balances,
    build_yearly_report,
    render_to_dict,
)

logger = get_logger("modules.reporting.service")


class ReportingService:
    """
    Profit and balance reports.

    Non-goals
    ---------
    * Does NOT post vouchers or change any business record.
    * Does NOT cache results; every call aggregates the ledger afresh.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._ledger = LedgerSelector(session)
        self._allocations = ExpenseAllocationService(session, self._clock)

    def _metadata(
        self,
        report_type: ReportType,
        period_start: date | None = None,
        period_end: date | None = None,
    ) -> ReportMetadata:
        return ReportMetadata(
            report_type=report_type,
            generated_at=self._clock.now().isoformat(),
            period_start=period_start,
            period_end=period_end,
        )

    def _month_report(self, year_month: str) -> ProfitReport:
        year, month = parse_month(year_month)
        start, end = month_bounds(year_month)
        totals = self._ledger.subject_totals(start, end)
        allocations = self._allocations.allocations_for_month(year, month)
        return build_profit_report(
            self._metadata(ReportType.PROFIT_MONTHLY, start, end),
            year_month,
            totals,
            allocations,
        )

    def profit_monthly(self, year_month: str) -> ProfitReport:
        """
        ``net_profit = total_income - total_expense - total_allocated`` for
        the month.
        """
        report = self._month_report(year_month)
        logger.info("profit_monthly_generated", extra={
            "month": year_month,
            "total_income": str(report.total_income),
            "total_expense": str(report.total_expense),
            "total_allocated": str(report.total_allocated),
            "net_profit": str(report.net_profit),
        })
        return report

    def profit_yearly(self, year: int) -> YearlyProfitReport:
        """The monthly report for each of the twelve months, plus totals."""
        monthly = [self._month_report(month_key(year, m)) for m in range(1, 13)]
        report = build_yearly_report(
            self._metadata(ReportType.PROFIT_YEARLY, date(year, 1, 1), date(year, 12, 31)),
            year,
            monthly,
        )
        logger.info("profit_yearly_generated", extra={
            "year": year,
            "net_profit": str(report.net_profit),
        })
        return report

    def subject_balances(
        self,
        as_of: date,
        subject_type: SubjectType | None = None,
    ) -> SubjectBalanceReport:
        """Cumulative balance of each subject, signed by its balance direction."""
        totals = self._ledger.subject_balances(as_of, subject_type)
        return build_subject_balances(
            self._metadata(ReportType.SUBJECT_BALANCES, period_end=as_of),
            as_of,
            totals,
        )

    def balance_detail(
        self,
        start: date,
        end: date,
        subject_type: SubjectType | None = None,
    ) -> BalanceDetailReport:
        """Voucher lines dated in ``[start, end]``."""
        lines = self._ledger.balance_detail(start, end, subject_type)
        return build_balance_detail(
            self._metadata(ReportType.BALANCE_DETAIL, start, end),
            lines,
        )

    def to_dict(self, report: object) -> dict:
        return render_to_dict(report)
