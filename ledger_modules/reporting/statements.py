"""
Pure report builders (``ledger_modules.reporting.statements``).

Turn selector totals and allocation rows into report value objects.  No
session, no clock: everything comes in as arguments.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.db.types import round_money
from ledger_kernel.models.subject import SubjectType
from ledger_kernel.models.voucher import EntryType
from ledger_kernel.selectors.ledger_selector import LedgerLine, SubjectTotals
from ledger_modules.expense.models import ExpenseAllocation
from ledger_modules.reporting.models import (
    AllocationAmount,
    BalanceDetailReport,
    ProfitReport,
    ReportMetadata,
    SubjectAmount,
    SubjectBalanceLine,
    SubjectBalanceReport,
    YearlyProfitReport,
    YearlyProfitRow,
)


def _sum(amounts) -> Decimal:
    return round_money(sum(amounts, Decimal("0")))


def build_profit_report(
    metadata: ReportMetadata,
    year_month: str,
    totals: Sequence[SubjectTotals],
    allocations: Sequence[ExpenseAllocation],
) -> ProfitReport:
    """
    Income subjects contribute credit - debit, expense subjects debit -
    credit; each allocation covering the month contributes its
    ``monthly_amount``.
    """
    income_lines = tuple(
        SubjectAmount(t.subject_code, t.subject_name, round_money(t.net_credit))
        for t in totals
        if t.subject_type == SubjectType.INCOME
    )
    expense_lines = tuple(
        SubjectAmount(t.subject_code, t.subject_name, round_money(t.net_debit))
        for t in totals
        if t.subject_type == SubjectType.EXPENSE
    )
    allocation_lines = tuple(
        AllocationAmount(a.id, a.expense_name, a.subject_code, round_money(a.monthly_amount))
        for a in allocations
    )
    total_income = _sum(line.amount for line in income_lines)
    total_expense = _sum(line.amount for line in expense_lines)
    total_allocated = _sum(line.amount for line in allocation_lines)
    return ProfitReport(
        metadata=metadata,
        year_month=year_month,
        income_lines=income_lines,
        expense_lines=expense_lines,
        allocation_lines=allocation_lines,
        total_income=total_income,
        total_expense=total_expense,
        total_allocated=total_allocated,
        net_profit=total_income - total_expense - total_allocated,
    )


def build_yearly_report(
    metadata: ReportMetadata,
    year: int,
    monthly: Sequence[ProfitReport],
) -> YearlyProfitReport:
    rows = tuple(
        YearlyProfitRow(
            year_month=m.year_month,
            total_income=m.total_income,
            total_expense=m.total_expense,
            total_allocated=m.total_allocated,
            net_profit=m.net_profit,
        )
        for m in monthly
    )
    total_income = _sum(r.total_income for r in rows)
    total_expense = _sum(r.total_expense for r in rows)
    total_allocated = _sum(r.total_allocated for r in rows)
    return YearlyProfitReport(
        metadata=metadata,
        year=year,
        rows=rows,
        total_income=total_income,
        total_expense=total_expense,
        total_allocated=total_allocated,
        net_profit=total_income - total_expense - total_allocated,
    )


def build_subject_balances(
    metadata: ReportMetadata,
    as_of: date,
    totals: Sequence[SubjectTotals],
) -> SubjectBalanceReport:
    return SubjectBalanceReport(
        metadata=metadata,
        as_of=as_of,
        lines=tuple(
            SubjectBalanceLine(
                subject_code=t.subject_code,
                subject_name=t.subject_name,
                subject_type=t.subject_type.value,
                balance_direction=t.balance_direction.value,
                debit_total=t.debit_total,
                credit_total=t.credit_total,
                balance=round_money(t.balance),
            )
            for t in totals
        ),
    )


def build_balance_detail(
    metadata: ReportMetadata,
    lines: Sequence[LedgerLine],
) -> BalanceDetailReport:
    return BalanceDetailReport(
        metadata=metadata,
        lines=tuple(lines),
        debit_total=_sum(line.amount for line in lines if line.entry_type == EntryType.DEBIT),
        credit_total=_sum(line.amount for line in lines if line.entry_type == EntryType.CREDIT),
    )


def render_to_dict(obj: object) -> dict | list | str | int | float | bool | None:
    """
    Convert any report dataclass to a plain dict for JSON serialization.

    Handles:
    - Decimal -> str (preserving precision)
    - UUID -> str
    - date -> ISO format string
    - Enum -> .value
    - Nested frozen dataclasses -> nested dicts
    - Tuples -> lists
    """
    if obj is None:
        return None
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (list, tuple)):
        return [render_to_dict(item) for item in obj]
    if isinstance(obj, dict):
        return {str(k): render_to_dict(v) for k, v in obj.items()}
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {
            f.name: render_to_dict(getattr(obj, f.name))
            for f in dataclasses.fields(obj)
        }
    if isinstance(obj, (str, int, float, bool)):
        return obj
    return str(obj)
