"""
Reporting Domain Models (``ledger_modules.reporting.models``).

Responsibility
--------------
Frozen value objects for the profit reports and ledger balance reports.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Built by
``ledger_modules.reporting.statements`` and returned by
``ReportingService``.

Invariants enforced
-------------------
* ``net_profit = total_income - total_expense - total_allocated`` on every
  monthly row and on the yearly totals.
* All monetary fields use ``Decimal``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.selectors.ledger_selector import LedgerLine


class ReportType(str, Enum):
    PROFIT_MONTHLY = "profit_monthly"
    PROFIT_YEARLY = "profit_yearly"
    SUBJECT_BALANCES = "subject_balances"
    BALANCE_DETAIL = "balance_detail"


@dataclass(frozen=True)
class ReportMetadata:
    """Metadata attached to every report."""

    report_type: ReportType
    generated_at: str  # ISO format timestamp from injected clock
    period_start: date | None = None
    period_end: date | None = None


@dataclass(frozen=True)
class SubjectAmount:
    """Net amount of one subject, signed as income or expense."""

    subject_code: str
    subject_name: str
    amount: Decimal


@dataclass(frozen=True)
class AllocationAmount:
    allocation_id: UUID
    expense_name: str
    subject_code: str
    amount: Decimal


@dataclass(frozen=True)
class ProfitReport:
    """Profit of one month."""

    metadata: ReportMetadata
    year_month: str
    income_lines: tuple[SubjectAmount, ...]
    expense_lines: tuple[SubjectAmount, ...]
    allocation_lines: tuple[AllocationAmount, ...]
    total_income: Decimal
    total_expense: Decimal
    total_allocated: Decimal
    net_profit: Decimal


@dataclass(frozen=True)
class YearlyProfitRow:
    year_month: str
    total_income: Decimal
    total_expense: Decimal
    total_allocated: Decimal
    net_profit: Decimal


@dataclass(frozen=True)
class YearlyProfitReport:
    """Twelve monthly rows plus column totals."""

    metadata: ReportMetadata
    year: int
    rows: tuple[YearlyProfitRow, ...]
    total_income: Decimal
    total_expense: Decimal
    total_allocated: Decimal
    net_profit: Decimal


@dataclass(frozen=True)
class SubjectBalanceLine:
    subject_code: str
    subject_name: str
    subject_type: str
    balance_direction: str
    debit_total: Decimal
    credit_total: Decimal
    balance: Decimal


@dataclass(frozen=True)
class SubjectBalanceReport:
    metadata: ReportMetadata
    as_of: date
    lines: tuple[SubjectBalanceLine, ...]


@dataclass(frozen=True)
class BalanceDetailReport:
    metadata: ReportMetadata
    lines: tuple[LedgerLine, ...]
    debit_total: Decimal
    credit_total: Decimal
