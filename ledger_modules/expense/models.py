"""
Expense Domain Models.

The nouns of operating expenses: recurring expense configs, their monthly
materializations, and annual expense allocations spread over months.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_engines.amortization import AllocationMethod


class MonthlyExpenseStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


@dataclass(frozen=True)
class ExpenseConfig:
    """A fixed monthly obligation, e.g. rent or utilities."""
    id: UUID
    subject_code: str
    expense_name: str
    amount: Decimal
    payment_day: int
    is_active: bool
    remark: str | None = None


@dataclass(frozen=True)
class MonthlyExpense:
    """One month's instance of an expense config."""
    id: UUID
    config_id: UUID
    month: str
    subject_code: str
    expense_name: str
    amount: Decimal
    due_date: date
    status: MonthlyExpenseStatus
    paid_at: datetime | None = None
    voucher_no: str | None = None
    remark: str | None = None


@dataclass(frozen=True)
class GenerationResult:
    generated: int
    skipped: int


@dataclass(frozen=True)
class ExpenseAllocation:
    """An annual invoice amortized across a month range."""
    id: UUID
    expense_name: str
    subject_code: str
    total_amount: Decimal
    allocation_year: int
    start_month: int
    end_month: int
    allocation_method: AllocationMethod
    monthly_amount: Decimal
    is_active: bool
    remark: str | None = None

    def covers(self, year: int, month: int) -> bool:
        return self.allocation_year == year and self.start_month <= month <= self.end_month
