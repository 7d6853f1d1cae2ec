"""
Salary Domain Models (``ledger_modules.salary.models``).

Responsibility
--------------
Frozen value objects and enums for coach monthly salaries and the
effective-dated salary rate table.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Consumed by
``SalaryService`` and returned to callers.

Invariants enforced
-------------------
* ``SalaryStatus`` is ordered draft < confirmed < paid and never regresses.
* All monetary fields use ``Decimal``.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_engines.commission import RateType


class SalaryStatus(str, Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    PAID = "paid"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    SalaryStatus.DRAFT: 0,
    SalaryStatus.CONFIRMED: 1,
    SalaryStatus.PAID: 2,
}


@dataclass(frozen=True)
class SalaryRateConfig:
    id: UUID
    config_type: RateType
    amount: Decimal
    effective_date: date
    expire_date: date | None
    is_active: bool
    remark: str | None = None

    def is_effective_on(self, on_date: date) -> bool:
        """Effective on or before the date, not expired before it."""
        if not self.is_active or self.effective_date > on_date:
            return False
        return self.expire_date is None or self.expire_date >= on_date


@dataclass(frozen=True)
class CoachSalary:
    """One coach's salary sheet for one month."""

    id: UUID
    coach_id: UUID
    month: str
    attendance_days: int
    base_salary: Decimal
    subject2_pass_count: int
    subject2_commission: Decimal
    subject3_pass_count: int
    subject3_commission: Decimal
    new_student_count: int
    recruitment_commission: Decimal
    bonus: Decimal
    deduction: Decimal
    deduction_reason: str | None
    gross_salary: Decimal
    net_salary: Decimal | None
    status: SalaryStatus
    remarks: str | None = None
    paid_at: datetime | None = None
    voucher_no: str | None = None

