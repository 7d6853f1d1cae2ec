"""
Module: ledger_engines.commission
Responsibility:
    Turn a coach's monthly counts and the effective salary rates into the
    derived salary figures (base, commissions, gross).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Rates are resolved and
    counts are aggregated by the salary module; this engine only multiplies
    and sums.

Invariants enforced:
    - base_salary = base_daily_rate * attendance_days
    - subjectN_commission = subjectN_pass_count * subjectN_rate
    - recruitment_commission = new_student_count * recruitment_rate
    - gross_salary = base + subject2 + subject3 + recruitment + bonus - deduction
    - All figures rounded to 2 places.

Failure modes:
    - ValueError on negative counts or attendance days.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from ledger_engines.tracer import traced_engine
from ledger_kernel.db.types import round_money

_ZERO = Decimal("0")


class RateType(str, Enum):
    """Kinds of salary rate configured per effective date."""

    BASE_DAILY_SALARY = "base_daily_salary"
    SUBJECT2_COMMISSION = "subject2_commission"
    SUBJECT3_COMMISSION = "subject3_commission"
    RECRUITMENT_COMMISSION = "recruitment_commission"


@dataclass(frozen=True)
class SalaryRates:
    """Rates in force for one month; a missing rate is zero."""

    base_daily: Decimal = _ZERO
    subject2: Decimal = _ZERO
    subject3: Decimal = _ZERO
    recruitment: Decimal = _ZERO

    @classmethod
    def from_mapping(cls, rates: dict[RateType, Decimal]) -> SalaryRates:
        return cls(
            base_daily=rates.get(RateType.BASE_DAILY_SALARY, _ZERO),
            subject2=rates.get(RateType.SUBJECT2_COMMISSION, _ZERO),
            subject3=rates.get(RateType.SUBJECT3_COMMISSION, _ZERO),
            recruitment=rates.get(RateType.RECRUITMENT_COMMISSION, _ZERO),
        )


@dataclass(frozen=True)
class SalaryInputs:
    attendance_days: int = 0
    subject2_pass_count: int = 0
    subject3_pass_count: int = 0
    new_student_count: int = 0
    bonus: Decimal = _ZERO
    deduction: Decimal = _ZERO

    def __post_init__(self) -> None:
        for name in (
            "attendance_days",
            "subject2_pass_count",
            "subject3_pass_count",
            "new_student_count",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")


@dataclass(frozen=True)
class SalaryFigures:
    base_salary: Decimal
    subject2_commission: Decimal
    subject3_commission: Decimal
    recruitment_commission: Decimal
    gross_salary: Decimal

    @property
    def total_commission(self) -> Decimal:
        return self.subject2_commission + self.subject3_commission + self.recruitment_commission


@traced_engine("coach_salary", "1.0")
def compute_salary(inputs: SalaryInputs, rates: SalaryRates) -> SalaryFigures:
    """Derive base, commissions and gross from counts and rates."""
    base = round_money(rates.base_daily * inputs.attendance_days)
    subject2 = round_money(rates.subject2 * inputs.subject2_pass_count)
    subject3 = round_money(rates.subject3 * inputs.subject3_pass_count)
    recruitment = round_money(rates.recruitment * inputs.new_student_count)
    gross = round_money(
        base + subject2 + subject3 + recruitment + inputs.bonus - inputs.deduction
    )
    return SalaryFigures(
        base_salary=base,
        subject2_commission=subject2,
        subject3_commission=subject3,
        recruitment_commission=recruitment,
        gross_salary=gross,
    )


def payable_amount(gross_salary: Decimal, net_salary: Decimal | None) -> Decimal:
    """Amount actually paid out: the manual net override when set, else gross."""
    if net_salary is not None:
        return round_money(net_salary)
    return round_money(gross_salary)
