"""
Salary ORM Persistence Models (``ledger_modules.salary.orm``).

Responsibility:
    Persistence of the effective-dated salary rate table and the coach
    monthly salary sheets.

Architecture position:
    **Modules layer** -- persistence companions to the DTOs in
    ``ledger_modules.salary.models``.  Inherit from ``TrackedBase``.

Invariants enforced:
    - One salary sheet per coach and month (uq_salary_coach_month); batch
      generation relies on it to skip duplicates.
    - Monetary fields are Decimal; status is stored as the enum .value.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase

_ZERO = Decimal("0")


class SalaryRateConfigModel(TrackedBase):
    """A rate of one type in force from ``effective_date`` (until ``expire_date``)."""

    __tablename__ = "salary_rate_configs"

    config_type: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    expire_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    remark: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        Index("idx_salary_rate_type_effective", "config_type", "effective_date"),
    )

    def to_dto(self):
        from ledger_engines.commission import RateType
        from ledger_modules.salary.models import SalaryRateConfig

        return SalaryRateConfig(
            id=self.id,
            config_type=RateType(self.config_type),
            amount=self.amount,
            effective_date=self.effective_date,
            expire_date=self.expire_date,
            is_active=self.is_active,
            remark=self.remark,
        )


class CoachMonthlySalaryModel(TrackedBase):
    """
    Salary sheet of one coach for one month.

    Guarantees:
        - Derived fields (counts, base, commissions, gross) are only written
          by generation and refresh.
        - Paid sheets are never modified.
    """

    __tablename__ = "salary_coach_monthly"

    coach_id: Mapped[UUID] = mapped_column(ForeignKey("roster_coaches.id"), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)

    attendance_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    base_salary: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)
    subject2_pass_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    subject2_commission: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)
    subject3_pass_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    subject3_commission: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)
    new_student_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    recruitment_commission: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)
    bonus: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)
    deduction: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)
    deduction_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    gross_salary: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)
    net_salary: Mapped[Decimal | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="draft", nullable=False)
    remarks: Mapped[str | None] = mapped_column(String(500), nullable=True)

    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    voucher_id: Mapped[UUID | None] = mapped_column(ForeignKey("ledger_vouchers.id"), nullable=True)
    voucher_no: Mapped[str | None] = mapped_column(String(30), nullable=True)

    __table_args__ = (
        UniqueConstraint("coach_id", "month", name="uq_salary_coach_month"),
        Index("idx_salary_month_status", "month", "status"),
    )

    def to_dto(self):
        from ledger_modules.salary.models import CoachSalary, SalaryStatus

        return CoachSalary(
            id=self.id,
            coach_id=self.coach_id,
            month=self.month,
            attendance_days=self.attendance_days,
            base_salary=self.base_salary,
            subject2_pass_count=self.subject2_pass_count,
            subject2_commission=self.subject2_commission,
            subject3_pass_count=self.subject3_pass_count,
            subject3_commission=self.subject3_commission,
            new_student_count=self.new_student_count,
            recruitment_commission=self.recruitment_commission,
            bonus=self.bonus,
            deduction=self.deduction,
            deduction_reason=self.deduction_reason,
            gross_salary=self.gross_salary,
            net_salary=self.net_salary,
            status=SalaryStatus(self.status),
            remarks=self.remarks,
            paid_at=self.paid_at,
            voucher_no=self.voucher_no,
        )
