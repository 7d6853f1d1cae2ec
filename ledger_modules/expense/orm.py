"""
Expense ORM Persistence Models (``ledger_modules.expense.orm``).

Responsibility:
    Persistence of recurring expense configs, monthly expenses and annual
    expense allocations.

Architecture position:
    **Modules layer** -- persistence companions to the DTOs in
    ``ledger_modules.expense.models``.  Inherit from ``TrackedBase``.

Invariants enforced:
    - One monthly expense per config and month (uq_expense_config_month);
      generation relies on it to skip duplicates.
    - Monthly expenses snapshot subject, name and amount at generation time.
    - ``payment_day`` in 1..31 and allocation months in 1..12 (check
      constraints).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class ExpenseConfigModel(TrackedBase):
    __tablename__ = "expense_configs"

    subject_code: Mapped[str] = mapped_column(
        String(50), ForeignKey("ledger_subjects.code"), nullable=False,
    )
    expense_name: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    payment_day: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    remark: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        CheckConstraint("payment_day BETWEEN 1 AND 31", name="ck_expense_config_payment_day"),
    )

    def to_dto(self):
        from ledger_modules.expense.models import ExpenseConfig

        return ExpenseConfig(
            id=self.id,
            subject_code=self.subject_code,
            expense_name=self.expense_name,
            amount=self.amount,
            payment_day=self.payment_day,
            is_active=self.is_active,
            remark=self.remark,
        )


class MonthlyExpenseModel(TrackedBase):
    __tablename__ = "expense_monthly"

    config_id: Mapped[UUID] = mapped_column(ForeignKey("expense_configs.id"), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    subject_code: Mapped[str] = mapped_column(String(50), nullable=False)
    expense_name: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    voucher_id: Mapped[UUID | None] = mapped_column(ForeignKey("ledger_vouchers.id"), nullable=True)
    voucher_no: Mapped[str | None] = mapped_column(String(30), nullable=True)
    remark: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        UniqueConstraint("config_id", "month", name="uq_expense_config_month"),
        Index("idx_expense_monthly_month_status", "month", "status"),
    )

    def to_dto(self):
        from ledger_modules.expense.models import MonthlyExpense, MonthlyExpenseStatus

        return MonthlyExpense(
            id=self.id,
            config_id=self.config_id,
            month=self.month,
            subject_code=self.subject_code,
            expense_name=self.expense_name,
            amount=self.amount,
            due_date=self.due_date,
            status=MonthlyExpenseStatus(self.status),
            paid_at=self.paid_at,
            voucher_no=self.voucher_no,
            remark=self.remark,
        )


class ExpenseAllocationModel(TrackedBase):
    __tablename__ = "expense_allocations"

    expense_name: Mapped[str] = mapped_column(String(100), nullable=False)
    subject_code: Mapped[str] = mapped_column(
        String(50), ForeignKey("ledger_subjects.code"), nullable=False,
    )
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    allocation_year: Mapped[int] = mapped_column(Integer, nullable=False)
    start_month: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    end_month: Mapped[int] = mapped_column(Integer, default=12, nullable=False)
    allocation_method: Mapped[str] = mapped_column(String(20), default="average", nullable=False)
    monthly_amount: Mapped[Decimal] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    remark: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "start_month BETWEEN 1 AND 12 AND end_month BETWEEN 1 AND 12 AND start_month <= end_month",
            name="ck_expense_allocation_months",
        ),
        Index("idx_expense_allocation_year", "allocation_year", "is_active"),
    )

    def to_dto(self):
        from ledger_engines.amortization import AllocationMethod
        from ledger_modules.expense.models import ExpenseAllocation

        return ExpenseAllocation(
            id=self.id,
            expense_name=self.expense_name,
            subject_code=self.subject_code,
            total_amount=self.total_amount,
            allocation_year=self.allocation_year,
            start_month=self.start_month,
            end_month=self.end_month,
            allocation_method=AllocationMethod(self.allocation_method),
            monthly_amount=self.monthly_amount,
            is_active=self.is_active,
            remark=self.remark,
        )
