"""
Headquarters ORM Persistence Models (``ledger_modules.headquarters.orm``).

Responsibility:
    Persistence of profit-share configs and of the submission history.

Architecture position:
    **Modules layer** -- persistence companions to the DTOs in
    ``ledger_modules.headquarters.models``.  Inherit from ``TrackedBase``.

Invariants enforced:
    - ``config_type`` stores the enum .value; ratio / fixed_amount
      exclusivity is validated by ``HeadquarterService.create_config``.
    - Submit records are append-only; a revocation is a new row with a
      negative ``submit_amount``.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class HeadquarterConfigModel(TrackedBase):
    """Profit-share rule, global when ``class_type_id`` is null."""

    __tablename__ = "hq_configs"

    config_name: Mapped[str] = mapped_column(String(100), nullable=False)
    class_type_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("roster_class_types.id"), nullable=True,
    )
    config_type: Mapped[str] = mapped_column(String(10), nullable=False)
    ratio: Mapped[Decimal | None] = mapped_column(nullable=True)
    fixed_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    expire_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    remark: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        Index("idx_hq_config_class_type", "class_type_id", "effective_date"),
    )

    def to_dto(self):
        from ledger_modules.headquarters.models import HeadquarterConfig, HeadquarterConfigType

        return HeadquarterConfig(
            id=self.id,
            config_name=self.config_name,
            class_type_id=self.class_type_id,
            config_type=HeadquarterConfigType(self.config_type),
            ratio=self.ratio,
            fixed_amount=self.fixed_amount,
            effective_date=self.effective_date,
            expire_date=self.expire_date,
            is_active=self.is_active,
            remark=self.remark,
        )


class SubmitRecordModel(TrackedBase):
    """Snapshot of one submission or revocation."""

    __tablename__ = "hq_submit_records"

    student_id: Mapped[UUID] = mapped_column(ForeignKey("roster_students.id"), nullable=False)
    student_name: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(String(10), nullable=False)
    class_type_id: Mapped[UUID | None] = mapped_column(nullable=True)
    config_id: Mapped[UUID | None] = mapped_column(ForeignKey("hq_configs.id"), nullable=True)
    config_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    config_type: Mapped[str | None] = mapped_column(String(10), nullable=True)
    ratio: Mapped[Decimal | None] = mapped_column(nullable=True)
    fixed_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    contract_amount: Mapped[Decimal] = mapped_column(nullable=False)
    actual_amount: Mapped[Decimal] = mapped_column(nullable=False)
    account_balance: Mapped[Decimal] = mapped_column(nullable=False)
    final_receipt: Mapped[Decimal] = mapped_column(nullable=False)
    submit_amount: Mapped[Decimal] = mapped_column(nullable=False)
    profit: Mapped[Decimal] = mapped_column(nullable=False)
    submit_date: Mapped[date] = mapped_column(Date, nullable=False)
    operator: Mapped[str] = mapped_column(String(100), nullable=False)
    voucher_id: Mapped[UUID | None] = mapped_column(ForeignKey("ledger_vouchers.id"), nullable=True)
    remark: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        Index("idx_hq_submit_student", "student_id", "submit_date"),
    )

    def to_dto(self):
        from ledger_modules.headquarters.models import SubmitAction, SubmitRecord

        return SubmitRecord(
            id=self.id,
            student_id=self.student_id,
            action=SubmitAction(self.action),
            config_id=self.config_id,
            contract_amount=self.contract_amount,
            final_receipt=self.final_receipt,
            submit_amount=self.submit_amount,
            profit=self.profit,
            submit_date=self.submit_date,
            operator=self.operator,
            voucher_id=self.voucher_id,
            remark=self.remark,
        )
