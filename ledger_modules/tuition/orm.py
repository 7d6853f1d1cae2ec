"""
Tuition ORM Persistence Models (``ledger_modules.tuition.orm``).

Responsibility:
    Persistence of the per-student payment state (a 1:1 side table of the
    student row) and of the individual payment, discount and refund records.

Architecture position:
    **Modules layer** -- persistence companions to the DTOs in
    ``ledger_modules.tuition.models``.  Inherit from ``TrackedBase``.

Invariants enforced:
    - One state row per student (uq_tuition_state_student).
    - Monetary fields are Decimal (Numeric(38,9)); statuses are stored as
      enum .value strings.
    - Record amounts are positive (ck_tuition_record_amount_positive).

Audit relevance:
    Records are never deleted.  Deleting a payment marks the record
    reversed and points the reversal voucher at it through source_id.
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
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.db.types import ZERO, round_money


class StudentPaymentStateModel(TrackedBase):
    """
    Monetary fields and statuses of one student's tuition account.

    Guarantees:
        - payment_status / enrollment_status are written only from
          ``derive()`` or the refund operation.
        - debt_amount is recomputed on every mutation.
    """

    __tablename__ = "tuition_payment_states"

    student_id: Mapped[UUID] = mapped_column(
        ForeignKey("roster_students.id"), nullable=False,
    )
    contract_amount: Mapped[Decimal] = mapped_column(nullable=False)
    contract_discount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    actual_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    debt_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    account_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False)
    enrollment_status: Mapped[str] = mapped_column(String(20), nullable=False)
    # Manual pre-payment phase shown while nothing is received
    enrollment_phase: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Headquarters submission
    submit_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    submit_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    submit_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    submit_voucher_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("ledger_vouchers.id"), nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("student_id", name="uq_tuition_state_student"),
        Index("idx_tuition_state_payment_status", "payment_status"),
    )

    def to_dto(self):
        from ledger_modules.tuition.models import (
            EnrollmentStatus,
            PaymentState,
            PaymentStatus,
        )

        return PaymentState(
            student_id=self.student_id,
            contract_amount=round_money(self.contract_amount),
            contract_discount=round_money(self.contract_discount),
            discount_amount=round_money(self.discount_amount),
            actual_amount=round_money(self.actual_amount),
            debt_amount=round_money(self.debt_amount),
            account_balance=round_money(self.account_balance),
            payment_status=PaymentStatus(self.payment_status),
            enrollment_status=EnrollmentStatus(self.enrollment_status),
        )

    def __repr__(self) -> str:
        return f"<StudentPaymentState {self.student_id} {self.payment_status}>"


class PaymentRecordModel(TrackedBase):
    """A receipt, discount or refund applied to a student account."""

    __tablename__ = "tuition_payment_records"

    student_id: Mapped[UUID] = mapped_column(
        ForeignKey("roster_students.id"), nullable=False,
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    method: Mapped[str | None] = mapped_column(String(30), nullable=True)
    operator: Mapped[str] = mapped_column(String(100), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    # Overpayment moved into account_balance by this receipt
    balance_credit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    voucher_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("ledger_vouchers.id"), nullable=True,
    )
    is_reversed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reversed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_tuition_record_amount_positive"),
        Index("idx_tuition_record_student", "student_id", "payment_date"),
    )

    def to_dto(self):
        from ledger_modules.tuition.models import PaymentRecord, RecordKind

        return PaymentRecord(
            id=self.id,
            student_id=self.student_id,
            kind=RecordKind(self.kind),
            amount=round_money(self.amount),
            payment_date=self.payment_date,
            method=self.method,
            operator=self.operator,
            notes=self.notes,
            balance_credit=round_money(self.balance_credit or ZERO),
            voucher_id=self.voucher_id,
            is_reversed=self.is_reversed,
        )
