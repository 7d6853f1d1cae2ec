"""
Module: ledger_kernel.models.subject
Responsibility: ORM persistence for the chart of accounts (subjects) and the
    usage-to-subject indirection table.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Subject codes are unique (uq_subject_code).
    - balance_direction is stored explicitly and agrees with subject_type
      by convention (checked by SubjectService on creation).
    - A subject referenced by voucher items or usage mappings is
      deactivated, never deleted (SubjectService.remove_subject).
    - Usage codes are unique (uq_usage_code).

Failure modes:
    - IntegrityError on duplicate subject or usage code.
"""

from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class SubjectType(str, Enum):
    """Types of subjects in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"


class BalanceDirection(str, Enum):
    """Side on which a subject's balance normally sits."""

    DEBIT = "debit"
    CREDIT = "credit"


CONVENTIONAL_DIRECTION: dict[SubjectType, BalanceDirection] = {
    SubjectType.ASSET: BalanceDirection.DEBIT,
    SubjectType.EXPENSE: BalanceDirection.DEBIT,
    SubjectType.LIABILITY: BalanceDirection.CREDIT,
    SubjectType.EQUITY: BalanceDirection.CREDIT,
    SubjectType.INCOME: BalanceDirection.CREDIT,
}


class Usage(str, Enum):
    """Usage codes business modules resolve through UsageMapping."""

    BANK_DEPOSIT = "BANK_DEPOSIT"
    CASH = "CASH"
    TUITION_INCOME = "TUITION_INCOME"
    TUITION_DISCOUNT = "TUITION_DISCOUNT"
    COACH_SALARY = "COACH_SALARY"
    HEADQUARTER_EXPENSE = "HEADQUARTER_EXPENSE"


class Subject(TrackedBase):
    """
    Ledger account (chart-of-accounts entry).

    Contract:
        Identified by ``code``; voucher items reference subjects by code.
    """

    __tablename__ = "ledger_subjects"

    __table_args__ = (
        UniqueConstraint("code", name="uq_subject_code"),
        Index("idx_subject_type", "subject_type"),
        Index("idx_subject_active", "is_active"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    subject_type: Mapped[SubjectType] = mapped_column(String(20), nullable=False)
    balance_direction: Mapped[BalanceDirection] = mapped_column(String(10), nullable=False)
    parent_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    remark: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<Subject {self.code}: {self.name} ({self.subject_type})>"

    @property
    def is_debit_normal(self) -> bool:
        return self.balance_direction == BalanceDirection.DEBIT

    @property
    def is_credit_normal(self) -> bool:
        return self.balance_direction == BalanceDirection.CREDIT


class UsageMapping(TrackedBase):
    """
    Maps a usage code (e.g. TUITION_INCOME) to the subject it posts to.

    Changing a mapping affects only vouchers created afterwards; posted
    voucher items keep the subject code they were written with.
    """

    __tablename__ = "ledger_usage_mappings"

    __table_args__ = (
        UniqueConstraint("usage_code", name="uq_usage_code"),
    )

    usage_code: Mapped[str] = mapped_column(String(50), nullable=False)
    subject_code: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("ledger_subjects.code"),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(String(200), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<UsageMapping {self.usage_code} -> {self.subject_code}>"
