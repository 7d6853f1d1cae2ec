"""
Module: ledger_kernel.models.voucher
Responsibility: ORM persistence for vouchers (balanced double-entry journal
    records) and their items.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - voucher_no is unique (uq_voucher_no).
    - A voucher is reversed at most once (uq_voucher_reversal_of).
    - Items are owned by their voucher (delete-orphan cascade).
    - Balance (sum of debits == sum of credits > 0) is enforced by
      VoucherService before flush; is_balanced is the read-side check.

Failure modes:
    - IntegrityError on duplicate voucher_no or second reversal row.

Audit relevance:
    System-generated vouchers (source_type != manual) are never edited or
    deleted; a business undo produces a reversal voucher that references the
    original through reversal_of_id.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString


class EntryType(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"

    def flipped(self) -> "EntryType":
        return EntryType.CREDIT if self is EntryType.DEBIT else EntryType.DEBIT


class SourceType(str, Enum):
    """Business event that produced a voucher."""

    TUITION_PAYMENT = "tuition_payment"
    PAYMENT_REVERSAL = "payment_reversal"
    TUITION_DISCOUNT = "tuition_discount"
    DISCOUNT_REVERSAL = "discount_reversal"
    TUITION_REFUND = "tuition_refund"
    COACH_SALARY = "coach_salary"
    EXPENSE_PAYMENT = "expense_payment"
    SUBMIT_CONFIRM = "submit_confirm"
    SUBMIT_REVOKE = "submit_revoke"
    MANUAL = "manual"


# Source types that can be undone, and the source type of their reversal
REVERSAL_SOURCE: dict[SourceType, SourceType] = {
    SourceType.TUITION_PAYMENT: SourceType.PAYMENT_REVERSAL,
    SourceType.TUITION_DISCOUNT: SourceType.DISCOUNT_REVERSAL,
    SourceType.SUBMIT_CONFIRM: SourceType.SUBMIT_REVOKE,
}


class Voucher(TrackedBase):
    """
    Balanced double-entry journal record.

    Contract:
        Created only through VoucherService.  ``source_id`` points back at
        the business record (payment record, salary record, ...) that caused
        the posting; it is null for manual vouchers.
    """

    __tablename__ = "ledger_vouchers"

    __table_args__ = (
        UniqueConstraint("voucher_no", name="uq_voucher_no"),
        UniqueConstraint("reversal_of_id", name="uq_voucher_reversal_of"),
        Index("idx_voucher_date", "voucher_date"),
        Index("idx_voucher_source", "source_type", "source_id"),
    )

    voucher_no: Mapped[str] = mapped_column(String(30), nullable=False)
    voucher_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    source_type: Mapped[SourceType] = mapped_column(String(30), nullable=False)
    source_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    creator: Mapped[str] = mapped_column(String(100), nullable=False)

    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_vouchers.id"),
        nullable=True,
    )

    items: Mapped[list["VoucherItem"]] = relationship(
        back_populates="voucher",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="VoucherItem.seq",
    )

    reversal_of: Mapped["Voucher | None"] = relationship(
        remote_side="Voucher.id",
        foreign_keys=[reversal_of_id],
    )

    def __repr__(self) -> str:
        return f"<Voucher {self.voucher_no} {self.source_type}>"

    @property
    def total_debits(self) -> Decimal:
        return sum(
            (item.amount for item in self.items if item.entry_type == EntryType.DEBIT),
            Decimal("0"),
        )

    @property
    def total_credits(self) -> Decimal:
        return sum(
            (item.amount for item in self.items if item.entry_type == EntryType.CREDIT),
            Decimal("0"),
        )

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    @property
    def is_manual(self) -> bool:
        return self.source_type == SourceType.MANUAL


class VoucherItem(TrackedBase):
    """One debit or credit line of a voucher; amount is always positive."""

    __tablename__ = "ledger_voucher_items"

    __table_args__ = (
        Index("idx_voucher_item_voucher", "voucher_id"),
        Index("idx_voucher_item_subject", "subject_code"),
    )

    voucher_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_vouchers.id"),
        nullable=False,
    )
    entry_type: Mapped[EntryType] = mapped_column(String(10), nullable=False)
    subject_code: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("ledger_subjects.code"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    summary: Mapped[str | None] = mapped_column(String(200), nullable=True)
    seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    voucher: Mapped["Voucher"] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<VoucherItem {self.entry_type} {self.subject_code} {self.amount}>"
