"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: per-subject debit/credit totals for
    a date range, balances as of a date, line-level detail, and the balance
    check over all stored vouchers.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - No stored balances.  Every figure is aggregated from voucher items at
      query time.
    - All amounts are Decimal.

Failure modes:
    - Empty results when nothing was posted in the range.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select

from ledger_kernel.db.types import round_money
from ledger_kernel.models.subject import BalanceDirection, Subject, SubjectType
from ledger_kernel.models.voucher import EntryType, Voucher, VoucherItem
from ledger_kernel.selectors.base import BaseSelector

_ZERO = Decimal("0")


@dataclass(frozen=True)
class SubjectTotals:
    """Debit and credit totals of one subject over a range."""

    subject_code: str
    subject_name: str
    subject_type: SubjectType
    balance_direction: BalanceDirection
    debit_total: Decimal
    credit_total: Decimal

    @property
    def net_debit(self) -> Decimal:
        return self.debit_total - self.credit_total

    @property
    def net_credit(self) -> Decimal:
        return self.credit_total - self.debit_total

    @property
    def balance(self) -> Decimal:
        """Net amount signed by the subject's balance direction."""
        if self.balance_direction == BalanceDirection.DEBIT:
            return self.net_debit
        return self.net_credit


@dataclass(frozen=True)
class LedgerLine:
    """A single voucher item with its voucher header."""

    voucher_id: UUID
    voucher_no: str
    voucher_date: date
    description: str
    source_type: str
    subject_code: str
    subject_name: str
    entry_type: EntryType
    amount: Decimal
    summary: str | None


class LedgerSelector(BaseSelector):
    """
    Selector for ledger aggregates.

    Date ranges passed as ``start``/``end_exclusive`` are half open, which
    is how month ranges are built (``month_bounds``).
    """

    def _totals_query(self):
        debit = func.sum(
            case((VoucherItem.entry_type == EntryType.DEBIT.value, VoucherItem.amount), else_=_ZERO)
        )
        credit = func.sum(
            case((VoucherItem.entry_type == EntryType.CREDIT.value, VoucherItem.amount), else_=_ZERO)
        )
        return (
            select(
                Subject.code,
                Subject.name,
                Subject.subject_type,
                Subject.balance_direction,
                debit.label("debit_total"),
                credit.label("credit_total"),
            )
            .select_from(VoucherItem)
            .join(Voucher, VoucherItem.voucher_id == Voucher.id)
            .join(Subject, VoucherItem.subject_code == Subject.code)
            .group_by(
                Subject.code,
                Subject.name,
                Subject.subject_type,
                Subject.balance_direction,
            )
            .order_by(Subject.code)
        )

    def _to_totals(self, rows) -> list[SubjectTotals]:
        return [
            SubjectTotals(
                subject_code=code,
                subject_name=name,
                subject_type=SubjectType(subject_type),
                balance_direction=BalanceDirection(direction),
                debit_total=round_money(Decimal(debit or 0)),
                credit_total=round_money(Decimal(credit or 0)),
            )
            for code, name, subject_type, direction, debit, credit in rows
        ]

    def subject_totals(
        self,
        start: date,
        end_exclusive: date,
        subject_type: SubjectType | None = None,
    ) -> list[SubjectTotals]:
        """Totals per subject for vouchers dated in ``[start, end_exclusive)``."""
        query = self._totals_query().where(
            Voucher.voucher_date >= start,
            Voucher.voucher_date < end_exclusive,
        )
        if subject_type is not None:
            query = query.where(Subject.subject_type == SubjectType(subject_type).value)
        return self._to_totals(self.session.execute(query).all())

    def subject_balances(
        self,
        as_of: date,
        subject_type: SubjectType | None = None,
    ) -> list[SubjectTotals]:
        """Cumulative totals per subject for vouchers dated on or before ``as_of``."""
        query = self._totals_query().where(Voucher.voucher_date <= as_of)
        if subject_type is not None:
            query = query.where(Subject.subject_type == SubjectType(subject_type).value)
        return self._to_totals(self.session.execute(query).all())

    def balance_detail(
        self,
        start: date,
        end: date,
        subject_type: SubjectType | None = None,
    ) -> list[LedgerLine]:
        """Voucher items dated in ``[start, end]`` (inclusive), in posting order."""
        query = (
            select(VoucherItem, Voucher, Subject.name)
            .join(Voucher, VoucherItem.voucher_id == Voucher.id)
            .join(Subject, VoucherItem.subject_code == Subject.code)
            .where(Voucher.voucher_date >= start, Voucher.voucher_date <= end)
            .order_by(Voucher.voucher_date, Voucher.voucher_no, VoucherItem.seq)
        )
        if subject_type is not None:
            query = query.where(Subject.subject_type == SubjectType(subject_type).value)

        return [
            LedgerLine(
                voucher_id=voucher.id,
                voucher_no=voucher.voucher_no,
                voucher_date=voucher.voucher_date,
                description=voucher.description,
                source_type=voucher.source_type,
                subject_code=item.subject_code,
                subject_name=subject_name,
                entry_type=EntryType(item.entry_type),
                amount=round_money(item.amount),
                summary=item.summary,
            )
            for item, voucher, subject_name in self.session.execute(query).all()
        ]

    def unbalanced_vouchers(self) -> list[str]:
        """Voucher numbers whose stored items do not balance.  Empty when healthy."""
        signed = func.sum(
            case(
                (VoucherItem.entry_type == EntryType.DEBIT.value, VoucherItem.amount),
                else_=-VoucherItem.amount,
            )
        )
        rows = self.session.execute(
            select(Voucher.voucher_no, signed.label("diff"))
            .join(VoucherItem, VoucherItem.voucher_id == Voucher.id)
            .group_by(Voucher.voucher_no)
        ).all()
        return [no for no, diff in rows if round_money(Decimal(diff)) != 0]
