"""
VoucherService -- the voucher posting engine.

Responsibility:
    Validates and persists balanced double-entry vouchers, reverses
    system-generated vouchers, and deletes manual ones.

Architecture position:
    Kernel > Services.  Called by every business module in ledger_modules
    inside the module's own transaction.  Uses SequenceService for voucher
    numbers and SubjectService for subject validation.

Invariants enforced:
    - Balance: items are rounded to 2 places and the voucher is rejected
      when |debits - credits| >= epsilon (smallest currency unit), so every
      stored voucher balances exactly.  The total must be > 0 and every
      item amount > 0.
    - Subjects: every item subject exists and is active (reversals may hit
      subjects deactivated after the original posting).
    - Numbering: ``YYYYMMDD-NNN`` from a per-day locked counter row.
    - History: system vouchers are never edited or deleted.  reverse()
      writes a mirror voucher; only ``manual`` vouchers may be deleted.
    - A voucher is reversed at most once.

Failure modes:
    - InvalidVoucherError, InvalidAmountError, UnbalancedVoucherError,
      SubjectNotFoundError, SubjectInactiveError, VoucherNotFoundError,
      NotReversibleError, AlreadyReversedError, NotManualSourceError.

Audit relevance:
    Every posting, reversal and deletion is logged with voucher_no,
    source_type and totals.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.clock import Clock
from ledger_kernel.exceptions import (
    AlreadyReversedError,
    InvalidAmountError,
    InvalidChoiceError,
    InvalidVoucherError,
    MissingFieldError,
    NotManualSourceError,
    NotReversibleError,
    SubjectInactiveError,
    SubjectNotFoundError,
    UnbalancedVoucherError,
    VoucherNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.subject import Subject
from ledger_kernel.models.voucher import (
    REVERSAL_SOURCE,
    EntryType,
    SourceType,
    Voucher,
    VoucherItem,
)
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.voucher")

DEFAULT_BALANCE_EPSILON = Decimal("0.01")
MIN_MANUAL_ITEMS = 2


@dataclass(frozen=True)
class ItemSpec:
    """One requested voucher line."""

    entry_type: EntryType
    subject_code: str
    amount: Decimal
    summary: str | None = None

    @classmethod
    def debit(cls, subject_code: str, amount: Decimal, summary: str | None = None) -> "ItemSpec":
        return cls(EntryType.DEBIT, subject_code, amount, summary)

    @classmethod
    def credit(cls, subject_code: str, amount: Decimal, summary: str | None = None) -> "ItemSpec":
        return cls(EntryType.CREDIT, subject_code, amount, summary)


@dataclass(frozen=True)
class VoucherMeta:
    """Header fields of a voucher to be posted."""

    voucher_date: date
    description: str
    source_type: SourceType
    creator: str
    actor_id: UUID
    source_id: UUID | None = None


class VoucherService(BaseService):
    """
    Posting engine for balanced vouchers.

    Contract:
        ``post`` returns the flushed Voucher or raises; nothing is written
        on failure.  The caller commits.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        balance_epsilon: Decimal = DEFAULT_BALANCE_EPSILON,
        sequence_width: int = 3,
    ):
        super().__init__(session, clock)
        self._epsilon = balance_epsilon
        self._sequence_width = sequence_width
        self._sequences = SequenceService(session)

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get(self, voucher_id: UUID) -> Voucher:
        voucher = self.session.get(Voucher, voucher_id)
        if voucher is None:
            raise VoucherNotFoundError(voucher_id)
        return voucher

    def get_by_no(self, voucher_no: str) -> Voucher:
        voucher = self.session.execute(
            select(Voucher).where(Voucher.voucher_no == voucher_no)
        ).scalar_one_or_none()
        if voucher is None:
            raise VoucherNotFoundError(voucher_no)
        return voucher

    def find_reversal(self, voucher_id: UUID) -> Voucher | None:
        return self.session.execute(
            select(Voucher).where(Voucher.reversal_of_id == voucher_id)
        ).scalar_one_or_none()

    def list_by_source(self, source_type: SourceType, source_id: UUID) -> list[Voucher]:
        return list(
            self.session.execute(
                select(Voucher)
                .where(
                    Voucher.source_type == source_type.value,
                    Voucher.source_id == source_id,
                )
                .order_by(Voucher.voucher_no)
            ).scalars()
        )

    def list_vouchers(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        source_type: SourceType | None = None,
        subject_code: str | None = None,
        keyword: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Voucher]:
        """
        Vouchers matching every given filter, newest first.

        Dates are inclusive.  ``subject_code`` matches vouchers with at least
        one item on that subject; ``keyword`` matches the voucher number or
        the description.
        """
        query = select(Voucher)
        if start_date is not None:
            query = query.where(Voucher.voucher_date >= start_date)
        if end_date is not None:
            query = query.where(Voucher.voucher_date <= end_date)
        if source_type is not None:
            try:
                source_type = SourceType(source_type)
            except ValueError:
                raise InvalidChoiceError(
                    "source type", source_type, [s.value for s in SourceType],
                ) from None
            query = query.where(Voucher.source_type == source_type.value)
        if subject_code is not None:
            query = query.where(
                Voucher.items.any(VoucherItem.subject_code == subject_code)
            )
        if keyword:
            pattern = f"%{keyword}%"
            query = query.where(
                or_(Voucher.voucher_no.like(pattern), Voucher.description.like(pattern))
            )
        query = query.order_by(Voucher.voucher_date.desc(), Voucher.voucher_no.desc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return list(self.session.execute(query).scalars())

    # -------------------------------------------------------------------------
    # Posting
    # -------------------------------------------------------------------------

    def next_voucher_no(self, voucher_date: date) -> str:
        day = voucher_date.strftime("%Y%m%d")
        seq = self._sequences.next_value(f"voucher:{day}")
        return f"{day}-{seq:0{self._sequence_width}d}"

    def _normalize(self, items: Sequence[ItemSpec]) -> list[ItemSpec]:
        if not items:
            raise InvalidVoucherError("a voucher needs at least one debit and one credit item")
        normalized = []
        for line in items:
            amount = round_money(Decimal(line.amount))
            if amount <= 0:
                raise InvalidAmountError("item amount", line.amount)
            normalized.append(
                ItemSpec(EntryType(line.entry_type), line.subject_code, amount, line.summary)
            )
        return normalized

    def _check_balance(self, items: Sequence[ItemSpec]) -> Decimal:
        debits = sum(
            (i.amount for i in items if i.entry_type == EntryType.DEBIT), Decimal("0")
        )
        credits = sum(
            (i.amount for i in items if i.entry_type == EntryType.CREDIT), Decimal("0")
        )
        if abs(debits - credits) >= self._epsilon:
            raise UnbalancedVoucherError(debits, credits)
        if debits <= 0:
            raise InvalidVoucherError("voucher total must be greater than 0")
        return debits

    def _check_subjects(self, items: Sequence[ItemSpec], allow_inactive: bool) -> None:
        codes = {i.subject_code for i in items}
        subjects = {
            s.code: s
            for s in self.session.execute(
                select(Subject).where(Subject.code.in_(codes))
            ).scalars()
        }
        for code in sorted(codes):
            subject = subjects.get(code)
            if subject is None:
                raise SubjectNotFoundError(code)
            if not subject.is_active and not allow_inactive:
                raise SubjectInactiveError(code)

    def post(
        self,
        items: Sequence[ItemSpec],
        meta: VoucherMeta,
        *,
        reversal_of_id: UUID | None = None,
        allow_inactive: bool = False,
    ) -> Voucher:
        """
        Validate and persist one voucher.

        Preconditions:
            - Called inside the caller's transaction.
        Postconditions:
            - Returns a flushed Voucher with debits == credits > 0.

        Raises:
            UnbalancedVoucherError: debits and credits differ.
            InvalidAmountError: an item amount is <= 0.
            SubjectNotFoundError / SubjectInactiveError: bad subject code.
        """
        if not meta.creator:
            raise MissingFieldError("creator")
        normalized = self._normalize(items)
        total = self._check_balance(normalized)
        self._check_subjects(normalized, allow_inactive)

        voucher_no = self.next_voucher_no(meta.voucher_date)
        voucher = Voucher(
            voucher_no=voucher_no,
            voucher_date=meta.voucher_date,
            description=meta.description,
            source_type=SourceType(meta.source_type).value,
            source_id=meta.source_id,
            creator=meta.creator,
            reversal_of_id=reversal_of_id,
            created_by_id=meta.actor_id,
        )
        for seq, line in enumerate(normalized):
            voucher.items.append(
                VoucherItem(
                    entry_type=line.entry_type.value,
                    subject_code=line.subject_code,
                    amount=line.amount,
                    summary=line.summary,
                    seq=seq,
                    created_by_id=meta.actor_id,
                )
            )
        self.session.add(voucher)
        self.session.flush()

        LogContext.set(voucher_no=voucher_no)
        logger.info(
            "voucher_posted",
            extra={
                "voucher_no": voucher_no,
                "voucher_id": str(voucher.id),
                "source_type": voucher.source_type,
                "source_id": str(meta.source_id) if meta.source_id else None,
                "total": str(total),
                "item_count": len(normalized),
            },
        )
        return voucher

    def post_manual(
        self,
        voucher_date: date,
        description: str,
        items: Sequence[ItemSpec],
        creator: str,
        actor_id: UUID,
    ) -> Voucher:
        """Post an operator-entered voucher (``source_type = manual``)."""
        if len(items) < MIN_MANUAL_ITEMS:
            raise InvalidVoucherError(
                f"a manual voucher needs at least {MIN_MANUAL_ITEMS} items"
            )
        return self.post(
            items,
            VoucherMeta(
                voucher_date=voucher_date,
                description=description,
                source_type=SourceType.MANUAL,
                creator=creator,
                actor_id=actor_id,
            ),
        )

    # -------------------------------------------------------------------------
    # Reversal and deletion
    # -------------------------------------------------------------------------

    def reverse(
        self,
        voucher_id: UUID,
        creator: str,
        actor_id: UUID,
        reversal_date: date | None = None,
        description: str | None = None,
    ) -> Voucher:
        """
        Post the mirror image of a system voucher.

        Entry types are flipped, subjects and amounts are kept, and the
        source type is mapped through REVERSAL_SOURCE.

        Raises:
            NotReversibleError: source type has no reversal path.
            AlreadyReversedError: a reversal already exists.
        """
        original = self.get(voucher_id)
        source = SourceType(original.source_type)
        if source not in REVERSAL_SOURCE:
            raise NotReversibleError(original.voucher_no, source.value)
        if self.find_reversal(original.id) is not None:
            raise AlreadyReversedError("Voucher", original.voucher_no)

        items = [
            ItemSpec(
                EntryType(item.entry_type).flipped(),
                item.subject_code,
                item.amount,
                item.summary,
            )
            for item in original.items
        ]
        reversal = self.post(
            items,
            VoucherMeta(
                voucher_date=reversal_date or self.clock.today(),
                description=description or f"Reversal of {original.voucher_no}: {original.description}",
                source_type=REVERSAL_SOURCE[source],
                creator=creator,
                actor_id=actor_id,
                source_id=original.source_id,
            ),
            reversal_of_id=original.id,
            allow_inactive=True,
        )
        logger.info(
            "voucher_reversed",
            extra={
                "original_voucher_no": original.voucher_no,
                "reversal_voucher_no": reversal.voucher_no,
                "source_type": reversal.source_type,
            },
        )
        return reversal

    def delete(self, voucher_id: UUID) -> None:
        """
        Delete a manual voucher and its items.

        Raises:
            NotManualSourceError: the voucher was generated by a business action.
        """
        voucher = self.get(voucher_id)
        if not voucher.is_manual:
            raise NotManualSourceError(voucher.voucher_no, voucher.source_type)
        voucher_no = voucher.voucher_no
        self.session.delete(voucher)
        self.session.flush()
        logger.info("voucher_deleted", extra={"voucher_no": voucher_no})
