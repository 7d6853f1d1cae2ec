"""
Tuition Ledger Service (``ledger_modules.tuition.service``).

Responsibility
--------------
Per-student tuition ledger: opens accounts, records payments, discounts
and refunds, deletes payment records by compensating reversal, and keeps
``payment_status`` / ``enrollment_status`` in step with the money through
the pure ``derive()`` function.

Architecture position
---------------------
**Modules layer** -- ``TuitionLedgerService`` is the sole public entry
point for tuition operations.  Posts vouchers through the kernel
``VoucherService`` and resolves subjects through usage mappings.

Invariants enforced
-------------------
* Each public mutating method is one unit of work: lock the state row
  (``SELECT ... FOR UPDATE``), mutate, post the voucher, write the record,
  ``commit``; ``rollback`` and re-raise on any error.
* Statuses are never patched incrementally.  Every mutation re-derives them
  from ``(contract_amount, contract_discount, actual_amount)``.
* ``refunded`` is terminal: no later derivation overwrites it.
* Deleting a payment record never deletes a voucher; it posts the reversal.

Failure modes
-------------
* ``InvalidAmountError`` / ``MissingFieldError`` / ``InvalidChoiceError`` --
  bad input, nothing written.
* ``StudentNotFoundError`` / ``PaymentRecordNotFoundError``.
* ``ExceedsReceivableError`` -- discount or refund larger than receipts.
* ``AlreadyRefundedError`` -- refund of a fully refunded student.
* ``AlreadyReversedError`` -- record was already deleted.
* ``NotReversibleError`` -- refund records cannot be deleted.

Audit relevance
---------------
Structured log events for every mutation carry student id, amounts and
the resulting status pair.

Usage::

    ledger = TuitionLedgerService(session, clock=clock)
    record_id = ledger.add_payment(
        student_id, Decimal("2000.00"), date(2024, 3, 1),
        method="cash", operator="alice", actor_id=actor_id,
    )
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import (
    AlreadyRefundedError,
    AlreadyReversedError,
    ExceedsReceivableError,
    InvalidAmountError,
    InvalidStatusTransitionError,
    NotReversibleError,
    PaymentRecordNotFoundError,
    StudentNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.subject import Usage
from ledger_kernel.models.voucher import SourceType
from ledger_kernel.services.voucher_service import VoucherService
from ledger_modules._posting_helpers import (
    build_posting_services,
    post_transfer,
    require_choice,
    require_operator,
    require_positive,
)
from ledger_modules.roster.orm import ClassTypeModel, StudentModel
from ledger_modules.tuition.models import (
    MANUAL_PHASES,
    EnrollmentStatus,
    PaymentMethod,
    PaymentRecord,
    PaymentState,
    PaymentStatistics,
    PaymentStatus,
    RecordKind,
    debt_amount,
    derive,
    overpayment,
)
from ledger_modules.tuition.orm import PaymentRecordModel, StudentPaymentStateModel

logger = get_logger("modules.tuition.service")

_ZERO = Decimal("0")


class TuitionLedgerService:
    """
    Orchestrates the per-student tuition ledger.

    Contract
    --------
    * Mutating methods commit on success and roll back on any exception.
    * Read methods (``get_state``, ``list_records``, ``list_debtors``,
      ``payment_statistics``) never write.

    Non-goals
    ---------
    * Does NOT maintain student profiles (roster collaborator).
    * Does NOT change ``account_balance`` from discounts or refunds; only
      overpayments credit it, besides explicit contract updates.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        voucher_service: VoucherService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._subjects, self._vouchers = build_posting_services(
            session, self._clock, voucher_service,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _load_student(self, student_id: UUID) -> StudentModel:
        student = self._session.get(StudentModel, student_id)
        if student is None:
            raise StudentNotFoundError(student_id)
        return student

    def _default_contract(self, student: StudentModel) -> Decimal:
        if student.class_type_id is None:
            return _ZERO
        class_type = self._session.get(ClassTypeModel, student.class_type_id)
        if class_type is None:
            return _ZERO
        return round_money(class_type.contract_price)

    def _find_state(self, student_id: UUID, *, lock: bool) -> StudentPaymentStateModel | None:
        query = select(StudentPaymentStateModel).where(
            StudentPaymentStateModel.student_id == student_id,
        )
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(query).scalar_one_or_none()

    def _new_state(
        self,
        student: StudentModel,
        actor_id: UUID,
        contract_amount: Decimal | None = None,
        contract_discount: Decimal = _ZERO,
        account_balance: Decimal = _ZERO,
    ) -> StudentPaymentStateModel:
        contract = (
            self._default_contract(student)
            if contract_amount is None
            else round_money(Decimal(contract_amount))
        )
        if contract < 0:
            raise InvalidAmountError("contract_amount", contract, "must not be negative")
        contract_discount = round_money(Decimal(contract_discount))
        if contract_discount < 0 or contract_discount > contract:
            raise InvalidAmountError(
                "contract_discount", contract_discount, "must be within 0..contract_amount",
            )
        account_balance = round_money(Decimal(account_balance))
        if account_balance < 0:
            raise InvalidAmountError("account_balance", account_balance, "must not be negative")

        state = StudentPaymentStateModel(
            student_id=student.id,
            contract_amount=contract,
            contract_discount=contract_discount,
            discount_amount=_ZERO,
            actual_amount=_ZERO,
            account_balance=account_balance,
            created_by_id=actor_id,
        )
        self._rederive(state)
        self._session.add(state)
        self._session.flush()
        return state

    def _lock_state(self, student_id: UUID, actor_id: UUID) -> StudentPaymentStateModel:
        """Lock the student's state row, opening the account on first use."""
        state = self._find_state(student_id, lock=True)
        if state is None:
            state = self._new_state(self._load_student(student_id), actor_id)
        return state

    def _rederive(self, state: StudentPaymentStateModel) -> None:
        state.debt_amount = debt_amount(
            state.contract_amount, state.contract_discount, state.actual_amount,
        )
        if state.payment_status == PaymentStatus.REFUNDED.value:
            return
        derived = derive(state.contract_amount, state.contract_discount, state.actual_amount)
        state.payment_status = derived.payment_status.value
        if derived.payment_status == PaymentStatus.UNPAID and state.enrollment_phase:
            state.enrollment_status = state.enrollment_phase
        else:
            state.enrollment_status = derived.enrollment_status.value

    def _overpayment(self, state: StudentPaymentStateModel) -> Decimal:
        return overpayment(state.contract_amount, state.contract_discount, state.actual_amount)

    def _debit_usage(self, method: str | None) -> Usage:
        if method == PaymentMethod.CASH.value:
            return Usage.CASH
        return Usage.BANK_DEPOSIT

    def _log_state(self, event: str, state: StudentPaymentStateModel, **extra) -> None:
        logger.info(event, extra={
            "student_id": str(state.student_id),
            "actual_amount": str(round_money(state.actual_amount)),
            "discount_amount": str(round_money(state.discount_amount)),
            "debt_amount": str(round_money(state.debt_amount)),
            "payment_status": state.payment_status,
            "enrollment_status": state.enrollment_status,
            **extra,
        })

    # =========================================================================
    # Accounts
    # =========================================================================

    def open_account(
        self,
        student_id: UUID,
        actor_id: UUID,
        contract_amount: Decimal | None = None,
        contract_discount: Decimal = _ZERO,
        account_balance: Decimal = _ZERO,
    ) -> PaymentState:
        """
        Create the student's payment state.

        ``contract_amount`` defaults to the price of the student's class
        type.  An existing account is returned unchanged.
        """
        try:
            existing = self._find_state(student_id, lock=True)
            if existing is not None:
                self._session.commit()
                return existing.to_dto()

            state = self._new_state(
                self._load_student(student_id),
                actor_id,
                contract_amount=contract_amount,
                contract_discount=contract_discount,
                account_balance=account_balance,
            )
            self._session.commit()
            self._log_state(
                "payment_account_opened", state,
                contract_amount=str(state.contract_amount),
            )
            return state.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def update_contract(
        self,
        student_id: UUID,
        actor_id: UUID,
        contract_amount: Decimal | None = None,
        contract_discount: Decimal | None = None,
        account_balance: Decimal | None = None,
    ) -> PaymentState:
        """Change the contract terms or the held balance and re-derive statuses."""
        try:
            state = self._lock_state(student_id, actor_id)
            if contract_amount is not None:
                contract_amount = round_money(Decimal(contract_amount))
                if contract_amount < 0:
                    raise InvalidAmountError("contract_amount", contract_amount, "must not be negative")
                state.contract_amount = contract_amount
            if contract_discount is not None:
                contract_discount = round_money(Decimal(contract_discount))
                if contract_discount < 0 or contract_discount > state.contract_amount:
                    raise InvalidAmountError(
                        "contract_discount", contract_discount,
                        "must be within 0..contract_amount",
                    )
                state.contract_discount = contract_discount
            if account_balance is not None:
                account_balance = round_money(Decimal(account_balance))
                if account_balance < 0:
                    raise InvalidAmountError("account_balance", account_balance, "must not be negative")
                state.account_balance = account_balance
            state.updated_by_id = actor_id
            self._rederive(state)
            self._session.commit()
            self._log_state("payment_contract_updated", state)
            return state.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def set_enrollment_phase(
        self,
        student_id: UUID,
        phase: EnrollmentStatus | str,
        actor_id: UUID,
    ) -> PaymentState:
        """
        Move a student without receipts between the pre-payment phases.

        Accepts inquiring, reserved and disqualified, or ``enrolled_unpaid``
        to clear a manual phase.  Only allowed while the student is unpaid.

        Raises:
            InvalidStatusTransitionError: money has been received, the
                student is refunded, or the phase is payment-derived.
        """
        phase = require_choice(EnrollmentStatus, "enrollment phase", phase)
        try:
            state = self._lock_state(student_id, actor_id)
            allowed = phase in MANUAL_PHASES or phase == EnrollmentStatus.ENROLLED_UNPAID
            if not allowed or state.payment_status != PaymentStatus.UNPAID.value:
                raise InvalidStatusTransitionError(
                    str(student_id), state.enrollment_status, phase.value,
                )
            state.enrollment_phase = None if phase == EnrollmentStatus.ENROLLED_UNPAID else phase.value
            state.updated_by_id = actor_id
            self._rederive(state)
            self._session.commit()
            self._log_state("enrollment_phase_set", state)
            return state.to_dto()

        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Payments
    # =========================================================================

    def add_payment(
        self,
        student_id: UUID,
        amount: Decimal,
        payment_date: date,
        method: PaymentMethod | str,
        operator: str,
        actor_id: UUID,
        notes: str | None = None,
    ) -> UUID:
        """
        Record a tuition receipt.

        Posts debit cash (method ``cash``) or bank deposit, credit tuition
        income.  The part of the receipt that pushes ``actual_amount`` past
        the payable amount is also credited to ``account_balance``.

        Returns:
            The id of the new payment record.
        """
        method = method.value if isinstance(method, PaymentMethod) else str(method)
        try:
            operator = require_operator(operator)
            amount = round_money(require_positive("payment amount", amount))
            state = self._lock_state(student_id, actor_id)

            excess_before = self._overpayment(state)
            state.actual_amount = round_money(state.actual_amount + amount)
            balance_credit = self._overpayment(state) - excess_before
            state.account_balance = round_money(state.account_balance + balance_credit)
            state.updated_by_id = actor_id
            self._rederive(state)

            record = PaymentRecordModel(
                student_id=student_id,
                kind=RecordKind.PAYMENT.value,
                amount=amount,
                payment_date=payment_date,
                method=method,
                operator=operator,
                notes=notes,
                balance_credit=balance_credit,
                created_by_id=actor_id,
            )
            self._session.add(record)
            self._session.flush()

            voucher = post_transfer(
                self._subjects,
                self._vouchers,
                debit_usage=self._debit_usage(method),
                credit_usage=Usage.TUITION_INCOME,
                amount=amount,
                voucher_date=payment_date,
                description=f"Tuition payment from student {student_id}",
                summary="Tuition received",
                source_type=SourceType.TUITION_PAYMENT,
                source_id=record.id,
                creator=operator,
                actor_id=actor_id,
            )
            record.voucher_id = voucher.id
            self._session.commit()

            LogContext.set(student_id=str(student_id), operator=operator)
            self._log_state(
                "payment_added", state,
                amount=str(amount), method=method,
                balance_credit=str(balance_credit),
                record_id=str(record.id), voucher_no=voucher.voucher_no,
            )
            return record.id

        except Exception:
            self._session.rollback()
            raise

    def discount(
        self,
        student_id: UUID,
        amount: Decimal,
        operator: str,
        actor_id: UUID,
        notes: str | None = None,
        discount_date: date | None = None,
    ) -> UUID:
        """
        Grant a discount against money already received.

        ``actual_amount -= amount`` and ``discount_amount += amount``; posts
        debit tuition income, credit tuition discount.

        Raises:
            ExceedsReceivableError: amount larger than ``actual_amount``.
        """
        try:
            operator = require_operator(operator)
            amount = round_money(require_positive("discount amount", amount))
            state = self._lock_state(student_id, actor_id)
            if amount > state.actual_amount:
                raise ExceedsReceivableError(str(student_id), amount, round_money(state.actual_amount))

            state.actual_amount = round_money(state.actual_amount - amount)
            state.discount_amount = round_money(state.discount_amount + amount)
            state.updated_by_id = actor_id
            self._rederive(state)

            on_date = discount_date or self._clock.today()
            record = PaymentRecordModel(
                student_id=student_id,
                kind=RecordKind.DISCOUNT.value,
                amount=amount,
                payment_date=on_date,
                method=None,
                operator=operator,
                notes=notes,
                created_by_id=actor_id,
            )
            self._session.add(record)
            self._session.flush()

            voucher = post_transfer(
                self._subjects,
                self._vouchers,
                debit_usage=Usage.TUITION_INCOME,
                credit_usage=Usage.TUITION_DISCOUNT,
                amount=amount,
                voucher_date=on_date,
                description=f"Tuition discount for student {student_id}",
                summary="Tuition discount",
                source_type=SourceType.TUITION_DISCOUNT,
                source_id=record.id,
                creator=operator,
                actor_id=actor_id,
            )
            record.voucher_id = voucher.id
            self._session.commit()

            LogContext.set(student_id=str(student_id), operator=operator)
            self._log_state(
                "discount_granted", state,
                amount=str(amount), record_id=str(record.id),
                voucher_no=voucher.voucher_no,
            )
            return record.id

        except Exception:
            self._session.rollback()
            raise

    def refund(
        self,
        student_id: UUID,
        amount: Decimal,
        operator: str,
        actor_id: UUID,
        notes: str | None = None,
        refund_date: date | None = None,
    ) -> UUID:
        """
        Pay money back to the student and mark the account refunded.

        A partial refund also sets ``refunded``; the status is terminal.
        Posts debit tuition income, credit bank deposit.

        Raises:
            AlreadyRefundedError: refunded and nothing left to return.
            ExceedsReceivableError: amount larger than ``actual_amount``.
        """
        try:
            operator = require_operator(operator)
            amount = round_money(require_positive("refund amount", amount))
            state = self._lock_state(student_id, actor_id)
            if state.payment_status == PaymentStatus.REFUNDED.value and state.actual_amount <= 0:
                raise AlreadyRefundedError(str(student_id))
            if amount > state.actual_amount:
                raise ExceedsReceivableError(str(student_id), amount, round_money(state.actual_amount))

            state.actual_amount = round_money(state.actual_amount - amount)
            state.payment_status = PaymentStatus.REFUNDED.value
            state.enrollment_status = EnrollmentStatus.REFUNDED.value
            state.updated_by_id = actor_id
            self._rederive(state)

            on_date = refund_date or self._clock.today()
            record = PaymentRecordModel(
                student_id=student_id,
                kind=RecordKind.REFUND.value,
                amount=amount,
                payment_date=on_date,
                method=None,
                operator=operator,
                notes=notes,
                created_by_id=actor_id,
            )
            self._session.add(record)
            self._session.flush()

            voucher = post_transfer(
                self._subjects,
                self._vouchers,
                debit_usage=Usage.TUITION_INCOME,
                credit_usage=Usage.BANK_DEPOSIT,
                amount=amount,
                voucher_date=on_date,
                description=f"Tuition refund to student {student_id}",
                summary="Tuition refunded",
                source_type=SourceType.TUITION_REFUND,
                source_id=record.id,
                creator=operator,
                actor_id=actor_id,
            )
            record.voucher_id = voucher.id
            self._session.commit()

            LogContext.set(student_id=str(student_id), operator=operator)
            self._log_state(
                "refund_issued", state,
                amount=str(amount), record_id=str(record.id),
                voucher_no=voucher.voucher_no,
            )
            return record.id

        except Exception:
            self._session.rollback()
            raise

    def delete_payment_record(
        self,
        record_id: UUID,
        operator: str,
        actor_id: UUID,
    ) -> None:
        """
        Undo a payment or discount record.

        Restores the state delta the record caused (including any
        overpayment credited to ``account_balance``), re-derives statuses,
        reverses the original voucher and marks the record reversed.

        Raises:
            PaymentRecordNotFoundError: unknown record.
            AlreadyReversedError: record already deleted.
            NotReversibleError: refund records.
            ExceedsReceivableError: undoing the payment would drive
                ``actual_amount`` below zero.
        """
        try:
            operator = require_operator(operator)
            record = self._session.get(PaymentRecordModel, record_id)
            if record is None:
                raise PaymentRecordNotFoundError(record_id)
            if record.is_reversed:
                raise AlreadyReversedError("PaymentRecord", str(record_id))
            kind = RecordKind(record.kind)
            if kind == RecordKind.REFUND:
                raise NotReversibleError(str(record_id), kind.value)

            state = self._lock_state(record.student_id, actor_id)
            amount = round_money(record.amount)
            if kind == RecordKind.PAYMENT:
                if amount > state.actual_amount:
                    raise ExceedsReceivableError(
                        str(record.student_id), amount, round_money(state.actual_amount),
                    )
                state.actual_amount = round_money(state.actual_amount - amount)
                credited = round_money(record.balance_credit or _ZERO)
                state.account_balance = round_money(max(_ZERO, state.account_balance - credited))
            else:
                state.actual_amount = round_money(state.actual_amount + amount)
                state.discount_amount = round_money(state.discount_amount - amount)
            state.updated_by_id = actor_id
            self._rederive(state)

            reversal = None
            if record.voucher_id is not None:
                reversal = self._vouchers.reverse(
                    record.voucher_id,
                    creator=operator,
                    actor_id=actor_id,
                    reversal_date=self._clock.today(),
                )
            record.is_reversed = True
            record.reversed_at = self._clock.now()
            record.updated_by_id = actor_id
            self._session.commit()

            LogContext.set(student_id=str(record.student_id), operator=operator)
            self._log_state(
                "payment_record_deleted", state,
                record_id=str(record_id), kind=kind.value, amount=str(amount),
                reversal_voucher_no=reversal.voucher_no if reversal else None,
            )

        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Queries
    # =========================================================================

    def _unopened_state(self, student_id: UUID, contract: Decimal) -> PaymentState:
        derived = derive(contract, _ZERO, _ZERO)
        return PaymentState(
            student_id=student_id,
            contract_amount=contract,
            contract_discount=_ZERO,
            discount_amount=_ZERO,
            actual_amount=_ZERO,
            debt_amount=debt_amount(contract, _ZERO, _ZERO),
            account_balance=_ZERO,
            payment_status=derived.payment_status,
            enrollment_status=derived.enrollment_status,
        )

    def get_state(self, student_id: UUID) -> PaymentState:
        """Current payment state.  A student without an account reads as unpaid."""
        state = self._find_state(student_id, lock=False)
        if state is not None:
            return state.to_dto()

        student = self._load_student(student_id)
        return self._unopened_state(student_id, self._default_contract(student))

    def list_debtors(self, limit: int | None = None, offset: int = 0) -> list[PaymentState]:
        """
        Students that still owe tuition, largest debt first.

        Students without an account owe their class type's contract price.
        Refunded accounts are excluded whatever their debt.  Ties are
        ordered by enrollment date, earliest first.
        """
        debt = func.coalesce(
            StudentPaymentStateModel.debt_amount, ClassTypeModel.contract_price, 0,
        )
        query = (
            select(StudentModel.id, StudentPaymentStateModel, ClassTypeModel.contract_price)
            .select_from(StudentModel)
            .outerjoin(
                StudentPaymentStateModel,
                StudentPaymentStateModel.student_id == StudentModel.id,
            )
            .outerjoin(ClassTypeModel, ClassTypeModel.id == StudentModel.class_type_id)
            .where(
                debt > 0,
                func.coalesce(StudentPaymentStateModel.payment_status, PaymentStatus.UNPAID.value)
                != PaymentStatus.REFUNDED.value,
            )
            .order_by(debt.desc(), StudentModel.enrollment_date, StudentModel.name)
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)

        debtors = []
        for student_id, state, contract_price in self._session.execute(query):
            if state is not None:
                debtors.append(state.to_dto())
            else:
                debtors.append(self._unopened_state(student_id, round_money(contract_price)))
        return debtors

    def list_records(self, student_id: UUID, include_reversed: bool = True) -> list[PaymentRecord]:
        query = (
            select(PaymentRecordModel)
            .where(PaymentRecordModel.student_id == student_id)
            .order_by(PaymentRecordModel.payment_date, PaymentRecordModel.created_at)
        )
        if not include_reversed:
            query = query.where(PaymentRecordModel.is_reversed.is_(False))
        return [r.to_dto() for r in self._session.execute(query).scalars()]

    def payment_statistics(self, student_id: UUID) -> PaymentStatistics:
        """Totals per record kind over the records that are still in effect."""
        self._load_student(student_id)
        rows = self._session.execute(
            select(
                PaymentRecordModel.kind,
                func.count(PaymentRecordModel.id),
                func.sum(PaymentRecordModel.amount),
                func.max(PaymentRecordModel.payment_date),
            )
            .where(
                PaymentRecordModel.student_id == student_id,
                PaymentRecordModel.is_reversed.is_(False),
            )
            .group_by(PaymentRecordModel.kind)
        ).all()

        totals = {kind: _ZERO for kind in RecordKind}
        count = 0
        last_payment: date | None = None
        for kind, n, total, last in rows:
            kind = RecordKind(kind)
            totals[kind] = round_money(Decimal(total or 0))
            count += n
            if kind == RecordKind.PAYMENT:
                last_payment = last

        return PaymentStatistics(
            student_id=student_id,
            record_count=count,
            total_paid=totals[RecordKind.PAYMENT],
            total_discounted=totals[RecordKind.DISCOUNT],
            total_refunded=totals[RecordKind.REFUND],
            last_payment_date=last_payment,
        )
