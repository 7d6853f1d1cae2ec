"""
Expense Module Service (``ledger_modules.expense.service``).

Responsibility
--------------
Two services over operating costs:

* ``OperatingExpenseService`` -- recurring monthly expense configs, monthly
  materialization (idempotent per config and month), edits while pending,
  and payment confirmation with an ``expense_payment`` voucher.
* ``ExpenseAllocationService`` -- annual expenses amortized evenly over a
  month range through ``ledger_engines.amortization``.

Architecture position
---------------------
**Modules layer** -- sole public entry points for expense operations.
Payment vouchers go through the kernel ``VoucherService``; allocations only
feed reports and never post.

Invariants enforced
-------------------
* Each public mutating method owns the transaction boundary.
* Expense subjects must be of type ``expense``.
* ``generate_month`` never duplicates a ``(config_id, month)`` row; each
  insert runs in a savepoint so a concurrent duplicate is skipped.
* Paid monthly expenses are immutable.  Edits, deletes and payment lock the
  row (``SELECT ... FOR UPDATE``) before reading its status, so a month is
  paid at most once.

Failure modes
-------------
* ``SubjectTypeMismatchError`` / ``SubjectNotFoundError``.
* ``InvalidAmountError`` / ``ValidationError`` -- bad amounts, days or months.
* ``ExpenseConfigNotFoundError`` / ``MonthlyExpenseNotFoundError`` /
  ``AllocationNotFoundError``.
* ``ExpenseAlreadyPaidError``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_engines.amortization import AllocationMethod, AmortizationSchedule, amortize
from ledger_kernel.db.types import round_money
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.months import day_in_month, parse_month
from ledger_kernel.exceptions import (
    AllocationNotFoundError,
    ExpenseAlreadyPaidError,
    ExpenseConfigNotFoundError,
    InvalidAmountError,
    MonthlyExpenseNotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.subject import SubjectType, Usage
from ledger_kernel.models.voucher import SourceType
from ledger_kernel.services.voucher_service import VoucherService
from ledger_modules._posting_helpers import (
    build_posting_services,
    post_transfer,
    require_choice,
    require_operator,
    require_positive,
)
from ledger_modules.expense.models import (
    ExpenseAllocation,
    ExpenseConfig,
    GenerationResult,
    MonthlyExpense,
    MonthlyExpenseStatus,
)
from ledger_modules.expense.orm import (
    ExpenseAllocationModel,
    ExpenseConfigModel,
    MonthlyExpenseModel,
)

logger = get_logger("modules.expense.service")


def _check_payment_day(payment_day: int) -> None:
    if not 1 <= payment_day <= 31:
        raise ValidationError(f"payment_day {payment_day} is outside 1..31")


def _check_month_range(start_month: int, end_month: int) -> None:
    if not (1 <= start_month <= 12 and 1 <= end_month <= 12) or start_month > end_month:
        raise ValidationError(
            f"allocation months {start_month}..{end_month} must satisfy 1 <= start <= end <= 12"
        )


class OperatingExpenseService:
    """
    Recurring monthly operating expenses.

    Contract
    --------
    * ``generate_month`` returns ``GenerationResult(generated, skipped)``.
    * No active configs is not an error: the result is ``(0, 0)``.
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
    # Configs
    # =========================================================================

    def _get_config(self, config_id: UUID) -> ExpenseConfigModel:
        config = self._session.get(ExpenseConfigModel, config_id)
        if config is None:
            raise ExpenseConfigNotFoundError(config_id)
        return config

    def create_config(
        self,
        subject_code: str,
        expense_name: str,
        amount: Decimal,
        actor_id: UUID,
        payment_day: int = 1,
        remark: str | None = None,
    ) -> ExpenseConfig:
        try:
            self._subjects.require_type(subject_code, SubjectType.EXPENSE)
            amount = round_money(require_positive("expense amount", amount))
            _check_payment_day(payment_day)
            config = ExpenseConfigModel(
                subject_code=subject_code,
                expense_name=expense_name,
                amount=amount,
                payment_day=payment_day,
                is_active=True,
                remark=remark,
                created_by_id=actor_id,
            )
            self._session.add(config)
            self._session.commit()
            logger.info("expense_config_created", extra={
                "config_id": str(config.id),
                "subject_code": subject_code,
                "amount": str(amount),
            })
            return config.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def update_config(
        self,
        config_id: UUID,
        actor_id: UUID,
        subject_code: str | None = None,
        expense_name: str | None = None,
        amount: Decimal | None = None,
        payment_day: int | None = None,
        is_active: bool | None = None,
        remark: str | None = None,
    ) -> ExpenseConfig:
        """Edit a config.  Months already generated keep their snapshot."""
        try:
            config = self._get_config(config_id)
            if subject_code is not None:
                self._subjects.require_type(subject_code, SubjectType.EXPENSE)
                config.subject_code = subject_code
            if expense_name is not None:
                config.expense_name = expense_name
            if amount is not None:
                config.amount = round_money(require_positive("expense amount", amount))
            if payment_day is not None:
                _check_payment_day(payment_day)
                config.payment_day = payment_day
            if is_active is not None:
                config.is_active = is_active
            if remark is not None:
                config.remark = remark
            config.updated_by_id = actor_id
            self._session.commit()
            logger.info("expense_config_updated", extra={"config_id": str(config_id)})
            return config.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def remove_config(self, config_id: UUID, actor_id: UUID) -> bool:
        """
        Delete a config, or deactivate it when monthly rows reference it.

        Returns:
            True when the row was deleted, False when it was deactivated.
        """
        try:
            config = self._get_config(config_id)
            referenced = self._session.execute(
                select(exists().where(MonthlyExpenseModel.config_id == config_id))
            ).scalar()
            if referenced:
                config.is_active = False
                config.updated_by_id = actor_id
            else:
                self._session.delete(config)
            self._session.commit()
            logger.info("expense_config_removed", extra={
                "config_id": str(config_id),
                "deleted": not referenced,
            })
            return not referenced

        except Exception:
            self._session.rollback()
            raise

    def list_configs(self, active_only: bool = False) -> list[ExpenseConfig]:
        query = select(ExpenseConfigModel).order_by(
            ExpenseConfigModel.payment_day, ExpenseConfigModel.expense_name,
        )
        if active_only:
            query = query.where(ExpenseConfigModel.is_active.is_(True))
        return [c.to_dto() for c in self._session.execute(query).scalars()]

    # =========================================================================
    # Monthly expenses
    # =========================================================================

    def _get_monthly(self, expense_id: UUID, *, lock: bool = False) -> MonthlyExpenseModel:
        if lock:
            expense = self._session.execute(
                select(MonthlyExpenseModel)
                .where(MonthlyExpenseModel.id == expense_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        else:
            expense = self._session.get(MonthlyExpenseModel, expense_id)
        if expense is None:
            raise MonthlyExpenseNotFoundError(expense_id)
        return expense

    def generate_month(self, month: str, actor_id: UUID) -> GenerationResult:
        """Materialize every active config for ``month``; existing rows are skipped."""
        parse_month(month)
        LogContext.set(month=month)
        try:
            configs = self._session.execute(
                select(ExpenseConfigModel).where(ExpenseConfigModel.is_active.is_(True))
            ).scalars().all()
            existing = set(
                self._session.execute(
                    select(MonthlyExpenseModel.config_id).where(MonthlyExpenseModel.month == month)
                ).scalars()
            )

            generated = 0
            skipped = 0
            for config in configs:
                if config.id in existing:
                    skipped += 1
                    continue
                expense = MonthlyExpenseModel(
                    config_id=config.id,
                    month=month,
                    subject_code=config.subject_code,
                    expense_name=config.expense_name,
                    amount=config.amount,
                    due_date=day_in_month(month, config.payment_day),
                    status=MonthlyExpenseStatus.PENDING.value,
                    created_by_id=actor_id,
                )
                try:
                    with self._session.begin_nested():
                        self._session.add(expense)
                        self._session.flush()
                except IntegrityError:
                    skipped += 1
                    continue
                generated += 1

            self._session.commit()
            logger.info("expense_month_generated", extra={
                "month": month,
                "generated_count": generated,
                "skipped_count": skipped,
            })
            return GenerationResult(generated=generated, skipped=skipped)

        except Exception:
            self._session.rollback()
            raise

    def update_monthly(
        self,
        expense_id: UUID,
        actor_id: UUID,
        amount: Decimal | None = None,
        remark: str | None = None,
    ) -> MonthlyExpense:
        """Adjust a pending month's amount or remark."""
        try:
            expense = self._get_monthly(expense_id, lock=True)
            if expense.status == MonthlyExpenseStatus.PAID.value:
                raise ExpenseAlreadyPaidError(str(expense_id))
            if amount is not None:
                expense.amount = round_money(require_positive("expense amount", amount))
            if remark is not None:
                expense.remark = remark
            expense.updated_by_id = actor_id
            self._session.commit()
            return expense.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def confirm_payment(
        self,
        expense_id: UUID,
        payment_date: date,
        operator: str,
        actor_id: UUID,
    ) -> MonthlyExpense:
        """
        Pay a pending monthly expense.

        Posts debit the expense subject, credit bank deposit.
        """
        try:
            operator = require_operator(operator)
            expense = self._get_monthly(expense_id, lock=True)
            if expense.status == MonthlyExpenseStatus.PAID.value:
                raise ExpenseAlreadyPaidError(str(expense_id))

            amount = round_money(expense.amount)
            voucher = post_transfer(
                self._subjects,
                self._vouchers,
                debit_subject=expense.subject_code,
                credit_usage=Usage.BANK_DEPOSIT,
                amount=amount,
                voucher_date=payment_date,
                description=f"{expense.expense_name} {expense.month}",
                summary=expense.expense_name,
                source_type=SourceType.EXPENSE_PAYMENT,
                source_id=expense.id,
                creator=operator,
                actor_id=actor_id,
            )
            expense.status = MonthlyExpenseStatus.PAID.value
            expense.paid_at = self._clock.now()
            expense.voucher_id = voucher.id
            expense.voucher_no = voucher.voucher_no
            expense.updated_by_id = actor_id
            self._session.commit()

            LogContext.set(operator=operator, month=expense.month)
            logger.info("expense_paid", extra={
                "expense_id": str(expense_id),
                "month": expense.month,
                "amount": str(amount),
                "voucher_no": voucher.voucher_no,
            })
            return expense.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def delete_monthly(self, expense_id: UUID, actor_id: UUID) -> None:
        """
        Delete a pending monthly expense.

        Raises:
            ExpenseAlreadyPaidError: the month is paid.
        """
        try:
            expense = self._get_monthly(expense_id, lock=True)
            if expense.status == MonthlyExpenseStatus.PAID.value:
                raise ExpenseAlreadyPaidError(str(expense_id))
            self._session.delete(expense)
            self._session.commit()
            logger.info("expense_monthly_deleted", extra={
                "expense_id": str(expense_id),
                "month": expense.month,
                "actor_id": str(actor_id),
            })

        except Exception:
            self._session.rollback()
            raise

    def batch_delete_month(self, month: str, actor_id: UUID) -> int:
        """Delete the month's pending expenses.  Paid rows stay."""
        parse_month(month)
        try:
            result = self._session.execute(
                delete(MonthlyExpenseModel).where(
                    MonthlyExpenseModel.month == month,
                    MonthlyExpenseModel.status == MonthlyExpenseStatus.PENDING.value,
                )
            )
            self._session.commit()
            deleted = result.rowcount or 0
            logger.info("expense_month_deleted", extra={
                "month": month,
                "deleted_count": deleted,
                "actor_id": str(actor_id),
            })
            return deleted

        except Exception:
            self._session.rollback()
            raise

    def get_monthly(self, expense_id: UUID) -> MonthlyExpense:
        return self._get_monthly(expense_id).to_dto()

    def list_month(
        self,
        month: str,
        status: MonthlyExpenseStatus | None = None,
    ) -> list[MonthlyExpense]:
        parse_month(month)
        query = (
            select(MonthlyExpenseModel)
            .where(MonthlyExpenseModel.month == month)
            .order_by(MonthlyExpenseModel.due_date, MonthlyExpenseModel.expense_name)
        )
        if status is not None:
            status = require_choice(MonthlyExpenseStatus, "expense status", status)
            query = query.where(MonthlyExpenseModel.status == status.value)
        return [e.to_dto() for e in self._session.execute(query).scalars()]


class ExpenseAllocationService:
    """
    Annual expenses amortized over a month range.

    Contract
    --------
    * ``monthly_amount`` is stored at creation and recomputed on every edit
      that touches the total or the range.
    * Allocations never post vouchers; reports read them directly.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._subjects, _ = build_posting_services(session, self._clock)

    def _get(self, allocation_id: UUID) -> ExpenseAllocationModel:
        allocation = self._session.get(ExpenseAllocationModel, allocation_id)
        if allocation is None:
            raise AllocationNotFoundError(allocation_id)
        return allocation

    def _schedule_for(self, allocation: ExpenseAllocationModel) -> AmortizationSchedule:
        return amortize(
            round_money(allocation.total_amount),
            allocation.start_month,
            allocation.end_month,
            AllocationMethod(allocation.allocation_method),
        )

    def create_allocation(
        self,
        expense_name: str,
        subject_code: str,
        total_amount: Decimal,
        allocation_year: int,
        actor_id: UUID,
        start_month: int = 1,
        end_month: int = 12,
        allocation_method: AllocationMethod = AllocationMethod.AVERAGE,
        remark: str | None = None,
    ) -> ExpenseAllocation:
        try:
            self._subjects.require_type(subject_code, SubjectType.EXPENSE)
            total = round_money(require_positive("allocation total", total_amount))
            _check_month_range(start_month, end_month)
            allocation = ExpenseAllocationModel(
                expense_name=expense_name,
                subject_code=subject_code,
                total_amount=total,
                allocation_year=allocation_year,
                start_month=start_month,
                end_month=end_month,
                allocation_method=AllocationMethod(allocation_method).value,
                is_active=True,
                remark=remark,
                created_by_id=actor_id,
            )
            allocation.monthly_amount = self._schedule_for(allocation).monthly_amount
            self._session.add(allocation)
            self._session.commit()
            logger.info("expense_allocation_created", extra={
                "allocation_id": str(allocation.id),
                "total_amount": str(total),
                "allocation_year": allocation_year,
                "monthly_amount": str(allocation.monthly_amount),
            })
            return allocation.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def update_allocation(
        self,
        allocation_id: UUID,
        actor_id: UUID,
        expense_name: str | None = None,
        total_amount: Decimal | None = None,
        start_month: int | None = None,
        end_month: int | None = None,
        remark: str | None = None,
    ) -> ExpenseAllocation:
        try:
            allocation = self._get(allocation_id)
            if expense_name is not None:
                allocation.expense_name = expense_name
            if total_amount is not None:
                allocation.total_amount = round_money(require_positive("allocation total", total_amount))
            new_start = allocation.start_month if start_month is None else start_month
            new_end = allocation.end_month if end_month is None else end_month
            _check_month_range(new_start, new_end)
            allocation.start_month = new_start
            allocation.end_month = new_end
            if remark is not None:
                allocation.remark = remark
            allocation.monthly_amount = self._schedule_for(allocation).monthly_amount
            allocation.updated_by_id = actor_id
            self._session.commit()
            logger.info("expense_allocation_updated", extra={
                "allocation_id": str(allocation_id),
                "monthly_amount": str(allocation.monthly_amount),
            })
            return allocation.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def deactivate_allocation(self, allocation_id: UUID, actor_id: UUID) -> None:
        try:
            allocation = self._get(allocation_id)
            allocation.is_active = False
            allocation.updated_by_id = actor_id
            self._session.commit()
            logger.info("expense_allocation_deactivated", extra={"allocation_id": str(allocation_id)})

        except Exception:
            self._session.rollback()
            raise

    def get_allocation(self, allocation_id: UUID) -> ExpenseAllocation:
        return self._get(allocation_id).to_dto()

    def schedule(self, allocation_id: UUID) -> AmortizationSchedule:
        return self._schedule_for(self._get(allocation_id))

    def list_allocations(
        self,
        allocation_year: int | None = None,
        active_only: bool = False,
    ) -> list[ExpenseAllocation]:
        query = select(ExpenseAllocationModel).order_by(
            ExpenseAllocationModel.allocation_year, ExpenseAllocationModel.expense_name,
        )
        if allocation_year is not None:
            query = query.where(ExpenseAllocationModel.allocation_year == allocation_year)
        if active_only:
            query = query.where(ExpenseAllocationModel.is_active.is_(True))
        return [a.to_dto() for a in self._session.execute(query).scalars()]

    def allocations_for_month(self, year: int, month: int) -> list[ExpenseAllocation]:
        """Active allocations of ``year`` whose range covers ``month``."""
        return [
            a for a in self.list_allocations(year, active_only=True)
            if a.covers(year, month)
        ]
