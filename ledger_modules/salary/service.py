"""
Salary Module Service (``ledger_modules.salary.service``).

Responsibility
--------------
Coach commission and monthly salary engine: generates one salary sheet per
active coach and month from exam passes and new enrollments, refreshes the
derived figures of unpaid sheets, applies manual edits, moves sheets through
draft -> confirmed -> paid, and posts the payout voucher.

Architecture position
---------------------
**Modules layer** -- ``SalaryService`` is the sole public entry point for
salary operations.  Figures come from the pure
``ledger_engines.commission.compute_salary``; payouts post through the
kernel ``VoucherService``.

Invariants enforced
-------------------
* Each public mutating method owns the transaction boundary
  (``commit`` on success, ``rollback`` and re-raise on failure).
* Generation is idempotent: one sheet per ``(coach_id, month)``, enforced by
  a unique constraint; each insert runs in a savepoint so a concurrent
  duplicate is skipped, not raised.
* Refresh rewrites derived fields only; attendance, bonus, deduction,
  net salary and remarks are kept.
* Status changes and payouts lock the sheet (``SELECT ... FOR UPDATE``)
  before reading its status, so two payouts of one sheet cannot both post.
* Status is monotonic; paid sheets are immutable and excluded from refresh
  and delete.
* ``deduction > 0`` requires a non-empty ``deduction_reason``.

Failure modes
-------------
* ``InvalidMonthError`` -- month key is not ``YYYY-MM``.
* ``SalaryRecordNotFoundError``.
* ``ImmutablePaidRecordError`` -- editing or re-paying a paid sheet.
* ``InvalidStatusTransitionError`` -- regression or skipped step.
* ``DeductionReasonRequiredError``.
* ``InvalidAmountError`` -- negative manual amounts, or a payout <= 0.
* ``InvalidChoiceError`` -- unknown rate type or salary status.

Audit relevance
---------------
Generation, refresh, edits, confirmation and payout are logged with coach,
month, figures and voucher number.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_engines.commission import (
    RateType,
    SalaryInputs,
    SalaryRates,
    compute_salary,
    payable_amount,
)
from ledger_kernel.db.types import round_money
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.months import month_bounds, parse_month
from ledger_kernel.exceptions import (
    DeductionReasonRequiredError,
    ImmutablePaidRecordError,
    InvalidAmountError,
    InvalidStatusTransitionError,
    SalaryRateConfigNotFoundError,
    SalaryRecordNotFoundError,
    ValidationError,
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
)
from ledger_modules.roster.orm import CoachModel, ExamResultModel, StudentModel
from ledger_modules.salary.models import CoachSalary, SalaryRateConfig, SalaryStatus
from ledger_modules.salary.orm import CoachMonthlySalaryModel, SalaryRateConfigModel

logger = get_logger("modules.salary.service")

_ZERO = Decimal("0")

# (subject2 passes, subject3 passes, new students) per coach
_Counts = tuple[int, int, int]


class SalaryService:
    """
    Orchestrates coach salary sheets.

    Contract
    --------
    * ``generate``, ``refresh`` and ``batch_delete`` return counts.
    * Other mutating methods return the updated ``CoachSalary``.

    Non-goals
    ---------
    * Does NOT record attendance; ``attendance_days`` is entered by hand.
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
    # Rate configuration
    # =========================================================================

    def create_rate_config(
        self,
        config_type: RateType | str,
        amount: Decimal,
        effective_date: date,
        actor_id: UUID,
        expire_date: date | None = None,
        remark: str | None = None,
    ) -> SalaryRateConfig:
        """Add a rate of the given type, effective from ``effective_date``."""
        config_type = require_choice(RateType, "rate type", config_type)
        try:
            amount = round_money(Decimal(amount))
            if amount < 0:
                raise InvalidAmountError("rate amount", amount, "must not be negative")
            if expire_date is not None and expire_date < effective_date:
                raise ValidationError(
                    f"expire_date {expire_date} is before effective_date {effective_date}"
                )
            config = SalaryRateConfigModel(
                config_type=config_type.value,
                amount=amount,
                effective_date=effective_date,
                expire_date=expire_date,
                is_active=True,
                remark=remark,
                created_by_id=actor_id,
            )
            self._session.add(config)
            self._session.commit()
            logger.info("salary_rate_created", extra={
                "config_type": config_type.value,
                "amount": str(amount),
                "effective_date": effective_date.isoformat(),
            })
            return config.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def update_rate_config(
        self,
        config_id: UUID,
        actor_id: UUID,
        *,
        amount: Decimal | None = None,
        effective_date: date | None = None,
        expire_date: date | None = None,
        clear_expire_date: bool = False,
        remark: str | None = None,
    ) -> SalaryRateConfig:
        """
        Edit a rate in place.

        Sheets already generated keep their figures until the next refresh.
        """
        try:
            config = self._session.get(SalaryRateConfigModel, config_id)
            if config is None:
                raise SalaryRateConfigNotFoundError(config_id)
            if amount is not None:
                amount = round_money(Decimal(amount))
                if amount < 0:
                    raise InvalidAmountError("rate amount", amount, "must not be negative")
                config.amount = amount
            if effective_date is not None:
                config.effective_date = effective_date
            if clear_expire_date:
                config.expire_date = None
            elif expire_date is not None:
                config.expire_date = expire_date
            if config.expire_date is not None and config.expire_date < config.effective_date:
                raise ValidationError(
                    f"expire_date {config.expire_date} is before effective_date {config.effective_date}"
                )
            if remark is not None:
                config.remark = remark
            config.updated_by_id = actor_id
            self._session.commit()
            logger.info("salary_rate_updated", extra={
                "config_id": str(config_id),
                "config_type": config.config_type,
                "amount": str(config.amount),
            })
            return config.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def list_rate_configs(self, active_only: bool = False) -> list[SalaryRateConfig]:
        query = select(SalaryRateConfigModel).order_by(
            SalaryRateConfigModel.config_type,
            SalaryRateConfigModel.effective_date.desc(),
        )
        if active_only:
            query = query.where(SalaryRateConfigModel.is_active.is_(True))
        return [c.to_dto() for c in self._session.execute(query).scalars()]

    def deactivate_rate_config(self, config_id: UUID, actor_id: UUID) -> None:
        try:
            config = self._session.get(SalaryRateConfigModel, config_id)
            if config is None:
                raise SalaryRateConfigNotFoundError(config_id)
            config.is_active = False
            config.updated_by_id = actor_id
            self._session.commit()
            logger.info("salary_rate_deactivated", extra={"config_id": str(config_id)})

        except Exception:
            self._session.rollback()
            raise

    def active_rates(self, on_date: date) -> SalaryRates:
        """
        Rates in force on ``on_date``, one per type.

        A rate applies when it is active, ``effective_date <= on_date`` and
        ``expire_date`` is null or ``>= on_date``; the most recent effective
        date wins.  Missing types are zero.
        """
        configs = self._session.execute(
            select(SalaryRateConfigModel)
            .where(
                SalaryRateConfigModel.is_active.is_(True),
                SalaryRateConfigModel.effective_date <= on_date,
            )
            .order_by(
                SalaryRateConfigModel.effective_date.desc(),
                SalaryRateConfigModel.created_at.desc(),
            )
        ).scalars()

        resolved: dict[RateType, Decimal] = {}
        for config in configs:
            dto = config.to_dto()
            if dto.config_type in resolved or not dto.is_effective_on(on_date):
                continue
            resolved[dto.config_type] = round_money(dto.amount)
        return SalaryRates.from_mapping(resolved)

    # =========================================================================
    # Internals
    # =========================================================================

    def _get(self, salary_id: UUID, *, lock: bool = False) -> CoachMonthlySalaryModel:
        if lock:
            record = self._session.execute(
                select(CoachMonthlySalaryModel)
                .where(CoachMonthlySalaryModel.id == salary_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        else:
            record = self._session.get(CoachMonthlySalaryModel, salary_id)
        if record is None:
            raise SalaryRecordNotFoundError(salary_id)
        return record

    def _month_counts(self, month: str) -> dict[UUID, _Counts]:
        """Exam passes and new enrollments attributed to each coach in the month."""
        start, end = month_bounds(month)
        passes: dict[UUID, dict[int, int]] = defaultdict(dict)
        for coach_id, subject, n in self._session.execute(
            select(ExamResultModel.coach_id, ExamResultModel.exam_subject, func.count())
            .where(
                ExamResultModel.coach_id.is_not(None),
                ExamResultModel.passed.is_(True),
                ExamResultModel.exam_date >= start,
                ExamResultModel.exam_date < end,
            )
            .group_by(ExamResultModel.coach_id, ExamResultModel.exam_subject)
        ).all():
            passes[coach_id][subject] = n

        enrolled = dict(
            self._session.execute(
                select(StudentModel.coach_id, func.count())
                .where(
                    StudentModel.coach_id.is_not(None),
                    StudentModel.enrollment_date >= start,
                    StudentModel.enrollment_date < end,
                )
                .group_by(StudentModel.coach_id)
            ).all()
        )

        counts: dict[UUID, _Counts] = {}
        for coach_id in set(passes) | set(enrolled):
            counts[coach_id] = (
                passes[coach_id].get(2, 0),
                passes[coach_id].get(3, 0),
                enrolled.get(coach_id, 0),
            )
        return counts

    def _apply_figures(
        self,
        record: CoachMonthlySalaryModel,
        rates: SalaryRates,
        counts: _Counts | None = None,
    ) -> None:
        """Recompute derived fields; ``counts`` None keeps the stored counts."""
        if counts is not None:
            (
                record.subject2_pass_count,
                record.subject3_pass_count,
                record.new_student_count,
            ) = counts
        figures = compute_salary(
            SalaryInputs(
                attendance_days=record.attendance_days,
                subject2_pass_count=record.subject2_pass_count,
                subject3_pass_count=record.subject3_pass_count,
                new_student_count=record.new_student_count,
                bonus=round_money(record.bonus),
                deduction=round_money(record.deduction),
            ),
            rates,
        )
        record.base_salary = figures.base_salary
        record.subject2_commission = figures.subject2_commission
        record.subject3_commission = figures.subject3_commission
        record.recruitment_commission = figures.recruitment_commission
        record.gross_salary = figures.gross_salary

    def _rates_for(self, month: str) -> SalaryRates:
        start, _ = month_bounds(month)
        return self.active_rates(start)

    # =========================================================================
    # Batch generation
    # =========================================================================

    def generate(self, month: str, actor_id: UUID) -> int:
        """
        Create draft sheets for active coaches that have none for ``month``.

        Returns:
            Number of sheets created.  Existing sheets are skipped.
        """
        parse_month(month)
        LogContext.set(month=month)
        try:
            existing = set(
                self._session.execute(
                    select(CoachMonthlySalaryModel.coach_id).where(
                        CoachMonthlySalaryModel.month == month,
                    )
                ).scalars()
            )
            coaches = self._session.execute(
                select(CoachModel.id)
                .where(CoachModel.is_active.is_(True))
                .order_by(CoachModel.name)
            ).scalars().all()

            rates = self._rates_for(month)
            counts = self._month_counts(month)
            generated = 0
            skipped = 0
            for coach_id in coaches:
                if coach_id in existing:
                    skipped += 1
                    continue
                record = CoachMonthlySalaryModel(
                    coach_id=coach_id,
                    month=month,
                    attendance_days=0,
                    bonus=_ZERO,
                    deduction=_ZERO,
                    status=SalaryStatus.DRAFT.value,
                    created_by_id=actor_id,
                )
                self._apply_figures(record, rates, counts.get(coach_id, (0, 0, 0)))
                try:
                    with self._session.begin_nested():
                        self._session.add(record)
                        self._session.flush()
                except IntegrityError:
                    skipped += 1
                    continue
                generated += 1

            self._session.commit()
            logger.info("salary_generated", extra={
                "month": month,
                "generated_count": generated,
                "skipped_count": skipped,
            })
            return generated

        except Exception:
            self._session.rollback()
            raise

    def refresh(self, month: str, actor_id: UUID) -> int:
        """
        Recompute counts and derived figures of the month's unpaid sheets.

        Returns:
            Number of sheets refreshed.
        """
        parse_month(month)
        LogContext.set(month=month)
        try:
            records = self._session.execute(
                select(CoachMonthlySalaryModel).where(
                    CoachMonthlySalaryModel.month == month,
                    CoachMonthlySalaryModel.status != SalaryStatus.PAID.value,
                )
            ).scalars().all()

            rates = self._rates_for(month)
            counts = self._month_counts(month)
            for record in records:
                self._apply_figures(record, rates, counts.get(record.coach_id, (0, 0, 0)))
                record.updated_by_id = actor_id

            self._session.commit()
            logger.info("salary_refreshed", extra={
                "month": month,
                "refreshed_count": len(records),
            })
            return len(records)

        except Exception:
            self._session.rollback()
            raise

    def batch_delete(self, month: str, actor_id: UUID) -> int:
        """Delete the month's draft and confirmed sheets.  Paid sheets stay."""
        parse_month(month)
        try:
            result = self._session.execute(
                delete(CoachMonthlySalaryModel).where(
                    CoachMonthlySalaryModel.month == month,
                    CoachMonthlySalaryModel.status.in_(
                        [SalaryStatus.DRAFT.value, SalaryStatus.CONFIRMED.value]
                    ),
                )
            )
            self._session.commit()
            deleted = result.rowcount or 0
            logger.info("salary_batch_deleted", extra={
                "month": month,
                "deleted_count": deleted,
                "actor_id": str(actor_id),
            })
            return deleted

        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Single sheet
    # =========================================================================

    def get(self, salary_id: UUID) -> CoachSalary:
        return self._get(salary_id).to_dto()

    def delete(self, salary_id: UUID, actor_id: UUID) -> None:
        """
        Delete one draft or confirmed sheet.

        Raises:
            ImmutablePaidRecordError: the sheet is paid.
        """
        try:
            record = self._get(salary_id, lock=True)
            if record.status == SalaryStatus.PAID.value:
                raise ImmutablePaidRecordError(str(salary_id))
            self._session.delete(record)
            self._session.commit()
            logger.info("salary_deleted", extra={
                "salary_id": str(salary_id),
                "coach_id": str(record.coach_id),
                "month": record.month,
                "actor_id": str(actor_id),
            })

        except Exception:
            self._session.rollback()
            raise

    def list_month(self, month: str, status: SalaryStatus | None = None) -> list[CoachSalary]:
        parse_month(month)
        query = (
            select(CoachMonthlySalaryModel)
            .join(CoachModel, CoachModel.id == CoachMonthlySalaryModel.coach_id)
            .where(CoachMonthlySalaryModel.month == month)
            .order_by(CoachModel.name)
        )
        if status is not None:
            status = require_choice(SalaryStatus, "salary status", status)
            query = query.where(CoachMonthlySalaryModel.status == status.value)
        return [r.to_dto() for r in self._session.execute(query).scalars()]

    def update(
        self,
        salary_id: UUID,
        actor_id: UUID,
        *,
        attendance_days: int | None = None,
        bonus: Decimal | None = None,
        deduction: Decimal | None = None,
        deduction_reason: str | None = None,
        net_salary: Decimal | None = None,
        clear_net_salary: bool = False,
        status: SalaryStatus | str | None = None,
        remarks: str | None = None,
        operator: str | None = None,
        payment_date: date | None = None,
    ) -> CoachSalary:
        """
        Apply manual edits and recompute gross.

        A status change to ``paid`` runs the payout (``operator`` required).

        Raises:
            ImmutablePaidRecordError: the sheet is already paid.
            DeductionReasonRequiredError: deduction > 0 without a reason.
            InvalidStatusTransitionError: status regression or skipped step.
        """
        target = require_choice(SalaryStatus, "salary status", status) if status is not None else None
        try:
            record = self._get(salary_id, lock=True)
            current = SalaryStatus(record.status)
            if current == SalaryStatus.PAID:
                raise ImmutablePaidRecordError(str(salary_id))
            if target is not None and target.rank < current.rank:
                raise InvalidStatusTransitionError(str(salary_id), current.value, target.value)

            if attendance_days is not None:
                if attendance_days < 0:
                    raise InvalidAmountError("attendance_days", attendance_days, "must not be negative")
                record.attendance_days = attendance_days
            if bonus is not None:
                bonus = round_money(Decimal(bonus))
                if bonus < 0:
                    raise InvalidAmountError("bonus", bonus, "must not be negative")
                record.bonus = bonus
            if deduction is not None:
                deduction = round_money(Decimal(deduction))
                if deduction < 0:
                    raise InvalidAmountError("deduction", deduction, "must not be negative")
                record.deduction = deduction
            if deduction_reason is not None:
                record.deduction_reason = deduction_reason.strip() or None
            if clear_net_salary:
                record.net_salary = None
            elif net_salary is not None:
                net_salary = round_money(Decimal(net_salary))
                if net_salary < 0:
                    raise InvalidAmountError("net_salary", net_salary, "must not be negative")
                record.net_salary = net_salary
            if remarks is not None:
                record.remarks = remarks

            if record.deduction > 0 and not record.deduction_reason:
                raise DeductionReasonRequiredError(str(salary_id), round_money(record.deduction))

            self._apply_figures(record, self._rates_for(record.month))
            record.updated_by_id = actor_id

            if target == SalaryStatus.CONFIRMED and current == SalaryStatus.DRAFT:
                record.status = SalaryStatus.CONFIRMED.value
            elif target == SalaryStatus.PAID:
                if current != SalaryStatus.CONFIRMED:
                    raise InvalidStatusTransitionError(str(salary_id), current.value, target.value)
                self._pay(record, payment_date or self._clock.today(), operator, actor_id)

            self._session.commit()
            logger.info("salary_updated", extra={
                "salary_id": str(salary_id),
                "month": record.month,
                "gross_salary": str(record.gross_salary),
                "status": record.status,
            })
            return record.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def confirm(self, salary_id: UUID, actor_id: UUID) -> CoachSalary:
        """Move a draft sheet to confirmed."""
        try:
            record = self._get(salary_id, lock=True)
            current = SalaryStatus(record.status)
            if current == SalaryStatus.PAID:
                raise ImmutablePaidRecordError(str(salary_id))
            if current != SalaryStatus.DRAFT:
                raise InvalidStatusTransitionError(
                    str(salary_id), current.value, SalaryStatus.CONFIRMED.value,
                )
            if record.deduction > 0 and not record.deduction_reason:
                raise DeductionReasonRequiredError(str(salary_id), round_money(record.deduction))
            record.status = SalaryStatus.CONFIRMED.value
            record.updated_by_id = actor_id
            self._session.commit()
            logger.info("salary_confirmed", extra={
                "salary_id": str(salary_id),
                "month": record.month,
            })
            return record.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def confirm_payment(
        self,
        salary_id: UUID,
        payment_date: date,
        operator: str,
        actor_id: UUID,
    ) -> CoachSalary:
        """
        Pay a confirmed sheet.

        Posts debit coach salary, credit bank deposit for ``net_salary``
        when set, else ``gross_salary``.
        """
        try:
            record = self._get(salary_id, lock=True)
            current = SalaryStatus(record.status)
            if current == SalaryStatus.PAID:
                raise ImmutablePaidRecordError(str(salary_id))
            if current != SalaryStatus.CONFIRMED:
                raise InvalidStatusTransitionError(
                    str(salary_id), current.value, SalaryStatus.PAID.value,
                )
            self._pay(record, payment_date, operator, actor_id)
            self._session.commit()
            return record.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def _pay(
        self,
        record: CoachMonthlySalaryModel,
        payment_date: date,
        operator: str | None,
        actor_id: UUID,
    ) -> None:
        operator = require_operator(operator)
        amount = payable_amount(record.gross_salary, record.net_salary)
        if amount <= 0:
            raise InvalidAmountError("salary payout", amount)

        voucher = post_transfer(
            self._subjects,
            self._vouchers,
            debit_usage=Usage.COACH_SALARY,
            credit_usage=Usage.BANK_DEPOSIT,
            amount=amount,
            voucher_date=payment_date,
            description=f"Coach salary {record.month}",
            summary=f"Salary {record.month}",
            source_type=SourceType.COACH_SALARY,
            source_id=record.id,
            creator=operator,
            actor_id=actor_id,
        )
        record.status = SalaryStatus.PAID.value
        record.paid_at = self._clock.now()
        record.voucher_id = voucher.id
        record.voucher_no = voucher.voucher_no
        record.updated_by_id = actor_id

        LogContext.set(operator=operator, month=record.month)
        logger.info("salary_paid", extra={
            "salary_id": str(record.id),
            "coach_id": str(record.coach_id),
            "month": record.month,
            "amount": str(amount),
            "voucher_no": voucher.voucher_no,
        })
