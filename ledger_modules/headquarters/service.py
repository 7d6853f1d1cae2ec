"""
Headquarters Module Service (``ledger_modules.headquarters.service``).

Responsibility
--------------
Maintains profit-share configs, resolves the config that applies to a
class type on a date, previews a student's submission amount and profit,
and confirms or revokes the submission with a voucher.

Architecture position
---------------------
**Modules layer** -- ``HeadquarterService`` is the sole public entry point
for headquarters operations.  Reads tuition state through
``TuitionLedgerService``; posts through the kernel ``VoucherService``.

Invariants enforced
-------------------
* Resolution is two-step and tagged: an active config for the class type
  wins over the active global config; otherwise ``NoConfig``.  Within a
  step the most recent ``effective_date`` wins and the window is
  ``effective_date <= d < expire_date``.
* ``compute`` is a pure read.
* A student is submitted at most once until the submission is revoked;
  revocation reverses the ``submit_confirm`` voucher.

Failure modes
-------------
* ``InvalidHeadquarterConfigError`` -- malformed config.
* ``StudentNotFoundError`` / ``HeadquarterConfigNotFoundError``.
* ``AlreadySubmittedError`` / ``NotSubmittedError``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import (
    AlreadySubmittedError,
    HeadquarterConfigNotFoundError,
    InvalidAmountError,
    InvalidHeadquarterConfigError,
    NotSubmittedError,
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
)
from ledger_modules.headquarters.models import (
    GlobalConfig,
    HeadquarterConfig,
    HeadquarterConfigType,
    NoConfig,
    ResolvedConfig,
    SpecificConfig,
    SubmissionPreview,
    SubmitAction,
    SubmitRecord,
    SubmitStatus,
)
from ledger_modules.headquarters.orm import HeadquarterConfigModel, SubmitRecordModel
from ledger_modules.roster.orm import StudentModel
from ledger_modules.tuition.orm import StudentPaymentStateModel
from ledger_modules.tuition.service import TuitionLedgerService

logger = get_logger("modules.headquarters.service")

_ONE = Decimal("1")
_ZERO = Decimal("0")


class HeadquarterService:
    """
    Headquarters profit-share configs and submissions.

    Contract
    --------
    * ``resolve`` and ``compute`` never write.
    * ``create_config``, ``update_config``, ``deactivate_config``,
      ``confirm_submission`` and ``revoke_submission`` commit on success and
      roll back on failure.
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
        self._tuition = TuitionLedgerService(session, self._clock, self._vouchers)

    # =========================================================================
    # Configs
    # =========================================================================

    def _check_values(
        self,
        config_type: HeadquarterConfigType | str,
        ratio: Decimal | None,
        fixed_amount: Decimal | None,
        effective_date: date,
        expire_date: date | None,
    ) -> tuple[HeadquarterConfigType, Decimal | None, Decimal | None]:
        config_type = require_choice(HeadquarterConfigType, "headquarters config type", config_type)
        if config_type == HeadquarterConfigType.RATIO:
            if ratio is None or fixed_amount is not None:
                raise InvalidHeadquarterConfigError("a ratio config needs ratio and no fixed_amount")
            ratio = Decimal(ratio)
            if not _ZERO <= ratio <= _ONE:
                raise InvalidHeadquarterConfigError(f"ratio {ratio} is outside [0, 1]")
        else:
            if fixed_amount is None or ratio is not None:
                raise InvalidHeadquarterConfigError("a fixed config needs fixed_amount and no ratio")
            fixed_amount = round_money(Decimal(fixed_amount))
            if fixed_amount < 0:
                raise InvalidHeadquarterConfigError(f"fixed_amount {fixed_amount} is negative")
        if expire_date is not None and expire_date <= effective_date:
            raise InvalidHeadquarterConfigError(
                f"expire_date {expire_date} must be after effective_date {effective_date}"
            )
        return config_type, ratio, fixed_amount

    def create_config(
        self,
        config_name: str,
        config_type: HeadquarterConfigType | str,
        effective_date: date,
        actor_id: UUID,
        class_type_id: UUID | None = None,
        ratio: Decimal | None = None,
        fixed_amount: Decimal | None = None,
        expire_date: date | None = None,
        remark: str | None = None,
    ) -> HeadquarterConfig:
        """
        Add a profit-share config.

        Raises:
            InvalidHeadquarterConfigError: ratio outside [0, 1], negative
                fixed amount, both or neither value given, or
                ``expire_date <= effective_date``.
        """
        try:
            config_type, ratio, fixed_amount = self._check_values(
                config_type, ratio, fixed_amount, effective_date, expire_date,
            )
            config = HeadquarterConfigModel(
                config_name=config_name,
                class_type_id=class_type_id,
                config_type=config_type.value,
                ratio=ratio,
                fixed_amount=fixed_amount,
                effective_date=effective_date,
                expire_date=expire_date,
                is_active=True,
                remark=remark,
                created_by_id=actor_id,
            )
            self._session.add(config)
            self._session.commit()
            logger.info("hq_config_created", extra={
                "config_id": str(config.id),
                "config_type": config_type.value,
                "class_type_id": str(class_type_id) if class_type_id else None,
            })
            return config.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def update_config(
        self,
        config_id: UUID,
        actor_id: UUID,
        *,
        config_name: str | None = None,
        config_type: HeadquarterConfigType | str | None = None,
        ratio: Decimal | None = None,
        fixed_amount: Decimal | None = None,
        effective_date: date | None = None,
        expire_date: date | None = None,
        clear_expire_date: bool = False,
        is_active: bool | None = None,
        remark: str | None = None,
    ) -> HeadquarterConfig:
        """
        Edit a config in place.

        Unchanged fields keep their values.  Switching the type drops the
        stored value of the old type, so the new one must be given.
        Submissions already confirmed keep their amounts.
        """
        try:
            config = self._session.get(HeadquarterConfigModel, config_id)
            if config is None:
                raise HeadquarterConfigNotFoundError(config_id)

            new_type = config.config_type if config_type is None else config_type
            type_changed = require_choice(
                HeadquarterConfigType, "headquarters config type", new_type,
            ).value != config.config_type
            new_ratio = ratio if ratio is not None or type_changed else config.ratio
            new_fixed = fixed_amount if fixed_amount is not None or type_changed else config.fixed_amount
            new_effective = effective_date or config.effective_date
            new_expire = None if clear_expire_date else (expire_date or config.expire_date)
            new_type, new_ratio, new_fixed = self._check_values(
                new_type, new_ratio, new_fixed, new_effective, new_expire,
            )

            config.config_type = new_type.value
            config.ratio = new_ratio
            config.fixed_amount = new_fixed
            config.effective_date = new_effective
            config.expire_date = new_expire
            if config_name is not None:
                config.config_name = config_name
            if is_active is not None:
                config.is_active = is_active
            if remark is not None:
                config.remark = remark
            config.updated_by_id = actor_id
            self._session.commit()
            logger.info("hq_config_updated", extra={
                "config_id": str(config_id),
                "config_type": new_type.value,
            })
            return config.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def list_configs(self, active_only: bool = False) -> list[HeadquarterConfig]:
        query = select(HeadquarterConfigModel).order_by(
            HeadquarterConfigModel.effective_date.desc(),
            HeadquarterConfigModel.config_name,
        )
        if active_only:
            query = query.where(HeadquarterConfigModel.is_active.is_(True))
        return [c.to_dto() for c in self._session.execute(query).scalars()]

    def deactivate_config(self, config_id: UUID, actor_id: UUID) -> None:
        try:
            config = self._session.get(HeadquarterConfigModel, config_id)
            if config is None:
                raise HeadquarterConfigNotFoundError(config_id)
            config.is_active = False
            config.updated_by_id = actor_id
            self._session.commit()
            logger.info("hq_config_deactivated", extra={"config_id": str(config_id)})

        except Exception:
            self._session.rollback()
            raise

    def _latest_covering(self, class_type_id: UUID | None, on_date: date) -> HeadquarterConfig | None:
        query = (
            select(HeadquarterConfigModel)
            .where(
                HeadquarterConfigModel.is_active.is_(True),
                HeadquarterConfigModel.effective_date <= on_date,
            )
            .order_by(
                HeadquarterConfigModel.effective_date.desc(),
                HeadquarterConfigModel.created_at.desc(),
            )
        )
        if class_type_id is None:
            query = query.where(HeadquarterConfigModel.class_type_id.is_(None))
        else:
            query = query.where(HeadquarterConfigModel.class_type_id == class_type_id)

        for model in self._session.execute(query).scalars():
            config = model.to_dto()
            if config.covers(on_date):
                return config
        return None

    def resolve(self, class_type_id: UUID | None, on_date: date | None = None) -> ResolvedConfig:
        """Config that applies to the class type on ``on_date`` (default today)."""
        on_date = on_date or self._clock.today()
        if class_type_id is not None:
            specific = self._latest_covering(class_type_id, on_date)
            if specific is not None:
                return SpecificConfig(specific)
        fallback = self._latest_covering(None, on_date)
        if fallback is not None:
            return GlobalConfig(fallback)
        return NoConfig(class_type_id)

    # =========================================================================
    # Preview
    # =========================================================================

    def compute(self, student_id: UUID, on_date: date | None = None) -> SubmissionPreview:
        """
        Submission figures for a student.

        ``final_receipt = actual_amount + account_balance``;
        ``submit_amount = contract_amount * ratio`` or ``fixed_amount``;
        ``profit = final_receipt - submit_amount``.
        """
        student = self._session.get(StudentModel, student_id)
        if student is None:
            raise StudentNotFoundError(student_id)
        state = self._tuition.get_state(student_id)
        stored = self._session.execute(
            select(StudentPaymentStateModel.submit_status).where(
                StudentPaymentStateModel.student_id == student_id,
            )
        ).scalar_one_or_none()

        resolution = self.resolve(student.class_type_id, on_date)
        final_receipt = round_money(state.actual_amount + state.account_balance)
        submit_amount = profit = None
        if not isinstance(resolution, NoConfig):
            submit_amount = resolution.config.submit_amount(state.contract_amount)
            profit = round_money(final_receipt - submit_amount)

        return SubmissionPreview(
            student_id=student_id,
            class_type_id=student.class_type_id,
            contract_amount=round_money(state.contract_amount),
            actual_amount=round_money(state.actual_amount),
            account_balance=round_money(state.account_balance),
            final_receipt=final_receipt,
            resolution=resolution,
            submit_amount=submit_amount,
            profit=profit,
            submit_status=SubmitStatus(stored or SubmitStatus.PENDING.value),
        )

    # =========================================================================
    # Submission
    # =========================================================================

    def _lock_state(self, student_id: UUID) -> StudentPaymentStateModel | None:
        return self._session.execute(
            select(StudentPaymentStateModel)
            .where(StudentPaymentStateModel.student_id == student_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def confirm_submission(
        self,
        student_id: UUID,
        operator: str,
        actor_id: UUID,
        submit_date: date | None = None,
        remark: str | None = None,
    ) -> SubmitRecord:
        """
        Record the student's submission to headquarters.

        Posts debit headquarters expense, credit bank deposit for the
        resolved submission amount.

        Raises:
            AlreadySubmittedError: the student is already submitted.
            HeadquarterConfigNotFoundError: no config resolves.
            InvalidAmountError: the resolved amount is zero.
        """
        operator = require_operator(operator)
        self._tuition.open_account(student_id, actor_id)
        submit_date = submit_date or self._clock.today()
        try:
            state = self._lock_state(student_id)
            if state.submit_status == SubmitStatus.SUBMITTED.value:
                raise AlreadySubmittedError(str(student_id))

            preview = self.compute(student_id, submit_date)
            if isinstance(preview.resolution, NoConfig):
                raise HeadquarterConfigNotFoundError(
                    preview.class_type_id if preview.class_type_id else "global"
                )
            if preview.submit_amount <= 0:
                raise InvalidAmountError("submit amount", preview.submit_amount)

            config = preview.resolution.config
            student = self._session.get(StudentModel, student_id)
            record = SubmitRecordModel(
                student_id=student_id,
                student_name=student.name,
                action=SubmitAction.SUBMIT.value,
                class_type_id=preview.class_type_id,
                config_id=config.id,
                config_name=config.config_name,
                config_type=config.config_type.value,
                ratio=config.ratio,
                fixed_amount=config.fixed_amount,
                contract_amount=preview.contract_amount,
                actual_amount=preview.actual_amount,
                account_balance=preview.account_balance,
                final_receipt=preview.final_receipt,
                submit_amount=preview.submit_amount,
                profit=preview.profit,
                submit_date=submit_date,
                operator=operator,
                remark=remark,
                created_by_id=actor_id,
            )
            self._session.add(record)
            self._session.flush()

            voucher = post_transfer(
                self._subjects,
                self._vouchers,
                debit_usage=Usage.HEADQUARTER_EXPENSE,
                credit_usage=Usage.BANK_DEPOSIT,
                amount=preview.submit_amount,
                voucher_date=submit_date,
                description=f"Headquarters submission for {student.name}",
                summary="Headquarters submission",
                source_type=SourceType.SUBMIT_CONFIRM,
                source_id=record.id,
                creator=operator,
                actor_id=actor_id,
            )
            record.voucher_id = voucher.id

            state.submit_status = SubmitStatus.SUBMITTED.value
            state.submit_amount = preview.submit_amount
            state.submit_date = submit_date
            state.submit_voucher_id = voucher.id
            state.updated_by_id = actor_id
            self._session.commit()

            LogContext.set(student_id=str(student_id), operator=operator)
            logger.info("hq_submission_confirmed", extra={
                "student_id": str(student_id),
                "config_id": str(config.id),
                "submit_amount": str(preview.submit_amount),
                "profit": str(preview.profit),
                "voucher_no": voucher.voucher_no,
            })
            return record.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def revoke_submission(
        self,
        student_id: UUID,
        operator: str,
        actor_id: UUID,
        remark: str | None = None,
    ) -> SubmitRecord:
        """
        Undo a submission: reverse its voucher and append a negative record.

        Raises:
            NotSubmittedError: the student has no active submission.
        """
        try:
            operator = require_operator(operator)
            state = self._lock_state(student_id)
            if state is None or state.submit_status != SubmitStatus.SUBMITTED.value:
                raise NotSubmittedError(str(student_id))

            original = self._session.execute(
                select(SubmitRecordModel).where(
                    SubmitRecordModel.voucher_id == state.submit_voucher_id,
                )
            ).scalar_one()

            today = self._clock.today()
            reversal = self._vouchers.reverse(
                state.submit_voucher_id,
                creator=operator,
                actor_id=actor_id,
                reversal_date=today,
            )
            record = SubmitRecordModel(
                student_id=student_id,
                student_name=original.student_name,
                action=SubmitAction.REVOKE.value,
                class_type_id=original.class_type_id,
                config_id=original.config_id,
                config_name=original.config_name,
                config_type=original.config_type,
                ratio=original.ratio,
                fixed_amount=original.fixed_amount,
                contract_amount=original.contract_amount,
                actual_amount=original.actual_amount,
                account_balance=original.account_balance,
                final_receipt=original.final_receipt,
                submit_amount=-original.submit_amount,
                profit=-original.profit,
                submit_date=today,
                operator=operator,
                voucher_id=reversal.id,
                remark=remark,
                created_by_id=actor_id,
            )
            self._session.add(record)

            state.submit_status = SubmitStatus.PENDING.value
            state.submit_amount = None
            state.submit_date = None
            state.submit_voucher_id = None
            state.updated_by_id = actor_id
            self._session.commit()

            LogContext.set(student_id=str(student_id), operator=operator)
            logger.info("hq_submission_revoked", extra={
                "student_id": str(student_id),
                "voucher_no": reversal.voucher_no,
            })
            return record.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def list_submissions(self, student_id: UUID) -> list[SubmitRecord]:
        return [
            r.to_dto()
            for r in self._session.execute(
                select(SubmitRecordModel)
                .where(SubmitRecordModel.student_id == student_id)
                .order_by(SubmitRecordModel.created_at)
            ).scalars()
        ]
