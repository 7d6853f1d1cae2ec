"""
Tests for the Salary Service.

Validates:
- Generation is idempotent per (coach, month)
- Counts come from passed exams and new enrollments inside the month
- Refresh rewrites derived fields and keeps manual ones
- draft -> confirmed -> paid, with the payout voucher
- Paid sheets are immutable and survive batch delete and single delete
- Rate configs can be edited in place
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_engines.commission import RateType
from ledger_kernel.exceptions import (
    DeductionReasonRequiredError,
    ImmutablePaidRecordError,
    InvalidAmountError,
    InvalidChoiceError,
    InvalidMonthError,
    InvalidStatusTransitionError,
    SalaryRateConfigNotFoundError,
    SalaryRecordNotFoundError,
    ValidationError,
)
from ledger_kernel.models.voucher import EntryType, SourceType
from ledger_modules.salary import SalaryService, SalaryStatus

MONTH = "2024-03"
PAY_DATE = date(2024, 4, 5)


@pytest.fixture
def salary_service(session, standard_chart, deterministic_clock):
    return SalaryService(session, clock=deterministic_clock)


@pytest.fixture
def standard_rates(salary_service, test_actor_id):
    effective = date(2024, 1, 1)
    for config_type, amount in [
        (RateType.BASE_DAILY_SALARY, "150.00"),
        (RateType.SUBJECT2_COMMISSION, "200.00"),
        (RateType.SUBJECT3_COMMISSION, "300.00"),
        (RateType.RECRUITMENT_COMMISSION, "500.00"),
    ]:
        salary_service.create_rate_config(config_type, Decimal(amount), effective, test_actor_id)


@pytest.fixture
def coach_with_activity(create_coach, create_student, create_exam_result):
    """One coach with a March enrollment, one subject-2 and one subject-3 pass."""
    coach = create_coach("Coach Wang")
    student = create_student(coach=coach, enrollment_date=date(2024, 3, 5))
    create_exam_result(student, coach, 2, date(2024, 3, 10))
    create_exam_result(student, coach, 3, date(2024, 3, 20))
    create_exam_result(student, coach, 3, date(2024, 3, 21), passed=False)
    create_exam_result(student, coach, 3, date(2024, 4, 2))
    return coach


def _only_sheet(salary_service, month=MONTH):
    [sheet] = salary_service.list_month(month)
    return sheet


# =============================================================================
# Rates
# =============================================================================


class TestRates:

    def test_missing_rates_are_zero(self, salary_service):
        rates = salary_service.active_rates(date(2024, 3, 1))
        assert rates.base_daily == Decimal("0")

    def test_most_recent_effective_rate_wins(self, salary_service, test_actor_id):
        salary_service.create_rate_config(
            RateType.BASE_DAILY_SALARY, Decimal("150.00"), date(2024, 1, 1), test_actor_id,
        )
        salary_service.create_rate_config(
            RateType.BASE_DAILY_SALARY, Decimal("180.00"), date(2024, 3, 1), test_actor_id,
        )

        assert salary_service.active_rates(date(2024, 2, 29)).base_daily == Decimal("150.00")
        assert salary_service.active_rates(date(2024, 3, 1)).base_daily == Decimal("180.00")

    def test_expired_and_inactive_rates_ignored(self, salary_service, test_actor_id):
        salary_service.create_rate_config(
            RateType.SUBJECT2_COMMISSION, Decimal("200.00"), date(2024, 1, 1), test_actor_id,
            expire_date=date(2024, 1, 31),
        )
        late = salary_service.create_rate_config(
            RateType.SUBJECT3_COMMISSION, Decimal("300.00"), date(2024, 1, 1), test_actor_id,
        )
        salary_service.deactivate_rate_config(late.id, test_actor_id)

        assert salary_service.active_rates(date(2024, 1, 31)).subject2 == Decimal("200.00")
        rates = salary_service.active_rates(date(2024, 2, 1))
        assert rates.subject2 == Decimal("0")
        assert rates.subject3 == Decimal("0")

    def test_update_rate_config_changes_active_rate(self, salary_service, test_actor_id):
        config = salary_service.create_rate_config(
            RateType.BASE_DAILY_SALARY, Decimal("150.00"), date(2024, 1, 1), test_actor_id,
        )

        updated = salary_service.update_rate_config(
            config.id, test_actor_id, amount=Decimal("165.50"), remark="2024 raise",
        )

        assert updated.amount == Decimal("165.50")
        assert updated.remark == "2024 raise"
        assert salary_service.active_rates(date(2024, 3, 1)).base_daily == Decimal("165.50")

    def test_update_rate_config_clears_expiry(self, salary_service, test_actor_id):
        config = salary_service.create_rate_config(
            RateType.SUBJECT2_COMMISSION, Decimal("200.00"), date(2024, 1, 1), test_actor_id,
            expire_date=date(2024, 1, 31),
        )

        salary_service.update_rate_config(config.id, test_actor_id, clear_expire_date=True)

        assert salary_service.active_rates(date(2024, 6, 1)).subject2 == Decimal("200.00")

    def test_update_rate_config_rejects_expiry_before_effective(self, salary_service, test_actor_id):
        config = salary_service.create_rate_config(
            RateType.BASE_DAILY_SALARY, Decimal("150.00"), date(2024, 3, 1), test_actor_id,
        )

        with pytest.raises(ValidationError):
            salary_service.update_rate_config(
                config.id, test_actor_id, amount=Decimal("1.00"), expire_date=date(2024, 2, 1),
            )

        [stored] = salary_service.list_rate_configs()
        assert stored.amount == Decimal("150.00")
        assert stored.expire_date is None

    def test_update_unknown_rate_config(self, salary_service, test_actor_id):
        with pytest.raises(SalaryRateConfigNotFoundError):
            salary_service.update_rate_config(uuid4(), test_actor_id, amount=Decimal("1.00"))

    def test_list_rate_configs_active_only(self, salary_service, test_actor_id):
        kept = salary_service.create_rate_config(
            RateType.BASE_DAILY_SALARY, Decimal("150.00"), date(2024, 1, 1), test_actor_id,
        )
        dropped = salary_service.create_rate_config(
            RateType.SUBJECT3_COMMISSION, Decimal("300.00"), date(2024, 1, 1), test_actor_id,
        )
        salary_service.deactivate_rate_config(dropped.id, test_actor_id)

        assert [c.id for c in salary_service.list_rate_configs(active_only=True)] == [kept.id]
        assert len(salary_service.list_rate_configs()) == 2

    def test_unknown_rate_type_is_a_validation_error(self, salary_service, test_actor_id):
        with pytest.raises(InvalidChoiceError):
            salary_service.create_rate_config("overtime", Decimal("1.00"), date(2024, 1, 1), test_actor_id)


# =============================================================================
# Generation and refresh
# =============================================================================


class TestGenerate:

    def test_generate_is_idempotent(
        self, salary_service, standard_rates, coach_with_activity, test_actor_id,
    ):
        assert salary_service.generate(MONTH, test_actor_id) == 1
        assert salary_service.generate(MONTH, test_actor_id) == 0
        assert len(salary_service.list_month(MONTH)) == 1

    def test_counts_and_commissions(
        self, salary_service, standard_rates, coach_with_activity, test_actor_id,
    ):
        salary_service.generate(MONTH, test_actor_id)

        sheet = _only_sheet(salary_service)
        assert sheet.coach_id == coach_with_activity.id
        assert sheet.status == SalaryStatus.DRAFT
        assert (sheet.subject2_pass_count, sheet.subject3_pass_count, sheet.new_student_count) == (1, 1, 1)
        assert sheet.subject2_commission == Decimal("200.00")
        assert sheet.subject3_commission == Decimal("300.00")
        assert sheet.recruitment_commission == Decimal("500.00")
        assert sheet.base_salary == Decimal("0.00")
        assert sheet.gross_salary == Decimal("1000.00")

    def test_inactive_coaches_skipped(
        self, salary_service, standard_rates, create_coach, test_actor_id,
    ):
        create_coach("Coach Active")
        create_coach("Coach Retired", is_active=False)

        assert salary_service.generate(MONTH, test_actor_id) == 1

    def test_generation_logged(
        self, salary_service, coach_with_activity, test_actor_id, captured_logs,
    ):
        salary_service.generate(MONTH, test_actor_id)

        [event] = [r for r in captured_logs() if r["message"] == "salary_generated"]
        assert event["generated_count"] == 1
        assert event["month"] == MONTH

    def test_invalid_month_rejected(self, salary_service, test_actor_id):
        with pytest.raises(InvalidMonthError):
            salary_service.generate("2024-13", test_actor_id)

    def test_refresh_keeps_manual_fields(
        self, salary_service, standard_rates, coach_with_activity,
        create_student, create_exam_result, test_actor_id,
    ):
        salary_service.generate(MONTH, test_actor_id)
        sheet = _only_sheet(salary_service)
        salary_service.update(
            sheet.id, test_actor_id,
            attendance_days=20, bonus=Decimal("100.00"), remarks="overtime",
        )
        other = create_student("Student Zhao", coach=coach_with_activity)
        create_exam_result(other, coach_with_activity, 2, date(2024, 3, 25))

        assert salary_service.refresh(MONTH, test_actor_id) == 1

        refreshed = salary_service.get(sheet.id)
        assert refreshed.subject2_pass_count == 2
        assert refreshed.attendance_days == 20
        assert refreshed.bonus == Decimal("100.00")
        assert refreshed.remarks == "overtime"
        # 20*150 + 2*200 + 300 + 500 + 100
        assert refreshed.gross_salary == Decimal("4300.00")


# =============================================================================
# Manual edits and status flow
# =============================================================================


class TestUpdate:

    @pytest.fixture
    def sheet(self, salary_service, standard_rates, coach_with_activity, test_actor_id):
        salary_service.generate(MONTH, test_actor_id)
        return _only_sheet(salary_service)

    def test_attendance_recomputes_gross(self, salary_service, sheet, test_actor_id):
        updated = salary_service.update(sheet.id, test_actor_id, attendance_days=22)

        assert updated.base_salary == Decimal("3300.00")
        assert updated.gross_salary == Decimal("4300.00")

    def test_deduction_requires_reason(self, salary_service, sheet, test_actor_id):
        with pytest.raises(DeductionReasonRequiredError):
            salary_service.update(sheet.id, test_actor_id, deduction=Decimal("50.00"))

        assert salary_service.get(sheet.id).deduction == Decimal("0.00")

    def test_deduction_with_reason(self, salary_service, sheet, test_actor_id):
        updated = salary_service.update(
            sheet.id, test_actor_id,
            deduction=Decimal("50.00"), deduction_reason="late twice",
        )
        assert updated.gross_salary == Decimal("950.00")

    def test_negative_bonus_rejected(self, salary_service, sheet, test_actor_id):
        with pytest.raises(InvalidAmountError):
            salary_service.update(sheet.id, test_actor_id, bonus=Decimal("-1"))

    def test_status_cannot_regress(self, salary_service, sheet, test_actor_id):
        salary_service.confirm(sheet.id, test_actor_id)

        with pytest.raises(InvalidStatusTransitionError):
            salary_service.update(sheet.id, test_actor_id, status=SalaryStatus.DRAFT)

    def test_update_to_paid_runs_payout(self, salary_service, sheet, test_actor_id):
        salary_service.confirm(sheet.id, test_actor_id)

        paid = salary_service.update(
            sheet.id, test_actor_id,
            status=SalaryStatus.PAID, operator="alice", payment_date=PAY_DATE,
        )

        assert paid.status == SalaryStatus.PAID
        assert paid.voucher_no == "20240405-001"

    def test_update_locks_the_sheet(self, salary_service, sheet, test_actor_id, locked_tables):
        salary_service.update(sheet.id, test_actor_id, bonus=Decimal("10.00"))
        salary_service.confirm(sheet.id, test_actor_id)

        assert locked_tables.count("salary_coach_monthly") == 2

    def test_unknown_status_is_a_validation_error(self, salary_service, sheet, test_actor_id):
        with pytest.raises(InvalidChoiceError):
            salary_service.update(sheet.id, test_actor_id, status="archived")
        with pytest.raises(InvalidChoiceError):
            salary_service.list_month(MONTH, status="archived")

        assert salary_service.get(sheet.id).status == SalaryStatus.DRAFT


class TestPayment:

    @pytest.fixture
    def confirmed(self, salary_service, standard_rates, coach_with_activity, test_actor_id):
        salary_service.generate(MONTH, test_actor_id)
        sheet = _only_sheet(salary_service)
        return salary_service.confirm(sheet.id, test_actor_id)

    def test_payment_posts_salary_voucher(
        self, salary_service, confirmed, test_actor_id, voucher_service,
    ):
        paid = salary_service.confirm_payment(confirmed.id, PAY_DATE, "alice", test_actor_id)

        assert paid.status == SalaryStatus.PAID
        assert paid.paid_at is not None
        [voucher] = voucher_service.list_by_source(SourceType.COACH_SALARY, confirmed.id)
        assert voucher.voucher_no == paid.voucher_no
        amounts = {(i.subject_code, EntryType(i.entry_type)): i.amount for i in voucher.items}
        assert amounts == {
            ("6601", EntryType.DEBIT): Decimal("1000.00"),
            ("1002", EntryType.CREDIT): Decimal("1000.00"),
        }

    def test_net_salary_overrides_gross(
        self, salary_service, standard_rates, coach_with_activity, test_actor_id, voucher_service,
    ):
        salary_service.generate(MONTH, test_actor_id)
        sheet = _only_sheet(salary_service)
        salary_service.update(sheet.id, test_actor_id, net_salary=Decimal("900.00"))
        salary_service.confirm(sheet.id, test_actor_id)

        salary_service.confirm_payment(sheet.id, PAY_DATE, "alice", test_actor_id)

        [voucher] = voucher_service.list_by_source(SourceType.COACH_SALARY, sheet.id)
        assert voucher.total_debits == Decimal("900.00")

    def test_draft_cannot_be_paid(
        self, salary_service, standard_rates, coach_with_activity, test_actor_id,
    ):
        salary_service.generate(MONTH, test_actor_id)
        sheet = _only_sheet(salary_service)

        with pytest.raises(InvalidStatusTransitionError):
            salary_service.confirm_payment(sheet.id, PAY_DATE, "alice", test_actor_id)

    def test_paid_sheet_is_immutable(self, salary_service, confirmed, test_actor_id):
        salary_service.confirm_payment(confirmed.id, PAY_DATE, "alice", test_actor_id)

        with pytest.raises(ImmutablePaidRecordError):
            salary_service.update(confirmed.id, test_actor_id, bonus=Decimal("1.00"))
        with pytest.raises(ImmutablePaidRecordError):
            salary_service.confirm_payment(confirmed.id, PAY_DATE, "alice", test_actor_id)

    def test_zero_payout_rejected(self, salary_service, create_coach, test_actor_id):
        create_coach("Coach Idle")
        salary_service.generate(MONTH, test_actor_id)
        sheet = _only_sheet(salary_service)
        salary_service.confirm(sheet.id, test_actor_id)

        with pytest.raises(InvalidAmountError):
            salary_service.confirm_payment(sheet.id, PAY_DATE, "alice", test_actor_id)
        assert salary_service.get(sheet.id).status == SalaryStatus.CONFIRMED

    def test_batch_delete_keeps_paid_sheets(
        self, salary_service, confirmed, create_coach, test_actor_id,
    ):
        salary_service.confirm_payment(confirmed.id, PAY_DATE, "alice", test_actor_id)
        create_coach("Coach Zhou")
        salary_service.generate(MONTH, test_actor_id)

        assert salary_service.batch_delete(MONTH, test_actor_id) == 1

        [remaining] = salary_service.list_month(MONTH)
        assert remaining.id == confirmed.id
        assert salary_service.list_month(MONTH, status=SalaryStatus.PAID) == [remaining]

    def test_paid_sheets_not_refreshed(self, salary_service, confirmed, test_actor_id):
        salary_service.confirm_payment(confirmed.id, PAY_DATE, "alice", test_actor_id)

        assert salary_service.refresh(MONTH, test_actor_id) == 0

    def test_payment_locks_the_sheet(self, salary_service, confirmed, test_actor_id, locked_tables):
        salary_service.confirm_payment(confirmed.id, PAY_DATE, "alice", test_actor_id)

        assert "salary_coach_monthly" in locked_tables

    def test_second_payment_posts_no_second_voucher(
        self, salary_service, confirmed, test_actor_id, voucher_service,
    ):
        salary_service.confirm_payment(confirmed.id, PAY_DATE, "alice", test_actor_id)

        with pytest.raises(ImmutablePaidRecordError):
            salary_service.update(
                confirmed.id, test_actor_id,
                status=SalaryStatus.PAID, operator="alice", payment_date=PAY_DATE,
            )

        assert len(voucher_service.list_by_source(SourceType.COACH_SALARY, confirmed.id)) == 1


# =============================================================================
# Single delete
# =============================================================================


class TestDelete:

    @pytest.fixture
    def sheet(self, salary_service, standard_rates, coach_with_activity, test_actor_id):
        salary_service.generate(MONTH, test_actor_id)
        return _only_sheet(salary_service)

    def test_draft_sheet_deleted(self, salary_service, sheet, test_actor_id, captured_logs):
        salary_service.delete(sheet.id, test_actor_id)

        assert salary_service.list_month(MONTH) == []
        with pytest.raises(SalaryRecordNotFoundError):
            salary_service.get(sheet.id)
        assert any(r["message"] == "salary_deleted" for r in captured_logs())

    def test_confirmed_sheet_deleted_and_regenerated(self, salary_service, sheet, test_actor_id):
        salary_service.confirm(sheet.id, test_actor_id)

        salary_service.delete(sheet.id, test_actor_id)

        assert salary_service.generate(MONTH, test_actor_id) == 1
        assert _only_sheet(salary_service).status == SalaryStatus.DRAFT

    def test_paid_sheet_cannot_be_deleted(self, salary_service, sheet, test_actor_id):
        salary_service.confirm(sheet.id, test_actor_id)
        salary_service.confirm_payment(sheet.id, PAY_DATE, "alice", test_actor_id)

        with pytest.raises(ImmutablePaidRecordError):
            salary_service.delete(sheet.id, test_actor_id)

        assert _only_sheet(salary_service).status == SalaryStatus.PAID

    def test_unknown_sheet(self, salary_service, test_actor_id):
        with pytest.raises(SalaryRecordNotFoundError):
            salary_service.delete(uuid4(), test_actor_id)
