"""
Tests for the Tuition Ledger Service.

Validates:
- The concrete payment / discount / refund / delete scenarios
- Round trip: a payment followed by its deletion restores the state and
  nets every subject to zero
- Refund terminality and the failure paths
- Every stored voucher balances
- Overpayments credit the account balance and their deletion takes it back
- The debtor list
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import (
    AlreadyRefundedError,
    AlreadyReversedError,
    ExceedsReceivableError,
    InvalidAmountError,
    InvalidChoiceError,
    InvalidStatusTransitionError,
    MissingFieldError,
    NotReversibleError,
    PaymentRecordNotFoundError,
    StudentNotFoundError,
    ValidationError,
)
from ledger_kernel.models.voucher import EntryType, SourceType
from ledger_modules.tuition import (
    EnrollmentStatus,
    PaymentMethod,
    PaymentStatus,
    RecordKind,
    TuitionLedgerService,
)

PAY_DATE = date(2024, 1, 10)
FAR_FUTURE = date(2030, 12, 31)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def tuition_service(session, standard_chart, deterministic_clock):
    return TuitionLedgerService(session, clock=deterministic_clock)


@pytest.fixture
def make_student(create_class_type, create_student):
    def _make(price: str = "4500.00"):
        class_type = create_class_type(contract_price=Decimal(price))
        return create_student(class_type=class_type)

    return _make


@pytest.fixture
def pay(tuition_service, test_actor_id):
    def _pay(student, amount: str, method=PaymentMethod.BANK_TRANSFER):
        return tuition_service.add_payment(
            student.id, Decimal(amount), PAY_DATE,
            method=method, operator="alice", actor_id=test_actor_id,
        )

    return _pay


def _assert_statuses(state, payment: PaymentStatus, enrollment: EnrollmentStatus):
    assert state.payment_status == payment
    assert state.enrollment_status == enrollment


# =============================================================================
# Concrete scenarios
# =============================================================================


class TestScenarios:

    def test_first_partial_payment(self, tuition_service, make_student, pay):
        student = make_student("4500.00")

        pay(student, "2000.00")

        state = tuition_service.get_state(student.id)
        _assert_statuses(state, PaymentStatus.PARTIAL, EnrollmentStatus.ENROLLED_PARTIAL)
        assert state.actual_amount == Decimal("2000.00")
        assert state.debt_amount == Decimal("2500.00")

    def test_second_payment_settles(self, tuition_service, make_student, pay):
        student = make_student("4500.00")
        pay(student, "2000.00")

        pay(student, "2500.00")

        state = tuition_service.get_state(student.id)
        _assert_statuses(state, PaymentStatus.PAID, EnrollmentStatus.ENROLLED_PAID)
        assert state.debt_amount == Decimal("0.00")

    def test_full_refund(self, tuition_service, make_student, pay, test_actor_id):
        student = make_student("3500.00")
        pay(student, "3500.00")

        tuition_service.refund(student.id, Decimal("3500.00"), operator="alice", actor_id=test_actor_id)

        state = tuition_service.get_state(student.id)
        _assert_statuses(state, PaymentStatus.REFUNDED, EnrollmentStatus.REFUNDED)
        assert state.actual_amount == Decimal("0.00")

    def test_discount_after_full_payment(self, tuition_service, make_student, pay, test_actor_id):
        student = make_student("6500.00")
        pay(student, "6500.00")

        tuition_service.discount(student.id, Decimal("1000.00"), operator="alice", actor_id=test_actor_id)

        state = tuition_service.get_state(student.id)
        _assert_statuses(state, PaymentStatus.PARTIAL, EnrollmentStatus.ENROLLED_PARTIAL)
        assert state.actual_amount == Decimal("5500.00")
        assert state.discount_amount == Decimal("1000.00")

    def test_delete_payment_record(self, tuition_service, make_student, pay, test_actor_id):
        student = make_student("4500.00")
        pay(student, "3500.00")
        record_id = pay(student, "1000.00")
        _assert_statuses(
            tuition_service.get_state(student.id),
            PaymentStatus.PAID, EnrollmentStatus.ENROLLED_PAID,
        )

        tuition_service.delete_payment_record(record_id, operator="alice", actor_id=test_actor_id)

        state = tuition_service.get_state(student.id)
        _assert_statuses(state, PaymentStatus.PARTIAL, EnrollmentStatus.ENROLLED_PARTIAL)
        assert state.actual_amount == Decimal("3500.00")


# =============================================================================
# Round trip and ledger consistency
# =============================================================================


class TestRoundTrip:

    def test_payment_then_delete_restores_state(
        self, tuition_service, make_student, pay, test_actor_id, ledger_selector,
    ):
        student = make_student("4500.00")
        before = tuition_service.open_account(student.id, test_actor_id)

        record_id = pay(student, "2000.00")
        tuition_service.delete_payment_record(record_id, operator="alice", actor_id=test_actor_id)

        after = tuition_service.get_state(student.id)
        assert after == before
        for totals in ledger_selector.subject_balances(FAR_FUTURE):
            assert totals.debit_total == totals.credit_total

    def test_discount_then_delete_restores_state(
        self, tuition_service, make_student, pay, test_actor_id,
    ):
        student = make_student("6500.00")
        pay(student, "6500.00")
        before = tuition_service.get_state(student.id)

        record_id = tuition_service.discount(
            student.id, Decimal("1000.00"), operator="alice", actor_id=test_actor_id,
        )
        tuition_service.delete_payment_record(record_id, operator="alice", actor_id=test_actor_id)

        assert tuition_service.get_state(student.id) == before

    def test_manual_phase_survives_round_trip(
        self, tuition_service, make_student, pay, test_actor_id,
    ):
        student = make_student("4500.00")
        tuition_service.set_enrollment_phase(student.id, EnrollmentStatus.RESERVED, test_actor_id)

        record_id = pay(student, "500.00")
        assert tuition_service.get_state(student.id).enrollment_status == EnrollmentStatus.ENROLLED_PARTIAL

        tuition_service.delete_payment_record(record_id, operator="alice", actor_id=test_actor_id)
        assert tuition_service.get_state(student.id).enrollment_status == EnrollmentStatus.RESERVED

    def test_every_voucher_balances(
        self, tuition_service, make_student, pay, test_actor_id, ledger_selector,
    ):
        student = make_student("6500.00")
        pay(student, "3000.00", method=PaymentMethod.CASH)
        record_id = pay(student, "3500.00")
        tuition_service.discount(student.id, Decimal("200.00"), operator="alice", actor_id=test_actor_id)
        tuition_service.delete_payment_record(record_id, operator="alice", actor_id=test_actor_id)
        tuition_service.refund(student.id, Decimal("100.00"), operator="alice", actor_id=test_actor_id)

        assert ledger_selector.unbalanced_vouchers() == []


# =============================================================================
# Postings
# =============================================================================


class TestPostings:

    def test_bank_payment_posts_bank_against_income(
        self, tuition_service, make_student, pay, voucher_service,
    ):
        student = make_student()
        record_id = pay(student, "2000.00")

        [voucher] = voucher_service.list_by_source(SourceType.TUITION_PAYMENT, record_id)
        sides = {(i.subject_code, EntryType(i.entry_type)) for i in voucher.items}
        assert sides == {("1002", EntryType.DEBIT), ("5001", EntryType.CREDIT)}
        assert voucher.voucher_date == PAY_DATE
        assert voucher.creator == "alice"

    def test_cash_payment_debits_cash(self, tuition_service, make_student, pay, voucher_service):
        student = make_student()
        record_id = pay(student, "100.00", method=PaymentMethod.CASH)

        [voucher] = voucher_service.list_by_source(SourceType.TUITION_PAYMENT, record_id)
        debit = next(i for i in voucher.items if i.entry_type == EntryType.DEBIT.value)
        assert debit.subject_code == "1001"

    def test_delete_posts_reversal_not_deletion(
        self, tuition_service, make_student, pay, voucher_service, test_actor_id,
    ):
        student = make_student()
        record_id = pay(student, "2000.00")
        [original] = voucher_service.list_by_source(SourceType.TUITION_PAYMENT, record_id)

        tuition_service.delete_payment_record(record_id, operator="alice", actor_id=test_actor_id)

        reversal = voucher_service.find_reversal(original.id)
        assert reversal is not None
        assert reversal.source_type == SourceType.PAYMENT_REVERSAL.value
        assert voucher_service.get(original.id) is not None

    def test_discount_stays_inside_income(
        self, tuition_service, make_student, pay, voucher_service, test_actor_id,
    ):
        student = make_student("6500.00")
        pay(student, "6500.00")
        record_id = tuition_service.discount(
            student.id, Decimal("1000.00"), operator="alice", actor_id=test_actor_id,
        )

        [voucher] = voucher_service.list_by_source(SourceType.TUITION_DISCOUNT, record_id)
        sides = {(i.subject_code, EntryType(i.entry_type)) for i in voucher.items}
        assert sides == {("5001", EntryType.DEBIT), ("5051", EntryType.CREDIT)}

    def test_payment_logged(self, tuition_service, make_student, pay, captured_logs):
        student = make_student()
        pay(student, "2000.00")

        events = [r for r in captured_logs() if r["message"] == "payment_added"]
        assert events
        assert events[-1]["payment_status"] == "partial"
        assert events[-1]["operator"] == "alice"


# =============================================================================
# Refund terminality
# =============================================================================


class TestRefund:

    def test_partial_refund_is_still_refunded(
        self, tuition_service, make_student, pay, test_actor_id,
    ):
        student = make_student("4500.00")
        pay(student, "4500.00")

        tuition_service.refund(student.id, Decimal("1000.00"), operator="alice", actor_id=test_actor_id)

        state = tuition_service.get_state(student.id)
        _assert_statuses(state, PaymentStatus.REFUNDED, EnrollmentStatus.REFUNDED)
        assert state.actual_amount == Decimal("3500.00")

    def test_later_payment_does_not_leave_refunded(
        self, tuition_service, make_student, pay, test_actor_id,
    ):
        student = make_student("3500.00")
        pay(student, "3500.00")
        tuition_service.refund(student.id, Decimal("3500.00"), operator="alice", actor_id=test_actor_id)

        pay(student, "3500.00")

        state = tuition_service.get_state(student.id)
        assert state.payment_status == PaymentStatus.REFUNDED
        assert state.actual_amount == Decimal("3500.00")

    def test_refund_of_fully_refunded_student_rejected(
        self, tuition_service, make_student, pay, test_actor_id,
    ):
        student = make_student("3500.00")
        pay(student, "3500.00")
        tuition_service.refund(student.id, Decimal("3500.00"), operator="alice", actor_id=test_actor_id)

        with pytest.raises(AlreadyRefundedError):
            tuition_service.refund(student.id, Decimal("1.00"), operator="alice", actor_id=test_actor_id)

    def test_refund_exceeding_receipts_rejected(
        self, tuition_service, make_student, pay, test_actor_id,
    ):
        student = make_student("4500.00")
        pay(student, "2000.00")

        with pytest.raises(ExceedsReceivableError) as exc_info:
            tuition_service.refund(student.id, Decimal("2500.00"), operator="alice", actor_id=test_actor_id)

        assert exc_info.value.receivable == "2000.00"
        state = tuition_service.get_state(student.id)
        assert state.payment_status == PaymentStatus.PARTIAL
        assert len(tuition_service.list_records(student.id)) == 1

    def test_refund_record_cannot_be_deleted(
        self, tuition_service, make_student, pay, test_actor_id,
    ):
        student = make_student("3500.00")
        pay(student, "3500.00")
        refund_id = tuition_service.refund(
            student.id, Decimal("3500.00"), operator="alice", actor_id=test_actor_id,
        )

        with pytest.raises(NotReversibleError):
            tuition_service.delete_payment_record(refund_id, operator="alice", actor_id=test_actor_id)

    def test_discount_after_refund_stays_refunded(
        self, tuition_service, make_student, pay, test_actor_id,
    ):
        student = make_student("3500.00")
        pay(student, "3500.00")
        tuition_service.refund(student.id, Decimal("1000.00"), operator="alice", actor_id=test_actor_id)

        tuition_service.discount(student.id, Decimal("500.00"), operator="alice", actor_id=test_actor_id)

        state = tuition_service.get_state(student.id)
        _assert_statuses(state, PaymentStatus.REFUNDED, EnrollmentStatus.REFUNDED)
        assert state.actual_amount == Decimal("2000.00")
        assert state.discount_amount == Decimal("500.00")

    def test_deleting_earlier_payment_after_refund_stays_refunded(
        self, tuition_service, make_student, pay, test_actor_id,
    ):
        student = make_student("4500.00")
        first_id = pay(student, "2000.00")
        pay(student, "2500.00")
        tuition_service.refund(student.id, Decimal("1000.00"), operator="alice", actor_id=test_actor_id)

        tuition_service.delete_payment_record(first_id, operator="alice", actor_id=test_actor_id)

        state = tuition_service.get_state(student.id)
        _assert_statuses(state, PaymentStatus.REFUNDED, EnrollmentStatus.REFUNDED)
        assert state.actual_amount == Decimal("1500.00")
        assert state.debt_amount == Decimal("3000.00")


# =============================================================================
# Validation and lookups
# =============================================================================


class TestValidation:

    def test_discount_exceeding_receipts_rejected(
        self, tuition_service, make_student, pay, test_actor_id,
    ):
        student = make_student()
        pay(student, "500.00")

        with pytest.raises(ExceedsReceivableError):
            tuition_service.discount(student.id, Decimal("600.00"), operator="alice", actor_id=test_actor_id)

    def test_non_positive_amount_rejected(self, tuition_service, make_student, pay):
        student = make_student()

        with pytest.raises(InvalidAmountError):
            pay(student, "0")
        assert tuition_service.list_records(student.id) == []

    def test_operator_required(self, tuition_service, make_student, test_actor_id):
        student = make_student()

        with pytest.raises(MissingFieldError):
            tuition_service.add_payment(
                student.id, Decimal("100.00"), PAY_DATE,
                method="cash", operator="  ", actor_id=test_actor_id,
            )

    def test_unknown_student(self, tuition_service, test_actor_id):
        with pytest.raises(StudentNotFoundError):
            tuition_service.add_payment(
                uuid4(), Decimal("100.00"), PAY_DATE,
                method="cash", operator="alice", actor_id=test_actor_id,
            )

    def test_unknown_record(self, tuition_service, test_actor_id):
        with pytest.raises(PaymentRecordNotFoundError):
            tuition_service.delete_payment_record(uuid4(), operator="alice", actor_id=test_actor_id)

    def test_second_delete_rejected(self, tuition_service, make_student, pay, test_actor_id):
        student = make_student()
        record_id = pay(student, "100.00")
        tuition_service.delete_payment_record(record_id, operator="alice", actor_id=test_actor_id)

        with pytest.raises(AlreadyReversedError):
            tuition_service.delete_payment_record(record_id, operator="alice", actor_id=test_actor_id)

    def test_phase_change_after_payment_rejected(
        self, tuition_service, make_student, pay, test_actor_id,
    ):
        student = make_student()
        pay(student, "100.00")

        with pytest.raises(InvalidStatusTransitionError):
            tuition_service.set_enrollment_phase(student.id, EnrollmentStatus.INQUIRING, test_actor_id)

    def test_derived_phase_cannot_be_set_by_hand(self, tuition_service, make_student, test_actor_id):
        student = make_student()

        with pytest.raises(InvalidStatusTransitionError):
            tuition_service.set_enrollment_phase(student.id, EnrollmentStatus.ENROLLED_PAID, test_actor_id)

    def test_unknown_phase_is_a_validation_error(self, tuition_service, make_student, test_actor_id):
        student = make_student()

        with pytest.raises(ValidationError) as exc_info:
            tuition_service.set_enrollment_phase(student.id, "bogus", test_actor_id)

        assert isinstance(exc_info.value, InvalidChoiceError)
        assert exc_info.value.code == "INVALID_CHOICE"


class TestAccounts:

    def test_state_without_account_reads_unpaid(self, tuition_service, make_student):
        student = make_student("4500.00")

        state = tuition_service.get_state(student.id)

        _assert_statuses(state, PaymentStatus.UNPAID, EnrollmentStatus.ENROLLED_UNPAID)
        assert state.contract_amount == Decimal("4500.00")
        assert state.debt_amount == Decimal("4500.00")

    def test_open_account_is_idempotent(self, tuition_service, make_student, test_actor_id):
        student = make_student()
        first = tuition_service.open_account(student.id, test_actor_id, contract_amount=Decimal("5000.00"))
        second = tuition_service.open_account(student.id, test_actor_id, contract_amount=Decimal("1.00"))

        assert first == second
        assert second.contract_amount == Decimal("5000.00")

    def test_contract_discount_changes_payable(
        self, tuition_service, make_student, pay, test_actor_id,
    ):
        student = make_student("4500.00")
        pay(student, "4000.00")

        state = tuition_service.update_contract(
            student.id, test_actor_id, contract_discount=Decimal("500.00"),
        )

        _assert_statuses(state, PaymentStatus.PAID, EnrollmentStatus.ENROLLED_PAID)
        assert state.debt_amount == Decimal("0.00")

    def test_account_balance_is_independent(
        self, tuition_service, make_student, pay, test_actor_id,
    ):
        student = make_student()
        tuition_service.update_contract(student.id, test_actor_id, account_balance=Decimal("300.00"))
        pay(student, "1000.00")

        assert tuition_service.get_state(student.id).account_balance == Decimal("300.00")

    def test_overpayment_credits_account_balance(self, tuition_service, make_student, pay):
        student = make_student("4500.00")

        pay(student, "5000.00")

        state = tuition_service.get_state(student.id)
        _assert_statuses(state, PaymentStatus.PAID, EnrollmentStatus.ENROLLED_PAID)
        assert state.account_balance == Decimal("500.00")
        assert state.debt_amount == Decimal("0.00")
        [record] = tuition_service.list_records(student.id)
        assert record.balance_credit == Decimal("500.00")

    def test_only_the_excess_of_a_later_payment_is_credited(
        self, tuition_service, make_student, pay, test_actor_id,
    ):
        student = make_student("4500.00")
        tuition_service.update_contract(student.id, test_actor_id, account_balance=Decimal("300.00"))
        first_id = pay(student, "4000.00")
        second_id = pay(student, "1000.00")

        assert tuition_service.get_state(student.id).account_balance == Decimal("800.00")
        credits = {r.id: r.balance_credit for r in tuition_service.list_records(student.id)}
        assert credits == {first_id: Decimal("0.00"), second_id: Decimal("500.00")}

    def test_deleting_overpayment_takes_back_the_credit(
        self, tuition_service, make_student, pay, test_actor_id,
    ):
        student = make_student("4500.00")
        record_id = pay(student, "5000.00")

        tuition_service.delete_payment_record(record_id, operator="alice", actor_id=test_actor_id)

        state = tuition_service.get_state(student.id)
        _assert_statuses(state, PaymentStatus.UNPAID, EnrollmentStatus.ENROLLED_UNPAID)
        assert state.account_balance == Decimal("0.00")
        assert state.actual_amount == Decimal("0.00")

    def test_state_money_fields_are_rounded(self, tuition_service, make_student, pay):
        student = make_student("4500.00")
        pay(student, "5000.00")

        state = tuition_service.get_state(student.id)
        [record] = tuition_service.list_records(student.id)

        assert str(state.actual_amount) == "5000.00"
        assert str(state.account_balance) == "500.00"
        assert str(state.debt_amount) == "0.00"
        assert str(record.amount) == "5000.00"
        assert str(record.balance_credit) == "500.00"

    def test_statistics_skip_reversed_records(
        self, tuition_service, make_student, pay, test_actor_id,
    ):
        student = make_student("6500.00")
        pay(student, "6000.00")
        record_id = pay(student, "500.00")
        tuition_service.discount(student.id, Decimal("200.00"), operator="alice", actor_id=test_actor_id)
        tuition_service.delete_payment_record(record_id, operator="alice", actor_id=test_actor_id)

        stats = tuition_service.payment_statistics(student.id)

        assert stats.record_count == 2
        assert stats.total_paid == Decimal("6000.00")
        assert stats.total_discounted == Decimal("200.00")
        assert stats.total_refunded == Decimal("0.00")
        assert stats.last_payment_date == PAY_DATE

    def test_list_records_marks_reversed(self, tuition_service, make_student, pay, test_actor_id):
        student = make_student()
        record_id = pay(student, "100.00")
        tuition_service.delete_payment_record(record_id, operator="alice", actor_id=test_actor_id)

        [record] = tuition_service.list_records(student.id)
        assert record.is_reversed
        assert record.kind == RecordKind.PAYMENT
        assert tuition_service.list_records(student.id, include_reversed=False) == []


# =============================================================================
# Debtors
# =============================================================================


class TestDebtors:

    @pytest.fixture
    def enrolled(self, create_class_type, create_student):
        def _enrolled(name: str, price: str, enrollment_date: date):
            class_type = create_class_type(name=f"{name} class", contract_price=Decimal(price))
            return create_student(name=name, class_type=class_type, enrollment_date=enrollment_date)

        return _enrolled

    def test_largest_debt_first_then_earliest_enrollment(self, tuition_service, enrolled, pay):
        small = enrolled("Small", "4500.00", date(2024, 1, 1))
        pay(small, "4000.00")
        late = enrolled("Late", "4500.00", date(2024, 3, 1))
        pay(late, "1000.00")
        early = enrolled("Early", "4500.00", date(2024, 2, 1))
        pay(early, "1000.00")

        debtors = tuition_service.list_debtors()

        assert [d.student_id for d in debtors] == [early.id, late.id, small.id]
        assert [d.debt_amount for d in debtors] == [
            Decimal("3500.00"), Decimal("3500.00"), Decimal("500.00"),
        ]

    def test_student_without_account_owes_contract_price(self, tuition_service, enrolled):
        student = enrolled("Fresh", "3000.00", date(2024, 1, 5))

        [debtor] = tuition_service.list_debtors()

        assert debtor.student_id == student.id
        assert debtor.debt_amount == Decimal("3000.00")
        assert debtor.payment_status == PaymentStatus.UNPAID

    def test_paid_and_refunded_students_are_excluded(
        self, tuition_service, enrolled, create_student, pay, test_actor_id,
    ):
        paid = enrolled("Paid", "4500.00", date(2024, 1, 1))
        pay(paid, "4500.00")
        refunded = enrolled("Refunded", "4500.00", date(2024, 1, 2))
        pay(refunded, "1000.00")
        tuition_service.refund(refunded.id, Decimal("1000.00"), operator="alice", actor_id=test_actor_id)
        create_student(name="No class")

        assert tuition_service.list_debtors() == []

    def test_limit_and_offset(self, tuition_service, enrolled):
        first = enrolled("First", "5000.00", date(2024, 1, 1))
        second = enrolled("Second", "4000.00", date(2024, 1, 1))
        enrolled("Third", "3000.00", date(2024, 1, 1))

        assert [d.student_id for d in tuition_service.list_debtors(limit=1)] == [first.id]
        assert [d.student_id for d in tuition_service.list_debtors(limit=1, offset=1)] == [second.id]
