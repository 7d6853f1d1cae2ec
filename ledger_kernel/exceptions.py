"""
Typed Exception Hierarchy for the Ledger.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from LedgerError and carry a class-level ``code``
plus structured attributes.  Callers catch by type, never by message.

    LedgerError (base)
    |
    +-- ValidationError          malformed or missing input, rejected before any write
    |   +-- InvalidAmountError
    |   +-- MissingFieldError
    |   +-- InvalidMonthError
    |   +-- InvalidVoucherError
    |   +-- SubjectTypeMismatchError
    |   +-- BalanceDirectionMismatchError
    |   +-- DuplicateSubjectError
    |   +-- InvalidHeadquarterConfigError
    |   +-- DeductionReasonRequiredError
    |   +-- InvalidChoiceError
    |
    +-- ConsistencyError         business-rule violation, rejected atomically
    |   +-- UnbalancedVoucherError
    |   +-- ExceedsReceivableError
    |   +-- SubjectInactiveError
    |
    +-- StateError               operation not allowed in the current state
    |   +-- AlreadyRefundedError
    |   +-- AlreadyReversedError
    |   +-- NotReversibleError
    |   +-- NotManualSourceError
    |   +-- ImmutablePaidRecordError
    |   +-- InvalidStatusTransitionError
    |   +-- ExpenseAlreadyPaidError
    |   +-- AlreadySubmittedError
    |   +-- NotSubmittedError
    |
    +-- NotFoundError
        +-- SubjectNotFoundError
        +-- UsageMappingNotFoundError
        +-- VoucherNotFoundError
        +-- StudentNotFoundError
        +-- PaymentRecordNotFoundError
        +-- SalaryRecordNotFoundError
        +-- SalaryRateConfigNotFoundError
        +-- ExpenseConfigNotFoundError
        +-- MonthlyExpenseNotFoundError
        +-- AllocationNotFoundError
        +-- HeadquarterConfigNotFoundError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                       | When Raised
-------------|----------------------------|------------------------------------------
Validation   | INVALID_AMOUNT             | Amount <= 0 (or < 0 where zero is allowed)
             | MISSING_FIELD              | Required field empty (operator, reason)
             | INVALID_MONTH              | Month key is not YYYY-MM
             | INVALID_VOUCHER            | Too few items, zero total
             | SUBJECT_TYPE_MISMATCH      | Subject is not of the required type
             | BALANCE_DIRECTION_MISMATCH | Direction contradicts the subject type
             | DUPLICATE_SUBJECT          | Subject code already exists
             | INVALID_HQ_CONFIG          | Ratio out of [0,1], both/neither values
             | DEDUCTION_REASON_REQUIRED  | Deduction > 0 without a reason
             | INVALID_CHOICE             | Value outside an enumerated set
-------------|----------------------------|------------------------------------------
Consistency  | UNBALANCED_VOUCHER         | Debits != credits
             | EXCEEDS_RECEIVABLE         | Discount/refund larger than receipts
             | SUBJECT_INACTIVE           | Posting to a deactivated subject
-------------|----------------------------|------------------------------------------
State        | ALREADY_REFUNDED           | Refund of a fully refunded student
             | ALREADY_REVERSED           | Second reversal of a voucher or record
             | NOT_REVERSIBLE             | Source type has no reversal path
             | NOT_MANUAL_SOURCE          | Direct delete of a system voucher
             | IMMUTABLE_PAID_RECORD      | Editing a paid salary record
             | INVALID_STATUS_TRANSITION  | Status regression or skipped step
             | EXPENSE_ALREADY_PAID       | Paying or editing a paid monthly expense
             | ALREADY_SUBMITTED          | Second headquarters submission
             | NOT_SUBMITTED              | Revoking a submission that never happened
-------------|----------------------------|------------------------------------------
Not found    | *_NOT_FOUND                | Entity lookup by id or code failed

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        ledger.refund(student_id, amount, operator="alice", actor_id=actor)
    except ExceedsReceivableError as e:
        return {"error": e.code, "receivable": e.receivable}

Every error is raised inside the caller's transaction; the owning service
rolls back before re-raising.  Nothing is recovered locally.
"""


class LedgerError(Exception):
    """
    Base exception for all ledger errors.

    All subclasses define a ``code`` class attribute.
    """

    code: str = "LEDGER_ERROR"


# Validation


class ValidationError(LedgerError):
    """Malformed or missing input."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Amount is not positive (or negative where zero is allowed)."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, amount: object, reason: str = "must be greater than 0"):
        self.field = field
        self.amount = str(amount)
        self.reason = reason
        super().__init__(f"Invalid {field} {amount}: {reason}")


class MissingFieldError(ValidationError):
    """Required field is empty."""

    code: str = "MISSING_FIELD"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required field: {field}")


class InvalidMonthError(ValidationError):
    """Month key is not in YYYY-MM form."""

    code: str = "INVALID_MONTH"

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid month '{value}', expected YYYY-MM")


class InvalidVoucherError(ValidationError):
    """Voucher is structurally invalid."""

    code: str = "INVALID_VOUCHER"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid voucher: {reason}")


class SubjectTypeMismatchError(ValidationError):
    """Subject is not of the type the operation requires."""

    code: str = "SUBJECT_TYPE_MISMATCH"

    def __init__(self, subject_code: str, expected: str, actual: str):
        self.subject_code = subject_code
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Subject {subject_code} is {actual}, expected {expected}"
        )


class BalanceDirectionMismatchError(ValidationError):
    """Balance direction contradicts the subject type convention."""

    code: str = "BALANCE_DIRECTION_MISMATCH"

    def __init__(self, subject_code: str, subject_type: str, direction: str):
        self.subject_code = subject_code
        self.subject_type = subject_type
        self.direction = direction
        super().__init__(
            f"Subject {subject_code}: {subject_type} subjects cannot have "
            f"{direction} balance direction"
        )


class DuplicateSubjectError(ValidationError):
    code: str = "DUPLICATE_SUBJECT"

    def __init__(self, subject_code: str):
        self.subject_code = subject_code
        super().__init__(f"Subject code already exists: {subject_code}")


class InvalidHeadquarterConfigError(ValidationError):
    """Headquarters profit-share config is malformed."""

    code: str = "INVALID_HQ_CONFIG"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid headquarters config: {reason}")


class DeductionReasonRequiredError(ValidationError):
    """A positive salary deduction needs a reason."""

    code: str = "DEDUCTION_REASON_REQUIRED"

    def __init__(self, salary_id: str, deduction: object):
        self.salary_id = salary_id
        self.deduction = str(deduction)
        super().__init__(
            f"Deduction {deduction} on salary record {salary_id} requires a reason"
        )


class InvalidChoiceError(ValidationError):
    """Value is not one of the allowed enum members."""

    code: str = "INVALID_CHOICE"

    def __init__(self, field: str, value: object, allowed: list[str]):
        self.field = field
        self.value = str(value)
        self.allowed = allowed
        super().__init__(
            f"Invalid {field} '{value}', expected one of: {', '.join(allowed)}"
        )


# Consistency


class ConsistencyError(LedgerError):
    """Business rule violated; nothing was written."""

    code: str = "CONSISTENCY_ERROR"


class UnbalancedVoucherError(ConsistencyError):
    """Voucher debits do not equal credits."""

    code: str = "UNBALANCED_VOUCHER"

    def __init__(self, debits: object, credits: object):
        self.debits = str(debits)
        self.credits = str(credits)
        super().__init__(
            f"Unbalanced voucher: debits={debits}, credits={credits}"
        )


class ExceedsReceivableError(ConsistencyError):
    """Discount or refund larger than the student's cumulative receipts."""

    code: str = "EXCEEDS_RECEIVABLE"

    def __init__(self, student_id: str, amount: object, receivable: object):
        self.student_id = student_id
        self.amount = str(amount)
        self.receivable = str(receivable)
        super().__init__(
            f"Amount {amount} exceeds receivable {receivable} for student {student_id}"
        )


class SubjectInactiveError(ConsistencyError):
    code: str = "SUBJECT_INACTIVE"

    def __init__(self, subject_code: str):
        self.subject_code = subject_code
        super().__init__(f"Subject '{subject_code}' is inactive and cannot be posted to")


# State


class StateError(LedgerError):
    """Operation is not allowed in the entity's current state."""

    code: str = "STATE_ERROR"


class AlreadyRefundedError(StateError):
    code: str = "ALREADY_REFUNDED"

    def __init__(self, student_id: str):
        self.student_id = student_id
        super().__init__(f"Student {student_id} is already fully refunded")


class AlreadyReversedError(StateError):
    """Voucher or payment record was already reversed."""

    code: str = "ALREADY_REVERSED"

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} has already been reversed")


class NotReversibleError(StateError):
    code: str = "NOT_REVERSIBLE"

    def __init__(self, entity_id: str, source_type: str):
        self.entity_id = entity_id
        self.source_type = source_type
        super().__init__(f"{entity_id} ({source_type}) has no reversal path")


class NotManualSourceError(StateError):
    """Only manual vouchers may be deleted directly."""

    code: str = "NOT_MANUAL_SOURCE"

    def __init__(self, voucher_no: str, source_type: str):
        self.voucher_no = voucher_no
        self.source_type = source_type
        super().__init__(
            f"Voucher {voucher_no} was generated by {source_type}; "
            f"reverse it through its business action instead of deleting it"
        )


class ImmutablePaidRecordError(StateError):
    code: str = "IMMUTABLE_PAID_RECORD"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Record {record_id} is paid and can no longer be modified")


class InvalidStatusTransitionError(StateError):
    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, record_id: str, from_status: str, to_status: str):
        self.record_id = record_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Record {record_id} cannot move from {from_status} to {to_status}"
        )


class ExpenseAlreadyPaidError(StateError):
    code: str = "EXPENSE_ALREADY_PAID"

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Monthly expense {expense_id} is already paid")


class AlreadySubmittedError(StateError):
    code: str = "ALREADY_SUBMITTED"

    def __init__(self, student_id: str):
        self.student_id = student_id
        super().__init__(f"Student {student_id} has already been submitted to headquarters")


class NotSubmittedError(StateError):
    code: str = "NOT_SUBMITTED"

    def __init__(self, student_id: str):
        self.student_id = student_id
        super().__init__(f"Student {student_id} has no submission to revoke")


# Not found


class NotFoundError(LedgerError):
    """Entity lookup failed."""

    code: str = "NOT_FOUND"

    entity: str = "Entity"

    def __init__(self, key: object):
        self.key = str(key)
        super().__init__(f"{self.entity} not found: {key}")


class SubjectNotFoundError(NotFoundError):
    code: str = "SUBJECT_NOT_FOUND"
    entity = "Subject"


class UsageMappingNotFoundError(NotFoundError):
    code: str = "USAGE_MAPPING_NOT_FOUND"
    entity = "Usage mapping"


class VoucherNotFoundError(NotFoundError):
    code: str = "VOUCHER_NOT_FOUND"
    entity = "Voucher"


class StudentNotFoundError(NotFoundError):
    code: str = "STUDENT_NOT_FOUND"
    entity = "Student"


class PaymentRecordNotFoundError(NotFoundError):
    code: str = "PAYMENT_RECORD_NOT_FOUND"
    entity = "Payment record"


class SalaryRecordNotFoundError(NotFoundError):
    code: str = "SALARY_RECORD_NOT_FOUND"
    entity = "Salary record"


class SalaryRateConfigNotFoundError(NotFoundError):
    code: str = "SALARY_RATE_CONFIG_NOT_FOUND"
    entity = "Salary rate config"


class ExpenseConfigNotFoundError(NotFoundError):
    code: str = "EXPENSE_CONFIG_NOT_FOUND"
    entity = "Expense config"


class MonthlyExpenseNotFoundError(NotFoundError):
    code: str = "MONTHLY_EXPENSE_NOT_FOUND"
    entity = "Monthly expense"


class AllocationNotFoundError(NotFoundError):
    code: str = "ALLOCATION_NOT_FOUND"
    entity = "Expense allocation"


class HeadquarterConfigNotFoundError(NotFoundError):
    code: str = "HQ_CONFIG_NOT_FOUND"
    entity = "Headquarters config"
