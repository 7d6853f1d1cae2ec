"""Student payment ledger: payments, discounts, refunds and derived statuses."""

from ledger_modules.tuition.models import (
    PAYMENT_TO_ENROLLMENT,
    DerivedStatus,
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
from ledger_modules.tuition.service import TuitionLedgerService

__all__ = [
    "PAYMENT_TO_ENROLLMENT",
    "DerivedStatus",
    "EnrollmentStatus",
    "PaymentMethod",
    "PaymentRecord",
    "PaymentState",
    "PaymentStatistics",
    "PaymentStatus",
    "RecordKind",
    "TuitionLedgerService",
    "debt_amount",
    "derive",
    "overpayment",
]
