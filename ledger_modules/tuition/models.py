"""
Tuition Domain Models (``ledger_modules.tuition.models``).

Responsibility
--------------
Payment and enrollment status enums, the explicit mapping between them,
the pure ``derive()`` function that every tuition mutation calls, and the
frozen DTOs returned by ``TuitionLedgerService``.

Architecture position
---------------------
**Modules layer** -- pure data definitions and one pure function, ZERO I/O.

Invariants enforced
-------------------
* ``payment_status`` and the payment-derived part of ``enrollment_status``
  are a function of ``(contract, discount, actual)`` only.
* Every derived pair is a row of ``PAYMENT_TO_ENROLLMENT``.
* ``refunded`` is never produced by ``derive()``; it is forced by the
  refund operation and survives every later derivation.
* All monetary fields use ``Decimal``.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.db.types import round_money

_ZERO = Decimal("0")


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"


class EnrollmentStatus(str, Enum):
    """Student lifecycle; four values are payment-derived, three are not."""

    INQUIRING = "inquiring"
    RESERVED = "reserved"
    ENROLLED_UNPAID = "enrolled_unpaid"
    ENROLLED_PARTIAL = "enrolled_partial"
    ENROLLED_PAID = "enrolled_paid"
    REFUNDED = "refunded"
    DISQUALIFIED = "disqualified"


PAYMENT_TO_ENROLLMENT: dict[PaymentStatus, EnrollmentStatus] = {
    PaymentStatus.UNPAID: EnrollmentStatus.ENROLLED_UNPAID,
    PaymentStatus.PARTIAL: EnrollmentStatus.ENROLLED_PARTIAL,
    PaymentStatus.PAID: EnrollmentStatus.ENROLLED_PAID,
    PaymentStatus.REFUNDED: EnrollmentStatus.REFUNDED,
}

# Phases an operator may set by hand before any money is received
MANUAL_PHASES = frozenset({
    EnrollmentStatus.INQUIRING,
    EnrollmentStatus.RESERVED,
    EnrollmentStatus.DISQUALIFIED,
})


class RecordKind(str, Enum):
    PAYMENT = "payment"
    DISCOUNT = "discount"
    REFUND = "refund"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    WECHAT = "wechat"
    ALIPAY = "alipay"


@dataclass(frozen=True)
class DerivedStatus:
    payment_status: PaymentStatus
    enrollment_status: EnrollmentStatus


def derive(contract: Decimal, discount: Decimal, actual: Decimal) -> DerivedStatus:
    """
    Status pair for the given totals.

    ``payable = contract - discount``; nothing received is unpaid, less
    than payable is partial, anything else is paid.
    """
    payable = contract - discount
    if actual <= 0:
        status = PaymentStatus.UNPAID
    elif actual < payable:
        status = PaymentStatus.PARTIAL
    else:
        status = PaymentStatus.PAID
    return DerivedStatus(status, PAYMENT_TO_ENROLLMENT[status])


def debt_amount(contract: Decimal, discount: Decimal, actual: Decimal) -> Decimal:
    """``max(0, contract - discount - actual)``."""
    return round_money(max(_ZERO, contract - discount - actual))


def overpayment(contract: Decimal, discount: Decimal, actual: Decimal) -> Decimal:
    """``max(0, actual - (contract - discount))``: receipts beyond the payable amount."""
    return round_money(max(_ZERO, actual - (contract - discount)))


@dataclass(frozen=True)
class PaymentState:
    """Snapshot of one student's tuition account."""

    student_id: UUID
    contract_amount: Decimal
    contract_discount: Decimal
    discount_amount: Decimal
    actual_amount: Decimal
    debt_amount: Decimal
    account_balance: Decimal
    payment_status: PaymentStatus
    enrollment_status: EnrollmentStatus

    @property
    def is_refunded(self) -> bool:
        return self.payment_status == PaymentStatus.REFUNDED


@dataclass(frozen=True)
class PaymentRecord:
    """One receipt, discount or refund applied to a student account."""

    id: UUID
    student_id: UUID
    kind: RecordKind
    amount: Decimal
    payment_date: date
    method: str | None
    operator: str
    notes: str | None
    balance_credit: Decimal
    voucher_id: UUID | None
    is_reversed: bool


@dataclass(frozen=True)
class PaymentStatistics:
    student_id: UUID
    record_count: int
    total_paid: Decimal
    total_discounted: Decimal
    total_refunded: Decimal
    last_payment_date: date | None
