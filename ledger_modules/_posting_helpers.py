"""
Shared helpers for module posting flows.

Used by ledger_modules/*/service.py to post the two-line vouchers that
every business action produces, routing both sides through usage
mappings so that no module hardcodes a subject code.

Architecture: Modules layer. Imports only from ledger_kernel.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock
from ledger_kernel.exceptions import InvalidAmountError, InvalidChoiceError, MissingFieldError
from ledger_kernel.models.subject import Usage
from ledger_kernel.models.voucher import SourceType, Voucher
from ledger_kernel.services.subject_service import SubjectService
from ledger_kernel.services.voucher_service import ItemSpec, VoucherMeta, VoucherService

E = TypeVar("E", bound=Enum)


def build_posting_services(
    session: Session,
    clock: Clock,
    voucher_service: VoucherService | None = None,
) -> tuple[SubjectService, VoucherService]:
    """Subject registry and voucher engine bound to the module's session."""
    subjects = SubjectService(session, clock)
    vouchers = voucher_service or VoucherService(session, clock)
    return subjects, vouchers


def require_operator(operator: str | None) -> str:
    if not operator or not operator.strip():
        raise MissingFieldError("operator")
    return operator.strip()


def require_positive(field: str, amount: Decimal) -> Decimal:
    if amount is None or Decimal(amount) <= 0:
        raise InvalidAmountError(field, amount)
    return Decimal(amount)


def require_choice(enum_cls: type[E], field: str, value: E | str) -> E:
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidChoiceError(field, value, [m.value for m in enum_cls]) from None


def post_transfer(
    subjects: SubjectService,
    vouchers: VoucherService,
    *,
    debit_subject: str | None = None,
    credit_subject: str | None = None,
    debit_usage: Usage | None = None,
    credit_usage: Usage | None = None,
    amount: Decimal,
    voucher_date: date,
    description: str,
    summary: str,
    source_type: SourceType,
    source_id: UUID | None,
    creator: str,
    actor_id: UUID,
) -> Voucher:
    """
    Post a balanced two-line voucher.

    Each side is given either as a usage code (resolved through the usage
    mapping table at posting time) or as an explicit subject code.
    """
    usages = [u for u in (debit_usage, credit_usage) if u is not None]
    resolved = subjects.resolve_usages(*usages) if usages else {}
    debit_code = debit_subject or resolved[debit_usage.value]
    credit_code = credit_subject or resolved[credit_usage.value]

    return vouchers.post(
        [
            ItemSpec.debit(debit_code, amount, summary),
            ItemSpec.credit(credit_code, amount, summary),
        ],
        VoucherMeta(
            voucher_date=voucher_date,
            description=description,
            source_type=source_type,
            creator=creator,
            actor_id=actor_id,
            source_id=source_id,
        ),
    )
