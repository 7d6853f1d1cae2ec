"""
Headquarters Domain Models (``ledger_modules.headquarters.models``).

Responsibility
--------------
Profit-share configuration value objects, the tagged resolution result
(``SpecificConfig`` / ``GlobalConfig`` / ``NoConfig``) and the submission
preview returned to callers.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* A ratio config carries ``ratio`` in [0, 1] and no fixed amount; a fixed
  config carries ``fixed_amount >= 0`` and no ratio.
* ``NoConfig`` yields no submission amount and no profit, never zero.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.db.types import round_money


class HeadquarterConfigType(str, Enum):
    RATIO = "ratio"
    FIXED = "fixed"


class SubmitStatus(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"


class SubmitAction(str, Enum):
    SUBMIT = "submit"
    REVOKE = "revoke"


@dataclass(frozen=True)
class HeadquarterConfig:
    id: UUID
    config_name: str
    class_type_id: UUID | None
    config_type: HeadquarterConfigType
    ratio: Decimal | None
    fixed_amount: Decimal | None
    effective_date: date
    expire_date: date | None
    is_active: bool
    remark: str | None = None

    @property
    def is_global(self) -> bool:
        return self.class_type_id is None

    def covers(self, on_date: date) -> bool:
        """``effective_date <= on_date < expire_date`` (open-ended when null)."""
        if self.effective_date > on_date:
            return False
        return self.expire_date is None or on_date < self.expire_date

    def submit_amount(self, contract_amount: Decimal) -> Decimal:
        if self.config_type == HeadquarterConfigType.RATIO:
            return round_money(contract_amount * self.ratio)
        return round_money(self.fixed_amount)


@dataclass(frozen=True)
class SpecificConfig:
    """A config bound to the student's class type applies."""

    config: HeadquarterConfig


@dataclass(frozen=True)
class GlobalConfig:
    """No class-type config applies; the global default does."""

    config: HeadquarterConfig


@dataclass(frozen=True)
class NoConfig:
    """Neither a class-type nor a global config applies."""

    class_type_id: UUID | None


ResolvedConfig = SpecificConfig | GlobalConfig | NoConfig


@dataclass(frozen=True)
class SubmissionPreview:
    """
    Headquarters figures for one student.

    ``submit_amount`` and ``profit`` are None when no config resolves.
    """

    student_id: UUID
    class_type_id: UUID | None
    contract_amount: Decimal
    actual_amount: Decimal
    account_balance: Decimal
    final_receipt: Decimal
    resolution: ResolvedConfig
    submit_amount: Decimal | None
    profit: Decimal | None
    submit_status: SubmitStatus

    @property
    def has_config(self) -> bool:
        return not isinstance(self.resolution, NoConfig)


@dataclass(frozen=True)
class SubmitRecord:
    id: UUID
    student_id: UUID
    action: SubmitAction
    config_id: UUID | None
    contract_amount: Decimal
    final_receipt: Decimal
    submit_amount: Decimal
    profit: Decimal
    submit_date: date
    operator: str
    voucher_id: UUID | None
    remark: str | None = None
