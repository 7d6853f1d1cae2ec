"""Kernel ORM models: chart of accounts, usage mappings, vouchers."""

from ledger_kernel.models.subject import (
    CONVENTIONAL_DIRECTION,
    BalanceDirection,
    Subject,
    SubjectType,
    Usage,
    UsageMapping,
)
from ledger_kernel.models.voucher import (
    REVERSAL_SOURCE,
    EntryType,
    SourceType,
    Voucher,
    VoucherItem,
)

__all__ = [
    "CONVENTIONAL_DIRECTION",
    "BalanceDirection",
    "Subject",
    "SubjectType",
    "Usage",
    "UsageMapping",
    "REVERSAL_SOURCE",
    "EntryType",
    "SourceType",
    "Voucher",
    "VoucherItem",
]
