"""Kernel services: sequences, subjects and usage mappings, voucher posting."""

from ledger_kernel.services.sequence_service import SequenceCounter, SequenceService
from ledger_kernel.services.subject_service import SubjectRemoval, SubjectService
from ledger_kernel.services.voucher_service import ItemSpec, VoucherMeta, VoucherService

__all__ = [
    "ItemSpec",
    "SequenceCounter",
    "SequenceService",
    "SubjectRemoval",
    "SubjectService",
    "VoucherMeta",
    "VoucherService",
]
