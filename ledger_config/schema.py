"""
LedgerConfiguration schema.

Defines the human-authored, reviewable source artifact for the ledger's
setup: the chart of accounts, the usage mappings the business modules
resolve, and the posting settings of the voucher engine.  YAML files are
parsed into these types by the loader and installed into a database by
the bridges.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Chart of accounts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SubjectDef:
    """One chart-of-accounts entry."""

    code: str
    name: str
    subject_type: str  # asset, liability, equity, income, expense
    balance_direction: str | None = None  # defaults to the type's convention
    parent_code: str | None = None
    remark: str | None = None


@dataclass(frozen=True)
class UsageMappingDef:
    """Binds a usage code (e.g. TUITION_INCOME) to a subject code."""

    usage_code: str
    subject_code: str
    description: str | None = None


# ---------------------------------------------------------------------------
# Posting
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PostingSettings:
    """Voucher engine knobs."""

    balance_epsilon: Decimal = Decimal("0.01")
    voucher_sequence_width: int = 3


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfiguration:
    """
    The complete configuration set.

    ``checksum`` is the SHA-256 of the canonical JSON of the source YAML,
    so two loads of the same file always agree.
    """

    config_id: str
    version: int
    subjects: tuple[SubjectDef, ...] = ()
    usage_mappings: tuple[UsageMappingDef, ...] = ()
    posting: PostingSettings = field(default_factory=PostingSettings)
    checksum: str = ""

    def subject(self, code: str) -> SubjectDef | None:
        for subject in self.subjects:
            if subject.code == code:
                return subject
        return None

    @property
    def subject_codes(self) -> frozenset[str]:
        return frozenset(s.code for s in self.subjects)
