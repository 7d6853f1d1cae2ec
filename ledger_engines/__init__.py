"""
Module: ledger_engines
Responsibility:
    Re-exports the pure calculation engines used by ledger_modules.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  May import
    ledger_kernel.db.types and ledger_kernel.logging_config only.
    MUST NOT import ledger_modules.

Invariants enforced:
    - Engines never read the clock; dates and months are parameters.
    - Decimal-only arithmetic.
    - Every engine entry point emits a LEDGER_ENGINE_TRACE record.
"""

from ledger_engines.amortization import (
    AllocationMethod,
    AmortizationLine,
    AmortizationSchedule,
    amortize,
    monthly_amount,
)
from ledger_engines.commission import (
    RateType,
    SalaryFigures,
    SalaryInputs,
    SalaryRates,
    compute_salary,
    payable_amount,
)
from ledger_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "AllocationMethod",
    "AmortizationLine",
    "AmortizationSchedule",
    "amortize",
    "monthly_amount",
    "RateType",
    "SalaryFigures",
    "SalaryInputs",
    "SalaryRates",
    "compute_salary",
    "payable_amount",
    "compute_input_fingerprint",
    "traced_engine",
]
