"""Profit and ledger balance reports."""

from ledger_modules.reporting.models import (
    BalanceDetailReport,
    ProfitReport,
    ReportType,
    SubjectBalanceReport,
    YearlyProfitReport,
    YearlyProfitRow,
)
from ledger_modules.reporting.service import ReportingService

__all__ = [
    "BalanceDetailReport",
    "ProfitReport",
    "ReportType",
    "ReportingService",
    "SubjectBalanceReport",
    "YearlyProfitReport",
    "YearlyProfitRow",
]
