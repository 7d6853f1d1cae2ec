"""Operating expenses and annual expense allocation."""

from ledger_modules.expense.models import (
    ExpenseAllocation,
    ExpenseConfig,
    GenerationResult,
    MonthlyExpense,
    MonthlyExpenseStatus,
)
from ledger_modules.expense.service import ExpenseAllocationService, OperatingExpenseService

__all__ = [
    "ExpenseAllocation",
    "ExpenseAllocationService",
    "ExpenseConfig",
    "GenerationResult",
    "MonthlyExpense",
    "MonthlyExpenseStatus",
    "OperatingExpenseService",
]
