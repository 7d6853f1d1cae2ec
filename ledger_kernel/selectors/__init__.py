from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.ledger_selector import LedgerLine, LedgerSelector, SubjectTotals

__all__ = ["BaseSelector", "LedgerLine", "LedgerSelector", "SubjectTotals"]
