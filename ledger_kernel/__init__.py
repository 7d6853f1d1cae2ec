"""
Ledger Kernel

The double-entry core of the driving-school back office:
- Chart of accounts (subjects) and usage-to-subject mappings
- Balanced voucher posting with per-day voucher numbers
- Reversal instead of mutation for system-generated vouchers
- Read-only ledger selectors for reports
"""

__version__ = "0.1.0"
