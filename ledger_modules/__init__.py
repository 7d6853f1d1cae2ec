"""
Ledger Modules.

Business services over the ledger kernel and engines.  Each module holds
frozen DTOs and enums (models.py), ORM persistence (orm.py) and a service
facade (service.py) that owns the transaction boundary.

Modules:
- roster: boundary tables of the student/coach/exam collaborators
- tuition: per-student payment ledger and status state machine
- salary: coach commission and monthly salary engine
- headquarters: profit-share config resolution, preview and submission
- expense: recurring operating expenses and annual expense allocation
- reporting: monthly and yearly profit reports, balances
"""
