"""
Module ORM Registry (``ledger_modules._orm_registry``).

Responsibility
--------------
Import every module-level ORM model so that ``Base.metadata`` holds the
full schema before ``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Called by ``ledger_kernel.db.engine`` when
creating or dropping tables, and by scripts and tests.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``ledger_modules.*.orm`` module (idempotent)."""
    # Kernel tables first; module tables reference subjects and vouchers
    import ledger_kernel.models  # noqa: F401
    import ledger_kernel.services.sequence_service  # noqa: F401
    # fmt: off
    import ledger_modules.roster.orm  # noqa: F401
    import ledger_modules.tuition.orm  # noqa: F401
    import ledger_modules.salary.orm  # noqa: F401
    import ledger_modules.headquarters.orm  # noqa: F401
    import ledger_modules.expense.orm  # noqa: F401
    # fmt: on
