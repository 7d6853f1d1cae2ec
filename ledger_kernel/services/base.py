"""
Module: ledger_kernel.services.base
Responsibility: Common base for kernel services that share the caller's
    session.
Architecture position: Kernel > Services.

Invariants enforced:
    - Kernel services flush but never commit; module services own the
      transaction boundary.
"""

from abc import ABC

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Contract:
        Receives a Session (and optionally a Clock) from the caller and
        works inside the caller's transaction.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
