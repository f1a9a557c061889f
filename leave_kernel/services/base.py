"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract.  Services receive a
    SQLAlchemy ``Session`` and persist through ``session.flush()``, never
    ``session.commit()``.

Architecture position:
    Kernel > Services.  Every write service in ``leave_kernel/services/``
    extends this class.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction.  The workflow engine (or a test harness) owns
      commit/rollback, which is what makes "audit entry + status + quota"
      one atomic unit.
"""

from abc import ABC

from sqlalchemy.orm import Session

from leave_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Contract:
        Accepts a ``Session`` from the caller and flushes changes into the
        active transaction.

    Non-goals:
        - Does NOT commit or roll back.
        - Does NOT host read-only reporting queries; those belong in
          ``leave_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
