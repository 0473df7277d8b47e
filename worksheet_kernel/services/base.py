"""
BaseService -- abstract base for kernel services that write.

Responsibility:
    Common constructor and session contract.  Concrete services receive a
    SQLAlchemy ``Session`` and persist with ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or roll back the outer transaction.
      Operations that must be atomic on their own wrap their writes in
      ``session.begin_nested()``.

Failure modes:
    - A subclass calling ``session.commit()`` would split a mutation from
      its audit entry.
"""

from abc import ABC

from sqlalchemy.orm import Session

from worksheet_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` and an optional ``Clock`` from the
        caller.

    Guarantees:
        - The service never calls ``session.commit()``.

    Non-goals:
        - Read-only queries belong in ``worksheet_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
