"""
BaseService -- abstract base for ledger kernel services.

Responsibility:
    Common constructor and session-handling contract for every write-side
    service.  Services receive a SQLAlchemy ``Session`` and a ``Clock`` and
    persist through ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services.  Every service in ``ledger_kernel/services/`` that
    writes extends this class.

Invariants enforced:
    - Services flush within the caller's transaction and never commit or
      roll back the outer transaction.  Multi-step mutations use a
      savepoint (``session.begin_nested()``) so a failure leaves no
      partial state.
"""

from abc import ABC

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Contract:
        Accepts a ``Session`` from the caller and uses ``session.flush()``
        to persist changes within the active transaction.

    Non-goals:
        - Does NOT manage the transaction lifecycle.
        - Does NOT provide reporting queries; those live in
          ``ledger_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
