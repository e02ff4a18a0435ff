"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract.  Every service receives
    a SQLAlchemy ``Session`` and a ``Clock`` and persists with
    ``session.flush()`` -- never ``session.commit()``.

Invariants enforced:
    - Services flush within the caller's transaction; the caller
      (session_scope(), the coordinator, or a test harness) owns
      commit/rollback.
    - Services never read wall-clock time directly; all timestamps come from
      the injected clock.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from inventory_kernel.db.base import Base
from inventory_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide reporting queries; those live in selectors/.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
