"""
BaseService -- abstract base for the lending services that write.

Responsibility:
    Common constructor and session contract.  Concrete services receive the
    Session yielded by ``LedgerStore.unit_of_work()`` and persist through
    ``session.flush()`` only.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Flush-only: services never commit or roll back.  The unit of work owns
    the transaction, so a multi-step operation (payment + completion +
    credit release + transaction row) commits or vanishes as one.

Failure modes:
    - A subclass that calls ``session.commit()`` breaks the atomicity of
      every operation it participates in.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from lending_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for lending services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide listing or statistics queries; those live in
          ``lending_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
