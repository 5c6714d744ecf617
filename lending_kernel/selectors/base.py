"""
Module: lending_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors: listings,
    details and portfolio statistics for the backoffice.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/ value types.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors never call session.add(), delete(),
      flush() or commit().
    - DTO return convention: selectors return frozen dataclasses, never ORM
      instances.
    - Session ownership: the caller owns the session; selectors run outside
      any unit of work and take no row locks.
"""

from abc import ABC
from decimal import Decimal
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from lending_kernel.db.base import Base
from lending_kernel.domain.money import ZERO, round_money

ModelType = TypeVar("ModelType", bound=Base)

MAX_PAGE_SIZE = 100


def money_or_zero(value) -> Decimal:
    """Aggregate results arrive as None (no rows) or a numeric; normalise."""
    if value is None:
        return ZERO
    return round_money(Decimal(str(value)))


def page_offset(page: int, limit: int) -> int:
    """Offset for a 1-based page; raises ValueError on nonsense paging."""
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}, got {limit}")
    return (page - 1) * limit


def total_pages(total: int, limit: int) -> int:
    return (total + limit - 1) // limit


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.
    """

    def __init__(self, session: Session):
        self.session = session
