"""
Module: lending_kernel.models.investment
Responsibility: ORM persistence for collateral investments -- the accounts
    whose value backs borrowing capacity.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - credit_used <= credit_limit and credit_used >= 0 (DB check constraints;
      the Credit Engine refuses violating operations before they get here).
    - credit_limit = current_value * financing_percentage / 100 whenever it
      is recomputed (Credit Engine).
    - version is the optimistic concurrency token (version_id_col).

Lifecycle:
    ACTIVE -> LIQUIDATED             voluntary, credit_used must be 0
    ACTIVE -> LIQUIDATED_BY_PENALTY  forced, via financing liquidation
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lending_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from lending_kernel.models.financing import Financing


class InvestmentStatus(str, Enum):
    """Collateral lifecycle states."""

    ACTIVE = "ACTIVE"
    LIQUIDATED = "LIQUIDATED"
    LIQUIDATED_BY_PENALTY = "LIQUIDATED_BY_PENALTY"


class Investment(TrackedBase):
    """
    Collateral account backing credit.

    Guarantees:
        - principal is the amount originally funded and never changes.
        - current_value is the present collateral value; adjusted by operators
          and zeroed by forced liquidation.
        - credit_used is the sum of the original amounts of the financings
          drawn against this investment that are not yet completed.
    """

    __tablename__ = "investments"

    __table_args__ = (
        Index("idx_investment_user", "user_id"),
        Index("idx_investment_status", "status"),
        CheckConstraint("credit_used >= 0", name="ck_investment_credit_used_nonneg"),
        CheckConstraint(
            "credit_used <= credit_limit", name="ck_investment_credit_within_limit"
        ),
        CheckConstraint("current_value >= 0", name="ck_investment_value_nonneg"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    principal: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)

    current_value: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)

    credit_limit: Mapped[Decimal] = mapped_column(
        Numeric(20, 2), nullable=False, default=Decimal("0")
    )

    credit_used: Mapped[Decimal] = mapped_column(
        Numeric(20, 2), nullable=False, default=Decimal("0")
    )

    # Collateral yield rate (% per year) captured at creation; informational
    annual_rate: Mapped[Decimal] = mapped_column(
        Numeric(9, 4), nullable=False, default=Decimal("0")
    )

    status: Mapped[InvestmentStatus] = mapped_column(
        String(30),
        nullable=False,
        default=InvestmentStatus.ACTIVE,
    )

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    liquidated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    financings: Mapped[list["Financing"]] = relationship(
        back_populates="investment",
        order_by="Financing.created_at",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Investment {self.id} {self.status} value={self.current_value}>"

    @property
    def is_active(self) -> bool:
        return self.status == InvestmentStatus.ACTIVE

    @property
    def available_credit(self) -> Decimal:
        return self.credit_limit - self.credit_used
