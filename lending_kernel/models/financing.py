"""
Module: lending_kernel.models.financing
Responsibility: ORM persistence for financings -- loans drawn against one
    investment's credit limit and repaid through installments.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - remaining >= 0 (DB check constraint).
    - While ACTIVE, remaining equals the sum of total_due over installments
      that are neither PAID nor DROPPED (checked by domain.invariants on
      every read-for-write and after every mutation).
    - version is the optimistic concurrency token.

Lifecycle:
    ACTIVE -> COMPLETED   remaining reaches 0 through payments
    ACTIVE -> LIQUIDATED  forced liquidation only (terminal, irreversible)
    DEFAULTED is a risk classification set outside this kernel; no kernel
    operation moves a financing into or out of it.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lending_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from lending_kernel.models.installment import Installment
    from lending_kernel.models.investment import Investment


class FinancingStatus(str, Enum):
    """Financing lifecycle states."""

    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    DEFAULTED = "DEFAULTED"
    LIQUIDATED = "LIQUIDATED"


class Financing(TrackedBase):
    """A loan drawn against an investment's credit limit."""

    __tablename__ = "financings"

    __table_args__ = (
        Index("idx_financing_user", "user_id"),
        Index("idx_financing_investment", "investment_id"),
        Index("idx_financing_status", "status"),
        CheckConstraint("remaining >= 0", name="ck_financing_remaining_nonneg"),
        CheckConstraint("amount > 0", name="ck_financing_amount_positive"),
        CheckConstraint(
            "installment_count > 0", name="ck_financing_installment_count_positive"
        ),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    investment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("investments.id"),
        nullable=False,
    )

    # Original principal drawn
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)

    installment_count: Mapped[int] = mapped_column(Integer, nullable=False)

    # Nominal per-installment amount (the last installment absorbs rounding)
    installment_amount: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)

    # Outstanding balance
    remaining: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)

    penalty_amount: Mapped[Decimal] = mapped_column(
        Numeric(20, 2), nullable=False, default=Decimal("0")
    )

    penalty_applied: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    next_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[FinancingStatus] = mapped_column(
        String(30),
        nullable=False,
        default=FinancingStatus.ACTIVE,
    )

    description: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    investment: Mapped["Investment"] = relationship(back_populates="financings")

    installments: Mapped[list["Installment"]] = relationship(
        back_populates="financing",
        order_by="Installment.number",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Financing {self.id} {self.status} remaining={self.remaining}>"

    @property
    def is_active(self) -> bool:
        return self.status == FinancingStatus.ACTIVE
