"""
Module: lending_kernel.models.installment
Responsibility: ORM persistence for installments -- the scheduled repayment
    units of a financing.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Exactly one installment per number per financing (uq_installment_number).
    - total_due = amount + penalty_amount; both change together through
      recompute_total().
    - PAID and DROPPED are terminal.

Lifecycle:
    PENDING -> PAID | OVERDUE | DROPPED
    OVERDUE -> PAID | DROPPED
    Only a due-date extension moves an OVERDUE installment back to PENDING.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lending_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from lending_kernel.models.financing import Financing


class InstallmentStatus(str, Enum):
    """Per-installment states."""

    PENDING = "PENDING"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    DROPPED = "DROPPED"


# Installments that still count toward a financing's remaining balance
OUTSTANDING_STATUSES: tuple[str, ...] = (
    InstallmentStatus.PENDING.value,
    InstallmentStatus.OVERDUE.value,
)

TERMINAL_STATUSES: tuple[str, ...] = (
    InstallmentStatus.PAID.value,
    InstallmentStatus.DROPPED.value,
)


class Installment(TrackedBase):
    """One scheduled repayment unit of a financing."""

    __tablename__ = "installments"

    __table_args__ = (
        UniqueConstraint("financing_id", "number", name="uq_installment_number"),
        Index("idx_installment_status", "status"),
        Index("idx_installment_due_date", "due_date"),
        CheckConstraint("number >= 1", name="ck_installment_number_positive"),
        CheckConstraint("penalty_amount >= 0", name="ck_installment_penalty_nonneg"),
    )

    financing_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("financings.id"),
        nullable=False,
    )

    number: Mapped[int] = mapped_column(Integer, nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)

    penalty_amount: Mapped[Decimal] = mapped_column(
        Numeric(20, 2), nullable=False, default=Decimal("0")
    )

    total_due: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)

    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[InstallmentStatus] = mapped_column(
        String(30),
        nullable=False,
        default=InstallmentStatus.PENDING,
    )

    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    financing: Mapped["Financing"] = relationship(back_populates="installments")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Installment #{self.number} {self.status} total_due={self.total_due}>"

    @property
    def is_outstanding(self) -> bool:
        return self.status in OUTSTANDING_STATUSES

    def recompute_total(self) -> None:
        """Keep total_due in lockstep with amount and penalty_amount."""
        self.total_due = self.amount + self.penalty_amount
