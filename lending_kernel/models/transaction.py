"""
Module: lending_kernel.models.transaction
Responsibility: ORM persistence for the append-only transaction log -- one row
    per money-moving event.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Append-only: the kernel inserts rows and never updates or deletes them.
    - details (column "metadata") always names the originating financing,
      installment or investment id plus the operator and reason.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from lending_kernel.db.base import TrackedBase, UUIDString


class TransactionType(str, Enum):
    """Money-moving event types written by the lending kernel."""

    INVESTMENT_DEPOSIT = "INVESTMENT_DEPOSIT"
    INVESTMENT_WITHDRAWAL = "INVESTMENT_WITHDRAWAL"
    FINANCING_DISBURSEMENT = "FINANCING_DISBURSEMENT"
    INSTALLMENT_PAYMENT = "INSTALLMENT_PAYMENT"
    PENALTY_CHARGE = "PENALTY_CHARGE"


class TransactionStatus(str, Enum):
    COMPLETED = "COMPLETED"


class LedgerTransaction(TrackedBase):
    """One row per money-moving event."""

    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transaction_user", "user_id"),
        Index("idx_transaction_type", "type"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    type: Mapped[TransactionType] = mapped_column(String(40), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)

    fee: Mapped[Decimal] = mapped_column(
        Numeric(20, 2), nullable=False, default=Decimal("0")
    )

    total: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)

    status: Mapped[TransactionStatus] = mapped_column(
        String(20), nullable=False, default=TransactionStatus.COMPLETED
    )

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # "metadata" is reserved on declarative classes
    details: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<LedgerTransaction {self.type} {self.amount}>"
