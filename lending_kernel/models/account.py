"""
Module: lending_kernel.models.account
Responsibility: ORM persistence for the per-user cash account balance that
    liquidations credit and disbursements fund.
Architecture position: Kernel > Models.  May import from db/ only.

The account itself belongs to the wallet vertical; the lending kernel only
increments its balance inside the same unit of work as the financing change
that produced the money.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Integer, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from lending_kernel.db.base import TrackedBase, UUIDString


class Account(TrackedBase):
    """Single numeric balance per user."""

    __tablename__ = "accounts"

    __table_args__ = (UniqueConstraint("user_id", name="uq_account_user"),)

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    balance: Mapped[Decimal] = mapped_column(
        Numeric(20, 2), nullable=False, default=Decimal("0")
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Account user={self.user_id} balance={self.balance}>"
