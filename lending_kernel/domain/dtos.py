"""
Immutable snapshots and operation results returned by the lending services.

Services return these instead of ORM instances so that callers (the request
boundary, the audit emitter, tests) can hold them after the session closes.
Snapshots are taken inside the unit of work, before and after a mutation.
"""

from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from lending_kernel.domain.schedule import FinancingSimulation
from lending_kernel.models.financing import Financing
from lending_kernel.models.installment import Installment
from lending_kernel.models.investment import Investment


def status_value(status: Any) -> str:
    """Plain string form of a status column, whether loaded or just assigned."""
    if isinstance(status, Enum):
        return status.value
    return str(status)


@dataclass(frozen=True)
class InvestmentInfo:
    id: UUID
    user_id: UUID
    principal: Decimal
    current_value: Decimal
    credit_limit: Decimal
    credit_used: Decimal
    available_credit: Decimal
    annual_rate: Decimal
    status: str
    started_at: datetime
    liquidated_at: datetime | None

    @classmethod
    def from_model(cls, investment: Investment) -> "InvestmentInfo":
        return cls(
            id=investment.id,
            user_id=investment.user_id,
            principal=investment.principal,
            current_value=investment.current_value,
            credit_limit=investment.credit_limit,
            credit_used=investment.credit_used,
            available_credit=investment.credit_limit - investment.credit_used,
            annual_rate=investment.annual_rate,
            status=status_value(investment.status),
            started_at=investment.started_at,
            liquidated_at=investment.liquidated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class InstallmentInfo:
    id: UUID
    financing_id: UUID
    number: int
    amount: Decimal
    penalty_amount: Decimal
    total_due: Decimal
    due_date: date
    status: str
    paid_at: datetime | None

    @classmethod
    def from_model(cls, installment: Installment) -> "InstallmentInfo":
        return cls(
            id=installment.id,
            financing_id=installment.financing_id,
            number=installment.number,
            amount=installment.amount,
            penalty_amount=installment.penalty_amount,
            total_due=installment.total_due,
            due_date=installment.due_date,
            status=status_value(installment.status),
            paid_at=installment.paid_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FinancingInfo:
    id: UUID
    user_id: UUID
    investment_id: UUID
    amount: Decimal
    installment_count: int
    installment_amount: Decimal
    remaining: Decimal
    penalty_amount: Decimal
    penalty_applied: bool
    next_due_date: date | None
    status: str
    description: str | None
    started_at: datetime
    completed_at: datetime | None

    @classmethod
    def from_model(cls, financing: Financing) -> "FinancingInfo":
        return cls(
            id=financing.id,
            user_id=financing.user_id,
            investment_id=financing.investment_id,
            amount=financing.amount,
            installment_count=financing.installment_count,
            installment_amount=financing.installment_amount,
            remaining=financing.remaining,
            penalty_amount=financing.penalty_amount,
            penalty_applied=financing.penalty_applied,
            next_due_date=financing.next_due_date,
            status=status_value(financing.status),
            description=financing.description,
            started_at=financing.started_at,
            completed_at=financing.completed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LiquidationSummary:
    """Money movement of a forced liquidation."""

    debt_paid: Decimal
    penalty_charged: Decimal
    total_deducted: Decimal
    returned_to_user: Decimal


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FinancingCreated:
    financing: FinancingInfo
    installments: tuple[InstallmentInfo, ...]
    investment: InvestmentInfo
    before: dict[str, Any]
    after: dict[str, Any]


@dataclass(frozen=True)
class InstallmentPaid:
    financing: FinancingInfo
    installment: InstallmentInfo
    completed: bool
    credit_released: Decimal
    before: dict[str, Any]
    after: dict[str, Any]


@dataclass(frozen=True)
class PenaltyWaived:
    financing: FinancingInfo
    installment: InstallmentInfo
    waived_amount: Decimal
    before: dict[str, Any]
    after: dict[str, Any]


@dataclass(frozen=True)
class DueDateExtended:
    financing: FinancingInfo
    installment: InstallmentInfo
    previous_due_date: date
    before: dict[str, Any]
    after: dict[str, Any]


@dataclass(frozen=True)
class InstallmentMarkedOverdue:
    financing: FinancingInfo
    installment: InstallmentInfo
    penalty_added: Decimal
    before: dict[str, Any]
    after: dict[str, Any]


@dataclass(frozen=True)
class FinancingLiquidated:
    financing: FinancingInfo
    investment: InvestmentInfo
    summary: LiquidationSummary
    installments_dropped: int
    before: dict[str, Any]
    after: dict[str, Any]


@dataclass(frozen=True)
class InvestmentCreated:
    investment: InvestmentInfo
    after: dict[str, Any]


@dataclass(frozen=True)
class InvestmentValueAdjusted:
    investment: InvestmentInfo
    previous_value: Decimal
    previous_credit_limit: Decimal
    before: dict[str, Any]
    after: dict[str, Any]


@dataclass(frozen=True)
class InvestmentLiquidated:
    investment: InvestmentInfo
    amount_credited: Decimal
    before: dict[str, Any]
    after: dict[str, Any]


__all__ = [
    "DueDateExtended",
    "FinancingCreated",
    "FinancingInfo",
    "FinancingLiquidated",
    "FinancingSimulation",
    "InstallmentInfo",
    "InstallmentMarkedOverdue",
    "InstallmentPaid",
    "InvestmentCreated",
    "InvestmentInfo",
    "InvestmentLiquidated",
    "InvestmentValueAdjusted",
    "LiquidationSummary",
    "PenaltyWaived",
    "status_value",
]
