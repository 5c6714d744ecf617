"""
Module: lending_kernel.selectors.investment_selector
Responsibility: Read-only investment queries: detail with credit figures and
    the financings drawn against it, paginated listing and portfolio totals.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from lending_kernel.domain.dtos import FinancingInfo, InvestmentInfo
from lending_kernel.domain.money import ZERO, round_money
from lending_kernel.exceptions import InvestmentNotFoundError
from lending_kernel.models.financing import Financing, FinancingStatus
from lending_kernel.models.investment import Investment, InvestmentStatus
from lending_kernel.selectors.base import (
    BaseSelector,
    money_or_zero,
    page_offset,
    total_pages,
)

_SORTABLE = {
    "created_at": Investment.created_at,
    "started_at": Investment.started_at,
    "current_value": Investment.current_value,
    "credit_used": Investment.credit_used,
}


@dataclass(frozen=True)
class InvestmentDetail:
    investment: InvestmentInfo
    active_financings: tuple[FinancingInfo, ...]
    credit_available: Decimal
    outstanding_debt: Decimal


@dataclass(frozen=True)
class InvestmentPage:
    items: tuple[InvestmentInfo, ...]
    page: int
    limit: int
    total: int
    total_pages: int


@dataclass(frozen=True)
class InvestmentStats:
    total_active: int
    total_liquidated: int
    total_invested: Decimal
    total_credit_used: Decimal
    total_credit_limit: Decimal
    unique_investors: int
    average_per_investor: Decimal


class InvestmentSelector(BaseSelector[Investment]):
    """Selector for collateral investments."""

    def __init__(self, session: Session):
        super().__init__(session)

    def get_detail(self, investment_id: UUID) -> InvestmentDetail:
        investment = self.session.get(Investment, investment_id)
        if investment is None:
            raise InvestmentNotFoundError(str(investment_id))

        active = [
            f for f in investment.financings if f.status == FinancingStatus.ACTIVE.value
        ]
        return InvestmentDetail(
            investment=InvestmentInfo.from_model(investment),
            active_financings=tuple(FinancingInfo.from_model(f) for f in active),
            credit_available=investment.credit_limit - investment.credit_used,
            outstanding_debt=sum((f.remaining for f in active), ZERO),
        )

    def list_investments(
        self,
        *,
        status: str | None = None,
        user_id: UUID | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 20,
    ) -> InvestmentPage:
        if sort_by not in _SORTABLE:
            raise ValueError(f"Cannot sort investments by {sort_by!r}")
        if sort_order not in ("asc", "desc"):
            raise ValueError(f"sort_order must be 'asc' or 'desc', got {sort_order!r}")
        offset = page_offset(page, limit)

        conditions = []
        if status is not None:
            conditions.append(Investment.status == status)
        if user_id is not None:
            conditions.append(Investment.user_id == user_id)

        total = self.session.execute(
            select(func.count(Investment.id)).where(*conditions)
        ).scalar_one()

        column = _SORTABLE[sort_by]
        ordering = column.asc() if sort_order == "asc" else column.desc()
        rows = self.session.execute(
            select(Investment)
            .where(*conditions)
            .order_by(ordering, Investment.id)
            .offset(offset)
            .limit(limit)
        ).scalars()

        return InvestmentPage(
            items=tuple(InvestmentInfo.from_model(i) for i in rows),
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages(total, limit),
        )

    def get_stats(self) -> InvestmentStats:
        active = InvestmentStatus.ACTIVE.value
        count, invested, used, limit, investors = self.session.execute(
            select(
                func.count(Investment.id),
                func.sum(Investment.current_value),
                func.sum(Investment.credit_used),
                func.sum(Investment.credit_limit),
                func.count(func.distinct(Investment.user_id)),
            ).where(Investment.status == active)
        ).one()
        liquidated = self.session.execute(
            select(func.count(Investment.id)).where(Investment.status != active)
        ).scalar_one()

        total_invested = money_or_zero(invested)
        average = round_money(total_invested / investors) if investors else ZERO
        return InvestmentStats(
            total_active=count,
            total_liquidated=liquidated,
            total_invested=total_invested,
            total_credit_used=money_or_zero(used),
            total_credit_limit=money_or_zero(limit),
            unique_investors=investors,
            average_per_investor=average,
        )
