"""
Module: lending_kernel.selectors.financing_selector
Responsibility: Read-only financing queries for the backoffice: detail with
    installment statistics, filtered and paginated listing, portfolio
    statistics (including the non-performing-loan ratio) and installments
    coming due.
Architecture position: Kernel > Selectors.

Failure modes:
    - FinancingNotFoundError from get_detail for an unknown id.
    - ValueError for an unknown sort field or nonsense paging.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import exists, func, select
from sqlalchemy.orm import Session

from lending_kernel.domain.dtos import FinancingInfo, InstallmentInfo, InvestmentInfo
from lending_kernel.domain.money import HUNDRED, ZERO, round_money
from lending_kernel.exceptions import FinancingNotFoundError
from lending_kernel.models.financing import Financing, FinancingStatus
from lending_kernel.models.installment import Installment, InstallmentStatus
from lending_kernel.selectors.base import (
    BaseSelector,
    money_or_zero,
    page_offset,
    total_pages,
)

_SORTABLE = {
    "created_at": Financing.created_at,
    "started_at": Financing.started_at,
    "amount": Financing.amount,
    "remaining": Financing.remaining,
    "next_due_date": Financing.next_due_date,
}


@dataclass(frozen=True)
class InstallmentCounts:
    total: int
    paid: int
    overdue: int
    pending: int


@dataclass(frozen=True)
class FinancingDetail:
    """A financing with its schedule, collateral and running figures."""

    financing: FinancingInfo
    investment: InvestmentInfo
    installments: tuple[InstallmentInfo, ...]
    counts: InstallmentCounts
    total_paid: Decimal
    total_overdue: Decimal
    total_penalties: Decimal
    next_due_date: date | None


@dataclass(frozen=True)
class FinancingListItem:
    financing: FinancingInfo
    counts: InstallmentCounts


@dataclass(frozen=True)
class FinancingPage:
    items: tuple[FinancingListItem, ...]
    page: int
    limit: int
    total: int
    total_pages: int


@dataclass(frozen=True)
class FinancingStats:
    """Portfolio figures over all financings."""

    total_active: int
    total_completed: int
    total_defaulted: int
    total_financed: Decimal
    total_debt: Decimal
    total_penalties: Decimal
    overdue_installments: int
    overdue_amount: Decimal
    npl_ratio: Decimal


@dataclass(frozen=True)
class UpcomingInstallment:
    installment: InstallmentInfo
    user_id: UUID
    financing_id: UUID


def _counts(installments) -> InstallmentCounts:
    statuses = [i.status for i in installments]
    return InstallmentCounts(
        total=len(statuses),
        paid=statuses.count(InstallmentStatus.PAID.value),
        overdue=statuses.count(InstallmentStatus.OVERDUE.value),
        pending=statuses.count(InstallmentStatus.PENDING.value),
    )


class FinancingSelector(BaseSelector[Financing]):
    """
    Selector for financing listings and portfolio figures.

    Guarantees:
        - Amounts are Decimals with two fraction digits.
        - The NPL ratio is overdue installment debt over the principal of
          ACTIVE financings, as a percentage rounded half-up to 2 places
          (0.00 with no active principal).
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def get_detail(self, financing_id: UUID) -> FinancingDetail:
        financing = self.session.get(Financing, financing_id)
        if financing is None:
            raise FinancingNotFoundError(str(financing_id))

        installments = list(financing.installments)
        paid = [i for i in installments if i.status == InstallmentStatus.PAID.value]
        overdue = [i for i in installments if i.status == InstallmentStatus.OVERDUE.value]
        upcoming = next((i for i in installments if i.is_outstanding), None)

        return FinancingDetail(
            financing=FinancingInfo.from_model(financing),
            investment=InvestmentInfo.from_model(financing.investment),
            installments=tuple(InstallmentInfo.from_model(i) for i in installments),
            counts=_counts(installments),
            total_paid=sum((i.amount for i in paid), ZERO),
            total_overdue=sum((i.total_due for i in overdue), ZERO),
            total_penalties=sum((i.penalty_amount for i in installments), ZERO),
            next_due_date=upcoming.due_date if upcoming is not None else None,
        )

    def list_financings(
        self,
        *,
        status: str | None = None,
        user_id: UUID | None = None,
        investment_id: UUID | None = None,
        has_overdue: bool | None = None,
        min_amount: Decimal | None = None,
        max_amount: Decimal | None = None,
        started_from: datetime | None = None,
        started_to: datetime | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 20,
    ) -> FinancingPage:
        """
        Filtered, sorted, paginated financings.

        ``has_overdue=True`` keeps financings with at least one OVERDUE
        installment; ``False`` keeps those with none.
        """
        if sort_by not in _SORTABLE:
            raise ValueError(f"Cannot sort financings by {sort_by!r}")
        if sort_order not in ("asc", "desc"):
            raise ValueError(f"sort_order must be 'asc' or 'desc', got {sort_order!r}")
        offset = page_offset(page, limit)

        conditions = []
        if status is not None:
            conditions.append(Financing.status == status)
        if user_id is not None:
            conditions.append(Financing.user_id == user_id)
        if investment_id is not None:
            conditions.append(Financing.investment_id == investment_id)
        if min_amount is not None:
            conditions.append(Financing.amount >= min_amount)
        if max_amount is not None:
            conditions.append(Financing.amount <= max_amount)
        if started_from is not None:
            conditions.append(Financing.started_at >= started_from)
        if started_to is not None:
            conditions.append(Financing.started_at <= started_to)
        if has_overdue is not None:
            overdue_exists = exists().where(
                Installment.financing_id == Financing.id,
                Installment.status == InstallmentStatus.OVERDUE.value,
            )
            conditions.append(overdue_exists if has_overdue else ~overdue_exists)

        total = self.session.execute(
            select(func.count(Financing.id)).where(*conditions)
        ).scalar_one()

        column = _SORTABLE[sort_by]
        ordering = column.asc() if sort_order == "asc" else column.desc()
        rows = self.session.execute(
            select(Financing)
            .where(*conditions)
            .order_by(ordering, Financing.id)
            .offset(offset)
            .limit(limit)
        ).scalars()

        items = tuple(
            FinancingListItem(
                financing=FinancingInfo.from_model(f),
                counts=_counts(f.installments),
            )
            for f in rows
        )
        return FinancingPage(
            items=items,
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages(total, limit),
        )

    def _count_by_status(self, *statuses: str) -> int:
        return self.session.execute(
            select(func.count(Financing.id)).where(Financing.status.in_(statuses))
        ).scalar_one()

    def get_stats(self) -> FinancingStats:
        active = FinancingStatus.ACTIVE.value
        financed, debt, penalties = self.session.execute(
            select(
                func.sum(Financing.amount),
                func.sum(Financing.remaining),
                func.sum(Financing.penalty_amount),
            ).where(Financing.status == active)
        ).one()
        overdue_count, overdue_sum = self.session.execute(
            select(func.count(Installment.id), func.sum(Installment.total_due)).where(
                Installment.status == InstallmentStatus.OVERDUE.value
            )
        ).one()

        total_financed = money_or_zero(financed)
        overdue_amount = money_or_zero(overdue_sum)
        if total_financed > ZERO:
            npl_ratio = round_money(overdue_amount / total_financed * HUNDRED)
        else:
            npl_ratio = ZERO

        return FinancingStats(
            total_active=self._count_by_status(active),
            total_completed=self._count_by_status(FinancingStatus.COMPLETED.value),
            total_defaulted=self._count_by_status(
                FinancingStatus.DEFAULTED.value, FinancingStatus.LIQUIDATED.value
            ),
            total_financed=total_financed,
            total_debt=money_or_zero(debt),
            total_penalties=money_or_zero(penalties),
            overdue_installments=overdue_count,
            overdue_amount=overdue_amount,
            npl_ratio=npl_ratio,
        )

    def upcoming_due(self, today: date, days: int = 7) -> list[UpcomingInstallment]:
        """PENDING installments due on or before ``today + days``, soonest first."""
        horizon = today + timedelta(days=days)
        rows = self.session.execute(
            select(Installment, Financing.user_id)
            .join(Financing, Installment.financing_id == Financing.id)
            .where(
                Installment.status == InstallmentStatus.PENDING.value,
                Installment.due_date <= horizon,
            )
            .order_by(Installment.due_date, Installment.number)
        ).all()
        return [
            UpcomingInstallment(
                installment=InstallmentInfo.from_model(installment),
                user_id=user_id,
                financing_id=installment.financing_id,
            )
            for installment, user_id in rows
        ]
