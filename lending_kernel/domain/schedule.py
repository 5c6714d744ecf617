"""
Schedule -- pure amortization schedule construction.

Responsibility:
    Turns (amount, installment count, first due date) into the list of
    installments a financing is created with, and validates requested terms
    against the configured limits.  Also backs the side-effect-free financing
    simulation shown to operators before a draw.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - The schedule sums exactly to the financed amount: equal rounded
      installments, the last one absorbing the rounding remainder, so the
      financing's remaining balance always equals the sum of its
      outstanding installments.
    - Installment numbers are 1..n with no gaps.
    - Due dates are monthly, on the configured due day (clamped to the
      month's length).
"""

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Sequence

from lending_kernel.domain.money import ZERO, round_money, split_evenly, to_money
from lending_kernel.exceptions import InvalidFinancingTermsError


@dataclass(frozen=True)
class ScheduleLine:
    """One planned installment."""

    number: int
    amount: Decimal
    due_date: date


@dataclass(frozen=True)
class FinancingSimulation:
    """Preview of a financing's repayment plan (0% interest)."""

    amount: Decimal
    installment_count: int
    installment_amount: Decimal
    total_amount: Decimal
    schedule: tuple[ScheduleLine, ...]


@dataclass(frozen=True)
class FinancingLimits:
    """Configured bounds on financing terms."""

    min_amount: Decimal
    min_installments: int
    max_installments: int
    due_day: int = 10


def add_months(start: date, months: int) -> date:
    """Same day ``months`` later, clamped to the target month's last day."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(start.day, last_day))


def first_due_date(today: date, due_day: int) -> date:
    """The due day of the month after ``today``."""
    if not 1 <= due_day <= 31:
        raise InvalidFinancingTermsError(f"due day {due_day} is not a day of month")
    next_month = add_months(today.replace(day=1), 1)
    last_day = calendar.monthrange(next_month.year, next_month.month)[1]
    return next_month.replace(day=min(due_day, last_day))


def monthly_due_date(first_due: date, months: int, due_day: int) -> date:
    """The due day ``months`` after ``first_due``'s month, clamped to that month."""
    month_start = add_months(first_due.replace(day=1), months)
    last_day = calendar.monthrange(month_start.year, month_start.month)[1]
    return month_start.replace(day=min(due_day, last_day))


def validate_terms(amount: Decimal, installment_count: int, limits: FinancingLimits) -> None:
    """
    Check requested terms against the configured limits.

    Raises:
        InvalidFinancingTermsError: count out of range or amount below minimum.
    """
    if not limits.min_installments <= installment_count <= limits.max_installments:
        raise InvalidFinancingTermsError(
            f"installment count must be between {limits.min_installments} and "
            f"{limits.max_installments}, got {installment_count}"
        )
    if amount < limits.min_amount:
        raise InvalidFinancingTermsError(
            f"minimum financing amount is {limits.min_amount}, got {amount}"
        )


def build_schedule(
    amount: Decimal,
    installment_count: int,
    first_due: date,
    overrides: Sequence[Decimal] | None = None,
    due_day: int | None = None,
) -> tuple[ScheduleLine, ...]:
    """
    Build the installment plan for a financing.

    Args:
        amount: Financed principal (already validated, 2 fraction digits).
        installment_count: Number of installments (>= 1).
        first_due: Due date of installment 1; later ones are monthly.
        overrides: Optional explicit per-installment amounts.  Must have
            ``installment_count`` positive entries summing to ``amount``.
        due_day: Day of month later installments fall on.  Defaults to
            ``first_due``'s day; pass it when ``first_due`` was clamped to a
            short month.

    Raises:
        InvalidFinancingTermsError: bad count, or overrides that do not fit.
    """
    if installment_count < 1:
        raise InvalidFinancingTermsError("installment count must be at least 1")

    if overrides is not None:
        amounts = [to_money(a) for a in overrides]
        if len(amounts) != installment_count:
            raise InvalidFinancingTermsError(
                f"{len(amounts)} override amounts given for {installment_count} installments"
            )
        if sum(amounts, ZERO) != amount:
            raise InvalidFinancingTermsError(
                f"override amounts sum to {sum(amounts, ZERO)}, expected {amount}"
            )
    else:
        amounts = split_evenly(amount, installment_count)

    if any(a <= ZERO for a in amounts):
        raise InvalidFinancingTermsError(
            f"amount {amount} cannot be split into {installment_count} positive installments"
        )

    day = due_day if due_day is not None else first_due.day
    return tuple(
        ScheduleLine(number=i + 1, amount=a, due_date=monthly_due_date(first_due, i, day))
        for i, a in enumerate(amounts)
    )


def simulate(
    amount: Decimal,
    installment_count: int,
    today: date,
    limits: FinancingLimits,
) -> FinancingSimulation:
    """Validate terms and preview the schedule without touching the store."""
    amount = to_money(amount)
    validate_terms(amount, installment_count, limits)
    schedule = build_schedule(
        amount,
        installment_count,
        first_due_date(today, limits.due_day),
        due_day=limits.due_day,
    )
    installment_amount = round_money(amount / installment_count)
    return FinancingSimulation(
        amount=amount,
        installment_count=installment_count,
        installment_amount=installment_amount,
        total_amount=sum((line.amount for line in schedule), ZERO),
        schedule=schedule,
    )
