"""
InstallmentEngine -- the per-installment state machine.

Responsibility:
    Applies payment, penalty waiver, due-date extension and overdue marking
    to a single Installment row, and builds the schedule a new financing is
    created with.  Knows nothing about the parent financing's balance; the
    lifecycle service adjusts that in the same unit of work.

Architecture position:
    Kernel > Services -- operates on ORM instances already loaded by the
    caller; the only collaborator is the injected Clock.

State machine:
    PENDING -> PAID | OVERDUE | DROPPED
    OVERDUE -> PAID | DROPPED
    PAID, DROPPED  terminal
    extend_due_date is the only transition back into PENDING.

Invariants enforced:
    - total_due = amount + penalty_amount after every transition.
    - A PAID installment is never paid, waived or extended again.
"""

from datetime import date
from decimal import Decimal
from typing import Sequence

from lending_kernel.domain.clock import Clock, SystemClock
from lending_kernel.domain.dtos import status_value
from lending_kernel.domain.money import ZERO, percent_of
from lending_kernel.domain.schedule import ScheduleLine
from lending_kernel.domain.schedule import build_schedule as _build_schedule
from lending_kernel.domain.schedule import first_due_date as _first_due_date
from lending_kernel.exceptions import (
    AlreadyPaidError,
    InstallmentNotPayableError,
    NoPenaltyToWaiveError,
)
from lending_kernel.logging_config import get_logger
from lending_kernel.models.installment import Installment, InstallmentStatus

logger = get_logger("services.installment")


class InstallmentEngine:
    """
    Transitions for one installment.

    Contract:
        Each method validates the current status first and raises without
        mutating anything when the transition is not allowed.
    """

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()

    def ensure_actionable(self, installment: Installment) -> None:
        if installment.status == InstallmentStatus.PAID:
            raise AlreadyPaidError(str(installment.id), installment.number)
        if installment.status == InstallmentStatus.DROPPED:
            raise InstallmentNotPayableError(
                str(installment.id), status_value(installment.status)
            )

    def pay(self, installment: Installment) -> None:
        """
        Mark the installment PAID at clock time.

        Raises:
            AlreadyPaidError: already PAID.
            InstallmentNotPayableError: DROPPED by a liquidation.
        """
        self.ensure_actionable(installment)
        installment.status = InstallmentStatus.PAID.value
        installment.paid_at = self._clock.now()

    def waive_penalty(self, installment: Installment) -> Decimal:
        """
        Remove the installment's penalty; status is unchanged.

        Returns:
            The amount waived.

        Raises:
            AlreadyPaidError / InstallmentNotPayableError: terminal installment.
            NoPenaltyToWaiveError: penalty_amount is zero.
        """
        self.ensure_actionable(installment)
        if installment.penalty_amount <= ZERO:
            raise NoPenaltyToWaiveError(str(installment.id))
        waived = installment.penalty_amount
        installment.penalty_amount = ZERO
        installment.recompute_total()
        return waived

    def extend_due_date(self, installment: Installment, new_date: date) -> date:
        """
        Move the due date and put the installment back to PENDING.

        Returns:
            The previous due date.
        """
        self.ensure_actionable(installment)
        previous = installment.due_date
        installment.due_date = new_date
        installment.status = InstallmentStatus.PENDING.value
        return previous

    def mark_overdue(self, installment: Installment, penalty_rate: Decimal) -> Decimal:
        """
        Roll a PENDING installment to OVERDUE.

        The penalty (``amount * penalty_rate / 100``) is applied once; an
        installment that already carries a penalty keeps it unchanged.

        Returns:
            The penalty added by this call (zero if one was already applied).

        Raises:
            AlreadyPaidError / InstallmentNotPayableError: terminal installment.
            InstallmentNotPayableError: already OVERDUE.
        """
        self.ensure_actionable(installment)
        if installment.status != InstallmentStatus.PENDING:
            raise InstallmentNotPayableError(
                str(installment.id), status_value(installment.status)
            )

        added = ZERO
        if installment.penalty_amount <= ZERO:
            added = percent_of(installment.amount, penalty_rate)
            installment.penalty_amount = added
            installment.recompute_total()
        installment.status = InstallmentStatus.OVERDUE.value
        logger.debug(
            "installment_overdue",
            extra={"installment_id": str(installment.id), "penalty_added": added},
        )
        return added

    @staticmethod
    def first_due_date(today: date, due_day: int) -> date:
        return _first_due_date(today, due_day)

    @staticmethod
    def build_schedule(
        amount: Decimal,
        installment_count: int,
        first_due: date,
        overrides: Sequence[Decimal] | None = None,
        due_day: int | None = None,
    ) -> tuple[ScheduleLine, ...]:
        return _build_schedule(amount, installment_count, first_due, overrides, due_day)
