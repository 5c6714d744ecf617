"""
CreditEngine -- credit limit arithmetic on collateral investments.

Responsibility:
    Computes an investment's credit limit from its current value, and moves
    credit_used up (reserve, on a new financing) and down (release, when a
    financing completes).  Refuses any change that would leave
    credit_used above credit_limit.

Architecture position:
    Kernel > Services -- operates on ORM instances already loaded (and
    locked) by the caller; performs no queries of its own.

Invariants enforced:
    - 0 <= credit_used <= credit_limit after every operation.
    - credit_limit = round_half_up(current_value * pct / 100, 2) whenever it
      is recomputed.

Failure modes:
    - CreditViolationError: a value adjustment would put the limit below the
      credit already used.
    - InsufficientCreditError: a draw exceeds the available credit.
    - InvariantViolationError: a release larger than the credit used.
    - InvestmentNotActiveError / InvalidAmountError on bad inputs.
"""

from decimal import Decimal

from lending_kernel.domain.money import ZERO, percent_of, to_money
from lending_kernel.exceptions import (
    CreditViolationError,
    InsufficientCreditError,
    InvalidAmountError,
    InvariantViolationError,
    InvestmentNotActiveError,
)
from lending_kernel.invariants import LedgerInvariant, check_credit_within_limit
from lending_kernel.logging_config import get_logger
from lending_kernel.models.investment import Investment, InvestmentStatus

logger = get_logger("services.credit")


class CreditEngine:
    """
    Credit arithmetic over an Investment row.

    Guarantees:
        - Every mutating method either applies the whole change or raises
          before touching the instance.
    """

    @staticmethod
    def compute_credit_limit(current_value: Decimal, financing_percentage: Decimal) -> Decimal:
        """current_value * financing_percentage / 100, rounded half-up."""
        return percent_of(current_value, financing_percentage)

    @staticmethod
    def available_credit(investment: Investment) -> Decimal:
        return investment.credit_limit - investment.credit_used

    def adjust_investment_value(
        self,
        investment: Investment,
        new_value: Decimal,
        financing_percentage: Decimal,
    ) -> Decimal:
        """
        Set a new collateral value and recompute the credit limit.

        Returns:
            The new credit limit.

        Raises:
            InvalidAmountError: new_value is negative.
            InvestmentNotActiveError: the investment is liquidated.
            CreditViolationError: new limit < credit already used.
        """
        new_value = to_money(new_value)
        if new_value < ZERO:
            raise InvalidAmountError("current_value", new_value, "must not be negative")
        if investment.status != InvestmentStatus.ACTIVE:
            raise InvestmentNotActiveError(str(investment.id), investment.status)

        new_limit = self.compute_credit_limit(new_value, financing_percentage)
        if new_limit < investment.credit_used:
            logger.warning(
                "credit_violation",
                extra={
                    "investment_id": str(investment.id),
                    "new_credit_limit": new_limit,
                    "credit_used": investment.credit_used,
                },
            )
            raise CreditViolationError(str(investment.id), new_limit, investment.credit_used)

        investment.current_value = new_value
        investment.credit_limit = new_limit
        check_credit_within_limit(investment)
        return new_limit

    def reserve_credit(self, investment: Investment, draw_amount: Decimal) -> None:
        """
        Draw ``draw_amount`` against the investment's limit.

        Raises:
            InvalidAmountError: draw_amount is not positive.
            InsufficientCreditError: credit_used + draw_amount > credit_limit.
        """
        if draw_amount <= ZERO:
            raise InvalidAmountError("amount", draw_amount, "must be positive")
        available = self.available_credit(investment)
        if draw_amount > available:
            raise InsufficientCreditError(str(investment.id), draw_amount, available)

        investment.credit_used = investment.credit_used + draw_amount
        check_credit_within_limit(investment)
        logger.debug(
            "credit_reserved",
            extra={"investment_id": str(investment.id), "amount": draw_amount},
        )

    def release_credit(self, investment: Investment, amount: Decimal) -> None:
        """
        Return ``amount`` of credit to the investment.

        Raises:
            InvariantViolationError: amount exceeds credit_used.
        """
        if amount > investment.credit_used:
            raise InvariantViolationError(
                LedgerInvariant.SINGLE_CREDIT_RELEASE.value,
                str(investment.id),
                f"release of {amount} exceeds credit used {investment.credit_used}",
            )
        investment.credit_used = investment.credit_used - amount
        logger.debug(
            "credit_released",
            extra={"investment_id": str(investment.id), "amount": amount},
        )
