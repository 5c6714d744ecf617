"""
Ledger Invariants Contract.

These invariants are not configurable. No rate, limit or operator action may
relax them. The declarations live here; the checks below are called by the
lifecycle services on every read-for-write and after every mutation, and the
database check constraints back the simpler ones.
"""

from decimal import Decimal
from enum import Enum, unique

from lending_kernel.exceptions import InvariantViolationError
from lending_kernel.models.financing import Financing, FinancingStatus
from lending_kernel.models.installment import OUTSTANDING_STATUSES
from lending_kernel.models.investment import Investment


@unique
class LedgerInvariant(str, Enum):
    """Structural guarantees of the lending ledger."""

    CREDIT_WITHIN_LIMIT = "credit_within_limit"
    """0 <= credit_used <= credit_limit on every investment. Enforced by the
    Credit Engine and DB check constraints."""

    FINANCING_BALANCE = "financing_balance"
    """While a financing is ACTIVE its remaining balance equals the sum of
    total_due over installments that are neither PAID nor DROPPED."""

    NON_NEGATIVE_REMAINING = "non_negative_remaining"
    """A financing never owes a negative amount."""

    SINGLE_CREDIT_RELEASE = "single_credit_release"
    """A financing's credit is released exactly once, when it completes."""


ALL_LEDGER_INVARIANTS: frozenset[LedgerInvariant] = frozenset(LedgerInvariant)

# The kernel package may not import from these packages.
# Enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "lending_services",
    "lending_config",
)


def check_credit_within_limit(investment: Investment) -> None:
    """Raise InvariantViolationError unless 0 <= credit_used <= credit_limit."""
    if investment.credit_used < 0 or investment.credit_used > investment.credit_limit:
        raise InvariantViolationError(
            LedgerInvariant.CREDIT_WITHIN_LIMIT.value,
            str(investment.id),
            f"credit_used {investment.credit_used} outside [0, {investment.credit_limit}]",
        )


def outstanding_total(financing: Financing) -> Decimal:
    """Sum of total_due over the financing's outstanding installments."""
    return sum(
        (i.total_due for i in financing.installments if i.status in OUTSTANDING_STATUSES),
        Decimal("0"),
    )


def check_financing_balance(financing: Financing) -> None:
    """
    Raise InvariantViolationError if an ACTIVE financing's remaining balance
    disagrees with its outstanding installments, or any financing owes a
    negative amount.
    """
    if financing.remaining < 0:
        raise InvariantViolationError(
            LedgerInvariant.NON_NEGATIVE_REMAINING.value,
            str(financing.id),
            f"remaining is {financing.remaining}",
        )
    if financing.status != FinancingStatus.ACTIVE:
        return
    expected = outstanding_total(financing)
    if financing.remaining != expected:
        raise InvariantViolationError(
            LedgerInvariant.FINANCING_BALANCE.value,
            str(financing.id),
            f"remaining {financing.remaining} != outstanding installments {expected}",
        )
