"""
Typed Exception Hierarchy for the Lending Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Operators act on real money. When an action is refused they need to know
exactly why (the computed shortfall, the credit already drawn), and request
handlers need to map the refusal to a response without parsing messages.

Every exception therefore carries:
  1. a ``code`` class attribute (machine-readable, API-safe)
  2. a ``kind`` class attribute (validation | precondition | concurrency |
     integrity), which tells the caller what to do next
  3. structured attributes with the figures involved (Decimals, never floats)

Example:
    try:
        operations.force_liquidate_financing(financing_id, operator)
    except InsufficientCollateralError as e:
        respond(code=e.code, shortfall=str(e.shortfall))
    except ConcurrentModificationError:
        retry()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LendingKernelError (base)
    |
    +-- LendingValidationError                 kind = validation
    |   +-- InvalidReasonError
    |   +-- InvalidIdentifierError
    |   +-- InvalidAmountError
    |   +-- InvalidFinancingTermsError
    |   +-- InvalidPaymentAmountError
    |
    +-- PreconditionError                      kind = precondition
    |   +-- InsufficientCreditError
    |   +-- CreditViolationError
    |   +-- InsufficientCollateralError
    |   +-- AlreadyPaidError
    |   +-- InstallmentNotPayableError
    |   +-- NoPenaltyToWaiveError
    |   +-- ActiveFinancingsExistError
    |   +-- NothingToLiquidateError
    |   +-- InvestmentNotActiveError
    |   +-- FinancingNotActiveError
    |
    +-- ConcurrencyError                       kind = concurrency
    |   +-- ConcurrentModificationError
    |
    +-- LedgerIntegrityError                   kind = integrity
        +-- EntityNotFoundError
        |   +-- InvestmentNotFoundError
        |   +-- FinancingNotFoundError
        |   +-- InstallmentNotFoundError
        |   +-- AccountNotFoundError
        +-- InvariantViolationError
        +-- RateNotConfiguredError

===============================================================================
HANDLING PATTERNS
===============================================================================

- validation   -> reject the request, nothing was read or written
- precondition -> show the operator the figures; the unit of work rolled back
- concurrency  -> transient; the caller may retry the whole operation
- integrity    -> fatal for the request; investigate, never retry blindly
"""

from decimal import Decimal


class LendingKernelError(Exception):
    """
    Base exception for all lending kernel errors.

    All subclasses must define ``code`` and inherit a ``kind``.
    """

    code: str = "LENDING_KERNEL_ERROR"
    kind: str = "integrity"

    def to_dict(self) -> dict:
        """Machine-readable rendering for boundaries and audit records."""
        detail = {
            k: (str(v) if isinstance(v, Decimal) else v)
            for k, v in vars(self).items()
            if not k.startswith("_")
        }
        return {
            "code": self.code,
            "kind": self.kind,
            "message": str(self),
            "detail": detail,
        }


# =============================================================================
# Validation
# =============================================================================


class LendingValidationError(LendingKernelError):
    """Input rejected before the ledger store is touched."""

    code: str = "VALIDATION_ERROR"
    kind: str = "validation"


class InvalidReasonError(LendingValidationError):
    """Mutating calls require a non-empty operator reason."""

    code: str = "INVALID_REASON"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"A non-empty reason is required for {operation}")


class InvalidIdentifierError(LendingValidationError):
    """An entity id is not a valid UUID."""

    code: str = "INVALID_IDENTIFIER"

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = str(value)
        super().__init__(f"Invalid identifier for {field}: {value!r}")


class InvalidAmountError(LendingValidationError):
    """A monetary amount is negative, zero where forbidden, or below a minimum."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, amount: Decimal, reason: str):
        self.field = field
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid {field} {amount}: {reason}")


class InvalidFinancingTermsError(LendingValidationError):
    """Requested financing terms fall outside the configured limits."""

    code: str = "INVALID_FINANCING_TERMS"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid financing terms: {reason}")


class InvalidPaymentAmountError(LendingValidationError):
    """A payment must settle exactly the installment's total due."""

    code: str = "INVALID_PAYMENT_AMOUNT"

    def __init__(self, installment_id: str, expected: Decimal, received: Decimal):
        self.installment_id = installment_id
        self.expected = expected
        self.received = received
        super().__init__(
            f"Payment for installment {installment_id} must equal total due "
            f"{expected}, received {received}"
        )


# =============================================================================
# Preconditions (business rules)
# =============================================================================


class PreconditionError(LendingKernelError):
    """A business rule refused the operation; no state was changed."""

    code: str = "PRECONDITION_FAILED"
    kind: str = "precondition"


class InsufficientCreditError(PreconditionError):
    """Drawing the amount would exceed the investment's credit limit."""

    code: str = "INSUFFICIENT_CREDIT"

    def __init__(
        self,
        investment_id: str,
        requested: Decimal,
        available: Decimal,
    ):
        self.investment_id = investment_id
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        super().__init__(
            f"Insufficient credit on investment {investment_id}: "
            f"requested {requested}, available {available}"
        )


class CreditViolationError(PreconditionError):
    """A value adjustment would leave existing draws above the new limit."""

    code: str = "CREDIT_VIOLATION"

    def __init__(
        self,
        investment_id: str,
        new_credit_limit: Decimal,
        credit_used: Decimal,
    ):
        self.investment_id = investment_id
        self.new_credit_limit = new_credit_limit
        self.credit_used = credit_used
        super().__init__(
            f"New credit limit {new_credit_limit} for investment {investment_id} "
            f"would be below credit already used {credit_used}"
        )


class InsufficientCollateralError(PreconditionError):
    """The collateral value does not cover remaining debt plus penalty."""

    code: str = "INSUFFICIENT_COLLATERAL"

    def __init__(
        self,
        financing_id: str,
        collateral_value: Decimal,
        total_due: Decimal,
    ):
        self.financing_id = financing_id
        self.collateral_value = collateral_value
        self.total_due = total_due
        self.shortfall = total_due - collateral_value
        super().__init__(
            f"Investment value {collateral_value} does not cover debt plus "
            f"penalty {total_due} for financing {financing_id}"
        )


class AlreadyPaidError(PreconditionError):
    """The installment is already PAID."""

    code: str = "ALREADY_PAID"

    def __init__(self, installment_id: str, number: int):
        self.installment_id = installment_id
        self.number = number
        super().__init__(f"Installment {number} ({installment_id}) is already paid")


class InstallmentNotPayableError(PreconditionError):
    """The installment was dropped by a liquidation and cannot be acted on."""

    code: str = "INSTALLMENT_NOT_PAYABLE"

    def __init__(self, installment_id: str, status: str):
        self.installment_id = installment_id
        self.status = status
        super().__init__(
            f"Installment {installment_id} cannot be modified in status {status}"
        )


class NoPenaltyToWaiveError(PreconditionError):
    """The installment carries no penalty."""

    code: str = "NO_PENALTY_TO_WAIVE"

    def __init__(self, installment_id: str):
        self.installment_id = installment_id
        super().__init__(f"Installment {installment_id} has no penalty to waive")


class ActiveFinancingsExistError(PreconditionError):
    """The investment still backs active financings."""

    code: str = "ACTIVE_FINANCINGS_EXIST"

    def __init__(self, investment_id: str, count: int):
        self.investment_id = investment_id
        self.count = count
        super().__init__(
            f"Investment {investment_id} has {count} active financing(s); "
            "they must be settled or liquidated first"
        )


class NothingToLiquidateError(PreconditionError):
    """Financing is ACTIVE but owes nothing (stale completion)."""

    code: str = "NOTHING_TO_LIQUIDATE"

    def __init__(self, financing_id: str):
        self.financing_id = financing_id
        super().__init__(
            f"Financing {financing_id} has no remaining balance to liquidate"
        )


class InvestmentNotActiveError(PreconditionError):
    """Operation requires an ACTIVE investment."""

    code: str = "INVESTMENT_NOT_ACTIVE"

    def __init__(self, investment_id: str, status: str):
        self.investment_id = investment_id
        self.status = status
        super().__init__(f"Investment {investment_id} is {status}, not ACTIVE")


class FinancingNotActiveError(PreconditionError):
    """Operation requires an ACTIVE financing."""

    code: str = "FINANCING_NOT_ACTIVE"

    def __init__(self, financing_id: str, status: str):
        self.financing_id = financing_id
        self.status = status
        super().__init__(f"Financing {financing_id} is {status}, not ACTIVE")


# =============================================================================
# Concurrency
# =============================================================================


class ConcurrencyError(LendingKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"
    kind: str = "concurrency"


class ConcurrentModificationError(ConcurrencyError):
    """Another transaction changed the same rows first; retry the operation."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(
            f"Concurrent modification detected: {detail}. The operation was "
            "rolled back and may be retried"
        )


# =============================================================================
# Integrity
# =============================================================================


class LedgerIntegrityError(LendingKernelError):
    """Fatal for the request; nothing was committed."""

    code: str = "INTEGRITY_ERROR"
    kind: str = "integrity"


class EntityNotFoundError(LedgerIntegrityError):
    """Base for missing-row errors."""

    code: str = "ENTITY_NOT_FOUND"
    entity_type: str = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class InvestmentNotFoundError(EntityNotFoundError):
    code: str = "INVESTMENT_NOT_FOUND"
    entity_type = "Investment"


class FinancingNotFoundError(EntityNotFoundError):
    code: str = "FINANCING_NOT_FOUND"
    entity_type = "Financing"


class InstallmentNotFoundError(EntityNotFoundError):
    code: str = "INSTALLMENT_NOT_FOUND"
    entity_type = "Installment"


class AccountNotFoundError(EntityNotFoundError):
    code: str = "ACCOUNT_NOT_FOUND"
    entity_type = "Account"


class InvariantViolationError(LedgerIntegrityError):
    """Persisted state violates a ledger invariant."""

    code: str = "INVARIANT_VIOLATION"

    def __init__(self, invariant: str, entity_id: str, detail: str):
        self.invariant = invariant
        self.entity_id = entity_id
        self.detail = detail
        super().__init__(f"Invariant {invariant} violated on {entity_id}: {detail}")


class RateNotConfiguredError(LedgerIntegrityError):
    """The rate provider has no usable value for a key."""

    code: str = "RATE_NOT_CONFIGURED"

    def __init__(self, key: str, raw_value: str | None = None):
        self.key = key
        self.raw_value = raw_value
        if raw_value is None:
            message = f"Rate '{key}' is not configured"
        else:
            message = f"Rate '{key}' has a non-numeric value: {raw_value!r}"
        super().__init__(message)
