"""
InvestmentService -- collateral investments: funding, revaluation, exit.

Responsibility:
    Creates collateral investments with their initial credit limit, applies
    operator value adjustments through the Credit Engine, and liquidates an
    investment voluntarily once nothing is drawn against it.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - credit_limit always derives from current_value and the configured
      financing percentage.
    - An investment backing an ACTIVE financing is never liquidated here;
      forced liquidation of such collateral goes through the financing.

Failure modes:
    - InvalidAmountError: amount below the configured minimum.
    - InvestmentNotFoundError / AccountNotFoundError.
    - InvestmentNotActiveError, ActiveFinancingsExistError,
      CreditViolationError.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from lending_kernel.domain.clock import Clock, SystemClock
from lending_kernel.domain.dtos import (
    InvestmentCreated,
    InvestmentInfo,
    InvestmentLiquidated,
    InvestmentValueAdjusted,
    status_value,
)
from lending_kernel.domain.money import ZERO, parse_amount
from lending_kernel.domain.rates import RateKey, RateProvider
from lending_kernel.exceptions import (
    AccountNotFoundError,
    ActiveFinancingsExistError,
    InvalidAmountError,
    InvariantViolationError,
    InvestmentNotActiveError,
    InvestmentNotFoundError,
)
from lending_kernel.invariants import LedgerInvariant
from lending_kernel.logging_config import get_logger
from lending_kernel.models.account import Account
from lending_kernel.models.financing import Financing, FinancingStatus
from lending_kernel.models.investment import Investment, InvestmentStatus
from lending_kernel.models.transaction import (
    LedgerTransaction,
    TransactionStatus,
    TransactionType,
)
from lending_kernel.services.base import BaseService
from lending_kernel.services.credit_engine import CreditEngine

logger = get_logger("services.investment")


class InvestmentService(BaseService[Investment]):
    """
    Investment-level operator actions.

    Contract:
        Same as FinancingLifecycleService: locked reads, flush-only writes,
        frozen results with before/after snapshots.
    """

    def __init__(
        self,
        session: Session,
        rates: RateProvider,
        clock: Clock | None = None,
        credit_engine: CreditEngine | None = None,
    ):
        super().__init__(session)
        self._rates = rates
        self._clock = clock or SystemClock()
        self._credit = credit_engine or CreditEngine()

    def _lock_investment(self, investment_id: UUID) -> Investment:
        investment = self.session.execute(
            select(Investment).where(Investment.id == investment_id).with_for_update()
        ).scalar_one_or_none()
        if investment is None:
            raise InvestmentNotFoundError(str(investment_id))
        return investment

    def _active_financing_count(self, investment: Investment) -> int:
        return self.session.execute(
            select(func.count(Financing.id)).where(
                Financing.investment_id == investment.id,
                Financing.status == FinancingStatus.ACTIVE.value,
            )
        ).scalar_one()

    def _record_transaction(
        self,
        user_id: UUID,
        tx_type: TransactionType,
        amount: Decimal,
        actor_id: UUID,
        details: dict,
    ) -> None:
        self.session.add(
            LedgerTransaction(
                user_id=user_id,
                type=tx_type.value,
                amount=amount,
                fee=ZERO,
                total=amount,
                status=TransactionStatus.COMPLETED.value,
                completed_at=self._clock.now(),
                details=details,
                created_by_id=actor_id,
            )
        )

    def create_investment(
        self,
        user_id: UUID,
        amount: Decimal | int | str,
        actor_id: UUID,
        reason: str | None = None,
    ) -> InvestmentCreated:
        """
        Fund a new ACTIVE investment for a user.

        The credit limit is computed from the configured financing
        percentage and the collateral yield rate recorded for reference.
        An INVESTMENT_DEPOSIT transaction is written.
        """
        amount = parse_amount("amount", amount)
        minimum = self._rates.get_decimal(RateKey.INVESTMENT_MIN_AMOUNT)
        if amount < minimum:
            raise InvalidAmountError("amount", amount, f"minimum investment is {minimum}")

        credit_limit = self._credit.compute_credit_limit(
            amount, self._rates.financing_percentage()
        )
        investment = Investment(
            user_id=user_id,
            principal=amount,
            current_value=amount,
            credit_limit=credit_limit,
            credit_used=ZERO,
            annual_rate=self._rates.get_decimal(RateKey.FCI_ANNUAL_RATE),
            status=InvestmentStatus.ACTIVE.value,
            started_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(investment)
        self.session.flush()

        self._record_transaction(
            user_id,
            TransactionType.INVESTMENT_DEPOSIT,
            amount,
            actor_id,
            {
                "investment_id": str(investment.id),
                "created_by": "backoffice",
                "employee_id": str(actor_id),
                "reason": reason,
            },
        )
        self.session.flush()

        logger.info(
            "investment_created",
            extra={
                "investment_id": str(investment.id),
                "amount": amount,
                "credit_limit": credit_limit,
            },
        )

        info = InvestmentInfo.from_model(investment)
        return InvestmentCreated(investment=info, after={"investment": info.to_dict()})

    def adjust_value(
        self,
        investment_id: UUID,
        new_value: Decimal | int | str,
        actor_id: UUID,
        reason: str | None = None,
    ) -> InvestmentValueAdjusted:
        """
        Revalue the collateral and recompute its credit limit.

        Raises:
            InvalidAmountError: negative or malformed value.
            InvestmentNotActiveError: investment already liquidated.
            CreditViolationError: the new limit would fall below credit_used;
                nothing changes.
        """
        new_value = parse_amount("current_value", new_value, positive=False)
        investment = self._lock_investment(investment_id)
        before_info = InvestmentInfo.from_model(investment)

        self._credit.adjust_investment_value(
            investment, new_value, self._rates.financing_percentage()
        )
        investment.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "investment_value_adjusted",
            extra={
                "investment_id": str(investment.id),
                "old_value": before_info.current_value,
                "new_value": new_value,
                "credit_limit": investment.credit_limit,
            },
        )

        info = InvestmentInfo.from_model(investment)
        return InvestmentValueAdjusted(
            investment=info,
            previous_value=before_info.current_value,
            previous_credit_limit=before_info.credit_limit,
            before={"investment": before_info.to_dict()},
            after={"investment": info.to_dict()},
        )

    def force_liquidate_investment(
        self,
        investment_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> InvestmentLiquidated:
        """
        Liquidate an investment with no ACTIVE financings.

        The current value is credited to the owner's account and an
        INVESTMENT_WITHDRAWAL transaction is written.

        Raises:
            InvestmentNotActiveError: already liquidated.
            ActiveFinancingsExistError: financings still drawn against it.
            AccountNotFoundError: the owner has no account.
        """
        investment = self._lock_investment(investment_id)
        if investment.status != InvestmentStatus.ACTIVE:
            raise InvestmentNotActiveError(str(investment.id), status_value(investment.status))

        active = self._active_financing_count(investment)
        if active:
            raise ActiveFinancingsExistError(str(investment.id), active)
        if investment.credit_used != ZERO:
            raise InvariantViolationError(
                LedgerInvariant.SINGLE_CREDIT_RELEASE.value,
                str(investment.id),
                f"no active financings but credit_used is {investment.credit_used}",
            )

        account = self.session.execute(
            select(Account).where(Account.user_id == investment.user_id).with_for_update()
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(investment.user_id))

        before_info = InvestmentInfo.from_model(investment)
        credited = investment.current_value

        investment.status = InvestmentStatus.LIQUIDATED.value
        investment.liquidated_at = self._clock.now()
        investment.updated_by_id = actor_id
        account.balance = account.balance + credited
        account.updated_by_id = actor_id

        self._record_transaction(
            investment.user_id,
            TransactionType.INVESTMENT_WITHDRAWAL,
            credited,
            actor_id,
            {
                "investment_id": str(investment.id),
                "liquidated_by": "backoffice",
                "employee_id": str(actor_id),
                "reason": reason,
            },
        )
        self.session.flush()

        logger.info(
            "investment_liquidated",
            extra={"investment_id": str(investment.id), "amount_credited": credited},
        )

        info = InvestmentInfo.from_model(investment)
        return InvestmentLiquidated(
            investment=info,
            amount_credited=credited,
            before={"investment": before_info.to_dict()},
            after={"investment": info.to_dict()},
        )
