"""
FinancingLifecycleService -- multi-entity transitions of a financing.

Responsibility:
    Creates financings against an investment's credit, and applies the
    operator actions that touch a financing together with its installments,
    its investment, the user's account and the transaction log: manual
    payment (and completion), penalty waiver, due-date extension, overdue
    marking and forced liquidation.

Architecture position:
    Kernel > Services -- imperative shell.  Composes CreditEngine and
    InstallmentEngine, reads rates from the injected RateProvider and time
    from the injected Clock.  Runs inside the caller's unit of work.

Invariants enforced:
    - Lock order is always Financing, then Investment, then Installments,
      then Account (SELECT ... FOR UPDATE on PostgreSQL), so two operations
      on the same financing serialize instead of deadlocking.
    - The balance invariant (remaining == sum of outstanding total_due) is
      checked on every read-for-write and again after every mutation.
    - Credit drawn by a financing is released exactly once, on completion.
      Liquidation zeroes credit_used instead of releasing.
    - Flush-only: the unit of work commits or rolls back everything.

Failure modes:
    - FinancingNotFoundError / InstallmentNotFoundError / InvestmentNotFoundError
      / AccountNotFoundError for missing rows.
    - FinancingNotActiveError, AlreadyPaidError, InstallmentNotPayableError,
      NoPenaltyToWaiveError, NothingToLiquidateError,
      ActiveFinancingsExistError, InsufficientCollateralError,
      InsufficientCreditError, InvestmentNotActiveError for refused actions.
    - InvalidFinancingTermsError / InvalidAmountError /
      InvalidPaymentAmountError for bad input.
    - InvariantViolationError when persisted state is already inconsistent.

Audit relevance:
    Every public mutation returns before/after snapshots; the request
    boundary turns them into audit entries once the unit commits.
"""

from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from lending_kernel.domain.clock import Clock, SystemClock
from lending_kernel.domain.dtos import (
    DueDateExtended,
    FinancingCreated,
    FinancingInfo,
    FinancingLiquidated,
    InstallmentInfo,
    InstallmentMarkedOverdue,
    InstallmentPaid,
    InvestmentInfo,
    LiquidationSummary,
    PenaltyWaived,
    status_value,
)
from lending_kernel.domain.money import ZERO, parse_amount, percent_of, round_money
from lending_kernel.domain.rates import RateKey, RateProvider
from lending_kernel.domain.schedule import (
    FinancingLimits,
    FinancingSimulation,
    first_due_date,
    simulate,
    validate_terms,
)
from lending_kernel.exceptions import (
    AccountNotFoundError,
    ActiveFinancingsExistError,
    FinancingNotActiveError,
    FinancingNotFoundError,
    InstallmentNotFoundError,
    InsufficientCollateralError,
    InvalidPaymentAmountError,
    InvestmentNotActiveError,
    InvestmentNotFoundError,
    NothingToLiquidateError,
)
from lending_kernel.invariants import check_credit_within_limit, check_financing_balance
from lending_kernel.logging_config import get_logger
from lending_kernel.models.account import Account
from lending_kernel.models.financing import Financing, FinancingStatus
from lending_kernel.models.installment import Installment, InstallmentStatus
from lending_kernel.models.investment import Investment, InvestmentStatus
from lending_kernel.models.transaction import (
    LedgerTransaction,
    TransactionStatus,
    TransactionType,
)
from lending_kernel.services.base import BaseService
from lending_kernel.services.credit_engine import CreditEngine
from lending_kernel.services.installment_engine import InstallmentEngine

logger = get_logger("services.financing")


class FinancingLifecycleService(BaseService[Financing]):
    """
    Orchestrates financing transitions inside one unit of work.

    Contract:
        Every public mutating method takes the acting operator's id and the
        operator's reason, flushes its changes, and returns a frozen result
        with before/after snapshots.  Nothing is committed here.

    Non-goals:
        - Does NOT validate operator identity or reason text (request
          boundary).
        - Does NOT emit audit entries (request boundary, after commit).
        - Does NOT roll installments to OVERDUE on a schedule; it only
          offers ``mark_installment_overdue`` for the job that does.
    """

    def __init__(
        self,
        session: Session,
        rates: RateProvider,
        clock: Clock | None = None,
        credit_engine: CreditEngine | None = None,
        installment_engine: InstallmentEngine | None = None,
    ):
        super().__init__(session)
        self._rates = rates
        self._clock = clock or SystemClock()
        self._credit = credit_engine or CreditEngine()
        self._installments = installment_engine or InstallmentEngine(self._clock)

    # =========================================================================
    # Row access (always locked, always in lock order)
    # =========================================================================

    def _lock_financing(self, financing_id: UUID) -> Financing:
        financing = self.session.execute(
            select(Financing).where(Financing.id == financing_id).with_for_update()
        ).scalar_one_or_none()
        if financing is None:
            raise FinancingNotFoundError(str(financing_id))
        return financing

    def _lock_investment(self, investment_id: UUID) -> Investment:
        investment = self.session.execute(
            select(Investment).where(Investment.id == investment_id).with_for_update()
        ).scalar_one_or_none()
        if investment is None:
            raise InvestmentNotFoundError(str(investment_id))
        return investment

    def _lock_installments(self, financing: Financing) -> list[Installment]:
        return list(
            self.session.execute(
                select(Installment)
                .where(Installment.financing_id == financing.id)
                .order_by(Installment.number)
                .with_for_update()
            ).scalars()
        )

    def _lock_account(self, user_id: UUID) -> Account:
        account = self.session.execute(
            select(Account).where(Account.user_id == user_id).with_for_update()
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(user_id))
        return account

    def _financing_id_for(self, installment_id: UUID) -> UUID:
        financing_id = self.session.execute(
            select(Installment.financing_id).where(Installment.id == installment_id)
        ).scalar_one_or_none()
        if financing_id is None:
            raise InstallmentNotFoundError(str(installment_id))
        return financing_id

    def _lock_for_installment(
        self, installment_id: UUID
    ) -> tuple[Financing, Investment, list[Installment], Installment]:
        """Lock the whole aggregate an installment belongs to."""
        financing = self._lock_financing(self._financing_id_for(installment_id))
        investment = self._lock_investment(financing.investment_id)
        installments = self._lock_installments(financing)
        for installment in installments:
            if installment.id == installment_id:
                return financing, investment, installments, installment
        # Moved to another financing between the two reads
        raise InstallmentNotFoundError(str(installment_id))

    @staticmethod
    def _require_active(financing: Financing) -> None:
        if financing.status != FinancingStatus.ACTIVE:
            raise FinancingNotActiveError(str(financing.id), status_value(financing.status))

    @staticmethod
    def _next_outstanding(installments: Sequence[Installment]) -> Installment | None:
        """Outstanding installment due first; ties go to the lower number."""
        outstanding = [i for i in installments if i.is_outstanding]
        if not outstanding:
            return None
        return min(outstanding, key=lambda i: (i.due_date, i.number))

    def _limits(self) -> FinancingLimits:
        return FinancingLimits(
            min_amount=self._rates.get_decimal(RateKey.FINANCING_MIN_AMOUNT),
            min_installments=self._rates.get_int(RateKey.FINANCING_MIN_INSTALLMENTS),
            max_installments=self._rates.get_int(RateKey.FINANCING_MAX_INSTALLMENTS),
            due_day=self._rates.get_int(RateKey.INSTALLMENT_DUE_DAY),
        )

    def _record_transaction(
        self,
        user_id: UUID,
        tx_type: TransactionType,
        amount: Decimal,
        actor_id: UUID,
        details: dict,
    ) -> LedgerTransaction:
        row = LedgerTransaction(
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
        self.session.add(row)
        return row

    @staticmethod
    def _snapshot(
        financing: Financing,
        installment: Installment | None = None,
        investment: Investment | None = None,
    ) -> dict:
        snap: dict = {"financing": FinancingInfo.from_model(financing).to_dict()}
        if installment is not None:
            snap["installment"] = InstallmentInfo.from_model(installment).to_dict()
        if investment is not None:
            snap["investment"] = InvestmentInfo.from_model(investment).to_dict()
        return snap

    # =========================================================================
    # Creation
    # =========================================================================

    def simulate_financing(self, amount: Decimal | int | str, installment_count: int) -> FinancingSimulation:
        """Preview a financing's schedule without touching the store."""
        return simulate(
            parse_amount("amount", amount),
            installment_count,
            self._clock.today(),
            self._limits(),
        )

    def create_financing(
        self,
        investment_id: UUID,
        amount: Decimal | int | str,
        installment_count: int,
        actor_id: UUID,
        reason: str | None = None,
        description: str | None = None,
        installment_amounts: Sequence[Decimal] | None = None,
    ) -> FinancingCreated:
        """
        Draw a new financing against an investment and disburse it.

        Preconditions:
            - Terms within the configured limits.
            - Investment ACTIVE with enough available credit.
            - The investment owner has an account.

        Postconditions:
            - Financing ACTIVE, remaining == amount, one PENDING installment
              per schedule line, next_due_date == first due date.
            - credit_used grew by amount; the account was credited with amount
              and a FINANCING_DISBURSEMENT transaction written.

        Raises:
            InvalidAmountError, InvalidFinancingTermsError,
            InvestmentNotFoundError, InvestmentNotActiveError,
            InsufficientCreditError, AccountNotFoundError.
        """
        amount = parse_amount("amount", amount)
        limits = self._limits()
        validate_terms(amount, installment_count, limits)

        investment = self._lock_investment(investment_id)
        if investment.status != InvestmentStatus.ACTIVE:
            raise InvestmentNotActiveError(str(investment.id), status_value(investment.status))
        before = {"investment": InvestmentInfo.from_model(investment).to_dict()}

        schedule = self._installments.build_schedule(
            amount,
            installment_count,
            first_due_date(self._clock.today(), limits.due_day),
            installment_amounts,
            due_day=limits.due_day,
        )
        self._credit.reserve_credit(investment, amount)
        investment.updated_by_id = actor_id

        now = self._clock.now()
        financing = Financing(
            user_id=investment.user_id,
            investment=investment,
            amount=amount,
            installment_count=installment_count,
            installment_amount=round_money(amount / installment_count),
            remaining=amount,
            penalty_amount=ZERO,
            penalty_applied=False,
            next_due_date=schedule[0].due_date,
            status=FinancingStatus.ACTIVE.value,
            description=description,
            started_at=now,
            created_by_id=actor_id,
        )
        self.session.add(financing)
        for line in schedule:
            self.session.add(
                Installment(
                    financing=financing,
                    number=line.number,
                    amount=line.amount,
                    penalty_amount=ZERO,
                    total_due=line.amount,
                    due_date=line.due_date,
                    status=InstallmentStatus.PENDING.value,
                    created_by_id=actor_id,
                )
            )
        self.session.flush()

        account = self._lock_account(investment.user_id)
        account.balance = account.balance + amount
        account.updated_by_id = actor_id
        self._record_transaction(
            investment.user_id,
            TransactionType.FINANCING_DISBURSEMENT,
            amount,
            actor_id,
            {
                "financing_id": str(financing.id),
                "investment_id": str(investment.id),
                "installments": installment_count,
                "created_by": "backoffice",
                "employee_id": str(actor_id),
                "reason": reason,
            },
        )
        self.session.flush()

        check_financing_balance(financing)
        check_credit_within_limit(investment)

        logger.info(
            "financing_created",
            extra={
                "financing_id": str(financing.id),
                "investment_id": str(investment.id),
                "amount": amount,
                "installment_count": installment_count,
                "credit_used": investment.credit_used,
            },
        )

        return FinancingCreated(
            financing=FinancingInfo.from_model(financing),
            installments=tuple(InstallmentInfo.from_model(i) for i in financing.installments),
            investment=InvestmentInfo.from_model(investment),
            before=before,
            after={
                "financing": FinancingInfo.from_model(financing).to_dict(),
                "investment": InvestmentInfo.from_model(investment).to_dict(),
            },
        )

    # =========================================================================
    # Installment-level operations
    # =========================================================================

    def pay_installment_manual(
        self,
        installment_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
        amount: Decimal | int | str | None = None,
    ) -> InstallmentPaid:
        """
        Record a manual payment of one installment.

        ``amount``, when given, must equal the installment's total due;
        partial and over-payments are refused.

        Postconditions:
            - Installment PAID with paid_at = now.
            - remaining reduced by total_due (never below zero).
            - next_due_date is the earliest due date among outstanding
              installments.
            - With no outstanding installment left, the financing is
              COMPLETED and its amount is released from credit_used.
            - An INSTALLMENT_PAYMENT transaction is written.

        Raises:
            AlreadyPaidError, InstallmentNotPayableError,
            FinancingNotActiveError, InvalidPaymentAmountError.
        """
        financing, investment, installments, installment = self._lock_for_installment(
            installment_id
        )
        self._installments.ensure_actionable(installment)
        self._require_active(financing)
        check_financing_balance(financing)

        total_due = installment.total_due
        if amount is not None:
            received = parse_amount("amount", amount)
            if received != total_due:
                raise InvalidPaymentAmountError(str(installment.id), total_due, received)

        before = self._snapshot(financing, installment)
        now = self._clock.now()

        self._installments.pay(installment)
        installment.updated_by_id = actor_id

        financing.remaining = max(financing.remaining - total_due, ZERO)
        financing.updated_by_id = actor_id
        upcoming = self._next_outstanding(installments)

        released = ZERO
        if upcoming is None:
            financing.status = FinancingStatus.COMPLETED.value
            financing.completed_at = now
            financing.next_due_date = None
            self._credit.release_credit(investment, financing.amount)
            investment.updated_by_id = actor_id
            released = financing.amount
        else:
            financing.next_due_date = upcoming.due_date

        self._record_transaction(
            financing.user_id,
            TransactionType.INSTALLMENT_PAYMENT,
            total_due,
            actor_id,
            {
                "financing_id": str(financing.id),
                "installment_id": str(installment.id),
                "installment_number": installment.number,
                "paid_by": "backoffice",
                "employee_id": str(actor_id),
                "reason": reason,
            },
        )
        self.session.flush()

        check_financing_balance(financing)
        check_credit_within_limit(investment)

        completed = upcoming is None
        logger.info(
            "installment_paid",
            extra={
                "financing_id": str(financing.id),
                "installment_id": str(installment.id),
                "installment_number": installment.number,
                "total_due": total_due,
                "remaining": financing.remaining,
                "completed": completed,
            },
        )
        if completed:
            logger.info(
                "financing_completed",
                extra={
                    "financing_id": str(financing.id),
                    "credit_released": released,
                    "credit_used": investment.credit_used,
                },
            )

        return InstallmentPaid(
            financing=FinancingInfo.from_model(financing),
            installment=InstallmentInfo.from_model(installment),
            completed=completed,
            credit_released=released,
            before=before,
            after=self._snapshot(financing, installment),
        )

    def waive_penalty(
        self,
        installment_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> PenaltyWaived:
        """
        Remove an installment's penalty and reduce the financing's balance
        by the same amount.

        Raises:
            FinancingNotActiveError, AlreadyPaidError,
            InstallmentNotPayableError, NoPenaltyToWaiveError.
        """
        financing, investment, installments, installment = self._lock_for_installment(
            installment_id
        )
        self._require_active(financing)
        check_financing_balance(financing)
        before = self._snapshot(financing, installment)

        waived = self._installments.waive_penalty(installment)
        installment.updated_by_id = actor_id
        financing.remaining = financing.remaining - waived
        financing.updated_by_id = actor_id
        self.session.flush()

        check_financing_balance(financing)

        logger.info(
            "penalty_waived",
            extra={
                "financing_id": str(financing.id),
                "installment_id": str(installment.id),
                "waived": waived,
                "remaining": financing.remaining,
            },
        )

        return PenaltyWaived(
            financing=FinancingInfo.from_model(financing),
            installment=InstallmentInfo.from_model(installment),
            waived_amount=waived,
            before=before,
            after=self._snapshot(financing, installment),
        )

    def extend_due_date(
        self,
        installment_id: UUID,
        new_due_date: date,
        actor_id: UUID,
        reason: str | None = None,
    ) -> DueDateExtended:
        """
        Move an installment's due date; an OVERDUE installment goes back to
        PENDING (its penalty is kept).

        The financing's next_due_date is recomputed as the earliest due date
        among its outstanding installments.

        Raises:
            FinancingNotActiveError, AlreadyPaidError, InstallmentNotPayableError.
        """
        financing, investment, installments, installment = self._lock_for_installment(
            installment_id
        )
        self._installments.ensure_actionable(installment)
        self._require_active(financing)
        check_financing_balance(financing)
        before = self._snapshot(financing, installment)

        previous = self._installments.extend_due_date(installment, new_due_date)
        installment.updated_by_id = actor_id

        upcoming = self._next_outstanding(installments)
        if upcoming is not None and financing.next_due_date != upcoming.due_date:
            financing.next_due_date = upcoming.due_date
            financing.updated_by_id = actor_id
        self.session.flush()

        check_financing_balance(financing)

        logger.info(
            "due_date_extended",
            extra={
                "financing_id": str(financing.id),
                "installment_id": str(installment.id),
                "previous_due_date": previous,
                "new_due_date": new_due_date,
                "reason": reason,
            },
        )

        return DueDateExtended(
            financing=FinancingInfo.from_model(financing),
            installment=InstallmentInfo.from_model(installment),
            previous_due_date=previous,
            before=before,
            after=self._snapshot(financing, installment),
        )

    def mark_installment_overdue(
        self,
        installment_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> InstallmentMarkedOverdue:
        """
        Roll a PENDING installment to OVERDUE, charging the configured
        penalty rate once; the financing's balance grows by the penalty.

        Raises:
            FinancingNotActiveError, AlreadyPaidError,
            InstallmentNotPayableError, RateNotConfiguredError.
        """
        financing, investment, installments, installment = self._lock_for_installment(
            installment_id
        )
        self._installments.ensure_actionable(installment)
        self._require_active(financing)
        check_financing_balance(financing)
        penalty_rate = self._rates.penalty_rate()
        before = self._snapshot(financing, installment)

        added = self._installments.mark_overdue(installment, penalty_rate)
        installment.updated_by_id = actor_id
        financing.remaining = financing.remaining + added
        financing.updated_by_id = actor_id
        self.session.flush()

        check_financing_balance(financing)

        logger.info(
            "installment_marked_overdue",
            extra={
                "financing_id": str(financing.id),
                "installment_id": str(installment.id),
                "penalty_added": added,
                "remaining": financing.remaining,
            },
        )

        return InstallmentMarkedOverdue(
            financing=FinancingInfo.from_model(financing),
            installment=InstallmentInfo.from_model(installment),
            penalty_added=added,
            before=before,
            after=self._snapshot(financing, installment),
        )

    # =========================================================================
    # Forced liquidation
    # =========================================================================

    def _active_sibling_count(self, financing: Financing) -> int:
        return self.session.execute(
            select(func.count(Financing.id)).where(
                Financing.investment_id == financing.investment_id,
                Financing.status == FinancingStatus.ACTIVE.value,
                Financing.id != financing.id,
            )
        ).scalar_one()

    def force_liquidate(
        self,
        financing_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> FinancingLiquidated:
        """
        Close a financing by converting its collateral into repayment.

        penalty = remaining * penalty_rate / 100 (half-up),
        total_due = remaining + penalty,
        surplus = collateral value - total_due, credited to the user if > 0.

        Postconditions:
            - Every non-PAID installment DROPPED.
            - Financing LIQUIDATED, remaining 0, penalty recorded.
            - Investment LIQUIDATED_BY_PENALTY, current_value 0,
              credit_used 0.
            - A PENALTY_CHARGE transaction is written.

        Raises:
            FinancingNotActiveError: not ACTIVE (includes DEFAULTED).
            NothingToLiquidateError: remaining is already zero.
            ActiveFinancingsExistError: other ACTIVE financings share the
                investment.
            InsufficientCollateralError: collateral < total_due; nothing
                changes.
        """
        financing = self._lock_financing(financing_id)
        self._require_active(financing)
        if financing.remaining <= ZERO:
            raise NothingToLiquidateError(str(financing.id))

        investment = self._lock_investment(financing.investment_id)
        installments = self._lock_installments(financing)
        check_financing_balance(financing)

        siblings = self._active_sibling_count(financing)
        if siblings:
            raise ActiveFinancingsExistError(str(investment.id), siblings)

        penalty_rate = self._rates.penalty_rate()
        debt = financing.remaining
        penalty = percent_of(debt, penalty_rate)
        total_due = debt + penalty
        value_before = investment.current_value

        if value_before < total_due:
            logger.warning(
                "liquidation_rejected",
                extra={
                    "financing_id": str(financing.id),
                    "collateral_value": value_before,
                    "total_due": total_due,
                },
            )
            raise InsufficientCollateralError(str(financing.id), value_before, total_due)

        before = self._snapshot(financing, investment=investment)
        now = self._clock.now()

        dropped = 0
        for installment in installments:
            if installment.status != InstallmentStatus.PAID:
                installment.status = InstallmentStatus.DROPPED.value
                installment.updated_by_id = actor_id
                dropped += 1

        financing.status = FinancingStatus.LIQUIDATED.value
        financing.penalty_amount = penalty
        financing.penalty_applied = True
        financing.remaining = ZERO
        financing.completed_at = now
        financing.next_due_date = None
        financing.updated_by_id = actor_id

        investment.status = InvestmentStatus.LIQUIDATED_BY_PENALTY.value
        investment.current_value = ZERO
        investment.credit_used = ZERO
        investment.liquidated_at = now
        investment.updated_by_id = actor_id

        surplus = value_before - total_due
        if surplus > ZERO:
            account = self._lock_account(financing.user_id)
            account.balance = account.balance + surplus
            account.updated_by_id = actor_id
        returned = surplus if surplus > ZERO else ZERO

        self._record_transaction(
            financing.user_id,
            TransactionType.PENALTY_CHARGE,
            penalty,
            actor_id,
            {
                "financing_id": str(financing.id),
                "investment_id": str(investment.id),
                "liquidated_by": "backoffice",
                "employee_id": str(actor_id),
                "reason": reason,
            },
        )
        self.session.flush()

        check_financing_balance(financing)
        check_credit_within_limit(investment)

        summary = LiquidationSummary(
            debt_paid=debt,
            penalty_charged=penalty,
            total_deducted=total_due,
            returned_to_user=returned,
        )

        logger.info(
            "financing_liquidated",
            extra={
                "financing_id": str(financing.id),
                "investment_id": str(investment.id),
                "debt_paid": debt,
                "penalty_charged": penalty,
                "returned_to_user": returned,
                "installments_dropped": dropped,
            },
        )

        return FinancingLiquidated(
            financing=FinancingInfo.from_model(financing),
            investment=InvestmentInfo.from_model(investment),
            summary=summary,
            installments_dropped=dropped,
            before=before,
            after=self._snapshot(financing, investment=investment),
        )
