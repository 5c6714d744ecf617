"""
BackofficeOperations -- the request boundary of the lending engine.

Responsibility:
    Every operator action enters here.  The boundary validates the operator
    context (identity, reason) and the target ids before the store is
    touched, runs the kernel service inside one unit of work, and emits the
    audit entry once the unit has committed.  Refused attempts are audited
    too, with ``outcome="rejected"`` and the error code.

Architecture position:
    Services layer, above ``lending_kernel``.  Owns the unit of work; the
    kernel services it calls only flush.

Invariants enforced:
    - No store access for a request whose operator id, reason or target id
      is invalid.
    - An audit entry is emitted only after a successful commit, or after a
      validation/precondition refusal; never for a rolled-back success.
    - Conflicts (ConcurrentModificationError) propagate untouched for the
      caller to retry through ``lending_services.retry``.

Audit relevance:
    Audit entries carry operator id and email, reason, description,
    before/after snapshots and the canonical payload hash.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Mapping, Sequence, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from lending_kernel.db.engine import LedgerStore
from lending_kernel.domain.audit import (
    AuditAction,
    AuditEmitter,
    AuditEntry,
    AuditOutcome,
    LoggingAuditEmitter,
)
from lending_kernel.domain.clock import Clock, SystemClock
from lending_kernel.domain.dtos import (
    DueDateExtended,
    FinancingCreated,
    FinancingLiquidated,
    InstallmentMarkedOverdue,
    InstallmentPaid,
    InvestmentCreated,
    InvestmentLiquidated,
    InvestmentValueAdjusted,
    PenaltyWaived,
)
from lending_kernel.domain.rates import RateProvider
from lending_kernel.domain.schedule import FinancingSimulation
from lending_kernel.exceptions import (
    ConcurrencyError,
    InvalidIdentifierError,
    InvalidReasonError,
    LendingValidationError,
    PreconditionError,
)
from lending_kernel.logging_config import LogContext, get_logger
from lending_kernel.selectors.financing_selector import (
    FinancingDetail,
    FinancingPage,
    FinancingSelector,
    FinancingStats,
    UpcomingInstallment,
)
from lending_kernel.selectors.investment_selector import (
    InvestmentDetail,
    InvestmentPage,
    InvestmentSelector,
    InvestmentStats,
)
from lending_kernel.services.financing_lifecycle import FinancingLifecycleService
from lending_kernel.services.investment_service import InvestmentService
from lending_kernel.services.system_settings import SettingsRateProvider

logger = get_logger("services.backoffice")

R = TypeVar("R")


def parse_identifier(field_name: str, value: Any) -> UUID:
    """UUID from a UUID or its string form; InvalidIdentifierError otherwise."""
    if isinstance(value, UUID):
        return value
    if not isinstance(value, str):
        raise InvalidIdentifierError(field_name, value)
    try:
        return UUID(value.strip())
    except ValueError as exc:
        raise InvalidIdentifierError(field_name, value) from exc


def validate_reason(operation: str, reason: Any) -> str:
    """Stripped, non-empty reason text; InvalidReasonError otherwise."""
    if not isinstance(reason, str) or not reason.strip():
        raise InvalidReasonError(operation)
    return reason.strip()


@dataclass(frozen=True)
class OperatorContext:
    """Who is acting, and why."""

    operator_id: UUID | str
    operator_email: str
    reason: str

    def identity(self) -> UUID:
        return parse_identifier("operator_id", self.operator_id)


@dataclass(frozen=True)
class _AuditSpec:
    resource: str
    resource_id: UUID
    user_id: UUID | None
    description: str
    details: dict[str, Any] = field(default_factory=dict)


class BackofficeOperations:
    """
    Operator-facing entry points of the lending engine.

    Contract:
        Mutating methods take the target id(s), the payload and an
        ``OperatorContext``; they return the frozen result of the kernel
        service.  Read methods open a plain session and return selector
        DTOs.

    Non-goals:
        - Does NOT authenticate operators or check permissions; the caller
          hands in an already-authorised identity.
        - Does NOT retry conflicts.
    """

    def __init__(
        self,
        store: LedgerStore,
        *,
        clock: Clock | None = None,
        audit_emitter: AuditEmitter | None = None,
        rates: RateProvider | None = None,
        default_settings: Mapping[str, str] | None = None,
    ):
        """
        Args:
            store: Ledger store handle.
            clock: Time source for every service; defaults to SystemClock.
            audit_emitter: Receives one entry per audited action; defaults
                to LoggingAuditEmitter.
            rates: Fixed rate provider.  When None, each unit of work reads
                ``system_settings`` with ``default_settings`` as fallback.
            default_settings: key -> value fallback for the settings table.
        """
        self._store = store
        self._clock = clock or SystemClock()
        self._audit = audit_emitter or LoggingAuditEmitter()
        self._rates = rates
        self._default_settings = dict(default_settings or {})

    # =========================================================================
    # Plumbing
    # =========================================================================

    def _rates_for(self, session: Session) -> RateProvider:
        if self._rates is not None:
            return self._rates
        return SettingsRateProvider(session, self._default_settings)

    def _financings(self, session: Session) -> FinancingLifecycleService:
        return FinancingLifecycleService(session, self._rates_for(session), self._clock)

    def _investments(self, session: Session) -> InvestmentService:
        return InvestmentService(session, self._rates_for(session), self._clock)

    def _run(
        self,
        *,
        operation: str,
        action: AuditAction,
        target_field: str,
        target: Any,
        operator: OperatorContext,
        work: Callable[[Session, UUID, UUID, str], R],
        audit_of: Callable[[R], _AuditSpec],
        before_of: Callable[[R], dict | None] = lambda r: r.before,
    ) -> R:
        operator_id = operator.identity()

        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(operator_id),
            operation=operation,
        ):
            try:
                reason = validate_reason(operation, operator.reason)
                target_id = parse_identifier(target_field, target)
                with self._store.unit_of_work() as session:
                    result = work(session, target_id, operator_id, reason)
            except (LendingValidationError, PreconditionError) as exc:
                logger.warning(
                    "operation_rejected",
                    extra={"error_code": exc.code, "target": str(target)},
                )
                self._emit_rejection(action, target_field, target, operator, exc)
                raise
            except ConcurrencyError:
                logger.warning("operation_conflict", extra={"target": str(target)})
                raise

            record = audit_of(result)
            self._audit.emit(
                AuditEntry.build(
                    action=action,
                    resource=record.resource,
                    resource_id=str(record.resource_id),
                    user_id=str(record.user_id) if record.user_id is not None else None,
                    operator_id=str(operator_id),
                    operator_email=operator.operator_email,
                    reason=reason,
                    description=record.description,
                    outcome=AuditOutcome.SUCCEEDED,
                    occurred_at=self._clock.now(),
                    before=before_of(result),
                    after=result.after,
                    details=record.details,
                )
            )
            logger.info("operation_succeeded", extra={"action": action.value})
            return result

    def _emit_rejection(
        self,
        action: AuditAction,
        target_field: str,
        target: Any,
        operator: OperatorContext,
        exc: LendingValidationError | PreconditionError,
    ) -> None:
        resource = {
            "investment_id": "investments",
            "user_id": "investments",
            "financing_id": "financings",
            "installment_id": "installments",
        }[target_field]
        self._audit.emit(
            AuditEntry.build(
                action=action,
                resource=resource,
                resource_id=str(target),
                user_id=None,
                operator_id=str(operator.identity()),
                operator_email=operator.operator_email,
                reason=operator.reason.strip() if isinstance(operator.reason, str) else "",
                description=str(exc),
                outcome=AuditOutcome.REJECTED,
                occurred_at=self._clock.now(),
                details=exc.to_dict()["detail"],
                error_code=exc.code,
            )
        )

    # =========================================================================
    # Investments
    # =========================================================================

    def create_investment(
        self,
        user_id: UUID | str,
        amount: Decimal | int | str,
        operator: OperatorContext,
    ) -> InvestmentCreated:
        return self._run(
            operation="create_investment",
            action=AuditAction.INVESTMENT_CREATED,
            target_field="user_id",
            target=user_id,
            operator=operator,
            work=lambda session, uid, actor, reason: self._investments(
                session
            ).create_investment(uid, amount, actor, reason),
            audit_of=lambda r: _AuditSpec(
                resource="investments",
                resource_id=r.investment.id,
                user_id=r.investment.user_id,
                description=f"Investment created manually: {r.investment.principal}",
                details={"amount": r.investment.principal},
            ),
            before_of=lambda r: None,
        )

    def adjust_investment_value(
        self,
        investment_id: UUID | str,
        new_value: Decimal | int | str,
        operator: OperatorContext,
    ) -> InvestmentValueAdjusted:
        return self._run(
            operation="adjust_investment_value",
            action=AuditAction.INVESTMENT_VALUE_ADJUSTED,
            target_field="investment_id",
            target=investment_id,
            operator=operator,
            work=lambda session, iid, actor, reason: self._investments(
                session
            ).adjust_value(iid, new_value, actor, reason),
            audit_of=lambda r: _AuditSpec(
                resource="investments",
                resource_id=r.investment.id,
                user_id=r.investment.user_id,
                description=(
                    f"Value adjusted: {r.previous_value} -> {r.investment.current_value}"
                ),
                details={
                    "old_value": r.previous_value,
                    "new_value": r.investment.current_value,
                },
            ),
        )

    def force_liquidate_investment(
        self,
        investment_id: UUID | str,
        operator: OperatorContext,
    ) -> InvestmentLiquidated:
        return self._run(
            operation="force_liquidate_investment",
            action=AuditAction.INVESTMENT_LIQUIDATED,
            target_field="investment_id",
            target=investment_id,
            operator=operator,
            work=lambda session, iid, actor, reason: self._investments(
                session
            ).force_liquidate_investment(iid, actor, reason),
            audit_of=lambda r: _AuditSpec(
                resource="investments",
                resource_id=r.investment.id,
                user_id=r.investment.user_id,
                description=f"Forced liquidation: {r.amount_credited}",
                details={"amount_credited": r.amount_credited},
            ),
        )

    # =========================================================================
    # Financings
    # =========================================================================

    def simulate_financing(
        self,
        amount: Decimal | int | str,
        installment_count: int,
    ) -> FinancingSimulation:
        """Schedule preview; reads the limits, writes nothing, not audited."""
        with self._store.session() as session:
            return self._financings(session).simulate_financing(amount, installment_count)

    def create_financing(
        self,
        investment_id: UUID | str,
        amount: Decimal | int | str,
        installment_count: int,
        operator: OperatorContext,
        description: str | None = None,
        installment_amounts: Sequence[Decimal] | None = None,
    ) -> FinancingCreated:
        return self._run(
            operation="create_financing",
            action=AuditAction.FINANCING_CREATED,
            target_field="investment_id",
            target=investment_id,
            operator=operator,
            work=lambda session, iid, actor, reason: self._financings(
                session
            ).create_financing(
                iid,
                amount,
                installment_count,
                actor,
                reason=reason,
                description=description,
                installment_amounts=installment_amounts,
            ),
            audit_of=lambda r: _AuditSpec(
                resource="financings",
                resource_id=r.financing.id,
                user_id=r.financing.user_id,
                description=(
                    f"Financing of {r.financing.amount} in "
                    f"{r.financing.installment_count} installments"
                ),
                details={
                    "investment_id": str(r.financing.investment_id),
                    "amount": r.financing.amount,
                    "installment_count": r.financing.installment_count,
                },
            ),
        )

    def pay_installment(
        self,
        installment_id: UUID | str,
        operator: OperatorContext,
        amount: Decimal | int | str | None = None,
    ) -> InstallmentPaid:
        return self._run(
            operation="pay_installment",
            action=AuditAction.INSTALLMENT_PAID,
            target_field="installment_id",
            target=installment_id,
            operator=operator,
            work=lambda session, iid, actor, reason: self._financings(
                session
            ).pay_installment_manual(iid, actor, reason, amount=amount),
            audit_of=lambda r: _AuditSpec(
                resource="financings",
                resource_id=r.financing.id,
                user_id=r.financing.user_id,
                description=(
                    f"Manual payment of installment {r.installment.number}: "
                    f"{r.installment.total_due}"
                ),
                details={
                    "installment_id": str(r.installment.id),
                    "amount": r.installment.total_due,
                    "completed": r.completed,
                },
            ),
        )

    def waive_penalty(
        self,
        installment_id: UUID | str,
        operator: OperatorContext,
    ) -> PenaltyWaived:
        return self._run(
            operation="waive_penalty",
            action=AuditAction.PENALTY_WAIVED,
            target_field="installment_id",
            target=installment_id,
            operator=operator,
            work=lambda session, iid, actor, reason: self._financings(
                session
            ).waive_penalty(iid, actor, reason),
            audit_of=lambda r: _AuditSpec(
                resource="financings",
                resource_id=r.financing.id,
                user_id=r.financing.user_id,
                description=(
                    f"Penalty waived on installment {r.installment.number}: "
                    f"{r.waived_amount}"
                ),
                details={
                    "installment_id": str(r.installment.id),
                    "old_penalty": r.waived_amount,
                },
            ),
        )

    def extend_due_date(
        self,
        installment_id: UUID | str,
        new_due_date: date,
        operator: OperatorContext,
    ) -> DueDateExtended:
        return self._run(
            operation="extend_due_date",
            action=AuditAction.DUE_DATE_EXTENDED,
            target_field="installment_id",
            target=installment_id,
            operator=operator,
            work=lambda session, iid, actor, reason: self._financings(
                session
            ).extend_due_date(iid, new_due_date, actor, reason),
            audit_of=lambda r: _AuditSpec(
                resource="financings",
                resource_id=r.financing.id,
                user_id=r.financing.user_id,
                description=(
                    f"Due date of installment {r.installment.number} extended: "
                    f"{r.previous_due_date.isoformat()} -> "
                    f"{r.installment.due_date.isoformat()}"
                ),
                details={
                    "installment_id": str(r.installment.id),
                    "old_due_date": r.previous_due_date,
                    "new_due_date": r.installment.due_date,
                },
            ),
        )

    def mark_installment_overdue(
        self,
        installment_id: UUID | str,
        operator: OperatorContext,
    ) -> InstallmentMarkedOverdue:
        return self._run(
            operation="mark_installment_overdue",
            action=AuditAction.INSTALLMENT_MARKED_OVERDUE,
            target_field="installment_id",
            target=installment_id,
            operator=operator,
            work=lambda session, iid, actor, reason: self._financings(
                session
            ).mark_installment_overdue(iid, actor, reason),
            audit_of=lambda r: _AuditSpec(
                resource="financings",
                resource_id=r.financing.id,
                user_id=r.financing.user_id,
                description=(
                    f"Installment {r.installment.number} marked overdue, "
                    f"penalty {r.penalty_added}"
                ),
                details={
                    "installment_id": str(r.installment.id),
                    "penalty_added": r.penalty_added,
                },
            ),
        )

    def force_liquidate_financing(
        self,
        financing_id: UUID | str,
        operator: OperatorContext,
    ) -> FinancingLiquidated:
        return self._run(
            operation="force_liquidate_financing",
            action=AuditAction.FINANCING_LIQUIDATED,
            target_field="financing_id",
            target=financing_id,
            operator=operator,
            work=lambda session, fid, actor, reason: self._financings(
                session
            ).force_liquidate(fid, actor, reason),
            audit_of=lambda r: _AuditSpec(
                resource="financings",
                resource_id=r.financing.id,
                user_id=r.financing.user_id,
                description=(
                    f"Forced liquidation: debt {r.summary.debt_paid} + "
                    f"penalty {r.summary.penalty_charged}"
                ),
                details={
                    "debt_paid": r.summary.debt_paid,
                    "penalty_charged": r.summary.penalty_charged,
                    "total_deducted": r.summary.total_deducted,
                    "returned_to_user": r.summary.returned_to_user,
                },
            ),
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def get_financing(self, financing_id: UUID | str) -> FinancingDetail:
        fid = parse_identifier("financing_id", financing_id)
        with self._store.session() as session:
            return FinancingSelector(session).get_detail(fid)

    def list_financings(self, **filters: Any) -> FinancingPage:
        with self._store.session() as session:
            return FinancingSelector(session).list_financings(**filters)

    def financing_stats(self) -> FinancingStats:
        with self._store.session() as session:
            return FinancingSelector(session).get_stats()

    def upcoming_due(self, days: int = 7) -> list[UpcomingInstallment]:
        with self._store.session() as session:
            return FinancingSelector(session).upcoming_due(self._clock.today(), days)

    def get_investment(self, investment_id: UUID | str) -> InvestmentDetail:
        iid = parse_identifier("investment_id", investment_id)
        with self._store.session() as session:
            return InvestmentSelector(session).get_detail(iid)

    def list_investments(self, **filters: Any) -> InvestmentPage:
        with self._store.session() as session:
            return InvestmentSelector(session).list_investments(**filters)

    def investment_stats(self) -> InvestmentStats:
        with self._store.session() as session:
            return InvestmentSelector(session).get_stats()


__all__ = [
    "BackofficeOperations",
    "OperatorContext",
    "parse_identifier",
    "validate_reason",
]
