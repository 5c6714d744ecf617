"""InvestmentService tests: funding, revaluation and voluntary liquidation."""

from decimal import Decimal
from uuid import uuid4

import pytest

from lending_kernel.exceptions import (
    AccountNotFoundError,
    ActiveFinancingsExistError,
    CreditViolationError,
    InvalidAmountError,
    InvestmentNotActiveError,
    InvestmentNotFoundError,
)
from lending_kernel.models.account import Account
from lending_kernel.models.investment import Investment, InvestmentStatus
from lending_kernel.models.transaction import LedgerTransaction, TransactionType
from lending_kernel.services.investment_service import InvestmentService


@pytest.fixture
def investments(store, clock, rates):
    """Run one InvestmentService call in its own unit of work."""

    def _run(method: str, *args, **kwargs):
        with store.unit_of_work() as s:
            return getattr(InvestmentService(s, rates, clock), method)(*args, **kwargs)

    return _run


class TestCreateInvestment:
    def test_credit_limit_from_financing_percentage(self, investment, fetch):
        inv = fetch(Investment, investment.id)
        assert inv.status == InvestmentStatus.ACTIVE
        assert inv.principal == Decimal("100000.00")
        assert inv.current_value == Decimal("100000.00")
        assert inv.credit_limit == Decimal("15000.00")
        assert inv.credit_used == Decimal("0.00")
        assert inv.annual_rate == Decimal("22.08")

    def test_deposit_transaction(self, investment, fetch_all):
        (tx,) = fetch_all(LedgerTransaction, type=TransactionType.INVESTMENT_DEPOSIT.value)
        assert tx.amount == Decimal("100000.00")
        assert tx.details["investment_id"] == str(investment.id)

    def test_below_minimum_rejected(self, investments, user_id, actor_id, fetch_all):
        with pytest.raises(InvalidAmountError):
            investments("create_investment", user_id, "999.99", actor_id)
        assert fetch_all(Investment) == []

    def test_float_amount_rejected(self, investments, user_id, actor_id):
        with pytest.raises(InvalidAmountError):
            investments("create_investment", user_id, 5000.0, actor_id)


class TestAdjustValue:
    def test_revaluation_recomputes_limit(self, investment, investments, actor_id, fetch):
        result = investments("adjust_value", investment.id, "120000", actor_id, "market")

        assert result.previous_value == Decimal("100000.00")
        assert result.previous_credit_limit == Decimal("15000.00")
        assert result.investment.credit_limit == Decimal("18000.00")
        assert fetch(Investment, investment.id).current_value == Decimal("120000.00")

    def test_revaluation_below_draws_rejected(
        self, investment, create_financing, investments, actor_id, fetch
    ):
        create_financing(investment.id, "9000", 3)

        with pytest.raises(CreditViolationError) as exc_info:
            investments("adjust_value", investment.id, "50000", actor_id, "market")

        assert exc_info.value.new_credit_limit == Decimal("7500.00")
        inv = fetch(Investment, investment.id)
        assert inv.current_value == Decimal("100000.00")
        assert inv.credit_limit == Decimal("15000.00")

    def test_negative_value_rejected(self, investment, investments, actor_id):
        with pytest.raises(InvalidAmountError):
            investments("adjust_value", investment.id, "-5", actor_id)

    def test_unknown_investment(self, store, investments, actor_id):
        with pytest.raises(InvestmentNotFoundError):
            investments("adjust_value", uuid4(), "5000", actor_id)


class TestForceLiquidateInvestment:
    def test_value_credited_to_account(
        self, investment, investments, actor_id, account, fetch, fetch_all
    ):
        result = investments("force_liquidate_investment", investment.id, actor_id, "exit")

        assert result.amount_credited == Decimal("100000.00")
        inv = fetch(Investment, investment.id)
        assert inv.status == InvestmentStatus.LIQUIDATED
        assert inv.liquidated_at is not None
        assert fetch(Account, account).balance == Decimal("100000.00")
        (tx,) = fetch_all(LedgerTransaction, type=TransactionType.INVESTMENT_WITHDRAWAL.value)
        assert tx.amount == Decimal("100000.00")

    def test_active_financing_blocks_exit(
        self, investment, create_financing, investments, actor_id, fetch
    ):
        create_financing(investment.id)
        with pytest.raises(ActiveFinancingsExistError) as exc_info:
            investments("force_liquidate_investment", investment.id, actor_id, "exit")
        assert exc_info.value.count == 1
        assert fetch(Investment, investment.id).status == InvestmentStatus.ACTIVE

    def test_exit_allowed_after_financing_completed(
        self, investment, financing, lifecycle, investments, actor_id
    ):
        for inst in financing.installments:
            lifecycle("pay_installment_manual", inst.id, actor_id, "paid")
        result = investments("force_liquidate_investment", investment.id, actor_id, "exit")
        assert result.investment.status == "LIQUIDATED"

    def test_twice_rejected(self, investment, investments, actor_id):
        investments("force_liquidate_investment", investment.id, actor_id, "exit")
        with pytest.raises(InvestmentNotActiveError):
            investments("force_liquidate_investment", investment.id, actor_id, "exit")

    def test_owner_without_account(self, create_investment, investments, actor_id, fetch):
        orphan = create_investment(uuid4())
        with pytest.raises(AccountNotFoundError):
            investments("force_liquidate_investment", orphan.id, actor_id, "exit")
        assert fetch(Investment, orphan.id).status == InvestmentStatus.ACTIVE
