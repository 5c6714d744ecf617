"""InvestmentSelector: collateral detail, listing and totals."""

from decimal import Decimal
from uuid import uuid4

import pytest

from lending_kernel.exceptions import InvestmentNotFoundError
from lending_kernel.models.investment import InvestmentStatus
from lending_kernel.selectors.investment_selector import InvestmentSelector


@pytest.fixture
def select_investments(store):
    def _run(method: str, *args, **kwargs):
        with store.session() as s:
            return getattr(InvestmentSelector(s), method)(*args, **kwargs)

    return _run


class TestGetDetail:
    def test_credit_figures(self, financing, lifecycle, actor_id, select_investments):
        lifecycle("pay_installment_manual", financing.installments[0].id, actor_id, "paid")

        detail = select_investments("get_detail", financing.investment.id)

        assert detail.investment.credit_limit == Decimal("15000.00")
        assert detail.credit_available == Decimal("12000.00")
        assert detail.outstanding_debt == Decimal("2000.00")
        assert [f.id for f in detail.active_financings] == [financing.financing.id]

    def test_completed_financings_not_listed(
        self, financing, lifecycle, actor_id, select_investments
    ):
        for inst in financing.installments:
            lifecycle("pay_installment_manual", inst.id, actor_id, "paid")

        detail = select_investments("get_detail", financing.investment.id)
        assert detail.active_financings == ()
        assert detail.outstanding_debt == Decimal("0.00")
        assert detail.credit_available == Decimal("15000.00")

    def test_unknown(self, store, select_investments):
        with pytest.raises(InvestmentNotFoundError):
            select_investments("get_detail", uuid4())


class TestListAndStats:
    @pytest.fixture
    def two_investors(self, create_account, create_investment, user_id, account):
        other = uuid4()
        create_account(other)
        create_investment(user_id, "10000")
        create_investment(user_id, "30000")
        create_investment(other, "20000")
        return user_id, other

    def test_list_by_user_sorted(self, two_investors, select_investments):
        user, _ = two_investors
        page = select_investments(
            "list_investments", user_id=user, sort_by="current_value", sort_order="asc"
        )
        assert page.total == 2
        assert [i.current_value for i in page.items] == [
            Decimal("10000.00"),
            Decimal("30000.00"),
        ]

    def test_bad_sort(self, store, select_investments):
        with pytest.raises(ValueError):
            select_investments("list_investments", sort_by="principal")

    def test_stats(self, two_investors, select_investments):
        stats = select_investments("get_stats")
        assert stats.total_active == 3
        assert stats.total_liquidated == 0
        assert stats.total_invested == Decimal("60000.00")
        assert stats.total_credit_limit == Decimal("9000.00")
        assert stats.unique_investors == 2
        assert stats.average_per_investor == Decimal("30000.00")

    def test_liquidated_excluded_from_totals(
        self, investment, create_investment, user_id, operations, operator, select_investments
    ):
        create_investment(user_id, "20000")
        operations.force_liquidate_investment(investment.id, operator)

        stats = select_investments("get_stats")
        assert stats.total_active == 1
        assert stats.total_liquidated == 1
        assert stats.total_invested == Decimal("20000.00")
        active = select_investments("list_investments", status=InvestmentStatus.ACTIVE.value)
        assert active.total == 1
