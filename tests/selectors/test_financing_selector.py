"""FinancingSelector: detail, listing, portfolio statistics, upcoming dues."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from lending_kernel.exceptions import FinancingNotFoundError
from lending_kernel.selectors.financing_selector import FinancingSelector


@pytest.fixture
def select_financings(store):
    """Run one FinancingSelector call in a fresh read session."""

    def _run(method: str, *args, **kwargs):
        with store.session() as s:
            return getattr(FinancingSelector(s), method)(*args, **kwargs)

    return _run


@pytest.fixture
def overdue_financing(financing, lifecycle, actor_id):
    """``financing`` with its first installment marked overdue (penalty 30.00)."""
    lifecycle("mark_installment_overdue", financing.installments[0].id, actor_id, "late")
    return financing


@pytest.fixture
def portfolio(create_account, create_investment, create_financing):
    """Two borrowers: 2 000.00 in 2 and 6 000.00 in 4."""
    users = [uuid4(), uuid4()]
    created = []
    for user, (amount, count) in zip(users, [("2000", 2), ("6000", 4)]):
        create_account(user)
        inv = create_investment(user, "50000")
        created.append(create_financing(inv.id, amount, count))
    return created


class TestGetDetail:
    def test_running_figures(self, overdue_financing, lifecycle, actor_id, select_financings):
        lifecycle("pay_installment_manual", overdue_financing.installments[1].id, actor_id, "paid")

        detail = select_financings("get_detail", overdue_financing.financing.id)

        assert detail.counts.total == 3
        assert detail.counts.paid == 1
        assert detail.counts.overdue == 1
        assert detail.counts.pending == 1
        assert detail.total_paid == Decimal("1000.00")
        assert detail.total_overdue == Decimal("1030.00")
        assert detail.total_penalties == Decimal("30.00")
        assert detail.next_due_date == date(2024, 2, 10)
        assert detail.investment.credit_used == Decimal("3000.00")
        assert [i.number for i in detail.installments] == [1, 2, 3]

    def test_unknown(self, store, select_financings):
        with pytest.raises(FinancingNotFoundError):
            select_financings("get_detail", uuid4())


class TestListFinancings:
    def test_sort_and_page(self, portfolio, select_financings):
        page = select_financings("list_financings", sort_by="amount", sort_order="asc", limit=1)
        assert page.total == 2
        assert page.total_pages == 2
        assert page.items[0].financing.amount == Decimal("2000.00")

        second = select_financings(
            "list_financings", sort_by="amount", sort_order="asc", limit=1, page=2
        )
        assert second.items[0].financing.amount == Decimal("6000.00")
        assert second.items[0].counts.total == 4

    def test_filters(self, portfolio, select_financings):
        small, large = portfolio
        by_user = select_financings("list_financings", user_id=large.financing.user_id)
        assert [i.financing.id for i in by_user.items] == [large.financing.id]

        by_amount = select_financings("list_financings", min_amount=Decimal("2500"))
        assert by_amount.total == 1

        window = select_financings(
            "list_financings",
            started_from=datetime(2024, 1, 1, tzinfo=timezone.utc),
            started_to=datetime(2024, 1, 31, tzinfo=timezone.utc),
        )
        assert window.total == 2

    def test_has_overdue(self, portfolio, lifecycle, actor_id, select_financings):
        small, large = portfolio
        lifecycle("mark_installment_overdue", large.installments[0].id, actor_id, "late")

        with_overdue = select_financings("list_financings", has_overdue=True)
        without = select_financings("list_financings", has_overdue=False)
        assert [i.financing.id for i in with_overdue.items] == [large.financing.id]
        assert [i.financing.id for i in without.items] == [small.financing.id]

    def test_status_filter(self, portfolio, lifecycle, actor_id, select_financings):
        small, _ = portfolio
        for inst in small.installments:
            lifecycle("pay_installment_manual", inst.id, actor_id, "paid")
        completed = select_financings("list_financings", status="COMPLETED")
        assert [i.financing.id for i in completed.items] == [small.financing.id]

    @pytest.mark.parametrize(
        "kwargs",
        [{"sort_by": "user_id"}, {"sort_order": "up"}, {"page": 0}, {"limit": 500}],
    )
    def test_bad_arguments(self, store, select_financings, kwargs):
        with pytest.raises(ValueError):
            select_financings("list_financings", **kwargs)


class TestStats:
    def test_empty_portfolio(self, store, select_financings):
        stats = select_financings("get_stats")
        assert stats.total_active == 0
        assert stats.total_financed == Decimal("0.00")
        assert stats.npl_ratio == Decimal("0.00")

    def test_npl_ratio(self, overdue_financing, select_financings):
        stats = select_financings("get_stats")
        assert stats.total_active == 1
        assert stats.total_financed == Decimal("3000.00")
        assert stats.total_debt == Decimal("3030.00")
        assert stats.overdue_installments == 1
        assert stats.overdue_amount == Decimal("1030.00")
        # 1030 / 3000 = 34.333...%
        assert stats.npl_ratio == Decimal("34.33")

    def test_liquidated_counts_as_defaulted(self, financing, lifecycle, actor_id, select_financings):
        lifecycle("force_liquidate", financing.financing.id, actor_id, "default")
        stats = select_financings("get_stats")
        assert stats.total_active == 0
        assert stats.total_defaulted == 1


class TestUpcomingDue:
    def test_window(self, financing, select_financings):
        assert select_financings("upcoming_due", date(2024, 2, 1), 7) == []

        due = select_financings("upcoming_due", date(2024, 2, 5), 7)
        assert [u.installment.number for u in due] == [1]
        assert due[0].user_id == financing.financing.user_id

    def test_overdue_and_paid_excluded(self, financing, lifecycle, actor_id, select_financings):
        first, second, _ = financing.installments
        lifecycle("mark_installment_overdue", first.id, actor_id, "late")
        lifecycle("pay_installment_manual", second.id, actor_id, "paid")

        due = select_financings("upcoming_due", date(2024, 2, 1), 90)
        assert [u.installment.number for u in due] == [3]
