"""
Unit tests for schedule construction and term validation.

Verifies:
- Schedules sum exactly to the financed amount
- Monthly due dates on the configured day, clamped to month length
- Term validation against the configured limits
- Explicit per-installment overrides
"""

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from lending_kernel.domain.money import ZERO
from lending_kernel.domain.schedule import (
    FinancingLimits,
    add_months,
    build_schedule,
    first_due_date,
    simulate,
    validate_terms,
)
from lending_kernel.exceptions import InvalidFinancingTermsError

LIMITS = FinancingLimits(
    min_amount=Decimal("1000"),
    min_installments=2,
    max_installments=48,
    due_day=10,
)


class TestDueDates:
    def test_first_due_is_next_month(self):
        assert first_due_date(date(2024, 1, 15), 10) == date(2024, 2, 10)

    def test_first_due_rolls_over_year(self):
        assert first_due_date(date(2024, 12, 3), 10) == date(2025, 1, 10)

    def test_due_day_clamped_to_month_length(self):
        assert first_due_date(date(2023, 1, 20), 31) == date(2023, 2, 28)

    def test_invalid_due_day(self):
        with pytest.raises(InvalidFinancingTermsError):
            first_due_date(date(2024, 1, 1), 0)

    def test_add_months_clamps(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)

    def test_add_months_keeps_day(self):
        assert add_months(date(2024, 2, 10), 11) == date(2025, 1, 10)


class TestValidateTerms:
    def test_within_limits(self):
        validate_terms(Decimal("1000"), 2, LIMITS)
        validate_terms(Decimal("50000"), 48, LIMITS)

    def test_too_few_installments(self):
        with pytest.raises(InvalidFinancingTermsError):
            validate_terms(Decimal("5000"), 1, LIMITS)

    def test_too_many_installments(self):
        with pytest.raises(InvalidFinancingTermsError):
            validate_terms(Decimal("5000"), 49, LIMITS)

    def test_below_minimum_amount(self):
        with pytest.raises(InvalidFinancingTermsError) as exc_info:
            validate_terms(Decimal("999.99"), 3, LIMITS)
        assert exc_info.value.code == "INVALID_FINANCING_TERMS"


class TestBuildSchedule:
    def test_three_equal_installments(self):
        schedule = build_schedule(Decimal("3000.00"), 3, date(2024, 2, 10))
        assert [line.number for line in schedule] == [1, 2, 3]
        assert [line.amount for line in schedule] == [Decimal("1000.00")] * 3
        assert [line.due_date for line in schedule] == [
            date(2024, 2, 10),
            date(2024, 3, 10),
            date(2024, 4, 10),
        ]

    def test_due_day_survives_short_first_month(self):
        schedule = build_schedule(Decimal("4000.00"), 4, date(2024, 2, 29), due_day=31)
        assert [line.due_date for line in schedule] == [
            date(2024, 2, 29),
            date(2024, 3, 31),
            date(2024, 4, 30),
            date(2024, 5, 31),
        ]

    def test_remainder_on_last_installment(self):
        schedule = build_schedule(Decimal("1000.00"), 3, date(2024, 2, 10))
        assert schedule[-1].amount == Decimal("333.34")

    def test_overrides_used_verbatim(self):
        amounts = [Decimal("500.00"), Decimal("1500.00")]
        schedule = build_schedule(Decimal("2000.00"), 2, date(2024, 2, 10), amounts)
        assert [line.amount for line in schedule] == amounts

    def test_overrides_must_sum_to_amount(self):
        with pytest.raises(InvalidFinancingTermsError):
            build_schedule(
                Decimal("2000.00"), 2, date(2024, 2, 10), [Decimal("500"), Decimal("1000")]
            )

    def test_overrides_must_match_count(self):
        with pytest.raises(InvalidFinancingTermsError):
            build_schedule(Decimal("2000.00"), 3, date(2024, 2, 10), [Decimal("2000")])

    def test_non_positive_override_rejected(self):
        with pytest.raises(InvalidFinancingTermsError):
            build_schedule(
                Decimal("2000.00"), 2, date(2024, 2, 10), [Decimal("0"), Decimal("2000")]
            )

    def test_zero_count_rejected(self):
        with pytest.raises(InvalidFinancingTermsError):
            build_schedule(Decimal("2000.00"), 0, date(2024, 2, 10))

    @given(
        cents=st.integers(min_value=100_000, max_value=10**9),
        count=st.integers(min_value=2, max_value=48),
    )
    def test_schedule_sums_to_amount(self, cents, count):
        amount = Decimal(cents).scaleb(-2)
        schedule = build_schedule(amount, count, date(2024, 2, 10))
        assert sum((line.amount for line in schedule), ZERO) == amount
        assert all(line.amount > ZERO for line in schedule)
        dates = [line.due_date for line in schedule]
        assert dates == sorted(dates)
        assert len(set(dates)) == count


class TestSimulate:
    def test_preview(self):
        simulation = simulate(Decimal("10000"), 4, date(2024, 1, 15), LIMITS)
        assert simulation.installment_amount == Decimal("2500.00")
        assert simulation.total_amount == Decimal("10000.00")
        assert simulation.schedule[0].due_date == date(2024, 2, 10)
        assert len(simulation.schedule) == 4

    def test_preview_month_end_due_day(self):
        month_end = FinancingLimits(
            min_amount=Decimal("1000"), min_installments=2, max_installments=48, due_day=31
        )
        simulation = simulate(Decimal("3000"), 3, date(2024, 1, 15), month_end)
        assert [line.due_date for line in simulation.schedule] == [
            date(2024, 2, 29),
            date(2024, 3, 31),
            date(2024, 4, 30),
        ]

    def test_preview_validates_terms(self):
        with pytest.raises(InvalidFinancingTermsError):
            simulate(Decimal("500"), 4, date(2024, 1, 15), LIMITS)
