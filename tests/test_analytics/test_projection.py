"""Tests for analytics.projection — month-end forecast."""

from datetime import date
from decimal import Decimal

from spendlens.analytics.projection import (
    _monthly_totals,
    compared_percent,
    days_in_month,
    pace_projection,
    projected_month_end,
    usual_fraction_by_day,
    usual_monthly_spending,
)
from tests.conftest import make_txn

AS_OF = date(2024, 4, 10)  # April has 30 days


def _spend(day: date, amount: str):
    return make_txn(date=day, amount=Decimal(amount), dedup_hash=f"{day}:{amount}")


def _history(*days_and_amounts, months=((2024, 1), (2024, 2), (2024, 3))):
    """Same daily pattern repeated in each month."""
    return [
        _spend(date(y, m, d), amount)
        for y, m in months
        for d, amount in days_and_amounts
    ]


class TestHelpers:
    def test_days_in_month_leap_year(self):
        assert days_in_month(date(2024, 2, 10)) == 29
        assert days_in_month(date(2023, 2, 10)) == 28

    def test_pace_projection(self):
        assert pace_projection(Decimal("300.00"), 10, 30) == Decimal("900.00")

    def test_pace_projection_rounds_per_day_first(self):
        # 100 / 3 = 33.3333 -> x31 = 1033.3323 -> 1033.33
        assert pace_projection(Decimal("100"), 3, 31) == Decimal("1033.33")

    def test_compared_percent_without_history(self):
        assert compared_percent(Decimal("500"), Decimal("0")) == Decimal("0.00")

    def test_usual_monthly_spending_skips_empty_months(self):
        txns = [_spend(date(2024, 1, 5), "-100"), _spend(date(2024, 3, 5), "-300")]
        assert usual_monthly_spending(txns) == Decimal("200.00")

    def test_usual_monthly_spending_empty(self):
        assert usual_monthly_spending([]) == Decimal("0.00")

    def test_fraction_clamps_comparison_day_to_month_length(self):
        txns = [_spend(date(2024, 2, 29), "-50")]
        month_total, daily = _monthly_totals(txns)
        assert usual_fraction_by_day(month_total, daily, [(2024, 2)], 31) == Decimal("1.0000")
        assert usual_fraction_by_day(month_total, daily, [(2024, 2)], 28) == Decimal("0.0000")


class TestPaceBranch:
    def test_no_history_equals_pace_formula(self):
        current = [_spend(date(2024, 4, 2), "-200"), _spend(date(2024, 4, 9), "-100")]
        result = projected_month_end(AS_OF, current, [])
        assert result.method == "pace"
        assert result.projected == Decimal("300") / 10 * 30
        assert result.compared_percent == Decimal("0.00")
        assert result.usual_monthly_spending == Decimal("0.00")

    def test_two_months_history_still_pace(self):
        current = [_spend(date(2024, 4, 2), "-300")]
        history = _history((5, "-400"), months=((2024, 2), (2024, 3)))
        result = projected_month_end(AS_OF, current, history)
        assert result.method == "pace"
        assert result.projected == Decimal("900.00")
        assert result.usual_monthly_spending == Decimal("400.00")
        # (900 - 400) / 400 = 1.25
        assert result.compared_percent == Decimal("125.00")

    def test_zero_fraction_falls_back_to_pace(self):
        # History only ever spends after the 25th.
        history = _history((26, "-200"))
        current = [_spend(date(2024, 4, 3), "-100")]
        result = projected_month_end(AS_OF, current, history)
        assert result.method == "pace"
        assert result.projected == Decimal("300.00")

    def test_nothing_spent_yet(self):
        result = projected_month_end(AS_OF, [], [])
        assert result.projected == Decimal("0.00")


class TestSeasonalBranch:
    def test_on_usual_pace_projects_usual_month(self):
        history = _history((1, "-100"), (20, "-100"))
        current = [_spend(date(2024, 4, 1), "-100")]
        result = projected_month_end(AS_OF, current, history)
        assert result.method == "seasonal"
        assert result.usual_monthly_spending == Decimal("200.00")
        assert result.projected == Decimal("200.00")
        assert result.compared_percent == Decimal("0.00")

    def test_spending_faster_than_usual(self):
        history = _history((1, "-100"), (20, "-100"))
        current = [_spend(date(2024, 4, 1), "-150")]
        result = projected_month_end(AS_OF, current, history)
        # fraction 0.5, implied 300, speed 1.5, corrected 450, weight 0.3333
        assert result.projected == Decimal("283.33")
        assert result.compared_percent == Decimal("41.67")

    def test_fraction_clamped_to_upper_bound(self):
        history = _history((1, "-200"))
        current = [_spend(date(2024, 4, 1), "-200")]
        result = projected_month_end(AS_OF, current, history)
        assert result.method == "seasonal"
        assert result.projected == Decimal("202.75")

    def test_configurable_history_threshold(self):
        history = _history((1, "-100"), (20, "-100"))
        current = [_spend(date(2024, 4, 1), "-100")]
        result = projected_month_end(AS_OF, current, history, min_history_months=4)
        assert result.method == "pace"
