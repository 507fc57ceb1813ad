"""Tests for analytics.statistics."""

from datetime import date
from decimal import Decimal

from spendlens.analytics.statistics import (
    Granularity,
    average_per_active_day,
    change_percent,
    data_points,
    granularity_for,
    total_spent,
)
from tests.conftest import make_txn


def _spend(day: date, amount: str):
    return make_txn(date=day, amount=Decimal(amount), dedup_hash=f"{day}:{amount}")


class TestTotalSpent:
    def test_sums_absolute_values(self):
        txns = [_spend(date(2024, 1, 1), "-10.10"), _spend(date(2024, 1, 2), "-5.05")]
        assert total_spent(txns) == Decimal("15.15")

    def test_order_independent(self):
        txns = [_spend(date(2024, 1, d), f"-{d}.33") for d in range(1, 8)]
        assert total_spent(txns) == total_spent(list(reversed(txns)))

    def test_empty(self):
        assert str(total_spent([])) == "0.00"


class TestChangePercent:
    def test_no_previous(self):
        assert change_percent(Decimal("100"), Decimal("0")) == 0

    def test_fifty_percent(self):
        assert change_percent(Decimal("150"), Decimal("100")) == Decimal("50.00")

    def test_decrease(self):
        assert change_percent(Decimal("75"), Decimal("100")) == Decimal("-25.00")

    def test_internal_precision(self):
        # 1/3 = 0.3333 at 4 dp, x100 -> 33.33
        assert change_percent(Decimal("4"), Decimal("3")) == Decimal("33.33")

    def test_negative_previous(self):
        assert change_percent(Decimal("10"), Decimal("-5")) == Decimal("0.00")


class TestAveragePerActiveDay:
    def test_three_distinct_dates(self):
        txns = [
            _spend(date(2024, 1, 1), "-100"),
            _spend(date(2024, 1, 1), "-50"),
            _spend(date(2024, 1, 5), "-100"),
            _spend(date(2024, 1, 9), "-50"),
        ]
        assert average_per_active_day(Decimal("300"), txns) == Decimal("100.00")

    def test_no_transactions(self):
        assert average_per_active_day(Decimal("300"), []) == Decimal("0.00")

    def test_rounds_half_up(self):
        txns = [_spend(date(2024, 1, d), "-1") for d in (1, 2, 3)]
        assert average_per_active_day(Decimal("10"), txns) == Decimal("3.33")


class TestGranularity:
    def test_month_periods_are_daily(self):
        assert granularity_for("THIS_MONTH") is Granularity.DAY
        assert granularity_for("MONTH") is Granularity.DAY

    def test_year_periods_are_monthly(self):
        assert granularity_for("YTD") is Granularity.MONTH
        assert granularity_for("year") is Granularity.MONTH


class TestDataPoints:
    def test_daily_zero_filled(self):
        txns = [
            _spend(date(2024, 1, 2), "-10"),
            _spend(date(2024, 1, 2), "-5.5"),
            _spend(date(2024, 1, 4), "-1"),
        ]
        points = data_points(txns, date(2024, 1, 1), date(2024, 1, 4), Granularity.DAY)
        assert points == {
            "2024-01-01": Decimal("0.00"),
            "2024-01-02": Decimal("15.50"),
            "2024-01-03": Decimal("0.00"),
            "2024-01-04": Decimal("1.00"),
        }
        assert list(points) == sorted(points)

    def test_monthly_zero_filled_across_year_boundary(self):
        txns = [_spend(date(2023, 11, 20), "-30"), _spend(date(2024, 1, 31), "-12.25")]
        points = data_points(txns, date(2023, 11, 15), date(2024, 2, 1), Granularity.MONTH)
        assert points == {
            "2023-11": Decimal("30.00"),
            "2023-12": Decimal("0.00"),
            "2024-01": Decimal("12.25"),
            "2024-02": Decimal("0.00"),
        }

    def test_single_day_range(self):
        points = data_points([], date(2024, 2, 29), date(2024, 2, 29))
        assert points == {"2024-02-29": Decimal("0.00")}

    def test_ignores_rows_outside_range(self):
        txns = [_spend(date(2024, 3, 1), "-99")]
        points = data_points(txns, date(2024, 2, 28), date(2024, 2, 29))
        assert sum(points.values()) == 0
