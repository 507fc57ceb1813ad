"""Spend statistics over already-materialized transaction lists.

All functions are pure and order-independent. Money results are Decimal
at 2 dp (half-up); divisions that feed a further calculation are taken at
4 dp first.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable

from dateutil.relativedelta import relativedelta

from spendlens.database.models import Transaction
from spendlens.parsers.cells import round_money

INTERNAL_QUANT = Decimal("0.0001")
ZERO = Decimal("0.00")
HUNDRED = Decimal(100)


class Granularity(str, Enum):
    DAY = "day"
    MONTH = "month"


def quantize_internal(value: Decimal) -> Decimal:
    return value.quantize(INTERNAL_QUANT, rounding=ROUND_HALF_UP)


def total_spent(transactions: Iterable[Transaction]) -> Decimal:
    """Sum of |amount|."""
    return round_money(sum((abs(t.amount) for t in transactions), Decimal(0)))


def change_percent(current: Decimal, previous: Decimal) -> Decimal:
    """Percent change from ``previous`` to ``current``; 0.00 when previous <= 0."""
    if previous <= 0:
        return ZERO
    ratio = quantize_internal((current - previous) / previous)
    return round_money(ratio * HUNDRED)


def average_per_active_day(total: Decimal, transactions: Iterable[Transaction]) -> Decimal:
    """``total`` divided by the number of distinct transaction dates."""
    active_days = len({t.date for t in transactions})
    if active_days == 0:
        return ZERO
    return round_money(total / active_days)


def granularity_for(period: str) -> Granularity:
    """Daily points for month-scale periods, monthly for year-scale ones."""
    if str(getattr(period, "value", period)).upper() in ("YTD", "YEAR"):
        return Granularity.MONTH
    return Granularity.DAY


def _month_start(d: date) -> date:
    return d.replace(day=1)


def data_points(
    transactions: Iterable[Transaction],
    start: date,
    end: date,
    granularity: Granularity = Granularity.DAY,
) -> dict[str, Decimal]:
    """Zero-filled chart series over [start, end] inclusive.

    Keys are "YYYY-MM-DD" (DAY) or "YYYY-MM" (MONTH), in calendar order.
    Transactions outside the range are ignored.
    """
    if granularity is Granularity.MONTH:
        totals: dict[date, Decimal] = defaultdict(Decimal)
        for t in transactions:
            totals[_month_start(t.date)] += abs(t.amount)
        points: dict[str, Decimal] = {}
        current, last = _month_start(start), _month_start(end)
        while current <= last:
            points[current.strftime("%Y-%m")] = round_money(totals.get(current, Decimal(0)))
            current += relativedelta(months=1)
        return points

    totals = defaultdict(Decimal)
    for t in transactions:
        totals[t.date] += abs(t.amount)
    points = {}
    current = start
    while current <= end:
        points[current.isoformat()] = round_money(totals.get(current, Decimal(0)))
        current += timedelta(days=1)
    return points
