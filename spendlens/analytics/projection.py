"""Month-end spend projection.

Early in a month the pace of spending is noisy, so the forecast leans on
the historical shape of past months (how much of a month's total is
usually spent by this day). As the month progresses the weight shifts to
the pace-corrected estimate:

    projected = (1 - w) * usual_monthly + w * corrected_implied,  w = day / days_in_month

With fewer than ``min_history_months`` months of history the forecast is
a straight pace extrapolation.
"""

from __future__ import annotations

import calendar
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from spendlens.analytics.statistics import ZERO, quantize_internal, total_spent
from spendlens.database.models import Transaction
from spendlens.parsers.cells import round_money

MIN_HISTORY_MONTHS = 3
MIN_FRACTION = Decimal("0.02")
MAX_FRACTION = Decimal("0.98")


@dataclass
class MonthEndProjection:
    projected: Decimal
    compared_percent: Decimal
    usual_monthly_spending: Decimal
    method: str  # "pace" or "seasonal"


def days_in_month(d: date) -> int:
    return calendar.monthrange(d.year, d.month)[1]


def pace_projection(spent_so_far: Decimal, day_number: int, total_days: int) -> Decimal:
    """Linear extrapolation: spent / day * days_in_month."""
    per_day = quantize_internal(spent_so_far / day_number)
    return round_money(per_day * total_days)


def compared_percent(projected: Decimal, usual: Decimal) -> Decimal:
    if usual <= 0:
        return ZERO
    ratio = quantize_internal((projected - usual) / usual)
    return round_money(ratio * 100)


def _monthly_totals(history: Iterable[Transaction]) -> tuple[dict, dict]:
    """Per-month totals and per-month daily totals of |amount|."""
    month_total: dict[tuple[int, int], Decimal] = defaultdict(Decimal)
    daily: dict[tuple[int, int], dict[date, Decimal]] = defaultdict(lambda: defaultdict(Decimal))
    for t in history:
        key = (t.date.year, t.date.month)
        month_total[key] += abs(t.amount)
        daily[key][t.date] += abs(t.amount)
    return month_total, daily


def usual_monthly_spending(history: Iterable[Transaction]) -> Decimal:
    """Mean total of the months in ``history`` that had any spending."""
    month_total, _ = _monthly_totals(history)
    return _usual_from_totals(month_total)


def _usual_from_totals(month_total: dict) -> Decimal:
    nonzero = [total for total in month_total.values() if total > 0]
    if not nonzero:
        return ZERO
    return round_money(quantize_internal(sum(nonzero, Decimal(0)) / len(nonzero)))


def usual_fraction_by_day(
    month_total: dict, daily: dict, months: list[tuple[int, int]], day_number: int
) -> Decimal:
    """Mean share of each month's total spent by ``day_number``.

    The comparison day is clamped to each month's length, so day 31 in
    February compares against the 28th/29th.
    """
    fractions = []
    for year, month in months:
        total = month_total[(year, month)]
        if total <= 0:
            continue
        cutoff = date(year, month, min(day_number, calendar.monthrange(year, month)[1]))
        cumulative = sum(
            (amt for d, amt in daily[(year, month)].items() if d <= cutoff), Decimal(0)
        )
        fractions.append(quantize_internal(quantize_internal(cumulative) / total))
    if not fractions:
        return Decimal(0)
    return quantize_internal(sum(fractions, Decimal(0)) / len(fractions))


def projected_month_end(
    as_of: date,
    current_month: Iterable[Transaction],
    prior_twelve_months: Iterable[Transaction],
    *,
    min_history_months: int = MIN_HISTORY_MONTHS,
    min_fraction: Decimal = MIN_FRACTION,
    max_fraction: Decimal = MAX_FRACTION,
) -> MonthEndProjection:
    """Forecast the month's total spend as of ``as_of``.

    Args:
        as_of: Today. Its day-of-month is the number of days elapsed.
        current_month: Spending rows from the 1st of the month to ``as_of``.
        prior_twelve_months: Spending rows from the preceding full months.
    """
    history = list(prior_twelve_months)
    spent_so_far = total_spent(current_month)
    day_number = as_of.day
    total_days = days_in_month(as_of)

    month_total, daily = _monthly_totals(history)
    nonzero_months = sorted(m for m, total in month_total.items() if total > 0)
    usual = _usual_from_totals(month_total)

    if len(nonzero_months) < min_history_months:
        projected = pace_projection(spent_so_far, day_number, total_days)
        return MonthEndProjection(
            projected, compared_percent(projected, usual), usual, "pace",
        )

    fraction = usual_fraction_by_day(month_total, daily, nonzero_months, day_number)
    if fraction <= 0:
        projected = pace_projection(spent_so_far, day_number, total_days)
        return MonthEndProjection(
            projected, compared_percent(projected, usual), usual, "pace",
        )

    fraction = min(max(fraction, min_fraction), max_fraction)
    implied_total = quantize_internal(spent_so_far / fraction)
    usual_so_far = quantize_internal(usual * fraction)
    if usual_so_far > 0:
        speed_factor = quantize_internal(spent_so_far / usual_so_far)
    else:
        speed_factor = Decimal(1)
    corrected_implied = implied_total * speed_factor
    trust_weight = quantize_internal(Decimal(day_number) / total_days)

    projected = round_money((1 - trust_weight) * usual + trust_weight * corrected_implied)
    return MonthEndProjection(
        projected, compared_percent(projected, usual), usual, "seasonal",
    )
