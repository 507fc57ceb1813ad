"""Dashboard summary: period totals, comparison, projection and chart series.

Only spending rows (amount < 0) are counted. Periods:

    THIS_MONTH  1st of the current month .. today   vs the whole previous month
    MONTH       a given calendar month              vs the month before it
    YTD         Jan 1 .. today                      vs the same span last year
    YEAR        a given calendar year               vs the year before it

The month-end projection is only meaningful for THIS_MONTH and is None
for every other period.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from dateutil.relativedelta import relativedelta

from spendlens.analytics.projection import projected_month_end, usual_monthly_spending
from spendlens.analytics.statistics import (
    average_per_active_day,
    change_percent,
    data_points,
    granularity_for,
    total_spent,
)

if TYPE_CHECKING:
    from spendlens.config import Config
    from spendlens.database.repository import Repository

logger = logging.getLogger(__name__)

HISTORY_MONTHS = 12


class DashboardPeriod(str, Enum):
    THIS_MONTH = "THIS_MONTH"
    MONTH = "MONTH"
    YTD = "YTD"
    YEAR = "YEAR"


def coerce_period(period: DashboardPeriod | str) -> DashboardPeriod:
    if isinstance(period, DashboardPeriod):
        return period
    try:
        return DashboardPeriod(period.strip().upper())
    except ValueError:
        raise ValueError(
            f"Unknown period {period!r}; expected one of "
            f"{', '.join(p.value for p in DashboardPeriod)}"
        ) from None


@dataclass
class PeriodRange:
    start: date
    end: date
    previous_start: date
    previous_end: date


@dataclass
class DashboardSummary:
    period: DashboardPeriod
    start: date
    end: date
    total_spent: Decimal
    previous_period_spent: Decimal
    change_percent: Decimal
    avg_per_day: Decimal
    overall_avg_per_day: Decimal
    avg_monthly_spend: Decimal
    projected_month_end: Decimal | None = None
    projected_compared_percent: Decimal | None = None
    data_points: dict[str, Decimal] = field(default_factory=dict)

    def to_dict(self) -> dict:
        def money(v):
            return str(v) if v is not None else None

        return {
            "period": self.period.value,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "total_spent": money(self.total_spent),
            "previous_period_spent": money(self.previous_period_spent),
            "change_percent": money(self.change_percent),
            "avg_per_day": money(self.avg_per_day),
            "projected_month_end": money(self.projected_month_end),
            "projected_compared_percent": money(self.projected_compared_percent),
            "overall_avg_per_day": money(self.overall_avg_per_day),
            "avg_monthly_spend": money(self.avg_monthly_spend),
            "data_points": {k: str(v) for k, v in self.data_points.items()},
        }


def resolve_period(
    period: DashboardPeriod | str,
    month: int | None = None,
    year: int | None = None,
    today: date | None = None,
) -> PeriodRange:
    """Turn a period selector into current and comparison date ranges.

    ``month`` and ``year`` default to today's and are only read for MONTH
    and YEAR.

    Raises:
        ValueError: On an unknown period or a month outside 1-12.
    """
    period = coerce_period(period)
    today = today or date.today()

    if period is DashboardPeriod.THIS_MONTH:
        start = today.replace(day=1)
        previous_start = start - relativedelta(months=1)
        return PeriodRange(start, today, previous_start, start - timedelta(days=1))

    if period is DashboardPeriod.MONTH:
        month = month or today.month
        year = year or today.year
        if not 1 <= month <= 12:
            raise ValueError(f"month must be between 1 and 12, got {month}")
        start = date(year, month, 1)
        end = start + relativedelta(months=1) - timedelta(days=1)
        previous_start = start - relativedelta(months=1)
        return PeriodRange(start, end, previous_start, start - timedelta(days=1))

    if period is DashboardPeriod.YTD:
        start = date(today.year, 1, 1)
        return PeriodRange(
            start, today,
            start - relativedelta(years=1), today - relativedelta(years=1),
        )

    year = year or today.year
    start = date(year, 1, 1)
    return PeriodRange(start, date(year, 12, 31), date(year - 1, 1, 1), date(year - 1, 12, 31))


def build_dashboard(
    repo: Repository,
    period: DashboardPeriod | str = DashboardPeriod.THIS_MONTH,
    month: int | None = None,
    year: int | None = None,
    today: date | None = None,
    config: Config | None = None,
) -> DashboardSummary:
    today = today or date.today()
    rng = resolve_period(period, month, year, today)
    period = coerce_period(period)

    settings = config.projection_settings if config else {}
    history_months = settings.get("history_months", HISTORY_MONTHS)

    current = repo.get_spending_between(rng.start, rng.end)
    previous = repo.get_spending_between(rng.previous_start, rng.previous_end)
    spent = total_spent(current)
    previous_spent = total_spent(previous)

    # Prior full months, relative to today's month
    month_start = today.replace(day=1)
    history = repo.get_spending_between(
        month_start - relativedelta(months=history_months),
        month_start - timedelta(days=1),
    )

    summary = DashboardSummary(
        period=period,
        start=rng.start,
        end=rng.end,
        total_spent=spent,
        previous_period_spent=previous_spent,
        change_percent=change_percent(spent, previous_spent),
        avg_per_day=average_per_active_day(spent, current),
        overall_avg_per_day=_overall_avg_per_day(repo, today),
        avg_monthly_spend=usual_monthly_spending(history),
        data_points=data_points(current, rng.start, rng.end, granularity_for(period.value)),
    )

    if period is DashboardPeriod.THIS_MONTH:
        kwargs = {}
        for key in ("min_history_months", "min_fraction", "max_fraction"):
            if key in settings:
                kwargs[key] = settings[key]
        projection = projected_month_end(today, current, history, **kwargs)
        summary.projected_month_end = projection.projected
        summary.projected_compared_percent = projection.compared_percent
        logger.debug(
            "Month-end projection %s (%s method, usual %s)",
            projection.projected, projection.method, projection.usual_monthly_spending,
        )

    return summary


def _overall_avg_per_day(repo: Repository, today: date) -> Decimal:
    earliest = repo.get_earliest_spending_date()
    if earliest is None:
        return Decimal("0.00")
    everything = repo.get_spending_between(earliest, today)
    return average_per_active_day(total_spent(everything), everything)
