"""Recurring-charge (subscription) detection.

A merchant is a potential subscription when, over the trailing window
(6 months by default), it has at least 3 nonzero charges whose absolute
amounts stay within 20% population standard deviation of their mean.
Frequency comes from the mean gap in days between consecutive charges:

    Monthly    25-35
    Weekly      6-9
    Quarterly  85-95
    Irregular  anything else

Confirmed subscriptions are the merchants whose rows carry the
is_subscription flag, set through SubscriptionService.confirm().
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Iterable

from dateutil.relativedelta import relativedelta

from spendlens.database.models import Transaction
from spendlens.parsers.cells import round_money

if TYPE_CHECKING:
    from spendlens.config import Config
    from spendlens.database.repository import Repository

logger = logging.getLogger(__name__)

WINDOW_MONTHS = 6
MIN_TRANSACTIONS = 3
MAX_VARIANCE_PERCENT = 20.0
ACTIVE_DAYS = 60
CONFIRM_WINDOW_MONTHS = 12


class Frequency(str, Enum):
    MONTHLY = "Monthly"
    WEEKLY = "Weekly"
    QUARTERLY = "Quarterly"
    IRREGULAR = "Irregular"
    UNKNOWN = "Unknown"


@dataclass
class MerchantAggregate:
    merchant: str
    transaction_count: int
    average_amount: Decimal
    amount_variance: float | None   # stddev as % of average; None for confirmed
    frequency: Frequency
    first_date: date
    last_date: date
    active: bool

    def to_dict(self) -> dict:
        d = asdict(self)
        d["average_amount"] = str(self.average_amount)
        d["frequency"] = self.frequency.value
        d["first_date"] = self.first_date.isoformat()
        d["last_date"] = self.last_date.isoformat()
        return d


def detect_frequency(dates: list[date]) -> Frequency:
    if len(dates) < 2:
        return Frequency.UNKNOWN
    ordered = sorted(dates)
    gaps = [(b - a).days for a, b in zip(ordered, ordered[1:])]
    avg_interval = sum(gaps) / len(gaps)
    if 25 <= avg_interval <= 35:
        return Frequency.MONTHLY
    if 6 <= avg_interval <= 9:
        return Frequency.WEEKLY
    if 85 <= avg_interval <= 95:
        return Frequency.QUARTERLY
    return Frequency.IRREGULAR


def _average_amount(txns: list[Transaction]) -> Decimal:
    total = sum((abs(t.amount) for t in txns), Decimal(0))
    return round_money(total / len(txns))


def _variance_percent(txns: list[Transaction], average: Decimal) -> float:
    """Population standard deviation of |amount| as a percent of ``average``."""
    avg = float(average)
    sum_sq = sum((float(abs(t.amount)) - avg) ** 2 for t in txns)
    stddev = (sum_sq / len(txns)) ** 0.5
    return stddev / avg * 100


def _is_active(last_date: date, today: date, active_days: int) -> bool:
    return last_date > today - timedelta(days=active_days)


def _group_by_merchant(txns: Iterable[Transaction]) -> dict[str, list[Transaction]]:
    groups: dict[str, list[Transaction]] = defaultdict(list)
    for t in txns:
        groups[t.merchant].append(t)
    return groups


def _sort_key(agg: MerchantAggregate):
    return (-agg.transaction_count, agg.merchant)


def find_potential_subscriptions(
    transactions: Iterable[Transaction],
    today: date,
    *,
    window_months: int = WINDOW_MONTHS,
    min_transactions: int = MIN_TRANSACTIONS,
    max_variance_percent: float = MAX_VARIANCE_PERCENT,
    active_days: int = ACTIVE_DAYS,
) -> list[MerchantAggregate]:
    """Merchants that look like recurring charges, most frequent first."""
    window_start = today - relativedelta(months=window_months)
    in_window = [
        t for t in transactions
        if t.amount != 0 and window_start <= t.date <= today
    ]

    results = []
    for merchant, txns in _group_by_merchant(in_window).items():
        if len(txns) < min_transactions:
            continue
        average = _average_amount(txns)
        variance = _variance_percent(txns, average)
        if variance > max_variance_percent:
            logger.debug(
                "Rejected %s: amount variance %.1f%% over %d charges",
                merchant, variance, len(txns),
            )
            continue
        dates = [t.date for t in txns]
        last_date = max(dates)
        results.append(MerchantAggregate(
            merchant=merchant,
            transaction_count=len(txns),
            average_amount=average,
            amount_variance=variance,
            frequency=detect_frequency(dates),
            first_date=min(dates),
            last_date=last_date,
            active=_is_active(last_date, today, active_days),
        ))

    results.sort(key=_sort_key)
    return results


def confirmed_subscriptions(
    transactions: Iterable[Transaction],
    today: date,
    *,
    window_months: int = WINDOW_MONTHS,
    active_days: int = ACTIVE_DAYS,
) -> list[MerchantAggregate]:
    """Merchants the user confirmed, aggregated over the trailing window."""
    window_start = today - relativedelta(months=window_months)
    flagged = [
        t for t in transactions
        if t.is_subscription and window_start <= t.date <= today
    ]

    results = []
    for merchant, txns in _group_by_merchant(flagged).items():
        dates = [t.date for t in txns]
        last_date = max(dates)
        results.append(MerchantAggregate(
            merchant=merchant,
            transaction_count=len(txns),
            average_amount=_average_amount(txns),
            amount_variance=None,
            frequency=detect_frequency(dates),
            first_date=min(dates),
            last_date=last_date,
            active=_is_active(last_date, today, active_days),
        ))

    results.sort(key=_sort_key)
    return results


class SubscriptionService:
    """Subscription queries and confirmation against the repository."""

    def __init__(self, repo: Repository, config: Config | None = None):
        self.repo = repo
        settings = config.subscription_settings if config else {}
        self.window_months = settings.get("window_months", WINDOW_MONTHS)
        self.min_transactions = settings.get("min_transactions", MIN_TRANSACTIONS)
        self.max_variance_percent = settings.get("max_variance_percent", MAX_VARIANCE_PERCENT)
        self.active_days = settings.get("active_days", ACTIVE_DAYS)
        self.confirm_window_months = settings.get("confirm_window_months", CONFIRM_WINDOW_MONTHS)

    def _window(self, today: date, months: int) -> tuple[date, date]:
        return today - relativedelta(months=months), today

    def find_potential(self, today: date | None = None) -> list[MerchantAggregate]:
        today = today or date.today()
        txns = self.repo.get_transactions_between(*self._window(today, self.window_months))
        return find_potential_subscriptions(
            txns, today,
            window_months=self.window_months,
            min_transactions=self.min_transactions,
            max_variance_percent=self.max_variance_percent,
            active_days=self.active_days,
        )

    def get_active(self, today: date | None = None) -> list[MerchantAggregate]:
        today = today or date.today()
        txns = self.repo.get_transactions_between(*self._window(today, self.window_months))
        return confirmed_subscriptions(
            txns, today,
            window_months=self.window_months,
            active_days=self.active_days,
        )

    def confirm(self, merchant: str, today: date | None = None) -> int:
        """Flag every row of ``merchant`` in the confirm window. Returns rows changed."""
        return self._set_flag(merchant, True, today)

    def unmark(self, merchant: str, today: date | None = None) -> int:
        return self._set_flag(merchant, False, today)

    def _set_flag(self, merchant: str, flag: bool, today: date | None) -> int:
        if not merchant or not merchant.strip():
            raise ValueError("merchant must be a non-empty string")
        today = today or date.today()
        date_from, date_to = self._window(today, self.confirm_window_months)
        updated = self.repo.set_subscription_flag(merchant, flag, date_from, date_to)
        logger.info(
            "%s %s as subscription (%d rows)",
            "Marked" if flag else "Unmarked", merchant, updated,
        )
        return updated
