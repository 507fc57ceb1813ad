"""Dataclass models matching the SQLite schema.

Each dataclass corresponds to one table. Fields match column names exactly.
Primary keys are TEXT (UUID strings generated via uuid4()). Money columns
are Decimal in Python and TEXT in SQLite so the 2-dp scale survives a
round trip.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4


def _new_id() -> str:
    return str(uuid4())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Transaction:
    """One stored statement row.

    Only is_subscription changes after insert; dedup_hash was computed from
    date, merchant, tag and amount, so those fields must not be edited.
    """

    date: date
    merchant: str
    amount: Decimal
    raw_description: str
    dedup_hash: str
    layout: str                       # "A" (debit) or "B" (credit)
    id: str = field(default_factory=_new_id)
    balance: Decimal | None = None
    receipt_id: str | None = None     # "Dekont No", layout A only
    bonus_points: Decimal | None = None
    user_tag: str | None = None       # "Etiket" column
    is_subscription: bool = False
    imported_at: str = field(default_factory=_now)

    @property
    def is_spending(self) -> bool:
        return self.amount < 0

    def to_dict(self) -> dict:
        d = asdict(self)
        d["date"] = self.date.isoformat()
        for key in ("amount", "balance", "bonus_points"):
            if d[key] is not None:
                d[key] = str(d[key])
        return d


@dataclass
class ImportBatch:
    total_files: int
    total_rows_parsed: int
    total_inserted: int
    total_skipped_duplicates: int
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=_now)
