"""Base parser: shared row walk, data structures, and dedup hashing.

Both statement layouts share one header row convention and one row walk;
they differ only in which columns they read and how a row's canonical
dedup string is built. The differences live in DebitStatementParser /
CreditStatementParser and in canonical_string(), which is the single
place the two layouts branch for hashing.
"""

from __future__ import annotations

import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from spendlens.database.models import Transaction
from spendlens.parsers.cells import (
    cell_to_str,
    parse_amount_cell,
    parse_date_cell,
    round_money,
    tr_lower,
)

logger = logging.getLogger(__name__)

DEFAULT_SUPPRESSED_TAGS: tuple[str, ...] = ("döviz al / sat", "kart ödemesi")


class Layout(str, Enum):
    """Known statement layouts. The value doubles as the hash prefix."""
    DEBIT = "A"     # Tarih, Açıklama, Etiket, Tutar, Bakiye, Dekont No
    CREDIT = "B"    # Tarih, İşlem, Etiket, Bonus, Tutar(TL)
    UNKNOWN = "unknown"


class SheetParseError(Exception):
    """A whole file could not be parsed. Reported once, batch continues."""


class UnreadableWorkbookError(SheetParseError):
    """The payload is not a workbook openpyxl can open."""


class UnknownLayoutError(SheetParseError):
    """No known header layout was found in the scanned rows."""


class HeaderNotFoundError(SheetParseError):
    """A layout was detected but its header row lacks a required column."""


class RowError(Exception):
    """A single data row is malformed. Recorded as 'Row <n>: <message>'."""


@dataclass
class ParsedRow:
    """Intermediate representation output by parsers, before hashing."""
    layout: Layout
    row_number: int          # 1-based sheet row, for error messages
    date: date
    merchant: str
    amount: Decimal          # signed: negative=spend, positive=credit
    balance: Decimal | None = None
    receipt_id: str | None = None
    bonus_points: Decimal | None = None
    tag: str | None = None


def build_column_map(header_cells) -> dict[str, int]:
    """Map each non-empty header label to its column index.

    A label that appears twice resolves to its last occurrence.
    """
    columns: dict[str, int] = {}
    for idx, value in enumerate(header_cells):
        label = cell_to_str(value)
        if label:
            columns[label] = idx
    return columns


def find_column(columns: dict[str, int], *names: str) -> int | None:
    """Look a column up by exact label, then case-insensitively."""
    for name in names:
        if name in columns:
            return columns[name]
    lowered = {tr_lower(label): idx for label, idx in columns.items()}
    for name in names:
        idx = lowered.get(tr_lower(name))
        if idx is not None:
            return idx
    return None


def cell_at(row, idx: int | None):
    if idx is None or idx >= len(row):
        return None
    return row[idx]


def _is_blank(row) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in row)


class BaseStatementParser(ABC):
    """Walk the data rows below a detected header row.

    Attributes:
        errors: Row-level error messages ("Row <n>: <reason>") from the
            last parse(). These rows are dropped but the file continues.
        skipped_count: Rows silently skipped (unparseable date or amount,
            empty description).
        suppressed_count: Rows excluded because their tag matched one of
            the suppressed markers (currency exchange, card payment).
    """

    layout: Layout
    DATE_COLUMN = "Tarih"
    TAG_COLUMN = "Etiket"
    MERCHANT_COLUMN: str
    AMOUNT_COLUMNS: tuple[str, ...]

    def __init__(self, suppressed_tags: list[str] | tuple[str, ...] | None = None):
        if suppressed_tags is None:
            suppressed_tags = DEFAULT_SUPPRESSED_TAGS
        self.suppressed_tags = tuple(tr_lower(t).strip() for t in suppressed_tags)
        self.errors: list[str] = []
        self.skipped_count: int = 0
        self.suppressed_count: int = 0

    def is_suppressed(self, tag: str | None) -> bool:
        if not tag:
            return False
        folded = tr_lower(tag).strip()
        return any(marker in folded for marker in self.suppressed_tags)

    def parse(self, rows: list[tuple], header_row: int) -> list[ParsedRow]:
        """Extract ParsedRows from ``rows`` below ``header_row``.

        Raises:
            HeaderNotFoundError: If the header row lacks the date,
                description or amount column.
        """
        self.errors = []
        self.skipped_count = 0
        self.suppressed_count = 0

        columns = build_column_map(rows[header_row])
        date_col = find_column(columns, self.DATE_COLUMN)
        merchant_col = find_column(columns, self.MERCHANT_COLUMN)
        amount_col = find_column(columns, *self.AMOUNT_COLUMNS)
        tag_col = find_column(columns, self.TAG_COLUMN)

        missing = [
            name for name, col in (
                (self.DATE_COLUMN, date_col),
                (self.MERCHANT_COLUMN, merchant_col),
                (self.AMOUNT_COLUMNS[0], amount_col),
            ) if col is None
        ]
        if missing:
            raise HeaderNotFoundError(
                f"Header row {header_row + 1} is missing column(s): {', '.join(missing)}"
            )

        parsed_rows: list[ParsedRow] = []
        for idx in range(header_row + 1, len(rows)):
            row = rows[idx]
            row_number = idx + 1
            if _is_blank(row):
                continue
            try:
                txn_date = parse_date_cell(cell_at(row, date_col))
                if txn_date is None:
                    self.skipped_count += 1
                    continue

                merchant = cell_to_str(cell_at(row, merchant_col))
                if not merchant:
                    self.skipped_count += 1
                    continue

                tag = cell_to_str(cell_at(row, tag_col))
                if self.is_suppressed(tag):
                    self.suppressed_count += 1
                    continue

                amount = parse_amount_cell(cell_at(row, amount_col))
                if amount is None:
                    self.skipped_count += 1
                    continue

                parsed = ParsedRow(
                    layout=self.layout,
                    row_number=row_number,
                    date=txn_date,
                    merchant=merchant,
                    amount=amount,
                    tag=tag or None,
                )
                self._read_layout_fields(parsed, row, columns)
            except RowError as e:
                self.errors.append(f"Row {row_number}: {e}")
                continue
            except Exception as e:
                logger.warning("Unexpected error on row %d: %s", row_number, e)
                self.errors.append(f"Row {row_number}: {e}")
                continue
            parsed_rows.append(parsed)

        return parsed_rows

    @abstractmethod
    def _read_layout_fields(self, parsed: ParsedRow, row, columns: dict[str, int]) -> None:
        """Fill the layout-specific fields of ``parsed`` in place.

        Raises RowError when a field the layout requires is absent.
        """


# ── Canonicalizer / dedup hashing ─────────────────────────


def format_amount(amount: Decimal) -> str:
    """Plain 2-dp string: Decimal('-150') -> '-150.00'."""
    return format(round_money(amount), "f")


def canonical_string(row: ParsedRow) -> str:
    """Build the layout-specific canonical string a row is hashed from.

    A: A|date|merchant|amount|receipt_id
    B: B|date|merchant|tag|amount
    """
    iso_date = row.date.isoformat()
    merchant = row.merchant.strip()
    amount = format_amount(row.amount)
    if row.layout is Layout.DEBIT:
        parts = [Layout.DEBIT.value, iso_date, merchant, amount, (row.receipt_id or "").strip()]
    elif row.layout is Layout.CREDIT:
        parts = [Layout.CREDIT.value, iso_date, merchant, (row.tag or "").strip(), amount]
    else:
        raise ValueError(f"Cannot hash a row with layout {row.layout!r}")
    return "|".join(parts)


def compute_dedup_hash(row: ParsedRow) -> str:
    """SHA256 hex digest of the row's canonical string."""
    return hashlib.sha256(canonical_string(row).encode("utf-8")).hexdigest()


def build_transaction(row: ParsedRow) -> Transaction:
    """Turn a ParsedRow into a fully populated Transaction."""
    return Transaction(
        date=row.date,
        merchant=row.merchant.strip(),
        amount=round_money(row.amount),
        raw_description=row.merchant,
        dedup_hash=compute_dedup_hash(row),
        layout=row.layout.value,
        balance=round_money(row.balance) if row.balance is not None else None,
        receipt_id=row.receipt_id.strip() if row.receipt_id else None,
        bonus_points=round_money(row.bonus_points) if row.bonus_points is not None else None,
        user_tag=row.tag,
    )
