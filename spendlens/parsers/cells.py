"""Cell value conversions for statement spreadsheets.

openpyxl hands back cells as one of: None, str, int, float, bool,
datetime or date (formula cells are read with ``data_only=True`` so they
arrive as their cached result). Each converter below maps that small set of
types onto one target type and returns None when the cell can't be
converted, so callers treat a bad cell as ordinary control flow.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MONEY_QUANT = Decimal("0.01")

_DMY_RE = re.compile(r"^(\d{1,2})[/.](\d{1,2})[/.](\d{4})$")
_ISO_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:[T ].*)?$")
# Everything that is not part of a number: currency codes, symbols, spaces.
_NON_NUMERIC_RE = re.compile(r"[^0-9,.\-+]")


def round_money(value: Decimal) -> Decimal:
    """Quantize to 2 decimal places, rounding half up."""
    return value.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def tr_lower(text: str) -> str:
    """Lower-case with the Turkish dotted capital I folded to a plain 'i'.

    ``"İşlem".lower()`` yields "i" + U+0307 + "şlem", which never
    matches ``"işlem"``.
    """
    return text.replace("İ", "i").lower().replace("\u0307", "")


def cell_to_str(value) -> str | None:
    """Render a cell as trimmed text. Integral numbers drop their '.0'."""
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def parse_date_cell(value) -> date | None:
    """Date-typed cells pass through; text must be DD/MM/YYYY (or ISO).

    Returns None if the cell does not hold a valid calendar date.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    match = _DMY_RE.match(text)
    try:
        if match:
            day, month, year = (int(g) for g in match.groups())
            return date(year, month, day)
        match = _ISO_RE.match(text)
        if match:
            year, month, day = (int(g) for g in match.groups())
            return date(year, month, day)
    except ValueError:
        return None
    return None


def parse_amount_cell(value) -> Decimal | None:
    """Parse a money cell into a 2-dp Decimal.

    Numeric cells are taken as is. Text uses the Turkish convention:
    '.' groups thousands and ',' is the decimal mark ("1.234,56" → 1234.56).
    Currency markers such as "TL" are ignored.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return round_money(Decimal(str(value)))
        except InvalidOperation:
            return None
    if not isinstance(value, str):
        return None

    text = _NON_NUMERIC_RE.sub("", value.strip())
    if not text:
        return None
    text = text.replace(".", "").replace(",", ".")
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return round_money(amount)
