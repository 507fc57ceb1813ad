"""Credit card statement parser (layout B).

Header: Tarih | İşlem | Etiket | Bonus | Tutar(TL)

There is no bank-assigned transaction number, so the tag takes part in
the dedup hash instead. Tag and bonus are optional.
"""

from __future__ import annotations

from spendlens.parsers.base import (
    BaseStatementParser,
    Layout,
    ParsedRow,
    cell_at,
    find_column,
)
from spendlens.parsers.cells import parse_amount_cell


class CreditStatementParser(BaseStatementParser):
    layout = Layout.CREDIT
    MERCHANT_COLUMN = "İşlem"
    # Some exports label the amount column plain "Tutar".
    AMOUNT_COLUMNS = ("Tutar(TL)", "Tutar")
    BONUS_COLUMN = "Bonus"

    REQUIRED_HEADERS = frozenset({"Tarih", "İşlem", "Etiket", "Bonus", "Tutar(TL)"})

    def _read_layout_fields(self, parsed: ParsedRow, row, columns: dict[str, int]) -> None:
        bonus_col = find_column(columns, self.BONUS_COLUMN)
        if bonus_col is not None:
            parsed.bonus_points = parse_amount_cell(cell_at(row, bonus_col))
