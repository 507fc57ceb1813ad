"""Debit account statement parser (layout A).

Header: Tarih | Açıklama | Etiket | Tutar | Bakiye | Dekont No

Every real debit transaction carries a bank-assigned receipt number
("Dekont No"), which is part of the dedup hash. A row without one is
reported as a row error rather than silently dropped.
"""

from __future__ import annotations

from spendlens.parsers.base import (
    BaseStatementParser,
    Layout,
    ParsedRow,
    RowError,
    cell_at,
    find_column,
)
from spendlens.parsers.cells import cell_to_str, parse_amount_cell


class DebitStatementParser(BaseStatementParser):
    layout = Layout.DEBIT
    MERCHANT_COLUMN = "Açıklama"
    AMOUNT_COLUMNS = ("Tutar",)
    BALANCE_COLUMN = "Bakiye"
    RECEIPT_COLUMN = "Dekont No"

    REQUIRED_HEADERS = frozenset(
        {"Tarih", "Açıklama", "Etiket", "Tutar", "Bakiye", "Dekont No"}
    )

    def _read_layout_fields(self, parsed: ParsedRow, row, columns: dict[str, int]) -> None:
        balance_col = find_column(columns, self.BALANCE_COLUMN)
        if balance_col is not None:
            parsed.balance = parse_amount_cell(cell_at(row, balance_col))

        receipt_col = find_column(columns, self.RECEIPT_COLUMN)
        if receipt_col is None:
            raise RowError(f"Missing {self.RECEIPT_COLUMN} column")
        receipt_id = cell_to_str(cell_at(row, receipt_col))
        if not receipt_id:
            raise RowError(f"Missing {self.RECEIPT_COLUMN} value")
        parsed.receipt_id = receipt_id
