"""Workbook loading and statement layout detection.

Bank exports put a banner, account details and blank rows above the real
header, and the header row moves between exports. Detection therefore
scans a bounded window of leading rows and matches on the *set* of header
labels in a row rather than on column positions.

Two passes over the window:
1. Exact: a row containing every required label of a layout.
2. Structural fallback: a row with a "tarih" cell plus debit markers
   (dekont / bakiye) or credit markers (bonus, or işlem without bakiye).
"""

from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from spendlens.config import Config
from spendlens.parsers.base import (
    BaseStatementParser,
    Layout,
    UnknownLayoutError,
    UnreadableWorkbookError,
)
from spendlens.parsers.cells import cell_to_str, tr_lower
from spendlens.parsers.credit import CreditStatementParser
from spendlens.parsers.debit import DebitStatementParser

logger = logging.getLogger(__name__)

DEFAULT_HEADER_SCAN_ROWS = 20

_PARSERS: dict[Layout, type[BaseStatementParser]] = {
    Layout.DEBIT: DebitStatementParser,
    Layout.CREDIT: CreditStatementParser,
}


@dataclass
class Detection:
    """Outcome of layout detection for one sheet."""
    layout: Layout
    header_row: int | None = None   # 0-based index into the sheet rows
    method: str | None = None       # "exact" or "structural"


def load_sheet_rows(content: bytes) -> list[tuple]:
    """Read the first worksheet of an .xlsx payload as tuples of cell values.

    Formula cells come back as their cached values.

    Raises:
        UnreadableWorkbookError: If the payload is not a readable workbook.
    """
    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as e:
        raise UnreadableWorkbookError(f"Unable to read workbook: {e}") from e
    try:
        if not wb.worksheets:
            raise UnreadableWorkbookError("Workbook has no worksheets")
        sheet = wb.worksheets[0]
        return [tuple(r) for r in sheet.iter_rows(values_only=True)]
    finally:
        wb.close()


def _row_labels(row) -> set[str]:
    labels = set()
    for value in row:
        text = cell_to_str(value)
        if text:
            labels.add(text)
    return labels


def detect_layout(rows: list[tuple], scan_rows: int = DEFAULT_HEADER_SCAN_ROWS) -> Detection:
    """Classify a sheet as debit (A), credit (B) or unknown."""
    window = rows[:scan_rows]

    for idx, row in enumerate(window):
        labels = _row_labels(row)
        if not labels:
            continue
        if DebitStatementParser.REQUIRED_HEADERS <= labels:
            return Detection(Layout.DEBIT, idx, "exact")
        if CreditStatementParser.REQUIRED_HEADERS <= labels:
            return Detection(Layout.CREDIT, idx, "exact")

    for idx, row in enumerate(window):
        folded = [tr_lower(label) for label in _row_labels(row)]
        # Whole-label "tarih" only: the row walk finds the date column by its
        # full (case-folded) label, so a substring match would accept headers
        # the parser then rejects.
        if not any(label == "tarih" for label in folded):
            continue
        has_dekont = any("dekont" in v for v in folded)
        has_bakiye = any("bakiye" in v for v in folded)
        has_bonus = any("bonus" in v for v in folded)
        has_islem = any("işlem" in v for v in folded)
        if has_dekont or has_bakiye:
            return Detection(Layout.DEBIT, idx, "structural")
        if has_bonus or has_islem:
            return Detection(Layout.CREDIT, idx, "structural")

    return Detection(Layout.UNKNOWN)


def detect_parser(
    rows: list[tuple], config: Config | None = None
) -> tuple[BaseStatementParser, int]:
    """Detect the layout and return a ready parser plus the header row index.

    Raises:
        UnknownLayoutError: If neither layout is recognised.
    """
    scan_rows = config.header_scan_rows if config else DEFAULT_HEADER_SCAN_ROWS
    detection = detect_layout(rows, scan_rows)
    if detection.layout is Layout.UNKNOWN:
        sample = [
            text for row in rows[:scan_rows] for text in map(cell_to_str, row) if text
        ][:10]
        logger.warning("Could not detect layout. First values: %s", sample)
        raise UnknownLayoutError(
            "Unable to detect file type (debit or credit). Expected headers: "
            "Debit: Tarih, Açıklama, Etiket, Tutar, Bakiye, Dekont No; "
            "Credit: Tarih, İşlem, Etiket, Bonus, Tutar(TL)"
        )

    logger.info(
        "Detected layout %s (%s match) at row %d",
        detection.layout.name, detection.method, detection.header_row + 1,
    )
    parser_cls = _PARSERS[detection.layout]
    parser = parser_cls(suppressed_tags=config.suppressed_tags if config else None)
    return parser, detection.header_row
