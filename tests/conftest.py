"""Shared test fixtures."""

from __future__ import annotations

import io
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
from openpyxl import Workbook

from spendlens.database.models import Transaction
from spendlens.database.repository import Repository

# Test fixture config directory with synthetic data
FIXTURE_CONFIG_DIR = Path(__file__).parent / "fixtures" / "config"

MIGRATIONS_DIR = Path(__file__).parent.parent / "spendlens" / "database" / "migrations"

DEBIT_HEADERS = ["Tarih", "Açıklama", "Etiket", "Tutar", "Bakiye", "Dekont No"]
CREDIT_HEADERS = ["Tarih", "İşlem", "Etiket", "Bonus", "Tutar(TL)"]


def make_workbook_bytes(rows: list[list], title: str = "Hesap Hareketleri") -> bytes:
    """Build an .xlsx payload whose first sheet holds ``rows``."""
    wb = Workbook()
    ws = wb.active
    ws.title = title
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def debit_sheet(*data_rows: list, banner: bool = True) -> list[list]:
    """Layout A sheet rows: optional bank banner, header, then data."""
    rows: list[list] = []
    if banner:
        rows += [["Hesap Hareketleri"], ["Müşteri No: 123456"], []]
    rows.append(list(DEBIT_HEADERS))
    rows.extend(list(r) for r in data_rows)
    return rows


def credit_sheet(*data_rows: list, banner: bool = True) -> list[list]:
    """Layout B sheet rows: optional card banner, header, then data."""
    rows: list[list] = []
    if banner:
        rows += [["Kredi Kartı Ekstresi"], ["Kart No: **** 1234"], []]
    rows.append(list(CREDIT_HEADERS))
    rows.extend(list(r) for r in data_rows)
    return rows


def make_txn(**overrides) -> Transaction:
    defaults = dict(
        date=date(2024, 1, 5),
        merchant="MARKET",
        amount=Decimal("-150.00"),
        raw_description="MARKET",
        dedup_hash="hash_abc",
        layout="A",
        receipt_id="R1",
    )
    defaults.update(overrides)
    return Transaction(**defaults)


@pytest.fixture
def repo():
    r = Repository(":memory:")
    r.apply_migrations(MIGRATIONS_DIR)
    yield r
    r.close()
