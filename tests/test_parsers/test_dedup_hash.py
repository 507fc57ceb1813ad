"""Tests for canonical strings, dedup hashing and Transaction building."""

from __future__ import annotations

import hashlib
from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from spendlens.parsers.base import (
    Layout,
    ParsedRow,
    build_transaction,
    canonical_string,
    compute_dedup_hash,
    format_amount,
)


def _debit_row(**overrides) -> ParsedRow:
    defaults = dict(
        layout=Layout.DEBIT,
        row_number=5,
        date=date(2024, 1, 5),
        merchant="MARKET",
        amount=Decimal("-150.00"),
        balance=Decimal("1000.00"),
        receipt_id="R1",
    )
    defaults.update(overrides)
    return ParsedRow(**defaults)


def _credit_row(**overrides) -> ParsedRow:
    defaults = dict(
        layout=Layout.CREDIT,
        row_number=5,
        date=date(2024, 2, 10),
        merchant="NETFLIX.COM",
        amount=Decimal("-99.99"),
        tag="Eğlence",
    )
    defaults.update(overrides)
    return ParsedRow(**defaults)


class TestFormatAmount:
    def test_two_places(self):
        assert format_amount(Decimal("-150")) == "-150.00"

    def test_no_exponent(self):
        assert format_amount(Decimal("1E+3")) == "1000.00"


class TestCanonicalString:
    def test_debit(self):
        assert canonical_string(_debit_row()) == "A|2024-01-05|MARKET|-150.00|R1"

    def test_debit_trims_merchant_and_receipt(self):
        row = _debit_row(merchant="  MARKET ", receipt_id=" R1 ")
        assert canonical_string(row) == "A|2024-01-05|MARKET|-150.00|R1"

    def test_credit(self):
        assert canonical_string(_credit_row()) == "B|2024-02-10|NETFLIX.COM|Eğlence|-99.99"

    def test_credit_without_tag(self):
        assert canonical_string(_credit_row(tag=None)) == "B|2024-02-10|NETFLIX.COM||-99.99"

    def test_unknown_layout(self):
        with pytest.raises(ValueError):
            canonical_string(_debit_row(layout=Layout.UNKNOWN))


class TestComputeDedupHash:
    def test_sha256_of_canonical_string(self):
        expected = hashlib.sha256(b"A|2024-01-05|MARKET|-150.00|R1").hexdigest()
        assert compute_dedup_hash(_debit_row()) == expected

    def test_deterministic(self):
        assert compute_dedup_hash(_debit_row()) == compute_dedup_hash(_debit_row())

    def test_fixed_length_hex(self):
        h = compute_dedup_hash(_credit_row())
        assert len(h) == 64
        int(h, 16)

    @pytest.mark.parametrize("field,value", [
        ("date", date(2024, 1, 6)),
        ("merchant", "MARKET 2"),
        ("amount", Decimal("-150.01")),
        ("receipt_id", "R2"),
    ])
    def test_debit_sensitive_to_each_identity_field(self, field, value):
        base = _debit_row()
        assert compute_dedup_hash(replace(base, **{field: value})) != compute_dedup_hash(base)

    def test_debit_ignores_balance_and_tag(self):
        base = _debit_row()
        other = replace(base, balance=Decimal("1.00"), tag="Market", row_number=99)
        assert compute_dedup_hash(other) == compute_dedup_hash(base)

    def test_credit_sensitive_to_tag(self):
        base = _credit_row()
        assert compute_dedup_hash(replace(base, tag="Abonelik")) != compute_dedup_hash(base)

    def test_credit_same_day_same_amount_collapse(self):
        # No bank-assigned id on layout B: two identical charges share a hash.
        assert compute_dedup_hash(_credit_row(row_number=5)) == compute_dedup_hash(
            _credit_row(row_number=6)
        )

    def test_layouts_never_collide(self):
        debit = _debit_row(receipt_id="")
        credit = _credit_row(
            date=debit.date, merchant=debit.merchant, amount=debit.amount, tag=""
        )
        assert compute_dedup_hash(debit) != compute_dedup_hash(credit)


class TestBuildTransaction:
    def test_debit_fields(self):
        txn = build_transaction(_debit_row(merchant=" MARKET "))
        assert txn.merchant == "MARKET"
        assert txn.raw_description == " MARKET "
        assert txn.amount == Decimal("-150.00")
        assert txn.layout == "A"
        assert txn.receipt_id == "R1"
        assert txn.balance == Decimal("1000.00")
        assert txn.dedup_hash == compute_dedup_hash(_debit_row())
        assert txn.is_subscription is False
        assert txn.is_spending

    def test_credit_fields(self):
        txn = build_transaction(_credit_row(bonus_points=Decimal("1.5")))
        assert txn.layout == "B"
        assert txn.user_tag == "Eğlence"
        assert txn.bonus_points == Decimal("1.50")
        assert txn.receipt_id is None
