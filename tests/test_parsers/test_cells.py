"""Tests for parsers.cells — cell conversions."""

from datetime import date, datetime
from decimal import Decimal

from spendlens.parsers.cells import (
    cell_to_str,
    parse_amount_cell,
    parse_date_cell,
    round_money,
    tr_lower,
)


class TestRoundMoney:
    def test_half_up(self):
        assert round_money(Decimal("1.005")) == Decimal("1.01")
        assert round_money(Decimal("-1.005")) == Decimal("-1.01")

    def test_pads_scale(self):
        assert str(round_money(Decimal("150"))) == "150.00"


class TestTrLower:
    def test_dotted_capital_i(self):
        assert tr_lower("İşlem") == "işlem"

    def test_plain_ascii(self):
        assert tr_lower("Kart ÖDEMESİ") == "kart ödemesi"


class TestCellToStr:
    def test_none(self):
        assert cell_to_str(None) is None

    def test_strips_text(self):
        assert cell_to_str("  MARKET  ") == "MARKET"

    def test_integral_float_drops_fraction(self):
        assert cell_to_str(12345.0) == "12345"

    def test_int(self):
        assert cell_to_str(987) == "987"

    def test_non_integral_float(self):
        assert cell_to_str(1.5) == "1.5"

    def test_bool(self):
        assert cell_to_str(True) == "true"

    def test_datetime(self):
        assert cell_to_str(datetime(2024, 1, 5)) == "2024-01-05T00:00:00"


class TestParseDateCell:
    def test_datetime_cell(self):
        assert parse_date_cell(datetime(2024, 1, 5, 13, 30)) == date(2024, 1, 5)

    def test_date_cell(self):
        assert parse_date_cell(date(2024, 1, 5)) == date(2024, 1, 5)

    def test_day_first_slash(self):
        assert parse_date_cell("05/01/2024") == date(2024, 1, 5)

    def test_day_first_dot(self):
        assert parse_date_cell("5.1.2024") == date(2024, 1, 5)

    def test_iso_text(self):
        assert parse_date_cell("2024-01-05") == date(2024, 1, 5)

    def test_invalid_calendar_date(self):
        assert parse_date_cell("31/02/2024") is None

    def test_garbage(self):
        assert parse_date_cell("Toplam") is None

    def test_number_is_not_a_date(self):
        assert parse_date_cell(45296) is None

    def test_none(self):
        assert parse_date_cell(None) is None


class TestParseAmountCell:
    def test_float(self):
        assert parse_amount_cell(-150.0) == Decimal("-150.00")

    def test_int(self):
        assert parse_amount_cell(42) == Decimal("42.00")

    def test_float_rounds_half_up(self):
        assert parse_amount_cell(2.675) == Decimal("2.68")

    def test_turkish_text(self):
        assert parse_amount_cell("-1.234,56") == Decimal("-1234.56")

    def test_currency_suffix(self):
        assert parse_amount_cell("1.500,00 TL") == Decimal("1500.00")

    def test_plain_decimal_comma(self):
        assert parse_amount_cell("99,9") == Decimal("99.90")

    def test_empty_text(self):
        assert parse_amount_cell("   ") is None

    def test_unparseable_text(self):
        assert parse_amount_cell("abc") is None

    def test_bool_is_not_an_amount(self):
        assert parse_amount_cell(False) is None

    def test_none(self):
        assert parse_amount_cell(None) is None

    def test_result_has_two_places(self):
        assert str(parse_amount_cell("-150")) == "-150.00"
