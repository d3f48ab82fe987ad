"""Tests for the fr-FR value parsers."""

from datetime import date, datetime

import pytest

from scripts.lib.parsers import (
    days_between,
    format_currency,
    format_date,
    format_percent,
    is_cancelled,
    is_not_applicable,
    normalize_name,
    parse_currency,
    parse_date,
    parse_entry_date,
    parse_percent,
    round_half_up,
    safe_div,
    sale_source,
    to_display_percent,
)


class TestParseCurrency:
    @pytest.mark.parametrize("raw", [None, "", "   ", "SO", "so", float("nan")])
    def test_empty_and_not_applicable_are_zero(self, raw):
        assert parse_currency(raw) == 0

    def test_french_amount(self):
        assert parse_currency("8 892,00 €") == pytest.approx(8892.0)

    def test_no_break_space_grouping(self):
        assert parse_currency("22\u202f230,50\u00a0€") == pytest.approx(22230.5)

    def test_numbers_pass_through(self):
        assert parse_currency(1500) == 1500
        assert parse_currency(12.75) == 12.75

    def test_negative_amount(self):
        assert parse_currency("-1 200,00 €") == pytest.approx(-1200.0)

    def test_garbage_is_zero(self):
        assert parse_currency("abc") == 0
        assert parse_currency("€") == 0

    def test_leading_prefix_is_kept(self):
        assert parse_currency("12.5.3") == pytest.approx(12.5)

    def test_bool_is_zero(self):
        assert parse_currency(True) == 0

    @pytest.mark.parametrize("value", [0, 0.01, 999.99, 1234.56, 1_000_000, 12_345_678.9])
    def test_parses_its_own_formatting(self, value):
        assert parse_currency(format_currency(value)) == pytest.approx(value, abs=0.01)


class TestFormatting:
    def test_format_currency_shape(self):
        assert format_currency(1234.56) == "1\u202f234,56\u00a0€"

    def test_format_currency_keeps_strings(self):
        assert format_currency("SO") == "SO"

    def test_format_percent(self):
        assert format_percent(0.09) == "9,00\u00a0%"

    def test_percent_round_trip(self):
        assert parse_percent(format_percent(0.0725)) == pytest.approx(0.0725)

    def test_parse_percent_display_string(self):
        assert parse_percent("9,00%") == pytest.approx(0.09)

    def test_parse_percent_numeric_is_fraction(self):
        assert parse_percent(0.09) == pytest.approx(0.09)

    def test_to_display_percent(self):
        assert to_display_percent(0.09) == pytest.approx(9.0)


class TestParseDate:
    def test_bare_year_is_first_of_january(self):
        assert parse_date("2020") == parse_date("01/01/2020") == date(2020, 1, 1)

    def test_unpadded_day_and_month(self):
        assert parse_date("18/8/2020") == date(2020, 8, 18)

    @pytest.mark.parametrize("raw", ["", None, "not-a-date", "2020-01-01", "31/02/2020", "1/1/20"])
    def test_invalid_is_none(self, raw):
        assert parse_date(raw) is None

    def test_date_objects_pass_through(self):
        assert parse_date(date(2021, 3, 4)) == date(2021, 3, 4)
        assert parse_date(datetime(2021, 3, 4, 10, 30)) == date(2021, 3, 4)

    def test_format_round_trip(self):
        d = date(2023, 11, 5)
        assert parse_date(format_date(d)) == d
        assert format_date(None) == ""

    def test_entry_date_accepts_iso_timestamps(self):
        assert parse_entry_date("2024-02-10T08:00:00+00:00") == date(2024, 2, 10)
        assert parse_entry_date("10/02/2024") == date(2024, 2, 10)
        assert parse_entry_date(None) is None


class TestHelpers:
    def test_days_between_is_symmetric(self):
        a, b = date(2020, 1, 1), date(2020, 2, 1)
        assert days_between(a, b) == days_between(b, a) == 31

    def test_safe_div(self):
        assert safe_div(1, 0) == 0
        assert safe_div(1, 4) == 0.25

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(31.25, 1) == 31.3
        assert round_half_up(1.15, 1) == 1.2
        assert round_half_up(2.675, 2) == 2.68

    def test_not_applicable_vs_zero(self):
        assert is_not_applicable("SO") is True
        assert is_not_applicable("") is True
        assert is_not_applicable(0) is False
        assert is_not_applicable("0,00 €") is False

    def test_cancelled_status(self):
        assert is_cancelled("Annulé") is True
        assert is_cancelled("ANNULATION partielle") is True
        assert is_cancelled("Réglé") is False
        assert is_cancelled(None) is False

    def test_sale_source(self):
        assert sale_source("F") == "F"
        assert sale_source(" Parrainage") == "P"
        assert sale_source("") is None

    def test_normalize_name(self):
        assert normalize_name("  Jean DUPONT ") == "jean dupont"
