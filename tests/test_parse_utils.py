"""Tests for the shared money/date helpers in parse_utils."""

from datetime import date, datetime

import pytest

from invoicebook.parse_utils import (
    coerce_date,
    coerce_money,
    excel_serial_to_date,
    floor_display,
    format_amount,
    format_long_date,
    format_money,
    parse_date,
    parse_day_month_year,
    parse_percent,
    to_amount,
    to_date,
)


# ---------------------------------------------------------------------------
# coerce_money – strict two-decimal cleaning for bulk import
# ---------------------------------------------------------------------------

def test_coerce_money_rupee_symbol_and_commas():
    assert coerce_money("₹ 1,200.32555") == 1200.33


def test_coerce_money_empty_is_none():
    assert coerce_money("") is None


def test_coerce_money_none_is_none():
    assert coerce_money(None) is None


def test_coerce_money_garbage_is_zero():
    assert coerce_money("abc") == 0


def test_coerce_money_keeps_negatives():
    assert coerce_money(-5) == -5


def test_coerce_money_negative_string():
    assert coerce_money(" -12.5 ") == -12.5


def test_coerce_money_thousands():
    assert coerce_money("1,466.93") == 1466.93


def test_coerce_money_float_input():
    assert coerce_money(1234.5678) == 1234.57


@pytest.mark.parametrize(
    "raw",
    ["₹ 1,200.32555", "abc", "", None, -5, "0.004", "99.999", 1234.5678, "-0.015", "12-3"],
)
def test_coerce_money_is_idempotent(raw):
    once = coerce_money(raw)
    assert coerce_money(once) == once


@pytest.mark.parametrize("raw", ["1.23456", "₹7,000.005", 3.14159, "0.1", "-44.449"])
def test_coerce_money_two_decimals_at_most(raw):
    value = coerce_money(raw)
    assert value == round(value, 2)


# ---------------------------------------------------------------------------
# parse_percent / to_amount
# ---------------------------------------------------------------------------

def test_parse_percent_strips_suffix():
    assert parse_percent("18%") == 18


def test_parse_percent_plain_number():
    assert parse_percent("12") == 12


def test_parse_percent_empty():
    assert parse_percent(None) == 0
    assert parse_percent("") == 0


def test_parse_percent_unparseable():
    assert parse_percent("abc%") == 0


def test_to_amount_lenient():
    assert to_amount("250.5") == 250.5
    assert to_amount("") == 0
    assert to_amount("n/a") == 0
    assert to_amount(None) == 0


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------

def test_floor_display_clamps_negative():
    assert floor_display(-400) == 0


def test_floor_display_rounds():
    assert floor_display(12.3456) == 12.35


def test_format_money():
    assert format_money(1200.5) == "1200.50"
    assert format_money(-3) == "0.00"
    assert format_money("abc") == "0.00"


def test_format_amount():
    assert format_amount(None) == "0"
    assert format_amount(0) == "0"
    assert format_amount(1000) == "1000.00"
    assert format_amount(-12.345678) == "-12.35"


def test_format_long_date():
    assert format_long_date(date(2025, 4, 12)) == "12 April 2025"
    assert format_long_date(None) == ""


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

def test_excel_serial_to_date():
    assert excel_serial_to_date(45759) == date(2025, 4, 12)


def test_excel_serial_first_day():
    assert excel_serial_to_date(1) == date(1900, 1, 1)


def test_excel_serial_ignores_time_fraction():
    assert excel_serial_to_date(45759.75) == date(2025, 4, 12)


def test_parse_day_month_year():
    assert parse_day_month_year("12 April 2025") == date(2025, 4, 12)
    assert parse_day_month_year("12 april 2025") == date(2025, 4, 12)


def test_parse_day_month_year_rejects_other_shapes():
    assert parse_day_month_year("April 12 2025") is None
    assert parse_day_month_year("31 February 2025") is None
    assert parse_day_month_year("2025-04-12") is None


def test_coerce_date_month_name():
    assert coerce_date("12 April 2025") == "2025-04-12"


def test_coerce_date_excel_serial():
    assert coerce_date(45759) == "2025-04-12"


def test_coerce_date_iso_string():
    assert coerce_date("2025-04-13") == "2025-04-13"


def test_coerce_date_iso_keeps_month_before_day():
    assert coerce_date("2025-04-05") == "2025-04-05"
    assert coerce_date("2025-04-05T00:00:00") == "2025-04-05"


def test_coerce_date_year_first_with_slashes():
    assert coerce_date("2025/04/05") == "2025-04-05"


def test_coerce_date_day_first_with_slashes():
    assert coerce_date("05/04/2025") == "2025-04-05"


def test_coerce_date_invalid_iso_day():
    assert coerce_date("2025-02-30") is None


def test_coerce_date_serial_as_text():
    assert coerce_date("45759") == "2025-04-12"
    assert coerce_date(" 45759.25 ") == "2025-04-12"


def test_coerce_date_native_values():
    assert coerce_date(datetime(2025, 4, 12, 10, 30)) == "2025-04-12"
    assert coerce_date(date(2025, 4, 12)) == "2025-04-12"


def test_coerce_date_unparseable():
    assert coerce_date("not a date") is None
    assert coerce_date("31 February 2025") is None
    assert coerce_date("") is None
    assert coerce_date(None) is None


def test_parse_date_dd_mm_yyyy():
    d = parse_date("03/02/2026")
    assert d is not None
    assert d.day == 3
    assert d.month == 2
    assert d.year == 2026


def test_parse_date_none():
    assert parse_date(None) is None


def test_to_date_backend_timestamp():
    assert to_date("2025-04-12T00:00:00.000Z") == date(2025, 4, 12)
    assert to_date("") is None
