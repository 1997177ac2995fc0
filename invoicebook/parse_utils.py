from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta
from typing import Any, Optional

from dateutil import parser as date_parser


_NUMBER_PREFIX_RE = re.compile(r"^-?(?:\d+\.?\d*|\.\d+)")
_MONEY_STRIP_RE = re.compile(r"[^0-9.\-]")
_SERIAL_RE = re.compile(r"\d+(?:\.\d+)?")
_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:$|[T ])")

MONTHS: dict[str, int] = {
    "january": 1,
    "february": 2,
    "march": 3,
    "april": 4,
    "may": 5,
    "june": 6,
    "july": 7,
    "august": 8,
    "september": 9,
    "october": 10,
    "november": 11,
    "december": 12,
}

# Excel's day zero; serials below 61 sit before the phantom 1900-02-29.
_EXCEL_EPOCH = date(1899, 12, 30)


def round2(value: float) -> float:
    return round(float(value), 2)


def floor_display(value: float | None) -> float:
    """Presentation value: rounded to cents, never negative."""
    if value is None:
        return 0.0
    rounded = round2(value)
    return rounded if rounded > 0 else 0.0


def _leading_float(text: str) -> Optional[float]:
    match = _NUMBER_PREFIX_RE.match(text)
    if not match:
        return None
    try:
        return float(match.group(0))
    except ValueError:
        return None


def coerce_money(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        value = int(value)
    if isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value):
            return 0.0
        return round2(value)

    cleaned = _MONEY_STRIP_RE.sub("", str(value))
    number = _leading_float(cleaned)
    if number is None:
        return 0.0
    return round2(number)


def to_amount(value: Any) -> float:
    """Lenient numeric read: anything missing or unparseable counts as 0."""
    if value is None or value == "":
        return 0.0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if math.isnan(value) or math.isinf(value):
            return 0.0
        return float(value)
    try:
        number = float(str(value).strip())
    except ValueError:
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def parse_percent(value: Any) -> float:
    if value is None:
        return 0.0
    text = str(value).strip()
    if not text:
        return 0.0
    return to_amount(text.rstrip("%").strip())


def format_amount(value: float | None) -> str:
    if not value:
        return "0"
    return f"{round2(value):.2f}"


def format_money(value: Any) -> str:
    number = to_amount(value)
    if number <= 0:
        return "0.00"
    return f"{number:.2f}"


def excel_serial_to_date(serial: float) -> Optional[date]:
    if serial is None or serial < 1:
        return None
    days = int(serial)
    if days < 61:
        # Excel counts a non-existent 1900-02-29; earlier serials are one day ahead.
        days += 1
    try:
        return _EXCEL_EPOCH + timedelta(days=days)
    except OverflowError:
        return None


def parse_day_month_year(value: str) -> Optional[date]:
    parts = value.strip().split()
    if len(parts) != 3:
        return None
    month = MONTHS.get(parts[1].lower())
    if not month:
        return None
    try:
        day = int(parts[0])
        year = int(parts[2])
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(value: str | None, dayfirst: bool = True) -> Optional[date]:
    if not value:
        return None

    cleaned = value.strip()
    if not cleaned:
        return None

    try:
        parsed = date_parser.parse(cleaned, dayfirst=dayfirst)
    except (ValueError, TypeError, OverflowError):
        return None

    return parsed.date()


def coerce_date(value: Any) -> Optional[str]:
    """ISO date for a spreadsheet cell, or None when it cannot be read."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value):
            return None
        parsed = excel_serial_to_date(value)
        return parsed.isoformat() if parsed else None

    text = str(value).strip()
    if _SERIAL_RE.fullmatch(text):
        # CSV cells carry Excel serials as text.
        parsed = excel_serial_to_date(float(text))
        return parsed.isoformat() if parsed else None

    iso = _ISO_DATE_RE.match(text)
    if iso:
        try:
            return date(*(int(part) for part in iso.groups())).isoformat()
        except ValueError:
            return None

    # Year-first strings are never day-first.
    parsed = parse_day_month_year(text) or parse_date(text, dayfirst=not text[:4].isdigit())
    return parsed.isoformat() if parsed else None


def to_date(value: Any) -> Optional[date]:
    """Backend dates arrive as ISO strings or timestamps; keep the calendar day."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return parse_date(text)


def format_long_date(value: date | None) -> str:
    if value is None:
        return ""
    return f"{value.day} {value.strftime('%B')} {value.year}"
