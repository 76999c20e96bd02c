"""Date cell normalisation to ``DD-MM-YYYY``.

Cells in date columns arrive in three shapes: real datetimes (spreadsheets),
spreadsheet serial day counts (numbers) and locale strings such as
``05/06/23``. :func:`normalize_date` turns any of them into ``DD-MM-YYYY`` and
leaves anything it cannot read untouched.
"""

from __future__ import annotations

import re
import warnings
from datetime import date, datetime, timedelta

import pandas as pd

from candidate_checker.values import Scalar

EXCEL_EPOCH = datetime(1899, 12, 30)
# Serials at or below the Unix epoch (1970-01-01) are not treated as dates.
UNIX_EPOCH_SERIAL = 25569
MIN_YEAR = 1000

DAY_FIRST_RE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})$")


def format_date(value: "datetime | date | None") -> str:
    if value is None:
        return ""
    return f"{value.day:02d}-{value.month:02d}-{value.year:04d}"


def _from_serial(number: float) -> datetime | None:
    try:
        return EXCEL_EPOCH + timedelta(days=number)
    except OverflowError:
        return None


def _from_day_first(day: int, month: int, year: int) -> datetime | None:
    """Build a calendar date, rolling overflowing days/months forward."""
    if year < 100:
        year += 2000
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    try:
        return datetime(year, month, 1) + timedelta(days=day - 1)
    except (ValueError, OverflowError):
        return None


def _from_free_text(text: str) -> datetime | None:
    with warnings.catch_warnings():
        # pandas warns when it has to fall back to dateutil per element.
        warnings.simplefilter("ignore", UserWarning)
        try:
            parsed = pd.to_datetime(text, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            return None
    if not isinstance(parsed, pd.Timestamp) or pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def parse_date(value: Scalar) -> datetime | None:
    """Interpret ``value`` as a date, or return ``None``."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    parsed: datetime | None = None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if value > UNIX_EPOCH_SERIAL:
            parsed = _from_serial(float(value))
    elif isinstance(value, str):
        text = value.strip()
        match = DAY_FIRST_RE.match(text)
        if match:
            day, month, year = (int(part) for part in match.groups())
            parsed = _from_day_first(day, month, year)
        elif text:
            parsed = _from_free_text(text)

    if parsed is None or parsed.year <= MIN_YEAR:
        return None
    return parsed


def normalize_date(value: Scalar) -> Scalar:
    """``DD-MM-YYYY`` for anything that reads as a date, else ``value`` itself.

    ``None`` becomes the empty string. Never raises.
    """
    if value is None:
        return ""
    parsed = parse_date(value)
    if parsed is None:
        return value
    return format_date(parsed)
