"""Scalar cell values and their coercion at the import boundary.

Rows only ever hold ``str``, ``int``, ``float``, ``bool``, ``datetime`` or
``None``. Whatever pandas, openpyxl or ``json`` hand back is squeezed into that
set by :func:`coerce_scalar` before it reaches the rest of the package.
"""

from __future__ import annotations

import json
import math
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Union

import numpy as np
import pandas as pd

Scalar = Optional[Union[str, int, float, bool, datetime]]
Row = Dict[str, Scalar]


def _naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def coerce_scalar(value: Any) -> Scalar:
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    if isinstance(value, pd.Timestamp):
        return _naive(value.to_pydatetime())
    if isinstance(value, datetime):
        return _naive(value)
    if isinstance(value, date):
        return datetime.combine(value, time())
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, (float, np.floating)):
        number = float(value)
        return None if math.isnan(number) else number
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return value.replace("\x00", "")
    return str(value)


def coerce_row(record: Dict[Any, Any], *, drop_empty: bool = False) -> Row:
    row: Row = {}
    for key, value in record.items():
        cell = coerce_scalar(value)
        if drop_empty and (cell is None or cell == ""):
            continue
        row[str(key)] = cell
    return row


def is_blank(value: Scalar) -> bool:
    return value is None or value == ""


def display_text(value: Scalar) -> str:
    """Render a cell the way it is shown in tables, reports and search text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def union_headers(rows: List[Row]) -> List[str]:
    """Every key seen across ``rows``, in first-seen order."""
    seen: Dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(key, None)
    return list(seen)
