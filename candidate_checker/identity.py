"""Who a row is.

:func:`identify` turns a row into the string used to group candidates across
union lists and to sort the duplicates report. Surnames come first so the
report sorts by surname.

Two different people whose name columns concatenate to the same text (two
``Juan Pérez`` with different DNI) resolve to the same identity. Duplicate
detection inherits that on purpose; see DESIGN.md.
"""

from __future__ import annotations

from candidate_checker.column_roles import ColumnRole, classify
from candidate_checker.settings import DEFAULT_SETTINGS, Settings
from candidate_checker.values import Row, display_text


def _joined(row: Row, keys: list[str]) -> str:
    return " ".join(display_text(row.get(key)) for key in keys).strip()


def identify(row: Row, settings: Settings = DEFAULT_SETTINGS) -> str:
    roles = {key: classify(key, settings) for key in row}

    surname_keys = sorted(k for k, r in roles.items() if ColumnRole.SURNAME in r)
    given_keys = sorted(k for k, r in roles.items() if ColumnRole.GIVEN_NAME in r)
    if surname_keys or given_keys:
        full_name = _joined(row, surname_keys + given_keys)
        if full_name:
            return full_name

    name_keys = sorted(k for k, r in roles.items() if ColumnRole.NAME in r)
    if name_keys:
        name = _joined(row, name_keys)
        if name:
            return name

    for key, role in roles.items():
        if ColumnRole.NATIONAL_ID in role:
            national_id = display_text(row[key]).strip()
            if national_id:
                return national_id

    for value in row.values():
        first = display_text(value).strip()
        if first:
            return first
        break

    return settings.unknown_candidate
