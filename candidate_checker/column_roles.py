"""Header-name heuristics.

Every place that needs to know whether a column holds a date, a surname, a
given name or a national identifier asks :func:`classify`. The substrings it
looks for come from :class:`~candidate_checker.settings.Settings`.
"""

from __future__ import annotations

import unicodedata
from enum import Enum
from typing import Iterable

from candidate_checker.settings import DEFAULT_SETTINGS, Settings


class ColumnRole(str, Enum):
    DATE = "date"
    SURNAME = "surname"
    GIVEN_NAME = "given_name"
    NAME = "name"
    NATIONAL_ID = "national_id"


def fold_header(header: str) -> str:
    """Lowercase and strip accents so ``ANTIGÜEDAD`` matches ``antiguedad``."""
    decomposed = unicodedata.normalize("NFD", str(header))
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return stripped.lower()


def _mentions(folded: str, terms: Iterable[str]) -> bool:
    return any(fold_header(term) in folded for term in terms)


def classify(header: str, settings: Settings = DEFAULT_SETTINGS) -> frozenset[ColumnRole]:
    folded = fold_header(header)
    roles: set[ColumnRole] = set()
    if _mentions(folded, settings.date_terms):
        roles.add(ColumnRole.DATE)
    is_surname = _mentions(folded, settings.surname_terms)
    if is_surname:
        roles.add(ColumnRole.SURNAME)
    elif _mentions(folded, settings.given_name_terms):
        roles.add(ColumnRole.GIVEN_NAME)
    if _mentions(folded, settings.name_terms):
        roles.add(ColumnRole.NAME)
    elif _mentions(folded, settings.national_id_terms):
        # "id" also occurs inside "apellidos" and "candidato".
        roles.add(ColumnRole.NATIONAL_ID)
    return frozenset(roles)


def columns_with_role(
    headers: Iterable[str],
    role: ColumnRole,
    settings: Settings = DEFAULT_SETTINGS,
) -> list[str]:
    """Headers carrying ``role``, in the order given."""
    return [header for header in headers if role in classify(header, settings)]


def date_columns(headers: Iterable[str], settings: Settings = DEFAULT_SETTINGS) -> list[str]:
    return columns_with_role(headers, ColumnRole.DATE, settings)
