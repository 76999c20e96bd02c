"""Candidates marked under more than one union."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from candidate_checker.identity import identify
from candidate_checker.settings import DEFAULT_SETTINGS, Settings
from candidate_checker.values import Row

SelectionState = Mapping[int, Mapping[str, bool]]


@dataclass(frozen=True)
class DuplicateEntry:
    identity: str
    other_unions: tuple[str, ...]

    def to_dict(self) -> dict:
        return {"identifier": self.identity, "otherUnions": list(self.other_unions)}


def selected_unions(selection: SelectionState, row_index: int, unions: Sequence[str]) -> list[str]:
    marks = selection.get(row_index) or {}
    return [union for union in unions if marks.get(union)]


def unions_by_identity(
    rows: Sequence[Row],
    unions: Sequence[str],
    selection: SelectionState,
    settings: Settings = DEFAULT_SETTINGS,
) -> dict[str, set[str]]:
    """Every identity with at least one mark, and the unions it is marked under."""
    found: dict[str, set[str]] = {}
    for row_index, row in enumerate(rows):
        checked = selected_unions(selection, row_index, unions)
        if not checked:
            continue
        found.setdefault(identify(row, settings), set()).update(checked)
    return found


def group_duplicates(
    rows: Sequence[Row],
    unions: Sequence[str],
    selection: SelectionState,
    settings: Settings = DEFAULT_SETTINGS,
) -> dict[str, list[DuplicateEntry]]:
    """
    Duplicates grouped by union.

    Keys follow the order of ``unions``; unions without duplicates are left
    out. Within a union, entries are sorted by identity and each lists the
    other unions the candidate is also marked under, sorted. Marks for unions
    missing from ``unions`` are ignored.
    """
    duplicates = {
        identity: marked
        for identity, marked in unions_by_identity(rows, unions, selection, settings).items()
        if len(marked) > 1
    }

    grouped: dict[str, list[DuplicateEntry]] = {}
    for union in unions:
        if union in grouped:
            continue
        entries = [
            DuplicateEntry(identity, tuple(sorted(marked - {union})))
            for identity, marked in duplicates.items()
            if union in marked
        ]
        if entries:
            grouped[union] = sorted(entries, key=lambda entry: entry.identity)
    return grouped


def count_duplicates(grouped: Mapping[str, Sequence[DuplicateEntry]]) -> int:
    """Distinct identities across all groups."""
    return len({entry.identity for entries in grouped.values() for entry in entries})
