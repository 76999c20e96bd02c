"""Accent- and case-insensitive multi-term row search.

The index is one normalised string per row, built once per row set::

    index = build_search_index(rows)
    query(index, "maria garcia")   # -> {0}

A row matches when its string contains every whitespace-separated term of the
query, in any order. An empty query matches every row.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Sequence

from loguru import logger

from candidate_checker.values import Row, display_text

COMBINING_MARKS_RE = re.compile("[\u0300-\u036f]")
PUNCTUATION_RE = re.compile(r"[.,/#!$%^&*;:{}=\-_`~()]")


def normalize_text(text: str) -> str:
    if not text:
        return ""
    text = unicodedata.normalize("NFD", text)
    text = COMBINING_MARKS_RE.sub("", text)
    return PUNCTUATION_RE.sub("", text.lower())


def row_search_text(row: Row) -> str:
    return normalize_text(" ".join(display_text(value) for value in row.values()))


@dataclass(frozen=True)
class SearchEntry:
    text: str
    row_index: int


@dataclass(frozen=True)
class SearchIndex:
    entries: tuple[SearchEntry, ...]

    def __len__(self) -> int:
        return len(self.entries)


def build_search_index(rows: Sequence[Row]) -> SearchIndex:
    return SearchIndex(
        tuple(SearchEntry(row_search_text(row), index) for index, row in enumerate(rows))
    )


def query_terms(text: str) -> list[str]:
    return normalize_text(text or "").split()


def query(index: SearchIndex, text: str) -> set[int]:
    terms = query_terms(text)
    if not terms:
        return {entry.row_index for entry in index.entries}
    return {
        entry.row_index
        for entry in index.entries
        if all(term in entry.text for term in terms)
    }


class LiveSearch:
    """
    Search over a row set that can be swapped out.

    Replacing the rows only marks the index stale; it is rebuilt on the next
    query, and every later query reuses it until the rows change again.
    """

    def __init__(self, rows: Sequence[Row] = ()) -> None:
        self._rows: Sequence[Row] = rows
        self._index: SearchIndex | None = None
        self.builds = 0

    @property
    def rows(self) -> Sequence[Row]:
        return self._rows

    def set_rows(self, rows: Sequence[Row]) -> None:
        self._rows = rows
        self._index = None

    @property
    def index(self) -> SearchIndex:
        if self._index is None:
            self._index = build_search_index(self._rows)
            self.builds += 1
            logger.debug("Search index rebuilt over {} rows", len(self._rows))
        return self._index

    def query(self, text: str) -> set[int]:
        return query(self.index, text)

    def filter(self, text: str) -> list[int]:
        """Matching row indices in their original order."""
        return sorted(self.query(text))
