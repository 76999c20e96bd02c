"""Saved working session: the imported table, its marks and the election settings.

The persisted shape mirrors what the browser application stored::

    {
      "headers": [...],
      "data": [{...}, ...],
      "checkedState": {"0": {"CCOO": true}},
      "settings": {"dates": {"submissionDate": "", "votingDate": ""},
                   "unions": ["CCOO", "UGT"]},
      "fileName": "censo.xlsx"
    }

Datetime cells are written as ISO text and read back as datetimes; any text
cell that looks exactly like ``datetime.isoformat()`` output comes back as one.

Storage is injected: anything with ``load()``, ``save()`` and ``clear()``
works. :class:`JsonFileStore` keeps the document in one file.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol

from loguru import logger

from candidate_checker.errors import SessionError
from candidate_checker.settings import DEFAULT_VISIBLE_UNIONS
from candidate_checker.values import Row, coerce_row

CheckedState = Dict[int, Dict[str, bool]]

# What datetime.isoformat() writes for the naive datetimes rows hold.
ISO_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{6})?$")


def set_checked(state: Mapping[int, Mapping[str, bool]], row_index: int, union: str, checked: bool) -> CheckedState:
    """Copy of ``state`` with one mark changed."""
    updated = {index: dict(marks) for index, marks in state.items()}
    updated.setdefault(row_index, {})[union] = checked
    return updated


def _json_cell(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _restore_row(record: Mapping[str, Any]) -> Row:
    row = coerce_row(record)
    for key, value in row.items():
        if isinstance(value, str) and ISO_DATETIME_RE.match(value):
            try:
                row[key] = datetime.fromisoformat(value)
            except ValueError:
                pass
    return row


@dataclass
class SessionSnapshot:
    headers: list[str] = field(default_factory=list)
    rows: list[Row] = field(default_factory=list)
    checked_state: CheckedState = field(default_factory=dict)
    unions: list[str] = field(default_factory=lambda: list(DEFAULT_VISIBLE_UNIONS))
    submission_date: str = ""
    voting_date: str = ""
    file_name: str = ""

    def with_checked(self, row_index: int, union: str, checked: bool) -> "SessionSnapshot":
        if not 0 <= row_index < len(self.rows):
            raise IndexError(f"Row {row_index} out of range (0..{len(self.rows) - 1})")
        return replace(self, checked_state=set_checked(self.checked_state, row_index, union, checked))

    def to_dict(self) -> dict[str, Any]:
        return {
            "headers": list(self.headers),
            "data": [{key: _json_cell(value) for key, value in row.items()} for row in self.rows],
            "checkedState": {
                str(index): dict(marks) for index, marks in sorted(self.checked_state.items())
            },
            "settings": {
                "dates": {
                    "submissionDate": self.submission_date,
                    "votingDate": self.voting_date,
                },
                "unions": list(self.unions),
            },
            "fileName": self.file_name,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SessionSnapshot":
        if not isinstance(payload, Mapping):
            raise SessionError("Saved session is not a JSON object")
        try:
            checked = {
                int(index): {str(union): bool(flag) for union, flag in (marks or {}).items()}
                for index, marks in (payload.get("checkedState") or {}).items()
            }
        except (TypeError, ValueError, AttributeError) as exc:
            raise SessionError(f"Saved selection state is unreadable: {exc}") from exc

        settings = payload.get("settings") or {}
        dates = settings.get("dates") or {}
        return cls(
            headers=list(payload.get("headers") or []),
            rows=[_restore_row(row) for row in payload.get("data") or []],
            checked_state=checked,
            unions=list(settings.get("unions") or DEFAULT_VISIBLE_UNIONS),
            submission_date=dates.get("submissionDate") or "",
            voting_date=dates.get("votingDate") or "",
            file_name=payload.get("fileName") or "",
        )


class SessionStore(Protocol):
    def load(self) -> Optional[SessionSnapshot]: ...

    def save(self, snapshot: SessionSnapshot) -> None: ...

    def clear(self) -> None: ...


class JsonFileStore:
    """One JSON document on disk, replaced atomically on every save."""

    def __init__(self, path: "str | Path") -> None:
        self.path = Path(path)

    def load(self) -> Optional[SessionSnapshot]:
        if not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise SessionError(f"Could not read saved session {self.path}: {exc}") from exc
        snapshot = SessionSnapshot.from_dict(payload)
        logger.debug("Loaded session with {} rows from {}", len(snapshot.rows), self.path)
        return snapshot

    def save(self, snapshot: SessionSnapshot) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".session-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(snapshot.to_dict(), handle, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Saved session with {} rows to {}", len(snapshot.rows), self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class MemoryStore:
    """Keeps the serialised document in memory; used when nothing should touch disk."""

    def __init__(self) -> None:
        self._payload: Optional[dict[str, Any]] = None

    def load(self) -> Optional[SessionSnapshot]:
        if self._payload is None:
            return None
        return SessionSnapshot.from_dict(self._payload)

    def save(self, snapshot: SessionSnapshot) -> None:
        self._payload = json.loads(json.dumps(snapshot.to_dict(), ensure_ascii=False))

    def clear(self) -> None:
        self._payload = None
