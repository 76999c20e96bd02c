"""Runtime configuration for candidate-checker.

Everything heuristic lives here: which header substrings mark a date, name or
identifier column, the default union list and the session location.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path

DEFAULT_UNIONS = ("CCOO", "UGT", "SB", "SITCA", "OTRO")
DEFAULT_VISIBLE_UNIONS = ("CCOO", "UGT")
UNKNOWN_CANDIDATE = "Candidato Desconocido"

STATE_ENV = "CANDIDATE_CHECKER_STATE"
UNIONS_ENV = "CANDIDATE_CHECKER_UNIONS"


def default_state_path() -> Path:
    return Path.home() / ".candidate-checker" / "session.json"


@dataclass(frozen=True)
class Settings:
    date_terms: tuple[str, ...] = ("fecha", "antiguedad")
    surname_terms: tuple[str, ...] = ("apellido",)
    given_name_terms: tuple[str, ...] = ("nombre",)
    name_terms: tuple[str, ...] = ("nombre", "apellido", "name", "candidato")
    national_id_terms: tuple[str, ...] = ("dni", "nif", "id")
    unions: tuple[str, ...] = DEFAULT_UNIONS
    visible_unions: tuple[str, ...] = DEFAULT_VISIBLE_UNIONS
    unknown_candidate: str = UNKNOWN_CANDIDATE
    state_path: Path = field(default_factory=default_state_path)

    @classmethod
    def from_env(cls, environ: "dict[str, str] | None" = None) -> "Settings":
        env = os.environ if environ is None else environ
        settings = cls()
        state = env.get(STATE_ENV)
        if state:
            settings = replace(settings, state_path=Path(state))
        unions = env.get(UNIONS_ENV)
        if unions:
            parsed = tuple(dict.fromkeys(u.strip() for u in unions.split(",") if u.strip()))
            if parsed:
                settings = replace(settings, visible_unions=parsed)
        return settings


DEFAULT_SETTINGS = Settings()
