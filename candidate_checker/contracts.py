"""Shared versioned contracts for candidate-checker JSON outputs."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Any

CONTRACT_VERSIONS = {
    "candidate_checker.duplicates_report": "1.0.0",
    "candidate_checker.search": "1.0.0",
    "candidate_checker.import_summary": "1.0.0",
}

GENERATED_AT_ENV = "CANDIDATE_CHECKER_GENERATED_AT"


def utc_now_iso() -> str:
    override = os.environ.get(GENERATED_AT_ENV)
    if override:
        return override
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def build_import_summary(
    *,
    file_name: str,
    headers: list[str],
    row_count: int,
    date_columns: list[str],
) -> dict[str, Any]:
    return {
        "contract": build_contract("candidate_checker.import_summary"),
        "generated_at": utc_now_iso(),
        "file_name": file_name,
        "headers": list(headers),
        "row_count": row_count,
        "date_columns": list(date_columns),
    }
