"""Outputs handed to the user: the verified table and the duplicates report."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Sequence

import pandas as pd
from loguru import logger

from candidate_checker.contracts import build_contract, utc_now_iso
from candidate_checker.duplicates import DuplicateEntry, count_duplicates
from candidate_checker.session import CheckedState
from candidate_checker.values import Row

CHECKED_TEXT = "VERDADERO"
UNCHECKED_TEXT = "FALSO"
VERIFIED_SHEET = "Datos Verificados"
EXPORT_FORMATS = ("csv", "xlsx")
UNSPECIFIED_DATE = "No especificada"


def build_verified_frame(
    headers: Sequence[str],
    rows: Sequence[Row],
    checked_state: CheckedState,
    unions: Sequence[str],
) -> pd.DataFrame:
    """The imported columns followed by one ``VERDADERO``/``FALSO`` column per union."""
    records = []
    for row_index, row in enumerate(rows):
        record: dict[str, Any] = {header: row.get(header) for header in headers}
        marks = checked_state.get(row_index) or {}
        for union in unions:
            record[union] = CHECKED_TEXT if marks.get(union) else UNCHECKED_TEXT
        records.append(record)
    columns = list(dict.fromkeys([*headers, *unions]))
    return pd.DataFrame.from_records(records, columns=columns)


def default_export_name(file_name: str, fmt: str) -> str:
    stem = Path(file_name).stem.split(".")[0] if file_name else "datos"
    return f"verificado_{stem}.{fmt}"


def export_verified(
    headers: Sequence[str],
    rows: Sequence[Row],
    checked_state: CheckedState,
    unions: Sequence[str],
    path: "str | Path",
    fmt: str = "xlsx",
) -> Path:
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format '{fmt}'. Supported: {', '.join(EXPORT_FORMATS)}")
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame = build_verified_frame(headers, rows, checked_state, unions)
    if fmt == "csv":
        frame.to_csv(path, index=False, encoding="utf-8-sig")
    else:
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            frame.to_excel(writer, sheet_name=VERIFIED_SHEET, index=False)
    logger.info("Exported {} rows to {}", len(frame), path)
    return path


def format_display_date(iso_date: str) -> str:
    """``2024-03-15`` becomes ``15/03/2024``; anything else is returned as-is."""
    if not iso_date:
        return UNSPECIFIED_DATE
    parts = iso_date.split("-")
    if len(parts) != 3:
        return iso_date
    year, month, day = parts
    return f"{day}/{month}/{year}"


def build_duplicates_report(
    grouped: Mapping[str, Sequence[DuplicateEntry]],
    *,
    submission_date: str = "",
    voting_date: str = "",
    file_name: str = "",
) -> dict[str, Any]:
    return {
        "contract": build_contract("candidate_checker.duplicates_report"),
        "generated_at": utc_now_iso(),
        "file_name": file_name,
        "key_dates": {
            "submission_date": format_display_date(submission_date),
            "voting_date": format_display_date(voting_date),
        },
        "summary": {
            "unions_with_duplicates": len(grouped),
            "duplicate_candidates": count_duplicates(grouped),
        },
        "duplicates": {
            union: [entry.to_dict() for entry in entries]
            for union, entries in grouped.items()
        },
    }


def render_duplicates_text(report: Mapping[str, Any]) -> str:
    dates = report.get("key_dates", {})
    lines = [
        "Informe de Candidaturas Duplicadas",
        f"Presentación de candidaturas: {dates.get('submission_date', UNSPECIFIED_DATE)}",
        f"Fecha de votación: {dates.get('voting_date', UNSPECIFIED_DATE)}",
        "",
    ]
    groups = report.get("duplicates", {})
    if not groups:
        lines.append("No se han encontrado candidatos en múltiples sindicatos.")
        return "\n".join(lines) + "\n"
    for union, entries in groups.items():
        lines.append(f"Sindicato: {union}")
        for entry in entries:
            others = ", ".join(entry["otherUnions"])
            lines.append(f"- {entry['identifier']} (también en: {others})")
        lines.append("")
    return "\n".join(lines)
