"""
loader.py: tabular import for candidate-checker

Supports: .csv .json .xlsx .xls

Public API:
    result = await parse(buffer, "csv")
    result = await parse_file("censo.xlsx")
    result.headers, result.rows

Every loader returns plain rows (``dict[str, Scalar]``). After dispatch the
header union is computed over all rows and date columns are normalised to
``DD-MM-YYYY``. Failures raise a :class:`~candidate_checker.errors.ParseError`
subclass; a source with zero data rows is a valid, empty result.
"""

from __future__ import annotations

import asyncio
import csv
import io
import json as _json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Optional

import chardet
import pandas as pd
from loguru import logger

from candidate_checker.column_roles import date_columns
from candidate_checker.dates import normalize_date
from candidate_checker.errors import (
    EmptySource,
    IOFailure,
    MalformedSource,
    ParseSuperseded,
    UnsupportedFormat,
)
from candidate_checker.settings import DEFAULT_SETTINGS, Settings
from candidate_checker.values import Row, coerce_row, is_blank, union_headers

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS  = {"csv"}
EXCEL_FORMATS = {"xlsx", "xls"}
JSON_FORMATS  = {"json"}
ALL_FORMATS   = TEXT_FORMATS | EXCEL_FORMATS | JSON_FORMATS


@dataclass
class ParseResult:
    headers: list[str] = field(default_factory=list)
    rows: list[Row] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)


def normalize_extension(extension: str) -> str:
    """``".XLSX"`` and ``"xlsx"`` both become ``"xlsx"``."""
    return (extension or "").strip().lower().lstrip(".")


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    """Best guess at the text encoding of ``raw``; ``utf-8`` when unsure."""
    result = chardet.detect(raw[:200_000])
    detected = result.get("encoding")
    if not detected:
        return "utf-8"
    if detected.lower() == "ascii":
        return "utf-8"
    return detected


# ══════════════════════════════════════════════════════════════════════════════
# SAFE TEXT READING (mixed-encoding tolerant)
# ══════════════════════════════════════════════════════════════════════════════

def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Strategy per line:
      1. Try UTF-8
      2. Try preferred_encoding (chardet result)
      3. Try latin-1
      4. CP1252 with replace (never crashes)

    Also strips a leading BOM and embedded null bytes.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            if not enc:
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines).lstrip("\ufeff")


# ══════════════════════════════════════════════════════════════════════════════
# DELIMITER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

DELIMITERS = (";", ",", "\t", "|")


def _detect_delimiter(text: str) -> str:
    """
    Infer the CSV delimiter from the first non-blank lines.

    csv.Sniffer decides when it can. Otherwise the candidate that occurs most
    often in the header line wins, ``;`` first on ties (Spanish exports);
    a header with none of them is a single-column file read with ``,``.
    """
    lines = [line for line in text.splitlines() if line.strip()][:25]
    if not lines:
        return ","

    try:
        return csv.Sniffer().sniff("\n".join(lines), delimiters="".join(DELIMITERS)).delimiter
    except csv.Error:
        pass

    counts = {delim: lines[0].count(delim) for delim in DELIMITERS}
    best = max(DELIMITERS, key=counts.__getitem__)
    return best if counts[best] else ","


def _check_row_widths(text: str, delimiter: str) -> None:
    """Every data row must have as many fields as the header row."""
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    width = None
    for fields in reader:
        if not fields or (len(fields) == 1 and not fields[0].strip()):
            continue
        if width is None:
            width = len(fields)
            continue
        if len(fields) < width:
            raise MalformedSource(
                f"Error al parsear CSV: la línea {reader.line_num} tiene {len(fields)} "
                f"campos y la cabecera {width}"
            )


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _load_csv(buffer: bytes) -> list[Row]:
    """Header row required; every value stays a string."""
    encoding = _detect_encoding(buffer)
    text = _read_text_safely(buffer, encoding)
    if not text.strip():
        return []

    delimiter = _detect_delimiter(text)
    logger.debug("CSV decoded as {} with delimiter {!r}", encoding, delimiter)

    try:
        df = pd.read_csv(
            io.StringIO(text),
            sep=delimiter,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            on_bad_lines="error",
            engine="python",
        )
    except pd.errors.EmptyDataError:
        return []
    except (pd.errors.ParserError, csv.Error, ValueError) as exc:
        raise MalformedSource(f"Error al parsear CSV: {exc}") from exc
    _check_row_widths(text, delimiter)

    rows = [coerce_row(record) for record in df.to_dict(orient="records")]
    return [row for row in rows if not all(is_blank(value) for value in row.values())]


def _load_json(buffer: bytes) -> list[Row]:
    """Root must be an array of objects; each object is one row."""
    encoding = _detect_encoding(buffer)
    text = buffer.decode(encoding, errors="replace").lstrip("\ufeff")
    if not text.strip():
        raise MalformedSource("JSON inválido: el archivo está vacío")

    try:
        data = _json.loads(text)
    except _json.JSONDecodeError as exc:
        raise MalformedSource(f"JSON inválido: {exc}") from exc

    if not isinstance(data, list):
        raise MalformedSource(
            "El archivo JSON debe contener un array de objetos "
            f"(raíz de tipo {type(data).__name__})"
        )

    rows: list[Row] = []
    for position, item in enumerate(data):
        if not isinstance(item, dict):
            raise MalformedSource(
                f"El elemento {position} del array JSON no es un objeto "
                f"({type(item).__name__})"
            )
        rows.append(coerce_row(item))
    return rows


def _require_xlrd() -> None:
    try:
        import xlrd  # noqa: F401
    except ImportError as exc:
        raise UnsupportedFormat(
            "Los archivos .xls necesitan el paquete xlrd: pip install xlrd"
        ) from exc


def _load_excel(buffer: bytes, extension: str) -> list[Row]:
    """
    First sheet only, in workbook order.

    Date cells come back from the engine as datetimes. Empty cells are left
    out of the row and fully blank rows are skipped, so rows may carry
    different key sets.
    """
    if extension == "xls":
        _require_xlrd()
    if not buffer:
        raise EmptySource("No se pudo leer el archivo de Excel: el archivo está vacío")

    try:
        with pd.ExcelFile(io.BytesIO(buffer)) as xf:
            sheet_names = list(xf.sheet_names)
            if not sheet_names:
                raise EmptySource("El archivo de Excel no contiene hojas.")
            sheet_name = sheet_names[0]
            df = xf.parse(sheet_name=sheet_name)
    except EmptySource:
        raise
    except Exception as exc:
        # openpyxl, xlrd and zipfile each raise their own types for corrupt files.
        raise MalformedSource(f"Error al procesar el archivo de Excel: {exc}") from exc

    if len(sheet_names) > 1:
        logger.info("Workbook has {} sheets; using '{}'", len(sheet_names), sheet_name)

    rows = [
        coerce_row(record, drop_empty=True)
        for record in df.to_dict(orient="records")
    ]
    return [row for row in rows if row]


# ══════════════════════════════════════════════════════════════════════════════
# POST-PROCESSING
# ══════════════════════════════════════════════════════════════════════════════

def normalize_date_columns(
    rows: list[Row],
    headers: list[str],
    settings: Settings = DEFAULT_SETTINGS,
) -> list[Row]:
    """New rows with every date column rewritten through ``normalize_date``."""
    targets = date_columns(headers, settings)
    if not targets:
        return rows

    logger.debug("Normalising date columns: {}", targets)
    normalized: list[Row] = []
    for row in rows:
        new_row = dict(row)
        for header in targets:
            if header in new_row:
                new_row[header] = normalize_date(new_row[header])
        normalized.append(new_row)
    return normalized


def build_result(rows: list[Row], settings: Settings = DEFAULT_SETTINGS) -> ParseResult:
    if not rows:
        return ParseResult()
    headers = union_headers(rows)
    return ParseResult(headers=headers, rows=normalize_date_columns(rows, headers, settings))


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def parse_bytes(
    buffer: bytes,
    extension: str,
    settings: Settings = DEFAULT_SETTINGS,
) -> ParseResult:
    """
    Synchronous core of :func:`parse`.

    Raises:
        UnsupportedFormat  for anything but csv, json, xlsx, xls.
        MalformedSource    for CSV row errors, bad JSON, unreadable workbooks.
        EmptySource        for workbooks without sheets.
        UnsupportedFormat  also for .xls when xlrd is not installed.
    """
    fmt = normalize_extension(extension)
    if fmt not in ALL_FORMATS:
        raise UnsupportedFormat(f"Tipo de archivo no soportado: .{fmt}")

    if isinstance(buffer, str):
        buffer = buffer.encode("utf-8")

    if fmt in TEXT_FORMATS:
        rows = _load_csv(buffer)
    elif fmt in JSON_FORMATS:
        rows = _load_json(buffer)
    else:
        rows = _load_excel(buffer, fmt)

    result = build_result(rows, settings)
    logger.info("Parsed {} rows and {} columns from {} source", len(result.rows), len(result.headers), fmt)
    return result


async def parse(
    buffer: bytes,
    extension: str,
    settings: Settings = DEFAULT_SETTINGS,
) -> ParseResult:
    """Parse ``buffer`` off the event loop; see :func:`parse_bytes`."""
    return await asyncio.to_thread(parse_bytes, buffer, extension, settings)


async def read_buffer(path: "str | Path") -> bytes:
    path = Path(path)
    try:
        return await asyncio.to_thread(path.read_bytes)
    except OSError as exc:
        raise IOFailure(f"Error al leer el archivo {path.name}: {exc}") from exc


async def parse_file(path: "str | Path", settings: Settings = DEFAULT_SETTINGS) -> ParseResult:
    """Read ``path`` and parse it using its suffix as the format."""
    path = Path(path)
    fmt = normalize_extension(path.suffix)
    if fmt not in ALL_FORMATS:
        raise UnsupportedFormat(f"Tipo de archivo no soportado: .{fmt}")
    buffer = await read_buffer(path)
    return await parse(buffer, fmt, settings)


class ImportCoordinator:
    """
    Last-submission-wins wrapper around :func:`parse`.

    Every ``submit`` takes a new generation number. When an import finishes
    after a newer one has been submitted, its result is thrown away and
    :class:`ParseSuperseded` is raised instead.
    """

    def __init__(
        self,
        settings: Settings = DEFAULT_SETTINGS,
        parser: Optional[Callable[..., Awaitable[ParseResult]]] = None,
    ) -> None:
        self.settings = settings
        self._parser = parser or parse
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def invalidate(self) -> None:
        """Discard whatever is in flight without starting a new import."""
        self._generation += 1

    def _check_current(self, generation: int) -> None:
        if generation != self._generation:
            logger.debug("Discarding import #{} (current is #{})", generation, self._generation)
            raise ParseSuperseded(generation, self._generation)

    async def submit(self, buffer: bytes, extension: str) -> ParseResult:
        self._generation += 1
        generation = self._generation
        result = await self._parser(buffer, extension, self.settings)
        self._check_current(generation)
        return result

    async def submit_file(self, path: "str | Path") -> ParseResult:
        self._generation += 1
        generation = self._generation
        path = Path(path)
        fmt = normalize_extension(path.suffix)
        if fmt not in ALL_FORMATS:
            raise UnsupportedFormat(f"Tipo de archivo no soportado: .{fmt}")
        buffer = await read_buffer(path)
        self._check_current(generation)
        result = await self._parser(buffer, fmt, self.settings)
        self._check_current(generation)
        return result
