from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any

from loguru import logger

from candidate_checker import __version__ as TOOL_VERSION
from candidate_checker.column_roles import date_columns
from candidate_checker.contracts import build_contract, build_import_summary
from candidate_checker.duplicates import group_duplicates
from candidate_checker.errors import ParseError, SessionError
from candidate_checker.export import (
    EXPORT_FORMATS,
    build_duplicates_report,
    default_export_name,
    export_verified,
    render_duplicates_text,
)
from candidate_checker.identity import identify
from candidate_checker.loader import ImportCoordinator
from candidate_checker.search import LiveSearch
from candidate_checker.session import JsonFileStore, SessionSnapshot
from candidate_checker.settings import Settings
from candidate_checker.values import display_text

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_DUPLICATES_FOUND = 3


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class CandidateCheckerArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(sys.stderr, level="DEBUG", format="{time:HH:mm:ss} | {level: <7} | {message}")
        logger.enable("candidate_checker")
    else:
        logger.disable("candidate_checker")


def resolve_settings(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    if getattr(args, "state", None):
        settings = replace(settings, state_path=Path(args.state))
    return settings


def open_store(settings: Settings) -> JsonFileStore:
    return JsonFileStore(settings.state_path)


def require_session(store: JsonFileStore) -> SessionSnapshot:
    try:
        snapshot = store.load()
    except SessionError as exc:
        raise CliError(f"{exc}. Run 'candidate-checker clear' and load the file again.") from exc
    if snapshot is None or not snapshot.rows:
        raise CliError("No data loaded. Run 'candidate-checker load <file>' first.")
    return snapshot


def parse_iso_date(value: str) -> str:
    if value == "":
        return ""
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError as exc:
        raise CliError(f"Invalid date '{value}': expected YYYY-MM-DD") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = CandidateCheckerArgumentParser(
        prog="candidate-checker",
        description="Verify union candidate lists and report candidates marked under more than one union.",
    )
    parser.add_argument("--state", help="Session file (default: $CANDIDATE_CHECKER_STATE or ~/.candidate-checker/session.json)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log what the importer does to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True, parser_class=CandidateCheckerArgumentParser)

    load = subparsers.add_parser("load", help="Import a CSV, JSON, XLSX or XLS file into a new session.")
    load.add_argument("input", help="Input file path")
    load.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    load.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")

    search = subparsers.add_parser("search", help="List rows matching every search term.")
    search.add_argument("terms", nargs="*", help="Search terms (accents and case are ignored)")
    search.add_argument("--limit", type=int, default=50, help="Maximum rows to print")
    search.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    mark = subparsers.add_parser("mark", help="Mark or unmark a row under a union.")
    mark.add_argument("row", type=int, help="Row number as shown by search (0-based)")
    mark.add_argument("union", help="Union name")
    mark.add_argument("--off", action="store_true", help="Remove the mark instead of setting it")

    duplicates = subparsers.add_parser("duplicates", help="Show candidates marked under more than one union.")
    duplicates.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    unions = subparsers.add_parser("unions", help="Show or change the union list.")
    unions.add_argument("--add", action="append", default=[], metavar="NAME", help="Append a union")
    unions.add_argument("--remove", action="append", default=[], metavar="NAME", help="Remove a union")

    dates = subparsers.add_parser("dates", help="Show or set the election dates.")
    dates.add_argument("--submission", help="Candidate submission date (YYYY-MM-DD, empty to clear)")
    dates.add_argument("--voting", help="Voting date (YYYY-MM-DD, empty to clear)")

    export = subparsers.add_parser("export", help="Write the table with one VERDADERO/FALSO column per union.")
    export.add_argument("--format", choices=list(EXPORT_FORMATS), default="xlsx", help="Output format")
    export.add_argument("-o", "--output", help="Explicit output path")

    report = subparsers.add_parser("report", help="Write the duplicates report.")
    report.add_argument("-o", "--output", help="Write the JSON report to this path")
    report.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    subparsers.add_parser("clear", help="Forget the current session.")
    subparsers.add_parser("version", help="Print version")
    return parser


def run_load(args: argparse.Namespace, settings: Settings) -> int:
    input_path = Path(args.input)
    store = open_store(settings)
    try:
        previous = store.load()
    except SessionError as exc:
        logger.warning("Ignoring unreadable saved session: {}", exc)
        previous = None

    try:
        result = asyncio.run(ImportCoordinator(settings).submit_file(input_path))
    except ParseError as exc:
        eprint(str(exc))
        return EXIT_PARSE_FAILED

    snapshot = SessionSnapshot(
        headers=result.headers,
        rows=result.rows,
        checked_state={},
        unions=list(previous.unions if previous else settings.visible_unions),
        submission_date=previous.submission_date if previous else "",
        voting_date=previous.voting_date if previous else "",
        file_name=input_path.name,
    )
    store.clear()
    store.save(snapshot)

    summary = build_import_summary(
        file_name=input_path.name,
        headers=result.headers,
        row_count=len(result.rows),
        date_columns=date_columns(result.headers, settings),
    )
    if args.json:
        maybe_emit_json_stdout(summary, True)
    else:
        emit_human(
            f"Loaded {len(result.rows)} rows, {len(result.headers)} columns from {input_path.name}",
            quiet=args.quiet,
        )
    return EXIT_SUCCESS


def run_search(args: argparse.Namespace, settings: Settings) -> int:
    snapshot = require_session(open_store(settings))
    text = " ".join(args.terms)
    matches = LiveSearch(snapshot.rows).filter(text)
    shown = matches[: max(args.limit, 0)]

    if args.json:
        payload = {
            "contract": build_contract("candidate_checker.search"),
            "query": text,
            "match_count": len(matches),
            "rows": [
                {
                    "row": index,
                    "identity": identify(snapshot.rows[index], settings),
                    "unions": sorted(u for u, on in (snapshot.checked_state.get(index) or {}).items() if on),
                    "values": {k: display_text(v) for k, v in snapshot.rows[index].items()},
                }
                for index in shown
            ],
        }
        maybe_emit_json_stdout(payload, True)
        return EXIT_SUCCESS

    for index in shown:
        marks = snapshot.checked_state.get(index) or {}
        checked = ", ".join(u for u in snapshot.unions if marks.get(u))
        print(f"{index}\t{identify(snapshot.rows[index], settings)}\t{checked}")
    if len(matches) > len(shown):
        eprint(f"... {len(matches) - len(shown)} more rows")
    eprint(f"{len(matches)} of {len(snapshot.rows)} rows match")
    return EXIT_SUCCESS


def run_mark(args: argparse.Namespace, settings: Settings) -> int:
    store = open_store(settings)
    snapshot = require_session(store)
    if args.union not in snapshot.unions:
        raise CliError(f"Unknown union '{args.union}'. Available: {', '.join(snapshot.unions)}")
    try:
        snapshot = snapshot.with_checked(args.row, args.union, not args.off)
    except IndexError as exc:
        raise CliError(str(exc)) from exc
    store.save(snapshot)
    state = "unmarked" if args.off else "marked"
    eprint(f"{identify(snapshot.rows[args.row], settings)}: {state} under {args.union}")
    return EXIT_SUCCESS


def current_report(snapshot: SessionSnapshot, settings: Settings) -> dict[str, Any]:
    grouped = group_duplicates(snapshot.rows, snapshot.unions, snapshot.checked_state, settings)
    return build_duplicates_report(
        grouped,
        submission_date=snapshot.submission_date,
        voting_date=snapshot.voting_date,
        file_name=snapshot.file_name,
    )


def run_duplicates(args: argparse.Namespace, settings: Settings) -> int:
    snapshot = require_session(open_store(settings))
    report = current_report(snapshot, settings)
    if args.json:
        maybe_emit_json_stdout(report, True)
    else:
        print(render_duplicates_text(report), end="")
    return EXIT_DUPLICATES_FOUND if report["duplicates"] else EXIT_SUCCESS


def run_unions(args: argparse.Namespace, settings: Settings) -> int:
    store = open_store(settings)
    snapshot = require_session(store)
    unions = list(snapshot.unions)
    for name in args.add:
        name = name.strip()
        if not name:
            raise CliError("Union name cannot be empty")
        if name not in unions:
            unions.append(name)
    for name in args.remove:
        if name not in unions:
            raise CliError(f"Unknown union '{name}'. Available: {', '.join(unions)}")
        unions.remove(name)
    if args.add or args.remove:
        snapshot.unions = unions
        store.save(snapshot)
    print("\n".join(unions))
    others = [name for name in settings.unions if name not in unions]
    if others:
        eprint(f"Also available: {', '.join(others)}")
    return EXIT_SUCCESS


def run_dates(args: argparse.Namespace, settings: Settings) -> int:
    store = open_store(settings)
    snapshot = require_session(store)
    changed = False
    if args.submission is not None:
        snapshot.submission_date = parse_iso_date(args.submission)
        changed = True
    if args.voting is not None:
        snapshot.voting_date = parse_iso_date(args.voting)
        changed = True
    if changed:
        store.save(snapshot)
    print(f"submission: {snapshot.submission_date or '-'}")
    print(f"voting: {snapshot.voting_date or '-'}")
    return EXIT_SUCCESS


def run_export(args: argparse.Namespace, settings: Settings) -> int:
    snapshot = require_session(open_store(settings))
    output = Path(args.output) if args.output else Path.cwd() / default_export_name(snapshot.file_name, args.format)
    export_verified(
        snapshot.headers,
        snapshot.rows,
        snapshot.checked_state,
        snapshot.unions,
        output,
        args.format,
    )
    eprint(f"Export written: {output}")
    return EXIT_SUCCESS


def run_report(args: argparse.Namespace, settings: Settings) -> int:
    snapshot = require_session(open_store(settings))
    report = current_report(snapshot, settings)
    if args.output:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json_dumps(report), encoding="utf-8")
        eprint(f"Report written: {output}")
    if args.json:
        maybe_emit_json_stdout(report, True)
    elif not args.output:
        print(render_duplicates_text(report), end="")
    return EXIT_SUCCESS


def run_clear(settings: Settings) -> int:
    open_store(settings).clear()
    eprint("Session cleared")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(args.verbose)
        settings = resolve_settings(args)
        if args.command == "load":
            return run_load(args, settings)
        if args.command == "search":
            return run_search(args, settings)
        if args.command == "mark":
            return run_mark(args, settings)
        if args.command == "duplicates":
            return run_duplicates(args, settings)
        if args.command == "unions":
            return run_unions(args, settings)
        if args.command == "dates":
            return run_dates(args, settings)
        if args.command == "export":
            return run_export(args, settings)
        if args.command == "report":
            return run_report(args, settings)
        if args.command == "clear":
            return run_clear(settings)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
