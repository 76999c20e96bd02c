"""Import candidate lists, mark them per union and find candidates on more than one list."""

from loguru import logger

from candidate_checker.duplicates import DuplicateEntry, group_duplicates
from candidate_checker.errors import (
    EmptySource,
    IOFailure,
    MalformedSource,
    ParseError,
    ParseSuperseded,
    UnsupportedFormat,
)
from candidate_checker.identity import identify
from candidate_checker.loader import ImportCoordinator, ParseResult, parse, parse_bytes, parse_file
from candidate_checker.search import build_search_index, query

__version__ = "0.3.0"

logger.disable("candidate_checker")

__all__ = [
    "DuplicateEntry",
    "EmptySource",
    "IOFailure",
    "ImportCoordinator",
    "MalformedSource",
    "ParseError",
    "ParseResult",
    "ParseSuperseded",
    "UnsupportedFormat",
    "build_search_index",
    "group_duplicates",
    "identify",
    "parse",
    "parse_bytes",
    "parse_file",
    "query",
]
