"""Errors raised while importing candidate files and restoring sessions."""

from __future__ import annotations


class ParseError(Exception):
    """A file could not be turned into headers and rows."""


class UnsupportedFormat(ParseError):
    pass


class MalformedSource(ParseError):
    """CSV row errors, invalid JSON syntax or shape, unreadable workbook."""


class EmptySource(ParseError):
    """Workbook without sheets or a buffer with nothing to read."""


class IOFailure(ParseError):
    pass


class ParseSuperseded(Exception):
    """A newer import started before this one finished; its result is discarded."""

    def __init__(self, generation: int, current: int) -> None:
        super().__init__(f"Import #{generation} superseded by import #{current}")
        self.generation = generation
        self.current = current


class SessionError(Exception):
    """A stored session snapshot could not be read back."""
