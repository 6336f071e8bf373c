"""
Errors Module

This module defines the exception hierarchy raised by the formatting
pipeline. Every parse-time error carries the position of the offending
source text so callers can report ``file:line:column``.
"""

import re
from dataclasses import dataclass
from typing import Optional

_LINE_END = re.compile(r"\r\n|\r|\n")


@dataclass(frozen=True)
class SourcePosition:
    """A location in a source document (1-based line and column)."""
    offset: int
    line: int
    column: int

    @classmethod
    def from_offset(cls, source: str, offset: int) -> "SourcePosition":
        """Compute line and column for a character offset into ``source``."""
        offset = max(0, min(offset, len(source)))
        breaks = list(_LINE_END.finditer(source, 0, offset))
        line = len(breaks) + 1
        line_start = breaks[-1].end() if breaks else 0
        return cls(offset, line, offset - line_start + 1)

    def __str__(self):
        return f"{self.line}:{self.column}"


class TexFormatError(Exception):
    """Base class for every error raised by texfmt."""

    kind = "error"

    def __init__(self, message: str, position: Optional[SourcePosition] = None):
        super().__init__(message)
        self.message = message
        self.position = position

    def __str__(self):
        if self.position is not None:
            return f"{self.position}: {self.kind}: {self.message}"
        return f"{self.kind}: {self.message}"


class ScanError(TexFormatError):
    """Malformed token, e.g. a backslash at the very end of the input."""

    kind = "scan error"


class ParseError(TexFormatError):
    """Structural error found while building the document tree."""

    kind = "parse error"


class UnterminatedGroup(ParseError):
    """A brace, bracket, math or environment scope was never closed."""

    kind = "unterminated group"


class UnbalancedEnvironment(ParseError):
    """``\\end{name}`` does not match the innermost open ``\\begin``."""

    kind = "unbalanced environment"

    def __init__(self, message: str, position: Optional[SourcePosition] = None,
                 begin_position: Optional[SourcePosition] = None):
        super().__init__(message, position)
        self.begin_position = begin_position


class UnmatchedDelimiter(ParseError):
    """A closing delimiter appeared with no matching opener."""

    kind = "unmatched delimiter"


class DocumentIOError(TexFormatError):
    """A document could not be read or written."""

    kind = "io error"


class ConfigError(TexFormatError):
    """The configuration file is unreadable or has invalid values."""

    kind = "config error"
