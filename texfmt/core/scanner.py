"""
Scanner Module

This module converts raw (La)TeX source into a lazy sequence of lexical
tokens. Tokens never copy the source: each one records a character range
into the buffer it was scanned from.

The scanner keeps an explicit mode stack instead of global state so the
tree builder can change how the next tokens are read when it enters math
or verbatim regions.
"""

import re
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional

from .errors import ScanError, SourcePosition

logger = logging.getLogger(__name__)


class TokenKind(Enum):
    """Lexical token categories."""
    TEXT = "text"
    WHITESPACE = "whitespace"
    NEWLINE = "newline"
    BLANK_LINE = "blank_line"
    COMMAND = "command"
    OPEN_BRACE = "open_brace"
    CLOSE_BRACE = "close_brace"
    OPEN_BRACKET = "open_bracket"
    CLOSE_BRACKET = "close_bracket"
    OPEN_MATH = "open_math"        # \( or \[
    CLOSE_MATH = "close_math"      # \) or \]
    MATH_SHIFT = "math_shift"      # $ or $$
    COMMENT = "comment"


class Mode(Enum):
    """Scanning modes pushed by the tree builder."""
    TEXT = "text"
    INLINE_MATH = "inline_math"
    DISPLAY_MATH = "display_math"


@dataclass(frozen=True)
class Token:
    """A lexical token referencing ``source[start:end]``."""
    kind: TokenKind
    start: int
    end: int
    source: str = field(repr=False, compare=False)

    @property
    def text(self) -> str:
        return self.source[self.start:self.end]

    @property
    def name(self) -> str:
        """Control sequence name without the leading backslash."""
        return self.source[self.start + 1:self.end]

    @property
    def is_space(self) -> bool:
        return self.kind in (TokenKind.WHITESPACE, TokenKind.NEWLINE)


_LETTERS = re.compile(r"[A-Za-z]+")
_TEXT_RUN = re.compile(r"[^\\%{}\[\]$*\r\n \t]+")
_SPACE_RUN = re.compile(r"[ \t]+")
_LINE_END = re.compile(r"\r\n|\r|\n")
_REST_OF_LINE = re.compile(r"[^\r\n]*")
_BLANK_CONTINUATION = re.compile(r"[ \t]*(?:\r\n|\r|\n)")

_SINGLE_CHAR_TOKENS = {
    '{': TokenKind.OPEN_BRACE,
    '}': TokenKind.CLOSE_BRACE,
    '[': TokenKind.OPEN_BRACKET,
    ']': TokenKind.CLOSE_BRACKET,
    '*': TokenKind.TEXT,
}


class Scanner:
    """
    Mode-aware tokenizer for TeX-family markup.

    The scanner is lazy (tokens are produced on demand by ``next_token`` or
    by iterating) and restartable (``seek`` moves the read position back to
    any token boundary).
    """

    def __init__(self, source: str):
        self.source = source
        self.position = 0
        self._modes: List[Mode] = [Mode.TEXT]

    @property
    def mode(self) -> Mode:
        return self._modes[-1]

    def push_mode(self, mode: Mode):
        self._modes.append(mode)

    def pop_mode(self) -> Mode:
        if len(self._modes) == 1:
            raise RuntimeError("cannot pop the base scanning mode")
        return self._modes.pop()

    def seek(self, offset: int):
        """Move the read position to ``offset``."""
        self.position = offset

    def at_end(self) -> bool:
        return self.position >= len(self.source)

    def __iter__(self) -> Iterator[Token]:
        while True:
            token = self.next_token()
            if token is None:
                return
            yield token

    def _error(self, message: str, offset: int) -> ScanError:
        return ScanError(message, SourcePosition.from_offset(self.source, offset))

    def next_token(self) -> Optional[Token]:
        """
        Scan one token at the current position.

        Returns:
            The next token, or None at end of input
        """
        source = self.source
        pos = self.position
        if pos >= len(source):
            return None

        char = source[pos]
        if char == '\\':
            kind, end = self._scan_control_sequence(pos)
        elif char == '%':
            kind, end = TokenKind.COMMENT, _REST_OF_LINE.match(source, pos).end()
        elif char in _SINGLE_CHAR_TOKENS:
            kind, end = _SINGLE_CHAR_TOKENS[char], pos + 1
        elif char == '$':
            kind = TokenKind.MATH_SHIFT
            # Inside $...$ a doubled dollar closes one formula and opens the next.
            if self.mode != Mode.INLINE_MATH and source.startswith('$$', pos):
                end = pos + 2
            else:
                end = pos + 1
        elif char in '\r\n':
            kind, end = self._scan_line_break(pos)
        elif char in ' \t':
            kind, end = TokenKind.WHITESPACE, _SPACE_RUN.match(source, pos).end()
        else:
            kind, end = TokenKind.TEXT, _TEXT_RUN.match(source, pos).end()

        self.position = end
        return Token(kind, pos, end, source)

    def _scan_control_sequence(self, pos: int):
        source = self.source
        if pos + 1 >= len(source):
            raise self._error("unterminated control sequence at end of input", pos)

        match = _LETTERS.match(source, pos + 1)
        if match:
            return TokenKind.COMMAND, match.end()

        symbol = source[pos + 1]
        if symbol in '([':
            return TokenKind.OPEN_MATH, pos + 2
        if symbol in ')]':
            return TokenKind.CLOSE_MATH, pos + 2
        return TokenKind.COMMAND, pos + 2

    def _scan_line_break(self, pos: int):
        end = _LINE_END.match(self.source, pos).end()
        line_endings = 1
        while True:
            match = _BLANK_CONTINUATION.match(self.source, end)
            if not match:
                break
            end = match.end()
            line_endings += 1
        kind = TokenKind.BLANK_LINE if line_endings > 1 else TokenKind.NEWLINE
        return kind, end

    def scan_verbatim(self, terminator: str) -> Token:
        """
        Read raw text up to (not including) ``terminator``.

        Args:
            terminator: Literal end marker, e.g. ``\\end{verbatim}``

        Returns:
            A TEXT token spanning the raw body (possibly empty)
        """
        start = self.position
        index = self.source.find(terminator, start)
        if index < 0:
            raise self._error(f"verbatim text is missing its end marker {terminator}", start)
        self.position = index
        logger.debug(f"Scanned verbatim body of {index - start} characters")
        return Token(TokenKind.TEXT, start, index, self.source)

    def scan_inline_verbatim(self, optional: bool = False) -> Token:
        """
        Read an inline verbatim argument such as ``|x|`` in ``\\verb|x|``.

        A leading ``*`` (``\\verb*``) is included in the token, and a ``{``
        delimiter is closed by ``}``.

        Args:
            optional: Accept a ``[...]`` option group before the delimiter,
                as in ``\\lstinline[language=C]|x|``
        """
        source = self.source
        start = pos = self.position
        if source.startswith('*', pos):
            pos += 1
        if optional and source.startswith('[', pos):
            close = source.find(']', pos)
            line_end = _LINE_END.search(source, pos)
            if close < 0 or (line_end is not None and line_end.start() < close):
                raise self._error("inline verbatim options are not terminated", start)
            pos = close + 1
        if pos >= len(source) or source[pos] in ' \t\r\n':
            raise self._error("inline verbatim is missing its delimiter", pos)

        closing = '}' if source[pos] == '{' else source[pos]
        end = pos + 1
        while end < len(source) and source[end] != closing:
            if source[end] in '\r\n':
                raise self._error("inline verbatim runs past the end of the line", start)
            end += 1
        if end >= len(source):
            raise self._error("inline verbatim is not terminated", start)

        self.position = end + 1
        return Token(TokenKind.TEXT, start, end + 1, source)


def tokenize(source: str) -> Iterator[Token]:
    """Lazily tokenize ``source`` in text mode."""
    return iter(Scanner(source))
