"""
Unit tests for the scanner module.

These tests cover:
- Token classification
- Line break and blank line handling
- Math mode switching
- Verbatim scanning
- Error handling at end of input
"""

import pytest

from texfmt.core.errors import ScanError
from texfmt.core.scanner import Mode, Scanner, Token, TokenKind, tokenize


def kinds(source):
    return [token.kind for token in tokenize(source)]


def texts(source):
    return [token.text for token in tokenize(source)]


class TestToken:
    """Test the Token class."""

    def test_text_references_source(self):
        """Test that token text is a slice of the source."""
        token = Token(TokenKind.TEXT, 2, 5, "a hello")
        assert token.text == "hel"

    def test_command_name(self):
        """Test control sequence name without backslash."""
        token = Token(TokenKind.COMMAND, 0, 8, "\\section{x}")
        assert token.name == "section"

    def test_is_space(self):
        """Test whitespace classification."""
        assert Token(TokenKind.WHITESPACE, 0, 1, " ").is_space
        assert Token(TokenKind.NEWLINE, 0, 1, "\n").is_space
        assert not Token(TokenKind.BLANK_LINE, 0, 2, "\n\n").is_space


class TestScanner:
    """Test the Scanner class."""

    def test_empty_input(self):
        """Test that empty input produces no tokens."""
        assert list(tokenize("")) == []

    def test_words_and_spaces(self):
        """Test text runs separated by whitespace."""
        assert kinds("hello  world") == [TokenKind.TEXT, TokenKind.WHITESPACE, TokenKind.TEXT]
        assert texts("hello  world") == ["hello", "  ", "world"]

    def test_control_word(self):
        """Test a control word stops at the first non-letter."""
        assert texts("\\emph{x}") == ["\\emph", "{", "x", "}"]
        assert kinds("\\emph{x}")[0] == TokenKind.COMMAND

    def test_control_symbols(self):
        """Test escaped special characters are control symbols."""
        assert texts("50\\% off") == ["50", "\\%", " ", "off"]
        for source in ("\\%", "\\{", "\\$", "\\&", "\\\\", "\\,", "\\ "):
            tokens = list(tokenize(source))
            assert len(tokens) == 1
            assert tokens[0].kind == TokenKind.COMMAND

    def test_comment_runs_to_end_of_line(self):
        """Test comment tokens exclude the line ending."""
        tokens = list(tokenize("a % note {x}\nb"))
        comment = [t for t in tokens if t.kind == TokenKind.COMMENT][0]
        assert comment.text == "% note {x}"
        assert tokens[-2].kind == TokenKind.NEWLINE

    def test_escaped_percent_is_not_comment(self):
        """Test \\% does not start a comment."""
        assert TokenKind.COMMENT not in kinds("100\\% sure")

    def test_newline_and_blank_line(self):
        """Test single and multiple line endings."""
        assert kinds("a\nb") == [TokenKind.TEXT, TokenKind.NEWLINE, TokenKind.TEXT]
        assert kinds("a\n\nb") == [TokenKind.TEXT, TokenKind.BLANK_LINE, TokenKind.TEXT]
        assert texts("a\n  \t\n\nb") == ["a", "\n  \t\n\n", "b"]

    def test_crlf_line_endings(self):
        """Test CRLF is one line ending."""
        assert texts("a\r\nb") == ["a", "\r\n", "b"]
        assert kinds("a\r\n\r\nb")[1] == TokenKind.BLANK_LINE

    def test_brackets_and_star(self):
        """Test brackets and star are separate tokens."""
        assert kinds("\\section*[a]") == [
            TokenKind.COMMAND, TokenKind.TEXT, TokenKind.OPEN_BRACKET,
            TokenKind.TEXT, TokenKind.CLOSE_BRACKET
        ]
        assert texts("\\section*[a]")[1] == "*"

    def test_math_delimiters(self):
        """Test math delimiter tokens."""
        assert kinds("\\(x\\)") == [TokenKind.OPEN_MATH, TokenKind.TEXT, TokenKind.CLOSE_MATH]
        assert kinds("\\[x\\]") == [TokenKind.OPEN_MATH, TokenKind.TEXT, TokenKind.CLOSE_MATH]
        assert texts("$$x$$") == ["$$", "x", "$$"]

    def test_inline_math_mode_splits_double_dollar(self):
        """Test $$ is two tokens while in inline math."""
        scanner = Scanner("$$")
        scanner.push_mode(Mode.INLINE_MATH)
        assert scanner.next_token().text == "$"
        assert scanner.next_token().text == "$"
        assert scanner.next_token() is None

    def test_pop_base_mode_fails(self):
        """Test the base mode cannot be popped."""
        scanner = Scanner("x")
        with pytest.raises(RuntimeError):
            scanner.pop_mode()

    def test_seek_restarts(self):
        """Test seeking back re-reads the same tokens."""
        scanner = Scanner("a b")
        first = scanner.next_token()
        scanner.next_token()
        scanner.seek(first.start)
        assert scanner.next_token() == first

    def test_backslash_at_end_of_input(self):
        """Test unterminated control sequence error."""
        with pytest.raises(ScanError) as exc_info:
            list(tokenize("abc\\"))
        assert exc_info.value.position.offset == 3
        assert exc_info.value.position.column == 4

    def test_tokens_cover_source(self):
        """Test token spans are contiguous and cover the whole input."""
        source = "\\begin{x} a % c\n\n$y$ \\[z\\] [o] {g}*"
        tokens = list(tokenize(source))
        assert tokens[0].start == 0
        assert tokens[-1].end == len(source)
        for previous, token in zip(tokens, tokens[1:]):
            assert previous.end == token.start


class TestVerbatimScanning:
    """Test raw scanning for verbatim regions."""

    def test_scan_verbatim(self):
        """Test raw text up to the terminator."""
        source = "\\begin{verbatim}x {%$ y\\end{verbatim}"
        scanner = Scanner(source)
        scanner.seek(len("\\begin{verbatim}"))
        token = scanner.scan_verbatim("\\end{verbatim}")
        assert token.text == "x {%$ y"
        assert scanner.next_token().text == "\\end"

    def test_scan_verbatim_empty_body(self):
        """Test an empty verbatim body gives an empty token."""
        scanner = Scanner("\\end{verbatim}")
        token = scanner.scan_verbatim("\\end{verbatim}")
        assert token.start == token.end == 0

    def test_scan_verbatim_missing_terminator(self):
        """Test missing end marker is a scan error."""
        scanner = Scanner("abc")
        with pytest.raises(ScanError):
            scanner.scan_verbatim("\\end{verbatim}")

    def test_scan_inline_verbatim(self):
        """Test delimiters of inline verbatim."""
        scanner = Scanner("|a{b}%|rest")
        assert scanner.scan_inline_verbatim().text == "|a{b}%|"
        assert scanner.next_token().text == "rest"

    def test_scan_inline_verbatim_braces(self):
        """Test brace-delimited inline verbatim."""
        scanner = Scanner("{x|y} z")
        assert scanner.scan_inline_verbatim().text == "{x|y}"

    def test_scan_inline_verbatim_star(self):
        """Test a leading star is kept."""
        scanner = Scanner("*!a b!")
        assert scanner.scan_inline_verbatim().text == "*!a b!"

    def test_scan_inline_verbatim_errors(self):
        """Test unterminated inline verbatim."""
        with pytest.raises(ScanError):
            Scanner("|abc").scan_inline_verbatim()
        with pytest.raises(ScanError):
            Scanner("|ab\nc|").scan_inline_verbatim()
        with pytest.raises(ScanError):
            Scanner(" x ").scan_inline_verbatim()

    def test_scan_inline_verbatim_options(self):
        """Test an option group before the delimiter is part of the payload."""
        scanner = Scanner("[language=C]{x = 1;}")
        assert scanner.scan_inline_verbatim(optional=True).text == "[language=C]{x = 1;}"
        scanner = Scanner("[opts]|x| rest")
        assert scanner.scan_inline_verbatim(optional=True).text == "[opts]|x|"
        assert scanner.next_token().kind == TokenKind.WHITESPACE

    def test_scan_inline_verbatim_options_errors(self):
        """Test unterminated option groups and options without a payload."""
        with pytest.raises(ScanError):
            Scanner("[opts").scan_inline_verbatim(optional=True)
        with pytest.raises(ScanError):
            Scanner("[op\nts]|x|").scan_inline_verbatim(optional=True)
        with pytest.raises(ScanError):
            Scanner("[opts] x").scan_inline_verbatim(optional=True)
