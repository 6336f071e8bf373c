"""
Unit tests for the tree builder.

These tests cover:
- Node construction for text, groups, commands and environments
- Argument collection from command signatures
- Math delimiters
- Comment placement
- Verbatim regions
- Structural errors with positions
"""

import pytest

from texfmt.core.commands import default_table
from texfmt.core.errors import (
    ParseError, ScanError, SourcePosition, UnbalancedEnvironment, UnmatchedDelimiter,
    UnterminatedGroup
)
from texfmt.core.nodes import (
    BlankLine, Command, Comment, CommentPlacement, Environment, Group, Math,
    MathKind, Text, Whitespace, render_source, walk
)
from texfmt.core.parser import TreeBuilder, parse


def nodes_of(source):
    return parse(source).nodes


class TestTreeBuilder:
    """Test basic tree construction."""

    def test_empty_document(self):
        """Test that empty input gives an empty document."""
        document = parse("")
        assert document.nodes == ()
        assert document.to_source() == ""

    def test_text_and_whitespace(self):
        """Test prose nodes."""
        nodes = nodes_of("hello world\nagain\n\nnext")
        assert [type(node) for node in nodes] == [Text, Whitespace, Text, Whitespace, Text, BlankLine, Text]
        assert nodes[0].content == "hello"
        assert nodes[5].content == "\n\n"

    def test_adjacent_text_is_merged(self):
        """Test that a star and brackets outside arguments join the text run."""
        nodes = nodes_of("a*b[c]")
        assert nodes == (Text("a*b[c]", 0, 6),)

    def test_brace_group(self):
        """Test a plain brace group."""
        (group,) = nodes_of("{a b}")
        assert isinstance(group, Group)
        assert group.delimiter == '{'
        assert [type(node) for node in group.body] == [Text, Whitespace, Text]

    def test_nested_groups(self):
        """Test deep nesting does not hit recursion limits."""
        depth = 3000
        source = "{" * depth + "x" + "}" * depth
        document = parse(source)
        assert document.to_source() == source

    def test_builder_uses_table(self):
        """Test a custom command table changes argument collection."""
        table = default_table().with_overrides({'foo': {'signature': 'm'}})
        (command,) = TreeBuilder("\\foo{x}", table).build().nodes
        assert len(command.args) == 1

    def test_round_trip(self):
        """Test rendering the tree reproduces the input."""
        source = (
            "\\documentclass[a4paper]{article} % setup\n"
            "\\begin{document}\n"
            "\\section*{Intro}  Text $x^2$ and \\[ y \\]\n\n"
            "\\begin{itemize}\n  \\item[a] one\n\\end{itemize}\n"
            "\\verb|{%|  \\begin{verbatim}\n raw }{ \n\\end{verbatim}\n"
            "\\end{document}\r\n"
        )
        assert render_source(parse(source)) == source


class TestCommands:
    """Test command argument collection."""

    def test_unknown_command_takes_no_arguments(self):
        """Test unknown macros keep following groups as siblings."""
        nodes = nodes_of("\\foo{x}")
        assert isinstance(nodes[0], Command)
        assert nodes[0].args == ()
        assert isinstance(nodes[1], Group)

    def test_mandatory_argument(self):
        """Test a mandatory argument is attached."""
        (command,) = nodes_of("\\emph{word}")
        assert command.name == "emph"
        assert len(command.args) == 1
        assert command.args[0].body == (Text("word", 6, 10),)

    def test_mandatory_argument_after_whitespace(self):
        """Test whitespace before a mandatory argument is kept as leading text."""
        (command,) = nodes_of("\\section {Title}")
        assert command.args[0].leading == " "

    def test_star(self):
        """Test starred command variants."""
        (command,) = nodes_of("\\section*{A}")
        assert command.star
        assert command.full_name == "section*"
        assert len(command.args) == 1

    def test_optional_argument(self):
        """Test an adjacent optional argument is collected."""
        nodes = nodes_of("\\item[a] b")
        command = nodes[0]
        assert len(command.args) == 1
        assert command.args[0].delimiter == '['

    def test_optional_argument_must_be_adjacent(self):
        """Test a bracket after whitespace is plain text."""
        nodes = nodes_of("\\item [a]")
        assert nodes[0].args == ()
        assert nodes[-1] == Text("[a]", 6, 9)

    def test_missing_mandatory_argument(self):
        """Test fewer groups than declared keeps what was found."""
        nodes = nodes_of("\\frac{a} b")
        assert len(nodes[0].args) == 1
        assert isinstance(nodes[1], Whitespace)

    def test_control_symbols(self):
        """Test control symbols become commands."""
        nodes = nodes_of("a\\\\b")
        assert nodes[1] == Command("\\", (), 1, 3)

    def test_inline_verbatim(self):
        """Test \\verb keeps its payload raw."""
        (command,) = nodes_of("\\verb|{$%|")
        assert command.verbatim == Text("|{$%|", 5, 10, verbatim=True)

    def test_inline_verbatim_unterminated(self):
        """Test unterminated \\verb is a scan error."""
        with pytest.raises(ScanError):
            parse("\\verb|abc")

    def test_inline_verbatim_options(self):
        """Test \\lstinline keeps its option group with the raw payload."""
        (command,) = nodes_of("\\lstinline[language=C]{x}")
        assert command.name == "lstinline"
        assert command.verbatim.content == "[language=C]{x}"
        assert command.verbatim.verbatim


class TestEnvironments:
    """Test environment construction."""

    def test_environment(self):
        """Test begin/end pairs build an environment."""
        (environment,) = nodes_of("\\begin{itemize}\\item x\\end{itemize}")
        assert isinstance(environment, Environment)
        assert environment.name == "itemize"
        assert environment.opening.name == "begin"
        assert environment.closing.name == "end"
        assert isinstance(environment.body[0], Command)

    def test_environment_arguments(self):
        """Test arguments after \\begin{name}."""
        (environment,) = nodes_of("\\begin{tabular}{ll}a\\end{tabular}")
        assert len(environment.args) == 1
        assert environment.body == (Text("a", 19, 20),)

    def test_nested_environments(self):
        """Test environments nest."""
        (outer,) = nodes_of("\\begin{a}\\begin{b}x\\end{b}\\end{a}")
        assert isinstance(outer.body[0], Environment)
        assert outer.body[0].name == "b"

    def test_verbatim_environment(self):
        """Test verbatim bodies are raw text."""
        source = "\\begin{verbatim}\n  {x} % $y\n\\end{verbatim}"
        (environment,) = nodes_of(source)
        assert environment.body == (Text("\n  {x} % $y\n", 16, 28, verbatim=True),)

    def test_verbatim_environment_unterminated(self):
        """Test verbatim without its end marker."""
        with pytest.raises(ScanError):
            parse("\\begin{verbatim} x")

    def test_environment_in_definition(self):
        """Test \\begin and \\end split across definition arguments."""
        source = "\\newenvironment{boxed}{\\begin{center}}{\\end{center}}"
        (command,) = nodes_of(source)
        assert command.name == "newenvironment"
        assert len(command.args) == 3
        assert render_source(command) == source

    def test_mismatched_end(self):
        """Test \\end with a different name."""
        with pytest.raises(UnbalancedEnvironment) as exc_info:
            parse("\\begin{a}\\end{b}")
        error = exc_info.value
        assert str(error.begin_position) == "1:1"
        assert str(error.position) == "1:10"

    def test_end_without_begin(self):
        """Test \\end at top level."""
        with pytest.raises(UnbalancedEnvironment):
            parse("\\end{a}")

    def test_unclosed_environment(self):
        """Test an environment that never ends."""
        with pytest.raises(UnterminatedGroup) as exc_info:
            parse("text\n\\begin{itemize}\n\\item x\n")
        assert exc_info.value.position.line == 2
        assert "itemize" in exc_info.value.message


class TestMath:
    """Test math nodes."""

    def test_inline_dollar(self):
        """Test $...$ math."""
        (math,) = nodes_of("$x+y$")
        assert isinstance(math, Math)
        assert math.kind is MathKind.INLINE
        assert math.closing == '$'

    def test_adjacent_inline_formulas(self):
        """Test $$ inside inline math closes and reopens."""
        nodes = nodes_of("$a$$b$")
        assert [type(node) for node in nodes] == [Math, Math]

    def test_display_dollars(self):
        """Test $$...$$ math."""
        (math,) = nodes_of("$$x$$")
        assert math.kind is MathKind.DISPLAY

    def test_bracket_delimiters(self):
        """Test \\( \\) and \\[ \\] math."""
        assert nodes_of("\\(x\\)")[0].kind is MathKind.INLINE
        assert nodes_of("\\[x\\]")[0].kind is MathKind.DISPLAY

    def test_unterminated_math(self):
        """Test unclosed math."""
        with pytest.raises(UnterminatedGroup):
            parse("$x")

    def test_mismatched_math_closer(self):
        """Test \\] closing \\( math."""
        with pytest.raises(UnmatchedDelimiter):
            parse("\\(x\\]")

    def test_closer_without_math(self):
        """Test a stray math closer."""
        with pytest.raises(UnmatchedDelimiter):
            parse("x \\)")


class TestComments:
    """Test comment placement detection."""

    def placements(self, source):
        return [node.placement for node in walk(parse(source).nodes) if isinstance(node, Comment)]

    def test_own_line(self):
        """Test comments alone on a line."""
        assert self.placements("% a\n  % b\n") == [CommentPlacement.OWN_LINE] * 2

    def test_trailing(self):
        """Test comments after whitespace."""
        assert self.placements("text % note\n") == [CommentPlacement.TRAILING]

    def test_glued(self):
        """Test comments directly after content."""
        assert self.placements("foo% c\n") == [CommentPlacement.GLUED]
        assert self.placements("\\newcommand{\\x}{% c\n y}") == [CommentPlacement.GLUED]

    def test_comment_text(self):
        """Test comment text excludes the line ending."""
        comment = [node for node in nodes_of("% hi\n") if isinstance(node, Comment)][0]
        assert comment.text == "% hi"


class TestErrors:
    """Test structural errors."""

    def test_unterminated_group(self):
        """Test unclosed brace position."""
        with pytest.raises(UnterminatedGroup) as exc_info:
            parse("{abc")
        assert str(exc_info.value.position) == "1:1"

    def test_unmatched_brace(self):
        """Test stray closing brace."""
        with pytest.raises(UnmatchedDelimiter) as exc_info:
            parse("abc}")
        assert exc_info.value.position.column == 4

    def test_error_hierarchy(self):
        """Test structural errors share ParseError."""
        for source in ("{abc", "abc}", "\\end{x}"):
            with pytest.raises(ParseError):
                parse(source)

    def test_error_message_format(self):
        """Test the string form includes position and kind."""
        with pytest.raises(UnterminatedGroup) as exc_info:
            parse("ok\n  {abc")
        assert str(exc_info.value).startswith("2:3: unterminated group:")

    def test_error_position_carriage_returns(self):
        """Test positions count old Mac line endings."""
        with pytest.raises(UnterminatedGroup) as exc_info:
            parse("a\rb\r{c\r")
        assert str(exc_info.value.position) == "3:1"

    def test_error_position_windows_line_endings(self):
        """Test a CRLF pair counts as one line ending."""
        with pytest.raises(UnterminatedGroup) as exc_info:
            parse("a\r\nb{")
        assert str(exc_info.value.position) == "2:2"

    def test_source_position_from_offset(self):
        """Test line and column for each line ending style."""
        assert SourcePosition.from_offset("a\rb\r{c\r", 4) == SourcePosition(4, 3, 1)
        assert SourcePosition.from_offset("a\nb\r\nc", 5) == SourcePosition(5, 3, 1)
        assert SourcePosition.from_offset("abc", 10) == SourcePosition(3, 1, 4)
