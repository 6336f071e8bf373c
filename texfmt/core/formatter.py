"""
Formatter Module

This module re-prints a Document Tree under the formatting rules:
greedy paragraph re-wrapping, environment indentation, blank-line
normalization and comment anchoring.

The formatter only changes whitespace that already exists in the source
(a run of spaces becomes a line break or the reverse) and inserts line
breaks at structural points (around environments, display math and
commands marked in the Command Table). Verbatim content is copied
unchanged.
"""

import re
import logging
from typing import List, Optional, Sequence

from .commands import CommandTable, default_table
from .nodes import (
    BlankLine, Command, Comment, CommentPlacement, Document, Environment,
    Group, Math, MathKind, Node, Text, Whitespace, walk
)
from .parser import parse

logger = logging.getLogger(__name__)

DEFAULT_WIDTH = 80
DEFAULT_INDENT_WIDTH = 2

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


class _LineWriter:
    """
    Accumulates words into output lines.

    Words are assembled from fragments that must stay glued together (a
    command and its arguments, text followed by punctuation). Between words
    the writer knows whether a soft space, a line break or a paragraph break
    was requested and decides the layout when the next word arrives.
    """

    def __init__(self, width: int, indent_unit: str, tab_size: int):
        self.width = width
        self.indent_unit = indent_unit
        self.tab_size = tab_size
        self._lines: List[str] = []
        self._current = ''
        self._open = False
        self._level = 0
        self._space = False
        self._break = 0      # 0 none, 1 line break, 2 paragraph break
        self._word: List[str] = []

    def fragment(self, text: str):
        self._word.append(text)

    def space(self):
        self._flush()
        if not self._break:
            self._space = True

    def line_break(self):
        self._flush()
        self._break = max(self._break, 1)
        self._space = False

    def paragraph_break(self):
        self._flush()
        self._break = 2
        self._space = False

    def indent(self):
        self._flush()
        self._level += 1

    def dedent(self):
        self._flush()
        self._level = max(0, self._level - 1)

    def comment(self, text: str, placement: CommentPlacement):
        if placement is CommentPlacement.GLUED:
            self.fragment(text)
        elif placement is CommentPlacement.OWN_LINE:
            self.line_break()
            self._place(text)
        else:
            self._flush()
            if self._open and self._break < 2 and self._fits(text):
                self._current += ' ' + text
                self._break = 0
            else:
                self._break = max(self._break, 1)
                self._place(text)
        # a comment always ends its line
        self.line_break()

    def finish(self, newline: str) -> str:
        self._flush()
        if self._open:
            self._end_line()
        lines = self._lines
        while lines and not lines[-1]:
            lines.pop()
        start = 0
        while start < len(lines) and not lines[start]:
            start += 1
        if start == len(lines):
            return ''
        return newline.join(lines[start:]) + newline

    def _flush(self):
        if self._word:
            text = ''.join(self._word)
            self._word = []
            self._place(text)

    def _place(self, text: str):
        if self._open and self._break:
            self._end_line()
            if self._break == 2:
                self._lines.append('')
        elif self._open and self._space and not self._fits(text):
            self._end_line()

        if not self._open:
            self._current = self.indent_unit * self._level + text
            self._open = True
        elif self._space:
            self._current += ' ' + text
        else:
            self._current += text
        self._break = 0
        self._space = False

    def _end_line(self):
        self._lines.append(self._current)
        self._current = ''
        self._open = False

    def _measure(self, text: str) -> int:
        return len(text.expandtabs(self.tab_size))

    def _column(self) -> int:
        cut = max(self._current.rfind('\n'), self._current.rfind('\r'))
        return self._measure(self._current[cut + 1:])

    def _fits(self, text: str) -> bool:
        first_line = _LINE_BREAK.split(text, 1)[0]
        return self._column() + 1 + self._measure(first_line) <= self.width


def _is_glued_comment(node: Optional[Node]) -> bool:
    return isinstance(node, Comment) and node.placement is CommentPlacement.GLUED


def _is_glued(node: Optional[Node]) -> bool:
    """True when ``node`` directly touches the preceding node."""
    return isinstance(node, (Text, Command, Group, Math)) or _is_glued_comment(node)


class Formatter:
    """
    Pretty-printer for Document Trees.

    The formatter is a pure function of (tree, settings); one instance can
    format any number of documents.
    """

    def __init__(self, width: int = DEFAULT_WIDTH, indent_width: int = DEFAULT_INDENT_WIDTH,
                 use_tabs: bool = False, table: Optional[CommandTable] = None):
        """
        Initialize the formatter.

        Args:
            width: Maximum line width
            indent_width: Spaces per indentation level (tab size when use_tabs is set)
            use_tabs: Indent with one tab per level instead of spaces
            table: Command table consulted for breaks, indentation and verbatim regions
        """
        if width < 1:
            raise ValueError(f"line width must be positive, got {width}")
        if indent_width < 0:
            raise ValueError(f"indent width cannot be negative, got {indent_width}")
        self.width = width
        self.indent_width = indent_width
        self.use_tabs = use_tabs
        self.table = table or default_table()
        self.indent_unit = '\t' if use_tabs else ' ' * indent_width

    def format_document(self, document: Document) -> str:
        """
        Format a parsed document.

        Args:
            document: Document Tree to print

        Returns:
            Formatted text using the document's line ending
        """
        writer = _LineWriter(self.width, self.indent_unit, max(1, self.indent_width))
        self._emit_sequence(document.nodes, writer)
        output = writer.finish(document.newline)
        logger.debug(f"Formatted {len(document.source)} characters into {len(output)}")
        return output

    def format_text(self, source: str) -> str:
        """Parse and format ``source``."""
        return self.format_document(parse(source, self.table))

    # sequences

    def _emit_sequence(self, nodes: Sequence[Node], writer: _LineWriter, block: bool = False):
        last = len(nodes) - 1
        for index, node in enumerate(nodes):
            following = nodes[index + 1] if index < last else None
            if isinstance(node, Whitespace):
                # inside a block group the space after '{' and before '}' becomes a line break
                if block and index in (0, last):
                    writer.line_break()
                else:
                    writer.space()
            elif isinstance(node, BlankLine):
                writer.paragraph_break()
            elif isinstance(node, Comment):
                writer.comment(node.text.rstrip(' \t'), node.placement)
            elif isinstance(node, Text):
                writer.fragment(node.content)
            elif isinstance(node, Command):
                self._emit_command(node, following, writer)
            elif isinstance(node, Group):
                self._emit_group(node, writer)
            elif isinstance(node, Environment):
                self._emit_environment(node, following, writer)
            elif isinstance(node, Math):
                self._emit_math(node, following, writer)
            else:
                raise TypeError(f"cannot format {node!r}")

    # commands and groups

    @staticmethod
    def _command_head(command: Command) -> str:
        name = ' ' if command.name.isspace() else command.name
        return '\\' + name + ('*' if command.star else '')

    def _emit_call(self, command: Command, writer: _LineWriter):
        writer.fragment(self._command_head(command))
        for argument in command.args:
            self._emit_group(argument, writer)
        if command.verbatim is not None:
            writer.fragment(command.verbatim.content)

    def _emit_command(self, command: Command, following: Optional[Node], writer: _LineWriter):
        spec = self.table.lookup_command(command.full_name)
        if spec.break_before:
            writer.line_break()
        self._emit_call(command, writer)
        if spec.break_after and not _is_glued_comment(following):
            writer.line_break()

    @staticmethod
    def is_inline(group: Group) -> bool:
        """
        Check whether a group can be printed on a single line.

        A group holding comments, paragraph breaks, environments, display
        math or multi-line verbatim text is laid out as a block instead.
        """
        for node in walk(group.body):
            if isinstance(node, (Comment, BlankLine, Environment)):
                return False
            if isinstance(node, Math) and node.kind is MathKind.DISPLAY:
                return False
            if isinstance(node, Text) and node.verbatim and _LINE_BREAK.search(node.content):
                return False
        return True

    def _emit_group(self, group: Group, writer: _LineWriter):
        if self.is_inline(group):
            parts: List[str] = []
            self._flatten(group, parts)
            writer.fragment(''.join(parts))
            return
        writer.fragment(group.delimiter)
        writer.indent()
        self._emit_sequence(group.body, writer, block=True)
        writer.dedent()
        writer.fragment(group.closing)

    def _flatten(self, node: Node, parts: List[str]):
        if isinstance(node, Text):
            parts.append(node.content)
        elif isinstance(node, Whitespace):
            parts.append(' ')
        elif isinstance(node, Command):
            parts.append(self._command_head(node))
            for argument in node.args:
                self._flatten(argument, parts)
            if node.verbatim is not None:
                parts.append(node.verbatim.content)
        elif isinstance(node, Group):
            parts.append(node.delimiter)
            for child in node.body:
                self._flatten(child, parts)
            parts.append(node.closing)
        elif isinstance(node, Math):
            parts.append(node.delimiter)
            for child in node.body:
                self._flatten(child, parts)
            parts.append(node.closing)
        else:
            raise TypeError(f"cannot print {node!r} on a single line")

    # environments and math

    def _emit_environment(self, environment: Environment, following: Optional[Node], writer: _LineWriter):
        spec = self.table.lookup_environment(environment.name)
        writer.line_break()
        self._emit_call(environment.opening, writer)

        if spec.verbatim:
            for node in environment.body:
                writer.fragment(node.content)
            self._emit_call(environment.closing, writer)
        else:
            body = environment.body
            if not (body and _is_glued_comment(body[0])):
                writer.line_break()
            if spec.indent_body:
                writer.indent()
            self._emit_sequence(body, writer)
            writer.line_break()
            if spec.indent_body:
                writer.dedent()
            self._emit_call(environment.closing, writer)

        if not _is_glued(following):
            writer.line_break()

    def _emit_math(self, math: Math, following: Optional[Node], writer: _LineWriter):
        if math.kind is MathKind.INLINE:
            writer.fragment(math.delimiter)
            self._emit_sequence(math.body, writer)
            writer.fragment(math.closing)
            return

        writer.line_break()
        writer.fragment(math.delimiter)
        if not (math.body and _is_glued_comment(math.body[0])):
            writer.line_break()
        writer.indent()
        self._emit_sequence(math.body, writer)
        writer.line_break()
        writer.dedent()
        writer.fragment(math.closing)
        if not _is_glued(following):
            writer.line_break()


def format_document(document: Document, width: int = DEFAULT_WIDTH, indent_width: int = DEFAULT_INDENT_WIDTH,
                    use_tabs: bool = False, table: Optional[CommandTable] = None) -> str:
    """Format a parsed document with the given settings."""
    return Formatter(width, indent_width, use_tabs, table).format_document(document)


def format_source(source: str, width: int = DEFAULT_WIDTH, indent_width: int = DEFAULT_INDENT_WIDTH,
                  use_tabs: bool = False, table: Optional[CommandTable] = None) -> str:
    """Parse and format ``source`` in one call."""
    return Formatter(width, indent_width, use_tabs, table).format_text(source)
