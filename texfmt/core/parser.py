"""
Tree Builder Module

This module assembles scanner tokens into a Document Tree. Open scopes
(brace groups, optional arguments, math, environments and commands that
are still collecting arguments) live on an explicit stack, so nesting depth
is never limited by Python recursion.

The builder is tolerant of unknown macros: a command the Command Table
does not know takes no arguments and is kept as-is. Structural errors
(unclosed scopes, mismatched environments, stray closers) are fatal for the
document and no partial tree is returned.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .commands import CommandTable, default_table
from .errors import (
    ParseError, SourcePosition, UnbalancedEnvironment, UnmatchedDelimiter, UnterminatedGroup
)
from .nodes import (
    MATH_DELIMITERS, BlankLine, Command, Comment, CommentPlacement, Document,
    Environment, Group, Math, Node, Text, Whitespace
)
from .scanner import Mode, Scanner, Token, TokenKind

logger = logging.getLogger(__name__)


class FrameKind(Enum):
    """Kinds of open scopes on the builder stack."""
    ROOT = "document"
    GROUP = "brace group"
    OPTIONAL = "optional argument"
    MATH = "math"
    ENVIRONMENT = "environment"
    COMMAND = "command"


@dataclass
class _Frame:
    kind: FrameKind
    start: int
    children: List[Node] = field(default_factory=list)
    # groups collected as command arguments
    is_argument: bool = False
    leading: str = ''
    # math
    delimiter: str = ''
    # environments
    name: str = ''
    opening: Optional[Command] = None
    # commands collecting arguments
    command_name: str = ''
    star: bool = False
    args: List[Group] = field(default_factory=list)
    signature: str = ''
    stop: int = 0
    environment: Optional[str] = None


_MATH_MODES = {
    '$': Mode.INLINE_MATH,
    '\\(': Mode.INLINE_MATH,
    '$$': Mode.DISPLAY_MATH,
    '\\[': Mode.DISPLAY_MATH,
}


class TreeBuilder:
    """
    Builds a Document Tree from one source buffer.

    A builder holds per-document state and is used once; call ``parse``
    for the common case.
    """

    def __init__(self, source: str, table: Optional[CommandTable] = None):
        """
        Initialize the builder.

        Args:
            source: Complete document text
            table: Command table used for argument signatures and verbatim regions
        """
        self.source = source
        self.table = table or default_table()
        self.scanner = Scanner(source)
        self._lookahead: List[Token] = []
        self._stack: List[_Frame] = [_Frame(FrameKind.ROOT, 0)]
        self._at_line_start = True
        self._previous: Optional[Token] = None
        self._comment_placement = CommentPlacement.OWN_LINE

    def build(self) -> Document:
        """
        Consume the whole token stream and return the document.

        Raises:
            ScanError: on malformed tokens
            ParseError: on structural errors
        """
        while True:
            frame = self._stack[-1]
            if frame.kind is FrameKind.COMMAND:
                self._collect_argument(frame)
                continue
            token = self._next()
            if token is None:
                break
            self._dispatch(token)

        if len(self._stack) > 1:
            raise self._unterminated(self._stack[-1])

        nodes = tuple(self._stack[0].children)
        logger.debug(f"Built document tree with {len(nodes)} top-level nodes")
        return Document(nodes, self.source)

    # token access

    def _peek(self, index: int = 0) -> Optional[Token]:
        while len(self._lookahead) <= index:
            token = self.scanner.next_token()
            if token is None:
                return None
            self._lookahead.append(token)
        return self._lookahead[index]

    def _next(self) -> Optional[Token]:
        token = self._lookahead.pop(0) if self._lookahead else self.scanner.next_token()
        if token is not None:
            self._track(token)
        return token

    def _track(self, token: Token):
        if token.kind is TokenKind.COMMENT:
            if self._at_line_start:
                self._comment_placement = CommentPlacement.OWN_LINE
            elif self._previous is not None and self._previous.kind is TokenKind.WHITESPACE:
                self._comment_placement = CommentPlacement.TRAILING
            else:
                self._comment_placement = CommentPlacement.GLUED

        if token.kind in (TokenKind.NEWLINE, TokenKind.BLANK_LINE):
            self._at_line_start = True
        elif token.kind is not TokenKind.WHITESPACE:
            self._at_line_start = False
        self._previous = token

    def _discard_lookahead(self):
        """Forget buffered tokens so the scanner re-reads them in a new mode."""
        if self._lookahead:
            self.scanner.seek(self._lookahead[0].start)
            self._lookahead.clear()

    # tree assembly

    def _position(self, offset: int) -> SourcePosition:
        return SourcePosition.from_offset(self.source, offset)

    def _append(self, frame: _Frame, node: Node):
        if frame.children:
            last = frame.children[-1]
            if (isinstance(node, Text) and isinstance(last, Text)
                    and not node.verbatim and not last.verbatim and last.stop == node.start):
                frame.children[-1] = Text(last.content + node.content, last.start, node.stop)
                return
            if isinstance(node, Whitespace) and isinstance(last, Whitespace) and last.stop == node.start:
                frame.children[-1] = Whitespace(last.content + node.content, last.start, node.stop)
                return
        frame.children.append(node)

    def _attach(self, node: Node, is_argument: bool = False):
        parent = self._stack[-1]
        if is_argument:
            parent.args.append(node)
            parent.stop = node.stop
        else:
            self._append(parent, node)

    def _dispatch(self, token: Token):
        kind = token.kind
        top = self._stack[-1]

        if kind in (TokenKind.TEXT, TokenKind.OPEN_BRACKET):
            self._attach(Text(token.text, token.start, token.end))
        elif kind is TokenKind.CLOSE_BRACKET:
            if top.kind is FrameKind.OPTIONAL:
                self._close_group(top, token)
            else:
                self._attach(Text(token.text, token.start, token.end))
        elif kind in (TokenKind.WHITESPACE, TokenKind.NEWLINE):
            self._attach(Whitespace(token.text, token.start, token.end))
        elif kind is TokenKind.BLANK_LINE:
            self._attach(BlankLine(token.text, token.start, token.end))
        elif kind is TokenKind.COMMENT:
            self._attach(Comment(token.text, token.start, token.end, self._comment_placement))
        elif kind is TokenKind.OPEN_BRACE:
            self._stack.append(_Frame(FrameKind.GROUP, token.start))
        elif kind is TokenKind.CLOSE_BRACE:
            self._close_brace(token)
        elif kind is TokenKind.MATH_SHIFT:
            if top.kind is FrameKind.MATH and top.delimiter == token.text:
                self._close_math(top, token)
            else:
                self._open_math(token)
        elif kind is TokenKind.OPEN_MATH:
            self._open_math(token)
        elif kind is TokenKind.CLOSE_MATH:
            if top.kind is FrameKind.MATH and top.delimiter != '$' and MATH_DELIMITERS[top.delimiter][0] == token.text:
                self._close_math(top, token)
            elif top.kind is FrameKind.MATH:
                raise UnmatchedDelimiter(
                    f"{token.text} does not close math opened by {top.delimiter} at {self._position(top.start)}",
                    self._position(token.start))
            else:
                raise UnmatchedDelimiter(f"{token.text} without open math", self._position(token.start))
        elif kind is TokenKind.COMMAND:
            self._start_command(token)
        else:
            raise ParseError(f"unexpected token {kind.value}", self._position(token.start))

    # groups

    def _close_group(self, frame: _Frame, token: Token):
        self._stack.pop()
        delimiter = '{' if frame.kind is FrameKind.GROUP else '['
        node = Group(tuple(frame.children), frame.start, token.end, delimiter, frame.leading)
        self._attach(node, frame.is_argument)

    def _inside_group(self) -> bool:
        return any(frame.kind is FrameKind.GROUP for frame in self._stack)

    def _close_brace(self, token: Token):
        # An environment begun inside a group and left open there belongs to a
        # macro definition; keep its \begin as a plain command.
        while self._stack[-1].kind is FrameKind.ENVIRONMENT and self._inside_group():
            self._demote_environment()

        top = self._stack[-1]
        if top.kind is FrameKind.GROUP:
            self._close_group(top, token)
        elif top.kind is FrameKind.ROOT:
            raise UnmatchedDelimiter("closing brace without matching opening brace",
                                     self._position(token.start))
        else:
            raise self._unterminated(top)

    def _demote_environment(self):
        frame = self._stack.pop()
        logger.debug(f"Environment '{frame.name}' left open inside a group; keeping \\begin as a command")
        parent = self._stack[-1]
        self._append(parent, frame.opening)
        for child in frame.children:
            self._append(parent, child)

    # math

    def _open_math(self, token: Token):
        self._discard_lookahead()
        self._stack.append(_Frame(FrameKind.MATH, token.start, delimiter=token.text))
        self.scanner.push_mode(_MATH_MODES[token.text])

    def _close_math(self, frame: _Frame, token: Token):
        self._discard_lookahead()
        self.scanner.pop_mode()
        self._stack.pop()
        kind = MATH_DELIMITERS[frame.delimiter][1]
        self._attach(Math(kind, frame.delimiter, tuple(frame.children), frame.start, token.end))

    # commands

    def _start_command(self, token: Token):
        name = token.name
        if name in ('begin', 'end'):
            environment = self._read_environment_name()
            if environment is not None:
                env_name, name_group = environment
                if name == 'begin':
                    self._begin_environment(token, env_name, name_group)
                else:
                    self._end_environment(token, env_name, name_group)
                return

        stop = token.end
        star = False
        following = self._peek()
        if (following is not None and following.kind is TokenKind.TEXT
                and following.start == token.end and following.text == '*'):
            self._next()
            star = True
            stop = following.end

        spec = self.table.lookup_command(name + '*' if star else name)
        if spec.verbatim:
            self._discard_lookahead()
            payload = self.scanner.scan_inline_verbatim(optional='o' in spec.signature)
            self._track(payload)
            verbatim = Text(payload.text, payload.start, payload.end, verbatim=True)
            self._attach(Command(name, (), token.start, payload.end, star, verbatim))
        elif not spec.signature:
            self._attach(Command(name, (), token.start, stop, star))
        else:
            self._stack.append(_Frame(FrameKind.COMMAND, token.start, command_name=name, star=star,
                                      signature=spec.signature, stop=stop))

    def _collect_argument(self, frame: _Frame):
        """Collect the next declared argument of ``frame`` or finish the command."""
        if not frame.signature:
            self._finish_command(frame)
            return

        expected, frame.signature = frame.signature[0], frame.signature[1:]
        if expected == 'o':
            following = self._peek()
            if (following is not None and following.kind is TokenKind.OPEN_BRACKET
                    and following.start == frame.stop):
                self._next()
                self._stack.append(_Frame(FrameKind.OPTIONAL, following.start, is_argument=True))
            return

        index = 0
        following = self._peek(index)
        while following is not None and following.is_space:
            index += 1
            following = self._peek(index)
        if following is None or following.kind is not TokenKind.OPEN_BRACE:
            # fewer groups than declared: keep what was found
            self._finish_command(frame)
            return

        leading = ''.join(self._next().text for _ in range(index))
        self._next()
        self._stack.append(_Frame(FrameKind.GROUP, following.start, is_argument=True, leading=leading))

    def _finish_command(self, frame: _Frame):
        self._stack.pop()
        command = Command(frame.command_name, tuple(frame.args), frame.start, frame.stop, frame.star)
        if frame.environment is not None:
            self._open_environment(frame.environment, command)
        else:
            self._attach(command)

    # environments

    def _read_environment_name(self) -> Optional[Tuple[str, Group]]:
        """
        Read ``{name}`` after ``\\begin`` or ``\\end``.

        Returns:
            (name, name group) or None when the braces do not hold plain text
        """
        index = 0
        while self._peek(index) is not None and self._peek(index).is_space:
            index += 1
        opening = self._peek(index)
        if opening is None or opening.kind is not TokenKind.OPEN_BRACE:
            return None

        end_index = index + 1
        while True:
            token = self._peek(end_index)
            if token is None:
                return None
            if token.kind is TokenKind.CLOSE_BRACE:
                break
            if token.kind not in (TokenKind.TEXT, TokenKind.WHITESPACE):
                return None
            end_index += 1
        if end_index == index + 1:
            return None

        tokens = [self._next() for _ in range(end_index + 1)]
        leading = ''.join(token.text for token in tokens[:index])
        name_tokens = tokens[index + 1:end_index]
        name = ''.join(token.text for token in name_tokens)
        body = (Text(name, name_tokens[0].start, name_tokens[-1].end),)
        group = Group(body, opening.start, tokens[-1].end, '{', leading)
        return name, group

    def _begin_environment(self, token: Token, name: str, name_group: Group):
        spec = self.table.lookup_environment(name)
        self._stack.append(_Frame(FrameKind.COMMAND, token.start, command_name='begin',
                                  args=[name_group], signature=spec.signature,
                                  stop=name_group.stop, environment=name))

    def _open_environment(self, name: str, opening: Command):
        frame = _Frame(FrameKind.ENVIRONMENT, opening.start, name=name, opening=opening)
        self._stack.append(frame)
        if self.table.lookup_environment(name).verbatim:
            self._discard_lookahead()
            body = self.scanner.scan_verbatim('\\end{' + name + '}')
            self._track(body)
            if body.end > body.start:
                frame.children.append(Text(body.text, body.start, body.end, verbatim=True))

    def _end_environment(self, token: Token, name: str, name_group: Group):
        closing = Command('end', (name_group,), token.start, name_group.stop)
        top = self._stack[-1]

        if top.kind is FrameKind.ENVIRONMENT:
            if top.name != name:
                raise UnbalancedEnvironment(
                    f"\\end{{{name}}} does not match \\begin{{{top.name}}} at {self._position(top.start)}",
                    self._position(token.start), begin_position=self._position(top.start))
            self._stack.pop()
            self._attach(Environment(top.name, top.opening, tuple(top.children), closing,
                                     top.start, closing.stop))
        elif top.kind is FrameKind.GROUP:
            # \end of an environment begun outside this group (macro definitions)
            self._attach(closing)
        elif top.kind is FrameKind.ROOT:
            raise UnbalancedEnvironment(f"\\end{{{name}}} without matching \\begin{{{name}}}",
                                        self._position(token.start))
        else:
            raise self._unterminated(top)

    def _unterminated(self, frame: _Frame) -> UnterminatedGroup:
        if frame.kind is FrameKind.ENVIRONMENT:
            what = f"environment '{frame.name}'"
        elif frame.kind is FrameKind.MATH:
            what = f"math opened by {frame.delimiter}"
        else:
            what = frame.kind.value
        return UnterminatedGroup(f"{what} is never closed", self._position(frame.start))


def parse(source: str, table: Optional[CommandTable] = None) -> Document:
    """
    Build the Document Tree for ``source``.

    Args:
        source: Document text
        table: Optional command table (defaults to the built-in one)

    Returns:
        The parsed Document
    """
    return TreeBuilder(source, table).build()
