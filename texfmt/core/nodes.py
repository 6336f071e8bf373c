"""
Document Tree Module

Immutable node types produced by the tree builder. The tree keeps every
character of the input (whitespace, comments, skipped spaces before
arguments), so ``render_source`` reproduces the original text exactly.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Tuple, Union


class CommentPlacement(Enum):
    """Where a comment sits on its source line."""
    OWN_LINE = "own_line"      # only whitespace before it on the line
    TRAILING = "trailing"      # after content, separated by whitespace
    GLUED = "glued"            # directly after content, no whitespace


class MathKind(Enum):
    INLINE = "inline"
    DISPLAY = "display"


# opening delimiter -> (closing delimiter, kind)
MATH_DELIMITERS = {
    '$': ('$', MathKind.INLINE),
    '$$': ('$$', MathKind.DISPLAY),
    '\\(': ('\\)', MathKind.INLINE),
    '\\[': ('\\]', MathKind.DISPLAY),
}


@dataclass(frozen=True)
class Text:
    """Literal prose; verbatim text is never re-wrapped or re-indented."""
    content: str
    start: int
    stop: int
    verbatim: bool = False


@dataclass(frozen=True)
class Whitespace:
    """Spaces and tabs, with at most one line ending."""
    content: str
    start: int
    stop: int

    @property
    def has_newline(self) -> bool:
        return '\n' in self.content or '\r' in self.content


@dataclass(frozen=True)
class BlankLine:
    """One or more empty lines: a paragraph break."""
    content: str
    start: int
    stop: int


@dataclass(frozen=True)
class Comment:
    """A ``%`` comment, without its line ending."""
    text: str
    start: int
    stop: int
    placement: CommentPlacement = CommentPlacement.OWN_LINE


@dataclass(frozen=True)
class Group:
    """
    A brace group, or a bracket group used as an optional argument.

    ``leading`` holds whitespace skipped between a command and this group
    when the group was collected as an argument.
    """
    body: Tuple["Node", ...]
    start: int
    stop: int
    delimiter: str = '{'
    leading: str = ''

    @property
    def closing(self) -> str:
        return '}' if self.delimiter == '{' else ']'


@dataclass(frozen=True)
class Command:
    """A control sequence and the arguments collected for it."""
    name: str
    args: Tuple[Group, ...]
    start: int
    stop: int
    star: bool = False
    verbatim: Optional[Text] = None

    @property
    def full_name(self) -> str:
        return self.name + '*' if self.star else self.name


@dataclass(frozen=True)
class Environment:
    """A ``\\begin{name} ... \\end{name}`` region."""
    name: str
    opening: Command
    body: Tuple["Node", ...]
    closing: Command
    start: int
    stop: int

    @property
    def args(self) -> Tuple[Group, ...]:
        """Arguments following ``\\begin{name}``."""
        return self.opening.args[1:]


@dataclass(frozen=True)
class Math:
    """Content between math delimiters."""
    kind: MathKind
    delimiter: str
    body: Tuple["Node", ...]
    start: int
    stop: int

    @property
    def closing(self) -> str:
        return MATH_DELIMITERS[self.delimiter][0]


Node = Union[Text, Whitespace, BlankLine, Comment, Group, Command, Environment, Math]


@dataclass(frozen=True)
class Document:
    """A parsed document: top-level nodes plus the source they came from."""
    nodes: Tuple[Node, ...]
    source: str = field(repr=False)

    @property
    def newline(self) -> str:
        """Line ending used by the source (``\\n`` when there is none)."""
        index = self.source.find('\n')
        if index > 0 and self.source[index - 1] == '\r':
            return '\r\n'
        if index < 0 and '\r' in self.source:
            return '\r'
        return '\n'

    def to_source(self) -> str:
        return render_source(self)


def children(node: Node) -> Tuple[Node, ...]:
    """Direct child nodes of ``node`` in source order."""
    if isinstance(node, Group):
        return node.body
    if isinstance(node, Command):
        return node.args
    if isinstance(node, Environment):
        return (node.opening,) + node.body + (node.closing,)
    if isinstance(node, Math):
        return node.body
    return ()


def walk(nodes) -> Iterator[Node]:
    """Depth-first, pre-order iteration over ``nodes`` and their descendants."""
    stack = list(reversed(tuple(nodes)))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(children(node)))


def render_source(item) -> str:
    """
    Re-serialize a document, node or node sequence from node content only.

    For any tree built from ``source`` this returns ``source`` unchanged.
    """
    parts: List[str] = []
    stack = [item]
    while stack:
        item = stack.pop()
        if isinstance(item, str):
            parts.append(item)
        elif isinstance(item, Document):
            stack.append(item.nodes)
        elif isinstance(item, (tuple, list)):
            stack.extend(reversed(item))
        elif isinstance(item, (Text, Whitespace, BlankLine)):
            parts.append(item.content)
        elif isinstance(item, Comment):
            parts.append(item.text)
        elif isinstance(item, Group):
            stack.extend((item.closing, item.body, item.delimiter, item.leading))
        elif isinstance(item, Command):
            if item.verbatim is not None:
                stack.append(item.verbatim.content)
            stack.extend((item.args, '\\' + item.full_name))
        elif isinstance(item, Environment):
            stack.extend((item.closing, item.body, item.opening))
        elif isinstance(item, Math):
            stack.extend((item.closing, item.body, item.delimiter))
        else:
            raise TypeError(f"not a document node: {item!r}")
    return ''.join(parts)
