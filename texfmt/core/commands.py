"""
Command Table Module

This module holds the only domain knowledge about specific (La)TeX
commands and environments: how many arguments they take, whether their
contents are verbatim, whether an environment indents its body, and where
the formatter should start new lines.

Unknown names resolve to a safe default so the tree builder and the
formatter stay generic over command identity.
"""

import logging
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandSpec:
    """
    Formatting hints for one command or environment.

    ``signature`` lists the arguments in order: ``m`` for a mandatory brace
    group, ``o`` for an optional bracket group. For environments the
    signature describes the arguments following ``\\begin{name}``.
    """
    signature: str = ""
    verbatim: bool = False
    indent_body: bool = True
    break_before: bool = False
    break_after: bool = False

    @property
    def argument_arity(self) -> int:
        """Number of mandatory arguments."""
        return self.signature.count('m')

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], base: Optional["CommandSpec"] = None) -> "CommandSpec":
        """
        Build a spec from configuration values.

        ``arity: n`` is shorthand for a signature of ``n`` mandatory
        arguments; an explicit ``signature`` wins.
        """
        spec = base or cls()
        values = dict(data)
        arity = values.pop('arity', None)
        if arity is not None and 'signature' not in values:
            values['signature'] = 'm' * int(arity)
        unknown = set(values) - {'signature', 'verbatim', 'indent_body', 'break_before', 'break_after'}
        if unknown:
            raise ValueError(f"unknown command table keys: {', '.join(sorted(unknown))}")
        signature = values.get('signature', spec.signature)
        if any(char not in 'mo' for char in signature):
            raise ValueError(f"invalid argument signature {signature!r} (use 'm' and 'o')")
        return replace(spec, **values)


DEFAULT_COMMAND = CommandSpec()
DEFAULT_ENVIRONMENT = CommandSpec(indent_body=True)

_SECTION = CommandSpec(signature="om", break_before=True, break_after=True)
_PREAMBLE = CommandSpec(signature="om", break_before=True, break_after=True)
_DEFINITION = CommandSpec(signature="moom", break_before=True, break_after=True)
_STANDALONE = CommandSpec(break_before=True, break_after=True)

BUILTIN_COMMANDS: Dict[str, CommandSpec] = {
    # document structure
    'part': _SECTION,
    'chapter': _SECTION,
    'section': _SECTION,
    'subsection': _SECTION,
    'subsubsection': _SECTION,
    'paragraph': _SECTION,
    'subparagraph': _SECTION,
    'item': CommandSpec(signature="o", break_before=True),
    'bibitem': CommandSpec(signature="om", break_before=True),
    'maketitle': _STANDALONE,
    'tableofcontents': _STANDALONE,
    'appendix': _STANDALONE,
    # preamble
    'documentclass': _PREAMBLE,
    'usepackage': _PREAMBLE,
    'RequirePackage': _PREAMBLE,
    'title': CommandSpec(signature="om", break_before=True, break_after=True),
    'author': CommandSpec(signature="m", break_before=True, break_after=True),
    'date': CommandSpec(signature="m", break_before=True, break_after=True),
    'newcommand': _DEFINITION,
    'renewcommand': _DEFINITION,
    'providecommand': _DEFINITION,
    'newenvironment': CommandSpec(signature="moomm", break_before=True, break_after=True),
    'renewenvironment': CommandSpec(signature="moomm", break_before=True, break_after=True),
    'newtheorem': CommandSpec(signature="mom", break_before=True, break_after=True),
    'input': CommandSpec(signature="m", break_before=True, break_after=True),
    'include': CommandSpec(signature="m", break_before=True, break_after=True),
    'bibliography': CommandSpec(signature="m", break_before=True, break_after=True),
    'bibliographystyle': CommandSpec(signature="m", break_before=True, break_after=True),
    # line breaks
    '\\': CommandSpec(signature="o", break_after=True),
    'newline': CommandSpec(break_after=True),
    # inline markup
    'emph': CommandSpec(signature="m"),
    'textbf': CommandSpec(signature="m"),
    'textit': CommandSpec(signature="m"),
    'texttt': CommandSpec(signature="m"),
    'textsc': CommandSpec(signature="m"),
    'underline': CommandSpec(signature="m"),
    'footnote': CommandSpec(signature="om"),
    'caption': CommandSpec(signature="om"),
    'label': CommandSpec(signature="m"),
    'ref': CommandSpec(signature="m"),
    'eqref': CommandSpec(signature="m"),
    'cite': CommandSpec(signature="om"),
    'url': CommandSpec(signature="m"),
    'href': CommandSpec(signature="mm"),
    'includegraphics': CommandSpec(signature="om"),
    'text': CommandSpec(signature="m"),
    'mathrm': CommandSpec(signature="m"),
    'mathbf': CommandSpec(signature="m"),
    'frac': CommandSpec(signature="mm"),
    'sqrt': CommandSpec(signature="om"),
    # inline verbatim
    'verb': CommandSpec(verbatim=True),
    'lstinline': CommandSpec(signature="o", verbatim=True),
}

BUILTIN_ENVIRONMENTS: Dict[str, CommandSpec] = {
    'document': CommandSpec(indent_body=False),
    'itemize': CommandSpec(signature="o"),
    'enumerate': CommandSpec(signature="o"),
    'description': CommandSpec(signature="o"),
    'figure': CommandSpec(signature="o"),
    'figure*': CommandSpec(signature="o"),
    'table': CommandSpec(signature="o"),
    'table*': CommandSpec(signature="o"),
    'tabular': CommandSpec(signature="om"),
    'minipage': CommandSpec(signature="om"),
    'thebibliography': CommandSpec(signature="m"),
    # verbatim
    'verbatim': CommandSpec(verbatim=True, indent_body=False),
    'verbatim*': CommandSpec(verbatim=True, indent_body=False),
    'Verbatim': CommandSpec(signature="o", verbatim=True, indent_body=False),
    'lstlisting': CommandSpec(signature="o", verbatim=True, indent_body=False),
    'minted': CommandSpec(signature="om", verbatim=True, indent_body=False),
    'comment': CommandSpec(verbatim=True, indent_body=False),
}


class CommandTable:
    """
    Read-only lookup from command/environment names to formatting hints.

    Instances are never mutated after construction; ``with_overrides``
    returns a new table, so one table can be shared by concurrent
    pipeline runs.
    """

    def __init__(self, commands: Optional[Mapping[str, CommandSpec]] = None,
                 environments: Optional[Mapping[str, CommandSpec]] = None):
        self._commands = MappingProxyType(dict(BUILTIN_COMMANDS if commands is None else commands))
        self._environments = MappingProxyType(dict(BUILTIN_ENVIRONMENTS if environments is None else environments))

    @property
    def commands(self) -> Mapping[str, CommandSpec]:
        return self._commands

    @property
    def environments(self) -> Mapping[str, CommandSpec]:
        return self._environments

    def lookup_command(self, name: str) -> CommandSpec:
        """Return the spec for ``name`` (``section*`` falls back to ``section``)."""
        spec = self._commands.get(name)
        if spec is None and name.endswith('*'):
            spec = self._commands.get(name[:-1])
        return spec if spec is not None else DEFAULT_COMMAND

    def lookup_environment(self, name: str) -> CommandSpec:
        """Return the spec for environment ``name``."""
        spec = self._environments.get(name)
        if spec is None and name.endswith('*'):
            spec = self._environments.get(name[:-1])
        return spec if spec is not None else DEFAULT_ENVIRONMENT

    def with_overrides(self, commands: Optional[Mapping[str, Any]] = None,
                       environments: Optional[Mapping[str, Any]] = None) -> "CommandTable":
        """
        Create a new table with user entries layered over this one.

        Args:
            commands: Mapping of command name to CommandSpec or config dict
            environments: Mapping of environment name to CommandSpec or config dict

        Returns:
            A new CommandTable
        """
        merged_commands = dict(self._commands)
        for name, value in (commands or {}).items():
            merged_commands[name] = self._coerce(value, merged_commands.get(name))
        merged_environments = dict(self._environments)
        for name, value in (environments or {}).items():
            merged_environments[name] = self._coerce(value, merged_environments.get(name))

        logger.debug(f"Command table overrides: {len(commands or {})} commands, "
                     f"{len(environments or {})} environments")
        return CommandTable(merged_commands, merged_environments)

    @staticmethod
    def _coerce(value: Any, base: Optional[CommandSpec]) -> CommandSpec:
        if isinstance(value, CommandSpec):
            return value
        return CommandSpec.from_dict(value or {}, base)


_DEFAULT_TABLE: Optional[CommandTable] = None


def default_table() -> CommandTable:
    """Shared table with the built-in entries."""
    global _DEFAULT_TABLE
    if _DEFAULT_TABLE is None:
        _DEFAULT_TABLE = CommandTable()
    return _DEFAULT_TABLE
