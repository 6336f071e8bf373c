"""
Core modules for scanning, parsing, formatting and checking TeX-family documents.
"""

from .scanner import Scanner, Token, TokenKind, tokenize
from .parser import TreeBuilder, parse
from .commands import CommandSpec, CommandTable, default_table
from .formatter import Formatter, format_document, format_source
from .checker import CheckResult, check_text
from .processor import DocumentProcessor, FormatResult, collect_sources
from .aggregator import FileAggregator, FileStatus

__all__ = [
    'Scanner',
    'Token',
    'TokenKind',
    'tokenize',
    'TreeBuilder',
    'parse',
    'CommandSpec',
    'CommandTable',
    'default_table',
    'Formatter',
    'format_document',
    'format_source',
    'CheckResult',
    'check_text',
    'DocumentProcessor',
    'FormatResult',
    'collect_sources',
    'FileAggregator',
    'FileStatus'
]
