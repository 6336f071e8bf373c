"""
texfmt

A formatter for LaTeX and other TeX-family markup: re-wraps paragraphs,
indents environments and normalizes blank lines without changing what the
document renders.
"""

__version__ = "0.1.0"

from .core.errors import TexFormatError
from .core.parser import parse
from .core.formatter import Formatter, format_source
from .core.processor import DocumentProcessor
from .core.aggregator import FileAggregator
from .config import FormatterConfig, load_config


def format_text(source: str, width: int = 80, indent_width: int = 2, use_tabs: bool = False) -> str:
    """Format ``source`` with the built-in command table."""
    return format_source(source, width, indent_width, use_tabs)


__all__ = [
    'TexFormatError',
    'parse',
    'Formatter',
    'format_text',
    'DocumentProcessor',
    'FileAggregator',
    'FormatterConfig',
    'load_config'
]
