"""
Check Mode Module

Runs the formatting pipeline in memory and compares the result with the
input without writing anything. Used for CI-style verification.
"""

import difflib
import logging
from dataclasses import dataclass
from typing import List, Optional

from .formatter import Formatter

logger = logging.getLogger(__name__)


@dataclass
class CheckResult:
    """Outcome of checking one document."""
    already_formatted: bool
    original: str
    formatted: str
    name: str = "<input>"

    @property
    def would_reformat(self) -> bool:
        return not self.already_formatted

    def diff(self, context_lines: int = 3) -> List[str]:
        """
        Unified diff from the original to the formatted text.

        Returns:
            Diff lines without trailing line endings (empty when formatted)
        """
        if self.already_formatted:
            return []
        return list(difflib.unified_diff(
            self.original.splitlines(),
            self.formatted.splitlines(),
            fromfile=f"{self.name} (original)",
            tofile=f"{self.name} (formatted)",
            lineterm='',
            n=context_lines
        ))

    def changed_lines(self) -> int:
        """Number of added plus removed lines in the diff."""
        # the first two lines are the file headers
        diff = self.diff(context_lines=0)[2:]
        return sum(1 for line in diff if line.startswith(('+', '-')))


def check_text(source: str, formatter: Optional[Formatter] = None, name: str = "<input>") -> CheckResult:
    """
    Check whether ``source`` is already formatted.

    Args:
        source: Document text
        formatter: Formatter to use (defaults to the standard settings)
        name: Label used in the diff header

    Returns:
        CheckResult; parse errors propagate to the caller
    """
    formatter = formatter or Formatter()
    formatted = formatter.format_text(source)
    result = CheckResult(formatted == source, source, formatted, name)
    logger.debug(f"Checked {name}: {'already formatted' if result.already_formatted else 'would reformat'}")
    return result
