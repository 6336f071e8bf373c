"""
Document Processor Module

This module brackets the formatting pipeline with file I/O: reading
sources, writing results back safely, running check mode on files and
processing many files with isolated failures.
"""

import os
import time
import shutil
import logging
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from .checker import CheckResult, check_text
from .errors import DocumentIOError, TexFormatError

logger = logging.getLogger(__name__)

SOURCE_SUFFIXES = ('.tex', '.sty', '.cls', '.ltx', '.dtx')

PathLike = Union[str, Path]


class FormatResult:
    """Result of formatting or checking one file."""

    def __init__(self, success: bool, message: str, changes_made: int = 0, original_content: str = "",
                 formatted_content: str = "", filepath: str = "", written: bool = False,
                 error: Optional[TexFormatError] = None, elapsed: float = 0.0):
        self.success = success
        self.message = message
        self.changes_made = changes_made
        self.original_content = original_content
        self.formatted_content = formatted_content
        self.filepath = filepath
        self.written = written
        self.error = error
        self.elapsed = elapsed

    @property
    def changed(self) -> bool:
        return self.success and self.original_content != self.formatted_content

    def __repr__(self):
        return f"FormatResult(success={self.success}, changes={self.changes_made}, message='{self.message}')"


class DocumentProcessor:
    """
    File-level driver for the formatting pipeline.

    This class provides:
    - Formatting of text and files with a shared configuration
    - Safe in-place writes (temporary file + atomic rename)
    - Check mode on files without writing
    - Batch processing where one failing file never stops the others
    """

    def __init__(self, config=None):
        """
        Initialize the processor.

        Args:
            config: FormatterConfig with width, indentation and command table overrides
        """
        if config is None:
            from ..config import FormatterConfig
            config = FormatterConfig()
        self.config = config
        self.formatter = config.create_formatter()

    def format_text(self, source: str) -> str:
        """
        Format document text.

        Raises:
            ScanError, ParseError: if the document cannot be parsed
        """
        return self.formatter.format_text(source)

    def check_text(self, source: str, name: str = "<input>") -> CheckResult:
        return check_text(source, self.formatter, name)

    def read_file(self, filepath: Path) -> str:
        """Read a UTF-8 file keeping its line endings."""
        try:
            with open(filepath, 'r', encoding='utf-8', newline='') as f:
                return f.read()
        except FileNotFoundError:
            raise DocumentIOError(f"file not found: {filepath}")
        except UnicodeDecodeError as e:
            raise DocumentIOError(f"{filepath} is not valid UTF-8: {e}")
        except OSError as e:
            raise DocumentIOError(f"cannot read {filepath}: {e}")

    def write_file(self, filepath: Path, content: str):
        """
        Replace ``filepath`` with ``content`` atomically.

        The text goes to a temporary file in the same directory which is then
        renamed over the destination, so readers never see a partial file.
        """
        temp_name = None
        try:
            with tempfile.NamedTemporaryFile('w', encoding='utf-8', newline='', dir=filepath.parent,
                                             prefix=f".{filepath.name}.", suffix='.tmp', delete=False) as tmp:
                temp_name = tmp.name
                tmp.write(content)
            if filepath.exists():
                shutil.copymode(filepath, temp_name)
            os.replace(temp_name, filepath)
        except OSError as e:
            if temp_name is not None and os.path.exists(temp_name):
                os.unlink(temp_name)
            raise DocumentIOError(f"cannot write {filepath}: {e}")

    def format_file(self, filepath: PathLike, in_place: bool = False,
                    output: Optional[PathLike] = None) -> FormatResult:
        """
        Format a file.

        Args:
            filepath: Source file
            in_place: Write the result back to ``filepath`` when it changed
            output: Write the result to this file instead

        Returns:
            FormatResult; the source file is never touched on failure
        """
        filepath = Path(filepath)
        start = time.perf_counter()
        original = ""
        try:
            original = self.read_file(filepath)
            check = self.check_text(original, str(filepath))
            formatted = check.formatted

            written = False
            if output is not None:
                self.write_file(Path(output), formatted)
                written = True
            elif in_place and check.would_reformat:
                self.write_file(filepath, formatted)
                written = True
        except TexFormatError as e:
            logger.error(f"Failed to format {filepath}: {e}")
            return FormatResult(False, str(e), 0, original, "", str(filepath), error=e,
                                elapsed=time.perf_counter() - start)

        elapsed = time.perf_counter() - start
        logger.debug(f"Processed {filepath} in {elapsed * 1000:.1f} ms")

        changes = check.changed_lines()
        if check.already_formatted:
            message = "Already formatted"
        elif written:
            message = f"Reformatted ({changes} lines changed)"
        else:
            message = f"Would reformat ({changes} lines changed)"
        return FormatResult(True, message, changes, original, formatted,
                            str(filepath), written, elapsed=elapsed)

    def check_file(self, filepath: PathLike) -> FormatResult:
        """Run check mode on a file without writing anything."""
        return self.format_file(filepath, in_place=False)

    def get_format_preview(self, filepath: PathLike) -> Optional[str]:
        """
        Get the formatted text of a file without changing it.

        Returns:
            Formatted content or None if the file could not be formatted
        """
        result = self.format_file(filepath, in_place=False)
        return result.formatted_content if result.success else None

    def format_multiple_files(self, filepaths: Iterable[PathLike], in_place: bool = False) -> Dict[str, FormatResult]:
        """
        Format several files independently.

        Args:
            filepaths: Files to process
            in_place: Write changed files back

        Returns:
            Dictionary mapping filepaths to their FormatResult objects
        """
        results = {}

        for filepath in filepaths:
            logger.info(f"Formatting file: {filepath}")
            try:
                result = self.format_file(filepath, in_place=in_place)
            except Exception as e:
                logger.exception(f"Unexpected error while formatting {filepath}")
                result = FormatResult(False, f"internal error: {e}", filepath=str(filepath))
            results[str(filepath)] = result

            if result.success:
                logger.info(f"{filepath}: {result.message}")

        return results


def collect_sources(paths: Iterable[PathLike], recursive: bool = True) -> List[Path]:
    """
    Expand files and directories into the list of documents to process.

    Directories are searched for ``.tex``, ``.sty``, ``.cls``, ``.ltx`` and
    ``.dtx`` files; explicitly named files are always included.

    Args:
        paths: Files and directories
        recursive: Search subdirectories

    Returns:
        Paths in a stable order, without duplicates
    """
    collected: List[Path] = []
    seen = set()

    def add(path: Path):
        key = path.resolve()
        if key not in seen:
            seen.add(key)
            collected.append(path)

    for entry in paths:
        path = Path(entry)
        if path.is_dir():
            pattern = '**/*' if recursive else '*'
            for candidate in sorted(path.glob(pattern)):
                if candidate.is_file() and candidate.suffix.lower() in SOURCE_SUFFIXES:
                    add(candidate)
        else:
            if not path.exists():
                logger.warning(f"Path does not exist: {path}")
            add(path)

    logger.debug(f"Collected {len(collected)} source files")
    return collected
