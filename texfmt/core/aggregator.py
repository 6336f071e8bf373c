"""
File Aggregator Module

This module collects per-file formatting results of one run, categorizes
them by status and produces the run summary, a JSON-serialisable report
and the process exit code.
"""

from typing import List, Dict, Optional, Any
from dataclasses import dataclass
from enum import Enum
import logging
from pathlib import Path
from .processor import FormatResult

logger = logging.getLogger(__name__)


class FileStatus(Enum):
    """File status categories."""
    UNCHANGED = "unchanged"
    REFORMATTED = "reformatted"
    WOULD_REFORMAT = "would_reformat"
    FAILED = "failed"


@dataclass
class FileInfo:
    """Information about a single processed file."""
    filepath: str
    filename: str
    status: FileStatus
    changes_made: int
    message: str
    error_kind: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    elapsed: float = 0.0


@dataclass
class RunSummary:
    """Summary statistics for one run."""
    total_files: int
    unchanged_files: int
    reformatted_files: int
    would_reformat_files: int
    failed_files: int
    total_changes: int
    success_rate: float
    error_distribution: Dict[str, int]


class FileAggregator:
    """
    Aggregator for the results of a formatting run.

    This class provides:
    - File status categorization
    - Filtering by status
    - Run summary and report export
    - Exit code computation for CI use
    """

    def __init__(self, check: bool = False):
        """
        Initialize the file aggregator.

        Args:
            check: Whether the run was in check mode (mismatches are failures)
        """
        self.check = check
        self.files: List[FileInfo] = []

    def add_result(self, result: FormatResult):
        """
        Add a formatting result to the aggregator.

        Args:
            result: FormatResult from the document processor
        """
        file_info = self._create_file_info(result)

        for i, existing_file in enumerate(self.files):
            if existing_file.filepath == file_info.filepath:
                self.files[i] = file_info
                return
        self.files.append(file_info)

    def add_results(self, results: Dict[str, FormatResult]):
        for result in results.values():
            self.add_result(result)

    def _create_file_info(self, result: FormatResult) -> FileInfo:
        """Create FileInfo from a format result."""
        if not result.success:
            status = FileStatus.FAILED
        elif not result.changed:
            status = FileStatus.UNCHANGED
        elif result.written:
            status = FileStatus.REFORMATTED
        else:
            status = FileStatus.WOULD_REFORMAT

        error_kind = line = column = None
        if result.error is not None:
            error_kind = result.error.kind
            if result.error.position is not None:
                line = result.error.position.line
                column = result.error.position.column

        return FileInfo(
            filepath=result.filepath,
            filename=Path(result.filepath).name if result.filepath else result.filepath,
            status=status,
            changes_made=result.changes_made,
            message=result.message,
            error_kind=error_kind,
            line=line,
            column=column,
            elapsed=result.elapsed
        )

    def filter_files(self, status: Optional[FileStatus] = None) -> List[FileInfo]:
        """Return files, optionally only those with ``status``."""
        if status is None:
            return list(self.files)
        return [f for f in self.files if f.status == status]

    def get_files_by_status(self) -> Dict[FileStatus, List[FileInfo]]:
        """Group files by their status."""
        groups = {status: [] for status in FileStatus}

        for file_info in self.files:
            groups[file_info.status].append(file_info)

        return groups

    def generate_summary(self) -> RunSummary:
        """Generate the run summary."""
        status_counts = {status: 0 for status in FileStatus}
        error_counts: Dict[str, int] = {}

        for file_info in self.files:
            status_counts[file_info.status] += 1
            if file_info.error_kind:
                error_counts[file_info.error_kind] = error_counts.get(file_info.error_kind, 0) + 1

        total_files = len(self.files)
        ok_files = status_counts[FileStatus.UNCHANGED] + status_counts[FileStatus.REFORMATTED]
        if not self.check:
            ok_files += status_counts[FileStatus.WOULD_REFORMAT]
        success_rate = (ok_files / total_files * 100) if total_files > 0 else 100.0

        return RunSummary(
            total_files=total_files,
            unchanged_files=status_counts[FileStatus.UNCHANGED],
            reformatted_files=status_counts[FileStatus.REFORMATTED],
            would_reformat_files=status_counts[FileStatus.WOULD_REFORMAT],
            failed_files=status_counts[FileStatus.FAILED],
            total_changes=sum(f.changes_made for f in self.files),
            success_rate=success_rate,
            error_distribution=error_counts
        )

    def exit_code(self) -> int:
        """
        Process exit status for this run.

        Returns:
            1 when any file failed, or when check mode found a file to reformat; else 0
        """
        summary = self.generate_summary()
        if summary.failed_files:
            return 1
        if self.check and summary.would_reformat_files:
            return 1
        return 0

    def export_report(self) -> Dict[str, Any]:
        """
        Export the run report.

        Returns:
            Report data as a JSON-serialisable dictionary
        """
        summary = self.generate_summary()

        file_details = []
        for file_info in self.files:
            file_details.append({
                'filepath': file_info.filepath,
                'filename': file_info.filename,
                'status': file_info.status.value,
                'changes_made': file_info.changes_made,
                'message': file_info.message,
                'error_kind': file_info.error_kind,
                'line': file_info.line,
                'column': file_info.column,
                'elapsed_ms': round(file_info.elapsed * 1000, 3)
            })

        report = {
            'mode': 'check' if self.check else 'format',
            'summary': {
                'total_files': summary.total_files,
                'unchanged_files': summary.unchanged_files,
                'reformatted_files': summary.reformatted_files,
                'would_reformat_files': summary.would_reformat_files,
                'failed_files': summary.failed_files,
                'total_changes': summary.total_changes,
                'success_rate': summary.success_rate,
                'error_distribution': summary.error_distribution
            },
            'files': file_details,
            'exit_code': self.exit_code()
        }

        logger.debug(f"Exported report for {summary.total_files} files")
        return report
