"""
Diff Truncation

Bounds the number of files and changed lines handed to analysis.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from ..models.change_request import ChangeRequestFile


logger = logging.getLogger(__name__)

DEFAULT_MAX_FILES = 50
DEFAULT_MAX_LINES = 5000


@dataclass
class TruncationResult:
    """Files kept after truncation"""
    files: List[ChangeRequestFile]
    was_truncated: bool
    reason: Optional[str] = None


def apply_diff_truncation(
    files: List[ChangeRequestFile],
    total_lines: int,
    max_files: int = DEFAULT_MAX_FILES,
    max_lines: int = DEFAULT_MAX_LINES,
) -> TruncationResult:
    """
    Apply file and line limits to a change request's file list.

    The file limit is checked first: when exceeded only the first
    ``max_files`` files are kept, in source order. Otherwise a line count
    above ``max_lines`` keeps every file but still marks the result as
    truncated.

    Args:
        files: Files in source order
        total_lines: Total changed lines (additions + deletions)
        max_files: Maximum number of files to analyze
        max_lines: Maximum number of changed lines before warning

    Returns:
        TruncationResult
    """
    if max_files <= 0 or max_lines <= 0:
        raise ValueError("Truncation limits must be positive")

    if len(files) > max_files:
        reason = (
            f"Diff surpassed the {max_files}-file limit ({len(files)} files found). "
            f"Only the first {max_files} files were analyzed."
        )
        logger.warning(reason)
        return TruncationResult(files=list(files[:max_files]), was_truncated=True, reason=reason)

    if total_lines > max_lines:
        reason = (
            f"Diff surpassed the {max_lines}-line limit ({total_lines} lines found). "
            f"Analysis may be partial."
        )
        logger.warning(reason)
        return TruncationResult(files=list(files), was_truncated=True, reason=reason)

    return TruncationResult(files=list(files), was_truncated=False)
