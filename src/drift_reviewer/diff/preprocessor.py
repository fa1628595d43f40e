"""
Diff Preprocessor

Applies skip-pattern filtering and size truncation to a fetched change
request and rebuilds its unified diff from the surviving files.
"""

import logging
from typing import List, Optional

from ..models.change_request import ChangeRequestData, ChangeRequestFile
from .skip_patterns import apply_skip_patterns, load_skip_patterns
from .truncation import DEFAULT_MAX_FILES, DEFAULT_MAX_LINES, apply_diff_truncation


logger = logging.getLogger(__name__)


def rebuild_diff(files: List[ChangeRequestFile]) -> str:
    """Join per-file patches into one unified diff"""
    blocks = [
        f"diff --git a/{f.filename} b/{f.filename}\n{f.patch}"
        for f in files
        if f.patch
    ]
    return "\n\n".join(blocks)


class DiffPreprocessor:
    """
    Filters and bounds the files of a change request.

    Skip-pattern filtering runs first so excluded noise does not count
    toward the truncation limits.
    """

    def __init__(
        self,
        max_files: int = DEFAULT_MAX_FILES,
        max_lines: int = DEFAULT_MAX_LINES,
        patterns: Optional[List[str]] = None,
        skip_file_filtering: bool = False,
    ):
        self.max_files = max_files
        self.max_lines = max_lines
        self.skip_file_filtering = skip_file_filtering
        self._patterns = patterns

    @property
    def patterns(self) -> List[str]:
        if self._patterns is None:
            self._patterns = load_skip_patterns()
        return self._patterns

    def process(self, data: ChangeRequestData) -> ChangeRequestData:
        """
        Filter and truncate ``data`` in place.

        Args:
            data: Change request as fetched from the platform

        Returns:
            The same object with files, diff, stats and truncation fields updated
        """
        files = data.files

        if not self.skip_file_filtering:
            result = apply_skip_patterns(files, self.patterns)
            if result.excluded_count:
                logger.info(f"Filtered out {result.excluded_count} file(s) matching skip patterns")
            files = result.included

        total_lines = sum(f.changes for f in files)
        truncation = apply_diff_truncation(files, total_lines, self.max_files, self.max_lines)

        data.files = truncation.files
        data.diff = rebuild_diff(truncation.files)
        data.refresh_stats()
        if truncation.was_truncated:
            data.was_truncated = True
            data.truncation_reason = truncation.reason

        logger.info(
            f"Prepared {len(data.files)} file(s) for analysis "
            f"(+{data.stats.additions}/-{data.stats.deletions})"
        )
        return data
