"""
Skip Patterns

Glob rules that exclude tests, docs, lock files and other noise from
the change request before it is analyzed.
"""

import fnmatch
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..errors import DriftReviewerError, ErrorCode
from ..models.change_request import ChangeRequestFile


logger = logging.getLogger(__name__)

DEFAULT_SKIP_PATTERNS_PATH = Path(__file__).with_name("skip_patterns.txt")


@dataclass
class SkipResult:
    """Files kept after skip-pattern filtering"""
    included: List[ChangeRequestFile]
    excluded_count: int


def load_skip_patterns(file_path: Optional[str] = None) -> List[str]:
    """
    Load skip patterns, one per line.

    Blank lines and ``#`` comments are dropped.

    Args:
        file_path: Pattern file (defaults to the packaged list)

    Returns:
        List of glob patterns
    """
    path = Path(file_path) if file_path else DEFAULT_SKIP_PATTERNS_PATH
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise DriftReviewerError(
            f"Skip pattern file not found: {path}",
            ErrorCode.IO_FILE_NOT_FOUND,
            context={"path": str(path)},
        )

    patterns = []
    for line in content.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            patterns.append(line)

    logger.debug(f"Loaded {len(patterns)} skip patterns from {path}")
    return patterns


def matches_pattern(file_path: str, pattern: str) -> bool:
    """
    Check a repository-relative path against one glob.

    - ``name/`` matches any path with a directory called ``name``
    - a pattern without ``/`` matches the file name at any depth
    - other patterns match the full path, or any suffix of it when
      prefixed with ``**/``
    """
    path = file_path[2:] if file_path.startswith("./") else file_path
    parts = path.split("/")

    if pattern.endswith("/"):
        dir_pattern = pattern.rstrip("/")
        if dir_pattern.startswith("**/"):
            dir_pattern = dir_pattern[3:]
        if "/" in dir_pattern:
            directory = "/".join(parts[:-1])
            return fnmatch.fnmatchcase(directory, dir_pattern) or \
                fnmatch.fnmatchcase(directory, dir_pattern + "/*")
        return any(fnmatch.fnmatchcase(part, dir_pattern) for part in parts[:-1])

    if "/" not in pattern:
        return fnmatch.fnmatchcase(parts[-1], pattern)

    anywhere = False
    while pattern.startswith("**/"):
        pattern = pattern[3:]
        anywhere = True

    if fnmatch.fnmatchcase(path, pattern):
        return True
    if anywhere:
        return any(fnmatch.fnmatchcase("/".join(parts[i:]), pattern) for i in range(1, len(parts)))
    return False


def apply_skip_patterns(files: List[ChangeRequestFile], patterns: List[str]) -> SkipResult:
    """
    Exclude every file matching any pattern.

    Args:
        files: Files in source order
        patterns: Glob patterns

    Returns:
        SkipResult with the kept files (order preserved) and the excluded count
    """
    if not patterns:
        return SkipResult(included=list(files), excluded_count=0)

    included = []
    excluded = 0
    for file in files:
        if any(matches_pattern(file.filename, pattern) for pattern in patterns):
            excluded += 1
        else:
            included.append(file)

    return SkipResult(included=included, excluded_count=excluded)
