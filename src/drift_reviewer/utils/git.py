"""
Git helpers

Small wrappers around the git command line.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)


def get_git_repo_root(directory: str) -> Optional[str]:
    """Return the top-level directory of the git repository containing ``directory``."""
    try:
        result = subprocess.run(
            ["git", "-C", directory, "rev-parse", "--show-toplevel"],
            check=False,
            capture_output=True,
            text=True,
        )
    except OSError as e:
        logger.debug(f"git not available: {e}")
        return None

    if result.returncode != 0:
        return None

    root = result.stdout.strip()
    return root or None


def repo_relative_path(file_path: str) -> str:
    """
    Path of ``file_path`` relative to its repository root.

    Falls back to the given path when the file is not inside a git checkout.
    """
    directory = str(Path(file_path).parent)
    root = get_git_repo_root(directory)
    if not root:
        return file_path

    try:
        resolved = Path(os.path.realpath(file_path))
        return resolved.relative_to(Path(os.path.realpath(root))).as_posix()
    except ValueError:
        return file_path
