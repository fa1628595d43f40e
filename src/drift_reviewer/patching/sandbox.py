"""
DSL Validation Sandbox

Re-parses candidate model content inside a disposable copy of the model
workspace so the real model on disk is never touched.
"""

import asyncio
import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, Tuple

from ..config import ValidationConfig
from ..errors import AdapterError, ErrorCode, ToolingUnavailableError
from ..adapters.tooling import export_structurizr_json, validate_likec4_workspace
from ..models.patch import DslValidationResult


logger = logging.getLogger(__name__)

EXCLUDED_DIRECTORIES = (".git", "node_modules")


@contextmanager
def temp_workspace_copy(
    workspace_path: str,
    target_file: str,
    content: str,
    prefix: str = "drift-reviewer",
) -> Iterator[Tuple[str, str]]:
    """
    Copy a workspace into a fresh temporary directory and overwrite one file.

    The copy skips version-control and dependency directories. The
    directory is removed on every exit path; removal errors are ignored.

    Args:
        workspace_path: Model workspace directory
        target_file: File to overwrite, inside the workspace
        content: Candidate content for the target file
        prefix: Temporary directory name prefix

    Yields:
        (path of the overwritten file in the copy, copy root)
    """
    tmp_dir = tempfile.mkdtemp(prefix=f"{prefix}-validate-")
    try:
        workspace = Path(workspace_path).resolve()
        shutil.copytree(
            workspace,
            tmp_dir,
            ignore=shutil.ignore_patterns(*EXCLUDED_DIRECTORIES),
            dirs_exist_ok=True,
        )

        relative = os.path.relpath(Path(target_file).resolve(), workspace)
        if relative.startswith(".."):
            raise ValueError(f"Target file {target_file} is outside workspace {workspace}")

        tmp_target = Path(tmp_dir) / relative
        tmp_target.parent.mkdir(parents=True, exist_ok=True)
        tmp_target.write_text(content, encoding="utf-8")

        yield str(tmp_target), tmp_dir
    finally:
        shutil.rmtree(tmp_dir, ignore_errors=True)


class LikeC4DslValidator:
    """Validates LikeC4 content with ``likec4 validate``"""

    def __init__(self, config: Optional[ValidationConfig] = None,
                 runner: Optional[Callable[[str, ValidationConfig], list]] = None):
        self.config = config or ValidationConfig()
        self._runner = runner or validate_likec4_workspace

    def _validate_sync(self, workspace_path: str, target_file: str, content: str) -> DslValidationResult:
        with temp_workspace_copy(workspace_path, target_file, content, "drift-reviewer-likec4") as (_, tmp_dir):
            errors = self._runner(tmp_dir, self.config)
        if errors:
            return DslValidationResult.failed(errors)
        return DslValidationResult.ok()

    async def validate(self, workspace_path: str, target_file: str, content: str) -> DslValidationResult:
        try:
            return await asyncio.to_thread(self._validate_sync, workspace_path, target_file, content)
        except Exception as e:
            logger.warning(f"LikeC4 validation unavailable, accepting provisionally: {e}")
            return DslValidationResult.unavailable()


class StructurizrDslValidator:
    """Validates Structurizr DSL by exporting the patched workspace to JSON"""

    def __init__(self, config: Optional[ValidationConfig] = None,
                 exporter: Optional[Callable[[str, ValidationConfig], dict]] = None):
        self.config = config or ValidationConfig()
        self._exporter = exporter or export_structurizr_json

    def _validate_sync(self, workspace_path: str, target_file: str, content: str) -> DslValidationResult:
        with temp_workspace_copy(workspace_path, target_file, content, "drift-reviewer-structurizr") as (tmp_target, _):
            self._exporter(tmp_target, self.config)
        return DslValidationResult.ok()

    async def validate(self, workspace_path: str, target_file: str, content: str) -> DslValidationResult:
        try:
            return await asyncio.to_thread(self._validate_sync, workspace_path, target_file, content)
        except ToolingUnavailableError as e:
            logger.warning(f"Structurizr CLI unavailable, accepting provisionally: {e}")
            return DslValidationResult.unavailable()
        except AdapterError as e:
            if e.code == ErrorCode.MODEL_LOAD_ERROR:
                errors = e.context.get("errors") or [e.message]
                return DslValidationResult.failed(errors)
            logger.warning(f"Structurizr validation could not complete: {e}")
            return DslValidationResult.unavailable()
        except Exception as e:
            logger.warning(f"Structurizr validation unavailable, accepting provisionally: {e}")
            return DslValidationResult.unavailable()
