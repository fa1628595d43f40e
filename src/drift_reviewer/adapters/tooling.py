"""
Model Tooling

Subprocess wrappers for the Structurizr and LikeC4 command line tools,
used both to load models and to re-parse patched model files.
"""

import json
import logging
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from ..config import ValidationConfig
from ..errors import AdapterError, ErrorCode, ToolingUnavailableError


logger = logging.getLogger(__name__)


def _run(command: List[str], adapter_type: str, timeout: int, cwd: Optional[str] = None,
         suggestions: Optional[List[str]] = None) -> subprocess.CompletedProcess:
    logger.debug(f"Running {' '.join(command)}")
    try:
        return subprocess.run(
            command,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as e:
        raise ToolingUnavailableError(
            f"{command[0]} is not available: {e}",
            adapter_type,
            suggestions=suggestions,
        )
    except subprocess.TimeoutExpired:
        raise AdapterError(
            f"{command[0]} timed out after {timeout}s",
            ErrorCode.TIMEOUT,
            adapter_type,
        )


def _output_errors(result: subprocess.CompletedProcess) -> List[str]:
    text = (result.stderr or "").strip() or (result.stdout or "").strip()
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return lines or [f"exit code {result.returncode}"]


def structurizr_export_command(dsl_path: str, output_dir: str, config: ValidationConfig) -> List[str]:
    """Command exporting a Structurizr DSL workspace to JSON"""
    if config.structurizr_cli_path:
        return [
            "java", "-jar", config.structurizr_cli_path, "export",
            "-workspace", dsl_path,
            "-format", "json",
            "-output", output_dir,
        ]

    workspace = Path(dsl_path).resolve()
    return [
        "docker", "run", "--rm",
        "-v", f"{workspace.parent}:/workspace",
        "-v", f"{output_dir}:/output",
        config.structurizr_docker_image, "export",
        "-workspace", f"/workspace/{workspace.name}",
        "-format", "json",
        "-output", "/output",
    ]


def export_structurizr_json(dsl_path: str, config: Optional[ValidationConfig] = None) -> Dict:
    """
    Export a Structurizr DSL workspace to its JSON representation.

    Args:
        dsl_path: Path of the ``.dsl`` file
        config: Tooling configuration

    Returns:
        Parsed workspace JSON

    Raises:
        ToolingUnavailableError: Neither java nor docker could be started
        AdapterError: The DSL failed to parse
    """
    config = config or ValidationConfig()
    suggestions = [
        "Set STRUCTURIZR_CLI_PATH to a local Structurizr CLI jar",
        "Or install Docker so the structurizr image can be used",
        "Or export the workspace to workspace.json and point the model path at it",
    ]

    with tempfile.TemporaryDirectory(prefix="drift-reviewer-structurizr-export-") as output_dir:
        command = structurizr_export_command(dsl_path, output_dir, config)
        result = _run(command, "structurizr", config.timeout_seconds, suggestions=suggestions)
        if result.returncode != 0:
            errors = _output_errors(result)
            raise AdapterError(
                f"Structurizr DSL export failed: {'; '.join(errors)}",
                ErrorCode.MODEL_LOAD_ERROR,
                "structurizr",
                context={"path": dsl_path, "errors": errors},
            )

        exported = sorted(Path(output_dir).glob("*.json"))
        if not exported:
            raise AdapterError(
                "Structurizr DSL export produced no JSON output",
                ErrorCode.MODEL_LOAD_ERROR,
                "structurizr",
                context={"path": dsl_path},
            )
        return json.loads(exported[0].read_text(encoding="utf-8"))


def likec4_command(config: ValidationConfig, *args: str) -> List[str]:
    return shlex.split(config.likec4_command) + list(args)


def export_likec4_json(workspace_dir: str, config: Optional[ValidationConfig] = None) -> Dict:
    """Export a LikeC4 workspace to JSON with ``likec4 export json``"""
    config = config or ValidationConfig()
    suggestions = [
        "Install the LikeC4 CLI (npm install -g likec4) or set LIKEC4_COMMAND",
        "Or export the model with `likec4 export json` and point the model path at the JSON file",
    ]

    with tempfile.TemporaryDirectory(prefix="drift-reviewer-likec4-export-") as output_dir:
        output_file = str(Path(output_dir) / "model.json")
        command = likec4_command(config, "export", "json", "-o", output_file)
        result = _run(command, "likec4", config.timeout_seconds, cwd=workspace_dir, suggestions=suggestions)
        if result.returncode != 0 or not Path(output_file).exists():
            errors = _output_errors(result)
            raise AdapterError(
                f"LikeC4 export failed: {'; '.join(errors)}",
                ErrorCode.MODEL_LOAD_ERROR,
                "likec4",
                user_message="LikeC4 model has errors:\n" + "\n".join(f"  - {e}" for e in errors),
                context={"path": workspace_dir, "errors": errors},
            )
        return json.loads(Path(output_file).read_text(encoding="utf-8"))


def validate_likec4_workspace(workspace_dir: str, config: Optional[ValidationConfig] = None) -> List[str]:
    """
    Run ``likec4 validate`` in a workspace.

    Returns:
        Error lines; empty when the workspace is valid

    Raises:
        ToolingUnavailableError: The CLI could not be started
    """
    config = config or ValidationConfig()
    result = _run(likec4_command(config, "validate"), "likec4", config.timeout_seconds, cwd=workspace_dir)
    if result.returncode == 0:
        return []
    return _output_errors(result)
