"""
Model Formats

Format-specific pieces of model patching: model block detection,
relationship line grammar, target file discovery and validation.
"""

import logging
import re
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Set

from ..config import ValidationConfig
from ..models.architecture import ModelRelationship, StructuredRelationship
from ..models.patch import DslValidationResult
from .sandbox import LikeC4DslValidator, StructurizrDslValidator


logger = logging.getLogger(__name__)


class PatchFormat(Protocol):
    """Contract every model format implements for patching"""
    id: str
    extension: str
    default_indent: str

    def is_model_block_line(self, line: str) -> bool: ...

    def generate_lines(self, relationships: Sequence[StructuredRelationship],
                       existing: Sequence[ModelRelationship]) -> List[str]: ...

    def find_target_file(self, model_path: str) -> Optional[str]: ...

    async def validate(self, workspace_path: str, target_file: str, content: str) -> DslValidationResult: ...


def known_kinds(existing: Sequence[ModelRelationship]) -> Set[str]:
    """Relationship kinds the model author already uses"""
    return {r.kind for r in existing if r.kind}


def clean_description(description: str, delimiter: str) -> str:
    """Make a description safe inside a one-line string literal"""
    text = description.replace(delimiter, "")
    return " ".join(text.split())


def discover_target_file(
    model_path: str,
    extension: str,
    has_model_block,
    preferred_names: Sequence[str] = (),
) -> Optional[str]:
    """
    Pick the model file most likely to accept new relationships.

    A file path with the right extension is used directly. Otherwise the
    directory (or the file's directory) is scanned: files with a model
    block and at least one relationship come first, then files with a
    model block, then the first file found.
    """
    path = Path(model_path).resolve()
    if path.is_file() and path.suffix == extension:
        return str(path)

    directory = path if path.is_dir() else path.parent
    if not directory.is_dir():
        return None

    candidates = sorted(directory.glob(f"*{extension}"))
    candidates.sort(key=lambda p: 0 if p.name in preferred_names else 1)
    if not candidates:
        return None

    contents = {}
    for candidate in candidates:
        try:
            contents[candidate] = candidate.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Cannot read model file {candidate}: {e}")
            contents[candidate] = ""

    def block_found(text: str) -> bool:
        return any(has_model_block(line) for line in text.splitlines())

    for candidate in candidates:
        if block_found(contents[candidate]) and "->" in contents[candidate]:
            return str(candidate)
    for candidate in candidates:
        if block_found(contents[candidate]):
            return str(candidate)
    return str(candidates[0])


class LikeC4Format:
    """LikeC4 DSL (.c4 files)"""

    id = "likec4"
    extension = ".c4"
    default_indent = "  "
    _model_block = re.compile(r"\bmodel\s*\{")

    def __init__(self, validation_config: Optional[ValidationConfig] = None):
        self.validator = LikeC4DslValidator(validation_config)

    def is_model_block_line(self, line: str) -> bool:
        return bool(self._model_block.search(line))

    def generate_lines(self, relationships, existing) -> List[str]:
        kinds = known_kinds(existing)
        lines = []
        for rel in relationships:
            description = clean_description(rel.description, "'")
            if rel.kind and rel.kind in kinds:
                lines.append(f"  {rel.source} -[{rel.kind}]-> {rel.target} '{description}'")
            else:
                lines.append(f"  {rel.source} -> {rel.target} '{description}'")
        return lines

    def find_target_file(self, model_path: str) -> Optional[str]:
        return discover_target_file(model_path, self.extension, self.is_model_block_line)

    async def validate(self, workspace_path: str, target_file: str, content: str) -> DslValidationResult:
        return await self.validator.validate(workspace_path, target_file, content)


class StructurizrFormat:
    """Structurizr DSL (.dsl files); the relationship kind is its technology"""

    id = "structurizr"
    extension = ".dsl"
    default_indent = "        "
    _model_block = re.compile(r"\bmodel\s*\{")

    def __init__(self, validation_config: Optional[ValidationConfig] = None):
        self.validator = StructurizrDslValidator(validation_config)

    def is_model_block_line(self, line: str) -> bool:
        return bool(self._model_block.search(line))

    def generate_lines(self, relationships, existing) -> List[str]:
        kinds = known_kinds(existing)
        lines = []
        for rel in relationships:
            description = clean_description(rel.description, '"')
            technology = f' "{rel.kind}"' if rel.kind and rel.kind in kinds else ""
            lines.append(f'        {rel.source} -> {rel.target} "{description}"{technology}')
        return lines

    def find_target_file(self, model_path: str) -> Optional[str]:
        return discover_target_file(
            model_path, self.extension, self.is_model_block_line, preferred_names=("workspace.dsl",)
        )

    async def validate(self, workspace_path: str, target_file: str, content: str) -> DslValidationResult:
        return await self.validator.validate(workspace_path, target_file, content)
