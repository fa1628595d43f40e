"""
Model Patcher

Turns proposed relationships into a validated edit of one model file.

Candidate content comes from an ordered list of generation tiers (AI
assisted first, deterministic insertion last). Every candidate passes
through the same sandbox validation gate; the first accepted candidate
wins.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from ..models.architecture import ComponentIndex, ModelRelationship, StructuredRelationship
from ..models.patch import PatchResult, SkippedRelationship
from ..utils.git import repo_relative_path
from .formats import PatchFormat


logger = logging.getLogger(__name__)

UNKNOWN_SOURCE = "Unknown source component: {}"
UNKNOWN_TARGET = "Unknown target component: {}"
ALREADY_EXISTS = "Relationship already exists in model"
ALREADY_PROPOSED = "Relationship proposed more than once"

_LEADING_WHITESPACE = re.compile(r"^(\s*)")


def quick_validate_patch(original: str, patched: str, inserted_lines: Sequence[str]) -> bool:
    """
    Cheap structural check of a rewritten file.

    Every non-blank original line must survive verbatim, every inserted
    line must appear, and curly braces must balance.
    """
    for line in original.split("\n"):
        if line.strip() and line not in patched:
            logger.debug(f"Quick validation failed: original line missing {line!r}")
            return False

    for line in inserted_lines:
        if line.strip() not in patched:
            logger.debug(f"Quick validation failed: inserted line missing {line!r}")
            return False

    if patched.count("{") != patched.count("}"):
        logger.debug("Quick validation failed: unbalanced braces")
        return False

    return True


def find_insert_index(lines: List[str], is_model_block_line: Callable[[str], bool]) -> int:
    """
    Index of the line closing the model block, or -1.

    Depth starts at 1 on the model block opener and the insertion point
    is the line where it returns to zero. Without a model block, the last
    line containing a closing brace is used.
    """
    insert_index = -1
    in_model = False
    depth = 0

    for i, line in enumerate(lines):
        if is_model_block_line(line):
            in_model = True
            depth = 1
            continue
        if in_model:
            for ch in line:
                if ch == "{":
                    depth += 1
                elif ch == "}":
                    depth -= 1
                    if depth == 0:
                        insert_index = i
                        in_model = False
                        break

    if insert_index == -1:
        for i in range(len(lines) - 1, -1, -1):
            if "}" in lines[i]:
                return i

    return insert_index


def deterministic_insert(
    content: str,
    new_lines: Sequence[str],
    is_model_block_line: Callable[[str], bool],
    default_indent: str,
) -> str:
    """
    Splice ``new_lines`` in front of the model block's closing brace.

    New lines take the indentation of the line just above the insertion
    point (``default_indent`` when that line is blank or missing) and are
    preceded by a blank separator line. Content with no closing brace at
    all gets the lines appended.
    """
    lines = content.split("\n")
    insert_index = find_insert_index(lines, is_model_block_line)

    if insert_index == -1:
        return content + "\n" + "\n".join(new_lines) + "\n"

    line_above = lines[insert_index - 1] if insert_index > 0 else ""
    if line_above.strip():
        indent = _LEADING_WHITESPACE.match(line_above).group(1)
    else:
        indent = default_indent

    indented = [indent + line.strip() for line in new_lines]
    lines[insert_index:insert_index] = [""] + indented
    return "\n".join(lines)


@dataclass
class PatchContext:
    """Inputs shared by every generation tier"""
    format_id: str
    model_path: str
    workspace_path: str
    target_file: str
    original_content: str
    inserted_lines: List[str]


class AIAssistedGeneration:
    """Ask the completion service to rewrite the file with the new lines"""

    name = "ai-assisted"

    def __init__(self, provider):
        self.provider = provider

    async def generate(self, context: PatchContext, patch_format: PatchFormat) -> Optional[str]:
        if self.provider is None or not hasattr(self.provider, "patch_model"):
            return None
        try:
            result = await self.provider.patch_model(
                context.original_content, context.inserted_lines, context.format_id
            )
        except Exception as e:
            logger.warning(f"AI-assisted patching failed, falling back: {e}")
            return None

        if not result:
            return None
        if not quick_validate_patch(context.original_content, result, context.inserted_lines):
            logger.info("AI-assisted patch rejected by structural pre-check")
            return None
        return result


class DeterministicGeneration:
    """Insert the new lines before the model block's closing brace"""

    name = "deterministic"

    async def generate(self, context: PatchContext, patch_format: PatchFormat) -> Optional[str]:
        return deterministic_insert(
            context.original_content,
            context.inserted_lines,
            patch_format.is_model_block_line,
            patch_format.default_indent,
        )


class ModelPatcher:
    """
    Applies proposed relationships to a model file.

    Args:
        patch_format: Format strategy (LikeC4Format, StructurizrFormat)
        provider: Completion provider offering ``patch_model``; optional
        tiers: Generation tiers in priority order (defaults to AI then deterministic)
    """

    def __init__(self, patch_format: PatchFormat, provider=None, tiers: Optional[list] = None):
        self.format = patch_format
        self.provider = provider
        self.tiers = tiers if tiers is not None else [AIAssistedGeneration(provider), DeterministicGeneration()]

    def filter_relationships(
        self,
        relationships: Sequence[StructuredRelationship],
        existing_relationships: Sequence[ModelRelationship],
        component_index: ComponentIndex,
    ) -> Tuple[List[StructuredRelationship], List[SkippedRelationship]]:
        """
        Drop relationships with unknown endpoints or already in the model.

        Returns:
            (relationships to insert, skip records)
        """
        skipped: List[SkippedRelationship] = []
        existing_pairs = {(r.source, r.target) for r in existing_relationships}
        proposed_pairs = set()
        unique = []

        for rel in relationships:
            if rel.source not in component_index.by_id:
                skipped.append(SkippedRelationship(rel.source, rel.target, UNKNOWN_SOURCE.format(rel.source)))
            elif rel.target not in component_index.by_id:
                skipped.append(SkippedRelationship(rel.source, rel.target, UNKNOWN_TARGET.format(rel.target)))
            elif (rel.source, rel.target) in existing_pairs:
                skipped.append(SkippedRelationship(rel.source, rel.target, ALREADY_EXISTS))
            elif (rel.source, rel.target) in proposed_pairs:
                skipped.append(SkippedRelationship(rel.source, rel.target, ALREADY_PROPOSED))
            else:
                proposed_pairs.add((rel.source, rel.target))
                unique.append(rel)

        for skip in skipped:
            logger.debug(f"Skipping {skip.source} -> {skip.target}: {skip.reason}")
        return unique, skipped

    async def patch(
        self,
        model_path: str,
        relationships: Sequence[StructuredRelationship],
        existing_relationships: Sequence[ModelRelationship],
        component_index: ComponentIndex,
    ) -> Optional[PatchResult]:
        """
        Build a validated patch, or return None when nothing applies.

        Args:
            model_path: Model workspace directory or model file
            relationships: Proposed relationships
            existing_relationships: Relationships already in the model
            component_index: Index of the loaded model

        Returns:
            PatchResult, or None when no relationship survives filtering, no
            target file exists, or every candidate fails validation
        """
        unique, skipped = self.filter_relationships(relationships, existing_relationships, component_index)
        logger.info(f"Patching {self.format.id} model: {len(unique)} new, {len(skipped)} skipped")
        if not unique:
            return None

        inserted_lines = self.format.generate_lines(unique, existing_relationships)

        target_file = self.format.find_target_file(model_path)
        if not target_file:
            logger.warning(f"No {self.format.extension} file found in {model_path}")
            return None

        workspace = Path(model_path).resolve()
        if not workspace.is_dir():
            workspace = workspace.parent

        context = PatchContext(
            format_id=self.format.id,
            model_path=model_path,
            workspace_path=str(workspace),
            target_file=target_file,
            original_content=Path(target_file).read_text(encoding="utf-8"),
            inserted_lines=inserted_lines,
        )

        content = await self._first_accepted(context)
        if content is None:
            logger.warning("No patch candidate passed validation")
            return None

        return PatchResult(
            file_path=repo_relative_path(target_file),
            content=content,
            inserted_lines=inserted_lines,
            skipped=skipped,
        )

    async def _first_accepted(self, context: PatchContext) -> Optional[str]:
        for tier in self.tiers:
            candidate = await tier.generate(context, self.format)
            if candidate is None:
                continue

            validation = await self.format.validate(context.workspace_path, context.target_file, candidate)
            if validation.accepted:
                state = "skipped" if validation.skipped else "valid"
                logger.info(f"{tier.name} patch accepted (validation {state})")
                return candidate

            logger.info(f"{tier.name} patch failed validation: {validation.errors}")
        return None
