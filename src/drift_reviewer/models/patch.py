"""
Patch Data Models

Results produced by the model patcher and the DSL validation sandbox.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class SkippedRelationship:
    """A proposed relationship that was not applied, with the reason"""
    source: str
    target: str
    reason: str


@dataclass
class PatchResult:
    """
    A validated patch of one model file.

    ``inserted_lines`` are the generated relationship lines with the format's
    default indent. The accepted ``content`` may place them at a different
    indent, so consumers compare or display them stripped.
    """
    file_path: str
    content: str
    inserted_lines: List[str]
    skipped: List[SkippedRelationship] = field(default_factory=list)


@dataclass(frozen=True)
class DslValidationResult:
    """
    Outcome of re-parsing a candidate model file.

    ``skipped`` means the validator could not run at all; callers accept
    such content provisionally.
    """
    valid: bool
    errors: Optional[List[str]] = None
    skipped: bool = False

    @property
    def accepted(self) -> bool:
        return self.valid or self.skipped

    @classmethod
    def ok(cls) -> "DslValidationResult":
        return cls(valid=True)

    @classmethod
    def failed(cls, errors: List[str]) -> "DslValidationResult":
        return cls(valid=False, errors=list(errors))

    @classmethod
    def unavailable(cls) -> "DslValidationResult":
        return cls(valid=False, skipped=True)
