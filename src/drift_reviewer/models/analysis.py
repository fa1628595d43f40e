"""
Analysis Data Models

Dependency extraction and drift analysis results, plus the pydantic
models used to validate completion output before it reaches the pipeline.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
from pydantic import BaseModel, validator

from .architecture import ArchitecturalComponent, StructuredRelationship
from .change_request import BranchRef, ChangeRequestStats, Commit


DEPENDENCY_CHANGE_TYPES = ('added', 'modified', 'removed')
SEVERITIES = ('high', 'medium', 'low')


@dataclass
class DependencyChange:
    """A code-level dependency change found in the diff"""
    type: str  # 'added', 'modified', 'removed'
    file: str
    dependency: str
    description: str
    code: str = ""

    def __post_init__(self):
        """Validate"""
        if self.type not in DEPENDENCY_CHANGE_TYPES:
            raise ValueError(f"Invalid dependency change type: {self.type}")


@dataclass
class DependencyExtractionResult:
    """Dependency changes extracted from a change request"""
    dependencies: List[DependencyChange] = field(default_factory=list)
    summary: str = ""


@dataclass
class DriftViolation:
    """A dependency that is not allowed by the declared model"""
    severity: str  # 'high', 'medium', 'low'
    description: str
    file: Optional[str] = None
    line: Optional[int] = None
    commit: Optional[str] = None
    suggestion: Optional[str] = None

    def __post_init__(self):
        """Validate"""
        if self.severity not in SEVERITIES:
            raise ValueError(f"Invalid severity: {self.severity}")


@dataclass
class ModelUpdates:
    """Suggested changes to the architecture model"""
    add: List[str] = field(default_factory=list)
    remove: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    relationships: List[StructuredRelationship] = field(default_factory=list)


@dataclass
class ChangeRequestMetadata:
    """Change request details carried into the analysis result"""
    number: int
    title: str
    description: str
    repository: str
    author: str
    base: BranchRef
    head: BranchRef
    stats: ChangeRequestStats
    commits: List[Commit] = field(default_factory=list)


@dataclass
class DriftAnalysisResult:
    """Outcome of one drift analysis run"""
    has_violations: bool
    violations: List[DriftViolation]
    summary: str
    metadata: ChangeRequestMetadata
    component: ArchitecturalComponent
    dependency_changes: DependencyExtractionResult
    improvements: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    model_updates: Optional[ModelUpdates] = None

    @property
    def proposed_relationships(self) -> List[StructuredRelationship]:
        if not self.model_updates:
            return []
        return self.model_updates.relationships

    def severity_counts(self) -> Dict[str, int]:
        counts = {severity: 0 for severity in SEVERITIES}
        for violation in self.violations:
            counts[violation.severity] += 1
        return counts


# Pydantic models for completion output validation
class DependencyResponse(BaseModel):
    """Completion output for one dependency change"""
    type: str
    file: str = ""
    dependency: str
    description: str = ""
    code: str = ""

    @validator('type', pre=True)
    def validate_type(cls, v):
        v = str(v).lower()
        if v not in DEPENDENCY_CHANGE_TYPES:
            raise ValueError(f'Invalid dependency change type: {v}')
        return v


class DependencyExtractionResponse(BaseModel):
    """Completion output of the dependency extraction stage"""
    dependencies: List[DependencyResponse] = []
    summary: str = ""

    def to_result(self) -> DependencyExtractionResult:
        return DependencyExtractionResult(
            dependencies=[
                DependencyChange(
                    type=d.type,
                    file=d.file,
                    dependency=d.dependency,
                    description=d.description,
                    code=d.code,
                )
                for d in self.dependencies
            ],
            summary=self.summary,
        )


class ViolationResponse(BaseModel):
    """Completion output for one violation"""
    severity: str
    description: str
    file: Optional[str] = None
    line: Optional[int] = None
    commit: Optional[str] = None
    suggestion: Optional[str] = None

    @validator('severity', pre=True)
    def validate_severity(cls, v):
        v = str(v).lower()
        if v not in SEVERITIES:
            raise ValueError(f'Invalid severity: {v}')
        return v

    @validator('line', pre=True)
    def coerce_line(cls, v):
        if v is None or isinstance(v, int):
            return v
        digits = ''.join(ch for ch in str(v).split('-')[0] if ch.isdigit())
        return int(digits) if digits else None


class RelationshipResponse(BaseModel):
    """Completion output for one proposed relationship"""
    source: str
    target: str
    kind: Optional[str] = None
    description: str = ""

    @validator('source', 'target')
    def validate_endpoint(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Relationship endpoints must be non-empty')
        return v


class ModelUpdatesResponse(BaseModel):
    """Completion output for suggested model updates"""
    add: List[str] = []
    remove: List[str] = []
    notes: Optional[str] = None
    relationships: List[RelationshipResponse] = []


class DriftAnalysisResponse(BaseModel):
    """Completion output of the drift analysis stage"""
    has_violations: bool
    violations: List[ViolationResponse] = []
    improvements: List[str] = []
    warnings: List[str] = []
    summary: str
    model_updates: Optional[ModelUpdatesResponse] = None

    def to_model_updates(self) -> Optional[ModelUpdates]:
        if self.model_updates is None:
            return None
        return ModelUpdates(
            add=list(self.model_updates.add),
            remove=list(self.model_updates.remove),
            notes=self.model_updates.notes,
            relationships=[
                StructuredRelationship(
                    source=r.source,
                    target=r.target,
                    kind=r.kind or None,
                    description=r.description,
                )
                for r in self.model_updates.relationships
            ],
        )

    def to_violations(self) -> List[DriftViolation]:
        return [
            DriftViolation(
                severity=v.severity,
                description=v.description,
                file=v.file,
                line=v.line,
                commit=v.commit,
                suggestion=v.suggestion,
            )
            for v in self.violations
        ]
