"""
Data Models

Core data models of the drift reviewer
"""

from .change_request import (
    PlatformId,
    ChangeRequestRef,
    BranchRef,
    ChangeRequestFile,
    ChangeRequestStats,
    ChangeRequestData,
    Commit,
)
from .architecture import (
    ArchitecturalComponent,
    ArchitectureModel,
    ComponentIndex,
    ComponentRelationship,
    ModelRelationship,
    StructuredRelationship,
    EMPTY_COMPONENT,
)
from .analysis import (
    DependencyChange,
    DependencyExtractionResult,
    DriftViolation,
    ModelUpdates,
    ChangeRequestMetadata,
    DriftAnalysisResult,
)
from .patch import PatchResult, SkippedRelationship, DslValidationResult

__all__ = [
    "PlatformId",
    "ChangeRequestRef",
    "BranchRef",
    "ChangeRequestFile",
    "ChangeRequestStats",
    "ChangeRequestData",
    "Commit",
    "ArchitecturalComponent",
    "ArchitectureModel",
    "ComponentIndex",
    "ComponentRelationship",
    "ModelRelationship",
    "StructuredRelationship",
    "EMPTY_COMPONENT",
    "DependencyChange",
    "DependencyExtractionResult",
    "DriftViolation",
    "ModelUpdates",
    "ChangeRequestMetadata",
    "DriftAnalysisResult",
    "PatchResult",
    "SkippedRelationship",
    "DslValidationResult",
]
