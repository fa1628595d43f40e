"""
Model Patching

Inserts proposed relationships into a model file and validates the
result in a sandbox before it is published.
"""

from typing import Optional

from ..config import ValidationConfig
from ..errors import DriftReviewerError, ErrorCode
from .formats import LikeC4Format, PatchFormat, StructurizrFormat
from .patcher import (
    AIAssistedGeneration,
    DeterministicGeneration,
    ModelPatcher,
    deterministic_insert,
    quick_validate_patch,
)
from .sandbox import LikeC4DslValidator, StructurizrDslValidator, temp_workspace_copy


PATCH_FORMATS = {
    "likec4": LikeC4Format,
    "structurizr": StructurizrFormat,
}


def create_patcher(format_id: str, provider=None,
                   validation_config: Optional[ValidationConfig] = None) -> ModelPatcher:
    """Create a ModelPatcher for a model format ('likec4' or 'structurizr')"""
    format_class = PATCH_FORMATS.get(format_id.lower())
    if format_class is None:
        raise DriftReviewerError(
            f"Unsupported model format for patching: {format_id}",
            ErrorCode.INVALID_INPUT,
            user_message=f"Model format must be one of: {', '.join(sorted(PATCH_FORMATS))}",
        )
    return ModelPatcher(format_class(validation_config), provider=provider)


__all__ = [
    'AIAssistedGeneration',
    'DeterministicGeneration',
    'LikeC4DslValidator',
    'LikeC4Format',
    'ModelPatcher',
    'PatchFormat',
    'StructurizrDslValidator',
    'StructurizrFormat',
    'create_patcher',
    'deterministic_insert',
    'quick_validate_patch',
    'temp_workspace_copy',
]
