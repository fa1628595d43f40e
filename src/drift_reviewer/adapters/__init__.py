"""
Architecture Adapters

Loaders and queries for supported architecture model formats.
"""

from typing import Optional

from ..config import ValidationConfig
from ..errors import DriftReviewerError, ErrorCode
from .base import AdapterMetadata, ArchitectureAdapter
from .likec4 import LIKEC4_METADATA, LikeC4Adapter
from .structurizr import STRUCTURIZR_METADATA, StructurizrAdapter


ADAPTERS = {
    "likec4": LikeC4Adapter,
    "structurizr": StructurizrAdapter,
}


def create_adapter(model_format: str = "likec4",
                   validation_config: Optional[ValidationConfig] = None) -> ArchitectureAdapter:
    """Create the adapter for a model format ('likec4' or 'structurizr')"""
    adapter_class = ADAPTERS.get(model_format.lower())
    if adapter_class is None:
        raise DriftReviewerError(
            f"Unsupported model format: {model_format}",
            ErrorCode.INVALID_INPUT,
            user_message=f"Model format must be one of: {', '.join(sorted(ADAPTERS))}",
        )
    return adapter_class(validation_config)


__all__ = [
    'AdapterMetadata',
    'ArchitectureAdapter',
    'LikeC4Adapter',
    'StructurizrAdapter',
    'LIKEC4_METADATA',
    'STRUCTURIZR_METADATA',
    'create_adapter',
]
