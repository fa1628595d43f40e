"""
Diff Preprocessing

Skip-pattern filtering and size truncation for change request files.
"""

from .skip_patterns import SkipResult, load_skip_patterns, apply_skip_patterns
from .truncation import TruncationResult, apply_diff_truncation
from .preprocessor import DiffPreprocessor, rebuild_diff

__all__ = [
    'SkipResult',
    'load_skip_patterns',
    'apply_skip_patterns',
    'TruncationResult',
    'apply_diff_truncation',
    'DiffPreprocessor',
    'rebuild_diff',
]
