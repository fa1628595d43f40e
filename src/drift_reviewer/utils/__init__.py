"""
Utilities

Retry policy, git helpers and model source resolution.
"""

from .retry import RetryConfig, with_retry
from .git import get_git_repo_root, repo_relative_path
from .model_source import ModelSource, acquire_model_source, resolve_model_source

__all__ = [
    'RetryConfig',
    'with_retry',
    'get_git_repo_root',
    'repo_relative_path',
    'ModelSource',
    'resolve_model_source',
    'acquire_model_source',
]
