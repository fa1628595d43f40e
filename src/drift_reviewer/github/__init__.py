"""
GitHub Integration

GitHub API client, pull request reader and writer.
"""

from .client import GitHubClient
from .reader import GitHubReader
from .writer import ChangeRequestResult, FileChange, GitHubWriter

__all__ = ['GitHubClient', 'GitHubReader', 'GitHubWriter', 'ChangeRequestResult', 'FileChange']
