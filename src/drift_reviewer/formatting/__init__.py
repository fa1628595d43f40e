"""
Output Formatting

GitHub comment and PR body formatting.
"""

from .github import COMMENT_MARKER, GitHubCommentFormatter, analysis_has_findings

__all__ = ['COMMENT_MARKER', 'GitHubCommentFormatter', 'analysis_has_findings']
