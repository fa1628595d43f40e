"""
Change Request Data Models

Data models for a pull request under analysis.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class PlatformId:
    """Owner/repository pair on the hosting platform"""
    owner: str
    repo: str

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass(frozen=True)
class ChangeRequestRef:
    """Immutable identity of a change request, parsed once from its URL"""
    number: int
    url: str
    repository_url: str
    platform_id: PlatformId

    def __post_init__(self):
        """Validate"""
        if self.number <= 0:
            raise ValueError("Change request number must be positive")
        if not self.repository_url:
            raise ValueError("Repository URL is required")


@dataclass
class BranchRef:
    """Branch name and head commit"""
    ref: str
    sha: str


@dataclass
class ChangeRequestFile:
    """A file touched by the change request"""
    filename: str
    status: str  # 'added', 'modified', 'removed', 'renamed', ...
    additions: int = 0
    deletions: int = 0
    patch: Optional[str] = None

    def __post_init__(self):
        """Validate"""
        if not self.filename:
            raise ValueError("filename is required")
        if self.additions < 0 or self.deletions < 0:
            raise ValueError("Addition and deletion counts must be non-negative")

    @property
    def changes(self) -> int:
        return self.additions + self.deletions


@dataclass
class ChangeRequestStats:
    """Aggregate size of a change request"""
    commits: int = 0
    additions: int = 0
    deletions: int = 0
    files_changed: int = 0

    @property
    def total_lines(self) -> int:
        return self.additions + self.deletions


@dataclass
class Commit:
    """A commit contained in the change request"""
    sha: str
    message: str
    author: str

    @property
    def short_sha(self) -> str:
        return self.sha[:7]

    @property
    def subject(self) -> str:
        return self.message.split('\n', 1)[0]


@dataclass
class ChangeRequestData:
    """Change request content, fetched once per analysis run"""
    number: int
    title: str
    body: str
    author: str
    base: BranchRef
    head: BranchRef
    files: List[ChangeRequestFile] = field(default_factory=list)
    diff: str = ""
    stats: ChangeRequestStats = field(default_factory=ChangeRequestStats)
    was_truncated: bool = False
    truncation_reason: Optional[str] = None

    def refresh_stats(self) -> None:
        """Recompute file and line totals from ``files``"""
        self.stats.files_changed = len(self.files)
        self.stats.additions = sum(f.additions for f in self.files)
        self.stats.deletions = sum(f.deletions for f in self.files)
