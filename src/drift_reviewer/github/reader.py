"""
GitHub Reader

Fetches pull request content and commits and converts the API payloads
into change request models.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from ..diff.preprocessor import rebuild_diff
from ..models.change_request import (
    BranchRef,
    ChangeRequestData,
    ChangeRequestFile,
    ChangeRequestRef,
    ChangeRequestStats,
    Commit,
)
from .client import GitHubClient
from .urls import parse_pull_request_url


logger = logging.getLogger(__name__)


class GitHubReader:
    """
    Reads pull requests from GitHub.

    Network calls are synchronous and run on a worker thread from the
    async methods.
    """

    def __init__(self, client: GitHubClient):
        self.client = client

    def parse_url(self, url: str) -> ChangeRequestRef:
        return parse_pull_request_url(url)

    def _parse_file(self, file_data: Dict) -> ChangeRequestFile:
        return ChangeRequestFile(
            filename=file_data['filename'],
            status=file_data.get('status', 'modified'),
            additions=file_data.get('additions', 0),
            deletions=file_data.get('deletions', 0),
            patch=file_data.get('patch'),
        )

    def _fetch_change_request(self, ref: ChangeRequestRef) -> ChangeRequestData:
        owner, repo = ref.platform_id.owner, ref.platform_id.repo
        pr = self.client.get_pull_request(owner, repo, ref.number)
        files = [self._parse_file(f) for f in self.client.get_pull_request_files(owner, repo, ref.number)]

        user = pr.get('user') or {}
        data = ChangeRequestData(
            number=pr['number'],
            title=pr.get('title') or '',
            body=pr.get('body') or '',
            author=user.get('name') or user.get('login') or 'unknown',
            base=BranchRef(ref=pr['base']['ref'], sha=pr['base']['sha']),
            head=BranchRef(ref=pr['head']['ref'], sha=pr['head']['sha']),
            files=files,
            diff=rebuild_diff(files),
            stats=ChangeRequestStats(
                commits=pr.get('commits', 0),
                additions=pr.get('additions', 0),
                deletions=pr.get('deletions', 0),
                files_changed=pr.get('changed_files', len(files)),
            ),
        )
        logger.info(f"Fetched PR #{data.number}: {len(files)} files, "
                    f"+{data.stats.additions}/-{data.stats.deletions}")
        return data

    def _parse_commit(self, commit_data: Dict) -> Commit:
        commit = commit_data.get('commit') or {}
        author: Optional[Dict] = commit.get('author')
        return Commit(
            sha=commit_data['sha'],
            message=commit.get('message', ''),
            author=(author or {}).get('name') or 'Unknown',
        )

    def _fetch_commits(self, ref: ChangeRequestRef) -> List[Commit]:
        owner, repo = ref.platform_id.owner, ref.platform_id.repo
        return [self._parse_commit(c) for c in self.client.get_pull_request_commits(owner, repo, ref.number)]

    async def fetch_change_request(self, ref: ChangeRequestRef) -> ChangeRequestData:
        """Fetch pull request metadata, changed files and the rebuilt diff"""
        return await asyncio.to_thread(self._fetch_change_request, ref)

    async def fetch_commits(self, ref: ChangeRequestRef) -> List[Commit]:
        return await asyncio.to_thread(self._fetch_commits, ref)
