"""
GitHub Writer

Publishes model updates as pull requests and manages the analysis
comment on the source pull request.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..errors import PlatformError
from ..models.change_request import ChangeRequestRef
from .client import GitHubClient


logger = logging.getLogger(__name__)


@dataclass
class FileChange:
    """A file to write in the model update commit"""
    path: str
    content: str


@dataclass
class ChangeRequestResult:
    """Pull request created or updated by the writer"""
    url: str
    number: int
    action: str  # 'created', 'updated'
    branch: str

    def to_dict(self) -> Dict:
        return {'url': self.url, 'number': self.number, 'action': self.action, 'branch': self.branch}


class GitHubWriter:
    """
    Writes to one target repository.

    Args:
        client: Authenticated GitHub client
        owner: Target repository owner
        repo: Target repository name
    """

    def __init__(self, client: GitHubClient, owner: str, repo: str):
        self.client = client
        self.owner = owner
        self.repo = repo

    def _branch_exists(self, branch: str) -> bool:
        try:
            self.client.get_ref(self.owner, self.repo, f'heads/{branch}')
            return True
        except PlatformError as e:
            if e.status_code == 404:
                return False
            raise

    def create_or_update_change_request(
        self,
        branch: str,
        title: str,
        body: str,
        file_changes: List[FileChange],
        base_branch: str = 'main',
        draft: bool = True,
    ) -> ChangeRequestResult:
        """
        Commit ``file_changes`` on top of ``base_branch`` and open or update the PR.

        The branch is created, or force-moved to the new commit when it
        already exists. An open PR for the branch is updated in place.
        """
        owner, repo = self.owner, self.repo

        base_sha = self.client.get_ref(owner, repo, f'heads/{base_branch}')['object']['sha']
        base_commit = self.client.get_commit(owner, repo, base_sha)

        tree_items = []
        for change in file_changes:
            blob = self.client.create_blob(owner, repo, change.content)
            tree_items.append({'path': change.path, 'mode': '100644', 'type': 'blob', 'sha': blob['sha']})

        tree = self.client.create_tree(owner, repo, base_commit['tree']['sha'], tree_items)
        commit = self.client.create_commit(owner, repo, title, tree['sha'], [base_sha])

        if self._branch_exists(branch):
            self.client.update_ref(owner, repo, f'heads/{branch}', commit['sha'], force=True)
        else:
            self.client.create_ref(owner, repo, f'refs/heads/{branch}', commit['sha'])

        existing = self.client.list_pull_requests(owner, repo, head=f'{owner}:{branch}', state='open')
        if existing:
            pr = existing[0]
            self.client.update_pull_request(owner, repo, pr['number'], title=title, body=body)
            logger.info(f"Updated model PR #{pr['number']} on {branch}")
            return ChangeRequestResult(url=pr['html_url'], number=pr['number'], action='updated', branch=branch)

        pr = self.client.create_pull_request(owner, repo, title, body, head=branch, base=base_branch, draft=draft)
        logger.info(f"Created model PR #{pr['number']} on {branch}")
        return ChangeRequestResult(url=pr['html_url'], number=pr['number'], action='created', branch=branch)

    def _find_comment(self, ref: ChangeRequestRef, marker: str) -> Optional[int]:
        comments = self.client.list_issue_comments(ref.platform_id.owner, ref.platform_id.repo, ref.number)
        for comment in comments:
            if marker in (comment.get('body') or ''):
                return comment['id']
        return None

    def comment_on_change_request(self, ref: ChangeRequestRef, body: str,
                                  upsert_marker: Optional[str] = None) -> None:
        """Post ``body`` on the PR, replacing the comment carrying ``upsert_marker`` if any"""
        owner, repo = ref.platform_id.owner, ref.platform_id.repo
        if upsert_marker:
            comment_id = self._find_comment(ref, upsert_marker)
            if comment_id is not None:
                self.client.update_issue_comment(owner, repo, comment_id, body)
                logger.info(f"Updated analysis comment {comment_id} on {owner}/{repo}#{ref.number}")
                return
        self.client.create_issue_comment(owner, repo, ref.number, body)
        logger.info(f"Posted analysis comment on {owner}/{repo}#{ref.number}")

    def delete_comment(self, ref: ChangeRequestRef, marker: str) -> None:
        comment_id = self._find_comment(ref, marker)
        if comment_id is not None:
            self.client.delete_issue_comment(ref.platform_id.owner, ref.platform_id.repo, comment_id)
            logger.info(f"Deleted stale analysis comment {comment_id}")

    def close_change_request(self, branch: str) -> None:
        """Close the open PR whose head is ``branch`` and delete the branch"""
        owner, repo = self.owner, self.repo
        existing = self.client.list_pull_requests(owner, repo, head=f'{owner}:{branch}', state='open')
        if not existing:
            return
        for pr in existing:
            self.client.update_pull_request(owner, repo, pr['number'], state='closed')
            logger.info(f"Closed stale model PR #{pr['number']}")
        self.client.delete_ref(owner, repo, f'heads/{branch}')
