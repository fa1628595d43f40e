"""
GitHub API Client

Thin REST wrapper over the GitHub API for one token.
Covers the calls used to read pull requests and to publish model
updates (git data API, pulls, issue comments).
"""

import time
import logging
from typing import Dict, List, Optional
from datetime import datetime
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..errors import PlatformError, RateLimitExceeded


logger = logging.getLogger(__name__)

PER_PAGE = 100


class GitHubClient:
    """
    Token-scoped GitHub REST client that tracks the remaining rate-limit quota.

    Calls are grouped by resource:
    - Pull request, file and commit retrieval
    - Git data writes (blobs, trees, commits, refs)
    - Pull request and issue comment management
    """

    def __init__(self, token: Optional[str], base_url: str = "https://api.github.com", timeout: int = 30):
        """
        Args are per-token; create one client per credential.

        Args:
            token: GitHub token; anonymous access when None
            base_url: REST root, e.g. a GitHub Enterprise "/api/v3" URL
            timeout: Per-request timeout in seconds
        """
        self.token = token
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = self._create_session()
        self.rate_limit_remaining = 5000
        self.rate_limit_reset = datetime.now()

    def _create_session(self) -> requests.Session:
        """Session with 5xx retries mounted and auth headers set"""
        session = requests.Session()

        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[500, 502, 503, 504],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        session.headers.update({
            'Accept': 'application/vnd.github+json',
            'User-Agent': 'drift-reviewer/1.0'
        })
        if self.token:
            session.headers['Authorization'] = f'token {self.token}'

        return session

    def _check_rate_limit(self) -> None:
        """Refuse to call the API while the remaining quota is nearly exhausted."""
        if self.rate_limit_remaining <= 10 and datetime.now() < self.rate_limit_reset:
            wait_time = (self.rate_limit_reset - datetime.now()).total_seconds()
            logger.warning(f"Rate limit low ({self.rate_limit_remaining}), resets in {wait_time:.1f}s")
            raise RateLimitExceeded(self.rate_limit_reset)

    def _update_rate_limit(self, response: requests.Response) -> None:
        """Track the quota advertised by the X-RateLimit-* headers"""
        if 'X-RateLimit-Remaining' in response.headers:
            self.rate_limit_remaining = int(response.headers['X-RateLimit-Remaining'])

        if 'X-RateLimit-Reset' in response.headers:
            reset_timestamp = int(response.headers['X-RateLimit-Reset'])
            self.rate_limit_reset = datetime.fromtimestamp(reset_timestamp)

    def _make_request(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        """
        Send one request and turn failures into typed errors.

        Raises:
            PlatformError: Non-2xx answer or transport failure
            RateLimitExceeded: Quota exhausted, before or after the call
        """
        self._check_rate_limit()

        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        kwargs.setdefault('timeout', self.timeout)

        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            logger.error(f"{method} {url} failed: {e}")
            raise PlatformError(f"Request to GitHub failed: {e}")

        self._update_rate_limit(response)

        if response.status_code == 429 or (
                response.status_code == 403 and response.headers.get('X-RateLimit-Remaining') == '0'):
            reset_time = datetime.fromtimestamp(int(response.headers.get('X-RateLimit-Reset', time.time() + 3600)))
            raise RateLimitExceeded(reset_time)

        if not response.ok:
            try:
                error_data = response.json() if response.content else {}
            except ValueError:
                error_data = {}
            raise PlatformError(
                f"GitHub API error: {response.status_code} - {error_data.get('message', 'Unknown error')}",
                status_code=response.status_code,
                response_data=error_data
            )

        return response

    def _paginate(self, endpoint: str, params: Optional[Dict] = None) -> List[Dict]:
        items = []
        page = 1
        while True:
            response = self._make_request(
                'GET', endpoint, params={**(params or {}), 'page': page, 'per_page': PER_PAGE}
            )
            page_items = response.json()
            if not page_items:
                break
            items.extend(page_items)
            if len(page_items) < PER_PAGE:
                break
            page += 1
        return items

    # Pull requests

    def get_pull_request(self, owner: str, repo: str, pr_number: int) -> Dict:
        logger.info(f"Reading pull request {owner}/{repo}#{pr_number}")
        return self._make_request('GET', f'/repos/{owner}/{repo}/pulls/{pr_number}').json()

    def get_pull_request_files(self, owner: str, repo: str, pr_number: int) -> List[Dict]:
        """Files changed in a pull request, in API order"""
        files = self._paginate(f'/repos/{owner}/{repo}/pulls/{pr_number}/files')
        logger.info(f"Pull request #{pr_number} touches {len(files)} file(s)")
        return files

    def get_pull_request_commits(self, owner: str, repo: str, pr_number: int) -> List[Dict]:
        return self._paginate(f'/repos/{owner}/{repo}/pulls/{pr_number}/commits')

    def list_pull_requests(self, owner: str, repo: str, head: Optional[str] = None,
                           state: str = 'open') -> List[Dict]:
        params = {'state': state}
        if head:
            params['head'] = head
        return self._make_request('GET', f'/repos/{owner}/{repo}/pulls', params=params).json()

    def create_pull_request(self, owner: str, repo: str, title: str, body: str,
                            head: str, base: str, draft: bool = False) -> Dict:
        logger.info(f"Creating PR {owner}/{repo} {head} -> {base}")
        return self._make_request('POST', f'/repos/{owner}/{repo}/pulls', json={
            'title': title,
            'body': body,
            'head': head,
            'base': base,
            'draft': draft,
        }).json()

    def update_pull_request(self, owner: str, repo: str, pr_number: int, **fields) -> Dict:
        return self._make_request('PATCH', f'/repos/{owner}/{repo}/pulls/{pr_number}', json=fields).json()

    # Git data

    def get_ref(self, owner: str, repo: str, ref: str) -> Dict:
        """Get a reference such as ``heads/main``"""
        return self._make_request('GET', f'/repos/{owner}/{repo}/git/ref/{ref}').json()

    def create_ref(self, owner: str, repo: str, ref: str, sha: str) -> Dict:
        return self._make_request('POST', f'/repos/{owner}/{repo}/git/refs', json={'ref': ref, 'sha': sha}).json()

    def update_ref(self, owner: str, repo: str, ref: str, sha: str, force: bool = False) -> Dict:
        return self._make_request(
            'PATCH', f'/repos/{owner}/{repo}/git/refs/{ref}', json={'sha': sha, 'force': force}
        ).json()

    def delete_ref(self, owner: str, repo: str, ref: str) -> None:
        self._make_request('DELETE', f'/repos/{owner}/{repo}/git/refs/{ref}')

    def get_commit(self, owner: str, repo: str, sha: str) -> Dict:
        return self._make_request('GET', f'/repos/{owner}/{repo}/git/commits/{sha}').json()

    def create_blob(self, owner: str, repo: str, content: str) -> Dict:
        return self._make_request(
            'POST', f'/repos/{owner}/{repo}/git/blobs', json={'content': content, 'encoding': 'utf-8'}
        ).json()

    def create_tree(self, owner: str, repo: str, base_tree: str, tree: List[Dict]) -> Dict:
        return self._make_request(
            'POST', f'/repos/{owner}/{repo}/git/trees', json={'base_tree': base_tree, 'tree': tree}
        ).json()

    def create_commit(self, owner: str, repo: str, message: str, tree: str, parents: List[str]) -> Dict:
        return self._make_request('POST', f'/repos/{owner}/{repo}/git/commits', json={
            'message': message,
            'tree': tree,
            'parents': parents,
        }).json()

    # Issue comments

    def list_issue_comments(self, owner: str, repo: str, issue_number: int) -> List[Dict]:
        return self._paginate(f'/repos/{owner}/{repo}/issues/{issue_number}/comments')

    def create_issue_comment(self, owner: str, repo: str, issue_number: int, body: str) -> Dict:
        return self._make_request(
            'POST', f'/repos/{owner}/{repo}/issues/{issue_number}/comments', json={'body': body}
        ).json()

    def update_issue_comment(self, owner: str, repo: str, comment_id: int, body: str) -> Dict:
        return self._make_request(
            'PATCH', f'/repos/{owner}/{repo}/issues/comments/{comment_id}', json={'body': body}
        ).json()

    def delete_issue_comment(self, owner: str, repo: str, comment_id: int) -> None:
        self._make_request('DELETE', f'/repos/{owner}/{repo}/issues/comments/{comment_id}')

    def get_rate_limit_status(self) -> Dict:
        """
        Quota as reported by /rate_limit.

        Returns:
            The /rate_limit payload, or the last tracked values when the call fails
        """
        try:
            return self._make_request('GET', '/rate_limit').json()
        except PlatformError as e:
            logger.warning(f"Could not read rate limit, using tracked values: {e}")
            return {
                'rate': {
                    'remaining': self.rate_limit_remaining,
                    'reset': int(self.rate_limit_reset.timestamp())
                }
            }
