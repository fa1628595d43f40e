"""
GitHub URL helpers

Parsing and normalisation of GitHub repository and pull request URLs.
"""

import re
from typing import Optional, Tuple
from urllib.parse import urlparse

from ..errors import DriftReviewerError, ErrorCode
from ..models.change_request import ChangeRequestRef, PlatformId


PULL_REQUEST_URL_PATTERN = re.compile(r'^https?://github\.com/([^/]+)/([^/]+)/pull/(\d+)$')
GITHUB_HOSTS = {'github.com', 'www.github.com'}


def is_github_url(url: str) -> bool:
    """True for http(s) URLs on github.com"""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ('http', 'https') and (parsed.hostname or '').lower() in GITHUB_HOSTS


def normalize_github_url(url: str) -> str:
    """
    Canonical ``https://github.com/{owner}/{repo}`` form of a repository URL.

    Owner and repository are lowercased and a ``.git`` suffix is removed.
    URLs that do not name an owner and repository are returned unchanged.
    """
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return url

    parts = [p for p in parsed.path.split('/') if p]
    if len(parts) < 2 or not parsed.netloc:
        return url

    owner = parts[0].lower()
    repo = parts[1].lower()
    if repo.endswith('.git'):
        repo = repo[:-4]
    return f"https://github.com/{owner}/{repo}"


def parse_pull_request_url(url: str) -> ChangeRequestRef:
    """
    Parse a pull request URL.

    Raises:
        DriftReviewerError: INVALID_URL when the URL is not a GitHub pull request
    """
    match = PULL_REQUEST_URL_PATTERN.match(url.strip().rstrip('/'))
    if not match:
        raise DriftReviewerError(
            f"Invalid GitHub pull request URL: {url}",
            ErrorCode.INVALID_URL,
            user_message="Expected a URL like https://github.com/owner/repo/pull/123",
            context={"url": url},
        )

    owner, repo, number = match.group(1), match.group(2), int(match.group(3))
    return ChangeRequestRef(
        number=number,
        url=url.strip(),
        repository_url=f"https://github.com/{owner}/{repo}",
        platform_id=PlatformId(owner=owner, repo=repo),
    )


def split_repo_slug(slug: str) -> Tuple[str, str]:
    """Split ``owner/repo`` at the last slash"""
    index = slug.rfind('/')
    if index <= 0 or index == len(slug) - 1:
        raise DriftReviewerError(
            f"Invalid repository slug: {slug}",
            ErrorCode.INVALID_INPUT,
            user_message="Expected a repository in the form owner/repo",
        )
    return slug[:index], slug[index + 1:]


def repository_path(repository_url: str) -> Optional[str]:
    """``owner/repo`` part of a repository URL"""
    parsed = urlparse(repository_url)
    path = parsed.path.strip('/')
    return path or None
