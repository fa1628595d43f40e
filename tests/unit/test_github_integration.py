"""
Unit tests for the GitHub client, reader and writer.
"""

import time
import pytest
from datetime import datetime, timedelta
from unittest.mock import Mock, call, patch

import requests

from drift_reviewer.errors import ErrorCode, PlatformError, RateLimitExceeded
from drift_reviewer.github import ChangeRequestResult, FileChange, GitHubClient, GitHubReader, GitHubWriter
from drift_reviewer.github.urls import parse_pull_request_url


def mock_response(status_code=200, json_data=None, headers=None):
    response = Mock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.json.return_value = json_data if json_data is not None else {}
    response.content = b"{}" if json_data is not None else b""
    response.headers = headers or {}
    return response


PR_PAYLOAD = {
    "number": 12,
    "title": "Charge orders on checkout",
    "body": None,
    "user": {"login": "dev"},
    "base": {"ref": "main", "sha": "b" * 40},
    "head": {"ref": "checkout", "sha": "h" * 40},
    "commits": 2,
    "additions": 12,
    "deletions": 3,
    "changed_files": 2,
}

FILES_PAYLOAD = [
    {"filename": "orders/billing.py", "status": "added", "additions": 10, "deletions": 0, "patch": "+import requests"},
    {"filename": "orders/api.py", "status": "modified", "additions": 2, "deletions": 3},
]


class TestGitHubClient:
    """Unit tests for GitHubClient."""

    def test_client_initialization(self):
        client = GitHubClient("ghp_test", base_url="https://ghe.example.com/api/v3/")

        assert client.base_url == "https://ghe.example.com/api/v3"
        assert client.session.headers["Authorization"] == "token ghp_test"
        assert client.session.headers["Accept"] == "application/vnd.github+json"

    def test_anonymous_client(self):
        client = GitHubClient(None)
        assert "Authorization" not in client.session.headers

    def test_make_request_success(self):
        client = GitHubClient("ghp_test")
        reset = int(time.time()) + 3600
        response = mock_response(200, {"number": 12}, {"X-RateLimit-Remaining": "4999", "X-RateLimit-Reset": str(reset)})

        with patch.object(client.session, "request", return_value=response) as mock_request:
            assert client.get_pull_request("acme", "orders", 12) == {"number": 12}

        mock_request.assert_called_once_with("GET", "https://api.github.com/repos/acme/orders/pulls/12", timeout=30)
        assert client.rate_limit_remaining == 4999
        assert client.rate_limit_reset == datetime.fromtimestamp(reset)

    def test_rate_limit_response(self):
        """
        Given: GitHub answers 403 with an exhausted quota
        When: A request is made
        Then: RateLimitExceeded is raised with the reset time
        """
        client = GitHubClient("ghp_test")
        reset = int(time.time()) + 600
        response = mock_response(403, {}, {"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": str(reset)})

        with patch.object(client.session, "request", return_value=response):
            with pytest.raises(RateLimitExceeded) as exc_info:
                client.get_pull_request("acme", "orders", 12)

        assert exc_info.value.reset_time == datetime.fromtimestamp(reset)
        assert exc_info.value.recoverable

    def test_low_quota_refuses_request(self):
        client = GitHubClient("ghp_test")
        client.rate_limit_remaining = 5
        client.rate_limit_reset = datetime.now() + timedelta(minutes=5)

        with patch.object(client.session, "request") as mock_request:
            with pytest.raises(RateLimitExceeded):
                client.get_pull_request("acme", "orders", 12)
        mock_request.assert_not_called()

    def test_api_error(self):
        client = GitHubClient("ghp_test")
        response = mock_response(404, {"message": "Not Found"})

        with patch.object(client.session, "request", return_value=response):
            with pytest.raises(PlatformError) as exc_info:
                client.get_pull_request("acme", "orders", 99)

        assert exc_info.value.status_code == 404
        assert "Not Found" in exc_info.value.message

    def test_auth_error_code(self):
        client = GitHubClient("ghp_bad")
        with patch.object(client.session, "request", return_value=mock_response(401, {"message": "Bad credentials"})):
            with pytest.raises(PlatformError) as exc_info:
                client.get_pull_request("acme", "orders", 1)
        assert exc_info.value.code == ErrorCode.PLATFORM_AUTH_ERROR

    def test_transport_error(self):
        client = GitHubClient("ghp_test")
        with patch.object(client.session, "request", side_effect=requests.ConnectionError("offline")):
            with pytest.raises(PlatformError) as exc_info:
                client.get_pull_request("acme", "orders", 1)
        assert exc_info.value.code == ErrorCode.NETWORK_ERROR

    def test_pagination(self):
        client = GitHubClient("ghp_test")
        first_page = [{"filename": f"f{i}.py"} for i in range(100)]
        second_page = [{"filename": "last.py"}]

        with patch.object(client.session, "request",
                          side_effect=[mock_response(200, first_page), mock_response(200, second_page)]) as mock_request:
            files = client.get_pull_request_files("acme", "orders", 12)

        assert len(files) == 101
        assert mock_request.call_args_list[1][1]["params"] == {"page": 2, "per_page": 100}

    def test_rate_limit_status_fallback(self):
        client = GitHubClient("ghp_test")
        with patch.object(client.session, "request", side_effect=requests.ConnectionError("offline")):
            status = client.get_rate_limit_status()
        assert status["rate"]["remaining"] == 5000


class TestGitHubReader:
    """Unit tests for GitHubReader."""

    @pytest.mark.asyncio
    async def test_fetch_change_request(self):
        client = Mock()
        client.get_pull_request.return_value = PR_PAYLOAD
        client.get_pull_request_files.return_value = FILES_PAYLOAD
        reader = GitHubReader(client)
        ref = reader.parse_url("https://github.com/acme/orders/pull/12")

        data = await reader.fetch_change_request(ref)

        client.get_pull_request.assert_called_once_with("acme", "orders", 12)
        assert data.title == "Charge orders on checkout"
        assert data.body == ""
        assert data.author == "dev"
        assert data.head.sha == "h" * 40
        assert [f.filename for f in data.files] == ["orders/billing.py", "orders/api.py"]
        assert data.diff == "diff --git a/orders/billing.py b/orders/billing.py\n+import requests"
        assert data.stats.commits == 2
        assert data.stats.files_changed == 2

    @pytest.mark.asyncio
    async def test_fetch_commits(self):
        client = Mock()
        client.get_pull_request_commits.return_value = [
            {"sha": "a" * 40, "commit": {"message": "Add billing client", "author": {"name": "Dev"}}},
            {"sha": "c" * 40, "commit": {"message": "Fix", "author": None}},
        ]
        commits = await GitHubReader(client).fetch_commits(parse_pull_request_url("https://github.com/acme/orders/pull/12"))

        assert [c.author for c in commits] == ["Dev", "Unknown"]
        assert commits[0].message == "Add billing client"


class TestGitHubWriter:
    """Unit tests for GitHubWriter."""

    def make_client(self, branch_exists=False, open_prs=None):
        client = Mock()

        def get_ref(owner, repo, ref):
            if ref == "heads/main":
                return {"object": {"sha": "base-sha"}}
            if branch_exists:
                return {"object": {"sha": "old-sha"}}
            raise PlatformError("Not Found", status_code=404)

        client.get_ref.side_effect = get_ref
        client.get_commit.return_value = {"tree": {"sha": "base-tree"}}
        client.create_blob.return_value = {"sha": "blob-sha"}
        client.create_tree.return_value = {"sha": "tree-sha"}
        client.create_commit.return_value = {"sha": "commit-sha"}
        client.list_pull_requests.return_value = open_prs or []
        client.create_pull_request.return_value = {"number": 5, "html_url": "https://github.com/acme/arch/pull/5"}
        return client

    def test_creates_branch_and_pull_request(self):
        """
        Given: No model branch exists yet
        When: A model update is published
        Then: A commit is created on a new branch and a draft PR is opened
        """
        client = self.make_client()
        writer = GitHubWriter(client, "acme", "arch")

        result = writer.create_or_update_change_request(
            "drift-reviewer/pr-12", "chore: update model", "body", [FileChange("model/model.c4", "model {}")],
        )

        client.create_tree.assert_called_once_with(
            "acme", "arch", "base-tree",
            [{"path": "model/model.c4", "mode": "100644", "type": "blob", "sha": "blob-sha"}],
        )
        client.create_commit.assert_called_once_with("acme", "arch", "chore: update model", "tree-sha", ["base-sha"])
        client.create_ref.assert_called_once_with("acme", "arch", "refs/heads/drift-reviewer/pr-12", "commit-sha")
        client.create_pull_request.assert_called_once_with(
            "acme", "arch", "chore: update model", "body",
            head="drift-reviewer/pr-12", base="main", draft=True,
        )
        assert result == ChangeRequestResult(
            url="https://github.com/acme/arch/pull/5", number=5, action="created", branch="drift-reviewer/pr-12"
        )

    def test_updates_existing_branch_and_pull_request(self):
        client = self.make_client(
            branch_exists=True,
            open_prs=[{"number": 4, "html_url": "https://github.com/acme/arch/pull/4"}],
        )
        writer = GitHubWriter(client, "acme", "arch")

        result = writer.create_or_update_change_request("drift-reviewer/pr-12", "t", "b", [FileChange("m.c4", "x")])

        client.update_ref.assert_called_once_with("acme", "arch", "heads/drift-reviewer/pr-12", "commit-sha", force=True)
        client.update_pull_request.assert_called_once_with("acme", "arch", 4, title="t", body="b")
        client.create_pull_request.assert_not_called()
        assert result.action == "updated"
        assert result.to_dict()["number"] == 4

    def test_branch_lookup_errors_propagate(self):
        client = self.make_client()
        client.get_ref.side_effect = [{"object": {"sha": "base-sha"}}, PlatformError("boom", status_code=500)]
        with pytest.raises(PlatformError):
            GitHubWriter(client, "acme", "arch").create_or_update_change_request("b", "t", "b", [])

    def test_comment_upsert(self):
        client = Mock()
        client.list_issue_comments.return_value = [
            {"id": 1, "body": "LGTM"},
            {"id": 2, "body": "<!-- drift-reviewer -->\nold"},
        ]
        writer = GitHubWriter(client, "acme", "orders")
        ref = parse_pull_request_url("https://github.com/acme/orders/pull/12")

        writer.comment_on_change_request(ref, "new body", upsert_marker="<!-- drift-reviewer -->")
        client.update_issue_comment.assert_called_once_with("acme", "orders", 2, "new body")
        client.create_issue_comment.assert_not_called()

        client.list_issue_comments.return_value = []
        writer.comment_on_change_request(ref, "new body", upsert_marker="<!-- drift-reviewer -->")
        client.create_issue_comment.assert_called_once_with("acme", "orders", 12, "new body")

    def test_delete_comment(self):
        client = Mock()
        client.list_issue_comments.return_value = [{"id": 7, "body": "x <!-- drift-reviewer -->"}]
        writer = GitHubWriter(client, "acme", "orders")

        writer.delete_comment(parse_pull_request_url("https://github.com/acme/orders/pull/12"), "<!-- drift-reviewer -->")

        client.delete_issue_comment.assert_called_once_with("acme", "orders", 7)

    def test_close_change_request(self):
        client = Mock()
        client.list_pull_requests.return_value = [{"number": 4}]
        GitHubWriter(client, "acme", "arch").close_change_request("drift-reviewer/pr-12")

        client.list_pull_requests.assert_called_once_with("acme", "arch", head="acme:drift-reviewer/pr-12", state="open")
        client.update_pull_request.assert_called_once_with("acme", "arch", 4, state="closed")
        client.delete_ref.assert_called_once_with("acme", "arch", "heads/drift-reviewer/pr-12")

    def test_close_without_open_pr(self):
        client = Mock()
        client.list_pull_requests.return_value = []
        GitHubWriter(client, "acme", "arch").close_change_request("drift-reviewer/pr-12")
        assert client.mock_calls == [call.list_pull_requests("acme", "arch", head="acme:drift-reviewer/pr-12", state="open")]
