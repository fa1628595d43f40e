"""
Integration tests for the full drift analysis pipeline.

The model workspace, diff preprocessing, patching and publishing run for
real; only the completion service, the GitHub transport and the model
tooling are replaced.
"""

import asyncio
import json
import os
import time
import pytest
from unittest.mock import Mock, patch

from drift_reviewer import AnalyzeRequest, DriftReviewerAPI
from drift_reviewer.config import AppConfig
from drift_reviewer.errors import DriftReviewerError, ErrorCode
from drift_reviewer.formatting import COMMENT_MARKER
from drift_reviewer.github import ChangeRequestResult, GitHubReader
from drift_reviewer.llm import AnalysisPhase, CompletionProvider
from drift_reviewer.models.architecture import EMPTY_COMPONENT
from drift_reviewer.utils.model_source import ModelSource
from drift_reviewer.utils.retry import RetryConfig


PR_URL = "https://github.com/acme/orders/pull/12"

MODEL_C4 = """specification {
  element system
  element service
}

model {
  shop = system 'Shop' {
    orders = service 'Orders'
    billing = service 'Billing'
    worker = service 'Worker'
    legacy = service 'Legacy'
  }

  shop.orders -> shop.legacy 'reads'
}
"""

DEPENDENCIES = {
    "dependencies": [{
        "type": "added",
        "file": "orders/billing.py",
        "dependency": "Billing API",
        "description": "Charges orders",
        "code": "requests.post(BILLING_URL)",
    }],
    "summary": "Adds a billing client",
}

DRIFT = {
    "has_violations": True,
    "violations": [{"severity": "high", "description": "Orders calls Billing directly", "file": "orders/billing.py"}],
    "summary": "Orders now depends on Billing",
    "model_updates": {
        "add": ["shop.orders -> shop.billing"],
        "relationships": [
            {"source": "shop.orders", "target": "shop.billing", "description": "Charges orders"},
            {"source": "shop.orders", "target": "shop.legacy", "description": "reads"},
        ],
    },
}

CLEAN = {"has_violations": False, "violations": [], "summary": "No drift"}


class ScriptedProvider(CompletionProvider):
    """Completion provider answering from a script"""

    name = "scripted"

    def __init__(self, responses, delay=0.0):
        super().__init__("fast", "advanced", RetryConfig(retries=0, initial_delay=0, max_delay=0))
        self.responses = list(responses)
        self.delay = delay
        self.phases = []

    async def call_model(self, model, prompt, phase, max_tokens):
        self.phases.append(phase)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.responses.pop(0)


def write_workspace(root, worker_linked=False):
    model_dir = root / "model"
    model_dir.mkdir()

    def element(title, linked):
        data = {"kind": "service", "title": title}
        if linked:
            data["links"] = [{"url": "https://github.com/Acme/orders.git"}]
        return data

    export = {
        "elements": {
            "shop.orders": element("Orders", True),
            "shop.billing": element("Billing", False),
            "shop.worker": element("Worker", worker_linked),
            "shop.legacy": element("Legacy", False),
        },
        "relations": [{"source": "shop.orders", "target": "shop.legacy", "title": "reads"}],
    }
    (model_dir / "likec4.json").write_text(json.dumps(export))
    (model_dir / "model.c4").write_text(MODEL_C4)
    return model_dir


def make_reader():
    client = Mock()
    client.get_pull_request.return_value = {
        "number": 12,
        "title": "Charge orders on checkout",
        "body": "Adds billing",
        "user": {"login": "dev"},
        "base": {"ref": "main", "sha": "b" * 40},
        "head": {"ref": "checkout", "sha": "h" * 40},
        "commits": 1,
        "additions": 12,
        "deletions": 0,
        "changed_files": 3,
    }
    client.get_pull_request_files.return_value = [
        {"filename": "orders/billing.py", "status": "added", "additions": 10, "deletions": 0,
         "patch": "+BILLING_URL = 'https://billing.internal'\n+requests.post(BILLING_URL)"},
        {"filename": "tests/test_billing.py", "status": "added", "additions": 2, "deletions": 0, "patch": "+def test(): pass"},
        {"filename": "package-lock.json", "status": "modified", "additions": 1, "deletions": 0, "patch": "+{}"},
    ]
    client.get_pull_request_commits.return_value = [
        {"sha": "a" * 40, "commit": {"message": "Add billing client", "author": {"name": "Dev"}}},
    ]
    return GitHubReader(client)


def make_writer_factory():
    writer = Mock()
    writer.create_or_update_change_request.return_value = ChangeRequestResult(
        url="https://github.com/acme/orders/pull/13", number=13, action="created", branch="drift-reviewer/pr-12"
    )
    return Mock(return_value=writer), writer


@pytest.fixture
def valid_tooling(tmp_path):
    with patch("drift_reviewer.patching.sandbox.validate_likec4_workspace", return_value=[]) as runner, \
            patch("drift_reviewer.utils.git.get_git_repo_root", return_value=str(tmp_path)):
        yield runner


class TestAnalysisPipeline:
    """End-to-end tests for DriftReviewerAPI.analyze."""

    @pytest.mark.asyncio
    async def test_full_run_patches_model_and_publishes(self, tmp_path, valid_tooling):
        """
        Given: A pull request that adds an undeclared dependency
        When: The pipeline runs with patching, PR creation and commenting enabled
        Then: The model gains exactly the missing relationship, a model PR is
              opened and the analysis comment is upserted
        """
        model_dir = write_workspace(tmp_path)
        provider = ScriptedProvider([json.dumps(DEPENDENCIES), json.dumps(DRIFT), ""])
        factory, writer = make_writer_factory()
        reader = make_reader()
        api = DriftReviewerAPI(config=AppConfig(), provider=provider, reader=reader, writer_factory=factory)

        result = await api.analyze(AnalyzeRequest(
            url=PR_URL, model_path=str(model_dir), patch_model=True, open_pr=True, comment=True,
        ))

        assert provider.phases == [
            AnalysisPhase.DEPENDENCY_SCAN, AnalysisPhase.CHANGE_ANALYSIS, AnalysisPhase.MODEL_PATCHING,
        ]
        assert result.has_violations
        assert result.selected_component_id == "shop.orders"
        assert result.candidate_components == []
        assert result.analysis.metadata.stats.files_changed == 1

        # Deterministic tier after the empty AI answer
        assert result.patch.file_path == "model/model.c4"
        assert "\n\n  shop.orders -> shop.billing 'Charges orders'\n}" in result.patch.content
        assert result.patch.content.count("shop.orders -> shop.legacy") == 1
        assert [s.reason for s in result.patch.skipped] == ["Relationship already exists in model"]
        assert (model_dir / "model.c4").read_text() == MODEL_C4
        valid_tooling.assert_called_once()

        args, kwargs = writer.create_or_update_change_request.call_args
        assert args[0] == "drift-reviewer/pr-12"
        assert args[3][0].content == result.patch.content
        assert kwargs == {"draft": True}

        ref, body, marker = writer.comment_on_change_request.call_args[0]
        assert ref.number == 12
        assert marker == COMMENT_MARKER
        assert "https://github.com/acme/orders/pull/13" in body
        assert result.published.comment_posted
        assert result.processing_time >= 0

    @pytest.mark.asyncio
    async def test_diff_is_filtered_before_analysis(self, tmp_path):
        model_dir = write_workspace(tmp_path)
        provider = ScriptedProvider([json.dumps(DEPENDENCIES), json.dumps(CLEAN)])
        reader = make_reader()
        api = DriftReviewerAPI(config=AppConfig(), provider=provider, reader=reader, writer_factory=Mock())

        result = await api.analyze(AnalyzeRequest(url=PR_URL, model_path=str(model_dir)))

        assert not result.has_violations
        assert result.patch is None
        assert result.published is None
        assert result.analysis.metadata.stats.files_changed == 1
        assert result.analysis.metadata.commits[0].message == "Add billing client"

    @pytest.mark.asyncio
    async def test_no_matching_component(self, tmp_path):
        """
        Given: A model with no component linked to the pull request's repository
        When: The pipeline runs
        Then: An empty result is returned without fetching the pull request
        """
        model_dir = write_workspace(tmp_path)
        provider = ScriptedProvider([])
        reader = make_reader()
        api = DriftReviewerAPI(config=AppConfig(), provider=provider, reader=reader, writer_factory=Mock())

        result = await api.analyze(AnalyzeRequest(
            url="https://github.com/acme/payments/pull/3", model_path=str(model_dir),
        ))

        assert result.analysis.summary == "No components found matching repository: https://github.com/acme/payments"
        assert result.analysis.component is EMPTY_COMPONENT
        assert not result.has_violations
        assert provider.phases == []
        reader.client.get_pull_request.assert_not_called()

    @pytest.mark.asyncio
    async def test_multiple_candidates_are_resolved(self, tmp_path):
        model_dir = write_workspace(tmp_path, worker_linked=True)
        provider = ScriptedProvider(["The change belongs to shop.worker", json.dumps(DEPENDENCIES), json.dumps(CLEAN)])
        api = DriftReviewerAPI(config=AppConfig(), provider=provider, reader=make_reader(), writer_factory=Mock())

        result = await api.analyze(AnalyzeRequest(url=PR_URL, model_path=str(model_dir)))

        assert provider.phases[0] == AnalysisPhase.COMPONENT_RESOLUTION
        assert result.selected_component_id == "shop.worker"
        assert {c["id"] for c in result.candidate_components} == {"shop.orders", "shop.worker"}

    @pytest.mark.asyncio
    async def test_unresolved_selection_falls_back_to_first(self, tmp_path):
        model_dir = write_workspace(tmp_path, worker_linked=True)
        provider = ScriptedProvider(["Unsure", json.dumps(DEPENDENCIES), json.dumps(CLEAN)])
        api = DriftReviewerAPI(config=AppConfig(), provider=provider, reader=make_reader(), writer_factory=Mock())

        result = await api.analyze(AnalyzeRequest(url=PR_URL, model_path=str(model_dir)))

        assert result.selected_component_id == result.candidate_components[0]["id"]

    @pytest.mark.asyncio
    async def test_dry_run_skips_model_pr(self, tmp_path, valid_tooling):
        model_dir = write_workspace(tmp_path)
        provider = ScriptedProvider([json.dumps(DEPENDENCIES), json.dumps(DRIFT), ""])
        factory, writer = make_writer_factory()
        api = DriftReviewerAPI(config=AppConfig(), provider=provider, reader=make_reader(), writer_factory=factory)

        result = await api.analyze(AnalyzeRequest(
            url=PR_URL, model_path=str(model_dir), patch_model=True, open_pr=True, dry_run=True,
        ))

        assert result.patch is not None
        assert result.published.generated_change_request is None
        writer.create_or_update_change_request.assert_not_called()

    @pytest.mark.asyncio
    async def test_run_deadline(self, tmp_path):
        """
        Given: A completion service slower than the run deadline
        When: The pipeline runs with commenting enabled
        Then: A TIMEOUT error is raised and a failure comment is posted
        """
        model_dir = write_workspace(tmp_path)
        provider = ScriptedProvider([json.dumps(DEPENDENCIES)], delay=5)
        factory, writer = make_writer_factory()
        api = DriftReviewerAPI(config=AppConfig(), provider=provider, reader=make_reader(), writer_factory=factory)

        with pytest.raises(DriftReviewerError) as exc_info:
            await api.analyze(AnalyzeRequest(
                url=PR_URL, model_path=str(model_dir), comment=True, run_timeout_seconds=0.2,
            ))

        assert exc_info.value.code == ErrorCode.TIMEOUT
        body = writer.comment_on_change_request.call_args[0][1]
        assert body.startswith(COMMENT_MARKER)
        assert "Analysis unsuccessful" in body

    @pytest.mark.asyncio
    async def test_invalid_url_posts_nothing(self, tmp_path):
        factory, writer = make_writer_factory()
        api = DriftReviewerAPI(config=AppConfig(), provider=ScriptedProvider([]),
                               reader=make_reader(), writer_factory=factory)

        with pytest.raises(DriftReviewerError) as exc_info:
            await api.analyze(AnalyzeRequest(url="https://example.com/pr/1", model_path=str(tmp_path), comment=True))

        assert exc_info.value.code == ErrorCode.INVALID_URL
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_model_path(self, tmp_path):
        factory, writer = make_writer_factory()
        api = DriftReviewerAPI(config=AppConfig(), provider=ScriptedProvider([]),
                               reader=make_reader(), writer_factory=factory)

        with pytest.raises(DriftReviewerError) as exc_info:
            await api.analyze(AnalyzeRequest(url=PR_URL, model_path=str(tmp_path / "missing"), comment=True))

        assert exc_info.value.code == ErrorCode.IO_FILE_NOT_FOUND
        writer.comment_on_change_request.assert_called_once()


class TestModelSourceCleanup:
    """The model source is released on every exit path of a run."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("model_subpath,responses,code", [
        ("missing", [], ErrorCode.IO_FILE_NOT_FOUND),
        ("model", ["not json at all"], ErrorCode.INVALID_RESPONSE),
    ])
    async def test_cleanup_runs_once_when_a_stage_fails(self, tmp_path, model_subpath, responses, code):
        """
        Given: A cloned model source whose load or analysis fails
        When: The pipeline runs
        Then: The error propagates and the source is released exactly once
        """
        write_workspace(tmp_path)
        source = ModelSource(path=str(tmp_path / model_subpath), repo_slug="acme/architecture", cleanup=Mock())
        api = DriftReviewerAPI(config=AppConfig(), provider=ScriptedProvider(responses),
                               reader=make_reader(), writer_factory=Mock())

        with patch("drift_reviewer.utils.model_source.resolve_model_source", return_value=source):
            with pytest.raises(DriftReviewerError) as exc_info:
                await api.analyze(AnalyzeRequest(url=PR_URL, model_path=model_subpath, model_repo="acme/architecture"))

        assert exc_info.value.code == code
        source.cleanup.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_cleanup_runs_once_on_success(self, tmp_path):
        write_workspace(tmp_path)
        source = ModelSource(path=str(tmp_path / "model"), repo_slug="acme/architecture", cleanup=Mock())
        provider = ScriptedProvider([json.dumps(DEPENDENCIES), json.dumps(CLEAN)])
        api = DriftReviewerAPI(config=AppConfig(), provider=provider, reader=make_reader(), writer_factory=Mock())

        with patch("drift_reviewer.utils.model_source.resolve_model_source", return_value=source):
            result = await api.analyze(AnalyzeRequest(url=PR_URL, model_path="model", model_repo="acme/architecture"))

        assert not result.has_violations
        source.cleanup.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_clone_outliving_deadline_is_removed(self):
        """
        Given: A model repository clone slower than the run deadline
        When: The deadline fires during the clone
        Then: TIMEOUT is raised and the clone directory is removed once the clone finishes
        """
        clone_dirs = []

        def slow_clone(clone_url, target_dir, ref, token):
            clone_dirs.append(target_dir)
            time.sleep(0.5)

        api = DriftReviewerAPI(config=AppConfig(), provider=ScriptedProvider([]),
                               reader=make_reader(), writer_factory=Mock())

        with patch("drift_reviewer.utils.model_source.clone_repository", side_effect=slow_clone):
            with pytest.raises(DriftReviewerError) as exc_info:
                await api.analyze(AnalyzeRequest(
                    url=PR_URL, model_path="model", model_repo="acme/architecture", run_timeout_seconds=0.1,
                ))
            await asyncio.sleep(1)

        assert exc_info.value.code == ErrorCode.TIMEOUT
        assert len(clone_dirs) == 1
        assert not os.path.exists(clone_dirs[0])


class TestModelQueries:
    """Tests for the model inspection operations of DriftReviewerAPI."""

    def make_api(self):
        return DriftReviewerAPI(config=AppConfig(), provider=ScriptedProvider([]),
                                reader=make_reader(), writer_factory=Mock())

    @pytest.mark.asyncio
    async def test_list_components(self, tmp_path):
        model_dir = write_workspace(tmp_path)

        components = await self.make_api().list_components(str(model_dir))

        assert {c.id for c in components} == {"shop.orders", "shop.billing", "shop.worker", "shop.legacy"}

    @pytest.mark.asyncio
    async def test_validate_model_reports_unlinked_components(self, tmp_path):
        """
        Given: A model where only one component links to a repository
        When: The model is validated
        Then: Linked and unlinked counts are reported and the model has issues
        """
        model_dir = write_workspace(tmp_path)

        report = await self.make_api().validate_model(str(model_dir))

        assert (report.total, report.linked, report.unlinked) == (4, 1, 3)
        assert report.has_issues
        by_id = {c["id"]: c for c in report.components}
        assert by_id["shop.orders"] == {
            "id": "shop.orders", "title": "Orders", "kind": "service",
            "repository": "https://github.com/acme/orders",
        }
        assert by_id["shop.billing"]["repository"] is None

    @pytest.mark.asyncio
    async def test_validate_fully_linked_model(self, tmp_path):
        (tmp_path / "likec4.json").write_text(json.dumps({
            "elements": {"api": {"kind": "service", "title": "API", "links": ["https://github.com/acme/api"]}},
            "relations": [],
        }))

        report = await self.make_api().validate_model(str(tmp_path))

        assert (report.total, report.linked, report.unlinked) == (1, 1, 0)
        assert not report.has_issues

    @pytest.mark.asyncio
    async def test_validate_missing_model(self, tmp_path):
        with pytest.raises(DriftReviewerError) as exc_info:
            await self.make_api().validate_model(str(tmp_path / "missing"))

        assert exc_info.value.code == ErrorCode.IO_FILE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_connections_for_repository(self, tmp_path):
        model_dir = write_workspace(tmp_path)

        results = await self.make_api().connections(str(model_dir), "https://github.com/ACME/orders.git")

        assert len(results) == 1
        connections = results[0]
        assert connections.component.id == "shop.orders"
        assert [c.id for c in connections.dependencies] == ["shop.legacy"]
        assert connections.dependents == []
        assert connections.to_dict()["relationships"] == [
            {"target_id": "shop.legacy", "target_name": "Legacy", "kind": None, "title": "reads"},
        ]

    @pytest.mark.asyncio
    async def test_connections_without_matching_component(self, tmp_path):
        model_dir = write_workspace(tmp_path)

        assert await self.make_api().connections(str(model_dir), "https://github.com/acme/payments") == []
