"""
Unit tests for model patching, model formats and the validation sandbox.
"""

import os
import pytest
from pathlib import Path

from drift_reviewer.errors import AdapterError, DriftReviewerError, ErrorCode, ToolingUnavailableError
from drift_reviewer.models.architecture import (
    ArchitecturalComponent,
    ComponentIndex,
    ModelRelationship,
    StructuredRelationship,
)
from drift_reviewer.models.patch import DslValidationResult
from drift_reviewer.patching import (
    DeterministicGeneration,
    LikeC4DslValidator,
    LikeC4Format,
    ModelPatcher,
    StructurizrDslValidator,
    StructurizrFormat,
    create_patcher,
    deterministic_insert,
    quick_validate_patch,
    temp_workspace_copy,
)
from drift_reviewer.patching.formats import clean_description, discover_target_file
from drift_reviewer.patching.patcher import ALREADY_EXISTS, ALREADY_PROPOSED, find_insert_index


LIKEC4_SOURCE = """specification {
  element service
}
model {
  a = service 'A'
  b = service 'B'
  c = service 'C'
  a -> b 'calls'
}
views {
  view index {
    include *
  }
}
"""


class StubValidator:
    """Validator returning a fixed result and recording the content it saw"""

    def __init__(self, result):
        self.result = result
        self.calls = []

    async def validate(self, workspace_path, target_file, content):
        self.calls.append(content)
        return self.result


class FakePatchProvider:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = 0

    async def patch_model(self, content, new_lines, format_id):
        self.calls += 1
        if self.error:
            raise self.error
        return self.response(content, new_lines) if callable(self.response) else self.response


def make_index(*ids):
    return ComponentIndex([ArchitecturalComponent(id=i, name=i.upper(), type="service") for i in ids])


@pytest.fixture
def likec4_workspace(tmp_path):
    (tmp_path / "model.c4").write_text(LIKEC4_SOURCE)
    return tmp_path


def likec4_format(result=None):
    patch_format = LikeC4Format()
    patch_format.validator = StubValidator(result or DslValidationResult.ok())
    return patch_format


class TestRelationshipFiltering:
    """Unit tests for ModelPatcher.filter_relationships."""

    def test_duplicate_new_and_unknown(self):
        """
        Given: A -> B already in the model, proposals A -> B, A -> C and X -> B
        When: Relationships are filtered
        Then: Only A -> C remains; the others are skipped with reasons
        """
        patcher = ModelPatcher(likec4_format())
        unique, skipped = patcher.filter_relationships(
            [StructuredRelationship("a", "b", "calls"),
             StructuredRelationship("a", "c", "reads"),
             StructuredRelationship("x", "b", "calls")],
            [ModelRelationship("a", "b")],
            make_index("a", "b", "c"),
        )

        assert [(r.source, r.target) for r in unique] == [("a", "c")]
        reasons = {(s.source, s.target): s.reason for s in skipped}
        assert reasons[("a", "b")] == ALREADY_EXISTS
        assert reasons[("x", "b")] == "Unknown source component: x"

    def test_unknown_target_and_repeated_proposal(self):
        patcher = ModelPatcher(likec4_format())
        unique, skipped = patcher.filter_relationships(
            [StructuredRelationship("a", "c"), StructuredRelationship("a", "c"), StructuredRelationship("a", "z")],
            [],
            make_index("a", "b", "c"),
        )
        assert len(unique) == 1
        assert [s.reason for s in skipped] == [ALREADY_PROPOSED, "Unknown target component: z"]


class TestDeterministicInsert:
    """Unit tests for deterministic insertion."""

    def test_inserts_before_model_block_close(self):
        fmt = LikeC4Format()
        result = deterministic_insert(LIKEC4_SOURCE, ["  a -> c 'reads'"], fmt.is_model_block_line, "  ")
        lines = result.split("\n")

        close = lines.index("views {") - 1
        assert lines[close] == "}"
        assert lines[close - 1] == "  a -> c 'reads'"
        assert lines[close - 2] == ""
        assert lines[close - 3] == "  a -> b 'calls'"

    def test_nested_blocks_and_indent(self):
        content = "model {\n  shop = system {\n      api = service\n  }\n}\n"
        result = deterministic_insert(content, ["x -> y"], LikeC4Format().is_model_block_line, "  ")
        assert result == "model {\n  shop = system {\n      api = service\n  }\n\n  x -> y\n}\n"

    def test_blank_line_above_uses_default_indent(self):
        content = "model {\n\n}"
        result = deterministic_insert(content, ["x -> y"], LikeC4Format().is_model_block_line, "    ")
        assert result == "model {\n\n\n    x -> y\n}"

    def test_no_brace_appends(self):
        result = deterministic_insert("a -> b", ["  c -> d"], LikeC4Format().is_model_block_line, "  ")
        assert result == "a -> b\n  c -> d\n"

    def test_find_insert_index_without_model_block(self):
        lines = ["workspace {", "  x", "}", ""]
        assert find_insert_index(lines, lambda line: False) == 2
        assert find_insert_index(["plain"], lambda line: False) == -1


class TestQuickValidation:
    """Unit tests for quick_validate_patch."""

    def test_accepts_superset(self):
        patched = LIKEC4_SOURCE.replace("  a -> b 'calls'\n", "  a -> b 'calls'\n  a -> c 'reads'\n")
        assert quick_validate_patch(LIKEC4_SOURCE, patched, ["  a -> c 'reads'"])

    def test_rejects_dropped_original_line(self):
        patched = LIKEC4_SOURCE.replace("  c = service 'C'\n", "")
        assert not quick_validate_patch(LIKEC4_SOURCE, patched, [])

    def test_rejects_missing_insert(self):
        assert not quick_validate_patch(LIKEC4_SOURCE, LIKEC4_SOURCE, ["a -> c"])

    def test_rejects_unbalanced_braces(self):
        assert not quick_validate_patch(LIKEC4_SOURCE, LIKEC4_SOURCE + "{\n", [])


class TestFormats:
    """Unit tests for LikeC4 and Structurizr formats."""

    def test_clean_description(self):
        assert clean_description("it's   a\nmulti line", "'") == "its a multi line"

    def test_likec4_lines_use_known_kinds_only(self):
        lines = LikeC4Format().generate_lines(
            [StructuredRelationship("a", "c", "reads", kind="https"),
             StructuredRelationship("a", "b", "uses", kind="grpc")],
            [ModelRelationship("x", "y", kind="https")],
        )
        assert lines == ["  a -[https]-> c 'reads'", "  a -> b 'uses'"]

    def test_structurizr_lines(self):
        lines = StructurizrFormat().generate_lines(
            [StructuredRelationship("api", "db", 'Reads "orders"', kind="JDBC"),
             StructuredRelationship("api", "cache", "Caches", kind="Redis")],
            [ModelRelationship("api", "queue", kind="JDBC")],
        )
        assert lines == ['        api -> db "Reads orders" "JDBC"', '        api -> cache "Caches"']

    def test_discover_prefers_model_with_relationships(self, tmp_path):
        (tmp_path / "a.c4").write_text("specification {\n}\n")
        (tmp_path / "b.c4").write_text("model {\n  x = service\n}\n")
        (tmp_path / "c.c4").write_text("model {\n  x -> y\n}\n")
        assert discover_target_file(str(tmp_path), ".c4", LikeC4Format().is_model_block_line) == \
            str((tmp_path / "c.c4").resolve())

    def test_discover_falls_back(self, tmp_path):
        (tmp_path / "a.c4").write_text("specification {\n}\n")
        (tmp_path / "b.c4").write_text("model {\n}\n")
        assert LikeC4Format().find_target_file(str(tmp_path)).endswith("b.c4")
        (tmp_path / "b.c4").write_text("views {\n}\n")
        assert LikeC4Format().find_target_file(str(tmp_path)).endswith("a.c4")

    def test_discover_direct_file_and_empty_dir(self, tmp_path):
        model = tmp_path / "workspace.dsl"
        model.write_text("workspace {\n}\n")
        assert StructurizrFormat().find_target_file(str(model)) == str(model.resolve())
        empty = tmp_path / "empty"
        empty.mkdir()
        assert LikeC4Format().find_target_file(str(empty)) is None

    def test_structurizr_prefers_workspace_dsl(self, tmp_path):
        (tmp_path / "a.dsl").write_text("model {\n  a -> b\n}\n")
        (tmp_path / "workspace.dsl").write_text("workspace {\n  model {\n    a -> b\n  }\n}\n")
        assert StructurizrFormat().find_target_file(str(tmp_path)).endswith("workspace.dsl")


class TestSandbox:
    """Unit tests for the validation sandbox."""

    def test_temp_workspace_copy(self, likec4_workspace):
        (likec4_workspace / ".git").mkdir()
        (likec4_workspace / ".git" / "HEAD").write_text("ref")
        target = likec4_workspace / "model.c4"

        with temp_workspace_copy(str(likec4_workspace), str(target), "model {\n}\n") as (tmp_target, tmp_dir):
            assert Path(tmp_target).read_text() == "model {\n}\n"
            assert not (Path(tmp_dir) / ".git").exists()
            assert Path(tmp_dir).name.startswith("drift-reviewer-validate-")

        assert not os.path.exists(tmp_dir)
        assert target.read_text() == LIKEC4_SOURCE

    def test_temp_workspace_copy_rejects_outside_target(self, likec4_workspace, tmp_path_factory):
        outside = tmp_path_factory.mktemp("other") / "x.c4"
        with pytest.raises(ValueError):
            with temp_workspace_copy(str(likec4_workspace), str(outside), ""):
                pass

    @pytest.mark.asyncio
    async def test_likec4_validator_reports_errors(self, likec4_workspace):
        seen = []

        def runner(workspace_dir, config):
            seen.append(Path(workspace_dir, "model.c4").read_text())
            return ["model.c4:5 unknown element 'x'"]

        validator = LikeC4DslValidator(runner=runner)
        result = await validator.validate(str(likec4_workspace), str(likec4_workspace / "model.c4"), "model {\n}\n")

        assert not result.accepted
        assert result.errors == ["model.c4:5 unknown element 'x'"]
        assert seen == ["model {\n}\n"]

    @pytest.mark.asyncio
    async def test_likec4_validator_error_is_skipped(self, likec4_workspace):
        def runner(workspace_dir, config):
            raise ToolingUnavailableError("likec4 missing", "likec4")

        result = await LikeC4DslValidator(runner=runner).validate(
            str(likec4_workspace), str(likec4_workspace / "model.c4"), LIKEC4_SOURCE
        )
        assert result.skipped
        assert result.accepted

    @pytest.mark.asyncio
    async def test_structurizr_validator_outcomes(self, tmp_path):
        (tmp_path / "workspace.dsl").write_text("workspace {\n}\n")
        target = str(tmp_path / "workspace.dsl")

        def parse_error(path, config):
            raise AdapterError("export failed", ErrorCode.MODEL_LOAD_ERROR, "structurizr",
                               context={"errors": ["line 2: unexpected token"]})

        def missing_cli(path, config):
            raise ToolingUnavailableError("docker missing", "structurizr")

        def ok(path, config):
            return {"model": {}}

        failed = await StructurizrDslValidator(exporter=parse_error).validate(str(tmp_path), target, "x")
        assert failed.errors == ["line 2: unexpected token"]
        assert not failed.accepted

        unavailable = await StructurizrDslValidator(exporter=missing_cli).validate(str(tmp_path), target, "x")
        assert unavailable.skipped

        valid = await StructurizrDslValidator(exporter=ok).validate(str(tmp_path), target, "x")
        assert valid.valid


class TestModelPatcher:
    """Unit tests for ModelPatcher.patch."""

    @pytest.mark.asyncio
    async def test_deterministic_patch(self, likec4_workspace):
        """
        Given: A -> B in the model and proposals A -> B, A -> C, X -> B
        When: The model is patched without a completion provider
        Then: Only A -> C is inserted and the two others are reported as skipped
        """
        patch_format = likec4_format()
        patcher = ModelPatcher(patch_format)

        result = await patcher.patch(
            str(likec4_workspace),
            [StructuredRelationship("a", "b", "calls"),
             StructuredRelationship("a", "c", "reads"),
             StructuredRelationship("x", "b", "calls")],
            [ModelRelationship("a", "b")],
            make_index("a", "b", "c"),
        )

        assert result is not None
        assert result.inserted_lines == ["  a -> c 'reads'"]
        assert "  a -> c 'reads'" in result.content
        assert len(result.skipped) == 2
        assert result.file_path.endswith("model.c4")
        assert (likec4_workspace / "model.c4").read_text() == LIKEC4_SOURCE

    @pytest.mark.asyncio
    async def test_nothing_new_returns_none(self, likec4_workspace):
        patcher = ModelPatcher(likec4_format())
        result = await patcher.patch(
            str(likec4_workspace), [StructuredRelationship("a", "b")], [ModelRelationship("a", "b")],
            make_index("a", "b"),
        )
        assert result is None

    @pytest.mark.asyncio
    async def test_no_target_file_returns_none(self, tmp_path):
        patcher = ModelPatcher(likec4_format())
        result = await patcher.patch(str(tmp_path), [StructuredRelationship("a", "b")], [], make_index("a", "b"))
        assert result is None

    @pytest.mark.asyncio
    async def test_throwing_validator_still_produces_patch(self, likec4_workspace):
        """
        Given: A validator whose tooling raises
        When: The model is patched
        Then: The deterministic candidate is accepted provisionally
        """
        def runner(workspace_dir, config):
            raise RuntimeError("likec4 crashed")

        patch_format = LikeC4Format()
        patch_format.validator = LikeC4DslValidator(runner=runner)
        result = await ModelPatcher(patch_format).patch(
            str(likec4_workspace), [StructuredRelationship("a", "c", "reads")], [], make_index("a", "c"),
        )
        assert result is not None

    @pytest.mark.asyncio
    async def test_invalid_without_ai_returns_none(self, likec4_workspace):
        patch_format = likec4_format(DslValidationResult.failed(["syntax error"]))
        result = await ModelPatcher(patch_format, provider=None).patch(
            str(likec4_workspace), [StructuredRelationship("a", "c")], [], make_index("a", "c"),
        )
        assert result is None
        assert len(patch_format.validator.calls) == 1

    @pytest.mark.asyncio
    async def test_ai_candidate_preferred(self, likec4_workspace):
        def rewrite(content, new_lines):
            return content.replace("  a -> b 'calls'\n", "  a -> b 'calls'\n" + "\n".join(new_lines) + "\n")

        provider = FakePatchProvider(response=rewrite)
        patch_format = likec4_format()
        result = await ModelPatcher(patch_format, provider=provider).patch(
            str(likec4_workspace), [StructuredRelationship("a", "c", "reads")], [], make_index("a", "c"),
        )

        assert provider.calls == 1
        assert "  a -> b 'calls'\n  a -> c 'reads'\n}" in result.content
        assert len(patch_format.validator.calls) == 1

    @pytest.mark.asyncio
    async def test_ai_failures_fall_back_to_deterministic(self, likec4_workspace):
        for provider in (FakePatchProvider(error=RuntimeError("overloaded")),
                         FakePatchProvider(response="model {\n}\n"),
                         FakePatchProvider(response="")):
            patch_format = likec4_format()
            result = await ModelPatcher(patch_format, provider=provider).patch(
                str(likec4_workspace), [StructuredRelationship("a", "c", "reads")], [], make_index("a", "c"),
            )
            assert result is not None
            assert result.content == deterministic_insert(
                LIKEC4_SOURCE, ["  a -> c 'reads'"], patch_format.is_model_block_line, "  "
            )

    @pytest.mark.asyncio
    async def test_invalid_ai_candidate_then_deterministic(self, likec4_workspace):
        class SequenceValidator:
            def __init__(self):
                self.results = [DslValidationResult.failed(["bad"]), DslValidationResult.ok()]

            async def validate(self, workspace_path, target_file, content):
                return self.results.pop(0)

        def rewrite(content, new_lines):
            return content + "\n".join(new_lines)

        patch_format = LikeC4Format()
        patch_format.validator = SequenceValidator()
        result = await ModelPatcher(patch_format, provider=FakePatchProvider(response=rewrite)).patch(
            str(likec4_workspace), [StructuredRelationship("a", "c", "reads")], [], make_index("a", "c"),
        )
        assert result.content.endswith("}\n")

    def test_create_patcher(self):
        assert isinstance(create_patcher("structurizr").format, StructurizrFormat)
        patcher = create_patcher("likec4")
        assert [tier.name for tier in patcher.tiers] == ["ai-assisted", "deterministic"]
        with pytest.raises(DriftReviewerError):
            create_patcher("mermaid")

    @pytest.mark.asyncio
    async def test_custom_tiers(self, likec4_workspace):
        patcher = ModelPatcher(likec4_format(), tiers=[DeterministicGeneration()])
        result = await patcher.patch(
            str(likec4_workspace), [StructuredRelationship("a", "c")], [], make_index("a", "c"),
        )
        assert result is not None
