"""
Drift Reviewer API

Main interface that runs one pull request through the analysis pipeline:
model loading, component resolution, diff preprocessing, dependency
extraction, drift analysis, model patching and publication.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .adapters import ArchitectureAdapter, create_adapter
from .config import AppConfig, get_config
from .diff import DiffPreprocessor
from .formatting import GitHubCommentFormatter
from .errors import DriftReviewerError, ErrorCode
from .github import GitHubClient, GitHubReader, GitHubWriter
from .llm import CompletionProvider, DriftAnalysisPromptData, create_provider
from .models.analysis import ChangeRequestMetadata, DependencyExtractionResult, DriftAnalysisResult
from .models.architecture import EMPTY_COMPONENT, ArchitecturalComponent, ComponentRelationship
from .models.change_request import BranchRef, ChangeRequestData, ChangeRequestRef, ChangeRequestStats, Commit
from .models.patch import PatchResult
from .patching import create_patcher
from .publish import PublishContext, PublishOptions, PublishResult, Publisher
from .utils.model_source import ModelSource, acquire_model_source


logger = logging.getLogger(__name__)


@dataclass
class AnalyzeRequest:
    """Request for a drift analysis run."""
    url: str
    model_path: str
    model_repo: Optional[str] = None
    model_ref: str = "main"
    model_format: Optional[str] = None
    patch_model: bool = False
    open_pr: bool = False
    comment: bool = False
    dry_run: bool = False
    draft: bool = True
    skip_file_filtering: bool = False
    run_timeout_seconds: Optional[float] = None


@dataclass
class AnalyzeResult:
    """Result of a drift analysis run."""
    analysis: DriftAnalysisResult
    patch: Optional[PatchResult] = None
    selected_component_id: Optional[str] = None
    candidate_components: List[Dict] = field(default_factory=list)
    published: Optional[PublishResult] = None
    processing_time: float = 0.0

    @property
    def has_violations(self) -> bool:
        return self.analysis.has_violations


@dataclass
class ModelValidationResult:
    """Repository link coverage of a model's components."""
    components: List[Dict]
    linked: int
    unlinked: int

    @property
    def total(self) -> int:
        return len(self.components)

    @property
    def has_issues(self) -> bool:
        return self.unlinked > 0


@dataclass
class ComponentConnections:
    """Declared neighbourhood of one component."""
    component: ArchitecturalComponent
    dependencies: List[ArchitecturalComponent]
    dependents: List[ArchitecturalComponent]
    relationships: List[ComponentRelationship]

    def to_dict(self) -> Dict:
        return {
            "component": self.component.to_dict(),
            "dependencies": [c.to_dict() for c in self.dependencies],
            "dependents": [c.to_dict() for c in self.dependents],
            "relationships": [
                {"target_id": r.target.id, "target_name": r.target.name, "kind": r.kind, "title": r.title}
                for r in self.relationships
            ],
        }


class DriftReviewerAPI:
    """
    Main drift reviewer interface.

    Every collaborator can be injected; missing ones are built from the
    configuration on first use.

    Args:
        config: Application configuration (defaults to the process-wide one)
        provider: Completion provider
        reader: Pull request reader
        writer_factory: Builds a GitHubWriter for ``(owner, repo)``
        adapter: Architecture adapter (defaults to the request's model format)
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        provider: Optional[CompletionProvider] = None,
        reader: Optional[GitHubReader] = None,
        writer_factory: Optional[Callable[[str, str], GitHubWriter]] = None,
        adapter: Optional[ArchitectureAdapter] = None,
    ):
        self.config = config or get_config()
        self._provider = provider
        self._reader = reader
        self.writer_factory = writer_factory or self._default_writer
        self._adapter = adapter

    @property
    def provider(self) -> CompletionProvider:
        if self._provider is None:
            self._provider = create_provider(self.config.ai)
        return self._provider

    @property
    def reader(self) -> GitHubReader:
        if self._reader is None:
            self._reader = GitHubReader(self._client(self.config.github.token))
        return self._reader

    def _client(self, token: Optional[str]) -> GitHubClient:
        return GitHubClient(token, self.config.github.api_base_url, self.config.github.timeout_seconds)

    def _default_writer(self, owner: str, repo: str) -> GitHubWriter:
        token = self.config.github.model_repo_pr_token or self.config.github.token
        if not token:
            raise DriftReviewerError(
                "GitHub token is required for publishing",
                ErrorCode.MISSING_API_KEY,
                user_message="Set MODEL_REPO_PR_TOKEN or GITHUB_TOKEN to publish results.",
            )
        return GitHubWriter(self._client(token), owner, repo)

    async def analyze(self, request: AnalyzeRequest) -> AnalyzeResult:
        """
        Run the full pipeline for one pull request.

        Raises:
            DriftReviewerError: Any hard stage failure, or TIMEOUT when the
                run deadline passes
        """
        try:
            return await self._run_with_deadline(request)
        except DriftReviewerError as e:
            logger.error(f"Drift analysis failed [{e.code.value}]: {e.message}")
            if request.comment and not request.dry_run and e.code != ErrorCode.INVALID_URL:
                await Publisher(self.writer_factory).publish_error(self.reader.parse_url(request.url), e)
            raise

    async def _run_with_deadline(self, request: AnalyzeRequest) -> AnalyzeResult:
        timeout = request.run_timeout_seconds or self.config.analysis.run_timeout_seconds
        if not timeout:
            return await self._run(request)

        try:
            return await asyncio.wait_for(self._run(request), timeout)
        except asyncio.TimeoutError:
            raise DriftReviewerError(
                f"Analysis of {request.url} did not finish within {timeout}s",
                ErrorCode.TIMEOUT,
                user_message="The analysis took too long and was stopped.",
                context={"url": request.url, "timeout_seconds": timeout},
                recoverable=True,
            )

    async def _run(self, request: AnalyzeRequest) -> AnalyzeResult:
        start_time = datetime.now()
        ref = self.reader.parse_url(request.url)
        model_format = request.model_format or self.config.analysis.model_format
        logger.info(f"Starting drift analysis of {ref.platform_id.slug}#{ref.number}")

        source = await acquire_model_source(
            request.model_path,
            request.model_repo,
            request.model_ref,
            self.config.github.model_repo_pr_token or self.config.github.token,
        )
        try:
            result = await self._run_stages(request, ref, model_format, source)
        finally:
            source.cleanup()

        result.processing_time = (datetime.now() - start_time).total_seconds()
        logger.info(f"Drift analysis completed in {result.processing_time:.2f}s")
        return result

    async def _run_stages(self, request: AnalyzeRequest, ref: ChangeRequestRef,
                          model_format: str, source: ModelSource) -> AnalyzeResult:
        # Load model
        adapter = self._adapter or create_adapter(model_format, self.config.validation)
        await asyncio.to_thread(adapter.load_from_path, source.path)

        # Resolve component(s)
        components = adapter.find_all_components_by_repository(ref.repository_url)
        if not components:
            logger.warning(f"No components found matching repository: {ref.repository_url}")
            for line in adapter.metadata.no_component_help:
                logger.info(line.replace("{{repoUrl}}", ref.repository_url))
            return AnalyzeResult(analysis=self._empty_result(ref))

        # Fetch diff and commits
        data = await self.reader.fetch_change_request(ref)
        commits = await self.reader.fetch_commits(ref)
        data.stats.commits = data.stats.commits or len(commits)
        DiffPreprocessor(
            max_files=self.config.analysis.max_files_per_diff,
            max_lines=self.config.analysis.max_lines_per_diff,
            skip_file_filtering=request.skip_file_filtering or self.config.analysis.skip_file_filtering,
        ).process(data)
        if data.was_truncated:
            logger.warning(data.truncation_reason)

        component, candidates = await self._select_component(components, data)
        selected_id = component.id

        # Extract dependencies
        dependency_changes = await self.provider.extract_dependencies(
            data.diff,
            Commit(
                sha=data.head.sha,
                message="; ".join(c.message for c in commits),
                author=data.author,
            ),
            ref,
            component,
        )
        logger.info(f"Extracted {len(dependency_changes.dependencies)} dependency change(s)")

        # Analyze drift
        analysis = await self.provider.analyze_drift(DriftAnalysisPromptData(
            change_request=self._metadata(ref, data, commits),
            component=component,
            dependency_changes=dependency_changes,
            dependencies=adapter.get_component_dependencies(component.id),
            dependents=adapter.get_component_dependents(component.id),
            relationships=adapter.get_component_relationships(component.id),
        ))
        logger.info(f"Analysis complete: {len(analysis.violations)} violation(s)")

        # Patch model
        patch = None
        if request.patch_model and analysis.proposed_relationships:
            patcher = create_patcher(model_format, self.provider, self.config.validation)
            patch = await patcher.patch(
                source.path,
                analysis.proposed_relationships,
                adapter.relationships,
                adapter.component_index,
            )
            if patch is None:
                logger.warning("Model patch could not be produced; skipping model update")

        result = AnalyzeResult(
            analysis=analysis,
            patch=patch,
            selected_component_id=selected_id,
            candidate_components=candidates,
        )

        # Publish
        if request.open_pr or request.comment:
            publisher = Publisher(self.writer_factory, GitHubCommentFormatter(adapter.metadata.display_name))
            result.published = await publisher.publish(
                ref,
                analysis,
                patch,
                adapter.metadata,
                PublishOptions(
                    open_pr=request.open_pr,
                    dry_run=request.dry_run,
                    draft=request.draft,
                    model_repo=request.model_repo if request.model_repo else source.repo_slug,
                    comment=request.comment,
                ),
                PublishContext(
                    selected_component_id=selected_id,
                    candidate_components=candidates,
                    model_info={
                        "provider": self.config.ai.provider,
                        "fast_model": self.config.ai.fast_model,
                        "advanced_model": self.config.ai.advanced_model,
                    },
                ),
            )

        return result

    async def _load_adapter(self, model_path: str, model_format: Optional[str]) -> ArchitectureAdapter:
        adapter = self._adapter or create_adapter(
            model_format or self.config.analysis.model_format, self.config.validation
        )
        await asyncio.to_thread(adapter.load_from_path, model_path)
        return adapter

    async def list_components(self, model_path: str,
                              model_format: Optional[str] = None) -> List[ArchitecturalComponent]:
        """Every component declared in the model"""
        adapter = await self._load_adapter(model_path, model_format)
        components = adapter.get_all_components()
        logger.info(f"Loaded {len(components)} component(s)")
        return components

    async def validate_model(self, model_path: str, model_format: Optional[str] = None) -> ModelValidationResult:
        """
        Report which components are linked to a repository.

        Components without a link can never be matched to a pull request, so
        any unlinked component counts as an issue.

        Raises:
            AdapterError: Model path missing or model invalid
        """
        adapter = await self._load_adapter(model_path, model_format)
        components = [
            {"id": c.id, "title": c.name, "kind": c.type, "repository": c.repository}
            for c in adapter.get_all_components()
        ]
        unlinked = sum(1 for c in components if not c["repository"])

        if unlinked:
            logger.warning(f"{unlinked} of {len(components)} component(s) are missing repository links")
            for line in adapter.metadata.no_component_help:
                logger.info(line.replace("{{repoUrl}}", "<repository url>"))
        elif components:
            logger.info("All components have repository links")

        return ModelValidationResult(components=components, linked=len(components) - unlinked, unlinked=unlinked)

    async def connections(self, model_path: str, repo: str,
                          model_format: Optional[str] = None) -> List[ComponentConnections]:
        """
        Declared dependencies, dependents and relationships of every
        component linked to ``repo``. Empty when no component matches.
        """
        adapter = await self._load_adapter(model_path, model_format)
        components = adapter.find_all_components_by_repository(repo)
        if not components:
            logger.warning(f"No components found for repository: {repo}")
            return []

        logger.info(f"Found {len(components)} component(s) for {repo}")
        return [
            ComponentConnections(
                component=component,
                dependencies=adapter.get_component_dependencies(component.id),
                dependents=adapter.get_component_dependents(component.id),
                relationships=adapter.get_component_relationships(component.id),
            )
            for component in components
        ]

    async def _select_component(self, components: List[ArchitecturalComponent], data: ChangeRequestData):
        """Returns the resolved component and the candidate summaries (empty for a single match)"""
        if len(components) == 1:
            return components[0], []

        candidates = [{"id": c.id, "name": c.name, "type": c.type} for c in components]
        component_id = await self.provider.select_component(components, data.files)
        for component in components:
            if component.id == component_id:
                logger.info(f"Selected component: {component.name} ({component.id})")
                return component, candidates

        logger.warning(f"Could not determine component, using first: {components[0].name}")
        return components[0], candidates

    def _metadata(self, ref: ChangeRequestRef, data: ChangeRequestData,
                  commits: List[Commit]) -> ChangeRequestMetadata:
        return ChangeRequestMetadata(
            number=data.number,
            title=data.title,
            description=data.body,
            repository=ref.platform_id.slug,
            author=data.author,
            base=data.base,
            head=data.head,
            stats=data.stats,
            commits=commits,
        )

    def _empty_result(self, ref: ChangeRequestRef) -> DriftAnalysisResult:
        return DriftAnalysisResult(
            has_violations=False,
            violations=[],
            summary=f"No components found matching repository: {ref.repository_url}",
            metadata=ChangeRequestMetadata(
                number=ref.number,
                title="",
                description="",
                repository=ref.platform_id.slug,
                author="",
                base=BranchRef(ref="", sha=""),
                head=BranchRef(ref="", sha=""),
                stats=ChangeRequestStats(),
            ),
            component=EMPTY_COMPONENT,
            dependency_changes=DependencyExtractionResult(),
        )
