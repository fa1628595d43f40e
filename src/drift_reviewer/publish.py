"""
Publisher

Opens or updates the model update PR and upserts the analysis comment
on the source PR.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .adapters.base import AdapterMetadata
from .formatting.github import COMMENT_MARKER, GitHubCommentFormatter, analysis_has_findings
from .github.urls import split_repo_slug
from .github.writer import ChangeRequestResult, FileChange, GitHubWriter
from .models.analysis import DriftAnalysisResult
from .models.change_request import ChangeRequestRef
from .models.patch import PatchResult


logger = logging.getLogger(__name__)

WriterFactory = Callable[[str, str], GitHubWriter]


def model_pr_branch_name(pr_number: int) -> str:
    return f"drift-reviewer/pr-{pr_number}"


@dataclass
class PublishOptions:
    """What to publish"""
    open_pr: bool = False
    dry_run: bool = False
    draft: bool = True
    model_repo: Optional[str] = None  # owner/repo
    comment: bool = False


@dataclass
class PublishContext:
    """Extra details shown in the analysis comment"""
    selected_component_id: Optional[str] = None
    candidate_components: List[Dict] = field(default_factory=list)
    model_info: Optional[Dict] = None


@dataclass
class PublishResult:
    generated_change_request: Optional[ChangeRequestResult] = None
    comment_posted: bool = False
    comment_deleted: bool = False


class Publisher:
    """
    Publishes analysis output to GitHub.

    Args:
        writer_factory: Builds a writer for ``(owner, repo)``
        formatter: Comment formatter
    """

    def __init__(self, writer_factory: WriterFactory, formatter: Optional[GitHubCommentFormatter] = None):
        self.writer_factory = writer_factory
        self.formatter = formatter or GitHubCommentFormatter()

    async def publish(
        self,
        ref: ChangeRequestRef,
        analysis: DriftAnalysisResult,
        patch: Optional[PatchResult],
        metadata: AdapterMetadata,
        options: PublishOptions,
        context: Optional[PublishContext] = None,
    ) -> PublishResult:
        """
        Publish the analysis.

        Model PR failures propagate. Closing a stale model PR and
        commenting only log a warning when they fail.
        """
        context = context or PublishContext()
        result = PublishResult()

        if options.model_repo:
            owner, repo = split_repo_slug(options.model_repo)
        else:
            owner, repo = ref.platform_id.owner, ref.platform_id.repo

        if options.open_pr and options.dry_run:
            logger.info("Dry run: skipped PR creation")
        elif options.open_pr:
            writer = self.writer_factory(owner, repo)
            if patch is not None:
                result.generated_change_request = await self._open_model_pr(
                    writer, ref, analysis, patch, metadata, options
                )
            else:
                logger.warning("No validated model patch; skipping model PR creation")

            if not analysis.has_violations and result.generated_change_request is None:
                try:
                    await asyncio.to_thread(writer.close_change_request, model_pr_branch_name(analysis.metadata.number))
                except Exception as e:
                    logger.warning(f"Could not close stale model PR: {e}")

        if options.comment:
            await self._publish_comment(ref, analysis, context, result)

        return result

    async def _open_model_pr(
        self,
        writer: GitHubWriter,
        ref: ChangeRequestRef,
        analysis: DriftAnalysisResult,
        patch: PatchResult,
        metadata: AdapterMetadata,
        options: PublishOptions,
    ) -> ChangeRequestResult:
        number = analysis.metadata.number
        title = metadata.render_pr_title(ref.platform_id.slug, number, analysis.metadata.title)
        body = self.formatter.format_patch_pr_body(
            pr_number=number,
            pr_title=analysis.metadata.title,
            pr_url=ref.url,
            summary=analysis.summary,
            inserted_lines=patch.inserted_lines,
            skipped=patch.skipped,
            removals=analysis.model_updates.remove if analysis.model_updates else None,
        )
        pr = await asyncio.to_thread(
            writer.create_or_update_change_request,
            model_pr_branch_name(number),
            title,
            body,
            [FileChange(path=patch.file_path, content=patch.content)],
            draft=options.draft,
        )
        logger.info(f"Model PR {pr.action}: {pr.url}")
        return pr

    async def publish_error(self, ref: ChangeRequestRef, error: BaseException) -> bool:
        """Upsert a failure comment on the source PR; returns whether it was posted"""
        try:
            writer = self.writer_factory(ref.platform_id.owner, ref.platform_id.repo)
            body = self.formatter.format_error_comment(error)
            await asyncio.to_thread(writer.comment_on_change_request, ref, body, COMMENT_MARKER)
            return True
        except Exception as e:
            logger.warning(f"Could not post error comment: {e}")
            return False

    async def _publish_comment(
        self,
        ref: ChangeRequestRef,
        analysis: DriftAnalysisResult,
        context: PublishContext,
        result: PublishResult,
    ) -> None:
        try:
            writer = self.writer_factory(ref.platform_id.owner, ref.platform_id.repo)
            if analysis_has_findings(analysis):
                body = self.formatter.format_analysis_comment(
                    analysis,
                    selected_component_id=context.selected_component_id,
                    candidate_components=context.candidate_components,
                    generated_change_request=(
                        result.generated_change_request.to_dict() if result.generated_change_request else None
                    ),
                    model_info=context.model_info,
                )
                await asyncio.to_thread(writer.comment_on_change_request, ref, body, COMMENT_MARKER)
                result.comment_posted = True
            else:
                await asyncio.to_thread(writer.delete_comment, ref, COMMENT_MARKER)
                result.comment_deleted = True
        except Exception as e:
            logger.warning(f"Could not publish PR comment: {e}")
