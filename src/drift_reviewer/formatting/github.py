"""
GitHub Comment Formatter

Formats drift analysis results as GitHub PR comments and model update
PR bodies.
"""

import logging
from typing import Dict, List, Optional, Sequence

from ..errors import ApiError, ConfigurationError, ErrorCode
from ..models.analysis import DriftAnalysisResult
from ..models.patch import SkippedRelationship


logger = logging.getLogger(__name__)

COMMENT_MARKER = "<!-- drift-reviewer -->"
FOOTER = "*Automated by drift-reviewer*"


def analysis_has_findings(result: DriftAnalysisResult) -> bool:
    """True when there are violations or suggested model additions or removals"""
    if result.has_violations:
        return True
    updates = result.model_updates
    return bool(updates and (updates.add or updates.remove))


class GitHubCommentFormatter:
    """
    Formats analysis output for GitHub.

    Every analysis comment starts with ``COMMENT_MARKER`` so a later run
    can find and replace it.
    """

    def __init__(self, model_display_name: str = "architecture"):
        """
        Args:
            model_display_name: Model format name used in headings (e.g. "LikeC4")
        """
        self.model_display_name = model_display_name
        self.max_comment_length = 65536  # GitHub's comment limit

    def format_analysis_comment(
        self,
        result: DriftAnalysisResult,
        selected_component_id: Optional[str] = None,
        candidate_components: Optional[List[Dict]] = None,
        generated_change_request: Optional[Dict] = None,
        model_info: Optional[Dict] = None,
    ) -> str:
        """
        Render the analysis comment.

        Args:
            result: Drift analysis result
            selected_component_id: Component picked among several candidates
            candidate_components: ``{id, name, type}`` dicts of all candidates
            generated_change_request: ``{url, number, action, branch}`` of the model PR
            model_info: ``{provider, fast_model, advanced_model}``
        """
        lines = [COMMENT_MARKER, "## Architectural Drift Analysis", ""]
        lines.append(f"**Component**: `{result.component.id}` ({result.component.name})")

        if selected_component_id and candidate_components and len(candidate_components) > 1:
            lines += ["", "<details>", f"<summary>Selected from {len(candidate_components)} candidates</summary>", ""]
            for candidate in candidate_components:
                checked = "x" if candidate["id"] == selected_component_id else " "
                lines.append(f"- [{checked}] `{candidate['id']}` ({candidate['name']})")
            lines += ["", "</details>"]
        lines.append("")

        status = ":warning: Issues detected" if result.has_violations else ":white_check_mark: No drift found"
        lines.append(f"**Status**: {status}")
        lines.append("")

        if result.has_violations:
            lines += self._format_violations(result)
        else:
            lines += ["### No Issues Found", "", "No architectural drift found in this change request.", ""]

        if result.improvements:
            lines += ["### Improvements", ""]
            lines += [f"- {item}" for item in result.improvements]
            lines.append("")

        if result.warnings:
            lines += ["### Warnings", ""]
            lines += [f"- {item}" for item in result.warnings]
            lines.append("")

        updates = result.model_updates
        if updates and (updates.add or updates.remove):
            lines += [f"### Suggested {self.model_display_name} Changes", ""]
            if updates.add:
                lines.append("**Add:**")
                lines += [f"- {item}" for item in updates.add]
                lines.append("")
            if updates.remove:
                lines.append("**Remove:**")
                lines += [f"- {item}" for item in updates.remove]
                lines.append("")

        if generated_change_request:
            action = generated_change_request["action"]
            lines += [
                f"### Model Update {action.capitalize()}",
                "",
                f"A change request was {action} to update the architecture model:",
                generated_change_request["url"],
                "",
            ]

        if result.summary:
            lines += ["### Overview", "", result.summary, ""]

        if model_info:
            lines += [
                "<details>",
                "<summary>Analysis details</summary>",
                "",
                "| | |",
                "|---|---|",
                f"| **AI Provider** | {model_info['provider']} |",
                f"| **Fast model** | `{model_info['fast_model']}` |",
                f"| **Advanced model** | `{model_info['advanced_model']}` |",
                "",
                "</details>",
                "",
            ]

        lines += ["---", FOOTER]
        return self._truncate_comment("\n".join(lines))

    def _format_violations(self, result: DriftAnalysisResult) -> List[str]:
        counts = result.severity_counts()
        breakdown = ", ".join(f"{counts[s]} {s}" for s in ("high", "medium", "low") if counts[s])
        lines = [f"### Detected Issues ({len(result.violations)})", ""]
        if breakdown:
            lines += [f"Severity: {breakdown}", ""]

        order = {"high": 0, "medium": 1, "low": 2}
        for violation in sorted(result.violations, key=lambda v: order[v.severity]):
            lines.append(f"- **[{violation.severity.upper()}]** {violation.description}")
            if violation.file:
                location = f"{violation.file}:{violation.line}" if violation.line else violation.file
                lines.append(f"  - Source: `{location}`")
            if violation.suggestion:
                lines.append(f"  - Recommendation: {violation.suggestion}")

        lines += [
            "",
            "**How to Resolve:**",
            "Adjust the architecture model to:",
            "- Include missing relationships between components",
            "- Revise component boundaries if code has been relocated",
            "- Record intentional architectural changes",
            "",
        ]
        return lines

    def format_patch_pr_body(
        self,
        pr_number: int,
        pr_title: str,
        pr_url: str,
        summary: str,
        inserted_lines: Sequence[str],
        skipped: Sequence[SkippedRelationship] = (),
        removals: Optional[Sequence[str]] = None,
    ) -> str:
        """Body of the model update PR opened for source PR ``pr_number``"""
        lines = [
            "## Architecture Model Update",
            "",
            f"Automated update from the drift analysis of [PR #{pr_number}: {pr_title}]({pr_url}).",
            "",
            "### Summary",
            "",
            summary,
            "",
            "### Added Relationships",
            "",
            "```",
            *[line.strip() for line in inserted_lines],
            "```",
            "",
        ]

        if skipped:
            lines += ["### Skipped Relationships", ""]
            lines += [f"- `{s.source} -> {s.target}`: {s.reason}" for s in skipped]
            lines.append("")

        if removals:
            lines += [
                "### Suggested Removals",
                "",
                "These were not applied automatically; review them manually:",
                "",
            ]
            lines += [f"- {item}" for item in removals]
            lines.append("")

        lines += ["---", FOOTER]
        return "\n".join(lines)

    def format_error_comment(self, error: BaseException) -> str:
        """Comment posted when the analysis itself fails"""
        if isinstance(error, ApiError) and error.code == ErrorCode.RATE_LIMITED:
            detail = ("The AI provider rate limit was hit. This is usually temporary; "
                      "re-run the check in a few minutes.")
        elif isinstance(error, ApiError) and error.code == ErrorCode.TIMEOUT:
            detail = "The AI provider request timed out. This can happen with large PRs; try re-running."
        elif isinstance(error, ConfigurationError):
            detail = "A configuration issue was detected. Verify that API keys and tokens are set."
        else:
            detail = "An unexpected error happened during analysis. Check the workflow logs for details."

        return "\n".join([
            COMMENT_MARKER,
            "## Architectural Drift Analysis",
            "",
            ":x: **Analysis unsuccessful**",
            "",
            detail,
            "",
            "---",
            FOOTER,
        ])

    def _truncate_comment(self, comment: str) -> str:
        """Truncate a comment to GitHub's length limit at a line break."""
        if len(comment) <= self.max_comment_length:
            return comment

        truncate_at = self.max_comment_length - 200
        truncated = comment[:truncate_at]
        last_newline = truncated.rfind('\n')
        if last_newline > truncate_at - 500:
            truncated = truncated[:last_newline]

        logger.warning(f"Analysis comment truncated from {len(comment)} characters")
        return truncated + "\n\n---\n*Comment truncated due to length limit.*"
