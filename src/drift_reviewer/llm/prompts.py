"""
Prompt Builder

Builds the prompts for each analysis phase from ``{{variable}}``
templates and formats the model context sections they embed.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..errors import DriftReviewerError, ErrorCode
from ..models.analysis import ChangeRequestMetadata, DependencyExtractionResult
from ..models.architecture import ArchitecturalComponent, ComponentRelationship
from ..models.change_request import ChangeRequestFile, ChangeRequestRef, Commit


logger = logging.getLogger(__name__)

_VARIABLE = re.compile(r"\{\{([^}]+)\}\}")
MAX_LISTED_COMMITS = 10


@dataclass
class DriftAnalysisPromptData:
    """Everything the drift analysis prompt is built from"""
    change_request: ChangeRequestMetadata
    component: ArchitecturalComponent
    dependency_changes: DependencyExtractionResult
    dependencies: List[ArchitecturalComponent] = field(default_factory=list)
    dependents: List[ArchitecturalComponent] = field(default_factory=list)
    relationships: List[ComponentRelationship] = field(default_factory=list)


def extract_json(text: str) -> Optional[str]:
    """
    Return the first balanced JSON object embedded in ``text``.

    Braces inside string literals (including escaped quotes) are not
    counted. Returns None when no complete object is found.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if escaped:
            escaped = False
            continue
        if ch == "\\" and in_string:
            escaped = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def _resolve(variables: Dict[str, Any], path: str) -> Any:
    value: Any = variables
    for key in path.strip().split("."):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return None
    return value


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value)
    return str(value)


def render_template(template: str, variables: Dict[str, Any]) -> str:
    """Replace ``{{name}}`` and ``{{a.b}}`` placeholders; unknown names render empty"""
    return _VARIABLE.sub(lambda m: _format_value(_resolve(variables, m.group(1))), template)


# Section formatters

def format_allowed_dependencies(
    relationships: Sequence[ComponentRelationship],
    dependencies: Sequence[ArchitecturalComponent] = (),
) -> str:
    """
    Declared outgoing dependencies, one line per target.

    Relationships to the same target are merged and their kinds listed
    under ``[via: ...]``; a relationship without a kind shows as
    ``unknown``.
    """
    if relationships:
        grouped: Dict[str, Tuple[ArchitecturalComponent, List[str]]] = {}
        for rel in relationships:
            _, kinds = grouped.setdefault(rel.target.id, (rel.target, []))
            kinds.append(rel.kind or "unknown")
        return "\n".join(
            f"  - {target.name} ({target.id}) [via: {', '.join(kinds)}]"
            for target, kinds in grouped.values()
        )
    if dependencies:
        return "\n".join(f"  - {d.name} ({d.type})" for d in dependencies)
    return "  - No declared dependencies"


def format_dependents(dependents: Sequence[ArchitecturalComponent]) -> str:
    if not dependents:
        return "  - No dependents"
    return "\n".join(f"  - {d.name} ({d.type})" for d in dependents)


def format_dependency_changes(result: DependencyExtractionResult) -> str:
    """Extracted dependency changes bucketed as ADDED, MODIFIED and REMOVED"""
    if not result.dependencies:
        return "No architectural dependency changes detected across all commits in this PR."

    section = "Aggregated dependency changes across all commits:\n\n"
    for change_type in ("added", "modified", "removed"):
        items = [d for d in result.dependencies if d.type == change_type]
        if not items:
            continue
        section += f"**{change_type.upper()} Dependencies:**\n"
        section += "\n".join(f"- {d.dependency} ({d.file})\n  {d.description}" for d in items)
        section += "\n\n"
    return section


def format_commits(commits: Sequence[Commit]) -> Tuple[str, str]:
    """
    Returns:
        (listing of the first ten commits, note about the rest or "")
    """
    section = "\n".join(
        f"  - {c.short_sha}: {c.subject} ({c.author})" for c in commits[:MAX_LISTED_COMMITS]
    )
    remaining = len(commits) - MAX_LISTED_COMMITS
    note = f"\n  ... and {remaining} more commits" if remaining > 0 else ""
    return section, note


def format_component_context(component: ArchitecturalComponent) -> str:
    lines = [f"Component: {component.name} ({component.id})", f"Type: {component.type}"]
    if component.technology:
        lines.append(f"Technology: {component.technology}")
    return "\n".join(lines)


def format_component_list(components: Sequence[ArchitecturalComponent]) -> str:
    entries = []
    for i, c in enumerate(components, 1):
        entry = [f"{i}. **{c.id}**", f"   - Name: {c.name}", f"   - Type: {c.type}"]
        if c.technology:
            entry.append(f"   - Technology: {c.technology}")
        if c.description:
            entry.append(f"   - Description: {c.description}")
        entries.append("\n".join(entry))
    return "\n\n".join(entries)


class PromptBuilder:
    """
    Builds prompts for every analysis phase.

    Templates live in ``self.templates`` keyed by phase and are rendered
    with ``render_template``.
    """

    def __init__(self):
        self.templates = self._load_templates()

    def build_component_selection_prompt(
        self,
        components: Sequence[ArchitecturalComponent],
        files: Sequence[ChangeRequestFile],
    ) -> str:
        logger.debug(f"Building component selection prompt for {len(components)} candidates")
        return render_template(self.templates["component_selection"], {
            "components": format_component_list(components),
            "files": "\n".join(f"- {f.filename}" for f in files),
        })

    def build_dependency_extraction_prompt(
        self,
        diff: str,
        commit: Commit,
        ref: ChangeRequestRef,
        components: Sequence[ArchitecturalComponent],
    ) -> str:
        """
        Build the dependency extraction prompt.

        Args:
            diff: Unified diff of the (filtered, truncated) change request
            commit: Head commit; its message carries every commit message
            ref: Change request reference
            components: Exactly one resolved component, or none

        Raises:
            DriftReviewerError: More than one component was passed
        """
        if len(components) > 1:
            raise DriftReviewerError(
                f"Dependency extraction needs exactly 1 component, received {len(components)}",
                ErrorCode.COMPONENT_NOT_FOUND,
                user_message="Component selection must resolve a single component before dependency extraction.",
                context={"component_count": len(components)},
            )
        if components:
            components_context = format_component_context(components[0])
        else:
            components_context = "Component: Unknown (repository not mapped in the architecture model)"

        return render_template(self.templates["dependency_extraction"], {
            "diff": diff,
            "commit": {"sha": commit.sha, "message": commit.message, "author": commit.author},
            "repository": {
                "owner": ref.platform_id.owner,
                "repo": ref.platform_id.repo,
                "url": ref.repository_url,
            },
            "components_context": components_context,
        })

    def build_drift_analysis_prompt(self, data: DriftAnalysisPromptData) -> str:
        cr = data.change_request
        commits_section, commits_note = format_commits(cr.commits)
        return render_template(self.templates["drift_analysis"], {
            "change_request": {
                "number": cr.number,
                "title": cr.title,
                "author": cr.author,
                "base": cr.base.ref,
                "head": cr.head.ref,
                "commits": cr.stats.commits,
                "additions": cr.stats.additions,
                "deletions": cr.stats.deletions,
                "files_changed": cr.stats.files_changed,
                "description_section": f"Description:\n{cr.description}\n" if cr.description else "",
            },
            "component": {
                "name": data.component.name,
                "id": data.component.id,
                "type": data.component.type,
                "repository": data.component.repository or "Unknown",
                "tags": ", ".join(data.component.tags) or "None",
            },
            "commits_section": commits_section,
            "commits_note": commits_note,
            "allowed_dependencies": format_allowed_dependencies(data.relationships, data.dependencies),
            "dependents": format_dependents(data.dependents),
            "dependency_changes_section": format_dependency_changes(data.dependency_changes),
        })

    def build_model_patch_prompt(self, file_content: str, lines_to_insert: Sequence[str],
                                 model_format: str) -> str:
        return render_template(self.templates["model_patch"], {
            "file_content": file_content,
            "lines_to_insert": "\n".join(lines_to_insert),
            "model_format": model_format,
        })

    def _load_templates(self) -> Dict[str, str]:
        """Prompt templates per phase"""
        return {
            "component_selection": """You are mapping a pull request to the architecture component it changes.

The repository is linked to several components in the architecture model:

{{components}}

Files changed in the pull request:

{{files}}

Reply with the id of the single component these changes belong to. Reply with the id only.""",

            "dependency_extraction": """You are an architecture reviewer extracting architectural dependencies from a code diff.

**Repository**: {{repository.owner}}/{{repository.repo}} ({{repository.url}})
**Commit**: {{commit.sha}} by {{commit.author}}
**Commit messages**: {{commit.message}}

{{components_context}}

**Guidelines**:
- Report only dependencies that cross a component boundary: HTTP or gRPC clients, message queues, databases, caches, external APIs and SDKs
- Ignore internal refactoring, tests, formatting and standard library imports
- Classify each change as added, modified or removed

**Diff**:
```diff
{{diff}}
```

Respond with JSON only, matching this schema:

```json
{
  "dependencies": [
    {
      "type": "added | modified | removed",
      "file": "path/of/the/file",
      "dependency": "name of the service or system depended on",
      "description": "what the dependency is used for",
      "code": "the line(s) of code introducing it"
    }
  ],
  "summary": "one paragraph summary"
}
```""",

            "drift_analysis": """You are an architecture reviewer checking a pull request against the declared architecture model.

**Pull request**: #{{change_request.number}} {{change_request.title}}
**Author**: {{change_request.author}}
**Branches**: {{change_request.head}} -> {{change_request.base}}
**Size**: {{change_request.commits}} commits, {{change_request.files_changed}} files, +{{change_request.additions}} -{{change_request.deletions}}
{{change_request.description_section}}
**Commits**:
{{commits_section}}{{commits_note}}

**Component under review**: {{component.name}} ({{component.id}})
- Type: {{component.type}}
- Repository: {{component.repository}}
- Tags: {{component.tags}}

**Declared dependencies**:
{{allowed_dependencies}}

**Declared dependents**:
{{dependents}}

**Dependency changes found in the code**:
{{dependency_changes_section}}

**Guidelines**:
1. A violation is a dependency in the code that the model does not declare, or one that breaks a declared boundary
2. Rate each violation high, medium or low
3. Mention removed dependencies that the model still declares as warnings
4. Propose model relationships for undeclared dependencies using component ids from this prompt only

Respond with JSON only, matching this schema:

```json
{
  "has_violations": true,
  "violations": [
    {
      "severity": "high | medium | low",
      "description": "what drifted",
      "file": "path or null",
      "line": null,
      "commit": "sha or null",
      "suggestion": "how to resolve"
    }
  ],
  "improvements": ["positive architectural findings"],
  "warnings": ["non-blocking concerns"],
  "summary": "one paragraph summary",
  "model_updates": {
    "add": ["human readable additions"],
    "remove": ["human readable removals"],
    "notes": "optional notes",
    "relationships": [
      {"source": "component id", "target": "component id", "kind": "optional kind", "description": "short label"}
    ]
  }
}
```""",

            "model_patch": """You are editing a {{model_format}} architecture model file.

Insert the following relationship lines inside the model block, next to the existing relationships:

```
{{lines_to_insert}}
```

Rules:
- Keep every existing line exactly as it is
- Insert every new line exactly as given, adjusting indentation only
- Do not add, remove or reorder anything else

Current file:

```
{{file_content}}
```

Respond with the complete updated file only, without explanations.""",
        }
