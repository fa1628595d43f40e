"""
Structurizr Adapter

Loads Structurizr workspaces (JSON, or DSL exported through the
Structurizr CLI) into components and relationships.
"""

import json
import logging
import re
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from ..config import ValidationConfig
from ..errors import AdapterError, ErrorCode
from ..github.urls import is_github_url, normalize_github_url
from ..models.architecture import ArchitecturalComponent, ModelRelationship
from .base import AdapterMetadata, ArchitectureAdapter
from .tooling import export_structurizr_json


logger = logging.getLogger(__name__)

STRUCTURIZR_METADATA = AdapterMetadata(
    id="structurizr",
    display_name="Structurizr",
    file_extension=".dsl",
    pr_title_template="chore: update Structurizr model for {{sourceRepo}}#{{prNumber}}: {{prTitle}}",
    no_component_help=(
        "Add a url property pointing at the repository to the matching element, e.g.:",
        '  url "{{repoUrl}}"',
    ),
)

BUILTIN_TAGS = {"Element", "Person", "Software System", "Container", "Component", "Relationship"}
ID_PROPERTY = "erode.id"


def to_snake_case(name: str) -> str:
    value = re.sub(r"([a-z])([A-Z])", r"\1_\2", name)
    value = re.sub(r"[^a-zA-Z0-9]+", "_", value)
    return value.strip("_").lower()


class StructurizrAdapter(ArchitectureAdapter):
    """
    Structurizr workspace adapter.

    Element ids come from the ``erode.id`` property when present, otherwise
    from the dotted path of DSL identifiers (snake_case of the element
    name when the workspace carries no identifier).
    """

    metadata = STRUCTURIZR_METADATA

    def __init__(self, validation_config: Optional[ValidationConfig] = None):
        super().__init__()
        self.validation_config = validation_config or ValidationConfig()
        self._workspace: Dict = {}
        self._identifiers: Dict[str, str] = {}

    def _resolve_workspace_path(self, path: Path) -> Path:
        if not path.is_dir():
            return path
        for name in ("workspace.json", "workspace.dsl"):
            candidate = path / name
            if candidate.exists():
                return candidate
        raise AdapterError(
            f"No workspace file found in directory: {path}",
            ErrorCode.MODEL_LOAD_ERROR,
            "structurizr",
            user_message=f"No workspace.json or workspace.dsl found in: {path}",
            context={"path": str(path)},
            suggestions=["Create a workspace.json or workspace.dsl file in the directory"],
        )

    def _read_workspace(self, path: Path) -> Dict:
        if path.suffix == ".json":
            try:
                return json.loads(path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as e:
                raise AdapterError(
                    f"Invalid Structurizr workspace JSON: {e}",
                    ErrorCode.MODEL_LOAD_ERROR,
                    "structurizr",
                    context={"path": str(path)},
                )
        return export_structurizr_json(str(path), self.validation_config)

    def _parse(self, path: Path) -> Tuple[List[ArchitecturalComponent], List[ModelRelationship]]:
        workspace_path = self._resolve_workspace_path(path)
        workspace = self._read_workspace(workspace_path)
        if not isinstance(workspace, dict) or not isinstance(workspace.get("model", {}), dict):
            raise AdapterError(
                "Malformed Structurizr workspace: 'model' must be an object",
                ErrorCode.MODEL_LOAD_ERROR,
                "structurizr",
            )

        self._workspace = workspace
        self._identifiers = self._build_identifier_map()
        return self._extract_components(), self._extract_relationships()

    # --- element traversal ---

    def _walk(self, callback: Callable[[Dict, str, str], None]) -> None:
        """Call ``callback(element, parent_path, kind)`` for every element"""
        model = self._workspace.get("model") or {}

        def walk(elements: Optional[List[Dict]], parent_path: str, kind: str) -> None:
            for element in elements or []:
                callback(element, parent_path, kind)
                resolved = self._resolve_element_id(element, parent_path)
                walk(element.get("containers"), resolved, "container")
                walk(element.get("components"), resolved, "component")

        walk(model.get("people"), "", "person")
        walk(model.get("softwareSystems"), "", "softwareSystem")

    @staticmethod
    def _local_id(element: Dict) -> str:
        return str(element.get("id") or to_snake_case(element.get("name") or ""))

    def _resolve_element_id(self, element: Dict, parent_path: str) -> str:
        properties = element.get("properties") or {}
        if properties.get(ID_PROPERTY):
            return properties[ID_PROPERTY]
        local_id = self._local_id(element)
        return f"{parent_path}.{local_id}" if parent_path else local_id

    def _build_identifier_map(self) -> Dict[str, str]:
        identifiers: Dict[str, str] = {}

        def register(element: Dict, parent_path: str, kind: str) -> None:
            local_id = self._local_id(element)
            resolved = self._resolve_element_id(element, parent_path)
            identifiers[local_id] = resolved
            dotted = f"{parent_path}.{local_id}" if parent_path else local_id
            identifiers[dotted] = resolved

        self._walk(register)
        return identifiers

    def _resolve_identifier(self, ref: Optional[str]) -> Optional[str]:
        if not ref:
            return None
        ref = str(ref)
        if ref in self._identifiers:
            return self._identifiers[ref]
        if ref in self._identifiers.values():
            return ref
        return None

    @staticmethod
    def _parse_tags(tags: Optional[str]) -> Tuple[str, ...]:
        if not tags:
            return ()
        return tuple(t.strip() for t in tags.split(",") if t.strip() and t.strip() not in BUILTIN_TAGS)

    @staticmethod
    def _repository_url(element: Dict) -> Optional[str]:
        url = element.get("url")
        if not url or not is_github_url(url):
            return None
        return normalize_github_url(url)

    def _extract_components(self) -> List[ArchitecturalComponent]:
        components: List[ArchitecturalComponent] = []

        def collect(element: Dict, parent_path: str, kind: str) -> None:
            technology = element.get("technology")
            components.append(ArchitecturalComponent(
                id=self._resolve_element_id(element, parent_path),
                name=element.get("name") or self._local_id(element),
                type=kind,
                tags=self._parse_tags(element.get("tags")),
                repository=self._repository_url(element),
                description=element.get("description"),
                technology=technology if isinstance(technology, str) else None,
            ))

        self._walk(collect)
        return components

    def _extract_relationships(self) -> List[ModelRelationship]:
        relationships: List[ModelRelationship] = []
        seen = set()

        def add(rel: Dict) -> None:
            source = self._resolve_identifier(rel.get("sourceId"))
            target = self._resolve_identifier(rel.get("destinationId"))
            if not source or not target:
                return
            key = (source, target, rel.get("description") or "", rel.get("technology") or "")
            if key in seen:
                return
            seen.add(key)
            relationships.append(ModelRelationship(
                source=source,
                target=target,
                kind=rel.get("technology") or None,
                title=rel.get("description") or None,
            ))

        def collect(element: Dict, parent_path: str, kind: str) -> None:
            for rel in element.get("relationships") or []:
                add(rel)

        self._walk(collect)
        for rel in (self._workspace.get("model") or {}).get("relationships") or []:
            add(rel)

        return relationships
