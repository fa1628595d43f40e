"""
LikeC4 Adapter

Loads a LikeC4 model from its JSON export, running ``likec4 export json``
when given a workspace directory.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from ..config import ValidationConfig
from ..errors import AdapterError, ErrorCode
from ..github.urls import normalize_github_url
from ..models.architecture import ArchitecturalComponent, ModelRelationship
from .base import AdapterMetadata, ArchitectureAdapter
from .tooling import export_likec4_json


logger = logging.getLogger(__name__)

LIKEC4_METADATA = AdapterMetadata(
    id="likec4",
    display_name="LikeC4",
    file_extension=".c4",
    pr_title_template="chore: update LikeC4 model for {{sourceRepo}}#{{prNumber}}: {{prTitle}}",
    no_component_help=(
        "Link the matching element to the repository, e.g.:",
        "  link {{repoUrl}}",
    ),
)


def _items(collection: Union[Dict, List, None]) -> Iterable[Dict]:
    """Elements and relations are exported as id-keyed objects or as lists"""
    if isinstance(collection, dict):
        for key, value in collection.items():
            if isinstance(value, dict):
                value.setdefault("id", key)
                yield value
    elif isinstance(collection, list):
        for value in collection:
            if isinstance(value, dict):
                yield value


def _endpoint_id(endpoint: Union[str, Dict, None]) -> Optional[str]:
    if isinstance(endpoint, str):
        return endpoint
    if isinstance(endpoint, dict):
        return endpoint.get("id") or endpoint.get("model") or endpoint.get("fqn")
    return None


class LikeC4Adapter(ArchitectureAdapter):
    """LikeC4 model adapter"""

    metadata = LIKEC4_METADATA

    def __init__(self, validation_config: Optional[ValidationConfig] = None):
        super().__init__()
        self.validation_config = validation_config or ValidationConfig()

    def _read_model(self, path: Path) -> Dict:
        if path.is_file() and path.suffix == ".json":
            try:
                return json.loads(path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as e:
                raise AdapterError(
                    f"Invalid LikeC4 JSON export: {e}",
                    ErrorCode.MODEL_LOAD_ERROR,
                    "likec4",
                    context={"path": str(path)},
                )

        directory = path if path.is_dir() else path.parent
        exported = directory / "likec4.json"
        if exported.exists():
            return self._read_model(exported)
        return export_likec4_json(str(directory), self.validation_config)

    def _parse(self, path: Path) -> Tuple[List[ArchitecturalComponent], List[ModelRelationship]]:
        data = self._read_model(path)
        if not isinstance(data, dict) or "elements" not in data:
            raise AdapterError(
                "Malformed LikeC4 model structure: 'elements' is missing",
                ErrorCode.MODEL_LOAD_ERROR,
                "likec4",
                user_message="Could not load LikeC4 model: the model structure is invalid.",
            )

        components = [self._to_component(element) for element in _items(data.get("elements"))]
        known = {c.id for c in components}

        relationships = []
        for relation in _items(data.get("relations") or data.get("relationships")):
            source = _endpoint_id(relation.get("source"))
            target = _endpoint_id(relation.get("target"))
            if source not in known or target not in known:
                logger.debug(f"Ignoring relation with unknown endpoint: {source} -> {target}")
                continue
            relationships.append(ModelRelationship(
                source=source,
                target=target,
                kind=relation.get("kind") or None,
                title=relation.get("title") or None,
            ))

        return components, relationships

    @staticmethod
    def _repository_url(links: Optional[List]) -> Optional[str]:
        for link in links or []:
            url = link if isinstance(link, str) else (link or {}).get("url", "")
            if "github.com" in url:
                return normalize_github_url(url)
        return None

    def _to_component(self, element: Dict) -> ArchitecturalComponent:
        description = element.get("description")
        if isinstance(description, dict):
            description = description.get("txt") or description.get("md")
        return ArchitecturalComponent(
            id=element["id"],
            name=element.get("title") or element["id"],
            type=element.get("kind") or "element",
            tags=tuple(element.get("tags") or ()),
            repository=self._repository_url(element.get("links")),
            description=description if isinstance(description, str) else None,
            technology=element.get("technology") or None,
        )
