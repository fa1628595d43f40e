"""
Architecture Adapter Base

Format-independent queries over a loaded architecture model. Concrete
adapters only parse their format into components and relationships.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Set, Tuple

from ..errors import AdapterError, ErrorCode
from ..github.urls import normalize_github_url
from ..models.architecture import (
    ArchitecturalComponent,
    ArchitectureModel,
    ComponentIndex,
    ComponentRelationship,
    ModelRelationship,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdapterMetadata:
    """Static description of a model format"""
    id: str
    display_name: str
    file_extension: str
    pr_title_template: str
    no_component_help: Tuple[str, ...] = ()

    def render_pr_title(self, source_repo: str, pr_number: int, pr_title: str) -> str:
        return (
            self.pr_title_template
            .replace("{{sourceRepo}}", source_repo)
            .replace("{{prNumber}}", str(pr_number))
            .replace("{{prTitle}}", pr_title)
        )


class ArchitectureAdapter:
    """
    Base class for architecture model adapters.

    Subclasses implement ``_parse(path)`` returning components and
    relationships; indexing and every query live here.
    """

    metadata: AdapterMetadata

    def __init__(self):
        self._model: Optional[ArchitectureModel] = None

    def _parse(self, path: Path) -> Tuple[List[ArchitecturalComponent], List[ModelRelationship]]:
        raise NotImplementedError

    def load_from_path(self, path: str) -> ArchitectureModel:
        """
        Load the model at ``path`` and build its component index.

        Raises:
            AdapterError: Path missing or model invalid
        """
        resolved = Path(path).resolve()
        if not resolved.exists():
            raise AdapterError(
                f"{self.metadata.display_name} model path not found: {resolved}",
                ErrorCode.IO_FILE_NOT_FOUND,
                self.metadata.id,
                context={"path": str(resolved)},
            )

        logger.info(f"Loading {self.metadata.display_name} model from {resolved}")
        components, relationships = self._parse(resolved)
        self._model = ArchitectureModel(components=components, relationships=relationships)
        logger.info(
            f"Loaded {len(components)} component(s) and {len(relationships)} relationship(s)"
        )
        return self._model

    @property
    def model(self) -> ArchitectureModel:
        if self._model is None:
            raise AdapterError.not_loaded(self.metadata.id)
        return self._model

    @property
    def component_index(self) -> ComponentIndex:
        return self.model.component_index

    @property
    def relationships(self) -> List[ModelRelationship]:
        return self.model.relationships

    def find_all_components_by_repository(self, repo_url: str) -> List[ArchitecturalComponent]:
        """All components linked to the repository (URL is normalised first)"""
        normalized = normalize_github_url(repo_url)
        return list(self.component_index.by_repository.get(normalized, ()))

    def find_component_by_id(self, component_id: str) -> Optional[ArchitecturalComponent]:
        return self.component_index.by_id.get(component_id)

    def get_all_components(self) -> List[ArchitecturalComponent]:
        return list(self.component_index.by_id.values())

    def get_component_dependencies(self, component_id: str) -> List[ArchitecturalComponent]:
        """Components this component depends on, one entry per target"""
        index = self.component_index
        seen: Set[str] = set()
        dependencies = []
        for relation in self.relationships:
            if relation.source == component_id and relation.target not in seen:
                target = index.by_id.get(relation.target)
                if target:
                    dependencies.append(target)
                    seen.add(relation.target)
        return dependencies

    def get_component_dependents(self, component_id: str) -> List[ArchitecturalComponent]:
        """Components depending on this component, one entry per source"""
        index = self.component_index
        seen: Set[str] = set()
        dependents = []
        for relation in self.relationships:
            if relation.target == component_id and relation.source not in seen:
                source = index.by_id.get(relation.source)
                if source:
                    dependents.append(source)
                    seen.add(relation.source)
        return dependents

    def get_component_relationships(self, component_id: str) -> List[ComponentRelationship]:
        """Outgoing relationships of a component, with their kind and title"""
        index = self.component_index
        result = []
        for relation in self.relationships:
            if relation.source == component_id:
                target = index.by_id.get(relation.target)
                if target:
                    result.append(ComponentRelationship(target=target, kind=relation.kind, title=relation.title))
        return result

    def is_allowed_dependency(self, from_id: str, to_id: str) -> bool:
        return any(r.source == from_id and r.target == to_id for r in self.relationships)
