"""
Architecture Data Models

Components, relationships and the lookup index built from a loaded model.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class ArchitecturalComponent:
    """A node in the architecture model"""
    id: str
    name: str
    type: str
    tags: Tuple[str, ...] = ()
    repository: Optional[str] = None
    description: Optional[str] = None
    technology: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "tags": list(self.tags),
            "repository": self.repository,
        }


EMPTY_COMPONENT = ArchitecturalComponent(id="", name="", type="")


@dataclass(frozen=True)
class ModelRelationship:
    """An edge declared in the model"""
    source: str
    target: str
    kind: Optional[str] = None
    title: Optional[str] = None


@dataclass
class StructuredRelationship:
    """A relationship proposed by drift analysis, not yet checked against the model"""
    source: str
    target: str
    description: str = ""
    kind: Optional[str] = None


@dataclass(frozen=True)
class ComponentRelationship:
    """An outgoing relationship resolved to its target component"""
    target: ArchitecturalComponent
    kind: Optional[str] = None
    title: Optional[str] = None


class ComponentIndex:
    """
    Read-only component lookup built once per model load.

    ``by_id`` maps component id to component, ``by_repository`` maps a
    normalised repository URL to every component linked to it.
    """

    def __init__(self, components: List[ArchitecturalComponent]):
        by_id: Dict[str, ArchitecturalComponent] = {}
        by_repository: Dict[str, List[ArchitecturalComponent]] = {}
        for component in components:
            by_id[component.id] = component
            if component.repository:
                by_repository.setdefault(component.repository, []).append(component)

        self._by_id = MappingProxyType(by_id)
        self._by_repository = MappingProxyType(
            {url: tuple(items) for url, items in by_repository.items()}
        )

    @property
    def by_id(self) -> Mapping[str, ArchitecturalComponent]:
        return self._by_id

    @property
    def by_repository(self) -> Mapping[str, Tuple[ArchitecturalComponent, ...]]:
        return self._by_repository

    def __contains__(self, component_id: str) -> bool:
        return component_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)


@dataclass
class ArchitectureModel:
    """A fully loaded architecture model"""
    components: List[ArchitecturalComponent]
    relationships: List[ModelRelationship]
    component_index: Optional[ComponentIndex] = field(default=None, repr=False)

    def __post_init__(self):
        if self.component_index is None:
            self.component_index = ComponentIndex(self.components)
