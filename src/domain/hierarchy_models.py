"""Hierarchy domain models.

Four hierarchies (function, geographic, organisational, funding) are built
over the same assets. `HierarchyNode`s are derived and rebuilt, never
persisted; `HierarchyView`s are pure configuration and own no nodes.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from domain.errors import ValidationError


class ViewType(str, Enum):
    """The hierarchies built over the asset set."""
    FUNCTION = "function"
    GEOGRAPHIC = "geographic"
    ORGANISATIONAL = "organisational"
    FUNDING = "funding"


class SortingStrategy(str, Enum):
    """Ordering applied to traversal results."""
    ALPHABETICAL = "ALPHABETICAL"
    VALUE = "VALUE"
    PRIORITY = "PRIORITY"


class GroupingStrategy(str, Enum):
    """How a view groups its nodes (informational for consumers)."""
    FUNCTION_FIRST = "FUNCTION_FIRST"
    PURPOSE_FIRST = "PURPOSE_FIRST"
    ASSET_FIRST = "ASSET_FIRST"
    MIXED = "MIXED"


class NodeType(str, Enum):
    """Kinds of hierarchy nodes."""
    CATEGORY = "Category"
    SERVICE_FUNCTION = "ServiceFunction"
    REGION = "Region"
    AREA = "Area"
    SITE = "Site"
    DIRECT = "DirectAssets"
    DIVISION = "Division"
    DEPARTMENT = "Department"
    FUNDING_CATEGORY = "FundingCategory"


ALLOWED_FILTERS = {"includeInactive": bool, "minValue": (int, float)}


@dataclass
class HierarchyNode:
    """One position in a hierarchy, with bottom-up aggregated metrics."""
    id: str
    name: str
    type: str
    view_type: ViewType
    level: int = 0
    parent_id: Optional[str] = None
    children_ids: List[str] = field(default_factory=list)
    asset_ids: List[str] = field(default_factory=list)
    asset_count: int = 0
    value_contribution: float = 0.0
    critical_asset_count: int = 0
    is_active: bool = True
    description: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    generation: int = 0

    @property
    def is_leaf(self) -> bool:
        return not self.children_ids

    @property
    def priority(self) -> float:
        """Sorting priority from metadata, 0 when absent."""
        value = self.metadata.get("priority", 0)
        return value if isinstance(value, (int, float)) else 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "view_type": self.view_type.value,
            "level": self.level,
            "parent_id": self.parent_id,
            "children_ids": list(self.children_ids),
            "asset_ids": list(self.asset_ids),
            "asset_count": self.asset_count,
            "value_contribution": self.value_contribution,
            "critical_asset_count": self.critical_asset_count,
            "is_active": self.is_active,
            "description": self.description,
            "metadata": dict(self.metadata),
            "generation": self.generation,
        }


@dataclass
class HierarchyView:
    """Named traversal configuration over one hierarchy."""
    id: str
    view_type: ViewType
    name: str = ""
    root_node_ids: List[str] = field(default_factory=list)
    max_depth: int = 4
    grouping_strategy: GroupingStrategy = GroupingStrategy.MIXED
    sorting_strategy: SortingStrategy = SortingStrategy.ALPHABETICAL
    filters: Dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
    description: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HierarchyView":
        """Create and validate a view from a dictionary (API payload or YAML).

        Raises:
            ValidationError: If any field is malformed
        """
        if not isinstance(data, Mapping):
            raise ValidationError(f"View definition must be a mapping, got {data!r}")
        if not data.get("id"):
            raise ValidationError("View id is required")
        if "view_type" not in data:
            raise ValidationError(f"View {data['id']}: view_type is required")
        view = cls(
            id=str(data["id"]),
            view_type=_parse_enum(ViewType, data["view_type"], "view_type"),
            name=data.get("name") or str(data["id"]),
            root_node_ids=_parse_list(data.get("root_node_ids"), "root_node_ids"),
            max_depth=data.get("max_depth", 4),
            grouping_strategy=_parse_enum(
                GroupingStrategy, data.get("grouping_strategy", GroupingStrategy.MIXED), "grouping_strategy"
            ),
            sorting_strategy=_parse_enum(
                SortingStrategy, data.get("sorting_strategy", SortingStrategy.ALPHABETICAL), "sorting_strategy"
            ),
            filters=_parse_mapping(data.get("filters"), "filters"),
            is_active=data.get("is_active", True),
            description=data.get("description", ""),
            metadata=_parse_mapping(data.get("metadata"), "metadata"),
        )
        view.validate()
        return view

    def validate(self) -> None:
        """Reject malformed configuration instead of defaulting it.

        Raises:
            ValidationError: On the first invalid field
        """
        if not self.id:
            raise ValidationError("View id is required")
        if not isinstance(self.view_type, ViewType):
            raise ValidationError(f"View {self.id}: unknown view_type {self.view_type!r}")
        if isinstance(self.max_depth, bool) or not isinstance(self.max_depth, int) or self.max_depth <= 0:
            raise ValidationError(f"View {self.id}: max_depth must be a positive integer, got {self.max_depth!r}")
        if not isinstance(self.sorting_strategy, SortingStrategy):
            raise ValidationError(f"View {self.id}: unknown sorting_strategy {self.sorting_strategy!r}")
        if not isinstance(self.grouping_strategy, GroupingStrategy):
            raise ValidationError(f"View {self.id}: unknown grouping_strategy {self.grouping_strategy!r}")
        if not isinstance(self.root_node_ids, list) or not all(isinstance(r, str) for r in self.root_node_ids):
            raise ValidationError(f"View {self.id}: root_node_ids must be a list of strings")
        for key, value in self.filters.items():
            expected = ALLOWED_FILTERS.get(key)
            if expected is None:
                raise ValidationError(f"View {self.id}: unknown filter {key!r}")
            if isinstance(value, bool) and expected is not bool:
                raise ValidationError(f"View {self.id}: filter {key!r} has invalid value {value!r}")
            if not isinstance(value, expected):
                raise ValidationError(f"View {self.id}: filter {key!r} has invalid value {value!r}")

    def apply_patch(self, patch: Mapping[str, Any]) -> "HierarchyView":
        """Return a validated copy with `patch` applied. The id is immutable."""
        if "id" in patch and patch["id"] != self.id:
            raise ValidationError(f"View {self.id}: id cannot be changed")
        changes: Dict[str, Any] = {}
        for key, value in patch.items():
            if key == "id":
                continue
            if key == "view_type":
                value = _parse_enum(ViewType, value, key)
            elif key == "sorting_strategy":
                value = _parse_enum(SortingStrategy, value, key)
            elif key == "grouping_strategy":
                value = _parse_enum(GroupingStrategy, value, key)
            elif key in ("filters", "metadata"):
                value = _parse_mapping(value, key)
            elif key == "root_node_ids":
                value = _parse_list(value, key)
            elif key not in ("name", "max_depth", "is_active", "description"):
                raise ValidationError(f"View {self.id}: unknown field {key!r}")
            changes[key] = value
        updated = replace(self, **changes)
        updated.validate()
        return updated

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "view_type": self.view_type.value,
            "root_node_ids": list(self.root_node_ids),
            "max_depth": self.max_depth,
            "grouping_strategy": self.grouping_strategy.value,
            "sorting_strategy": self.sorting_strategy.value,
            "filters": dict(self.filters),
            "is_active": self.is_active,
            "description": self.description,
            "metadata": dict(self.metadata),
        }


def _parse_enum(enum_cls, value: Any, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Unknown {field_name}: {value!r}") from None


def _parse_mapping(value: Any, field_name: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValidationError(f"{field_name} must be a mapping, got {value!r}")
    return dict(value)


def _parse_list(value: Any, field_name: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"{field_name} must be a list, got {value!r}")
    return list(value)


@dataclass(frozen=True)
class HierarchyForest:
    """Immutable snapshot of every hierarchy from one rebuild generation.

    Published by swapping a single reference; readers capture the
    reference once and work against it.
    """
    generation: int
    nodes: Mapping[str, HierarchyNode]
    roots: Mapping[ViewType, Tuple[str, ...]]
    built_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def empty(cls) -> "HierarchyForest":
        return cls(generation=0, nodes={}, roots={view_type: () for view_type in ViewType})

    def get(self, node_id: str) -> Optional[HierarchyNode]:
        return self.nodes.get(node_id)

    def root_nodes(self, view_type: ViewType) -> List[HierarchyNode]:
        return [self.nodes[node_id] for node_id in self.roots.get(view_type, ()) if node_id in self.nodes]

    def nodes_for(self, view_type: ViewType) -> List[HierarchyNode]:
        return [node for node in self.nodes.values() if node.view_type == view_type]

    def children_of(self, node_id: str) -> List[HierarchyNode]:
        node = self.nodes.get(node_id)
        if node is None:
            return []
        return [self.nodes[child] for child in node.children_ids if child in self.nodes]

    def ancestors_of(self, node_id: str) -> List[HierarchyNode]:
        """Ancestors from the root down to the node's parent."""
        path: List[HierarchyNode] = []
        seen = {node_id}
        node = self.nodes.get(node_id)
        while node is not None and node.parent_id and node.parent_id not in seen:
            seen.add(node.parent_id)
            node = self.nodes.get(node.parent_id)
            if node is not None:
                path.append(node)
        path.reverse()
        return path


@dataclass
class HierarchyStatistics:
    """Summary statistics for one view."""
    view_id: str
    total_nodes: int = 0
    total_assets: int = 0
    total_value: float = 0.0
    average_depth: float = 0.0
    function_distribution: Dict[str, int] = field(default_factory=dict)
    purpose_distribution: Dict[str, int] = field(default_factory=dict)
    generation: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "view_id": self.view_id,
            "total_nodes": self.total_nodes,
            "total_assets": self.total_assets,
            "total_value": self.total_value,
            "average_depth": round(self.average_depth, 4),
            "function_distribution": dict(self.function_distribution),
            "purpose_distribution": dict(self.purpose_distribution),
            "generation": self.generation,
        }


@dataclass
class CrossHierarchyRelationship:
    """Informational link between two hierarchies for one asset."""
    from_hierarchy: str
    to_hierarchy: str
    relationship: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_hierarchy": self.from_hierarchy,
            "to_hierarchy": self.to_hierarchy,
            "relationship": self.relationship,
        }


@dataclass
class AssetHierarchyContext:
    """An asset's position in every hierarchy at once."""
    asset_id: str
    hierarchies: Dict[ViewType, List[HierarchyNode]]
    primary_hierarchy: str
    cross_hierarchy_relationships: List[CrossHierarchyRelationship] = field(default_factory=list)
    generation: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "asset_id": self.asset_id,
            "hierarchies": {
                view_type.value: [node.to_dict() for node in nodes]
                for view_type, nodes in self.hierarchies.items()
            },
            "primary_hierarchy": self.primary_hierarchy,
            "cross_hierarchy_relationships": [r.to_dict() for r in self.cross_hierarchy_relationships],
            "generation": self.generation,
        }
