"""Hierarchy Builder.

Builds the four hierarchies (function, geographic, organisational, funding)
over the registered asset models and one snapshot of the graph, then rolls
counts and values up bottom-up in a single pass.

Building is pure and deterministic: the same models and snapshot always
produce the same forest, so aggregates are recomputed rather than patched.
"""

import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Optional, Set

from domain.asset_models import (
    FUNCTION_CATEGORY_COMMUNITY,
    FUNCTION_CATEGORY_EMERGENCY,
    FUNCTION_CATEGORY_GENERAL,
    FUNCTION_CATEGORY_INFRASTRUCTURE,
    FUNCTION_CATEGORY_TRANSPORTATION,
    FUNCTION_CATEGORY_UTILITIES,
    FUNDING_CATEGORIES,
    AssetModel,
)
from domain.graph_models import Edge, EdgeLabel, Vertex, VertexLabel
from domain.hierarchy_models import HierarchyForest, HierarchyNode, NodeType, ViewType
from domain.stores import GraphStore

logger = logging.getLogger(__name__)


# Static top level of the function hierarchy, in display order
FUNCTION_CATEGORIES: Dict[str, Dict[str, object]] = {
    FUNCTION_CATEGORY_TRANSPORTATION: {"priority": 100, "description": "Roads, bridges, paths and traffic systems"},
    FUNCTION_CATEGORY_INFRASTRUCTURE: {"priority": 95, "description": "Buildings, drainage, water and sewer"},
    FUNCTION_CATEGORY_UTILITIES: {"priority": 90, "description": "Electrical, lighting and telecommunications"},
    FUNCTION_CATEGORY_EMERGENCY: {"priority": 100, "description": "Fire and emergency response facilities"},
    FUNCTION_CATEGORY_COMMUNITY: {"priority": 80, "description": "Parks, libraries and community facilities"},
    FUNCTION_CATEGORY_GENERAL: {"priority": 50, "description": "Assets without a specific function"},
}

# Fixed Division → Department tree; membership is by `org:<department>` tag
ORGANISATIONAL_STRUCTURE: Dict[str, List[str]] = {
    "Operations": ["Maintenance", "Planning"],
    "Finance": ["Budget Management"],
}


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def department_key(department: str) -> str:
    """Tag value naming a department, e.g. 'budget-management'."""
    return slugify(department)


@dataclass
class GraphSnapshot:
    """The anchor vertices and edges one rebuild reads from the graph."""
    service_functions: List[Vertex] = field(default_factory=list)
    locations: List[Vertex] = field(default_factory=list)
    serves_purpose: List[Edge] = field(default_factory=list)
    located_at: List[Edge] = field(default_factory=list)
    contains: List[Edge] = field(default_factory=list)


async def load_graph_snapshot(graph_store: GraphStore, organisation_id: Optional[str] = None) -> GraphSnapshot:
    """Read everything the builder needs from the graph in one pass."""
    property_filter = {"organisationId": organisation_id} if organisation_id else None
    snapshot = GraphSnapshot(
        service_functions=await graph_store.get_vertices_by_label(
            VertexLabel.SERVICE_FUNCTION.value, property_filter
        ),
        locations=await graph_store.get_vertices_by_label(VertexLabel.LOCATION.value, property_filter),
        serves_purpose=await graph_store.get_edges(label=EdgeLabel.SERVES_PURPOSE.value),
        located_at=await graph_store.get_edges(label=EdgeLabel.LOCATED_AT.value),
        contains=await graph_store.get_edges(label=EdgeLabel.CONTAINS.value),
    )
    logger.debug(
        f"Graph snapshot: {len(snapshot.service_functions)} service functions, "
        f"{len(snapshot.locations)} locations, {len(snapshot.serves_purpose)} purpose edges"
    )
    return snapshot


class HierarchyBuilder:
    """Builds a complete HierarchyForest for one rebuild generation."""

    def build(
        self,
        asset_models: Iterable[AssetModel],
        snapshot: GraphSnapshot,
        generation: int,
    ) -> HierarchyForest:
        """Build and aggregate every hierarchy.

        Args:
            asset_models: Registered asset models; inactive ones are excluded
            snapshot: Graph anchors and edges
            generation: Generation number stamped on the forest and its nodes

        Returns:
            A new forest; nothing shared with any previous one
        """
        models = {model.id: model for model in asset_models if model.is_active}
        nodes: Dict[str, HierarchyNode] = {}
        roots: Dict[ViewType, List[str]] = {}

        roots[ViewType.FUNCTION] = self._build_function(nodes, models, snapshot, generation)
        roots[ViewType.GEOGRAPHIC] = self._build_geographic(nodes, models, snapshot, generation)
        roots[ViewType.ORGANISATIONAL] = self._build_organisational(nodes, models, generation)
        roots[ViewType.FUNDING] = self._build_funding(nodes, models, generation)

        for view_roots in roots.values():
            aggregate(nodes, view_roots, models)

        logger.info(f"Built hierarchy generation {generation}: {len(nodes)} nodes over {len(models)} assets")
        return HierarchyForest(
            generation=generation,
            nodes=MappingProxyType(nodes),
            roots=MappingProxyType({view_type: tuple(ids) for view_type, ids in roots.items()}),
        )

    def _build_function(self, nodes, models, snapshot, generation) -> List[str]:
        root_ids = []
        category_ids = {}
        for name, info in FUNCTION_CATEGORIES.items():
            node = HierarchyNode(
                id=f"function:category:{slugify(name)}",
                name=name,
                type=NodeType.CATEGORY.value,
                view_type=ViewType.FUNCTION,
                level=0,
                description=str(info["description"]),
                metadata={"priority": info["priority"]},
                generation=generation,
            )
            nodes[node.id] = node
            category_ids[name] = node.id
            root_ids.append(node.id)

        members: Dict[str, Set[str]] = {}
        for edge in snapshot.serves_purpose:
            if edge.from_vertex_id in models:
                members.setdefault(edge.to_vertex_id, set()).add(edge.from_vertex_id)

        for vertex in sorted(snapshot.service_functions, key=lambda v: v.id):
            category = vertex.get("category")
            if category not in category_ids:
                category = FUNCTION_CATEGORY_GENERAL
            parent = nodes[category_ids[category]]
            node = HierarchyNode(
                id=f"function:sf:{vertex.id}",
                name=vertex.name,
                type=NodeType.SERVICE_FUNCTION.value,
                view_type=ViewType.FUNCTION,
                level=1,
                parent_id=parent.id,
                asset_ids=sorted(members.get(vertex.id, ())),
                is_active=vertex.get("isActive", True) is not False,
                description=vertex.get("description", ""),
                metadata={
                    "vertex_id": vertex.id,
                    "organisation_id": vertex.organisation_id,
                    "category": category,
                    "priority": parent.metadata["priority"],
                },
                generation=generation,
            )
            nodes[node.id] = node
            parent.children_ids.append(node.id)

        return root_ids

    def _build_geographic(self, nodes, models, snapshot, generation) -> List[str]:
        locations = {vertex.id: vertex for vertex in snapshot.locations}

        parent_of: Dict[str, str] = {}
        for edge in sorted(snapshot.contains, key=lambda e: (e.from_vertex_id, e.id)):
            if edge.from_vertex_id not in locations or edge.to_vertex_id not in locations:
                continue
            if edge.to_vertex_id == edge.from_vertex_id:
                continue
            if edge.to_vertex_id in parent_of:
                if parent_of[edge.to_vertex_id] != edge.from_vertex_id:
                    logger.warning(f"Location {edge.to_vertex_id} has several parents; keeping {parent_of[edge.to_vertex_id]}")
                continue
            parent_of[edge.to_vertex_id] = edge.from_vertex_id

        children: Dict[str, List[str]] = {}
        for child, parent in parent_of.items():
            children.setdefault(parent, []).append(child)

        direct: Dict[str, Set[str]] = {}
        for edge in snapshot.located_at:
            if edge.from_vertex_id in models and edge.to_vertex_id in locations:
                direct.setdefault(edge.to_vertex_id, set()).add(edge.from_vertex_id)

        root_ids = sorted(location_id for location_id in locations if location_id not in parent_of)
        placed: Set[str] = set()
        pending = list(root_ids)

        while True:
            for root_id in pending:
                self._place_location(nodes, root_id, None, 0, locations, children, direct, placed, generation)
            unplaced = sorted(set(locations) - placed)
            if not unplaced:
                break
            # Only a CONTAINS cycle leaves locations unreachable from a root
            logger.warning(f"CONTAINS cycle among locations {unplaced}; promoting {unplaced[0]} to root")
            pending = [unplaced[0]]
            root_ids.append(unplaced[0])

        return [f"geographic:{location_id}" for location_id in root_ids]

    def _place_location(self, nodes, root_id, parent_node_id, root_level, locations, children, direct, placed, generation):
        stack = [(root_id, parent_node_id, root_level)]
        while stack:
            location_id, parent_id, level = stack.pop()
            if location_id in placed:
                continue
            placed.add(location_id)
            vertex = locations[location_id]
            node_type = vertex.get("type")
            node = HierarchyNode(
                id=f"geographic:{location_id}",
                name=vertex.name,
                type=node_type if node_type in (NodeType.REGION, NodeType.AREA, NodeType.SITE) else NodeType.SITE.value,
                view_type=ViewType.GEOGRAPHIC,
                level=level,
                parent_id=parent_id,
                is_active=vertex.get("isActive", True) is not False,
                metadata={"vertex_id": location_id, "organisation_id": vertex.organisation_id},
                generation=generation,
            )
            nodes[node.id] = node
            if parent_id is not None:
                nodes[parent_id].children_ids.append(node.id)

            child_ids = sorted(child for child in children.get(location_id, ()) if child not in placed)
            assets = sorted(direct.get(location_id, ()))
            if assets and child_ids:
                holder = HierarchyNode(
                    id=f"{node.id}::direct",
                    name=f"{vertex.name} (direct)",
                    type=NodeType.DIRECT.value,
                    view_type=ViewType.GEOGRAPHIC,
                    level=level + 1,
                    parent_id=node.id,
                    asset_ids=assets,
                    is_active=node.is_active,
                    metadata={"vertex_id": location_id},
                    generation=generation,
                )
                nodes[holder.id] = holder
                node.children_ids.append(holder.id)
            else:
                node.asset_ids = assets

            for child in reversed(child_ids):
                stack.append((child, node.id, level + 1))

    def _build_organisational(self, nodes, models, generation) -> List[str]:
        members: Dict[str, Set[str]] = {}
        for model in models.values():
            for value in model.departments:
                members.setdefault(value.strip().lower(), set()).add(model.id)

        root_ids = []
        for division, departments in ORGANISATIONAL_STRUCTURE.items():
            division_node = HierarchyNode(
                id=f"organisational:division:{slugify(division)}",
                name=division,
                type=NodeType.DIVISION.value,
                view_type=ViewType.ORGANISATIONAL,
                level=0,
                generation=generation,
            )
            nodes[division_node.id] = division_node
            root_ids.append(division_node.id)
            for department in departments:
                key = department_key(department)
                node = HierarchyNode(
                    id=f"organisational:department:{key}",
                    name=department,
                    type=NodeType.DEPARTMENT.value,
                    view_type=ViewType.ORGANISATIONAL,
                    level=1,
                    parent_id=division_node.id,
                    asset_ids=sorted(members.get(key, set()) | members.get(department.lower(), set())),
                    metadata={"department": key},
                    generation=generation,
                )
                nodes[node.id] = node
                division_node.children_ids.append(node.id)
        return root_ids

    def _build_funding(self, nodes, models, generation) -> List[str]:
        members: Dict[str, List[str]] = {name: [] for name in FUNDING_CATEGORIES}
        for model_id in sorted(models):
            for category in models[model_id].funding_categories():
                members[category].append(model_id)

        root_ids = []
        for name, info in FUNDING_CATEGORIES.items():
            node = HierarchyNode(
                id=f"funding:{slugify(name)}",
                name=name,
                type=NodeType.FUNDING_CATEGORY.value,
                view_type=ViewType.FUNDING,
                level=0,
                asset_ids=members[name],
                description=info["description"],
                metadata={"asset_types": [asset_type.value for asset_type in info["asset_types"]]},
                generation=generation,
            )
            nodes[node.id] = node
            root_ids.append(node.id)
        return root_ids


def aggregate(nodes: Dict[str, HierarchyNode], root_ids: Iterable[str], models: Dict[str, AssetModel]) -> None:
    """Roll counts and values up from leaves in one recursive pass.

    Leaves take their metrics from their matched assets; every other node
    is exactly the sum of its children.
    """
    def visit(node_id: str) -> None:
        node = nodes[node_id]
        if node.is_leaf:
            matched = [models[asset_id] for asset_id in node.asset_ids if asset_id in models]
            node.asset_count = len(matched)
            node.value_contribution = float(sum(model.value_contribution for model in matched))
            node.critical_asset_count = sum(1 for model in matched if model.is_critical)
            return
        node.asset_count = 0
        node.value_contribution = 0.0
        node.critical_asset_count = 0
        for child_id in node.children_ids:
            visit(child_id)
            child = nodes[child_id]
            node.asset_count += child.asset_count
            node.value_contribution += child.value_contribution
            node.critical_asset_count += child.critical_asset_count

    for root_id in root_ids:
        visit(root_id)
