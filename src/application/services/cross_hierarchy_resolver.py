"""Cross-Hierarchy Resolver.

Locates one asset in every hierarchy at once and names the fixed
relationships between the function hierarchy and the other three.
"""

import logging
from typing import Dict, List

from application.services.hierarchy_engine import HierarchyEngine
from domain.errors import NotFoundError
from domain.hierarchy_models import (
    AssetHierarchyContext,
    CrossHierarchyRelationship,
    HierarchyForest,
    HierarchyNode,
    ViewType,
)

logger = logging.getLogger(__name__)

# Function is the primary hierarchy: assets are anchored by purpose first
PRIMARY_HIERARCHY = ViewType.FUNCTION

RELATIONSHIPS = [
    (ViewType.GEOGRAPHIC, "spatial_distribution"),
    (ViewType.ORGANISATIONAL, "responsibility_mapping"),
    (ViewType.FUNDING, "value_allocation"),
]


def membership_paths(forest: HierarchyForest, view_type: ViewType, asset_id: str) -> List[HierarchyNode]:
    """Every node on a root → leaf path to a leaf holding the asset.

    Deduplicated and ordered by level, then id.
    """
    path_nodes: Dict[str, HierarchyNode] = {}
    for node in forest.nodes_for(view_type):
        if asset_id not in node.asset_ids:
            continue
        for ancestor in forest.ancestors_of(node.id):
            path_nodes[ancestor.id] = ancestor
        path_nodes[node.id] = node
    return sorted(path_nodes.values(), key=lambda node: (node.level, node.id))


class CrossHierarchyResolver:
    """Resolves an asset's context across all hierarchies."""

    def __init__(self, engine: HierarchyEngine):
        self.engine = engine

    def get_asset_hierarchy_context(self, asset_id: str) -> AssetHierarchyContext:
        """Membership paths in every hierarchy plus the cross-hierarchy relationships.

        Raises:
            NotFoundError: If the asset is not registered
        """
        forest = self.engine.forest
        if asset_id not in self.engine.asset_models:
            raise NotFoundError("AssetModel", asset_id)

        hierarchies = {
            view_type: membership_paths(forest, view_type, asset_id)
            for view_type in ViewType
        }

        relationships = [
            CrossHierarchyRelationship(
                from_hierarchy=PRIMARY_HIERARCHY.value,
                to_hierarchy=view_type.value,
                relationship=name,
            )
            for view_type, name in RELATIONSHIPS
            if hierarchies[PRIMARY_HIERARCHY] and hierarchies[view_type]
        ]

        logger.debug(
            f"Asset {asset_id} context: "
            + ", ".join(f"{vt.value}={len(nodes)}" for vt, nodes in hierarchies.items())
        )
        return AssetHierarchyContext(
            asset_id=asset_id,
            hierarchies=hierarchies,
            primary_hierarchy=PRIMARY_HIERARCHY.value,
            cross_hierarchy_relationships=relationships,
            generation=forest.generation,
        )
