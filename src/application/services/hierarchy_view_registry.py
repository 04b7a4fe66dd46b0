"""Hierarchy View Registry.

Named view configurations and the traversal that answers "give me the
nodes for view V". View management only edits configuration; it never
rebuilds the forest, so a view always traverses whatever forest is
currently published.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from application.services.hierarchy_engine import HierarchyEngine
from domain.asset_models import get_service_category
from domain.errors import NotFoundError, ValidationError
from domain.hierarchy_models import (
    HierarchyForest,
    HierarchyNode,
    HierarchyStatistics,
    HierarchyView,
    SortingStrategy,
)

logger = logging.getLogger(__name__)


def sort_nodes(nodes: List[HierarchyNode], strategy: SortingStrategy) -> List[HierarchyNode]:
    """Sort per strategy; ties always break on ascending id."""
    if strategy == SortingStrategy.VALUE:
        return sorted(nodes, key=lambda node: (-node.value_contribution, node.id))
    if strategy == SortingStrategy.PRIORITY:
        return sorted(nodes, key=lambda node: (-node.priority, node.id))
    return sorted(nodes, key=lambda node: (node.name, node.id))


class HierarchyViewRegistry:
    """Registry of HierarchyView configurations over one engine."""

    def __init__(self, engine: HierarchyEngine, views: Optional[Iterable[HierarchyView]] = None):
        self.engine = engine
        self._views: Dict[str, HierarchyView] = {}
        for view in views or []:
            self.create_view(view)

    def create_view(self, view: HierarchyView) -> HierarchyView:
        """Register a new view.

        Raises:
            ValidationError: If the view is malformed or its id is taken
        """
        view.validate()
        if view.id in self._views:
            raise ValidationError(f"View {view.id} already exists")
        self._views[view.id] = view
        logger.info(f"Created hierarchy view {view.id} ({view.view_type.value})")
        return view

    def update_view(self, view_id: str, patch: Mapping[str, Any]) -> HierarchyView:
        """Apply a partial update; the stored view changes only if the result validates."""
        updated = self.get_view(view_id).apply_patch(patch)
        self._views[view_id] = updated
        logger.info(f"Updated hierarchy view {view_id}: {sorted(patch)}")
        return updated

    def get_view(self, view_id: str) -> HierarchyView:
        view = self._views.get(view_id)
        if view is None:
            raise NotFoundError("HierarchyView", view_id)
        return view

    def list_views(self) -> List[HierarchyView]:
        return [self._views[view_id] for view_id in sorted(self._views)]

    def delete_view(self, view_id: str) -> None:
        self.get_view(view_id)
        del self._views[view_id]
        logger.info(f"Deleted hierarchy view {view_id}")

    def _roots(self, view: HierarchyView, forest: HierarchyForest) -> List[HierarchyNode]:
        if not view.root_node_ids:
            return forest.root_nodes(view.view_type)
        roots = []
        for node_id in view.root_node_ids:
            node = forest.get(node_id)
            if node is None:
                logger.warning(f"View {view.id}: root node {node_id} not in generation {forest.generation}")
                continue
            roots.append(node)
        return roots

    def _traverse(self, view: HierarchyView, forest: HierarchyForest) -> List[Tuple[HierarchyNode, int]]:
        """Depth-first collection of (node, depth below its root).

        The visited set keeps an accidental cycle from looping; nodes deeper
        than `max_depth` below their root are never collected.
        """
        collected: List[Tuple[HierarchyNode, int]] = []
        visited: Set[str] = set()
        for root in self._roots(view, forest):
            stack = [(root, 0)]
            while stack:
                node, depth = stack.pop()
                if node.id in visited or depth > view.max_depth:
                    continue
                visited.add(node.id)
                collected.append((node, depth))
                if depth < view.max_depth:
                    for child in reversed(forest.children_of(node.id)):
                        stack.append((child, depth + 1))
        return collected

    def get_hierarchy_for_view(self, view_id: str) -> List[HierarchyNode]:
        """Nodes of a view: traversed, filtered and sorted.

        Raises:
            NotFoundError: If the view does not exist
        """
        view = self.get_view(view_id)
        forest = self.engine.forest
        nodes = [node for node, _ in self._traverse(view, forest)]

        if not view.filters.get("includeInactive", False):
            nodes = [node for node in nodes if node.is_active]
        min_value = view.filters.get("minValue")
        if min_value is not None:
            nodes = [node for node in nodes if node.value_contribution >= min_value]

        return sort_nodes(nodes, view.sorting_strategy)

    def get_hierarchy_statistics(self, view_id: str) -> HierarchyStatistics:
        """Totals over the view's root nodes plus depth and distribution figures.

        Raises:
            NotFoundError: If the view does not exist
        """
        view = self.get_view(view_id)
        forest = self.engine.forest
        models = self.engine.asset_models
        traversed = self._traverse(view, forest)

        roots = self._roots(view, forest)
        root_ids = {root.id for root in roots}
        # A root nested under another root would be counted twice
        top_roots = [
            root for root in roots
            if not any(ancestor.id in root_ids for ancestor in forest.ancestors_of(root.id))
        ]

        asset_ids: Set[str] = set()
        visited: Set[str] = set()
        stack = [root.id for root in top_roots]
        while stack:
            node_id = stack.pop()
            if node_id in visited:
                continue
            visited.add(node_id)
            node = forest.get(node_id)
            if node is None:
                continue
            asset_ids.update(node.asset_ids)
            stack.extend(node.children_ids)

        function_distribution: Dict[str, int] = {}
        purpose_distribution: Dict[str, int] = {}
        for asset_id in sorted(asset_ids):
            model = models.get(asset_id)
            if model is None:
                continue
            category = get_service_category(model.service_purpose)
            function_distribution[category] = function_distribution.get(category, 0) + 1
            purpose_distribution[model.service_purpose] = purpose_distribution.get(model.service_purpose, 0) + 1

        return HierarchyStatistics(
            view_id=view.id,
            total_nodes=len(traversed),
            total_assets=sum(root.asset_count for root in top_roots),
            total_value=sum(root.value_contribution for root in top_roots),
            average_depth=sum(depth for _, depth in traversed) / len(traversed) if traversed else 0.0,
            function_distribution=function_distribution,
            purpose_distribution=purpose_distribution,
            generation=forest.generation,
        )
