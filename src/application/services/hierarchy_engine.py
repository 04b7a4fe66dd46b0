"""Hierarchy Engine.

Owns the registered asset models and the live hierarchy forest.

Rebuilds are single-writer: they serialize on one asyncio.Lock, build a
complete new forest off to the side and publish it by swapping a single
reference. Readers never take the lock; they capture `forest` once and
work against that generation. A failed rebuild raises RebuildFailure and
leaves the previous forest (and model set) in place.
"""

import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from application.services.hierarchy_builder import HierarchyBuilder, load_graph_snapshot
from domain.asset_models import AssetModel
from domain.errors import NotFoundError, RebuildFailure
from domain.hierarchy_models import HierarchyForest, HierarchyNode
from domain.stores import AssetFilter, AssetStore, GraphStore

logger = logging.getLogger(__name__)

MODEL_LOAD_PAGE_SIZE = 500


class HierarchyEngine:
    """Builds and publishes hierarchy forests."""

    def __init__(
        self,
        graph_store: GraphStore,
        builder: Optional[HierarchyBuilder] = None,
        organisation_id: Optional[str] = None,
    ):
        """Initialize the engine.

        Args:
            graph_store: Source of anchors and edges for every rebuild
            builder: Forest builder
            organisation_id: Restrict anchors to one organisation (all if None)
        """
        self.graph_store = graph_store
        self.builder = builder or HierarchyBuilder()
        self.organisation_id = organisation_id
        self._forest = HierarchyForest.empty()
        self._models: Dict[str, AssetModel] = {}
        self._lock = asyncio.Lock()
        self.rebuild_count = 0
        self.failed_rebuilds = 0

    @property
    def forest(self) -> HierarchyForest:
        """The currently published forest."""
        return self._forest

    @property
    def asset_models(self) -> Mapping[str, AssetModel]:
        """Registered models as of the published forest."""
        return dict(self._models)

    @property
    def is_rebuilding(self) -> bool:
        return self._lock.locked()

    async def _rebuild(self, update: Optional[Callable[[Dict[str, AssetModel]], None]] = None) -> HierarchyForest:
        async with self._lock:
            models = dict(self._models)
            if update is not None:
                update(models)

            generation = self._forest.generation + 1
            try:
                snapshot = await load_graph_snapshot(self.graph_store, self.organisation_id)
                forest = self.builder.build(models.values(), snapshot, generation)
            except Exception as e:
                self.failed_rebuilds += 1
                logger.error(f"Hierarchy rebuild {generation} failed: {e}", exc_info=True)
                raise RebuildFailure(f"Hierarchy rebuild {generation} failed: {e}", cause=e) from e

            self._models = models
            self._forest = forest
            self.rebuild_count += 1
            return forest

    async def rebuild_all(self, asset_models: Optional[Iterable[AssetModel]] = None) -> HierarchyForest:
        """Rebuild every hierarchy.

        Args:
            asset_models: Replacement model set; the registered set is kept if None

        Raises:
            RebuildFailure: If construction fails (previous forest stays live)
        """
        if asset_models is None:
            return await self._rebuild()

        replacement = {model.id: model for model in asset_models}

        def replace_all(models: Dict[str, AssetModel]) -> None:
            models.clear()
            models.update(replacement)

        return await self._rebuild(replace_all)

    async def register_asset_model(self, model: AssetModel) -> HierarchyForest:
        """Register (or re-register) an asset model and rebuild."""
        def add(models: Dict[str, AssetModel]) -> None:
            models[model.id] = model

        forest = await self._rebuild(add)
        logger.info(f"Registered asset model {model.id} (generation {forest.generation})")
        return forest

    async def unregister_asset_model(self, asset_id: str) -> HierarchyForest:
        """Unregister an asset model and rebuild.

        Raises:
            NotFoundError: If the model is not registered
        """
        def remove(models: Dict[str, AssetModel]) -> None:
            if asset_id not in models:
                raise NotFoundError("AssetModel", asset_id)
            del models[asset_id]

        forest = await self._rebuild(remove)
        logger.info(f"Unregistered asset model {asset_id} (generation {forest.generation})")
        return forest

    async def load_asset_models(
        self,
        asset_store: AssetStore,
        organisation_id: Optional[str] = None,
        replace: bool = False,
    ) -> HierarchyForest:
        """Register every relational asset (optionally one organisation) with a single rebuild.

        Args:
            asset_store: Relational store to read from
            organisation_id: Only load this organisation's assets
            replace: Also drop registered models in scope that were not loaded
        """
        loaded: List[AssetModel] = []
        offset = 0
        asset_filter = AssetFilter(organisation_id=organisation_id)
        while True:
            page = await asset_store.find_assets(asset_filter, offset, MODEL_LOAD_PAGE_SIZE)
            loaded.extend(AssetModel.from_asset(asset) for asset in page)
            if len(page) < MODEL_LOAD_PAGE_SIZE:
                break
            offset += len(page)

        def merge(models: Dict[str, AssetModel]) -> None:
            if replace:
                stale = [
                    model_id for model_id, model in models.items()
                    if organisation_id is None or model.organisation_id == organisation_id
                ]
                for model_id in stale:
                    del models[model_id]
            for model in loaded:
                models[model.id] = model

        forest = await self._rebuild(merge)
        logger.info(f"Loaded {len(loaded)} asset models (generation {forest.generation})")
        return forest

    def get_hierarchy_node(self, node_id: str) -> HierarchyNode:
        """Return a node from the published forest.

        Raises:
            NotFoundError: If no such node exists
        """
        node = self._forest.get(node_id)
        if node is None:
            raise NotFoundError("HierarchyNode", node_id)
        return node
