"""Asset Graph Operations.

Graph-side building blocks used by the sync service: asset vertex
properties, anchor vertices (ServiceFunction, Location chain) and the
edges that hang assets off them.

Anchors are looked up by (label, name, organisationId), Locations also by
type, and created at most once. Two assets discovering the same missing
anchor concurrently serialize on a per-key lock and re-check after
acquiring it; the deterministic anchor ids plus the store's unique id
constraint cover writers in other processes.

Usage:
    operations = AssetGraphOperations(graph_store, asset_store)
    sf_id, created = await operations.ensure_service_function(asset)
    leaf_id = await operations.ensure_location_chain(asset)
"""

import asyncio
import logging
import re
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from domain.asset_models import SERVICE_PURPOSE_TAG, Asset, get_service_category
from domain.errors import NotFoundError, ValidationError
from domain.graph_models import EdgeLabel, Vertex, VertexLabel, validate_vertex_properties
from domain.stores import AssetStore, GraphStore
from domain.sync_models import RecordOutcome

logger = logging.getLogger(__name__)


def _id_fragment(value: str) -> str:
    return re.sub(r"\s+", "_", value.strip())


def service_function_id(organisation_id: str, purpose: str) -> str:
    """Deterministic ServiceFunction vertex id."""
    return f"sf_{organisation_id}_{_id_fragment(purpose)}"


def location_id(organisation_id: str, location_type: str, name: str) -> str:
    """Deterministic Location vertex id. A region and an area may share a name."""
    return f"loc_{organisation_id}_{location_type}_{_id_fragment(name)}"


class KeyedLocks:
    """One asyncio.Lock per key, held only while someone uses it.

    A key's lock is dropped once nothing holds or awaits it, so the map
    stays as small as the set of keys currently contended.
    """

    def __init__(self):
        self._locks: Dict[Tuple[str, ...], asyncio.Lock] = {}
        self._users: Dict[Tuple[str, ...], int] = {}

    @asynccontextmanager
    async def lock(self, *key: str) -> AsyncIterator[None]:
        key = tuple(key)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class AssetGraphOperations:
    """Anchor and edge management for asset vertices."""

    def __init__(
        self,
        graph_store: GraphStore,
        asset_store: Optional[AssetStore] = None,
        locks: Optional[KeyedLocks] = None,
    ):
        """Initialize the operations.

        Args:
            graph_store: Graph store holding asset and anchor vertices
            asset_store: Relational store, needed only for explicit assignment
            locks: Anchor creation locks, shared by everything writing anchors
        """
        self.graph_store = graph_store
        self.asset_store = asset_store
        self.locks = locks or KeyedLocks()

    @staticmethod
    def build_asset_properties(asset: Asset) -> Dict[str, Any]:
        """Derive Asset vertex properties from the current relational record."""
        return {
            "organisationId": asset.organisation_id,
            "name": asset.name or asset.asset_number or asset.id,
            "assetNumber": asset.asset_number,
            "assetType": asset.asset_type,
            "servicePurpose": asset.service_purpose,
            "criticality": asset.criticality.value,
            "condition": asset.condition or "Unknown",
            "status": asset.status,
            "currentValue": float(asset.current_value or 0.0),
            "isActive": asset.is_active,
            "lastSyncedAt": datetime.now().isoformat(),
        }

    async def _find_anchor(
        self, label: str, name: str, organisation_id: str, match: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        property_filter = {**(match or {}), "name": name, "organisationId": organisation_id}
        matches = await self.graph_store.get_vertices_by_label(label, property_filter)
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning(f"{len(matches)} {label} vertices named '{name}' in {organisation_id}")
        return min(vertex.id for vertex in matches)

    async def find_or_create_anchor(
        self,
        label: str,
        name: str,
        organisation_id: str,
        properties: Optional[Dict[str, Any]] = None,
        dry_run: bool = False,
        match: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Optional[str], bool]:
        """Find an anchor vertex by (label, name, organisationId) or create it.

        Args:
            label: Anchor vertex label
            name: Anchor name
            organisation_id: Owning organisation
            properties: Extra properties for a newly created vertex
            dry_run: Only look up; a missing anchor is reported as (None, True)
            match: Extra properties that must also match, e.g. a Location's type

        Returns:
            (vertex id, whether it was (or would be) created)
        """
        existing = await self._find_anchor(label, name, organisation_id, match)
        if existing is not None:
            return existing, False
        if dry_run:
            return None, True

        match_key = tuple(f"{key}={value}" for key, value in sorted((match or {}).items()))
        async with self.locks.lock(label, name, organisation_id, *match_key):
            existing = await self._find_anchor(label, name, organisation_id, match)
            if existing is not None:
                return existing, False

            vertex_properties = dict(properties or {})
            vertex_properties.update(match or {})
            vertex_properties.update({"name": name, "organisationId": organisation_id})
            validate_vertex_properties(label, vertex_properties)
            try:
                vertex_id = await self.graph_store.add_vertex(label, vertex_properties)
            except ValidationError:
                # Same deterministic id written by another process
                existing = await self._find_anchor(label, name, organisation_id, match)
                if existing is None:
                    raise
                return existing, False

        logger.debug(f"Created {label} anchor '{name}' ({vertex_id})")
        return vertex_id, True

    async def ensure_service_function(
        self, asset: Asset, outcome: Optional[RecordOutcome] = None, dry_run: bool = False
    ) -> Optional[str]:
        """Find or create the ServiceFunction for the asset's service purpose."""
        purpose = asset.service_purpose
        vertex_id, created = await self.find_or_create_anchor(
            VertexLabel.SERVICE_FUNCTION.value,
            purpose,
            asset.organisation_id,
            properties={
                "id": service_function_id(asset.organisation_id, purpose),
                "category": get_service_category(purpose),
                "description": f"{purpose} service function",
            },
            dry_run=dry_run,
        )
        if created and outcome is not None:
            if dry_run:
                outcome.planned.append(f"create ServiceFunction '{purpose}'")
            else:
                outcome.anchors_created += 1
        return vertex_id

    async def ensure_location_chain(
        self, asset: Asset, outcome: Optional[RecordOutcome] = None, dry_run: bool = False
    ) -> Optional[str]:
        """Find or create the Region → Area → Site chain for the asset.

        Parents are resolved by name within this pass, so the call does not
        depend on the order in which assets are synced.

        Returns:
            Id of the chain's leaf, or None when the asset has no address
            fields (or the leaf would be created in a dry run)
        """
        ids_by_name: Dict[str, Optional[str]] = {}
        leaf_id: Optional[str] = None

        for link in asset.location_chain():
            vertex_id, created = await self.find_or_create_anchor(
                VertexLabel.LOCATION.value,
                link.name,
                asset.organisation_id,
                properties={
                    "id": location_id(asset.organisation_id, link.type.value, link.name),
                    "level": link.level,
                },
                dry_run=dry_run,
                match={"type": link.type.value},
            )
            if created and outcome is not None:
                if dry_run:
                    outcome.planned.append(f"create Location '{link.name}' ({link.type.value})")
                else:
                    outcome.anchors_created += 1

            parent_id = ids_by_name.get(link.parent_name) if link.parent_name else None
            if parent_id and vertex_id and parent_id != vertex_id:
                await self._ensure_contains(parent_id, vertex_id, link.parent_name, link.name, outcome, dry_run)
            elif link.parent_name and dry_run and outcome is not None:
                outcome.planned.append(f"link CONTAINS '{link.parent_name}' -> '{link.name}'")

            ids_by_name[link.name] = vertex_id
            leaf_id = vertex_id

        return leaf_id

    async def _ensure_contains(
        self,
        parent_id: str,
        child_id: str,
        parent_name: str,
        child_name: str,
        outcome: Optional[RecordOutcome],
        dry_run: bool,
    ) -> None:
        async with self.locks.lock(EdgeLabel.CONTAINS.value, parent_id, child_id):
            contains = await self.graph_store.get_edges(
                from_vertex_id=parent_id, to_vertex_id=child_id, label=EdgeLabel.CONTAINS.value
            )
            if contains:
                return
            if dry_run:
                if outcome is not None:
                    outcome.planned.append(f"link CONTAINS '{parent_name}' -> '{child_name}'")
                return
            await self.graph_store.add_edge(EdgeLabel.CONTAINS.value, parent_id, child_id)
        if outcome is not None:
            outcome.edges_created += 1

    async def link_exclusive(
        self,
        asset_id: str,
        label: str,
        target_id: Optional[str],
        outcome: Optional[RecordOutcome] = None,
        dry_run: bool = False,
    ) -> bool:
        """Make `target_id` the only `label` edge out of the asset.

        Other outgoing edges with the same label are removed; a None target
        removes them all.

        Returns:
            True if an edge was (or would be) added
        """
        edges = await self.graph_store.get_edges(from_vertex_id=asset_id, label=label)
        kept = False
        for edge in edges:
            if edge.to_vertex_id == target_id and not kept:
                kept = True
                continue
            if dry_run:
                if outcome is not None:
                    outcome.planned.append(f"unlink {label} -> {edge.to_vertex_id}")
                continue
            await self.graph_store.delete_edge(edge.id)

        if kept or target_id is None:
            return False
        if dry_run:
            if outcome is not None:
                outcome.planned.append(f"link {label} -> {target_id}")
            return True
        await self.graph_store.add_edge(label, asset_id, target_id, {"linkedAt": datetime.now().isoformat()})
        if outcome is not None:
            outcome.edges_created += 1
        return True

    async def link_anchors(self, asset: Asset, outcome: RecordOutcome, dry_run: bool = False) -> None:
        """Create/find the asset's anchors and relink the asset to them."""
        sf_id = await self.ensure_service_function(asset, outcome, dry_run)
        if sf_id is None:
            outcome.planned.append(f"link SERVES_PURPOSE -> '{asset.service_purpose}'")
        else:
            await self.link_exclusive(asset.id, EdgeLabel.SERVES_PURPOSE.value, sf_id, outcome, dry_run)

        chain = asset.location_chain()
        leaf_id = await self.ensure_location_chain(asset, outcome, dry_run)
        if chain and leaf_id is None:
            outcome.planned.append(f"link LOCATED_AT -> '{chain[-1].name}'")
        else:
            await self.link_exclusive(asset.id, EdgeLabel.LOCATED_AT.value, leaf_id, outcome, dry_run)

    async def assign_asset_to_service_function(self, asset_id: str, service_purpose: str) -> str:
        """Explicitly assign an asset to a service function.

        Writes the `service-purpose:` tag to the relational record (so later
        syncs keep the assignment) and relinks the asset vertex.

        Returns:
            The ServiceFunction vertex id

        Raises:
            NotFoundError: If the asset record or its vertex does not exist
        """
        if self.asset_store is None:
            raise ValidationError("Explicit assignment needs an asset store")
        if not service_purpose.strip():
            raise ValidationError("Service purpose must not be empty")

        asset = await self.asset_store.get_asset(asset_id)
        if await self.graph_store.get_vertex(asset_id) is None:
            raise NotFoundError("Vertex", asset_id)

        tags = [tag for tag in asset.tags if not tag.startswith(SERVICE_PURPOSE_TAG)]
        tags.append(f"{SERVICE_PURPOSE_TAG}{service_purpose.strip()}")
        await self.asset_store.update_asset_tags(asset_id, tags)
        asset.tags = tags

        sf_id = await self.ensure_service_function(asset)
        await self.graph_store.update_vertex_properties(
            asset_id, {"servicePurpose": asset.service_purpose}
        )
        await self.link_exclusive(asset_id, EdgeLabel.SERVES_PURPOSE.value, sf_id)
        logger.info(f"Assigned asset {asset_id} to service function {sf_id}")
        return sf_id

    async def get_assets_by_service_function(self, service_function_id: str) -> List[Vertex]:
        """Asset vertices linked to a ServiceFunction."""
        edges = await self.graph_store.get_edges(
            to_vertex_id=service_function_id, label=EdgeLabel.SERVES_PURPOSE.value
        )
        return await self._endpoints([edge.from_vertex_id for edge in edges])

    async def get_assets_by_location(self, location_id: str, include_descendants: bool = True) -> List[Vertex]:
        """Asset vertices located at a Location (and, optionally, anywhere below it)."""
        location_ids = [location_id]
        if include_descendants:
            visited = {location_id}
            frontier = [location_id]
            while frontier:
                current = frontier.pop()
                for edge in await self.graph_store.get_edges(
                    from_vertex_id=current, label=EdgeLabel.CONTAINS.value
                ):
                    if edge.to_vertex_id not in visited:
                        visited.add(edge.to_vertex_id)
                        location_ids.append(edge.to_vertex_id)
                        frontier.append(edge.to_vertex_id)

        asset_ids: List[str] = []
        for current in location_ids:
            edges = await self.graph_store.get_edges(to_vertex_id=current, label=EdgeLabel.LOCATED_AT.value)
            asset_ids.extend(edge.from_vertex_id for edge in edges)
        return await self._endpoints(asset_ids)

    async def get_asset_hierarchy_path(self, asset_id: str) -> Dict[str, Any]:
        """The asset's service functions and its location path from root to leaf.

        Raises:
            NotFoundError: If the asset vertex does not exist
        """
        vertex = await self.graph_store.get_vertex(asset_id)
        if vertex is None:
            raise NotFoundError("Vertex", asset_id)

        sf_edges = await self.graph_store.get_edges(
            from_vertex_id=asset_id, label=EdgeLabel.SERVES_PURPOSE.value
        )
        service_functions = await self._endpoints([edge.to_vertex_id for edge in sf_edges])

        location_path: List[Vertex] = []
        located = await self.graph_store.get_edges(from_vertex_id=asset_id, label=EdgeLabel.LOCATED_AT.value)
        if located:
            current_id: Optional[str] = located[0].to_vertex_id
            visited = set()
            while current_id and current_id not in visited:
                visited.add(current_id)
                location = await self.graph_store.get_vertex(current_id)
                if location is None:
                    break
                location_path.append(location)
                parents = await self.graph_store.get_edges(
                    to_vertex_id=current_id, label=EdgeLabel.CONTAINS.value
                )
                current_id = parents[0].from_vertex_id if parents else None
            location_path.reverse()

        return {
            "asset": vertex.to_dict(),
            "service_functions": [sf.to_dict() for sf in service_functions],
            "location_path": [location.to_dict() for location in location_path],
        }

    async def _endpoints(self, vertex_ids: List[str]) -> List[Vertex]:
        vertices = []
        for vertex_id in sorted(set(vertex_ids)):
            vertex = await self.graph_store.get_vertex(vertex_id)
            if vertex is None:
                logger.warning(f"Edge endpoint {vertex_id} is missing")
                continue
            vertices.append(vertex)
        return vertices
