"""Data Sync Service.

Projects relational asset records into the graph store and keeps the two
consistent:
- sync_assets pages the relational store and upserts one vertex per asset,
  plus its ServiceFunction and Location anchors and edges
- cleanup_orphans deletes Asset vertices whose record no longer exists
- sync_service_functions_from_graph writes graph assignments back as tags
- check_consistency reports dangling edges, orphans and cycles

Per-record failures are collected in the result and never abort a batch.
Sync is safe to re-run; cancellation stops issuing new records but keeps
everything already written.

Usage:
    service = DataSyncService(asset_store, graph_store)
    result = await service.sync_assets(SyncOptions(batch_size=50))
    result = await service.cleanup_orphans("org-1")
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from application.services.asset_graph_operations import AssetGraphOperations
from domain.asset_models import SERVICE_PURPOSE_TAG, Asset
from domain.errors import DanglingEdgeError, NotFoundError, OrphanDetected, ValidationError
from domain.graph_models import EdgeLabel, VertexLabel, validate_vertex_properties
from domain.stores import AssetFilter, AssetStore, GraphStore
from domain.sync_models import ConsistencyReport, DanglingEdge, RecordOutcome, SyncOptions, SyncResult
from infrastructure.store_calls import call_with_timeout

logger = logging.getLogger(__name__)

# Page size used when collecting relational ids for orphan detection
ID_SCAN_PAGE_SIZE = 500


def find_cycle_vertices(adjacency: Dict[str, Iterable[str]]) -> List[str]:
    """Vertices lying on at least one directed cycle.

    Iterative three-colour DFS; every back edge closes a cycle made of the
    current path from the back edge's target onwards.
    """
    white, gray, black = 0, 1, 2
    color: Dict[str, int] = {}
    members: Set[str] = set()

    for start in sorted(adjacency):
        if color.get(start, white) != white:
            continue
        color[start] = gray
        path = [start]
        stack = [iter(sorted(adjacency.get(start, ())))]
        while stack:
            child = next(stack[-1], None)
            if child is None:
                color[path.pop()] = black
                stack.pop()
                continue
            state = color.get(child, white)
            if state == gray:
                members.update(path[path.index(child):])
            elif state == white:
                color[child] = gray
                path.append(child)
                stack.append(iter(sorted(adjacency.get(child, ()))))

    return sorted(members)


class DataSyncService:
    """Relational → graph synchronization and reconciliation."""

    def __init__(
        self,
        asset_store: AssetStore,
        graph_store: GraphStore,
        operations: Optional[AssetGraphOperations] = None,
    ):
        """Initialize the service.

        Args:
            asset_store: Authoritative relational store
            graph_store: Graph mirror
            operations: Anchor/edge operations (built over the same stores if omitted)
        """
        self.asset_store = asset_store
        self.graph_store = graph_store
        self.operations = operations or AssetGraphOperations(graph_store, asset_store)

    async def sync_assets(
        self,
        options: Optional[SyncOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SyncResult:
        """Sync every relational asset (optionally one organisation) into the graph.

        Args:
            options: Batch size, dry run, force update, concurrency and timeouts
            cancel_event: When set, no further records are started

        Returns:
            SyncResult; `success` is False only if a page could not be read
        """
        options = options or SyncOptions()
        options.validate()

        result = SyncResult(dry_run=options.dry_run)
        asset_filter = AssetFilter(organisation_id=options.organisation_id)
        semaphore = asyncio.Semaphore(options.max_concurrency)
        offset = 0
        batch_number = 0

        logger.info(
            f"Starting asset sync (batch_size={options.batch_size}, dry_run={options.dry_run}, "
            f"force_update={options.force_update}, organisation={options.organisation_id or 'all'})"
        )

        while True:
            if cancel_event is not None and cancel_event.is_set():
                self._mark_cancelled(result)
                break

            try:
                page = await self.asset_store.find_assets(asset_filter, offset, options.batch_size)
            except Exception as e:
                logger.error(f"Cannot read asset page at offset {offset}: {e}", exc_info=True)
                result.fail(f"Failed to read assets at offset {offset}: {e}")
                break

            if not page:
                break

            batch_number += 1
            await asyncio.gather(*(
                self._sync_record(asset, options, semaphore, result, cancel_event)
                for asset in page
            ))
            logger.info(
                f"Batch {batch_number}: {len(page)} assets, "
                f"{result.records_processed} processed, {len(result.errors)} errors so far"
            )

            offset += len(page)
            if len(page) < options.batch_size:
                break

        result.finish()
        logger.info(
            f"Asset sync finished: {result.records_processed} processed, "
            f"{len(result.errors)} errors, cancelled={result.cancelled}"
        )
        return result

    def _mark_cancelled(self, result: SyncResult) -> None:
        if not result.cancelled:
            result.cancelled = True
            result.warnings.append(
                f"Sync cancelled after {result.records_processed} records; written work is kept"
            )
            logger.warning("Asset sync cancelled")

    async def _sync_record(
        self,
        asset: Asset,
        options: SyncOptions,
        semaphore: asyncio.Semaphore,
        result: SyncResult,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        async with semaphore:
            if cancel_event is not None and cancel_event.is_set():
                self._mark_cancelled(result)
                return
            try:
                outcome = await call_with_timeout(
                    self.sync_asset(asset, options.force_update, options.dry_run),
                    options.record_timeout_seconds,
                    f"sync asset {asset.id}",
                )
            except Exception as e:
                logger.warning(f"Failed to sync asset {asset.id}: {e}")
                result.add_record_error(asset.id, e)
                return

        result.records_processed += 1
        result.vertices_created += int(outcome.vertex_created)
        result.vertices_updated += int(outcome.vertex_updated)
        result.anchors_created += outcome.anchors_created
        result.edges_created += outcome.edges_created
        if options.dry_run:
            result.warnings.extend(f"{asset.id}: would {step}" for step in outcome.planned)

    async def sync_asset(self, asset: Asset, force_update: bool = False, dry_run: bool = False) -> RecordOutcome:
        """Sync a single asset record.

        An existing vertex is updated in place unless `force_update` is set,
        in which case it is deleted and recreated. Either way the asset is
        relinked to its current anchors.

        Returns:
            RecordOutcome describing what was (or would be) done
        """
        outcome = RecordOutcome(asset_id=asset.id)
        properties = self.operations.build_asset_properties(asset)
        validate_vertex_properties(VertexLabel.ASSET.value, properties)

        existing = await self.graph_store.get_vertex(asset.id)
        if existing is not None and existing.label != VertexLabel.ASSET.value:
            raise ValidationError(f"Vertex {asset.id} exists with label {existing.label}")

        if existing is not None and not force_update:
            outcome.action = "updated"
            if dry_run:
                outcome.planned.append("update vertex properties")
            else:
                await self.graph_store.update_vertex_properties(asset.id, properties)
                outcome.vertex_updated = True
        else:
            outcome.action = "recreated" if existing is not None else "created"
            if dry_run:
                outcome.planned.append(f"{'recreate' if existing else 'create'} vertex")
            else:
                if existing is not None:
                    await self.graph_store.delete_vertex(asset.id)
                await self.graph_store.add_vertex(VertexLabel.ASSET.value, {"id": asset.id, **properties})
                outcome.vertex_created = True

        await self.operations.link_anchors(asset, outcome, dry_run)
        logger.debug(f"Synced asset {asset.id}: {outcome.action}")
        return outcome

    async def _relational_ids(self, organisation_id: Optional[str]) -> Set[str]:
        ids: Set[str] = set()
        offset = 0
        asset_filter = AssetFilter(organisation_id=organisation_id)
        while True:
            page = await self.asset_store.find_assets(asset_filter, offset, ID_SCAN_PAGE_SIZE)
            ids.update(asset.id for asset in page)
            if len(page) < ID_SCAN_PAGE_SIZE:
                return ids
            offset += len(page)

    async def _find_orphans(self, organisation_id: Optional[str]) -> List[str]:
        relational_ids = await self._relational_ids(organisation_id)
        property_filter = {"organisationId": organisation_id} if organisation_id else None
        vertices = await self.graph_store.get_vertices_by_label(VertexLabel.ASSET.value, property_filter)
        return sorted(vertex.id for vertex in vertices if vertex.id not in relational_ids)

    async def cleanup_orphans(self, organisation_id: str, dry_run: bool = False) -> SyncResult:
        """Delete Asset vertices of an organisation that have no relational record.

        Deleting a vertex cascades its edges. Running twice in a row finds
        nothing the second time.

        Returns:
            SyncResult with `records_processed` = vertices deleted and the
            orphan ids found
        """
        result = SyncResult(dry_run=dry_run)
        try:
            orphans = await self._find_orphans(organisation_id)
        except Exception as e:
            logger.error(f"Orphan scan failed for {organisation_id}: {e}", exc_info=True)
            result.fail(f"Orphan scan failed: {e}")
            return result.finish()

        for orphan_id in orphans:
            notice = OrphanDetected(orphan_id, organisation_id)
            result.orphan_ids.append(orphan_id)
            if dry_run:
                result.warnings.append(f"{notice}: would delete")
                continue
            try:
                await self.graph_store.delete_vertex(orphan_id)
                result.records_processed += 1
            except Exception as e:
                logger.warning(f"Failed to delete orphan {orphan_id}: {e}")
                result.add_record_error(orphan_id, e)

        logger.info(
            f"Orphan cleanup for {organisation_id}: {len(orphans)} found, "
            f"{result.records_processed} deleted (dry_run={dry_run})"
        )
        return result.finish()

    async def sync_service_functions_from_graph(self, organisation_id: str) -> SyncResult:
        """Write graph service-function assignments back to relational tags.

        Every asset linked to a ServiceFunction gets a matching
        `service-purpose:` tag (replacing any other one).
        """
        result = SyncResult()
        try:
            functions = await self.graph_store.get_vertices_by_label(
                VertexLabel.SERVICE_FUNCTION.value, {"organisationId": organisation_id}
            )
        except Exception as e:
            logger.error(f"Cannot read service functions for {organisation_id}: {e}", exc_info=True)
            result.fail(f"Failed to read service functions: {e}")
            return result.finish()

        for function in sorted(functions, key=lambda vertex: vertex.id):
            tag = f"{SERVICE_PURPOSE_TAG}{function.name}"
            edges = await self.graph_store.get_edges(
                to_vertex_id=function.id, label=EdgeLabel.SERVES_PURPOSE.value
            )
            for asset_id in sorted({edge.from_vertex_id for edge in edges}):
                try:
                    asset = await self.asset_store.get_asset(asset_id)
                    if tag in asset.tags:
                        continue
                    tags = [t for t in asset.tags if not t.startswith(SERVICE_PURPOSE_TAG)] + [tag]
                    await self.asset_store.update_asset_tags(asset_id, tags)
                    result.records_processed += 1
                except NotFoundError:
                    result.add_record_error(asset_id, "relational asset missing")
                except Exception as e:
                    logger.warning(f"Failed to tag asset {asset_id}: {e}")
                    result.add_record_error(asset_id, e)

        logger.info(
            f"Service functions written back for {organisation_id}: "
            f"{result.records_processed} assets tagged from {len(functions)} functions"
        )
        return result.finish()

    async def check_consistency(self, organisation_id: Optional[str] = None) -> ConsistencyReport:
        """Report cross-store inconsistencies without repairing anything.

        - dangling edges: an endpoint vertex is missing
        - orphans: Asset vertices without a relational record
        - cycles: vertices on a cycle within one edge label
        """
        report = ConsistencyReport(organisation_id=organisation_id)
        property_filter = {"organisationId": organisation_id} if organisation_id else None

        vertex_ids: Set[str] = set()
        for label in VertexLabel:
            vertices = await self.graph_store.get_vertices_by_label(label.value, property_filter)
            vertex_ids.update(vertex.id for vertex in vertices)

        edges = await self.graph_store.get_edges()
        if organisation_id:
            edges = [e for e in edges if e.from_vertex_id in vertex_ids or e.to_vertex_id in vertex_ids]

        known_missing: Set[str] = set()
        adjacency: Dict[str, Dict[str, Set[str]]] = {}
        for edge in sorted(edges, key=lambda e: e.id):
            for endpoint in (edge.from_vertex_id, edge.to_vertex_id):
                if endpoint in vertex_ids:
                    continue
                if endpoint not in known_missing and await self.graph_store.get_vertex(endpoint) is not None:
                    # Belongs to another organisation
                    vertex_ids.add(endpoint)
                    continue
                known_missing.add(endpoint)
                logger.warning(str(DanglingEdgeError(edge.id, edge.label, endpoint)))
                report.dangling_edges.append(DanglingEdge(
                    edge_id=edge.id,
                    label=edge.label,
                    from_vertex_id=edge.from_vertex_id,
                    to_vertex_id=edge.to_vertex_id,
                    missing_vertex_id=endpoint,
                ))
            adjacency.setdefault(edge.label, {}).setdefault(edge.from_vertex_id, set()).add(edge.to_vertex_id)

        for label, graph in sorted(adjacency.items()):
            on_cycle = find_cycle_vertices(graph)
            if on_cycle:
                logger.warning(f"{label} edges form a cycle through {on_cycle}")
                report.cycles[label] = on_cycle

        report.orphan_ids = await self._find_orphans(organisation_id)

        logger.info(
            f"Consistency check ({organisation_id or 'all'}): {len(report.dangling_edges)} dangling edges, "
            f"{len(report.orphan_ids)} orphans, {len(report.cycles)} cyclic labels"
        )
        return report

    async def get_asset_intelligence(self, asset_id: str) -> Dict[str, Any]:
        """Combined relational and graph view of one asset.

        Raises:
            NotFoundError: If the relational record does not exist
        """
        asset = await self.asset_store.get_asset(asset_id)
        vertex = await self.graph_store.get_vertex(asset_id)

        anchors: Dict[str, List[Dict[str, Any]]] = {"service_functions": [], "locations": []}
        related: Set[str] = set()

        if vertex is not None:
            for label, key in (
                (EdgeLabel.SERVES_PURPOSE.value, "service_functions"),
                (EdgeLabel.LOCATED_AT.value, "locations"),
            ):
                for edge in await self.graph_store.get_edges(from_vertex_id=asset_id, label=label):
                    anchor = await self.graph_store.get_vertex(edge.to_vertex_id)
                    if anchor is None:
                        continue
                    anchors[key].append(anchor.to_dict())
                    siblings = await self.graph_store.get_edges(to_vertex_id=anchor.id, label=label)
                    related.update(s.from_vertex_id for s in siblings if s.from_vertex_id != asset_id)

        return {
            "asset": asset.to_dict(),
            "synced": vertex is not None,
            "vertex": vertex.to_dict() if vertex is not None else None,
            "service_purpose": asset.service_purpose,
            "criticality": asset.criticality.value,
            "service_functions": anchors["service_functions"],
            "locations": anchors["locations"],
            "related_asset_ids": sorted(related),
        }
