"""Tests for relational → graph sync, cleanup, write-back and consistency checks."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from application.services.data_sync_service import DataSyncService, find_cycle_vertices
from domain.errors import TransientStoreError, ValidationError
from domain.graph_models import Edge
from domain.sync_models import SyncOptions
from factories import make_asset
from infrastructure.in_memory_asset_store import InMemoryAssetStore
from infrastructure.in_memory_graph_store import InMemoryGraphStore


def seed(asset_store, *assets):
    for asset in assets:
        asset_store.put(asset)


class TestSyncAssets:
    async def test_vertex_mirrors_relational_record(self, sync_service, asset_store, graph_store):
        seed(asset_store, make_asset("a1", name="Main Road", priority="CRITICAL", current_value=1500))

        result = await sync_service.sync_assets(SyncOptions(batch_size=10))

        assert result.success
        assert result.records_processed == 1
        vertex = await graph_store.get_vertex("a1")
        assert vertex.label == "Asset"
        assert vertex.get("name") == "Main Road"
        assert vertex.get("organisationId") == "org-1"
        assert vertex.get("servicePurpose") == "Transportation"
        assert vertex.get("criticality") == "Critical"
        assert vertex.get("currentValue") == 1500.0

    async def test_links_anchors(self, sync_service, asset_store, graph_store):
        seed(asset_store, make_asset("a1"))

        result = await sync_service.sync_assets()

        serves = await graph_store.get_edges(from_vertex_id="a1", label="SERVES_PURPOSE")
        located = await graph_store.get_edges(from_vertex_id="a1", label="LOCATED_AT")
        assert [edge.to_vertex_id for edge in serves] == ["sf_org-1_Transportation"]
        assert [edge.to_vertex_id for edge in located] == ["loc_org-1_Site_1_Main_St"]
        assert result.vertices_created == 1
        assert result.anchors_created == 4
        # SERVES_PURPOSE, LOCATED_AT and two CONTAINS edges
        assert result.edges_created == 4

    async def test_pages_through_every_batch(self, sync_service, asset_store, graph_store):
        seed(asset_store, *(make_asset(f"a{i:02d}") for i in range(25)))

        result = await sync_service.sync_assets(SyncOptions(batch_size=10))

        assert result.records_processed == 25
        assert len(await graph_store.get_vertices_by_label("Asset")) == 25

    async def test_organisation_filter(self, sync_service, asset_store, graph_store):
        seed(asset_store, make_asset("a1", organisation_id="org-1"), make_asset("b1", organisation_id="org-2"))

        await sync_service.sync_assets(SyncOptions(organisation_id="org-2"))

        assert await graph_store.get_vertex("a1") is None
        assert await graph_store.get_vertex("b1") is not None

    async def test_resync_is_idempotent(self, sync_service, asset_store, graph_store):
        seed(asset_store, make_asset("a1"), make_asset("a2"))
        await sync_service.sync_assets()
        vertices, edges = graph_store.vertex_count, graph_store.edge_count

        result = await sync_service.sync_assets()

        assert result.vertices_updated == 2
        assert result.vertices_created == 0
        assert result.anchors_created == 0
        assert (graph_store.vertex_count, graph_store.edge_count) == (vertices, edges)

    async def test_update_follows_purpose_change(self, sync_service, asset_store, graph_store):
        seed(asset_store, make_asset("a1"))
        await sync_service.sync_assets()
        seed(asset_store, make_asset("a1", tags=["service-purpose:Infrastructure"]))

        await sync_service.sync_assets()

        vertex = await graph_store.get_vertex("a1")
        serves = await graph_store.get_edges(from_vertex_id="a1", label="SERVES_PURPOSE")
        assert vertex.get("servicePurpose") == "Infrastructure"
        assert [edge.to_vertex_id for edge in serves] == ["sf_org-1_Infrastructure"]

    async def test_force_update_recreates_vertex(self, sync_service, asset_store, graph_store):
        seed(asset_store, make_asset("a1"))
        await sync_service.sync_assets()
        await graph_store.update_vertex_properties("a1", {"stale": True})

        result = await sync_service.sync_assets(SyncOptions(force_update=True))

        vertex = await graph_store.get_vertex("a1")
        assert result.vertices_created == 1
        assert "stale" not in vertex.properties
        assert len(await graph_store.get_edges(from_vertex_id="a1")) == 2

    async def test_dry_run_writes_nothing(self, sync_service, asset_store, graph_store):
        seed(asset_store, make_asset("a1"), make_asset("a2"))

        result = await sync_service.sync_assets(SyncOptions(dry_run=True))

        assert result.success
        assert result.dry_run
        assert result.records_processed == 2
        assert graph_store.vertex_count == 0
        assert graph_store.edge_count == 0
        assert "a1: would create vertex" in result.warnings
        assert "a1: would create ServiceFunction 'Transportation'" in result.warnings

    async def test_dry_run_after_sync_reports_updates_only(self, sync_service, asset_store):
        seed(asset_store, make_asset("a1"))
        await sync_service.sync_assets()

        result = await sync_service.sync_assets(SyncOptions(dry_run=True))

        assert result.warnings == ["a1: would update vertex properties"]

    async def test_record_failure_does_not_abort_batch(self, asset_store, graph_store):
        seed(asset_store, make_asset("a1"), make_asset("a2"), make_asset("a3"))
        service = DataSyncService(asset_store, graph_store)
        original = service.sync_asset

        async def flaky(asset, force_update=False, dry_run=False):
            if asset.id == "a2":
                raise TransientStoreError("graph unavailable")
            return await original(asset, force_update, dry_run)

        service.sync_asset = flaky

        result = await service.sync_assets()

        assert result.success
        assert result.records_processed == 2
        assert result.errors == ["a2: graph unavailable"]
        assert result.failed_asset_ids == ["a2"]
        assert await graph_store.get_vertex("a3") is not None

    async def test_label_conflict_is_a_record_error(self, sync_service, asset_store, graph_store):
        seed(asset_store, make_asset("a1"))
        await graph_store.add_vertex("OrgUnit", {"id": "a1", "name": "x", "organisationId": "org-1"})

        result = await sync_service.sync_assets()

        assert result.success
        assert result.failed_asset_ids == ["a1"]
        assert "label OrgUnit" in result.errors[0]

    async def test_page_read_failure_is_structural(self, graph_store):
        asset_store = InMemoryAssetStore()
        asset_store.find_assets = AsyncMock(side_effect=TransientStoreError("database down"))

        result = await DataSyncService(asset_store, graph_store).sync_assets()

        assert not result.success
        assert "database down" in result.errors[0]

    async def test_record_timeout(self, asset_store):
        seed(asset_store, make_asset("a1"))
        slow_graph = InMemoryGraphStore(latency_seconds=0.05)
        service = DataSyncService(asset_store, slow_graph)

        result = await service.sync_assets(SyncOptions(record_timeout_seconds=0.01))

        assert result.success
        assert result.failed_asset_ids == ["a1"]
        assert "timed out" in result.errors[0]

    async def test_invalid_options(self, sync_service):
        with pytest.raises(ValidationError):
            await sync_service.sync_assets(SyncOptions(batch_size=0))

    async def test_concurrent_records_share_anchors(self, asset_store):
        graph_store = InMemoryGraphStore(latency_seconds=0.001)
        seed(asset_store, *(make_asset(f"a{i:02d}", address=f"{i % 3} Main St") for i in range(30)))

        result = await DataSyncService(asset_store, graph_store).sync_assets(
            SyncOptions(batch_size=15, max_concurrency=10)
        )

        assert result.records_processed == 30
        assert len(await graph_store.get_vertices_by_label("ServiceFunction")) == 1
        assert len(await graph_store.get_vertices_by_label("Location")) == 5
        assert len(await graph_store.get_edges(label="CONTAINS")) == 4

    async def test_cancelled_before_start(self, sync_service, asset_store, graph_store):
        seed(asset_store, make_asset("a1"))
        cancel_event = asyncio.Event()
        cancel_event.set()

        result = await sync_service.sync_assets(cancel_event=cancel_event)

        assert result.cancelled
        assert result.records_processed == 0
        assert graph_store.vertex_count == 0

    async def test_cancel_keeps_written_records(self, asset_store):
        seed(asset_store, *(make_asset(f"a{i}") for i in range(6)))
        graph_store = InMemoryGraphStore(latency_seconds=0.001)
        service = DataSyncService(asset_store, graph_store)
        cancel_event = asyncio.Event()
        original = service.sync_asset

        async def cancel_after_first(asset, force_update=False, dry_run=False):
            outcome = await original(asset, force_update, dry_run)
            cancel_event.set()
            return outcome

        service.sync_asset = cancel_after_first

        result = await service.sync_assets(SyncOptions(batch_size=2, max_concurrency=1), cancel_event)

        assert result.cancelled
        assert result.records_processed == 1
        assert len(await graph_store.get_vertices_by_label("Asset")) == 1


class TestCleanupOrphans:
    async def test_deletes_orphans_once(self, sync_service, asset_store, graph_store):
        seed(asset_store, make_asset("a1"), make_asset("a2"))
        await sync_service.sync_assets()
        asset_store.remove("a2")

        first = await sync_service.cleanup_orphans("org-1")
        second = await sync_service.cleanup_orphans("org-1")

        assert first.orphan_ids == ["a2"]
        assert first.records_processed == 1
        assert await graph_store.get_vertex("a2") is None
        assert await graph_store.get_edges(from_vertex_id="a2") == []
        assert second.orphan_ids == []
        assert second.records_processed == 0

    async def test_dry_run_reports_only(self, sync_service, asset_store, graph_store):
        seed(asset_store, make_asset("a1"))
        await sync_service.sync_assets()
        asset_store.remove("a1")

        result = await sync_service.cleanup_orphans("org-1", dry_run=True)

        assert result.orphan_ids == ["a1"]
        assert result.records_processed == 0
        assert result.warnings == ["Orphan vertex a1: would delete"]
        assert await graph_store.get_vertex("a1") is not None

    async def test_other_organisations_untouched(self, sync_service, asset_store, graph_store):
        seed(asset_store, make_asset("a1", organisation_id="org-1"), make_asset("b1", organisation_id="org-2"))
        await sync_service.sync_assets()
        asset_store.remove("b1")

        result = await sync_service.cleanup_orphans("org-1")

        assert result.orphan_ids == []
        assert await graph_store.get_vertex("b1") is not None


class TestServiceFunctionWriteBack:
    async def test_graph_assignment_becomes_tag(self, sync_service, asset_store, graph_store):
        seed(asset_store, make_asset("a1", tags=["org:planning"]))
        await sync_service.sync_assets()

        result = await sync_service.sync_service_functions_from_graph("org-1")

        assert result.records_processed == 1
        assert (await asset_store.get_asset("a1")).tags == ["org:planning", "service-purpose:Transportation"]

    async def test_already_tagged_is_skipped(self, sync_service, asset_store):
        seed(asset_store, make_asset("a1", tags=["service-purpose:Transportation"]))
        await sync_service.sync_assets()

        result = await sync_service.sync_service_functions_from_graph("org-1")

        assert result.records_processed == 0

    async def test_missing_relational_record(self, sync_service, asset_store):
        seed(asset_store, make_asset("a1"))
        await sync_service.sync_assets()
        asset_store.remove("a1")

        result = await sync_service.sync_service_functions_from_graph("org-1")

        assert result.success
        assert result.errors == ["a1: relational asset missing"]


class TestConsistency:
    async def test_clean_graph(self, sync_service, asset_store):
        seed(asset_store, make_asset("a1"), make_asset("a2", state="South", suburb="Hill", address="2 Hill Rd"))
        await sync_service.sync_assets()

        report = await sync_service.check_consistency("org-1")

        assert report.is_consistent

    async def test_region_and_area_with_the_same_name(self, sync_service, asset_store):
        seed(asset_store, make_asset("a1", state="Richmond", suburb="Richmond"))
        await sync_service.sync_assets()

        report = await sync_service.check_consistency("org-1")

        assert report.is_consistent
        assert report.cycles == {}

    async def test_dangling_edge(self, sync_service, asset_store, graph_store):
        seed(asset_store, make_asset("a1"))
        await sync_service.sync_assets()
        graph_store._edges["broken"] = Edge(
            id="broken", label="LOCATED_AT", from_vertex_id="a1", to_vertex_id="loc_missing"
        )

        report = await sync_service.check_consistency("org-1")

        assert not report.is_consistent
        assert [edge.edge_id for edge in report.dangling_edges] == ["broken"]
        assert report.dangling_edges[0].missing_vertex_id == "loc_missing"

    async def test_contains_cycle(self, sync_service, asset_store, graph_store):
        seed(asset_store, make_asset("a1"))
        await sync_service.sync_assets()
        await graph_store.add_edge("CONTAINS", "loc_org-1_Site_1_Main_St", "loc_org-1_Region_North")

        report = await sync_service.check_consistency("org-1")

        assert report.cycles == {
            "CONTAINS": ["loc_org-1_Area_Riverside", "loc_org-1_Region_North", "loc_org-1_Site_1_Main_St"]
        }

    async def test_orphans_reported_not_deleted(self, sync_service, asset_store, graph_store):
        seed(asset_store, make_asset("a1"))
        await sync_service.sync_assets()
        asset_store.remove("a1")

        report = await sync_service.check_consistency("org-1")

        assert report.orphan_ids == ["a1"]
        assert await graph_store.get_vertex("a1") is not None


class TestFindCycleVertices:
    def test_acyclic(self):
        assert find_cycle_vertices({"a": ["b"], "b": ["c"]}) == []

    def test_self_loop(self):
        assert find_cycle_vertices({"a": ["a"]}) == ["a"]

    def test_only_cycle_members(self):
        adjacency = {"a": ["b"], "b": ["c"], "c": ["b", "d"], "d": []}
        assert find_cycle_vertices(adjacency) == ["b", "c"]


class TestAssetIntelligence:
    async def test_synced_asset(self, sync_service, asset_store):
        seed(asset_store, make_asset("a1"), make_asset("a2"), make_asset("p1", asset_type="PARK", address="9 Park Ln"))
        await sync_service.sync_assets()

        intelligence = await sync_service.get_asset_intelligence("a1")

        assert intelligence["synced"]
        assert intelligence["service_purpose"] == "Transportation"
        assert [sf["id"] for sf in intelligence["service_functions"]] == ["sf_org-1_Transportation"]
        assert [loc["id"] for loc in intelligence["locations"]] == ["loc_org-1_Site_1_Main_St"]
        assert intelligence["related_asset_ids"] == ["a2"]

    async def test_unsynced_asset(self, sync_service, asset_store):
        seed(asset_store, make_asset("a1"))

        intelligence = await sync_service.get_asset_intelligence("a1")

        assert not intelligence["synced"]
        assert intelligence["vertex"] is None
        assert intelligence["related_asset_ids"] == []
