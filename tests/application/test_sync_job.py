"""Tests for the sync job: timeouts, full passes and statistics."""

from unittest.mock import AsyncMock

from application.jobs.sync_job import HierarchySyncJob
from application.services.data_sync_service import DataSyncService
from domain.errors import TransientStoreError
from domain.sync_models import SyncOptions
from factories import make_asset
from infrastructure.in_memory_graph_store import InMemoryGraphStore


class TestRunSync:
    async def test_successful_run(self, sync_service, asset_store):
        asset_store.put(make_asset("a1"))
        job = HierarchySyncJob(sync_service)

        result = await job.run_sync()

        assert result.success
        assert result.records_processed == 1
        stats = job.get_statistics()
        assert stats["total_syncs"] == 1
        assert stats["records_processed"] == 1
        assert stats["last_run_at"] is not None

    async def test_timeout_stops_issuing_records(self, asset_store):
        for i in range(20):
            asset_store.put(make_asset(f"a{i:02d}"))
        service = DataSyncService(asset_store, InMemoryGraphStore(latency_seconds=0.005))
        job = HierarchySyncJob(service)

        result = await job.run_sync(SyncOptions(batch_size=5, max_concurrency=1), timeout=0.05)

        assert not result.success
        assert result.cancelled
        assert 0 < result.records_processed < 20
        assert "Sync timed out after 0.05s" in result.errors
        assert job.get_statistics()["failed_runs"] == 1

    async def test_record_errors_counted(self, sync_service, asset_store):
        asset_store.put(make_asset("a1"))
        sync_service.sync_asset = AsyncMock(side_effect=TransientStoreError("down"))
        job = HierarchySyncJob(sync_service)

        result = await job.run_sync()

        assert result.success
        assert job.get_statistics()["record_errors"] == 1


class TestRunCleanup:
    async def test_cleanup(self, sync_service, asset_store):
        asset_store.put(make_asset("a1"))
        job = HierarchySyncJob(sync_service)
        await job.run_sync()
        asset_store.remove("a1")

        result = await job.run_cleanup("org-1")

        assert result.orphan_ids == ["a1"]
        assert job.get_statistics()["orphans_deleted"] == 1

    async def test_cleanup_timeout(self, asset_store):
        service = DataSyncService(asset_store, InMemoryGraphStore(latency_seconds=0.2))
        job = HierarchySyncJob(service)

        result = await job.run_cleanup("org-1", timeout=0.01)

        assert not result.success
        assert result.errors == ["Cleanup timed out after 0.01s"]


class TestRunFull:
    async def test_full_pass_rebuilds(self, sync_service, asset_store, engine):
        asset_store.put(make_asset("a1", current_value=75))
        job = HierarchySyncJob(sync_service, engine)

        summary = await job.run_full("org-1")

        assert summary["success"]
        assert summary["generation"] == 1
        assert summary["sync"]["records_processed"] == 1
        assert engine.forest.get("function:category:transportation").value_contribution == 75.0
        assert job.get_statistics()["total_rebuilds"] == 1

    async def test_rebuild_failure_is_reported(self, sync_service, asset_store, engine):
        asset_store.put(make_asset("a1"))
        job = HierarchySyncJob(sync_service, engine)
        await job.run_sync()
        engine.graph_store = AsyncMock()
        engine.graph_store.get_vertices_by_label.side_effect = TransientStoreError("graph unavailable")

        summary = await job.run_full("org-1")

        assert not summary["success"]
        assert "graph unavailable" in summary["rebuild_error"]
        assert engine.forest.generation == 0

    async def test_without_engine(self, sync_service):
        summary = await HierarchySyncJob(sync_service).run_full("org-1")

        assert summary["success"]
        assert summary["generation"] is None
