"""Job wrapper around the sync service and the hierarchy engine.

There is no scheduler: a caller (job runner, admin endpoint, CLI) starts a
run, optionally with a timeout. A timed-out run stops issuing records and
reports success=False; records already written stay written.

Run standalone: python -m application.jobs.sync_job
"""

import asyncio
import logging
import os
from datetime import datetime
from typing import Any, Dict, Optional

from application.services.data_sync_service import DataSyncService
from application.services.hierarchy_engine import HierarchyEngine
from domain.errors import RebuildFailure
from domain.sync_models import SyncOptions, SyncResult

logger = logging.getLogger(__name__)


class HierarchySyncJob:
    """
    Runs sync, cleanup and rebuild on request.

    Features:
    - Caller-supplied timeouts with cooperative cancellation
    - Full pass (sync, cleanup, model reload, rebuild)
    - Statistics tracking
    """

    def __init__(
        self,
        sync_service: DataSyncService,
        engine: Optional[HierarchyEngine] = None,
        default_options: Optional[SyncOptions] = None,
    ):
        """
        Initialize the job.

        Args:
            sync_service: DataSyncService instance
            engine: HierarchyEngine to refresh after a full pass
            default_options: Options used when a run passes none
        """
        self.sync_service = sync_service
        self.engine = engine
        self.default_options = default_options or SyncOptions()

        self.stats = {
            "total_syncs": 0,
            "total_cleanups": 0,
            "total_rebuilds": 0,
            "records_processed": 0,
            "orphans_deleted": 0,
            "record_errors": 0,
            "failed_runs": 0,
            "last_run_at": None,
            "last_run_duration_ms": 0,
        }

    def _record_run(self, started: datetime, result: SyncResult) -> None:
        duration_ms = (datetime.now() - started).total_seconds() * 1000
        self.stats["last_run_at"] = started.isoformat()
        self.stats["last_run_duration_ms"] = duration_ms
        self.stats["record_errors"] += len(result.failed_asset_ids)
        if not result.success:
            self.stats["failed_runs"] += 1

    async def run_sync(
        self,
        options: Optional[SyncOptions] = None,
        timeout: Optional[float] = None,
    ) -> SyncResult:
        """Run one sync pass.

        Args:
            options: Sync options (job defaults if omitted)
            timeout: Seconds before the pass is cancelled

        Returns:
            The pass result; success=False with a timeout error on timeout
        """
        options = options or self.default_options
        started = datetime.now()
        self.stats["total_syncs"] += 1

        cancel_event = asyncio.Event()
        task = asyncio.create_task(self.sync_service.sync_assets(options, cancel_event))
        done, _ = await asyncio.wait({task}, timeout=timeout)

        if task in done:
            result = task.result()
        else:
            # Let in-flight records finish; no new ones start
            cancel_event.set()
            result = await task
            result.fail(f"Sync timed out after {timeout}s")
            logger.warning(f"Sync timed out after {timeout}s; {result.records_processed} records kept")

        self.stats["records_processed"] += result.records_processed
        self._record_run(started, result)
        return result

    async def run_cleanup(self, organisation_id: str, timeout: Optional[float] = None, dry_run: bool = False) -> SyncResult:
        """Run orphan cleanup for one organisation."""
        started = datetime.now()
        self.stats["total_cleanups"] += 1
        try:
            result = await asyncio.wait_for(
                self.sync_service.cleanup_orphans(organisation_id, dry_run=dry_run), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Cleanup for {organisation_id} timed out after {timeout}s")
            result = SyncResult(dry_run=dry_run)
            result.fail(f"Cleanup timed out after {timeout}s")
            result.finish()

        self.stats["orphans_deleted"] += result.records_processed
        self._record_run(started, result)
        return result

    async def run_full(self, organisation_id: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Sync, clean up, reload asset models and rebuild the hierarchies."""
        options = SyncOptions(
            batch_size=self.default_options.batch_size,
            force_update=self.default_options.force_update,
            organisation_id=organisation_id,
            max_concurrency=self.default_options.max_concurrency,
            record_timeout_seconds=self.default_options.record_timeout_seconds,
        )
        sync_result = await self.run_sync(options, timeout=timeout)
        cleanup_result = await self.run_cleanup(organisation_id, timeout=timeout)

        summary: Dict[str, Any] = {
            "organisation_id": organisation_id,
            "sync": sync_result.to_dict(),
            "cleanup": cleanup_result.to_dict(),
            "generation": None,
            "rebuild_error": None,
        }

        if self.engine is not None:
            try:
                forest = await self.engine.load_asset_models(
                    self.sync_service.asset_store, organisation_id, replace=True
                )
                self.stats["total_rebuilds"] += 1
                summary["generation"] = forest.generation
            except RebuildFailure as e:
                self.stats["failed_runs"] += 1
                summary["rebuild_error"] = str(e)

        summary["success"] = sync_result.success and cleanup_result.success and summary["rebuild_error"] is None
        logger.info(
            f"Full pass for {organisation_id}: {sync_result.records_processed} synced, "
            f"{cleanup_result.records_processed} orphans deleted, generation {summary['generation']}"
        )
        return summary

    def get_statistics(self) -> Dict[str, Any]:
        """Get job statistics."""
        return dict(self.stats)


async def main():
    """Entry point for standalone execution."""
    from dotenv import load_dotenv
    from composition_root import bootstrap_hierarchy_services

    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    organisation_id = os.getenv("SYNC_ORGANISATION_ID", "org-1")
    logger.info(f"Starting full sync pass for {organisation_id}...")

    services = await bootstrap_hierarchy_services()
    try:
        summary = await services.sync_job.run_full(organisation_id)
        logger.info(f"Full pass finished: success={summary['success']}")
    finally:
        await services.close()


if __name__ == "__main__":
    asyncio.run(main())
