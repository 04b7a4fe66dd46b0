"""Sync API Router.

REST endpoints that start sync and cleanup runs, report consistency and
query assets through their service-function and location anchors.
All endpoints return 503 until the sync job is wired in at startup.

Prefix: /api/sync
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from domain.errors import HierarchySyncError
from domain.sync_models import SyncOptions

from .errors import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])

# Set at startup by dependencies.py
_sync_job = None


def set_sync_job(job):
    """Set the sync job instance (called from dependencies.py)."""
    global _sync_job
    _sync_job = job


def get_sync_job():
    """Dependency that provides the sync job or raises 503."""
    if _sync_job is None:
        raise HTTPException(status_code=503, detail="Sync service not available")
    return _sync_job


class SyncRequest(BaseModel):
    batch_size: int = Field(100, ge=1)
    dry_run: bool = False
    force_update: bool = False
    organisation_id: Optional[str] = None
    max_concurrency: int = Field(8, ge=1)
    record_timeout_seconds: Optional[float] = Field(30.0, gt=0)
    timeout_seconds: Optional[float] = Field(None, gt=0)


class CleanupRequest(BaseModel):
    organisation_id: str
    dry_run: bool = False
    timeout_seconds: Optional[float] = Field(None, gt=0)


class FullSyncRequest(BaseModel):
    organisation_id: str
    timeout_seconds: Optional[float] = Field(None, gt=0)


class AssignServiceFunctionRequest(BaseModel):
    service_purpose: str = Field(..., min_length=1)


class ServiceFunctionWriteBackRequest(BaseModel):
    organisation_id: str = Field(..., min_length=1)


@router.post("/assets")
async def sync_assets(request: SyncRequest, job=Depends(get_sync_job)):
    """Sync relational assets into the graph."""
    options = SyncOptions(
        batch_size=request.batch_size,
        dry_run=request.dry_run,
        force_update=request.force_update,
        organisation_id=request.organisation_id,
        max_concurrency=request.max_concurrency,
        record_timeout_seconds=request.record_timeout_seconds,
    )
    try:
        result = await job.run_sync(options, timeout=request.timeout_seconds)
    except HierarchySyncError as e:
        raise to_http_exception(e)
    return result.to_dict()


@router.post("/cleanup")
async def cleanup_orphans(request: CleanupRequest, job=Depends(get_sync_job)):
    """Delete orphaned Asset vertices of one organisation."""
    try:
        result = await job.run_cleanup(
            request.organisation_id, timeout=request.timeout_seconds, dry_run=request.dry_run
        )
    except HierarchySyncError as e:
        raise to_http_exception(e)
    return result.to_dict()


@router.post("/full")
async def run_full(request: FullSyncRequest, job=Depends(get_sync_job)):
    """Sync, clean up and rebuild the hierarchies for one organisation."""
    try:
        return await job.run_full(request.organisation_id, timeout=request.timeout_seconds)
    except HierarchySyncError as e:
        raise to_http_exception(e)


@router.get("/consistency/{organisation_id}")
async def check_consistency(organisation_id: str, job=Depends(get_sync_job)):
    """Report dangling edges, orphans and cycles. Nothing is repaired."""
    try:
        report = await job.sync_service.check_consistency(organisation_id)
    except HierarchySyncError as e:
        raise to_http_exception(e)
    return report.to_dict()


@router.get("/assets/{asset_id}/intelligence")
async def get_asset_intelligence(asset_id: str, job=Depends(get_sync_job)):
    """Relational record, anchors and related assets for one asset."""
    try:
        return await job.sync_service.get_asset_intelligence(asset_id)
    except HierarchySyncError as e:
        raise to_http_exception(e)


@router.post("/assets/{asset_id}/service-function")
async def assign_service_function(
    asset_id: str,
    request: AssignServiceFunctionRequest,
    job=Depends(get_sync_job),
):
    """Explicitly assign an asset to a service function."""
    try:
        service_function_id = await job.sync_service.operations.assign_asset_to_service_function(
            asset_id, request.service_purpose
        )
    except HierarchySyncError as e:
        raise to_http_exception(e)
    return {"asset_id": asset_id, "service_function_id": service_function_id}


@router.post("/service-functions/write-back")
async def write_back_service_functions(request: ServiceFunctionWriteBackRequest, job=Depends(get_sync_job)):
    """Copy graph service-function assignments onto relational asset tags."""
    try:
        result = await job.sync_service.sync_service_functions_from_graph(request.organisation_id)
    except HierarchySyncError as e:
        raise to_http_exception(e)
    return result.to_dict()


@router.get("/service-functions/{service_function_id}/assets")
async def get_assets_by_service_function(service_function_id: str, job=Depends(get_sync_job)):
    """Asset vertices linked to one service function."""
    try:
        vertices = await job.sync_service.operations.get_assets_by_service_function(service_function_id)
    except HierarchySyncError as e:
        raise to_http_exception(e)
    return [vertex.to_dict() for vertex in vertices]


@router.get("/locations/{location_id}/assets")
async def get_assets_by_location(
    location_id: str,
    include_descendants: bool = Query(True),
    job=Depends(get_sync_job),
):
    """Asset vertices at a location, by default including every location it contains."""
    try:
        vertices = await job.sync_service.operations.get_assets_by_location(
            location_id, include_descendants=include_descendants
        )
    except HierarchySyncError as e:
        raise to_http_exception(e)
    return [vertex.to_dict() for vertex in vertices]


@router.get("/assets/{asset_id}/hierarchy-path")
async def get_asset_hierarchy_path(asset_id: str, job=Depends(get_sync_job)):
    """Service functions and root-to-leaf location path of one asset vertex."""
    try:
        return await job.sync_service.operations.get_asset_hierarchy_path(asset_id)
    except HierarchySyncError as e:
        raise to_http_exception(e)


@router.get("/stats")
async def get_stats(job=Depends(get_sync_job)):
    """Get sync job statistics."""
    return job.get_statistics()
