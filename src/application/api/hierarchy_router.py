"""Hierarchy API Router.

REST endpoints for hierarchy views, nodes, statistics, cross-hierarchy
context and asset model registration. All endpoints return 503 until the
hierarchy services are wired in at startup.

Prefix: /api/hierarchies
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, Field

from domain.asset_models import DEFAULT_SERVICE_PURPOSE, AssetModel
from domain.errors import HierarchySyncError
from domain.hierarchy_models import HierarchyView

from .errors import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/hierarchies", tags=["hierarchies"])

# Set at startup by dependencies.py
_registry = None
_resolver = None


def set_hierarchy_services(registry, resolver):
    """Set the view registry and resolver (called from dependencies.py)."""
    global _registry, _resolver
    _registry = registry
    _resolver = resolver


def get_registry():
    """Dependency that provides the view registry or raises 503."""
    if _registry is None:
        raise HTTPException(status_code=503, detail="Hierarchy service not available")
    return _registry


def get_resolver():
    """Dependency that provides the cross-hierarchy resolver or raises 503."""
    if _resolver is None:
        raise HTTPException(status_code=503, detail="Hierarchy service not available")
    return _resolver


class ViewRequest(BaseModel):
    id: str = Field(..., min_length=1)
    view_type: str
    name: Optional[str] = None
    root_node_ids: List[str] = Field(default_factory=list)
    max_depth: int = 4
    grouping_strategy: str = "MIXED"
    sorting_strategy: str = "ALPHABETICAL"
    filters: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    description: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AssetModelRequest(BaseModel):
    id: str = Field(..., min_length=1)
    organisation_id: str
    name: str = ""
    asset_type: str = "OTHER"
    value_contribution: float = 0.0
    priority: str = "MEDIUM"
    service_purpose: str = DEFAULT_SERVICE_PURPOSE
    tags: List[str] = Field(default_factory=list)
    is_active: bool = True
    location_path: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


@router.get("/views")
async def list_views(registry=Depends(get_registry)):
    """List registered views."""
    return [view.to_dict() for view in registry.list_views()]


@router.post("/views", status_code=201)
async def create_view(request: ViewRequest, registry=Depends(get_registry)):
    """Register a new view. Does not rebuild the forest."""
    try:
        view = registry.create_view(HierarchyView.from_dict(request.model_dump()))
    except HierarchySyncError as e:
        raise to_http_exception(e)
    return view.to_dict()


@router.get("/views/{view_id}")
async def get_view(view_id: str, registry=Depends(get_registry)):
    try:
        return registry.get_view(view_id).to_dict()
    except HierarchySyncError as e:
        raise to_http_exception(e)


@router.patch("/views/{view_id}")
async def update_view(
    view_id: str,
    patch: Dict[str, Any] = Body(...),
    registry=Depends(get_registry),
):
    """Partially update a view. Does not rebuild the forest."""
    try:
        return registry.update_view(view_id, patch).to_dict()
    except HierarchySyncError as e:
        raise to_http_exception(e)


@router.delete("/views/{view_id}")
async def delete_view(view_id: str, registry=Depends(get_registry)):
    try:
        registry.delete_view(view_id)
    except HierarchySyncError as e:
        raise to_http_exception(e)
    return {"deleted": view_id}


@router.get("/views/{view_id}/nodes")
async def get_view_nodes(view_id: str, registry=Depends(get_registry)):
    """Nodes of a view, traversed, filtered and sorted."""
    try:
        nodes = registry.get_hierarchy_for_view(view_id)
    except HierarchySyncError as e:
        raise to_http_exception(e)
    return {
        "view_id": view_id,
        "generation": registry.engine.forest.generation,
        "nodes": [node.to_dict() for node in nodes],
    }


@router.get("/views/{view_id}/statistics")
async def get_view_statistics(view_id: str, registry=Depends(get_registry)):
    try:
        return registry.get_hierarchy_statistics(view_id).to_dict()
    except HierarchySyncError as e:
        raise to_http_exception(e)


@router.get("/nodes/{node_id}")
async def get_node(node_id: str, registry=Depends(get_registry)):
    try:
        return registry.engine.get_hierarchy_node(node_id).to_dict()
    except HierarchySyncError as e:
        raise to_http_exception(e)


@router.get("/assets/{asset_id}/context")
async def get_asset_context(asset_id: str, resolver=Depends(get_resolver)):
    """The asset's position in every hierarchy."""
    try:
        return resolver.get_asset_hierarchy_context(asset_id).to_dict()
    except HierarchySyncError as e:
        raise to_http_exception(e)


@router.post("/rebuild")
async def rebuild(registry=Depends(get_registry)):
    """Rebuild every hierarchy from the registered models and the graph."""
    try:
        forest = await registry.engine.rebuild_all()
    except HierarchySyncError as e:
        raise to_http_exception(e)
    return {"generation": forest.generation, "node_count": len(forest.nodes)}


@router.get("/asset-models")
async def list_asset_models(registry=Depends(get_registry)):
    models = registry.engine.asset_models
    return [models[model_id].to_dict() for model_id in sorted(models)]


@router.post("/asset-models", status_code=201)
async def register_asset_model(request: AssetModelRequest, registry=Depends(get_registry)):
    """Register an asset model; triggers a rebuild."""
    try:
        forest = await registry.engine.register_asset_model(AssetModel(**request.model_dump()))
    except HierarchySyncError as e:
        raise to_http_exception(e)
    return {"asset_id": request.id, "generation": forest.generation}


@router.delete("/asset-models/{asset_id}")
async def unregister_asset_model(asset_id: str, registry=Depends(get_registry)):
    """Unregister an asset model; triggers a rebuild."""
    try:
        forest = await registry.engine.unregister_asset_model(asset_id)
    except HierarchySyncError as e:
        raise to_http_exception(e)
    return {"asset_id": asset_id, "generation": forest.generation}
