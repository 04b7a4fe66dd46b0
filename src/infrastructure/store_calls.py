"""Timeout guards for store adapter calls.

Every adapter call carries a caller-supplied timeout; a timed-out call
surfaces as TransientStoreError and is never retried here.
"""

import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

from domain.asset_models import Asset
from domain.errors import TransientStoreError
from domain.graph_models import Edge, Vertex
from domain.stores import AssetFilter, AssetStore, GraphStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_with_timeout(awaitable: Awaitable[T], timeout: Optional[float], operation: str) -> T:
    """Await a store call, converting a timeout into TransientStoreError.

    Args:
        awaitable: The store coroutine
        timeout: Seconds to wait; None waits indefinitely
        operation: Name used in the error message

    Returns:
        The call's result
    """
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Store call {operation} timed out after {timeout}s")
        raise TransientStoreError(f"{operation} timed out after {timeout}s", operation=operation) from None


class TimeoutGraphStore(GraphStore):
    """GraphStore decorator that bounds every call with a timeout."""

    def __init__(self, inner: GraphStore, timeout: Optional[float]):
        self.inner = inner
        self.timeout = timeout

    async def add_vertex(self, label: str, properties: Dict[str, Any]) -> str:
        return await call_with_timeout(self.inner.add_vertex(label, properties), self.timeout, "add_vertex")

    async def get_vertex(self, vertex_id: str) -> Optional[Vertex]:
        return await call_with_timeout(self.inner.get_vertex(vertex_id), self.timeout, "get_vertex")

    async def get_vertices_by_label(
        self, label: str, property_filter: Optional[Dict[str, Any]] = None
    ) -> List[Vertex]:
        return await call_with_timeout(
            self.inner.get_vertices_by_label(label, property_filter), self.timeout, "get_vertices_by_label"
        )

    async def update_vertex_properties(self, vertex_id: str, properties: Dict[str, Any]) -> None:
        await call_with_timeout(
            self.inner.update_vertex_properties(vertex_id, properties), self.timeout, "update_vertex_properties"
        )

    async def add_edge(
        self, label: str, from_vertex_id: str, to_vertex_id: str, properties: Optional[Dict[str, Any]] = None
    ) -> str:
        return await call_with_timeout(
            self.inner.add_edge(label, from_vertex_id, to_vertex_id, properties), self.timeout, "add_edge"
        )

    async def get_edges(
        self,
        from_vertex_id: Optional[str] = None,
        to_vertex_id: Optional[str] = None,
        label: Optional[str] = None,
    ) -> List[Edge]:
        return await call_with_timeout(
            self.inner.get_edges(from_vertex_id, to_vertex_id, label), self.timeout, "get_edges"
        )

    async def delete_vertex(self, vertex_id: str) -> None:
        await call_with_timeout(self.inner.delete_vertex(vertex_id), self.timeout, "delete_vertex")

    async def delete_edge(self, edge_id: str) -> None:
        await call_with_timeout(self.inner.delete_edge(edge_id), self.timeout, "delete_edge")

    async def close(self) -> None:
        await self.inner.close()


class TimeoutAssetStore(AssetStore):
    """AssetStore decorator that bounds every call with a timeout."""

    def __init__(self, inner: AssetStore, timeout: Optional[float]):
        self.inner = inner
        self.timeout = timeout

    async def find_assets(self, filter: Optional[AssetFilter] = None, offset: int = 0, limit: int = 100) -> List[Asset]:
        return await call_with_timeout(self.inner.find_assets(filter, offset, limit), self.timeout, "find_assets")

    async def get_asset(self, asset_id: str) -> Asset:
        return await call_with_timeout(self.inner.get_asset(asset_id), self.timeout, "get_asset")

    async def update_asset_tags(self, asset_id: str, tags: List[str]) -> None:
        await call_with_timeout(self.inner.update_asset_tags(asset_id, tags), self.timeout, "update_asset_tags")

    async def close(self) -> None:
        await self.inner.close()
