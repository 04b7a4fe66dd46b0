"""Store contracts consumed by the sync and hierarchy services.

Both stores are black boxes reached through these interfaces; concrete
adapters (Neo4j, PostgreSQL, in-memory) are constructed once in the
composition root and passed down explicitly.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from domain.asset_models import Asset
from domain.graph_models import Edge, Vertex


@dataclass
class AssetFilter:
    """Filter for paged asset queries."""
    organisation_id: Optional[str] = None
    asset_types: List[str] = field(default_factory=list)
    tags_any: List[str] = field(default_factory=list)
    is_active: Optional[bool] = None

    def matches(self, asset: Asset) -> bool:
        """In-process evaluation of the filter."""
        if self.organisation_id is not None and asset.organisation_id != self.organisation_id:
            return False
        if self.asset_types and asset.asset_type not in self.asset_types:
            return False
        if self.tags_any and not set(self.tags_any) & set(asset.tags):
            return False
        if self.is_active is not None and asset.is_active != self.is_active:
            return False
        return True


class AssetStore(ABC):
    """Authoritative relational store of asset records."""

    @abstractmethod
    async def find_assets(self, filter: Optional[AssetFilter] = None, offset: int = 0, limit: int = 100) -> List[Asset]:
        """Return one page of assets in a stable order (by id)."""

    @abstractmethod
    async def get_asset(self, asset_id: str) -> Asset:
        """Return an asset.

        Raises:
            NotFoundError: If no record exists
        """

    @abstractmethod
    async def update_asset_tags(self, asset_id: str, tags: List[str]) -> None:
        """Replace an asset's tags.

        Raises:
            NotFoundError: If no record exists
        """

    async def close(self) -> None:
        """Release connections."""


class GraphStore(ABC):
    """Graph mirror of asset relationships."""

    @abstractmethod
    async def add_vertex(self, label: str, properties: Dict[str, Any]) -> str:
        """Add a vertex; `properties["id"]` is used as the id when present."""

    @abstractmethod
    async def get_vertex(self, vertex_id: str) -> Optional[Vertex]:
        """Return the vertex or None."""

    @abstractmethod
    async def get_vertices_by_label(
        self, label: str, property_filter: Optional[Dict[str, Any]] = None
    ) -> List[Vertex]:
        """Return vertices with `label` whose properties equal every filter entry."""

    @abstractmethod
    async def update_vertex_properties(self, vertex_id: str, properties: Dict[str, Any]) -> None:
        """Merge `properties` into an existing vertex.

        Raises:
            NotFoundError: If the vertex does not exist
        """

    @abstractmethod
    async def add_edge(
        self, label: str, from_vertex_id: str, to_vertex_id: str, properties: Optional[Dict[str, Any]] = None
    ) -> str:
        """Add a directed edge and return its id."""

    @abstractmethod
    async def get_edges(
        self,
        from_vertex_id: Optional[str] = None,
        to_vertex_id: Optional[str] = None,
        label: Optional[str] = None,
    ) -> List[Edge]:
        """Return edges matching every given criterion."""

    @abstractmethod
    async def delete_vertex(self, vertex_id: str) -> None:
        """Delete a vertex and every edge touching it."""

    @abstractmethod
    async def delete_edge(self, edge_id: str) -> None:
        """Delete a single edge."""

    async def close(self) -> None:
        """Release connections."""
