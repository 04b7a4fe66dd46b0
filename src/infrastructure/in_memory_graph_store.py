"""In-memory graph store.

Dict-backed implementation of the GraphStore contract for tests and local
runs. Mirrors the Neo4j adapter's semantics: vertex ids are unique,
edges require both endpoints, deleting a vertex cascades its edges.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional

from domain.errors import NotFoundError, ValidationError
from domain.graph_models import Edge, Vertex, parse_vertex_label
from domain.stores import GraphStore

logger = logging.getLogger(__name__)


class InMemoryGraphStore(GraphStore):
    """Graph store kept in process memory."""

    def __init__(self, latency_seconds: float = 0.0):
        """Initialize the store.

        Args:
            latency_seconds: Simulated per-call latency; every call yields
                to the event loop, so concurrent callers interleave the
                way they would against a remote store
        """
        self.latency_seconds = latency_seconds
        self._vertices: Dict[str, Vertex] = {}
        self._edges: Dict[str, Edge] = {}
        self.call_counts: Dict[str, int] = {}

    async def _io(self, operation: str) -> None:
        self.call_counts[operation] = self.call_counts.get(operation, 0) + 1
        await asyncio.sleep(self.latency_seconds)

    async def add_vertex(self, label: str, properties: Dict[str, Any]) -> str:
        await self._io("add_vertex")
        parse_vertex_label(label)
        vertex_id = str(properties.get("id") or uuid.uuid4().hex)
        if vertex_id in self._vertices:
            raise ValidationError(f"Vertex {vertex_id} already exists")
        stored = dict(properties)
        stored["id"] = vertex_id
        self._vertices[vertex_id] = Vertex(id=vertex_id, label=label, properties=stored)
        return vertex_id

    async def get_vertex(self, vertex_id: str) -> Optional[Vertex]:
        await self._io("get_vertex")
        vertex = self._vertices.get(vertex_id)
        return _copy_vertex(vertex) if vertex else None

    async def get_vertices_by_label(
        self, label: str, property_filter: Optional[Dict[str, Any]] = None
    ) -> List[Vertex]:
        await self._io("get_vertices_by_label")
        property_filter = property_filter or {}
        return [
            _copy_vertex(vertex)
            for vertex in self._vertices.values()
            if vertex.label == label
            and all(vertex.properties.get(key) == value for key, value in property_filter.items())
        ]

    async def update_vertex_properties(self, vertex_id: str, properties: Dict[str, Any]) -> None:
        await self._io("update_vertex_properties")
        vertex = self._vertices.get(vertex_id)
        if vertex is None:
            raise NotFoundError("Vertex", vertex_id)
        vertex.properties.update({k: v for k, v in properties.items() if k != "id"})

    async def add_edge(
        self, label: str, from_vertex_id: str, to_vertex_id: str, properties: Optional[Dict[str, Any]] = None
    ) -> str:
        await self._io("add_edge")
        for endpoint in (from_vertex_id, to_vertex_id):
            if endpoint not in self._vertices:
                raise NotFoundError("Vertex", endpoint)
        edge_id = uuid.uuid4().hex
        self._edges[edge_id] = Edge(
            id=edge_id,
            label=label,
            from_vertex_id=from_vertex_id,
            to_vertex_id=to_vertex_id,
            properties=dict(properties or {}),
        )
        return edge_id

    async def get_edges(
        self,
        from_vertex_id: Optional[str] = None,
        to_vertex_id: Optional[str] = None,
        label: Optional[str] = None,
    ) -> List[Edge]:
        await self._io("get_edges")
        return [
            Edge(e.id, e.label, e.from_vertex_id, e.to_vertex_id, dict(e.properties))
            for e in self._edges.values()
            if (from_vertex_id is None or e.from_vertex_id == from_vertex_id)
            and (to_vertex_id is None or e.to_vertex_id == to_vertex_id)
            and (label is None or e.label == label)
        ]

    async def delete_vertex(self, vertex_id: str) -> None:
        await self._io("delete_vertex")
        if self._vertices.pop(vertex_id, None) is None:
            return
        touching = [
            edge_id
            for edge_id, edge in self._edges.items()
            if vertex_id in (edge.from_vertex_id, edge.to_vertex_id)
        ]
        for edge_id in touching:
            del self._edges[edge_id]
        logger.debug(f"Deleted vertex {vertex_id} and {len(touching)} edges")

    async def delete_edge(self, edge_id: str) -> None:
        await self._io("delete_edge")
        self._edges.pop(edge_id, None)

    @property
    def vertex_count(self) -> int:
        return len(self._vertices)

    @property
    def edge_count(self) -> int:
        return len(self._edges)


def _copy_vertex(vertex: Vertex) -> Vertex:
    return Vertex(id=vertex.id, label=vertex.label, properties=dict(vertex.properties))
