"""Neo4j implementation of the graph store.

Vertices are nodes carrying their label and a unique `id` property;
edges are relationships with a generated `id` property. Labels cannot be
parameterized in Cypher, so every label is validated against the known
vertex/edge label enums before it is interpolated into a query.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from neo4j import AsyncGraphDatabase
from neo4j.exceptions import ConstraintError, ServiceUnavailable, SessionExpired, TransientError

from domain.errors import NotFoundError, TransientStoreError, ValidationError
from domain.graph_models import Edge, EdgeLabel, Vertex, VertexLabel, parse_vertex_label
from domain.stores import GraphStore

logger = logging.getLogger(__name__)


def _edge_label(label: str) -> str:
    try:
        return EdgeLabel(label).value
    except ValueError:
        raise ValidationError(f"Unknown edge label: {label}") from None


class Neo4jGraphStore(GraphStore):
    """Neo4j backend for the asset relationship graph."""

    def __init__(self, uri: str, username: str, password: str, database: str = "neo4j"):
        """Initialize Neo4j graph store.

        Args:
            uri: Neo4j connection URI (e.g., "bolt://localhost:7687")
            username: Neo4j username
            password: Neo4j password
            database: Neo4j database name (default: "neo4j")
        """
        self.uri = uri
        self.username = username
        self.password = password
        self.database = database
        self._driver = None

    async def _get_driver(self):
        """Get or create Neo4j driver."""
        if self._driver is None:
            self._driver = AsyncGraphDatabase.driver(
                self.uri,
                auth=(self.username, self.password)
            )
        return self._driver

    async def _close_driver(self):
        """Close Neo4j driver."""
        if self._driver:
            await self._driver.close()
            self._driver = None

    async def _run(self, query: str, **parameters: Any) -> List[Dict[str, Any]]:
        """Run a query and return its records as dictionaries.

        Raises:
            TransientStoreError: On connection loss or transient server errors
            ValidationError: On constraint violations (e.g. duplicate id)
        """
        driver = await self._get_driver()
        try:
            async with driver.session(database=self.database) as session:
                result = await session.run(query, **parameters)
                return [dict(record) async for record in result]
        except ConstraintError as e:
            raise ValidationError(f"Graph constraint violated: {e.message}") from e
        except (ServiceUnavailable, SessionExpired, TransientError) as e:
            logger.warning(f"Transient Neo4j failure: {e}")
            raise TransientStoreError(f"Neo4j unavailable: {e}") from e

    async def ensure_constraints(self) -> None:
        """Create a uniqueness constraint on `id` for every vertex label."""
        for label in VertexLabel:
            await self._run(
                f"CREATE CONSTRAINT {label.value.lower()}_id IF NOT EXISTS "
                f"FOR (n:`{label.value}`) REQUIRE n.id IS UNIQUE"
            )
        logger.info("Neo4j vertex id constraints ensured")

    async def add_vertex(self, label: str, properties: Dict[str, Any]) -> str:
        vertex_label = parse_vertex_label(label).value
        vertex_id = str(properties.get("id") or uuid.uuid4().hex)
        props = dict(properties)
        props["id"] = vertex_id
        query = f"""
        CREATE (n:`{vertex_label}`)
        SET n = $properties
        RETURN n.id AS id
        """
        records = await self._run(query, properties=props)
        return records[0]["id"] if records else vertex_id

    async def get_vertex(self, vertex_id: str) -> Optional[Vertex]:
        query = """
        MATCH (n {id: $vertex_id})
        RETURN n, labels(n) AS labels
        LIMIT 1
        """
        records = await self._run(query, vertex_id=vertex_id)
        if not records:
            return None
        return _to_vertex(records[0]["n"], records[0]["labels"])

    async def get_vertices_by_label(
        self, label: str, property_filter: Optional[Dict[str, Any]] = None
    ) -> List[Vertex]:
        vertex_label = parse_vertex_label(label).value
        property_filter = property_filter or {}
        # Property keys are matched by parameter, never interpolated
        query = f"""
        MATCH (n:`{vertex_label}`)
        WHERE all(key IN keys($filter) WHERE n[key] = $filter[key])
        RETURN n, labels(n) AS labels
        ORDER BY n.id
        """
        records = await self._run(query, filter=property_filter)
        return [_to_vertex(record["n"], record["labels"]) for record in records]

    async def update_vertex_properties(self, vertex_id: str, properties: Dict[str, Any]) -> None:
        props = {key: value for key, value in properties.items() if key != "id"}
        query = """
        MATCH (n {id: $vertex_id})
        SET n += $properties
        RETURN n.id AS id
        """
        records = await self._run(query, vertex_id=vertex_id, properties=props)
        if not records:
            raise NotFoundError("Vertex", vertex_id)

    async def add_edge(
        self, label: str, from_vertex_id: str, to_vertex_id: str, properties: Optional[Dict[str, Any]] = None
    ) -> str:
        edge_label = _edge_label(label)
        edge_id = uuid.uuid4().hex
        props = dict(properties or {})
        props["id"] = edge_id
        query = f"""
        MATCH (source {{id: $from_id}})
        MATCH (target {{id: $to_id}})
        CREATE (source)-[r:`{edge_label}`]->(target)
        SET r = $properties
        RETURN r.id AS id
        """
        records = await self._run(query, from_id=from_vertex_id, to_id=to_vertex_id, properties=props)
        if not records:
            missing = from_vertex_id if await self.get_vertex(from_vertex_id) is None else to_vertex_id
            raise NotFoundError("Vertex", missing)
        return records[0]["id"]

    async def get_edges(
        self,
        from_vertex_id: Optional[str] = None,
        to_vertex_id: Optional[str] = None,
        label: Optional[str] = None,
    ) -> List[Edge]:
        where_clauses = []
        params: Dict[str, Any] = {}

        if from_vertex_id:
            where_clauses.append("source.id = $from_id")
            params["from_id"] = from_vertex_id

        if to_vertex_id:
            where_clauses.append("target.id = $to_id")
            params["to_id"] = to_vertex_id

        if label:
            where_clauses.append("type(r) = $label")
            params["label"] = _edge_label(label)

        where_part = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""

        query = f"""
        MATCH (source)-[r]->(target)
        {where_part}
        RETURN r.id AS id, type(r) AS type, source.id AS source_id,
               target.id AS target_id, properties(r) AS properties
        ORDER BY r.id
        """
        records = await self._run(query, **params)
        return [
            Edge(
                id=record["id"],
                label=record["type"],
                from_vertex_id=record["source_id"],
                to_vertex_id=record["target_id"],
                properties={k: v for k, v in (record["properties"] or {}).items() if k != "id"},
            )
            for record in records
        ]

    async def delete_vertex(self, vertex_id: str) -> None:
        query = """
        MATCH (n {id: $vertex_id})
        DETACH DELETE n
        """
        await self._run(query, vertex_id=vertex_id)

    async def delete_edge(self, edge_id: str) -> None:
        query = """
        MATCH ()-[r {id: $edge_id}]->()
        DELETE r
        """
        await self._run(query, edge_id=edge_id)

    async def close(self):
        """Close the Neo4j connection."""
        await self._close_driver()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()


def _to_vertex(node: Any, labels: List[str]) -> Vertex:
    properties = dict(node)
    known = [label for label in labels if label in VertexLabel._value2member_map_]
    return Vertex(id=properties.get("id"), label=known[0] if known else labels[0], properties=properties)
