import os
import uuid

import pytest

from domain.errors import NotFoundError, ValidationError
from infrastructure.neo4j_graph_store import Neo4jGraphStore

# Only meaningful against a running server; every test skips otherwise
NEO4J_URI = os.getenv("NEO4J_URI", "bolt://localhost:7687")
NEO4J_USERNAME = os.getenv("NEO4J_USERNAME", "neo4j")
NEO4J_PASSWORD = os.getenv("NEO4J_PASSWORD", "password")


@pytest.mark.integration
class TestNeo4jGraphStore:

    @pytest.fixture
    async def store(self):
        store = Neo4jGraphStore(NEO4J_URI, NEO4J_USERNAME, NEO4J_PASSWORD)
        try:
            await store.ensure_constraints()
        except Exception as e:
            await store.close()
            pytest.skip(f"Neo4j not available: {e}")
        yield store
        await store.close()

    @pytest.fixture
    def org(self):
        return f"test-org-{uuid.uuid4().hex[:8]}"

    async def test_vertex_lifecycle(self, store, org):
        vertex_id = f"loc_{org}_North"
        await store.add_vertex("Location", {"id": vertex_id, "name": "North", "organisationId": org, "type": "Region"})
        try:
            vertex = await store.get_vertex(vertex_id)
            assert vertex.label == "Location"
            assert vertex.name == "North"

            await store.update_vertex_properties(vertex_id, {"name": "Northern"})
            found = await store.get_vertices_by_label("Location", {"organisationId": org})
            assert [v.name for v in found] == ["Northern"]
        finally:
            await store.delete_vertex(vertex_id)

        assert await store.get_vertex(vertex_id) is None

    async def test_duplicate_id_violates_constraint(self, store, org):
        vertex_id = f"sf_{org}_Transportation"
        properties = {"id": vertex_id, "name": "Transportation", "organisationId": org, "category": "Transportation"}
        await store.add_vertex("ServiceFunction", properties)
        try:
            with pytest.raises(ValidationError):
                await store.add_vertex("ServiceFunction", properties)
        finally:
            await store.delete_vertex(vertex_id)

    async def test_edges_and_cascade(self, store, org):
        parent, child = f"loc_{org}_North", f"loc_{org}_Riverside"
        await store.add_vertex("Location", {"id": parent, "name": "North", "organisationId": org, "type": "Region"})
        await store.add_vertex("Location", {"id": child, "name": "Riverside", "organisationId": org, "type": "Area"})
        try:
            edge_id = await store.add_edge("CONTAINS", parent, child)
            edges = await store.get_edges(from_vertex_id=parent, label="CONTAINS")
            assert [edge.id for edge in edges] == [edge_id]

            with pytest.raises(NotFoundError):
                await store.add_edge("CONTAINS", parent, f"loc_{org}_missing")

            await store.delete_vertex(child)
            assert await store.get_edges(from_vertex_id=parent) == []
        finally:
            await store.delete_vertex(parent)
            await store.delete_vertex(child)

    async def test_update_missing_vertex(self, store, org):
        with pytest.raises(NotFoundError):
            await store.update_vertex_properties(f"missing_{org}", {"name": "x"})
