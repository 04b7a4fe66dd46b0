"""Tests for the in-memory store adapters and the timeout decorators."""

import asyncio

import pytest

from domain.errors import NotFoundError, TransientStoreError, ValidationError
from domain.stores import AssetFilter
from factories import make_asset
from infrastructure.in_memory_asset_store import InMemoryAssetStore
from infrastructure.store_calls import TimeoutAssetStore, TimeoutGraphStore, call_with_timeout


class TestInMemoryGraphStore:
    async def test_add_and_get_vertex(self, graph_store):
        vertex_id = await graph_store.add_vertex("Location", {"id": "loc-1", "name": "North"})
        vertex = await graph_store.get_vertex(vertex_id)

        assert vertex_id == "loc-1"
        assert vertex.label == "Location"
        assert vertex.name == "North"

    async def test_returned_vertices_are_copies(self, graph_store):
        await graph_store.add_vertex("Location", {"id": "loc-1", "name": "North"})
        vertex = await graph_store.get_vertex("loc-1")
        vertex.properties["name"] = "changed"

        assert (await graph_store.get_vertex("loc-1")).name == "North"

    async def test_duplicate_id_is_rejected(self, graph_store):
        await graph_store.add_vertex("Location", {"id": "loc-1"})
        with pytest.raises(ValidationError):
            await graph_store.add_vertex("Location", {"id": "loc-1"})

    async def test_unknown_label_is_rejected(self, graph_store):
        with pytest.raises(ValidationError):
            await graph_store.add_vertex("Spaceship", {"id": "x"})

    async def test_label_and_property_filter(self, graph_store):
        await graph_store.add_vertex("Location", {"id": "l1", "name": "North", "organisationId": "org-1"})
        await graph_store.add_vertex("Location", {"id": "l2", "name": "North", "organisationId": "org-2"})
        await graph_store.add_vertex("OrgUnit", {"id": "o1", "name": "North", "organisationId": "org-1"})

        found = await graph_store.get_vertices_by_label("Location", {"name": "North", "organisationId": "org-1"})

        assert [vertex.id for vertex in found] == ["l1"]

    async def test_update_missing_vertex(self, graph_store):
        with pytest.raises(NotFoundError):
            await graph_store.update_vertex_properties("missing", {"name": "x"})

    async def test_update_never_changes_id(self, graph_store):
        await graph_store.add_vertex("Location", {"id": "l1", "name": "North"})
        await graph_store.update_vertex_properties("l1", {"id": "other", "name": "South"})

        vertex = await graph_store.get_vertex("l1")
        assert vertex.properties["id"] == "l1"
        assert vertex.name == "South"

    async def test_edge_requires_both_endpoints(self, graph_store):
        await graph_store.add_vertex("Location", {"id": "l1"})
        with pytest.raises(NotFoundError):
            await graph_store.add_edge("CONTAINS", "l1", "missing")

    async def test_delete_vertex_cascades_edges(self, graph_store):
        for vertex_id in ("l1", "l2", "l3"):
            await graph_store.add_vertex("Location", {"id": vertex_id})
        await graph_store.add_edge("CONTAINS", "l1", "l2")
        await graph_store.add_edge("CONTAINS", "l2", "l3")

        await graph_store.delete_vertex("l2")

        assert graph_store.vertex_count == 2
        assert graph_store.edge_count == 0

    async def test_get_edges_filters(self, graph_store):
        for vertex_id in ("l1", "l2", "l3"):
            await graph_store.add_vertex("Location", {"id": vertex_id})
        await graph_store.add_edge("CONTAINS", "l1", "l2")
        await graph_store.add_edge("CONTAINS", "l1", "l3")

        assert len(await graph_store.get_edges(from_vertex_id="l1")) == 2
        assert len(await graph_store.get_edges(from_vertex_id="l1", to_vertex_id="l3")) == 1
        assert await graph_store.get_edges(label="LOCATED_AT") == []


class TestInMemoryAssetStore:
    async def test_pages_in_id_order(self):
        store = InMemoryAssetStore([make_asset(asset_id) for asset_id in ("c", "a", "b")])

        first = await store.find_assets(AssetFilter(), 0, 2)
        second = await store.find_assets(AssetFilter(), 2, 2)

        assert [asset.id for asset in first] == ["a", "b"]
        assert [asset.id for asset in second] == ["c"]

    async def test_filter(self):
        store = InMemoryAssetStore([
            make_asset("a", organisation_id="org-1", tags=["org:maintenance"]),
            make_asset("b", organisation_id="org-2"),
            make_asset("c", organisation_id="org-1", is_active=False),
        ])

        assert [a.id for a in await store.find_assets(AssetFilter(organisation_id="org-1"))] == ["a", "c"]
        assert [a.id for a in await store.find_assets(AssetFilter(tags_any=["org:maintenance"]))] == ["a"]
        assert [a.id for a in await store.find_assets(AssetFilter(is_active=True))] == ["a", "b"]

    async def test_missing_asset(self):
        store = InMemoryAssetStore()
        with pytest.raises(NotFoundError):
            await store.get_asset("missing")
        with pytest.raises(NotFoundError):
            await store.update_asset_tags("missing", [])

    async def test_update_tags(self):
        store = InMemoryAssetStore([make_asset("a")])
        await store.update_asset_tags("a", ["org:planning"])
        assert (await store.get_asset("a")).tags == ["org:planning"]


class SlowGraphStore:
    """Only get_vertex is used; it never answers in time."""

    async def get_vertex(self, vertex_id):
        await asyncio.sleep(1)

    async def close(self):
        pass


class TestTimeouts:
    async def test_call_with_timeout_returns_result(self):
        async def quick():
            return 42

        assert await call_with_timeout(quick(), 1.0, "quick") == 42

    async def test_timeout_becomes_transient_error(self):
        with pytest.raises(TransientStoreError) as exc_info:
            await call_with_timeout(asyncio.sleep(1), 0.01, "sleep")
        assert exc_info.value.operation == "sleep"

    async def test_graph_decorator(self):
        store = TimeoutGraphStore(SlowGraphStore(), timeout=0.01)
        with pytest.raises(TransientStoreError, match="get_vertex"):
            await store.get_vertex("a1")

    async def test_asset_decorator_passes_through(self):
        store = TimeoutAssetStore(InMemoryAssetStore([make_asset("a")]), timeout=1.0)
        assert (await store.get_asset("a")).id == "a"
