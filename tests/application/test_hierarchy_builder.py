"""Tests for hierarchy construction and bottom-up aggregation."""

import pytest

from application.services.data_sync_service import DataSyncService
from application.services.hierarchy_builder import (
    HierarchyBuilder,
    department_key,
    load_graph_snapshot,
    slugify,
)
from domain.asset_models import AssetModel
from domain.hierarchy_models import ViewType
from factories import make_asset


async def build_forest(asset_store, graph_store, *assets, generation=1):
    """Sync the assets into the graph and build a forest over them."""
    for asset in assets:
        asset_store.put(asset)
    await DataSyncService(asset_store, graph_store).sync_assets()
    snapshot = await load_graph_snapshot(graph_store)
    models = [AssetModel.from_asset(asset) for asset in assets]
    return HierarchyBuilder().build(models, snapshot, generation)


def assert_sums_of_children(forest):
    for node in forest.nodes.values():
        if node.is_leaf:
            continue
        children = forest.children_of(node.id)
        assert node.asset_count == sum(child.asset_count for child in children), node.id
        assert node.value_contribution == pytest.approx(sum(child.value_contribution for child in children)), node.id


class TestHelpers:
    def test_slugify(self):
        assert slugify("Emergency Services") == "emergency-services"
        assert department_key("Budget Management") == "budget-management"


class TestFunctionHierarchy:
    async def test_roads_roll_up_to_transportation(self, asset_store, graph_store):
        forest = await build_forest(
            asset_store, graph_store,
            make_asset("r1", current_value=100),
            make_asset("r2", current_value=200),
            make_asset("r3", current_value=300),
        )

        category = forest.get("function:category:transportation")
        service_function = forest.get("function:sf:sf_org-1_Transportation")

        assert category.asset_count == 3
        assert category.value_contribution == 600.0
        assert category.children_ids == [service_function.id]
        assert service_function.asset_ids == ["r1", "r2", "r3"]
        assert service_function.level == 1
        assert service_function.metadata["priority"] == 100

    async def test_static_categories_always_present(self, asset_store, graph_store):
        forest = await build_forest(asset_store, graph_store)

        roots = forest.root_nodes(ViewType.FUNCTION)

        assert [root.name for root in roots] == [
            "Transportation", "Infrastructure", "Utilities", "Emergency Services", "Community", "General",
        ]
        assert all(root.asset_count == 0 for root in roots)

    async def test_critical_count(self, asset_store, graph_store):
        forest = await build_forest(
            asset_store, graph_store,
            make_asset("r1", priority="CRITICAL"),
            make_asset("r2"),
        )
        assert forest.get("function:category:transportation").critical_asset_count == 1

    async def test_inactive_service_function_node(self, asset_store, graph_store):
        asset_store.put(make_asset("r1"))
        await DataSyncService(asset_store, graph_store).sync_assets()
        await graph_store.update_vertex_properties("sf_org-1_Transportation", {"isActive": False})

        forest = HierarchyBuilder().build(
            [AssetModel.from_asset(make_asset("r1"))], await load_graph_snapshot(graph_store), 1
        )

        assert not forest.get("function:sf:sf_org-1_Transportation").is_active
        assert forest.get("function:category:transportation").is_active

    async def test_inactive_assets_are_excluded(self, asset_store, graph_store):
        forest = await build_forest(
            asset_store, graph_store,
            make_asset("r1", current_value=100),
            make_asset("r2", current_value=900, is_active=False),
        )

        for node in forest.nodes.values():
            assert "r2" not in node.asset_ids
        assert forest.get("function:category:transportation").value_contribution == 100.0
        assert forest.get("funding:transportation").asset_count == 1


class TestGeographicHierarchy:
    async def test_region_area_site(self, asset_store, graph_store):
        forest = await build_forest(asset_store, graph_store, make_asset("a1", current_value=50))

        region = forest.get("geographic:loc_org-1_Region_North")
        area = forest.get("geographic:loc_org-1_Area_Riverside")
        site = forest.get("geographic:loc_org-1_Site_1_Main_St")

        assert [root.id for root in forest.root_nodes(ViewType.GEOGRAPHIC)] == [region.id]
        assert (region.level, area.level, site.level) == (0, 1, 2)
        assert (region.type, area.type, site.type) == ("Region", "Area", "Site")
        assert site.asset_ids == ["a1"]
        assert region.value_contribution == 50.0

    async def test_area_named_like_its_region(self, asset_store, graph_store):
        forest = await build_forest(
            asset_store, graph_store, make_asset("a1", current_value=50, state="Richmond", suburb="Richmond")
        )

        nodes = sorted(forest.nodes_for(ViewType.GEOGRAPHIC), key=lambda node: node.level)
        assert [(node.name, node.type, node.level) for node in nodes] == [
            ("Richmond", "Region", 0), ("Richmond", "Area", 1), ("1 Main St", "Site", 2),
        ]

    async def test_direct_assets_get_their_own_child(self, asset_store, graph_store):
        forest = await build_forest(
            asset_store, graph_store,
            make_asset("a1", current_value=10, suburb=None, address=None),
            make_asset("a2", current_value=20),
        )

        region = forest.get("geographic:loc_org-1_Region_North")
        direct = forest.get("geographic:loc_org-1_Region_North::direct")

        assert direct.parent_id == region.id
        assert direct.asset_ids == ["a1"]
        assert region.asset_ids == []
        assert region.asset_count == 2
        assert region.value_contribution == 30.0
        assert_sums_of_children(forest)

    async def test_contains_cycle_is_broken(self, asset_store, graph_store):
        asset_store.put(make_asset("a1"))
        await DataSyncService(asset_store, graph_store).sync_assets()
        await graph_store.add_edge("CONTAINS", "loc_org-1_Site_1_Main_St", "loc_org-1_Region_North")

        forest = HierarchyBuilder().build(
            [AssetModel.from_asset(make_asset("a1"))], await load_graph_snapshot(graph_store), 1
        )

        # The site now has a child and a directly located asset
        assert sorted(node.id for node in forest.nodes_for(ViewType.GEOGRAPHIC)) == [
            "geographic:loc_org-1_Area_Riverside",
            "geographic:loc_org-1_Region_North",
            "geographic:loc_org-1_Site_1_Main_St",
            "geographic:loc_org-1_Site_1_Main_St::direct",
        ]
        assert [root.id for root in forest.root_nodes(ViewType.GEOGRAPHIC)] == ["geographic:loc_org-1_Area_Riverside"]


class TestOrganisationalHierarchy:
    async def test_department_tags(self, asset_store, graph_store):
        forest = await build_forest(
            asset_store, graph_store,
            make_asset("a1", current_value=10, tags=["org:maintenance"]),
            make_asset("a2", current_value=20, tags=["org:Budget Management"]),
            make_asset("a3", current_value=40, tags=["org:budget-management", "org:planning"]),
            make_asset("a4", current_value=80),
        )

        assert forest.get("organisational:department:maintenance").asset_ids == ["a1"]
        assert forest.get("organisational:department:budget-management").asset_ids == ["a2", "a3"]
        operations = forest.get("organisational:division:operations")
        assert operations.asset_count == 2
        assert operations.value_contribution == 50.0
        assert forest.get("organisational:division:finance").value_contribution == 60.0


class TestFundingHierarchy:
    async def test_asset_in_several_categories(self, asset_store, graph_store):
        forest = await build_forest(asset_store, graph_store, make_asset("w1", asset_type="WATER_SUPPLY"))

        assert forest.get("funding:infrastructure").asset_ids == ["w1"]
        assert forest.get("funding:utilities").asset_ids == ["w1"]
        assert forest.get("funding:transportation").asset_ids == []


class TestAggregation:
    async def test_every_parent_is_sum_of_children(self, asset_store, graph_store):
        forest = await build_forest(
            asset_store, graph_store,
            make_asset("a1", current_value=10, tags=["org:maintenance"]),
            make_asset("a2", current_value=20, asset_type="PARK", state="South"),
            make_asset("a3", current_value=40, asset_type="SEWER", suburb=None),
            make_asset("a4", current_value=80, asset_type="LIBRARY", address="4 High St"),
        )
        assert_sums_of_children(forest)

    async def test_build_is_deterministic(self, asset_store, graph_store):
        assets = [make_asset("a1"), make_asset("a2", asset_type="PARK", address="2 Park Ln")]
        for asset in assets:
            asset_store.put(asset)
        await DataSyncService(asset_store, graph_store).sync_assets()
        snapshot = await load_graph_snapshot(graph_store)
        models = [AssetModel.from_asset(asset) for asset in assets]

        first = HierarchyBuilder().build(models, snapshot, 1)
        second = HierarchyBuilder().build(list(reversed(models)), snapshot, 1)

        assert {k: v.to_dict() for k, v in first.nodes.items()} == {k: v.to_dict() for k, v in second.nodes.items()}

    async def test_nodes_carry_generation(self, asset_store, graph_store):
        forest = await build_forest(asset_store, graph_store, make_asset("a1"), generation=7)

        assert forest.generation == 7
        assert {node.generation for node in forest.nodes.values()} == {7}

    async def test_forest_is_read_only(self, asset_store, graph_store):
        forest = await build_forest(asset_store, graph_store, make_asset("a1"))
        with pytest.raises(TypeError):
            forest.nodes["x"] = None
