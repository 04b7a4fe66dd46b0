"""Tests for asset classification: purpose, criticality, location chain, funding."""

from factories import make_asset, make_model
from domain.asset_models import (
    AssetModel,
    AssetType,
    Criticality,
    LocationType,
    get_service_category,
    map_priority_to_criticality,
    tag_values,
)


class TestServicePurpose:
    def test_asset_type_mapping(self):
        assert make_asset("a1", asset_type="ROAD").service_purpose == "Transportation"
        assert make_asset("a2", asset_type="LIBRARY").service_purpose == "Community Services"
        assert make_asset("a3", asset_type="FIRE_STATION").service_purpose == "Emergency Response"

    def test_unknown_type_falls_back_to_general(self):
        asset = make_asset("a1", asset_type="SPACESHIP")
        assert AssetType.parse(asset.asset_type) == AssetType.OTHER
        assert asset.service_purpose == "General Services"

    def test_asset_type_is_case_insensitive(self):
        assert make_asset("a1", asset_type="bridge").service_purpose == "Transportation"

    def test_tag_overrides_type_mapping(self):
        asset = make_asset("a1", asset_type="ROAD", tags=["service-purpose:Community Services"])
        assert asset.service_purpose == "Community Services"

    def test_first_purpose_tag_wins(self):
        asset = make_asset("a1", tags=["service-purpose:Infrastructure", "service-purpose:Utility Services"])
        assert asset.service_purpose == "Infrastructure"

    def test_empty_purpose_tag_is_ignored(self):
        asset = make_asset("a1", asset_type="ROAD", tags=["service-purpose:"])
        assert asset.service_purpose == "Transportation"


class TestCategories:
    def test_transportation_category(self):
        assert get_service_category("Transportation") == "Transportation"

    def test_facility_management_is_infrastructure(self):
        assert get_service_category("Facility Management") == "Infrastructure"

    def test_unknown_purpose_is_general(self):
        assert get_service_category("Something Else") == "General"


class TestCriticality:
    def test_priority_mapping(self):
        assert map_priority_to_criticality("LOW") == Criticality.LOW
        assert map_priority_to_criticality("critical") == Criticality.CRITICAL

    def test_default_is_medium(self):
        assert map_priority_to_criticality(None) == Criticality.MEDIUM
        assert map_priority_to_criticality("URGENT") == Criticality.MEDIUM


class TestLocationChain:
    def test_full_chain(self):
        chain = make_asset("a1").location_chain()
        assert [link.name for link in chain] == ["North", "Riverside", "1 Main St"]
        assert [link.type for link in chain] == [LocationType.REGION, LocationType.AREA, LocationType.SITE]
        assert [link.parent_name for link in chain] == [None, "North", "Riverside"]
        assert [link.level for link in chain] == [0, 1, 2]

    def test_missing_fields_are_skipped(self):
        chain = make_asset("a1", suburb=None, address="  ").location_chain()
        assert [link.name for link in chain] == ["North"]

    def test_skipped_level_reparents_to_previous_link(self):
        chain = make_asset("a1", suburb="").location_chain()
        assert chain[1].name == "1 Main St"
        assert chain[1].parent_name == "North"

    def test_no_address(self):
        assert make_asset("a1", state=None, suburb=None, address=None).location_chain() == []


class TestAssetModel:
    def test_from_asset(self):
        model = make_model("a1", current_value=250, priority="CRITICAL", tags=["org:maintenance"])

        assert model.value_contribution == 250.0
        assert model.service_purpose == "Transportation"
        assert model.is_critical
        assert model.departments == ["maintenance"]
        assert model.location_path == ["North", "Riverside", "1 Main St"]
        assert model.metadata["asset_number"] == "A1"

    def test_funding_by_asset_type(self):
        assert make_model("a1", asset_type="ROAD").funding_categories() == ["Transportation"]

    def test_funding_type_in_several_categories(self):
        assert make_model("a1", asset_type="WATER_SUPPLY").funding_categories() == ["Infrastructure", "Utilities"]

    def test_funding_tag_adds_category(self):
        model = make_model("a1", asset_type="ROAD", tags=["funding:community services"])
        assert model.funding_categories() == ["Community Services", "Transportation"]

    def test_to_dict(self):
        data = AssetModel(id="a1", organisation_id="org-1").to_dict()
        assert data["id"] == "a1"
        assert data["service_purpose"] == "General Services"


def test_tag_values():
    assert tag_values(["org:a", "x", "org:b", "org:"], "org:") == ["a", "b"]
