"""Asset factories shared by the test modules."""

from domain.asset_models import Asset, AssetModel


def make_asset(asset_id: str, **overrides) -> Asset:
    """Build an asset with a full Region → Area → Site address."""
    fields = {
        "organisation_id": "org-1",
        "name": f"Asset {asset_id}",
        "asset_number": asset_id.upper(),
        "asset_type": "ROAD",
        "current_value": 100.0,
        "priority": "MEDIUM",
        "condition": "Good",
        "state": "North",
        "suburb": "Riverside",
        "address": "1 Main St",
    }
    fields.update(overrides)
    return Asset(id=asset_id, **fields)


def make_model(asset_id: str, **overrides) -> AssetModel:
    return AssetModel.from_asset(make_asset(asset_id, **overrides))
