"""Asset domain models and the classification tables derived from them.

The relational store owns `Asset` records. Everything the graph and the
hierarchies need from an asset (service purpose, criticality, location
chain, funding categories) is derived here from current asset state, so
sync and hierarchy construction always agree on the mapping.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class AssetType(str, Enum):
    """Asset types known to the platform."""
    BUILDING = "BUILDING"
    ROAD = "ROAD"
    BRIDGE = "BRIDGE"
    FOOTPATH = "FOOTPATH"
    PARK = "PARK"
    PLAYGROUND = "PLAYGROUND"
    SPORTS_FACILITY = "SPORTS_FACILITY"
    LIBRARY = "LIBRARY"
    COMMUNITY_CENTRE = "COMMUNITY_CENTRE"
    CAR_PARK = "CAR_PARK"
    STREET_FURNITURE = "STREET_FURNITURE"
    TRAFFIC_LIGHT = "TRAFFIC_LIGHT"
    STREET_LIGHT = "STREET_LIGHT"
    DRAINAGE = "DRAINAGE"
    WATER_SUPPLY = "WATER_SUPPLY"
    SEWER = "SEWER"
    ELECTRICAL_INFRASTRUCTURE = "ELECTRICAL_INFRASTRUCTURE"
    TELECOMMUNICATIONS = "TELECOMMUNICATIONS"
    FIRE_STATION = "FIRE_STATION"
    EMERGENCY_FACILITY = "EMERGENCY_FACILITY"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: Optional[str]) -> "AssetType":
        """Parse a raw asset type, falling back to OTHER."""
        try:
            return cls((value or "").upper())
        except ValueError:
            return cls.OTHER


class Priority(str, Enum):
    """Relational priority of an asset."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Criticality(str, Enum):
    """Criticality level stored on graph vertices."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class LocationType(str, Enum):
    """Levels of the address-derived location chain."""
    REGION = "Region"
    AREA = "Area"
    SITE = "Site"


LOCATION_LEVELS: Dict[LocationType, int] = {
    LocationType.REGION: 0,
    LocationType.AREA: 1,
    LocationType.SITE: 2,
}

SERVICE_PURPOSE_TAG = "service-purpose:"
ORG_TAG = "org:"
FUNDING_TAG = "funding:"
DEFAULT_SERVICE_PURPOSE = "General Services"

SERVICE_PURPOSE_MAP: Dict[AssetType, str] = {
    AssetType.BUILDING: "Facility Management",
    AssetType.ROAD: "Transportation",
    AssetType.BRIDGE: "Transportation",
    AssetType.FOOTPATH: "Transportation",
    AssetType.CAR_PARK: "Transportation",
    AssetType.TRAFFIC_LIGHT: "Transportation",
    AssetType.PARK: "Community Services",
    AssetType.PLAYGROUND: "Community Services",
    AssetType.SPORTS_FACILITY: "Community Services",
    AssetType.LIBRARY: "Community Services",
    AssetType.COMMUNITY_CENTRE: "Community Services",
    AssetType.STREET_FURNITURE: "Urban Services",
    AssetType.STREET_LIGHT: "Utility Services",
    AssetType.DRAINAGE: "Infrastructure",
    AssetType.WATER_SUPPLY: "Infrastructure",
    AssetType.SEWER: "Infrastructure",
    AssetType.ELECTRICAL_INFRASTRUCTURE: "Utility Services",
    AssetType.TELECOMMUNICATIONS: "Utility Services",
    AssetType.FIRE_STATION: "Emergency Response",
    AssetType.EMERGENCY_FACILITY: "Emergency Response",
    AssetType.OTHER: DEFAULT_SERVICE_PURPOSE,
}

# Top-level categories of the function hierarchy
FUNCTION_CATEGORY_TRANSPORTATION = "Transportation"
FUNCTION_CATEGORY_INFRASTRUCTURE = "Infrastructure"
FUNCTION_CATEGORY_UTILITIES = "Utilities"
FUNCTION_CATEGORY_EMERGENCY = "Emergency Services"
FUNCTION_CATEGORY_COMMUNITY = "Community"
FUNCTION_CATEGORY_GENERAL = "General"

SERVICE_CATEGORY_MAP: Dict[str, str] = {
    "Transportation": FUNCTION_CATEGORY_TRANSPORTATION,
    "Facility Management": FUNCTION_CATEGORY_INFRASTRUCTURE,
    "Infrastructure": FUNCTION_CATEGORY_INFRASTRUCTURE,
    "Urban Services": FUNCTION_CATEGORY_INFRASTRUCTURE,
    "Utility Services": FUNCTION_CATEGORY_UTILITIES,
    "Emergency Response": FUNCTION_CATEGORY_EMERGENCY,
    "Community Services": FUNCTION_CATEGORY_COMMUNITY,
    DEFAULT_SERVICE_PURPOSE: FUNCTION_CATEGORY_GENERAL,
}

CRITICALITY_MAP: Dict[str, Criticality] = {
    Priority.LOW.value: Criticality.LOW,
    Priority.MEDIUM.value: Criticality.MEDIUM,
    Priority.HIGH.value: Criticality.HIGH,
    Priority.CRITICAL.value: Criticality.CRITICAL,
}

# Funding categories and the asset types each one funds.
# An asset type may appear under more than one category.
FUNDING_CATEGORIES: Dict[str, Dict[str, Any]] = {
    "Infrastructure": {
        "description": "Core infrastructure assets",
        "asset_types": [
            AssetType.BUILDING, AssetType.DRAINAGE, AssetType.WATER_SUPPLY,
            AssetType.SEWER, AssetType.ELECTRICAL_INFRASTRUCTURE,
        ],
    },
    "Community Services": {
        "description": "Community-focused assets",
        "asset_types": [
            AssetType.PARK, AssetType.PLAYGROUND, AssetType.SPORTS_FACILITY,
            AssetType.LIBRARY, AssetType.COMMUNITY_CENTRE,
        ],
    },
    "Transportation": {
        "description": "Transportation infrastructure",
        "asset_types": [
            AssetType.ROAD, AssetType.BRIDGE, AssetType.FOOTPATH,
            AssetType.CAR_PARK, AssetType.TRAFFIC_LIGHT,
        ],
    },
    "Utilities": {
        "description": "Utility infrastructure",
        "asset_types": [
            AssetType.WATER_SUPPLY, AssetType.SEWER,
            AssetType.ELECTRICAL_INFRASTRUCTURE, AssetType.TELECOMMUNICATIONS,
        ],
    },
    "General": {
        "description": "General purpose assets",
        "asset_types": [
            AssetType.STREET_FURNITURE, AssetType.STREET_LIGHT,
            AssetType.FIRE_STATION, AssetType.EMERGENCY_FACILITY, AssetType.OTHER,
        ],
    },
}


def map_priority_to_criticality(priority: Optional[str]) -> Criticality:
    """Map a relational priority to a graph criticality (default Medium)."""
    return CRITICALITY_MAP.get((priority or "").upper(), Criticality.MEDIUM)


def get_service_category(service_purpose: str) -> str:
    """Get the function-hierarchy category for a service purpose."""
    return SERVICE_CATEGORY_MAP.get(service_purpose, FUNCTION_CATEGORY_GENERAL)


def tag_values(tags: List[str], prefix: str) -> List[str]:
    """Return the values of all `prefix<value>` tags, in tag order."""
    return [tag[len(prefix):] for tag in tags if tag.startswith(prefix) and len(tag) > len(prefix)]


@dataclass
class LocationLink:
    """One link of an asset's Region → Area → Site chain."""
    name: str
    type: LocationType
    parent_name: Optional[str] = None

    @property
    def level(self) -> int:
        return LOCATION_LEVELS[self.type]


@dataclass
class Asset:
    """Authoritative asset record as read from the relational store."""
    id: str
    organisation_id: str
    name: str = ""
    asset_number: str = ""
    asset_type: str = AssetType.OTHER.value
    current_value: float = 0.0
    priority: str = Priority.MEDIUM.value
    condition: str = "Unknown"
    status: str = "ACTIVE"
    state: Optional[str] = None
    suburb: Optional[str] = None
    address: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    is_active: bool = True

    @property
    def service_purpose(self) -> str:
        """Explicitly assigned purpose (tag) or the asset-type mapping."""
        explicit = tag_values(self.tags, SERVICE_PURPOSE_TAG)
        if explicit:
            return explicit[0]
        return SERVICE_PURPOSE_MAP.get(AssetType.parse(self.asset_type), DEFAULT_SERVICE_PURPOSE)

    @property
    def criticality(self) -> Criticality:
        return map_priority_to_criticality(self.priority)

    def location_chain(self) -> List[LocationLink]:
        """Build the ordered Region → Area → Site chain from address fields.

        Missing fields are skipped; each link's parent is the previous
        link's name, so the chain is resolvable without vertex ids.
        """
        chain: List[LocationLink] = []
        for value, location_type in (
            (self.state, LocationType.REGION),
            (self.suburb, LocationType.AREA),
            (self.address, LocationType.SITE),
        ):
            if value and value.strip():
                parent = chain[-1].name if chain else None
                chain.append(LocationLink(name=value.strip(), type=location_type, parent_name=parent))
        return chain

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "organisation_id": self.organisation_id,
            "name": self.name,
            "asset_number": self.asset_number,
            "asset_type": self.asset_type,
            "current_value": self.current_value,
            "priority": self.priority,
            "condition": self.condition,
            "status": self.status,
            "state": self.state,
            "suburb": self.suburb,
            "address": self.address,
            "tags": list(self.tags),
            "is_active": self.is_active,
        }


@dataclass
class AssetModel:
    """Asset as registered with the hierarchy engine.

    Carries only what hierarchy construction needs; rebuilt from the
    relational record whenever the asset is (re)registered.
    """
    id: str
    organisation_id: str
    name: str = ""
    asset_type: str = AssetType.OTHER.value
    value_contribution: float = 0.0
    priority: str = Priority.MEDIUM.value
    service_purpose: str = DEFAULT_SERVICE_PURPOSE
    tags: List[str] = field(default_factory=list)
    is_active: bool = True
    location_path: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_asset(cls, asset: Asset) -> "AssetModel":
        """Create a model from a relational asset record."""
        return cls(
            id=asset.id,
            organisation_id=asset.organisation_id,
            name=asset.name,
            asset_type=asset.asset_type,
            value_contribution=float(asset.current_value or 0.0),
            priority=asset.priority,
            service_purpose=asset.service_purpose,
            tags=list(asset.tags),
            is_active=asset.is_active,
            location_path=[link.name for link in asset.location_chain()],
            metadata={"asset_number": asset.asset_number, "condition": asset.condition},
        )

    @property
    def is_critical(self) -> bool:
        return (self.priority or "").upper() == Priority.CRITICAL.value

    @property
    def departments(self) -> List[str]:
        """Departments named by `org:<department>` tags."""
        return tag_values(self.tags, ORG_TAG)

    def funding_categories(self) -> List[str]:
        """Funding categories this asset belongs to, in declaration order."""
        asset_type = AssetType.parse(self.asset_type)
        tagged = {value.lower() for value in tag_values(self.tags, FUNDING_TAG)}
        return [
            name
            for name, category in FUNDING_CATEGORIES.items()
            if asset_type in category["asset_types"] or name.lower() in tagged
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "organisation_id": self.organisation_id,
            "name": self.name,
            "asset_type": self.asset_type,
            "value_contribution": self.value_contribution,
            "priority": self.priority,
            "service_purpose": self.service_purpose,
            "tags": list(self.tags),
            "is_active": self.is_active,
            "location_path": list(self.location_path),
            "metadata": dict(self.metadata),
        }
