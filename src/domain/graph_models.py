"""Graph-side models: vertices, edges and per-label property schemas."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from domain.errors import ValidationError


class VertexLabel(str, Enum):
    """Vertex labels stored in the graph."""
    ASSET = "Asset"
    SERVICE_FUNCTION = "ServiceFunction"
    LOCATION = "Location"
    ORG_UNIT = "OrgUnit"
    FUNDING_CATEGORY = "FundingCategory"


class EdgeLabel(str, Enum):
    """Directed edge labels stored in the graph."""
    SERVES_PURPOSE = "SERVES_PURPOSE"  # Asset -> ServiceFunction
    LOCATED_AT = "LOCATED_AT"          # Asset -> Location (leaf of chain)
    CONTAINS = "CONTAINS"              # Location -> Location
    OWNED_BY = "OWNED_BY"              # Asset -> OrgUnit


# Required property keys per vertex label. Anything else is allowed
# as an optional property.
VERTEX_SCHEMAS: Dict[VertexLabel, FrozenSet[str]] = {
    VertexLabel.ASSET: frozenset({
        "organisationId", "name", "assetType", "servicePurpose", "criticality", "condition",
    }),
    VertexLabel.SERVICE_FUNCTION: frozenset({"organisationId", "name", "category"}),
    VertexLabel.LOCATION: frozenset({"organisationId", "name", "type"}),
    VertexLabel.ORG_UNIT: frozenset({"organisationId", "name"}),
    VertexLabel.FUNDING_CATEGORY: frozenset({"organisationId", "name"}),
}


def parse_vertex_label(label: str) -> VertexLabel:
    """Parse a label string, rejecting labels with no schema."""
    try:
        return VertexLabel(label)
    except ValueError:
        raise ValidationError(f"Unknown vertex label: {label}") from None


def validate_vertex_properties(label: str, properties: Dict[str, Any]) -> None:
    """Check that `properties` satisfies the schema for `label`.

    Raises:
        ValidationError: If the label is unknown or required keys are missing
    """
    vertex_label = parse_vertex_label(label)
    missing = sorted(key for key in VERTEX_SCHEMAS[vertex_label] if properties.get(key) in (None, ""))
    if missing:
        raise ValidationError(f"{vertex_label.value} vertex missing properties: {missing}")


@dataclass
class Vertex:
    """A vertex in the graph store."""
    id: str
    label: str
    properties: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.properties.get(key, default)

    @property
    def name(self) -> str:
        return str(self.properties.get("name", ""))

    @property
    def organisation_id(self) -> Optional[str]:
        return self.properties.get("organisationId")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"id": self.id, "label": self.label, "properties": dict(self.properties)}


@dataclass
class Edge:
    """A directed, labelled edge in the graph store."""
    id: str
    label: str
    from_vertex_id: str
    to_vertex_id: str
    properties: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "label": self.label,
            "from_vertex_id": self.from_vertex_id,
            "to_vertex_id": self.to_vertex_id,
            "properties": dict(self.properties),
        }
