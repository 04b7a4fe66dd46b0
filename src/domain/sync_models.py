"""Synchronization options, results and consistency reports."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from domain.errors import ValidationError


@dataclass
class SyncOptions:
    """Options for a relational → graph sync pass."""
    batch_size: int = 100
    dry_run: bool = False
    force_update: bool = False
    organisation_id: Optional[str] = None
    max_concurrency: int = 8
    record_timeout_seconds: Optional[float] = 30.0

    def validate(self) -> None:
        if self.batch_size < 1:
            raise ValidationError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_concurrency < 1:
            raise ValidationError(f"max_concurrency must be >= 1, got {self.max_concurrency}")
        if self.record_timeout_seconds is not None and self.record_timeout_seconds <= 0:
            raise ValidationError(
                f"record_timeout_seconds must be positive, got {self.record_timeout_seconds}"
            )


@dataclass
class SyncResult:
    """Outcome of a sync or cleanup pass.

    `success` is False only for structural failures (the batch loop could
    not progress). Per-record failures land in `errors` as
    "<assetId>: <cause>" and leave `success` True.
    """
    success: bool = True
    records_processed: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    orphan_ids: List[str] = field(default_factory=list)
    failed_asset_ids: List[str] = field(default_factory=list)
    vertices_created: int = 0
    vertices_updated: int = 0
    anchors_created: int = 0
    edges_created: int = 0
    cancelled: bool = False
    dry_run: bool = False
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    def add_record_error(self, asset_id: str, cause: Any) -> None:
        self.errors.append(f"{asset_id}: {cause}")
        self.failed_asset_ids.append(asset_id)

    def fail(self, message: str) -> None:
        """Record a structural failure."""
        self.success = False
        self.errors.append(message)

    def finish(self) -> "SyncResult":
        self.finished_at = datetime.now()
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "success": self.success,
            "records_processed": self.records_processed,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "orphan_ids": list(self.orphan_ids),
            "failed_asset_ids": list(self.failed_asset_ids),
            "vertices_created": self.vertices_created,
            "vertices_updated": self.vertices_updated,
            "anchors_created": self.anchors_created,
            "edges_created": self.edges_created,
            "cancelled": self.cancelled,
            "dry_run": self.dry_run,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass
class RecordOutcome:
    """What a single-asset sync did (or would do, in a dry run)."""
    asset_id: str
    action: str = "none"  # "created", "recreated", "updated"
    vertex_created: bool = False
    vertex_updated: bool = False
    anchors_created: int = 0
    edges_created: int = 0
    planned: List[str] = field(default_factory=list)


@dataclass
class DanglingEdge:
    """An edge whose endpoint vertex is missing."""
    edge_id: str
    label: str
    from_vertex_id: str
    to_vertex_id: str
    missing_vertex_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "edge_id": self.edge_id,
            "label": self.label,
            "from_vertex_id": self.from_vertex_id,
            "to_vertex_id": self.to_vertex_id,
            "missing_vertex_id": self.missing_vertex_id,
        }


@dataclass
class ConsistencyReport:
    """Cross-store consistency findings. Nothing here is auto-repaired."""
    organisation_id: Optional[str] = None
    dangling_edges: List[DanglingEdge] = field(default_factory=list)
    orphan_ids: List[str] = field(default_factory=list)
    cycles: Dict[str, List[str]] = field(default_factory=dict)
    checked_at: datetime = field(default_factory=datetime.now)

    @property
    def is_consistent(self) -> bool:
        return not (self.dangling_edges or self.orphan_ids or self.cycles)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "organisation_id": self.organisation_id,
            "is_consistent": self.is_consistent,
            "dangling_edges": [edge.to_dict() for edge in self.dangling_edges],
            "orphan_ids": list(self.orphan_ids),
            "cycles": {label: list(ids) for label, ids in self.cycles.items()},
            "checked_at": self.checked_at.isoformat(),
        }
