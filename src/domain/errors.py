"""Error taxonomy for graph synchronization and hierarchy construction.

Store adapters translate driver-specific failures into these types so the
services above them never depend on neo4j or SQLAlchemy exceptions.
"""

from typing import Optional


class HierarchySyncError(Exception):
    """Base class for all errors raised by this subsystem."""


class TransientStoreError(HierarchySyncError):
    """Connection or timeout failure talking to a store.

    Retryable by the caller; never retried automatically here.
    """

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class NotFoundError(HierarchySyncError):
    """A referenced asset, vertex, node or view does not exist."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class OrphanDetected(HierarchySyncError):
    """A graph vertex has no relational record.

    Informational: carried in cleanup and consistency results, not raised
    out of the cleanup pass.
    """

    def __init__(self, vertex_id: str, organisation_id: Optional[str] = None):
        super().__init__(f"Orphan vertex {vertex_id}")
        self.vertex_id = vertex_id
        self.organisation_id = organisation_id


class DanglingEdgeError(HierarchySyncError):
    """An edge references a vertex that does not exist."""

    def __init__(self, edge_id: str, label: str, missing_vertex_id: str):
        super().__init__(
            f"Edge {edge_id} ({label}) references missing vertex {missing_vertex_id}"
        )
        self.edge_id = edge_id
        self.label = label
        self.missing_vertex_id = missing_vertex_id


class ValidationError(HierarchySyncError):
    """Malformed configuration or vertex properties."""


class RebuildFailure(HierarchySyncError):
    """Forest construction failed; the previously published forest stays live."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
