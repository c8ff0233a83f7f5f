"""
Nexus Kernel
Deterministic, in-memory org hierarchy (closure table) and relationship
network with bounded multi-degree path finding.
"""

from .domain_types import (
    EntityRef, User, HierarchyEdge, RebuildResult, RelationshipEdge,
    NetworkNode, NetworkResult, PathHop, NexusPath,
    ENTITY_TYPES, STRENGTHS, RELATIONSHIP_TYPES,
)
from .errors import (
    NexusError,
    NotFoundError,
    DuplicateIdError,
    SelfReferenceError,
    CycleError,
    DepthExceededError,
    UnresolvedEntityError,
    DeadlineExceededError,
    HasReportsError,
)
from .deadline import Deadline
from .closure import build_closure
from .hashing import closure_hash, links_hash
from .hierarchy import HierarchyStore, HierarchySnapshot, group_by_depth
from .relationships import RelationshipGraph, Neighbor
from .directory import EntityDirectory, InMemoryDirectory
from .pathfinder import (
    PathFinder,
    compute_network,
    find_paths,
    find_team_paths,
    rank_paths,
)
from .invariants import (
    InvariantViolationError,
    validate_closure,
    validate_edges,
    validate_hierarchy,
)
from .diagnostics import compute_diagnostics
from .snapshot import (
    NetworkState,
    SnapshotError,
    SerializationError,
    DeserializationError,
    InvariantViolationSnapshotError,
    encode_snapshot,
    decode_snapshot,
    restore_snapshot,
    export_snapshot_to_file,
    import_snapshot_from_file,
    snapshot_hash,
)
from .constants import (
    MAX_CHAIN_DEPTH,
    DEFAULT_MAX_DEGREES,
    MAX_TRAVERSAL_DEGREES,
    DEFAULT_PATH_LIMIT,
)

__all__ = [
    "EntityRef",
    "User",
    "HierarchyEdge",
    "RebuildResult",
    "RelationshipEdge",
    "NetworkNode",
    "NetworkResult",
    "PathHop",
    "NexusPath",
    "ENTITY_TYPES",
    "STRENGTHS",
    "RELATIONSHIP_TYPES",
    "NexusError",
    "NotFoundError",
    "DuplicateIdError",
    "SelfReferenceError",
    "CycleError",
    "DepthExceededError",
    "UnresolvedEntityError",
    "DeadlineExceededError",
    "HasReportsError",
    "Deadline",
    "build_closure",
    "closure_hash",
    "links_hash",
    "HierarchyStore",
    "HierarchySnapshot",
    "group_by_depth",
    "RelationshipGraph",
    "Neighbor",
    "EntityDirectory",
    "InMemoryDirectory",
    "PathFinder",
    "compute_network",
    "find_paths",
    "find_team_paths",
    "rank_paths",
    "InvariantViolationError",
    "validate_closure",
    "validate_edges",
    "validate_hierarchy",
    "compute_diagnostics",
    "NetworkState",
    "SnapshotError",
    "SerializationError",
    "DeserializationError",
    "InvariantViolationSnapshotError",
    "encode_snapshot",
    "decode_snapshot",
    "restore_snapshot",
    "export_snapshot_to_file",
    "import_snapshot_from_file",
    "snapshot_hash",
    "MAX_CHAIN_DEPTH",
    "DEFAULT_MAX_DEGREES",
    "MAX_TRAVERSAL_DEGREES",
    "DEFAULT_PATH_LIMIT",
]
