"""
Nexus Kernel — Snapshot Encoder / Decoder

Canonical JSON serialization of the writable network state: users with
their primary links, relationship edges, and directory entries for
non-user entities. The closure table is derived data and never stored.

Rules:
  - Users sorted by id, edges by id, entities by (entity_type, id).
  - Sorted keys, compact separators, UTF-8.
  - No floats anywhere.
  - Decoding is strict: exact field sets, known vocabularies, no defaults.
  - Invariant validation runs only via restore_snapshot.
"""

from __future__ import annotations

import hashlib
import json
import pathlib
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple

from .directory import InMemoryDirectory
from .domain_types import EntityRef, RelationshipEdge, User
from .graph import index_users
from .invariants import (
    InvariantViolationError,
    validate_edges,
    validate_hierarchy,
)

FORMAT_VERSION = 1


@dataclass(frozen=True)
class NetworkState:
    """Everything needed to rebuild a HierarchyStore + RelationshipGraph."""

    users: Tuple[User, ...] = ()
    edges: Tuple[RelationshipEdge, ...] = ()
    # (entity_type, id, display_name) for non-user entities
    entities: Tuple[Tuple[str, str, str], ...] = ()

    def users_by_id(self) -> Dict[str, User]:
        return index_users(self.users)

    def directory(self) -> InMemoryDirectory:
        return InMemoryDirectory.from_records(self.entities, self.users)


# ══════════════════════════════════════════════════════════════
# Exception Hierarchy
# ══════════════════════════════════════════════════════════════

class SnapshotError(Exception):
    """Base exception for all snapshot operations."""


class SerializationError(SnapshotError):
    """Raised when encoding a NetworkState to JSON fails."""


class DeserializationError(SnapshotError):
    """Raised when decoding JSON to NetworkState fails."""


class InvariantViolationSnapshotError(SnapshotError):
    """Wraps an InvariantViolationError raised during restore."""

    def __init__(self, original: InvariantViolationError) -> None:
        self.original = original
        super().__init__(
            f"Invariant violation during snapshot restore: {original}"
        )


# ══════════════════════════════════════════════════════════════
# Encoder
# ══════════════════════════════════════════════════════════════

def encode_snapshot(state: NetworkState) -> str:
    """
    Serialize a NetworkState into a canonical JSON string.

    Byte-for-byte identical output for identical states.
    """
    try:
        obj = _build_snapshot_dict(state)
        return json.dumps(
            obj,
            ensure_ascii=False,
            separators=(",", ":"),
            sort_keys=True,
        )
    except (TypeError, ValueError, AttributeError) as exc:
        raise SerializationError(f"Failed to encode snapshot: {exc}") from exc


def _build_snapshot_dict(state: NetworkState) -> Dict[str, Any]:
    users = [u.to_dict() for u in sorted(state.users, key=lambda u: u.id)]
    edges = [e.to_dict() for e in sorted(state.edges, key=lambda e: e.id)]
    entities = [
        {"display_name": name, "entity_type": etype, "id": eid}
        for etype, eid, name in sorted(state.entities)
    ]
    return {
        "edges": edges,
        "entities": entities,
        "format_version": FORMAT_VERSION,
        "users": users,
    }


# ══════════════════════════════════════════════════════════════
# Decoder
# ══════════════════════════════════════════════════════════════

_SNAPSHOT_FIELDS = frozenset({"edges", "entities", "format_version", "users"})

_USER_FIELDS = frozenset({"id", "manager_id", "name"})

_EDGE_FIELDS = frozenset({
    "from_entity", "id", "notes", "relationship_type", "strength", "to_entity",
})

_REF_FIELDS = frozenset({"entity_type", "id"})

_ENTITY_FIELDS = frozenset({"display_name", "entity_type", "id"})


def decode_snapshot(json_str: str) -> NetworkState:
    """
    Strict deserialization of canonical JSON to NetworkState.

    Fails on: missing fields, unknown fields, floats, wrong types,
    unknown entity types / strengths / relationship types, duplicate ids.
    """
    try:
        raw = json.loads(json_str)
    except json.JSONDecodeError as exc:
        raise DeserializationError(f"Invalid JSON: {exc}") from exc

    if not isinstance(raw, dict):
        raise DeserializationError(
            f"Top-level JSON must be object, got {type(raw).__name__}"
        )

    _assert_no_floats(raw, "$")
    _check_fields(raw, _SNAPSHOT_FIELDS, "snapshot")

    if raw["format_version"] != FORMAT_VERSION:
        raise DeserializationError(
            f"Unsupported format_version {raw['format_version']!r}"
        )

    users = _decode_users(_require_list(raw, "users"))
    edges = _decode_edges(_require_list(raw, "edges"))
    entities = _decode_entities(_require_list(raw, "entities"))
    return NetworkState(users=users, edges=edges, entities=entities)


def _decode_users(raw_users: List[Any]) -> Tuple[User, ...]:
    users: List[User] = []
    seen: Set[str] = set()
    for i, udata in enumerate(raw_users):
        context = f"user [{i}]"
        _require_object(udata, context)
        _check_fields(udata, _USER_FIELDS, context)
        uid = _require_str(udata, "id", context)
        name = _require_str(udata, "name", context)
        manager_id = udata["manager_id"]
        if manager_id is not None and not isinstance(manager_id, str):
            raise DeserializationError(
                f"{context}: 'manager_id' must be string or null, "
                f"got {type(manager_id).__name__}"
            )
        if uid in seen:
            raise DeserializationError(f"Duplicate user ID: '{uid}'")
        seen.add(uid)
        try:
            EntityRef.user(uid)
        except ValueError as exc:
            raise DeserializationError(f"{context}: {exc}") from exc
        users.append(User(id=uid, name=name, manager_id=manager_id))
    return tuple(users)


def _decode_ref(data: Any, context: str) -> EntityRef:
    _require_object(data, context)
    _check_fields(data, _REF_FIELDS, context)
    try:
        return EntityRef(
            _require_str(data, "entity_type", context),
            _require_str(data, "id", context),
        )
    except ValueError as exc:
        raise DeserializationError(f"{context}: {exc}") from exc


def _decode_edges(raw_edges: List[Any]) -> Tuple[RelationshipEdge, ...]:
    edges: List[RelationshipEdge] = []
    seen: Set[str] = set()
    for i, edata in enumerate(raw_edges):
        context = f"edge [{i}]"
        _require_object(edata, context)
        _check_fields(edata, _EDGE_FIELDS, context)
        edge_id = _require_str(edata, "id", context)
        if edge_id in seen:
            raise DeserializationError(f"Duplicate relationship ID: '{edge_id}'")
        seen.add(edge_id)
        notes = edata["notes"]
        if notes is not None and not isinstance(notes, str):
            raise DeserializationError(f"{context}: 'notes' must be string or null")
        try:
            edges.append(RelationshipEdge(
                id=edge_id,
                from_entity=_decode_ref(edata["from_entity"], f"{context}.from_entity"),
                to_entity=_decode_ref(edata["to_entity"], f"{context}.to_entity"),
                relationship_type=_require_str(edata, "relationship_type", context),
                strength=_require_str(edata, "strength", context),
                notes=notes,
            ))
        except ValueError as exc:
            raise DeserializationError(f"{context}: {exc}") from exc
    return tuple(edges)


def _decode_entities(raw_entities: List[Any]) -> Tuple[Tuple[str, str, str], ...]:
    entities: List[Tuple[str, str, str]] = []
    seen: Set[Tuple[str, str]] = set()
    for i, data in enumerate(raw_entities):
        context = f"entity [{i}]"
        _require_object(data, context)
        _check_fields(data, _ENTITY_FIELDS, context)
        etype = _require_str(data, "entity_type", context)
        eid = _require_str(data, "id", context)
        name = _require_str(data, "display_name", context)
        if etype == "User":
            raise DeserializationError(
                f"{context}: users belong in 'users', not 'entities'"
            )
        try:
            EntityRef(etype, eid)
        except ValueError as exc:
            raise DeserializationError(f"{context}: {exc}") from exc
        if (etype, eid) in seen:
            raise DeserializationError(f"Duplicate entity: '{etype}:{eid}'")
        seen.add((etype, eid))
        entities.append((etype, eid, name))
    return tuple(entities)


# ══════════════════════════════════════════════════════════════
# Restore (decode + validate)
# ══════════════════════════════════════════════════════════════

def validate_state(state: NetworkState) -> None:
    """Raise InvariantViolationError if the state is not loadable as-is."""
    users = state.users_by_id()
    validate_hierarchy(users)
    validate_edges(state.edges, users=users, directory=state.directory())


def restore_snapshot(json_str: str) -> NetworkState:
    """
    Decode a snapshot and immediately validate invariants.

    Hard fail on first invariant violation.
    """
    state = decode_snapshot(json_str)
    try:
        validate_state(state)
    except InvariantViolationError as exc:
        raise InvariantViolationSnapshotError(exc) from exc
    return state


# ══════════════════════════════════════════════════════════════
# File I/O
# ══════════════════════════════════════════════════════════════

def export_snapshot_to_file(state: NetworkState, path: pathlib.Path) -> None:
    """Write canonical snapshot JSON. No validation on export."""
    path.write_text(encode_snapshot(state), encoding="utf-8")


def import_snapshot_from_file(path: pathlib.Path) -> NetworkState:
    """
    Import a snapshot from a file and validate invariants.

    Fails if malformed. No fallback. No silent repair.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DeserializationError(
            f"Failed to read snapshot file {path}: {exc}"
        ) from exc
    return restore_snapshot(text)


# ══════════════════════════════════════════════════════════════
# Integrity Hash
# ══════════════════════════════════════════════════════════════

def snapshot_hash(state: NetworkState) -> str:
    """SHA-256 of canonical JSON bytes. Lowercase hex."""
    return hashlib.sha256(encode_snapshot(state).encode("utf-8")).hexdigest()


# ══════════════════════════════════════════════════════════════
# Internal Validation Helpers
# ══════════════════════════════════════════════════════════════

def _check_fields(data: dict, expected: frozenset, context: str) -> None:
    """Fail if data has missing or unknown fields vs expected set."""
    actual = set(data.keys())
    missing = expected - actual
    unknown = actual - expected
    if missing:
        raise DeserializationError(
            f"Missing fields in {context}: {sorted(missing)}"
        )
    if unknown:
        raise DeserializationError(
            f"Unknown fields in {context}: {sorted(unknown)}"
        )


def _require_object(data: Any, context: str) -> None:
    if not isinstance(data, dict):
        raise DeserializationError(f"{context} must be a JSON object")


def _require_list(data: dict, key: str) -> List[Any]:
    value = data[key]
    if not isinstance(value, list):
        raise DeserializationError(f"'{key}' must be a JSON array")
    return value


def _require_str(data: dict, key: str, context: str) -> str:
    value = data[key]
    if not isinstance(value, str):
        raise DeserializationError(
            f"{context}: '{key}' must be string, got {type(value).__name__}"
        )
    return value


def _assert_no_floats(obj: Any, path: str) -> None:
    """Recursively walk parsed JSON and fail if any float is found."""
    if isinstance(obj, float):
        raise DeserializationError(
            f"Float detected at {path}: {obj!r}; floats are prohibited"
        )
    if isinstance(obj, dict):
        for k, v in obj.items():
            _assert_no_floats(v, f"{path}.{k}")
    elif isinstance(obj, list):
        for i, v in enumerate(obj):
            _assert_no_floats(v, f"{path}[{i}]")


def state_from_stores(hierarchy, graph, entities: Optional[List[Tuple[str, str, str]]] = None) -> NetworkState:
    """Capture the writable state of live stores as a NetworkState."""
    return NetworkState(
        users=tuple(hierarchy.users[uid] for uid in sorted(hierarchy.users)),
        edges=tuple(graph.edges()),
        entities=tuple(sorted(entities or ())),
    )
