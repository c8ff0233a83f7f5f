"""
Nexus Kernel — Core Domain Types

Pure data. No traversal logic, no storage.

────────────────────────────────────────────────
DOMAIN GLOSSARY
────────────────────────────────────────────────

Closure table:
    Materialized rows of every (ancestor, descendant, depth) pair derived
    from the primary ``manager_id`` links.

Degree (of separation):
    Number of relationship-edge hops between two entities.

Nexus path:
    A reconstructed sequence of entities and edges connecting a start
    entity to a target entity.

Entity reference:
    A ``(entity_type, id)`` pair identifying a node across entity kinds.

────────────────────────────────────────────────
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


# ── Vocabularies ──────────────────────────────────────────────
ENTITY_TYPES: Tuple[str, ...] = ("User", "Contact", "Partner", "Account")

STRENGTHS: Tuple[str, ...] = ("Weak", "Medium", "Strong")

# Hops at or above this strength count towards NexusPath.total_strength.
COUNTED_STRENGTHS = frozenset({"Medium", "Strong"})

RELATIONSHIP_TYPES: Tuple[str, ...] = (
    "Works At",
    "Advisor To",
    "Board Member",
    "JV Partner",
    "Banker",
    "Friend",
    "Introduced By",
    "Knows",
    "Worked With",
    "Alumni",
    "Family",
    "Advisor",
    "Other",
)

# ── ID Validation ─────────────────────────────────────────────
ENTITY_ID_PATTERN = re.compile(r'^[A-Za-z0-9_.:-]+$')


def validate_entity_id(entity_id: str) -> None:
    """Validate that an id is a non-empty ASCII token. Hard fail."""
    if not isinstance(entity_id, str) or not ENTITY_ID_PATTERN.match(entity_id):
        raise ValueError(
            f"Invalid id {entity_id!r}: must match [A-Za-z0-9_.:-]+"
        )


def validate_entity_type(entity_type: str) -> None:
    if entity_type not in ENTITY_TYPES:
        raise ValueError(
            f"Unknown entity_type {entity_type!r}. "
            f"Known types: {list(ENTITY_TYPES)}"
        )


def validate_strength(strength: str) -> None:
    if strength not in STRENGTHS:
        raise ValueError(
            f"Unknown strength {strength!r}. Known: {list(STRENGTHS)}"
        )


def validate_relationship_type(relationship_type: str) -> None:
    if relationship_type not in RELATIONSHIP_TYPES:
        raise ValueError(
            f"Unknown relationship type {relationship_type!r}. "
            f"Known types: {list(RELATIONSHIP_TYPES)}"
        )


# ── Entity References ─────────────────────────────────────────

@dataclass(frozen=True, order=True)
class EntityRef:
    """Tagged reference to any node in the network: ``(entity_type, id)``."""

    entity_type: str
    id: str

    def __post_init__(self) -> None:
        validate_entity_type(self.entity_type)
        validate_entity_id(self.id)

    @classmethod
    def user(cls, user_id: str) -> "EntityRef":
        return cls("User", user_id)

    @classmethod
    def parse(cls, token: str) -> "EntityRef":
        """Parse ``"Contact:c1"`` into ``EntityRef("Contact", "c1")``."""
        entity_type, sep, entity_id = token.partition(":")
        if not sep:
            raise ValueError(f"Entity token {token!r} must look like 'Type:id'")
        return cls(entity_type, entity_id)

    def to_dict(self) -> dict:
        return {"entity_type": self.entity_type, "id": self.id}

    def __str__(self) -> str:
        return f"{self.entity_type}:{self.id}"


# ── Hierarchy ─────────────────────────────────────────────────

@dataclass(frozen=True)
class User:
    """A CRM user. ``manager_id`` is the only writable shape of the org tree."""

    id: str
    name: str
    manager_id: Optional[str] = None

    def with_manager(self, manager_id: Optional[str]) -> "User":
        return User(id=self.id, name=self.name, manager_id=manager_id)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "manager_id": self.manager_id}


@dataclass(frozen=True, order=True)
class HierarchyEdge:
    """Closure-table row: ``subordinate_id`` is ``depth`` hops below ``manager_id``."""

    manager_id: str
    subordinate_id: str
    depth: int

    def to_dict(self) -> dict:
        return {
            "manager_id": self.manager_id,
            "subordinate_id": self.subordinate_id,
            "depth": self.depth,
        }


@dataclass(frozen=True)
class RebuildResult:
    """
    Outcome of a closure rebuild.

    ``truncated`` lists ``(manager_id, subordinate_id)`` pairs where the
    walk hit the chain-depth bound and stopped descending. ``cyclic``
    lists pairs where a reporting loop was cut.
    """

    row_count: int = 0
    closure_hash: str = ""
    truncated: Tuple[Tuple[str, str], ...] = ()
    warnings: Tuple[str, ...] = ()
    cyclic: Tuple[Tuple[str, str], ...] = ()

    @property
    def depth_exceeded(self) -> bool:
        return bool(self.truncated)

    def to_dict(self) -> dict:
        return {
            "row_count": self.row_count,
            "closure_hash": self.closure_hash,
            "truncated": [list(pair) for pair in self.truncated],
            "cyclic": [list(pair) for pair in self.cyclic],
            "warnings": list(self.warnings),
        }


# ── Relationship Network ──────────────────────────────────────

@dataclass(frozen=True)
class RelationshipEdge:
    """
    Typed, weighted edge between two entities.

    Traversal treats it as undirected; from/to is kept for display and
    authorship. Several edges may join the same pair.
    """

    id: str
    from_entity: EntityRef
    to_entity: EntityRef
    relationship_type: str = "Knows"
    strength: str = "Medium"
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        validate_entity_id(self.id)
        validate_relationship_type(self.relationship_type)
        validate_strength(self.strength)

    def touches(self, ref: EntityRef) -> bool:
        return self.from_entity == ref or self.to_entity == ref

    def other_end(self, ref: EntityRef) -> EntityRef:
        """Return the endpoint opposite ``ref``."""
        if self.from_entity == ref:
            return self.to_entity
        if self.to_entity == ref:
            return self.from_entity
        raise ValueError(f"Edge {self.id!r} is not incident to {ref}")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_entity": self.from_entity.to_dict(),
            "to_entity": self.to_entity.to_dict(),
            "relationship_type": self.relationship_type,
            "strength": self.strength,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class NetworkNode:
    """One visited node of a bounded traversal."""

    entity: EntityRef
    display_name: Optional[str]
    degree: int
    strength: Optional[str] = None
    relationship_type: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.display_name is not None

    def to_dict(self) -> dict:
        return {
            "entity": self.entity.to_dict(),
            "display_name": self.display_name,
            "degree": self.degree,
            "strength": self.strength,
            "relationship_type": self.relationship_type,
        }


@dataclass(frozen=True)
class NetworkResult:
    """
    Full set of nodes visited by ``compute_network``.

    ``unresolved`` lists the refs whose directory lookup missed; those
    nodes are still present in ``nodes`` with ``display_name=None``.
    """

    start: EntityRef
    max_degrees: int
    nodes: Tuple[NetworkNode, ...] = ()
    unresolved: Tuple[EntityRef, ...] = ()

    @property
    def has_connections(self) -> bool:
        return len(self.nodes) > 1

    @property
    def complete(self) -> bool:
        return not self.unresolved

    def by_degree(self) -> Dict[int, List[NetworkNode]]:
        grouped: Dict[int, List[NetworkNode]] = {}
        for node in self.nodes:
            grouped.setdefault(node.degree, []).append(node)
        return grouped

    def to_dict(self) -> dict:
        return {
            "start": self.start.to_dict(),
            "max_degrees": self.max_degrees,
            "nodes": [n.to_dict() for n in self.nodes],
            "by_degree": {
                str(degree): [n.to_dict() for n in nodes]
                for degree, nodes in sorted(self.by_degree().items())
            },
            "unresolved": [r.to_dict() for r in self.unresolved],
        }


@dataclass(frozen=True)
class PathHop:
    """One entity on a nexus path plus the edge that led into it."""

    entity: EntityRef
    display_name: Optional[str] = None
    relationship_type: Optional[str] = None
    strength: Optional[str] = None
    edge_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "entity": self.entity.to_dict(),
            "display_name": self.display_name,
            "relationship_type": self.relationship_type,
            "strength": self.strength,
            "edge_id": self.edge_id,
        }


@dataclass(frozen=True)
class NexusPath:
    """Multi-hop connection from ``hops[0]`` to ``hops[-1]``."""

    hops: Tuple[PathHop, ...] = field(default_factory=tuple)

    @property
    def start(self) -> EntityRef:
        return self.hops[0].entity

    @property
    def target(self) -> EntityRef:
        return self.hops[-1].entity

    @property
    def degrees(self) -> int:
        return max(len(self.hops) - 1, 0)

    @property
    def total_strength(self) -> int:
        return sum(1 for h in self.hops[1:] if h.strength in COUNTED_STRENGTHS)

    @property
    def edge_ids(self) -> Tuple[str, ...]:
        return tuple(h.edge_id for h in self.hops[1:] if h.edge_id is not None)

    def to_dict(self) -> dict:
        return {
            "hops": [h.to_dict() for h in self.hops],
            "degrees": self.degrees,
            "total_strength": self.total_strength,
        }
