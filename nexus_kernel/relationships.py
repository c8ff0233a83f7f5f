"""
Nexus Kernel — Relationship Graph

Undirected multigraph of typed, weighted edges between heterogeneous
entities. Adjacency is kept per entity, ordered by edge id, so every
traversal over the same edge set visits neighbours in the same order.

Writes are copy-on-write: a mutation builds new adjacency tuples for the
two touched endpoints and swaps in a fresh GraphSnapshot. Readers that
already hold a snapshot are never affected.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .domain_types import EntityRef, RelationshipEdge
from .errors import DuplicateIdError, NotFoundError, SelfReferenceError


@dataclass(frozen=True)
class Neighbor:
    """An adjacent entity together with the edge that reaches it."""

    entity: EntityRef
    edge: RelationshipEdge

    @property
    def relationship_type(self) -> str:
        return self.edge.relationship_type

    @property
    def strength(self) -> str:
        return self.edge.strength


@dataclass(frozen=True)
class GraphSnapshot:
    edges: Mapping[str, RelationshipEdge]
    adjacency: Mapping[EntityRef, Tuple[Neighbor, ...]]

    def neighbors(self, ref: EntityRef) -> Tuple[Neighbor, ...]:
        return self.adjacency.get(ref, ())


EdgeCommitFn = Callable[[RelationshipEdge], None]


def _neighbours_of(edge: RelationshipEdge) -> List[Tuple[EntityRef, Neighbor]]:
    return [
        (edge.from_entity, Neighbor(edge.to_entity, edge)),
        (edge.to_entity, Neighbor(edge.from_entity, edge)),
    ]


def _sorted_neighbours(items: Iterable[Neighbor]) -> Tuple[Neighbor, ...]:
    return tuple(sorted(items, key=lambda n: n.edge.id))


def _check_edge(edge: RelationshipEdge) -> None:
    if edge.from_entity == edge.to_entity:
        raise SelfReferenceError(
            edge.id, f"Edge {edge.id!r} joins {edge.from_entity} to itself",
        )


class RelationshipGraph:

    def __init__(self, edges: Iterable[RelationshipEdge] = ()) -> None:
        self._write_lock = threading.Lock()
        by_id: Dict[str, RelationshipEdge] = {}
        buckets: Dict[EntityRef, List[Neighbor]] = {}
        for edge in edges:
            _check_edge(edge)
            if edge.id in by_id:
                raise DuplicateIdError("Relationship", edge.id)
            by_id[edge.id] = edge
            for owner, nbr in _neighbours_of(edge):
                buckets.setdefault(owner, []).append(nbr)
        self._snapshot = GraphSnapshot(
            edges=MappingProxyType(by_id),
            adjacency=MappingProxyType(
                {ref: _sorted_neighbours(items) for ref, items in buckets.items()}
            ),
        )

    def snapshot(self) -> GraphSnapshot:
        return self._snapshot

    def __len__(self) -> int:
        return len(self._snapshot.edges)

    # -- Mutations ------------------------------------------------------------

    def add_edge(
        self,
        edge: RelationshipEdge,
        commit: Optional[EdgeCommitFn] = None,
    ) -> RelationshipEdge:
        _check_edge(edge)
        with self._write_lock:
            snap = self._snapshot
            if edge.id in snap.edges:
                raise DuplicateIdError("Relationship", edge.id)

            edges = dict(snap.edges)
            edges[edge.id] = edge
            adjacency = dict(snap.adjacency)
            for owner, nbr in _neighbours_of(edge):
                adjacency[owner] = _sorted_neighbours(adjacency.get(owner, ()) + (nbr,))

            if commit is not None:
                commit(edge)
            self._snapshot = GraphSnapshot(
                edges=MappingProxyType(edges),
                adjacency=MappingProxyType(adjacency),
            )
            return edge

    def remove_edge(
        self,
        edge_id: str,
        commit: Optional[EdgeCommitFn] = None,
    ) -> RelationshipEdge:
        with self._write_lock:
            snap = self._snapshot
            edge = snap.edges.get(edge_id)
            if edge is None:
                raise NotFoundError("Relationship", edge_id)

            edges = dict(snap.edges)
            del edges[edge_id]
            adjacency = dict(snap.adjacency)
            for owner in {edge.from_entity, edge.to_entity}:
                remaining = tuple(n for n in adjacency.get(owner, ()) if n.edge.id != edge_id)
                if remaining:
                    adjacency[owner] = remaining
                else:
                    adjacency.pop(owner, None)

            if commit is not None:
                commit(edge)
            self._snapshot = GraphSnapshot(
                edges=MappingProxyType(edges),
                adjacency=MappingProxyType(adjacency),
            )
            return edge

    # -- Reads ----------------------------------------------------------------

    def get_edge(self, edge_id: str) -> RelationshipEdge:
        edge = self._snapshot.edges.get(edge_id)
        if edge is None:
            raise NotFoundError("Relationship", edge_id)
        return edge

    def neighbors(self, ref: EntityRef) -> List[Neighbor]:
        """Every ``(entity, edge)`` adjacent to ``ref``, ordered by edge id."""
        return list(self._snapshot.neighbors(ref))

    def edges_for(self, ref: EntityRef) -> List[RelationshipEdge]:
        return [n.edge for n in self._snapshot.neighbors(ref)]

    def edges_between(self, a: EntityRef, b: EntityRef) -> List[RelationshipEdge]:
        return [n.edge for n in self._snapshot.neighbors(a) if n.entity == b]

    def entities(self) -> List[EntityRef]:
        return sorted(self._snapshot.adjacency)

    def edges(self) -> List[RelationshipEdge]:
        snap = self._snapshot
        return [snap.edges[k] for k in sorted(snap.edges)]
