"""
Nexus Kernel — PathFinder

Bounded breadth-first traversals over a RelationshipGraph snapshot.

  - ``compute_network``: every entity within ``max_degrees`` hops.
  - ``find_paths``: all minimal-degree paths between two entities, ranked.
  - ``find_team_paths``: ``find_paths`` fanned out over a manager's team.

Everything here is a pure function of (graph snapshot, directory,
hierarchy snapshot). No locking, no I/O beyond directory lookups.

Ranking rule for equal-degree paths:
    degrees ascending, then total_strength descending, then the
    sequence of edge ids ascending. Same edges in, same order out.
"""

from __future__ import annotations

import heapq
import itertools
from collections import deque
from typing import Deque, Dict, List, Optional, Set, Tuple, Union

from .constants import (
    DEFAULT_MAX_DEGREES,
    DEFAULT_PATH_LIMIT,
    MAX_PATH_LIMIT,
    MAX_TRAVERSAL_DEGREES,
)
from .deadline import Deadline, ensure_deadline
from .directory import EntityDirectory
from .domain_types import (
    COUNTED_STRENGTHS,
    EntityRef,
    NetworkNode,
    NetworkResult,
    NexusPath,
    PathHop,
)
from .errors import UnresolvedEntityError
from .hierarchy import HierarchyStore
from .relationships import GraphSnapshot, RelationshipGraph

GraphLike = Union[RelationshipGraph, GraphSnapshot]

# (predecessor entity, edge id, relationship type, strength)
_Pred = Tuple[EntityRef, str, str, str]


def _as_snapshot(graph: GraphLike) -> GraphSnapshot:
    if isinstance(graph, GraphSnapshot):
        return graph
    return graph.snapshot()


def _check_degrees(max_degrees: int) -> None:
    if not isinstance(max_degrees, int) or isinstance(max_degrees, bool):
        raise ValueError(f"max_degrees must be an int, got {max_degrees!r}")
    if not 0 <= max_degrees <= MAX_TRAVERSAL_DEGREES:
        raise ValueError(
            f"max_degrees must be between 0 and {MAX_TRAVERSAL_DEGREES}, "
            f"got {max_degrees}"
        )


# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------

def compute_network(
    graph: GraphLike,
    directory: EntityDirectory,
    start: EntityRef,
    max_degrees: int = DEFAULT_MAX_DEGREES,
    strict: bool = False,
    deadline: Optional[Deadline] = None,
) -> NetworkResult:
    """
    Breadth-first walk from ``start`` out to ``max_degrees`` hops.

    First discovery wins: a node keeps the degree, strength and
    relationship type of the edge that reached it first. Nodes whose
    directory lookup misses are still emitted (``display_name=None``) and
    listed in ``unresolved``; with ``strict=True`` the first miss raises
    UnresolvedEntityError.
    """
    _check_degrees(max_degrees)
    deadline = ensure_deadline(deadline)
    snap = _as_snapshot(graph)

    visited: Set[EntityRef] = {start}
    queue: Deque[Tuple[EntityRef, int, Optional[str], Optional[str]]] = deque(
        [(start, 0, None, None)]
    )
    nodes: List[NetworkNode] = []
    unresolved: List[EntityRef] = []

    while queue:
        deadline.check("compute_network")
        ref, degree, strength, rel_type = queue.popleft()

        name = directory.lookup_display_name(ref)
        if name is None:
            if strict:
                raise UnresolvedEntityError(ref)
            unresolved.append(ref)
        nodes.append(NetworkNode(ref, name, degree, strength, rel_type))

        if degree >= max_degrees:
            continue
        for nbr in snap.neighbors(ref):
            if nbr.entity in visited:
                continue
            visited.add(nbr.entity)
            queue.append((nbr.entity, degree + 1, nbr.strength, nbr.relationship_type))

    return NetworkResult(
        start=start,
        max_degrees=max_degrees,
        nodes=tuple(nodes),
        unresolved=tuple(unresolved),
    )


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

def _layered_predecessors(
    snap: GraphSnapshot,
    start: EntityRef,
    target: EntityRef,
    max_degrees: int,
    deadline: Deadline,
) -> Tuple[Dict[EntityRef, int], Dict[EntityRef, List[_Pred]]]:
    """
    Layer-by-layer BFS recording every equal-depth predecessor.

    Stops once the layer containing ``target`` is complete, or at
    ``max_degrees``. Returns ``(dist, preds)``; ``target`` is absent from
    both if unreachable.
    """
    dist: Dict[EntityRef, int] = {start: 0}
    preds: Dict[EntityRef, List[_Pred]] = {start: []}
    frontier: List[EntityRef] = [start]

    for depth in range(1, max_degrees + 1):
        if target in dist or not frontier:
            break
        next_layer: List[EntityRef] = []
        for node in frontier:
            deadline.check("find_paths")
            for nbr in snap.neighbors(node):
                seen = dist.get(nbr.entity)
                if seen is None:
                    dist[nbr.entity] = depth
                    preds[nbr.entity] = []
                    next_layer.append(nbr.entity)
                elif seen != depth:
                    continue
                preds[nbr.entity].append(
                    (node, nbr.edge.id, nbr.relationship_type, nbr.strength)
                )
        frontier = next_layer

    return dist, preds


def _hop_strength(pred: _Pred) -> int:
    return 1 if pred[3] in COUNTED_STRENGTHS else 0


def _ranked_paths(
    dist: Dict[EntityRef, int],
    preds: Dict[EntityRef, List[_Pred]],
    start: EntityRef,
    target: EntityRef,
    limit: int,
    deadline: Deadline,
) -> List[List[Tuple[EntityRef, Optional[_Pred]]]]:
    """
    The ``limit`` best shortest paths, produced already in rank order.

    ``best[n]`` is the highest strength any shortest path can still
    collect from ``n`` to ``target``. The forward expansion is keyed on
    (-(strength so far + best[n]), edge ids so far); a key never drops
    as a partial path grows, so complete paths leave the heap ranked by
    total_strength descending, then edge ids ascending.
    """
    # Nodes that lie on some shortest path into target.
    on_path: Set[EntityRef] = {target}
    stack = [target]
    while stack:
        node = stack.pop()
        for pred in preds.get(node, ()):
            if pred[0] not in on_path:
                on_path.add(pred[0])
                stack.append(pred[0])

    best: Dict[EntityRef, int] = {target: 0}
    succ: Dict[EntityRef, List[Tuple[EntityRef, _Pred]]] = {}
    for node in sorted(on_path, key=lambda n: (-dist[n], n)):
        deadline.check("find_paths")
        for pred in preds.get(node, ()):
            prev = pred[0]
            gained = best[node] + _hop_strength(pred)
            if gained > best.get(prev, -1):
                best[prev] = gained
            succ.setdefault(prev, []).append((node, pred))
    for hops in succ.values():
        hops.sort(key=lambda item: item[1][1])

    tie = itertools.count()
    heap: List[tuple] = [(-best[start], (), next(tie), start, 0, [(start, None)])]
    results: List[List[Tuple[EntityRef, Optional[_Pred]]]] = []
    while heap and len(results) < limit:
        deadline.check("find_paths")
        _, edge_ids, _, node, strength, raw = heapq.heappop(heap)
        if node == target:
            results.append(raw)
            continue
        for nxt, pred in succ.get(node, ()):
            gained = strength + _hop_strength(pred)
            heapq.heappush(heap, (
                -(gained + best[nxt]),
                edge_ids + (pred[1],),
                next(tie),
                nxt,
                gained,
                raw + [(nxt, pred)],
            ))
    return results


def _to_nexus_path(
    raw: List[Tuple[EntityRef, Optional[_Pred]]],
    directory: EntityDirectory,
) -> NexusPath:
    hops = []
    for ref, pred in raw:
        name = directory.lookup_display_name(ref)
        if pred is None:
            hops.append(PathHop(entity=ref, display_name=name))
        else:
            _, edge_id, rel_type, strength = pred
            hops.append(PathHop(
                entity=ref,
                display_name=name,
                relationship_type=rel_type,
                strength=strength,
                edge_id=edge_id,
            ))
    return NexusPath(hops=tuple(hops))


def path_rank_key(path: NexusPath) -> Tuple[int, int, Tuple[str, ...]]:
    return (path.degrees, -path.total_strength, path.edge_ids)


def rank_paths(paths: List[NexusPath]) -> List[NexusPath]:
    return sorted(paths, key=path_rank_key)


def _all_paths(
    snap: GraphSnapshot,
    directory: EntityDirectory,
    start: EntityRef,
    target: EntityRef,
    max_degrees: int,
    limit: int,
    deadline: Deadline,
) -> List[NexusPath]:
    if start == target:
        return [NexusPath(hops=(PathHop(start, directory.lookup_display_name(start)),))]
    dist, preds = _layered_predecessors(snap, start, target, max_degrees, deadline)
    if target not in preds:
        return []
    raw = _ranked_paths(dist, preds, start, target, limit, deadline)
    return [_to_nexus_path(r, directory) for r in raw]


def _check_limit(limit: int) -> None:
    if not 1 <= limit <= MAX_PATH_LIMIT:
        raise ValueError(f"limit must be between 1 and {MAX_PATH_LIMIT}, got {limit}")


def find_paths(
    graph: GraphLike,
    directory: EntityDirectory,
    start: EntityRef,
    target: EntityRef,
    max_degrees: int = DEFAULT_MAX_DEGREES,
    limit: int = DEFAULT_PATH_LIMIT,
    deadline: Optional[Deadline] = None,
) -> List[NexusPath]:
    """
    Ranked minimal-degree paths from ``start`` to ``target``.

    Empty list when ``target`` is further than ``max_degrees`` hops away
    or unreachable. ``start == target`` yields a single zero-hop path.
    """
    _check_degrees(max_degrees)
    _check_limit(limit)
    deadline = ensure_deadline(deadline)
    snap = _as_snapshot(graph)
    return _all_paths(snap, directory, start, target, max_degrees, limit, deadline)


def find_team_paths(
    hierarchy: HierarchyStore,
    graph: GraphLike,
    directory: EntityDirectory,
    user_id: str,
    target: EntityRef,
    max_degrees: int = DEFAULT_MAX_DEGREES,
    limit: int = DEFAULT_PATH_LIMIT,
    deadline: Optional[Deadline] = None,
) -> List[NexusPath]:
    """
    Paths to ``target`` from anyone on ``user_id``'s team.

    The team is ``user_id`` plus every closure descendant. Paths from all
    members are merged and ranked by degrees, total_strength, the
    member's depth below ``user_id``, then edge ids.
    """
    _check_degrees(max_degrees)
    _check_limit(limit)
    deadline = ensure_deadline(deadline)
    snap = _as_snapshot(graph)

    members = [(user_id, 0)] + [
        (row.subordinate_id, row.depth) for row in hierarchy.descendants_of(user_id)
    ]

    ranked: List[Tuple[Tuple, NexusPath]] = []
    for member_id, member_depth in members:
        deadline.check("find_team_paths")
        start = EntityRef.user(member_id)
        for path in _all_paths(snap, directory, start, target, max_degrees, limit, deadline):
            key = (path.degrees, -path.total_strength, member_depth, path.edge_ids, member_id)
            ranked.append((key, path))

    ranked.sort(key=lambda item: item[0])
    return [path for _, path in ranked[:limit]]


class PathFinder:
    """Binds a graph, a directory and optionally a hierarchy for repeated queries."""

    def __init__(
        self,
        graph: RelationshipGraph,
        directory: EntityDirectory,
        hierarchy: Optional[HierarchyStore] = None,
        max_degrees: int = DEFAULT_MAX_DEGREES,
    ) -> None:
        _check_degrees(max_degrees)
        self.graph = graph
        self.directory = directory
        self.hierarchy = hierarchy
        self.max_degrees = max_degrees

    def compute_network(
        self,
        start: EntityRef,
        max_degrees: Optional[int] = None,
        strict: bool = False,
        deadline: Optional[Deadline] = None,
    ) -> NetworkResult:
        return compute_network(
            self.graph, self.directory, start,
            self.max_degrees if max_degrees is None else max_degrees,
            strict=strict, deadline=deadline,
        )

    def find_paths(
        self,
        start: EntityRef,
        target: EntityRef,
        max_degrees: Optional[int] = None,
        limit: int = DEFAULT_PATH_LIMIT,
        deadline: Optional[Deadline] = None,
    ) -> List[NexusPath]:
        return find_paths(
            self.graph, self.directory, start, target,
            self.max_degrees if max_degrees is None else max_degrees,
            limit=limit, deadline=deadline,
        )

    def find_team_paths(
        self,
        user_id: str,
        target: EntityRef,
        max_degrees: Optional[int] = None,
        limit: int = DEFAULT_PATH_LIMIT,
        deadline: Optional[Deadline] = None,
    ) -> List[NexusPath]:
        if self.hierarchy is None:
            raise ValueError("find_team_paths needs a HierarchyStore")
        return find_team_paths(
            self.hierarchy, self.graph, self.directory, user_id, target,
            self.max_degrees if max_degrees is None else max_degrees,
            limit=limit, deadline=deadline,
        )
