"""
Nexus Kernel — Invariant Checks

Hard-fail validation of data that did not come through the stores'
own mutation paths (storage loads, snapshot imports, generated seeds).
Every check raises InvariantViolationError on the first failure.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Optional, Set, Tuple

from .closure import build_closure
from .constants import MAX_CHAIN_DEPTH
from .directory import EntityDirectory
from .domain_types import HierarchyEdge, RelationshipEdge, User
from .graph import detect_manager_cycles, find_dangling_managers


class InvariantViolationError(Exception):
    """Raised when a hierarchy or network invariant is violated."""

    def __init__(self, rule: str, detail: str) -> None:
        self.rule = rule
        self.detail = detail
        super().__init__(f"[INVARIANT:{rule}] {detail}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate_hierarchy(users: Mapping[str, User], allow_dangling: bool = False) -> None:
    """Primary links: no self-managers, no cycles, managers exist."""
    _check_no_self_manager(users)
    _check_no_manager_cycles(users)
    if not allow_dangling:
        _check_managers_exist(users)


def validate_closure(
    users: Mapping[str, User],
    rows: Iterable[HierarchyEdge],
    max_depth: int = MAX_CHAIN_DEPTH,
) -> None:
    """
    A stored closure must be exactly what a rebuild would produce.

    Row-level checks run first so the error names the concrete defect
    rather than a bare mismatch.
    """
    rows = tuple(rows)
    _check_row_shape(users, rows)
    expected = build_closure(users, max_depth).rows
    if tuple(sorted(rows)) != expected:
        missing = set(expected) - set(rows)
        extra = set(rows) - set(expected)
        raise InvariantViolationError(
            "closure_matches_links",
            f"Closure differs from primary links: "
            f"{len(missing)} missing row(s), {len(extra)} unexpected row(s)"
        )


def validate_edges(
    edges: Iterable[RelationshipEdge],
    users: Optional[Mapping[str, User]] = None,
    directory: Optional[EntityDirectory] = None,
) -> None:
    """Unique edge ids; endpoints distinct and (when checkable) known."""
    seen: Set[str] = set()
    for edge in edges:
        if edge.id in seen:
            raise InvariantViolationError(
                "unique_edge_ids", f"Relationship id {edge.id!r} appears twice"
            )
        seen.add(edge.id)
        if edge.from_entity == edge.to_entity:
            raise InvariantViolationError(
                "no_self_edges",
                f"Relationship {edge.id!r} joins {edge.from_entity} to itself"
            )
        for ref in (edge.from_entity, edge.to_entity):
            if ref.entity_type == "User" and users is not None:
                if ref.id not in users:
                    raise InvariantViolationError(
                        "edge_refs",
                        f"Relationship {edge.id!r} references unknown user {ref.id!r}"
                    )
            elif directory is not None and directory.lookup_display_name(ref) is None:
                raise InvariantViolationError(
                    "edge_refs",
                    f"Relationship {edge.id!r} references unknown entity {ref}"
                )


# ---------------------------------------------------------------------------
# Individual checks (private)
# ---------------------------------------------------------------------------

def _check_no_self_manager(users: Mapping[str, User]) -> None:
    for uid in sorted(users):
        if users[uid].manager_id == uid:
            raise InvariantViolationError(
                "no_self_manager", f"User {uid!r} is its own manager"
            )


def _check_no_manager_cycles(users: Mapping[str, User]) -> None:
    cycles = detect_manager_cycles(users)
    if cycles:
        rendered = " -> ".join(cycles[0])
        raise InvariantViolationError(
            "no_manager_cycles",
            f"Found {len(cycles)} reporting cycle(s): {rendered}"
        )


def _check_managers_exist(users: Mapping[str, User]) -> None:
    dangling = find_dangling_managers(users)
    if dangling:
        uid, manager_id = dangling[0]
        raise InvariantViolationError(
            "manager_refs",
            f"User {uid!r} reports to unknown manager {manager_id!r}"
        )


def _check_row_shape(users: Mapping[str, User], rows: Tuple[HierarchyEdge, ...]) -> None:
    pairs: Set[Tuple[str, str]] = set()
    for row in rows:
        if row.depth < 1:
            raise InvariantViolationError(
                "positive_depth",
                f"Row {row.manager_id!r}->{row.subordinate_id!r} has depth {row.depth}"
            )
        if row.manager_id == row.subordinate_id:
            raise InvariantViolationError(
                "no_self_ancestor", f"User {row.manager_id!r} is its own ancestor"
            )
        pair = (row.manager_id, row.subordinate_id)
        if pair in pairs:
            raise InvariantViolationError(
                "unique_pairs",
                f"Pair {row.manager_id!r}->{row.subordinate_id!r} appears more than once"
            )
        pairs.add(pair)
        for uid in pair:
            if uid not in users:
                raise InvariantViolationError(
                    "row_refs", f"Closure row references unknown user {uid!r}"
                )
