"""
Drift Comparator — pure function, no side effects.

Computes a structured diff between two closure tables. No store
dependency: operates on HierarchyEdge rows only.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Set, Tuple

from nexus_kernel.domain_types import HierarchyEdge


def compare_closures(
    rows_a: Iterable[HierarchyEdge],
    rows_b: Iterable[HierarchyEdge],
) -> dict:
    """
    Compare two closure tables and return a structured diff.

    Returns dict with:
        row_count_a, row_count_b, row_count_delta,
        added_lines, removed_lines   [manager_id, subordinate_id] pairs
        depth_changes                rows present in both at different depth
        moved_users                  users whose ancestor set changed
    """
    depth_a = _pair_depths(rows_a)
    depth_b = _pair_depths(rows_b)

    pairs_a: Set[Tuple[str, str]] = set(depth_a)
    pairs_b: Set[Tuple[str, str]] = set(depth_b)

    added = sorted(pairs_b - pairs_a)
    removed = sorted(pairs_a - pairs_b)

    depth_changes: List[dict] = []
    for pair in sorted(pairs_a & pairs_b):
        if depth_a[pair] != depth_b[pair]:
            depth_changes.append({
                "manager_id": pair[0],
                "subordinate_id": pair[1],
                "depth_a": depth_a[pair],
                "depth_b": depth_b[pair],
            })

    moved = sorted({sub for _, sub in added} | {sub for _, sub in removed})

    return {
        "row_count_a": len(depth_a),
        "row_count_b": len(depth_b),
        "row_count_delta": len(depth_b) - len(depth_a),
        "added_lines": [list(p) for p in added],
        "removed_lines": [list(p) for p in removed],
        "depth_changes": depth_changes,
        "moved_users": moved,
    }


def _pair_depths(rows: Iterable[HierarchyEdge]) -> Dict[Tuple[str, str], int]:
    return {(r.manager_id, r.subordinate_id): r.depth for r in rows}
