"""
Nexus Kernel — Diagnostics

Compute a health summary of the hierarchy (and optionally the
relationship network). Read-only; returns a plain dict.
"""

from __future__ import annotations

from typing import Dict, Optional

from .constants import WIDE_SPAN_OF_CONTROL
from .domain_types import STRENGTHS
from .graph import build_reports_map, find_dangling_managers, find_roots
from .hierarchy import HierarchySnapshot
from .relationships import GraphSnapshot, RelationshipGraph


def compute_diagnostics(
    snapshot: HierarchySnapshot,
    graph: Optional[RelationshipGraph] = None,
) -> dict:
    """
    Return a diagnostic dict summarising hierarchy and network health.
    Warnings carry over from the last rebuild.
    """
    users = snapshot.users
    reports = build_reports_map(users)
    roots = find_roots(users)
    dangling = find_dangling_managers(users)
    max_depth = max((r.depth for r in snapshot.rows), default=0)
    widest = max(reports.items(), key=lambda kv: (len(kv[1]), kv[0]), default=None)

    warnings = list(snapshot.result.warnings)
    if widest is not None and len(widest[1]) > WIDE_SPAN_OF_CONTROL:
        warnings.append(
            f"Wide span of control: {widest[0]!r} has {len(widest[1])} direct reports"
        )

    out = {
        "user_count": len(users),
        "root_count": len(roots),
        "manager_count": len(reports),
        "max_depth": max_depth,
        "closure_rows": len(snapshot.rows),
        "closure_hash": snapshot.closure_hash,
        "dangling_links": [list(pair) for pair in dangling],
        "max_span_of_control": len(widest[1]) if widest else 0,
        "truncated_chains": len(snapshot.result.truncated),
        "cyclic_links": len(snapshot.result.cyclic),
        "warnings": warnings,
    }

    if graph is not None:
        out.update(_network_section(graph.snapshot(), users, warnings))
    return out


def _network_section(snap: GraphSnapshot, users, warnings: list) -> dict:
    histogram: Dict[str, int] = {s: 0 for s in STRENGTHS}
    for edge in snap.edges.values():
        histogram[edge.strength] += 1

    connected = {ref.id for ref in snap.adjacency if ref.entity_type == "User"}
    isolated_users = sorted(uid for uid in users if uid not in connected)
    if users and len(isolated_users) == len(users) and snap.edges:
        warnings.append("No user has any relationship edge")

    return {
        "edge_count": len(snap.edges),
        "entity_count": len(snap.adjacency),
        "strength_histogram": histogram,
        "isolated_users": isolated_users,
    }
