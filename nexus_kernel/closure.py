"""
Nexus Kernel — Closure Table Builder

Full, deterministic regeneration of the ancestor/descendant table from
the primary ``manager_id`` links. Never incremental: every call walks
the whole forest and produces a complete replacement table.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Set, Tuple

from .constants import MAX_CHAIN_DEPTH
from .deadline import Deadline, ensure_deadline
from .domain_types import HierarchyEdge, RebuildResult, User
from .graph import build_reports_map, detect_manager_cycles, find_dangling_managers
from .hashing import closure_hash


@dataclass(frozen=True)
class ClosureBuild:
    """Raw output of ``build_closure``: rows plus everything worth reporting."""

    rows: Tuple[HierarchyEdge, ...]
    truncated: Tuple[Tuple[str, str], ...]
    dangling: Tuple[Tuple[str, str], ...]
    cyclic: Tuple[Tuple[str, str], ...] = ()
    cycle_members: Tuple[str, ...] = ()

    def to_result(self) -> RebuildResult:
        return RebuildResult(
            row_count=len(self.rows),
            closure_hash=closure_hash(self.rows),
            truncated=self.truncated,
            cyclic=self.cyclic,
            warnings=tuple(_warnings_for(self)),
        )


def build_closure(
    users: Mapping[str, User],
    max_depth: int = MAX_CHAIN_DEPTH,
    deadline: Optional[Deadline] = None,
) -> ClosureBuild:
    """
    Enumerate every (manager, subordinate, depth) row.

    For each user that somebody reports to, walk all transitive
    subordinates depth-first, emitting one row per subordinate reached
    with ``depth`` = number of primary hops. A branch that would go past
    ``max_depth`` is not emitted and not descended; the
    ``(manager, subordinate)`` pair where the walk stopped is recorded in
    ``truncated`` instead.

    Links that loop back (only possible when storage was edited around
    ``set_manager``) are cut where the walk would revisit a user or reach
    the manager itself. Those pairs go to ``cyclic`` and emit no row, so
    every ``(manager, subordinate)`` pair appears at most once.

    Output rows are sorted, so two builds over the same links are equal.
    """
    if max_depth < 1:
        raise ValueError(f"max_depth must be >= 1, got {max_depth}")
    deadline = ensure_deadline(deadline)
    reports = build_reports_map(users)

    rows: List[HierarchyEdge] = []
    truncated: List[Tuple[str, str]] = []
    cyclic: List[Tuple[str, str]] = []

    for manager_id in sorted(reports):
        deadline.check("rebuild")
        reached: Set[str] = set()
        stack: List[Tuple[str, int]] = [
            (sub, 1) for sub in reversed(reports[manager_id])
        ]
        while stack:
            deadline.check("rebuild")
            sub, depth = stack.pop()
            if sub == manager_id or sub in reached:
                cyclic.append((manager_id, sub))
                continue
            if depth > max_depth:
                truncated.append((manager_id, sub))
                continue
            reached.add(sub)
            rows.append(HierarchyEdge(manager_id, sub, depth))
            for nxt in reversed(reports.get(sub, [])):
                stack.append((nxt, depth + 1))

    members: Set[str] = set()
    if truncated or cyclic:
        for cycle in detect_manager_cycles(users):
            members.update(cycle)

    return ClosureBuild(
        rows=tuple(sorted(rows)),
        truncated=tuple(sorted(set(truncated))),
        dangling=tuple(find_dangling_managers(users)),
        cyclic=tuple(sorted(set(cyclic))),
        cycle_members=tuple(sorted(members)),
    )


def index_closure(
    rows: Tuple[HierarchyEdge, ...],
) -> Tuple[Dict[str, Tuple[HierarchyEdge, ...]], Dict[str, Tuple[HierarchyEdge, ...]]]:
    """
    Build ``(by_manager, by_subordinate)`` lookup maps.

    Descendant lists sort by (depth, subordinate_id); ancestor lists by
    (depth, manager_id).
    """
    by_manager: Dict[str, List[HierarchyEdge]] = {}
    by_subordinate: Dict[str, List[HierarchyEdge]] = {}
    for row in rows:
        by_manager.setdefault(row.manager_id, []).append(row)
        by_subordinate.setdefault(row.subordinate_id, []).append(row)
    return (
        {
            k: tuple(sorted(v, key=lambda r: (r.depth, r.subordinate_id)))
            for k, v in by_manager.items()
        },
        {
            k: tuple(sorted(v, key=lambda r: (r.depth, r.manager_id)))
            for k, v in by_subordinate.items()
        },
    )


def _warnings_for(build: ClosureBuild) -> List[str]:
    warnings: List[str] = []
    if build.truncated:
        sample = ", ".join(f"{m}->{s}" for m, s in build.truncated[:5])
        more = len(build.truncated) - 5
        warnings.append(
            f"Depth bound exceeded on {len(build.truncated)} chain(s); "
            f"walk stopped at: {sample}" + (f" (+{more} more)" if more > 0 else "")
        )
    if build.cycle_members:
        members = build.cycle_members
        sample = ", ".join(members[:5])
        more = len(members) - 5
        warnings.append(
            f"Reporting cycle through {len(members)} user(s), "
            f"{len(build.cyclic)} link(s) cut: {sample}"
            + (f" (+{more} more)" if more > 0 else "")
        )
    if build.dangling:
        sample = ", ".join(f"{u}->{m}" for u, m in build.dangling[:5])
        warnings.append(
            f"{len(build.dangling)} user(s) report to unknown managers: {sample}"
        )
    return warnings
