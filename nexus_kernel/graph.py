"""
Nexus Kernel — Primary-Link Graph Utilities

Pure dict-based analysis of the ``manager_id`` links. No closure table
involved: everything here reads the single source of truth directly.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .deadline import Deadline, ensure_deadline
from .domain_types import User
from .errors import DepthExceededError, DuplicateIdError


# ---------------------------------------------------------------------------
# Adjacency
# ---------------------------------------------------------------------------

def build_reports_map(users: Mapping[str, User]) -> Dict[str, List[str]]:
    """
    Build a manager -> [direct report ids] map, reports sorted by id.

    Links to managers absent from ``users`` are left out; see
    ``find_dangling_managers``.
    """
    reports: Dict[str, List[str]] = {}
    for uid in sorted(users):
        manager_id = users[uid].manager_id
        if manager_id is not None and manager_id in users:
            reports.setdefault(manager_id, []).append(uid)
    return reports


def find_dangling_managers(users: Mapping[str, User]) -> List[Tuple[str, str]]:
    """Return ``(user_id, manager_id)`` pairs whose manager does not exist."""
    return [
        (uid, users[uid].manager_id)
        for uid in sorted(users)
        if users[uid].manager_id is not None and users[uid].manager_id not in users
    ]


def find_roots(users: Mapping[str, User]) -> List[str]:
    """Users with no (existing) manager."""
    return sorted(
        uid for uid, u in users.items()
        if u.manager_id is None or u.manager_id not in users
    )


# ---------------------------------------------------------------------------
# Bounded subordinate walk (cycle check)
# ---------------------------------------------------------------------------

def collect_subordinates(
    user_id: str,
    reports: Mapping[str, List[str]],
    max_depth: int,
    deadline: Optional[Deadline] = None,
) -> Set[str]:
    """
    Every user whose manager chain terminates at ``user_id``.

    Depth-first over the reverse (subordinate) direction of the primary
    links. Raises DepthExceededError if any branch goes deeper than
    ``max_depth`` hops: past that point the answer cannot be trusted.
    """
    deadline = ensure_deadline(deadline)
    found: Set[str] = set()
    stack: List[Tuple[str, int]] = [(sub, 1) for sub in reversed(reports.get(user_id, []))]

    while stack:
        deadline.check("collect_subordinates")
        node, depth = stack.pop()
        if depth > max_depth:
            raise DepthExceededError(user_id, max_depth, [(user_id, node)])
        if node in found:
            continue
        found.add(node)
        for sub in reversed(reports.get(node, [])):
            stack.append((sub, depth + 1))
    return found


def chain_depth(user_id: str, users: Mapping[str, User], max_depth: int) -> int:
    """
    Number of manager hops above ``user_id`` (0 for a root).

    Stops at ``max_depth`` + 1 so a corrupted loop cannot spin forever.
    """
    depth = 0
    current = users[user_id].manager_id
    while current is not None and current in users:
        depth += 1
        if depth > max_depth:
            break
        current = users[current].manager_id
    return depth


# ---------------------------------------------------------------------------
# Cycle detection over primary links
# ---------------------------------------------------------------------------

def detect_manager_cycles(users: Mapping[str, User]) -> List[List[str]]:
    """
    Detect reporting cycles in the primary links.

    Only reachable through data that bypassed ``set_manager`` (direct
    storage edits, malformed imports). Returns each cycle as a list of
    user ids. Uses iterative DFS with explicit colour tracking.
    """
    manager_adj: Dict[str, List[str]] = {}
    for uid, user in users.items():
        if user.manager_id is not None and user.manager_id in users:
            manager_adj.setdefault(uid, []).append(user.manager_id)

    WHITE, GREY, BLACK = 0, 1, 2
    colour: Dict[str, int] = {uid: WHITE for uid in sorted(users)}
    cycles: List[List[str]] = []

    def _dfs(start: str) -> None:
        stack: List[Tuple[str, int]] = [(start, 0)]
        colour[start] = GREY

        while stack:
            node, idx = stack[-1]
            neighbours = manager_adj.get(node, [])
            if idx < len(neighbours):
                stack[-1] = (node, idx + 1)
                nbr = neighbours[idx]
                if colour.get(nbr, WHITE) == GREY:
                    cycle = [nbr]
                    for sn, _ in reversed(stack):
                        cycle.append(sn)
                        if sn == nbr:
                            break
                    cycles.append(cycle)
                elif colour.get(nbr, WHITE) == WHITE:
                    colour[nbr] = GREY
                    stack.append((nbr, 0))
            else:
                colour[node] = BLACK
                stack.pop()

    for uid in sorted(users):
        if colour.get(uid, WHITE) == WHITE:
            _dfs(uid)

    return cycles


def index_users(users: Iterable[User]) -> Dict[str, User]:
    """Index users by id, rejecting duplicates."""
    indexed: Dict[str, User] = {}
    for user in users:
        if user.id in indexed:
            raise DuplicateIdError("User", user.id)
        indexed[user.id] = user
    return indexed
