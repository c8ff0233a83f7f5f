"""
Nexus Kernel — Hierarchy Store

Owns the manager/subordinate tree over User entities and the closure
table derived from it.

  - ``manager_id`` is the only writable shape of the tree.
  - The closure is a disposable cache, regenerated wholesale on every
    structural change, never patched.
  - Readers grab the current HierarchySnapshot reference once and never
    block; writers build a complete replacement snapshot under the write
    lock and swap it in only after the optional commit callback succeeds.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .closure import ClosureBuild, build_closure, index_closure
from .constants import MAX_CHAIN_DEPTH
from .deadline import Deadline
from .domain_types import HierarchyEdge, RebuildResult, User, validate_entity_id
from .errors import (
    CycleError,
    DepthExceededError,
    DuplicateIdError,
    HasReportsError,
    NotFoundError,
    SelfReferenceError,
)
from .graph import build_reports_map, collect_subordinates, index_users
from .invariants import InvariantViolationError


@dataclass(frozen=True)
class HierarchySnapshot:
    """Immutable view of primary links + closure at one point in time."""

    users: Mapping[str, User]
    rows: Tuple[HierarchyEdge, ...]
    by_manager: Mapping[str, Tuple[HierarchyEdge, ...]]
    by_subordinate: Mapping[str, Tuple[HierarchyEdge, ...]]
    result: RebuildResult

    @property
    def closure_hash(self) -> str:
        return self.result.closure_hash


# commit(new_snapshot, changed_users) -> None; raising aborts the install.
CommitFn = Callable[[HierarchySnapshot, Tuple[User, ...]], None]


def _make_snapshot(users: Dict[str, User], build: ClosureBuild) -> HierarchySnapshot:
    by_manager, by_subordinate = index_closure(build.rows)
    return HierarchySnapshot(
        users=MappingProxyType(users),
        rows=build.rows,
        by_manager=MappingProxyType(by_manager),
        by_subordinate=MappingProxyType(by_subordinate),
        result=build.to_result(),
    )


def group_by_depth(rows: Iterable[HierarchyEdge]) -> Dict[int, List[HierarchyEdge]]:
    """Group closure rows by depth, preserving their order within a depth."""
    grouped: Dict[int, List[HierarchyEdge]] = {}
    for row in rows:
        grouped.setdefault(row.depth, []).append(row)
    return grouped


class HierarchyStore:
    """
    Manager/subordinate tree with a materialized transitive closure.

    Invariants:
      - at most one manager per user (``User.manager_id``)
      - no user is its own ancestor
      - exactly one closure row per (ancestor, descendant) pair, with
        depth = number of primary hops
    """

    def __init__(
        self,
        users: Iterable[User] = (),
        max_chain_depth: int = MAX_CHAIN_DEPTH,
    ) -> None:
        if max_chain_depth < 1:
            raise ValueError(f"max_chain_depth must be >= 1, got {max_chain_depth}")
        self._max_depth = max_chain_depth
        self._write_lock = threading.Lock()
        indexed = index_users(users)
        self._snapshot = _make_snapshot(indexed, build_closure(indexed, max_chain_depth))

    # -- State access -------------------------------------------------------

    @property
    def max_chain_depth(self) -> int:
        return self._max_depth

    def snapshot(self) -> HierarchySnapshot:
        return self._snapshot

    @property
    def users(self) -> Mapping[str, User]:
        return self._snapshot.users

    @property
    def closure(self) -> Tuple[HierarchyEdge, ...]:
        return self._snapshot.rows

    @property
    def last_result(self) -> RebuildResult:
        return self._snapshot.result

    def get_user(self, user_id: str) -> User:
        return _require_user(self._snapshot, user_id)

    # -- Mutations ------------------------------------------------------------

    def set_manager(
        self,
        user_id: str,
        new_manager_id: Optional[str],
        commit: Optional[CommitFn] = None,
        deadline: Optional[Deadline] = None,
    ) -> RebuildResult:
        """
        Reassign ``user_id`` to ``new_manager_id`` (None makes it a root).

        Validation runs against the pre-mutation snapshot and aborts
        before any change: NotFoundError, SelfReferenceError, CycleError,
        DepthExceededError. On success the closure is rebuilt from
        scratch, handed to ``commit`` and only then installed.
        """
        with self._write_lock:
            snap = self._snapshot
            user = _require_user(snap, user_id)
            subtree = self._validate_assignment(snap, user_id, new_manager_id, deadline)

            users = dict(snap.users)
            users[user_id] = user.with_manager(new_manager_id)
            build = build_closure(users, self._max_depth, deadline)

            new_truncations = set(build.truncated) - set(snap.result.truncated)
            offending = sorted(p for p in new_truncations if p[1] in subtree)
            if offending:
                raise DepthExceededError(user_id, self._max_depth, offending)

            new_snap = _make_snapshot(users, build)
            if commit is not None:
                commit(new_snap, (users[user_id],))
            self._snapshot = new_snap
            return new_snap.result

    def rebuild(
        self,
        commit: Optional[CommitFn] = None,
        deadline: Optional[Deadline] = None,
        strict: bool = False,
    ) -> RebuildResult:
        """
        Regenerate the whole closure table from the current primary links.

        Idempotent: unchanged links give an identical table and hash.
        Chains past the depth bound are truncated and reported in the
        result; with ``strict=True`` they raise DepthExceededError, and
        reporting cycles raise InvariantViolationError.
        """
        with self._write_lock:
            snap = self._snapshot
            users = dict(snap.users)
            build = build_closure(users, self._max_depth, deadline)
            if strict and build.cycle_members:
                raise InvariantViolationError(
                    "no_manager_cycles",
                    f"Reporting cycle through: {', '.join(build.cycle_members)}",
                )
            if strict and build.truncated:
                origin = build.truncated[0][0]
                raise DepthExceededError(origin, self._max_depth, build.truncated)

            new_snap = _make_snapshot(users, build)
            if commit is not None:
                commit(new_snap, ())
            self._snapshot = new_snap
            return new_snap.result

    def add_user(
        self,
        user: User,
        commit: Optional[CommitFn] = None,
        deadline: Optional[Deadline] = None,
    ) -> RebuildResult:
        """
        Insert a new user, optionally below an existing manager.

        DuplicateIdError if the id is taken, NotFoundError for an unknown
        manager, SelfReferenceError, DepthExceededError if the new user
        would sit past the chain bound.
        """
        validate_entity_id(user.id)
        if not user.name:
            raise ValueError(f"User {user.id!r} needs a non-empty name")
        with self._write_lock:
            snap = self._snapshot
            if user.id in snap.users:
                raise DuplicateIdError("User", user.id)
            if user.manager_id is not None:
                if user.manager_id == user.id:
                    raise SelfReferenceError(user.id)
                _require_user(snap, user.manager_id)

            users = dict(snap.users)
            users[user.id] = user
            build = build_closure(users, self._max_depth, deadline)
            offending = sorted(p for p in build.truncated if p[1] == user.id)
            if offending:
                raise DepthExceededError(user.id, self._max_depth, offending)

            new_snap = _make_snapshot(users, build)
            if commit is not None:
                commit(new_snap, (user,))
            self._snapshot = new_snap
            return new_snap.result

    def remove_user(
        self,
        user_id: str,
        commit: Optional[CommitFn] = None,
        deadline: Optional[Deadline] = None,
    ) -> RebuildResult:
        """
        Delete a user and every closure row naming them.

        Refused with HasReportsError while anyone reports to ``user_id``:
        the subtree would otherwise be left pointing at a missing manager.
        """
        with self._write_lock:
            snap = self._snapshot
            user = _require_user(snap, user_id)
            reports = build_reports_map(snap.users).get(user_id, [])
            if reports:
                raise HasReportsError(user_id, reports)

            users = dict(snap.users)
            del users[user_id]
            build = build_closure(users, self._max_depth, deadline)

            new_snap = _make_snapshot(users, build)
            if commit is not None:
                commit(new_snap, (user,))
            self._snapshot = new_snap
            return new_snap.result

    def _validate_assignment(
        self,
        snap: HierarchySnapshot,
        user_id: str,
        new_manager_id: Optional[str],
        deadline: Optional[Deadline],
    ) -> Set[str]:
        """Return the moved subtree (user + subordinates) if the move is legal."""
        if new_manager_id is None:
            return {user_id}
        if new_manager_id == user_id:
            raise SelfReferenceError(user_id)
        _require_user(snap, new_manager_id)

        reports = build_reports_map(snap.users)
        subordinates = collect_subordinates(
            user_id, reports, self._max_depth, deadline,
        )
        if new_manager_id in subordinates:
            raise CycleError(user_id, new_manager_id)
        return subordinates | {user_id}

    # -- Reads ----------------------------------------------------------------

    def ancestors_of(self, user_id: str) -> List[HierarchyEdge]:
        """All ``(manager, user_id, depth)`` rows, nearest manager first."""
        snap = self._snapshot
        _require_user(snap, user_id)
        return list(snap.by_subordinate.get(user_id, ()))

    def descendants_of(self, user_id: str) -> List[HierarchyEdge]:
        """All ``(user_id, subordinate, depth)`` rows, ordered by (depth, id)."""
        snap = self._snapshot
        _require_user(snap, user_id)
        return list(snap.by_manager.get(user_id, ()))

    def direct_reports(self, user_id: str) -> List[str]:
        return [r.subordinate_id for r in self.descendants_of(user_id) if r.depth == 1]

    def team_of(self, user_id: str) -> List[str]:
        """``user_id`` followed by every descendant, nearest first."""
        return [user_id] + [r.subordinate_id for r in self.descendants_of(user_id)]

    def is_descendant(self, manager_id: str, user_id: str) -> bool:
        snap = self._snapshot
        _require_user(snap, manager_id)
        _require_user(snap, user_id)
        return any(r.manager_id == manager_id for r in snap.by_subordinate.get(user_id, ()))


def _require_user(snap: HierarchySnapshot, user_id: str) -> User:
    user = snap.users.get(user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user
