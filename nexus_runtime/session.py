"""
Nexus Session — orchestrates the kernel stores + persistence.

Validate-before-persist-before-install order for every write:
  1. kernel validates against the current snapshot   (may raise)
  2. kernel builds the replacement state off to the side
  3. repository commits it in one transaction        (may raise)
  4. kernel installs the new snapshot

A failure at 1-3 leaves both storage and the in-memory view unchanged.
Every operation runs under a deadline of ``timeout_s`` seconds.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, List, Optional, Tuple

from nexus_kernel.closure import build_closure
from nexus_kernel.constants import DEFAULT_MAX_DEGREES, DEFAULT_PATH_LIMIT, MAX_CHAIN_DEPTH
from nexus_kernel.deadline import Deadline
from nexus_kernel.diagnostics import compute_diagnostics
from nexus_kernel.directory import InMemoryDirectory
from nexus_kernel.domain_types import (
    EntityRef,
    NetworkResult,
    NexusPath,
    RebuildResult,
    RelationshipEdge,
    User,
)
from nexus_kernel.graph import index_users
from nexus_kernel.hashing import closure_hash
from nexus_kernel.hierarchy import HierarchySnapshot, HierarchyStore
from nexus_kernel.pathfinder import compute_network, find_paths, find_team_paths
from nexus_kernel.relationships import RelationshipGraph
from nexus_kernel.snapshot import NetworkState, state_from_stores, validate_state

from .drift import compare_closures
from .repository import NexusRepository

if TYPE_CHECKING:
    from .observability import SessionMetrics

logger = logging.getLogger(__name__)

DEFAULT_OPERATION_TIMEOUT_S: float = 5.0


class ClosureDriftError(Exception):
    """Raised when the stored closure no longer matches the primary links."""

    def __init__(self, expected: str, actual: str, drift: dict) -> None:
        self.expected = expected
        self.actual = actual
        self.drift = drift
        super().__init__(
            f"Stored closure hash={actual!r} but primary links rebuild to "
            f"{expected!r}: {len(drift['added_lines'])} missing, "
            f"{len(drift['removed_lines'])} stale row(s)"
        )


class NexusSession:
    """
    Owns one HierarchyStore, RelationshipGraph and directory loaded
    from a repository, and writes every change back through it.
    """

    def __init__(
        self,
        repository: NexusRepository,
        max_chain_depth: int = MAX_CHAIN_DEPTH,
        timeout_s: Optional[float] = DEFAULT_OPERATION_TIMEOUT_S,
    ) -> None:
        self._repo = repository
        self._max_depth = max_chain_depth
        self._timeout_s = timeout_s
        # One writer at a time across every store, held from validation
        # through commit and install. Reentrant: initialize() calls rebuild().
        self._write_lock = threading.RLock()
        self._stores: Optional[Tuple[HierarchyStore, RelationshipGraph, InMemoryDirectory]] = None
        self._last_rebuild_ms: float = 0.0
        self._rebuild_count: int = 0

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def initialize(self) -> RebuildResult:
        """
        Load users, edges and directory entries from storage.

        The closure is always rebuilt from the primary links; if the
        stored table disagrees it is rewritten.
        """
        with self._write_lock:
            users = self._repo.load_users()
            hierarchy = HierarchyStore(users, self._max_depth)
            graph = RelationshipGraph(self._repo.load_edges())
            directory = InMemoryDirectory.from_records(self._repo.load_entities(), users)
            self._stores = (hierarchy, graph, directory)

            result = hierarchy.last_result
            self._log_warnings(result)
            metadata = self._repo.load_metadata()
            if metadata is None or metadata[0] != result.closure_hash:
                logger.warning(
                    "Stored closure is stale (stored=%s rebuilt=%s); rewriting",
                    metadata[0][:12] if metadata else None, result.closure_hash[:12],
                )
                result = self.rebuild()
        logger.info(
            "Session loaded: %d users, %d closure rows, %d relationships",
            len(hierarchy.users), result.row_count, len(graph),
        )
        return result

    def load_state(self, state: NetworkState) -> RebuildResult:
        """
        Replace everything (storage and memory) with ``state``.

        Raises InvariantViolationError if the state has manager cycles,
        dangling links or edges to unknown entities.
        """
        validate_state(state)
        with self._write_lock:
            hierarchy = HierarchyStore(state.users, self._max_depth)
            graph = RelationshipGraph(state.edges)
            directory = state.directory()
            snap = hierarchy.snapshot()
            self._repo.replace_all(state, snap.rows, snap.closure_hash)
            self._stores = (hierarchy, graph, directory)
        logger.info(
            "Loaded network state: %d users, %d relationships, %d entities",
            len(state.users), len(state.edges), len(state.entities),
        )
        return snap.result

    def export_state(self) -> NetworkState:
        hierarchy, graph, _ = self._require_stores()
        return state_from_stores(hierarchy, graph, self._repo.load_entities())

    # ------------------------------------------------------------------
    # Hierarchy writes
    # ------------------------------------------------------------------

    def set_manager(self, user_id: str, manager_id: Optional[str]) -> dict:
        """
        Reassign a manager and persist the rebuilt closure.

        Returns the rebuild result plus a drift report of the closure
        before vs after the move.
        """
        with self._write_lock:
            hierarchy = self.hierarchy
            before = hierarchy.snapshot().rows
            start = time.perf_counter()
            result = hierarchy.set_manager(
                user_id, manager_id,
                commit=self._commit_hierarchy, deadline=self._deadline(),
            )
            self._record_rebuild(start)
            after = hierarchy.snapshot().rows

        drift = compare_closures(before, after)
        logger.info(
            "Manager of %s set to %s: %d rows added, %d removed",
            user_id, manager_id, len(drift["added_lines"]), len(drift["removed_lines"]),
        )
        return {
            "user_id": user_id,
            "manager_id": manager_id,
            "result": result.to_dict(),
            "drift": drift,
        }

    def rebuild(self, strict: bool = False) -> RebuildResult:
        with self._write_lock:
            start = time.perf_counter()
            result = self.hierarchy.rebuild(
                commit=self._commit_hierarchy, deadline=self._deadline(), strict=strict,
            )
            self._record_rebuild(start)
        logger.info("Closure rebuilt: %d rows, hash=%s", result.row_count, result.closure_hash[:12])
        return result

    def _commit_hierarchy(self, snap: HierarchySnapshot, changed: Tuple[User, ...]) -> None:
        self._repo.commit_hierarchy(snap.rows, changed, snap.closure_hash)
        self._log_warnings(snap.result)

    # ------------------------------------------------------------------
    # User lifecycle
    # ------------------------------------------------------------------

    def add_user(self, user: User) -> RebuildResult:
        """Create a user (optionally under a manager) and its closure rows."""

        def commit(new_snap: HierarchySnapshot, changed: Tuple[User, ...]) -> None:
            self._repo.insert_user(changed[0], new_snap.rows, new_snap.closure_hash)

        with self._write_lock:
            start = time.perf_counter()
            result = self.hierarchy.add_user(user, commit=commit, deadline=self._deadline())
            self._record_rebuild(start)
            self.directory.register(EntityRef.user(user.id), user.name)
        logger.info("User %s added under %s", user.id, user.manager_id)
        return result

    def remove_user(self, user_id: str) -> dict:
        """
        Delete a user, their closure rows and every relationship touching
        them, in one storage transaction.
        """
        with self._write_lock:
            hierarchy, graph, directory = self._require_stores()
            ref = EntityRef.user(user_id)
            edge_ids = [edge.id for edge in graph.edges_for(ref)]

            def commit(new_snap: HierarchySnapshot, changed: Tuple[User, ...]) -> None:
                self._repo.delete_user(user_id, edge_ids, new_snap.rows, new_snap.closure_hash)

            start = time.perf_counter()
            result = hierarchy.remove_user(user_id, commit=commit, deadline=self._deadline())
            self._record_rebuild(start)
            for edge_id in edge_ids:
                graph.remove_edge(edge_id)
            directory.forget(ref)
        logger.info("User %s removed with %d relationship(s)", user_id, len(edge_ids))
        return {
            "user_id": user_id,
            "removed_relationships": edge_ids,
            "result": result.to_dict(),
        }

    # ------------------------------------------------------------------
    # Relationship writes
    # ------------------------------------------------------------------

    def add_relationship(self, edge: RelationshipEdge) -> RelationshipEdge:
        with self._write_lock:
            added = self.graph.add_edge(edge, commit=self._repo.insert_relationship)
            for ref in (edge.from_entity, edge.to_entity):
                if self.directory.lookup_display_name(ref) is None:
                    logger.warning("Relationship %s references unknown entity %s", edge.id, ref)
        logger.info("Relationship %s added: %s -> %s", edge.id, edge.from_entity, edge.to_entity)
        return added

    def remove_relationship(self, edge_id: str) -> RelationshipEdge:
        with self._write_lock:
            removed = self.graph.remove_edge(
                edge_id, commit=lambda edge: self._repo.delete_relationship(edge.id),
            )
        logger.info("Relationship %s removed", edge_id)
        return removed

    def register_entity(self, ref: EntityRef, display_name: str) -> None:
        """Add or rename a non-user directory entry."""
        if ref.entity_type == "User":
            raise ValueError("Users are named through crm_users, not the entity directory")
        with self._write_lock:
            self._repo.upsert_entity(ref.entity_type, ref.id, display_name)
            self.directory.register(ref, display_name)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def network(
        self,
        start: EntityRef,
        max_degrees: int = DEFAULT_MAX_DEGREES,
        strict: bool = False,
    ) -> NetworkResult:
        result = compute_network(
            self.graph, self.directory, start, max_degrees,
            strict=strict, deadline=self._deadline(),
        )
        if result.unresolved:
            logger.warning(
                "Network from %s has %d unresolved entit(y/ies)", start, len(result.unresolved),
            )
        return result

    def paths(
        self,
        start: EntityRef,
        target: EntityRef,
        max_degrees: int = DEFAULT_MAX_DEGREES,
        limit: int = DEFAULT_PATH_LIMIT,
    ) -> List[NexusPath]:
        return find_paths(
            self.graph, self.directory, start, target, max_degrees,
            limit=limit, deadline=self._deadline(),
        )

    def team_paths(
        self,
        user_id: str,
        target: EntityRef,
        max_degrees: int = DEFAULT_MAX_DEGREES,
        limit: int = DEFAULT_PATH_LIMIT,
    ) -> List[NexusPath]:
        return find_team_paths(
            self.hierarchy, self.graph, self.directory, user_id, target,
            max_degrees, limit=limit, deadline=self._deadline(),
        )

    # ------------------------------------------------------------------
    # Consistency verification
    # ------------------------------------------------------------------

    def verify_consistency(self) -> bool:
        """
        Rebuild from the stored primary links and compare with the
        stored closure table.

        Raises ClosureDriftError on mismatch. Returns True otherwise.
        """
        users = index_users(self._repo.load_users())
        rebuilt = build_closure(users, self._max_depth, self._deadline()).rows
        stored = self._repo.load_closure()
        expected, actual = closure_hash(rebuilt), closure_hash(stored)
        if expected != actual:
            raise ClosureDriftError(expected, actual, compare_closures(rebuilt, stored))
        return True

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def get_metrics(self) -> "SessionMetrics":
        """Collect metrics from the current session."""
        from .observability import collect_metrics
        return collect_metrics(self)

    def get_diagnostics(self) -> dict:
        hierarchy, graph, _ = self._require_stores()
        return compute_diagnostics(hierarchy.snapshot(), graph)

    @property
    def rebuild_count(self) -> int:
        return self._rebuild_count

    @property
    def last_rebuild_ms(self) -> float:
        return self._last_rebuild_ms

    @property
    def max_chain_depth(self) -> int:
        return self._max_depth

    # ------------------------------------------------------------------
    # Delegates
    # ------------------------------------------------------------------

    @property
    def hierarchy(self) -> HierarchyStore:
        return self._require_stores()[0]

    @property
    def graph(self) -> RelationshipGraph:
        return self._require_stores()[1]

    @property
    def directory(self) -> InMemoryDirectory:
        return self._require_stores()[2]

    def _require_stores(self) -> Tuple[HierarchyStore, RelationshipGraph, InMemoryDirectory]:
        stores = self._stores
        if stores is None:
            raise RuntimeError("NexusSession.initialize() has not been called")
        return stores

    def _deadline(self) -> Deadline:
        return Deadline(self._timeout_s)

    def _record_rebuild(self, start: float) -> None:
        self._last_rebuild_ms = round((time.perf_counter() - start) * 1000.0, 2)
        self._rebuild_count += 1

    def _log_warnings(self, result: RebuildResult) -> None:
        for warning in result.warnings:
            logger.warning("Closure rebuild: %s", warning)
