"""
Observability — In-process metrics collection.

No external dependencies. Uses compute_diagnostics + timing.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from nexus_kernel.closure import build_closure

if TYPE_CHECKING:
    from .session import NexusSession


@dataclass(frozen=True)
class SessionMetrics:
    """Snapshot of observable session metrics."""

    rebuild_latency_ms: float
    last_commit_latency_ms: float
    rebuild_count: int
    user_count: int
    closure_rows: int
    max_depth: int
    relationship_count: int
    closure_hash: str
    truncated_chains: int
    warnings: list

    def to_dict(self) -> dict:
        return {
            "rebuild_latency_ms": self.rebuild_latency_ms,
            "last_commit_latency_ms": self.last_commit_latency_ms,
            "rebuild_count": self.rebuild_count,
            "user_count": self.user_count,
            "closure_rows": self.closure_rows,
            "max_depth": self.max_depth,
            "relationship_count": self.relationship_count,
            "closure_hash": self.closure_hash,
            "truncated_chains": self.truncated_chains,
            "warnings": list(self.warnings),
        }


def collect_metrics(session: "NexusSession") -> SessionMetrics:
    """
    Collect metrics from a live session.

    Times a dry closure build over the current users (nothing is
    committed or installed) to measure rebuild latency.
    """
    snapshot = session.hierarchy.snapshot()

    start = time.perf_counter()
    build_closure(snapshot.users, session.max_chain_depth)
    elapsed_ms = (time.perf_counter() - start) * 1000.0

    diagnostics = session.get_diagnostics()

    return SessionMetrics(
        rebuild_latency_ms=round(elapsed_ms, 2),
        last_commit_latency_ms=session.last_rebuild_ms,
        rebuild_count=session.rebuild_count,
        user_count=diagnostics["user_count"],
        closure_rows=diagnostics["closure_rows"],
        max_depth=diagnostics["max_depth"],
        relationship_count=diagnostics["edge_count"],
        closure_hash=snapshot.closure_hash,
        truncated_chains=diagnostics["truncated_chains"],
        warnings=diagnostics["warnings"],
    )
