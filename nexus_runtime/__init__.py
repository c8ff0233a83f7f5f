"""
Nexus Runtime — Persistence Layer

Loads the in-memory kernel view from storage and writes every accepted
change back in a single transaction.
"""

from .repository import NexusRepository
from .session import NexusSession, ClosureDriftError, DEFAULT_OPERATION_TIMEOUT_S
from .drift import compare_closures
from .observability import SessionMetrics, collect_metrics

__all__ = [
    "NexusRepository",
    "NexusSession",
    "ClosureDriftError",
    "DEFAULT_OPERATION_TIMEOUT_S",
    "compare_closures",
    "SessionMetrics",
    "collect_metrics",
]
