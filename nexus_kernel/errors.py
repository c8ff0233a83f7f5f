"""
Nexus Kernel — Error Taxonomy

Every kernel failure derives from NexusError and carries the offending
identifiers as attributes so callers can map them without parsing text.
"""

from __future__ import annotations

from typing import Sequence


class NexusError(Exception):
    """Base exception for all kernel operations."""


class NotFoundError(NexusError, KeyError):
    """A referenced user, entity or edge is absent."""

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier!r} not found")

    def __str__(self) -> str:
        return self.args[0]


class DuplicateIdError(NexusError, ValueError):
    """An id is already taken by another record of the same kind."""

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} id collision: {identifier!r} already exists")


class SelfReferenceError(NexusError, ValueError):
    """A node was named as its own manager (or an edge joins a node to itself)."""

    def __init__(self, identifier: str, detail: str = "") -> None:
        self.identifier = identifier
        super().__init__(
            detail or f"{identifier!r} cannot be assigned as its own manager"
        )


class CycleError(NexusError):
    """A manager reassignment would create a reporting cycle."""

    def __init__(self, user_id: str, manager_id: str) -> None:
        self.user_id = user_id
        self.manager_id = manager_id
        super().__init__(
            f"Cannot make {manager_id!r} the manager of {user_id!r}: "
            f"{manager_id!r} already reports (transitively) to {user_id!r}"
        )


class DepthExceededError(NexusError):
    """A chain walk exceeded the safety bound."""

    def __init__(self, origin: str, limit: int, pairs: Sequence = ()) -> None:
        self.origin = origin
        self.limit = limit
        self.pairs = tuple(pairs)
        super().__init__(
            f"Chain walk from {origin!r} exceeded the depth bound of {limit}"
        )


class UnresolvedEntityError(NexusError):
    """A graph node has no directory entry (raised only in strict traversals)."""

    def __init__(self, ref: object) -> None:
        self.ref = ref
        super().__init__(f"Entity {ref} has no directory entry")


class DeadlineExceededError(NexusError):
    """An operation ran past its deadline and was cancelled."""

    def __init__(self, operation: str, timeout_s: float) -> None:
        self.operation = operation
        self.timeout_s = timeout_s
        super().__init__(
            f"Operation {operation!r} exceeded its {timeout_s:.3f}s deadline"
        )


class HasReportsError(NexusError):
    """A user cannot be removed while somebody still reports to them."""

    def __init__(self, user_id: str, reports: Sequence[str]) -> None:
        self.user_id = user_id
        self.reports = tuple(reports)
        super().__init__(
            f"User {user_id!r} still has {len(self.reports)} direct report(s); "
            f"reassign them first"
        )
