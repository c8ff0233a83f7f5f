"""
Nexus Kernel — Entity Directory

Display-name lookup for graph nodes. The traversal layer only needs
``lookup_display_name``; where the names live (memory, sqlite, Postgres)
is the caller's business.
"""

from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional, Protocol, Tuple

from .domain_types import EntityRef, User


class EntityDirectory(Protocol):
    def lookup_display_name(self, ref: EntityRef) -> Optional[str]:
        ...


class InMemoryDirectory:
    """Dict-backed directory. ``None`` means the entity is unknown."""

    def __init__(self, names: Optional[Mapping[EntityRef, str]] = None) -> None:
        self._names: Dict[EntityRef, str] = dict(names or {})

    @classmethod
    def from_records(
        cls,
        records: Iterable[Tuple[str, str, str]],
        users: Iterable[User] = (),
    ) -> "InMemoryDirectory":
        """Build from ``(entity_type, id, display_name)`` rows plus users."""
        directory = cls()
        for user in users:
            directory.register(EntityRef.user(user.id), user.name)
        for entity_type, entity_id, display_name in records:
            directory.register(EntityRef(entity_type, entity_id), display_name)
        return directory

    def register(self, ref: EntityRef, display_name: str) -> None:
        if not display_name:
            raise ValueError(f"display_name for {ref} must be non-empty")
        self._names[ref] = display_name

    def forget(self, ref: EntityRef) -> None:
        self._names.pop(ref, None)

    def lookup_display_name(self, ref: EntityRef) -> Optional[str]:
        return self._names.get(ref)

    def refs(self) -> Tuple[EntityRef, ...]:
        return tuple(sorted(self._names))

    def __contains__(self, ref: object) -> bool:
        return ref in self._names

    def __len__(self) -> int:
        return len(self._names)
