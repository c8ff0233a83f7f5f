"""
Nexus Repository — sqlite3-backed storage for users, closure rows,
relationship edges and directory entries.

The kernel never talks to storage directly. The session loads an
in-memory view through ``load_*`` and writes back through the commit
methods, each of which is a single transaction:

  commit_hierarchy   primary-link updates + closure delete-all/insert-all
                     + hierarchy_metadata, all or nothing
  insert_user / delete_user
                     user row change + closure rewrite
  insert_relationship / delete_relationship
  replace_all        wipe + reload from a NetworkState (seeding)
"""

from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from nexus_kernel.domain_types import EntityRef, HierarchyEdge, RelationshipEdge, User
from nexus_kernel.snapshot import NetworkState

_SCHEMA_PATH = Path(__file__).parent / "schema.sql"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def edge_from_row(row: Sequence) -> RelationshipEdge:
    """Build an edge from ``(id, from_id, from_type, to_id, to_type, type, strength, notes)``."""
    return RelationshipEdge(
        id=row[0],
        from_entity=EntityRef(row[2], row[1]),
        to_entity=EntityRef(row[4], row[3]),
        relationship_type=row[5],
        strength=row[6],
        notes=row[7],
    )


def edge_to_row(edge: RelationshipEdge, created_at: str) -> tuple:
    return (
        edge.id,
        edge.from_entity.id,
        edge.from_entity.entity_type,
        edge.to_entity.id,
        edge.to_entity.entity_type,
        edge.relationship_type,
        edge.strength,
        edge.notes,
        created_at,
    )


class NexusRepository:
    """
    Storage for one CRM's hierarchy and relationship network.

    One connection per repository. Calls are serialized on an internal
    lock so request threads can share an instance.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._lock = threading.RLock()
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        schema_sql = _SCHEMA_PATH.read_text(encoding="utf-8")
        self._conn.executescript(schema_sql)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def load_users(self) -> List[User]:
        with self._lock:
            cursor = self._conn.execute(
                "SELECT id, name, reports_to FROM crm_users ORDER BY id"
            )
            return [User(id=r[0], name=r[1], manager_id=r[2]) for r in cursor]

    def load_closure(self) -> List[HierarchyEdge]:
        with self._lock:
            cursor = self._conn.execute(
                """
                SELECT manager_id, subordinate_id, depth
                FROM user_hierarchy
                ORDER BY manager_id, subordinate_id, depth
                """
            )
            return [HierarchyEdge(r[0], r[1], r[2]) for r in cursor]

    def load_edges(self) -> List[RelationshipEdge]:
        with self._lock:
            cursor = self._conn.execute(
                """
                SELECT id, from_entity_id, from_entity_type,
                       to_entity_id, to_entity_type, type, strength, notes
                FROM relationships
                ORDER BY id
                """
            )
            return [edge_from_row(r) for r in cursor]

    def load_entities(self) -> List[Tuple[str, str, str]]:
        """Directory rows ``(entity_type, id, display_name)`` for non-user entities."""
        with self._lock:
            cursor = self._conn.execute(
                "SELECT entity_type, id, display_name FROM entities ORDER BY entity_type, id"
            )
            return [(r[0], r[1], r[2]) for r in cursor]

    def load_metadata(self) -> Optional[Tuple[str, int]]:
        """
        Load hierarchy metadata.
        Returns (closure_hash, row_count) or None.
        """
        with self._lock:
            cursor = self._conn.execute(
                "SELECT closure_hash, row_count FROM hierarchy_metadata WHERE id = 1"
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return (row[0], row[1])

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def commit_hierarchy(
        self,
        rows: Iterable[HierarchyEdge],
        changed_users: Iterable[User],
        closure_hash: str,
    ) -> None:
        """
        Persist primary-link changes and the full replacement closure.

        Delete-all then insert-all inside one transaction; a failure
        leaves the previous table in place.
        """
        rows = list(rows)
        with self._lock, self._conn:
            for user in changed_users:
                cursor = self._conn.execute(
                    "UPDATE crm_users SET reports_to = ? WHERE id = ?",
                    (user.manager_id, user.id),
                )
                if cursor.rowcount != 1:
                    raise sqlite3.IntegrityError(
                        f"crm_users row for {user.id!r} is missing"
                    )
            self._rewrite_closure(rows, closure_hash)

    def insert_relationship(self, edge: RelationshipEdge) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO relationships
                    (id, from_entity_id, from_entity_type, to_entity_id,
                     to_entity_type, type, strength, notes, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                edge_to_row(edge, _now()),
            )

    def delete_relationship(self, edge_id: str) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM relationships WHERE id = ?", (edge_id,))

    def insert_user(
        self,
        user: User,
        rows: Iterable[HierarchyEdge],
        closure_hash: str,
    ) -> None:
        """New ``crm_users`` row plus the rebuilt closure, one transaction."""
        rows = list(rows)
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO crm_users (id, name, reports_to) VALUES (?, ?, ?)",
                (user.id, user.name, user.manager_id),
            )
            self._rewrite_closure(rows, closure_hash)

    def delete_user(
        self,
        user_id: str,
        edge_ids: Iterable[str],
        rows: Iterable[HierarchyEdge],
        closure_hash: str,
    ) -> None:
        """Drop a user, the given relationship ids and rewrite the closure."""
        rows = list(rows)
        with self._lock, self._conn:
            self._conn.executemany(
                "DELETE FROM relationships WHERE id = ?",
                [(edge_id,) for edge_id in edge_ids],
            )
            cursor = self._conn.execute("DELETE FROM crm_users WHERE id = ?", (user_id,))
            if cursor.rowcount != 1:
                raise sqlite3.IntegrityError(f"crm_users row for {user_id!r} is missing")
            self._rewrite_closure(rows, closure_hash)

    def upsert_entity(self, entity_type: str, entity_id: str, display_name: str) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO entities (entity_type, id, display_name) VALUES (?, ?, ?)
                ON CONFLICT(entity_type, id) DO UPDATE SET
                    display_name = excluded.display_name
                """,
                (entity_type, entity_id, display_name),
            )

    def replace_all(
        self,
        state: NetworkState,
        rows: Iterable[HierarchyEdge],
        closure_hash: str,
    ) -> None:
        """Wipe every table and load ``state`` plus its closure in one transaction."""
        rows = list(rows)
        now = _now()
        with self._lock, self._conn:
            for table in ("user_hierarchy", "relationships", "entities", "crm_users"):
                self._conn.execute(f"DELETE FROM {table}")
            self._conn.executemany(
                "INSERT INTO crm_users (id, name, reports_to) VALUES (?, ?, ?)",
                [(u.id, u.name, u.manager_id) for u in state.users],
            )
            self._conn.executemany(
                "INSERT INTO entities (entity_type, id, display_name) VALUES (?, ?, ?)",
                list(state.entities),
            )
            self._conn.executemany(
                """
                INSERT INTO relationships
                    (id, from_entity_id, from_entity_type, to_entity_id,
                     to_entity_type, type, strength, notes, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [edge_to_row(e, now) for e in state.edges],
            )
            self._conn.executemany(
                "INSERT INTO user_hierarchy (manager_id, subordinate_id, depth) VALUES (?, ?, ?)",
                [(r.manager_id, r.subordinate_id, r.depth) for r in rows],
            )
            self._write_metadata(closure_hash, len(rows))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _rewrite_closure(self, rows: List[HierarchyEdge], closure_hash: str) -> None:
        """Closure delete-all/insert-all + metadata. Caller owns the transaction."""
        self._conn.execute("DELETE FROM user_hierarchy")
        self._conn.executemany(
            """
            INSERT INTO user_hierarchy (manager_id, subordinate_id, depth)
            VALUES (?, ?, ?)
            """,
            [(r.manager_id, r.subordinate_id, r.depth) for r in rows],
        )
        self._write_metadata(closure_hash, len(rows))

    def _write_metadata(self, closure_hash: str, row_count: int) -> None:
        """MUST be called inside the caller's transaction."""
        self._conn.execute(
            """
            INSERT INTO hierarchy_metadata (id, closure_hash, row_count, rebuilt_at)
            VALUES (1, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                closure_hash = excluded.closure_hash,
                row_count = excluded.row_count,
                rebuilt_at = excluded.rebuilt_at
            """,
            (closure_hash, row_count, _now()),
        )

    def close(self) -> None:
        with self._lock:
            self._conn.close()
