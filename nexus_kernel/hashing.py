"""
Nexus Kernel — Canonical Hashing

Deterministic canonical serialization + SHA-256 hashing of the closure
table and of the primary links it is derived from.

Rules:
  - Closure rows sorted by (manager_id, subordinate_id, depth)
  - Users sorted by id
  - UTF-8 JSON, no whitespace, fixed field order
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, Iterable, List, Mapping

from .domain_types import HierarchyEdge, User


def canonical_closure_bytes(rows: Iterable[HierarchyEdge]) -> bytes:
    """
    Canonical serialization of a closure table to UTF-8 JSON bytes.
    Identical row sets give byte-identical output regardless of order.
    """
    obj = [
        [r.manager_id, r.subordinate_id, r.depth]
        for r in sorted(rows)
    ]
    return json.dumps(obj, ensure_ascii=True, separators=(",", ":")).encode("utf-8")


def closure_hash(rows: Iterable[HierarchyEdge]) -> str:
    """SHA-256 of the canonical closure bytes. Lowercase hex string."""
    return hashlib.sha256(canonical_closure_bytes(rows)).hexdigest()


def canonical_links_bytes(users: Mapping[str, User]) -> bytes:
    """Canonical serialization of the primary ``manager_id`` links."""
    obj = _build_links_list(users)
    return json.dumps(obj, ensure_ascii=True, separators=(",", ":")).encode("utf-8")


def links_hash(users: Mapping[str, User]) -> str:
    """SHA-256 of the canonical primary-link bytes."""
    return hashlib.sha256(canonical_links_bytes(users)).hexdigest()


def _build_links_list(users: Mapping[str, User]) -> List[Dict[str, Any]]:
    return [
        {"id": uid, "manager_id": users[uid].manager_id}
        for uid in sorted(users)
    ]
