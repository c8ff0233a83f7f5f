# file: backend/main.py
"""
FastAPI Backend — Org Nexus API v1.

One process-wide NexusSession: the kernel stores live in memory and every
accepted write is committed to storage before it is installed.

Endpoints:
  GET  /users/{id}/ancestors|descendants|direct-reports|team
  POST /users, DELETE /users/{id}          — user lifecycle + closure rebuild
  PUT  /users/{id}/manager                 — reassign + rebuild closure
  POST /hierarchy/rebuild                  — full closure regeneration
  GET  /entities/{type}/{id}/network|paths — bounded BFS traversals
  POST /relationships, DELETE /relationships/{id}
  POST /seed                               — replace everything with a generated network
"""
from __future__ import annotations

import json
import logging
import os
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from dotenv import load_dotenv

env_path = os.path.join(os.path.dirname(__file__), ".env")
if os.path.exists(env_path):
    load_dotenv(env_path)

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from nexus_kernel.constants import DEFAULT_MAX_DEGREES, DEFAULT_PATH_LIMIT, MAX_CHAIN_DEPTH
from nexus_kernel.domain_types import EntityRef, RelationshipEdge, User
from nexus_kernel.errors import (
    CycleError,
    DeadlineExceededError,
    DepthExceededError,
    DuplicateIdError,
    HasReportsError,
    NotFoundError,
    SelfReferenceError,
    UnresolvedEntityError,
)
from nexus_kernel.invariants import InvariantViolationError
from nexus_kernel.snapshot import (
    DeserializationError,
    InvariantViolationSnapshotError,
    encode_snapshot,
    restore_snapshot,
)

from nexus_runtime.repository import NexusRepository
from nexus_runtime.session import (
    DEFAULT_OPERATION_TIMEOUT_S,
    ClosureDriftError,
    NexusSession,
)

from backend.supabase_repository import SupabaseNexusRepository

from generator import DEFAULT_SPEC, GeneratorInvariantError, NetworkSpec, generate_network

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DATABASE_URL = os.environ.get("DATABASE_URL", "")
NEXUS_DB_PATH = os.environ.get("NEXUS_DB_PATH", "nexus.db")
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")
NEXUS_MAX_CHAIN_DEPTH = int(os.environ.get("NEXUS_MAX_CHAIN_DEPTH", str(MAX_CHAIN_DEPTH)))
NEXUS_OPERATION_TIMEOUT_S = float(
    os.environ.get("NEXUS_OPERATION_TIMEOUT_S", str(DEFAULT_OPERATION_TIMEOUT_S))
)

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(levelname)s:%(name)s:%(message)s",
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Org Nexus API",
    version="1.0.0",
    description="Org hierarchy closure table + relationship network traversal",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        FRONTEND_URL,
        "http://localhost:3000",
        "http://localhost:3001",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------


class SetManagerRequest(BaseModel):
    manager_id: Optional[str] = None


class RelationshipRequest(BaseModel):
    from_entity_type: str
    from_entity_id: str
    to_entity_type: str
    to_entity_id: str
    relationship_type: str = "Knows"
    strength: str = "Medium"
    notes: Optional[str] = None
    id: Optional[str] = None


class CreateUserRequest(BaseModel):
    id: str
    name: str
    manager_id: Optional[str] = None


class EntityRequest(BaseModel):
    display_name: str


class SeedRequest(BaseModel):
    seed: Optional[int] = None
    overrides: Optional[Dict[str, Any]] = None


class ImportRequest(BaseModel):
    snapshot: Dict[str, Any]


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

_session: Optional[NexusSession] = None
_session_lock = threading.Lock()


def _open_repository():
    if DATABASE_URL:
        logger.info("Using Postgres storage")
        return SupabaseNexusRepository(DATABASE_URL)
    logger.info("Using sqlite storage at %s", NEXUS_DB_PATH)
    return NexusRepository(NEXUS_DB_PATH)


def get_session() -> NexusSession:
    """Process-wide session, created and loaded on first use."""
    global _session
    with _session_lock:
        if _session is None:
            session = NexusSession(
                _open_repository(),
                max_chain_depth=NEXUS_MAX_CHAIN_DEPTH,
                timeout_s=NEXUS_OPERATION_TIMEOUT_S,
            )
            session.initialize()
            _session = session
        return _session


@contextmanager
def _kernel_errors() -> Iterator[None]:
    """Translate kernel failures into HTTP status codes."""
    try:
        yield
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except (DuplicateIdError, HasReportsError) as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except (SelfReferenceError, CycleError, DepthExceededError,
            UnresolvedEntityError, InvariantViolationError,
            InvariantViolationSnapshotError) as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except DeadlineExceededError as exc:
        logger.warning("Deadline exceeded: %s", exc)
        raise HTTPException(status_code=504, detail=str(exc))
    except (ValueError, DeserializationError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _entity(entity_type: str, entity_id: str) -> EntityRef:
    with _kernel_errors():
        return EntityRef(entity_type, entity_id)


# ---------------------------------------------------------------------------
# Hierarchy
# ---------------------------------------------------------------------------


@app.get("/users/{user_id}/ancestors")
def get_ancestors(user_id: str, session: NexusSession = Depends(get_session)):
    """Every manager above the user, nearest first."""
    with _kernel_errors():
        rows = session.hierarchy.ancestors_of(user_id)
    return {"user_id": user_id, "ancestors": [r.to_dict() for r in rows]}


@app.get("/users/{user_id}/descendants")
def get_descendants(user_id: str, session: NexusSession = Depends(get_session)):
    with _kernel_errors():
        rows = session.hierarchy.descendants_of(user_id)
    return {"user_id": user_id, "descendants": [r.to_dict() for r in rows]}


@app.get("/users/{user_id}/direct-reports")
def get_direct_reports(user_id: str, session: NexusSession = Depends(get_session)):
    with _kernel_errors():
        return {"user_id": user_id, "direct_reports": session.hierarchy.direct_reports(user_id)}


@app.get("/users/{user_id}/team")
def get_team(user_id: str, session: NexusSession = Depends(get_session)):
    """The user plus every transitive subordinate."""
    with _kernel_errors():
        return {"user_id": user_id, "team": session.hierarchy.team_of(user_id)}


@app.put("/users/{user_id}/manager")
def set_manager(
    user_id: str,
    req: SetManagerRequest,
    session: NexusSession = Depends(get_session),
):
    """
    Reassign (or clear) a user's manager.

    Validate → rebuild → commit → install. Rejected moves change nothing.
    """
    with _kernel_errors():
        return session.set_manager(user_id, req.manager_id)


@app.post("/users", status_code=201)
def create_user(req: CreateUserRequest, session: NexusSession = Depends(get_session)):
    """Insert a user and the closure rows for its manager chain."""
    user = User(id=req.id, name=req.name, manager_id=req.manager_id)
    with _kernel_errors():
        result = session.add_user(user)
    return {"user": user.to_dict(), "result": result.to_dict()}


@app.delete("/users/{user_id}")
def delete_user(user_id: str, session: NexusSession = Depends(get_session)):
    """Remove a user with no direct reports, plus their relationships."""
    with _kernel_errors():
        return session.remove_user(user_id)


@app.post("/hierarchy/rebuild")
def rebuild_hierarchy(strict: bool = False, session: NexusSession = Depends(get_session)):
    with _kernel_errors():
        result = session.rebuild(strict=strict)
    return result.to_dict()


@app.get("/hierarchy/diagnostics")
def get_diagnostics(session: NexusSession = Depends(get_session)):
    return session.get_diagnostics()


@app.get("/hierarchy/verify")
def verify_hierarchy(session: NexusSession = Depends(get_session)):
    """Compare the stored closure with a rebuild from the stored links."""
    try:
        session.verify_consistency()
    except ClosureDriftError as exc:
        raise HTTPException(
            status_code=409,
            detail={"message": str(exc), "drift": exc.drift},
        )
    return {"consistent": True}


@app.get("/metrics")
def get_metrics(session: NexusSession = Depends(get_session)):
    return session.get_metrics().to_dict()


# ---------------------------------------------------------------------------
# Relationships
# ---------------------------------------------------------------------------


@app.post("/relationships", status_code=201)
def add_relationship(req: RelationshipRequest, session: NexusSession = Depends(get_session)):
    """Server assigns an id when the client sends none."""
    with _kernel_errors():
        edge = RelationshipEdge(
            id=req.id or f"rel-{uuid.uuid4().hex[:12]}",
            from_entity=EntityRef(req.from_entity_type, req.from_entity_id),
            to_entity=EntityRef(req.to_entity_type, req.to_entity_id),
            relationship_type=req.relationship_type,
            strength=req.strength,
            notes=req.notes,
        )
        added = session.add_relationship(edge)
    return added.to_dict()


@app.delete("/relationships/{edge_id}")
def remove_relationship(edge_id: str, session: NexusSession = Depends(get_session)):
    with _kernel_errors():
        removed = session.remove_relationship(edge_id)
    return {"status": "deleted", "relationship": removed.to_dict()}


@app.put("/entities/{entity_type}/{entity_id}")
def register_entity(
    entity_type: str,
    entity_id: str,
    req: EntityRequest,
    session: NexusSession = Depends(get_session),
):
    """Add or rename a contact, account or partner in the directory."""
    ref = _entity(entity_type, entity_id)
    with _kernel_errors():
        session.register_entity(ref, req.display_name)
    return {"entity": ref.to_dict(), "display_name": req.display_name}


@app.get("/entities/{entity_type}/{entity_id}/relationships")
def get_relationships(
    entity_type: str,
    entity_id: str,
    session: NexusSession = Depends(get_session),
):
    ref = _entity(entity_type, entity_id)
    return {
        "entity": ref.to_dict(),
        "display_name": session.directory.lookup_display_name(ref),
        "relationships": [e.to_dict() for e in session.graph.edges_for(ref)],
    }


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------


@app.get("/entities/{entity_type}/{entity_id}/network")
def get_network(
    entity_type: str,
    entity_id: str,
    max_degrees: int = Query(DEFAULT_MAX_DEGREES),
    strict: bool = False,
    session: NexusSession = Depends(get_session),
):
    """Every entity within ``max_degrees`` hops, grouped by degree."""
    start = _entity(entity_type, entity_id)
    with _kernel_errors():
        result = session.network(start, max_degrees, strict=strict)
    return result.to_dict()


@app.get("/entities/{entity_type}/{entity_id}/paths")
def get_paths(
    entity_type: str,
    entity_id: str,
    target_type: str,
    target_id: str,
    max_degrees: int = Query(DEFAULT_MAX_DEGREES),
    limit: int = Query(DEFAULT_PATH_LIMIT),
    session: NexusSession = Depends(get_session),
):
    """Shortest connection paths, fewest degrees then strongest first."""
    start = _entity(entity_type, entity_id)
    target = _entity(target_type, target_id)
    with _kernel_errors():
        paths = session.paths(start, target, max_degrees, limit=limit)
    return {"paths": [p.to_dict() for p in paths]}


@app.get("/users/{user_id}/team-paths")
def get_team_paths(
    user_id: str,
    target_type: str,
    target_id: str,
    max_degrees: int = Query(DEFAULT_MAX_DEGREES),
    limit: int = Query(DEFAULT_PATH_LIMIT),
    session: NexusSession = Depends(get_session),
):
    """Paths from anyone on the user's team to the target."""
    target = _entity(target_type, target_id)
    with _kernel_errors():
        paths = session.team_paths(user_id, target, max_degrees, limit=limit)
    return {"paths": [p.to_dict() for p in paths]}


# ---------------------------------------------------------------------------
# Seed / snapshot
# ---------------------------------------------------------------------------


@app.post("/seed")
def seed_network(req: SeedRequest, session: NexusSession = Depends(get_session)):
    """
    Generate a deterministic network and replace everything with it.

    Without an explicit seed the current time is used, so each call differs.
    """
    fields = DEFAULT_SPEC.to_dict()
    fields.update(req.overrides or {})
    try:
        spec = NetworkSpec(**fields)
    except TypeError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid overrides: {exc}")

    seed = req.seed if req.seed is not None else int(time.time() * 1000) % (2**31)

    with _kernel_errors():
        try:
            network = generate_network(spec, seed)
        except GeneratorInvariantError as exc:
            logger.error("Seed generation failed: seed=%d spec=%s: %s", seed, spec.to_dict(), exc)
            raise HTTPException(status_code=500, detail=str(exc))
        result = session.load_state(network.state)

    return {
        "seed": seed,
        "spec": spec.to_dict(),
        "user_count": len(network.state.users),
        "relationship_count": len(network.state.edges),
        "entity_count": len(network.state.entities),
        "result": result.to_dict(),
    }


@app.get("/snapshot")
def export_snapshot(session: NexusSession = Depends(get_session)):
    """Canonical JSON of users, entities and relationships (no closure)."""
    return {"snapshot": json.loads(encode_snapshot(session.export_state()))}


@app.post("/snapshot/import")
def import_snapshot(req: ImportRequest, session: NexusSession = Depends(get_session)):
    """Replace everything with a validated snapshot."""
    with _kernel_errors():
        state = restore_snapshot(json.dumps(req.snapshot))
        result = session.load_state(state)
    return result.to_dict()


@app.get("/health")
def health():
    return {"status": "ok", "version": "1.0.0"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", "8000")),
        log_level="info",
    )
