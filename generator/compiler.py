"""
Network Compiler — Deterministic generator producing valid seed networks.

generate_network(spec, seed) → GeneratedNetwork

Emits an org chart bounded by span and depth, a directory of contacts,
accounts and partners, and typed relationship edges joining them.

No global randomness. Output is validated by loading it into a
HierarchyStore and running the snapshot invariants before returning.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Set, Tuple

from nexus_kernel.constants import MAX_CHAIN_DEPTH
from nexus_kernel.domain_types import EntityRef, RelationshipEdge, User
from nexus_kernel.errors import DepthExceededError
from nexus_kernel.hierarchy import HierarchyStore
from nexus_kernel.invariants import InvariantViolationError
from nexus_kernel.snapshot import NetworkState, validate_state

from .deterministic_rng import DeterministicRNG
from .name_catalog import (
    ACCOUNT_NAMES,
    CONTACT_CONTACT_TYPES,
    CONTACT_PARTNER_TYPES,
    FIRST_NAMES,
    LAST_NAMES,
    PARTNER_NAMES,
    USER_CONTACT_TYPES,
)
from .template_spec import NetworkSpec


class GeneratorInvariantError(Exception):
    """Raised when a generated network fails kernel validation."""

    def __init__(self, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"Generated network failed validation: {cause}")


@dataclass(frozen=True)
class GeneratedNetwork:
    """A validated network plus the inputs that produced it."""

    state: NetworkState
    spec: NetworkSpec
    seed: int

    @property
    def root_user_id(self) -> str:
        return self.state.users[0].id


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def generate_network(spec: NetworkSpec, seed: int) -> GeneratedNetwork:
    """
    Compile a NetworkSpec + seed into a deterministic NetworkState.

    Raises ValueError for an impossible spec and GeneratorInvariantError
    if the generated network fails validation.
    """
    spec.validate()
    rng = DeterministicRNG(seed)
    names = _NamePool(rng)

    # ── Step 1: Org chart ─────────────────────────────────────────────
    users = _emit_org_chart(spec, rng, names)

    # ── Step 2: Directory entities ────────────────────────────────────
    contacts = _emit_entities("Contact", "c", spec.contact_count, names.person)
    accounts = _emit_entities("Account", "a", spec.account_count,
                              lambda: names.company(ACCOUNT_NAMES))
    partners = _emit_entities("Partner", "p", spec.partner_count,
                              lambda: names.company(PARTNER_NAMES))

    # ── Step 3: Relationship edges ────────────────────────────────────
    edges = _EdgeEmitter(rng, spec)
    contact_refs = [ref for ref, _ in contacts]
    account_refs = [ref for ref, _ in accounts]
    partner_refs = [ref for ref, _ in partners]

    for contact in contact_refs:
        edges.emit(contact, rng.rand_choice(account_refs), "Works At")

    if contact_refs:
        for user in users:
            k = rng.rand_int(0, spec.contacts_per_user)
            for contact in rng.sample(contact_refs, k):
                edges.emit(EntityRef.user(user.id), contact,
                           rng.rand_choice(USER_CONTACT_TYPES))

    _emit_cross_links(spec, rng, edges, contact_refs, partner_refs)

    for partner in partner_refs:
        if account_refs:
            edges.emit(partner, rng.rand_choice(account_refs), "JV Partner")

    state = NetworkState(
        users=tuple(users),
        edges=tuple(edges.edges),
        entities=tuple(sorted(
            (ref.entity_type, ref.id, name)
            for ref, name in contacts + accounts + partners
        )),
    )

    # ── Validation ────────────────────────────────────────────────────
    _validate(state)
    return GeneratedNetwork(state=state, spec=spec, seed=seed)


def _validate(state: NetworkState) -> None:
    try:
        validate_state(state)
    except InvariantViolationError as exc:
        raise GeneratorInvariantError(exc) from exc
    result = HierarchyStore(state.users, MAX_CHAIN_DEPTH).last_result
    if result.truncated:
        origin = result.truncated[0][0]
        raise GeneratorInvariantError(
            DepthExceededError(origin, MAX_CHAIN_DEPTH, result.truncated)
        )


# ---------------------------------------------------------------------------
# Step 1: Org chart
# ---------------------------------------------------------------------------

def _emit_org_chart(
    spec: NetworkSpec,
    rng: DeterministicRNG,
    names: "_NamePool",
) -> List[User]:
    """
    Attach each new user under a random manager that still has a free
    slot and sits above the depth bound. User 1 is the root.

    spec.validate() guarantees the tree fits, so a free slot always exists.
    """
    users: List[User] = [User(_user_id(1), names.person())]
    depth: Dict[str, int] = {users[0].id: 0}
    span: Dict[str, int] = {users[0].id: 0}

    for n in range(2, spec.user_count + 1):
        open_managers = [
            u.id for u in users
            if span[u.id] < spec.max_span and depth[u.id] < spec.max_depth
        ]
        manager_id = rng.rand_choice(open_managers)
        uid = _user_id(n)
        users.append(User(uid, names.person(), manager_id))
        depth[uid] = depth[manager_id] + 1
        span[uid] = 0
        span[manager_id] += 1

    return users


def _user_id(n: int) -> str:
    return f"u-{n:03d}"


# ---------------------------------------------------------------------------
# Step 2: Directory entities
# ---------------------------------------------------------------------------

def _emit_entities(entity_type, prefix, count, make_name) -> List[Tuple[EntityRef, str]]:
    return [
        (EntityRef(entity_type, f"{prefix}-{n:03d}"), make_name())
        for n in range(1, count + 1)
    ]


class _NamePool:
    """Draws person and company names; repeats get a numeric suffix."""

    def __init__(self, rng: DeterministicRNG) -> None:
        self._rng = rng
        self._seen: Dict[str, int] = {}

    def person(self) -> str:
        first = self._rng.rand_choice(FIRST_NAMES)
        last = self._rng.rand_choice(LAST_NAMES)
        return self._unique(f"{first} {last}")

    def company(self, catalog) -> str:
        return self._unique(self._rng.rand_choice(catalog))

    def _unique(self, name: str) -> str:
        count = self._seen.get(name, 0) + 1
        self._seen[name] = count
        return name if count == 1 else f"{name} {count}"


# ---------------------------------------------------------------------------
# Step 3: Relationship edges
# ---------------------------------------------------------------------------

class _EdgeEmitter:
    """Assigns sequential edge ids and skips repeated entity pairs."""

    def __init__(self, rng: DeterministicRNG, spec: NetworkSpec) -> None:
        self._rng = rng
        self._strength_weights = (spec.strong_weight, spec.medium_weight, spec.weak_weight)
        self._pairs: Set[frozenset] = set()
        self.edges: List[RelationshipEdge] = []

    def emit(self, from_entity: EntityRef, to_entity: EntityRef, relationship_type: str) -> bool:
        pair = frozenset((from_entity, to_entity))
        if from_entity == to_entity or pair in self._pairs:
            return False
        self._pairs.add(pair)
        strength = self._rng.weighted_choice(
            ("Strong", "Medium", "Weak"), self._strength_weights,
        )
        self.edges.append(RelationshipEdge(
            id=f"rel-{len(self.edges) + 1:04d}",
            from_entity=from_entity,
            to_entity=to_entity,
            relationship_type=relationship_type,
            strength=strength,
        ))
        return True


def _emit_cross_links(
    spec: NetworkSpec,
    rng: DeterministicRNG,
    edges: _EdgeEmitter,
    contacts: List[EntityRef],
    partners: List[EntityRef],
) -> None:
    """
    Contact↔contact introductions and contact→partner advisory links.
    These are what make multi-degree paths exist at all.
    """
    if len(contacts) < 2 and not (contacts and partners):
        return
    # Bounded attempts: duplicates are skipped, not retried forever.
    attempts = spec.cross_link_count * 4
    emitted = 0
    while emitted < spec.cross_link_count and attempts > 0:
        attempts -= 1
        source = rng.rand_choice(contacts)
        if partners and (len(contacts) < 2 or rng.rand_int(0, 3) == 0):
            if edges.emit(source, rng.rand_choice(partners),
                          rng.rand_choice(CONTACT_PARTNER_TYPES)):
                emitted += 1
        elif edges.emit(source, rng.rand_choice(contacts),
                        rng.rand_choice(CONTACT_CONTACT_TYPES)):
            emitted += 1
