"""
Nexus Kernel — Hierarchy Store Tests

  1-6:   Closure construction and reads
  7-12:  set_manager validation (not found, self, cycle, depth)
  13-18: Rebuild idempotence, truncation, commit atomicity, deadlines
  19-22: Corrupted cycles, user add/remove

Run:  python -m nexus_kernel.test_hierarchy
"""

from __future__ import annotations

import sys
import threading

from nexus_kernel.closure import build_closure
from nexus_kernel.deadline import Deadline
from nexus_kernel.domain_types import HierarchyEdge, User
from nexus_kernel.errors import (
    CycleError,
    DeadlineExceededError,
    DepthExceededError,
    DuplicateIdError,
    HasReportsError,
    NotFoundError,
    SelfReferenceError,
)
from nexus_kernel.hierarchy import HierarchyStore, group_by_depth
from nexus_kernel.invariants import (
    InvariantViolationError,
    validate_closure,
    validate_hierarchy,
)


# ══════════════════════════════════════════════════════════════
# Fixtures
# ══════════════════════════════════════════════════════════════

def _chain(*ids: str):
    """Users where each id reports to the previous one."""
    users = []
    prev = None
    for uid in ids:
        users.append(User(id=uid, name=uid.upper(), manager_id=prev))
        prev = uid
    return users


def _org() -> HierarchyStore:
    #        ceo
    #       /    \
    #    cfo      cto
    #     |      /   \
    #   acct   eng1  eng2
    #            |
    #          intern
    return HierarchyStore([
        User("ceo", "Dana"),
        User("cfo", "Omar", "ceo"),
        User("cto", "Priya", "ceo"),
        User("acct", "Lee", "cfo"),
        User("eng1", "Sam", "cto"),
        User("eng2", "Ada", "cto"),
        User("intern", "Kim", "eng1"),
    ])


def _header(title: str) -> None:
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}")


# ══════════════════════════════════════════════════════════════
# Closure + Reads (1 – 6)
# ══════════════════════════════════════════════════════════════

def test_01_chain_closure_rows() -> None:
    """A→B→C→D gives descendants(A) = {(B,1),(C,2),(D,3)}."""
    _header("Test 01 -- Chain closure rows")
    store = HierarchyStore(_chain("A", "B", "C", "D"))
    got = [(r.subordinate_id, r.depth) for r in store.descendants_of("A")]
    assert got == [("B", 1), ("C", 2), ("D", 3)], got
    assert len(store.closure) == 6, store.closure
    print("  [PASS]")


def test_02_ancestors_nearest_first() -> None:
    _header("Test 02 -- Ancestors ordered nearest first")
    store = _org()
    got = [(r.manager_id, r.depth) for r in store.ancestors_of("intern")]
    assert got == [("eng1", 1), ("cto", 2), ("ceo", 3)], got
    assert store.ancestors_of("ceo") == []
    print("  [PASS]")


def test_03_direct_reports_and_team() -> None:
    _header("Test 03 -- Direct reports and team")
    store = _org()
    assert store.direct_reports("cto") == ["eng1", "eng2"]
    assert store.direct_reports("intern") == []
    assert store.team_of("cto") == ["cto", "eng1", "eng2", "intern"]
    assert store.is_descendant("ceo", "intern")
    assert not store.is_descendant("cfo", "intern")
    print("  [PASS]")


def test_04_group_by_depth() -> None:
    _header("Test 04 -- Group descendants by depth")
    store = _org()
    grouped = group_by_depth(store.descendants_of("ceo"))
    assert sorted(grouped) == [1, 2, 3]
    assert [r.subordinate_id for r in grouped[1]] == ["cfo", "cto"]
    assert [r.subordinate_id for r in grouped[2]] == ["acct", "eng1", "eng2"]
    assert [r.subordinate_id for r in grouped[3]] == ["intern"]
    print("  [PASS]")


def test_05_unknown_user_reads() -> None:
    _header("Test 05 -- Reads on unknown users raise NotFoundError")
    store = _org()
    for read in (store.ancestors_of, store.descendants_of, store.direct_reports):
        try:
            read("ghost")
        except NotFoundError as exc:
            assert exc.kind == "User" and exc.identifier == "ghost"
        else:
            raise AssertionError(f"{read.__name__} accepted unknown user")
    print("  [PASS]")


def test_06_duplicate_user_ids_rejected() -> None:
    _header("Test 06 -- Duplicate user ids")
    try:
        HierarchyStore([User("a", "A"), User("a", "A again")])
    except DuplicateIdError as exc:
        assert exc.identifier == "a"
    else:
        raise AssertionError("Expected DuplicateIdError")
    print("  [PASS]")


# ══════════════════════════════════════════════════════════════
# set_manager validation (7 – 12)
# ══════════════════════════════════════════════════════════════

def test_07_cycle_rejected_and_state_unchanged() -> None:
    """A→B→C: setManager(A, C) must fail and change nothing."""
    _header("Test 07 -- Cycle rejected")
    store = HierarchyStore(_chain("A", "B", "C"))
    before = store.snapshot()
    try:
        store.set_manager("A", "C")
    except CycleError as exc:
        assert exc.user_id == "A" and exc.manager_id == "C"
    else:
        raise AssertionError("Expected CycleError")
    assert store.snapshot() is before
    assert store.get_user("A").manager_id is None
    print("  [PASS]")


def test_08_self_reference_rejected() -> None:
    _header("Test 08 -- Self reference rejected")
    store = _org()
    try:
        store.set_manager("cfo", "cfo")
    except SelfReferenceError as exc:
        assert exc.identifier == "cfo"
    else:
        raise AssertionError("Expected SelfReferenceError")
    print("  [PASS]")


def test_09_not_found_user_and_manager() -> None:
    _header("Test 09 -- Unknown user / manager")
    store = _org()
    for args in (("ghost", "ceo"), ("cfo", "ghost")):
        try:
            store.set_manager(*args)
        except NotFoundError as exc:
            assert exc.identifier == "ghost"
        else:
            raise AssertionError(f"Expected NotFoundError for {args}")
    print("  [PASS]")


def test_10_remove_manager_detaches_subtree() -> None:
    """A→B→C, setManager(C, None): ancestors(C) = {}, descendants(A) = {(B,1)}."""
    _header("Test 10 -- Remove manager")
    store = HierarchyStore(_chain("A", "B", "C"))
    store.set_manager("C", None)
    assert store.ancestors_of("C") == []
    got = [(r.subordinate_id, r.depth) for r in store.descendants_of("A")]
    assert got == [("B", 1)], got
    print("  [PASS]")


def test_11_move_subtree_recomputes_depths() -> None:
    _header("Test 11 -- Move subtree")
    store = _org()
    result = store.set_manager("eng1", "acct")
    got = [(r.manager_id, r.depth) for r in store.ancestors_of("intern")]
    assert got == [("eng1", 1), ("acct", 2), ("cfo", 3), ("ceo", 4)], got
    assert store.direct_reports("cto") == ["eng2"]
    assert result.row_count == len(store.closure)
    validate_closure(store.users, store.closure)
    print("  [PASS]")


def test_12_depth_bound_on_move() -> None:
    _header("Test 12 -- Move past the depth bound")
    store = HierarchyStore(_chain("a", "b", "c") + _chain("x", "y"), max_chain_depth=3)
    try:
        store.set_manager("x", "c")
    except DepthExceededError as exc:
        assert exc.origin == "x" and exc.limit == 3
        assert ("a", "y") in exc.pairs
    else:
        raise AssertionError("Expected DepthExceededError")
    assert store.get_user("x").manager_id is None
    # one level shallower fits
    store.set_manager("x", "b")
    assert [r.depth for r in store.ancestors_of("y")] == [1, 2, 3]
    print("  [PASS]")


# ══════════════════════════════════════════════════════════════
# Rebuild, commit, deadlines (13 – 17)
# ══════════════════════════════════════════════════════════════

def test_13_rebuild_idempotent() -> None:
    _header("Test 13 -- Rebuild idempotence")
    store = _org()
    rows_1 = store.closure
    r1 = store.rebuild()
    r2 = store.rebuild()
    assert r1.closure_hash == r2.closure_hash
    assert store.closure == rows_1
    print(f"  closure hash = {r1.closure_hash}")
    print("  [PASS]")


def test_14_corrupted_cycle_is_cut_not_looped() -> None:
    _header("Test 14 -- Corrupted cycle is cut")
    users = {
        "p": User("p", "P", "q"),
        "q": User("q", "Q", "p"),
    }
    build = build_closure(users, max_depth=4)
    assert build.rows == (HierarchyEdge("p", "q", 1), HierarchyEdge("q", "p", 1)), build.rows
    assert build.cyclic == (("p", "p"), ("q", "q")), build.cyclic
    assert build.cycle_members == ("p", "q")
    assert not build.truncated
    result = build.to_result()
    assert result.cyclic == build.cyclic
    assert any("Reporting cycle through 2 user(s)" in w for w in result.warnings), result.warnings
    try:
        validate_hierarchy(users)
    except InvariantViolationError as exc:
        assert exc.rule == "no_manager_cycles"
    else:
        raise AssertionError("Expected cycle to be reported")
    print("  [PASS]")


def test_15_strict_rebuild_raises_on_truncation() -> None:
    _header("Test 15 -- Strict rebuild")
    store = HierarchyStore(_chain("a", "b", "c", "d"), max_chain_depth=2)
    lenient = store.last_result
    assert lenient.truncated == (("a", "d"),), lenient.truncated
    try:
        store.rebuild(strict=True)
    except DepthExceededError as exc:
        assert exc.pairs == (("a", "d"),)
    else:
        raise AssertionError("Expected DepthExceededError")
    print("  [PASS]")


def test_16_commit_failure_leaves_state_untouched() -> None:
    _header("Test 16 -- Commit failure")
    store = _org()
    before = store.snapshot()
    seen = []

    def failing_commit(snapshot, changed):
        seen.append((snapshot.closure_hash, changed))
        raise RuntimeError("storage down")

    try:
        store.set_manager("acct", "cto", commit=failing_commit)
    except RuntimeError:
        pass
    else:
        raise AssertionError("commit error should propagate")
    assert store.snapshot() is before
    assert store.get_user("acct").manager_id == "cfo"
    assert seen and seen[0][1] == (User("acct", "Lee", "cto"),)
    print("  [PASS]")


def test_17_expired_deadline_aborts_rebuild() -> None:
    _header("Test 17 -- Deadline")
    store = _org()
    deadline = Deadline(timeout_s=0.001)
    deadline._expires_at = 0.0
    try:
        store.rebuild(deadline=deadline)
    except DeadlineExceededError as exc:
        assert exc.operation == "rebuild"
    else:
        raise AssertionError("Expected DeadlineExceededError")
    print("  [PASS]")


def test_18_concurrent_moves_stay_consistent() -> None:
    _header("Test 18 -- Concurrent set_manager calls")
    store = HierarchyStore(
        [User("root", "Root")] + [User(f"u{i}", f"U{i}", "root") for i in range(20)]
    )
    errors = []

    def move(i: int) -> None:
        try:
            store.set_manager(f"u{i}", f"u{i - 1}" if i % 2 else "root")
        except CycleError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=move, args=(i,)) for i in range(1, 20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert not errors, errors
    validate_closure(store.users, store.closure)
    assert HierarchyEdge("root", "u19", 2) in store.closure
    print("  [PASS]")


def test_19_long_cycle_reported_as_cycle() -> None:
    _header("Test 19 -- Cycle longer than the bound")
    ids = [f"a{i}" for i in range(1, 7)]
    users = {
        uid: User(uid, uid.upper(), ids[i - 1])
        for i, uid in enumerate(ids)
    }
    build = build_closure(users, max_depth=4)
    pairs = [(r.manager_id, r.subordinate_id) for r in build.rows]
    assert len(pairs) == len(set(pairs)) == 24, len(pairs)
    assert all(m != s for m, s in pairs)
    assert build.truncated and build.cycle_members == tuple(ids)
    warnings = build.to_result().warnings
    assert any(w.startswith("Depth bound exceeded on 6 chain(s)") for w in warnings), warnings
    assert any("Reporting cycle through 6 user(s)" in w and "(+1 more)" in w for w in warnings)
    print("  [PASS]")


def test_20_strict_rebuild_rejects_cycle() -> None:
    _header("Test 20 -- Strict rebuild on a cycle")
    store = HierarchyStore([User("p", "P", "q"), User("q", "Q", "p")])
    before = store.snapshot()
    try:
        store.rebuild(strict=True)
    except InvariantViolationError as exc:
        assert exc.rule == "no_manager_cycles"
    else:
        raise AssertionError("Expected InvariantViolationError")
    assert store.snapshot() is before
    assert store.rebuild().cyclic == (("p", "p"), ("q", "q"))
    print("  [PASS]")


def test_21_add_user() -> None:
    _header("Test 21 -- Add user")
    store = _org()
    committed = []
    result = store.add_user(
        User("eng3", "Noor", "cto"),
        commit=lambda snap, changed: committed.append(changed),
    )
    assert committed == [(User("eng3", "Noor", "cto"),)]
    assert [(r.manager_id, r.depth) for r in store.ancestors_of("eng3")] == [("cto", 1), ("ceo", 2)]
    assert result.row_count == len(store.closure)
    store.add_user(User("solo", "Ray"))
    assert store.ancestors_of("solo") == []

    before = store.snapshot()
    for user, expected in (
        (User("eng3", "Again", "cto"), DuplicateIdError),
        (User("new", "New", "ghost"), NotFoundError),
        (User("loop", "Loop", "loop"), SelfReferenceError),
        (User("bad id", "Bad"), ValueError),
    ):
        try:
            store.add_user(user)
        except expected:
            pass
        else:
            raise AssertionError(f"{user} should raise {expected.__name__}")
    assert store.snapshot() is before

    shallow = HierarchyStore(_chain("a", "b", "c"), max_chain_depth=2)
    try:
        shallow.add_user(User("d", "D", "c"))
    except DepthExceededError as exc:
        assert exc.pairs == (("a", "d"),)
    else:
        raise AssertionError("Expected DepthExceededError")
    assert "d" not in shallow.users
    print("  [PASS]")


def test_22_remove_user() -> None:
    _header("Test 22 -- Remove user")
    store = _org()
    try:
        store.remove_user("cto")
    except HasReportsError as exc:
        assert exc.reports == ("eng1", "eng2")
    else:
        raise AssertionError("Expected HasReportsError")

    store.remove_user("intern")
    assert "intern" not in store.users
    assert all("intern" not in (r.manager_id, r.subordinate_id) for r in store.closure)
    assert store.direct_reports("eng1") == []
    validate_closure(store.users, store.closure)
    try:
        store.remove_user("intern")
    except NotFoundError:
        pass
    else:
        raise AssertionError("Expected NotFoundError")
    print("  [PASS]")


# ══════════════════════════════════════════════════════════════
# Runner
# ══════════════════════════════════════════════════════════════

def main() -> None:
    tests = [
        test_01_chain_closure_rows,
        test_02_ancestors_nearest_first,
        test_03_direct_reports_and_team,
        test_04_group_by_depth,
        test_05_unknown_user_reads,
        test_06_duplicate_user_ids_rejected,
        test_07_cycle_rejected_and_state_unchanged,
        test_08_self_reference_rejected,
        test_09_not_found_user_and_manager,
        test_10_remove_manager_detaches_subtree,
        test_11_move_subtree_recomputes_depths,
        test_12_depth_bound_on_move,
        test_13_rebuild_idempotent,
        test_14_corrupted_cycle_is_cut_not_looped,
        test_15_strict_rebuild_raises_on_truncation,
        test_16_commit_failure_leaves_state_untouched,
        test_17_expired_deadline_aborts_rebuild,
        test_18_concurrent_moves_stay_consistent,
        test_19_long_cycle_reported_as_cycle,
        test_20_strict_rebuild_rejects_cycle,
        test_21_add_user,
        test_22_remove_user,
    ]
    results = []
    for fn in tests:
        try:
            fn()
            results.append(True)
        except Exception as e:
            print(f"\n[ERROR] {fn.__name__}: {e}")
            import traceback
            traceback.print_exc()
            results.append(False)

    passed = sum(results)
    total = len(results)
    print(f"\n{'='*60}")
    print(f"  RESULTS: {passed}/{total} tests passed")
    print(f"{'='*60}")
    sys.exit(0 if all(results) else 1)


if __name__ == "__main__":
    main()
