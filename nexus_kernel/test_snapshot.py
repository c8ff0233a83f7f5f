"""
Nexus Kernel — Snapshot Encoder / Decoder Tests

  1-8:   Core encode/decode/validation
  9-12:  File I/O and hash integrity

Run:  python -m nexus_kernel.test_snapshot
"""

from __future__ import annotations

import json
import pathlib
import sys
import tempfile

from nexus_kernel.domain_types import EntityRef, RelationshipEdge, User
from nexus_kernel.snapshot import (
    DeserializationError,
    InvariantViolationSnapshotError,
    NetworkState,
    SnapshotError,
    decode_snapshot,
    encode_snapshot,
    export_snapshot_to_file,
    import_snapshot_from_file,
    restore_snapshot,
    snapshot_hash,
)


# ══════════════════════════════════════════════════════════════
# Test Fixtures
# ══════════════════════════════════════════════════════════════

def _make_valid_state() -> NetworkState:
    """Two users, one contact, one account, two edges."""
    return NetworkState(
        users=(
            User("u-boss", "Morgan"),
            User("u-rep", "Riley", "u-boss"),
        ),
        edges=(
            RelationshipEdge(
                "rel-2",
                EntityRef("Contact", "c-1"),
                EntityRef("Account", "a-1"),
                relationship_type="Works At",
                strength="Strong",
            ),
            RelationshipEdge(
                "rel-1",
                EntityRef.user("u-rep"),
                EntityRef("Contact", "c-1"),
                notes="met at the conference",
            ),
        ),
        entities=(
            ("Contact", "c-1", "Jordan Blake"),
            ("Account", "a-1", "Acme Holdings"),
        ),
    )


def _dumps(raw: dict) -> str:
    return json.dumps(raw, ensure_ascii=False, separators=(",", ":"), sort_keys=True)


def _header(title: str) -> None:
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}")


def _expect(exc_type, fn, *args) -> Exception:
    try:
        fn(*args)
    except exc_type as exc:
        print(f"  Caught: {exc}")
        return exc
    raise AssertionError(f"Expected {exc_type.__name__}")


# ══════════════════════════════════════════════════════════════
# Core Tests (1 – 8)
# ══════════════════════════════════════════════════════════════

def test_01_encode_decode_encode_roundtrip() -> None:
    """Encode -> Decode -> Encode must produce identical JSON."""
    _header("Test 01 -- Encode -> Decode -> Encode roundtrip")
    state = _make_valid_state()
    json1 = encode_snapshot(state)
    json2 = encode_snapshot(decode_snapshot(json1))
    assert json1 == json2, f"Roundtrip mismatch:\n  {json1!r}\n  {json2!r}"
    print("  [PASS]")


def test_02_canonical_ordering() -> None:
    _header("Test 02 -- Canonical ordering")
    raw = json.loads(encode_snapshot(_make_valid_state()))
    assert [e["id"] for e in raw["edges"]] == ["rel-1", "rel-2"]
    assert [(e["entity_type"], e["id"]) for e in raw["entities"]] == [
        ("Account", "a-1"), ("Contact", "c-1"),
    ]
    assert "user_hierarchy" not in raw and "closure" not in raw
    print("  [PASS]")


def test_03_dangling_edge_fails_restore() -> None:
    _header("Test 03 -- Edge to unknown entity")
    raw = json.loads(encode_snapshot(_make_valid_state()))
    raw["edges"].append({
        "from_entity": {"entity_type": "User", "id": "u-boss"},
        "id": "rel-3",
        "notes": None,
        "relationship_type": "Knows",
        "strength": "Weak",
        "to_entity": {"entity_type": "Partner", "id": "p-missing"},
    })
    exc = _expect(InvariantViolationSnapshotError, restore_snapshot, _dumps(raw))
    assert exc.original.rule == "edge_refs"
    print("  [PASS]")


def test_04_manager_cycle_fails_restore() -> None:
    _header("Test 04 -- Manager cycle")
    raw = json.loads(encode_snapshot(_make_valid_state()))
    raw["users"][0]["manager_id"] = "u-rep"
    exc = _expect(InvariantViolationSnapshotError, restore_snapshot, _dumps(raw))
    assert exc.original.rule == "no_manager_cycles"
    # decode alone does not validate
    assert len(decode_snapshot(_dumps(raw)).users) == 2
    print("  [PASS]")


def test_05_unknown_and_missing_fields() -> None:
    _header("Test 05 -- Field whitelists")
    raw = json.loads(encode_snapshot(_make_valid_state()))
    raw["users"][1]["title"] = "AE"
    _expect(DeserializationError, decode_snapshot, _dumps(raw))

    raw = json.loads(encode_snapshot(_make_valid_state()))
    del raw["edges"][0]["strength"]
    _expect(DeserializationError, decode_snapshot, _dumps(raw))
    print("  [PASS]")


def test_06_bad_vocabulary() -> None:
    _header("Test 06 -- Unknown strength / entity type")
    raw = json.loads(encode_snapshot(_make_valid_state()))
    raw["edges"][0]["strength"] = "Legendary"
    _expect(DeserializationError, decode_snapshot, _dumps(raw))

    raw = json.loads(encode_snapshot(_make_valid_state()))
    raw["entities"][0]["entity_type"] = "Lead"
    _expect(DeserializationError, decode_snapshot, _dumps(raw))
    print("  [PASS]")


def test_07_duplicate_ids() -> None:
    _header("Test 07 -- Duplicate ids")
    raw = json.loads(encode_snapshot(_make_valid_state()))
    raw["users"].append(dict(raw["users"][0]))
    _expect(DeserializationError, decode_snapshot, _dumps(raw))

    raw = json.loads(encode_snapshot(_make_valid_state()))
    raw["edges"][1]["id"] = raw["edges"][0]["id"]
    _expect(DeserializationError, decode_snapshot, _dumps(raw))
    print("  [PASS]")


def test_08_float_and_non_object() -> None:
    _header("Test 08 -- Floats and bad top level")
    raw = json.loads(encode_snapshot(_make_valid_state()))
    raw["format_version"] = 1.0
    _expect(DeserializationError, decode_snapshot, _dumps(raw))
    _expect(DeserializationError, decode_snapshot, "[]")
    _expect(DeserializationError, decode_snapshot, "{not json")
    print("  [PASS]")


# ══════════════════════════════════════════════════════════════
# File I/O + Hash (9 – 12)
# ══════════════════════════════════════════════════════════════

def test_09_export_import_roundtrip() -> None:
    _header("Test 09 -- Export / import roundtrip")
    state = _make_valid_state()
    with tempfile.TemporaryDirectory() as tmp:
        path = pathlib.Path(tmp) / "network.json"
        export_snapshot_to_file(state, path)
        loaded = import_snapshot_from_file(path)
        assert path.read_text(encoding="utf-8") == encode_snapshot(state)
    assert snapshot_hash(loaded) == snapshot_hash(state)
    print("  [PASS]")


def test_10_corrupted_file() -> None:
    _header("Test 10 -- Corrupted file")
    with tempfile.TemporaryDirectory() as tmp:
        path = pathlib.Path(tmp) / "broken.json"
        path.write_text('{"users": [', encoding="utf-8")
        _expect(SnapshotError, import_snapshot_from_file, path)
        _expect(DeserializationError, import_snapshot_from_file, pathlib.Path(tmp) / "nope.json")
    print("  [PASS]")


def test_11_hash_independent_of_input_order() -> None:
    _header("Test 11 -- Hash ignores input ordering")
    state = _make_valid_state()
    shuffled = NetworkState(
        users=tuple(reversed(state.users)),
        edges=tuple(reversed(state.edges)),
        entities=tuple(reversed(state.entities)),
    )
    assert snapshot_hash(state) == snapshot_hash(shuffled)
    print(f"  SHA-256 = {snapshot_hash(state)}")
    print("  [PASS]")


def test_12_directory_from_state() -> None:
    _header("Test 12 -- Directory built from state")
    directory = _make_valid_state().directory()
    assert directory.lookup_display_name(EntityRef.user("u-rep")) == "Riley"
    assert directory.lookup_display_name(EntityRef("Account", "a-1")) == "Acme Holdings"
    assert directory.lookup_display_name(EntityRef("Partner", "p-1")) is None
    print("  [PASS]")


# ══════════════════════════════════════════════════════════════
# Runner
# ══════════════════════════════════════════════════════════════

def main() -> None:
    tests = [
        test_01_encode_decode_encode_roundtrip,
        test_02_canonical_ordering,
        test_03_dangling_edge_fails_restore,
        test_04_manager_cycle_fails_restore,
        test_05_unknown_and_missing_fields,
        test_06_bad_vocabulary,
        test_07_duplicate_ids,
        test_08_float_and_non_object,
        test_09_export_import_roundtrip,
        test_10_corrupted_file,
        test_11_hash_independent_of_input_order,
        test_12_directory_from_state,
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
