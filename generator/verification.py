"""
Verification Harness — Generate, load, and verify seed networks.

Provides both single-spec verification and a suite of smoke tests when
run as __main__.
"""

from __future__ import annotations

from nexus_kernel.diagnostics import compute_diagnostics
from nexus_kernel.hierarchy import HierarchyStore
from nexus_kernel.relationships import RelationshipGraph
from nexus_kernel.snapshot import snapshot_hash

from .compiler import generate_network
from .template_spec import NetworkSpec


def verify_generated_network(spec: NetworkSpec, seed: int) -> dict:
    """
    Generate a network, load it into the kernel stores, and return diagnostics.

    Returns:
        {
            "snapshot_hash": str,
            "closure_hash": str,
            "diagnostics": dict,
            "user_count": int,
            "edge_count": int,
        }
    """
    network = generate_network(spec, seed)
    hierarchy = HierarchyStore(network.state.users)
    graph = RelationshipGraph(network.state.edges)
    snap = hierarchy.snapshot()

    return {
        "snapshot_hash": snapshot_hash(network.state),
        "closure_hash": snap.closure_hash,
        "diagnostics": compute_diagnostics(snap, graph),
        "user_count": len(network.state.users),
        "edge_count": len(graph),
    }


# ---------------------------------------------------------------------------
# CLI smoke tests
# ---------------------------------------------------------------------------

def _run_smoke_tests() -> None:
    """Run a suite of deterministic smoke tests."""
    import json

    specs = [
        ("flat_6", NetworkSpec(
            user_count=6, max_span=6, max_depth=1,
            contact_count=4, account_count=2, partner_count=1,
            contacts_per_user=2, cross_link_count=2,
        )),
        ("deep_chain_10", NetworkSpec(
            user_count=11, max_span=1, max_depth=10,
            contact_count=3, account_count=1, partner_count=0,
            contacts_per_user=1, cross_link_count=1,
        )),
        ("sales_org_40", NetworkSpec(
            user_count=40, max_span=5, max_depth=4,
            contact_count=60, account_count=15, partner_count=6,
            contacts_per_user=4, cross_link_count=30,
        )),
    ]

    seed = 42
    all_ok = True

    for label, spec in specs:
        print(f"\n{'-'*60}")
        print(f"  {label}  (seed={seed})")
        print(f"{'-'*60}")

        try:
            result = verify_generated_network(spec, seed)
            print(json.dumps(result, indent=2, default=str))

            # Determinism check: same spec+seed must produce identical hash
            result2 = verify_generated_network(spec, seed)
            if result["snapshot_hash"] != result2["snapshot_hash"]:
                print("  FAIL: DETERMINISM FAILURE")
                all_ok = False
            else:
                print("  OK: Deterministic (hash stable)")
        except Exception as exc:
            print(f"  FAIL: {exc}")
            all_ok = False

    print(f"\n{'='*60}")
    if all_ok:
        print("  ALL SMOKE TESTS PASSED")
    else:
        print("  SOME TESTS FAILED")
    print(f"{'='*60}")


if __name__ == "__main__":
    _run_smoke_tests()
