"""
JSON Network Exporter.

Exports a generated network + metadata to a JSON file. The "snapshot"
member is the canonical kernel snapshot, so it can be restored on its own.
Never exports the closure table (it is derived).
"""

from __future__ import annotations

import json

from nexus_kernel.snapshot import NetworkState, encode_snapshot, restore_snapshot

from .compiler import GeneratedNetwork


def export_network(network: GeneratedNetwork, path: str) -> None:
    """
    Write snapshot + metadata to a JSON file.

    Output format:
    {
        "metadata": {"seed": int, "spec": {...}},
        "snapshot": {"edges": [...], "entities": [...], "format_version": 1, "users": [...]}
    }
    """
    doc = {
        "metadata": {
            "seed": network.seed,
            "spec": network.spec.to_dict(),
        },
        "snapshot": json.loads(encode_snapshot(network.state)),
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(doc, f, ensure_ascii=True, indent=2)


def load_exported_network(path: str) -> NetworkState:
    """Read back the snapshot member of an exported file, with full validation."""
    with open(path, "r", encoding="utf-8") as f:
        doc = json.load(f)
    return restore_snapshot(json.dumps(doc["snapshot"]))
