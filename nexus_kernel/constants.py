"""
Nexus Kernel — Bounds and Defaults

All traversal bounds live here as module-level defaults. Runtime
overrides are passed explicitly to the stores and traversal functions.
"""

# --- Hierarchy ---
# Maximum practical reporting-chain length. Walks beyond it are truncated
# (rebuild) or rejected (set_manager / cycle check).
MAX_CHAIN_DEPTH: int = 10

# --- Relationship traversal ---
DEFAULT_MAX_DEGREES: int = 3
MAX_TRAVERSAL_DEGREES: int = 6

# --- Path finding ---
DEFAULT_PATH_LIMIT: int = 10
MAX_PATH_LIMIT: int = 1000

# --- Diagnostics ---
WIDE_SPAN_OF_CONTROL: int = 12
