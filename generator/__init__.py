"""
Deterministic Network Generator.

Produces valid, loadable seed networks (org chart + relationship graph)
for the nexus kernel.
"""

from .compiler import generate_network, GeneratedNetwork, GeneratorInvariantError
from .deterministic_rng import DeterministicRNG
from .exporter import export_network, load_exported_network
from .template_spec import NetworkSpec, DEFAULT_SPEC
from .verification import verify_generated_network

__all__ = [
    "generate_network",
    "GeneratedNetwork",
    "GeneratorInvariantError",
    "DeterministicRNG",
    "export_network",
    "load_exported_network",
    "NetworkSpec",
    "DEFAULT_SPEC",
    "verify_generated_network",
]
