"""
Deterministic RNG — Seeded random wrapper.

All randomness in the generator passes through a single DeterministicRNG
instance. Identical (spec, seed) → identical call sequence → identical network.
"""

from __future__ import annotations

import random
from typing import List, Sequence, TypeVar

T = TypeVar("T")


class DeterministicRNG:
    """Local seeded RNG. No global random state touched."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(seed)

    def rand_int(self, low: int, high: int) -> int:
        """Return random integer in [low, high] inclusive."""
        return self._rng.randint(low, high)

    def rand_choice(self, seq: Sequence[T]) -> T:
        """Pick one element from a non-empty sequence."""
        return self._rng.choice(seq)

    def sample(self, seq: Sequence[T], k: int) -> List[T]:
        """Pick ``min(k, len(seq))`` distinct elements, order preserved by draw."""
        return self._rng.sample(list(seq), min(k, len(seq)))

    def weighted_choice(self, seq: Sequence[T], weights: Sequence[int]) -> T:
        """Pick one element; integer weights, same length as ``seq``."""
        return self._rng.choices(seq, weights=weights, k=1)[0]

    def shuffle(self, seq: List[T]) -> None:
        """In-place deterministic shuffle."""
        self._rng.shuffle(seq)
