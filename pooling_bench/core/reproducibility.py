"""Seeded randomness threaded through fold splitting and MCMC sampling.

Seeds are derived from (base seed, unit keys) so a unit gets the same seed no
matter which worker runs it or in which order units finish.
"""

import zlib
from typing import Optional, Tuple

import numpy as np


class RandomContext:
    """Deterministic seed source for one run.

    Example:
        >>> ctx = RandomContext(42)
        >>> fold_ctx = ctx.child('fold', 1)
        >>> fold_ctx.seed_for('AAPL', 'bayes')  # same value on every run
    """

    def __init__(self, seed: Optional[int] = 42, keys: Tuple = ()):
        self.seed = seed
        self.keys = tuple(keys)

    def child(self, *keys) -> 'RandomContext':
        """Context for a sub-unit (fold, entity, paradigm)."""
        return RandomContext(self.seed, self.keys + tuple(keys))

    def seed_for(self, *keys) -> Optional[int]:
        """Integer seed for one stochastic call; None when the run is unseeded."""
        if self.seed is None:
            return None
        spawn_key = tuple(zlib.crc32(str(k).encode('utf-8')) for k in self.keys + tuple(keys))
        sequence = np.random.SeedSequence(entropy=self.seed, spawn_key=spawn_key)
        return int(sequence.generate_state(1)[0])

    def generator(self, *keys) -> np.random.Generator:
        return np.random.default_rng(self.seed_for(*keys))

    def __repr__(self) -> str:
        return f"RandomContext(seed={self.seed}, keys={self.keys})"
