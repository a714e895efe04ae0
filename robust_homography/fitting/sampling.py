"""Seedable random sampling of minimal subsets."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar, Union

import numpy as np

T = TypeVar('T')

RandomSource = Union[None, int, np.random.Generator]


def make_rng(rng: RandomSource = None) -> np.random.Generator:
    """Return a numpy Generator for ``rng``.

    Args:
        rng: An existing Generator (used as-is), an int seed, or None for a
            freshly OS-seeded generator. Process-global numpy state is never
            used.
    """
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


class UniformSampler:
    """Draws subsets uniformly at random without replacement."""

    def __init__(self, rng: RandomSource = None):
        self.rng = make_rng(rng)

    def sample_indices(self, n: int, size: int) -> np.ndarray:
        if size > n:
            raise ValueError(f"Cannot sample {size} items from {n}")
        return self.rng.choice(n, size=size, replace=False)

    def sample(self, data: Sequence[T], size: int) -> list[T]:
        return [data[i] for i in self.sample_indices(len(data), size)]
