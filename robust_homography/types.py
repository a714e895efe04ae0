"""
Point and correspondence value types.

The estimators consume a sequence of correspondences, each an ordered pair of
2D points (source, destination). Plain ``((x, y), (u, v))`` tuples are accepted
wherever a sequence of correspondences is taken and are coerced to
``Correspondence`` on entry.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Union

import numpy as np


@dataclass(frozen=True)
class Point2d:
    """Point in a 2D image plane.

    Attributes:
        x: Horizontal coordinate.
        y: Vertical coordinate.
    """

    x: float
    y: float

    def as_array(self) -> np.ndarray:
        """Return the point as a float64 array of shape (2,)."""
        return np.array([self.x, self.y], dtype=np.float64)

    @classmethod
    def from_any(cls, value: Any) -> Point2d:
        """Build a point from a Point2d, a 2-sequence or a length-2 array."""
        if isinstance(value, Point2d):
            return value
        try:
            x, y = value
        except (TypeError, ValueError):
            raise ValueError(f"Expected a 2D point, got {value!r}") from None
        return cls(float(x), float(y))


@dataclass(frozen=True)
class Correspondence:
    """Ordered pair of matching points between two views.

    Attributes:
        source: Point in the first (source) view.
        destination: Matching point in the second (destination) view.
    """

    source: Point2d
    destination: Point2d

    @classmethod
    def from_tuple(cls, pair: Any) -> Correspondence:
        """Build a correspondence from ``(source, destination)``."""
        if isinstance(pair, Correspondence):
            return pair
        try:
            src, dst = pair
        except (TypeError, ValueError):
            raise ValueError(
                f"Expected a (source, destination) pair, got {pair!r}"
            ) from None
        return cls(Point2d.from_any(src), Point2d.from_any(dst))


CorrespondenceLike = Union[Correspondence, tuple]


def as_correspondences(data: Sequence[CorrespondenceLike]) -> list[Correspondence]:
    """Coerce a sequence of pairs into a list of ``Correspondence`` objects.

    Existing ``Correspondence`` instances are kept as-is (identity preserved),
    so inlier/outlier lists refer to the caller's own objects.
    """
    return [Correspondence.from_tuple(pair) for pair in data]


def to_arrays(data: Sequence[Correspondence]) -> tuple[np.ndarray, np.ndarray]:
    """Split correspondences into (N, 2) source and destination arrays."""
    n = len(data)
    src = np.empty((n, 2), dtype=np.float64)
    dst = np.empty((n, 2), dtype=np.float64)
    for i, pair in enumerate(data):
        src[i] = (pair.source.x, pair.source.y)
        dst[i] = (pair.destination.x, pair.destination.y)
    return src, dst
