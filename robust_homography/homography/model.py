"""
Homography model with normalized DLT estimation.

A homography H maps homogeneous source points to destination points:

    [x', y', w']^T = H @ [x, y, 1]^T,    (u, v) = (x'/w', y'/w')

Estimation uses the normalized Direct Linear Transform (Hartley & Zisserman,
Algorithm 4.2):

    1. Similarity-normalize each point set (centroid to origin, mean
       distance from origin sqrt(2)), giving T_src and T_dst
    2. Stack two rows per correspondence into a 2N x 9 matrix A
    3. Take the right singular vector of A with the smallest singular value
    4. Reshape to 3x3 (Hn) and denormalize: H = inv(T_dst) @ Hn @ T_src

The model rejects rank-deficient systems (coincident or collinear samples)
and never stores a singular matrix.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Optional

import numpy as np

from robust_homography.fitting.interface import EstimatableModel
from robust_homography.types import CorrespondenceLike, Point2d, as_correspondences, to_arrays

logger = logging.getLogger(__name__)

SQRT2 = np.sqrt(2.0)


class NumericDegeneracyError(ArithmeticError):
    """Raised when a point maps to (or near) the line at infinity."""


def normalization_transform(points: np.ndarray) -> Optional[np.ndarray]:
    """Compute the similarity transform normalizing a (N, 2) point set.

    The transform translates the centroid to the origin and scales so that
    the mean distance from the origin is sqrt(2).

    Returns:
        3x3 transform T such that T @ [x, y, 1]^T is normalized, or None if
        all points coincide.
    """
    centroid = points.mean(axis=0)
    mean_dist = float(np.mean(np.linalg.norm(points - centroid, axis=1)))
    if not np.isfinite(mean_dist) or mean_dist < 1e-12:
        return None
    scale = SQRT2 / mean_dist
    return np.array(
        [
            [scale, 0.0, -scale * centroid[0]],
            [0.0, scale, -scale * centroid[1]],
            [0.0, 0.0, 1.0],
        ],
        dtype=np.float64,
    )


def apply_transform(T: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Apply a 3x3 transform to (N, 2) points, returning (N, 3) homogeneous results."""
    ones = np.ones((points.shape[0], 1), dtype=np.float64)
    return np.hstack([points, ones]) @ T.T


def is_non_singular(H: np.ndarray, rcond: float = 1e-12) -> bool:
    """Check that a 3x3 matrix is finite and numerically rank 3."""
    if H.shape != (3, 3) or not np.isfinite(H).all():
        return False
    s = np.linalg.svd(H, compute_uv=False)
    return bool(s[0] > 0.0 and s[-1] > rcond * s[0])


def canonical_scale(H: np.ndarray) -> np.ndarray:
    """Scale H to unit Frobenius norm with a non-negative H[2, 2]."""
    H = H / np.linalg.norm(H)
    if H[2, 2] < 0:
        H = -H
    return H


def homography_dlt(src: np.ndarray, dst: np.ndarray, rank_tol: float = 1e-10) -> Optional[np.ndarray]:
    """Estimate a homography from (N, 2) point arrays with the normalized DLT.

    Args:
        src: Source points, shape (N, 2), N >= 4.
        dst: Destination points, shape (N, 2).
        rank_tol: Relative singular value tolerance for the rank-8 check.

    Returns:
        3x3 homography with unit Frobenius norm, or None if the data are
        degenerate (coincident/collinear points, rank-deficient system,
        singular result).
    """
    if src.shape != dst.shape or src.ndim != 2 or src.shape[1] != 2:
        raise ValueError(f"src and dst must be (N,2) arrays of equal shape, got {src.shape} vs {dst.shape}")
    n = src.shape[0]
    if n < 4:
        return None

    T_src = normalization_transform(src)
    T_dst = normalization_transform(dst)
    if T_src is None or T_dst is None:
        return None

    src_n = apply_transform(T_src, src)[:, :2]
    dst_n = apply_transform(T_dst, dst)[:, :2]

    # Two equations per correspondence (x, y) -> (u, v):
    #   [x, y, 1, 0, 0, 0, -u*x, -u*y, -u] . h = 0
    #   [0, 0, 0, x, y, 1, -v*x, -v*y, -v] . h = 0
    x, y = src_n[:, 0], src_n[:, 1]
    u, v = dst_n[:, 0], dst_n[:, 1]
    zeros = np.zeros(n)
    ones = np.ones(n)
    A = np.empty((2 * n, 9), dtype=np.float64)
    A[0::2] = np.column_stack([x, y, ones, zeros, zeros, zeros, -u * x, -u * y, -u])
    A[1::2] = np.column_stack([zeros, zeros, zeros, x, y, ones, -v * x, -v * y, -v])

    try:
        _, s, Vt = np.linalg.svd(A)
    except np.linalg.LinAlgError:
        logger.debug("DLT SVD did not converge")
        return None

    # The null space must be one-dimensional: singular value 8 (index 7)
    # must be clearly non-zero. For N == 4 only 8 singular values exist.
    if s[7] <= rank_tol * s[0]:
        return None

    Hn = Vt[-1].reshape(3, 3)
    H = np.linalg.inv(T_dst) @ Hn @ T_src

    if not is_non_singular(H):
        return None
    return canonical_scale(H)


class HomographyModel(EstimatableModel):
    """Homography between two planes, estimated with the normalized DLT.

    Attributes:
        MIN_ITEMS: Minimal number of correspondences for an estimate.
        W_EPSILON: Relative tolerance on the homogeneous coordinate below
            which a projected point is considered to lie at infinity.
    """

    MIN_ITEMS = 4
    W_EPSILON = 1e-12

    def __init__(self, transform: Optional[np.ndarray] = None):
        self._transform = np.eye(3, dtype=np.float64)
        if transform is not None:
            self.set_transform(transform)

    def estimate(self, data: Sequence[CorrespondenceLike]) -> bool:
        """Estimate the homography from correspondences via normalized DLT.

        Plain ((x, y), (u, v)) pairs are accepted.

        Returns:
            True if a non-degenerate homography was found. The current
            transform is left unchanged on False.
        """
        data = as_correspondences(data)
        if len(data) < self.MIN_ITEMS:
            return False
        src, dst = to_arrays(data)
        H = homography_dlt(src, dst)
        if H is None:
            return False
        self._transform = H
        return True

    def num_items_to_estimate(self) -> int:
        return self.MIN_ITEMS

    def get_transform(self) -> np.ndarray:
        """Return a copy of the current 3x3 transform."""
        return self._transform.copy()

    def set_transform(self, matrix: np.ndarray) -> None:
        """Replace the current transform.

        Raises:
            ValueError: If the matrix is not a finite 3x3 array.
        """
        matrix = np.asarray(matrix, dtype=np.float64)
        if matrix.shape != (3, 3):
            raise ValueError(f"Homography matrix must be 3x3, got shape {matrix.shape}")
        if not np.isfinite(matrix).all():
            raise ValueError("Homography matrix contains non-finite values")
        self._transform = matrix.copy()

    def apply(self, point: Point2d | tuple) -> Point2d:
        """Project a single point through the homography.

        Raises:
            NumericDegeneracyError: If the point maps to infinity.
        """
        p = Point2d.from_any(point)
        H = self._transform
        xh = H @ np.array([p.x, p.y, 1.0])
        if abs(xh[2]) <= self.W_EPSILON * np.linalg.norm(H):
            raise NumericDegeneracyError(
                f"Point ({p.x}, {p.y}) maps to infinity (w={xh[2]:.3e})"
            )
        return Point2d(float(xh[0] / xh[2]), float(xh[1] / xh[2]))

    def apply_points(self, points: np.ndarray) -> np.ndarray:
        """Project (N, 2) points; rows mapping to infinity become ``inf``."""
        return project(self._transform, points, self.W_EPSILON)

    def inverse(self) -> HomographyModel:
        """Return a model holding the inverse transform.

        Raises:
            NumericDegeneracyError: If the transform is singular.
        """
        if not is_non_singular(self._transform):
            raise NumericDegeneracyError("Homography is singular and cannot be inverted")
        return HomographyModel(np.linalg.inv(self._transform))

    def copy(self) -> HomographyModel:
        return HomographyModel(self._transform)

    def assign(self, other: EstimatableModel) -> None:
        if not isinstance(other, HomographyModel):
            raise TypeError(f"Cannot assign {type(other).__name__} to HomographyModel")
        self._transform = other._transform.copy()

    def __repr__(self) -> str:
        return f"HomographyModel({np.array2string(self._transform, precision=6)})"


def project(H: np.ndarray, points: np.ndarray, w_epsilon: float = HomographyModel.W_EPSILON) -> np.ndarray:
    """Project (N, 2) points through H; points at infinity become ``inf``."""
    ph = apply_transform(H, np.asarray(points, dtype=np.float64))
    w = ph[:, 2]
    valid = np.abs(w) > w_epsilon * np.linalg.norm(H)
    out = np.full((ph.shape[0], 2), np.inf)
    out[valid] = ph[valid, :2] / w[valid, None]
    return out
