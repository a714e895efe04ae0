"""
Non-linear refinement of a homography on its inlier set.

The robust fitters produce an algebraically optimal estimate. This module
minimizes a true geometric error over the inliers with Levenberg-Marquardt,
seeded at that estimate.

Mathematical Model:
    For inlier correspondences (x_i, x'_i), minimize over H

    E(H) = Σᵢ ||rᵢ(H)||²

    where the per-correspondence residual rᵢ depends on the mode:
    - SINGLE_IMAGE_TRANSFER:          x'_i - π(H x_i)
    - SINGLE_IMAGE_TRANSFER_INVERSE:  x_i - π(H⁻¹ x'_i)
    - SYMMETRIC_TRANSFER:             both of the above
    - SAMPSON:                        δᵢ = -Jᵢᵀ (Jᵢ Jᵢᵀ)⁻¹ εᵢ, the first-order
                                      geometric correction of the algebraic
                                      error εᵢ (Hartley & Zisserman, 4.2.6)
    - π() is the perspective division.

Parameterization:
    The 9 entries of H expressed in Hartley-normalized coordinates
    (Hn = T_dst H T_src⁻¹), with one extra residual ||hn||² - 1 fixing the
    projective scale. Residuals themselves are evaluated in pixel space.

The optimization uses scipy.optimize.least_squares with method='lm'. It never
fails hard: on non-convergence or optimizer error the best matrix found is
returned, and if the optimized cost is not lower than the initial cost the
initial matrix is returned unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from enum import Enum
from typing import Callable

import numpy as np
from scipy.optimize import least_squares

from robust_homography.homography.model import (
    HomographyModel,
    canonical_scale,
    is_non_singular,
    normalization_transform,
    project,
)
from robust_homography.types import Correspondence, to_arrays

logger = logging.getLogger(__name__)

# Residual used for points projecting to infinity (penalizes such configurations)
INFINITY_RESIDUAL = 1e6

# Residual evaluations (not LM iterations); roughly 100 LM iterations for 9 parameters
DEFAULT_MAX_ITERATIONS = 1000
DEFAULT_TOLERANCE = 1e-10


def _finite(residuals: np.ndarray) -> np.ndarray:
    return np.where(np.isfinite(residuals), residuals, INFINITY_RESIDUAL)


def forward_transfer_residuals(H: np.ndarray, src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """Flattened [Δu_1, Δv_1, ...] of dst - π(H src)."""
    return _finite((dst - project(H, src)).ravel())


def inverse_transfer_residuals(H: np.ndarray, src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """Flattened [Δx_1, Δy_1, ...] of src - π(H⁻¹ dst)."""
    if not is_non_singular(H):
        return np.full(src.size, INFINITY_RESIDUAL)
    return _finite((src - project(np.linalg.inv(H), dst)).ravel())


def symmetric_transfer_residuals(H: np.ndarray, src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    return np.concatenate([
        forward_transfer_residuals(H, src, dst),
        inverse_transfer_residuals(H, src, dst),
    ])


def sampson_residuals(H: np.ndarray, src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """Flattened Sampson correction vectors, 4 components per correspondence.

    With x = (x, y, 1) and x' = (u, v), the two algebraic errors are

        ε1 = -(h2·x) + v (h3·x)
        ε2 =  (h1·x) - u (h3·x)

    and J is their 2x4 Jacobian with respect to (x, y, u, v).
    """
    x, y = src[:, 0], src[:, 1]
    u, v = dst[:, 0], dst[:, 1]
    h1x = H[0, 0] * x + H[0, 1] * y + H[0, 2]
    h2x = H[1, 0] * x + H[1, 1] * y + H[1, 2]
    h3x = H[2, 0] * x + H[2, 1] * y + H[2, 2]

    e1 = -h2x + v * h3x
    e2 = h1x - u * h3x

    zeros = np.zeros_like(x)
    # J rows: d(e1)/d(x, y, u, v) and d(e2)/d(x, y, u, v), shape (N, 2, 4)
    J = np.stack([
        np.stack([-H[1, 0] + v * H[2, 0], -H[1, 1] + v * H[2, 1], zeros, h3x], axis=1),
        np.stack([H[0, 0] - u * H[2, 0], H[0, 1] - u * H[2, 1], -h3x, zeros], axis=1),
    ], axis=1)
    eps = np.stack([e1, e2], axis=1)

    JJt = J @ np.transpose(J, (0, 2, 1))
    det = JJt[:, 0, 0] * JJt[:, 1, 1] - JJt[:, 0, 1] * JJt[:, 1, 0]
    valid = np.abs(det) > 1e-300
    inv = np.zeros_like(JJt)
    inv[valid, 0, 0] = JJt[valid, 1, 1] / det[valid]
    inv[valid, 1, 1] = JJt[valid, 0, 0] / det[valid]
    inv[valid, 0, 1] = -JJt[valid, 0, 1] / det[valid]
    inv[valid, 1, 0] = -JJt[valid, 1, 0] / det[valid]

    lam = np.einsum('nij,nj->ni', inv, eps)
    delta = -np.einsum('nji,nj->ni', J, lam)
    delta[~valid] = INFINITY_RESIDUAL
    return _finite(delta.ravel())


ResidualFunction = Callable[[np.ndarray, np.ndarray, np.ndarray], np.ndarray]


class HomographyRefinement(Enum):
    """Geometric error minimized when refining a homography on its inliers."""

    NONE = "none"
    """No refinement; the robust estimate is returned unchanged."""

    SINGLE_IMAGE_TRANSFER = "single_image_transfer"
    """Forward transfer error in the destination image."""

    SINGLE_IMAGE_TRANSFER_INVERSE = "single_image_transfer_inverse"
    """Inverse transfer error in the source image."""

    SYMMETRIC_TRANSFER = "symmetric_transfer"
    """Forward plus inverse transfer error."""

    SAMPSON = "sampson"
    """First-order approximation of the reprojection (gold standard) error."""

    @property
    def residual_function(self) -> ResidualFunction | None:
        return _RESIDUAL_FUNCTIONS.get(self)

    def geometric_cost(self, transform: np.ndarray, inliers: Sequence[Correspondence]) -> float:
        """Sum of squared geometric residuals of ``transform`` over ``inliers``.

        NONE scores with the forward transfer error.
        """
        fn = self.residual_function or forward_transfer_residuals
        src, dst = to_arrays(inliers)
        r = fn(np.asarray(transform, dtype=np.float64), src, dst)
        return float(r @ r)

    def refine(
        self,
        initial: np.ndarray,
        inliers: Sequence[Correspondence],
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        tolerance: float = DEFAULT_TOLERANCE,
    ) -> np.ndarray:
        """Refine ``initial`` on ``inliers``.

        Args:
            initial: 3x3 starting homography (e.g., from RANSAC/LMedS)
            inliers: Inlier correspondences
            max_iterations: Maximum number of residual evaluations passed to
                least_squares as max_nfev. The Jacobian is estimated by finite
                differences, so each LM iteration costs about 10 evaluations.
            tolerance: Relative cost reduction below which LM stops

        Returns:
            The refined 3x3 homography. Never worse than ``initial`` under
            geometric_cost(); ``initial`` itself when refinement is skipped or
            does not help.
        """
        initial = np.asarray(initial, dtype=np.float64)
        fn = self.residual_function
        if fn is None:
            return initial.copy()
        if len(inliers) < HomographyModel.MIN_ITEMS or not is_non_singular(initial):
            logger.debug(f"Skipping {self.value} refinement: {len(inliers)} inliers")
            return initial.copy()

        src, dst = to_arrays(inliers)
        T_src = normalization_transform(src)
        T_dst = normalization_transform(dst)
        if T_src is None or T_dst is None:
            return initial.copy()
        T_dst_inv = np.linalg.inv(T_dst)

        hn0 = canonical_scale(T_dst @ initial @ np.linalg.inv(T_src)).ravel()

        def to_pixel_homography(hn: np.ndarray) -> np.ndarray:
            return T_dst_inv @ hn.reshape(3, 3) @ T_src

        def residuals(hn: np.ndarray) -> np.ndarray:
            r = fn(to_pixel_homography(hn), src, dst)
            return np.append(r, hn @ hn - 1.0)

        initial_cost = self.geometric_cost(initial, inliers)

        try:
            result = least_squares(
                fun=residuals,
                x0=hn0,
                method='lm',
                ftol=tolerance,
                xtol=tolerance,
                max_nfev=max_iterations,
            )
        except (ValueError, np.linalg.LinAlgError) as e:
            logger.warning(f"{self.value} refinement failed, keeping initial estimate: {e}")
            return initial.copy()

        if not result.success:
            logger.warning(f"{self.value} refinement did not converge: {result.message}")

        refined = to_pixel_homography(result.x)
        if not is_non_singular(refined):
            logger.warning(f"{self.value} refinement produced a singular matrix, keeping initial estimate")
            return initial.copy()
        refined = canonical_scale(refined)

        final_cost = self.geometric_cost(refined, inliers)
        if not final_cost <= initial_cost:
            logger.debug(
                f"{self.value} refinement did not improve cost ({initial_cost:.6g} -> {final_cost:.6g})"
            )
            return initial.copy()

        logger.debug(
            f"{self.value} refinement: cost {initial_cost:.6g} -> {final_cost:.6g} "
            f"in {result.nfev} evaluations"
        )
        return refined


_RESIDUAL_FUNCTIONS: dict[HomographyRefinement, ResidualFunction] = {
    HomographyRefinement.SINGLE_IMAGE_TRANSFER: forward_transfer_residuals,
    HomographyRefinement.SINGLE_IMAGE_TRANSFER_INVERSE: inverse_transfer_residuals,
    HomographyRefinement.SYMMETRIC_TRANSFER: symmetric_transfer_residuals,
    HomographyRefinement.SAMPSON: sampson_residuals,
}
