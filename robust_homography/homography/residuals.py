"""
Residual functions for scoring homography hypotheses.

All residuals are squared distances in pixels^2, so a RANSAC threshold of
``t`` accepts points whose transfer error is at most ``sqrt(t)`` pixels.
Points whose projection falls at infinity get an infinite residual and are
therefore always outliers.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from robust_homography.fitting.interface import ResidualCalculator
from robust_homography.homography.model import HomographyModel, is_non_singular, project
from robust_homography.types import Correspondence, to_arrays


def _squared_distances(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    with np.errstate(invalid='ignore', over='ignore'):
        d = np.sum((a - b) ** 2, axis=1)
    # inf - inf -> nan for points projected to infinity
    return np.where(np.isfinite(d), d, np.inf)


class AlgebraicResidual2d(ResidualCalculator[HomographyModel]):
    """Forward transfer error ``||H(source) - destination||^2``.

    This is the fast residual used by RANSAC and LMedS for scoring and
    inlier classification.
    """

    def compute_residual(self, model: HomographyModel, data: Correspondence) -> float:
        return float(self.compute_residuals(model, [data])[0])

    def compute_residuals(self, model: HomographyModel, data: Sequence[Correspondence]) -> np.ndarray:
        src, dst = to_arrays(data)
        return _squared_distances(model.apply_points(src), dst)


class SingleImageTransferResidual2d(ResidualCalculator[HomographyModel]):
    """Inverse transfer error ``||H^-1(destination) - source||^2``."""

    def compute_residual(self, model: HomographyModel, data: Correspondence) -> float:
        return float(self.compute_residuals(model, [data])[0])

    def compute_residuals(self, model: HomographyModel, data: Sequence[Correspondence]) -> np.ndarray:
        src, dst = to_arrays(data)
        H = model.get_transform()
        if not is_non_singular(H):
            return np.full(len(data), np.inf)
        return _squared_distances(project(np.linalg.inv(H), dst), src)


class SymmetricTransferResidual2d(ResidualCalculator[HomographyModel]):
    """Sum of the forward and inverse squared transfer errors."""

    def __init__(self):
        self._forward = AlgebraicResidual2d()
        self._inverse = SingleImageTransferResidual2d()

    def compute_residual(self, model: HomographyModel, data: Correspondence) -> float:
        return float(self.compute_residuals(model, [data])[0])

    def compute_residuals(self, model: HomographyModel, data: Sequence[Correspondence]) -> np.ndarray:
        return self._forward.compute_residuals(model, data) + self._inverse.compute_residuals(model, data)
