"""
Least Median of Squares robust model fitting.

See Peter J. Rousseeuw, "Least Median of Squares Regression", 1984.

Unlike RANSAC, LMedS needs no inlier threshold. Each hypothesis is scored by
the median of its residuals over all correspondences and the hypothesis with
the smallest median wins. The number of hypotheses is fixed up front from the
expected outlier proportion. Inliers are classified only after the loop, from
a robust estimate of the noise scale:

    sigma = 1.4826 * (1 + 5 / (N - s)) * sqrt(median)

where 1.4826 makes the median absolute deviation a consistent estimator of the
standard deviation for Gaussian noise and (1 + 5 / (N - s)) is Rousseeuw's
finite-sample correction. A correspondence is an inlier if its residual is
at most (inlier_multiplier * sigma)^2. With refit_on_inliers the model is
re-estimated from the inliers and the data reclassified under the same
threshold until the inlier set is stable.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from typing import Generic, Optional

import numpy as np

from robust_homography.fitting.interface import (
    EstimatableModel,
    FitResult,
    M,
    ResidualCalculator,
    RobustModelFitter,
)
from robust_homography.fitting.ransac import estimate_from_sample, partition, refit_consensus
from robust_homography.fitting.sampling import RandomSource, UniformSampler
from robust_homography.types import Correspondence, as_correspondences

logger = logging.getLogger(__name__)

# Gaussian consistency constant for the median absolute deviation
MAD_TO_SIGMA = 1.4826


def lmeds_iterations(
    outlier_proportion: float,
    sample_size: int,
    confidence: float = 0.99,
    min_iterations: int = 10,
    max_iterations: int = 100_000,
) -> int:
    """Number of samples needed to draw one outlier-free sample with probability ``confidence``.

        k = ceil(log(1 - p) / log(1 - (1 - e)^s))

    clamped to [min_iterations, max_iterations].
    """
    p_good_sample = (1.0 - outlier_proportion) ** sample_size
    if p_good_sample >= 1.0:
        return min_iterations
    if p_good_sample <= 0.0:
        return max_iterations
    k = math.ceil(math.log1p(-confidence) / math.log1p(-p_good_sample))
    return int(min(max(k, min_iterations), max_iterations))


class LMedS(RobustModelFitter[M], Generic[M]):
    """Least-Median-of-Squares fitter over an arbitrary estimatable model.

    Attributes:
        model: The live model, overwritten by each successful fit
        residual: Residual calculator (squared errors expected)
        outlier_proportion: Expected outlier fraction in [0, 1)
        confidence: Probability of drawing at least one outlier-free sample
        inlier_multiplier: Inlier bound in units of the robust noise scale
        min_scale: Floor on the robust noise scale, so that exact data
            (median residual 0) still admits round-off-level residuals
        refit_on_inliers: Re-estimate the final model from all inliers
    """

    DEFAULT_INLIER_MULTIPLIER = 2.5
    DEFAULT_MIN_SCALE = 1e-6
    MIN_ITERATIONS = 10
    MAX_ITERATIONS = 100_000

    def __init__(
        self,
        model: M,
        residual: ResidualCalculator[M],
        outlier_proportion: float,
        refit_on_inliers: bool = True,
        rng: RandomSource = None,
        confidence: float = 0.99,
        inlier_multiplier: float = DEFAULT_INLIER_MULTIPLIER,
        min_scale: float = DEFAULT_MIN_SCALE,
        max_sample_retries: int = 100,
    ):
        if not 0.0 <= outlier_proportion < 1.0:
            raise ValueError(
                f"outlier_proportion must be in range [0.0, 1.0), got {outlier_proportion}"
            )
        if not 0.0 < confidence < 1.0:
            raise ValueError(f"confidence must be in range (0.0, 1.0), got {confidence}")
        if inlier_multiplier <= 0:
            raise ValueError(f"inlier_multiplier must be positive, got {inlier_multiplier}")
        if min_scale < 0:
            raise ValueError(f"min_scale must be non-negative, got {min_scale}")

        self.model = model
        self.residual = residual
        self.outlier_proportion = float(outlier_proportion)
        self.confidence = float(confidence)
        self.inlier_multiplier = float(inlier_multiplier)
        self.min_scale = float(min_scale)
        self.refit_on_inliers = refit_on_inliers
        self.max_sample_retries = int(max_sample_retries)
        self.sampler = UniformSampler(rng)

        self._result: Optional[FitResult[M]] = None

    def robust_threshold(self, best_median: float, num_items: int) -> float:
        """Squared-residual inlier threshold derived from the best median."""
        sample_size = self.model.num_items_to_estimate()
        correction = 1.0 + 5.0 / (num_items - sample_size) if num_items > sample_size else 1.0
        sigma = MAD_TO_SIGMA * correction * math.sqrt(max(best_median, 0.0))
        sigma = max(sigma, self.min_scale)
        return (self.inlier_multiplier * sigma) ** 2

    def fit_data(self, data: Sequence[Correspondence]) -> bool:
        data = as_correspondences(data)
        n = len(data)
        sample_size = self.model.num_items_to_estimate()

        if n < sample_size:
            logger.warning(f"LMedS needs at least {sample_size} correspondences, got {n}")
            self._result = FitResult(success=False, model=self.model)
            return False

        num_tests = lmeds_iterations(
            self.outlier_proportion, sample_size, self.confidence,
            self.MIN_ITERATIONS, self.MAX_ITERATIONS,
        )

        hypothesis = self.model.copy()
        best_model: Optional[EstimatableModel] = None
        best_median = np.inf

        for iteration in range(1, num_tests + 1):
            if not estimate_from_sample(hypothesis, data, self.sampler, self.max_sample_retries):
                logger.debug(f"LMedS iteration {iteration}: all sampled subsets degenerate")
                continue

            median = float(np.median(self.residual.compute_residuals(hypothesis, data)))
            if median < best_median:
                best_median = median
                best_model = hypothesis.copy()
                logger.debug(f"LMedS iteration {iteration}: better median {median:.6g}")

        if best_model is None or not np.isfinite(best_median):
            logger.info(f"LMedS found no valid hypothesis in {num_tests} iterations")
            self._result = FitResult(success=False, model=self.model, iterations=num_tests)
            return False

        threshold = self.robust_threshold(best_median, n)
        mask = self.residual.compute_residuals(best_model, data) <= threshold

        if np.count_nonzero(mask) < sample_size:
            logger.info(
                f"LMedS best model has only {int(np.count_nonzero(mask))} inliers "
                f"(threshold={threshold:.4g}, median={best_median:.4g})"
            )
            self._result = FitResult(success=False, model=self.model, iterations=num_tests,
                                     threshold=threshold, score=best_median)
            return False

        if self.refit_on_inliers:
            mask = refit_consensus(best_model, self.residual, data, mask, threshold)
        inliers, outliers = partition(data, mask)
        self.model.assign(best_model)

        logger.info(
            f"LMedS fit: {len(inliers)}/{n} inliers, median residual {best_median:.4g}, "
            f"threshold {threshold:.4g} after {num_tests} iterations"
        )
        self._result = FitResult(
            success=True,
            model=self.model,
            inliers=inliers,
            outliers=outliers,
            iterations=num_tests,
            threshold=threshold,
            score=best_median,
        )
        return True

    def num_items_to_estimate(self) -> int:
        return self.model.num_items_to_estimate()

    def get_model(self) -> M:
        return self.model

    def get_inliers(self) -> list[Correspondence]:
        return list(self._result.inliers) if self._result else []

    def get_outliers(self) -> list[Correspondence]:
        return list(self._result.outliers) if self._result else []

    @property
    def last_result(self) -> Optional[FitResult[M]]:
        return self._result
