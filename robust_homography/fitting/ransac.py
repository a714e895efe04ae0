"""
RANSAC robust model fitting (Fischler & Bolles, 1981).

Loop:
    - Randomly sample a minimal subset of correspondences
    - Estimate a candidate model from that subset (degenerate samples are redrawn)
    - Score every correspondence with the residual calculator
    - Mark inliers where residual <= threshold
    - Keep the hypothesis with the most inliers (ties: lowest summed inlier residual)
    - Ask the stopping condition whether sampling may end

The final model is re-estimated from the full best inlier set, the data are
reclassified with the refit model, and the two steps alternate until the
inlier set stops changing. The reported partition is always the one computed
with the reported model.
"""

from __future__ import annotations

import logging
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
from robust_homography.fitting.sampling import RandomSource, UniformSampler
from robust_homography.fitting.stopping import (
    ProbabilisticMinInliersStoppingCondition,
    StoppingCondition,
)
from robust_homography.types import Correspondence, as_correspondences

logger = logging.getLogger(__name__)

# Upper bound on refit/reclassify rounds after the sampling loop
MAX_REFIT_ROUNDS = 10


def partition(data: Sequence[Correspondence], mask: np.ndarray) -> tuple[list[Correspondence], list[Correspondence]]:
    """Split data into (inliers, outliers) by a boolean mask, preserving order."""
    inliers = [pair for pair, keep in zip(data, mask) if keep]
    outliers = [pair for pair, keep in zip(data, mask) if not keep]
    return inliers, outliers


def estimate_from_sample(
    model: EstimatableModel,
    data: Sequence[Correspondence],
    sampler: UniformSampler,
    max_retries: int,
) -> bool:
    """Estimate ``model`` from a random minimal sample, redrawing degenerate samples.

    Returns:
        True once a sample yields a valid model, False if every retry was degenerate.
    """
    size = model.num_items_to_estimate()
    for _ in range(max_retries):
        if model.estimate(sampler.sample(data, size)):
            return True
    return False


def refit_consensus(
    model: EstimatableModel,
    residual: ResidualCalculator,
    data: Sequence[Correspondence],
    mask: np.ndarray,
    threshold: float,
    max_rounds: int = MAX_REFIT_ROUNDS,
) -> np.ndarray:
    """Alternate refitting ``model`` on the inliers and reclassifying the data.

    Stops when the inlier set no longer changes, after ``max_rounds`` rounds,
    or when a refit is degenerate or would leave fewer inliers than a minimal
    sample. In the last two cases the previous model and mask are kept.

    Args:
        model: Model whose inliers are ``mask``; updated in place
        residual: Residual calculator used for classification
        data: All correspondences
        mask: Boolean inlier mask of ``model`` over ``data``
        threshold: Inlier threshold on the residual

    Returns:
        The inlier mask of the final ``model``.
    """
    min_items = model.num_items_to_estimate()
    for round_ in range(1, max_rounds + 1):
        candidate = model.copy()
        if not candidate.estimate(partition(data, mask)[0]):
            logger.debug(f"Refit round {round_} was degenerate, keeping previous model")
            break

        new_mask = residual.compute_residuals(candidate, data) <= threshold
        if np.count_nonzero(new_mask) < min_items:
            logger.debug(f"Refit round {round_} left too few inliers, keeping previous model")
            break

        model.assign(candidate)
        changed = not np.array_equal(new_mask, mask)
        mask = new_mask
        if not changed:
            break
        logger.debug(f"Refit round {round_}: inlier set changed to {int(np.count_nonzero(mask))} items")
    return mask


class RANSAC(RobustModelFitter[M], Generic[M]):
    """RANSAC fitter over an arbitrary estimatable model.

    Attributes:
        model: The live model, overwritten by each successful fit
        residual: Residual calculator used to score hypotheses
        threshold: Inlier threshold on the residual (residual <= threshold)
        max_iterations: Hard cap on sampling iterations
        stopping_condition: Early-termination / acceptance policy
        refit_on_inliers: Re-estimate the final model from all inliers
        max_sample_retries: Degenerate samples redrawn per iteration
    """

    DEFAULT_SAMPLE_RETRIES = 100

    def __init__(
        self,
        model: M,
        residual: ResidualCalculator[M],
        threshold: float,
        max_iterations: int,
        stopping_condition: Optional[StoppingCondition] = None,
        refit_on_inliers: bool = True,
        rng: RandomSource = None,
        max_sample_retries: int = DEFAULT_SAMPLE_RETRIES,
    ):
        """
        Initialize a RANSAC fitter.

        Args:
            model: Model instance to fit (owned by the fitter from now on)
            residual: Residual calculator for scoring
            threshold: Inlier threshold; must be non-negative
            max_iterations: Maximum number of iterations; must be positive
            stopping_condition: Stopping policy. Defaults to the adaptive
                ProbabilisticMinInliersStoppingCondition(0.99).
            refit_on_inliers: Re-estimate the model from all inliers at the end
            rng: numpy Generator or int seed for reproducible sampling
            max_sample_retries: Degenerate minimal samples redrawn per iteration

        Raises:
            ValueError: If parameters are invalid
        """
        if threshold < 0:
            raise ValueError(f"threshold must be non-negative, got {threshold}")
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be positive, got {max_iterations}")
        if max_sample_retries < 1:
            raise ValueError(f"max_sample_retries must be positive, got {max_sample_retries}")

        self.model = model
        self.residual = residual
        self.threshold = float(threshold)
        self.max_iterations = int(max_iterations)
        self.stopping_condition = stopping_condition or ProbabilisticMinInliersStoppingCondition()
        self.refit_on_inliers = refit_on_inliers
        self.max_sample_retries = int(max_sample_retries)
        self.sampler = UniformSampler(rng)

        self._result: Optional[FitResult[M]] = None

    def fit_data(self, data: Sequence[Correspondence]) -> bool:
        data = as_correspondences(data)
        n = len(data)
        sample_size = self.model.num_items_to_estimate()

        if n < sample_size:
            logger.warning(f"RANSAC needs at least {sample_size} correspondences, got {n}")
            self._result = FitResult(success=False, model=self.model, threshold=self.threshold)
            return False

        self.stopping_condition.init(n, sample_size)

        hypothesis = self.model.copy()
        best_model: Optional[EstimatableModel] = None
        best_mask: Optional[np.ndarray] = None
        best_count = -1
        best_error = np.inf

        iteration = 0
        while iteration < self.max_iterations:
            iteration += 1

            if not estimate_from_sample(hypothesis, data, self.sampler, self.max_sample_retries):
                logger.debug(f"RANSAC iteration {iteration}: all sampled subsets degenerate")
                continue

            residuals = self.residual.compute_residuals(hypothesis, data)
            mask = residuals <= self.threshold
            count = int(np.count_nonzero(mask))
            error = float(np.sum(residuals[mask])) if count else np.inf

            if count > best_count or (count == best_count and error < best_error):
                best_model = hypothesis.copy()
                best_mask = mask
                best_count = count
                best_error = error
                logger.debug(f"RANSAC iteration {iteration}: better model with {count}/{n} inliers")

            if best_count >= sample_size and self.stopping_condition.should_stop(best_count, iteration):
                break

        if best_model is None or best_count < sample_size:
            logger.info(f"RANSAC found no consensus after {iteration} iterations")
            self._result = FitResult(success=False, model=self.model, iterations=iteration,
                                     threshold=self.threshold, score=float(max(best_count, 0)))
            return False

        if self.refit_on_inliers:
            best_mask = refit_consensus(best_model, self.residual, data, best_mask, self.threshold)
            best_count = int(np.count_nonzero(best_mask))

        if not self.stopping_condition.final_fit_condition(best_count):
            logger.info(
                f"RANSAC best model ({best_count}/{n} inliers) rejected by {self.stopping_condition!r}"
            )
            self._result = FitResult(success=False, model=self.model, iterations=iteration,
                                     threshold=self.threshold, score=float(best_count))
            return False

        inliers, outliers = partition(data, best_mask)
        self.model.assign(best_model)

        logger.info(f"RANSAC fit: {best_count}/{n} inliers after {iteration} iterations")
        self._result = FitResult(
            success=True,
            model=self.model,
            inliers=inliers,
            outliers=outliers,
            iterations=iteration,
            threshold=self.threshold,
            score=float(best_count),
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
