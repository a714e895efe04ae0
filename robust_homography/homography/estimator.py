"""
Robust homography estimation.

Wraps a robust fitter and a refinement stage behind one call:

1. An initial inlier set and an algebraically optimal homography are found
   with RANSAC or LMedS, both using the normalized DLT.
2. If a consensus was found, the homography is refined on the inliers with
   Levenberg-Marquardt against a true geometric error (see
   ``HomographyRefinement``).
3. If no consensus was found, the model falls back to a plain DLT estimate
   over all of the data and the fit reports failure.

Example:
    >>> estimator = RobustHomographyEstimator.with_ransac(
    ...     threshold=2.0,
    ...     max_iterations=500,
    ...     stopping_condition=ProbabilisticMinInliersStoppingCondition(0.99),
    ...     refinement=HomographyRefinement.SYMMETRIC_TRANSFER,
    ...     rng=42,
    ... )
    >>> if estimator.fit_data(pairs):
    ...     dst = estimator.get_model().apply((120.0, 48.0))
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Optional

import numpy as np

from robust_homography.fitting.interface import FitResult, RobustModelFitter
from robust_homography.fitting.lmeds import LMedS
from robust_homography.fitting.ransac import RANSAC
from robust_homography.fitting.sampling import RandomSource
from robust_homography.fitting.stopping import StoppingCondition
from robust_homography.homography.model import HomographyModel
from robust_homography.homography.refinement import (
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TOLERANCE,
    HomographyRefinement,
)
from robust_homography.homography.residuals import AlgebraicResidual2d
from robust_homography.types import Correspondence, CorrespondenceLike, as_correspondences

logger = logging.getLogger(__name__)


class RobustHomographyEstimator(RobustModelFitter[HomographyModel]):
    """Robust fitter + non-linear refinement for homographies.

    Attributes:
        fitter: Underlying robust fitter (RANSAC or LMedS); owns the model
        refinement: Geometric error minimized on the inliers
        refinement_max_iterations: Residual-evaluation budget for the refinement
            (least_squares max_nfev, not LM iterations)
        refinement_tolerance: Relative cost tolerance for the refinement
    """

    def __init__(
        self,
        fitter: RobustModelFitter[HomographyModel],
        refinement: HomographyRefinement = HomographyRefinement.SYMMETRIC_TRANSFER,
        refinement_max_iterations: int = DEFAULT_MAX_ITERATIONS,
        refinement_tolerance: float = DEFAULT_TOLERANCE,
    ):
        self.fitter = fitter
        self.refinement = refinement
        self.refinement_max_iterations = refinement_max_iterations
        self.refinement_tolerance = refinement_tolerance
        self._success = False

    @classmethod
    def with_lmeds(
        cls,
        outlier_proportion: float,
        refinement: HomographyRefinement = HomographyRefinement.SYMMETRIC_TRANSFER,
        rng: RandomSource = None,
        **kwargs,
    ) -> RobustHomographyEstimator:
        """Construct using LMedS with the given expected outlier proportion (0 <= p < 1)."""
        fitter = LMedS(HomographyModel(), AlgebraicResidual2d(), outlier_proportion,
                       refit_on_inliers=True, rng=rng)
        return cls(fitter, refinement, **kwargs)

    @classmethod
    def with_ransac(
        cls,
        threshold: float,
        max_iterations: int,
        stopping_condition: Optional[StoppingCondition] = None,
        refinement: HomographyRefinement = HomographyRefinement.SYMMETRIC_TRANSFER,
        rng: RandomSource = None,
        **kwargs,
    ) -> RobustHomographyEstimator:
        """Construct using RANSAC.

        Args:
            threshold: Squared transfer error (pixels^2) at which a point is an inlier
            max_iterations: Maximum number of RANSAC iterations
            stopping_condition: RANSAC stopping policy (adaptive by default)
            refinement: Refinement technique
            rng: numpy Generator or int seed
        """
        fitter = RANSAC(HomographyModel(), AlgebraicResidual2d(), threshold, max_iterations,
                        stopping_condition, refit_on_inliers=True, rng=rng)
        return cls(fitter, refinement, **kwargs)

    def fit_data(self, data: Sequence[CorrespondenceLike]) -> bool:
        """Robustly estimate the homography.

        Returns:
            True if a consensus was found and refined. On False the model holds
            a non-robust DLT estimate over all data when one exists, otherwise
            the identity (not yet estimated), and the inlier/outlier lists are
            empty. Nothing carries over from earlier calls.
        """
        data = as_correspondences(data)
        self._success = False
        model = self.fitter.get_model()
        model.set_transform(np.eye(3))

        if len(data) < self.num_items_to_estimate():
            logger.warning(
                f"Cannot estimate homography from {len(data)} correspondences, "
                f"need at least {self.num_items_to_estimate()}"
            )
            # the fitter records the failure without sampling
            self.fitter.fit_data(data)
            return False

        if not self.fitter.fit_data(data):
            if model.estimate(data):
                logger.warning(
                    f"Robust fitting found no consensus among {len(data)} correspondences, "
                    f"using non-robust DLT estimate"
                )
            else:
                logger.warning("Robust fitting and non-robust DLT both failed")
            return False

        optimised = self.refinement.refine(
            model.get_transform(),
            self.fitter.get_inliers(),
            max_iterations=self.refinement_max_iterations,
            tolerance=self.refinement_tolerance,
        )
        model.set_transform(optimised)
        self._success = True
        return True

    def num_items_to_estimate(self) -> int:
        return self.fitter.num_items_to_estimate()

    def get_model(self) -> HomographyModel:
        return self.fitter.get_model()

    def get_inliers(self) -> list[Correspondence]:
        return self.fitter.get_inliers()

    def get_outliers(self) -> list[Correspondence]:
        return self.fitter.get_outliers()

    @property
    def last_result(self) -> Optional[FitResult[HomographyModel]]:
        return self.fitter.last_result

    @property
    def success(self) -> bool:
        """Whether the most recent fit_data() call succeeded."""
        return self._success
