"""
Homography model, residuals, refinement and the robust estimator.
"""

from robust_homography.homography.estimator import RobustHomographyEstimator
from robust_homography.homography.model import (
    HomographyModel,
    NumericDegeneracyError,
    homography_dlt,
    normalization_transform,
)
from robust_homography.homography.refinement import HomographyRefinement
from robust_homography.homography.residuals import (
    AlgebraicResidual2d,
    SingleImageTransferResidual2d,
    SymmetricTransferResidual2d,
)

__all__ = [
    "HomographyModel",
    "NumericDegeneracyError",
    "homography_dlt",
    "normalization_transform",
    "AlgebraicResidual2d",
    "SingleImageTransferResidual2d",
    "SymmetricTransferResidual2d",
    "HomographyRefinement",
    "RobustHomographyEstimator",
]
