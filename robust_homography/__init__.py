"""
Robust homography estimation from point correspondences.

This package estimates a 2D projective transform (homography) from noisy,
partially incorrect correspondences between two views:

    - RANSAC or LMedS robust fitting over minimal samples, each hypothesis
      estimated with the normalized Direct Linear Transform
    - Levenberg-Marquardt refinement of the consensus model on its inliers
      against a true geometric error
    - Fallback to a non-robust DLT estimate when no consensus exists

Example Usage:
    >>> from robust_homography import (
    ...     RobustHomographyEstimator,
    ...     HomographyRefinement,
    ...     ProbabilisticMinInliersStoppingCondition,
    ... )
    >>>
    >>> estimator = RobustHomographyEstimator.with_ransac(
    ...     threshold=4.0,
    ...     max_iterations=2000,
    ...     stopping_condition=ProbabilisticMinInliersStoppingCondition(0.99),
    ...     refinement=HomographyRefinement.SYMMETRIC_TRANSFER,
    ... )
    >>> pairs = [((0, 0), (10, 5)), ((100, 0), (110, 5)), ...]
    >>> if estimator.fit_data(pairs):
    ...     print(estimator.get_model().apply((50, 50)))
    ...     print(len(estimator.get_inliers()), "inliers")

Available Classes:
    Data types:
        - Point2d, Correspondence
    Framework:
        - EstimatableModel, ResidualCalculator, RobustModelFitter, FitResult
        - RANSAC, LMedS and the RANSAC stopping conditions
    Homography:
        - HomographyModel, AlgebraicResidual2d and transfer residuals
        - HomographyRefinement, RobustHomographyEstimator
    Configuration:
        - EstimatorConfig, FittingMethod, get_default_config, create_estimator
"""

from robust_homography.types import Correspondence, Point2d, as_correspondences

from robust_homography.fitting import (
    RANSAC,
    BestFitStoppingCondition,
    EstimatableModel,
    FitResult,
    LMedS,
    NumberInliersStoppingCondition,
    PercentageInliersStoppingCondition,
    ProbabilisticMinInliersStoppingCondition,
    ResidualCalculator,
    RobustModelFitter,
    StoppingCondition,
    StoppingConditionType,
    make_stopping_condition,
)

from robust_homography.homography import (
    AlgebraicResidual2d,
    HomographyModel,
    HomographyRefinement,
    NumericDegeneracyError,
    RobustHomographyEstimator,
    SingleImageTransferResidual2d,
    SymmetricTransferResidual2d,
)

from robust_homography.config import EstimatorConfig, FittingMethod, get_default_config
from robust_homography.factory import create_estimator

__all__ = [
    # Data types
    'Point2d',
    'Correspondence',
    'as_correspondences',

    # Framework
    'EstimatableModel',
    'ResidualCalculator',
    'RobustModelFitter',
    'FitResult',
    'RANSAC',
    'LMedS',
    'StoppingCondition',
    'StoppingConditionType',
    'BestFitStoppingCondition',
    'NumberInliersStoppingCondition',
    'PercentageInliersStoppingCondition',
    'ProbabilisticMinInliersStoppingCondition',
    'make_stopping_condition',

    # Homography
    'HomographyModel',
    'NumericDegeneracyError',
    'AlgebraicResidual2d',
    'SingleImageTransferResidual2d',
    'SymmetricTransferResidual2d',
    'HomographyRefinement',
    'RobustHomographyEstimator',

    # Configuration and factory
    'EstimatorConfig',
    'FittingMethod',
    'get_default_config',
    'create_estimator',
]

# Package metadata
__version__ = '0.1.0'
__description__ = 'Robust homography estimation with RANSAC/LMedS and non-linear refinement'
