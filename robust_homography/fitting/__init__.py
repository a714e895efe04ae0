"""
Generic robust model fitting.

Model-agnostic RANSAC and LMedS fitters operating on any EstimatableModel
scored by a ResidualCalculator.
"""

from robust_homography.fitting.interface import (
    EstimatableModel,
    FitResult,
    ResidualCalculator,
    RobustModelFitter,
)
from robust_homography.fitting.lmeds import LMedS, lmeds_iterations
from robust_homography.fitting.ransac import RANSAC
from robust_homography.fitting.sampling import UniformSampler, make_rng
from robust_homography.fitting.stopping import (
    BestFitStoppingCondition,
    NumberInliersStoppingCondition,
    PercentageInliersStoppingCondition,
    ProbabilisticMinInliersStoppingCondition,
    StoppingCondition,
    StoppingConditionType,
    make_stopping_condition,
    required_iterations,
)

__all__ = [
    # Interfaces
    "EstimatableModel",
    "ResidualCalculator",
    "RobustModelFitter",
    "FitResult",
    # Fitters
    "RANSAC",
    "LMedS",
    "lmeds_iterations",
    # Sampling
    "UniformSampler",
    "make_rng",
    # Stopping conditions
    "StoppingCondition",
    "StoppingConditionType",
    "BestFitStoppingCondition",
    "NumberInliersStoppingCondition",
    "PercentageInliersStoppingCondition",
    "ProbabilisticMinInliersStoppingCondition",
    "make_stopping_condition",
    "required_iterations",
]
