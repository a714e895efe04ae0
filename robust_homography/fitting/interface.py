"""
Abstract interfaces for robust parametric model fitting.

The fitting framework is model-agnostic. A robust fitter (RANSAC, LMedS)
repeatedly estimates an ``EstimatableModel`` from minimal random samples and
scores every candidate against the full data with a ``ResidualCalculator``.
The homography model and residuals in ``robust_homography.homography`` are
concrete implementations of these interfaces.

Ownership:
    A fitter owns exactly one live model instance. Candidate hypotheses are
    estimated on private working copies (``EstimatableModel.copy()``) and the
    winning hypothesis is copied into the live model at the end of a fit, so
    callers never observe a half-updated model.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar

import numpy as np

from robust_homography.types import Correspondence

M = TypeVar('M', bound='EstimatableModel')


class EstimatableModel(ABC):
    """A parametric model that can be estimated from correspondences."""

    @abstractmethod
    def estimate(self, data: Sequence[Correspondence]) -> bool:
        """Estimate the model parameters from the given correspondences.

        Args:
            data: At least ``num_items_to_estimate()`` correspondences.

        Returns:
            True if a valid (non-degenerate) model was estimated. On False the
            model parameters must be left unchanged.
        """

    @abstractmethod
    def num_items_to_estimate(self) -> int:
        """Return the minimal number of correspondences needed by estimate()."""

    @abstractmethod
    def copy(self) -> EstimatableModel:
        """Return an independent copy of this model."""

    @abstractmethod
    def assign(self, other: EstimatableModel) -> None:
        """Overwrite this model's parameters with those of ``other``."""


class ResidualCalculator(ABC, Generic[M]):
    """Computes a non-negative error of a correspondence under a model."""

    @abstractmethod
    def compute_residual(self, model: M, data: Correspondence) -> float:
        """Return the residual for a single correspondence."""

    def compute_residuals(self, model: M, data: Sequence[Correspondence]) -> np.ndarray:
        """Return residuals for every correspondence, shape (N,).

        Subclasses should override this with a vectorised implementation.
        """
        return np.array(
            [self.compute_residual(model, pair) for pair in data],
            dtype=np.float64,
        )


@dataclass
class FitResult(Generic[M]):
    """Outcome of a single ``fit_data`` call.

    Attributes:
        success: Whether a consensus model was found.
        model: The fitter's live model after the fit.
        inliers: Correspondences classified as inliers (input order).
        outliers: Correspondences classified as outliers (input order).
        iterations: Number of sampling iterations actually run.
        threshold: Residual threshold used for the final classification.
        score: Inlier count (RANSAC) or best median residual (LMedS).
    """

    success: bool
    model: M
    inliers: list[Correspondence] = field(default_factory=list)
    outliers: list[Correspondence] = field(default_factory=list)
    iterations: int = 0
    threshold: float = 0.0
    score: float = float('nan')

    @property
    def num_inliers(self) -> int:
        return len(self.inliers)

    @property
    def inlier_ratio(self) -> float:
        total = len(self.inliers) + len(self.outliers)
        return len(self.inliers) / total if total else 0.0


class RobustModelFitter(ABC, Generic[M]):
    """Abstract base class for robust model fitters.

    Typical usage:
        1. Construct the fitter with a model, residual calculator and options
        2. Call fit_data() with the correspondences
        3. Check the returned flag before trusting get_inliers()/get_outliers()
        4. Use get_model() to transform points

    State Management:
        Every fit_data() call starts a fresh search and fully overwrites the
        previous result; nothing accumulates across calls.
    """

    @abstractmethod
    def fit_data(self, data: Sequence[Correspondence]) -> bool:
        """Fit the model robustly to the data.

        Returns:
            True if a consensus model was found.
        """

    @abstractmethod
    def num_items_to_estimate(self) -> int:
        """Return the minimal sample size of the underlying model."""

    @abstractmethod
    def get_model(self) -> M:
        """Return the live model."""

    @abstractmethod
    def get_inliers(self) -> list[Correspondence]:
        """Return the inliers of the last successful fit."""

    @abstractmethod
    def get_outliers(self) -> list[Correspondence]:
        """Return the outliers of the last successful fit."""

    @property
    @abstractmethod
    def last_result(self) -> Optional[FitResult[M]]:
        """Return the FitResult of the most recent fit_data() call."""
